"""
Site Optimizer

A search-driven content optimizer for static marketing sites that:
- Classifies keyword performance signals into ranked opportunities
- Synthesizes edit directives with an LLM and competitor SERP context
- Applies directives to the document tree with snapshots and rollback
- Regenerates the sitemap and keeps an append-only optimization log
"""

__version__ = "1.0.0"
__author__ = "Site Optimizer Team"

from .config import OptimizerConfig, OpportunityThresholds, PayloadLimits

from .errors import (
    SiteOptimizerError,
    NotFoundError,
    DocumentNotFoundError,
    SelectorNotFoundError,
    SnapshotNotFoundError,
    DirectiveValidationError,
    StorageError,
    SnapshotError,
    ExternalCollaboratorError,
    LLMClientError,
    SerpProviderError,
    SignalValidationError,
    SignalLoadError,
    OpportunityInvariantError,
)

from .models import (
    PerformanceSignal,
    Priority,
    OpportunityType,
    Opportunity,
    RankingBoost,
    CtrImprovement,
    ContentExpansion,
    EditOperation,
    EditDirective,
    Applied,
    Rejected,
    ApplicationResult,
    BatchSummary,
    Snapshot,
    CompetitorContext,
    SitemapEntry,
)

# Prioritization engine
from .opportunities import (
    OpportunityClassifier,
    classify,
    rank,
    find_quick_wins,
    summarize_opportunities,
)

from .signals import load_signals, parse_signals

# Synthesis
from .synthesizer import OptimizationSynthesizer, SynthesisReport, validate_payload

# Mutation engine
from .document_tree import DocumentTree
from .mutation import MutationEngine
from .backup import SnapshotStore
from .sitemap import SitemapRegenerator
from .optimization_log import OptimizationLog

from .pipeline import SiteOptimizer, CycleReport

__all__ = [
    # Configuration
    "OptimizerConfig",
    "OpportunityThresholds",
    "PayloadLimits",
    # Errors
    "SiteOptimizerError",
    "NotFoundError",
    "DocumentNotFoundError",
    "SelectorNotFoundError",
    "SnapshotNotFoundError",
    "DirectiveValidationError",
    "StorageError",
    "SnapshotError",
    "ExternalCollaboratorError",
    "LLMClientError",
    "SerpProviderError",
    "SignalValidationError",
    "SignalLoadError",
    "OpportunityInvariantError",
    # Models
    "PerformanceSignal",
    "Priority",
    "OpportunityType",
    "Opportunity",
    "RankingBoost",
    "CtrImprovement",
    "ContentExpansion",
    "EditOperation",
    "EditDirective",
    "Applied",
    "Rejected",
    "ApplicationResult",
    "BatchSummary",
    "Snapshot",
    "CompetitorContext",
    "SitemapEntry",
    # Prioritization
    "OpportunityClassifier",
    "classify",
    "rank",
    "find_quick_wins",
    "summarize_opportunities",
    "load_signals",
    "parse_signals",
    # Synthesis
    "OptimizationSynthesizer",
    "SynthesisReport",
    "validate_payload",
    # Mutation
    "DocumentTree",
    "MutationEngine",
    "SnapshotStore",
    "SitemapRegenerator",
    "OptimizationLog",
    # Orchestration
    "SiteOptimizer",
    "CycleReport",
]
