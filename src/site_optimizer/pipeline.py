"""
Optimization cycle orchestration.

One cycle runs: classify signals -> rank -> gather competitor context ->
synthesize directives -> snapshot the tree -> apply directives -> log the batch.

All external calls (SERP lookups, text generation) finish before the snapshot
is taken, so nothing local changes until directives exist. A snapshot failure
aborts the cycle before any mutation.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from .backup import SnapshotStore
from .config import OptimizerConfig
from .document_tree import DocumentTree
from .llm_client import TextGenerator, create_llm_client
from .models import ApplicationResult, BatchSummary, EditDirective, Opportunity
from .mutation import MutationEngine
from .opportunities import OpportunityClassifier, SignalInput, rank, summarize_opportunities
from .optimization_log import OptimizationLog
from .serp import SerpProvider, gather_competitor_context
from .sitemap import SitemapRegenerator
from .synthesizer import OptimizationSynthesizer, SkippedSynthesis

logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    """Result of applying one batch of directives."""
    snapshot_id: Optional[str]
    results: list[ApplicationResult]
    summary: BatchSummary


@dataclass
class CycleReport:
    """Everything one optimization cycle produced."""
    opportunities: list[Opportunity] = field(default_factory=list)
    directives: list[EditDirective] = field(default_factory=list)
    skipped: list[SkippedSynthesis] = field(default_factory=list)
    snapshot_id: Optional[str] = None
    results: list[ApplicationResult] = field(default_factory=list)
    summary: BatchSummary = field(default_factory=lambda: BatchSummary(applied=0, errors=0))
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "opportunities": summarize_opportunities(self.opportunities),
            "directives": [d.to_dict() for d in self.directives],
            "skipped": [
                {"keyword": s.keyword, "type": s.opportunity_type, "reason": s.reason}
                for s in self.skipped
            ],
            "snapshot_id": self.snapshot_id,
            "summary": self.summary.to_dict(),
            "dry_run": self.dry_run,
        }


class SiteOptimizer:
    """
    Runs optimization cycles against one document tree.

    Single writer: one cycle must finish before another starts on the same tree.
    """

    def __init__(
        self,
        config: OptimizerConfig,
        generator: Optional[TextGenerator] = None,
        serp_provider: Optional[SerpProvider] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the optimizer.

        Args:
            config: Optimizer configuration.
            generator: Text generation collaborator. Created from the config
                (Anthropic client) on first use when None.
            serp_provider: SERP collaborator. Competitor context is skipped
                when None.
            sleep: Sleep function used for inter-call delays.
        """
        self.config = config
        self.serp_provider = serp_provider
        self._generator = generator
        self._sleep = sleep

        self.tree = DocumentTree(config.site_dir)
        self.store = SnapshotStore(config.backup_dir, retention=config.effective_retention)
        self.sitemap = SitemapRegenerator(config.base_url, config.change_frequency)
        self.engine = MutationEngine(self.tree, sitemap=self.sitemap, parser=config.html_parser)
        self.classifier = OpportunityClassifier(config.thresholds)

    @property
    def generator(self) -> TextGenerator:
        if self._generator is None:
            self._generator = create_llm_client(api_key=self.config.api_key, model=self.config.model)
        return self._generator

    def prioritize(self, signals: SignalInput) -> list[Opportunity]:
        """Classify and rank signals."""
        return rank(self.classifier.classify(signals))

    def plan(self, opportunities: list[Opportunity]):
        """
        Gather competitor context and synthesize directives for ranked opportunities.

        Returns:
            SynthesisReport with directives in ranked order.
        """
        contexts = gather_competitor_context(
            opportunities,
            self.serp_provider,
            limit=self.config.max_serp_lookups,
            delay_seconds=self.config.request_delay_seconds,
            sleep=self._sleep,
        )
        synthesizer = OptimizationSynthesizer(
            self.generator,
            limits=self.config.limits,
            request_delay_seconds=self.config.request_delay_seconds,
            sleep=self._sleep,
        )
        return synthesizer.synthesize_batch(opportunities, contexts)

    def apply_directives(self, directives: list[EditDirective]) -> BatchOutcome:
        """
        Snapshot the tree, apply directives and log the batch.

        Raises:
            SnapshotError: If the pre-batch snapshot fails. Nothing is mutated.
            StorageError: If the optimization log cannot be read or written.
        """
        if not directives:
            logger.info("No directives to apply")
            return BatchOutcome(snapshot_id=None, results=[], summary=BatchSummary(applied=0, errors=0))

        with OptimizationLog(self.config.log_path) as log:
            snapshot_id = self.store.snapshot(self.tree)
            results = self.engine.apply(directives)
            summary = self.engine.summarize(results)
            log.record(summary, optimizations_count=len(directives))

        logger.info(f"Batch complete: {summary.applied} applied, {summary.errors} errors")
        return BatchOutcome(snapshot_id=snapshot_id, results=results, summary=summary)

    def run_cycle(self, signals: Mapping[str, Any], dry_run: bool = False) -> CycleReport:
        """
        Run a full optimization cycle.

        Args:
            signals: Mapping of keyword to PerformanceSignal or raw metrics.
            dry_run: Stop after synthesis; nothing is snapshotted or written.

        Returns:
            CycleReport with explicit applied/error counts.
        """
        opportunities = self.prioritize(signals)
        logger.info(f"Found {len(opportunities)} optimization opportunities")

        report = CycleReport(opportunities=opportunities, dry_run=dry_run)
        if not opportunities:
            return report

        synthesis = self.plan(opportunities)
        report.directives = synthesis.directives
        report.skipped = synthesis.skipped

        if dry_run:
            return report

        outcome = self.apply_directives(synthesis.directives)
        report.snapshot_id = outcome.snapshot_id
        report.results = outcome.results
        report.summary = outcome.summary
        return report

    def rollback(self, snapshot_id: str) -> Optional[str]:
        """Roll the tree back to a snapshot. Returns the safety snapshot id, if one was taken."""
        return self.store.rollback(snapshot_id, self.tree)
