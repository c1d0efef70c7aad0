"""
Data models for Site Optimizer.

This module defines the core data structures shared by the prioritization
engine (signals and opportunities) and the mutation engine (edit directives,
application results and snapshots).
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Optional, Union

from .config import OpportunityThresholds
from .errors import OpportunityInvariantError, SignalValidationError


@dataclass(frozen=True)
class PerformanceSignal:
    """Search performance of one keyword over the analysis window."""
    keyword: str
    position: float
    impressions: int
    clicks: int
    ctr: float  # Percentage, 0-100

    def __post_init__(self) -> None:
        """Validate ranges."""
        if not self.keyword or not self.keyword.strip():
            raise SignalValidationError("keyword must be a non-empty string")
        if self.position < 1:
            raise SignalValidationError(
                f"position must be >= 1 for '{self.keyword}', got {self.position}"
            )
        if self.impressions < 0:
            raise SignalValidationError(
                f"impressions must be >= 0 for '{self.keyword}', got {self.impressions}"
            )
        if self.clicks < 0:
            raise SignalValidationError(
                f"clicks must be >= 0 for '{self.keyword}', got {self.clicks}"
            )
        if not 0 <= self.ctr <= 100:
            raise SignalValidationError(
                f"ctr must be in [0, 100] for '{self.keyword}', got {self.ctr}"
            )


class Priority(Enum):
    """Priority bucket of an opportunity."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> int:
        """Sort weight: high=3, medium=2, low=1."""
        return PRIORITY_WEIGHTS[self]


PRIORITY_WEIGHTS = {
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


class OpportunityType(Enum):
    """Kinds of optimization opportunity."""
    RANKING_BOOST = "ranking_boost"
    CTR_IMPROVEMENT = "ctr_improvement"
    CONTENT_EXPANSION = "content_expansion"


@dataclass(frozen=True)
class Opportunity:
    """
    Base class for typed opportunities.

    Subclasses define ``matches`` (the rule predicate over a signal) and
    ``_from_matching_signal``. Use ``from_signal`` to build one: it refuses to
    create an opportunity whose predicate does not hold.
    """
    keyword: str
    current_position: float

    opportunity_type: ClassVar[OpportunityType]

    @classmethod
    def matches(cls, signal: PerformanceSignal, thresholds: OpportunityThresholds) -> bool:
        raise NotImplementedError

    @classmethod
    def _from_matching_signal(
        cls, signal: PerformanceSignal, thresholds: OpportunityThresholds
    ) -> "Opportunity":
        raise NotImplementedError

    @classmethod
    def from_signal(
        cls,
        signal: PerformanceSignal,
        thresholds: Optional[OpportunityThresholds] = None,
    ) -> "Opportunity":
        """
        Create an opportunity from a signal that satisfies this rule.

        Args:
            signal: Source performance signal.
            thresholds: Rule thresholds (defaults if None).

        Returns:
            The opportunity.

        Raises:
            OpportunityInvariantError: If the signal does not satisfy the rule.
        """
        thresholds = thresholds or OpportunityThresholds()
        if not cls.matches(signal, thresholds):
            raise OpportunityInvariantError(
                f"Signal for '{signal.keyword}' does not satisfy the "
                f"{cls.opportunity_type.value} rule"
            )
        return cls._from_matching_signal(signal, thresholds)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and reports."""
        data: dict[str, Any] = {"type": self.opportunity_type.value}
        for name, value in self.__dict__.items():
            data[name] = value.value if isinstance(value, Enum) else value
        return data


@dataclass(frozen=True)
class RankingBoost(Opportunity):
    """Keyword close to the first page with enough impressions to push up."""
    impressions: int
    target_position: int = 5
    priority: Priority = Priority.HIGH

    opportunity_type: ClassVar[OpportunityType] = OpportunityType.RANKING_BOOST

    @classmethod
    def matches(cls, signal: PerformanceSignal, thresholds: OpportunityThresholds) -> bool:
        return (
            thresholds.ranking_boost_min_position < signal.position <= thresholds.ranking_boost_max_position
            and signal.impressions > thresholds.ranking_boost_min_impressions
        )

    @classmethod
    def _from_matching_signal(cls, signal, thresholds):
        return cls(
            keyword=signal.keyword,
            current_position=signal.position,
            impressions=signal.impressions,
            target_position=thresholds.target_position,
        )


@dataclass(frozen=True)
class CtrImprovement(Opportunity):
    """Keyword already on the first page whose click-through rate is poor."""
    current_ctr: float
    target_ctr: float = 5.0
    priority: Priority = Priority.MEDIUM

    opportunity_type: ClassVar[OpportunityType] = OpportunityType.CTR_IMPROVEMENT

    @classmethod
    def matches(cls, signal: PerformanceSignal, thresholds: OpportunityThresholds) -> bool:
        return (
            signal.position <= thresholds.ctr_max_position
            and signal.ctr < thresholds.ctr_max_rate
        )

    @classmethod
    def _from_matching_signal(cls, signal, thresholds):
        return cls(
            keyword=signal.keyword,
            current_position=signal.position,
            current_ctr=signal.ctr,
            target_ctr=thresholds.target_ctr,
        )


@dataclass(frozen=True)
class ContentExpansion(Opportunity):
    """High-volume keyword ranking deep, worth a new content section."""
    impressions: int
    priority: Priority = Priority.HIGH

    opportunity_type: ClassVar[OpportunityType] = OpportunityType.CONTENT_EXPANSION

    @classmethod
    def matches(cls, signal: PerformanceSignal, thresholds: OpportunityThresholds) -> bool:
        return (
            signal.position > thresholds.expansion_min_position
            and signal.impressions > thresholds.expansion_min_impressions
        )

    @classmethod
    def _from_matching_signal(cls, signal, thresholds):
        return cls(
            keyword=signal.keyword,
            current_position=signal.position,
            impressions=signal.impressions,
        )


# Rule evaluation order inside the classifier
OPPORTUNITY_RULES: tuple[type[Opportunity], ...] = (RankingBoost, CtrImprovement, ContentExpansion)


class EditOperation(Enum):
    """Closed set of structural edits the mutation engine can perform."""
    TITLE_SET = "title_set"
    META_SET = "meta_set"
    H1_SET = "h1_set"
    INSERT_BEFORE = "insert_before"
    INSERT_AFTER = "insert_after"
    APPEND = "append"

    @property
    def is_text_replacement(self) -> bool:
        """True for operations that replace text or attribute content."""
        return self in (EditOperation.TITLE_SET, EditOperation.META_SET, EditOperation.H1_SET)

    @property
    def is_insertion(self) -> bool:
        """True for operations that insert a markup fragment."""
        return not self.is_text_replacement

    @classmethod
    def parse(cls, value: Union[str, "EditOperation"]) -> "EditOperation":
        """Parse 'title_set', 'TitleSet' or 'title-set' into an operation."""
        if isinstance(value, cls):
            return value
        normalized = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", str(value).strip())
        normalized = normalized.replace("-", "_").lower()
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown edit operation: {value!r}") from None


@dataclass(frozen=True)
class EditDirective:
    """A single-operation instruction to change one part of one document."""
    target_document: str
    operation: EditOperation
    selector: str
    payload: str
    source_keyword: str
    reason: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "target_document": self.target_document,
            "operation": self.operation.value,
            "selector": self.selector,
            "payload": self.payload,
            "source_keyword": self.source_keyword,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EditDirective":
        """
        Build a directive from a dict (e.g. a JSON directives file).

        Raises:
            ValueError: If a required key is missing or the operation is unknown.
        """
        missing = [
            key for key in ("target_document", "operation", "selector", "payload")
            if key not in data
        ]
        if missing:
            raise ValueError(f"Directive is missing required keys: {', '.join(missing)}")
        return cls(
            target_document=str(data["target_document"]),
            operation=EditOperation.parse(data["operation"]),
            selector=str(data["selector"]),
            payload=str(data["payload"]),
            source_keyword=str(data.get("source_keyword", "")),
            reason=str(data.get("reason", "")),
        )


@dataclass(frozen=True)
class Applied:
    """Outcome of a directive that changed its document."""
    diff_summary: str


@dataclass(frozen=True)
class Rejected:
    """Outcome of a directive that was not applied."""
    reason: str


Outcome = Union[Applied, Rejected]


@dataclass(frozen=True)
class ApplicationResult:
    """Result of applying one directive."""
    directive: EditDirective
    outcome: Outcome

    @property
    def is_applied(self) -> bool:
        return isinstance(self.outcome, Applied)

    @property
    def description(self) -> str:
        """Diff summary for applied results, rejection reason otherwise."""
        if isinstance(self.outcome, Applied):
            return self.outcome.diff_summary
        return self.outcome.reason


@dataclass(frozen=True)
class BatchSummary:
    """Applied and error counts for one batch, with the itemized results."""
    applied: int
    errors: int
    results: tuple[ApplicationResult, ...] = ()

    @classmethod
    def from_results(cls, results: list[ApplicationResult]) -> "BatchSummary":
        applied = sum(1 for r in results if r.is_applied)
        return cls(applied=applied, errors=len(results) - applied, results=tuple(results))

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "errors": self.errors,
            "results": [
                {
                    "target": r.directive.target_document,
                    "operation": r.directive.operation.value,
                    "status": "applied" if r.is_applied else "rejected",
                    "detail": r.description,
                }
                for r in self.results
            ],
        }


@dataclass(frozen=True)
class Snapshot:
    """A retained full copy of the document tree."""
    snapshot_id: str
    path: Path
    created_at: datetime


@dataclass
class CompetitorContext:
    """Competitor SERP data the synthesizer feeds into prompts."""
    keyword: str
    titles: list[str] = field(default_factory=list)
    descriptions: list[str] = field(default_factory=list)
    content_topics: list[str] = field(default_factory=list)
    content_structure: list[str] = field(default_factory=list)

    @classmethod
    def empty(cls, keyword: str) -> "CompetitorContext":
        """Context used when no SERP data is available for a keyword."""
        return cls(keyword=keyword)

    @property
    def is_empty(self) -> bool:
        return not (self.titles or self.descriptions or self.content_topics or self.content_structure)


@dataclass(frozen=True)
class SitemapEntry:
    """One location in the sitemap."""
    location: str
    last_modified: date
    change_frequency: str
    priority: float
