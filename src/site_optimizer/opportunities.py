"""
Opportunity classification and ranking.

This module turns performance signals into typed opportunities:
- Evaluates the ranking boost, CTR improvement and content expansion rules
  independently for every keyword
- Ranks opportunities by priority with a stable sort
- Flags quick wins and summarizes opportunity counts for reports
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from .config import OpportunityThresholds
from .errors import OpportunityInvariantError
from .models import (
    OPPORTUNITY_RULES,
    Opportunity,
    PerformanceSignal,
    Priority,
)
from .signals import parse_signal

logger = logging.getLogger(__name__)


SignalInput = Mapping[str, Union[PerformanceSignal, Mapping[str, Any]]]


class OpportunityClassifier:
    """
    Classifies performance signals into opportunities.

    Every rule is evaluated on its own, so a keyword may yield zero, one or
    several opportunities. The position ranges of the rules are disjoint
    (checked by OpportunityThresholds), and ``classify`` re-checks that at most
    one rule fired per keyword.
    """

    def __init__(self, thresholds: Optional[OpportunityThresholds] = None):
        """
        Initialize the classifier.

        Args:
            thresholds: Rule thresholds. Defaults to OpportunityThresholds().
        """
        self.thresholds = thresholds or OpportunityThresholds()

    def classify(self, signals: SignalInput) -> list[Opportunity]:
        """
        Classify signals into opportunities.

        Args:
            signals: Mapping of keyword to PerformanceSignal or raw metrics.

        Returns:
            Opportunities in the iteration order of ``signals``.

        Raises:
            SignalValidationError: If raw metrics are invalid.
            OpportunityInvariantError: If more than one rule matched a keyword.
        """
        opportunities: list[Opportunity] = []

        for keyword, raw in signals.items():
            signal = parse_signal(keyword, raw)
            matched = [
                rule.from_signal(signal, self.thresholds)
                for rule in OPPORTUNITY_RULES
                if rule.matches(signal, self.thresholds)
            ]
            if len(matched) > 1:
                kinds = ", ".join(o.opportunity_type.value for o in matched)
                raise OpportunityInvariantError(
                    f"Keyword '{keyword}' matched overlapping rules: {kinds}"
                )
            opportunities.extend(matched)

        logger.info(f"Classified {len(signals)} keywords into {len(opportunities)} opportunities")
        return opportunities


def classify(
    signals: SignalInput,
    thresholds: Optional[OpportunityThresholds] = None,
) -> list[Opportunity]:
    """
    Convenience function to classify signals.

    Args:
        signals: Mapping of keyword to PerformanceSignal or raw metrics.
        thresholds: Optional rule thresholds.

    Returns:
        Opportunities in input order.
    """
    return OpportunityClassifier(thresholds).classify(signals)


def rank(opportunities: list[Opportunity]) -> list[Opportunity]:
    """
    Order opportunities by priority weight, highest first.

    The sort is stable: opportunities with equal priority keep their input order.
    """
    return sorted(opportunities, key=lambda o: -o.priority.weight)


@dataclass(frozen=True)
class QuickWin:
    """A cheap optimization for a keyword."""
    keyword: str
    kind: str  # "meta_optimization" or "content_boost"
    current_position: float
    priority: Priority
    effort: str


def find_quick_wins(
    signals: SignalInput,
    thresholds: Optional[OpportunityThresholds] = None,
) -> list[QuickWin]:
    """
    Find quick wins among signals.

    A first-page keyword with low CTR only needs a meta rewrite; a keyword
    just past the first page with real impressions needs a small content boost.
    """
    thresholds = thresholds or OpportunityThresholds()
    wins: list[QuickWin] = []

    for keyword, raw in signals.items():
        signal = parse_signal(keyword, raw)

        if signal.position <= thresholds.ctr_max_position and signal.ctr < thresholds.ctr_max_rate:
            wins.append(QuickWin(
                keyword=keyword,
                kind="meta_optimization",
                current_position=signal.position,
                priority=Priority.HIGH,
                effort="low",
            ))

        if (
            thresholds.ranking_boost_min_position < signal.position <= thresholds.quick_win_max_position
            and signal.impressions > thresholds.ranking_boost_min_impressions
        ):
            wins.append(QuickWin(
                keyword=keyword,
                kind="content_boost",
                current_position=signal.position,
                priority=Priority.MEDIUM,
                effort="medium",
            ))

    return wins


def summarize_opportunities(opportunities: list[Opportunity]) -> dict[str, Any]:
    """Count opportunities per type and per priority."""
    by_type = Counter(o.opportunity_type.value for o in opportunities)
    by_priority = Counter(o.priority.value for o in opportunities)
    return {
        "total": len(opportunities),
        "by_type": dict(by_type),
        "by_priority": {p.value: by_priority.get(p.value, 0) for p in Priority},
        "keywords": sorted({o.keyword for o in opportunities}),
    }
