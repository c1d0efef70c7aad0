"""Tests for opportunity classification and ranking."""

import itertools

import pytest

from site_optimizer.config import OpportunityThresholds
from site_optimizer.errors import OpportunityInvariantError, SignalValidationError
from site_optimizer.models import (
    ContentExpansion,
    CtrImprovement,
    OpportunityType,
    PerformanceSignal,
    Priority,
    RankingBoost,
)
from site_optimizer.opportunities import (
    OpportunityClassifier,
    classify,
    find_quick_wins,
    rank,
    summarize_opportunities,
)


def _signal(position, impressions=0, ctr=0.0, clicks=0, keyword="kw"):
    return PerformanceSignal(
        keyword=keyword, position=position, impressions=impressions, clicks=clicks, ctr=ctr
    )


class TestClassify:
    """Tests for the opportunity classifier."""

    def test_ranking_boost_scenario(self):
        """Test a keyword on page two with impressions becomes a ranking boost."""
        opportunities = classify({"x": {"position": 12, "impressions": 150, "clicks": 6, "ctr": 4}})

        assert len(opportunities) == 1
        opportunity = opportunities[0]
        assert isinstance(opportunity, RankingBoost)
        assert opportunity.current_position == 12
        assert opportunity.target_position == 5
        assert opportunity.priority == Priority.HIGH

    def test_ctr_improvement(self):
        """Test a first-page keyword with low CTR becomes a CTR improvement."""
        opportunities = classify({"x": {"position": 4, "impressions": 900, "clicks": 18, "ctr": 2}})

        assert len(opportunities) == 1
        assert isinstance(opportunities[0], CtrImprovement)
        assert opportunities[0].current_ctr == 2
        assert opportunities[0].target_ctr == 5
        assert opportunities[0].priority == Priority.MEDIUM

    def test_content_expansion(self):
        """Test a deep-ranking, high-volume keyword becomes a content expansion."""
        opportunities = classify({"x": {"position": 27, "impressions": 800, "clicks": 2, "ctr": 0.25}})

        assert len(opportunities) == 1
        assert isinstance(opportunities[0], ContentExpansion)
        assert opportunities[0].impressions == 800
        assert opportunities[0].priority == Priority.HIGH

    def test_no_opportunity(self):
        """Test signals matching no rule produce nothing."""
        opportunities = classify({
            "low volume": {"position": 12, "impressions": 40, "clicks": 0, "ctr": 0},
            "healthy": {"position": 2, "impressions": 1000, "clicks": 300, "ctr": 30},
            "deep but rare": {"position": 45, "impressions": 100, "clicks": 0, "ctr": 0},
        })

        assert opportunities == []

    def test_position_boundaries(self):
        """Test boundary positions fall into exactly one rule."""
        at_ten = classify({"x": {"position": 10, "impressions": 500, "clicks": 1, "ctr": 2.9}})
        assert [type(o) for o in at_ten] == [CtrImprovement]

        at_twenty = classify({"x": {"position": 20, "impressions": 600, "clicks": 1, "ctr": 0.1}})
        assert [type(o) for o in at_twenty] == [RankingBoost]

        past_twenty = classify({"x": {"position": 20.5, "impressions": 600, "clicks": 1, "ctr": 0.1}})
        assert [type(o) for o in past_twenty] == [ContentExpansion]

    def test_thresholds_are_strict(self):
        """Test impressions and CTR thresholds are strict inequalities."""
        assert classify({"x": {"position": 12, "impressions": 100, "clicks": 1, "ctr": 1}}) == []
        assert classify({"x": {"position": 5, "impressions": 100, "clicks": 3, "ctr": 3}}) == []
        assert classify({"x": {"position": 30, "impressions": 500, "clicks": 1, "ctr": 0.2}}) == []

    def test_predicates_are_mutually_exclusive(self):
        """Test no signal ever yields more than one opportunity."""
        positions = [1, 5, 9.9, 10, 10.1, 15, 19.9, 20, 20.1, 50]
        impressions = [0, 100, 101, 500, 501, 10_000]
        ctrs = [0, 1.5, 2.99, 3, 50]

        for position, impr, ctr in itertools.product(positions, impressions, ctrs):
            signal = _signal(position, impressions=impr, ctr=ctr)
            result = classify({"kw": signal})
            assert len(result) <= 1, (position, impr, ctr)

    def test_preserves_input_order(self, sample_signals):
        """Test output follows the input mapping order."""
        opportunities = classify(sample_signals)

        assert [o.keyword for o in opportunities] == [
            "emergency plumber",
            "drain cleaning",
            "water heater repair",
        ]

    def test_coerces_formatted_ctr(self):
        """Test ctr strings such as '2.80' are accepted."""
        opportunities = classify({"x": {"position": 3, "impressions": 10, "clicks": 0, "ctr": "2.80"}})

        assert opportunities[0].current_ctr == pytest.approx(2.8)

    def test_invalid_signal_raises(self):
        """Test out-of-range metrics raise a validation error."""
        with pytest.raises(SignalValidationError):
            classify({"x": {"position": 0, "impressions": 10, "clicks": 0, "ctr": 1}})

    def test_custom_thresholds(self):
        """Test classifier honors custom thresholds."""
        thresholds = OpportunityThresholds(ranking_boost_min_impressions=10)
        classifier = OpportunityClassifier(thresholds)

        opportunities = classifier.classify({"x": _signal(12, impressions=20, ctr=5)})

        assert isinstance(opportunities[0], RankingBoost)


class TestOpportunityInvariants:
    """Tests for opportunity construction invariants."""

    def test_from_signal_requires_matching_predicate(self):
        """Test an opportunity cannot be built from a non-matching signal."""
        with pytest.raises(OpportunityInvariantError):
            RankingBoost.from_signal(_signal(3, impressions=500, ctr=1))

    def test_from_signal_builds_variant(self):
        """Test from_signal fills fields from the signal and thresholds."""
        opportunity = CtrImprovement.from_signal(_signal(6, impressions=50, ctr=1.2, keyword="tap"))

        assert opportunity.keyword == "tap"
        assert opportunity.current_position == 6
        assert opportunity.opportunity_type == OpportunityType.CTR_IMPROVEMENT

    def test_opportunities_are_immutable(self):
        """Test opportunities cannot be modified."""
        opportunity = classify({"x": {"position": 12, "impressions": 150, "clicks": 6, "ctr": 4}})[0]

        with pytest.raises(AttributeError):
            opportunity.current_position = 1

    def test_overlapping_thresholds_rejected(self):
        """Test thresholds with overlapping position ranges are refused."""
        with pytest.raises(ValueError, match="overlaps"):
            OpportunityThresholds(ctr_max_position=12)

        with pytest.raises(ValueError, match="overlaps"):
            OpportunityThresholds(ranking_boost_max_position=25)

    def test_to_dict(self):
        """Test serialization includes the type and priority value."""
        opportunity = classify({"x": {"position": 12, "impressions": 150, "clicks": 6, "ctr": 4}})[0]

        data = opportunity.to_dict()

        assert data["type"] == "ranking_boost"
        assert data["priority"] == "high"
        assert data["keyword"] == "x"


class TestRank:
    """Tests for the opportunity ranker."""

    def test_high_priority_first(self):
        """Test the high-priority opportunity is ranked first regardless of input order."""
        high = RankingBoost(keyword="high", current_position=12, impressions=200)
        low = RankingBoost(keyword="low", current_position=14, impressions=200, priority=Priority.LOW)

        assert rank([low, high])[0] is high
        assert rank([high, low])[0] is high

    def test_stable_for_equal_priority(self):
        """Test equal-priority opportunities keep their input order."""
        a = RankingBoost(keyword="a", current_position=12, impressions=200)
        b = CtrImprovement(keyword="b", current_position=4, current_ctr=1)
        c = ContentExpansion(keyword="c", current_position=30, impressions=900)
        d = CtrImprovement(keyword="d", current_position=2, current_ctr=2)
        e = RankingBoost(keyword="e", current_position=18, impressions=300)

        ranked = rank([a, b, c, d, e])

        assert [o.keyword for o in ranked] == ["a", "c", "e", "b", "d"]

    def test_rank_is_pure(self):
        """Test rank returns a new list and leaves the input untouched."""
        items = [
            CtrImprovement(keyword="b", current_position=4, current_ctr=1),
            RankingBoost(keyword="a", current_position=12, impressions=200),
        ]
        original = list(items)

        rank(items)

        assert items == original

    def test_empty(self):
        assert rank([]) == []


class TestQuickWins:
    """Tests for quick win detection."""

    def test_meta_optimization(self):
        """Test first-page low-CTR keywords are flagged as meta quick wins."""
        wins = find_quick_wins({"x": {"position": 5, "impressions": 10, "clicks": 0, "ctr": 1}})

        assert len(wins) == 1
        assert wins[0].kind == "meta_optimization"
        assert wins[0].priority == Priority.HIGH
        assert wins[0].effort == "low"

    def test_content_boost(self):
        """Test near-first-page keywords with impressions get a content boost."""
        wins = find_quick_wins({"x": {"position": 13, "impressions": 150, "clicks": 3, "ctr": 2}})

        assert [w.kind for w in wins] == ["content_boost"]
        assert wins[0].priority == Priority.MEDIUM

    def test_no_quick_win_past_position_fifteen(self):
        assert find_quick_wins({"x": {"position": 16, "impressions": 150, "clicks": 3, "ctr": 2}}) == []


class TestSummarize:
    """Tests for opportunity summaries."""

    def test_counts(self, sample_signals):
        """Test counts per type and priority."""
        summary = summarize_opportunities(classify(sample_signals))

        assert summary["total"] == 3
        assert summary["by_type"] == {
            "ranking_boost": 1,
            "ctr_improvement": 1,
            "content_expansion": 1,
        }
        assert summary["by_priority"] == {"high": 2, "medium": 1, "low": 0}
        assert summary["keywords"] == ["drain cleaning", "emergency plumber", "water heater repair"]
