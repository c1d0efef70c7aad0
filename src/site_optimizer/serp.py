"""
Competitor SERP context gathering.

SERP scraping itself is an external collaborator. This module drives it:
- Looks up at most ``limit`` keywords per cycle, in ranked order
- Pauses between calls to avoid provider throttling
- Isolates provider failures per keyword
- Reduces raw SERP snapshots to the CompetitorContext used in prompts
"""

import logging
import time
from collections import Counter
from typing import Any, Callable, Mapping, Optional, Protocol

from .errors import SerpProviderError
from .models import CompetitorContext, Opportunity

logger = logging.getLogger(__name__)


class SerpProvider(Protocol):
    """Returns a SERP snapshot for a keyword, or raises SerpProviderError."""

    def lookup(self, keyword: str) -> Mapping[str, Any]:
        ...


def _get(snapshot: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    """Read the first key present, accepting snake_case and camelCase names."""
    for name in names:
        if name in snapshot:
            return snapshot[name]
    return default


def common_title_words(titles: list[str], keyword: str, limit: int = 10) -> list[str]:
    """
    Most frequent words across competitor titles.

    Words of three characters or fewer and words that are part of the
    keyword are ignored.
    """
    keyword_lower = keyword.lower()
    counts = Counter(
        word
        for title in titles
        for word in title.lower().split()
        if len(word) > 3 and word not in keyword_lower
    )
    return [word for word, _ in counts.most_common(limit)]


def context_from_serp(keyword: str, snapshot: Mapping[str, Any]) -> CompetitorContext:
    """
    Reduce a SERP snapshot to a CompetitorContext.

    Args:
        keyword: The searched keyword.
        snapshot: Provider output with ``results`` (title, snippet),
            optionally ``people_also_ask`` and ``featured_snippet``.

    Returns:
        CompetitorContext with titles, descriptions, topics and title patterns.
    """
    results = _get(snapshot, "results", default=[]) or []
    titles = [str(r.get("title", "")).strip() for r in results if r.get("title")]
    descriptions = [str(r.get("snippet", "")).strip() for r in results if r.get("snippet")]

    topics = [str(q).strip() for q in _get(snapshot, "people_also_ask", "peopleAlsoAsk", default=[]) or [] if q]
    featured = _get(snapshot, "featured_snippet", "featuredSnippet")
    if featured:
        topics.append(str(featured).strip())

    return CompetitorContext(
        keyword=keyword,
        titles=titles,
        descriptions=descriptions,
        content_topics=topics,
        content_structure=common_title_words(titles, keyword),
    )


def _lookup(provider: SerpProvider, keyword: str) -> Mapping[str, Any]:
    try:
        return provider.lookup(keyword)
    except SerpProviderError:
        raise
    except Exception as e:
        raise SerpProviderError(f"{type(e).__name__}: {e}") from e


def gather_competitor_context(
    opportunities: list[Opportunity],
    provider: Optional[SerpProvider],
    limit: int = 5,
    delay_seconds: float = 3.0,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, CompetitorContext]:
    """
    Look up competitor context for the top opportunities.

    Args:
        opportunities: Ranked opportunities.
        provider: SERP provider, or None to skip lookups.
        limit: Maximum number of distinct keywords to look up.
        delay_seconds: Pause between consecutive lookups.
        sleep: Sleep function (injectable for tests).

    Returns:
        Mapping of keyword to context. Keywords whose lookup failed or was
        skipped are absent; the synthesizer falls back to an empty context.
    """
    contexts: dict[str, CompetitorContext] = {}
    if provider is None or limit <= 0:
        return contexts

    keywords: list[str] = []
    for opportunity in opportunities:
        if opportunity.keyword not in keywords:
            keywords.append(opportunity.keyword)
    keywords = keywords[:limit]

    for index, keyword in enumerate(keywords):
        if index > 0 and delay_seconds > 0:
            sleep(delay_seconds)

        logger.info(f"Analyzing SERP for: {keyword}")
        try:
            snapshot = _lookup(provider, keyword)
        except SerpProviderError as e:
            logger.warning(f"SERP lookup failed for '{keyword}': {e}")
            continue

        if not isinstance(snapshot, Mapping):
            logger.warning(f"SERP provider returned {type(snapshot).__name__} for '{keyword}', skipping")
            continue

        contexts[keyword] = context_from_serp(keyword, snapshot)

    return contexts
