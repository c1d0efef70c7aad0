"""
Optimization synthesis: opportunities to edit directives.

This module asks the text generation collaborator for replacement copy and
turns it into EditDirective objects:
- Builds prompts from the opportunity and competitor SERP context
- Cleans and validates generated text before a directive is accepted
- Isolates generation failures so one bad call never blocks the batch

Generated text is untrusted. Hard constraints (empty payload, markup in a text
field, malformed fragments) reject the directive here, before it can reach the
mutation engine. Length limits are advisory and only logged.
"""

import html
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from bs4 import BeautifulSoup
from bs4.element import Doctype

from .config import PayloadLimits
from .errors import DirectiveValidationError, ExternalCollaboratorError
from .llm_client import TextGenerator
from .models import (
    CompetitorContext,
    ContentExpansion,
    CtrImprovement,
    EditDirective,
    EditOperation,
    Opportunity,
    RankingBoost,
)
from .mutation import FRAGMENT_PARSER

logger = logging.getLogger(__name__)


TITLE_SELECTOR = "title"
META_DESCRIPTION_SELECTOR = 'meta[name="description"]'
H1_SELECTOR = "h1"

# Tags that mean the model returned a whole page instead of a fragment
DOCUMENT_LEVEL_TAGS = ["html", "head", "body"]

_CODE_FENCE_PATTERN = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```$", re.DOTALL)
_MARKUP_PATTERN = re.compile(r"</?[a-zA-Z][^>]*>")
_LABEL_PATTERN = re.compile(r"^(title|meta description|meta|h1|heading)\s*:\s*", re.IGNORECASE)


# =============================================================================
# PROMPTS
# =============================================================================

TITLE_PROMPT = """Analyze these competitor title tags for the keyword "{keyword}":
{competitor_titles}

Write an optimized title tag that:
1. Includes the exact keyword "{keyword}"
2. Is more compelling than the competitors
3. Stays under {max_length} characters
4. Includes a conversion element (a number or a clear benefit)

Return only the title tag text."""

META_DESCRIPTION_PROMPT = """Analyze these competitor meta descriptions for the keyword "{keyword}":
{competitor_descriptions}
{ctr_context}
Write an optimized meta description that:
1. Includes the keyword "{keyword}" and natural variants
2. Has a clear call-to-action
3. Is between {min_length} and {max_length} characters
4. Is more convincing than the competitors and names a specific benefit

Return only the meta description text."""

H1_PROMPT = """Write an optimized H1 heading for the keyword "{keyword}" that:
1. Includes the keyword naturally
2. Is engaging and persuasive
3. Communicates a unique value
4. Is at most {max_length} characters

Return only the H1 text."""

RELATED_CONTENT_PROMPT = """Based on what competitors cover for "{keyword}":
{content_topics}

Write one content block (200-300 words) that:
1. Includes the main keyword and related variants
2. Covers aspects the competitors do not
3. Gives users unique value with a natural call-to-action

Return only an HTML fragment (for example <section> with <h2> and <p> elements).
Do not include <html>, <head> or <body>."""

CTR_VARIATIONS_PROMPT = """The keyword "{keyword}" ranks at position {position} with a CTR of {ctr}%.

Write more compelling title and meta description variants to raise the CTR:
1. Title with numbers or statistics
2. Title with urgency
3. Title with a clear benefit
4. Meta description with a strong call-to-action
5. Meta description with social proof

Titles must stay under {title_max} characters. Meta descriptions must be
{meta_min}-{meta_max} characters.

Response format:
TITLE_1: [title]
TITLE_2: [title]
TITLE_3: [title]
META_1: [meta description]
META_2: [meta description]"""

EXPANSION_PROMPT = """The keyword "{keyword}" gets {impressions} monthly impressions but ranks at position {position}.

Competitor titles for this keyword commonly use these words:
{content_structure}

Write a complete section (400-600 words) that includes:
1. An <h2> with the keyword
2. Paragraphs on related subtopics
3. A list of benefits or features
4. A few relevant FAQs
5. A call-to-action

Return only semantic HTML for the section. Do not include <html>, <head> or <body>."""


# =============================================================================
# CLEANING AND VALIDATION
# =============================================================================

def _strip_code_fence(text: str) -> str:
    match = _CODE_FENCE_PATTERN.match(text.strip())
    return match.group(1).strip() if match else text.strip()


def clean_generated_text(text: str) -> str:
    """
    Normalize generated single-line copy (title, meta description, h1).

    Strips code fences, a leading "Title:"-style label, wrapping quotes and
    collapses whitespace.
    """
    cleaned = _strip_code_fence(text or "")
    cleaned = _LABEL_PATTERN.sub("", cleaned)
    cleaned = " ".join(cleaned.split())
    if len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in "\"'“”":
        cleaned = cleaned[1:-1].strip()
    elif len(cleaned) >= 2 and cleaned[0] == "“" and cleaned[-1] == "”":
        cleaned = cleaned[1:-1].strip()
    return cleaned


def clean_generated_fragment(text: str) -> str:
    """
    Normalize a generated HTML fragment.

    Strips code fences. Plain text without any markup is wrapped into
    escaped <p> elements, one per blank-line separated paragraph.
    """
    cleaned = _strip_code_fence(text or "")
    if cleaned and not _MARKUP_PATTERN.search(cleaned):
        paragraphs = [p.strip() for p in re.split(r"\n\s*\n", cleaned) if p.strip()]
        cleaned = "\n".join(f"<p>{html.escape(' '.join(p.split()))}</p>" for p in paragraphs)
    return cleaned


def check_fragment_markup(fragment: str) -> None:
    """
    Check that a fragment parses to insertable elements.

    The fragment is parsed the way the mutation engine parses it, so optional
    end tags (``<li>``, ``<p>``) are fine. A doctype, document-level elements or
    markup that yields no element at all is rejected.

    Raises:
        DirectiveValidationError: If the fragment is malformed.
    """
    soup = BeautifulSoup(fragment, FRAGMENT_PARSER)

    if any(isinstance(node, Doctype) for node in soup.contents):
        raise DirectiveValidationError("Fragment contains document-level markup (doctype)")

    document_tag = soup.find(DOCUMENT_LEVEL_TAGS)
    if document_tag is not None:
        raise DirectiveValidationError(
            f"Fragment contains document-level markup (<{document_tag.name}>)"
        )

    if soup.find() is None:
        raise DirectiveValidationError("Fragment contains no elements")



def validate_payload(
    operation: EditOperation,
    payload: str,
    limits: Optional[PayloadLimits] = None,
) -> list[str]:
    """
    Validate a cleaned payload for an operation.

    Args:
        operation: The edit operation the payload is for.
        payload: Cleaned payload.
        limits: Advisory length limits.

    Returns:
        Advisory warnings (length limits). Empty when everything fits.

    Raises:
        DirectiveValidationError: If a hard constraint is violated.
    """
    limits = limits or PayloadLimits()

    if not payload or not payload.strip():
        raise DirectiveValidationError(f"Empty payload for {operation.value}")

    if operation.is_insertion:
        check_fragment_markup(payload)
        return []

    if _MARKUP_PATTERN.search(payload):
        raise DirectiveValidationError(f"Markup is not allowed in {operation.value} payload")

    warnings = []
    length = len(payload)
    if operation == EditOperation.TITLE_SET and length > limits.title_max:
        warnings.append(f"Title is {length} characters (limit {limits.title_max})")
    elif operation == EditOperation.META_SET and not (
        limits.meta_description_min <= length <= limits.meta_description_max
    ):
        warnings.append(
            f"Meta description is {length} characters "
            f"(expected {limits.meta_description_min}-{limits.meta_description_max})"
        )
    elif operation == EditOperation.H1_SET and length > limits.h1_max:
        warnings.append(f"H1 is {length} characters (limit {limits.h1_max})")
    return warnings


def parse_variations(content: str) -> dict[str, list[str]]:
    """Parse TITLE_n: / META_n: lines from a CTR variations response."""
    titles: list[str] = []
    metas: list[str] = []
    for line in content.splitlines():
        line = line.strip()
        if ":" not in line:
            continue
        label, _, value = line.partition(":")
        label = label.strip().upper()
        if label.startswith("TITLE_"):
            titles.append(value.strip())
        elif label.startswith("META_"):
            metas.append(value.strip())
    return {"titles": titles, "metas": metas}


# =============================================================================
# SYNTHESIZER
# =============================================================================

@dataclass(frozen=True)
class SkippedSynthesis:
    """An opportunity (or one of its fields) that produced no directive."""
    keyword: str
    opportunity_type: str
    reason: str


@dataclass
class SynthesisReport:
    """Directives produced for a batch and the syntheses that were skipped."""
    directives: list[EditDirective] = field(default_factory=list)
    skipped: list[SkippedSynthesis] = field(default_factory=list)


class OptimizationSynthesizer:
    """
    Turns ranked opportunities into edit directives.

    Default mapping (``synthesize``):
    - RankingBoost -> title_set on <title>
    - CtrImprovement -> meta_set on the meta description
    - ContentExpansion -> insert_before the expansion anchor

    ``synthesize_all`` produces the full plan per opportunity type.
    """

    def __init__(
        self,
        generator: TextGenerator,
        limits: Optional[PayloadLimits] = None,
        target_document: str = "index.html",
        related_content_anchor: str = ".services",
        expansion_anchor: str = ".cta-section",
        request_delay_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the synthesizer.

        Args:
            generator: Text generation collaborator.
            limits: Advisory payload limits.
            target_document: Document the directives edit.
            related_content_anchor: Selector related content is inserted after.
            expansion_anchor: Selector expansion sections are inserted before.
            request_delay_seconds: Pause between generation calls.
            sleep: Sleep function (injectable for tests).
        """
        self.generator = generator
        self.limits = limits or PayloadLimits()
        self.target_document = target_document
        self.related_content_anchor = related_content_anchor
        self.expansion_anchor = expansion_anchor
        self.request_delay_seconds = request_delay_seconds
        self._sleep = sleep
        self._calls = 0

    # -- public API ---------------------------------------------------------

    def synthesize(
        self,
        opportunity: Opportunity,
        context: Optional[CompetitorContext] = None,
    ) -> Optional[EditDirective]:
        """
        Produce the primary directive for an opportunity.

        Returns:
            The directive, or None if generation failed or the generated
            payload was rejected. Failures are logged, never raised.
        """
        context = context or CompetitorContext.empty(opportunity.keyword)
        directive, error = self._attempt(self._primary_builder(opportunity), opportunity, context)
        if error:
            logger.warning(f"Skipped optimization for '{opportunity.keyword}': {error}")
        return directive

    def synthesize_all(
        self,
        opportunity: Opportunity,
        context: Optional[CompetitorContext] = None,
    ) -> list[EditDirective]:
        """Produce every directive for an opportunity, dropping failed fields."""
        directives, _ = self._synthesize_plan(opportunity, context)
        return directives

    def synthesize_batch(
        self,
        opportunities: list[Opportunity],
        contexts: Optional[dict[str, CompetitorContext]] = None,
        full_plan: bool = True,
    ) -> SynthesisReport:
        """
        Synthesize directives for ranked opportunities, in order.

        Args:
            opportunities: Ranked opportunities.
            contexts: Competitor context per keyword.
            full_plan: Use the full per-type plan instead of one directive
                per opportunity.

        Returns:
            SynthesisReport with directives in ranked order and skipped items.
        """
        contexts = contexts or {}
        report = SynthesisReport()

        for opportunity in opportunities:
            context = contexts.get(opportunity.keyword)
            if full_plan:
                directives, errors = self._synthesize_plan(opportunity, context)
            else:
                directive, error = self._attempt(
                    self._primary_builder(opportunity),
                    opportunity,
                    context or CompetitorContext.empty(opportunity.keyword),
                )
                directives = [directive] if directive else []
                errors = [error] if error else []

            report.directives.extend(directives)
            for error in errors:
                logger.warning(f"Skipped optimization for '{opportunity.keyword}': {error}")
                report.skipped.append(SkippedSynthesis(
                    keyword=opportunity.keyword,
                    opportunity_type=opportunity.opportunity_type.value,
                    reason=error,
                ))

        logger.info(
            f"Generated {len(report.directives)} directives, skipped {len(report.skipped)}"
        )
        return report

    # -- plans --------------------------------------------------------------

    def _primary_builder(self, opportunity: Opportunity):
        if isinstance(opportunity, RankingBoost):
            return self._title_directive
        if isinstance(opportunity, CtrImprovement):
            return self._meta_directive
        if isinstance(opportunity, ContentExpansion):
            return self._expansion_directive
        raise TypeError(f"Unsupported opportunity type: {type(opportunity).__name__}")

    def _synthesize_plan(
        self,
        opportunity: Opportunity,
        context: Optional[CompetitorContext],
    ) -> tuple[list[EditDirective], list[str]]:
        context = context or CompetitorContext.empty(opportunity.keyword)

        if isinstance(opportunity, RankingBoost):
            builders = [
                self._title_directive,
                self._meta_directive,
                self._h1_directive,
                self._related_content_directive,
            ]
        elif isinstance(opportunity, CtrImprovement):
            return self._ctr_variation_directives(opportunity)
        elif isinstance(opportunity, ContentExpansion):
            builders = [self._expansion_directive]
        else:
            raise TypeError(f"Unsupported opportunity type: {type(opportunity).__name__}")

        directives: list[EditDirective] = []
        errors: list[str] = []
        for build in builders:
            directive, error = self._attempt(build, opportunity, context)
            if directive:
                directives.append(directive)
            if error:
                errors.append(error)
        return directives, errors

    def _attempt(self, build, opportunity, context) -> tuple[Optional[EditDirective], Optional[str]]:
        try:
            return build(opportunity, context), None
        except ExternalCollaboratorError as e:
            return None, f"generation failed: {e}"
        except DirectiveValidationError as e:
            return None, f"rejected payload: {e}"

    # -- generation ---------------------------------------------------------

    def _generate(self, prompt: str, max_tokens: int) -> str:
        if self._calls and self.request_delay_seconds > 0:
            self._sleep(self.request_delay_seconds)
        self._calls += 1
        try:
            return self.generator.generate(prompt, max_tokens=max_tokens)
        except ExternalCollaboratorError:
            raise
        except Exception as e:
            raise ExternalCollaboratorError(f"{type(e).__name__}: {e}") from e

    def _directive(
        self,
        opportunity: Opportunity,
        operation: EditOperation,
        selector: str,
        raw_payload: str,
        reason: str,
    ) -> EditDirective:
        if operation.is_insertion:
            payload = clean_generated_fragment(raw_payload)
        else:
            payload = clean_generated_text(raw_payload)

        for warning in validate_payload(operation, payload, self.limits):
            logger.warning(f"{opportunity.keyword}: {warning}")

        return EditDirective(
            target_document=self.target_document,
            operation=operation,
            selector=selector,
            payload=payload,
            source_keyword=opportunity.keyword,
            reason=reason,
        )

    def _title_directive(self, opportunity, context) -> EditDirective:
        prompt = TITLE_PROMPT.format(
            keyword=opportunity.keyword,
            competitor_titles=json.dumps(context.titles, indent=2, ensure_ascii=False),
            max_length=self.limits.title_max,
        )
        return self._directive(
            opportunity,
            EditOperation.TITLE_SET,
            TITLE_SELECTOR,
            self._generate(prompt, max_tokens=100),
            "Title optimization to improve ranking",
        )

    def _meta_directive(self, opportunity, context) -> EditDirective:
        ctr_context = ""
        if isinstance(opportunity, CtrImprovement):
            ctr_context = (
                f"\nThe page ranks at position {opportunity.current_position} with a CTR of "
                f"{opportunity.current_ctr}%; the goal is a CTR of {opportunity.target_ctr}%.\n"
            )
        prompt = META_DESCRIPTION_PROMPT.format(
            keyword=opportunity.keyword,
            competitor_descriptions=json.dumps(context.descriptions, indent=2, ensure_ascii=False),
            ctr_context=ctr_context,
            min_length=self.limits.meta_description_min,
            max_length=self.limits.meta_description_max,
        )
        return self._directive(
            opportunity,
            EditOperation.META_SET,
            META_DESCRIPTION_SELECTOR,
            self._generate(prompt, max_tokens=150),
            "Meta description optimization to improve CTR",
        )

    def _h1_directive(self, opportunity, context) -> EditDirective:
        prompt = H1_PROMPT.format(keyword=opportunity.keyword, max_length=self.limits.h1_max)
        return self._directive(
            opportunity,
            EditOperation.H1_SET,
            H1_SELECTOR,
            self._generate(prompt, max_tokens=80),
            "H1 optimization to improve keyword relevance",
        )

    def _related_content_directive(self, opportunity, context) -> EditDirective:
        prompt = RELATED_CONTENT_PROMPT.format(
            keyword=opportunity.keyword,
            content_topics=json.dumps(context.content_topics, indent=2, ensure_ascii=False),
        )
        return self._directive(
            opportunity,
            EditOperation.INSERT_AFTER,
            self.related_content_anchor,
            self._generate(prompt, max_tokens=400),
            "Related content to increase topical relevance",
        )

    def _expansion_directive(self, opportunity, context) -> EditDirective:
        prompt = EXPANSION_PROMPT.format(
            keyword=opportunity.keyword,
            impressions=getattr(opportunity, "impressions", 0),
            position=opportunity.current_position,
            content_structure=json.dumps(context.content_structure, indent=2, ensure_ascii=False),
        )
        return self._directive(
            opportunity,
            EditOperation.INSERT_BEFORE,
            self.expansion_anchor,
            self._generate(prompt, max_tokens=800),
            "Content expansion for a high-volume keyword",
        )

    def _ctr_variation_directives(
        self,
        opportunity: CtrImprovement,
    ) -> tuple[list[EditDirective], list[str]]:
        prompt = CTR_VARIATIONS_PROMPT.format(
            keyword=opportunity.keyword,
            position=opportunity.current_position,
            ctr=opportunity.current_ctr,
            title_max=self.limits.title_max,
            meta_min=self.limits.meta_description_min,
            meta_max=self.limits.meta_description_max,
        )
        try:
            variations = parse_variations(self._generate(prompt, max_tokens=500))
        except ExternalCollaboratorError as e:
            return [], [f"generation failed: {e}"]

        directives: list[EditDirective] = []
        errors: list[str] = []
        for key, operation, selector, reason in (
            ("titles", EditOperation.TITLE_SET, TITLE_SELECTOR, "Title variant to improve CTR"),
            ("metas", EditOperation.META_SET, META_DESCRIPTION_SELECTOR, "Meta description variant to improve CTR"),
        ):
            directive = None
            last_error = f"no {key[:-1]} variant in response"
            # First variant that passes the hard constraints wins
            for candidate in variations[key]:
                try:
                    directive = self._directive(opportunity, operation, selector, candidate, reason)
                    break
                except DirectiveValidationError as e:
                    last_error = f"rejected payload: {e}"
            if directive:
                directives.append(directive)
            else:
                errors.append(last_error)
        return directives, errors
