"""
Mutation engine: applies edit directives to the document tree.

Each directive is handled on its own: resolve the document, parse it, locate
the selector, apply exactly one change, serialize and write the whole document
back. The parsed tree belongs to one directive and is dropped before the next
one starts, so later directives observe the written effects of earlier ones.

Failures are isolated per directive and recorded as ``Rejected`` results.
The batch is best effort, not transactional.
"""

import logging
from difflib import SequenceMatcher
from typing import TYPE_CHECKING, Callable, Optional

from bs4 import BeautifulSoup, ParserRejectedMarkup
from bs4.element import Tag
from soupsieve import SelectorSyntaxError

from .document_tree import DocumentTree
from .errors import DocumentNotFoundError, SelectorNotFoundError, SiteOptimizerError
from .models import (
    Applied,
    ApplicationResult,
    BatchSummary,
    EditDirective,
    EditOperation,
    Rejected,
)

if TYPE_CHECKING:
    from .sitemap import SitemapRegenerator

logger = logging.getLogger(__name__)


# Fragments are parsed without a document wrapper (no <html>/<body> added)
FRAGMENT_PARSER = "html.parser"


def _shorten(text: str, limit: int = 60) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


def count_word_changes(before: str, after: str) -> int:
    """Number of words inserted, deleted or replaced between two texts."""
    before_words = before.split()
    after_words = after.split()
    matcher = SequenceMatcher(None, before_words, after_words, autojunk=False)
    changed = 0
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag != "equal":
            changed += max(i2 - i1, j2 - j1)
    return changed


def _fragment_nodes(payload: str) -> list:
    fragment = BeautifulSoup(payload, FRAGMENT_PARSER)
    return [node.extract() for node in list(fragment.contents)]


# =============================================================================
# OPERATION HANDLERS
# =============================================================================
# Each handler performs the change on the matched nodes and returns a
# (before, after) pair of text used for the diff summary.

def _set_title(matches: list[Tag], payload: str) -> tuple[str, str]:
    before = matches[0].get_text()
    for node in matches:
        node.string = payload
    return before, payload


def _set_meta(matches: list[Tag], payload: str) -> tuple[str, str]:
    before = matches[0].get("content", "")
    for node in matches:
        node["content"] = payload
    return before, payload


def _set_h1(matches: list[Tag], payload: str) -> tuple[str, str]:
    node = matches[0]
    before = node.get_text()
    node.string = payload
    return before, payload


def _insert_before(matches: list[Tag], payload: str) -> tuple[str, str]:
    anchor = matches[0]
    nodes = _fragment_nodes(payload)
    for node in nodes:
        anchor.insert_before(node)
    return "", " ".join(n.get_text(" ") for n in nodes)


def _insert_after(matches: list[Tag], payload: str) -> tuple[str, str]:
    anchor = matches[0]
    nodes = _fragment_nodes(payload)
    # insert_after places each node directly after the anchor
    for node in reversed(nodes):
        anchor.insert_after(node)
    return "", " ".join(n.get_text(" ") for n in nodes)


def _append(matches: list[Tag], payload: str) -> tuple[str, str]:
    anchor = matches[0]
    nodes = _fragment_nodes(payload)
    for node in nodes:
        anchor.append(node)
    return "", " ".join(n.get_text(" ") for n in nodes)


OPERATION_HANDLERS: dict[EditOperation, Callable[[list[Tag], str], tuple[str, str]]] = {
    EditOperation.TITLE_SET: _set_title,
    EditOperation.META_SET: _set_meta,
    EditOperation.H1_SET: _set_h1,
    EditOperation.INSERT_BEFORE: _insert_before,
    EditOperation.INSERT_AFTER: _insert_after,
    EditOperation.APPEND: _append,
}

_missing_handlers = set(EditOperation) - set(OPERATION_HANDLERS)
if _missing_handlers:
    raise RuntimeError(
        f"No mutation handler for: {', '.join(sorted(op.value for op in _missing_handlers))}"
    )


def describe_change(directive: EditDirective, before: str, after: str) -> str:
    """Human-readable before/after description of one applied directive."""
    words = count_word_changes(before, after)
    op = directive.operation
    if op.is_text_replacement:
        return (
            f"{op.value} {directive.selector}: '{_shorten(before)}' -> "
            f"'{_shorten(after)}' ({words} words changed)"
        )
    return f"{op.value} {directive.selector}: +{words} words ('{_shorten(after)}')"


class MutationEngine:
    """
    Applies edit directives to a document tree.

    Caller obligation: take a snapshot of the tree with the backup subsystem
    before calling ``apply``. The engine does not check for one.
    """

    def __init__(
        self,
        tree: DocumentTree,
        sitemap: Optional["SitemapRegenerator"] = None,
        parser: str = "lxml",
    ):
        """
        Initialize the engine.

        Args:
            tree: Document tree the directives target.
            sitemap: Optional regenerator run once after a batch that applied
                at least one directive.
            parser: BeautifulSoup parser for full documents.
        """
        self.tree = tree
        self.sitemap = sitemap
        self.parser = parser

    def apply(self, directives: list[EditDirective]) -> list[ApplicationResult]:
        """
        Apply directives strictly in input order.

        Returns:
            One ApplicationResult per directive, in input order.
        """
        results = []
        for directive in directives:
            result = self.apply_one(directive)
            if result.is_applied:
                logger.info(f"Applied {directive.operation.value} to {directive.target_document}")
            else:
                logger.warning(
                    f"Rejected {directive.operation.value} on {directive.target_document}: "
                    f"{result.description}"
                )
            results.append(result)

        applied = sum(1 for r in results if r.is_applied)
        if applied and self.sitemap is not None:
            try:
                path = self.sitemap.write(self.tree)
                logger.info(f"Sitemap regenerated at {path}")
            except OSError as e:
                logger.error(f"Sitemap regeneration failed: {e}")

        return results

    def apply_one(self, directive: EditDirective) -> ApplicationResult:
        """Apply a single directive, converting local failures into Rejected."""
        try:
            summary = self._mutate(directive)
        except DocumentNotFoundError as e:
            logger.debug(str(e))
            return ApplicationResult(directive, Rejected("document not found"))
        except SelectorNotFoundError:
            return ApplicationResult(directive, Rejected("selector not found"))
        except SelectorSyntaxError as e:
            return ApplicationResult(directive, Rejected(f"invalid selector: {e}"))
        except UnicodeDecodeError as e:
            return ApplicationResult(directive, Rejected(f"document is not valid UTF-8: {e}"))
        except OSError as e:
            return ApplicationResult(directive, Rejected(f"I/O error: {e}"))
        except (SiteOptimizerError, ParserRejectedMarkup, ValueError) as e:
            return ApplicationResult(directive, Rejected(f"could not apply directive: {e}"))
        return ApplicationResult(directive, Applied(summary))

    def _mutate(self, directive: EditDirective) -> str:
        path = self.tree.resolve(directive.target_document)
        text = path.read_text(encoding="utf-8")

        soup = BeautifulSoup(text, self.parser)
        matches = soup.select(directive.selector)
        if not matches:
            raise SelectorNotFoundError(
                f"selector {directive.selector!r} not found in {directive.target_document}"
            )

        handler = OPERATION_HANDLERS[directive.operation]
        before, after = handler(matches, directive.payload)

        self.tree.write(directive.target_document, str(soup))
        return describe_change(directive, before, after)

    @staticmethod
    def summarize(results: list[ApplicationResult]) -> BatchSummary:
        """Applied/error counts for a batch."""
        return BatchSummary.from_results(results)
