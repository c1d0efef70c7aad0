"""
Sitemap regeneration.

Walks the document tree and writes a sitemaps.org ``urlset`` listing every
markup document. The root index document is weighted highest; every other
document gets the same lower priority.
"""

import logging
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Optional
from xml.etree import ElementTree

from .config import CHANGE_FREQUENCIES
from .document_tree import DocumentTree, atomic_write_text
from .models import SitemapEntry

logger = logging.getLogger(__name__)


SITEMAP_NAMESPACE = "http://www.sitemaps.org/schemas/sitemap/0.9"
ROOT_PRIORITY = 1.0
PAGE_PRIORITY = 0.8
INDEX_NAMES = ("index.html", "index.htm")


def location_for(base_url: str, relative_path: str) -> str:
    """
    Public URL of a document.

    ``index.html`` maps to ``<base>/``, ``dir/index.html`` to ``<base>/dir/``
    and ``page.html`` to ``<base>/page``.
    """
    base = base_url.rstrip("/")
    path = PurePosixPath(relative_path)
    if path.name in INDEX_NAMES:
        parent = path.parent.as_posix()
        return f"{base}/" if parent == "." else f"{base}/{parent}/"
    return f"{base}/{path.with_suffix('').as_posix()}"


class SitemapRegenerator:
    """Derives a location index from a document tree."""

    def __init__(
        self,
        base_url: str,
        change_frequency: str = "weekly",
        filename: str = "sitemap.xml",
    ):
        if change_frequency not in CHANGE_FREQUENCIES:
            raise ValueError(
                f"change_frequency must be one of {', '.join(CHANGE_FREQUENCIES)}, "
                f"got '{change_frequency}'"
            )
        self.base_url = base_url.rstrip("/")
        self.change_frequency = change_frequency
        self.filename = filename

    def regenerate(self, tree: DocumentTree) -> list[SitemapEntry]:
        """One entry per document, sorted by relative path, hidden paths excluded."""
        entries = []
        for relative_path in tree.iter_documents():
            path = tree.root / relative_path
            modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).date()
            entries.append(SitemapEntry(
                location=location_for(self.base_url, relative_path),
                last_modified=modified,
                change_frequency=self.change_frequency,
                priority=ROOT_PRIORITY if relative_path in INDEX_NAMES else PAGE_PRIORITY,
            ))
        return entries

    def render(self, entries: list[SitemapEntry]) -> str:
        """Serialize entries as sitemap XML."""
        urlset = ElementTree.Element("urlset", xmlns=SITEMAP_NAMESPACE)
        for entry in entries:
            url = ElementTree.SubElement(urlset, "url")
            ElementTree.SubElement(url, "loc").text = entry.location
            ElementTree.SubElement(url, "lastmod").text = entry.last_modified.isoformat()
            ElementTree.SubElement(url, "changefreq").text = entry.change_frequency
            ElementTree.SubElement(url, "priority").text = f"{entry.priority:.1f}"

        ElementTree.indent(urlset, space="  ")
        body = ElementTree.tostring(urlset, encoding="unicode")
        return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'

    def write(self, tree: DocumentTree, entries: Optional[list[SitemapEntry]] = None):
        """
        Regenerate and write the sitemap at the tree root.

        Returns:
            Path of the written sitemap.
        """
        if entries is None:
            entries = self.regenerate(tree)
        path = tree.root / self.filename
        atomic_write_text(path, self.render(entries))
        logger.info(f"Wrote sitemap with {len(entries)} entries to {path}")
        return path
