"""Tests for sitemap regeneration."""

from datetime import date
from xml.etree import ElementTree

import pytest

from site_optimizer.sitemap import SITEMAP_NAMESPACE, SitemapRegenerator, location_for

NS = {"sm": SITEMAP_NAMESPACE}


class TestLocationFor:
    def test_locations(self):
        base = "https://example.com/"
        assert location_for(base, "index.html") == "https://example.com/"
        assert location_for(base, "docs/index.html") == "https://example.com/docs/"
        assert location_for(base, "about.html") == "https://example.com/about"
        assert location_for(base, "blog/post.html") == "https://example.com/blog/post"


class TestRegenerate:
    """Tests for building the location index."""

    def test_entries(self, tree):
        """Test every visible document is listed in path order."""
        entries = SitemapRegenerator("https://example.com").regenerate(tree)

        assert [e.location for e in entries] == [
            "https://example.com/about",
            "https://example.com/blog/post",
            "https://example.com/",
        ]
        assert all(e.change_frequency == "weekly" for e in entries)
        assert all(isinstance(e.last_modified, date) for e in entries)

    def test_root_weighted_highest(self, tree, site_dir):
        (site_dir / "docs").mkdir()
        (site_dir / "docs" / "index.html").write_text("<html></html>")

        entries = SitemapRegenerator("https://example.com").regenerate(tree)
        priorities = {e.location: e.priority for e in entries}

        assert priorities["https://example.com/"] == 1.0
        assert priorities["https://example.com/docs/"] == 0.8
        assert set(priorities.values()) == {1.0, 0.8}

    def test_hidden_paths_excluded(self, tree):
        entries = SitemapRegenerator("https://example.com").regenerate(tree)

        assert not any(".git" in e.location or "hidden" in e.location for e in entries)

    def test_invalid_change_frequency(self):
        with pytest.raises(ValueError, match="change_frequency"):
            SitemapRegenerator("https://example.com", change_frequency="sometimes")


class TestRenderAndWrite:
    """Tests for XML output."""

    def test_render_is_valid_urlset(self, tree):
        regenerator = SitemapRegenerator("https://example.com", change_frequency="daily")

        xml = regenerator.render(regenerator.regenerate(tree))

        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        root = ElementTree.fromstring(xml.encode("utf-8"))
        assert root.tag == f"{{{SITEMAP_NAMESPACE}}}urlset"
        urls = root.findall("sm:url", NS)
        assert len(urls) == 3
        assert urls[2].find("sm:loc", NS).text == "https://example.com/"
        assert urls[2].find("sm:priority", NS).text == "1.0"
        assert urls[0].find("sm:changefreq", NS).text == "daily"

    def test_write_is_deterministic(self, tree, site_dir):
        regenerator = SitemapRegenerator("https://example.com")

        path = regenerator.write(tree)
        first = path.read_text()
        regenerator.write(tree)

        assert path == site_dir / "sitemap.xml"
        assert path.read_text() == first
