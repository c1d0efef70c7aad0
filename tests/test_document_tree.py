"""Tests for document tree access."""

import os
import stat

import pytest

from site_optimizer.document_tree import DocumentTree, atomic_write_text
from site_optimizer.errors import DocumentNotFoundError


class TestDocumentTree:
    def test_iter_documents_skips_hidden_and_assets(self, tree):
        assert list(tree.iter_documents()) == ["about.html", "blog/post.html", "index.html"]

    def test_resolve(self, tree, site_dir):
        assert tree.resolve("blog/post.html") == (site_dir / "blog" / "post.html").resolve()

    @pytest.mark.parametrize("path", ["", "missing.html", "../site/../outside.html", "blog"])
    def test_resolve_rejects(self, tree, path):
        with pytest.raises(DocumentNotFoundError):
            tree.resolve(path)

    def test_write_replaces_content(self, tree, site_dir):
        tree.write("about.html", "<p>replaced</p>")

        assert tree.read("about.html") == "<p>replaced</p>"
        assert not [p for p in site_dir.iterdir() if p.name.endswith(".tmp")]

    def test_relative(self, tree, site_dir):
        assert tree.relative(site_dir / "blog" / "post.html") == "blog/post.html"

    def test_atomic_write_creates_file(self, tmp_path):
        path = tmp_path / "out.txt"
        atomic_write_text(path, "hello")
        assert path.read_text() == "hello"

    def test_missing_root(self, tmp_path):
        assert not DocumentTree(tmp_path / "nope").exists()

    def test_atomic_write_keeps_existing_mode(self, tmp_path):
        path = tmp_path / "page.html"
        path.write_text("old")
        path.chmod(0o664)

        atomic_write_text(path, "new")

        assert stat.S_IMODE(path.stat().st_mode) == 0o664

    def test_atomic_write_new_file_uses_umask(self, tmp_path):
        """Test a new file gets the umask default instead of the temp file's 0600."""
        previous = os.umask(0o022)
        try:
            atomic_write_text(tmp_path / "sitemap.xml", "<urlset/>")
        finally:
            os.umask(previous)

        assert stat.S_IMODE((tmp_path / "sitemap.xml").stat().st_mode) == 0o644
