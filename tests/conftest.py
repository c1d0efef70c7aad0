"""
Pytest fixtures and configuration for Site Optimizer tests.
"""

import pytest
from pathlib import Path

from site_optimizer.config import OptimizerConfig
from site_optimizer.document_tree import DocumentTree
from site_optimizer.errors import LLMClientError


INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Old</title>
<meta name="description" content="Old description">
</head>
<body>
<h1>Welcome</h1>
<div class="services"><p>Our services</p></div>
<div class="cta-section"><a href="/contact">Contact us</a></div>
</body>
</html>
"""

ABOUT_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
</head>
<body>
<h1>About us</h1>
<p>We fix pipes.</p>
</body>
</html>
"""

POST_HTML = """<!DOCTYPE html>
<html lang="en">
<head><title>Blog post</title></head>
<body><h1>Post</h1><p>Hello</p></body>
</html>
"""


class FakeGenerator:
    """
    Text generator double.

    Returns queued responses first, then ``default``. Raises LLMClientError
    for any prompt containing one of ``fail_on``.
    """

    def __init__(self, responses=None, default="Generated Copy", fail_on=()):
        self.responses = list(responses or [])
        self.default = default
        self.fail_on = tuple(fail_on)
        self.prompts = []

    def generate(self, prompt: str, max_tokens: int = 400) -> str:
        self.prompts.append(prompt)
        if any(token in prompt for token in self.fail_on):
            raise LLMClientError("provider unavailable")
        if self.responses:
            return self.responses.pop(0)
        return self.default


@pytest.fixture
def make_generator():
    """Factory for FakeGenerator instances."""
    return FakeGenerator


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    """Create a small site: two pages, a nested post and hidden files."""
    root = tmp_path / "site"
    (root / "blog").mkdir(parents=True)
    (root / ".git").mkdir()

    (root / "index.html").write_text(INDEX_HTML, encoding="utf-8")
    (root / "about.html").write_text(ABOUT_HTML, encoding="utf-8")
    (root / "blog" / "post.html").write_text(POST_HTML, encoding="utf-8")
    (root / "styles.css").write_text("body { margin: 0; }", encoding="utf-8")
    (root / ".hidden.html").write_text("<html></html>", encoding="utf-8")
    (root / ".git" / "index.html").write_text("<html></html>", encoding="utf-8")
    return root


@pytest.fixture
def tree(site_dir: Path) -> DocumentTree:
    return DocumentTree(site_dir)


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    return tmp_path / "backups"


@pytest.fixture
def config(site_dir: Path, backup_dir: Path, tmp_path: Path) -> OptimizerConfig:
    """Config pointing at the test site with no inter-call delay."""
    return OptimizerConfig(
        site_dir=site_dir,
        backup_dir=backup_dir,
        log_path=tmp_path / "optimization-log.json",
        base_url="https://example.com",
        request_delay_seconds=0,
    )


@pytest.fixture
def sample_signals() -> dict:
    """Analytics data in the provider shape: one keyword per opportunity type plus a miss."""
    return {
        "emergency plumber": {"position": 12, "impressions": 150, "clicks": 6, "ctr": 4},
        "drain cleaning": {"position": 4, "impressions": 900, "clicks": 18, "ctr": "2.00"},
        "water heater repair": {"position": 27, "impressions": 800, "clicks": 2, "ctr": 0.25},
        "pipe insulation": {"position": 12, "impressions": 40, "clicks": 0, "ctr": 0},
    }


@pytest.fixture
def signals_csv(tmp_path: Path) -> Path:
    """Create a Search Console style CSV export."""
    csv_path = tmp_path / "signals.csv"
    csv_path.write_text(
        "Query,Avg Position,Impressions,Clicks,CTR\n"
        "emergency plumber,12,150,6,4%\n"
        "drain cleaning,4,900,18,2%\n"
        "water heater repair,27,800,2,0.25%\n",
        encoding="utf-8",
    )
    return csv_path


def tree_contents(root: Path) -> dict:
    """Map of relative path to bytes for every file under root."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


@pytest.fixture
def read_tree():
    """Return the tree_contents helper."""
    return tree_contents
