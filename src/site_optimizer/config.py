# -*- coding: utf-8 -*-
"""
Centralized configuration for Site Optimizer.

This module provides the configuration dataclasses that control opportunity
thresholds, payload limits for generated copy, snapshot retention and the
locations of the document tree, the snapshot store and the optimization log.
"""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


# Valid <changefreq> values from the sitemaps.org protocol
CHANGE_FREQUENCIES = ("always", "hourly", "daily", "weekly", "monthly", "yearly", "never")

# Parsers BeautifulSoup understands for full documents
HTML_PARSERS = ("lxml", "html.parser", "html5lib")

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass(frozen=True)
class OpportunityThresholds:
    """
    Thresholds for the three opportunity rules.

    Attributes:
        ranking_boost_min_position: Lower bound (exclusive) for ranking boosts.
        ranking_boost_max_position: Upper bound (inclusive) for ranking boosts.
        ranking_boost_min_impressions: Impressions must exceed this value.
        ctr_max_position: Upper bound (inclusive) for CTR improvements.
        ctr_max_rate: CTR (percent) must be below this value.
        expansion_min_position: Lower bound (exclusive) for content expansion.
        expansion_min_impressions: Impressions must exceed this value.
        target_position: Position a ranking boost aims for.
        target_ctr: CTR (percent) a CTR improvement aims for.
        quick_win_max_position: Upper bound (inclusive) for near-first-page quick wins.

    The three position ranges must not overlap, so a keyword can satisfy at
    most one position-based rule. This is checked on construction.
    """

    ranking_boost_min_position: float = 10.0
    ranking_boost_max_position: float = 20.0
    ranking_boost_min_impressions: int = 100
    ctr_max_position: float = 10.0
    ctr_max_rate: float = 3.0
    expansion_min_position: float = 20.0
    expansion_min_impressions: int = 500
    target_position: int = 5
    target_ctr: float = 5.0
    quick_win_max_position: float = 15.0

    def __post_init__(self):
        """Validate thresholds and the position exclusivity invariant."""
        if self.ranking_boost_min_position >= self.ranking_boost_max_position:
            raise ValueError(
                f"ranking_boost_min_position ({self.ranking_boost_min_position}) must be < "
                f"ranking_boost_max_position ({self.ranking_boost_max_position})"
            )
        # ctr range is [1, ctr_max], ranking boost is (min, max], expansion is (min, inf)
        if self.ctr_max_position > self.ranking_boost_min_position:
            raise ValueError(
                f"ctr_max_position ({self.ctr_max_position}) overlaps the ranking boost "
                f"range starting after {self.ranking_boost_min_position}"
            )
        if self.ranking_boost_max_position > self.expansion_min_position:
            raise ValueError(
                f"ranking_boost_max_position ({self.ranking_boost_max_position}) overlaps the "
                f"content expansion range starting after {self.expansion_min_position}"
            )
        if self.ranking_boost_min_impressions < 0 or self.expansion_min_impressions < 0:
            raise ValueError("impression thresholds must be >= 0")
        if not 0 <= self.ctr_max_rate <= 100:
            raise ValueError(f"ctr_max_rate must be in [0, 100], got {self.ctr_max_rate}")
        if self.target_position < 1:
            raise ValueError(f"target_position must be >= 1, got {self.target_position}")
        if not 0 <= self.target_ctr <= 100:
            raise ValueError(f"target_ctr must be in [0, 100], got {self.target_ctr}")


@dataclass(frozen=True)
class PayloadLimits:
    """Advisory length limits for generated copy (characters)."""

    title_max: int = 60
    meta_description_min: int = 150
    meta_description_max: int = 160
    h1_max: int = 70

    def __post_init__(self):
        if self.meta_description_min > self.meta_description_max:
            raise ValueError(
                f"meta_description_min ({self.meta_description_min}) must be <= "
                f"meta_description_max ({self.meta_description_max})"
            )
        if self.title_max < 1 or self.h1_max < 1:
            raise ValueError("title_max and h1_max must be >= 1")


@dataclass
class OptimizerConfig:
    """
    Central configuration for an optimization run.

    Attributes:
        site_dir: Root of the document tree being optimized.
        backup_dir: Directory holding ``backup-*`` snapshots. Must not be
            inside ``site_dir``.
        log_path: JSON file receiving one summary entry per batch.
        base_url: Public URL of the site, used for sitemap locations.
        snapshot_retention: Number of snapshots kept by pruning. Values
            below 1 are treated as 1 so the newest snapshot always survives.
        html_parser: BeautifulSoup parser used for documents.
        change_frequency: ``<changefreq>`` written for every sitemap entry.
        request_delay_seconds: Pause between external provider calls.
        max_serp_lookups: Maximum SERP lookups per cycle.
        model: Model identifier for the generation client.
        api_key: API key for the generation client. Falls back to
            ANTHROPIC_API_KEY when None.
        thresholds: Opportunity rule thresholds.
        limits: Advisory payload length limits.
    """

    site_dir: Path = Path("site")
    backup_dir: Path = Path("backups")
    log_path: Path = Path("optimization-log.json")
    base_url: str = "https://example.com"
    snapshot_retention: int = 10
    html_parser: str = "lxml"
    change_frequency: str = "weekly"
    request_delay_seconds: float = 3.0
    max_serp_lookups: int = 5
    model: str = DEFAULT_MODEL
    api_key: Optional[str] = None
    thresholds: OpportunityThresholds = field(default_factory=OpportunityThresholds)
    limits: PayloadLimits = field(default_factory=PayloadLimits)

    @property
    def effective_retention(self) -> int:
        """Retention count with the floor of one snapshot applied."""
        return max(self.snapshot_retention, 1)

    def __post_init__(self):
        """Normalize paths and validate configuration values."""
        self.site_dir = Path(self.site_dir)
        self.backup_dir = Path(self.backup_dir)
        self.log_path = Path(self.log_path)

        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https://, got '{self.base_url}'")
        self.base_url = self.base_url.rstrip("/")

        if self.html_parser not in HTML_PARSERS:
            raise ValueError(
                f"html_parser must be one of {', '.join(HTML_PARSERS)}, got '{self.html_parser}'"
            )
        if self.change_frequency not in CHANGE_FREQUENCIES:
            raise ValueError(
                f"change_frequency must be one of {', '.join(CHANGE_FREQUENCIES)}, "
                f"got '{self.change_frequency}'"
            )
        if self.request_delay_seconds < 0 or math.isnan(self.request_delay_seconds):
            raise ValueError(
                f"request_delay_seconds must be >= 0, got {self.request_delay_seconds}"
            )
        if self.max_serp_lookups < 0:
            raise ValueError(f"max_serp_lookups must be >= 0, got {self.max_serp_lookups}")

    @classmethod
    def from_env(cls, **overrides) -> "OptimizerConfig":
        """Create config from SITE_OPTIMIZER_* environment variables.

        Recognized variables: SITE_OPTIMIZER_SITE_DIR, SITE_OPTIMIZER_BACKUP_DIR,
        SITE_OPTIMIZER_LOG_PATH, SITE_OPTIMIZER_BASE_URL,
        SITE_OPTIMIZER_SNAPSHOT_RETENTION, SITE_OPTIMIZER_REQUEST_DELAY,
        SITE_OPTIMIZER_MODEL and ANTHROPIC_API_KEY.

        Args:
            **overrides: Values that take precedence over the environment.

        Returns:
            OptimizerConfig built from the environment.
        """
        env = os.environ
        values = {}

        if env.get("SITE_OPTIMIZER_SITE_DIR"):
            values["site_dir"] = Path(env["SITE_OPTIMIZER_SITE_DIR"])
        if env.get("SITE_OPTIMIZER_BACKUP_DIR"):
            values["backup_dir"] = Path(env["SITE_OPTIMIZER_BACKUP_DIR"])
        if env.get("SITE_OPTIMIZER_LOG_PATH"):
            values["log_path"] = Path(env["SITE_OPTIMIZER_LOG_PATH"])
        if env.get("SITE_OPTIMIZER_BASE_URL"):
            values["base_url"] = env["SITE_OPTIMIZER_BASE_URL"]
        if env.get("SITE_OPTIMIZER_SNAPSHOT_RETENTION"):
            values["snapshot_retention"] = int(env["SITE_OPTIMIZER_SNAPSHOT_RETENTION"])
        if env.get("SITE_OPTIMIZER_REQUEST_DELAY"):
            values["request_delay_seconds"] = float(env["SITE_OPTIMIZER_REQUEST_DELAY"])
        if env.get("SITE_OPTIMIZER_MODEL"):
            values["model"] = env["SITE_OPTIMIZER_MODEL"]
        if env.get("ANTHROPIC_API_KEY"):
            values["api_key"] = env["ANTHROPIC_API_KEY"]

        values.update(overrides)
        return cls(**values)
