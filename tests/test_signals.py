"""Tests for performance signal loading."""

import json

import pytest
from pathlib import Path

from site_optimizer.errors import SignalLoadError, SignalValidationError
from site_optimizer.models import PerformanceSignal
from site_optimizer.signals import (
    load_signals,
    load_signals_from_csv,
    load_signals_from_excel,
    load_signals_from_json,
    parse_signal,
    parse_signals,
    signals_from_search_console_rows,
)


class TestParseSignal:
    """Tests for parsing one keyword's metrics."""

    def test_parses_numbers(self):
        """Test plain numeric metrics."""
        signal = parse_signal("tap", {"position": 3.5, "impressions": 120, "clicks": 4, "ctr": 3.33})

        assert signal == PerformanceSignal("tap", 3.5, 120, 4, 3.33)

    def test_parses_formatted_strings(self):
        """Test formatted ctr strings with and without a percent sign."""
        assert parse_signal("a", {"position": 1, "impressions": 1, "clicks": 0, "ctr": "2.80"}).ctr == 2.8
        assert parse_signal("b", {"position": 1, "impressions": 1, "clicks": 0, "ctr": "2.8%"}).ctr == 2.8

    def test_missing_fields(self):
        """Test missing metrics are reported by name."""
        with pytest.raises(SignalValidationError, match="clicks, ctr"):
            parse_signal("tap", {"position": 1, "impressions": 1})

    def test_non_numeric(self):
        """Test non-numeric values are rejected."""
        with pytest.raises(SignalValidationError, match="position"):
            parse_signal("tap", {"position": "first", "impressions": 1, "clicks": 0, "ctr": 0})

    def test_bool_and_nan_rejected(self):
        """Test booleans and NaN are not treated as numbers."""
        with pytest.raises(SignalValidationError):
            parse_signal("tap", {"position": True, "impressions": 1, "clicks": 0, "ctr": 0})
        with pytest.raises(SignalValidationError):
            parse_signal("tap", {"position": 2, "impressions": float("nan"), "clicks": 0, "ctr": 0})

    def test_out_of_range(self):
        """Test range validation on the signal."""
        with pytest.raises(SignalValidationError, match="ctr"):
            parse_signal("tap", {"position": 2, "impressions": 1, "clicks": 0, "ctr": 120})
        with pytest.raises(SignalValidationError, match="impressions"):
            parse_signal("tap", {"position": 2, "impressions": -1, "clicks": 0, "ctr": 1})

    def test_passes_signal_through(self):
        signal = PerformanceSignal("tap", 2, 10, 1, 10)
        assert parse_signal("tap", signal) is signal

    def test_parse_signals_preserves_order(self, sample_signals):
        signals = parse_signals(sample_signals)
        assert list(signals) == list(sample_signals)


class TestSearchConsoleRows:
    """Tests for Search Console row conversion."""

    def test_converts_ctr_ratio(self):
        """Test ctr ratio is converted to a rounded percentage."""
        rows = [
            {"keys": ["emergency plumber"], "position": 12.4, "impressions": 150, "clicks": 4, "ctr": 0.026666},
            {"keys": [], "position": 1, "impressions": 1, "clicks": 0, "ctr": 0},
        ]

        signals = signals_from_search_console_rows(rows)

        assert list(signals) == ["emergency plumber"]
        assert signals["emergency plumber"].ctr == 2.67
        assert signals["emergency plumber"].position == 12.4


class TestLoadSignalsFromCSV:
    """Tests for CSV signal loading."""

    def test_load_valid_csv(self, signals_csv: Path):
        """Test loading an export with column name variants and percent ctr."""
        signals = load_signals_from_csv(signals_csv)

        assert list(signals) == ["emergency plumber", "drain cleaning", "water heater repair"]
        plumber = signals["emergency plumber"]
        assert plumber.position == 12
        assert plumber.impressions == 150
        assert plumber.clicks == 6
        assert plumber.ctr == 4

    def test_duplicate_keywords_keep_first(self, tmp_path: Path):
        """Test duplicate keywords keep the first row."""
        csv_path = tmp_path / "dupes.csv"
        csv_path.write_text(
            "keyword,position,impressions,clicks,ctr\n"
            "tap,3,100,2,2\n"
            "tap,30,900,1,0.1\n"
        )

        signals = load_signals_from_csv(csv_path)

        assert len(signals) == 1
        assert signals["tap"].position == 3

    def test_missing_column(self, tmp_path: Path):
        """Test a missing required column is reported."""
        csv_path = tmp_path / "bad.csv"
        csv_path.write_text("keyword,position,impressions\ntap,3,100\n")

        with pytest.raises(SignalLoadError, match="Missing required columns: clicks, ctr"):
            load_signals_from_csv(csv_path)

    def test_empty_csv(self, tmp_path: Path):
        """Test header-only and empty files raise errors."""
        header_only = tmp_path / "header.csv"
        header_only.write_text("keyword,position,impressions,clicks,ctr\n")
        with pytest.raises(SignalLoadError, match="Signals file is empty"):
            load_signals_from_csv(header_only)

        empty = tmp_path / "empty.csv"
        empty.write_text("")
        with pytest.raises(SignalLoadError, match="Signals file is empty"):
            load_signals_from_csv(empty)

    def test_nonexistent_csv(self, tmp_path: Path):
        with pytest.raises(SignalLoadError, match="File not found"):
            load_signals_from_csv(tmp_path / "missing.csv")


class TestLoadSignalsFromOtherFormats:
    """Tests for Excel and JSON loading and format dispatch."""

    def test_load_excel(self, tmp_path: Path):
        """Test loading an Excel export."""
        import pandas as pd

        xlsx_path = tmp_path / "signals.xlsx"
        pd.DataFrame({
            "keyword": ["tap", "sink"],
            "position": [12, 4],
            "impressions": [150, 900],
            "clicks": [6, 18],
            "ctr": [4.0, 2.0],
        }).to_excel(xlsx_path, index=False)

        signals = load_signals_from_excel(xlsx_path)

        assert list(signals) == ["tap", "sink"]
        assert signals["sink"].impressions == 900

    def test_load_json(self, tmp_path: Path, sample_signals):
        """Test loading the analytics provider mapping from JSON."""
        json_path = tmp_path / "signals.json"
        json_path.write_text(json.dumps(sample_signals))

        signals = load_signals_from_json(json_path)

        assert signals["drain cleaning"].ctr == 2.0

    def test_json_must_be_object(self, tmp_path: Path):
        json_path = tmp_path / "signals.json"
        json_path.write_text("[1, 2]")

        with pytest.raises(SignalLoadError, match="object keyed by keyword"):
            load_signals_from_json(json_path)

    def test_dispatch_by_extension(self, signals_csv: Path):
        assert len(load_signals(signals_csv)) == 3

    def test_unsupported_format(self, tmp_path: Path):
        path = tmp_path / "signals.txt"
        path.write_text("tap")

        with pytest.raises(SignalLoadError, match="Unsupported file format"):
            load_signals(path)
