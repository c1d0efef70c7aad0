"""
Performance signal loading and parsing.

This module turns search analytics data into PerformanceSignal objects:
- Mappings in the analytics provider's shape ({keyword: {position, ...}})
- Search Console API rows (ctr as a 0-1 ratio)
- CSV and Excel exports (.csv, .xlsx, .xls)
- JSON files holding the provider mapping
"""

import json
import logging
import math
import numbers
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import pandas as pd

from .errors import SignalLoadError, SignalValidationError
from .models import PerformanceSignal

logger = logging.getLogger(__name__)


# Common column name variations in analytics exports
KEYWORD_COLUMN_VARIANTS = ["keyword", "keywords", "query", "queries", "top_queries", "term", "phrase"]
POSITION_COLUMN_VARIANTS = ["position", "avg_position", "average_position", "pos", "rank"]
IMPRESSIONS_COLUMN_VARIANTS = ["impressions", "impr", "impression"]
CLICKS_COLUMN_VARIANTS = ["clicks", "click"]
CTR_COLUMN_VARIANTS = ["ctr", "click_through_rate", "clickthrough_rate"]


def _coerce_number(value: Any, name: str, keyword: str) -> float:
    """Coerce numbers, numeric strings and percent strings ("2.8%") to float."""
    if isinstance(value, bool):
        raise SignalValidationError(f"{name} for '{keyword}' must be numeric, got {value!r}")
    number = None
    if isinstance(value, numbers.Real):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().rstrip("%").replace(",", ".").strip()
        try:
            number = float(cleaned)
        except ValueError:
            pass
    if number is not None and not math.isnan(number):
        return number
    raise SignalValidationError(f"{name} for '{keyword}' must be numeric, got {value!r}")


def parse_signal(keyword: str, data: Union[PerformanceSignal, Mapping[str, Any]]) -> PerformanceSignal:
    """
    Parse one keyword's analytics data into a PerformanceSignal.

    Args:
        keyword: The search query.
        data: Mapping with position, impressions, clicks and ctr (percent).
            ctr may be a formatted string such as "2.80" or "2.8%".

    Returns:
        Validated PerformanceSignal.

    Raises:
        SignalValidationError: If a field is missing, non-numeric or out of range.
    """
    if isinstance(data, PerformanceSignal):
        return data

    missing = [k for k in ("position", "impressions", "clicks", "ctr") if k not in data]
    if missing:
        raise SignalValidationError(
            f"Signal for '{keyword}' is missing fields: {', '.join(missing)}"
        )

    impressions = _coerce_number(data["impressions"], "impressions", keyword)
    clicks = _coerce_number(data["clicks"], "clicks", keyword)
    return PerformanceSignal(
        keyword=keyword.strip(),
        position=_coerce_number(data["position"], "position", keyword),
        impressions=int(impressions),
        clicks=int(clicks),
        ctr=_coerce_number(data["ctr"], "ctr", keyword),
    )


def parse_signals(
    raw: Mapping[str, Union[PerformanceSignal, Mapping[str, Any]]],
) -> dict[str, PerformanceSignal]:
    """
    Parse a provider mapping of keyword to metrics.

    Input order is preserved.

    Raises:
        SignalValidationError: If any entry is invalid.
    """
    return {keyword: parse_signal(keyword, data) for keyword, data in raw.items()}


def signals_from_search_console_rows(rows: list[Mapping[str, Any]]) -> dict[str, PerformanceSignal]:
    """
    Convert Search Console searchanalytics rows into signals.

    Rows carry ``keys`` (first key is the query) and a ctr ratio in [0, 1],
    which is converted to a percentage rounded to two decimals.
    """
    signals: dict[str, PerformanceSignal] = {}
    for row in rows:
        keys = row.get("keys") or []
        if not keys:
            logger.warning("Skipping Search Console row without keys")
            continue
        keyword = str(keys[0])
        signals[keyword] = parse_signal(keyword, {
            "position": row.get("position", 0),
            "impressions": row.get("impressions", 0),
            "clicks": row.get("clicks", 0),
            "ctr": round(float(row.get("ctr", 0)) * 100, 2),
        })
    return signals


def _normalize_column_name(name: str) -> str:
    """Normalize column name for matching."""
    return str(name).lower().strip().replace(" ", "_").replace("-", "_").replace(".", "")


def _find_column(df: pd.DataFrame, variants: list[str]) -> Optional[str]:
    """
    Find a column in the DataFrame matching one of the variant names.

    Args:
        df: The DataFrame to search.
        variants: List of possible column name variants.

    Returns:
        The actual column name if found, None otherwise.
    """
    normalized_columns = {_normalize_column_name(col): col for col in df.columns}

    for variant in variants:
        normalized = _normalize_column_name(variant)
        if normalized in normalized_columns:
            return normalized_columns[normalized]

    return None


def _parse_signal_dataframe(df: pd.DataFrame) -> dict[str, PerformanceSignal]:
    """
    Parse a DataFrame into signals keyed by keyword.

    Rows with a blank keyword are skipped. Duplicate keywords keep the
    first occurrence.

    Raises:
        SignalLoadError: If the file is empty or a required column is missing.
        SignalValidationError: If a row holds an out-of-range value.
    """
    if df.empty:
        raise SignalLoadError("Signals file is empty")

    columns = {
        "keyword": _find_column(df, KEYWORD_COLUMN_VARIANTS),
        "position": _find_column(df, POSITION_COLUMN_VARIANTS),
        "impressions": _find_column(df, IMPRESSIONS_COLUMN_VARIANTS),
        "clicks": _find_column(df, CLICKS_COLUMN_VARIANTS),
        "ctr": _find_column(df, CTR_COLUMN_VARIANTS),
    }
    missing = [name for name, col in columns.items() if col is None]
    if missing:
        raise SignalLoadError(
            f"Missing required columns: {', '.join(missing)}. "
            f"Found columns: {', '.join(str(c) for c in df.columns)}"
        )

    signals: dict[str, PerformanceSignal] = {}
    for _, row in df.iterrows():
        keyword_value = row[columns["keyword"]]
        if pd.isna(keyword_value) or not str(keyword_value).strip():
            continue
        keyword = str(keyword_value).strip()
        if keyword in signals:
            logger.warning(f"Duplicate keyword '{keyword}' in signals file, keeping first row")
            continue
        signals[keyword] = parse_signal(keyword, {
            name: row[col] for name, col in columns.items() if name != "keyword"
        })

    if not signals:
        raise SignalLoadError("No signals found in file")

    return signals


def load_signals_from_csv(file_path: Union[str, Path]) -> dict[str, PerformanceSignal]:
    """
    Load signals from a CSV export.

    Raises:
        SignalLoadError: If the file cannot be read or parsed.
    """
    path = Path(file_path)

    if not path.exists():
        raise SignalLoadError(f"File not found: {file_path}")

    try:
        df = pd.read_csv(path, encoding="utf-8")
    except UnicodeDecodeError:
        try:
            df = pd.read_csv(path, encoding="latin-1")
        except Exception as e:
            raise SignalLoadError(f"Failed to read CSV file: {e}") from e
    except pd.errors.EmptyDataError:
        raise SignalLoadError("Signals file is empty") from None
    except Exception as e:
        raise SignalLoadError(f"Failed to read CSV file: {e}") from e

    return _parse_signal_dataframe(df)


def load_signals_from_excel(
    file_path: Union[str, Path],
    sheet_name: Optional[str] = None,
) -> dict[str, PerformanceSignal]:
    """
    Load signals from an Excel export.

    Args:
        file_path: Path to the .xlsx or .xls file.
        sheet_name: Optional sheet name. Defaults to the first sheet.

    Raises:
        SignalLoadError: If the file cannot be read or parsed.
    """
    path = Path(file_path)

    if not path.exists():
        raise SignalLoadError(f"File not found: {file_path}")

    try:
        if sheet_name:
            df = pd.read_excel(path, sheet_name=sheet_name)
        else:
            df = pd.read_excel(path)
    except Exception as e:
        raise SignalLoadError(f"Failed to read Excel file: {e}") from e

    return _parse_signal_dataframe(df)


def load_signals_from_json(file_path: Union[str, Path]) -> dict[str, PerformanceSignal]:
    """
    Load signals from a JSON file holding {keyword: {position, impressions, clicks, ctr}}.

    Raises:
        SignalLoadError: If the file cannot be read or is not a JSON object.
    """
    path = Path(file_path)

    if not path.exists():
        raise SignalLoadError(f"File not found: {file_path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise SignalLoadError(f"Failed to read JSON file: {e}") from e

    if not isinstance(data, dict):
        raise SignalLoadError("JSON signals file must hold an object keyed by keyword")

    return parse_signals(data)


def load_signals(file_path: Union[str, Path]) -> dict[str, PerformanceSignal]:
    """
    Load signals from a file, auto-detecting the format from its extension.

    Raises:
        SignalLoadError: If the format is unsupported or loading fails.
    """
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix == ".csv":
        return load_signals_from_csv(path)
    if suffix in (".xlsx", ".xls"):
        return load_signals_from_excel(path)
    if suffix == ".json":
        return load_signals_from_json(path)

    raise SignalLoadError(
        f"Unsupported file format: {suffix}. Use .csv, .xlsx, .xls or .json"
    )
