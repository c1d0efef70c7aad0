"""
Append-only optimization log.

The log is a JSON array of batch summaries, one entry per mutation batch:

    {"timestamp": ..., "optimizations_count": ..., "applied_count": ...,
     "error_count": ..., "details": [{"type": ..., "target": ..., "change": ...}]}

It is an explicit sink with a lifecycle: opened at batch start, recorded into,
flushed at batch end. Existing entries are never rewritten.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from .document_tree import atomic_write_text
from .errors import StorageError
from .models import BatchSummary

logger = logging.getLogger(__name__)


def build_entry(
    summary: BatchSummary,
    optimizations_count: Optional[int] = None,
    timestamp: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Build one log entry from a batch summary.

    Args:
        summary: Applied/error counts and itemized results.
        optimizations_count: Number of directives planned for the batch.
            Defaults to the number of results.
        timestamp: Entry time. Defaults to now (UTC).
    """
    timestamp = timestamp or datetime.now(timezone.utc)
    details = []
    for result in summary.results:
        directive = result.directive
        change = result.description if result.is_applied else f"rejected: {result.description}"
        details.append({
            "type": directive.operation.value,
            "target": f"{directive.target_document} {directive.selector}",
            "change": change,
        })
    return {
        "timestamp": timestamp.isoformat(),
        "optimizations_count": len(summary.results) if optimizations_count is None else optimizations_count,
        "applied_count": summary.applied,
        "error_count": summary.errors,
        "details": details,
    }


class OptimizationLog:
    """
    JSON audit trail of mutation batches.

    Usage:
        with OptimizationLog(path) as log:
            log.record(summary)
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._pending: list[dict[str, Any]] = []
        self._is_open = False

    def _read_entries(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read optimization log {self.path}: {e}") from e
        if not isinstance(data, list):
            raise StorageError(f"Optimization log {self.path} must hold a JSON array")
        return data

    def open(self) -> "OptimizationLog":
        """
        Open the log for a batch.

        Raises:
            StorageError: If an existing log file is unreadable.
        """
        self._read_entries()
        self._pending = []
        self._is_open = True
        return self

    def entries(self) -> list[dict[str, Any]]:
        """Persisted entries followed by entries recorded but not yet flushed."""
        return self._read_entries() + list(self._pending)

    def record(
        self,
        summary: BatchSummary,
        optimizations_count: Optional[int] = None,
        timestamp: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Queue an entry for a finished batch. Returns the entry."""
        if not self._is_open:
            raise RuntimeError("Optimization log is not open")
        entry = build_entry(summary, optimizations_count, timestamp)
        self._pending.append(entry)
        return entry

    def flush(self) -> None:
        """
        Append queued entries to the file.

        The file is re-read so entries written since ``open`` are preserved,
        then replaced atomically.

        Raises:
            StorageError: If the log cannot be read or written.
        """
        if not self._pending:
            return
        entries = self._read_entries() + self._pending
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(self.path, json.dumps(entries, indent=2, ensure_ascii=False) + "\n")
        except OSError as e:
            raise StorageError(f"Failed to write optimization log {self.path}: {e}") from e
        logger.info(f"Appended {len(self._pending)} entries to {self.path}")
        self._pending = []

    def close(self) -> None:
        self.flush()
        self._is_open = False

    def __enter__(self) -> "OptimizationLog":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
