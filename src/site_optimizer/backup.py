"""
Backup and versioning of the document tree.

Snapshots are full content copies stored as ``backup-<timestamp>`` directories
next to (never inside) the document tree. Ids sort in creation order, so the
store needs no index file: the directory listing is the registry.
"""

import logging
import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional, Union

from .document_tree import DocumentTree
from .errors import SnapshotError, SnapshotNotFoundError, StorageError
from .models import Snapshot

logger = logging.getLogger(__name__)


SNAPSHOT_PREFIX = "backup-"

# ISO 8601 in UTC with ':' and '.' replaced by '-' so the id is a valid file name
SNAPSHOT_TIME_FORMAT = "%Y-%m-%dT%H-%M-%S-%fZ"

DEFAULT_RETENTION = 10


def snapshot_id_for(moment: datetime) -> str:
    """Snapshot id for a point in time."""
    return SNAPSHOT_PREFIX + moment.astimezone(timezone.utc).strftime(SNAPSHOT_TIME_FORMAT)


def parse_snapshot_id(snapshot_id: str) -> Optional[datetime]:
    """Creation time encoded in a snapshot id, or None if it is not one."""
    if not snapshot_id.startswith(SNAPSHOT_PREFIX):
        return None
    try:
        moment = datetime.strptime(snapshot_id[len(SNAPSHOT_PREFIX):], SNAPSHOT_TIME_FORMAT)
    except ValueError:
        return None
    return moment.replace(tzinfo=timezone.utc)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotStore:
    """
    Directory of retained document tree snapshots.

    Attributes:
        backup_dir: Directory holding the snapshots.
        retention: Number of snapshots kept by ``prune``. Values below one
            are treated as one, so the newest snapshot always survives.
    """

    def __init__(
        self,
        backup_dir: Union[str, Path],
        retention: int = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.backup_dir = Path(backup_dir)
        self.retention = retention
        self._clock = clock

    @property
    def effective_retention(self) -> int:
        return max(self.retention, 1)

    # -- registry -----------------------------------------------------------

    def list_snapshots(self) -> list[Snapshot]:
        """All retained snapshots, oldest first."""
        if not self.backup_dir.is_dir():
            return []

        snapshots = []
        for entry in self.backup_dir.iterdir():
            created_at = parse_snapshot_id(entry.name)
            if created_at is None or not entry.is_dir():
                continue
            snapshots.append(Snapshot(snapshot_id=entry.name, path=entry, created_at=created_at))
        return sorted(snapshots, key=lambda s: (s.created_at, s.snapshot_id))

    def latest(self) -> Optional[Snapshot]:
        snapshots = self.list_snapshots()
        return snapshots[-1] if snapshots else None

    def get(self, snapshot_id: str) -> Snapshot:
        """
        Look up a snapshot by id.

        Raises:
            SnapshotNotFoundError: If no such snapshot is retained.
        """
        created_at = parse_snapshot_id(snapshot_id or "")
        path = self.backup_dir / (snapshot_id or "")
        if created_at is None or "/" in snapshot_id or "\\" in snapshot_id or not path.is_dir():
            raise SnapshotNotFoundError(f"Snapshot not found: {snapshot_id}")
        return Snapshot(snapshot_id=snapshot_id, path=path, created_at=created_at)

    # -- operations ---------------------------------------------------------

    def snapshot(self, tree: DocumentTree) -> str:
        """
        Copy the entire document tree into a new snapshot.

        Older snapshots beyond the retention count are pruned afterwards.

        Returns:
            The new snapshot id.

        Raises:
            SnapshotError: If the copy cannot be made. No mutation should
                proceed in that case.
            ValueError: If the backup directory sits inside the tree.
        """
        snapshot = self._take(tree)
        try:
            self.prune()
        except StorageError as e:
            logger.warning(f"Snapshot {snapshot.snapshot_id} created but pruning failed: {e}")
        return snapshot.snapshot_id

    def rollback(self, snapshot_id: str, tree: DocumentTree) -> Optional[str]:
        """
        Replace the tree's contents with a snapshot.

        A snapshot of the current state is taken first, so the rollback can
        itself be undone. Pruning runs only after the restore, so the target
        snapshot is never evicted by that safety snapshot. A missing tree has
        nothing to save and is restored directly.

        Returns:
            Id of the pre-rollback safety snapshot, or None if the tree was missing.

        Raises:
            SnapshotNotFoundError: If ``snapshot_id`` is not retained.
            SnapshotError: If the safety snapshot or the restore fails.
        """
        target = self.get(snapshot_id)
        safety: Optional[Snapshot] = None
        if tree.exists():
            safety = self._take(tree)
            logger.info(f"Pre-rollback snapshot {safety.snapshot_id} created")
        else:
            self._check_location(tree)
            logger.warning(f"Document tree {tree.root} is missing, restoring without a safety snapshot")

        root = tree.root
        try:
            root.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=f".{root.name}.restore-", dir=root.parent))
        except OSError as e:
            raise SnapshotError(f"Rollback to {snapshot_id} failed: {e}") from e
        try:
            restored = staging / "restored"
            previous = staging / "previous"
            shutil.copytree(target.path, restored)
            if safety is not None:
                os.replace(root, previous)
            try:
                os.replace(restored, root)
            except OSError:
                if safety is not None:
                    os.replace(previous, root)
                raise
        except OSError as e:
            raise SnapshotError(f"Rollback to {snapshot_id} failed: {e}") from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info(f"Rolled back {root} to {snapshot_id}")
        try:
            self.prune()
        except StorageError as e:
            logger.warning(f"Rollback succeeded but pruning failed: {e}")
        return safety.snapshot_id if safety else None

    def prune(self) -> list[str]:
        """
        Delete all but the newest ``effective_retention`` snapshots.

        Returns:
            Ids of the deleted snapshots, oldest first.

        Raises:
            StorageError: If a snapshot directory cannot be deleted.
        """
        snapshots = self.list_snapshots()
        excess = snapshots[: max(len(snapshots) - self.effective_retention, 0)]

        removed = []
        for snapshot in excess:
            try:
                shutil.rmtree(snapshot.path)
            except OSError as e:
                raise StorageError(f"Failed to delete snapshot {snapshot.snapshot_id}: {e}") from e
            logger.info(f"Pruned snapshot {snapshot.snapshot_id}")
            removed.append(snapshot.snapshot_id)
        return removed

    # -- internals ----------------------------------------------------------

    def _check_location(self, tree: DocumentTree) -> None:
        backup_root = self.backup_dir.resolve()
        if backup_root == tree.root or tree.root in backup_root.parents:
            raise ValueError(
                f"Backup directory {self.backup_dir} must not be inside the document tree {tree.root}"
            )

    def _next_snapshot_time(self) -> datetime:
        moment = self._clock().astimezone(timezone.utc)
        latest = self.latest()
        # Ids must strictly increase even if the clock did not advance
        if latest is not None and moment <= latest.created_at:
            moment = latest.created_at + timedelta(microseconds=1)
        while (self.backup_dir / snapshot_id_for(moment)).exists():
            moment += timedelta(microseconds=1)
        return moment

    def _take(self, tree: DocumentTree) -> Snapshot:
        if not tree.exists():
            raise SnapshotError(f"Document tree not found: {tree.root}")
        self._check_location(tree)

        created_at = self._next_snapshot_time()
        snapshot_id = snapshot_id_for(created_at)
        destination = self.backup_dir / snapshot_id

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            # Staged under a hidden name so a half-copied snapshot is never listed
            staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=self.backup_dir))
        except OSError as e:
            raise SnapshotError(f"Cannot prepare backup directory {self.backup_dir}: {e}") from e
        try:
            staged_copy = staging / "tree"
            shutil.copytree(tree.root, staged_copy)
            os.replace(staged_copy, destination)
        except OSError as e:
            raise SnapshotError(f"Failed to snapshot {tree.root}: {e}") from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        logger.info(f"Created snapshot {snapshot_id}")
        return Snapshot(snapshot_id=snapshot_id, path=destination, created_at=created_at)
