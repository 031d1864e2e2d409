"""Snapshot persistence: local per-day log, shared mirror, retention.

Layout: {root}/{YYYYMMDD}/SM_{host}_{YYYYMMDD}.json under both the local and
the shared root. The local file holds the full day; the shared file holds
the most recent shared_max_snapshots of it (0 keeps all) together with the
operator-maintained notifyRecord.

Every step of persist() fails independently. There is no rollback: a cycle
that writes the local file but not the shared one is repaired by the next
successful cycle.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import structlog

from ..monitoring.assembler import TIMESTAMP_FORMAT
from ..monitoring.errors import MonitorError
from ..monitoring.models import PersistResult, Snapshot, SnapshotLog
from .retention import DATE_FOLDER_FORMAT, sweep_expired_folders

logger = structlog.get_logger(__name__)

_STEP_ERRORS = (OSError, ValueError, TypeError, KeyError, MonitorError)


def snapshot_file_name(host_identity: str, day: str) -> str:
    safe_host = host_identity.replace(":", "-").replace("/", "-").replace("\\", "-")
    return f"SM_{safe_host}_{day}.json"


def load_snapshot_log(path: Path) -> Optional[SnapshotLog]:
    """Read a snapshot log; None if the file is missing or malformed.

    Raises:
        OSError: If the file exists but cannot be read.
    """
    if not path.exists():
        return None
    raw = path.read_bytes()
    try:
        return SnapshotLog.from_dict(json.loads(raw.decode("utf-8")))
    except (ValueError, TypeError, KeyError) as exc:
        logger.warning("snapshot_log_malformed", path=str(path), error=str(exc))
        return None


def read_snapshot_log(path: Path) -> SnapshotLog:
    """Read a snapshot log; a missing or malformed file reads as empty."""
    return load_snapshot_log(path) or SnapshotLog()


def write_snapshot_log(path: Path, log: SnapshotLog) -> None:
    """Rewrite the whole file with the given log."""
    text = json.dumps(log.to_dict(), ensure_ascii=False, indent=2)
    path.write_text(text + "\n", encoding="utf-8")


class SnapshotStore:
    """Appends snapshots locally and mirrors a capped window to the shared root."""

    def __init__(
        self,
        local_root: str | Path,
        shared_root: Optional[str | Path] = None,
        shared_enabled: bool = False,
        retention_days: int = 60,
        shared_max_snapshots: int = 0,
        notify_interval: int = 0,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.local_root = Path(local_root)
        self.shared_root = Path(shared_root) if shared_root else None
        self.shared_enabled = bool(shared_enabled and self.shared_root is not None)
        self.retention_days = retention_days
        self.shared_max_snapshots = shared_max_snapshots
        self.notify_interval = notify_interval
        self._now = now

        if shared_enabled and self.shared_root is None:
            logger.warning("shared_mirroring_disabled", reason="shared_path_empty")

    def _fail(self, result: PersistResult, step: str, exc: BaseException) -> None:
        message = f"{step}: {exc}"
        result.errors.append(message)
        logger.warning("snapshot_store_step_failed", step=step, error=str(exc))

    def persist(self, snapshot: Snapshot) -> PersistResult:
        """Append snapshot to today's local log and refresh the shared copy.

        Never raises for I/O or format problems; they are reported in the
        returned PersistResult and logged.
        """
        day_date = self._snapshot_date(snapshot)
        day = day_date.strftime(DATE_FOLDER_FORMAT)
        file_name = snapshot_file_name(snapshot.host_identity, day)
        result = PersistResult()

        local_dir = self.local_root / day
        local_file = local_dir / file_name
        result.local_file = str(local_file)
        shared_file: Optional[Path] = None
        if self.shared_enabled:
            shared_file = self.shared_root / day / file_name
            result.shared_file = str(shared_file)

        # 1. Date folders
        local_ready = True
        try:
            local_dir.mkdir(parents=True, exist_ok=True)
        except _STEP_ERRORS as exc:
            local_ready = False
            self._fail(result, "create_local_folder", exc)

        shared_ready = shared_file is not None
        if shared_file is not None:
            try:
                shared_file.parent.mkdir(parents=True, exist_ok=True)
            except _STEP_ERRORS as exc:
                shared_ready = False
                self._fail(result, "create_shared_folder", exc)

        # 2. Shared log (annotation source)
        shared_log: Optional[SnapshotLog] = None
        if shared_file is not None and shared_ready:
            try:
                shared_log = load_snapshot_log(shared_file)
            except _STEP_ERRORS as exc:
                self._fail(result, "read_shared", exc)

        # 3. Local log
        local_log = SnapshotLog()
        if local_ready:
            try:
                local_log = read_snapshot_log(local_file)
            except _STEP_ERRORS as exc:
                # Rewriting after a failed read would drop the day's history
                local_ready = False
                self._fail(result, "read_local", exc)

        # 4. Append and carry annotations forward
        local_log.snapshots.append(snapshot)
        local_log.notify_interval = self.notify_interval
        if shared_log is not None:
            local_log.notify_record = list(shared_log.notify_record)

        # 5. Rewrite local log
        if local_ready:
            try:
                write_snapshot_log(local_file, local_log)
                result.local_written = True
                result.local_snapshot_count = len(local_log.snapshots)
            except _STEP_ERRORS as exc:
                self._fail(result, "write_local", exc)

        # 6. Shared mirror from the file just written
        if shared_file is not None and shared_ready and result.local_written:
            try:
                shared_copy = read_snapshot_log(local_file).latest(self.shared_max_snapshots)
                write_snapshot_log(shared_file, shared_copy)
                result.shared_written = True
                result.shared_snapshot_count = len(shared_copy.snapshots)
            except _STEP_ERRORS as exc:
                self._fail(result, "write_shared", exc)

        # 7. Retention
        try:
            result.sweep = sweep_expired_folders(
                self.retention_roots(), self.retention_days, today=day_date
            )
        except _STEP_ERRORS as exc:
            self._fail(result, "retention_sweep", exc)

        logger.info(
            "snapshot_persisted",
            local_file=result.local_file,
            shared_file=result.shared_file,
            local_written=result.local_written,
            shared_written=result.shared_written,
            local_snapshots=result.local_snapshot_count,
            shared_snapshots=result.shared_snapshot_count,
            deleted_folders=len(result.sweep.deleted) if result.sweep else 0,
            errors=len(result.errors),
        )
        return result

    def _snapshot_date(self, snapshot: Snapshot) -> date:
        """Day the snapshot belongs to, taken from its own timestamp."""
        try:
            return datetime.strptime(snapshot.timestamp, TIMESTAMP_FORMAT).date()
        except ValueError:
            logger.warning("snapshot_timestamp_unparsed", timestamp=snapshot.timestamp)
            return self._now().date()

    def retention_roots(self) -> list[Path]:
        roots = [self.local_root]
        if self.shared_enabled:
            roots.append(self.shared_root)
        return roots
