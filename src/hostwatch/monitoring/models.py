"""Monitoring data models and the persisted snapshot-log format.

Probe results are plain dataclasses returned by the probes and held in the
MetricCache. A Snapshot is the frozen, formatted record assembled from the
cache; a SnapshotLog is the JSON document written per host per day.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional


class MetricFamily(str, enum.Enum):
    """Independently scheduled metric categories."""

    DISK = "disk"  # disk usage plus the CPU/memory pair
    URL = "url"
    TASK = "task"


# ---------------------------------------------------------------------------
# Probe results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiskSample:
    """Used space of one fixed volume."""

    drive: str  # mount point or drive root, e.g. "/" or "C:\\"
    used_percent: float


@dataclass(frozen=True)
class SystemSample:
    """Result of the Disk family: CPU/memory pair plus every fixed volume."""

    cpu_percent: float
    memory_percent: float
    disks: tuple[DiskSample, ...] = ()


@dataclass(frozen=True)
class UrlSample:
    """Outcome of one URL probe.

    status_code 0 means the request never produced an HTTP response
    (timeout, DNS, TLS, refused connection); message then says why.
    """

    url: str
    status_code: int
    message: str


@dataclass(frozen=True)
class TaskSample:
    """State of one scheduled job."""

    name: str
    description: str  # human-readable state, last result appended
    raw_state: str  # status text exactly as reported by the scheduler


# ---------------------------------------------------------------------------
# Snapshot and persisted log
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiskUsageEntry:
    drive: str
    usage: str  # formatted percentage, e.g. "55.10%"

    def to_dict(self) -> dict[str, Any]:
        return {"drive": self.drive, "usage": self.usage}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiskUsageEntry:
        return cls(drive=str(data["drive"]), usage=str(data["usage"]))


@dataclass(frozen=True)
class UrlStatusEntry:
    url: str
    status: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "status": self.status, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UrlStatusEntry:
        return cls(
            url=str(data["url"]),
            status=int(data["status"]),
            message=str(data.get("message", "")),
        )


@dataclass(frozen=True)
class TaskLogEntry:
    name: str
    status: str
    raw_state: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "status": self.status, "rawState": self.raw_state}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskLogEntry:
        return cls(
            name=str(data["name"]),
            status=str(data["status"]),
            raw_state=str(data.get("rawState", "")),
        )


@dataclass(frozen=True)
class Snapshot:
    """One point-in-time record combining the latest value of every family."""

    host_identity: str
    timestamp: str  # local time, "YYYY-MM-DD HH:MM:SS"
    cpu_usage: str
    memory_usage: str
    disk_usage: tuple[DiskUsageEntry, ...] = ()
    url_status: tuple[UrlStatusEntry, ...] = ()
    task_logs: tuple[TaskLogEntry, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "hostIdentity": self.host_identity,
            "timestamp": self.timestamp,
            "cpuUsage": self.cpu_usage,
            "memoryUsage": self.memory_usage,
            "diskUsage": [entry.to_dict() for entry in self.disk_usage],
            "urlStatus": [entry.to_dict() for entry in self.url_status],
            "taskLogs": [entry.to_dict() for entry in self.task_logs],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        """Parse a persisted snapshot.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed.
        """
        if not isinstance(data, dict):
            raise TypeError(f"snapshot must be an object, got {type(data).__name__}")
        return cls(
            host_identity=str(data["hostIdentity"]),
            timestamp=str(data["timestamp"]),
            cpu_usage=str(data["cpuUsage"]),
            memory_usage=str(data["memoryUsage"]),
            disk_usage=tuple(DiskUsageEntry.from_dict(d) for d in data.get("diskUsage", [])),
            url_status=tuple(UrlStatusEntry.from_dict(u) for u in data.get("urlStatus", [])),
            task_logs=tuple(TaskLogEntry.from_dict(t) for t in data.get("taskLogs", [])),
        )


@dataclass
class SnapshotLog:
    """Persisted per-host, per-day file.

    notify_record belongs to operators and external tooling: the agent
    carries it forward verbatim and never adds or removes entries itself.
    """

    notify_interval: int = 0
    notify_record: list[str] = field(default_factory=list)
    snapshots: list[Snapshot] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "notifyInterval": self.notify_interval,
            "notifyRecord": list(self.notify_record),
            "snapshots": [snapshot.to_dict() for snapshot in self.snapshots],
        }

    @classmethod
    def from_dict(cls, data: Any) -> SnapshotLog:
        """Parse a persisted log document.

        Raises:
            KeyError, TypeError, ValueError: If the document is malformed.
        """
        if not isinstance(data, dict):
            raise TypeError(f"snapshot log must be an object, got {type(data).__name__}")
        notify_record = data.get("notifyRecord", [])
        snapshots = data.get("snapshots", [])
        if not isinstance(notify_record, list) or not isinstance(snapshots, list):
            raise TypeError("notifyRecord and snapshots must be lists")
        return cls(
            notify_interval=int(data.get("notifyInterval", 0)),
            notify_record=[str(record) for record in notify_record],
            snapshots=[Snapshot.from_dict(item) for item in snapshots],
        )

    def latest(self, count: int) -> SnapshotLog:
        """Return a copy keeping only the most recent count snapshots (0 keeps all)."""
        snapshots = list(self.snapshots)
        if count > 0:
            snapshots = snapshots[-count:]
        return SnapshotLog(
            notify_interval=self.notify_interval,
            notify_record=list(self.notify_record),
            snapshots=snapshots,
        )


# ---------------------------------------------------------------------------
# Store / sweeper reports
# ---------------------------------------------------------------------------


@dataclass
class SweepReport:
    """Outcome of one retention sweep."""

    deleted: list[str] = field(default_factory=list)
    failed: list[tuple[str, str]] = field(default_factory=list)  # (folder, error)
    missing_roots: list[str] = field(default_factory=list)


@dataclass
class PersistResult:
    """Outcome of SnapshotStore.persist; every step reports independently."""

    local_file: Optional[str] = None
    shared_file: Optional[str] = None
    local_written: bool = False
    shared_written: bool = False
    local_snapshot_count: int = 0
    shared_snapshot_count: int = 0
    errors: list[str] = field(default_factory=list)
    sweep: Optional[SweepReport] = None

    @property
    def ok(self) -> bool:
        return not self.errors and not (self.sweep and self.sweep.failed)
