"""Snapshot assembly from the metric cache."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Optional

from .cache import MetricCache
from .models import DiskUsageEntry, Snapshot, TaskLogEntry, UrlStatusEntry

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_percent(value: float) -> str:
    return f"{value:.2f}%"


def assemble_snapshot(
    host_identity: str,
    cache: MetricCache,
    now: Optional[Callable[[], datetime]] = None,
) -> Snapshot:
    """Copy the current cache contents into a new Snapshot.

    Families that were not sampled this cycle contribute their previous
    value. No probe is triggered here.

    Args:
        host_identity: Identity resolved at startup
        cache: Metric cache owned by the scheduler
        now: Local-time source for the timestamp (default: datetime.now)
    """
    timestamp = (now or datetime.now)().strftime(TIMESTAMP_FORMAT)
    system = cache.system
    return Snapshot(
        host_identity=host_identity,
        timestamp=timestamp,
        cpu_usage=format_percent(system.cpu_percent),
        memory_usage=format_percent(system.memory_percent),
        disk_usage=tuple(
            DiskUsageEntry(drive=disk.drive, usage=format_percent(disk.used_percent))
            for disk in system.disks
        ),
        url_status=tuple(
            UrlStatusEntry(url=sample.url, status=sample.status_code, message=sample.message)
            for sample in cache.urls
        ),
        task_logs=tuple(
            TaskLogEntry(name=sample.name, status=sample.description, raw_state=sample.raw_state)
            for sample in cache.tasks
        ),
    )
