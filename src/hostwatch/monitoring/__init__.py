"""Metric sampling: probes, cache, multi-rate scheduler and snapshot assembly."""

from .assembler import assemble_snapshot
from .cache import MetricCache
from .errors import MonitorError
from .models import MetricFamily, Snapshot, SnapshotLog
from .probes import MetricProbes, resolve_host_identity
from .scheduler import RateScheduler, ScheduleState

__all__ = [
    "MetricCache",
    "MetricFamily",
    "MetricProbes",
    "MonitorError",
    "RateScheduler",
    "ScheduleState",
    "Snapshot",
    "SnapshotLog",
    "assemble_snapshot",
    "resolve_host_identity",
]
