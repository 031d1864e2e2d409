"""Latest successful sample of every metric family.

Owned by the scheduler's control loop: only the loop writes, and it does so
after a cycle's probes have all finished, so no locking is needed.
"""

from __future__ import annotations

import time
from typing import Any, Optional

from .models import MetricFamily, SystemSample, TaskSample, UrlSample


def _empty_value(family: MetricFamily) -> Any:
    if family is MetricFamily.DISK:
        return SystemSample(cpu_percent=0.0, memory_percent=0.0, disks=())
    return ()


class MetricCache:
    """Family -> latest value. Entries are overwritten, never cleared."""

    def __init__(self) -> None:
        self._values: dict[MetricFamily, Any] = {family: _empty_value(family) for family in MetricFamily}
        self._updated_at: dict[MetricFamily, Optional[float]] = {family: None for family in MetricFamily}

    def update(self, family: MetricFamily, value: Any, at: Optional[float] = None) -> None:
        self._values[family] = value
        self._updated_at[family] = time.time() if at is None else at

    def get(self, family: MetricFamily) -> Any:
        return self._values[family]

    def updated_at(self, family: MetricFamily) -> Optional[float]:
        """Clock reading of the last update, or None if never sampled."""
        return self._updated_at[family]

    @property
    def system(self) -> SystemSample:
        return self._values[MetricFamily.DISK]

    @property
    def urls(self) -> tuple[UrlSample, ...]:
        return tuple(self._values[MetricFamily.URL])

    @property
    def tasks(self) -> tuple[TaskSample, ...]:
        return tuple(self._values[MetricFamily.TASK])
