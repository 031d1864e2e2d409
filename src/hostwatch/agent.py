"""Monitor agent: wires probes, scheduler, assembler and store together."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Optional

import structlog

from .config.manager import ConfigManager
from .monitoring.assembler import assemble_snapshot
from .monitoring.cache import MetricCache
from .monitoring.models import MetricFamily, PersistResult, Snapshot
from .monitoring.probes import MetricProbes, resolve_host_identity
from .monitoring.scheduler import ProbeFn, RateScheduler, WaitFn, wait_for_stop
from .persistence.snapshot_store import SnapshotStore

logger = structlog.get_logger(__name__)

_INTERVAL_KEYS = {
    MetricFamily.DISK: "schedule.disk_interval_minutes",
    MetricFamily.URL: "schedule.url_interval_minutes",
    MetricFamily.TASK: "schedule.task_interval_minutes",
}


class MonitorAgent:
    """Runs the sampling scheduler and persists a snapshot after each cycle."""

    def __init__(
        self,
        probes: Mapping[MetricFamily, ProbeFn],
        store: SnapshotStore,
        periods: Mapping[MetricFamily, float],
        host_identity: str,
        align_to_clock: bool = True,
        fault_cooldown_seconds: float = 5.0,
        clock: Callable[[], float] = time.time,
        waiter: WaitFn = wait_for_stop,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.host_identity = host_identity
        self.align_to_clock = align_to_clock
        self.fault_cooldown_seconds = fault_cooldown_seconds
        self._clock = clock
        self._now = now
        self.scheduler = RateScheduler(
            periods=periods,
            probes=probes,
            on_cycle=self._on_cycle,
            clock=clock,
            waiter=waiter,
            fault_cooldown_seconds=fault_cooldown_seconds,
        )
        self.last_snapshot: Optional[Snapshot] = None
        self.last_result: Optional[PersistResult] = None
        self._stop = asyncio.Event()

    @classmethod
    def from_config(cls, config: ConfigManager) -> MonitorAgent:
        """Build an agent from loaded configuration."""
        host_identity = config.get("agent.host_identity") or resolve_host_identity()
        probes = MetricProbes(
            urls=config.get("url.targets"),
            url_enabled=config.get("url.enabled"),
            url_timeout_seconds=config.get("url.timeout_seconds"),
            task_enabled=config.get("tasks.enabled"),
            task_folder=config.get("tasks.folder"),
            task_backend=config.get("tasks.backend"),
        )
        store = SnapshotStore(
            local_root=config.get("storage.local_path"),
            shared_root=config.get("storage.shared_path") or None,
            shared_enabled=config.get("storage.shared_enabled"),
            retention_days=config.get("storage.retention_days"),
            shared_max_snapshots=config.get("storage.shared_max_snapshots"),
            notify_interval=config.get("storage.notify_interval"),
        )
        periods = {family: config.get(key) * 60 for family, key in _INTERVAL_KEYS.items()}
        logger.info(
            "monitor_agent_configured",
            host_identity=host_identity,
            url_enabled=probes.url_enabled,
            url_count=len(probes.urls),
            task_enabled=probes.task_enabled,
            shared_enabled=store.shared_enabled,
        )
        return cls(
            probes=probes.by_family(),
            store=store,
            periods=periods,
            host_identity=host_identity,
            align_to_clock=config.get("schedule.align_to_clock"),
            fault_cooldown_seconds=config.get("schedule.fault_cooldown_seconds"),
        )

    @property
    def cache(self) -> MetricCache:
        return self.scheduler.cache

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run in the foreground until request_stop() is called."""
        self.scheduler.start(align_to_clock=self.align_to_clock)
        logger.info("monitor_agent_started", host_identity=self.host_identity)
        await self.scheduler.run(self._stop)
        logger.info("monitor_agent_stopped", cycles=self.scheduler.cycles)

    async def run_once(self) -> Optional[PersistResult]:
        """Sample every family once, persist one snapshot and return its result."""
        self.scheduler.start(start_at=self._clock(), align_to_clock=False)
        await self.scheduler.run_once(self._stop)
        return self.last_result

    def request_stop(self) -> None:
        """Signal-handler friendly stop: sets the stop event only."""
        self._stop.set()

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def _on_cycle(self, cache: MetricCache, due: list[MetricFamily]) -> None:
        snapshot = assemble_snapshot(self.host_identity, cache, now=self._now)
        self._log_snapshot(snapshot, due)
        result = await asyncio.to_thread(self.store.persist, snapshot)
        self.last_snapshot = snapshot
        self.last_result = result
        for message in result.errors:
            logger.warning("snapshot_persist_error", error=message)
        if result.sweep:
            for folder, error in result.sweep.failed:
                logger.warning("retention_delete_failed", folder=folder, error=error)

    def _log_snapshot(self, snapshot: Snapshot, due: list[MetricFamily]) -> None:
        logger.info(
            "snapshot_sampled",
            due=[family.value for family in due],
            cpu_usage=snapshot.cpu_usage,
            memory_usage=snapshot.memory_usage,
        )
        for disk in snapshot.disk_usage:
            logger.info("disk_usage", drive=disk.drive, usage=disk.usage)
        for url in snapshot.url_status:
            log = logger.info if url.status else logger.warning
            log("url_status", url=url.url, status=url.status, message=url.message)
        for task in snapshot.task_logs:
            logger.info("task_status", name=task.name, status=task.status, raw_state=task.raw_state)
