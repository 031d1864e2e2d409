"""Multi-rate sampling scheduler.

Each metric family has a fixed period and its own next-due instant. The loop
sleeps until the earliest due instant, runs every family that is due at
that moment concurrently, stores the results in the MetricCache once all of
them have finished, then hands the cache to the cycle callback (snapshot
assembly and persistence).

Due instants advance on a fixed grid: next_due += period, applied before the
probe starts. A probe that overruns its period therefore makes the next
wake immediate instead of shifting the grid.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import structlog

from .cache import MetricCache
from .models import MetricFamily

logger = structlog.get_logger(__name__)

ProbeFn = Callable[[], Awaitable[Any]]
CycleFn = Callable[[MetricCache, list[MetricFamily]], Awaitable[None]]
# (delay_seconds, stop) -> True if stop was signalled during the wait
WaitFn = Callable[[float, asyncio.Event], Awaitable[bool]]


@dataclass
class ScheduleState:
    """Period and next due instant of one family (seconds)."""

    period: float
    next_due: float


async def wait_for_stop(delay: float, stop: asyncio.Event) -> bool:
    """Sleep for delay seconds unless stop is set first.

    Returns:
        True if stop is set, False if the delay elapsed.
    """
    if stop.is_set():
        return True
    if delay <= 0:
        return False
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return stop.is_set()
    return True


def next_aligned_instant(now: float, period: float) -> float:
    """Next local wall-clock multiple of period, counted from local midnight.

    Example: period 600 at 10:07:30 -> 10:10:00. Always strictly after now.
    """
    local = datetime.fromtimestamp(now)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0).timestamp()
    blocks = int((now - midnight) // period) + 1
    return midnight + blocks * period


class RateScheduler:
    """Drives independent metric families at independent rates."""

    def __init__(
        self,
        periods: Mapping[MetricFamily, float],
        probes: Mapping[MetricFamily, ProbeFn],
        on_cycle: CycleFn,
        cache: Optional[MetricCache] = None,
        clock: Callable[[], float] = time.time,
        waiter: WaitFn = wait_for_stop,
        fault_cooldown_seconds: float = 5.0,
    ):
        """
        Args:
            periods: Sampling period per family, in seconds (> 0)
            probes: Zero-argument coroutine function per family
            on_cycle: Awaited after every cycle that serviced at least one family
            cache: Cache to update (a fresh one by default)
            clock: Returns the current time in seconds
            waiter: Interruptible sleep; injectable for tests
            fault_cooldown_seconds: Pause after an unexpected cycle failure

        Raises:
            ValueError: If a period is not positive or a family lacks a probe
        """
        if set(periods) != set(probes):
            raise ValueError("periods and probes must cover the same families")
        for family, period in periods.items():
            if period <= 0:
                raise ValueError(f"period for {family.value} must be positive, got {period}")

        self.cache = cache if cache is not None else MetricCache()
        self._periods = dict(periods)
        self._probes = dict(probes)
        self._on_cycle = on_cycle
        self._clock = clock
        self._waiter = waiter
        self.fault_cooldown_seconds = fault_cooldown_seconds
        self._states: dict[MetricFamily, ScheduleState] = {}
        self.cycles = 0

    # ------------------------------------------------------------------
    # Schedule state
    # ------------------------------------------------------------------

    def start(self, start_at: Optional[float] = None, align_to_clock: bool = False) -> None:
        """Set every family's first due instant.

        Args:
            start_at: First due instant for all families (default: now)
            align_to_clock: Use each family's next wall-clock multiple instead
        """
        now = self._clock() if start_at is None else start_at
        self._states = {}
        for family, period in self._periods.items():
            first = next_aligned_instant(now, period) if align_to_clock else now
            self._states[family] = ScheduleState(period=period, next_due=first)
        logger.info(
            "scheduler_started",
            periods={family.value: period for family, period in self._periods.items()},
            first_due={family.value: state.next_due for family, state in self._states.items()},
        )

    def period(self, family: MetricFamily) -> float:
        return self._periods[family]

    def next_due(self, family: MetricFamily) -> float:
        return self._states[family].next_due

    def next_wake(self) -> float:
        return min(state.next_due for state in self._states.values())

    def due_families(self, now: float) -> list[MetricFamily]:
        """Every family whose due instant has passed, not only the earliest."""
        return [family for family, state in self._states.items() if now >= state.next_due]

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self, stop: asyncio.Event) -> None:
        """Run cycles until stop is set.

        Unexpected failures inside a cycle are logged and followed by a
        cooldown; they never end the loop.
        """
        if not self._states:
            self.start()

        while not stop.is_set():
            try:
                stopped = await self.run_once(stop)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error("scheduler_cycle_failed", error=str(exc), exc_info=True)
                stopped = await self._waiter(self.fault_cooldown_seconds, stop)
            if stopped:
                break

        logger.info("scheduler_stopped", cycles=self.cycles)

    async def run_once(self, stop: asyncio.Event) -> bool:
        """Sleep until the next due instant and service every due family.

        Returns:
            True if stop was signalled; nothing is persisted in that case.
        """
        if not self._states:
            self.start()

        delay = self.next_wake() - self._clock()
        if await self._waiter(delay, stop):
            return True

        now = self._clock()
        due = self.due_families(now)
        if not due:
            return False

        for family in due:
            self._states[family].next_due += self._states[family].period

        results = await self._run_probes(due, stop)
        if results is None:
            return True

        completed_at = self._clock()
        for family, result in zip(due, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "probe_failed",
                    family=family.value,
                    error=str(result) or type(result).__name__,
                    error_type=type(result).__name__,
                )
                continue
            self.cache.update(family, result, at=completed_at)

        self.cycles += 1
        logger.debug(
            "scheduler_cycle_complete",
            due=[family.value for family in due],
            next_due={family.value: state.next_due for family, state in self._states.items()},
        )
        await self._on_cycle(self.cache, due)
        return False

    async def _run_probes(
        self, due: list[MetricFamily], stop: asyncio.Event
    ) -> Optional[list[Any]]:
        """Run due probes concurrently and wait for all of them.

        Returns:
            One result or exception per family, in order; None if stop won.
        """
        gathered = asyncio.ensure_future(
            asyncio.gather(*(self._probes[family]() for family in due), return_exceptions=True)
        )
        stop_wait = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait({gathered, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            gathered.cancel()
            raise
        finally:
            if not stop_wait.done():
                stop_wait.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await stop_wait

        if gathered.done():
            return list(gathered.result())

        gathered.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await gathered
        logger.info("scheduler_probes_cancelled", due=[family.value for family in due])
        return None
