"""
Scheduler module for the DNS failover controller.

Runs a check cycle on a fixed interval and serves manual triggers. Every
cycle, scheduled or manual, runs under one single-flight lock:

- a scheduled tick that finds a cycle running is skipped and logged
- a manual trigger while busy raises CycleInProgressError

A running cycle is never cancelled part-way.
"""

import asyncio
from typing import TYPE_CHECKING, AsyncIterator, Optional

from .enums import CycleTrigger, LogLevel
from .events import CycleEvent, CycleFinished
from .exceptions import CycleInProgressError, PersistenceError
from .failure_counter import FailureCounter
from .models import CheckReport

if TYPE_CHECKING:
    from .audit_logger import AuditLogger
    from .failover_engine import FailoverEngine
    from .reporter import Reporter


class Scheduler:
    """
    Interval scheduler with a single-flight guard.

    The consecutive infra-failure counter belongs to the engine it drives;
    `failure_counter` exposes that same object.
    """

    def __init__(
        self,
        engine: "FailoverEngine",
        reporter: Optional["Reporter"] = None,
        interval_seconds: int = 300,
        logger: Optional["AuditLogger"] = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            engine: Failover engine shared by scheduled and manual cycles
            reporter: Optional reporter that receives every scheduled report
            interval_seconds: Pause between the end of one tick and the next
            logger: Optional audit logger
        """
        if interval_seconds < 1:
            raise ValueError("interval_seconds must be >= 1")
        self._engine = engine
        self._reporter = reporter
        self._interval_seconds = interval_seconds
        self._logger = logger
        self._lock = asyncio.Lock()
        self._running = False

    @property
    def failure_counter(self) -> FailureCounter:
        return self._engine.failure_counter

    @property
    def interval_seconds(self) -> int:
        return self._interval_seconds

    def is_busy(self) -> bool:
        """Check if a cycle is currently running."""
        return self._lock.locked()

    async def run_cycle(
        self, trigger: CycleTrigger = CycleTrigger.SCHEDULED
    ) -> Optional[CheckReport]:
        """
        Run one cycle unless another is in flight.

        Returns:
            The cycle report, or None if the tick was skipped or aborted
        """
        if self._lock.locked():
            self._log(
                LogLevel.WARN,
                f"{trigger.value} check skipped, previous check still running",
                {"trigger": trigger.value},
            )
            return None

        async with self._lock:
            try:
                return await self._engine.run_cycle(trigger)
            except PersistenceError as e:
                self._log(
                    LogLevel.ERROR,
                    "Check aborted, state store unavailable",
                    {"trigger": trigger.value, "error_code": e.code, "error": e.message},
                )
                return None

    async def stream_manual(self) -> AsyncIterator[CycleEvent]:
        """
        Run a manual cycle, yielding its progress events.

        Raises:
            CycleInProgressError: If a cycle is already running
            PersistenceError: If the state store is unavailable at cycle start
        """
        if self._lock.locked():
            raise CycleInProgressError(
                code="cycle_in_progress",
                message="A check is already running",
            )

        async with self._lock:
            async for event in self._engine.stream_cycle(CycleTrigger.MANUAL):
                yield event

    async def trigger_manual(self) -> CheckReport:
        """
        Run a manual cycle to completion.

        Raises:
            CycleInProgressError: If a cycle is already running
            PersistenceError: If the state store is unavailable at cycle start
        """
        report: Optional[CheckReport] = None
        async for event in self.stream_manual():
            if isinstance(event, CycleFinished):
                report = event.report
        assert report is not None
        return report

    async def tick(self) -> Optional[CheckReport]:
        """Run one scheduled cycle and hand its report to the reporter."""
        report = await self.run_cycle(CycleTrigger.SCHEDULED)
        if report is not None and self._reporter is not None:
            await self._reporter.send(report)
        return report

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Run the scheduler loop.

        Args:
            stop_event: Optional event to signal the scheduler to stop
        """
        self._running = True
        self._log(
            LogLevel.INFO,
            "Scheduler started",
            {"interval_seconds": self._interval_seconds},
        )

        while self._running:
            try:
                await self.tick()
            except Exception as e:
                # Keep ticking; the next cycle retries from persisted state
                self._log(
                    LogLevel.ERROR,
                    f"Scheduled check crashed: {e}",
                    {"error_type": type(e).__name__},
                )

            if stop_event is not None and stop_event.is_set():
                break

            if stop_event is None:
                await asyncio.sleep(self._interval_seconds)
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                pass

        self._running = False
        self._log(LogLevel.INFO, "Scheduler stopped", {})

    def stop(self) -> None:
        """Signal the scheduler to stop after the current tick."""
        self._running = False

    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._running

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "Scheduler", message, data)
