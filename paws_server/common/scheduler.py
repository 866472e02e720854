"""
Interval Scheduler

ScheduledLoop fires an async callback on fixed wall-clock boundaries,
accounting for callback execution time so periodic jobs (the retention
sweep) don't drift or pile up.

Usage:
    scheduler = ScheduledLoop(3600.0, janitor.sweep, name="retention")
    await scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
import time
from typing import Awaitable, Callable

from paws_server.common.logging_setup import get_service_logger

logger = get_service_logger("scheduler")

# Larger gaps than this are treated as a clock correction, not drift
CLOCK_JUMP_S = 30


class ScheduledLoop:
    """
    Interval scheduler that accounts for execution time.

    The next run is scheduled relative to the original boundary, not to when
    the callback finished. Missed intervals are skipped, never queued.

    Attributes:
        interval: Seconds between executions
        callback: Async function called each interval
        run_immediately: Fire once right after start() before aligning
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], Awaitable[object]],
        name: str = "unnamed",
        run_immediately: bool = False,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.interval = interval_seconds
        self.callback = callback
        self.name = name
        self.run_immediately = run_immediately

        self._next_run: float = 0
        self._running = False
        self._task: asyncio.Task | None = None

        self._execution_count = 0
        self._error_count = 0
        self._skipped_count = 0
        self._last_execution_time: float = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the loop in a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"scheduler:{self.name}")

    async def stop(self) -> None:
        """Stop the loop and wait for the background task to finish."""
        self._running = False
        task, self._task = self._task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        if self.run_immediately:
            await self._execute()

        # Align first run to next interval boundary
        now = time.time()
        self._next_run = ((now // self.interval) + 1) * self.interval

        while self._running:
            sleep_duration = self._next_run - time.time()
            if sleep_duration > 0:
                await asyncio.sleep(sleep_duration)

            if not self._running:
                break

            drift = time.time() - self._next_run
            if drift > CLOCK_JUMP_S:
                logger.info(
                    f"Scheduler '{self.name}' clock jump detected ({drift:.0f}s), realigning"
                )

            await self._execute()

            now = time.time()
            skipped = 0
            while self._next_run <= now:
                self._next_run += self.interval
                skipped += 1

            # First skip is the run we just executed
            if skipped > 1:
                self._skipped_count += skipped - 1
                logger.warning(
                    f"Scheduler '{self.name}' skipped {skipped - 1} intervals "
                    f"(execution took {self._last_execution_time:.3f}s)"
                )

    async def _execute(self) -> None:
        start = time.time()
        try:
            await self.callback()
            self._execution_count += 1
        except Exception as e:
            self._error_count += 1
            logger.error(f"Scheduled callback '{self.name}' error: {e}", exc_info=True)
        finally:
            self._last_execution_time = time.time() - start

    def get_stats(self) -> dict:
        """Scheduler statistics for the health endpoint."""
        return {
            "name": self.name,
            "interval_s": self.interval,
            "execution_count": self._execution_count,
            "error_count": self._error_count,
            "skipped_count": self._skipped_count,
            "last_execution_s": round(self._last_execution_time, 3),
        }
