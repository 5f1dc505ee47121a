"""
Periodic Task
==============

A named coroutine run on a fixed interval, never overlapping itself.

APScheduler supplies the ticks; overlap protection lives here so a manual
trigger and a scheduled tick can never run the same task twice at once.
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from casetrack.shared.infrastructure.clock import Clock, SystemClock
from casetrack.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """
    Non-overlapping task wrapper with run bookkeeping.

    Errors raised by the task are logged and recorded; they never
    propagate into the scheduler.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        clock: Optional[Clock] = None
    ):
        self.name = name
        self.interval_seconds = interval_seconds
        self._func = func
        self._clock = clock or SystemClock()
        self._lock = asyncio.Lock()

        self.last_run: Optional[datetime] = None
        self.last_duration_ms: Optional[int] = None
        self.last_result: Any = None
        self.last_error: Optional[str] = None
        self.run_count = 0
        self.failure_count = 0
        self.skipped_count = 0

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run(self) -> bool:
        """
        Run once unless already running.

        Returns:
            True if the task ran (successfully or not), False if skipped
        """
        if self._lock.locked():
            self.skipped_count += 1
            logger.warning(
                "Previous run still active, tick skipped",
                extra={"task": self.name, "skipped_count": self.skipped_count}
            )
            return False

        async with self._lock:
            self.last_run = self._clock.now()
            self.run_count += 1
            start = time.perf_counter()
            try:
                self.last_result = await self._func()
                self.last_error = None
            except Exception as e:
                self.failure_count += 1
                self.last_error = f"{type(e).__name__}: {e}"
                logger.exception(
                    "Scheduled task failed",
                    extra={"task": self.name, "failure_count": self.failure_count}
                )
            finally:
                self.last_duration_ms = int((time.perf_counter() - start) * 1000)

        logger.info(
            "Scheduled task finished",
            extra={
                "task": self.name,
                "duration_ms": self.last_duration_ms,
                "success": self.last_error is None
            }
        )
        return True

    def status(self) -> Dict[str, Any]:
        return {
            "interval_seconds": self.interval_seconds,
            "running": self.is_running,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_duration_ms": self.last_duration_ms,
            "last_error": self.last_error,
            "run_count": self.run_count,
            "failure_count": self.failure_count,
            "skipped_count": self.skipped_count,
        }
