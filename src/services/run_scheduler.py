# src/services/run_scheduler.py

"""Debounced, single-flight trigger for pipeline runs."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from src.config.settings import Settings

logger = logging.getLogger("product_finder.scheduler")


class RunScheduler:
    """Coalesce bursts of triggers into at most one run in flight.

    The first trigger schedules a run after ``debounce_seconds``.  Any
    trigger arriving while that run is waiting or executing only raises a
    pending flag; when the run finishes the flag causes exactly one more
    run.  The queue of waiting runs is therefore bounded at one.
    """

    def __init__(
        self,
        run: Callable[[], Awaitable[object]],
        debounce_seconds: float | None = None,
    ) -> None:
        self._run = run
        self.debounce_seconds = (
            Settings.DEBOUNCE_SECONDS
            if debounce_seconds is None
            else debounce_seconds
        )
        self._task: asyncio.Task[None] | None = None
        self._pending: bool = False
        self.runs_started: int = 0

    @property
    def busy(self) -> bool:
        """True while a run is scheduled or executing."""
        return self._task is not None and not self._task.done()

    def trigger(self) -> bool:
        """Request a run.

        Returns True if a new run was scheduled, False if the request was
        folded into a run already waiting or in flight.
        """
        if self.busy:
            self._pending = True
            logger.info("Run already scheduled, trigger coalesced")
            return False
        self._pending = False
        self._task = asyncio.get_running_loop().create_task(
            self._drive()
        )
        logger.info(
            "Run scheduled in %.1fs", self.debounce_seconds
        )
        return True

    async def _drive(self) -> None:
        """Debounce, run, and repeat once per pending flag."""
        while True:
            await asyncio.sleep(self.debounce_seconds)
            # Triggers that arrived during the debounce ride along
            self._pending = False
            self.runs_started += 1
            try:
                await self._run()
            except Exception as exc:
                logger.error(
                    "Triggered run failed: %s", exc, exc_info=True
                )
            if not self._pending:
                break
            logger.info("Trigger arrived during run, running again")

    async def wait_idle(self) -> None:
        """Wait until no run is scheduled or executing."""
        while self._task is not None and not self._task.done():
            await self._task
