"""
Clock source: APScheduler interval jobs for the countdown and flush ticks.

Jobs are registered as coroutines so the AsyncIOScheduler runs them on the
event-loop thread. Every tick, and anything marshalled through call_soon(),
is therefore serialized on that one thread.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

COUNTDOWN_JOB = "countdown"
FLUSH_JOB = "flush"
COUNTDOWN_INTERVAL_S = 1


async def _dispatch(callback: Callable[[], None]) -> None:
    """Entry point called by APScheduler on the event loop."""
    callback()


class TickScheduler:
    """Registers and cancels periodic callbacks on an AsyncIOScheduler."""

    def __init__(self, scheduler: AsyncIOScheduler, loop: asyncio.AbstractEventLoop | None = None):
        self.scheduler = scheduler
        self.loop = loop

    def every(self, job_id: str, seconds: int, callback: Callable[[], None], run_now: bool = False) -> None:
        """Run callback every `seconds`; optionally fire once right away."""
        kwargs = {}
        if run_now:
            kwargs["next_run_time"] = datetime.now().astimezone()
        self.scheduler.add_job(
            _dispatch,
            trigger=IntervalTrigger(seconds=seconds),
            args=[callback],
            id=job_id,
            name=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **kwargs,
        )
        logger.debug(f"Armed '{job_id}' every {seconds}s (run_now={run_now})")

    def cancel(self, job_id: str) -> bool:
        """Remove a job synchronously. Returns False if it was not armed."""
        if self.scheduler.get_job(job_id) is None:
            return False
        self.scheduler.remove_job(job_id)
        logger.debug(f"Cancelled '{job_id}'")
        return True

    def is_armed(self, job_id: str) -> bool:
        return self.scheduler.get_job(job_id) is not None

    def call_soon(self, callback: Callable, *args) -> None:
        """Marshal a call from another thread onto the scheduler's loop."""
        if self.loop is None:
            raise RuntimeError("TickScheduler has no event loop to marshal onto")
        self.loop.call_soon_threadsafe(callback, *args)
