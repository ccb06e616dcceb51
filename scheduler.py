"""
scheduler.py

Responsibility: Sets up the APScheduler AsyncIOScheduler that drives the
per-target debounce timers, and exposes helpers to (re)schedule and cancel
one-shot delayed jobs by id.
Does NOT: know about reload targets, credentials, or HTTP calls.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def create_scheduler(loop: asyncio.AbstractEventLoop | None = None) -> AsyncIOScheduler:
    """
    Creates a configured (but not yet started) AsyncIOScheduler.

    Jobs must be coroutine functions so they run on the event loop rather
    than in the default thread pool.

    Args:
        loop: Event loop the scheduler is bound to. Defaults to the running
              loop, so call this from inside a coroutine.

    Returns:
        A configured but not yet started AsyncIOScheduler.
    """
    if loop is None:
        loop = asyncio.get_running_loop()
    scheduler = AsyncIOScheduler(event_loop=loop, timezone=timezone.utc)
    logger.debug("Debounce scheduler created.")
    return scheduler


def schedule_once(
    scheduler: AsyncIOScheduler,
    job_id: str,
    func: Callable[..., Any],
    run_date: datetime,
    kwargs: dict[str, Any] | None = None,
) -> Job:
    """
    Schedules func to run once at run_date, replacing any pending job with
    the same id.

    Args:
        scheduler: The scheduler owning the job.
        job_id: Stable id; at most one job per id exists at any time.
        func: Coroutine function to run.
        run_date: Timezone-aware datetime at which to run.
        kwargs: Keyword arguments passed to func.

    Returns:
        The scheduled APScheduler Job.
    """
    return scheduler.add_job(
        func,
        trigger="date",
        run_date=run_date,
        id=job_id,
        kwargs=kwargs or {},
        replace_existing=True,
        # NOTE: None runs the job however late the loop gets to it.
        misfire_grace_time=None,
    )


def deadline_after(seconds: float) -> datetime:
    """Returns the aware datetime `seconds` from now."""
    return utcnow() + timedelta(seconds=seconds)


def cancel(scheduler: AsyncIOScheduler, job_id: str) -> bool:
    """
    Removes a pending job if it exists.

    Returns:
        True if a job was removed, False if none was pending.
    """
    try:
        scheduler.remove_job(job_id)
    except JobLookupError:
        return False
    return True
