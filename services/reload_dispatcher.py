"""
services/reload_dispatcher.py

Responsibility: Turns raw filesystem events into debounced, authenticated
reload calls, one independent debounce timer per reload target.
Does NOT: watch the filesystem, provision credentials, or retry failed
reloads (the next qualifying change triggers a new attempt).
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from dataclasses import dataclass
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from admin_api.client import AdminApiClient
from admin_api.models import ServiceCredential
from exceptions import ApiError
from scheduler import cancel, deadline_after, schedule_once
from services.path_classifier import ReloadTarget, classify

logger = logging.getLogger(__name__)

# Event kind used for the reload issued once at startup
WARM_EVENT = "startup"


@dataclass
class PendingReload:
    """
    Debounce state for one target.

    Attributes:
        deadline: When the scheduled job fires (trailing policy) or when the
                  window closes (immediate policy).
        event_kind: Kind of the most recent qualifying event.
        path: Path of the most recent qualifying event.
    """

    deadline: datetime
    event_kind: str
    path: str


def _job_id(target: ReloadTarget) -> str:
    return f"reload:{target.value}"


class ReloadDispatcher:
    """
    Classifies change events and fires reload calls for the matching targets.

    Debounce policies:
        - trailing (default): every event (re)starts the target's window; one
          reload fires when the window elapses, carrying the latest event.
        - immediate: the first event of a burst fires at once and opens a
          fixed window; events inside the window are absorbed and do not
          extend it.

    Warm, trailing and immediate firings share one in-flight slot per
    target. A firing that comes due while that target's previous call is
    still awaiting the server runs as soon as the call completes.

    All state lives on the event loop thread. The watcher hands events over
    with loop.call_soon_threadsafe, so no locking is needed.

    Collaborators:
        - AdminApiClient: sends the reload POSTs
        - AsyncIOScheduler: one delayed job per target
    """

    def __init__(
        self,
        api: AdminApiClient,
        scheduler: AsyncIOScheduler,
        debounce_seconds: float = 2.0,
        immediate: bool = False,
        provisioning_path: str = "",
    ) -> None:
        """
        Args:
            api: Client used for the reload calls.
            scheduler: Scheduler driving the debounce timers.
            debounce_seconds: Length of the debounce window.
            immediate: Use the leading-edge policy instead of trailing.
            provisioning_path: Watched root; reported as the path of the warm
                reload and used when classifying event paths.
        """
        self._api = api
        self._scheduler = scheduler
        self._debounce_seconds = max(0.0, debounce_seconds)
        self._immediate = immediate
        self._provisioning_path = provisioning_path

        self._credential: ServiceCredential | None = None
        self._pending: dict[ReloadTarget, PendingReload] = {}
        # At most one reload call per target is outstanding; a firing that
        # comes due meanwhile waits here (latest event wins).
        self._in_flight: dict[ReloadTarget, asyncio.Task[bool]] = {}
        self._queued: dict[ReloadTarget, tuple[str, str]] = {}

    # ---------------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------------

    @property
    def armed(self) -> bool:
        return self._credential is not None

    def pending(self, target: ReloadTarget) -> PendingReload | None:
        """Returns the current debounce state for target, if any."""
        return self._pending.get(target)

    def start(self, credential: ServiceCredential) -> None:
        """
        Arms the dispatcher and issues one warm reload per target.

        Args:
            credential: Service credential used for every reload call.

        Raises:
            RuntimeError: If the dispatcher was already started.
        """
        if self._credential is not None:
            raise RuntimeError("ReloadDispatcher already started")
        self._credential = credential
        logger.info('Reloads will authenticate as "%s"', credential.login)

        for target in ReloadTarget:
            self._fire(target, WARM_EVENT, self._provisioning_path)

    def stop(self) -> None:
        """Drops pending debounce jobs, queued and in-flight reloads without firing them."""
        for target in list(self._pending):
            cancel(self._scheduler, _job_id(target))
        self._pending.clear()
        self._queued.clear()
        for task in list(self._in_flight.values()):
            task.cancel()

    def in_flight(self, target: ReloadTarget) -> bool:
        return target in self._in_flight

    # ---------------------------------------------------------------------------
    # Event sink
    # ---------------------------------------------------------------------------

    def on_event(self, event_kind: str, path: str | os.PathLike[str]) -> None:
        """
        Handles one raw filesystem event. Must be called on the loop thread.

        Args:
            event_kind: Watcher event name ("created", "modified", ...).
            path: Path the event refers to.
        """
        if self._credential is None:
            logger.debug("Dispatcher not armed, dropping %s %s", event_kind, path)
            return

        path = os.fspath(path)
        for target in classify(path, self._provisioning_path):
            if self._immediate:
                self._debounce_immediate(target, event_kind, path)
            else:
                self._debounce_trailing(target, event_kind, path)

    def _debounce_trailing(self, target: ReloadTarget, event_kind: str, path: str) -> None:
        deadline = deadline_after(self._debounce_seconds)
        self._pending[target] = PendingReload(deadline=deadline, event_kind=event_kind, path=path)
        schedule_once(
            self._scheduler,
            _job_id(target),
            self._fire_pending,
            run_date=deadline,
            kwargs={"target": target},
        )
        logger.debug("Reload of %s scheduled for %s", target.value, deadline.isoformat())

    def _debounce_immediate(self, target: ReloadTarget, event_kind: str, path: str) -> None:
        pending = self._pending.get(target)
        if pending is not None:
            pending.event_kind = event_kind
            pending.path = path
            return

        deadline = deadline_after(self._debounce_seconds)
        self._pending[target] = PendingReload(deadline=deadline, event_kind=event_kind, path=path)
        schedule_once(
            self._scheduler,
            _job_id(target),
            self._close_window,
            run_date=deadline,
            kwargs={"target": target},
        )
        self._fire(target, event_kind, path)

    # ---------------------------------------------------------------------------
    # Scheduler jobs
    # ---------------------------------------------------------------------------

    # NOTE: jobs hand off to _fire and return at once, so a slow reload never
    # holds the job's single running instance.
    async def _fire_pending(self, target: ReloadTarget) -> None:
        pending = self._pending.pop(target, None)
        if pending is None:
            return
        self._fire(target, pending.event_kind, pending.path)

    async def _close_window(self, target: ReloadTarget) -> None:
        self._pending.pop(target, None)

    # ---------------------------------------------------------------------------
    # Reload call
    # ---------------------------------------------------------------------------

    def _fire(self, target: ReloadTarget, event_kind: str, path: str) -> None:
        """Starts a reload for target, or queues it behind the one in flight."""
        if target in self._in_flight:
            self._queued[target] = (event_kind, path)
            logger.debug("Reload of %s in flight, queued %s %s", target.value, event_kind, path)
            return

        task = asyncio.get_running_loop().create_task(self.reload(target, event_kind, path))
        self._in_flight[target] = task
        task.add_done_callback(functools.partial(self._reload_done, target))

    def _reload_done(self, target: ReloadTarget, task: asyncio.Task[bool]) -> None:
        if self._in_flight.get(target) is task:
            del self._in_flight[target]
        queued = self._queued.pop(target, None)
        if queued is not None and not task.cancelled():
            self._fire(target, *queued)

    async def reload(self, target: ReloadTarget, event_kind: str, path: str) -> bool:
        """
        POSTs the target's reload endpoint with the service credential.

        Failures are logged as warnings and never raised.

        Args:
            target: Which configuration domain to reload.
            event_kind: Kind of the triggering event, for the log line.
            path: Path of the triggering event, for the log line.

        Returns:
            True if the server accepted the reload, False otherwise.
        """
        if self._credential is None:
            raise RuntimeError("ReloadDispatcher used before start()")

        headers = {"Authorization": self._credential.authorization_header()}
        try:
            body = await self._api.write_json(target.endpoint, {}, headers=headers)
        except ApiError as exc:
            logger.warning(
                'Reload failed: %s target=%s event="%s" path="%s"',
                exc,
                target.value,
                event_kind,
                path,
            )
            return False

        logger.info(
            'msg="%s" target=%s event="%s" path="%s"',
            body.get("message", ""),
            target.value,
            event_kind,
            path,
        )
        return True
