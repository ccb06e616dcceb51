"""
watcher.py

Responsibility: Sets up a watchdog file system observer that recursively
monitors the provisioning directory and forwards every file event to the
reload dispatcher on the asyncio event loop.
Does NOT: classify paths, debounce, or call the server.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from exceptions import WatchPathError

logger = logging.getLogger(__name__)

EventSink = Callable[[str, str], None]

# ---------------------------------------------------------------------------
# Event handler
# ---------------------------------------------------------------------------


class _ProvisioningDirectoryHandler(FileSystemEventHandler):
    """
    Watchdog event handler for the provisioning tree.

    Runs on the observer thread; it only hands (event_kind, path) pairs to
    the loop with call_soon_threadsafe and never touches dispatcher state.
    """

    def __init__(self, sink: EventSink, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self._sink = sink
        self._loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        """
        Called by watchdog for every event in the watched tree.

        Directory events and access-only events (opened/closed without a
        write) are ignored. For moves both the source and the destination
        path are forwarded.

        Args:
            event: The file system event describing what changed.

        Returns:
            None
        """
        if event.is_directory or event.event_type in ("opened", "closed_no_write"):
            return

        self._forward(event.event_type, event.src_path)
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            self._forward(event.event_type, dest_path)

    def _forward(self, event_kind: str, path: str | bytes) -> None:
        path = os.fsdecode(path)
        logger.debug("Provisioning change detected: %s %s", event_kind, path)
        try:
            self._loop.call_soon_threadsafe(self._sink, event_kind, path)
        except RuntimeError:
            # Loop already closed during shutdown.
            logger.debug("Event loop closed, dropping %s %s", event_kind, path)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


class ChangeWatcher:
    """
    Recursive watchdog observer over the provisioning directory.

    Collaborators:
        - watchdog Observer: runs on its own thread
        - sink: called on the event loop thread for every forwarded event
    """

    def __init__(self, watch_path: str, sink: EventSink, loop: asyncio.AbstractEventLoop) -> None:
        """
        Args:
            watch_path: Root of the provisioning tree.
            sink: Callable receiving (event_kind, path), normally
                  ReloadDispatcher.on_event.
            loop: The loop the sink must run on.
        """
        self._watch_path = watch_path
        self._handler = _ProvisioningDirectoryHandler(sink, loop)
        self._observer: Observer | None = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        """
        Starts the observer thread.

        Raises:
            WatchPathError: If the provisioning directory does not exist.
        """
        if not os.path.isdir(self._watch_path):
            raise WatchPathError(f"Provisioning directory {self._watch_path} does not exist")

        observer = Observer()
        observer.daemon = True
        observer.schedule(self._handler, path=self._watch_path, recursive=True)
        observer.start()
        self._observer = observer
        logger.info('Watching provisioning directory "%s"', self._watch_path)

    def stop(self, timeout: float = 2.0) -> None:
        """Stops the observer thread if it is running."""
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout)
        self._observer = None
