"""
app.py

Responsibility: Process entry point. Runs the startup sequence as an explicit
state machine (health gate → identity provisioning → watching), installs
signal handlers, and maps the outcome to an exit code.
Does NOT: contain HTTP, provisioning, or debounce logic; those are delegated
to the services it wires together.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Awaitable, Callable
from enum import Enum

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from admin_api.client import AdminApiClient
from admin_api.models import ServiceCredential
from config import TargetConfig, load_config
from exceptions import StartupError
from logger import configure_logging
from repositories.credential_repository import CredentialRepository
from scheduler import create_scheduler
from services.health_gate import HealthGate
from services.identity_provisioner import IdentityProvisioner
from services.reload_dispatcher import ReloadDispatcher
from watcher import ChangeWatcher

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1


class DaemonState(str, Enum):
    IDLE = "idle"
    AWAITING_HEALTH = "awaiting_health"
    PROVISIONING_IDENTITY = "provisioning_identity"
    WATCHING = "watching"
    SHUTTING_DOWN = "shutting_down"


class Daemon:
    """
    Owns every long-lived component for one target server.

    Startup is strictly sequential; the watcher is only started once the
    dispatcher holds the service credential, and the warm reload covers any
    change made while the daemon was starting.

    Collaborators:
        - HealthGate, IdentityProvisioner, ReloadDispatcher, ChangeWatcher
        - httpx.AsyncClient: injected; must be kept alive externally
    """

    def __init__(
        self,
        config: TargetConfig,
        http_client: httpx.AsyncClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.state = DaemonState.IDLE
        self._sleep = sleep

        self.api = AdminApiClient(http_client, config)
        self.health_gate = HealthGate(
            self.api,
            retries=config.health_retries,
            retry_delay=config.health_retry_delay,
            sleep=sleep,
        )
        self.provisioner = IdentityProvisioner(self.api, CredentialRepository(config.credential_file))

        self.credential: ServiceCredential | None = None
        self.scheduler: AsyncIOScheduler | None = None
        self.dispatcher: ReloadDispatcher | None = None
        self.watcher: ChangeWatcher | None = None
        self._stop_requested: asyncio.Event | None = None

    # ---------------------------------------------------------------------------
    # State machine
    # ---------------------------------------------------------------------------

    def _transition(self, state: DaemonState) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state

    async def start(self) -> None:
        """
        Runs the startup chain up to the WATCHING state.

        Raises:
            StartupError: From whichever step failed; the daemon is left in
                          the state of that step.
            RuntimeError: If called twice.
        """
        if self.state is not DaemonState.IDLE:
            raise RuntimeError(f"Daemon cannot start from state {self.state.value}")

        if self.config.startup_delay > 0:
            logger.info("Waiting %.1fs before the first health check.", self.config.startup_delay)
            await self._sleep(self.config.startup_delay)

        self._transition(DaemonState.AWAITING_HEALTH)
        await self.health_gate.await_ready()

        self._transition(DaemonState.PROVISIONING_IDENTITY)
        self.credential = await self.provisioner.resolve_credential()

        loop = asyncio.get_running_loop()
        self.scheduler = create_scheduler(loop)
        self.scheduler.start()
        self.dispatcher = ReloadDispatcher(
            self.api,
            self.scheduler,
            debounce_seconds=self.config.debounce_seconds,
            immediate=self.config.debounce_immediate,
            provisioning_path=self.config.provisioning_path,
        )
        self.dispatcher.start(self.credential)

        self.watcher = ChangeWatcher(self.config.provisioning_path, self.dispatcher.on_event, loop)
        self.watcher.start()
        self._transition(DaemonState.WATCHING)

    def shutdown(self) -> None:
        """Stops the watcher and drops pending reloads. Nothing is drained."""
        if self.state is DaemonState.SHUTTING_DOWN:
            return
        self._transition(DaemonState.SHUTTING_DOWN)
        if self.watcher is not None:
            self.watcher.stop()
        if self.dispatcher is not None:
            self.dispatcher.stop()
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def request_stop(self, reason: str = "stop requested") -> None:
        """Asks run() to exit with EXIT_OK. Safe to call from a signal handler."""
        logger.info("Received %s, exiting...", reason)
        if self._stop_requested is not None:
            self._stop_requested.set()

    # ---------------------------------------------------------------------------
    # Run loop
    # ---------------------------------------------------------------------------

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request_stop, f"signal {sig.name}")

    async def run(self, install_signal_handlers: bool = True) -> int:
        """
        Starts the daemon and runs until a stop is requested.

        Args:
            install_signal_handlers: Register SIGINT/SIGTERM handlers on the
                                     running loop.

        Returns:
            EXIT_OK after a requested stop, EXIT_FATAL if startup failed.
        """
        self._stop_requested = asyncio.Event()
        if install_signal_handlers:
            self._install_signal_handlers(asyncio.get_running_loop())

        startup = asyncio.create_task(self.start())
        stopped = asyncio.create_task(self._stop_requested.wait())
        done, _ = await asyncio.wait({startup, stopped}, return_when=asyncio.FIRST_COMPLETED)

        if startup in done:
            exc = startup.exception()
            if exc is not None:
                if isinstance(exc, StartupError):
                    logger.error("Startup failed in state %s: %s", self.state.value, exc)
                else:
                    logger.error("Unexpected error during startup", exc_info=exc)
                stopped.cancel()
                self.shutdown()
                return EXIT_FATAL
            await stopped
        else:
            startup.cancel()

        self.shutdown()
        return EXIT_OK


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(config: TargetConfig) -> int:
    async with httpx.AsyncClient(timeout=config.request_timeout) as http_client:
        return await Daemon(config, http_client).run()


def main() -> None:
    config = load_config()
    configure_logging(config.log_level)
    logger.info("Provisioning reloader starting for %s", config.base_url)
    sys.exit(asyncio.run(_run(config)))


if __name__ == "__main__":
    main()
