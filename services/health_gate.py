"""
services/health_gate.py

Responsibility: Blocks startup until the target server reports itself
healthy, with a bounded number of attempts and exponential backoff.
Does NOT: provision credentials or decide how the process exits.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from admin_api.client import AdminApiClient
from exceptions import ApiConnectionError, DatabaseUnhealthyError, HealthCheckError

logger = logging.getLogger(__name__)

# Upper bound for a single backoff sleep
_MAX_DELAY = 60.0


class HealthGate:
    """
    Polls GET /api/health until the server is ready.

    A reported database failure aborts immediately instead of consuming the
    remaining attempts. Connection errors and other non-200 statuses are
    retried.

    Collaborators:
        - AdminApiClient: performs the unauthenticated probe
    """

    def __init__(
        self,
        api: AdminApiClient,
        retries: int = 5,
        retry_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            api: Client used for the health probe.
            retries: Total number of attempts (at least 1).
            retry_delay: Delay after the first failed attempt; doubled after
                         each further failure.
            sleep: Awaitable sleep, injectable for tests.
        """
        self._api = api
        self._retries = max(1, retries)
        self._retry_delay = max(0.0, retry_delay)
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (0-based)."""
        return min(self._retry_delay * (2 ** attempt), _MAX_DELAY)

    async def await_ready(self) -> None:
        """
        Returns once the server answers 200 with a healthy database.

        Raises:
            DatabaseUnhealthyError: As soon as a probe reports a database
                                    status other than "ok".
            HealthCheckError: If every attempt failed.
        """
        last_error = "no attempt made"

        for attempt in range(self._retries):
            try:
                result = await self._api.health()
            except ApiConnectionError as exc:
                last_error = str(exc)
            else:
                if result.database_failed:
                    raise DatabaseUnhealthyError(
                        f"Server database status is {result.database_status!r} "
                        f"(HTTP {result.http_status}), giving up"
                    )
                if result.healthy:
                    logger.info("Server is healthy (attempt %d/%d).", attempt + 1, self._retries)
                    return
                last_error = f"health check returned status {result.http_status}"

            remaining = self._retries - attempt - 1
            if remaining == 0:
                break

            delay = self.backoff(attempt)
            logger.warning(
                "Health check failed: %s. %d retries left, next attempt in %.1fs.",
                last_error,
                remaining,
                delay,
            )
            await self._sleep(delay)

        raise HealthCheckError(
            f"Server not healthy after {self._retries} attempt(s): {last_error}"
        )
