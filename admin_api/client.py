"""
admin_api/client.py

Responsibility: Sends requests to the target server's HTTP API. All calls to
the server go through AdminApiClient: no other module builds server URLs.
Does NOT: retry, decide what a failure means for the daemon, or hold state
beyond the injected HTTP client and config.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from admin_api.models import HealthProbeResult, basic_auth_header
from config import TargetConfig
from exceptions import ApiConnectionError, ApiError

logger = logging.getLogger(__name__)


class AdminApiClient:
    """
    Thin wrapper around the server's /api endpoints.

    Requests are authenticated with the bootstrap admin credential from
    TargetConfig unless the caller passes its own Authorization header (the
    reload dispatcher does, with the service credential).

    Collaborators:
        - httpx.AsyncClient: injected; must be kept alive externally
        - TargetConfig: base URL and bootstrap credential
    """

    def __init__(self, http_client: httpx.AsyncClient, config: TargetConfig) -> None:
        """
        Initialises the client.

        Args:
            http_client: A long-lived httpx.AsyncClient instance.
            config: The process TargetConfig.
        """
        self._client = http_client
        self._base_url = config.base_url.rstrip("/")
        self._default_auth = basic_auth_header(config.admin_user, config.admin_password)

    # ---------------------------------------------------------------------------
    # Raw request
    # ---------------------------------------------------------------------------

    async def call(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Sends a request to {base_url}/api/{path} and returns the raw response.

        Args:
            method: HTTP verb.
            path: Path below /api/, e.g. "admin/users".
            body: Optional JSON-serialisable request body.
            headers: Extra headers; Content-Type and Authorization given here
                     override the defaults.

        Returns:
            The httpx.Response, whatever its status.

        Raises:
            ApiConnectionError: If the server could not be reached.
        """
        url = self._url(path)
        merged = httpx.Headers(headers or {})
        merged.setdefault("Content-Type", "application/json")
        merged.setdefault("Authorization", self._default_auth)

        logger.debug("%s %s", method, url)
        try:
            return await self._client.request(
                method,
                url,
                headers=merged,
                json=body,
            )
        except httpx.RequestError as exc:
            raise ApiConnectionError(f"Network error calling {method} {url}: {exc}") from exc

    # ---------------------------------------------------------------------------
    # JSON helpers
    # ---------------------------------------------------------------------------

    async def write_json(
        self, path: str, body: Any, headers: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """
        POSTs a JSON body and returns the decoded JSON response.

        Raises:
            ApiError: On any non-200 response.
            ApiConnectionError: If the server could not be reached.
        """
        response = await self.call("POST", path, body, headers)
        return self._decode(response, "POST", path)

    async def update_json(
        self, path: str, body: Any, headers: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """
        PUTs a JSON body and returns the decoded JSON response.

        Raises:
            ApiError: On any non-200 response.
            ApiConnectionError: If the server could not be reached.
        """
        response = await self.call("PUT", path, body, headers)
        return self._decode(response, "PUT", path)

    # ---------------------------------------------------------------------------
    # Health
    # ---------------------------------------------------------------------------

    async def health(self) -> HealthProbeResult:
        """
        Reads GET /api/health without credentials.

        Returns:
            A HealthProbeResult with the HTTP status and the reported
            database status (None if the body does not carry one).

        Raises:
            ApiConnectionError: If the server could not be reached.
        """
        url = self._url("health")
        try:
            response = await self._client.get(url)
        except httpx.RequestError as exc:
            raise ApiConnectionError(f"Network error calling GET {url}: {exc}") from exc

        database: str | None = None
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("database") is not None:
            database = str(data["database"])

        return HealthProbeResult(http_status=response.status_code, database_status=database)

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self._base_url}/api/{path.lstrip('/')}"

    @staticmethod
    def _decode(response: httpx.Response, method: str, path: str) -> dict[str, Any]:
        """
        Decodes a JSON response body, raising ApiError for non-200 statuses.

        Args:
            response: The raw response.
            method: HTTP verb, for the error message.
            path: API path, for the error message.

        Returns:
            The decoded body as a dict ({} if the body is empty or not an
            object).

        Raises:
            ApiError: If the status code is not 200.
        """
        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code != 200:
            message = None
            if isinstance(data, dict):
                message = data.get("message")
            if not message:
                message = response.text.strip() or f"{method} /api/{path} failed"
            raise ApiError(str(message), status_code=response.status_code)

        return data if isinstance(data, dict) else {}
