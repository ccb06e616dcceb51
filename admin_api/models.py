"""
admin_api/models.py

Responsibility: Defines the value objects exchanged with the server's admin
API: the service credential and the health probe result.
Does NOT: make HTTP calls or read/write files.
"""

from __future__ import annotations

import base64
from dataclasses import asdict, dataclass
from typing import Any

_CREDENTIAL_FIELDS = ("email", "login", "password")


def basic_auth_header(username: str, password: str) -> str:
    """
    Builds an HTTP Basic Authorization header value.

    Args:
        username: Login name.
        password: Plain-text password.

    Returns:
        The header value, e.g. "Basic Z3JhZmFuYTpncmFmYW5h".
    """
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


# ---------------------------------------------------------------------------
# Service credential
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServiceCredential:
    """
    The dedicated admin account the daemon authenticates with after bootstrap.

    Persisted verbatim to serviceaccount.json; the same triple is sent to the
    server's create-user endpoint.
    """

    email: str
    login: str
    password: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Any) -> ServiceCredential:
        """
        Builds a credential from a decoded JSON object.

        Raises:
            ValueError: If raw is not an object or a field is missing or
                        not a string.
        """
        if not isinstance(raw, dict):
            raise ValueError(f"expected a JSON object, got {type(raw).__name__}")
        missing = [name for name in _CREDENTIAL_FIELDS if not isinstance(raw.get(name), str)]
        if missing:
            raise ValueError(f"missing or invalid field(s): {', '.join(missing)}")
        return cls(email=raw["email"], login=raw["login"], password=raw["password"])

    def authorization_header(self) -> str:
        return basic_auth_header(self.login, self.password)

    def __repr__(self) -> str:
        # Keep the password out of log lines.
        return f"ServiceCredential(email={self.email!r}, login={self.login!r}, password='***')"


# ---------------------------------------------------------------------------
# Health probe
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HealthProbeResult:
    """
    One reading of GET /api/health.

    Attributes:
        http_status: Status code of the response.
        database_status: Value of the body's "database" field, or None when
                         the body is not JSON or has no such field.
    """

    http_status: int
    database_status: str | None = None

    @property
    def database_failed(self) -> bool:
        return self.database_status is not None and self.database_status != "ok"

    @property
    def healthy(self) -> bool:
        return self.http_status == 200 and not self.database_failed
