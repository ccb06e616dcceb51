"""
exceptions.py

Responsibility: Defines all custom exception classes used across the daemon.
Does NOT: contain business logic, logging, or HTTP handling.
"""

from __future__ import annotations


class ApiError(Exception):
    """
    Raised by AdminApiClient when the server answers with a non-200 status.

    Carries the HTTP status code and the server-reported message (the
    ``message`` field of the JSON body when present).
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f'msg="{self.message}" status="{self.status_code}"'


class ApiConnectionError(ApiError):
    """
    Raised when the server could not be reached at all (DNS, refused
    connection, timeout). Has no status code.
    """


# ---------------------------------------------------------------------------
# Fatal startup errors: any of these terminates the process with exit 1
# ---------------------------------------------------------------------------


class StartupError(Exception):
    """Base class for errors that abort the startup sequence."""


class HealthCheckError(StartupError):
    """
    Raised by HealthGate when the server did not become healthy within the
    retry budget.
    """


class DatabaseUnhealthyError(HealthCheckError):
    """
    Raised by HealthGate as soon as the server reports a broken database.
    Never retried.
    """


class ProvisioningError(StartupError):
    """
    Raised by IdentityProvisioner when creating the service account or
    granting it admin rights fails.
    """


class CredentialFileError(StartupError):
    """
    Raised by CredentialRepository when the persisted credential file
    exists but cannot be read or parsed.
    """


class WatchPathError(StartupError):
    """Raised by ChangeWatcher when the provisioning directory is missing."""
