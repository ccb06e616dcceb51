"""
repositories/credential_repository.py

Responsibility: Reads and writes the persisted service credential file
(serviceaccount.json).
Does NOT: generate credentials or call the server.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile

from admin_api.models import ServiceCredential
from exceptions import CredentialFileError

logger = logging.getLogger(__name__)


class CredentialRepository:
    """
    Persistence for the single ServiceCredential.

    The presence of the file is the only signal that bootstrap already
    happened, so writes are atomic: a crash mid-write leaves either the old
    state (no file) or the complete new file, never a truncated one.
    """

    def __init__(self, path: str) -> None:
        """
        Args:
            path: Full path of the credential file, normally
                  TargetConfig.credential_file.
        """
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    def exists(self) -> bool:
        return os.path.exists(self._path)

    def load(self) -> ServiceCredential:
        """
        Reads the credential back exactly as it was written.

        Returns:
            The persisted ServiceCredential.

        Raises:
            CredentialFileError: If the file cannot be read, is not valid
                                 JSON, or lacks one of email/login/password.
        """
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except OSError as exc:
            raise CredentialFileError(f"Cannot read credential file {self._path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise CredentialFileError(f"Credential file {self._path} is corrupt: {exc}") from exc

        try:
            return ServiceCredential.from_dict(raw)
        except ValueError as exc:
            raise CredentialFileError(f"Credential file {self._path} is invalid: {exc}") from exc

    def save(self, credential: ServiceCredential) -> None:
        """
        Writes the credential to disk via a temp file and os.replace.

        Args:
            credential: The credential to persist.

        Raises:
            CredentialFileError: If the file cannot be written.
        """
        directory = os.path.dirname(self._path) or "."
        try:
            os.makedirs(directory, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=directory, prefix="serviceaccount_", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(credential.to_dict(), f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(temp_path, 0o600)
                os.replace(temp_path, self._path)
            except BaseException:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise
        except OSError as exc:
            raise CredentialFileError(f"Cannot write credential file {self._path}: {exc}") from exc

        logger.info("Service credential written to %s", self._path)
