"""
services/identity_provisioner.py

Responsibility: Resolves the privileged service credential the daemon uses
for reload calls, creating the account on the server on first run only.
Does NOT: decide the file format (CredentialRepository) or send reloads.
"""

from __future__ import annotations

import logging
import secrets
import uuid

from admin_api.client import AdminApiClient
from admin_api.models import ServiceCredential
from exceptions import ApiError, ProvisioningError
from repositories.credential_repository import CredentialRepository

logger = logging.getLogger(__name__)

_ACCOUNT_NAME = "gf-provisioning-config-reloader"


def generate_credential() -> ServiceCredential:
    """
    Builds a fresh, unguessable candidate credential.

    The login and email embed a random UUID4 and the password is drawn from
    the secrets module, so no two bootstrap runs produce the same account.
    """
    node_id = uuid.uuid4().hex
    return ServiceCredential(
        email=f"{node_id}@{_ACCOUNT_NAME}",
        login=f"{_ACCOUNT_NAME}-{node_id}",
        password=secrets.token_urlsafe(32),
    )


class IdentityProvisioner:
    """
    Idempotent bootstrap of the daemon's own admin account.

    If the credential file exists it is returned as-is without any network
    call. Otherwise a new account is created with the bootstrap admin
    credential, persisted, and then elevated to server admin.

    The file is written before elevation, so a crash between the two steps
    leaves a record of the account that already exists server-side; a
    restart reuses it instead of creating a duplicate. Privilege is not
    re-verified on the read-from-file path.

    Collaborators:
        - AdminApiClient: create-user and permissions endpoints
        - CredentialRepository: the persisted credential file
    """

    def __init__(self, api: AdminApiClient, repository: CredentialRepository) -> None:
        self._api = api
        self._repository = repository

    async def resolve_credential(self) -> ServiceCredential:
        """
        Returns the service credential, provisioning it if needed.

        Returns:
            The persisted or newly created ServiceCredential.

        Raises:
            CredentialFileError: If the existing file is corrupt.
            ProvisioningError: If account creation or elevation fails.
        """
        if self._repository.exists():
            logger.info("Service account already exists, reading from %s", self._repository.path)
            return self._repository.load()

        credential = generate_credential()

        logger.info('Creating service account "%s"', credential.login)
        try:
            created = await self._api.write_json("admin/users", credential.to_dict())
        except ApiError as exc:
            raise ProvisioningError(f"Failed to create service account: {exc}") from exc

        user_id = created.get("id")
        if user_id is None:
            raise ProvisioningError(f"Create-user response carried no account id: {created!r}")

        self._repository.save(credential)

        logger.info("Granting admin permissions to account id=%s", user_id)
        try:
            await self._api.update_json(
                f"admin/users/{user_id}/permissions", {"isGrafanaAdmin": True}
            )
        except ApiError as exc:
            raise ProvisioningError(
                f"Failed to grant admin permissions to account id={user_id}: {exc}"
            ) from exc

        return credential
