"""
Temporary credential lifecycle.

Every migration run gets its own project API key, scoped to exactly the
resources a transfer may touch. The key is issued when the run starts and
must be revoked on every exit path; :meth:`CredentialManager.scoped` wraps
both ends for callers that can use a ``with`` block.
"""

import secrets
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass

from appwrite_transfer.client.exceptions import PersistenceError
from appwrite_transfer.config import PlatformConfig
from appwrite_transfer.migration.documents import DocumentStore
from appwrite_transfer.migration.records import ApiKey, Project
from appwrite_transfer.utils.logging import get_logger

logger = get_logger(__name__)

SECRET_BYTES = 128


@dataclass
class TemporaryCredential:
    """A project API key issued for one migration run."""

    key: ApiKey
    revoked: bool = False

    @property
    def secret(self) -> str:
        return self.key.secret

    @property
    def project_id(self) -> str:
        return self.key.project_id


class CredentialManager:
    """Issues and revokes temporary transfer keys.

    Attributes:
        issued: Number of keys issued by this manager
        revoked: Number of keys revoked by this manager
    """

    def __init__(self, store: DocumentStore, platform: PlatformConfig | None = None):
        self.store = store
        self.platform = platform or PlatformConfig()
        self.issued = 0
        self.revoked = 0

    def issue(self, project: Project) -> TemporaryCredential:
        """
        Create a new key owned by ``project``.

        The secret is 128 random bytes, hex encoded. The key never expires on
        its own; revocation is the only way it goes away.

        Raises:
            PersistenceError: If the key cannot be stored
        """
        key = ApiKey(
            id=uuid.uuid4().hex,
            project_id=project.id,
            project_internal_id=project.internal_id,
            name=self.platform.key_name,
            scopes=self.platform.key_scopes,
            expire=None,
            secret=secrets.token_bytes(SECRET_BYTES).hex(),
            sdks=(),
        )

        try:
            stored = self.store.create_document("keys", key)
        except PersistenceError:
            logger.error("credential_issue_failed", project_id=project.id)
            raise

        self.store.purge_cached_document("projects", project.id)
        self.issued += 1

        logger.info("credential_issued", project_id=project.id, key_id=stored.id)
        return TemporaryCredential(key=stored)

    def revoke(self, credential: TemporaryCredential | None) -> bool:
        """
        Delete a temporary key.

        Idempotent: revoking ``None``, an already revoked credential or a key
        that no longer exists does nothing.

        Returns:
            True if the key was deleted by this call

        Raises:
            PersistenceError: If the key exists but cannot be deleted
        """
        if credential is None or credential.revoked:
            return False

        deleted = self.store.delete_document("keys", credential.key.id)
        credential.revoked = True
        self.store.purge_cached_document("projects", credential.project_id)

        if deleted:
            self.revoked += 1
            logger.info(
                "credential_revoked", project_id=credential.project_id, key_id=credential.key.id
            )
        else:
            logger.warning(
                "credential_already_gone",
                project_id=credential.project_id,
                key_id=credential.key.id,
            )
        return deleted

    @contextmanager
    def scoped(self, project: Project) -> Generator[TemporaryCredential, None, None]:
        """Issue a key for the duration of a block and revoke it on exit."""
        credential = self.issue(project)
        try:
            yield credential
        finally:
            self.revoke(credential)
