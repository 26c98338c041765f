"""Password login against a tenant's user store."""

from __future__ import annotations

import logging
from typing import Callable

from ..config import Settings, get_settings
from ..errors import CryptoError, InvalidCredentials, LoginStateNotSaved, StoreError
from ..metrics import LOGINS
from ..security.passwords import PasswordCredential
from .account import epoch_now
from .contracts import SessionInfo, normalize_identifier, resolve_tenant
from .store import UserStore

logger = logging.getLogger(__name__)


class CredentialAuthenticator:
    """Verify email + password and return a session-eligible account."""

    def __init__(
        self,
        store: UserStore,
        credential: PasswordCredential,
        settings: Settings | None = None,
        *,
        clock: Callable[[], int] = epoch_now,
    ) -> None:
        self._store = store
        self._credential = credential
        self._settings = settings or get_settings()
        self._clock = clock

    def authenticate(self, tenant_id: str | None, login_identifier: str, plaintext_password: str) -> SessionInfo:
        """Verify credentials and record the login.

        Unknown identifiers and wrong passwords both raise
        :class:`InvalidCredentials` after a full hash verification, so the two
        cases are indistinguishable to the caller.
        """
        identifier = normalize_identifier(login_identifier)
        if not identifier or not plaintext_password:
            LOGINS.labels(outcome="invalid").inc()
            raise InvalidCredentials()

        tenant_id = resolve_tenant(tenant_id, self._settings.default_instance_id)
        record = self._store.get_by_identifier(tenant_id, identifier)
        if record is None:
            self._credential.verify_dummy(plaintext_password)
            LOGINS.labels(outcome="invalid").inc()
            raise InvalidCredentials()

        if not self._credential.verify(record.account.password_hash, plaintext_password):
            LOGINS.labels(outcome="invalid").inc()
            raise InvalidCredentials()

        record.timestamps.last_login = self._clock()
        if self._credential.needs_rehash(record.account.password_hash):
            try:
                record.account.password_hash = self._credential.hash(plaintext_password)
                logger.info("upgraded password digest for user %s in tenant %s", record.id, tenant_id)
            except CryptoError as exc:
                logger.warning(
                    "password digest upgrade for user %s in tenant %s failed, keeping old digest: %s",
                    record.id,
                    tenant_id,
                    exc,
                )

        try:
            record = self._store.update(tenant_id, record)
        except StoreError as exc:
            LOGINS.labels(outcome="error").inc()
            logger.error("login state for user %s in tenant %s not saved: %s", record.id, tenant_id, exc)
            raise LoginStateNotSaved("credentials verified but login could not be recorded") from exc

        LOGINS.labels(outcome="success").inc()
        return SessionInfo.from_record(record)
