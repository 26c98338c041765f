"""Signup: validate input and create an account with its default profile."""

from __future__ import annotations

import logging
from typing import Callable

from email_validator import EmailNotValidError, validate_email

from ..config import Settings, get_settings
from ..errors import InvalidArgument
from ..metrics import SIGNUPS
from ..security.passwords import PasswordCredential, PasswordPolicy
from .account import DEFAULT_ROLES, Account, AccountRecord, Profile, Timestamps, epoch_now, new_object_id
from .contracts import SessionInfo, SignupInput, normalize_identifier, resolve_tenant
from .store import UserStore

logger = logging.getLogger(__name__)


class AccountProvisioner:
    """Create unconfirmed accounts from signup input."""

    def __init__(
        self,
        store: UserStore,
        credential: PasswordCredential,
        settings: Settings | None = None,
        *,
        policy: PasswordPolicy | None = None,
        clock: Callable[[], int] = epoch_now,
    ) -> None:
        self._store = store
        self._credential = credential
        self._settings = settings or get_settings()
        self._policy = policy or PasswordPolicy.from_settings(self._settings)
        self._clock = clock

    def provision(
        self,
        tenant_id: str | None,
        login_identifier: str,
        plaintext_password: str,
        preferred_language: str = "",
        wants_newsletter: bool = False,
    ) -> SessionInfo:
        """Validate, hash and persist a new account, returning its session info.

        The account starts unconfirmed. Sending the confirmation request is
        left to the notification service; unconfirmed accounts are reclaimed by
        the expiry sweep.
        """
        identifier = normalize_identifier(login_identifier)
        if not identifier:
            raise InvalidArgument("email not valid")
        try:
            validate_email(identifier, check_deliverability=False)
        except EmailNotValidError as exc:
            raise InvalidArgument("email not valid", detail={"reason": str(exc)}) from exc
        self._policy.check(plaintext_password or "")

        tenant_id = resolve_tenant(tenant_id, self._settings.default_instance_id)
        password_hash = self._credential.hash(plaintext_password)
        now = self._clock()

        record = AccountRecord(
            id="",
            tenant_id=tenant_id,
            account=Account(
                account_id=identifier,
                password_hash=password_hash,
                preferred_language=preferred_language or "",
                confirmed_at=0,
            ),
            roles=set(DEFAULT_ROLES),
            profiles=[
                Profile(
                    id=new_object_id(),
                    nickname=identifier,
                    consent_confirmed_at=now,
                )
            ],
            timestamps=Timestamps(created_at=now),
        )
        contact = record.add_email_contact(identifier)
        if wants_newsletter:
            record.contact_preferences.subscribed_to_newsletter = True
            record.contact_preferences.send_newsletter_to = [contact.id]

        record.id = self._store.insert(tenant_id, record)
        SIGNUPS.inc()
        logger.info("account %s created in tenant %s; confirmation pending", record.id, tenant_id)
        return SessionInfo.from_record(record)

    def provision_from(self, payload: SignupInput) -> SessionInfo:
        return self.provision(
            payload.tenant_id,
            payload.email,
            payload.password,
            payload.preferred_language,
            payload.wants_newsletter,
        )
