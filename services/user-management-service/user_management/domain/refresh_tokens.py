"""Refresh token bookkeeping on an already identified account."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable

from ..config import Settings, get_settings
from ..errors import AccountNotFound, DuplicateToken, InvalidArgument, RenewalTooEarly, TokenNotFound
from ..metrics import REFRESH_TOKEN_EVENTS
from ..security.tokens import hash_refresh_token
from .account import AccountRecord, epoch_now
from .store import UserStore

logger = logging.getLogger(__name__)


class RefreshTokenManager:
    """Record, consume and age-gate refresh tokens.

    Tokens are stored as SHA-256 digests and every mutation is a single
    set-membership update on the store, so concurrent sessions of one account
    never overwrite each other's tokens.
    """

    def __init__(
        self,
        store: UserStore,
        settings: Settings | None = None,
        *,
        clock: Callable[[], int] = epoch_now,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock

    @property
    def minimum_age(self) -> timedelta:
        return self._settings.token_minimum_age

    @property
    def expiry_interval(self) -> timedelta:
        return self._settings.token_expiry_interval

    def issue(self, tenant_id: str, user_id: str, token: str) -> None:
        """Register ``token`` for the account.

        Raises :class:`DuplicateToken` without touching the record when the
        token is already registered.
        """
        _require(tenant_id=tenant_id, user_id=user_id, token=token)
        added = self._store.add_refresh_token(tenant_id, user_id, hash_refresh_token(token), self._clock())
        if not added:
            REFRESH_TOKEN_EVENTS.labels(action="issue", result="duplicate").inc()
            raise DuplicateToken("refresh token already registered")
        REFRESH_TOKEN_EVENTS.labels(action="issue", result="ok").inc()

    def revoke(self, tenant_id: str, user_id: str, token: str) -> None:
        """Consume ``token``.

        :class:`TokenNotFound` means the caller presented a stale or already
        used token and should be treated as a possible replay.
        """
        _require(tenant_id=tenant_id, user_id=user_id, token=token)
        removed = self._store.remove_refresh_token(tenant_id, user_id, hash_refresh_token(token), self._clock())
        if not removed:
            REFRESH_TOKEN_EVENTS.labels(action="revoke", result="missing").inc()
            logger.warning(
                "unknown refresh token presented for user %s in tenant %s; possible replay",
                user_id,
                tenant_id,
            )
            raise TokenNotFound("refresh token not found")
        REFRESH_TOKEN_EVENTS.labels(action="revoke", result="ok").inc()

    def renewal_allowed(
        self,
        record: AccountRecord,
        now: int | None = None,
        issued_at: int | None = None,
    ) -> bool:
        """Whether ``minimum_age`` has elapsed for the session being renewed.

        ``issued_at`` is the issuance time of the credential presented by that
        session. Without it the account-wide ``last_token_refresh`` is used,
        which any other session of the account also moves.
        """
        now = self._clock() if now is None else now
        since = record.timestamps.last_token_refresh if issued_at is None else issued_at
        return now - since >= self.minimum_age.total_seconds()

    def ensure_renewal_allowed(
        self, tenant_id: str, user_id: str, issued_at: int | None = None
    ) -> AccountRecord:
        """Return the account if its session may be renewed now."""
        _require(tenant_id=tenant_id, user_id=user_id)
        record = self._store.get_by_id(tenant_id, user_id)
        if record is None:
            raise AccountNotFound("user not found")
        if not self.renewal_allowed(record, issued_at=issued_at):
            raise RenewalTooEarly(
                "session renewed too recently",
                detail={"minimum_age_seconds": int(self.minimum_age.total_seconds())},
            )
        return record


def _require(**values: str) -> None:
    missing = sorted(name for name, value in values.items() if not value)
    if missing:
        raise InvalidArgument("missing argument", detail={"missing": missing})
