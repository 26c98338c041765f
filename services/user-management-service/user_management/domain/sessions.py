"""Session issuance: access credentials paired with rotating refresh tokens."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..config import Settings, get_settings
from ..errors import PermissionDenied, TokenNotFound
from ..security.tokens import decode_access_token, generate_refresh_token, issue_access_token
from .account import Role, epoch_now
from .contracts import SessionInfo
from .profiles import ProfileSelector
from .refresh_tokens import RefreshTokenManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TokenBundle:
    """Encapsulates the access/refresh token pair returned to API consumers."""

    access_token: str
    expires_in: int
    tenant_id: str
    profile_id: str
    refresh_token: str | None = None


class SessionService:
    """Issue, renew and end sessions on top of the refresh token bookkeeping."""

    def __init__(
        self,
        refresh_tokens: RefreshTokenManager,
        profiles: ProfileSelector,
        settings: Settings | None = None,
        *,
        clock: Callable[[], int] = epoch_now,
    ) -> None:
        self._refresh_tokens = refresh_tokens
        self._profiles = profiles
        self._settings = settings or get_settings()
        self._clock = clock

    def start(self, session: SessionInfo) -> TokenBundle:
        """Issue a fresh access/refresh pair for an authenticated session."""
        refresh_token = generate_refresh_token()
        self._refresh_tokens.issue(session.tenant_id, session.user_id, refresh_token)
        return self._bundle(
            user_id=session.user_id,
            tenant_id=session.tenant_id,
            roles=session.roles,
            profile_id=session.selected_profile.id,
            refresh_token=refresh_token,
        )

    def renew(self, access_token: str, refresh_token: str) -> TokenBundle:
        """Exchange a refresh token for a new pair.

        Parameters
        ----------
        access_token:
            The session's current access credential. It may be expired, but
            must carry a valid signature. Its ``iat`` claim is what the
            minimum renewal age is measured from, so sessions of the same
            account do not hold each other back.
        refresh_token:
            The refresh token handed out with it. It is consumed by this call.
        """
        claims = decode_access_token(access_token, verify_exp=False, settings=self._settings)
        tenant_id, user_id = claims["tenant_id"], claims["sub"]

        record = self._refresh_tokens.ensure_renewal_allowed(
            tenant_id, user_id, issued_at=int(claims["iat"])
        )
        try:
            self._refresh_tokens.revoke(tenant_id, user_id, refresh_token)
        except TokenNotFound:
            logger.warning("rejected session renewal for user %s in tenant %s", user_id, tenant_id)
            raise

        profile = record.find_profile(claims.get("profile_id", "")) or record.profiles[0]
        session = SessionInfo.from_record(record, selected=profile)
        return self.start(session)

    def end(self, access_token: str, refresh_token: str) -> None:
        claims = decode_access_token(access_token, verify_exp=False, settings=self._settings)
        self._refresh_tokens.revoke(claims["tenant_id"], claims["sub"], refresh_token)

    def switch_profile(self, access_token: str, profile_id: str) -> tuple[SessionInfo, TokenBundle]:
        """Select another profile and mint an access credential carrying it."""
        claims = decode_access_token(access_token, settings=self._settings, now=self._clock())
        session = self._profiles.select_profile(claims["tenant_id"], claims["sub"], profile_id)
        bundle = self._bundle(
            user_id=session.user_id,
            tenant_id=session.tenant_id,
            roles=session.roles,
            profile_id=session.selected_profile.id,
        )
        return session, bundle

    def authorize(self, access_token: str, required_role: Role | None = None) -> dict[str, Any]:
        """Return the verified claims, optionally requiring a role."""
        claims = decode_access_token(access_token, settings=self._settings, now=self._clock())
        if required_role is not None and required_role.value not in claims.get("roles", []):
            raise PermissionDenied("insufficient role", detail={"required": required_role.value})
        return claims

    def _bundle(
        self,
        *,
        user_id: str,
        tenant_id: str,
        roles: list[str],
        profile_id: str,
        refresh_token: str | None = None,
    ) -> TokenBundle:
        access_token, expires_in = issue_access_token(
            subject=user_id,
            tenant_id=tenant_id,
            roles=roles,
            profile_id=profile_id,
            settings=self._settings,
            now=self._clock(),
        )
        return TokenBundle(
            access_token=access_token,
            expires_in=expires_in,
            tenant_id=tenant_id,
            profile_id=profile_id,
            refresh_token=refresh_token,
        )
