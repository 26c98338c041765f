"""Utilities for issuing access credentials and handling opaque refresh tokens."""

from __future__ import annotations

import hashlib
import secrets
import time
from typing import Any

import jwt

from ..config import Settings, get_settings
from ..errors import InvalidAccessToken


def issue_access_token(
    *,
    subject: str,
    tenant_id: str,
    roles: list[str],
    profile_id: str,
    settings: Settings | None = None,
    now: int | None = None,
) -> tuple[str, int]:
    """Create a signed JWT representing an authenticated session.

    Parameters
    ----------
    subject:
        User identifier embedded in the ``sub`` claim.
    tenant_id:
        Tenant the session is scoped to.
    roles:
        Role tags of the account at issuance time.
    profile_id:
        Currently selected profile.
    now:
        Issuance time in epoch seconds, defaults to the wall clock.

    Returns
    -------
    tuple[str, int]
        The encoded JWT and its lifetime in seconds.
    """

    settings = settings or get_settings()
    now = int(time.time()) if now is None else now
    expires_in = int(settings.token_expiry_interval.total_seconds())
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "tenant_id": tenant_id,
        "roles": roles,
        "profile_id": profile_id,
        "iat": now,
        "exp": now + expires_in,
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm="HS256")
    return token, expires_in


def decode_access_token(
    token: str,
    *,
    verify_exp: bool = True,
    settings: Settings | None = None,
    now: int | None = None,
) -> dict[str, Any]:
    """Decode and verify a JWT issued by this service.

    Signature and issuer are always checked. ``verify_exp=False`` accepts an
    expired credential, which is what session renewal needs. When ``now`` is
    given, expiry is checked against it instead of the wall clock.

    Raises
    ------
    InvalidAccessToken
        When the token is malformed, tampered with, expired (if checked) or
        lacks the subject, tenant and issuance claims.
    """

    settings = settings or get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"verify_exp": verify_exp and now is None, "require": ["iat", "exp"]},
        )
    except jwt.PyJWTError as exc:
        raise InvalidAccessToken("invalid access token") from exc
    if not claims.get("sub") or not claims.get("tenant_id"):
        raise InvalidAccessToken("access token lacks subject or tenant")
    if verify_exp and now is not None and int(claims["exp"]) <= now:
        raise InvalidAccessToken("access token expired")
    return claims


def generate_refresh_token() -> str:
    """Return a new opaque refresh token."""
    return secrets.token_urlsafe(48)


def hash_refresh_token(token: str) -> str:
    """Return the SHA-256 hex digest under which a refresh token is stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
