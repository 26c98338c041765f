"""Typed errors raised by the account and session lifecycle components.

Each class carries the HTTP ``status_code`` and stable ``error_code`` used by
:mod:`user_management.api.error_handling`. The domain layer never looks at
either value; they exist only for the boundary mapping.
"""

from __future__ import annotations

from typing import Any


class UserManagementError(Exception):
    """Base class for all errors surfaced by this service."""

    status_code: int = 400
    error_code: str = "invalid_argument"

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class InvalidArgument(UserManagementError):
    """Malformed or missing input; never reaches persistence."""

    status_code = 400
    error_code = "invalid_argument"


class WeakCredential(InvalidArgument):
    """Signup password does not satisfy the password policy."""

    error_code = "weak_credential"


class InvalidCredentials(UserManagementError):
    """Login failed. Deliberately silent about which part was wrong."""

    status_code = 401
    error_code = "invalid_credentials"

    def __init__(self, message: str = "invalid username and/or password", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class InvalidAccessToken(UserManagementError):
    status_code = 401
    error_code = "invalid_access_token"


class TokenNotFound(UserManagementError):
    """Refresh token is not (or no longer) registered for the account."""

    status_code = 401
    error_code = "token_not_found"


class PermissionDenied(UserManagementError):
    status_code = 403
    error_code = "forbidden"


class AccountNotFound(UserManagementError):
    status_code = 404
    error_code = "account_not_found"


class ProfileNotFound(UserManagementError):
    status_code = 404
    error_code = "profile_not_found"


class AccountExists(UserManagementError):
    """Login identifier already registered within the tenant."""

    status_code = 409
    error_code = "account_exists"


class DuplicateToken(UserManagementError):
    status_code = 409
    error_code = "duplicate_token"


class RenewalTooEarly(UserManagementError):
    """Session renewal attempted before the configured minimum age elapsed."""

    status_code = 429
    error_code = "renewal_too_early"


class CryptoError(UserManagementError):
    """Password hashing subsystem failed; fatal for the request."""

    status_code = 500
    error_code = "crypto_error"


class StoreError(UserManagementError):
    """Persistence layer failure. The original exception is chained as ``__cause__``."""

    status_code = 503
    error_code = "store_unavailable"

    def __init__(self, message: str, *, retryable: bool = True, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retryable = retryable


class LoginStateNotSaved(StoreError):
    """Credentials were valid but the login bookkeeping could not be persisted."""

    error_code = "login_state_not_saved"


class SessionNotStarted(StoreError):
    """The account was created but its first session could not be recorded.

    Repeating the signup would fail with :class:`AccountExists`; the client
    should log in instead.
    """

    error_code = "session_not_started"

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)


__all__ = [
    "UserManagementError",
    "InvalidArgument",
    "WeakCredential",
    "InvalidCredentials",
    "InvalidAccessToken",
    "TokenNotFound",
    "PermissionDenied",
    "AccountNotFound",
    "ProfileNotFound",
    "AccountExists",
    "DuplicateToken",
    "RenewalTooEarly",
    "CryptoError",
    "StoreError",
    "LoginStateNotSaved",
    "SessionNotStarted",
]
