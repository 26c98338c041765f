"""HTTP route definitions for the user management service."""

from __future__ import annotations

import hashlib
import logging

import redis
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from ..config import get_settings
from ..domain.account import Profile, Role
from ..domain.authentication import CredentialAuthenticator
from ..domain.contracts import SessionInfo, normalize_identifier, resolve_tenant
from ..domain.expiry import ExpirySweeper, SweepReport
from ..domain.provisioning import AccountProvisioner
from ..domain.sessions import SessionService, TokenBundle
from ..errors import InvalidCredentials, SessionNotStarted, StoreError
from ..security.login_throttle import LoginThrottle, SlidingWindowLoginThrottle
from ..security.redis_login_throttle import RedisLoginThrottle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")
bearer = HTTPBearer()


class ProfileModel(BaseModel):
    id: str
    nickname: str
    consent_confirmed_at: int
    avatar_id: str

    @classmethod
    def from_domain(cls, profile: Profile) -> "ProfileModel":
        return cls(
            id=profile.id,
            nickname=profile.nickname,
            consent_confirmed_at=profile.consent_confirmed_at,
            avatar_id=profile.avatar_id,
        )


class SessionInfoResponse(BaseModel):
    """Serialised representation of a ``SessionInfo``."""

    user_id: str
    instance_id: str
    roles: list[str]
    account_id: str
    account_confirmed: bool
    profiles: list[ProfileModel]
    selected_profile: ProfileModel
    preferred_language: str

    @classmethod
    def from_domain(cls, session: SessionInfo) -> "SessionInfoResponse":
        """Build a response model from the domain session info."""
        return cls(
            user_id=session.user_id,
            instance_id=session.tenant_id,
            roles=session.roles,
            account_id=session.display_identifier,
            account_confirmed=session.confirmed,
            profiles=[ProfileModel.from_domain(profile) for profile in session.profiles],
            selected_profile=ProfileModel.from_domain(session.selected_profile),
            preferred_language=session.preferred_language,
        )


class TokenResponse(BaseModel):
    """Token issuance response containing the bearer token and metadata."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: str | None = None
    instance_id: str
    profile_id: str

    @classmethod
    def from_domain(cls, bundle: TokenBundle) -> "TokenResponse":
        return cls(
            access_token=bundle.access_token,
            expires_in=bundle.expires_in,
            refresh_token=bundle.refresh_token,
            instance_id=bundle.tenant_id,
            profile_id=bundle.profile_id,
        )


class AuthResponse(BaseModel):
    session: SessionInfoResponse
    token: TokenResponse


class SignupRequest(BaseModel):
    """Payload accepted when signing up with email and password."""

    instance_id: str = ""
    email: str
    password: str
    preferred_language: str = ""
    wants_newsletter: bool = False


class LoginRequest(BaseModel):
    instance_id: str = ""
    email: str
    password: str


class SessionTokensRequest(BaseModel):
    """Access/refresh pair presented to renew or end a session."""

    access_token: str
    refresh_token: str


class SwitchProfileRequest(BaseModel):
    profile_id: str


class SweepResponse(BaseModel):
    cutoff: int
    deleted: dict[str, int]
    failed: list[str]
    total_deleted: int

    @classmethod
    def from_domain(cls, report: SweepReport) -> "SweepResponse":
        return cls(
            cutoff=report.cutoff,
            deleted=report.deleted,
            failed=report.failed,
            total_deleted=report.total_deleted,
        )


settings = get_settings()


def _build_login_throttle() -> LoginThrottle:
    """Instantiate the configured throttle backend, preferring Redis when available."""
    if settings.login_throttle_backend == "redis" and settings.redis_url:
        try:
            client = redis.from_url(settings.redis_url)
            client.ping()
            logger.info("login throttle configured for redis backend at %s", settings.redis_url)
            return RedisLoginThrottle(
                client,
                max_failures=settings.login_throttle_max_failures,
                window_seconds=settings.login_throttle_window_seconds,
            )
        except (redis.RedisError, ValueError) as exc:
            logger.warning("redis login throttle unavailable, falling back to in-memory: %s", exc)

    logger.info("login throttle using in-memory backend")
    return SlidingWindowLoginThrottle(
        max_failures=settings.login_throttle_max_failures,
        window_seconds=settings.login_throttle_window_seconds,
    )


login_throttle = _build_login_throttle()


def _throttle_key(instance_id: str, email: str) -> str:
    tenant_id = resolve_tenant(instance_id, settings.default_instance_id)
    digest = hashlib.sha256(normalize_identifier(email).encode("utf-8")).hexdigest()[:16]
    return f"login:{tenant_id}:{digest}"


def get_authenticator(request: Request) -> CredentialAuthenticator:
    return request.app.state.authenticator


def get_provisioner(request: Request) -> AccountProvisioner:
    return request.app.state.provisioner


def get_sessions(request: Request) -> SessionService:
    """Resolve the ``SessionService`` stored on the FastAPI application state."""
    return request.app.state.sessions


def get_sweeper(request: Request) -> ExpirySweeper:
    return request.app.state.sweeper


@router.post("/auth/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def signup(
    payload: SignupRequest,
    provisioner: AccountProvisioner = Depends(get_provisioner),
    sessions: SessionService = Depends(get_sessions),
) -> AuthResponse:
    """Create an unconfirmed account and open its first session."""
    session = provisioner.provision(
        payload.instance_id,
        payload.email,
        payload.password,
        payload.preferred_language,
        payload.wants_newsletter,
    )
    try:
        bundle = sessions.start(session)
    except StoreError as exc:
        raise SessionNotStarted(
            "account created but no session was started; log in to continue",
            detail={"user_id": session.user_id},
        ) from exc
    return AuthResponse(
        session=SessionInfoResponse.from_domain(session),
        token=TokenResponse.from_domain(bundle),
    )


@router.post("/auth/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    authenticator: CredentialAuthenticator = Depends(get_authenticator),
    sessions: SessionService = Depends(get_sessions),
) -> AuthResponse:
    """Verify email and password and open a session."""
    rate_key = _throttle_key(payload.instance_id, payload.email)
    if login_throttle.is_blocked(rate_key):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="too many failed login attempts")
    try:
        session = authenticator.authenticate(payload.instance_id, payload.email, payload.password)
    except InvalidCredentials:
        login_throttle.register_failure(rate_key)
        raise
    login_throttle.clear(rate_key)
    bundle = sessions.start(session)
    return AuthResponse(
        session=SessionInfoResponse.from_domain(session),
        token=TokenResponse.from_domain(bundle),
    )


@router.post("/auth/token/renew", response_model=TokenResponse)
def renew_token(
    payload: SessionTokensRequest,
    sessions: SessionService = Depends(get_sessions),
) -> TokenResponse:
    """Consume a refresh token and return a new access/refresh pair."""
    bundle = sessions.renew(payload.access_token, payload.refresh_token)
    return TokenResponse.from_domain(bundle)


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    payload: SessionTokensRequest,
    sessions: SessionService = Depends(get_sessions),
) -> Response:
    sessions.end(payload.access_token, payload.refresh_token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/auth/profile", response_model=AuthResponse)
def switch_profile(
    payload: SwitchProfileRequest,
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    sessions: SessionService = Depends(get_sessions),
) -> AuthResponse:
    """Select another profile of the authenticated account."""
    session, bundle = sessions.switch_profile(credentials.credentials, payload.profile_id)
    return AuthResponse(
        session=SessionInfoResponse.from_domain(session),
        token=TokenResponse.from_domain(bundle),
    )


@router.post("/admin/sweeps", response_model=SweepResponse)
def run_sweep(
    credentials: HTTPAuthorizationCredentials = Depends(bearer),
    sessions: SessionService = Depends(get_sessions),
    sweeper: ExpirySweeper = Depends(get_sweeper),
) -> SweepResponse:
    """Run the unverified-account sweep immediately."""
    claims = sessions.authorize(credentials.credentials, required_role=Role.ADMIN)
    logger.info("manual unverified user sweep requested by %s", claims["sub"])
    return SweepResponse.from_domain(sweeper.run())
