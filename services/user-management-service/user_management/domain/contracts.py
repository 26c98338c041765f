"""Domain-level request and response contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass

from .account import AccountRecord, Profile


def normalize_identifier(identifier: str | None) -> str:
    """Canonical form of a login identifier used for storage and lookups."""
    return (identifier or "").strip().lower()


def resolve_tenant(tenant_id: str | None, default: str) -> str:
    """Map an empty tenant to the well-known default tenant."""
    tenant_id = (tenant_id or "").strip()
    return tenant_id or default


@dataclass(slots=True)
class SignupInput:
    """Inputs required to provision an account within a tenant."""

    tenant_id: str
    email: str
    password: str
    preferred_language: str = ""
    wants_newsletter: bool = False


@dataclass(slots=True)
class SessionInfo:
    """Everything a client needs to (re)build its session context."""

    user_id: str
    tenant_id: str
    roles: list[str]
    display_identifier: str
    confirmed: bool
    profiles: list[Profile]
    selected_profile: Profile
    preferred_language: str

    @classmethod
    def from_record(cls, record: AccountRecord, selected: Profile | None = None) -> "SessionInfo":
        """Build session info; the first profile is selected unless ``selected`` is given."""
        return cls(
            user_id=record.id,
            tenant_id=record.tenant_id,
            roles=sorted(role.value for role in record.roles),
            display_identifier=record.display_identifier(),
            confirmed=record.is_confirmed,
            profiles=list(record.profiles),
            selected_profile=selected or record.profiles[0],
            preferred_language=record.account.preferred_language,
        )
