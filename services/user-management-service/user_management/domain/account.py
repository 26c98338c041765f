from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """Closed set of role tags an account may hold."""

    PARTICIPANT = "PARTICIPANT"
    REVIEWER = "REVIEWER"
    RESEARCHER = "RESEARCHER"
    ADMIN = "ADMIN"


DEFAULT_ROLES: frozenset[Role] = frozenset({Role.PARTICIPANT})


def new_object_id() -> str:
    return uuid.uuid4().hex


def epoch_now() -> int:
    return int(time.time())


@dataclass(slots=True)
class Account:
    """Login credential block of a user record."""

    account_id: str
    password_hash: str
    preferred_language: str = ""
    confirmed_at: int = 0
    type: str = "email"


@dataclass(slots=True)
class Profile:
    """Participant identity living under an account."""

    id: str
    nickname: str
    consent_confirmed_at: int = 0
    avatar_id: str = "default"


@dataclass(slots=True)
class ContactInfo:
    id: str
    email: str
    confirmed_at: int = 0
    type: str = "email"


@dataclass(slots=True)
class ContactPreferences:
    subscribed_to_newsletter: bool = False
    send_newsletter_to: list[str] = field(default_factory=list)


@dataclass(slots=True)
class Timestamps:
    created_at: int = 0
    last_login: int = 0
    last_token_refresh: int = 0


@dataclass(slots=True)
class AccountRecord:
    """Aggregate root for a tenant-scoped user and its profiles."""

    id: str
    tenant_id: str
    account: Account
    profiles: list[Profile]
    roles: set[Role] = field(default_factory=lambda: set(DEFAULT_ROLES))
    contact_infos: list[ContactInfo] = field(default_factory=list)
    contact_preferences: ContactPreferences = field(default_factory=ContactPreferences)
    refresh_tokens: list[str] = field(default_factory=list)
    timestamps: Timestamps = field(default_factory=Timestamps)

    def __post_init__(self) -> None:
        if not self.profiles:
            raise ValueError("an account must own at least one profile")

    @property
    def is_confirmed(self) -> bool:
        return self.account.confirmed_at > 0

    def has_only_default_role(self) -> bool:
        """Return ``True`` when the account is a plain participant."""
        return self.roles == DEFAULT_ROLES

    def display_identifier(self) -> str:
        """Login identifier for elevated accounts, empty string for plain participants."""
        if self.has_only_default_role():
            return ""
        return self.account.account_id

    def find_profile(self, profile_id: str) -> Profile | None:
        for profile in self.profiles:
            if profile.id == profile_id:
                return profile
        return None

    def add_email_contact(self, email: str, confirmed_at: int = 0) -> ContactInfo:
        """Register ``email`` as a contact channel and return the new entry."""
        contact = ContactInfo(id=new_object_id(), email=email, confirmed_at=confirmed_at)
        self.contact_infos.append(contact)
        return contact
