"""Argon2id password hashing and the signup password policy."""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass

from argon2 import PasswordHasher, Type
from argon2.exceptions import HashingError, InvalidHashError, VerificationError, VerifyMismatchError

from ..config import Settings
from ..errors import CryptoError, WeakCredential

logger = logging.getLogger(__name__)


class PasswordCredential:
    """Hash and verify passwords using self-describing argon2id PHC strings.

    Digests embed the algorithm, version and cost parameters
    (``$argon2id$v=19$m=65536,t=3,p=4$...``) so digests produced under older
    cost settings keep verifying after the settings change.
    """

    def __init__(self, *, time_cost: int = 3, memory_cost: int = 65536, parallelism: int = 4) -> None:
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            type=Type.ID,
        )
        self._dummy_digest = self.hash(secrets.token_urlsafe(16))

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordCredential":
        return cls(
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost,
            parallelism=settings.argon2_parallelism,
        )

    def hash(self, plaintext: str) -> str:
        try:
            return self._hasher.hash(plaintext)
        except HashingError as exc:
            raise CryptoError("password hashing failed") from exc

    def verify(self, digest: str, plaintext: str) -> bool:
        """Return ``True`` when ``plaintext`` matches ``digest``.

        Raises :class:`CryptoError` only when ``digest`` is not a valid argon2
        string.
        """
        try:
            return self._hasher.verify(digest, plaintext)
        except VerifyMismatchError:
            return False
        except InvalidHashError as exc:
            raise CryptoError("stored password digest is malformed") from exc
        except VerificationError:
            return False

    def verify_dummy(self, plaintext: str) -> bool:
        """Spend a full verification on a throwaway digest; always ``False``."""
        self.verify(self._dummy_digest, plaintext)
        return False

    def needs_rehash(self, digest: str) -> bool:
        try:
            return self._hasher.check_needs_rehash(digest)
        except (InvalidHashError, ValueError):
            logger.warning("unable to parse password digest parameters")
            return False


_CHAR_CLASSES = (
    lambda ch: ch in string.ascii_lowercase,
    lambda ch: ch in string.ascii_uppercase,
    str.isdigit,
)


@dataclass(frozen=True)
class PasswordPolicy:
    """Minimum length plus a minimum number of character classes.

    Classes are lowercase, uppercase, digits and anything else.
    """

    min_length: int = 8
    min_char_classes: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordPolicy":
        return cls(
            min_length=settings.password_min_length,
            min_char_classes=settings.password_min_char_classes,
        )

    def char_classes(self, password: str) -> int:
        matched = sum(1 for predicate in _CHAR_CLASSES if any(predicate(ch) for ch in password))
        if any(not any(predicate(ch) for predicate in _CHAR_CLASSES) for ch in password):
            matched += 1
        return matched

    def check(self, password: str) -> None:
        if len(password) < self.min_length:
            raise WeakCredential(
                "password too weak",
                detail={"reason": "too_short", "min_length": self.min_length},
            )
        if self.char_classes(password) < self.min_char_classes:
            raise WeakCredential(
                "password too weak",
                detail={"reason": "too_few_character_classes", "min_char_classes": self.min_char_classes},
            )
