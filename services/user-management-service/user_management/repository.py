"""Postgres implementations of the user store and tenant directory."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any, Iterator

from psycopg import Cursor, errors
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool, PoolTimeout

from .domain.account import (
    Account,
    AccountRecord,
    ContactInfo,
    ContactPreferences,
    Profile,
    Role,
    Timestamps,
)
from .errors import AccountExists, AccountNotFound, StoreError

logger = logging.getLogger(__name__)

_USER_COLUMNS = """
    user_id, tenant_id, account_id, account_type, password_hash, preferred_language,
    confirmed_at, roles, profiles, contact_infos, contact_preferences, refresh_tokens,
    created_at, last_login, last_token_refresh
"""


class _PostgresBase:
    def __init__(self, pool: ConnectionPool, *, timeout_seconds: float = 30.0) -> None:
        """Store the connection pool and the per-call timeout."""
        self._pool = pool
        self._timeout = timeout_seconds

    @contextmanager
    def _cursor(self) -> Iterator[Cursor[dict[str, Any]]]:
        """Yield a cursor inside one transaction, translating driver failures."""
        try:
            with self._pool.connection(timeout=self._timeout) as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(
                        "SELECT set_config('statement_timeout', %s, true)",
                        (str(int(self._timeout * 1000)),),
                    )
                    yield cur
                conn.commit()
        except errors.UniqueViolation as exc:
            raise AccountExists("account already exists") from exc
        except (PoolTimeout, errors.QueryCanceled) as exc:
            logger.warning("user store call timed out after %ss", self._timeout)
            raise StoreError("user store timed out", retryable=True) from exc
        except errors.OperationalError as exc:
            raise StoreError("user store unavailable", retryable=True) from exc
        except errors.Error as exc:
            raise StoreError("user store failure", retryable=False) from exc


class PostgresUserStore(_PostgresBase):
    """One row per user; token sets are mutated with single-statement array updates."""

    def get_by_identifier(self, tenant_id: str, identifier: str) -> AccountRecord | None:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE tenant_id = %s AND account_id = %s",
                (tenant_id, identifier),
            )
            row = cur.fetchone()
        return _map_record(row) if row else None

    def get_by_id(self, tenant_id: str, user_id: str) -> AccountRecord | None:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE tenant_id = %s AND user_id = %s",
                (tenant_id, user_id),
            )
            row = cur.fetchone()
        return _map_record(row) if row else None

    def insert(self, tenant_id: str, record: AccountRecord) -> str:
        user_id = str(uuid.uuid4())
        with self._cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO users ({_USER_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    user_id,
                    tenant_id,
                    record.account.account_id,
                    record.account.type,
                    record.account.password_hash,
                    record.account.preferred_language,
                    record.account.confirmed_at,
                    _roles(record),
                    Json([asdict(profile) for profile in record.profiles]),
                    Json([asdict(contact) for contact in record.contact_infos]),
                    Json(asdict(record.contact_preferences)),
                    list(record.refresh_tokens),
                    record.timestamps.created_at,
                    record.timestamps.last_login,
                    record.timestamps.last_token_refresh,
                ),
            )
        return user_id

    def update(self, tenant_id: str, record: AccountRecord) -> AccountRecord:
        """Write back everything except the refresh token set.

        ``confirmed_at`` and ``last_token_refresh`` only move forward so a stale
        copy cannot undo a confirmation or a concurrent token refresh.
        """
        with self._cursor() as cur:
            cur.execute(
                f"""
                UPDATE users
                SET account_id = %s,
                    account_type = %s,
                    password_hash = %s,
                    preferred_language = %s,
                    confirmed_at = GREATEST(confirmed_at, %s),
                    roles = %s,
                    profiles = %s,
                    contact_infos = %s,
                    contact_preferences = %s,
                    last_login = %s,
                    last_token_refresh = GREATEST(last_token_refresh, %s)
                WHERE tenant_id = %s AND user_id = %s
                RETURNING {_USER_COLUMNS}
                """,
                (
                    record.account.account_id,
                    record.account.type,
                    record.account.password_hash,
                    record.account.preferred_language,
                    record.account.confirmed_at,
                    _roles(record),
                    Json([asdict(profile) for profile in record.profiles]),
                    Json([asdict(contact) for contact in record.contact_infos]),
                    Json(asdict(record.contact_preferences)),
                    record.timestamps.last_login,
                    record.timestamps.last_token_refresh,
                    tenant_id,
                    record.id,
                ),
            )
            row = cur.fetchone()
        if row is None:
            raise AccountNotFound("user not found")
        return _map_record(row)

    def add_refresh_token(self, tenant_id: str, user_id: str, token: str, now: int) -> bool:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE users
                SET refresh_tokens = array_append(refresh_tokens, %s),
                    last_token_refresh = %s
                WHERE tenant_id = %s AND user_id = %s AND NOT (%s = ANY(refresh_tokens))
                RETURNING user_id
                """,
                (token, now, tenant_id, user_id, token),
            )
            if cur.fetchone():
                return True
            self._require_user(cur, tenant_id, user_id)
        return False

    def remove_refresh_token(self, tenant_id: str, user_id: str, token: str, now: int) -> bool:
        with self._cursor() as cur:
            cur.execute(
                """
                UPDATE users
                SET refresh_tokens = array_remove(refresh_tokens, %s),
                    last_token_refresh = %s
                WHERE tenant_id = %s AND user_id = %s AND %s = ANY(refresh_tokens)
                RETURNING user_id
                """,
                (token, now, tenant_id, user_id, token),
            )
            if cur.fetchone():
                return True
            self._require_user(cur, tenant_id, user_id)
        return False

    def delete_unconfirmed_older_than(self, tenant_id: str, cutoff: int) -> int:
        with self._cursor() as cur:
            cur.execute(
                """
                DELETE FROM users
                WHERE tenant_id = %s AND confirmed_at = 0 AND created_at < %s
                """,
                (tenant_id, cutoff),
            )
            return cur.rowcount

    def _require_user(self, cur: Cursor[dict[str, Any]], tenant_id: str, user_id: str) -> None:
        cur.execute(
            "SELECT 1 AS present FROM users WHERE tenant_id = %s AND user_id = %s",
            (tenant_id, user_id),
        )
        if cur.fetchone() is None:
            raise AccountNotFound("user not found")


class PostgresTenantDirectory(_PostgresBase):
    """Tenants ("instances") registered in the global instances table."""

    def list_tenants(self) -> list[str]:
        with self._cursor() as cur:
            cur.execute("SELECT instance_id FROM instances ORDER BY instance_id")
            return [row["instance_id"] for row in cur.fetchall()]


def _roles(record: AccountRecord) -> list[str]:
    return sorted(role.value for role in record.roles)


def _map_record(row: dict[str, Any]) -> AccountRecord:
    """Convert a ``users`` row into the domain ``AccountRecord``."""
    preferences = row["contact_preferences"] or {}
    return AccountRecord(
        id=row["user_id"],
        tenant_id=row["tenant_id"],
        account=Account(
            account_id=row["account_id"],
            password_hash=row["password_hash"],
            preferred_language=row["preferred_language"],
            confirmed_at=row["confirmed_at"],
            type=row["account_type"],
        ),
        roles={Role(value) for value in row["roles"]},
        profiles=[Profile(**profile) for profile in row["profiles"]],
        contact_infos=[ContactInfo(**contact) for contact in row["contact_infos"] or []],
        contact_preferences=ContactPreferences(
            subscribed_to_newsletter=bool(preferences.get("subscribed_to_newsletter", False)),
            send_newsletter_to=list(preferences.get("send_newsletter_to", [])),
        ),
        refresh_tokens=list(row["refresh_tokens"] or []),
        timestamps=Timestamps(
            created_at=row["created_at"],
            last_login=row["last_login"],
            last_token_refresh=row["last_token_refresh"],
        ),
    )
