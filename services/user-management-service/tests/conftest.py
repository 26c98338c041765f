from __future__ import annotations

import copy
import uuid

import pytest

from user_management.config import Settings
from user_management.domain.account import (
    Account,
    AccountRecord,
    Profile,
    Role,
    Timestamps,
    new_object_id,
)
from user_management.errors import AccountExists, AccountNotFound, StoreError
from user_management.security.passwords import PasswordCredential

T0 = 1_700_000_000


class FakeClock:
    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class FakeUserStore:
    """In-memory user store mimicking the Postgres store's atomic semantics."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], AccountRecord] = {}
        self.calls: list[str] = []
        self.failing_tenants: set[str] = set()
        self.fail_updates = False

    def _enter(self, call: str, tenant_id: str) -> None:
        self.calls.append(call)
        if tenant_id in self.failing_tenants:
            raise StoreError(f"tenant {tenant_id} unavailable") from ConnectionError("connection refused")

    def seed(self, record: AccountRecord) -> str:
        record.id = record.id or str(uuid.uuid4())
        self._records[(record.tenant_id, record.id)] = copy.deepcopy(record)
        return record.id

    def stored(self, tenant_id: str, user_id: str) -> AccountRecord | None:
        return self._records.get((tenant_id, user_id))

    def count(self, tenant_id: str | None = None) -> int:
        return sum(1 for key in self._records if tenant_id is None or key[0] == tenant_id)

    def get_by_identifier(self, tenant_id: str, identifier: str):
        self._enter("get_by_identifier", tenant_id)
        for (tenant, _), record in self._records.items():
            if tenant == tenant_id and record.account.account_id == identifier:
                return copy.deepcopy(record)
        return None

    def get_by_id(self, tenant_id: str, user_id: str):
        self._enter("get_by_id", tenant_id)
        record = self._records.get((tenant_id, user_id))
        return copy.deepcopy(record) if record else None

    def insert(self, tenant_id: str, record: AccountRecord) -> str:
        self._enter("insert", tenant_id)
        for (tenant, _), existing in self._records.items():
            if tenant == tenant_id and existing.account.account_id == record.account.account_id:
                raise AccountExists("account already exists")
        user_id = str(uuid.uuid4())
        stored = copy.deepcopy(record)
        stored.id = user_id
        stored.tenant_id = tenant_id
        self._records[(tenant_id, user_id)] = stored
        return user_id

    def update(self, tenant_id: str, record: AccountRecord) -> AccountRecord:
        self._enter("update", tenant_id)
        if self.fail_updates:
            raise StoreError("write failed") from TimeoutError("statement timeout")
        existing = self._records.get((tenant_id, record.id))
        if existing is None:
            raise AccountNotFound("user not found")
        stored = copy.deepcopy(record)
        stored.refresh_tokens = list(existing.refresh_tokens)
        stored.account.confirmed_at = max(existing.account.confirmed_at, record.account.confirmed_at)
        stored.timestamps.last_token_refresh = max(
            existing.timestamps.last_token_refresh, record.timestamps.last_token_refresh
        )
        self._records[(tenant_id, record.id)] = stored
        return copy.deepcopy(stored)

    def add_refresh_token(self, tenant_id: str, user_id: str, token: str, now: int) -> bool:
        self._enter("add_refresh_token", tenant_id)
        record = self._records.get((tenant_id, user_id))
        if record is None:
            raise AccountNotFound("user not found")
        if token in record.refresh_tokens:
            return False
        record.refresh_tokens.append(token)
        record.timestamps.last_token_refresh = now
        return True

    def remove_refresh_token(self, tenant_id: str, user_id: str, token: str, now: int) -> bool:
        self._enter("remove_refresh_token", tenant_id)
        record = self._records.get((tenant_id, user_id))
        if record is None:
            raise AccountNotFound("user not found")
        if token not in record.refresh_tokens:
            return False
        record.refresh_tokens.remove(token)
        record.timestamps.last_token_refresh = now
        return True

    def delete_unconfirmed_older_than(self, tenant_id: str, cutoff: int) -> int:
        self._enter("delete_unconfirmed_older_than", tenant_id)
        doomed = [
            key
            for key, record in self._records.items()
            if key[0] == tenant_id
            and record.account.confirmed_at == 0
            and record.timestamps.created_at < cutoff
        ]
        for key in doomed:
            del self._records[key]
        return len(doomed)


class FakeTenantDirectory:
    def __init__(self, tenants: list[str] | None = None, *, broken: bool = False) -> None:
        self.tenants = tenants or []
        self.broken = broken

    def list_tenants(self) -> list[str]:
        if self.broken:
            raise StoreError("global db unavailable")
        return list(self.tenants)


def make_record(
    *,
    tenant_id: str = "t1",
    email: str = "user@x.com",
    password_hash: str = "",
    roles: set[Role] | None = None,
    confirmed_at: int = 0,
    created_at: int = T0,
    profile_nicknames: tuple[str, ...] = ("main",),
) -> AccountRecord:
    return AccountRecord(
        id="",
        tenant_id=tenant_id,
        account=Account(account_id=email, password_hash=password_hash, preferred_language="en", confirmed_at=confirmed_at),
        roles=set(roles or {Role.PARTICIPANT}),
        profiles=[Profile(id=new_object_id(), nickname=name, consent_confirmed_at=created_at) for name in profile_nicknames],
        timestamps=Timestamps(created_at=created_at),
    )


@pytest.fixture(scope="session")
def credential() -> PasswordCredential:
    """Cheap argon2 parameters keep the suite fast."""
    return PasswordCredential(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        default_instance_id="default",
        token_expiry_minutes=15,
        token_minimum_age_minutes=5,
        unverified_retention_seconds=3600,
        jwt_secret="test-secret-key-for-unit-tests-only-0123456789",
        jwt_issuer="user-management-tests",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> FakeUserStore:
    return FakeUserStore()
