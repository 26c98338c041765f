"""Persistence contracts consumed by the domain components."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .account import AccountRecord


class UserStore(Protocol):
    """Tenant-partitioned user persistence.

    Implementations raise :class:`~user_management.errors.StoreError` (with the
    driver exception chained) for infrastructure failures,
    :class:`~user_management.errors.AccountExists` when ``insert`` collides on
    the login identifier and :class:`~user_management.errors.AccountNotFound`
    when a mutation targets a record that no longer exists.
    """

    def get_by_identifier(self, tenant_id: str, identifier: str) -> Optional[AccountRecord]: ...

    def get_by_id(self, tenant_id: str, user_id: str) -> Optional[AccountRecord]: ...

    def insert(self, tenant_id: str, record: AccountRecord) -> str: ...

    def update(self, tenant_id: str, record: AccountRecord) -> AccountRecord: ...

    def add_refresh_token(self, tenant_id: str, user_id: str, token: str, now: int) -> bool:
        """Atomically add ``token``; ``False`` when it is already present."""
        ...

    def remove_refresh_token(self, tenant_id: str, user_id: str, token: str, now: int) -> bool:
        """Atomically remove ``token``; ``False`` when it was not present."""
        ...

    def delete_unconfirmed_older_than(self, tenant_id: str, cutoff: int) -> int: ...


class TenantDirectory(Protocol):
    def list_tenants(self) -> Sequence[str]: ...
