from __future__ import annotations

from ..errors import AccountNotFound, InvalidArgument, ProfileNotFound
from .contracts import SessionInfo
from .store import UserStore


class ProfileSelector:
    """Resolve a profile within an authenticated account. Never writes."""

    def __init__(self, store: UserStore) -> None:
        self._store = store

    def select_profile(self, tenant_id: str, user_id: str, profile_id: str) -> SessionInfo:
        if not tenant_id or not user_id or not profile_id:
            raise InvalidArgument("missing argument")
        record = self._store.get_by_id(tenant_id, user_id)
        if record is None:
            raise AccountNotFound("user not found")
        profile = record.find_profile(profile_id)
        if profile is None:
            raise ProfileNotFound("profile not found", detail={"profile_id": profile_id})
        return SessionInfo.from_record(record, selected=profile)
