"""Periodic removal of accounts that were never confirmed."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from ..config import Settings, get_settings
from ..errors import StoreError
from ..metrics import SWEEP_FAILURES, SWEPT_ACCOUNTS
from .account import epoch_now
from .store import TenantDirectory, UserStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweepReport:
    """Outcome of one sweep across all tenants."""

    cutoff: int
    deleted: dict[str, int] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values())


class ExpirySweeper:
    """Delete unconfirmed accounts older than the retention threshold, tenant by tenant.

    A failing tenant is logged and skipped so the remaining tenants are still
    cleaned. Re-running with the same clock value deletes nothing new.
    """

    def __init__(
        self,
        store: UserStore,
        directory: TenantDirectory,
        settings: Settings | None = None,
        *,
        clock: Callable[[], int] = epoch_now,
    ) -> None:
        self._store = store
        self._directory = directory
        self._settings = settings or get_settings()
        self._clock = clock

    @property
    def retention_seconds(self) -> int:
        return self._settings.unverified_retention_seconds

    def run(self, now: int | None = None) -> SweepReport:
        now = self._clock() if now is None else now
        report = SweepReport(cutoff=now - self.retention_seconds)
        logger.info("starting clean up of unverified users created before %s", report.cutoff)

        try:
            tenants = list(self._directory.list_tenants())
        except StoreError as exc:
            logger.error("unable to list tenants for unverified user clean up: %s", exc)
            return report

        for tenant_id in tenants:
            try:
                count = self._store.delete_unconfirmed_older_than(tenant_id, report.cutoff)
            except StoreError as exc:
                SWEEP_FAILURES.inc()
                report.failed.append(tenant_id)
                logger.error("%s: clean up of unverified users failed: %s", tenant_id, exc)
                continue
            report.deleted[tenant_id] = count
            SWEPT_ACCOUNTS.inc(count)
            logger.info("%s: removed %d unverified accounts", tenant_id, count)
        return report
