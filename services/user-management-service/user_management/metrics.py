"""Prometheus counters for account and session lifecycle events."""

from __future__ import annotations

from prometheus_client import Counter

LOGINS = Counter(
    "user_management_logins_total",
    "Password login attempts by outcome.",
    ["outcome"],
)

SIGNUPS = Counter(
    "user_management_signups_total",
    "Accounts provisioned through signup.",
)

REFRESH_TOKEN_EVENTS = Counter(
    "user_management_refresh_token_events_total",
    "Refresh token mutations by action and result.",
    ["action", "result"],
)

SWEPT_ACCOUNTS = Counter(
    "user_management_swept_accounts_total",
    "Unconfirmed accounts removed by the expiry sweep.",
)

SWEEP_FAILURES = Counter(
    "user_management_sweep_failures_total",
    "Tenants whose expiry sweep failed.",
)
