"""Sentry error tracking integration.

Features:
- Automatic error capture
- Performance monitoring
- Account context
- High-priority capture for money that needs manual reconciliation
"""

import logging
import os
from decimal import Decimal
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from chesswager.utils.errors import ChessWagerError


def init_sentry(
    dsn: str | None = None,
    environment: str = "development",
    release: str | None = None,
    traces_sample_rate: float = 0.05,
) -> bool:
    """Initialize Sentry SDK.

    Args:
        dsn: Sentry DSN. If None, uses SENTRY_DSN env var.
        environment: Environment name (development, staging, production)
        release: Release version string
        traces_sample_rate: Percentage of transactions to trace (0.0 to 1.0)

    Returns:
        True if Sentry was initialized, False otherwise
    """
    sentry_dsn = dsn or os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        return False

    logging_integration = LoggingIntegration(
        level=logging.INFO,
        event_level=logging.ERROR,
    )

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=environment,
        release=release,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            logging_integration,
        ],
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        before_send=_before_send,
        before_send_transaction=_before_send_transaction,
    )
    return True


def _before_send(event: dict, hint: dict) -> dict | None:
    """Drop expected domain errors; they are user-facing, not bugs."""
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]
        if isinstance(exc_value, ChessWagerError):
            return None
    return event


def _before_send_transaction(event: dict, hint: dict) -> dict | None:
    transaction_name = event.get("transaction", "")
    if any(path in transaction_name for path in ["/health", "/metrics"]):
        return None
    return event


def set_account_context(account_id: str, username: str | None = None) -> None:
    sentry_sdk.set_user({"id": account_id, "username": username})


def capture_reconciliation(
    account_id: str,
    amount: Decimal,
    reason: str,
    reference_id: str | None = None,
    error: Exception | None = None,
    extra: dict[str, Any] | None = None,
) -> str | None:
    """Capture a failed money movement that an operator must reconcile.

    Returns:
        Sentry event ID or None
    """
    with sentry_sdk.new_scope() as scope:
        scope.set_level("fatal")
        scope.set_user({"id": account_id})
        scope.set_tag("reconciliation", "true")
        scope.set_tag("reconciliation_reason", reason)
        scope.set_extra("amount", str(amount))
        scope.set_extra("reference_id", reference_id)
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)

        if error is not None:
            return sentry_sdk.capture_exception(error)
        return sentry_sdk.capture_message(
            f"Reconciliation required: {reason}", level="fatal"
        )
