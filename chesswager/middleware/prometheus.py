"""Prometheus metrics and instrumentation.

Features:
- HTTP request metrics (latency, count, size)
- WebSocket connection and message metrics
- Game, tournament and ledger metrics
"""

from fastapi import FastAPI
from prometheus_client import Counter, Gauge, Info
from prometheus_fastapi_instrumentator import Instrumentator, metrics

# =============================================================================
# Custom Metrics
# =============================================================================

APP_INFO = Info("chesswager_app", "Application information")

# WebSocket metrics
WS_CONNECTIONS_TOTAL = Gauge(
    "chesswager_ws_connections_total",
    "Total active WebSocket connections",
)

WS_MESSAGES_SENT = Counter(
    "chesswager_ws_messages_sent_total",
    "Total WebSocket messages sent",
    ["message_type"],
)

WS_MESSAGES_RECEIVED = Counter(
    "chesswager_ws_messages_received_total",
    "Total WebSocket messages received",
    ["message_type"],
)

# Game metrics
GAMES_SETTLED = Counter(
    "chesswager_games_settled_total",
    "Games settled",
    ["outcome"],
)

GAMES_CANCELLED = Counter(
    "chesswager_games_cancelled_total",
    "Games cancelled",
    ["reason"],
)

TOURNAMENTS_COMPLETED = Counter(
    "chesswager_tournaments_completed_total",
    "Tournaments that paid out a winner",
)

# Ledger metrics
LEDGER_CONTENTION = Counter(
    "chesswager_ledger_contention_total",
    "Balance updates that exhausted their compare-and-swap attempts",
)

RECONCILIATION_FLAGS = Counter(
    "chesswager_reconciliation_flags_total",
    "Money movements flagged for manual reconciliation",
    ["reason"],
)

DEPOSITS_TOTAL = Counter(
    "chesswager_deposits_total",
    "Completed deposits",
    ["method"],
)

WITHDRAWALS_TOTAL = Counter(
    "chesswager_withdrawals_total",
    "Requested withdrawals",
)


# =============================================================================
# Instrumentator Setup
# =============================================================================


def setup_prometheus(app: FastAPI, app_version: str = "0.1.0") -> Instrumentator:
    """Setup Prometheus metrics instrumentation and expose ``/metrics``."""
    APP_INFO.info({
        "version": app_version,
        "app_name": "chesswager",
    })

    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/health", "/metrics"],
        inprogress_name="chesswager_http_requests_inprogress",
        inprogress_labels=True,
    )

    instrumentator.add(
        metrics.default(
            metric_namespace="chesswager",
            metric_subsystem="http",
        )
    )

    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint="/metrics", include_in_schema=False)

    return instrumentator


# =============================================================================
# Metric Helper Functions
# =============================================================================


def record_ws_connection(connected: bool) -> None:
    if connected:
        WS_CONNECTIONS_TOTAL.inc()
    else:
        WS_CONNECTIONS_TOTAL.dec()


def record_ws_message(direction: str, message_type: str) -> None:
    """Record WebSocket message.

    Args:
        direction: "sent" or "received"
        message_type: Wire event type (e.g. "game_move")
    """
    if direction == "sent":
        WS_MESSAGES_SENT.labels(message_type=message_type).inc()
    else:
        WS_MESSAGES_RECEIVED.labels(message_type=message_type).inc()


def record_game_settled(outcome: str) -> None:
    GAMES_SETTLED.labels(outcome=outcome).inc()


def record_game_cancelled(reason: str) -> None:
    GAMES_CANCELLED.labels(reason=reason).inc()


def record_tournament_completed() -> None:
    TOURNAMENTS_COMPLETED.inc()


def record_ledger_contention() -> None:
    LEDGER_CONTENTION.inc()


def record_reconciliation_flag(reason: str) -> None:
    RECONCILIATION_FLAGS.labels(reason=reason).inc()


def record_deposit(method: str) -> None:
    DEPOSITS_TOTAL.labels(method=method).inc()


def record_withdrawal() -> None:
    WITHDRAWALS_TOTAL.inc()
