"""Wallet transfer, ledger entry and reconciliation models.

- WalletTransfer: deposits and withdrawals as one tagged union (``kind``)
- LedgerEntry: append-only audit row for every balance mutation
- ReconciliationFlag: money that could not be moved and needs an operator
"""

import hashlib
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chesswager.models.base import Base, Money, TimestampMixin, UUIDMixin, utcnow


class TransferKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class TransferMethod(str, Enum):
    WALLET = "wallet"
    CARD = "card"


class TransferStatus(str, Enum):
    """Transfer status. Terminal states are immutable."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class LedgerReason(str, Enum):
    """Why a balance moved."""

    GAME_WAGER = "game_wager"
    GAME_PAYOUT = "game_payout"
    GAME_REFUND = "game_refund"
    TOURNAMENT_ENTRY = "tournament_entry"
    TOURNAMENT_PRIZE = "tournament_prize"
    TOURNAMENT_REFUND = "tournament_refund"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    WITHDRAWAL_REVERSAL = "withdrawal_reversal"
    TRANSFER = "transfer"


class WalletTransfer(Base, UUIDMixin, TimestampMixin):
    """Deposit or withdrawal request."""

    __tablename__ = "wallet_transfers"

    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), default="SOL", nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)

    # Withdrawal destination / external reference (tx hash or payment intent)
    destination_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_reference: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=TransferStatus.PENDING.value,
        nullable=False,
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status != TransferStatus.PENDING.value


class LedgerEntry(Base, UUIDMixin):
    """Append-only record of one balance mutation.

    ``amount`` is signed: positive for credits, negative for debits.
    """

    __tablename__ = "ledger_entries"

    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(Money, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Money, nullable=False)
    balance_version: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    reference_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    integrity_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    @staticmethod
    def compute_hash(
        account_id: str,
        amount: Decimal,
        balance_before: Decimal,
        balance_after: Decimal,
        balance_version: int,
        reason: str,
        reference_id: str | None,
    ) -> str:
        """SHA-256 over the fields that define the mutation."""
        data = (
            f"{account_id}:{amount}:{balance_before}:{balance_after}:"
            f"{balance_version}:{reason}:{reference_id or ''}"
        )
        return hashlib.sha256(data.encode()).hexdigest()


class ReconciliationFlag(Base, UUIDMixin):
    """Funds an automatic payout or refund could not deliver."""

    __tablename__ = "reconciliation_flags"

    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    reference_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
