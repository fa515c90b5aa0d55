"""Account Ledger: the single authority for balance mutation.

Features:
- Compare-and-swap on (balance, balance_version), no read-then-write
- Bounded transparent retry on write conflicts (tenacity)
- Append-only ledger entries with SHA-256 integrity hash
- Compensated transfers and reconciliation flags for stranded funds
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random,
)

from chesswager.config import get_settings
from chesswager.middleware.prometheus import (
    record_ledger_contention,
    record_reconciliation_flag,
)
from chesswager.middleware.sentry import capture_reconciliation
from chesswager.models.account import Account
from chesswager.models.base import MONEY_QUANTUM
from chesswager.models.wallet import LedgerEntry, LedgerReason, ReconciliationFlag
from chesswager.utils.errors import (
    InsufficientFunds,
    InvalidAmount,
    LedgerContention,
    NotFound,
)

logger = logging.getLogger(__name__)


class _BalanceConflict(Exception):
    """A concurrent writer bumped balance_version between read and write."""


@dataclass
class TransferResult:
    debit: LedgerEntry
    credit: LedgerEntry


def to_money(amount: Decimal | int | str) -> Decimal:
    """Normalize an amount to 8 decimal places."""
    return Decimal(str(amount)).quantize(MONEY_QUANTUM)


class LedgerService:
    """Atomic credit/debit over account balances.

    Usage:
        ledger = LedgerService(session)
        await ledger.debit(account_id, Decimal("0.3"), LedgerReason.GAME_WAGER, game.id)
    """

    def __init__(self, session: AsyncSession, max_attempts: int | None = None) -> None:
        self.session = session
        self.max_attempts = max_attempts or get_settings().ledger_max_attempts

    async def get_balance(self, account_id: str) -> Decimal:
        """Fresh read of the balance column.

        Raises:
            NotFound: If the account does not exist
        """
        result = await self.session.execute(
            select(Account.balance).where(Account.id == account_id)
        )
        balance = result.scalar_one_or_none()
        if balance is None:
            raise NotFound("Account", account_id)
        return to_money(balance)

    async def credit(
        self,
        account_id: str,
        amount: Decimal,
        reason: LedgerReason,
        reference_id: str | None = None,
    ) -> LedgerEntry:
        """Add funds to an account.

        Raises:
            InvalidAmount: If amount is not positive
            NotFound: If the account does not exist
            LedgerContention: If the CAS keeps losing
        """
        amount = self.validate_amount(amount)
        return await self._apply(account_id, amount, reason, reference_id)

    async def debit(
        self,
        account_id: str,
        amount: Decimal,
        reason: LedgerReason,
        reference_id: str | None = None,
    ) -> LedgerEntry:
        """Remove funds from an account.

        Raises:
            InvalidAmount: If amount is not positive
            InsufficientFunds: If the balance would go negative (never retried)
            NotFound: If the account does not exist
            LedgerContention: If the CAS keeps losing
        """
        amount = self.validate_amount(amount)
        return await self._apply(account_id, -amount, reason, reference_id)

    async def transfer(
        self,
        from_id: str,
        to_id: str,
        amount: Decimal,
        reason: LedgerReason = LedgerReason.TRANSFER,
        reference_id: str | None = None,
    ) -> TransferResult:
        """Debit ``from_id`` and credit ``to_id``.

        If the credit leg fails the debit is compensated with a credit back to
        the payer, so no partial transfer survives. If the compensation fails
        as well the funds are flagged for reconciliation. The credit-leg error
        is re-raised in both cases.
        """
        debit_entry = await self.debit(from_id, amount, reason, reference_id)
        try:
            credit_entry = await self.credit(to_id, amount, reason, reference_id)
        except Exception as credit_error:
            logger.error(
                f"Transfer credit leg failed, compensating: from={from_id} "
                f"to={to_id} amount={amount} error={type(credit_error).__name__}"
            )
            try:
                await self.credit(from_id, amount, reason, reference_id)
            except Exception as compensation_error:
                await self.flag_for_reconciliation(
                    account_id=from_id,
                    amount=to_money(amount),
                    reason="transfer_compensation_failed",
                    reference_id=reference_id,
                    details={
                        "to": to_id,
                        "creditError": str(credit_error),
                        "compensationError": str(compensation_error),
                    },
                    error=compensation_error,
                )
            raise
        return TransferResult(debit=debit_entry, credit=credit_entry)

    async def flag_for_reconciliation(
        self,
        account_id: str,
        amount: Decimal,
        reason: str,
        reference_id: str | None = None,
        details: dict[str, Any] | None = None,
        error: Exception | None = None,
    ) -> ReconciliationFlag:
        """Record funds that must be moved by an operator."""
        logger.critical(
            f"RECONCILIATION REQUIRED: account={account_id} amount={amount} "
            f"reason={reason} reference={reference_id} details={details}"
        )
        record_reconciliation_flag(reason)
        capture_reconciliation(
            account_id=account_id,
            amount=amount,
            reason=reason,
            reference_id=reference_id,
            error=error,
            extra=details,
        )

        flag = ReconciliationFlag(
            account_id=account_id,
            amount=amount,
            reason=reason,
            reference_id=reference_id,
            details=details or {},
        )
        self.session.add(flag)
        await self.session.flush()
        return flag

    async def get_entries(
        self,
        account_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerEntry]:
        result = await self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.account_id == account_id)
            .order_by(LedgerEntry.created_at.desc(), LedgerEntry.balance_version.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    @staticmethod
    def verify_integrity(entry: LedgerEntry) -> bool:
        """Recompute the entry hash and compare."""
        expected = LedgerEntry.compute_hash(
            account_id=entry.account_id,
            amount=to_money(entry.amount),
            balance_before=to_money(entry.balance_before),
            balance_after=to_money(entry.balance_after),
            balance_version=entry.balance_version,
            reason=entry.reason,
            reference_id=entry.reference_id,
        )
        return expected == entry.integrity_hash

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def validate_amount(amount: Decimal) -> Decimal:
        try:
            value = Decimal(str(amount))
        except ArithmeticError:
            raise InvalidAmount(str(amount), "Not a number")
        if not value.is_finite() or value <= 0:
            raise InvalidAmount(value)
        if value != value.quantize(MONEY_QUANTUM):
            raise InvalidAmount(value, "At most 8 decimal places")
        return to_money(value)

    async def _apply(
        self,
        account_id: str,
        delta: Decimal,
        reason: LedgerReason,
        reference_id: str | None,
    ) -> LedgerEntry:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_random(min=0.005, max=0.05),
            retry=retry_if_exception_type(_BalanceConflict),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._compare_and_swap(
                        account_id, delta, reason, reference_id
                    )
        except _BalanceConflict:
            record_ledger_contention()
            logger.warning(
                f"Ledger contention: account={account_id} attempts={self.max_attempts}"
            )
            raise LedgerContention(account_id, self.max_attempts)
        raise AssertionError("unreachable")

    async def _compare_and_swap(
        self,
        account_id: str,
        delta: Decimal,
        reason: LedgerReason,
        reference_id: str | None,
    ) -> LedgerEntry:
        row = (
            await self.session.execute(
                select(Account.balance, Account.balance_version).where(
                    Account.id == account_id
                )
            )
        ).one_or_none()
        if row is None:
            raise NotFound("Account", account_id)

        balance_before = to_money(row.balance)
        version = row.balance_version
        balance_after = to_money(balance_before + delta)

        if balance_after < 0:
            raise InsufficientFunds(account_id, -delta, balance_before)

        result = await self.session.execute(
            update(Account)
            .where(Account.id == account_id, Account.balance_version == version)
            .values(balance=balance_after, balance_version=version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _BalanceConflict()

        reason_value = reason.value if isinstance(reason, LedgerReason) else str(reason)
        entry = LedgerEntry(
            account_id=account_id,
            amount=delta,
            balance_before=balance_before,
            balance_after=balance_after,
            balance_version=version + 1,
            reason=reason_value,
            reference_id=reference_id,
            integrity_hash=LedgerEntry.compute_hash(
                account_id=account_id,
                amount=delta,
                balance_before=balance_before,
                balance_after=balance_after,
                balance_version=version + 1,
                reason=reason_value,
                reference_id=reference_id,
            ),
        )
        self.session.add(entry)
        await self.session.flush()

        logger.info(
            f"Ledger {reason_value}: account={account_id[:8]}... "
            f"amount={delta:+} balance={balance_before} -> {balance_after}"
        )
        return entry
