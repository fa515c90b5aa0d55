"""Wallet service: deposits and withdrawals.

Deposits and withdrawals share one table (``WalletTransfer.kind``). A transfer
moves only from pending to a terminal status, through a conditional update,
and terminal rows are never touched again.
"""

import logging
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chesswager.middleware.prometheus import record_deposit, record_withdrawal
from chesswager.models.base import generate_id, utcnow
from chesswager.models.wallet import (
    LedgerReason,
    TransferKind,
    TransferMethod,
    TransferStatus,
    WalletTransfer,
)
from chesswager.services.ledger import LedgerService
from chesswager.services.payments import PaymentGateway
from chesswager.utils.errors import (
    ChessWagerError,
    ErrorCode,
    InvalidTransition,
    NotFound,
)

logger = logging.getLogger(__name__)


class WalletService:
    def __init__(
        self,
        session: AsyncSession,
        ledger: LedgerService | None = None,
        gateway: PaymentGateway | None = None,
    ) -> None:
        self.session = session
        self.ledger = ledger or LedgerService(session)
        self.gateway = gateway

    async def request_deposit(
        self,
        account_id: str,
        amount: Decimal,
        method: TransferMethod | str,
        tx_reference: str | None = None,
        currency: str = "SOL",
    ) -> tuple[WalletTransfer, str | None]:
        """Create a deposit.

        Both methods create a pending transfer; the balance is credited only
        by ``confirm_deposit`` once the chain watcher (wallet) or the payment
        gateway (card) reports the funds as settled. Wallet deposits carry the
        client-reported transaction reference so the watcher can match it.

        Returns:
            (transfer, client_secret) where client_secret is only set for cards
        """
        method = TransferMethod(method)
        amount = LedgerService.validate_amount(amount)

        if method == TransferMethod.WALLET:
            if not tx_reference:
                raise ChessWagerError(
                    ErrorCode.INVALID_REQUEST, "Transaction reference is required"
                )
            await self._reject_duplicate_reference(tx_reference)
            transfer = self._new_transfer(
                account_id, TransferKind.DEPOSIT, amount, method, currency,
                external_reference=tx_reference,
            )
            self.session.add(transfer)
            await self.session.flush()
            logger.info(
                f"Wallet deposit pending: id={transfer.id} account={account_id} "
                f"amount={amount} tx={tx_reference}"
            )
            return transfer, None

        if self.gateway is None:
            raise ChessWagerError(ErrorCode.INVALID_REQUEST, "Card payments are not available")
        intent = await self.gateway.create_intent(amount, currency)
        transfer = self._new_transfer(
            account_id, TransferKind.DEPOSIT, amount, method, currency,
            external_reference=intent.reference,
        )
        self.session.add(transfer)
        await self.session.flush()
        logger.info(f"Card deposit pending: id={transfer.id} account={account_id} amount={amount}")
        return transfer, intent.client_secret

    async def confirm_deposit(
        self,
        transfer_id: str,
        success: bool,
        failure_reason: str | None = None,
    ) -> WalletTransfer:
        """Apply the gateway's asynchronous verdict on a pending deposit."""
        transfer = await self._get(transfer_id, TransferKind.DEPOSIT)
        status = TransferStatus.COMPLETED if success else TransferStatus.FAILED
        await self._transition(transfer, status, failure_reason=failure_reason)
        if success:
            await self.ledger.credit(
                transfer.account_id, transfer.amount, LedgerReason.DEPOSIT, transfer.id
            )
            record_deposit(transfer.method)
        return transfer

    async def request_withdrawal(
        self,
        account_id: str,
        amount: Decimal,
        destination_address: str,
        currency: str = "SOL",
    ) -> WalletTransfer:
        """Debit the balance and record a pending withdrawal."""
        if not destination_address:
            raise ChessWagerError(ErrorCode.INVALID_REQUEST, "Destination address is required")
        amount = LedgerService.validate_amount(amount)

        transfer = self._new_transfer(
            account_id, TransferKind.WITHDRAWAL, amount, TransferMethod.WALLET, currency,
        )
        transfer.destination_address = destination_address
        await self.ledger.debit(account_id, amount, LedgerReason.WITHDRAWAL, transfer.id)
        self.session.add(transfer)
        await self.session.flush()
        record_withdrawal()
        logger.info(f"Withdrawal requested: id={transfer.id} account={account_id} amount={amount}")
        return transfer

    async def complete_withdrawal(self, transfer_id: str, tx_hash: str | None = None) -> WalletTransfer:
        transfer = await self._get(transfer_id, TransferKind.WITHDRAWAL)
        await self._transition(transfer, TransferStatus.COMPLETED, external_reference=tx_hash)
        return transfer

    async def fail_withdrawal(self, transfer_id: str, reason: str) -> WalletTransfer:
        """Mark a withdrawal failed and return the funds."""
        transfer = await self._get(transfer_id, TransferKind.WITHDRAWAL)
        await self._transition(transfer, TransferStatus.FAILED, failure_reason=reason)
        await self.ledger.credit(
            transfer.account_id,
            transfer.amount,
            LedgerReason.WITHDRAWAL_REVERSAL,
            transfer.id,
        )
        return transfer

    async def list_transfers(self, account_id: str, limit: int = 50) -> list[WalletTransfer]:
        """Deposits and withdrawals, newest first."""
        result = await self.session.execute(
            select(WalletTransfer)
            .where(WalletTransfer.account_id == account_id)
            .order_by(WalletTransfer.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _new_transfer(
        account_id: str,
        kind: TransferKind,
        amount: Decimal,
        method: TransferMethod,
        currency: str,
        external_reference: str | None = None,
    ) -> WalletTransfer:
        return WalletTransfer(
            id=generate_id(),
            account_id=account_id,
            kind=kind.value,
            amount=amount,
            method=method.value,
            currency=currency,
            external_reference=external_reference,
            status=TransferStatus.PENDING.value,
        )

    async def _get(self, transfer_id: str, kind: TransferKind) -> WalletTransfer:
        result = await self.session.execute(
            select(WalletTransfer)
            .where(WalletTransfer.id == transfer_id, WalletTransfer.kind == kind.value)
            .execution_options(populate_existing=True)
        )
        transfer = result.scalar_one_or_none()
        if transfer is None:
            raise NotFound(kind.value.capitalize(), transfer_id)
        return transfer

    async def _reject_duplicate_reference(self, reference: str) -> None:
        result = await self.session.execute(
            select(WalletTransfer.id).where(WalletTransfer.external_reference == reference)
        )
        if result.first() is not None:
            raise ChessWagerError(
                ErrorCode.INVALID_REQUEST,
                "Transaction reference was already used",
                status_code=409,
            )

    async def _transition(
        self,
        transfer: WalletTransfer,
        status: TransferStatus,
        failure_reason: str | None = None,
        external_reference: str | None = None,
    ) -> None:
        values: dict = {
            "status": status.value,
            "completed_at": utcnow(),
        }
        if failure_reason is not None:
            values["failure_reason"] = failure_reason
        if external_reference is not None:
            values["external_reference"] = external_reference

        result = await self.session.execute(
            update(WalletTransfer)
            .where(
                WalletTransfer.id == transfer.id,
                WalletTransfer.status == TransferStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition(transfer.kind, transfer.id, transfer.status, status.value)
        await self.session.refresh(transfer)
        logger.info(f"Transfer {transfer.kind} {transfer.id}: pending -> {status.value}")
