"""Wallet API endpoints for balances, deposits and withdrawals.

Endpoints:
- GET /wallet/balance - Current balance
- GET /wallet/transactions - Deposits and withdrawals, newest first
- POST /wallet/deposits - Wallet or card deposit, pending until confirmed
- POST /wallet/deposits/{id}/confirm - Chain watcher / payment gateway webhook (secured)
- POST /wallet/withdrawals - Debit and queue a withdrawal
- POST /wallet/withdrawals/{id}/complete|fail - Payout processor callbacks (secured)
"""

from fastapi import APIRouter, Query, status

from chesswager.api.deps import CurrentAccount, DbSession, Wallet, verify_webhook_secret
from chesswager.schemas import (
    BalanceResponse,
    CompleteWithdrawalRequest,
    ConfirmDepositRequest,
    DepositRequest,
    DepositResponse,
    ErrorResponse,
    FailWithdrawalRequest,
    TransferResponse,
    WithdrawalRequest,
)
from chesswager.services.ledger import LedgerService

router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(current_account: CurrentAccount, db: DbSession):
    balance = await LedgerService(db).get_balance(current_account.id)
    return BalanceResponse(account_id=current_account.id, balance=balance)


@router.get("/transactions", response_model=list[TransferResponse])
async def list_transactions(
    current_account: CurrentAccount,
    wallet: Wallet,
    limit: int = Query(50, ge=1, le=100),
):
    transfers = await wallet.list_transfers(current_account.id, limit=limit)
    return [TransferResponse.model_validate(t) for t in transfers]


@router.post(
    "/deposits",
    response_model=DepositResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid amount or reference"},
        409: {"model": ErrorResponse, "description": "Reference already used"},
    },
)
async def request_deposit(
    request_body: DepositRequest,
    current_account: CurrentAccount,
    wallet: Wallet,
):
    transfer, client_secret = await wallet.request_deposit(
        current_account.id,
        request_body.amount,
        request_body.method,
        tx_reference=request_body.tx_reference,
        currency=request_body.currency,
    )
    return DepositResponse(
        transfer=TransferResponse.model_validate(transfer),
        client_secret=client_secret,
    )


@router.post(
    "/deposits/{transfer_id}/confirm",
    response_model=TransferResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Deposit is not pending"},
        403: {"model": ErrorResponse, "description": "Invalid webhook secret"},
    },
)
async def confirm_deposit(
    transfer_id: str,
    request_body: ConfirmDepositRequest,
    wallet: Wallet,
):
    """Chain watcher or payment gateway verdict on a pending deposit."""
    verify_webhook_secret(request_body.secret)
    transfer = await wallet.confirm_deposit(
        transfer_id,
        success=request_body.success,
        failure_reason=request_body.failure_reason,
    )
    return TransferResponse.model_validate(transfer)


@router.post(
    "/withdrawals",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse, "description": "Insufficient funds"}},
)
async def request_withdrawal(
    request_body: WithdrawalRequest,
    current_account: CurrentAccount,
    wallet: Wallet,
):
    transfer = await wallet.request_withdrawal(
        current_account.id,
        request_body.amount,
        request_body.destination_address,
    )
    return TransferResponse.model_validate(transfer)


@router.post("/withdrawals/{transfer_id}/complete", response_model=TransferResponse)
async def complete_withdrawal(
    transfer_id: str,
    request_body: CompleteWithdrawalRequest,
    wallet: Wallet,
):
    verify_webhook_secret(request_body.secret)
    transfer = await wallet.complete_withdrawal(transfer_id, tx_hash=request_body.tx_hash)
    return TransferResponse.model_validate(transfer)


@router.post("/withdrawals/{transfer_id}/fail", response_model=TransferResponse)
async def fail_withdrawal(
    transfer_id: str,
    request_body: FailWithdrawalRequest,
    wallet: Wallet,
):
    """Mark a withdrawal failed; the amount is credited back."""
    verify_webhook_secret(request_body.secret)
    transfer = await wallet.fail_withdrawal(transfer_id, request_body.reason)
    return TransferResponse.model_validate(transfer)
