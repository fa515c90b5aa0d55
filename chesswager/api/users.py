"""Account profile API endpoints."""

from fastapi import APIRouter, Query

from chesswager.api.deps import CurrentAccount, DbSession, Lookup, Registry
from chesswager.schemas import (
    AccountPublicResponse,
    AccountResponse,
    ChessComRatingResponse,
    ErrorResponse,
    GameResponse,
    UpdateProfileRequest,
)
from chesswager.services.account import AccountService

router = APIRouter(prefix="/users", tags=["Users"])


@router.get(
    "/chess-com/{username}",
    response_model=ChessComRatingResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown chess.com user"}},
)
async def lookup_chess_com(username: str, _: CurrentAccount, rating_lookup: Lookup):
    """Preview the chess.com ratings of a handle."""
    external = await rating_lookup.lookup(username)
    return ChessComRatingResponse(
        username=external.username,
        profile_url=external.profile_url,
        verified=external.verified,
        ratings=external.ratings,
        best=external.best,
    )


@router.put(
    "/me/profile",
    response_model=AccountResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Username taken"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def update_profile(
    request_body: UpdateProfileRequest,
    current_account: CurrentAccount,
    db: DbSession,
    rating_lookup: Lookup,
):
    """Update username, wallet address and chess.com handle.

    A chess.com handle seeds the rating until the first rated game.
    """
    account = await AccountService(db).update_profile(
        current_account.id,
        username=request_body.username,
        wallet_address=request_body.wallet_address,
        chess_com_username=request_body.chess_com_username,
        rating_lookup=rating_lookup,
    )
    return AccountResponse.model_validate(account)


@router.get(
    "/{account_id}",
    response_model=AccountPublicResponse,
    responses={404: {"model": ErrorResponse, "description": "Account not found"}},
)
async def get_account(account_id: str, db: DbSession):
    account = await AccountService(db).get_account(account_id)
    return AccountPublicResponse.model_validate(account)


@router.get("/{account_id}/games", response_model=list[GameResponse])
async def get_account_games(
    account_id: str,
    db: DbSession,
    registry: Registry,
    limit: int = Query(50, ge=1, le=100),
):
    """Games the account created or joined, newest first."""
    await AccountService(db).get_account(account_id)
    games = await registry.games_for_account(account_id, limit=limit)
    return [GameResponse.model_validate(g) for g in games]
