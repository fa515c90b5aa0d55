"""Wagered game API endpoints.

Moves are played over the realtime hub; these endpoints cover the lobby and
the game lifecycle around it.
"""

from fastapi import APIRouter, Query, status

from chesswager.api.deps import CurrentAccount, Registry
from chesswager.schemas import (
    AvailableGameResponse,
    CancelGameRequest,
    ChatMessageResponse,
    CreateGameRequest,
    ErrorResponse,
    GameResponse,
    SettlementResponse,
)
from chesswager.services.game import SettlementSummary
from chesswager.utils.errors import NotAParticipant

router = APIRouter(prefix="/games", tags=["Games"])


def _settlement(summary: SettlementSummary) -> SettlementResponse:
    return SettlementResponse.model_validate(summary)


@router.post(
    "",
    response_model=GameResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid wager or insufficient funds"},
    },
)
async def create_game(
    request_body: CreateGameRequest,
    current_account: CurrentAccount,
    registry: Registry,
):
    """Create a waiting game; the wager is escrowed immediately."""
    game = await registry.create_game(
        current_account.id,
        request_body.wager,
        request_body.time_control,
    )
    return GameResponse.model_validate(game)


@router.get("", response_model=list[AvailableGameResponse])
async def list_available_games(
    current_account: CurrentAccount,
    registry: Registry,
    limit: int = Query(50, ge=1, le=100),
):
    """Waiting games of other players, with an advisory skill-gap flag."""
    available = await registry.list_available_games(
        exclude_account_id=current_account.id, limit=limit
    )
    return [
        AvailableGameResponse(
            id=item.game.id,
            creator_id=item.game.creator_id,
            creator_username=item.creator_username,
            creator_rating=item.creator_rating,
            wager=item.game.wager,
            time_control=item.game.time_control,
            created_at=item.game.created_at,
            skill_gap=registry.skill_gap(current_account.rating, item.creator_rating),
            requires_confirmation=registry.requires_confirmation(
                current_account.rating, item.creator_rating
            ),
        )
        for item in available
    ]


@router.get(
    "/{game_id}",
    response_model=GameResponse,
    responses={404: {"model": ErrorResponse, "description": "Game not found"}},
)
async def get_game(game_id: str, registry: Registry):
    return GameResponse.model_validate(await registry.get_game(game_id))


@router.post(
    "/{game_id}/join",
    response_model=GameResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Not joinable or insufficient funds"},
        404: {"model": ErrorResponse, "description": "Game not found"},
    },
)
async def join_game(game_id: str, current_account: CurrentAccount, registry: Registry):
    """Join a waiting game; the opponent's wager is escrowed and play starts."""
    game = await registry.join_game(game_id, current_account.id)
    return GameResponse.model_validate(game)


@router.post(
    "/{game_id}/cancel",
    response_model=SettlementResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Game cannot be cancelled"},
        403: {"model": ErrorResponse, "description": "Only the creator can cancel"},
    },
)
async def cancel_game(
    game_id: str,
    current_account: CurrentAccount,
    registry: Registry,
    request_body: CancelGameRequest | None = None,
):
    """Cancel a waiting game and refund the creator's wager."""
    reason = request_body.reason if request_body else "cancelled"
    summary = await registry.cancel_game(
        game_id, reason=reason, requested_by=current_account.id
    )
    return _settlement(summary)


@router.post(
    "/{game_id}/resign",
    response_model=SettlementResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Game is not active"},
        403: {"model": ErrorResponse, "description": "Not a participant"},
    },
)
async def resign_game(game_id: str, current_account: CurrentAccount, registry: Registry):
    return _settlement(await registry.resign(game_id, current_account.id))


@router.get(
    "/{game_id}/chat",
    response_model=list[ChatMessageResponse],
    responses={403: {"model": ErrorResponse, "description": "Not a participant"}},
)
async def get_chat(
    game_id: str,
    current_account: CurrentAccount,
    registry: Registry,
    limit: int = Query(100, ge=1, le=500),
):
    game = await registry.get_game(game_id)
    if not game.is_participant(current_account.id):
        raise NotAParticipant(game_id, current_account.id)
    messages = await registry.get_chat_messages(game_id, limit=limit)
    return [ChatMessageResponse.model_validate(m) for m in messages]
