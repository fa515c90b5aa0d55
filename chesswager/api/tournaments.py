"""Tournament API endpoints."""

from fastapi import APIRouter, Query, status

from chesswager.api.deps import CurrentAccount, Engine
from chesswager.models.tournament import Tournament, TournamentStatus
from chesswager.schemas import (
    BracketRoundResponse,
    CreateTournamentRequest,
    ErrorResponse,
    ParticipantResponse,
    RefundResponse,
    TournamentJoinResponse,
    TournamentResponse,
)
from chesswager.utils.errors import ChessWagerError, ErrorCode

router = APIRouter(prefix="/tournaments", tags=["Tournaments"])


def _require_organizer(tournament: Tournament, account_id: str) -> None:
    if tournament.creator_id is not None and tournament.creator_id != account_id:
        raise ChessWagerError(
            ErrorCode.FORBIDDEN,
            "Only the organizer can do this",
            details={"tournamentId": tournament.id},
            status_code=status.HTTP_403_FORBIDDEN,
        )


@router.get("", response_model=list[TournamentResponse])
async def list_tournaments(
    engine: Engine,
    status_filter: TournamentStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=100),
):
    tournaments = await engine.list_tournaments(status_filter, limit=limit)
    return [TournamentResponse.model_validate(t) for t in tournaments]


@router.post(
    "",
    response_model=TournamentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse, "description": "Invalid settings"}},
)
async def create_tournament(
    request_body: CreateTournamentRequest,
    current_account: CurrentAccount,
    engine: Engine,
):
    tournament = await engine.create_tournament(
        name=request_body.name,
        entry_fee=request_body.entry_fee,
        max_participants=request_body.max_participants,
        time_control=request_body.time_control,
        description=request_body.description,
        creator_id=current_account.id,
    )
    return TournamentResponse.model_validate(tournament)


@router.get(
    "/{tournament_id}",
    response_model=TournamentResponse,
    responses={404: {"model": ErrorResponse, "description": "Tournament not found"}},
)
async def get_tournament(tournament_id: str, engine: Engine):
    return TournamentResponse.model_validate(await engine.get_tournament(tournament_id))


@router.post(
    "/{tournament_id}/join",
    response_model=TournamentJoinResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Full, not open, already joined or insufficient funds"},
    },
)
async def join_tournament(tournament_id: str, current_account: CurrentAccount, engine: Engine):
    """Register and pay the entry fee. The last seat starts the tournament."""
    participant = await engine.join_tournament(tournament_id, current_account.id)
    tournament = await engine.get_tournament(tournament_id)
    return TournamentJoinResponse(
        tournament=TournamentResponse.model_validate(tournament),
        seed=participant.seed or 0,
    )


@router.post(
    "/{tournament_id}/start",
    response_model=TournamentResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Not open or under-subscribed"},
        403: {"model": ErrorResponse, "description": "Not the organizer"},
    },
)
async def start_tournament(tournament_id: str, current_account: CurrentAccount, engine: Engine):
    _require_organizer(await engine.get_tournament(tournament_id), current_account.id)
    tournament = await engine.start_tournament(tournament_id)
    return TournamentResponse.model_validate(tournament)


@router.post(
    "/{tournament_id}/cancel",
    response_model=RefundResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Tournament already started"},
        403: {"model": ErrorResponse, "description": "Not the organizer"},
    },
)
async def cancel_tournament(tournament_id: str, current_account: CurrentAccount, engine: Engine):
    """Cancel an open tournament and refund every entry fee."""
    _require_organizer(await engine.get_tournament(tournament_id), current_account.id)
    summary = await engine.cancel_tournament(tournament_id)
    return RefundResponse(
        tournament_id=summary.tournament_id,
        successful_refunds=summary.successful_refunds,
        failed_refunds=summary.failed_refunds,
    )


@router.get("/{tournament_id}/participants", response_model=list[ParticipantResponse])
async def get_participants(tournament_id: str, engine: Engine):
    participants = await engine.get_participants(tournament_id)
    return [ParticipantResponse.model_validate(p) for p in participants]


@router.get("/{tournament_id}/bracket", response_model=list[BracketRoundResponse])
async def get_bracket(tournament_id: str, engine: Engine):
    return await engine.get_bracket(tournament_id)
