"""Leaderboard API endpoints."""

from fastapi import APIRouter, Query

from chesswager.api.deps import DbSession
from chesswager.schemas import EarningsEntryResponse, LeaderboardEntryResponse
from chesswager.services.account import AccountService

router = APIRouter(prefix="/leaderboard", tags=["Leaderboard"])


@router.get("", response_model=list[LeaderboardEntryResponse])
async def rating_leaderboard(db: DbSession, limit: int = Query(50, ge=1, le=100)):
    """Top active accounts by rating."""
    entries = await AccountService(db).leaderboard(limit=limit)
    return [LeaderboardEntryResponse.model_validate(e) for e in entries]


@router.get("/earnings", response_model=list[EarningsEntryResponse])
async def earnings_leaderboard(db: DbSession, limit: int = Query(50, ge=1, le=100)):
    entries = await AccountService(db).earnings_leaderboard(limit=limit)
    return [EarningsEntryResponse.model_validate(e) for e in entries]
