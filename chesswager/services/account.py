"""Account service: identity mapping, profiles and leaderboards."""

import hashlib
import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chesswager.config import get_settings
from chesswager.models.account import Account, AccountStatus
from chesswager.models.game import Game, GameStatus
from chesswager.services.identity import ExternalIdentity
from chesswager.services.rating_lookup import RatingLookup
from chesswager.utils.errors import AccountInactive, ChessWagerError, ErrorCode, NotFound

logger = logging.getLogger(__name__)


@dataclass
class LeaderboardEntry:
    rank: int
    account_id: str
    username: str
    rating: int
    games_played: int
    games_won: int
    win_rate: float


@dataclass
class EarningsEntry:
    rank: int
    account_id: str
    username: str
    games_won: int
    total_earnings: Decimal


class AccountService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_or_create(self, identity: ExternalIdentity) -> tuple[Account, bool]:
        """Map an external identity 1:1 to an account, creating it on first sight.

        Returns:
            (account, created)
        """
        account = await self.get_by_external_id(identity.external_id)
        if account is not None:
            return account, False

        account = Account(
            external_id=identity.external_id,
            username=self._default_username(identity.external_id),
            email=identity.email,
            wallet_address=identity.wallet_address,
            rating=get_settings().default_rating,
            balance=Decimal("0"),
            balance_version=0,
        )
        self.session.add(account)
        try:
            await self.session.flush()
        except IntegrityError:
            # Concurrent first login for the same identity
            await self.session.rollback()
            existing = await self.get_by_external_id(identity.external_id)
            if existing is None:
                raise
            return existing, False

        logger.info(f"Account created: id={account.id} external_id={identity.external_id}")
        return account, True

    async def get_by_external_id(self, external_id: str) -> Account | None:
        result = await self.session.execute(
            select(Account).where(Account.external_id == external_id)
        )
        return result.scalar_one_or_none()

    async def get_account(self, account_id: str) -> Account:
        result = await self.session.execute(
            select(Account)
            .where(Account.id == account_id)
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise NotFound("Account", account_id)
        return account

    async def get_active_account(self, account_id: str) -> Account:
        account = await self.get_account(account_id)
        if not account.is_active:
            raise AccountInactive(account_id)
        return account

    async def update_profile(
        self,
        account_id: str,
        username: str | None = None,
        wallet_address: str | None = None,
        chess_com_username: str | None = None,
        rating_lookup: RatingLookup | None = None,
    ) -> Account:
        """Update profile fields.

        A chess.com handle seeds the rating, but only before the first rated
        game; the external rating is never consulted again afterwards.
        """
        account = await self.get_active_account(account_id)

        if username and username != account.username:
            taken = await self.session.execute(
                select(Account.id).where(Account.username == username)
            )
            if taken.scalar_one_or_none() is not None:
                raise ChessWagerError(ErrorCode.INVALID_REQUEST, "Username already taken")
            account.username = username

        if wallet_address is not None:
            account.wallet_address = wallet_address

        if chess_com_username and rating_lookup is not None:
            external = await rating_lookup.lookup(chess_com_username)
            account.chess_com_username = external.username
            account.chess_com_rating = external.best
            account.is_verified = external.verified
            if external.best and account.games_played == 0:
                account.rating = external.best
                logger.info(
                    f"Rating seeded from chess.com: account={account_id} rating={external.best}"
                )

        await self.session.flush()
        return account

    async def deactivate(self, account_id: str) -> Account:
        account = await self.get_account(account_id)
        await self.session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(status=AccountStatus.DEACTIVATED.value)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(account)
        logger.info(f"Account deactivated: id={account_id}")
        return account

    async def leaderboard(self, limit: int = 50) -> list[LeaderboardEntry]:
        """Top accounts by rating."""
        result = await self.session.execute(
            select(Account)
            .where(Account.status == AccountStatus.ACTIVE.value)
            .order_by(Account.rating.desc(), Account.games_won.desc())
            .limit(limit)
        )
        return [
            LeaderboardEntry(
                rank=rank,
                account_id=account.id,
                username=account.username,
                rating=account.rating,
                games_played=account.games_played,
                games_won=account.games_won,
                win_rate=account.win_rate,
            )
            for rank, account in enumerate(result.scalars().all(), start=1)
        ]

    async def earnings_leaderboard(self, limit: int = 50) -> list[EarningsEntry]:
        """Top accounts by winnings (twice the wager of every game won)."""
        earnings = func.sum(Game.wager * 2).label("earnings")
        wins = func.count(Game.id).label("wins")
        result = await self.session.execute(
            select(Account.id, Account.username, wins, earnings)
            .join(Game, Game.winner_id == Account.id)
            .where(Game.status == GameStatus.COMPLETED.value)
            .group_by(Account.id, Account.username)
            .order_by(earnings.desc())
            .limit(limit)
        )
        return [
            EarningsEntry(
                rank=rank,
                account_id=row.id,
                username=row.username,
                games_won=row.wins,
                total_earnings=Decimal(str(row.earnings or 0)),
            )
            for rank, row in enumerate(result.all(), start=1)
        ]

    @staticmethod
    def _default_username(external_id: str) -> str:
        return f"player_{hashlib.sha256(external_id.encode()).hexdigest()[:10]}"
