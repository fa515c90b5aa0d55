"""ELO rating updates for completed games."""

import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chesswager.models.account import Account
from chesswager.models.game import Game, GameOutcome, GameStatus

logger = logging.getLogger(__name__)

# K-factor tiers: new accounts move fast, masters barely move
PROVISIONAL_GAMES = 30
PROVISIONAL_K = 40
STANDARD_K = 20
MASTER_RATING = 2400
MASTER_K = 10

MIN_RATING = 100


@dataclass(frozen=True)
class RatingChange:
    creator_delta: int
    opponent_delta: int
    creator_rating: int
    opponent_rating: int


class RatingService:
    """Applies ELO deltas exactly once per completed game."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @staticmethod
    def expected_score(rating: int, opponent_rating: int) -> float:
        """Logistic expected score of ``rating`` against ``opponent_rating``."""
        return 1 / (1 + 10 ** ((opponent_rating - rating) / 400))

    @staticmethod
    def k_factor(games_played: int, rating: int) -> int:
        if games_played < PROVISIONAL_GAMES:
            return PROVISIONAL_K
        if rating < MASTER_RATING:
            return STANDARD_K
        return MASTER_K

    @classmethod
    def rating_delta(
        cls,
        rating: int,
        opponent_rating: int,
        games_played: int,
        actual_score: float,
    ) -> int:
        """round(K * (actual - expected)); actual is 1, 0.5 or 0."""
        k = cls.k_factor(games_played, rating)
        return round(k * (actual_score - cls.expected_score(rating, opponent_rating)))

    async def update_ratings(self, game: Game) -> RatingChange | None:
        """Apply rating changes for a completed game.

        Guarded by a conditional flip of ``ratings_applied`` so replays of
        settlement never rate a game twice. The games_played/games_won
        counters move under the same guard.

        Returns:
            The applied change, or None if the game was already rated or is
            not a rated game
        """
        if game.opponent_id is None or game.outcome is None:
            return None

        flipped = await self.session.execute(
            update(Game)
            .where(
                Game.id == game.id,
                Game.status == GameStatus.COMPLETED.value,
                Game.ratings_applied.is_(False),
            )
            .values(ratings_applied=True)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount != 1:
            logger.debug(f"Ratings already applied for game {game.id}")
            return None

        rows = await self.session.execute(
            select(Account.id, Account.rating, Account.games_played).where(
                Account.id.in_([game.creator_id, game.opponent_id])
            )
        )
        players = {row.id: row for row in rows}
        creator = players[game.creator_id]
        opponent = players[game.opponent_id]

        if game.outcome == GameOutcome.CREATOR_WINS.value:
            creator_score, opponent_score = 1.0, 0.0
        elif game.outcome == GameOutcome.OPPONENT_WINS.value:
            creator_score, opponent_score = 0.0, 1.0
        else:
            creator_score = opponent_score = 0.5

        # K uses the games played before this one
        creator_delta = self.rating_delta(
            creator.rating, opponent.rating, creator.games_played, creator_score
        )
        opponent_delta = self.rating_delta(
            opponent.rating, creator.rating, opponent.games_played, opponent_score
        )
        creator_rating = max(MIN_RATING, creator.rating + creator_delta)
        opponent_rating = max(MIN_RATING, opponent.rating + opponent_delta)

        for account_id, new_rating, score in (
            (game.creator_id, creator_rating, creator_score),
            (game.opponent_id, opponent_rating, opponent_score),
        ):
            await self.session.execute(
                update(Account)
                .where(Account.id == account_id)
                .values(
                    rating=new_rating,
                    games_played=Account.games_played + 1,
                    games_won=Account.games_won + (1 if score == 1.0 else 0),
                )
                .execution_options(synchronize_session=False)
            )

        await self.session.execute(
            update(Game)
            .where(Game.id == game.id)
            .values(
                creator_rating_delta=creator_delta,
                opponent_rating_delta=opponent_delta,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(game)

        logger.info(
            f"Ratings updated for game {game.id}: "
            f"creator {creator.rating}->{creator_rating} ({creator_delta:+}), "
            f"opponent {opponent.rating}->{opponent_rating} ({opponent_delta:+})"
        )
        return RatingChange(
            creator_delta=creator_delta,
            opponent_delta=opponent_delta,
            creator_rating=creator_rating,
            opponent_rating=opponent_rating,
        )
