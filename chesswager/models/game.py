"""Game and chat models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from chesswager.models.base import Base, Money, TimestampMixin, UUIDMixin, utcnow

STARTING_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


class GameStatus(str, Enum):
    """Game lifecycle status."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class GameOutcome(str, Enum):
    """Result of a completed game."""

    CREATOR_WINS = "creator_wins"
    OPPONENT_WINS = "opponent_wins"
    DRAW = "draw"


class Game(Base, UUIDMixin, TimestampMixin):
    """A wagered game between a creator (white) and an opponent (black).

    ``escrow`` holds the wagers collected and not yet paid out: one wager
    while waiting, two while active, zero once settled or refunded.
    """

    __tablename__ = "games"
    __table_args__ = (
        CheckConstraint("wager >= 0", name="ck_games_wager_non_negative"),
        CheckConstraint("escrow >= 0", name="ck_games_escrow_non_negative"),
    )

    creator_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    opponent_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    # Wager
    wager: Mapped[Decimal] = mapped_column(Money, nullable=False)
    escrow: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    time_control: Mapped[str] = mapped_column(String(20), nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        default=GameStatus.WAITING.value,
        nullable=False,
        index=True,
    )
    outcome: Mapped[str | None] = mapped_column(String(20), nullable=True)
    winner_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=True,
    )
    cancel_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tournament_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    # Board
    moves: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    position_fen: Mapped[str] = mapped_column(
        String(100),
        default=STARTING_FEN,
        nullable=False,
    )
    move_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Rating
    ratings_applied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    creator_rating_delta: Mapped[int | None] = mapped_column(Integer, nullable=True)
    opponent_rating_delta: Mapped[int | None] = mapped_column(Integer, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def white_id(self) -> str:
        return self.creator_id

    @property
    def black_id(self) -> str | None:
        return self.opponent_id

    @property
    def ply_count(self) -> int:
        return self.move_count or 0

    def is_participant(self, account_id: str) -> bool:
        return account_id in (self.creator_id, self.opponent_id)

    def other_player(self, account_id: str) -> str | None:
        if account_id == self.creator_id:
            return self.opponent_id
        if account_id == self.opponent_id:
            return self.creator_id
        return None

    def player_to_move(self) -> str | None:
        """Creator plays white and moves on even plies."""
        return self.creator_id if self.ply_count % 2 == 0 else self.opponent_id

    def __repr__(self) -> str:
        return f"<Game {self.id} {self.status} wager={self.wager}>"


class ChatMessage(Base, UUIDMixin):
    """Immutable chat line owned by a game."""

    __tablename__ = "chat_messages"

    game_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("games.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
