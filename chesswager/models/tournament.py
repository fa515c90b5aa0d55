"""Tournament models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from chesswager.models.base import Base, Money, TimestampMixin, UUIDMixin, utcnow


class TournamentStatus(str, Enum):
    """Tournament lifecycle status."""

    OPEN = "open"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Tournament(Base, UUIDMixin, TimestampMixin):
    """Winner-take-all tournament.

    Until the prize is paid, ``prize_pool == entry_fee * current_participants``.
    """

    __tablename__ = "tournaments"
    __table_args__ = (
        CheckConstraint(
            "current_participants <= max_participants",
            name="ck_tournaments_capacity",
        ),
        CheckConstraint("prize_pool >= 0", name="ck_tournaments_prize_pool_non_negative"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    creator_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=True,
    )

    entry_fee: Mapped[Decimal] = mapped_column(Money, nullable=False)
    prize_pool: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    current_participants: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    time_control: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=TournamentStatus.OPEN.value,
        nullable=False,
        index=True,
    )
    current_round: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    winner_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=True,
    )

    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_full(self) -> bool:
        return self.current_participants >= self.max_participants

    def __repr__(self) -> str:
        return f"<Tournament {self.name} {self.status} {self.current_participants}/{self.max_participants}>"


class TournamentParticipant(Base, UUIDMixin):
    """Account registered for a tournament."""

    __tablename__ = "tournament_participants"
    __table_args__ = (
        UniqueConstraint("tournament_id", "account_id", name="uq_tournament_participant"),
    )

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    seed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    eliminated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    eliminated_round: Mapped[int | None] = mapped_column(Integer, nullable=True)
    placement: Mapped[int | None] = mapped_column(Integer, nullable=True)
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class TournamentGame(Base, UUIDMixin):
    """Bracket slot: one pairing of one round.

    A bye is a slot with no game and no black player; its white player
    advances without playing.
    """

    __tablename__ = "tournament_games"
    __table_args__ = (
        UniqueConstraint("tournament_id", "round", "slot", name="uq_tournament_round_slot"),
    )

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    game_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("games.id", ondelete="RESTRICT"),
        nullable=True,
        unique=True,
    )
    round: Mapped[int] = mapped_column(Integer, nullable=False)
    slot: Mapped[int] = mapped_column(Integer, nullable=False)
    white_id: Mapped[str] = mapped_column(String(36), ForeignKey("accounts.id"), nullable=False)
    black_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("accounts.id"), nullable=True)
    winner_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("accounts.id"), nullable=True)

    @property
    def is_bye(self) -> bool:
        return self.black_id is None
