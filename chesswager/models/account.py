"""Account model."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from chesswager.models.base import Base, Money, TimestampMixin, UUIDMixin


class AccountStatus(str, Enum):
    """Account status. Accounts are never deleted, only deactivated."""

    ACTIVE = "active"
    DEACTIVATED = "deactivated"


class Account(Base, UUIDMixin, TimestampMixin):
    """Player account.

    ``balance`` is only ever written through the ledger's compare-and-swap,
    which bumps ``balance_version`` on every successful write.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )

    # Identity
    external_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    username: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    wallet_address: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(20),
        default=AccountStatus.ACTIVE.value,
        nullable=False,
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Rating
    rating: Mapped[int] = mapped_column(Integer, default=1200, nullable=False)
    chess_com_username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    chess_com_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Balance
    balance: Mapped[Decimal] = mapped_column(
        Money,
        default=Decimal("0"),
        nullable=False,
    )
    balance_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Lifetime stats
    games_played: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    games_won: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_earnings: Mapped[Decimal] = mapped_column(
        Money,
        default=Decimal("0"),
        nullable=False,
    )

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE.value

    @property
    def win_rate(self) -> float:
        if not self.games_played:
            return 0.0
        return round(self.games_won / self.games_played * 100, 1)

    def __repr__(self) -> str:
        return f"<Account {self.username} rating={self.rating}>"
