"""API routers."""

from chesswager.api import auth, games, leaderboard, tournaments, users, wallet

__all__ = ["auth", "games", "leaderboard", "tournaments", "users", "wallet"]
