"""External rating lookup (chess.com public API).

Used only to seed an account's rating at profile setup.
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from chesswager.config import get_settings
from chesswager.utils.errors import NotFound
from chesswager.utils.http_client import AsyncHttpClient

logger = logging.getLogger(__name__)


@dataclass
class ExternalRating:
    username: str
    profile_url: str | None = None
    verified: bool = False
    ratings: dict[str, int | None] = field(default_factory=dict)

    @property
    def best(self) -> int | None:
        """Rapid, then blitz, then bullet."""
        for category in ("rapid", "blitz", "bullet"):
            value = self.ratings.get(category)
            if value:
                return value
        return None


class RatingLookup(Protocol):
    async def lookup(self, username: str) -> ExternalRating:
        ...


class ChessComClient:
    """chess.com public API client over the shared retrying HTTP client."""

    def __init__(self, base_url: str | None = None, http: AsyncHttpClient | None = None) -> None:
        self.base_url = (base_url or get_settings().chess_com_api_url).rstrip("/")
        self._http = http

    async def lookup(self, username: str) -> ExternalRating:
        """Fetch profile and stats for a chess.com handle.

        Raises:
            NotFound: If the handle does not exist
        """
        if self._http is not None:
            return await self._lookup(self._http, username)
        async with AsyncHttpClient(timeout=10.0) as http:
            return await self._lookup(http, username)

    async def _lookup(self, http: AsyncHttpClient, username: str) -> ExternalRating:
        try:
            profile = await http.get_json(f"{self.base_url}/player/{username}")
            stats = await http.get_json(f"{self.base_url}/player/{username}/stats")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise NotFound("Chess.com user", username)
            raise

        def last_rating(key: str) -> int | None:
            return (stats.get(key) or {}).get("last", {}).get("rating")

        return ExternalRating(
            username=profile.get("username", username),
            profile_url=profile.get("url"),
            verified=bool(profile.get("verified", False)),
            ratings={
                "rapid": last_rating("chess_rapid"),
                "blitz": last_rating("chess_blitz"),
                "bullet": last_rating("chess_bullet"),
            },
        )
