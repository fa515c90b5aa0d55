"""Async HTTP client for the public APIs we read from (chess.com).

Transport failures, rate limiting (429) and upstream 5xx are retried with
exponential backoff; any other error status is raised to the caller at once.
"""

import logging
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 1.0  # seconds
DEFAULT_MAX_WAIT = 10.0  # seconds

USER_AGENT = "chesswager/0.1 (+rating-lookup)"


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class AsyncHttpClient:
    """Pooled httpx client with bounded retries.

    Usage:
        async with AsyncHttpClient() as http:
            profile = await http.get_json("https://api.chess.com/pub/player/hikaru")
    """

    def __init__(
        self,
        timeout: float = 10.0,
        connect_timeout: float = 5.0,
        max_connections: int = 20,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        min_wait: float = DEFAULT_MIN_WAIT,
        max_wait: float = DEFAULT_MAX_WAIT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._limits = httpx.Limits(max_connections=max_connections)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.max_attempts = max_attempts
        self.min_wait = min_wait
        self.max_wait = max_wait

    async def __aenter__(self) -> "AsyncHttpClient":
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            limits=self._limits,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")
        return self._client

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=self.min_wait, max=self.max_wait),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def get(self, url: str, **kwargs) -> httpx.Response:
        async for attempt in self._retrying():
            with attempt:
                response = await self.client.get(url, **kwargs)
                response.raise_for_status()
        return response

    async def get_json(self, url: str, **kwargs) -> dict[str, Any]:
        response = await self.get(url, **kwargs)
        return response.json()


_global_client: AsyncHttpClient | None = None


async def get_http_client() -> AsyncHttpClient:
    """Get or create the application-wide client."""
    global _global_client
    if _global_client is None:
        _global_client = AsyncHttpClient()
        await _global_client.__aenter__()
    return _global_client


async def close_http_client() -> None:
    global _global_client
    if _global_client:
        await _global_client.__aexit__(None, None, None)
        _global_client = None
