"""HTTP gateway for every upstream network call."""

from __future__ import annotations

from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from next_ball.logging import get_logger
from next_ball.nba_data.endpoints import BROWSER_USER_AGENT, STATS_HEADERS
from next_ball.nba_data.errors import (
    ParseFailureError,
    RateLimitedError,
    UpstreamUnavailableError,
)

logger = get_logger("gateway")

JSON_ACCEPT = "application/json;q=0.9,*/*;q=0.8"
TEXT_ACCEPT = "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8"
BINARY_ACCEPT = "application/pdf,application/octet-stream,*/*"


class RetryableStatusError(RuntimeError):
    """Raised for retryable status codes."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        super().__init__(f"retryable status {response.status_code}")


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "upstream_retry",
        attempt=retry_state.attempt_number,
        error=str(exc) if exc else "",
    )


class NBAGateway:
    """Single async HTTP entrypoint shared by all upstream sources."""

    def __init__(
        self,
        *,
        timeout_s: float = 12.0,
        retry_attempts: int = 3,
        retry_wait_s: float = 0.5,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._retry_attempts = max(1, retry_attempts)
        self._retry_wait_s = retry_wait_s
        self._owns_client = client is None
        if client is None:
            limits = httpx.Limits(max_connections=16, max_keepalive_connections=8)
            client = httpx.AsyncClient(timeout=timeout_s, limits=limits, follow_redirects=True)
        self._http = client

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> NBAGateway:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _get(self, url: str, *, accept: str, stats: bool = False) -> httpx.Response:
        headers = {"User-Agent": BROWSER_USER_AGENT, "Accept": accept}
        if stats:
            headers.update(STATS_HEADERS)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=self._retry_wait_s, max=4.0),
            retry=retry_if_exception_type((RetryableStatusError, httpx.TransportError)),
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._http.get(url, headers=headers)
                    if response.status_code == 429:
                        raise RateLimitedError(
                            f"rate limited by {url}", url=url, status_code=429
                        )
                    if response.status_code >= 500:
                        raise RetryableStatusError(response)
                    if response.status_code >= 400:
                        raise UpstreamUnavailableError(
                            f"{url} returned {response.status_code}",
                            url=url,
                            status_code=response.status_code,
                        )
        except RetryableStatusError as exc:
            status_code = exc.response.status_code
            raise UpstreamUnavailableError(
                f"{url} returned {status_code}", url=url, status_code=status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(f"{url} failed: {exc}", url=url) from exc
        return response

    async def get_json(self, url: str, *, stats: bool = False) -> dict[str, Any]:
        """Fetch a JSON object; `stats=True` adds the stats-API browser headers."""
        response = await self._get(url, accept=JSON_ACCEPT, stats=stats)
        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseFailureError(f"invalid JSON from {url}") from exc
        if not isinstance(payload, dict):
            raise ParseFailureError(f"expected JSON object from {url}")
        return payload

    async def get_text(self, url: str) -> str:
        response = await self._get(url, accept=TEXT_ACCEPT)
        return response.text

    async def get_bytes(self, url: str) -> bytes:
        response = await self._get(url, accept=BINARY_ACCEPT)
        return response.content
