import httpx
import pytest

from next_ball.nba_data.errors import (
    ParseFailureError,
    RateLimitedError,
    UpstreamUnavailableError,
)
from next_ball.nba_data.gateway import NBAGateway

URL = "https://stats.nba.com/stats/leaguestandingsv3?LeagueID=00"


def _gateway(handler, *, attempts: int = 3) -> NBAGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NBAGateway(client=client, retry_attempts=attempts, retry_wait_s=0)


@pytest.mark.asyncio
async def test_get_json_success_sends_stats_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"resultSets": []})

    gateway = _gateway(handler)
    assert await gateway.get_json(URL, stats=True) == {"resultSets": []}
    assert seen[0].headers["Referer"] == "https://www.nba.com/"
    assert "Mozilla" in seen[0].headers["User-Agent"]


@pytest.mark.asyncio
async def test_rate_limit_is_not_retried() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(429, text="slow down")

    with pytest.raises(RateLimitedError) as info:
        await _gateway(handler).get_json(URL)
    assert calls == 1
    assert info.value.status_code == 429


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_raised() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(503)

    with pytest.raises(UpstreamUnavailableError) as info:
        await _gateway(handler, attempts=3).get_json(URL)
    assert calls == 3
    assert info.value.status_code == 503
    assert not isinstance(info.value, RateLimitedError)


@pytest.mark.asyncio
async def test_transient_server_error_recovers() -> None:
    responses = [httpx.Response(502), httpx.Response(200, json={"ok": True})]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    assert await _gateway(handler).get_json(URL) == {"ok": True}


@pytest.mark.asyncio
async def test_client_error_is_not_retried() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(404)

    with pytest.raises(UpstreamUnavailableError) as info:
        await _gateway(handler).get_text(URL)
    assert calls == 1
    assert info.value.url == URL


@pytest.mark.asyncio
async def test_transport_errors_become_upstream_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamUnavailableError):
        await _gateway(handler, attempts=2).get_bytes(URL)


@pytest.mark.asyncio
async def test_bad_json_is_a_parse_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(ParseFailureError):
        await _gateway(handler).get_json(URL)


@pytest.mark.asyncio
async def test_json_array_is_a_parse_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[1, 2, 3])

    with pytest.raises(ParseFailureError):
        await _gateway(handler).get_json(URL)


@pytest.mark.asyncio
async def test_context_manager_closes_only_owned_client() -> None:
    async with NBAGateway(retry_attempts=1) as gateway:
        owned = gateway._http
    assert owned.is_closed

    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    async with NBAGateway(client=client):
        pass
    assert not client.is_closed
    await client.aclose()
