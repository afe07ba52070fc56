import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from domain.payment.exceptions import AuthError, ConfigError, NetworkError
from infrastructure.external.payments.token_manager import AccessToken, TokenManager


BASE_URL = "https://gateway.test"


class FakeTime:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def token_handler(calls, *, expires_in=3600, delay=0.0, status_code=200, body=None):
    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if delay:
            await asyncio.sleep(delay)
        payload = body if body is not None else {
            "access_token": f"tok-{len(calls)}",
            "token_type": "O-Bearer",
            "expires_in": expires_in,
        }
        return httpx.Response(status_code, json=payload)

    return handler


def make_manager(handler, clock=None, **kwargs) -> TokenManager:
    return TokenManager(
        client_id="cid",
        client_secret="csecret",
        client_version="2",
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        clock=clock or FakeTime(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_token_is_fetched_once_and_reused():
    calls = []
    tm = make_manager(token_handler(calls))

    first = await tm.get_access_token()
    second = await tm.get_access_token()

    assert first is second
    assert first.authorization == "O-Bearer tok-1"
    assert tm.refresh_count == 1
    assert len(calls) == 1

    request = calls[0]
    assert request.method == "POST"
    assert str(request.url) == f"{BASE_URL}/v1/oauth/token"
    form = parse_qs(request.content.decode())
    assert form == {
        "client_id": ["cid"],
        "client_version": ["2"],
        "client_secret": ["csecret"],
        "grant_type": ["client_credentials"],
    }
    await tm.aclose()


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh():
    calls = []
    tm = make_manager(token_handler(calls, delay=0.05))

    tokens = await asyncio.gather(*(tm.get_access_token() for _ in range(10)))

    assert len(calls) == 1
    assert tm.refresh_count == 1
    assert {t.value for t in tokens} == {"tok-1"}
    await tm.aclose()


@pytest.mark.asyncio
async def test_token_refreshed_inside_safety_margin():
    calls = []
    clock = FakeTime()
    tm = make_manager(token_handler(calls, expires_in=120), clock=clock, safety_margin=60)

    await tm.get_access_token()
    clock.now += 59
    assert (await tm.get_access_token()).value == "tok-1"

    clock.now += 2
    assert (await tm.get_access_token()).value == "tok-2"
    assert tm.refresh_count == 2
    await tm.aclose()


@pytest.mark.asyncio
async def test_missing_expires_in_defaults_to_one_hour():
    calls = []
    clock = FakeTime(5000.0)
    tm = make_manager(token_handler(calls, body={"access_token": "abc"}), clock=clock)

    token = await tm.get_access_token()

    assert token.expires_at == 5000.0 + 3600
    assert token.token_type == "O-Bearer"
    await tm.aclose()


@pytest.mark.asyncio
async def test_rejected_credentials_raise_auth_error_and_cache_nothing():
    calls = []
    tm = make_manager(token_handler(calls, status_code=401, body={"code": "UNAUTHORIZED", "message": "bad client"}))

    with pytest.raises(AuthError) as ei:
        await tm.get_access_token()

    assert ei.value.gateway_code == "UNAUTHORIZED"
    assert ei.value.retryable is True
    assert tm.cached_token is None
    assert tm.refresh_count == 0
    await tm.aclose()


@pytest.mark.asyncio
async def test_gateway_unavailable_raises_network_error():
    calls = []
    tm = make_manager(token_handler(calls, status_code=503, body={}))

    with pytest.raises(NetworkError):
        await tm.get_access_token()
    assert tm.cached_token is None
    await tm.aclose()


@pytest.mark.asyncio
async def test_response_without_access_token_is_an_auth_error():
    calls = []
    tm = make_manager(token_handler(calls, body={"expires_in": 3600}))

    with pytest.raises(AuthError):
        await tm.get_access_token()
    await tm.aclose()


@pytest.mark.asyncio
async def test_transport_failure_becomes_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    tm = make_manager(handler)

    with pytest.raises(NetworkError):
        await tm.get_access_token()
    await tm.aclose()


@pytest.mark.asyncio
async def test_cancelled_refresh_leaves_cache_empty():
    calls = []
    tm = make_manager(token_handler(calls, delay=1.0))

    task = asyncio.create_task(tm.get_access_token())
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert tm.cached_token is None
    await tm.aclose()


@pytest.mark.asyncio
async def test_cancelled_refresh_inside_margin_keeps_unexpired_token():
    calls = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) > 1:
            await asyncio.sleep(1.0)
        return httpx.Response(200, json={"access_token": f"tok-{len(calls)}", "expires_in": 100})

    clock = FakeTime()
    tm = make_manager(handler, clock=clock)
    old = await tm.get_access_token()
    clock.now += 50  # inside the 60 s margin, 50 s before expiry

    task = asyncio.create_task(tm.get_access_token())
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(calls) == 2
    assert tm.cached_token is old
    assert tm.cached_token.value == "tok-1"
    await tm.aclose()


@pytest.mark.asyncio
async def test_failed_refresh_after_expiry_does_not_keep_expired_token():
    responses = iter([
        httpx.Response(200, json={"access_token": "old", "expires_in": 100}),
        httpx.Response(500, json={}),
    ])
    clock = FakeTime()
    tm = make_manager(lambda request: next(responses), clock=clock, safety_margin=10)

    await tm.get_access_token()
    clock.now += 200

    with pytest.raises(NetworkError):
        await tm.get_access_token()
    assert tm.cached_token is None
    await tm.aclose()


@pytest.mark.asyncio
async def test_invalidate_forces_refresh():
    calls = []
    tm = make_manager(token_handler(calls))

    await tm.get_access_token()
    tm.invalidate()
    token = await tm.get_access_token()

    assert token.value == "tok-2"
    assert len(calls) == 2
    await tm.aclose()


@pytest.mark.parametrize("client_id, client_secret", [(None, "s"), ("id", None), ("", "")])
def test_missing_credentials_are_a_config_error(client_id, client_secret):
    with pytest.raises(ConfigError):
        TokenManager(client_id=client_id, client_secret=client_secret, base_url=BASE_URL)


def test_access_token_repr_hides_value():
    token = AccessToken(value="super-secret", expires_at=10.0)
    assert "super-secret" not in repr(token)
    assert token.is_usable(now=0.0, safety_margin=5.0)
    assert not token.is_usable(now=6.0, safety_margin=5.0)
    assert token.is_expired(now=10.0)
