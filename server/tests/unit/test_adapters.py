"""Unit tests for wholesaler adapters against a mocked HTTP transport."""

import base64
import json

import httpx
import pytest

from toursync.core.exceptions import NotFoundError, UnsupportedApiFormatError, WholesalerRequestError
from toursync.models.tour import Tour
from toursync.models.wholesaler import WholesalerApiConfig
from toursync.services.adapters import (
    AdapterFactory,
    GenericRestAdapter,
    build_endpoint,
    clear_oauth_token_cache,
)

BASE_URL = "https://api.zego.test/v1/tours"


def make_config(**overrides):
    values = dict(
        wholesaler_id=7,
        api_base_url=BASE_URL,
        api_format="rest",
        auth_type="none",
        auth_credentials={},
        retry_attempts=3,
        connect_timeout_seconds=10,
        request_timeout_seconds=30,
        sync_method="cursor",
    )
    values.update(overrides)
    return WholesalerApiConfig(**values)


class Recorder:
    """Collects requests and answers them from a handler."""

    def __init__(self, handler):
        self.handler = handler
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return self.handler(request)


async def no_sleep(seconds):
    no_sleep.calls.append(seconds)


no_sleep.calls = []


@pytest.fixture(autouse=True)
def reset_state():
    no_sleep.calls = []
    clear_oauth_token_cache()
    yield
    clear_oauth_token_cache()


def make_adapter(handler, **config_overrides):
    recorder = Recorder(handler)
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    adapter = GenericRestAdapter(make_config(**config_overrides), client=client, sleep=no_sleep)
    return adapter, recorder


def test_build_url():
    """Test endpoints are joined to the base URL unless absolute."""
    adapter, _ = make_adapter(lambda r: httpx.Response(200, json={}))
    assert adapter.build_url("") == BASE_URL
    assert adapter.build_url("/ZG1/periods") == f"{BASE_URL}/ZG1/periods"
    assert adapter.build_url("https://other.test/x") == "https://other.test/x"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "auth_type,credentials,header_name,expected",
    [
        ("api_key", {"api_key": "k1"}, None, {"X-API-Key": "k1"}),
        ("api_key", {"api_key": "k1"}, "X-Partner-Key", {"X-Partner-Key": "k1"}),
        ("bearer", {"token": "t1"}, None, {"Authorization": "Bearer t1"}),
        (
            "basic",
            {"username": "zego", "password": "pw"},
            None,
            {"Authorization": "Basic " + base64.b64encode(b"zego:pw").decode()},
        ),
        ("custom", {"headers": [{"key": "X-Agent", "value": "A1"}]}, None, {"X-Agent": "A1"}),
        ("oauth2", {"access_token": "static"}, None, {"Authorization": "Bearer static"}),
        ("none", {}, None, {}),
    ],
)
async def test_auth_headers(auth_type, credentials, header_name, expected):
    """Test each auth type produces its headers."""
    adapter, _ = make_adapter(
        lambda r: httpx.Response(200, json={}),
        auth_type=auth_type,
        auth_credentials=credentials,
        auth_header_name=header_name,
    )
    assert await adapter.auth_headers() == expected


@pytest.mark.asyncio
async def test_oauth2_token_is_fetched_once_and_cached():
    """Test client-credential tokens are requested once and reused."""

    def handler(request):
        if request.url.path == "/oauth/token":
            body = json.loads(request.content)
            assert body["grant_type"] == "client_credentials"
            return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})
        return httpx.Response(200, json={"data": []})

    credentials = {
        "token_url": "https://auth.zego.test/oauth/token",
        "client_id": "cid",
        "client_secret": "secret",
    }
    adapter, recorder = make_adapter(handler, auth_type="oauth2", auth_credentials=credentials)

    await adapter.fetch_tours()
    await adapter.fetch_tours()

    token_calls = [r for r in recorder.requests if r.url.path == "/oauth/token"]
    assert len(token_calls) == 1
    assert recorder.requests[-1].headers["Authorization"] == "Bearer fresh"


@pytest.mark.asyncio
async def test_oauth2_token_cache_follows_credentials():
    """Test changed client credentials fetch a new token instead of reusing the old one."""

    def handler(request):
        if request.url.path == "/oauth/token":
            body = json.loads(request.content)
            return httpx.Response(200, json={"access_token": f"token-{body['client_id']}"})
        return httpx.Response(200, json={"data": []})

    credentials = {
        "token_url": "https://auth.zego.test/oauth/token",
        "client_id": "old",
        "client_secret": "secret",
    }
    old_adapter, _ = make_adapter(handler, auth_type="oauth2", auth_credentials=credentials)
    assert await old_adapter.auth_headers() == {"Authorization": "Bearer token-old"}

    rotated = {**credentials, "client_id": "new"}
    new_adapter, recorder = make_adapter(handler, auth_type="oauth2", auth_credentials=rotated)
    assert await new_adapter.auth_headers() == {"Authorization": "Bearer token-new"}
    assert len(recorder.requests) == 1

    same_adapter, recorder = make_adapter(handler, auth_type="oauth2", auth_credentials=dict(rotated))
    assert await same_adapter.auth_headers() == {"Authorization": "Bearer token-new"}
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_request_retries_server_errors():
    """Test 5xx responses are retried with exponential backoff."""
    responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200, json={"ok": True})])
    adapter, recorder = make_adapter(lambda r: next(responses))

    assert await adapter.request("GET", "") == {"ok": True}
    assert len(recorder.requests) == 3
    assert no_sleep.calls == [2, 4]
    assert adapter.request_count == 3


@pytest.mark.asyncio
async def test_request_does_not_retry_client_errors():
    """Test 404 fails on the first attempt."""
    adapter, recorder = make_adapter(lambda r: httpx.Response(404, text="no such tour"))

    with pytest.raises(WholesalerRequestError) as exc_info:
        await adapter.request("GET", "/missing")

    assert exc_info.value.status_code == 404
    assert len(recorder.requests) == 1
    assert no_sleep.calls == []


@pytest.mark.asyncio
async def test_request_raises_after_exhausting_retries():
    """Test transport errors surface once every attempt has failed."""

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    adapter, recorder = make_adapter(handler, retry_attempts=2)
    with pytest.raises(WholesalerRequestError, match="connection refused"):
        await adapter.request("GET", "")
    assert len(recorder.requests) == 2


@pytest.mark.asyncio
async def test_fetch_tours_reads_envelope_and_cursor():
    """Test tours, next cursor and has_more are read from the response."""

    def handler(request):
        assert request.url.params.get("cursor") == "c1"
        return httpx.Response(200, json={
            "data": [{"code": "ZG1"}, {"code": "ZG2"}, "junk"],
            "pagination": {"next": "c2"},
        })

    adapter, _ = make_adapter(handler)
    result = await adapter.fetch_tours("c1")

    assert result.success
    assert [t["code"] for t in result.tours] == ["ZG1", "ZG2"]
    assert result.next_cursor == "c2"
    assert result.has_more is True


@pytest.mark.asyncio
async def test_fetch_tours_failure_result():
    """Test API failures become a failed result instead of raising."""
    adapter, _ = make_adapter(lambda r: httpx.Response(401), retry_attempts=1)
    result = await adapter.fetch_tours()
    assert not result.success
    assert result.error_code == "401"


@pytest.mark.asyncio
async def test_fetch_periods_and_itineraries():
    """Test per-tour endpoints return their lists."""

    def handler(request):
        if request.url.path.endswith("/periods"):
            return httpx.Response(200, json={"data": [{"PeriodID": 1}, {"PeriodID": 2}]})
        return httpx.Response(200, json={"days": [{"day": 1}]})

    adapter, _ = make_adapter(handler)
    periods = await adapter.fetch_periods("/ZG1/periods")
    itineraries = await adapter.fetch_itineraries("/ZG1/itinerary")

    assert [p["PeriodID"] for p in periods.periods] == [1, 2]
    assert itineraries.itineraries == [{"day": 1}]


@pytest.mark.asyncio
async def test_fetch_tour_detail_unwraps_data():
    """Test detail responses are unwrapped and failures give None."""
    adapter, recorder = make_adapter(lambda r: httpx.Response(200, json={"data": {"code": "ZG1"}}))
    assert await adapter.fetch_tour_detail("ZG1") == {"code": "ZG1"}
    assert recorder.requests[0].url.path == "/v1/tours/ZG1"

    missing, _ = make_adapter(lambda r: httpx.Response(404))
    assert await missing.fetch_tour_detail("ZG9") is None


@pytest.mark.asyncio
async def test_acknowledge_synced():
    """Test acknowledgements are only sent for the ack_callback method."""
    cursor_adapter, recorder = make_adapter(lambda r: httpx.Response(200, json={}))
    assert await cursor_adapter.acknowledge_synced(["ZG1"], "sync_1") is True
    assert recorder.requests == []

    ack_adapter, ack_recorder = make_adapter(
        lambda r: httpx.Response(200, json={"accepted": False}), sync_method="ack_callback"
    )
    assert await ack_adapter.acknowledge_synced(["ZG1"], "sync_1") is False
    sent = json.loads(ack_recorder.requests[0].content)
    assert sent["tour_codes"] == ["ZG1"]
    assert ack_recorder.requests[0].url.path == "/v1/tours/sync/acknowledge"


@pytest.mark.asyncio
async def test_health_check_records_outcome():
    """Test health checks update the config row."""
    adapter, _ = make_adapter(lambda r: httpx.Response(500), retry_attempts=1)
    result = await adapter.health_check()
    assert result["healthy"] is False
    assert adapter.config.last_health_check_status is False
    assert adapter.config.last_health_check_at is not None


def test_build_endpoint_placeholders():
    """Test per-tour endpoint templates are filled from the tour."""
    tour = Tour(tour_code="NT209903001", title="x", wholesaler_tour_code="ZG1", external_id="991")
    assert build_endpoint("/tours/{external_id}/periods", tour) == "/tours/991/periods"
    assert build_endpoint("/programs/{code}", tour) == "/programs/ZG1"
    assert build_endpoint("/t/{tour_code}", tour) == "/t/NT209903001"


def test_create_generic_rejects_unsupported_formats():
    """Test SOAP and GraphQL configs have no generic adapter."""
    with pytest.raises(UnsupportedApiFormatError):
        AdapterFactory.create_generic(make_config(api_format="soap"))
    assert isinstance(AdapterFactory.create_generic(make_config()), GenericRestAdapter)


@pytest.mark.asyncio
async def test_factory_create(test_session, wholesaler):
    """Test the factory uses registered adapters by wholesaler code."""

    class ZegoAdapter(GenericRestAdapter):
        pass

    adapter = await AdapterFactory.create(test_session, wholesaler.id)
    assert type(adapter) is GenericRestAdapter
    await adapter.close()

    AdapterFactory.register("zego", ZegoAdapter)
    try:
        adapter = await AdapterFactory.create(test_session, wholesaler.id)
        assert isinstance(adapter, ZegoAdapter)
        await adapter.close()
    finally:
        AdapterFactory.unregister("ZEGO")

    with pytest.raises(NotFoundError):
        await AdapterFactory.create(test_session, 999)
