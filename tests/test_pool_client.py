"""REST calls made by the pool/profile client."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest
from pydantic import SecretStr

from onenada.config import SupabaseSettings
from onenada.domain.models import NewProfile
from onenada.services.exceptions import DataIntegrityError, TransientError
from onenada.services.pool import RemotePoolClient, spots_remaining

SETTINGS = SupabaseSettings(url="https://project.example.co", anon_key=SecretStr("anon"))


def _client(handler, **kwargs) -> tuple[RemotePoolClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
    return RemotePoolClient(http_client, SETTINGS, **kwargs), requests


@pytest.mark.asyncio
async def test_lookup_parses_pool_row():
    row = {
        "member_number": 42,
        "is_available": False,
        "assigned_to": "user-9",
        "assigned_at": "2025-11-08T10:00:00+00:00",
    }
    client, requests = _client(lambda request: httpx.Response(200, json=[row]))

    entry = await client.lookup(42)

    assert entry.member_number == 42
    assert entry.is_available is False
    assert entry.assigned_to == "user-9"
    assert entry.assigned_at == datetime(2025, 11, 8, 10, tzinfo=timezone.utc)
    request = requests[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/member_number_pool"
    assert request.url.params["member_number"] == "eq.42"
    assert request.headers["apikey"] == "anon"
    assert request.headers["Authorization"] == "Bearer anon"


@pytest.mark.asyncio
async def test_lookup_returns_none_for_empty_result():
    client, _ = _client(lambda request: httpx.Response(200, json=[]))

    assert await client.lookup(7) is None


@pytest.mark.asyncio
async def test_lookup_rejects_duplicate_rows():
    row = {"member_number": 7, "is_available": True}
    client, _ = _client(lambda request: httpx.Response(200, json=[row, row]))

    with pytest.raises(DataIntegrityError):
        await client.lookup(7)


@pytest.mark.asyncio
async def test_http_errors_become_transient():
    client, _ = _client(lambda request: httpx.Response(503, text="unavailable"))

    with pytest.raises(TransientError):
        await client.lookup(7)


@pytest.mark.asyncio
async def test_network_errors_become_transient():
    def _boom(request):
        raise httpx.ConnectError("refused", request=request)

    client, _ = _client(_boom)

    with pytest.raises(TransientError):
        await client.count_available()


@pytest.mark.asyncio
async def test_each_lookup_is_a_fresh_round_trip():
    client, requests = _client(
        lambda request: httpx.Response(200, json=[{"member_number": 1, "is_available": True}])
    )

    await client.lookup(1)
    await client.lookup(1)

    assert len(requests) == 2


@pytest.mark.asyncio
async def test_count_available_calls_rpc():
    client, requests = _client(lambda request: httpx.Response(200, json=9876))

    assert await client.count_available() == 9876
    assert requests[0].method == "POST"
    assert requests[0].url.path == "/rest/v1/rpc/get_available_spots_count"


@pytest.mark.asyncio
async def test_spots_remaining_falls_back_to_pool_size():
    client, _ = _client(lambda request: httpx.Response(500))

    assert await spots_remaining(client, 10_000) == 10_000


@pytest.mark.asyncio
async def test_fetch_profile_uses_access_token():
    row = {
        "id": "user-1",
        "email": "a@example.com",
        "subscription_started_at": None,
        "member_number": 17,
        "created_at": "2025-11-08T10:00:00Z",
        "updated_at": "2025-11-08T10:00:00Z",
    }
    client, requests = _client(lambda request: httpx.Response(200, json=[row]), access_token="jwt")

    profile = await client.fetch_profile("user-1")

    assert profile.member_number == 17
    assert requests[0].url.params["id"] == "eq.user-1"
    assert requests[0].headers["Authorization"] == "Bearer jwt"
    assert await _client(lambda request: httpx.Response(200, json=[]))[0].fetch_profile("x") is None


@pytest.mark.asyncio
async def test_fetch_profile_rejects_malformed_row():
    client, _ = _client(lambda request: httpx.Response(200, json=[{"email": "a@example.com"}]))

    with pytest.raises(DataIntegrityError):
        await client.fetch_profile("user-1")


@pytest.mark.asyncio
async def test_insert_profile_posts_row():
    client, requests = _client(lambda request: httpx.Response(201))

    await client.insert_profile(NewProfile(id="user-1", email="a@example.com", name="Ada"))

    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/rest/v1/profiles"
    assert json.loads(request.content) == {"id": "user-1", "email": "a@example.com", "name": "Ada"}


@pytest.mark.asyncio
async def test_update_subscription_start_patches_profile():
    client, requests = _client(lambda request: httpx.Response(204))
    started = datetime(2025, 11, 8, 12, 30, tzinfo=timezone.utc)

    await client.update_profile_subscription_start("user-1", started)

    request = requests[0]
    assert request.method == "PATCH"
    assert request.url.params["id"] == "eq.user-1"
    assert json.loads(request.content) == {"subscription_started_at": "2025-11-08T12:30:00+00:00"}


@pytest.mark.asyncio
async def test_delete_user_calls_cascade_rpc():
    client, requests = _client(lambda request: httpx.Response(204))

    await client.delete_user_cascade()

    assert requests[0].url.path == "/rest/v1/rpc/delete_user"
