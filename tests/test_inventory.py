"""Tests for the inventory HTTP client against a local aiohttp server."""

import pytest
from aiohttp import test_utils, web

from conftest import STEAM_ID
from inventory import RATE_LIMITED, UPSTREAM_ERROR, InventoryClient, InventoryFetchError, cookie_header


async def start_inventory_server(handler) -> test_utils.TestServer:
    app = web.Application()
    app.router.add_get("/inventory/{steam_id}/{app_id}/{context_id}", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


def client_for(config: dict, server: test_utils.TestServer) -> InventoryClient:
    config["inventory"]["url"] = (
        f"http://{server.host}:{server.port}/inventory/{{steam_id}}/{{app_id}}/{{context_id}}"
    )
    config["inventory"]["timeout"] = 5
    return InventoryClient(config)


def test_cookie_header() -> None:
    assert cookie_header({"a": "1", "b": "2"}) == "a=1; b=2"


def test_default_inventory_url(config) -> None:
    client = InventoryClient(config)
    assert client.inventory_url(STEAM_ID) == f"https://steamcommunity.com/inventory/{STEAM_ID}/730/2"


@pytest.mark.asyncio
async def test_fetch_sends_cookies_and_query(config) -> None:
    received = []

    async def handler(request: web.Request) -> web.Response:
        received.append(request)
        return web.json_response({"assets": [{"assetid": "1"}], "total_inventory_count": 1})

    server = await start_inventory_server(handler)
    try:
        inventory = await client_for(config, server).fetch(STEAM_ID, {"steamLoginSecure": "secure"})
    finally:
        await server.close()

    assert inventory == {"assets": [{"assetid": "1"}], "total_inventory_count": 1}
    request = received[0]
    assert request.match_info["steam_id"] == str(STEAM_ID)
    assert request.match_info["app_id"] == "730"
    assert request.match_info["context_id"] == "2"
    assert request.query["l"] == "english"
    assert request.query["count"] == "5000"
    assert request.headers["Cookie"] == "steamLoginSecure=secure"


@pytest.mark.asyncio
@pytest.mark.parametrize("status, category", [
    (429, RATE_LIMITED),
    (500, UPSTREAM_ERROR),
    (403, UPSTREAM_ERROR),
])
async def test_http_errors_are_categorised(config, status, category) -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=status, text="nope")

    server = await start_inventory_server(handler)
    try:
        with pytest.raises(InventoryFetchError) as excinfo:
            await client_for(config, server).fetch(STEAM_ID, {})
    finally:
        await server.close()

    assert excinfo.value.category == category


@pytest.mark.asyncio
async def test_non_json_body_is_upstream_error(config) -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(text="<html>busy</html>", content_type="text/html")

    server = await start_inventory_server(handler)
    try:
        with pytest.raises(InventoryFetchError) as excinfo:
            await client_for(config, server).fetch(STEAM_ID, {})
    finally:
        await server.close()

    assert excinfo.value.category == UPSTREAM_ERROR


@pytest.mark.asyncio
async def test_null_inventory_is_upstream_error(config) -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.json_response(None)

    server = await start_inventory_server(handler)
    try:
        with pytest.raises(InventoryFetchError) as excinfo:
            await client_for(config, server).fetch(STEAM_ID, {})
    finally:
        await server.close()

    assert excinfo.value.category == UPSTREAM_ERROR


@pytest.mark.asyncio
async def test_unreachable_service_is_upstream_error(config) -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.json_response({})

    server = await start_inventory_server(handler)
    client = client_for(config, server)
    await server.close()

    with pytest.raises(InventoryFetchError) as excinfo:
        await client.fetch(STEAM_ID, {})

    assert excinfo.value.category == UPSTREAM_ERROR
