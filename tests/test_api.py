"""End-to-end HTTP tests over httpx's ASGI transport."""

import pytest
from httpx import ASGITransport, AsyncClient

from chatr.core.services import ChatServices
from chatr.exceptions import BackingStoreError
from chatr.server.app import create_app
from chatr.store import InMemoryChatStore

from .conftest import bearer, make_settings


async def register(client, name="Bot1", **extra):
    response = await client.post("/register", json={"name": name, **extra})
    assert response.status_code == 201, response.text
    return response.json()


def client_for(**overrides) -> AsyncClient:
    cfg = make_settings(**overrides)
    app = create_app(cfg, ChatServices.build(cfg, store=InMemoryChatStore()))
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def test_register(client):
    body = await register(client, "Bot1", avatar="🤖")

    assert body["success"] is True
    assert body["name"] == "Bot1"
    assert body["agentId"] == body["agent"]["id"]
    assert body["agent"]["avatar"] == "🤖"
    assert body["apiKey"] == body["credential"]
    assert body["credential"].startswith("chatr_")
    assert len(body["credential"]) == 38


async def test_register_conflict_is_case_insensitive(client):
    await register(client, "Bot1")

    response = await client.post("/register", json={"name": "bot1"})

    assert response.status_code == 409
    assert response.json() == {"success": False, "error": "Agent name already taken"}


@pytest.mark.parametrize("payload", [{}, {"name": "a"}, {"name": "bad name"}, {"name": "Bot1\n"}, {"name": 7}])
async def test_register_rejects_invalid_names(client, payload):
    response = await client.post("/register", json=payload)
    assert response.status_code == 400
    assert response.json()["success"] is False


async def test_post_and_read_messages(client):
    credential = (await register(client))["credential"]

    response = await client.post("/messages", json={"content": "hello"}, headers=bearer(credential))

    assert response.status_code == 200
    message = response.json()["message"]
    assert message["id"] == "1"
    assert message["agentName"] == "Bot1"
    assert message["content"] == "hello"
    assert message["timestamp"] == message["createdAt"]

    response = await client.get("/messages", params={"limit": 10})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [m["content"] for m in body["messages"]] == ["hello"]


async def test_message_cursors(client):
    credential = (await register(client))["credential"]
    for i in range(1, 6):
        await client.post("/messages", json={"content": f"m{i}"}, headers=bearer(credential))

    async def ids(**params):
        response = await client.get("/messages", params=params)
        assert response.status_code == 200
        return [m["id"] for m in response.json()["messages"]]

    assert await ids(after=3) == ["4", "5"]
    assert await ids(before=3) == ["1", "2"]
    assert await ids(limit=2) == ["4", "5"]
    assert await ids(limit=0) == ["1", "2", "3", "4", "5"]
    assert await ids(limit=-3) == ["1", "2", "3", "4", "5"]
    assert await ids(after=1, before=3) == ["2", "3", "4", "5"]


@pytest.mark.parametrize(
    "params",
    [{"after": "abc"}, {"before": "1.5"}, {"limit": "ten"}],
)
async def test_bad_message_queries(client, params):
    response = await client.get("/messages", params=params)
    assert response.status_code == 400
    assert response.json()["success"] is False


async def test_post_requires_valid_credential(client):
    await register(client)

    missing = await client.post("/messages", json={"content": "hi"})
    malformed = await client.post("/messages", json={"content": "hi"}, headers=bearer("nope"))
    unknown = await client.post(
        "/messages", json={"content": "hi"}, headers=bearer("chatr_" + "0" * 32)
    )

    for response in (missing, malformed, unknown):
        assert response.status_code == 401
        assert response.json()["success"] is False
    assert (await client.get("/messages")).json()["messages"] == []


async def test_api_key_header_is_accepted(client):
    credential = (await register(client))["credential"]
    response = await client.post("/messages", json={"content": "hi"}, headers={"X-API-Key": credential})
    assert response.status_code == 200


@pytest.mark.parametrize("content", ["", "   ", None, "x" * 2001])
async def test_post_rejects_invalid_content(client, content):
    credential = (await register(client))["credential"]
    response = await client.post("/messages", json={"content": content}, headers=bearer(credential))
    assert response.status_code == 400


async def test_message_rate_limit(client):
    credential = (await register(client, "Chatty"))["credential"]
    for i in range(30):
        response = await client.post("/messages", json={"content": f"m{i}"}, headers=bearer(credential))
        assert response.status_code == 200

    response = await client.post("/messages", json={"content": "one too many"}, headers=bearer(credential))

    assert response.status_code == 429
    assert response.json()["success"] is False
    assert int(response.headers["retry-after"]) >= 1

    other = (await register(client, "Quiet"))["credential"]
    response = await client.post("/messages", json={"content": "hi"}, headers=bearer(other))
    assert response.status_code == 200


async def test_register_rate_limit(client):
    for i in range(5):
        await register(client, f"agent{i}")

    response = await client.post("/register", json={"name": "agent5"})

    assert response.status_code == 429


async def test_request_rate_limit_spares_health():
    async with client_for(RATE_LIMIT_REQUESTS=2) as client:
        assert (await client.get("/messages")).status_code == 200
        assert (await client.get("/agents")).status_code == 200
        denied = await client.get("/messages")
        assert denied.status_code == 429
        assert denied.json() == {"success": False, "error": "Rate limit exceeded (request)"}
        assert (await client.get("/health")).status_code == 200


async def test_request_rate_limit_is_per_address():
    async with client_for(RATE_LIMIT_REQUESTS=1) as client:
        assert (await client.get("/messages", headers={"X-Forwarded-For": "1.1.1.1"})).status_code == 200
        assert (await client.get("/messages", headers={"X-Forwarded-For": "1.1.1.1"})).status_code == 429
        assert (await client.get("/messages", headers={"X-Forwarded-For": "2.2.2.2, 10.0.0.1"})).status_code == 200


async def test_presence_endpoints(client):
    first = await register(client, "Alpha")
    second = await register(client, "Bravo")

    # Registered agents are offline until they authenticate
    assert (await client.get("/agents")).json()["agents"] == []

    for agent in (first, second):
        response = await client.post("/heartbeat", headers=bearer(agent["credential"]))
        assert response.status_code == 200
        assert response.json() == {"success": True}

    body = (await client.get("/agents")).json()
    assert [a["name"] for a in body["agents"]] == ["Alpha", "Bravo"]
    assert set(body["agents"][0]) >= {"id", "name", "avatar", "online", "lastSeen", "verified"}
    assert body["stats"] == {"totalAgents": 2, "onlineAgents": 2, "totalMessages": 0}

    response = await client.post("/disconnect", headers=bearer(first["credential"]))
    assert response.status_code == 200

    body = (await client.get("/agents")).json()
    assert [a["name"] for a in body["agents"]] == ["Bravo"]
    assert body["stats"]["onlineAgents"] == 1


async def test_heartbeat_requires_credential(client):
    assert (await client.post("/heartbeat")).status_code == 401
    assert (await client.post("/disconnect")).status_code == 401


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_stream_rejected_at_global_capacity():
    async with client_for(STREAM_MAX_CONNECTIONS=0) as client:
        response = await client.get("/stream")
    assert response.status_code == 503
    assert response.json()["success"] is False


async def test_stream_rejected_per_address():
    async with client_for(STREAM_MAX_PER_CLIENT=0) as client:
        response = await client.get("/stream")
    assert response.status_code == 429
    assert response.json()["success"] is False


async def test_posted_message_reaches_live_connection(client, services):
    connection = await services.hub.open("10.0.0.9")
    credential = (await register(client))["credential"]

    await client.post("/messages", json={"content": "broadcast me"}, headers=bearer(credential))

    history = await connection.next_event(timeout=1)
    live = await connection.next_event(timeout=1)
    assert history.type == "history"
    assert live.type == "message"
    assert live.data["content"] == "broadcast me"
    services.hub.close(connection)


async def test_store_failure_is_opaque(client, services, monkeypatch):
    async def broken(**kwargs):
        raise BackingStoreError("connection refused to db.internal:5432")

    monkeypatch.setattr(services.store, "fetch_messages", broken)

    response = await client.get("/messages")

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal error"}
