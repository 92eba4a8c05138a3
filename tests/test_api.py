from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from socialgraph.exceptions import StorageError
from socialgraph.main import create_app
from socialgraph.services.jwt_service import JWTService


def auth(user_id: int) -> dict:
    return {"Authorization": f"Bearer {JWTService.create_token(user_id)}"}


@pytest_asyncio.fixture
async def app(db):
    return create_app(db)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_connection_flow(client, make_user):
    u1 = await make_user()
    u2 = await make_user()

    r = await client.post(f"/connections/{u2}", headers=auth(u1))
    assert r.status_code == 200
    assert r.json()["status"] == "pending"
    assert r.json()["requester_id"] == u1

    r = await client.get("/connections/pending", headers=auth(u2))
    assert [e["id"] for e in r.json()["items"]] == [u1]

    r = await client.get("/connections/outgoing", headers=auth(u1))
    assert [e["id"] for e in r.json()["items"]] == [u2]

    r = await client.post(f"/connections/{u1}/accept", headers=auth(u2))
    assert r.status_code == 200
    assert r.json()["status"] == "connected"

    r = await client.get("/connections", params={"status": "connected"}, headers=auth(u1))
    body = r.json()
    assert [e["id"] for e in body["items"]] == [u2]
    assert body["items"][0]["relationship"]["isConnected"] is True
    assert body["pagination"] == {"limit": 50, "offset": 0, "hasMore": False}

    r = await client.get(f"/social-graph/relationship-path/{u2}", headers=auth(u1))
    assert r.json()["degree"] == 1

    r = await client.delete(f"/connections/{u2}", headers=auth(u1))
    assert r.status_code == 200
    r = await client.get(f"/connections/{u2}", headers=auth(u1))
    assert r.json() is None


@pytest.mark.asyncio
async def test_accept_without_request_is_404(client, make_user):
    u1 = await make_user()
    u2 = await make_user()

    r = await client.post(f"/connections/{u2}/accept", headers=auth(u1))
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "not_found"


@pytest.mark.asyncio
async def test_self_follow_is_bad_request(client, make_user):
    u1 = await make_user()

    r = await client.post(f"/follow/{u1}", headers=auth(u1))
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == {"code": "bad_request", "message": "Cannot follow yourself"}
    assert body["request_id"] == r.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_follow_endpoints(client, make_user):
    u1 = await make_user()
    u2 = await make_user()

    r = await client.post(f"/follow/{u2}", headers=auth(u1))
    assert r.status_code == 200
    r = await client.get(f"/follow/{u2}/status", headers=auth(u1))
    assert r.json() == {"following": True}
    r = await client.get(f"/follow/{u2}/followers", headers=auth(u1))
    assert [f["id"] for f in r.json()["items"]] == [u1]
    r = await client.get(f"/follow/{u1}/following", headers=auth(u2))
    assert [f["id"] for f in r.json()["items"]] == [u2]

    r = await client.delete(f"/follow/{u2}", headers=auth(u1))
    assert r.status_code == 200
    r = await client.delete(f"/follow/{u2}", headers=auth(u1))
    assert r.json() is None


@pytest.mark.asyncio
async def test_blocked_user_is_forbidden(client, make_user):
    u1 = await make_user()
    u2 = await make_user()

    r = await client.post(f"/blocks/{u2}", headers=auth(u1))
    assert r.status_code == 200

    r = await client.get(f"/social-graph/relationship-path/{u1}", headers=auth(u2))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "forbidden"

    r = await client.get("/blocks", headers=auth(u1))
    assert r.json()["items"][0]["relationship"]["iBlocked"] is True

    r = await client.delete(f"/blocks/{u2}", headers=auth(u1))
    assert r.status_code == 200
    r = await client.get(f"/social-graph/relationship-path/{u1}", headers=auth(u2))
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_profile_visitor_privacy(client, make_user):
    u1 = await make_user()
    u2 = await make_user()
    u3 = await make_user()

    for _ in range(3):
        r = await client.post(f"/social-graph/visits/{u2}", headers=auth(u1))
    assert r.json()["visit_count"] == 3

    r = await client.get(f"/social-graph/profile-visitors/{u2}", headers=auth(u2))
    assert r.json()["items"][0]["id"] == u1
    assert r.json()["items"][0]["visit_count"] == 3

    r = await client.get(f"/social-graph/profile-visitors/{u2}", headers=auth(u3))
    assert r.status_code == 403

    r = await client.get(f"/social-graph/visit-stats/{u2}", headers=auth(u2))
    assert r.json() == {"total_visits": 3, "unique_visitors": 1}


@pytest.mark.asyncio
async def test_search_without_token(client, make_user):
    u1 = await make_user(first_name="Nadia", last_name="Surgeon")

    r = await client.get("/users/search", params={"q": "nadia"})
    assert r.status_code == 200
    items = r.json()["items"]
    assert [u["id"] for u in items] == [u1]
    assert items[0]["relationship"] is None


@pytest.mark.asyncio
async def test_search_with_token_annotates(client, make_user):
    me = await make_user()
    other = await make_user(first_name="Omar", headline="Nurse practitioner")

    r = await client.get("/users/search", params={"q": "nurse"}, headers=auth(me))
    items = r.json()["items"]
    assert [u["id"] for u in items] == [other]
    assert items[0]["relationship"]["iFollowThem"] is False


@pytest.mark.asyncio
async def test_network_stats_and_suggestions(client, make_user, connect):
    u1 = await make_user()
    u2 = await make_user()
    u3 = await make_user()
    await connect(u1, u2)
    await connect(u2, u3)

    r = await client.get("/social-graph/network-stats", headers=auth(u1))
    assert r.json()["connections"]["connected"] == 1

    r = await client.get(f"/social-graph/network-stats/{u3}", headers=auth(u1))
    assert r.json()["connections"]["total"] == 1

    r = await client.get("/social-graph/suggestions", headers=auth(u1))
    assert [s["id"] for s in r.json()["items"]] == [u3]

    r = await client.get(f"/social-graph/mutual-connections/{u3}", headers=auth(u1))
    assert [m["id"] for m in r.json()["items"]] == [u2]

    r = await client.get(f"/social-graph/second-degree/{u1}", headers=auth(u1))
    assert [s["mutual_count"] for s in r.json()["items"]] == [1]


@pytest.mark.asyncio
async def test_missing_token_rejected(client):
    r = await client.get("/connections")
    assert r.status_code in (401, 403)
    assert "error" in r.json()


@pytest.mark.asyncio
async def test_invalid_token_rejected(client):
    r = await client.get("/connections", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "unauthorized"


@pytest.mark.asyncio
async def test_token_for_deleted_user_rejected(client, make_user, graph):
    u1 = await make_user()
    await graph.users.delete_user(u1)

    r = await client.get("/connections", headers=auth(u1))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_bad_paging_is_validation_error(client, make_user):
    u1 = await make_user()
    r = await client.get("/connections", params={"limit": 0}, headers=auth(u1))
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "validation_error"


@pytest.mark.asyncio
async def test_storage_failure_is_503(client, app, make_user, monkeypatch):
    u1 = await make_user()
    u2 = await make_user()
    monkeypatch.setattr(app.state.graph.store, "follow",
                        AsyncMock(side_effect=StorageError("follow")))

    r = await client.post(f"/follow/{u2}", headers=auth(u1))
    assert r.status_code == 503
    assert r.json()["error"] == {
        "code": "storage_unavailable",
        "message": "Storage temporarily unavailable",
    }
