import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import create_schema, make_engine, seed_users
from marketplace.core.database import get_db
from marketplace.core.security import create_token_for_user
from marketplace.main import app


def open_negotiation(client, users, auth_headers):
    response = client.post(
        "/proposals",
        json={"title": "Fix sink", "description": "Leaking pipe", "area_tag": "Plumber"},
        headers=auth_headers(users["contractor"]),
    )
    proposal_id = response.json()["proposal_id"]
    response = client.post(f"/proposals/{proposal_id}/accept", headers=auth_headers(users["pro"]))
    return response.json()["session_id"]


def ws_url(user):
    return f"/ws?token={create_token_for_user(user)}"


def test_handshake_rejects_bad_credentials(api):
    client, users = api
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws?token=garbage"):
            pass
    assert exc_info.value.code == 1008

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(ws_url(users["blocked"])):
            pass
    assert exc_info.value.code == 1008


def test_bearer_header_is_accepted(api, auth_headers):
    client, users = api
    with client.websocket_connect("/ws", headers=auth_headers(users["pro"])) as ws:
        ws.send_json({"action": "ping"})
        assert ws.receive_json() == {"event": "pong", "data": {}}


def test_join_then_receive_new_message(api, auth_headers):
    client, users = api
    session_id = open_negotiation(client, users, auth_headers)

    with client.websocket_connect(ws_url(users["contractor"])) as ws:
        ws.send_json({"action": "join_session", "session_id": session_id})
        assert ws.receive_json() == {"event": "joined", "data": {"session_id": session_id}}

        response = client.post(
            "/messages", json={"session_id": session_id, "text": "On my way"},
            headers=auth_headers(users["pro"]),
        )
        assert response.status_code == 201

        event = ws.receive_json()
        assert event["event"] == "new_message"
        assert event["data"]["text"] == "On my way"
        assert event["data"]["message_id"] == response.json()["message"]["message_id"]


def test_schedule_confirmation_is_pushed(api, auth_headers):
    client, users = api
    session_id = open_negotiation(client, users, auth_headers)

    with client.websocket_connect(ws_url(users["pro"])) as ws:
        ws.send_json({"action": "join_session", "session_id": session_id})
        assert ws.receive_json()["event"] == "joined"

        schedule = client.post(
            "/messages",
            json={"kind": "schedule", "session_id": session_id,
                  "schedule_data": {"date": "2024-06-01", "time": "14:00"}},
            headers=auth_headers(users["pro"]),
        ).json()["message"]
        assert ws.receive_json()["data"]["message_id"] == schedule["message_id"]

        client.put(
            f"/messages/{schedule['message_id']}/status", json={"status": "CONFIRMED"},
            headers=auth_headers(users["contractor"]),
        )
        updated = ws.receive_json()
        follow_up = ws.receive_json()
        assert updated["event"] == "message_updated"
        assert updated["data"]["payload"]["status"] == "CONFIRMED"
        assert follow_up["event"] == "new_message"
        assert follow_up["data"]["text"] == "visit confirmed: 2024-06-01 at 14:00"


def test_notification_pushed_when_not_in_session(api, auth_headers):
    client, users = api
    session_id = open_negotiation(client, users, auth_headers)

    with client.websocket_connect(ws_url(users["contractor"])) as ws:
        ws.send_json({"action": "ping"})
        assert ws.receive_json()["event"] == "pong"

        client.post(
            "/messages", json={"session_id": session_id, "text": "Quote attached"},
            headers=auth_headers(users["pro"]),
        )
        event = ws.receive_json()
        assert event["event"] == "notification"
        assert event["data"]["type"] == "MESSAGE"
        assert event["data"]["session_id"] == session_id


def test_outsider_cannot_join_session(api, auth_headers):
    client, users = api
    session_id = open_negotiation(client, users, auth_headers)

    with client.websocket_connect(ws_url(users["pro2"])) as ws:
        ws.send_json({"action": "join_session", "session_id": session_id})
        event = ws.receive_json()
        assert event["event"] == "error"
        assert event["data"]["session_id"] == session_id

        ws.send_json({"action": "dance"})
        assert ws.receive_json()["event"] == "error"

        ws.send_text("not json")
        assert ws.receive_json()["data"]["detail"] == "Invalid JSON"


def test_leave_session_stops_message_events(api, auth_headers):
    client, users = api
    session_id = open_negotiation(client, users, auth_headers)

    with client.websocket_connect(ws_url(users["contractor"])) as ws:
        ws.send_json({"action": "join_session", "session_id": session_id})
        assert ws.receive_json()["event"] == "joined"
        ws.send_json({"action": "leave_session", "session_id": session_id})
        assert ws.receive_json() == {"event": "left", "data": {"session_id": session_id}}

        client.post(
            "/messages", json={"session_id": session_id, "text": "still there?"},
            headers=auth_headers(users["pro"]),
        )
        # no longer in the session channel, so the personal notification arrives instead
        assert ws.receive_json()["event"] == "notification"


@pytest.fixture
def single_connection_api(tmp_path):
    """Like `api`, but the app runs on a pool that holds exactly one connection."""
    seed_engine = make_engine(tmp_path)
    seed_factory = async_sessionmaker(bind=seed_engine, class_=AsyncSession, expire_on_commit=False)

    async def prepare():
        await create_schema(seed_engine)
        seeded = await seed_users(seed_factory)
        await seed_engine.dispose()
        return seeded

    seeded = asyncio.run(prepare())

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        pool_size=1, max_overflow=0, pool_timeout=2,
        connect_args={"timeout": 10},
    )
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client, seeded, engine
        client.portal.call(engine.dispose)
    app.dependency_overrides.clear()


def test_idle_socket_does_not_hold_a_connection(single_connection_api, auth_headers):
    client, users, engine = single_connection_api

    with client.websocket_connect(ws_url(users["contractor"])) as ws:
        ws.send_json({"action": "ping"})
        assert ws.receive_json()["event"] == "pong"

        # the session is created after the socket connected
        session_id = open_negotiation(client, users, auth_headers)
        assert client.get("/chats", headers=auth_headers(users["pro"])).status_code == 200

        ws.send_json({"action": "join_session", "session_id": session_id})
        assert ws.receive_json() == {"event": "joined", "data": {"session_id": session_id}}
        ws.send_json({"action": "ping"})
        assert ws.receive_json()["event"] == "pong"
        assert engine.pool.checkedout() == 0

        response = client.post(
            "/messages", json={"session_id": session_id, "text": "See you soon"},
            headers=auth_headers(users["pro"]),
        )
        assert response.status_code == 201
        assert ws.receive_json()["event"] == "new_message"
