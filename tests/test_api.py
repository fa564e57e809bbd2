"""
End-to-end scenarios over HTTP: post -> accept -> negotiate -> complete -> review.
"""


def post_sink_job(client, contractor, auth_headers, **overrides):
    body = {
        "title": "Fix sink",
        "description": "Leaking pipe",
        "area_tag": "Plumber",
        "location": "Downtown",
        "budget_range": "R$150-250",
    }
    body.update(overrides)
    response = client.post("/proposals", json=body, headers=auth_headers(contractor))
    assert response.status_code == 201, response.text
    return response.json()


def accept(client, proposal_id, professional, auth_headers):
    return client.post(f"/proposals/{proposal_id}/accept", headers=auth_headers(professional))


def test_requests_without_valid_credentials_are_rejected(api, auth_headers):
    client, users = api
    response = client.get("/proposals")
    assert response.status_code == 401
    assert response.json()["error"] == "UNAUTHORIZED"
    assert response.headers["www-authenticate"] == "Bearer"

    response = client.get("/proposals", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401

    response = client.get("/users/me", headers=auth_headers(users["blocked"]))
    assert response.status_code == 401


def test_create_proposal_is_open_and_unassigned(api, auth_headers):
    client, users = api
    proposal = post_sink_job(client, users["contractor"], auth_headers)
    assert proposal["status"] == "OPEN"
    assert proposal["professional_id"] is None
    assert proposal["contractor"]["user_id"] == users["contractor"].user_id

    fetched = client.get(f"/proposals/{proposal['proposal_id']}", headers=auth_headers(users["pro"]))
    assert fetched.status_code == 200
    assert fetched.json()["title"] == "Fix sink"


def test_create_proposal_validation_and_role(api, auth_headers):
    client, users = api
    response = client.post(
        "/proposals", json={"title": "", "description": "x"}, headers=auth_headers(users["contractor"])
    )
    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"

    response = client.post(
        "/proposals", json={"title": "t", "description": "d"}, headers=auth_headers(users["pro"])
    )
    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"


def test_missing_proposal_is_404(api, auth_headers):
    client, users = api
    response = client.get("/proposals/999", headers=auth_headers(users["pro"]))
    assert response.status_code == 404
    assert response.json() == {"detail": "Proposal not found", "error": "NOT_FOUND"}


def test_accept_opens_session_with_system_message(api, auth_headers):
    client, users = api
    proposal = post_sink_job(client, users["contractor"], auth_headers)

    response = accept(client, proposal["proposal_id"], users["pro"], auth_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    session_id = body["session_id"]

    fetched = client.get(f"/proposals/{proposal['proposal_id']}", headers=auth_headers(users["pro"])).json()
    assert fetched["status"] == "NEGOTIATING"
    assert fetched["professional_id"] == users["pro"].user_id

    chats = client.get("/chats", headers=auth_headers(users["pro"])).json()
    assert [c["session_id"] for c in chats] == [session_id]
    assert chats[0]["last_message"] == "start"

    messages = client.get(f"/chats/{session_id}/messages", headers=auth_headers(users["pro"])).json()
    assert len(messages) == 1
    assert messages[0]["text"] == "negotiation started"
    assert messages[0]["sender_id"] == "system"
    assert messages[0]["is_system"] is True


def test_second_accept_gets_conflict(api, auth_headers):
    client, users = api
    proposal = post_sink_job(client, users["contractor"], auth_headers)

    first = accept(client, proposal["proposal_id"], users["pro"], auth_headers)
    second = accept(client, proposal["proposal_id"], users["pro2"], auth_headers)
    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["error"] == "CONFLICT"

    fetched = client.get(f"/proposals/{proposal['proposal_id']}", headers=auth_headers(users["pro"])).json()
    assert fetched["professional_id"] == users["pro"].user_id


def test_feed_hides_taken_proposals(api, auth_headers):
    client, users = api
    kept = post_sink_job(client, users["contractor"], auth_headers)
    taken = post_sink_job(client, users["contractor"], auth_headers, title="Paint wall", area_tag="Painter")
    accept(client, taken["proposal_id"], users["pro"], auth_headers)

    feed = client.get("/proposals", headers=auth_headers(users["pro2"])).json()
    assert [p["proposal_id"] for p in feed] == [kept["proposal_id"]]

    mine = client.get(
        "/proposals", params={"contractor_id": users["contractor"].user_id},
        headers=auth_headers(users["contractor"]),
    ).json()
    assert len(mine) == 2


def test_schedule_negotiation_flow(api, auth_headers):
    client, users = api
    proposal = post_sink_job(client, users["contractor"], auth_headers)
    session_id = accept(client, proposal["proposal_id"], users["pro"], auth_headers).json()["session_id"]

    response = client.post(
        "/messages",
        json={"kind": "schedule", "session_id": session_id,
              "schedule_data": {"date": "2024-06-01", "time": "14:00"}},
        headers=auth_headers(users["pro"]),
    )
    assert response.status_code == 201, response.text
    schedule = response.json()["message"]
    assert schedule["kind"] == "schedule"
    assert schedule["payload"] == {"kind": "schedule", "date": "2024-06-01", "time": "14:00", "status": "PENDING"}

    # the proposer cannot confirm their own proposal
    response = client.put(
        f"/messages/{schedule['message_id']}/status", json={"status": "CONFIRMED"},
        headers=auth_headers(users["pro"]),
    )
    assert response.status_code == 403

    response = client.put(
        f"/messages/{schedule['message_id']}/status", json={"status": "CONFIRMED"},
        headers=auth_headers(users["contractor"]),
    )
    assert response.status_code == 200
    assert response.json()["message"]["payload"]["status"] == "CONFIRMED"

    # repeating the decision is a no-op
    response = client.put(
        f"/messages/{schedule['message_id']}/status", json={"status": "CONFIRMED"},
        headers=auth_headers(users["contractor"]),
    )
    assert response.status_code == 200
    assert response.json()["message"]["payload"]["status"] == "CONFIRMED"

    response = client.put(
        f"/messages/{schedule['message_id']}/status", json={"status": "REJECTED"},
        headers=auth_headers(users["contractor"]),
    )
    assert response.status_code == 409

    messages = client.get(f"/chats/{session_id}/messages", headers=auth_headers(users["pro"])).json()
    assert [m["text"] for m in messages] == [
        "negotiation started",
        "visit proposal: 2024-06-01 at 14:00",
        "visit confirmed: 2024-06-01 at 14:00",
    ]

    newer = client.get(
        f"/chats/{session_id}/messages", params={"after_id": schedule["message_id"]},
        headers=auth_headers(users["pro"]),
    ).json()
    assert [m["text"] for m in newer] == ["visit confirmed: 2024-06-01 at 14:00"]

    appointments = client.get("/appointments", headers=auth_headers(users["pro"])).json()
    assert len(appointments) == 1
    assert appointments[0]["status"] == "CONFIRMED"
    assert appointments[0]["with_user"]["user_id"] == users["contractor"].user_id


def test_text_message_defaults_kind_and_rejects_blank(api, auth_headers):
    client, users = api
    proposal = post_sink_job(client, users["contractor"], auth_headers)
    session_id = accept(client, proposal["proposal_id"], users["pro"], auth_headers).json()["session_id"]

    response = client.post(
        "/messages", json={"session_id": session_id, "text": "Hi there"},
        headers=auth_headers(users["contractor"]),
    )
    assert response.status_code == 201
    assert response.json()["message"]["payload"] == {"kind": "text"}

    response = client.post(
        "/messages", json={"session_id": session_id, "text": "   "},
        headers=auth_headers(users["contractor"]),
    )
    assert response.status_code == 400

    response = client.post(
        "/messages", json={"session_id": session_id, "text": "hi"},
        headers=auth_headers(users["pro2"]),
    )
    assert response.status_code == 403


def test_complete_and_review(api, auth_headers):
    client, users = api
    proposal = post_sink_job(client, users["contractor"], auth_headers)
    proposal_id = proposal["proposal_id"]
    accept(client, proposal_id, users["pro"], auth_headers)

    response = client.post(f"/proposals/{proposal_id}/complete", headers=auth_headers(users["pro"]))
    assert response.status_code == 403

    response = client.post(f"/proposals/{proposal_id}/complete", headers=auth_headers(users["contractor"]))
    assert response.status_code == 200
    assert response.json() == {
        "success": True, "proposal_id": proposal_id, "review_target_id": users["pro"].user_id
    }

    fetched = client.get(f"/proposals/{proposal_id}", headers=auth_headers(users["pro"])).json()
    assert fetched["status"] == "COMPLETED"
    assert fetched["completed_at"] is not None

    me = client.get("/users/me", headers=auth_headers(users["pro"])).json()
    assert me["xp"] == 500
    progress = client.get("/users/me/progress", headers=auth_headers(users["pro"])).json()
    assert progress == {
        "xp": 500, "current_level": "Bronze", "next_level": "Silver", "next_level_xp": 1000, "progress": 50
    }

    response = client.post(
        "/reviews",
        json={"proposal_id": proposal_id, "target_id": users["pro"].user_id, "rating": 6},
        headers=auth_headers(users["contractor"]),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"

    response = client.post(
        "/reviews",
        json={"proposal_id": proposal_id, "target_id": users["pro"].user_id, "rating": 4,
              "comment": "Great job"},
        headers=auth_headers(users["contractor"]),
    )
    assert response.status_code == 201
    assert response.json()["review"]["rating"] == 4

    me = client.get("/users/me", headers=auth_headers(users["pro"])).json()
    assert me["reviews_count"] == 1
    assert me["rating"] == 4.0

    chats = client.get("/chats", headers=auth_headers(users["contractor"])).json()
    assert chats[0]["is_closed"] is True

    reviews = client.get(
        "/reviews", params={"target_id": users["pro"].user_id}, headers=auth_headers(users["pro2"])
    ).json()
    assert len(reviews) == 1
    assert reviews[0]["rating"] == 4
    assert reviews[0]["comment"] == "Great job"
    assert reviews[0]["reviewer"]["name"] == "Carla Contractor"


def test_review_list_for_unknown_user_is_404(api, auth_headers):
    client, users = api
    response = client.get("/reviews", params={"target_id": "nobody"}, headers=auth_headers(users["pro"]))
    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"

    empty = client.get(
        "/reviews", params={"target_id": users["pro2"].user_id}, headers=auth_headers(users["pro"])
    )
    assert empty.json() == []


def test_notifications_can_be_listed_and_marked_read(api, auth_headers):
    client, users = api
    proposal = post_sink_job(client, users["contractor"], auth_headers)
    accept(client, proposal["proposal_id"], users["pro"], auth_headers)

    notifications = client.get("/notifications/my", headers=auth_headers(users["contractor"])).json()
    assert len(notifications) == 1
    assert notifications[0]["type"] == "PROPOSAL"
    assert notifications[0]["is_read"] is False

    notification_id = notifications[0]["notification_id"]
    response = client.patch(f"/notifications/{notification_id}/read", headers=auth_headers(users["pro"]))
    assert response.status_code == 403

    response = client.patch(f"/notifications/{notification_id}/read", headers=auth_headers(users["contractor"]))
    assert response.status_code == 200
    assert response.json()["is_read"] is True


def test_health_reports_store_and_polling(api):
    client, _ = api
    body = client.get("/health").json()
    assert body["db"] == "connected"
    assert body["mode"] == "in-memory"
    assert body["polling"] == {"chat_interval_seconds": 3, "session_list_interval_seconds": 30}
