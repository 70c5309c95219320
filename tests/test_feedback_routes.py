from feedback_service.extensions import db
from feedback_service.models import Feedback
from conftest import login

def _payload(emp, sentiment="positive"):
    return {"employeeId": emp, "strengths": "Unblocks others", "areasToImprove": "Saying no", "sentiment": sentiment}

def _create(client, people, emp=None):
    login(client, people.m)
    r = client.post("/api/feedback/", json=_payload(emp or people.e1))
    assert r.status_code == 201, r.get_json()
    return r.get_json()["feedback"]

def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200 and r.get_json() == {"status": "ok"}

def test_unknown_route_is_json_404(client):
    r = client.get("/api/nope")
    assert r.status_code == 404 and r.get_json()["error"] == "not_found"

def test_requires_login(client, people):
    r = client.get("/api/feedback/")
    assert r.status_code == 401 and r.get_json()["error"] == "unauthorized"

def test_inactive_user_is_unauthorized(client, people):
    login(client, people.e_gone)
    assert client.get("/api/feedback/").status_code == 401

def test_create_returns_record(client, people):
    fb = _create(client, people)
    assert fb["version"] == 1 and fb["employee_id"] == people.e1
    assert fb["is_acknowledged"] is False and fb["acknowledged_at"] is None

def test_error_mapping(client, people):
    login(client, people.e1)
    r = client.post("/api/feedback/", json=_payload(people.e2))
    assert r.status_code == 403
    assert r.get_json() == {"error": "forbidden", "message": "Only managers can create feedback"}

    login(client, people.m)
    r = client.post("/api/feedback/", json={**_payload(people.e1), "sentiment": "meh"})
    body = r.get_json()
    assert r.status_code == 400 and body["error"] == "invalid_input"
    assert body["errors"] == ["Sentiment must be positive, neutral, or negative"]

    r = client.post("/api/feedback/", json=_payload(people.e3))
    assert r.status_code == 403

def test_edit_ack_delete_restore_over_http(client, people, app):
    fb = _create(client, people)
    fid = fb["id"]

    r = client.patch(f"/api/feedback/{fid}", json={"sentiment": "neutral"})
    assert r.status_code == 200 and r.get_json()["feedback"]["version"] == 2

    r = client.delete(f"/api/feedback/{fid}")
    assert r.status_code == 409 and r.get_json()["error"] == "conflict"

    login(client, people.e1)
    r = client.post(f"/api/feedback/{fid}/acknowledge")
    assert r.status_code == 200 and r.get_json()["feedback"]["is_acknowledged"] is True
    assert client.post(f"/api/feedback/{fid}/acknowledge").status_code == 409

    login(client, people.m)
    r = client.delete(f"/api/feedback/{fid}")
    body = r.get_json()["feedback"]
    assert r.status_code == 200
    assert set(body) == {"id", "is_deleted", "deleted_at", "version"}
    assert body["is_deleted"] is True and body["version"] == 4

    login(client, people.e1)
    assert client.get(f"/api/feedback/{fid}").status_code == 404

    login(client, people.m)
    r = client.post(f"/api/feedback/{fid}/restore")
    assert r.status_code == 200 and r.get_json()["feedback"]["version"] == 5

    with app.app_context():
        assert db.session.get(Feedback, fid).is_deleted is False

def test_edit_invalid_id_and_missing(client, people):
    login(client, people.m)
    assert client.patch("/api/feedback/abc", json={"sentiment": "neutral"}).status_code == 400
    assert client.patch("/api/feedback/999", json={"sentiment": "neutral"}).status_code == 404

def test_bulk_create(client, people):
    login(client, people.m)
    r = client.post("/api/feedback/bulk", json={"entries": [_payload(people.e1), _payload(people.e2)]})
    assert r.status_code == 201
    body = r.get_json()
    assert body["created_count"] == 2 and len(body["records"]) == 2

    r = client.post("/api/feedback/bulk", json=[_payload(people.e1)])
    assert r.status_code == 409

def test_bulk_create_duplicate_reports_index(client, people):
    login(client, people.m)
    r = client.post("/api/feedback/bulk", json=[_payload(people.e1), _payload(people.e1, "neutral")])
    assert r.status_code == 400
    assert r.get_json()["errors"] == [f"entries[1]: Duplicate employee ID {people.e1} (already used by entries[0])"]

def test_list_pagination(client, people):
    _create(client, people, people.e1)
    _create(client, people, people.e2)
    r = client.get("/api/feedback/?limit=1&page=1&sortBy=createdAt&sortOrder=asc")
    body = r.get_json()
    assert r.status_code == 200
    assert len(body["feedback"]) == 1
    assert body["pagination"]["total_count"] == 2
    assert body["pagination"]["has_next_page"] is True
    assert body["filters"]["sort_order"] == "asc"

    login(client, people.e2)
    body = client.get("/api/feedback/").get_json()
    assert [f["employee_id"] for f in body["feedback"]] == [people.e2]

def test_history_endpoint(client, people):
    fid = _create(client, people)["id"]
    client.patch(f"/api/feedback/{fid}", json={"strengths": "Even better"})
    r = client.get(f"/api/feedback/{fid}/history")
    body = r.get_json()
    assert r.status_code == 200
    assert body["record"]["id"] == fid
    assert [e["previous_data"]["version"] for e in body["audit_entries"]] == [1]
    assert body["employee"]["id"] == people.e1
    assert [e["edited_by"]["email"] for e in body["audit_entries"]] == ["mina@example.test"]

    login(client, people.e2)
    assert client.get(f"/api/feedback/{fid}/history").status_code == 403

def test_export_rate_limited_with_retry_after(client, people):
    login(client, people.e1)
    for _ in range(5):
        r = client.post("/api/feedback/export", json={})
        assert r.status_code == 200
    r = client.post("/api/feedback/export", json={})
    assert r.status_code == 429
    assert r.get_json()["error"] == "rate_limited"
    assert int(r.headers["Retry-After"]) > 0
