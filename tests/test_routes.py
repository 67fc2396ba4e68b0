from __future__ import annotations

import pytest

from src.timetracker.timetracker.main import create_app


@pytest.fixture
def app(monkeypatch, container):
    monkeypatch.setenv("APP_ENV", "testing")
    return create_app(container=container)


def _login(client, user_id="u1", role="employee"):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["role"] = role


def test_session_routes_require_login(app):
    client = app.test_client()

    resp = client.post("/api/session/start")

    assert resp.status_code == 401
    assert resp.get_json()["success"] is False


def test_clock_in_break_and_clock_out(app, clock):
    client = app.test_client()
    _login(client)

    resp = client.post("/api/session/start", json={"work_location": "home"})
    assert resp.status_code == 201
    assert resp.get_json()["message"] == "Clocked in at 09:00:00!"
    assert resp.get_json()["session"]["workLocation"] == "home"

    resp = client.post("/api/session/start", json={})
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "AlreadyActive"

    clock.advance(hours=1)
    resp = client.post("/api/session/break/start", json={"reason": "coffee"})
    assert resp.status_code == 200

    resp = client.post("/api/session/break/start", json={"reason": "coffee"})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "You are already on a break"

    clock.advance(minutes=15)
    resp = client.get("/api/session/status")
    body = resp.get_json()
    assert body["status"] == "break"
    assert body["elapsed"] == 3600
    assert body["display"] == "01:00:00"
    assert body["current_break_seconds"] == 900

    client.post("/api/session/break/end")
    clock.advance(minutes=45)
    resp = client.post("/api/session/stop")
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["elapsed_ms"] == 6_300_000
    assert body["message"] == "Clocked out at 11:00:00! Total: 1.75 hours"
    assert "warnings" not in body

    resp = client.get("/api/attendance/me")
    records = resp.get_json()["records"]
    assert len(records) == 1
    assert records[0]["totalHours"] == 1.75


def test_invalid_input_is_a_validation_error(app):
    client = app.test_client()
    _login(client)

    resp = client.post("/api/session/start", json={"work_location": "moon"})

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "ValidationError"


def test_store_outage_is_reported_as_retryable(app, store):
    client = app.test_client()
    _login(client)
    store.fail_reads = 10

    resp = client.post("/api/session/start", json={})

    assert resp.status_code == 503
    assert resp.get_json()["retryable"] is True


def test_partial_clock_out_reports_warnings(app, store, clock):
    client = app.test_client()
    _login(client)
    client.post("/api/session/start", json={})
    clock.advance(hours=2)
    store.fail_writes["attendance"] = 1

    resp = client.post("/api/session/stop")
    body = resp.get_json()

    assert resp.status_code == 200
    assert body["session"]["status"] == "completed"
    assert len(body["warnings"]) == 1

    resp = client.post("/api/session/retry")
    assert resp.get_json() == {"success": True, "pending": 0}


def test_day_views_are_for_managers(app):
    client = app.test_client()
    _login(client, role="employee")
    assert client.get("/api/attendance/day").status_code == 403

    _login(client, user_id="m1", role="manager")
    resp = client.get("/api/attendance/day/stats?employees=3&date=2024-03-06")
    assert resp.status_code == 200
    assert resp.get_json()["absent"] == 3

    resp = client.get("/api/attendance/day?date=06-03-2024")
    assert resp.status_code == 400


def test_day_export_is_csv(app):
    client = app.test_client()
    _login(client)
    client.post("/api/session/start", json={})

    _login(client, user_id="m1", role="admin")
    resp = client.get("/api/attendance/day.csv?date=2024-03-06")

    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    text = resp.data.decode("utf-8-sig")
    assert text.splitlines()[0] == "date,user_id,clock_in,clock_out,total_hours,breaks,status,work_location"
    assert "u1,09:00:00,-,0.00,0,present,office" in text
