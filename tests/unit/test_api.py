"""Tests for the HTTP API."""

from __future__ import annotations

import json
import threading

import pytest
from conftest import click, field
from fastapi.testclient import TestClient

from uxinsight.app import create_app
from uxinsight.friction.session import wall_clock_ms


@pytest.fixture
def client(settings, mock_queue) -> TestClient:
    with TestClient(create_app(settings, queue=mock_queue)) as c:
        yield c


@pytest.fixture
def session_id(client) -> str:
    r = client.post("/api/sessions", json={"url": "https://example.com/cart", "browser": "Chrome"})
    assert r.status_code == 201
    return r.json()["id"]


class TestHealth:
    def test_health(self, client, mock_queue) -> None:
        body = client.get("/health").json()
        assert body == {"ok": True, "service": "uxinsight-api", "redis": True}

    def test_health_without_redis(self, settings) -> None:
        with TestClient(create_app(settings)) as c:
            assert c.get("/health").json()["redis"] is False


class TestSessions:
    def test_create_and_list(self, client, session_id) -> None:
        assert session_id == "s1"
        sessions = client.get("/api/sessions").json()
        assert len(sessions) == 1
        assert sessions[0]["url"] == "https://example.com/cart"
        assert sessions[0]["active"] is True
        assert sessions[0]["duration"].count(":") == 1

    def test_create_without_body(self, client) -> None:
        r = client.post("/api/sessions")
        assert r.status_code == 201
        assert r.json()["user"] == "User 1"

    def test_end(self, client, session_id) -> None:
        r = client.post(f"/api/sessions/{session_id}/end", json={"endTime": "2025-04-14T14:36:32Z"})
        assert r.status_code == 200
        assert r.json()["message"] == f"Session {session_id} ended successfully"
        assert client.app.state.recorders == {}
        assert client.get("/api/sessions").json()[0]["active"] is False

    def test_end_unknown(self, client) -> None:
        assert client.post("/api/sessions/nope/end", json={}).status_code == 404


class TestEvents:
    def test_requires_session_id(self, client) -> None:
        r = client.post("/api/events", json=click(1))
        assert r.status_code == 400
        assert r.json() == {"error": "Session ID is required"}

    def test_unknown_session(self, client) -> None:
        assert client.post("/api/events", json=dict(click(1), sessionId="s99")).status_code == 404

    def test_ended_session_is_rejected(self, client, session_id) -> None:
        client.post(f"/api/sessions/{session_id}/end", json={})
        r = client.post("/api/events", json=dict(click(1), sessionId=session_id))
        assert r.status_code == 409

    def test_batch_is_queued_stored_and_classified(self, client, session_id, mock_queue) -> None:
        batch = [dict(click(ts), sessionId=session_id) for ts in (100, 200, 300)]
        batch.append({"kind": "hover", "timestamp": 400, "sessionId": session_id})
        body = client.post("/api/events", json=batch).json()
        assert body["count"] == 3
        assert body["ignored"] == 1
        assert body["status"] == "queued"
        assert [s["kind"] for s in body["signals"]] == ["repeatedClicks"]
        assert body["signals"][0]["sessionId"] == session_id

        assert mock_queue.rpush.call_count == 3
        queue_name, message = mock_queue.rpush.call_args.args
        assert queue_name == "events"
        assert json.loads(message)["sessionId"] == session_id

        stored = client.get("/api/events", params={"sessionId": session_id}).json()
        assert [e["timestamp"] for e in stored] == [100, 200, 300]

    def test_stored_events_are_redacted(self, client, session_id, mock_queue) -> None:
        pw = {"selector": "#pw", "tag": "input", "inputType": "password", "value": "hunter2"}
        client.post("/api/events", json={"kind": "formFocus", "timestamp": 1, "target": pw,
                                         "sessionId": session_id})
        (stored,) = client.get("/api/events", params={"sessionId": session_id}).json()
        assert stored["target"]["value"] == "[REDACTED]"
        assert "hunter2" not in mock_queue.rpush.call_args.args[1]

    def test_queue_failure_is_a_server_error(self, client, session_id, mock_queue) -> None:
        mock_queue.rpush.side_effect = ConnectionError("redis down")
        r = client.post("/api/events", json=dict(click(1), sessionId=session_id))
        assert r.status_code == 500
        assert "redis down" in r.json()["error"]
        assert client.get("/api/events", params={"sessionId": session_id}).json() == []

    def test_list_requires_session_id(self, client) -> None:
        assert client.get("/api/events").status_code == 400

    def test_signals_become_friction_points(self, client, session_id) -> None:
        client.post("/api/events", json={"kind": "pageLoad", "timestamp": 1, "sessionId": session_id,
                                         "url": "https://example.com/checkout"})
        client.post("/api/events", json={"kind": "formBlur", "timestamp": 2, "valid": False,
                                         "target": field("#email"), "sessionId": session_id})
        (fp,) = client.get("/api/friction-points").json()
        assert fp["page"] == "https://example.com/checkout"
        assert fp["element"] == "#email"
        assert fp["severity"] == "medium"
        assert fp["kind"] == "formValidationError"
        assert fp["sessionIds"] == [session_id]
        assert client.get("/api/sessions").json()[0]["frictionPoints"] == 1


class TestFrictionPoints:
    report = {"page": "Checkout", "element": "Payment Form", "issue": "Errors not visible", "severity": "high"}

    def test_new_report_is_created(self, client) -> None:
        r = client.post("/api/friction-points", json=self.report)
        assert r.status_code == 201
        assert r.json()["id"] == "fp1"
        assert r.json()["occurrences"] == 1

    def test_duplicate_report_is_aggregated(self, client) -> None:
        client.post("/api/friction-points", json=self.report)
        r = client.post("/api/friction-points", json=self.report)
        assert r.status_code == 200
        assert r.json()["occurrences"] == 2
        assert len(client.get("/api/friction-points").json()) == 1

    def test_signal_batch_from_reporter(self, client) -> None:
        signal = {"kind": "javascriptError", "timestamp": 5, "message": "x is undefined",
                  "sessionId": "remote-1", "page": "https://example.com"}
        body = client.post("/api/friction-points", json=[signal, signal]).json()
        assert body["accepted"] == 2
        (fp,) = client.get("/api/friction-points").json()
        assert fp["occurrences"] == 2
        assert fp["severity"] == "high"
        assert fp["element"] == "page"

    def test_report_without_issue_is_rejected(self, client) -> None:
        r = client.post("/api/friction-points", json={"page": "Checkout"})
        assert r.status_code == 400
        assert r.json() == {"error": "Invalid request"}


class TestRecordingsAndStats:
    def test_missing_recording(self, client) -> None:
        r = client.get("/api/recordings/s42")
        assert r.status_code == 404
        assert r.json() == {"error": "Recording not found"}

    def test_upload_recording(self, client) -> None:
        r = client.post("/api/recordings/s7", json={"events": [{"kind": "click"}], "duration": 272})
        assert r.json() == {"success": True, "id": "s7"}
        rec = client.get("/api/recordings/s7").json()
        assert rec["duration"] == "4:32"
        assert rec["events"] == [{"kind": "click"}]

    def test_ending_a_session_keeps_its_events(self, client, session_id) -> None:
        client.post("/api/events", json=dict(click(10), sessionId=session_id))
        client.post(f"/api/sessions/{session_id}/end", json={})
        rec = client.get(f"/api/recordings/{session_id}").json()
        assert len(rec["events"]) == 1

    def test_stats(self, client) -> None:
        ids = [client.post("/api/sessions", json={}).json()["id"] for _ in range(4)]
        for sid in ids:
            client.post("/api/events", json=[dict(click(0), sessionId=sid), dict(click(90_000, "#x"), sessionId=sid)])
        client.post(f"/api/sessions/{ids[0]}/end", json={})
        stats = client.get("/api/stats").json()
        assert stats["totalSessions"] == 4
        assert stats["activeSessions"] == 3
        assert stats["completionRate"] == 25
        assert stats["timeOnTask"] == "1:30"
        assert stats["frictionPoints"] == 0


class TestLiveHesitation:
    def test_no_hesitation_right_after_activity(self, client, session_id) -> None:
        batch = [dict(click(ts, f"#item-{ts}"), sessionId=session_id) for ts in range(6_000, 11_000, 1_000)]
        assert client.post("/api/events", json=batch).json()["count"] == 5
        rec = client.app.state.recorders[session_id]

        assert rec.tick() == []
        base = rec.state.last_interaction_time
        assert abs(base - wall_clock_ms()) < 60_000
        assert rec.tick(base + 4_999) == []

        (signal,) = rec.tick(base + 5_001)
        assert signal.kind == "hesitation"
        assert signal.target.selector == "#item-10000"
        kinds = [fp["kind"] for fp in client.get("/api/friction-points").json()]
        assert kinds == ["hesitation"]


class TestConcurrentEnd:
    def test_end_during_ingest_waits_for_the_batch(self, client, session_id, mock_queue) -> None:
        rec = client.app.state.recorders[session_id]
        stopper = threading.Thread(target=rec.stop)
        stopped_early = []

        def push(*args):
            if not stopped_early:
                # what end_session does: forget the recorder, then stop it
                client.app.state.recorders.pop(session_id, None)
                stopper.start()
                stopper.join(0.2)
                stopped_early.append(not stopper.is_alive())

        mock_queue.rpush.side_effect = push
        batch = [dict(click(ts), sessionId=session_id) for ts in (1, 2, 3)]
        r = client.post("/api/events", json=batch)
        stopper.join(2.0)

        assert r.status_code == 200
        assert stopped_early == [False]
        assert [s["kind"] for s in r.json()["signals"]] == ["repeatedClicks"]
        assert len(client.get("/api/events", params={"sessionId": session_id}).json()) == 3
        assert not rec.active
