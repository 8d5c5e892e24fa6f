"""
Tests for the traffic feed poller.
"""

import threading
from unittest.mock import MagicMock

import pytest
import requests

from chaosctl.core.feed import ACTIVITY_PATH, TrafficFeedPoller


def _response(status_code=200, payload=None, json_error=False):
    resp = MagicMock()
    resp.status_code = status_code
    if json_error:
        resp.json.side_effect = ValueError("Expecting value")
    else:
        resp.json.return_value = payload
    return resp


ACTIVITY = [
    {"id": 3, "method": "POST", "path": "/api/users", "status": 503, "duration": 12,
     "tampered": True, "tamperType": "INJECT 503", "timestamp": "10:00:03"},
    {"id": 2, "method": "GET", "path": "/api/slow", "status": 0, "duration": 0,
     "tampered": True, "timestamp": "10:00:02"},
    {"id": 1, "method": "GET", "path": "/index.html", "status": 200, "duration": 30,
     "tampered": False, "timestamp": "10:00:01"},
]


@pytest.fixture
def session():
    s = MagicMock()
    s.get.return_value = _response(200, list(ACTIVITY))
    return s


@pytest.fixture
def poller(session):
    p = TrafficFeedPoller(origin="http://localhost:9000", interval=0.01, session=session)
    yield p
    p.stop(timeout=1)


class TestPollOnce:
    def test_activity_url(self, poller):
        assert poller.activity_url == "http://localhost:9000" + ACTIVITY_PATH

    def test_success_replaces_buffer(self, poller, session):
        assert poller.poll_once() is True
        logs = poller.get_logs()
        assert [entry.id for entry in logs] == [3, 2, 1]
        assert logs[0].tamper_type == "INJECT 503"
        assert logs[1].is_pending

    def test_replace_not_append(self, poller, session):
        poller.poll_once()
        session.get.return_value = _response(200, [ACTIVITY[2]])
        poller.poll_once()
        assert [entry.id for entry in poller.get_logs()] == [1]

    def test_empty_list_clears_buffer(self, poller, session):
        poller.poll_once()
        session.get.return_value = _response(200, [])
        assert poller.poll_once() is True
        assert poller.get_logs() == []

    def test_transport_failure_keeps_buffer(self, poller, session):
        poller.poll_once()
        session.get.side_effect = requests.ConnectionError("refused")
        assert poller.poll_once() is False
        assert len(poller.get_logs()) == 3
        assert poller.failures == 1
        assert "refused" in poller.last_error

    def test_http_error_keeps_buffer(self, poller, session):
        poller.poll_once()
        session.get.return_value = _response(502)
        assert poller.poll_once() is False
        assert len(poller.get_logs()) == 3
        assert poller.last_error == "HTTP 502"

    def test_bad_json_and_wrong_shape(self, poller, session):
        session.get.return_value = _response(200, json_error=True)
        assert poller.poll_once() is False
        session.get.return_value = _response(200, {"logs": []})
        assert poller.poll_once() is False
        assert poller.failures == 2

    def test_success_resets_failures(self, poller, session):
        session.get.side_effect = requests.Timeout("slow")
        poller.poll_once()
        session.get.side_effect = None
        poller.poll_once()
        assert poller.failures == 0
        assert poller.last_error == ""
        assert poller.polls == 1

    def test_non_mapping_items_skipped(self, poller, session):
        session.get.return_value = _response(200, [ACTIVITY[0], "junk", 5])
        poller.poll_once()
        assert len(poller.get_logs()) == 1

    def test_callbacks(self, poller):
        received = []
        poller.on_update(received.append)
        poller.on_update(lambda logs: 1 / 0)
        poller.poll_once()
        assert len(received) == 1
        assert len(received[0]) == 3


class TestFiltering:
    def test_limit(self, poller):
        poller.poll_once()
        assert len(poller.get_logs(limit=2)) == 2

    def test_tampered_only(self, poller):
        poller.poll_once()
        assert [e.id for e in poller.get_logs(tampered_only=True)] == [3, 2]

    def test_method(self, poller):
        poller.poll_once()
        assert [e.id for e in poller.get_logs(method="post")] == [3]

    def test_stats(self, poller):
        poller.poll_once()
        stats = poller.get_stats()
        assert stats["total"] == 3
        assert stats["tampered"] == 2
        assert stats["tamper_types"] == {"INJECT 503": 1, "TAMPERED": 1}
        assert stats["status_codes"] == {"5xx": 1, "pending": 1, "2xx": 1}
        assert stats["avg_duration_ms"] == 14.0

    def test_stats_empty(self, poller):
        stats = poller.get_stats()
        assert stats["total"] == 0
        assert stats["avg_duration_ms"] == 0


class TestLifecycle:
    def test_start_polls_and_stop_halts(self, poller, session):
        polled = threading.Event()
        poller.on_update(lambda logs: polled.set())
        assert poller.start() is True
        assert polled.wait(2)
        assert poller.is_running
        assert poller.start() is False

        poller.stop(timeout=1)
        assert not poller.is_running
        calls = session.get.call_count
        polled.clear()
        assert not polled.wait(0.1)
        assert session.get.call_count == calls

    def test_keeps_polling_after_failures(self, poller, session):
        session.get.side_effect = requests.ConnectionError("down")
        poller.start()
        for _ in range(200):
            if session.get.call_count >= 3:
                break
            threading.Event().wait(0.01)
        assert session.get.call_count >= 3
        assert poller.is_running

    def test_close_stops_and_closes_session(self, poller, session):
        poller.start()
        poller.close()
        assert not poller.is_running
        session.close.assert_called_once()
