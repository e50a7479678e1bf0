"""HTTP route tests for the bridge FastAPI app.

The app lifespan is not entered; module globals are patched with a real
WebhookHandler and mocked pipeline objects instead.
"""

import hashlib
import hmac
import json
import logging
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.bridge import main
from src.bridge.webhook.handler import WebhookHandler

SECRET = "s3cr3t"

PR_PAYLOAD = {
    "action": "labeled",
    "label": {"name": "[Status] Needs Review"},
    "pull_request": {
        "number": 42,
        "state": "open",
        "head": {"label": "Automattic:feature-x", "ref": "feature-x", "sha": "c0ffee42"},
        "labels": [{"name": "[Status] Needs Review"}],
    },
    "repository": {"full_name": "Automattic/wp-calypso"},
    "sender": {"login": "alisterscott"},
}


def _signed_headers(body: bytes, event: str = "pull_request") -> dict:
    digest = hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()
    return {
        "X-GitHub-Event": event,
        "X-Hub-Signature-256": f"sha256={digest}",
        "Content-Type": "application/json",
    }


@pytest.fixture
def orchestrator(monkeypatch):
    mock = AsyncMock()
    monkeypatch.setattr(main, "orchestrator", mock)
    return mock


@pytest.fixture
def callback_processor(monkeypatch):
    mock = AsyncMock()
    monkeypatch.setattr(main, "callback_processor", mock)
    return mock


@pytest.fixture
def client(monkeypatch, orchestrator, callback_processor):
    monkeypatch.setattr(
        main,
        "webhook_handler",
        WebhookHandler(secret=SECRET, source_project_id="Automattic/wp-calypso"),
    )
    return TestClient(main.app)


class TestGitHubWebhook:

    def test_pull_request_is_accepted_and_scheduled(self, client, orchestrator):
        body = json.dumps(PR_PAYLOAD).encode()

        response = client.post("/ghwebhook", content=body, headers=_signed_headers(body))

        assert response.status_code == 200
        assert response.json() == {
            "status": "accepted",
            "pull_request": "Automattic/wp-calypso#42",
        }
        orchestrator.on_pull_request_event.assert_awaited_once()
        event = orchestrator.on_pull_request_event.call_args.args[0]
        assert event.head_sha == "c0ffee42"

    def test_bad_signature_is_rejected(self, client, orchestrator):
        body = json.dumps(PR_PAYLOAD).encode()
        headers = _signed_headers(b"something else")

        response = client.post("/ghwebhook", content=body, headers=headers)

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid webhook signature"
        orchestrator.on_pull_request_event.assert_not_called()

    def test_ping_answers_pong(self, client):
        body = b'{"zen": "Keep it logically awesome."}'

        response = client.post("/ghwebhook", content=body, headers=_signed_headers(body, "ping"))

        assert response.json() == {"status": "ok", "message": "pong"}

    def test_other_events_are_ignored(self, client, orchestrator):
        body = b'{"ref": "refs/heads/develop"}'

        response = client.post("/ghwebhook", content=body, headers=_signed_headers(body, "push"))

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        orchestrator.on_pull_request_event.assert_not_called()

    def test_invalid_json_is_400(self, client):
        body = b"{not json"

        response = client.post("/ghwebhook", content=body, headers=_signed_headers(body))

        assert response.status_code == 400

    def test_unparseable_pull_request_is_ignored(self, client, orchestrator):
        body = json.dumps({"action": "labeled"}).encode()

        response = client.post("/ghwebhook", content=body, headers=_signed_headers(body))

        assert response.json()["status"] == "ignored"
        orchestrator.on_pull_request_event.assert_not_called()

    def test_uninitialized_bridge_is_503(self, monkeypatch):
        monkeypatch.setattr(main, "webhook_handler", None)
        monkeypatch.setattr(main, "orchestrator", None)

        response = TestClient(main.app).post("/ghwebhook", content=b"{}")

        assert response.status_code == 503


class TestCircleCIWebhook:

    def test_callback_is_acknowledged_and_scheduled(self, client, callback_processor):
        body = b'{"payload": {"outcome": "success"}}'

        response = client.post("/circleciwebhook", content=body)

        assert response.status_code == 200
        assert response.text == "ok"
        callback_processor.on_build_callback.assert_awaited_once_with(body)

    def test_garbage_is_still_acknowledged(self, client, callback_processor):
        response = client.post("/circleciwebhook", content=b"\x00garbage")

        assert response.status_code == 200
        callback_processor.on_build_callback.assert_awaited_once()


class TestOperationalRoutes:

    def test_healthcheck(self, client):
        response = client.get("/cache-healthcheck")

        assert response.status_code == 200
        assert response.text == "OK"

    def test_metrics_exposes_prometheus_text(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")


def test_redact_secret():
    assert main._redact_secret(None) == "<unset>"
    assert main._redact_secret("abc") == "***"
    assert main._redact_secret("ghp_abcdef") == "ghp_******"


def test_logging_renders_json_with_extra_fields(capsys):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        main._configure_logging("debug")
        logging.getLogger("src.bridge.test").info(
            "Ignoring pull request", extra={"reason": "fork"}
        )
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)

    line = capsys.readouterr().err.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["event"] == "Ignoring pull request"
    assert record["reason"] == "fork"
    assert record["level"] == "info"
    assert record["logger"] == "src.bridge.test"
