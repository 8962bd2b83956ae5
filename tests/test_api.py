"""Summary: API integration tests.

Importance: Validates FastAPI endpoints against commands, workflows, and chat.
Alternatives: Use manual curl testing only.
"""

from __future__ import annotations

import base64
import json
from pathlib import Path

from fastapi.testclient import TestClient

from relaypilot.api import create_app
from relaypilot.config import AppConfig


def _build_config(tmp_path: Path, api_key: str = "") -> AppConfig:
    """Summary: Build an AppConfig for API tests.

    Importance: Ensures tests use isolated storage and fixture adapters.
    Alternatives: Load AppConfig from environment variables.
    """

    fixture = tmp_path / "mock_messages.json"
    fixture.write_text(
        json.dumps(
            [
                {
                    "id": "api-1",
                    "sender": "mom@gmail.com",
                    "subject": "Dinner",
                    "excerpt": "See you at 7",
                    "timestamp": "2026-10-14T18:00:00",
                },
                {
                    "id": "api-2",
                    "sender": "mom@gmail.com",
                    "subject": "Photos",
                    "excerpt": "From the trip",
                    "timestamp": "2026-10-16T08:00:00",
                },
            ]
        ),
        encoding="utf-8",
    )
    return AppConfig(
        db_path=str(tmp_path / "test.db"),
        ai_provider="mock",
        ollama_url="http://localhost:11434",
        ollama_model="llava",
        mail_provider="mock",
        gmail_access_token=None,
        gmail_base_url="https://gmail.googleapis.com/gmail/v1",
        chat_provider="mock",
        telegram_bot_token=None,
        telegram_base_url="https://api.telegram.org",
        fixture_path=str(fixture),
        demo_mode=True,
        request_timeout_s=10.0,
        flush_interval_ms=100,
        generation_timeout_s=30.0,
        api_key=api_key,
    )


def test_api_health(tmp_path: Path) -> None:
    """Summary: Verify the health endpoint responds.

    Importance: Deployments probe this endpoint.
    Alternatives: Probe a data endpoint instead.
    """

    client = TestClient(create_app(_build_config(tmp_path)))
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_api_runs_forward_command(tmp_path: Path) -> None:
    """Summary: Verify a forward command runs through the command endpoint.

    Importance: Confirms the HTTP layer wires into the dispatcher and adapters.
    Alternatives: Validate only the CLI command path.
    """

    client = TestClient(create_app(_build_config(tmp_path)))
    response = client.post(
        "/commands",
        json={"text": "Get emails from mom@gmail.com and send to telegram @mychat"},
    )
    assert response.status_code == 200
    assert response.json() == {
        "is_command": True,
        "intent": "forward_fetched_to_chat",
        "result": "✅ Successfully forwarded 2 emails from mom@gmail.com to @mychat",
    }
    logs = client.get("/logs").json()
    assert logs[-1].endswith("Forwarded 2 emails to @mychat")


def test_api_workflow_lifecycle(tmp_path: Path) -> None:
    """Summary: Create, toggle, run, and delete a workflow over HTTP.

    Importance: Covers the full saved-workflow surface.
    Alternatives: Manage workflows through the CLI only.
    """

    client = TestClient(create_app(_build_config(tmp_path)))
    created = client.post(
        "/workflows",
        json={
            "name": "Mom alerts",
            "source_service": "gmail",
            "destination_service": "telegram",
            "filter": "mom@gmail.com",
            "target_chat_id": "@family",
            "transform_with_model": False,
        },
    )
    assert created.status_code == 200
    workflow_id = created.json()["id"]
    assert [item["name"] for item in client.get("/workflows").json()] == ["Mom alerts"]

    stopped = client.post(f"/workflows/{workflow_id}/toggle").json()
    assert stopped["active"] is False
    paused = client.post(f"/workflows/{workflow_id}/run").json()
    assert paused["result"] == "Workflow Mom alerts is stopped. Start it before running."
    client.post(f"/workflows/{workflow_id}/toggle")
    ran = client.post(f"/workflows/{workflow_id}/run").json()
    assert ran["result"] == "✅ Workflow Mom alerts relayed 2 messages to @family"

    assert client.delete(f"/workflows/{workflow_id}").json() == {"deleted": True}
    assert client.get("/workflows").json() == []
    logs = client.get("/logs").json()
    assert logs[0].endswith("Created workflow: Mom alerts")
    assert logs[-1].endswith("Deleted workflow: Mom alerts")


def test_api_workflow_errors(tmp_path: Path) -> None:
    """Summary: Unknown services and workflow ids are rejected.

    Importance: Clients get clear status codes instead of silent no-ops.
    Alternatives: Return 200 with an error field.
    """

    client = TestClient(create_app(_build_config(tmp_path)))
    bad = client.post(
        "/workflows",
        json={"name": "Bad", "source_service": "slack", "destination_service": "telegram"},
    )
    assert bad.status_code == 400
    assert client.post("/workflows/missing/toggle").status_code == 404
    assert client.post("/workflows/missing/run").status_code == 404
    assert client.delete("/workflows/missing").status_code == 404


def test_api_chat_turns(tmp_path: Path) -> None:
    """Summary: Chat turns return the final reply and build the shared history.

    Importance: Confirms the generation path over HTTP, including images.
    Alternatives: Stream replies over server-sent events.
    """

    client = TestClient(create_app(_build_config(tmp_path)))
    image = base64.b64encode(b"png-bytes").decode("ascii")
    response = client.post("/chat", json={"text": "Hello", "image_base64": image})
    assert response.status_code == 200
    reply = response.json()
    assert reply["text"] == "[mock:chat] Hello (image received)"
    assert reply["status"] == "completed"
    assert reply["is_user"] is False

    history = client.get("/conversation").json()
    assert [item["is_user"] for item in history] == [True, False]
    assert history[0]["has_image"] is True

    assert client.post("/chat", json={"text": "Hi", "image_base64": "not base64!"}).status_code == 400
    assert client.post("/chat/cancel").json() == {"cancelled": False}


def test_api_key_required_when_configured(tmp_path: Path) -> None:
    """Summary: Protected endpoints require the configured API key.

    Importance: Prevents unauthenticated automation on shared hosts.
    Alternatives: Leave the API open on localhost.
    """

    client = TestClient(create_app(_build_config(tmp_path, api_key="secret")))
    assert client.get("/workflows").status_code == 401
    assert client.get("/workflows", headers={"X-API-Key": "secret"}).status_code == 200
    assert client.get("/health").status_code == 200
