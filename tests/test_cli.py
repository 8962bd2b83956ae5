"""Summary: Tests for the command-line interface.

Importance: The CLI is the primary local entry point.
Alternatives: Exercise the CLI manually.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from relaypilot.cli import build_parser, run_cli


def _prepare_workspace(root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (root / "config").mkdir()
    (root / "config" / "defaults.json").write_text(
        json.dumps(
            {
                "db_path": "cli.db",
                "ai_provider": "mock",
                "ollama_url": "http://localhost:11434",
                "ollama_model": "llava",
                "mail_provider": "mock",
                "gmail_access_token": "",
                "gmail_base_url": "https://gmail.googleapis.com/gmail/v1",
                "chat_provider": "mock",
                "telegram_bot_token": "",
                "telegram_base_url": "https://api.telegram.org",
                "fixture_path": "data/mock_messages.json",
                "demo_mode": "true",
                "request_timeout_s": "10",
                "flush_interval_ms": "100",
                "generation_timeout_s": "60",
                "api_key": "",
            }
        ),
        encoding="utf-8",
    )
    (root / "data").mkdir()
    (root / "data" / "mock_messages.json").write_text(
        json.dumps(
            [
                {
                    "id": "cli-1",
                    "sender": "mom@gmail.com",
                    "subject": "Dinner",
                    "excerpt": "See you at 7",
                    "timestamp": "2026-10-14T18:00:00",
                }
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.chdir(root)
    for key in (
        "RELAYPILOT_DB_PATH",
        "RELAYPILOT_AI_PROVIDER",
        "RELAYPILOT_MAIL_PROVIDER",
        "RELAYPILOT_CHAT_PROVIDER",
        "RELAYPILOT_FIXTURE_PATH",
        "RELAYPILOT_FLUSH_INTERVAL_MS",
        "RELAYPILOT_GENERATION_TIMEOUT_S",
    ):
        monkeypatch.delenv(key, raising=False)


def _run(monkeypatch: pytest.MonkeyPatch, *args: str) -> None:
    monkeypatch.setattr(sys, "argv", ["relaypilot", *args])
    run_cli()


def test_parser_rejects_unknown_service() -> None:
    """Summary: Workflow services are limited to the supported pair.

    Importance: Bad definitions are caught before they are saved.
    Alternatives: Validate services at run time.
    """

    parser = build_parser()
    args = parser.parse_args(["create-workflow", "Relay", "gmail", "telegram", "--chat-id", "@x"])
    assert args.chat_id == "@x"
    with pytest.raises(SystemExit):
        parser.parse_args(["create-workflow", "Relay", "gmail", "slack"])


def test_cli_workflow_commands_persist(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Summary: Workflows created in one invocation are listed and run in the next.

    Importance: Each CLI call is a separate process, so state lives in SQLite.
    Alternatives: Keep a long-running CLI session.
    """

    _prepare_workspace(tmp_path, monkeypatch)
    _run(
        monkeypatch,
        "create-workflow",
        "Mom alerts",
        "gmail",
        "telegram",
        "--filter",
        "mom@gmail.com",
        "--chat-id",
        "@family",
        "--no-transform",
    )
    assert "(Mom alerts)." in capsys.readouterr().out

    _run(monkeypatch, "list-workflows")
    listing = capsys.readouterr().out
    assert "Mom alerts (gmail -> telegram, active)" in listing
    workflow_id = listing.split(":", 1)[0]

    _run(monkeypatch, "run-workflow", workflow_id)
    assert "✅ Workflow Mom alerts relayed 1 message to @family" in capsys.readouterr().out

    _run(monkeypatch, "logs")
    assert "Created workflow: Mom alerts" in capsys.readouterr().out


def test_cli_command_and_chat(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Summary: The CLI runs automation commands and streams chat replies.

    Importance: Covers both conversation paths from the terminal.
    Alternatives: Only expose commands through the API.
    """

    _prepare_workspace(tmp_path, monkeypatch)
    _run(monkeypatch, "command", "Fetch emails from mom@gmail.com")
    assert "Found 1 email:" in capsys.readouterr().out

    _run(monkeypatch, "chat", "Hello there")
    assert "[mock:chat] Hello there" in capsys.readouterr().out
