"""Summary: Application configuration for RelayPilot.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass


TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for adapters, generation, and storage.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.
    """

    db_path: str
    ai_provider: str
    ollama_url: str
    ollama_model: str
    mail_provider: str
    gmail_access_token: str | None
    gmail_base_url: str
    chat_provider: str
    telegram_bot_token: str | None
    telegram_base_url: str
    fixture_path: str
    demo_mode: bool
    request_timeout_s: float
    flush_interval_ms: int
    generation_timeout_s: float
    api_key: str

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("RELAYPILOT_DB_PATH", defaults["db_path"]),
            ai_provider=os.getenv("RELAYPILOT_AI_PROVIDER", defaults["ai_provider"]),
            ollama_url=os.getenv("OLLAMA_URL", defaults["ollama_url"]),
            ollama_model=os.getenv("OLLAMA_MODEL", defaults["ollama_model"]),
            mail_provider=os.getenv("RELAYPILOT_MAIL_PROVIDER", defaults["mail_provider"]),
            gmail_access_token=os.getenv("GMAIL_ACCESS_TOKEN")
            or defaults["gmail_access_token"]
            or None,
            gmail_base_url=os.getenv("GMAIL_BASE_URL", defaults["gmail_base_url"]),
            chat_provider=os.getenv("RELAYPILOT_CHAT_PROVIDER", defaults["chat_provider"]),
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN")
            or defaults["telegram_bot_token"]
            or None,
            telegram_base_url=os.getenv("TELEGRAM_BASE_URL", defaults["telegram_base_url"]),
            fixture_path=os.getenv("RELAYPILOT_FIXTURE_PATH", defaults["fixture_path"]),
            demo_mode=parse_bool(os.getenv("RELAYPILOT_DEMO_MODE", defaults["demo_mode"])),
            request_timeout_s=float(
                os.getenv("RELAYPILOT_REQUEST_TIMEOUT_S", defaults["request_timeout_s"])
            ),
            flush_interval_ms=int(
                os.getenv("RELAYPILOT_FLUSH_INTERVAL_MS", defaults["flush_interval_ms"])
            ),
            generation_timeout_s=float(
                os.getenv("RELAYPILOT_GENERATION_TIMEOUT_S", defaults["generation_timeout_s"])
            ),
            api_key=os.getenv("RELAYPILOT_API_KEY", defaults["api_key"]),
        )


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets like bot tokens out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def parse_bool(value: str | bool) -> bool:
    if isinstance(value, bool):
        return value
    return value.strip().lower() in TRUE_VALUES
