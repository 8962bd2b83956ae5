"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from relaypilot.adapters import AdapterSet, FixtureAdapter, GmailAdapter, MessageAdapter, TelegramAdapter
from relaypilot.config import AppConfig
from relaypilot.conversation import Conversation
from relaypilot.dispatcher import CommandDispatcher
from relaypilot.generation import GenerationEngine, GenerationEngineFactory
from relaypilot.registry import WorkflowRegistry
from relaypilot.services import CommandService, WorkflowRunner
from relaypilot.storage.sqlite_store import WorkflowStore


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of core services for RelayPilot.

    Importance: Simplifies passing dependencies to UI or API layers.
    Alternatives: Use a dependency injection container.
    """

    config: AppConfig
    adapters: AdapterSet
    registry: WorkflowRegistry
    commands: CommandService
    runner: WorkflowRunner
    engine: GenerationEngine

    def new_conversation(self) -> Conversation:
        """Summary: Create a conversation bound to these services.

        Importance: Each chat surface keeps its own history and turn state.
        Alternatives: Share one global conversation.
        """

        return Conversation(
            commands=self.commands,
            engine=self.engine,
            flush_interval_ms=self.config.flush_interval_ms,
            idle_timeout_s=self.config.generation_timeout_s,
        )


def build_adapters(config: AppConfig) -> AdapterSet:
    """Summary: Build the mail and chat adapters from configuration.

    Importance: A live provider without credentials is left unconfigured so commands
    report the missing setup step.
    Alternatives: Fail at startup when credentials are missing.
    """

    return AdapterSet(mail=_build_mail_adapter(config), chat=_build_chat_adapter(config))


def _build_mail_adapter(config: AppConfig) -> MessageAdapter | None:
    if config.mail_provider == "gmail":
        if not config.gmail_access_token:
            return None
        return GmailAdapter(
            access_token=config.gmail_access_token,
            base_url=config.gmail_base_url,
            timeout_s=config.request_timeout_s,
            demo_mode=config.demo_mode,
        )
    return FixtureAdapter("gmail", Path(config.fixture_path))


def _build_chat_adapter(config: AppConfig) -> MessageAdapter | None:
    if config.chat_provider == "telegram":
        if not config.telegram_bot_token:
            return None
        return TelegramAdapter(
            bot_token=config.telegram_bot_token,
            base_url=config.telegram_base_url,
            timeout_s=config.request_timeout_s,
            demo_mode=config.demo_mode,
        )
    return FixtureAdapter("telegram")


def build_services(config: AppConfig, adapters: AdapterSet | None = None) -> AppServices:
    """Summary: Build core services from configuration.

    Importance: Provides a single construction path for the application.
    Alternatives: Instantiate services directly within the CLI entrypoint.
    """

    store = WorkflowStore(config.db_path)
    store.initialize()
    registry = WorkflowRegistry(store=store)
    resolved = adapters if adapters is not None else build_adapters(config)
    engine = GenerationEngineFactory(config).build()
    commands = CommandService(dispatcher=CommandDispatcher(registry), adapters=resolved)
    runner = WorkflowRunner(registry=registry, adapters=resolved, engine=engine)
    return AppServices(
        config=config,
        adapters=resolved,
        registry=registry,
        commands=commands,
        runner=runner,
        engine=engine,
    )
