"""Summary: Core application services for RelayPilot.

Importance: Orchestrates command evaluation and saved workflow execution.
Alternatives: Build a full service layer with a dependency injection framework.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from relaypilot.adapters import AdapterSet, MessageAdapter
from relaypilot.classifier import CommandIntent, classify, route
from relaypilot.dispatcher import (
    ERROR_MARK,
    FORWARD_LIMIT,
    SUCCESS_MARK,
    CommandDispatcher,
    no_messages_found,
    render_forward,
)
from relaypilot.extractor import extract
from relaypilot.generation import GenerationEngine
from relaypilot.models import MessageRecord, WorkflowDefinition
from relaypilot.registry import WorkflowRegistry


logger = logging.getLogger(__name__)

MAIL_SERVICE = "gmail"
CHAT_SERVICE = "telegram"
SERVICES = (MAIL_SERVICE, CHAT_SERVICE)


@dataclass(frozen=True)
class CommandOutcome:
    """Summary: Result of evaluating one command line.

    Importance: Keeps the chosen intent next to the reply for API clients.
    Alternatives: Return the reply string only.
    """

    intent: CommandIntent
    result: str


@dataclass(frozen=True)
class CommandService:
    """Summary: Runs the classify, extract, dispatch chain for a line of text.

    Importance: Single entry point for command turns from the CLI, API, and chat.
    Alternatives: Call the classifier and dispatcher separately in each entrypoint.
    """

    dispatcher: CommandDispatcher
    adapters: AdapterSet

    def is_command(self, text: str) -> bool:
        return classify(text)

    def handle(self, text: str) -> CommandOutcome:
        """Summary: Evaluate a command and return its reply.

        Importance: Routing and extraction are pure; only dispatch touches adapters.
        Alternatives: Let the dispatcher parse raw text itself.
        """

        intent = route(text)
        params = extract(text, intent)
        result = self.dispatcher.dispatch(intent, params, self.adapters)
        logger.info("Handled %s command.", intent.value)
        return CommandOutcome(intent=intent, result=result)


@dataclass(frozen=True)
class WorkflowRunner:
    """Summary: Executes saved workflow definitions on demand.

    Importance: Turns registry entries into real relays, optionally summarizing content
    with the generation engine before delivery.
    Alternatives: Schedule workflows with a background job runner.
    """

    registry: WorkflowRegistry
    adapters: AdapterSet
    engine: GenerationEngine

    def run(self, workflow_id: str) -> str:
        """Summary: Run one workflow and return a reply string.

        Importance: Uses the same success and error markers as chat commands.
        Alternatives: Raise exceptions for the caller to format.
        """

        workflow = self.registry.get(workflow_id)
        if workflow is None:
            return f"{ERROR_MARK} Workflow {workflow_id} not found"
        if not workflow.active:
            return f"Workflow {workflow.name} is stopped. Start it before running."
        source = self._adapter_for(workflow.source_service)
        destination = self._adapter_for(workflow.destination_service)
        if source is None or destination is None:
            return f"{ERROR_MARK} Workflow {workflow.name} needs both services configured"
        target = self._target_for(workflow)
        if not target:
            return f"{ERROR_MARK} Workflow {workflow.name} has no destination target"
        sender = workflow.filter or None
        try:
            records = source.fetch(sender, limit=FORWARD_LIMIT)
            if not records:
                return no_messages_found(sender)
            for record in records:
                destination.send(
                    target,
                    self._subject_for(workflow, record),
                    self._body_for(workflow, record),
                )
        except Exception as exc:
            logger.exception("Workflow %s failed.", workflow.name)
            self.registry.append_log(f"Error in workflow {workflow.name}: {exc}")
            return f"{ERROR_MARK} Error running workflow {workflow.name}: {exc}"
        noun = "message" if len(records) == 1 else "messages"
        summary = f"Workflow {workflow.name} relayed {len(records)} {noun} to {target}"
        self.registry.append_log(summary)
        return f"{SUCCESS_MARK} {summary}"

    def _adapter_for(self, service: str) -> MessageAdapter | None:
        if service == MAIL_SERVICE:
            return self.adapters.mail
        if service == CHAT_SERVICE:
            return self.adapters.chat
        return None

    def _target_for(self, workflow: WorkflowDefinition) -> str:
        if workflow.destination_service == CHAT_SERVICE:
            return workflow.target_chat_id
        return workflow.target_recipient

    def _subject_for(self, workflow: WorkflowDefinition, record: MessageRecord) -> str | None:
        if workflow.destination_service == CHAT_SERVICE:
            return None
        return f"Fwd: {record.subject}" if record.subject else f"Relayed by {workflow.name}"

    def _body_for(self, workflow: WorkflowDefinition, record: MessageRecord) -> str:
        preview = None
        if workflow.transform_with_model:
            prompt = (
                "Summarize this message in two sentences.\n\n"
                f"From: {record.sender}\n"
                f"Subject: {record.subject}\n"
                f"Body: {record.full_body or record.excerpt}\n"
            )
            preview, latency_ms = self.engine.generate_text(prompt, purpose="summary")
            logger.info("Summarized message %s in %s ms.", record.id, latency_ms)
        title = "New Email Alert" if workflow.source_service == MAIL_SERVICE else "New Telegram Message"
        return render_forward(record, preview=preview, title=title)
