"""Summary: Conversation state and per-turn routing.

Importance: Decides whether a user turn is an automation command or a generation request
and owns the message history both paths write into.
Alternatives: Let each entrypoint keep its own history.
"""

from __future__ import annotations

import asyncio
import logging

from relaypilot.dispatcher import ERROR_MARK
from relaypilot.generation import GenerationEngine
from relaypilot.models import ChatMessage, WorkflowStatus
from relaypilot.services import CommandService
from relaypilot.streaming import DEFAULT_FLUSH_INTERVAL_MS, StreamState, StreamingPipeline


logger = logging.getLogger(__name__)

BUSY_TEXT = "⚠️ Please wait for the current reply to finish."
EMPTY_TEXT = "⚠️ Please enter a message."
STOPPED_TEXT = "⏹️ Generation stopped."


class Conversation:
    """Summary: Message history plus single-turn exclusivity.

    Importance: Only one turn runs at a time; a new submission during generation is refused
    here so the streaming pipeline never sees overlapping turns. Must be used from one event loop.
    Alternatives: Queue submissions and run them in order.
    """

    def __init__(
        self,
        commands: CommandService,
        engine: GenerationEngine,
        flush_interval_ms: int = DEFAULT_FLUSH_INTERVAL_MS,
        idle_timeout_s: float | None = None,
    ) -> None:
        self._commands = commands
        self._engine = engine
        self._flush_interval_ms = flush_interval_ms
        self._idle_timeout_s = idle_timeout_s
        self._messages: list[ChatMessage] = []
        self._busy = False
        self._turn = 0
        self._pipeline: StreamingPipeline | None = None

    @property
    def busy(self) -> bool:
        return self._busy

    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    async def submit(self, text: str, image: bytes | None = None) -> ChatMessage:
        """Summary: Handle one user turn and return the assistant reply.

        Importance: Commands and generation are mutually exclusive per turn.
        Alternatives: Run commands and generation side by side.
        """

        if self._busy:
            return ChatMessage(BUSY_TEXT, is_user=False, status=WorkflowStatus.ERROR)
        if not text.strip():
            return self._append(ChatMessage(EMPTY_TEXT, is_user=False))
        self._append(ChatMessage(text, is_user=True, image=image))
        self._busy = True
        self._turn += 1
        try:
            if self._commands.is_command(text):
                return await self._run_command(text)
            return await self._run_generation(self._turn, text, image)
        finally:
            self._busy = False
            self._pipeline = None

    def cancel(self) -> bool:
        """Summary: Cancel the running generation, if any.

        Importance: Bumps the turn counter so any flush still in flight is ignored.
        Alternatives: Let the generation finish in the background.
        """

        if self._pipeline is None:
            return False
        self._turn += 1
        self._pipeline.cancel()
        return True

    async def _run_command(self, text: str) -> ChatMessage:
        try:
            outcome = await asyncio.to_thread(self._commands.handle, text)
            reply = outcome.result
        except Exception as exc:
            logger.exception("Command turn failed.")
            reply = f"{ERROR_MARK} Workflow error: {exc}"
        status = WorkflowStatus.ERROR if reply.startswith(ERROR_MARK) else WorkflowStatus.COMPLETED
        return self._append(ChatMessage(reply, is_user=False, status=status))

    async def _run_generation(self, turn: int, text: str, image: bytes | None) -> ChatMessage:
        index = len(self._messages)
        self._append(ChatMessage("", is_user=False, status=WorkflowStatus.PROCESSING))

        def publish(snapshot: str) -> None:
            if turn != self._turn:
                return
            self._messages[index] = ChatMessage(
                snapshot, is_user=False, status=WorkflowStatus.PROCESSING
            )

        pipeline = StreamingPipeline(
            publish,
            flush_interval_ms=self._flush_interval_ms,
            idle_timeout_s=self._idle_timeout_s,
        )
        self._pipeline = pipeline
        result = await pipeline.run(self._engine.create_session, text, image)
        current = self._messages[index].text
        if result.state is StreamState.FAILED:
            final = ChatMessage(result.text, is_user=False, status=WorkflowStatus.ERROR)
        elif result.state is StreamState.CANCELLED:
            final = ChatMessage(current or STOPPED_TEXT, is_user=False, status=WorkflowStatus.COMPLETED)
        else:
            final = ChatMessage(current, is_user=False, status=WorkflowStatus.COMPLETED)
        self._messages[index] = final
        return final

    def _append(self, message: ChatMessage) -> ChatMessage:
        self._messages.append(message)
        return message
