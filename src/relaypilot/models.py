"""Summary: Domain model dataclasses for RelayPilot.

Importance: Defines the records shared by adapters, the dispatcher, and the registry.
Alternatives: Use Pydantic models or pass provider payloads around as dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class MessageRecord:
    """Summary: A fetched unit of conversation from a messaging service.

    Importance: Gives the dispatcher one shape to summarize and forward regardless of backend.
    Alternatives: Keep Gmail and Telegram payloads in their native formats.
    """

    id: str
    sender: str
    subject: str
    excerpt: str
    timestamp: datetime
    full_body: str | None = None


@dataclass(frozen=True)
class WorkflowDefinition:
    """Summary: A saved automation between two messaging services.

    Importance: Lets users keep recurring relays instead of retyping commands.
    Alternatives: Store workflows as raw command strings and replay them.
    """

    id: str
    name: str
    source_service: str
    destination_service: str
    filter: str = ""
    active: bool = True
    transform_with_model: bool = True
    target_recipient: str = ""
    target_chat_id: str = ""


@dataclass(frozen=True)
class ActivityLogEntry:
    """Summary: One line of the workflow activity log.

    Importance: Gives users a short audit trail of what automations did.
    Alternatives: Rely on application logs only.
    """

    timestamp: str
    message: str

    def format(self) -> str:
        return f"[{self.timestamp}] {self.message}"


class WorkflowStatus(Enum):
    """Summary: Progress marker attached to conversation replies."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class ChatMessage:
    """Summary: A single entry in the conversation history.

    Importance: Streaming flushes and command results both land here.
    Alternatives: Keep the history as a list of plain strings.
    """

    text: str
    is_user: bool
    timestamp: datetime = field(default_factory=datetime.now)
    image: bytes | None = None
    status: WorkflowStatus | None = None
