"""Summary: Command classification helpers.

Importance: Decides whether a chat line is an automation request and which one.
Alternatives: Use an LLM-based intent classifier for higher recall.
"""

from __future__ import annotations

from enum import Enum


class CommandIntent(Enum):
    """Summary: Closed set of automation command kinds.

    Importance: Lets the dispatcher branch on an exhaustive set of values.
    Alternatives: Pass around free-form intent strings.
    """

    FETCH_MESSAGES = "fetch_messages"
    SEND_MESSAGE = "send_message"
    SEND_TO_CHAT = "send_to_chat"
    FORWARD_FETCHED_TO_CHAT = "forward_fetched_to_chat"
    UNRECOGNIZED = "unrecognized"


# Users rely on these phrases; changing them breaks existing commands.
TRIGGER_PHRASES: tuple[str, ...] = (
    "send email",
    "fetch email",
    "send telegram",
    "get telegram",
    "forward to",
    "summarize email",
    "create workflow",
    "setup workflow",
    "gmail to telegram",
    "telegram to gmail",
    "email from",
    "emails from",
    "send to telegram",
    "get emails",
    "get email",
    "fetch emails",
    "show emails",
    "show email",
    "find emails",
    "find email",
    "retrieve emails",
    "retrieve email",
)

SENDER_TRIGGERS = ("email from", "emails from")
CHAT_TRIGGERS = ("telegram",)
FETCH_TRIGGERS = ("fetch email", "get email")
SEND_TRIGGERS = ("send email",)
SEND_TO_CHAT_TRIGGERS = ("send telegram", "send to telegram")


def classify(text: str) -> bool:
    """Summary: Report whether the text contains any automation trigger phrase.

    Importance: Gates the command path before any extraction happens.
    Alternatives: Require an explicit prefix such as a slash command.
    """

    lowered = text.lower()
    return _contains_any(lowered, TRIGGER_PHRASES)


def route(text: str) -> CommandIntent:
    """Summary: Choose exactly one intent using a fixed priority order.

    Importance: Overlapping phrases resolve the same way every time; a forward request
    wins over plain fetch or send whenever both of its triggers appear.
    Alternatives: Score every intent and pick the highest.
    """

    lowered = text.lower()
    if _contains_any(lowered, SENDER_TRIGGERS) and _contains_any(lowered, CHAT_TRIGGERS):
        return CommandIntent.FORWARD_FETCHED_TO_CHAT
    if _contains_any(lowered, FETCH_TRIGGERS):
        return CommandIntent.FETCH_MESSAGES
    if _contains_any(lowered, SEND_TRIGGERS):
        return CommandIntent.SEND_MESSAGE
    if _contains_any(lowered, SEND_TO_CHAT_TRIGGERS):
        return CommandIntent.SEND_TO_CHAT
    return CommandIntent.UNRECOGNIZED


def _contains_any(text: str, phrases: tuple[str, ...]) -> bool:
    return any(phrase in text for phrase in phrases)
