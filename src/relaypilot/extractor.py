"""Summary: Parameter extraction for automation commands.

Importance: Turns free-form command text into the fields the dispatcher needs.
Alternatives: Use a grammar-based parser or an LLM with structured output.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass

from relaypilot.classifier import CommandIntent


SENDER_PATTERN = re.compile(r"\bfrom\s+([\w@.\-]+)", re.IGNORECASE)
RECIPIENT_PATTERN = re.compile(r"\bto\s+([\w@.\-]+)", re.IGNORECASE)
SUBJECT_PATTERN = re.compile(r"\bsubject\s+[\"']([^\"']+)[\"']", re.IGNORECASE)
BODY_PATTERN = re.compile(r"\bmessage\s+[\"']([^\"']+)[\"']", re.IGNORECASE)
CHAT_TO_PATTERN = re.compile(r"\bto\s+(?!telegram\b)(@?[\w\-]+)", re.IGNORECASE)
CHAT_TELEGRAM_PATTERN = re.compile(
    r"\btelegram\s+(?:chat\s+)?(?!to\b)(@?[\w\-]+)", re.IGNORECASE
)


@dataclass(frozen=True)
class ExtractedParameters:
    """Summary: Optional fields pulled out of a command.

    Importance: Missing fields are normal and are reported by the dispatcher as usage hints.
    Alternatives: Raise on missing fields during extraction.
    """

    sender: str | None = None
    recipient: str | None = None
    subject: str | None = None
    body: str | None = None
    chat_target: str | None = None

    def as_dict(self) -> dict[str, str | None]:
        return asdict(self)


def extract(text: str, kind: CommandIntent) -> ExtractedParameters:
    """Summary: Extract the fields relevant to a command kind.

    Importance: Keeps pattern matching pure and independent of adapter state.
    Alternatives: Extract every field for every command and let callers ignore extras.
    """

    if kind is CommandIntent.FETCH_MESSAGES:
        return ExtractedParameters(sender=_first(SENDER_PATTERN, text))
    if kind is CommandIntent.SEND_MESSAGE:
        return ExtractedParameters(
            recipient=_first(RECIPIENT_PATTERN, text),
            subject=_first(SUBJECT_PATTERN, text),
            body=_first(BODY_PATTERN, text),
        )
    if kind is CommandIntent.SEND_TO_CHAT:
        return ExtractedParameters(
            chat_target=_first(CHAT_TO_PATTERN, text) or _first(CHAT_TELEGRAM_PATTERN, text),
            body=_first(BODY_PATTERN, text),
        )
    if kind is CommandIntent.FORWARD_FETCHED_TO_CHAT:
        return ExtractedParameters(
            sender=_first(SENDER_PATTERN, text),
            chat_target=_first(CHAT_TELEGRAM_PATTERN, text) or _first(CHAT_TO_PATTERN, text),
        )
    return ExtractedParameters()


def _first(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1) if match else None
