"""Summary: Message service adapter interface and implementations.

Importance: Hides Gmail and Telegram transport details behind one fetch/send contract.
Alternatives: Call provider SDKs directly from the dispatcher.
"""

from __future__ import annotations

import base64
import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from email.message import EmailMessage
from pathlib import Path
from typing import Any
import http.client
import urllib.error
import urllib.parse
import urllib.request

from relaypilot.models import MessageRecord


logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_SENDER = "demo@example.com"


class AdapterError(Exception):
    """Summary: Base class for adapter failures."""


class ServiceUnavailable(AdapterError):
    """Summary: Raised when a service is not configured or not authenticated.

    Importance: Lets callers tell a missing setup step apart from a transport error.
    Alternatives: Return None from adapter calls.
    """


class BackendFailure(AdapterError):
    """Summary: Raised when the remote API or the transport fails."""


class MessageAdapter(ABC):
    """Summary: Abstract fetch/send contract over a messaging backend.

    Importance: Lets the dispatcher chain services without knowing their protocols.
    Alternatives: Give each service its own bespoke interface.
    """

    service_name: str = "service"

    @abstractmethod
    def fetch(self, sender: str | None, limit: int) -> list[MessageRecord]:
        """Summary: Fetch up to `limit` records, newest first, optionally filtered by sender.

        Importance: Feeds fetch and forward commands.
        Alternatives: Page through results with a cursor.
        """

    @abstractmethod
    def send(self, recipient: str, subject: str | None, body: str) -> str:
        """Summary: Deliver a message and return a confirmation string.

        Importance: Drives send and forward commands.
        Alternatives: Return provider response objects.
        """


class RemoteAdapter(MessageAdapter):
    """Summary: Shared fetch fallback handling for network-backed adapters.

    Importance: Keeps the demo-mode policy identical for every remote service.
    Alternatives: Duplicate the try/except in every adapter.
    """

    def __init__(self, timeout_s: float, demo_mode: bool) -> None:
        self._timeout_s = timeout_s
        self._demo_mode = demo_mode

    def fetch(self, sender: str | None, limit: int) -> list[MessageRecord]:
        """Summary: Fetch live records, degrading to placeholders in demo mode.

        Importance: Demo mode keeps the command flow working when the backend is down;
        outside demo mode the failure reaches the caller.
        Alternatives: Always surface backend failures.
        """

        if limit <= 0:
            return []
        try:
            records = self._fetch_remote(sender, limit)
        except AdapterError as exc:
            if not self._demo_mode:
                raise
            logger.warning(
                "%s fetch failed (%s); operating in fallback mode.", self.service_name, exc
            )
            return fallback_records(sender, limit)
        return records[:limit]

    @abstractmethod
    def _fetch_remote(self, sender: str | None, limit: int) -> list[MessageRecord]:
        """Summary: Perform the live fetch for the backend."""


class GmailAdapter(RemoteAdapter):
    """Summary: Reads and sends email through the Gmail REST API.

    Importance: Provides the mail side of every cross-service command.
    Alternatives: Use IMAP/SMTP or the google-api-python-client SDK.
    """

    service_name = "gmail"

    def __init__(
        self,
        access_token: str,
        base_url: str,
        timeout_s: float = 10.0,
        demo_mode: bool = False,
    ) -> None:
        super().__init__(timeout_s=timeout_s, demo_mode=demo_mode)
        self._access_token = access_token
        self._base_url = base_url.rstrip("/")

    def _fetch_remote(self, sender: str | None, limit: int) -> list[MessageRecord]:
        self._require_token()
        query = f"from:{sender}" if sender else "in:inbox"
        params = urllib.parse.urlencode({"q": query, "maxResults": limit})
        payload = self._get(f"{self._base_url}/users/me/messages?{params}")
        records: list[MessageRecord] = []
        for item in payload.get("messages", []) or []:
            message_id = item.get("id")
            if not message_id:
                continue
            detail = self._get(f"{self._base_url}/users/me/messages/{message_id}?format=full")
            records.append(_parse_gmail_message(detail))
        records.sort(key=lambda record: record.timestamp, reverse=True)
        return records

    def send(self, recipient: str, subject: str | None, body: str) -> str:
        """Summary: Send an email via `users/me/messages/send`.

        Importance: Failures always propagate; this adapter never reports simulated success.
        Alternatives: Queue messages and send them in the background.
        """

        self._require_token()
        message = EmailMessage()
        message["To"] = recipient
        message["Subject"] = subject or ""
        message.set_content(body)
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("utf-8")
        request = urllib.request.Request(
            f"{self._base_url}/users/me/messages/send",
            data=json.dumps({"raw": raw}).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self._access_token}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        payload = _request_json(request, self._timeout_s, "Gmail API")
        logger.info("Sent email to %s.", recipient)
        return f"Email sent to {recipient} (id {payload.get('id', 'unknown')})"

    def _get(self, url: str) -> dict[str, Any]:
        request = urllib.request.Request(
            url,
            headers={"Authorization": f"Bearer {self._access_token}"},
            method="GET",
        )
        return _request_json(request, self._timeout_s, "Gmail API")

    def _require_token(self) -> None:
        if not self._access_token:
            raise ServiceUnavailable("Gmail access token missing. Please sign in first.")


class TelegramAdapter(RemoteAdapter):
    """Summary: Sends and reads messages through the Telegram Bot API.

    Importance: Provides the chat side of send and forward commands.
    Alternatives: Use python-telegram-bot or a webhook receiver.
    """

    service_name = "telegram"

    def __init__(
        self,
        bot_token: str,
        base_url: str = "https://api.telegram.org",
        timeout_s: float = 10.0,
        demo_mode: bool = False,
    ) -> None:
        super().__init__(timeout_s=timeout_s, demo_mode=demo_mode)
        self._bot_token = bot_token
        self._base_url = base_url.rstrip("/")

    def _fetch_remote(self, sender: str | None, limit: int) -> list[MessageRecord]:
        self._require_token()
        payload = self._call("getUpdates", None)
        records = [
            record
            for record in (_parse_telegram_update(item) for item in payload.get("result", []))
            if record is not None and _sender_matches(record, sender)
        ]
        records.sort(key=lambda record: record.timestamp, reverse=True)
        return records

    def send(self, recipient: str, subject: str | None, body: str) -> str:
        """Summary: Post a Markdown message to a chat.

        Importance: Failures always propagate so forwards never claim false delivery.
        Alternatives: Retry silently and report success.
        """

        self._require_token()
        text = f"*{subject}*\n\n{body}" if subject else body
        payload = self._call(
            "sendMessage",
            {"chat_id": recipient, "text": text, "parse_mode": "Markdown"},
        )
        if not payload.get("ok"):
            raise BackendFailure(
                f"Telegram API error: {payload.get('description', 'unknown error')}"
            )
        logger.info("Sent telegram message to %s.", recipient)
        return "Message sent successfully to Telegram"

    def _call(self, method: str, body: dict[str, Any] | None) -> dict[str, Any]:
        url = f"{self._base_url}/bot{self._bot_token}/{method}"
        if body is None:
            request = urllib.request.Request(url, method="GET")
        else:
            request = urllib.request.Request(
                url,
                data=json.dumps(body).encode("utf-8"),
                headers={"Content-Type": "application/json"},
                method="POST",
            )
        return _request_json(request, self._timeout_s, "Telegram API")

    def _require_token(self) -> None:
        if not self._bot_token:
            raise ServiceUnavailable("Telegram bot token missing. Please configure bot token first.")


@dataclass(frozen=True)
class SentMessage:
    """Summary: A message captured by the fixture adapter's outbox."""

    recipient: str
    subject: str | None
    body: str


class FixtureAdapter(MessageAdapter):
    """Summary: Serves records from a JSON fixture and records sends in memory.

    Importance: Supports offline demos and tests; its sends are always simulated.
    Alternatives: Point real adapters at a local mock server.
    """

    def __init__(self, service_name: str, fixture_path: Path | None = None) -> None:
        self.service_name = service_name
        self._fixture_path = fixture_path
        self._lock = threading.Lock()
        self._outbox: list[SentMessage] = []

    def fetch(self, sender: str | None, limit: int) -> list[MessageRecord]:
        """Summary: Load fixture records filtered by sender substring.

        Importance: Mirrors the live adapters' ordering and limit rules.
        Alternatives: Return every fixture record unfiltered.
        """

        if limit <= 0 or self._fixture_path is None or not self._fixture_path.exists():
            return []
        data = json.loads(self._fixture_path.read_text(encoding="utf-8"))
        records = [
            MessageRecord(
                id=str(item["id"]),
                sender=item["sender"],
                subject=item.get("subject", ""),
                excerpt=item.get("excerpt", ""),
                timestamp=datetime.fromisoformat(item["timestamp"]),
                full_body=item.get("full_body"),
            )
            for item in data
        ]
        matching = [record for record in records if _sender_matches(record, sender)]
        matching.sort(key=lambda record: record.timestamp, reverse=True)
        return matching[:limit]

    def send(self, recipient: str, subject: str | None, body: str) -> str:
        with self._lock:
            self._outbox.append(SentMessage(recipient=recipient, subject=subject, body=body))
        logger.info("Simulated %s delivery to %s.", self.service_name, recipient)
        return f"Simulated {self.service_name} delivery to {recipient} (demo mode)"

    @property
    def outbox(self) -> tuple[SentMessage, ...]:
        with self._lock:
            return tuple(self._outbox)


@dataclass(frozen=True)
class AdapterSet:
    """Summary: The adapters available to a command evaluation.

    Importance: A `None` entry means the service is not configured.
    Alternatives: Look adapters up from a global registry.
    """

    mail: MessageAdapter | None = None
    chat: MessageAdapter | None = None


def fallback_records(sender: str | None, limit: int, now: datetime | None = None) -> list[MessageRecord]:
    """Summary: Build deterministic placeholder records tagged with the sender filter.

    Importance: Keeps fetch and forward commands demonstrable when a backend fails in demo mode.
    Alternatives: Return an empty list on failure.
    """

    current = now or datetime.now()
    tagged_sender = sender or DEFAULT_FALLBACK_SENDER
    records = [
        MessageRecord(
            id="demo_1",
            sender=tagged_sender,
            subject="Workflow command recognized",
            excerpt=(
                "Your command worked. This is placeholder data because the live service "
                "could not be reached."
            ),
            timestamp=current,
        ),
        MessageRecord(
            id="demo_2",
            sender=tagged_sender,
            subject="Ready for live integration",
            excerpt=(
                f"Configure credentials to see real messages from {sender or 'your inbox'}."
            ),
            timestamp=current - timedelta(hours=1),
        ),
    ]
    return records[: max(limit, 0)]


def _request_json(request: urllib.request.Request, timeout_s: float, label: str) -> dict[str, Any]:
    """Summary: Execute an HTTP request and decode the JSON response.

    Importance: Converts every transport failure into a BackendFailure.
    Alternatives: Use a third-party HTTP client.
    """

    try:
        with urllib.request.urlopen(request, timeout=timeout_s) as response:
            raw = response.read()
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="ignore")
        if exc.code in (401, 403):
            raise ServiceUnavailable(f"{label} rejected credentials: {error_body or exc.reason}") from exc
        raise BackendFailure(f"{label} request failed: {error_body or exc.reason}") from exc
    except (OSError, http.client.HTTPException) as exc:
        raise BackendFailure(f"{label} request failed: {exc}") from exc
    try:
        return json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        raise BackendFailure(f"{label} returned invalid JSON") from exc


def _parse_gmail_message(message: dict[str, Any]) -> MessageRecord:
    """Summary: Normalize a Gmail message payload into a MessageRecord.

    Importance: Gmail returns headers as a list and dates as epoch milliseconds.
    Alternatives: Keep the raw payload and parse lazily.
    """

    payload = message.get("payload") or {}
    headers = {
        header.get("name"): header.get("value")
        for header in payload.get("headers", [])
        if header.get("name") and header.get("value")
    }
    internal_date = message.get("internalDate")
    try:
        timestamp = datetime.fromtimestamp(int(internal_date) / 1000)
    except (TypeError, ValueError):
        timestamp = datetime.now()
    body = _extract_gmail_body(payload)
    return MessageRecord(
        id=message.get("id", ""),
        sender=headers.get("From", ""),
        subject=headers.get("Subject", ""),
        excerpt=message.get("snippet") or body[:200].replace("\n", " "),
        timestamp=timestamp,
        full_body=body or None,
    )


def _extract_gmail_body(payload: dict[str, Any]) -> str:
    parts = [payload]
    plain: list[str] = []
    while parts:
        part = parts.pop(0)
        parts.extend(part.get("parts", []) or [])
        data = (part.get("body") or {}).get("data")
        if data and part.get("mimeType") == "text/plain":
            padded = data + "=" * (-len(data) % 4)
            plain.append(base64.urlsafe_b64decode(padded).decode("utf-8", errors="ignore"))
    return "\n".join(item.strip() for item in plain if item.strip())


def _parse_telegram_update(update: dict[str, Any]) -> MessageRecord | None:
    """Summary: Convert a Telegram update into a MessageRecord.

    Importance: Only text messages are relayed; other update kinds are skipped.
    Alternatives: Support media and edited messages too.
    """

    message = update.get("message") or update.get("channel_post")
    if not message or "text" not in message:
        return None
    author = message.get("from") or {}
    chat = message.get("chat") or {}
    username = author.get("username") or chat.get("username")
    sender = f"@{username}" if username else author.get("first_name", "")
    text = message["text"]
    return MessageRecord(
        id=str(message.get("message_id", update.get("update_id", ""))),
        sender=sender,
        subject=chat.get("title") or chat.get("username") or str(chat.get("id", "")),
        excerpt=text[:200].replace("\n", " "),
        timestamp=datetime.fromtimestamp(int(message.get("date", 0))),
        full_body=text,
    )


def _sender_matches(record: MessageRecord, sender: str | None) -> bool:
    if not sender:
        return True
    return sender.lower().lstrip("@") in record.sender.lower()
