"""Summary: Tests for command dispatch across mail and chat adapters.

Importance: Dispatch produces every user-facing automation reply.
Alternatives: Rely on API tests for dispatch coverage.
"""

from __future__ import annotations

from datetime import datetime

from relaypilot.adapters import AdapterSet, BackendFailure, MessageAdapter, ServiceUnavailable
from relaypilot.classifier import CommandIntent, route
from relaypilot.dispatcher import (
    CHAT_UNAVAILABLE,
    DEFAULT_EMAIL_BODY,
    DEFAULT_SUBJECT,
    FETCH_LIMIT,
    FORWARD_LIMIT,
    FORWARD_USAGE,
    HELP_TEXT,
    MAIL_UNAVAILABLE,
    SEND_USAGE,
    CommandDispatcher,
    render_forward,
)
from relaypilot.extractor import ExtractedParameters, extract
from relaypilot.models import MessageRecord
from relaypilot.registry import WorkflowRegistry


class FakeAdapter(MessageAdapter):
    def __init__(
        self,
        records: list[MessageRecord] | None = None,
        fetch_error: Exception | None = None,
        send_error: Exception | None = None,
    ) -> None:
        self.records = records or []
        self.fetch_error = fetch_error
        self.send_error = send_error
        self.fetch_calls: list[tuple[str | None, int]] = []
        self.sent: list[tuple[str, str | None, str]] = []

    def fetch(self, sender: str | None, limit: int) -> list[MessageRecord]:
        self.fetch_calls.append((sender, limit))
        if self.fetch_error:
            raise self.fetch_error
        return self.records[:limit]

    def send(self, recipient: str, subject: str | None, body: str) -> str:
        if self.send_error:
            raise self.send_error
        self.sent.append((recipient, subject, body))
        return "sent"


def _record(index: int, sender: str = "mom@gmail.com") -> MessageRecord:
    return MessageRecord(
        id=f"m{index}",
        sender=sender,
        subject=f"Subject {index}",
        excerpt=f"Excerpt {index}",
        timestamp=datetime(2026, 10, 16, 12 - index, 0),
    )


def _run(text: str, adapters: AdapterSet, registry: WorkflowRegistry | None = None) -> str:
    intent = route(text)
    return CommandDispatcher(registry or WorkflowRegistry()).dispatch(
        intent, extract(text, intent), adapters
    )


def test_forward_with_no_matching_mail_sends_nothing() -> None:
    """Summary: Forwarding when the sender has no mail reports it and sends nothing.

    Importance: Users must never get empty alerts in their chat.
    Alternatives: Send a "nothing new" message to the chat.
    """

    mail = FakeAdapter()
    chat = FakeAdapter()
    result = _run(
        "Get emails from mom@gmail.com and send to telegram @mychat",
        AdapterSet(mail=mail, chat=chat),
    )
    assert result == "No messages found from mom@gmail.com"
    assert mail.fetch_calls == [("mom@gmail.com", FORWARD_LIMIT)]
    assert chat.sent == []


def test_forward_sends_in_fetch_order_and_logs() -> None:
    """Summary: Forwarded records reach the chat one by one in fetch order.

    Importance: Alerts must arrive newest first, matching the fetch.
    Alternatives: Batch all records into one message.
    """

    records = [_record(index) for index in range(5)]
    mail = FakeAdapter(records=records)
    chat = FakeAdapter()
    registry = WorkflowRegistry()
    result = _run(
        "Get emails from mom@gmail.com and send to telegram @mychat",
        AdapterSet(mail=mail, chat=chat),
        registry,
    )
    assert result == "✅ Successfully forwarded 3 emails from mom@gmail.com to @mychat"
    assert [body for _, _, body in chat.sent] == [render_forward(record) for record in records[:3]]
    assert all(recipient == "@mychat" for recipient, _, _ in chat.sent)
    messages = [entry.message for entry in registry.logs()]
    assert messages == ["Processing email to telegram workflow...", "Forwarded 3 emails to @mychat"]


def test_forward_reports_chat_failure() -> None:
    """Summary: A chat send failure becomes an error reply and a log entry.

    Importance: Forwards must not claim success after a failed delivery.
    Alternatives: Skip failing records and continue.
    """

    mail = FakeAdapter(records=[_record(0)])
    chat = FakeAdapter(send_error=BackendFailure("chat not found"))
    registry = WorkflowRegistry()
    result = _run(
        "get emails from mom@gmail.com and send to telegram @nowhere",
        AdapterSet(mail=mail, chat=chat),
        registry,
    )
    assert result == "❌ Error processing workflow: chat not found"
    assert registry.logs()[-1].message == "Error in email to telegram workflow: chat not found"


def test_forward_requires_sender_and_chat() -> None:
    """Summary: Forward without a chat target returns the usage hint.

    Importance: Guides users toward the full command shape.
    Alternatives: Forward to a default chat.
    """

    dispatcher = CommandDispatcher(WorkflowRegistry())
    result = dispatcher.dispatch(
        CommandIntent.FORWARD_FETCHED_TO_CHAT,
        ExtractedParameters(sender="mom@gmail.com"),
        AdapterSet(mail=FakeAdapter(), chat=FakeAdapter()),
    )
    assert result == FORWARD_USAGE


def test_fetch_renders_records() -> None:
    """Summary: Fetch replies with a count header and one block per record.

    Importance: Confirms the fetch summary layout and limit.
    Alternatives: Return JSON to the chat.
    """

    mail = FakeAdapter(records=[_record(0), _record(1)])
    result = _run("Fetch emails from mom@gmail.com", AdapterSet(mail=mail))
    assert result.startswith("Found 2 emails:\n\n📧 **From:** mom@gmail.com")
    assert "📄 **Subject:** Subject 1" in result
    assert "📅 Oct 16, 12:00" in result
    assert mail.fetch_calls == [("mom@gmail.com", FETCH_LIMIT)]


def test_fetch_singular_and_empty() -> None:
    """Summary: Use singular wording for one record and a plain notice for none.

    Importance: Replies read naturally for small result sets.
    Alternatives: Always use the plural form.
    """

    single = _run("fetch email from mom", AdapterSet(mail=FakeAdapter(records=[_record(0)])))
    assert single.startswith("Found 1 email:")
    assert _run("fetch email from nobody", AdapterSet(mail=FakeAdapter())) == (
        "No messages found from nobody"
    )


def test_fetch_unavailable_and_failure() -> None:
    """Summary: Missing services and backend errors produce distinct replies.

    Importance: Users need to know whether to sign in or retry.
    Alternatives: Use one generic failure message.
    """

    assert _run("fetch emails from a", AdapterSet()) == MAIL_UNAVAILABLE
    unauthenticated = FakeAdapter(fetch_error=ServiceUnavailable("expired"))
    assert _run("fetch emails from a", AdapterSet(mail=unauthenticated)) == MAIL_UNAVAILABLE
    broken = FakeAdapter(fetch_error=BackendFailure("timeout"))
    assert _run("fetch emails from a", AdapterSet(mail=broken)) == "❌ Error fetching emails: timeout"


def test_send_email_uses_defaults() -> None:
    """Summary: Missing subject and body fall back to defaults.

    Importance: A recipient alone is enough to send.
    Alternatives: Reject sends without a subject.
    """

    mail = FakeAdapter()
    result = _run("send email to john@example.com", AdapterSet(mail=mail))
    assert result == "✅ Email sent successfully to john@example.com"
    assert mail.sent == [("john@example.com", DEFAULT_SUBJECT, DEFAULT_EMAIL_BODY)]


def test_send_email_usage_and_failure() -> None:
    """Summary: Missing recipients return usage and send errors return a failure.

    Importance: Sends never claim success on failure.
    Alternatives: Retry failed sends automatically.
    """

    assert _run("send email please", AdapterSet(mail=FakeAdapter())) == SEND_USAGE
    failing = FakeAdapter(send_error=BackendFailure("quota exceeded"))
    result = _run('send email to a@b.com subject "S" message "M"', AdapterSet(mail=failing))
    assert result == "❌ Error sending email: quota exceeded"


def test_send_chat_message() -> None:
    """Summary: Chat sends go to the extracted target with the quoted body.

    Importance: Covers the direct telegram command.
    Alternatives: Only support forwarding to chat.
    """

    chat = FakeAdapter()
    result = _run('send telegram to @friend message "Hello"', AdapterSet(chat=chat))
    assert result == "✅ Telegram message sent successfully to @friend"
    assert chat.sent == [("@friend", None, "Hello")]
    assert _run("send telegram to @friend", AdapterSet()) == CHAT_UNAVAILABLE


def test_unrecognized_returns_help() -> None:
    """Summary: Unrecognized commands return the help text.

    Importance: Gives users examples when routing fails.
    Alternatives: Pass the text on to the model.
    """

    assert _run("setup workflow", AdapterSet()) == HELP_TEXT


def test_unexpected_errors_are_contained() -> None:
    """Summary: Non-adapter exceptions still become an error reply.

    Importance: No exception may escape a dispatch.
    Alternatives: Let unexpected errors crash the turn.
    """

    mail = FakeAdapter(fetch_error=RuntimeError("boom"))
    result = _run("fetch emails from a", AdapterSet(mail=mail))
    assert result == "❌ Error processing workflow command: boom"
