"""Summary: Executes classified automation commands against message adapters.

Importance: Owns the cross-service workflows and turns every outcome into chat text.
Alternatives: Let each adapter format its own replies.
"""

from __future__ import annotations

import logging

from relaypilot.adapters import AdapterError, AdapterSet, MessageAdapter, ServiceUnavailable
from relaypilot.classifier import CommandIntent
from relaypilot.extractor import ExtractedParameters
from relaypilot.models import MessageRecord
from relaypilot.registry import WorkflowRegistry


logger = logging.getLogger(__name__)

SUCCESS_MARK = "✅"
ERROR_MARK = "❌"

FETCH_LIMIT = 5
FORWARD_LIMIT = 3

DEFAULT_SUBJECT = "Message from RelayPilot"
DEFAULT_EMAIL_BODY = "This is an automated message sent via RelayPilot."
DEFAULT_CHAT_BODY = "Hello from RelayPilot!"

MAIL_UNAVAILABLE = "Email service not available. Please sign in first."
CHAT_UNAVAILABLE = "Telegram service not available. Please configure bot token first."

SEND_USAGE = (
    "Please specify recipient. Example: "
    "'send email to user@example.com subject \"Hello\" message \"How are you?\"'"
)
CHAT_USAGE = "Please specify chat. Example: 'send telegram to @username message \"Hello\"'"
FORWARD_USAGE = (
    "Please specify both email sender and telegram chat. Example: "
    "'Get emails from mom@gmail.com and send to telegram @mychat'"
)

HELP_TEXT = (
    "I understand you want to create a workflow. Here are some examples:\n\n"
    "• 'Fetch emails from mom@gmail.com'\n"
    "• 'Send email to john@example.com subject \"Hello\" message \"How are you?\"'\n"
    "• 'Send telegram to @username message \"Hello\"'\n"
    "• 'Get emails from university and send to telegram @mychat'"
)

DATE_FORMAT = "%b %d, %H:%M"


class CommandDispatcher:
    """Summary: Routes an intent and its parameters to adapter operations.

    Importance: Single place where adapter failures become user-facing strings;
    no exception leaves `dispatch`.
    Alternatives: Raise errors and let the chat layer format them.
    """

    def __init__(self, registry: WorkflowRegistry) -> None:
        self._registry = registry

    def dispatch(
        self, intent: CommandIntent, params: ExtractedParameters, adapters: AdapterSet
    ) -> str:
        """Summary: Execute a command and return the reply text.

        Importance: Entry point for every automation turn.
        Alternatives: Expose one public method per intent.
        """

        logger.info("Dispatching %s.", intent.value)
        logger.debug("Command parameters: %s", params.as_dict())
        try:
            if intent is CommandIntent.FETCH_MESSAGES:
                return self._fetch(params, adapters)
            if intent is CommandIntent.SEND_MESSAGE:
                return self._send_email(params, adapters)
            if intent is CommandIntent.SEND_TO_CHAT:
                return self._send_chat(params, adapters)
            if intent is CommandIntent.FORWARD_FETCHED_TO_CHAT:
                return self._forward(params, adapters)
            return HELP_TEXT
        except Exception as exc:
            logger.exception("Command %s failed.", intent.value)
            return f"{ERROR_MARK} Error processing workflow command: {exc}"

    def _fetch(self, params: ExtractedParameters, adapters: AdapterSet) -> str:
        if adapters.mail is None:
            return MAIL_UNAVAILABLE
        try:
            records = adapters.mail.fetch(params.sender, limit=FETCH_LIMIT)
        except ServiceUnavailable:
            return MAIL_UNAVAILABLE
        except AdapterError as exc:
            return f"{ERROR_MARK} Error fetching emails: {exc}"
        if not records:
            return no_messages_found(params.sender)
        summary = "\n\n".join(render_record(record) for record in records)
        return f"Found {len(records)} {_plural_email(len(records))}:\n\n{summary}"

    def _send_email(self, params: ExtractedParameters, adapters: AdapterSet) -> str:
        if adapters.mail is None:
            return MAIL_UNAVAILABLE
        if not params.recipient:
            return SEND_USAGE
        try:
            adapters.mail.send(
                params.recipient,
                params.subject or DEFAULT_SUBJECT,
                params.body or DEFAULT_EMAIL_BODY,
            )
        except AdapterError as exc:
            return f"{ERROR_MARK} Error sending email: {exc}"
        return f"{SUCCESS_MARK} Email sent successfully to {params.recipient}"

    def _send_chat(self, params: ExtractedParameters, adapters: AdapterSet) -> str:
        if adapters.chat is None:
            return CHAT_UNAVAILABLE
        if not params.chat_target:
            return CHAT_USAGE
        try:
            adapters.chat.send(params.chat_target, None, params.body or DEFAULT_CHAT_BODY)
        except AdapterError as exc:
            return f"{ERROR_MARK} Error sending telegram message: {exc}"
        return f"{SUCCESS_MARK} Telegram message sent successfully to {params.chat_target}"

    def _forward(self, params: ExtractedParameters, adapters: AdapterSet) -> str:
        if adapters.mail is None:
            return MAIL_UNAVAILABLE
        if adapters.chat is None:
            return CHAT_UNAVAILABLE
        if not params.sender or not params.chat_target:
            return FORWARD_USAGE
        sender, target = params.sender, params.chat_target
        try:
            self._registry.append_log("Processing email to telegram workflow...")
            records = adapters.mail.fetch(sender, limit=FORWARD_LIMIT)
            if not records:
                return no_messages_found(sender)
            forward_records(records, adapters.chat, target)
        except AdapterError as exc:
            self._registry.append_log(f"Error in email to telegram workflow: {exc}")
            return f"{ERROR_MARK} Error processing workflow: {exc}"
        self._registry.append_log(f"Forwarded {len(records)} emails to {target}")
        return (
            f"{SUCCESS_MARK} Successfully forwarded {len(records)} "
            f"{_plural_email(len(records))} from {sender} to {target}"
        )


def forward_records(
    records: list[MessageRecord], chat: MessageAdapter, target: str
) -> None:
    """Summary: Send each record to the chat target, one at a time, in fetch order.

    Importance: Delivered forwards must arrive in the order they were fetched.
    Alternatives: Fan out sends concurrently.
    """

    for record in records:
        chat.send(target, None, render_forward(record))


def render_record(record: MessageRecord) -> str:
    return (
        f"📧 **From:** {record.sender}\n"
        f"📄 **Subject:** {record.subject}\n"
        f"📅 {record.timestamp.strftime(DATE_FORMAT)}\n"
        f"💬 {record.excerpt}"
    )


def render_forward(
    record: MessageRecord, preview: str | None = None, title: str = "New Email Alert"
) -> str:
    """Summary: Build the chat alert for a forwarded email.

    Importance: Fixed layout so recipients can scan forwarded mail quickly.
    Alternatives: Forward the raw email body.
    """

    return (
        f"📧 **{title}**\n\n"
        f"**From:** {record.sender}\n"
        f"**Subject:** {record.subject}\n"
        f"**Time:** {record.timestamp.strftime(DATE_FORMAT)}\n\n"
        "**Preview:**\n"
        f"{preview if preview is not None else record.excerpt}\n\n"
        "---\n"
        "*Forwarded by RelayPilot*"
    )


def no_messages_found(sender: str | None) -> str:
    return f"No messages found from {sender}" if sender else "No messages found"


def _plural_email(count: int) -> str:
    return "email" if count == 1 else "emails"
