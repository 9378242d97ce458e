"""Inbound email channel: models, formatting and the email-mode tools."""

import logging
import uuid
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from quorra.events.bus import EventBus
from quorra.events.models import EventType, NewEmail
from quorra.system.filesystem import Owner, VirtualFileSystem
from quorra.tools.base import Tool, ToolContext, ToolDefinition, ToolParameter, ToolResult

logger = logging.getLogger(__name__)

SendReply = Callable[[str, str, EmailMessage], Awaitable[None]]


class EmailAddress(BaseModel):
    address: str
    name: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.name} <{self.address}>" if self.name else self.address


class InboundEmail(BaseModel):
    """A parsed inbound email."""

    model_config = ConfigDict(populate_by_name=True)

    sender: EmailAddress = Field(alias="from")
    subject: str = ""
    text: Optional[str] = None
    html: Optional[str] = None
    message_id: Optional[str] = None

    @property
    def body(self) -> str:
        return self.text or self.html or ""


def format_email_as_string(sender: EmailAddress, subject: str, body: str) -> str:
    return f"From: {sender}\nSubject: {subject}\n\n{body}"


def reply_subject(subject: str) -> str:
    """Prefix "Re: " once so mail clients thread replies."""
    subject = subject or ""
    return subject if subject.startswith("Re: ") else f"Re: {subject}"


def mail_path(mail_dir: str = "/var/mail", now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"{mail_dir.rstrip('/')}/{now:%Y%m%d}_{uuid.uuid4().hex[:8]}.txt"


class EmailSession:
    """
    State for handling one inbound email.

    The model must end the session with exactly one of handle_email or
    reject_email; the session records which one it chose.
    """

    def __init__(
        self,
        email: InboundEmail,
        filesystem: VirtualFileSystem,
        bus: Optional[EventBus] = None,
        config: Optional[dict] = None,
        send_reply: Optional[SendReply] = None,
    ) -> None:
        config = config or {}
        self.email = email
        self.filesystem = filesystem
        self.bus = bus
        self.send_reply = send_reply
        self.address = config.get("address", "quorra@localhost")
        self.display_name = config.get("display_name", "Quorra")
        self.mail_dir = config.get("mail_dir", "/var/mail")
        self.always_store = config.get("always_store", True)

        self.stored_path: Optional[str] = None
        self.reply: Optional[EmailMessage] = None
        self.reply_sent = False
        self.rejected_reason: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.stored_path is not None or self.reply is not None or self.rejected_reason is not None

    def build_reply(self, content: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = f"{self.display_name} <{self.address}>"
        msg["To"] = self.email.sender.address
        msg["Subject"] = reply_subject(self.email.subject)
        if self.email.message_id:
            msg["In-Reply-To"] = self.email.message_id
            msg["References"] = self.email.message_id
        msg.set_content(content)
        return msg

    async def handle(
        self, should_store: bool, reply: Optional[str] = None, notify_user: Optional[str] = None
    ) -> str:
        if reply:
            self.reply = self.build_reply(reply)
            if self.send_reply:
                await self.send_reply(self.address, self.email.sender.address, self.reply)
                self.reply_sent = True
                logger.info(f"Sent reply to {self.email.sender.address}")
            else:
                logger.warning("No mail transport configured, reply not sent")

        if should_store or self.always_store:
            content = format_email_as_string(self.email.sender, self.email.subject, self.email.body)
            if reply:
                me = EmailAddress(address=self.address, name=self.display_name)
                content += "\n\n" + format_email_as_string(me, reply_subject(self.email.subject), reply)

            path = mail_path(self.mail_dir)
            await self.filesystem.write(path, content, owner=Owner.QUORRA)
            self.stored_path = path

            if self.bus:
                self.bus.publish(EventType.NEW_MAIL, NewEmail(path=path, user_notification=notify_user))

        parts = []
        if self.reply_sent:
            parts.append("reply sent")
        elif self.reply is not None:
            parts.append("reply not sent (no mail transport)")
        if self.stored_path:
            parts.append(f"stored at {self.stored_path}")
        return ", ".join(parts) or "email handled"

    def reject(self, reason: str) -> str:
        self.rejected_reason = reason
        logger.info(f"Rejected email from {self.email.sender.address}: {reason}")
        return f"rejected: {reason}"

    def tools(self) -> list[Tool]:
        return [HandleEmailTool(self), RejectEmailTool(self)]


class HandleEmailTool(Tool):
    """Accept an email, optionally replying and storing it."""

    def __init__(self, session: EmailSession) -> None:
        self.session = session
        self.definition = ToolDefinition(
            name="handle_email",
            description="Handles the email when it is NOT to be rejected.",
            parameters=[
                ToolParameter(
                    name="should_store",
                    type="boolean",
                    description="Whether this email needs to be stored.",
                ),
                ToolParameter(
                    name="reply",
                    type="string",
                    description="Optional reply. When unset, no reply is sent.",
                    required=False,
                ),
                ToolParameter(
                    name="notify_user",
                    type="string",
                    description="Optional short note telling the user about this email.",
                    required=False,
                ),
            ],
            category="email",
        )

    async def execute(
        self,
        context: ToolContext,
        should_store: bool = False,
        reply: Optional[str] = None,
        notify_user: Optional[str] = None,
    ) -> ToolResult:
        try:
            message = await self.session.handle(should_store, reply=reply, notify_user=notify_user)
            return ToolResult(success=True, data=message)
        except Exception as e:
            logger.error(f"Error handling email: {e}", exc_info=True)
            return ToolResult(success=False, error=str(e))


class RejectEmailTool(Tool):
    """Bounce an email back to its sender."""

    def __init__(self, session: EmailSession) -> None:
        self.session = session
        self.definition = ToolDefinition(
            name="reject_email",
            description="Rejects the email with the given reason. The user will not receive it.",
            parameters=[
                ToolParameter(
                    name="reason",
                    type="string",
                    description="The reason given to the sender for the failed delivery.",
                ),
            ],
            category="email",
        )

    async def execute(self, context: ToolContext, reason: str) -> ToolResult:
        return ToolResult(success=True, data=self.session.reject(reason))


def email_prompt(email: InboundEmail) -> str:
    """User message describing an inbound email."""
    return (
        "You received an email. Decide whether to reject it or handle it, "
        "and call exactly one of the email tools.\n\n"
        + format_email_as_string(email.sender, email.subject, email.body)
    )
