"""Input channels other than the CLI."""

from quorra.channels.email import EmailAddress, EmailSession, InboundEmail, format_email_as_string

__all__ = ["EmailAddress", "EmailSession", "InboundEmail", "format_email_as_string"]
