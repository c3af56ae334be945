"""Outbound mail for forward actions."""

import logging
import smtplib
from email.message import EmailMessage
from typing import List

from .errors import ConnectivityError
from .imap.client import Attachment
from .settings import SMTPSettings

logger = logging.getLogger(__name__)


def compose(sender: str, to: List[str], subject: str, body: str, attachments: List[Attachment]) -> EmailMessage:
    """Build a plain text message with attachments."""
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = ", ".join(to)
    msg["Subject"] = subject
    msg.set_content(body)
    for attachment in attachments:
        maintype, _, subtype = attachment.content_type.partition("/")
        msg.add_attachment(
            attachment.payload,
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
    return msg


class SMTPSender:
    """Send mail through the account's SMTP server."""

    def __init__(self, settings: SMTPSettings, timeout: float = 30.0):
        self.settings = settings
        self.timeout = timeout

    def send(self, sender: str, to: List[str], subject: str, body: str, attachments: List[Attachment]) -> None:
        msg = compose(sender or self.settings.sender, to, subject, body, attachments)
        settings = self.settings
        try:
            if settings.use_ssl:
                server = smtplib.SMTP_SSL(settings.host, settings.port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(settings.host, settings.port, timeout=self.timeout)
            with server:
                if not settings.use_ssl:
                    server.starttls()
                if settings.username:
                    server.login(settings.username, settings.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise ConnectivityError(f"Failed to send mail via {settings.host}: {e}")
        logger.debug(f"Sent '{subject}' to {', '.join(to)}")
