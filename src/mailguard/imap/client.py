"""IMAP mailbox connector built on imap-tools."""

import imaplib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from imap_tools import AND, MailBox, MailBoxStartTls, MailBoxUnencrypted, MailMessage, MailMessageFlags
from imap_tools.errors import ImapToolsError

from ..errors import ConnectivityError, FolderNotFoundError
from ..settings import MailAccount

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    """Attachment carried along when a message is forwarded."""

    filename: str
    payload: bytes
    content_type: str = "application/octet-stream"


@dataclass
class InboundMessage:
    """Unread message as delivered by the mailbox connector."""

    uid: str
    sender: str  # '"Name" <address>' or bare address
    to: List[str]
    subject: str
    date: Optional[datetime]
    headers: Dict[str, Tuple[str, ...]]
    body_text: str = ""
    body_html: str = ""
    attachments: List[Attachment] = field(default_factory=list)
    cc: List[str] = field(default_factory=list)


def _combined_sender(msg: MailMessage) -> str:
    values = msg.from_values
    if values is None:
        return msg.from_ or ""
    if values.name:
        return f'"{values.name}" <{values.email}>'
    return values.email


def to_inbound_message(msg: MailMessage) -> InboundMessage:
    """Convert an imap-tools message into an InboundMessage."""
    return InboundMessage(
        uid=msg.uid or "",
        sender=_combined_sender(msg),
        to=list(msg.to or ()),
        cc=list(msg.cc or ()),
        subject=msg.subject or "",
        date=msg.date,
        headers={name: tuple(values) for name, values in msg.headers.items()},
        body_text=msg.text or "",
        body_html=msg.html or "",
        attachments=[
            Attachment(a.filename or "attachment", a.payload, a.content_type)
            for a in msg.attachments
        ],
    )


class IMAPMailbox:
    """Open / fetch / move / mark-read operations against one postbox."""

    def __init__(self, account: MailAccount):
        self.account = account
        self._mailbox: Optional[MailBox] = None
        self._current_folder: Optional[str] = None

    def __enter__(self) -> "IMAPMailbox":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def connect(self) -> None:
        """Connect and log in."""
        account = self.account
        logger.info(
            f"Connecting to {account.imap_server}:{account.imap_port} "
            f"({account.security}) as {account.username}"
        )
        try:
            if account.security == "ssl":
                mailbox = MailBox(account.imap_server, account.imap_port)
            elif account.security == "starttls":
                mailbox = MailBoxStartTls(account.imap_server, account.imap_port)
            else:
                mailbox = MailBoxUnencrypted(account.imap_server, account.imap_port)
            mailbox.login(account.username, account.password)
        except (ImapToolsError, imaplib.IMAP4.error, OSError) as e:
            raise ConnectivityError(f"Failed to connect to {account.imap_server}: {e}")

        self._mailbox = mailbox
        self._current_folder = None
        logger.debug("Connected successfully")

    def disconnect(self) -> None:
        """Log out and drop the connection."""
        if self._mailbox is None:
            return
        try:
            self._mailbox.logout()
        except (ImapToolsError, imaplib.IMAP4.error, OSError) as e:
            logger.debug(f"Logout failed: {e}")
        self._mailbox = None
        self._current_folder = None
        logger.debug("Disconnected")

    def _require(self) -> MailBox:
        if self._mailbox is None:
            raise ConnectivityError("Not connected")
        return self._mailbox

    def _select(self, folder: str) -> None:
        if folder == self._current_folder:
            return
        try:
            self._require().folder.set(folder)
        except (ImapToolsError, imaplib.IMAP4.error, OSError) as e:
            raise ConnectivityError(f"Failed to select folder {folder}: {e}")
        self._current_folder = folder

    def list_folders(self) -> List[str]:
        """Names of all folders in the postbox."""
        try:
            return [info.name for info in self._require().folder.list()]
        except (ImapToolsError, imaplib.IMAP4.error, OSError) as e:
            raise ConnectivityError(f"Failed to list folders: {e}")

    def resolve_folder(self, name: str) -> str:
        """Return the folder's server-side name, matching case-insensitively."""
        folders = self.list_folders()
        for folder in folders:
            if folder == name:
                return folder
        for folder in folders:
            if folder.lower() == name.lower():
                return folder
        raise FolderNotFoundError(name, folders)

    def fetch_unread(self, folder: str) -> List[InboundMessage]:
        """Fetch unread messages without marking them seen."""
        self._select(folder)
        try:
            messages = [
                to_inbound_message(msg)
                for msg in self._require().fetch(AND(seen=False), mark_seen=False, bulk=True)
            ]
        except (ImapToolsError, imaplib.IMAP4.error, OSError) as e:
            raise ConnectivityError(f"Failed to fetch unread messages from {folder}: {e}")
        logger.debug(f"Fetched {len(messages)} unread message(s) from {folder}")
        return messages

    def move(self, message: InboundMessage, source: str, destination: str) -> None:
        """Move a message between folders."""
        self._select(source)
        try:
            self._require().move(message.uid, destination)
        except (ImapToolsError, imaplib.IMAP4.error, OSError) as e:
            raise ConnectivityError(f"Failed to move message {message.uid} to {destination}: {e}")

    def mark_read(self, message: InboundMessage, folder: str) -> None:
        """Set the \\Seen flag."""
        self._select(folder)
        try:
            self._require().flag(message.uid, MailMessageFlags.SEEN, True)
        except (ImapToolsError, imaplib.IMAP4.error, OSError) as e:
            raise ConnectivityError(f"Failed to mark message {message.uid} as read: {e}")

    def copy(self, message: InboundMessage, source: str, destination: str) -> None:
        """Copy a message into another folder."""
        self._select(source)
        try:
            self._require().copy(message.uid, destination)
        except (ImapToolsError, imaplib.IMAP4.error, OSError) as e:
            raise ConnectivityError(f"Failed to copy message {message.uid} to {destination}: {e}")

    def delete(self, message: InboundMessage, folder: str) -> None:
        """Delete a message and expunge it."""
        self._select(folder)
        try:
            self._require().delete(message.uid)
        except (ImapToolsError, imaplib.IMAP4.error, OSError) as e:
            raise ConnectivityError(f"Failed to delete message {message.uid}: {e}")
