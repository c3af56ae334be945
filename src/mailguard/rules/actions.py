"""Rule actions: one dataclass per kind, each carrying its own handler."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Union

from ..errors import ActionExecutionError, ConfigurationError
from ..logging_format import DecisionCode

if TYPE_CHECKING:
    from ..facts import MessageFacts
    from ..imap.client import Attachment, InboundMessage


class ActionKind(Enum):
    """Supported action kinds and the decision code logged when they succeed."""

    MOVE_TO_FOLDER = ("move_to_folder", DecisionCode.MOVED)
    COPY_TO_FOLDER = ("copy_to_folder", DecisionCode.COPIED)
    DELETE = ("delete", DecisionCode.DELETED)
    FORWARD = ("forward", DecisionCode.FORWARDED)
    MARK_AS_READ = ("mark_as_read", DecisionCode.MARKEDREAD)

    def __init__(self, key: str, decision: DecisionCode):
        self.key = key
        self.decision = decision

    @classmethod
    def parse(cls, value: str) -> "ActionKind":
        normalized = value.replace("_", "").replace("-", "").lower()
        if normalized == "sendto":
            return cls.FORWARD
        for kind in cls:
            if kind.key.replace("_", "") == normalized:
                return kind
        raise ConfigurationError(f"Unknown action type: {value}")


class MailboxPort(Protocol):
    def resolve_folder(self, name: str) -> str:
        ...

    def move(self, message: "InboundMessage", source: str, destination: str) -> None:
        ...

    def copy(self, message: "InboundMessage", source: str, destination: str) -> None:
        ...

    def delete(self, message: "InboundMessage", folder: str) -> None:
        ...

    def mark_read(self, message: "InboundMessage", folder: str) -> None:
        ...


class SenderPort(Protocol):
    def send(
        self,
        sender: str,
        to: List[str],
        subject: str,
        body: str,
        attachments: List["Attachment"],
    ) -> None:
        ...


@dataclass
class ActionContext:
    """What an action may touch while it runs."""

    mailbox: MailboxPort
    message: "InboundMessage"
    folder: str
    sender: Optional[SenderPort] = None
    sender_address: str = ""


@dataclass(frozen=True)
class MoveToFolder:
    folder: str

    kind = ActionKind.MOVE_TO_FOLDER

    def execute(self, facts: "MessageFacts", context: ActionContext) -> str:
        destination = context.mailbox.resolve_folder(self.folder)
        context.mailbox.move(context.message, context.folder, destination)
        return f"moved to '{destination}'"


@dataclass(frozen=True)
class CopyToFolder:
    folder: str

    kind = ActionKind.COPY_TO_FOLDER

    def execute(self, facts: "MessageFacts", context: ActionContext) -> str:
        destination = context.mailbox.resolve_folder(self.folder)
        context.mailbox.copy(context.message, context.folder, destination)
        return f"copied to '{destination}'"


@dataclass(frozen=True)
class Delete:
    kind = ActionKind.DELETE

    def execute(self, facts: "MessageFacts", context: ActionContext) -> str:
        context.mailbox.delete(context.message, context.folder)
        return "deleted"


@dataclass(frozen=True)
class Forward:
    receiver: str
    subject: str = ""
    body: str = ""

    kind = ActionKind.FORWARD

    def execute(self, facts: "MessageFacts", context: ActionContext) -> str:
        if context.sender is None:
            raise ActionExecutionError(
                self.kind.key, ConfigurationError("no smtp server configured for this account")
            )

        receivers = [r.strip() for r in self.receiver.split(",") if r.strip()]
        if not receivers:
            raise ActionExecutionError(self.kind.key, ConfigurationError("forward action has no receiver"))

        subject = self.subject or f"Fwd: {facts.subject}"
        date = facts.date.strftime("%d.%m.%Y %H:%M:%S") if facts.date else ""
        body = (
            f"{self.body}\n\n"
            "---------- Forwarded message ----------\n"
            f"From: {facts.sender}\n"
            f"Date: {date}\n"
            f"Subject: {facts.subject}\n"
            f"To: {facts.receiver}\n\n"
            f"{facts.body}"
        )
        context.sender.send(
            context.sender_address, receivers, subject, body, list(context.message.attachments)
        )
        return f"forwarded to {', '.join(receivers)}"


@dataclass(frozen=True)
class MarkAsRead:
    kind = ActionKind.MARK_AS_READ

    def execute(self, facts: "MessageFacts", context: ActionContext) -> str:
        context.mailbox.mark_read(context.message, context.folder)
        return "marked as read"


Action = Union[MoveToFolder, CopyToFolder, Delete, Forward, MarkAsRead]


def parse_action(data: Dict[str, Any]) -> Action:
    """Build an action from a rules file entry."""
    kind = ActionKind.parse(str(data.get("type", "")))

    if kind is ActionKind.MOVE_TO_FOLDER:
        folder = data.get("folder")
        if not folder:
            raise ConfigurationError("move_to_folder action needs a 'folder'")
        return MoveToFolder(folder=folder)

    if kind is ActionKind.COPY_TO_FOLDER:
        folder = data.get("folder")
        if not folder:
            raise ConfigurationError("copy_to_folder action needs a 'folder'")
        return CopyToFolder(folder=folder)

    if kind is ActionKind.DELETE:
        return Delete()

    if kind is ActionKind.FORWARD:
        receiver = data.get("receiver")
        if not receiver:
            raise ConfigurationError("forward action needs a 'receiver'")
        return Forward(
            receiver=receiver,
            subject=data.get("subject", ""),
            body=data.get("body", ""),
        )

    return MarkAsRead()
