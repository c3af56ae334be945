"""Decision log lines and console output."""

import sys
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .facts import MessageFacts

LINE_HEAVY = "━"  # ━

ICON_OK = "✓"     # ✓
ICON_FAIL = "✗"   # ✗

WIDTH = 75

SENDER_WIDTH = 40
SUBJECT_WIDTH = 60


class DecisionCode(Enum):
    """Outcome codes written at the start of every decision log line."""

    OK = "OK"
    SPAM = "SPAM"
    MOVED = "MOVED"
    COPIED = "COPIED"
    DELETED = "DELETED"
    FORWARDED = "FORWARDED"
    MARKEDREAD = "MARKEDREAD"

    def __str__(self) -> str:
        return self.value


def _fit(text: str, width: int) -> str:
    text = " ".join((text or "").split())
    return text[:width].ljust(width)


def format_summary(facts: "MessageFacts") -> str:
    """Date, sender and subject in fixed-width columns."""
    date = facts.date.astimezone().strftime("%d.%m.%Y  %H:%M:%S") if facts.date else ""
    return f"{date:<22}    {_fit(facts.sender, SENDER_WIDTH)}     {_fit(facts.subject, SUBJECT_WIDTH)}"


def format_decision(code: DecisionCode, facts: "MessageFacts", reason: str) -> str:
    """'CODE  summary   Reason: ...'"""
    return f"{code.value:<10} {format_summary(facts)}   Reason: {reason}"


class ConsoleOutput:
    """Structured console output for the operator."""

    def __init__(self):
        # Use UTF-8 stdout for Windows compatibility
        if sys.platform == "win32":
            sys.stdout.reconfigure(encoding='utf-8')

    def banner(self, version: str) -> None:
        line = LINE_HEAVY * WIDTH
        print(f"\n{line}")
        print(f" MailGuard {version}")
        print(line)

    def info(self, message: str) -> None:
        """Print info message."""
        print(f" {ICON_OK} {message}")

    def error(self, message: str) -> None:
        """Print error message."""
        print(f" {ICON_FAIL} {message}")

    def status(self, message: str) -> None:
        """Print status message without icon."""
        print(f" {message}")


# Global instance
console = ConsoleOutput()
