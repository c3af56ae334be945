"""Normalized message facts used by the classifier and the rule evaluator."""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .imap.client import InboundMessage

# First bracketed IPv4 dotted quad in a Received header
RECEIVED_IP_PATTERN = re.compile(r"\[(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})\]")


@dataclass(frozen=True)
class MessageFacts:
    """Everything the decision core looks at, extracted once per message."""

    message_id: str
    sender: str
    sender_name: str
    sender_address: str
    receiver: str
    subject: str
    body: str
    headers: str
    ip_addresses: Tuple[str, ...]
    date: Optional[datetime] = None
    cc_receiver: str = ""


def split_sender(raw: str) -> Tuple[str, str]:
    """Split '"Name" <address>' into (name, address).

    If any of the quotes or angle brackets is missing, both parts fall back
    to the raw string.
    """
    raw = raw or ""
    first_quote = raw.find('"')
    second_quote = raw.find('"', first_quote + 1) if first_quote >= 0 else -1
    first_bracket = raw.find("<")
    second_bracket = raw.find(">", first_bracket + 1) if first_bracket >= 0 else -1

    if min(first_quote, second_quote, first_bracket, second_bracket) < 0:
        return raw, raw

    name = raw[first_quote + 1:second_quote]
    address = raw[first_bracket + 1:second_bracket]
    return name, address


def extract_body(body_html: str, body_text: str) -> str:
    """Richest non-empty body representation, or an empty string."""
    for body in (body_html, body_text):
        if body:
            return body
    return ""


def extract_ip_addresses(received_headers: Iterable[str]) -> Tuple[str, ...]:
    """First bracketed IPv4 address of every Received header, in order."""
    addresses: List[str] = []
    for value in received_headers:
        match = RECEIVED_IP_PATTERN.search(value or "")
        if match and match.group(1) not in addresses:
            addresses.append(match.group(1))
    return tuple(addresses)


def concat_headers(headers: Dict[str, Tuple[str, ...]]) -> str:
    """All headers as lower-cased 'name: value' lines."""
    lines = []
    for name, values in headers.items():
        for value in values:
            lines.append(f"{name}: {value}")
    return "\n".join(lines).lower()


def _header(headers: Dict[str, Tuple[str, ...]], name: str) -> Tuple[str, ...]:
    for key, values in headers.items():
        if key.lower() == name:
            return values
    return ()


def message_id_for(message: InboundMessage) -> str:
    """Stable identifier: Message-ID, else the date, else the mailbox UID."""
    for value in _header(message.headers, "message-id"):
        if value.strip():
            return value.strip()
    if message.date is not None:
        return message.date.isoformat()
    return message.uid


def extract_facts(message: InboundMessage) -> MessageFacts:
    """Turn an inbound message into MessageFacts."""
    sender_name, sender_address = split_sender(message.sender)
    return MessageFacts(
        message_id=message_id_for(message),
        sender=message.sender or "",
        sender_name=sender_name,
        sender_address=sender_address,
        receiver=", ".join(message.to),
        subject=message.subject or "",
        body=extract_body(message.body_html, message.body_text),
        headers=concat_headers(message.headers),
        ip_addresses=extract_ip_addresses(_header(message.headers, "received")),
        date=message.date,
        cc_receiver=", ".join(message.cc),
    )
