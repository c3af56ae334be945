"""Heuristic spam classifier."""

import logging
import unicodedata
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from ..errors import ConfigurationError
from ..settings import SpamSettings
from .patterns import find_match
from .training import TrainingSink

logger = logging.getLogger(__name__)

# Characters above this code point count as non-Latin in sender fields
NON_LATIN_CUTOFF = 0xFF


@dataclass(frozen=True)
class Classification:
    """Spam verdict and the reason behind it."""

    is_spam: bool
    reason: str = ""


@dataclass(frozen=True)
class CharacterTally:
    """Disallowed characters found in a text."""

    count: int
    details: str


class ReputationSource(Protocol):
    """Anything that can tell whether an IP address is blocklisted."""

    def is_blocked(self, ip: str) -> Optional[str]:
        ...


def remove_punctuation(text: str) -> str:
    """Drop punctuation, spaces and tabs."""
    return "".join(
        ch for ch in text
        if not unicodedata.category(ch).startswith("P") and ch not in (" ", "\t")
    )


def count_special_characters(text: str, allowed: str) -> CharacterTally:
    """Highest frequency of any single character not in `allowed`."""
    counts = Counter(ch for ch in text if ch not in allowed)
    if not counts:
        return CharacterTally(0, "")
    details = ", ".join(f"{n}x {ch}" for ch, n in counts.items())
    return CharacterTally(max(counts.values()), details)


def count_non_whitelisted(text: str, allowed: str) -> int:
    """Number of characters (spaces excluded) not in `allowed`."""
    return sum(1 for ch in text if ch != " " and ch not in allowed)


def has_non_latin(text: str) -> bool:
    return any(ord(ch) > NON_LATIN_CUTOFF for ch in text)


class Classifier:
    """Classify a message as spam or legitimate.

    Checks run in a fixed order and the first one that decides also supplies
    the reason. The sender whitelist is consulted before any blacklist,
    reputation or character test.
    """

    def __init__(
        self,
        reputation: Optional[ReputationSource] = None,
        training_sink: Optional[TrainingSink] = None,
    ):
        self.reputation = reputation
        self.training_sink = training_sink

    def classify(
        self,
        ip_addresses: Optional[Iterable[str]],
        subject: Optional[str],
        body: Optional[str],
        sender_name: Optional[str],
        sender_address: Optional[str],
        settings: Optional[SpamSettings],
    ) -> Classification:
        """Run all checks and record the verdict in the training sink."""
        if settings is None:
            raise ConfigurationError("Spam filter settings are missing")

        subject = subject or ""
        body = body or ""
        sender_name = sender_name or ""
        sender_address = sender_address or ""

        result = self._classify(
            list(ip_addresses or ()), subject, sender_name, sender_address, settings
        )
        self._record(subject, body, sender_name, sender_address, result)
        return result

    def _classify(
        self,
        ip_addresses: list,
        subject: str,
        sender_name: str,
        sender_address: str,
        settings: SpamSettings,
    ) -> Classification:
        if has_non_latin(sender_address) or has_non_latin(sender_name):
            return Classification(True, "the sender contains non-latin characters")

        address_lower = sender_address.lower()
        for entry in settings.sender_whitelist:
            if entry and entry.lower() in address_lower:
                return Classification(
                    False, f"sender white list contains a part of this sender ({sender_address})"
                )

        if self.reputation is not None:
            for ip in ip_addresses:
                identifier = self.reputation.is_blocked(ip)
                if identifier:
                    return Classification(
                        True, f"the sender ip {ip} is listed on the blocklist ({identifier})"
                    )

        # A blank alphabet allows nothing
        non_latin = count_non_whitelisted(subject, settings.character_whitelist)
        if non_latin > settings.non_latin_characters_subject_threshold:
            return Classification(
                True, f"{non_latin} of {len(subject)} characters are non-latin in subject"
            )

        if settings.special_character_whitelist:
            allowed = settings.special_character_whitelist
            checks = (
                (sender_address, settings.special_characters_sender_email_threshold, " in sender email"),
                (sender_name, settings.special_characters_sender_name_threshold, " in sender name"),
                (remove_punctuation(sender_name), settings.special_characters_sender_name_threshold, " in sender name"),
                (subject, settings.special_characters_subject_threshold, " in subject"),
                (remove_punctuation(subject), settings.special_characters_subject_threshold, " in subject"),
            )
            for text, threshold, where in checks:
                tally = count_special_characters(text, allowed)
                if tally.count > threshold:
                    return Classification(True, f"{tally.details}{where}")

        word = find_match(settings.sender_blacklist, sender_name, sender_address)
        if word is not None:
            return Classification(True, f"the sender contains the blacklisted word '{word}'")

        if subject:
            word = find_match(settings.subject_blacklist, subject)
            if word is not None:
                return Classification(True, f"the subject contains the blacklisted word '{word}'")

        word = find_match(settings.general_blacklist, sender_name, sender_address, subject)
        if word is not None:
            return Classification(True, f"the email contains the blacklisted word '{word}'")

        return Classification(False, "")

    def _record(
        self, subject: str, body: str, sender_name: str, sender_address: str, result: Classification
    ) -> None:
        if self.training_sink is None:
            return
        try:
            self.training_sink.append(subject, body, sender_name, sender_address, result.is_spam, result.reason)
        except Exception as e:
            logger.warning(f"Could not write training record: {e}")
