"""Match rules against message facts and run their actions."""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from ..errors import ActionExecutionError, MailGuardError
from ..facts import MessageFacts
from ..logging_format import DecisionCode, format_decision, format_summary
from ..settings import Rule, SpamSettings
from ..spam.classifier import Classifier
from .actions import ActionContext

logger = logging.getLogger(__name__)

NO_CONDITION = "no condition"


def effective_settings(rule: Rule, general: Optional[SpamSettings]) -> Optional[SpamSettings]:
    """The rule's own spam settings if they are usable, else the general ones."""
    override = rule.spamfilter_settings
    if override is not None and not override.is_blank:
        return override
    return general


def first_word_match(words: Iterable[str], *texts: str) -> Optional[str]:
    """First word found (case-insensitive) in any of the texts."""
    lowered = [text.lower() for text in texts if text]
    for word in words:
        needle = word.strip().lower()
        if not needle:
            continue
        if any(needle in text for text in lowered):
            return word
    return None


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def date_in_range(
    date: Optional[datetime], start: Optional[datetime], end: Optional[datetime]
) -> bool:
    """Inclusive range check. Naive timestamps count as UTC; undated mail never matches."""
    if date is None:
        return False
    date = _aware(date)
    if start is not None and date < _aware(start):
        return False
    if end is not None and date > _aware(end):
        return False
    return True


def _has_words(words: Iterable[str]) -> bool:
    return any(word.strip() for word in words)


class RuleEvaluator:
    """Evaluate rule conditions in a fixed order and dispatch actions."""

    def __init__(self, classifier: Classifier, general_settings: Optional[SpamSettings] = None):
        self.classifier = classifier
        self.general_settings = general_settings

    def evaluate(
        self, rule: Rule, facts: MessageFacts, settings: Optional[SpamSettings] = None
    ) -> Tuple[bool, str]:
        """Check all conditions of a rule. Returns (matched, reasons)."""
        reasons: List[str] = []

        if rule.if_mail_is_spam:
            active = effective_settings(rule, settings or self.general_settings)
            classification = self.classifier.classify(
                facts.ip_addresses,
                facts.subject,
                facts.body,
                facts.sender_name,
                facts.sender_address,
                active,
            )
            if not classification.is_spam:
                logger.debug(format_decision(DecisionCode.OK, facts, classification.reason))
                return False, classification.reason
            logger.info(format_decision(DecisionCode.SPAM, facts, classification.reason))
            reasons.append(f"spam ({classification.reason})")

        conditions = (
            ("sender", rule.if_mail_was_sent_by, (facts.sender_name, facts.sender_address)),
            ("receiver", rule.if_mail_was_sent_to, (facts.receiver,)),
            ("cc receiver", rule.if_mail_was_sent_to_cc, (facts.cc_receiver,)),
            ("header", rule.if_mail_contains_words_in_header, (facts.headers,)),
            ("subject", rule.if_mail_contains_words_in_subject, (facts.subject,)),
            ("body", rule.if_mail_contains_words_in_body, (facts.body,)),
        )
        for category, words, texts in conditions:
            if not _has_words(words):
                continue
            word = first_word_match(words, *texts)
            if word is None:
                return False, f"{category} does not contain any of the words"
            reasons.append(f"{category} contains '{word}'")

        if rule.date_range_from or rule.date_range_to:
            if not date_in_range(facts.date, rule.date_range_from, rule.date_range_to):
                return False, "date is outside the date range"
            reasons.append("date is inside the date range")

        return True, "; ".join(reasons) or NO_CONDITION

    def execute_actions(self, rule: Rule, facts: MessageFacts, context: ActionContext) -> bool:
        """Run the rule's actions in order. True if at least one succeeded.

        A failing action is logged and re-raised; later actions of the
        rule are not attempted.
        """
        succeeded = False
        for action in rule.actions:
            try:
                description = action.execute(facts, context)
            except MailGuardError as e:
                logger.error(f"Rule '{rule.name}': {action.kind.key} failed for {format_summary(facts)}: {e}")
                raise
            except Exception as e:
                logger.error(f"Rule '{rule.name}': {action.kind.key} failed for {format_summary(facts)}: {e}")
                raise ActionExecutionError(action.kind.key, e) from e

            succeeded = True
            logger.info(format_decision(action.kind.decision, facts, f"rule '{rule.name}' {description}"))
        return succeeded
