"""One pass over all configured accounts."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from ..dedup import DedupCache
from ..errors import ActionExecutionError, FolderNotFoundError, MailGuardError
from ..facts import MessageFacts, extract_facts
from ..imap.client import IMAPMailbox, InboundMessage
from ..reputation.resolver import ReputationResolver
from ..rules.actions import ActionContext
from ..rules.evaluator import RuleEvaluator, effective_settings
from ..settings import DnsblSettings, MailAccount, RuleSet, RulesFile, SMTPSettings, describe_rules
from ..smtp import SMTPSender
from ..spam.classifier import Classifier
from ..spam.training import TrainingSink

logger = logging.getLogger(__name__)


@dataclass
class MessageResult:
    """What happened to one message."""

    message_id: str
    skipped: bool = False
    rules_matched: List[str] = field(default_factory=list)
    acted: bool = False


@dataclass
class AccountResult:
    """Outcome of one account's pass."""

    account: str
    messages: List[MessageResult] = field(default_factory=list)
    error: Optional[str] = None


def build_resolver(dnsbl: DnsblSettings) -> ReputationResolver:
    """Resolver configured from the rules file."""
    return ReputationResolver(
        zone=dnsbl.zone,
        timeout=dnsbl.timeout_seconds,
        quiet=dnsbl.quiet,
        use_ipv6=dnsbl.use_ipv6,
        use_cache=dnsbl.use_cache,
    )


class WorkflowRunner:
    """Evaluate every account's rules against its unread mail.

    The rule set is re-read when the rules file changes; a reload forgets
    all processed messages so unread mail is evaluated against the new
    rules. Accounts are processed one after another and a failure in one
    account never stops the others.
    """

    def __init__(
        self,
        rules_file: RulesFile,
        dedup: Optional[DedupCache] = None,
        training_sink: Optional[TrainingSink] = None,
        mailbox_factory: Callable[[MailAccount], IMAPMailbox] = IMAPMailbox,
        sender_factory: Callable[[SMTPSettings], SMTPSender] = SMTPSender,
        resolver_factory: Callable[[DnsblSettings], ReputationResolver] = build_resolver,
    ):
        self.rules_file = rules_file
        self.dedup = dedup if dedup is not None else DedupCache()
        self.training_sink = training_sink
        self.mailbox_factory = mailbox_factory
        self.sender_factory = sender_factory
        self.resolver_factory = resolver_factory
        self.rule_set: Optional[RuleSet] = None
        self.resolver: Optional[ReputationResolver] = None
        self.evaluator: Optional[RuleEvaluator] = None

    def reload_if_changed(self) -> bool:
        """Pick up a changed rules file. Returns True if a new snapshot is active.

        The new resolver, classifier and evaluator are built before anything
        is replaced. If that fails the previous snapshot stays active and the
        file is read again on the next pass.
        """
        pending = self.rules_file.read_if_changed()
        if pending is None:
            return False

        rule_set, mtime = pending
        resolver = self.resolver_factory(rule_set.dnsbl)
        self._seed_feeds(resolver, rule_set.dnsbl.feeds)
        evaluator = RuleEvaluator(
            Classifier(resolver, self.training_sink), rule_set.general_settings
        )

        self.rules_file.commit(rule_set, mtime)
        self.rule_set = rule_set
        self.resolver = resolver
        self.evaluator = evaluator
        self.dedup.reset()
        return True

    @staticmethod
    def _seed_feeds(resolver: ReputationResolver, feeds: Iterable[str]) -> None:
        for feed in feeds:
            resolver.add_feed(feed)

    def forget_processed_emails(self) -> None:
        """Evaluate all unread mail again on the next pass."""
        self.dedup.reset()

    def reinitialize_resolver(self) -> None:
        """Drop cached reputations, reload static feeds and rediscover name servers."""
        if self.resolver is None:
            return
        self.resolver.reset()
        self._seed_feeds(self.resolver, self.rule_set.dnsbl.feeds)
        self.resolver.initialize()
        logger.info("Reputation resolver reinitialized")

    def process_all_accounts(self) -> List[AccountResult]:
        """Run one pass over every account."""
        try:
            self.reload_if_changed()
        except MailGuardError as e:
            if self.rule_set is None:
                logger.error(f"Cannot load rules: {e}")
                return []
            logger.error(f"Cannot reload rules, keeping the previous ones: {e}")

        results = []
        for account in self.rule_set.accounts:
            try:
                results.append(self.process_account(account))
            except Exception as e:
                logger.error(f"Error processing account {account.name}: {e}")
                results.append(AccountResult(account=account.name, error=str(e)))
        return results

    def process_account(self, account: MailAccount) -> AccountResult:
        """Evaluate the account's rules against its unread inbox messages."""
        logger.debug(f"{account.name}: checking folder '{account.inbox_folder}' "
                     f"with rules {describe_rules(list(account.rules))}")
        result = AccountResult(account=account.name)

        with self.mailbox_factory(account) as mailbox:
            inbox = mailbox.resolve_folder(account.inbox_folder)
            messages = mailbox.fetch_unread(inbox)
            if not messages:
                logger.debug(f"{account.name}: no new emails")
                return result

            sender = self.sender_factory(account.smtp) if account.smtp else None
            for message in messages:
                try:
                    result.messages.append(
                        self.process_message(account, message, mailbox, inbox, sender)
                    )
                except (ActionExecutionError, FolderNotFoundError) as e:
                    logger.error(f"{account.name}: stopped rules for message {message.uid}: {e}")
        return result

    def process_message(
        self,
        account: MailAccount,
        message: InboundMessage,
        mailbox: IMAPMailbox,
        folder: str,
        sender: Optional[SMTPSender] = None,
    ) -> MessageResult:
        """Run the account's rules, in order, against one message."""
        facts = extract_facts(message)
        dedup_key = f"{account.name}:{facts.message_id}"
        result = MessageResult(message_id=facts.message_id)

        if not self._recheck_every_unread_message(account):
            if self.dedup.seen(dedup_key):
                result.skipped = True
                return result

        context = ActionContext(
            mailbox=mailbox,
            message=message,
            folder=folder,
            sender=sender,
            sender_address=account.smtp.sender if account.smtp else account.username,
        )
        try:
            self._apply_rules(account, facts, context, result)
        except MailGuardError:
            # Retry on the next pass
            self.dedup.forget(dedup_key)
            raise
        return result

    def _recheck_every_unread_message(self, account: MailAccount) -> bool:
        general = self.rule_set.general_settings
        if general.recheck_every_unread_message:
            return True
        return any(
            effective_settings(rule, general).recheck_every_unread_message
            for rule in account.rules
        )

    def _apply_rules(
        self, account: MailAccount, facts: MessageFacts, context: ActionContext, result: MessageResult
    ) -> None:
        for rule in account.rules:
            matched, reasons = self.evaluator.evaluate(rule, facts)
            if not matched:
                continue

            logger.debug(f"Rule '{rule.name}' matched: {reasons}")
            result.rules_matched.append(rule.name)
            acted = self.evaluator.execute_actions(rule, facts, context)
            result.acted = result.acted or acted
            if acted and rule.stop_after_action:
                break
