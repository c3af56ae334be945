"""Rule set model and the JSON rules file it is loaded from."""

import json
import logging
import os
from datetime import datetime, timezone
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ConfigurationError
from .rules.actions import Action, parse_action

logger = logging.getLogger(__name__)

DEFAULT_DNSBL_ZONE = "zen.spamhaus.org"

# Latin letters, digits, German umlauts and common punctuation
DEFAULT_CHARACTER_WHITELIST = (
    "abcdefghijklmnopqrstuvwxyzäöüß"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZÄÖÜ"
    "0123456789"
    "<>|,;.:-_#'+*~´`?\\!\"§$%&/()[]=@ "
)

DEFAULT_SPECIAL_CHARACTER_WHITELIST = (
    "abcdefghijklmnopqrstuvwxyzäöüß"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZÄÖÜ"
    "0123456789"
    "?!$%&/()[]<>'#*@_.,:;- "
)


@dataclass(frozen=True)
class SpamSettings:
    """Spam filter thresholds, alphabets and word lists."""

    character_whitelist: str = DEFAULT_CHARACTER_WHITELIST
    special_character_whitelist: str = DEFAULT_SPECIAL_CHARACTER_WHITELIST
    special_characters_sender_email_threshold: int = 3
    special_characters_sender_name_threshold: int = 3
    special_characters_subject_threshold: int = 3
    non_latin_characters_subject_threshold: int = 3
    sender_whitelist: Tuple[str, ...] = ()
    sender_blacklist: Tuple[str, ...] = ()
    subject_blacklist: Tuple[str, ...] = ()
    general_blacklist: Tuple[str, ...] = ()
    recheck_every_unread_message: bool = False

    @property
    def is_blank(self) -> bool:
        """True if no special-character whitelist is configured."""
        return not self.special_character_whitelist.strip()


@dataclass(frozen=True)
class Rule:
    """A named set of conditions and the actions fired when all match."""

    name: str
    if_mail_is_spam: bool = False
    if_mail_was_sent_by: Tuple[str, ...] = ()
    if_mail_was_sent_to: Tuple[str, ...] = ()
    if_mail_was_sent_to_cc: Tuple[str, ...] = ()
    if_mail_contains_words_in_header: Tuple[str, ...] = ()
    if_mail_contains_words_in_subject: Tuple[str, ...] = ()
    if_mail_contains_words_in_body: Tuple[str, ...] = ()
    date_range_from: Optional[datetime] = None
    date_range_to: Optional[datetime] = None
    actions: Tuple[Action, ...] = ()
    stop_after_action: bool = False
    spamfilter_settings: Optional[SpamSettings] = None


@dataclass(frozen=True)
class SMTPSettings:
    """Outbound mail server used by forward actions."""

    host: str
    port: int = 587
    username: str = ""
    password: str = ""
    use_ssl: bool = False
    sender: str = ""


@dataclass(frozen=True)
class MailAccount:
    """An IMAP postbox and the rules evaluated against its inbox."""

    name: str
    imap_server: str
    username: str
    password: str
    imap_port: int = 993
    security: str = "ssl"  # ssl, starttls or none
    inbox_folder: str = "INBOX"
    smtp: Optional[SMTPSettings] = None
    rules: Tuple[Rule, ...] = ()


@dataclass(frozen=True)
class DnsblSettings:
    """Reputation resolver options."""

    zone: str = DEFAULT_DNSBL_ZONE
    timeout_seconds: float = 10.0
    quiet: bool = True
    use_ipv6: bool = False
    use_cache: bool = True
    feeds: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RuleSet:
    """Immutable snapshot of the rules file."""

    accounts: Tuple[MailAccount, ...] = ()
    general_settings: SpamSettings = field(default_factory=SpamSettings)
    dnsbl: DnsblSettings = field(default_factory=DnsblSettings)


def _word_list(data: Dict[str, Any], key: str) -> Tuple[str, ...]:
    value = data.get(key) or []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ConfigurationError(f"'{key}' must be a list of strings")
    return tuple(str(item) for item in value)


def _int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid integer value for {key}: {value}")


def _date(data: Dict[str, Any], key: str) -> Optional[datetime]:
    """ISO 8601 date or timestamp; without an offset it is taken as UTC."""
    value = data.get(key)
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        raise ConfigurationError(f"Invalid date for {key}: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _secret(data: Dict[str, Any], key: str) -> str:
    """Read a secret either inline or from the variable named by '<key>_env'."""
    env_key = data.get(f"{key}_env")
    if env_key:
        value = os.environ.get(env_key)
        if value is None:
            raise ConfigurationError(f"Missing required environment variable: {env_key}")
        return value
    return str(data.get(key, ""))


def parse_spam_settings(data: Dict[str, Any]) -> SpamSettings:
    """Build SpamSettings from a rules file section."""
    defaults = SpamSettings()
    return SpamSettings(
        character_whitelist=data.get("character_whitelist", defaults.character_whitelist),
        special_character_whitelist=data.get(
            "special_character_whitelist", defaults.special_character_whitelist
        ),
        special_characters_sender_email_threshold=_int(
            data, "special_characters_sender_email_threshold",
            defaults.special_characters_sender_email_threshold,
        ),
        special_characters_sender_name_threshold=_int(
            data, "special_characters_sender_name_threshold",
            defaults.special_characters_sender_name_threshold,
        ),
        special_characters_subject_threshold=_int(
            data, "special_characters_subject_threshold",
            defaults.special_characters_subject_threshold,
        ),
        non_latin_characters_subject_threshold=_int(
            data, "non_latin_characters_subject_threshold",
            defaults.non_latin_characters_subject_threshold,
        ),
        sender_whitelist=_word_list(data, "sender_whitelist"),
        sender_blacklist=_word_list(data, "sender_blacklist"),
        subject_blacklist=_word_list(data, "subject_blacklist"),
        general_blacklist=_word_list(data, "general_blacklist"),
        recheck_every_unread_message=bool(data.get("recheck_every_unread_message", False)),
    )


def parse_rule(data: Dict[str, Any]) -> Rule:
    """Build a Rule from a rules file entry."""
    name = data.get("name")
    if not name:
        raise ConfigurationError("Every rule needs a name")

    override = data.get("spamfilter_settings")
    actions = tuple(parse_action(item) for item in data.get("actions") or [])
    date_range_from = _date(data, "date_range_from")
    date_range_to = _date(data, "date_range_to")
    if date_range_from and date_range_to and date_range_from > date_range_to:
        raise ConfigurationError(f"Rule {name}: date_range_from is after date_range_to")

    return Rule(
        name=name,
        if_mail_is_spam=bool(data.get("if_mail_is_spam", False)),
        if_mail_was_sent_by=_word_list(data, "if_mail_was_sent_by"),
        if_mail_was_sent_to=_word_list(data, "if_mail_was_sent_to"),
        if_mail_was_sent_to_cc=_word_list(data, "if_mail_was_sent_to_cc"),
        if_mail_contains_words_in_header=_word_list(data, "if_mail_contains_words_in_header"),
        if_mail_contains_words_in_subject=_word_list(data, "if_mail_contains_words_in_subject"),
        if_mail_contains_words_in_body=_word_list(data, "if_mail_contains_words_in_body"),
        date_range_from=date_range_from,
        date_range_to=date_range_to,
        actions=actions,
        stop_after_action=bool(data.get("stop_after_action", False)),
        spamfilter_settings=parse_spam_settings(override) if override else None,
    )


def parse_account(data: Dict[str, Any]) -> MailAccount:
    """Build a MailAccount from a rules file entry."""
    for key in ("name", "imap_server", "username"):
        if not data.get(key):
            raise ConfigurationError(f"Mail account is missing '{key}'")

    security = str(data.get("security", "ssl")).lower()
    if security not in ("ssl", "starttls", "none"):
        raise ConfigurationError(
            f"Account {data['name']}: security must be ssl, starttls or none"
        )

    smtp_data = data.get("smtp")
    smtp = None
    if smtp_data:
        if not smtp_data.get("host"):
            raise ConfigurationError(f"Account {data['name']}: smtp section needs a host")
        smtp = SMTPSettings(
            host=smtp_data["host"],
            port=_int(smtp_data, "port", 587),
            username=str(smtp_data.get("username", data["username"])),
            password=_secret(smtp_data, "password") or _secret(data, "password"),
            use_ssl=bool(smtp_data.get("use_ssl", False)),
            sender=str(smtp_data.get("sender", data["username"])),
        )

    return MailAccount(
        name=data["name"],
        imap_server=data["imap_server"],
        imap_port=_int(data, "imap_port", 993),
        security=security,
        username=data["username"],
        password=_secret(data, "password"),
        inbox_folder=data.get("inbox_folder", "INBOX"),
        smtp=smtp,
        rules=tuple(parse_rule(item) for item in data.get("rules") or []),
    )


def parse_rule_set(data: Dict[str, Any]) -> RuleSet:
    """Build a RuleSet from the decoded rules file."""
    dnsbl_data = data.get("dnsbl") or {}
    try:
        timeout = float(dnsbl_data.get("timeout_seconds", 10))
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid timeout_seconds: {dnsbl_data.get('timeout_seconds')}"
        )

    dnsbl = DnsblSettings(
        zone=dnsbl_data.get("zone", DEFAULT_DNSBL_ZONE),
        timeout_seconds=timeout,
        quiet=bool(dnsbl_data.get("quiet", True)),
        use_ipv6=bool(dnsbl_data.get("use_ipv6", False)),
        use_cache=bool(dnsbl_data.get("use_cache", True)),
        feeds=_word_list(dnsbl_data, "feeds"),
    )

    return RuleSet(
        accounts=tuple(parse_account(item) for item in data.get("accounts") or []),
        general_settings=parse_spam_settings(data.get("general_spamfilter_settings") or {}),
        dnsbl=dnsbl,
    )


def load_rule_set(path: str) -> RuleSet:
    """Read and validate a rules file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Rules file {path} is not valid JSON: {e}")
    except IOError as e:
        raise ConfigurationError(f"Cannot read rules file {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Rules file {path} must contain a JSON object")
    return parse_rule_set(data)


class RulesFile:
    """Rules file that is re-read only when its modification time changes.

    ``read_if_changed`` parses a changed file without adopting it, so a
    caller can finish its own setup first and then ``commit`` the snapshot.
    Until then the previous snapshot stays active and the change is seen
    again on the next check.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.rule_set: Optional[RuleSet] = None
        self._mtime: Optional[float] = None

    def read_if_changed(self) -> Optional[Tuple[RuleSet, float]]:
        """New snapshot and its modification time, or None if unchanged."""
        try:
            mtime = self.path.stat().st_mtime
        except OSError as e:
            raise ConfigurationError(f"Cannot access rules file {self.path}: {e}")

        if self.rule_set is not None and mtime == self._mtime:
            return None

        if self.rule_set is not None:
            logger.info(f"Rules file {self.path.name} changed, reloading")
        return load_rule_set(str(self.path)), mtime

    def commit(self, rule_set: RuleSet, mtime: float) -> None:
        """Adopt a snapshot returned by read_if_changed."""
        self.rule_set = rule_set
        self._mtime = mtime
        logger.info(
            f"Loaded {len(rule_set.accounts)} account(s) from {self.path.name}: "
            f"{', '.join(a.name for a in rule_set.accounts)}"
        )

    def load_if_changed(self) -> bool:
        """Reload the snapshot if the file changed. Returns True on reload."""
        pending = self.read_if_changed()
        if pending is None:
            return False
        self.commit(*pending)
        return True


def describe_rules(rules: List[Rule]) -> str:
    """One-line summary of rule names for logging."""
    return ", ".join(rule.name for rule in rules) or "none"
