"""Tests for the spam classifier."""

import json
import tempfile

import pytest

from mailguard.errors import ConfigurationError
from mailguard.settings import SpamSettings
from mailguard.spam.classifier import (
    Classifier,
    count_non_whitelisted,
    count_special_characters,
    remove_punctuation,
)
from mailguard.spam.training import JsonlTrainingSink


class FakeReputation:
    """Blocks the addresses it was given."""

    def __init__(self, blocked=None):
        self.blocked = blocked or {}
        self.queries = []

    def is_blocked(self, ip):
        self.queries.append(ip)
        return self.blocked.get(ip)


class FailingSink:
    def append(self, *args):
        raise IOError("disk full")


class TestCharacterCounting:
    """Test the character tallies."""

    def test_tally_is_highest_single_character_frequency(self):
        tally = count_special_characters("aaa!!!!!", "a")
        assert tally.count == 5
        assert "5x !" in tally.details

    def test_tally_with_several_characters(self):
        tally = count_special_characters("!!??#", "")
        assert tally.count == 2

    def test_nothing_disallowed(self):
        tally = count_special_characters("hello", "helo")
        assert tally.count == 0
        assert tally.details == ""

    def test_non_whitelisted_ignores_spaces(self):
        assert count_non_whitelisted("ab cd", "ab") == 2

    def test_remove_punctuation(self):
        assert remove_punctuation("Hi, you! \tok?") == "Hiyouok"


class TestClassifier:
    """Test verdicts and their order."""

    @pytest.fixture
    def classifier(self):
        return Classifier()

    def classify(self, classifier, settings, subject="Hello", sender_name="Alice",
                 sender_address="alice@example.com", ips=()):
        return classifier.classify(ips, subject, "body", sender_name, sender_address, settings)

    def test_legitimate_mail(self, classifier):
        result = self.classify(classifier, SpamSettings())
        assert result.is_spam is False
        assert result.reason == ""

    def test_general_blacklist(self, classifier):
        settings = SpamSettings(general_blacklist=("bitcoin",))
        result = classifier.classify(
            [], "bitcoin wholesale", "", "Sam Spammer", "spammer@evil.net", settings
        )
        assert result.is_spam is True
        assert "bitcoin" in result.reason

    def test_whitelist_beats_blacklist(self, classifier):
        settings = SpamSettings(
            sender_whitelist=("@mydomain.com",),
            sender_blacklist=("partner",),
            subject_blacklist=("bitcoin",),
            general_blacklist=("bitcoin",),
        )
        result = self.classify(
            classifier, settings, subject="bitcoin", sender_name="partner",
            sender_address="partner@mydomain.com",
        )
        assert result.is_spam is False
        assert "white list" in result.reason

    def test_whitelist_beats_reputation(self):
        reputation = FakeReputation({"203.0.113.7": "SBL"})
        classifier = Classifier(reputation)
        settings = SpamSettings(sender_whitelist=("@mydomain.com",))
        result = self.classify(
            classifier, settings, sender_address="partner@mydomain.com", ips=["203.0.113.7"]
        )
        assert result.is_spam is False
        assert reputation.queries == []

    def test_non_latin_sender(self, classifier):
        result = self.classify(classifier, SpamSettings(), sender_name="Алиса")
        assert result.is_spam is True
        assert "non-latin" in result.reason

    def test_latin1_sender_is_not_non_latin(self, classifier):
        result = self.classify(classifier, SpamSettings(), sender_name="Jürgen")
        assert result.is_spam is False

    def test_non_latin_runs_before_whitelist(self, classifier):
        settings = SpamSettings(sender_whitelist=("@mydomain.com",))
        result = self.classify(
            classifier, settings, sender_name="Алиса", sender_address="alice@mydomain.com"
        )
        assert result.is_spam is True

    def test_blocklisted_ip(self):
        classifier = Classifier(FakeReputation({"203.0.113.7": "SBL,XBL"}))
        result = self.classify(classifier, SpamSettings(), ips=["10.0.0.1", "203.0.113.7"])
        assert result.is_spam is True
        assert "203.0.113.7" in result.reason
        assert "SBL,XBL" in result.reason

    def test_non_latin_subject_over_threshold(self, classifier):
        result = self.classify(classifier, SpamSettings(), subject="Привет мир")
        assert result.is_spam is True
        assert "non-latin in subject" in result.reason

    def test_non_latin_subject_at_threshold(self, classifier):
        result = self.classify(classifier, SpamSettings(), subject="Hi Юля")
        assert result.is_spam is False

    def test_special_characters_in_subject(self, classifier):
        settings = SpamSettings(special_character_whitelist="abcdefghijklmnopqrstuvwxyz ")
        result = self.classify(classifier, settings, subject="aaa!!!!!")
        assert result.is_spam is True
        assert result.reason == "5x ! in subject"

    def test_special_characters_at_threshold(self, classifier):
        settings = SpamSettings(special_character_whitelist="abcdefghijklmnopqrstuvwxyz ")
        result = self.classify(classifier, settings, subject="aaa!!!")
        assert result.is_spam is False

    def test_blank_special_whitelist_disables_check(self, classifier):
        settings = SpamSettings(special_character_whitelist="")
        result = self.classify(classifier, settings, subject="aaa!!!!!!!!")
        assert result.is_spam is False

    def test_blank_character_whitelist_allows_nothing(self, classifier):
        settings = SpamSettings(character_whitelist="")
        result = self.classify(classifier, settings, subject="Hi all")
        assert result.is_spam is True
        assert result.reason == "5 of 6 characters are non-latin in subject"

    def test_blank_character_whitelist_short_subject(self, classifier):
        settings = SpamSettings(character_whitelist="")
        result = self.classify(classifier, settings, subject="a b c")
        assert result.is_spam is False

    def test_special_characters_in_sender_email(self, classifier):
        result = self.classify(classifier, SpamSettings(), sender_address="a~~~~b@example.com")
        assert result.is_spam is True
        assert result.reason.endswith("in sender email")

    def test_sender_blacklist_wildcard(self, classifier):
        settings = SpamSettings(sender_blacklist=("[casino*bonus]",))
        result = self.classify(classifier, settings, sender_address="casino-mega-bonus@example.com")
        assert result.is_spam is True
        assert "[casino*bonus]" in result.reason

    def test_subject_blacklist_folds_accents(self, classifier):
        settings = SpamSettings(subject_blacklist=("viagra",))
        result = self.classify(classifier, settings, subject="Cheap VÍAGRA")
        assert result.is_spam is True
        assert "subject" in result.reason

    def test_classification_is_repeatable(self, classifier):
        settings = SpamSettings(general_blacklist=("bitcoin",))
        first = self.classify(classifier, settings, subject="bitcoin")
        second = self.classify(classifier, settings, subject="bitcoin")
        assert first == second

    def test_missing_settings(self, classifier):
        with pytest.raises(ConfigurationError):
            classifier.classify([], "s", "b", "n", "a@example.com", None)

    def test_none_inputs_are_empty(self, classifier):
        result = classifier.classify(None, None, None, None, None, SpamSettings())
        assert result.is_spam is False


class TestTrainingSink:
    """Test that verdicts are recorded."""

    def test_records_every_verdict(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".jsonl", delete=False) as f:
            path = f.name
        classifier = Classifier(training_sink=JsonlTrainingSink(path))
        settings = SpamSettings(general_blacklist=("bitcoin",))

        classifier.classify([], "bitcoin", "buy now", "Sam", "sam@evil.net", settings)
        classifier.classify([], "Lunch", "at noon", "Bob", "bob@example.com", settings)

        with open(path, encoding="utf-8") as f:
            records = [json.loads(line) for line in f]
        assert [r["is_spam"] for r in records] == [True, False]
        assert records[0]["body"] == "buy now"
        assert "bitcoin" in records[0]["reason"]

    def test_sink_failure_does_not_change_verdict(self):
        classifier = Classifier(training_sink=FailingSink())
        settings = SpamSettings(general_blacklist=("bitcoin",))
        result = classifier.classify([], "bitcoin", "", "Sam", "sam@evil.net", settings)
        assert result.is_spam is True
