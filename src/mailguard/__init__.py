"""MailGuard: rule-based spam filtering for IMAP mailboxes."""

__version__ = "0.3.0"
