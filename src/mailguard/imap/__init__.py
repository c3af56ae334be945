"""IMAP mailbox access."""
