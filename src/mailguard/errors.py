"""Exception types shared across MailGuard."""

from typing import Iterable, Optional


class MailGuardError(Exception):
    """Base class for MailGuard errors."""

    pass


class ConfigurationError(MailGuardError):
    """Missing or invalid configuration."""

    pass


class ConnectivityError(MailGuardError):
    """Mail server or DNS unreachable or timed out."""

    pass


class ResolutionDegraded(ConnectivityError):
    """Reputation lookup was inconclusive."""

    pass


class FolderNotFoundError(MailGuardError):
    """Requested mailbox folder does not exist."""

    def __init__(self, folder: str, existing: Iterable[str] = ()):
        self.folder = folder
        self.existing = list(existing)
        super().__init__(
            f"Folder '{folder}' not found on the mail server "
            f"(existing folders: {', '.join(self.existing) or 'none'})"
        )


class ActionExecutionError(MailGuardError):
    """A rule action failed."""

    def __init__(self, action: str, cause: Optional[BaseException] = None):
        self.action = action
        self.cause = cause
        message = f"Action '{action}' failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
