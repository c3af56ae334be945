"""Process configuration for MailGuard."""

import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from .errors import ConfigurationError


@dataclass
class Config:
    """Application configuration."""

    rules_file: str
    check_interval: int  # seconds between passes
    state_file: str
    training_file: Optional[str]  # None disables the training sink
    log_level: str
    log_dir: str
    log_retention_days: int


def _get_required(key: str) -> str:
    """Get required environment variable or raise error."""
    value = os.environ.get(key)
    if not value:
        raise ConfigurationError(f"Missing required environment variable: {key}")
    return value


def _get_optional(key: str, default: str) -> str:
    """Get optional environment variable with default."""
    return os.environ.get(key, default)


def _get_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid integer value for {key}: {value}")


def load_config() -> Config:
    """Load and validate configuration from environment variables."""
    check_interval = _get_int("MAILGUARD_CHECK_INTERVAL", 300)
    if check_interval < 1:
        raise ConfigurationError("MAILGUARD_CHECK_INTERVAL must be at least 1 second")

    retention = _get_int("LOG_RETENTION_DAYS", 3)
    if retention < 0:
        raise ConfigurationError("LOG_RETENTION_DAYS must not be negative")

    log_level = _get_optional("LOG_LEVEL", "INFO").upper()
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigurationError(f"Invalid LOG_LEVEL: {log_level}")

    return Config(
        rules_file=_get_required("MAILGUARD_RULES_FILE"),
        check_interval=check_interval,
        state_file=_get_optional("MAILGUARD_STATE_FILE", "mailguard_state.json"),
        training_file=os.environ.get("MAILGUARD_TRAINING_FILE") or None,
        log_level=log_level,
        log_dir=_get_optional("LOG_DIR", "logs"),
        log_retention_days=retention,
    )


def cleanup_old_logs(log_dir: str, days: int) -> None:
    """Delete log files older than N days."""
    cutoff = datetime.now() - timedelta(days=days)
    log_path = Path(log_dir)

    if not log_path.exists():
        return

    for log_file in log_path.glob("*.log*"):
        try:
            mtime = datetime.fromtimestamp(log_file.stat().st_mtime)
            if mtime < cutoff:
                log_file.unlink()
                logging.info(f"Deleted old log: {log_file.name}")
        except OSError as e:
            logging.warning(f"Could not delete {log_file.name}: {e}")


def setup_logging(
    level: str,
    log_dir: str = "logs",
    retention_days: int = 3
) -> None:
    """Configure logging for the application."""
    from logging.handlers import TimedRotatingFileHandler

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    cleanup_old_logs(log_dir, retention_days)

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(log_format, date_format))

    # Daily rotation
    file_handler = TimedRotatingFileHandler(
        str(Path(log_dir) / "mailguard.log"),
        when='midnight',
        interval=1,
        backupCount=retention_days,
        encoding='utf-8',
    )
    file_handler.suffix = "%Y-%m-%d"
    file_handler.setFormatter(logging.Formatter(log_format, date_format))

    logging.basicConfig(
        level=numeric_level,
        handlers=[console_handler, file_handler],
    )

    # requests logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
