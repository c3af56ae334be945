"""MailGuard entry point."""

import argparse
import logging
import signal
import sys
from threading import Event
from typing import List, Optional

from dotenv import load_dotenv

from . import __version__
from .config import load_config, setup_logging
from .dedup import DedupCache
from .errors import ConfigurationError, MailGuardError
from .logging_format import console
from .settings import RulesFile
from .spam.training import JsonlTrainingSink
from .state import StateManager
from .workflow.runner import WorkflowRunner

logger = logging.getLogger(__name__)

# Global stop event for graceful shutdown
stop_event = Event()

# Set by SIGHUP, handled between passes
reload_event = Event()


def signal_handler(signum, frame):
    """Handle shutdown signals."""
    print("\n Shutdown signal received")
    stop_event.set()


def reload_handler(signum, frame):
    """Request a fresh start of the dedup cache and the resolver."""
    reload_event.set()


def apply_pending_reload(runner: WorkflowRunner) -> bool:
    """Run a SIGHUP request, if any. Returns True if one was handled."""
    if not reload_event.is_set():
        return False
    reload_event.clear()
    console.status("Forgetting processed emails and reinitializing the resolver")
    runner.forget_processed_emails()
    try:
        runner.reinitialize_resolver()
    except MailGuardError as e:
        console.error(f"Could not reinitialize the resolver: {e}")
    return True


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mailguard",
        description="Classify unread mail and apply per-account rules.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="run a single pass over all accounts and exit",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    # Load .env file if present
    load_dotenv()

    try:
        config = load_config()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.log_level, config.log_dir, config.log_retention_days)
    console.banner(f"v{__version__}")

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    state = StateManager(config.state_file)
    training_sink = JsonlTrainingSink(config.training_file) if config.training_file else None
    runner = WorkflowRunner(
        RulesFile(config.rules_file),
        dedup=DedupCache(),
        training_sink=training_sink,
    )

    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, reload_handler)

    try:
        runner.reload_if_changed()
    except MailGuardError as e:
        console.error(f"Rules error: {e}")
        return 1

    console.info(f"Rules loaded from {config.rules_file}")
    if not args.once:
        console.status(f"Checking every {config.check_interval} seconds")

    try:
        while not stop_event.is_set():
            apply_pending_reload(runner)
            results = runner.process_all_accounts()
            failed = [r.account for r in results if r.error]
            if failed:
                console.error(f"Pass finished with errors in: {', '.join(failed)}")
            if args.once:
                break
            stop_event.wait(config.check_interval)
    except Exception as e:
        console.error(f"Unexpected error: {e}")
        logger.exception("Unexpected error")
        return 1
    finally:
        state.save()

    console.info("MailGuard stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
