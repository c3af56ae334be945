"""State carried across runs."""

import json
import logging
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "mailguard_state.json"


class StateManager:
    """Persist the blocked-sender list between program runs."""

    def __init__(self, state_file: str = DEFAULT_STATE_FILE):
        self.state_file = Path(state_file)
        self.blocked_senders: List[str] = []
        self._state_version = "1.0"
        self._load()

    def _load(self) -> None:
        """Load state from file."""
        if not self.state_file.exists():
            return

        try:
            with open(self.state_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            self.blocked_senders = list(data.get("blocked_senders", []))
            logger.info(f"Loaded {len(self.blocked_senders)} blocked senders from state")
        except (json.JSONDecodeError, IOError, AttributeError) as e:
            logger.warning(f"Failed to load state file: {e}")
            self.blocked_senders = []

    def save(self) -> None:
        """Save state to file."""
        try:
            with open(self.state_file, "w", encoding="utf-8") as f:
                json.dump(
                    {
                        "version": self._state_version,
                        "blocked_senders": self.blocked_senders,
                    },
                    f,
                    indent=2,
                )
        except IOError as e:
            logger.error(f"Failed to save state file: {e}")
