"""Append-only store of classified messages for later training."""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class TrainingSink(Protocol):
    """Receives one record per classification."""

    def append(
        self,
        subject: str,
        body: str,
        sender_name: str,
        sender_address: str,
        is_spam: bool,
        reason: str,
    ) -> None:
        ...


class JsonlTrainingSink:
    """Write one JSON object per line to a file."""

    def __init__(self, file_path: str):
        self.file_path = Path(file_path)
        self._lock = threading.Lock()

    def append(
        self,
        subject: str,
        body: str,
        sender_name: str,
        sender_address: str,
        is_spam: bool,
        reason: str,
    ) -> None:
        record = {
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "subject": subject,
            "body": body,
            "sender_name": sender_name,
            "sender_address": sender_address,
            "is_spam": is_spam,
            "reason": reason,
        }
        line = json.dumps(record, ensure_ascii=False)
        with self._lock:
            with open(self.file_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        logger.debug(f"Training record written to {self.file_path.name}")
