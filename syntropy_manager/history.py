"""
Setup history logging with structured JSON-Lines.
"""
import json
import logging
import threading
import uuid
from pathlib import Path
from typing import List, Optional

from .models import HistoryEntry
from .utils import Clock, utc_now

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = ("passphrase", "password", "token", "secret", "private_key")


def mask_sensitive(text: str) -> str:
    """Mask anything that looks like key=value for a sensitive key."""
    for key in SENSITIVE_KEYS:
        if key in text.lower():
            return f"<{key} redacted>"
    return text


class SetupHistory:
    """Appends setup/reset/restore events to logs/setup_history.jsonl."""

    def __init__(self, log_file: Path, clock: Clock = utc_now):
        self.log_file = log_file
        self._clock = clock
        self._lock = threading.Lock()

    def record(
        self,
        action: str,
        status: str,
        interface: str = "",
        user_id: str = "",
        duration: float = 0.0,
        config_path: str = "",
        detail: str = "",
    ) -> HistoryEntry:
        """Log a structured setup event. Write failures are logged, never raised."""
        entry = HistoryEntry(
            id=f"{action}_{uuid.uuid4().hex[:12]}",
            timestamp=self._clock(),
            action=action,
            status=status,
            interface=interface,
            user_id=user_id,
            duration=duration,
            config_path=config_path,
            detail=mask_sensitive(detail),
        )
        line = entry.model_dump_json()
        with self._lock:
            try:
                self.log_file.parent.mkdir(parents=True, exist_ok=True)
                with self.log_file.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                logger.error("failed to write setup history to %s: %s", self.log_file, e)
        return entry

    def entries(
        self,
        interface: str = "",
        user_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[HistoryEntry]:
        """Most recent entries first, filtered by interface and (when given) user."""
        if not self.log_file.exists():
            return []
        with self._lock:
            with self.log_file.open("r", encoding="utf-8") as f:
                lines = f.readlines()

        parsed: List[HistoryEntry] = []
        for line in reversed(lines):
            if not line.strip():
                continue
            try:
                entry = HistoryEntry.model_validate(json.loads(line))
            except ValueError as e:
                logger.warning("skipping malformed history line: %s", e)
                continue
            if interface and entry.interface != interface:
                continue
            if user_id and entry.user_id != user_id:
                continue
            parsed.append(entry)
            if len(parsed) >= limit:
                break
        return parsed
