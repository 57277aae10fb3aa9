"""Task history: usage counts and recency for finished task texts."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 500


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TaskHistoryEntry(BaseModel):
    task_text: str
    usage_count: int = 1
    last_used: str = ""
    first_used: str = ""


_HISTORY_ADAPTER = TypeAdapter(list[TaskHistoryEntry])


class TaskHistoryRepository:
    """JSON-file backed history. I/O failures degrade to in-memory only."""

    def __init__(self, path: Path, max_entries: int = MAX_HISTORY_ENTRIES):
        self.path = Path(path)
        self.max_entries = max_entries
        self._entries: list[TaskHistoryEntry] = []
        self.load()

    def load(self) -> None:
        if not self.path.exists():
            self._entries = []
            return
        try:
            self._entries = _HISTORY_ADAPTER.validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as e:
            logger.warning(f"Error loading task history from {self.path}: {e}")
            self._entries = []

    def record_usage(self, task_text: str) -> TaskHistoryEntry | None:
        """Count one more use of task_text (case-insensitive match)."""
        text = (task_text or "").strip()
        if not text:
            return None

        now = _now_iso()
        entry = self.find(text)
        if entry is not None:
            entry.usage_count += 1
            entry.last_used = now
        else:
            entry = TaskHistoryEntry(task_text=text, usage_count=1, last_used=now, first_used=now)
            self._entries.append(entry)

        self.cleanup()
        self._save()
        return entry

    def find(self, task_text: str) -> TaskHistoryEntry | None:
        needle = task_text.strip().casefold()
        for entry in self._entries:
            if entry.task_text.casefold() == needle:
                return entry
        return None

    def all_tasks(self) -> list[TaskHistoryEntry]:
        """Entries, most recently used first."""
        return sorted(self._entries, key=lambda e: e.last_used, reverse=True)

    def cleanup(self) -> int:
        """Keep only the most recently used max_entries. Returns how many were dropped."""
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return 0
        self._entries = self.all_tasks()[:self.max_entries]
        return overflow

    def _save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(_HISTORY_ADAPTER.dump_json(self._entries, indent=2))
        except OSError as e:
            logger.warning(f"Error saving task history to {self.path}: {e}")
