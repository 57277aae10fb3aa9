"""Pomodoro timer engine that logs focus sessions into Obsidian daily notes.

Runs a countdown/overrun session and keeps one entry line per session in
the day's journal note, updated in place while the session runs.
"""

from .config import Settings, SettingsStore
from .controller import SessionController
from .events import EventBus, SessionEvent
from .history import TaskHistoryEntry, TaskHistoryRepository
from .journal import (
    JournalError,
    UpsertOutcome,
    format_note_date,
    journal_path_for,
    remove_entry,
    strip_timestamp,
    upsert_entry,
)
from .session import Session, SessionStore, TimestampIdMinter, format_entry
from .timer import CountdownEngine, TimerEvent, TimerPhase, format_countdown

__version__ = "1.0.0"

__all__ = [
    "CountdownEngine",
    "EventBus",
    "JournalError",
    "Session",
    "SessionController",
    "SessionEvent",
    "SessionStore",
    "Settings",
    "SettingsStore",
    "TaskHistoryEntry",
    "TaskHistoryRepository",
    "TimestampIdMinter",
    "TimerEvent",
    "TimerPhase",
    "UpsertOutcome",
    "format_countdown",
    "format_entry",
    "format_note_date",
    "journal_path_for",
    "remove_entry",
    "strip_timestamp",
    "upsert_entry",
]
