"""
Session controller: the focus-session state machine.

Owns the current Session, drives the CountdownEngine from the clock's
ticks, and keeps the day's journal entry in sync. All methods must be
called on the clock's thread (see TickScheduler.call_soon).
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable

from . import journal
from .clock import COUNTDOWN_INTERVAL_S, COUNTDOWN_JOB, FLUSH_JOB
from .config import Settings, SettingsStore
from .events import EventBus, SessionEvent
from .session import Session, SessionStore, TimestampIdMinter, format_entry
from .timer import CountdownEngine, TimerEvent, TimerPhase, clamp_length

logger = logging.getLogger(__name__)

_JOURNAL_ERRORS = (OSError, UnicodeError)

_EVENT_MAP = {
    TimerEvent.REVERSE_COUNTDOWN_STARTED: SessionEvent.REVERSE_COUNTDOWN_STARTED,
    TimerEvent.REVERSE_COUNTDOWN_ENDED: SessionEvent.REVERSE_COUNTDOWN_ENDED,
}


def _same_minute(a: datetime, b: datetime) -> bool:
    return a.replace(second=0, microsecond=0) == b.replace(second=0, microsecond=0)


class SessionController:
    """Start/stop/reset/adjust transitions plus tick handling for one session."""

    def __init__(
        self,
        settings_store: SettingsStore,
        clock,
        notifier,
        task_history,
        session_store: SessionStore | None = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.settings_store = settings_store
        self.clock = clock
        self.notifier = notifier
        self.task_history = task_history
        self.session_store = session_store or SessionStore(settings_store.session_path)
        self.events = EventBus()
        self._now = now
        self._settings: Settings = settings_store.load()
        self._engine = CountdownEngine(self._settings.default_length_minutes)
        self._session: Session | None = None
        self._ids = TimestampIdMinter()

    # ---- Read-only properties ----

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def is_running(self) -> bool:
        return self._engine.is_running

    @property
    def is_overrun(self) -> bool:
        return self._engine.is_overrun

    @property
    def phase(self) -> TimerPhase:
        return self._engine.phase

    @property
    def time_left_s(self) -> int:
        return self._engine.time_left_s

    @property
    def overrun_elapsed_s(self) -> int:
        return self._engine.overrun_elapsed_s

    def subscribe(self, event: SessionEvent, callback: Callable) -> None:
        self.events.subscribe(event, callback)

    def unsubscribe(self, event: SessionEvent, callback: Callable) -> bool:
        return self.events.unsubscribe(event, callback)

    # ---- Journal location ----

    def journal_file(self, day: date | None = None) -> Path:
        day = day or self._now().date()
        return journal.journal_path_for(self._settings.journal_path, self._settings.note_date_format, day)

    def journal_status(self, day: date | None = None) -> tuple[Path, bool]:
        path = self.journal_file(day)
        return path, path.exists()

    # ---- Transitions ----

    def start(self, task: str | None = None, project: str = "") -> bool:
        """Begin a new session. Returns False when blocked or already running."""
        if self._session is not None:
            logger.debug("Start ignored: a session is already running")
            return False

        self._settings = self.settings_store.load()
        now = self._now()
        path, exists = self.journal_status(now.date())
        if not exists:
            self._notify_blocked(path, now.date())
            return False

        if task is None:
            task = self._settings.current_task_text
        self._engine.set_length(self._settings.default_length_minutes)
        self._engine.start()
        self._session = Session(
            timestamp_id=self._ids.mint(now),
            start_time=now,
            task=task or "",
            project=project or "",
        )
        logger.info(f"Session {self._session.timestamp_id} started: '{self._session.task}'")
        self.session_store.save(self._session)
        if self._session.task != self._settings.current_task_text:
            self._persist(current_task_text=self._session.task)

        self._write_running_entry(initial=True)
        self._arm_ticks()
        self.events.emit(SessionEvent.STARTED)
        self.events.emit(SessionEvent.TICK, self._engine.time_left_s)
        return True

    def resume(self) -> bool:
        """Pick up a session persisted by a previous process, if it is from today."""
        if self._session is not None:
            return False
        persisted = self.session_store.load()
        if persisted is None:
            return False

        now = self._now()
        if persisted.start_time.date() != now.date():
            logger.info(f"Abandoning session {persisted.timestamp_id} from {persisted.start_time:%Y-%m-%d}")
            self._guarded(journal.strip_timestamp, self.journal_file(persisted.start_time.date()), persisted.timestamp_id)
            self.session_store.clear()
            self.notifier.notify(f"The session from {persisted.start_time:%Y-%m-%d} was closed.")
            return False

        self._settings = self.settings_store.load()
        path, exists = self.journal_status(now.date())
        if not exists:
            # Keep the session file so it resumes once the note exists
            self._notify_blocked(path, now.date())
            return False

        self._engine.set_length(self._settings.default_length_minutes)
        self._session = persisted
        overrun = self._engine.restore(persisted.elapsed_s(now))
        logger.info(f"Resumed session {persisted.timestamp_id} (overrun={overrun})")

        self._arm_ticks(flush_now=True)
        self.events.emit(SessionEvent.STARTED)
        if overrun:
            self.events.emit(SessionEvent.REVERSE_COUNTDOWN_STARTED)
            self.events.emit(SessionEvent.OVERRUN_TICK, self._engine.overrun_elapsed_s)
        else:
            self.events.emit(SessionEvent.TICK, self._engine.time_left_s)
        return True

    def stop(self) -> bool:
        return self._stop()

    def reset(self) -> bool:
        """Reload the default length. Refused while a session is running."""
        if self._engine.is_running:
            return False
        self._engine.set_length(self._settings.default_length_minutes)
        self._engine.reset()
        self.events.emit(SessionEvent.RESET)
        self.events.emit(SessionEvent.TICK, self._engine.time_left_s)
        return True

    def adjust_length(self, delta_minutes: int) -> bool:
        """Add or remove minutes from the running session."""
        if not self._engine.is_running:
            return False
        result = self._engine.adjust_length(delta_minutes, self._settings.adjust_ceiling_minutes)
        self._dispatch(result)
        self.notifier.notify(f"Timer adjusted by {delta_minutes:+d} min.")
        return True

    def set_length(self, minutes: int) -> int:
        """Persist a new default length; applies immediately when idle."""
        minutes = clamp_length(minutes)
        self._persist(default_length_minutes=minutes)
        self._engine.set_length(minutes)
        if not self._engine.is_running:
            self.events.emit(SessionEvent.TICK, self._engine.time_left_s)
        return minutes

    def update_task(self, task: str) -> None:
        """Edit the running session's task; the next flush writes it."""
        task = task or ""
        if self._session is not None:
            self._session.task = task
            self.session_store.save(self._session)
        self._persist(current_task_text=task)

    def reload_settings(self) -> Settings:
        self._settings = self.settings_store.load()
        if not self._engine.is_running:
            self._engine.set_length(self._settings.default_length_minutes)
        return self._settings

    def to_dict(self) -> dict:
        data = self._engine.to_dict()
        data["session"] = self._session.model_dump(mode="json") if self._session else None
        return data

    # ---- Tick handlers ----

    def _on_countdown_tick(self) -> None:
        session = self._session
        if session is None:
            return
        now = self._now()
        if now.date() != session.start_time.date():
            self._rollover(session, now)
            return

        result = self._engine.tick(session.elapsed_s(now), self._settings.max_session_s)
        self._dispatch(result)
        if TimerEvent.REVERSE_COUNTDOWN_STARTED in result.events:
            self.notifier.notify("Pomodoro completed.")
        if TimerEvent.MAX_LENGTH_REACHED in result.events:
            minutes = self._settings.max_session_length_minutes
            logger.info(f"Maximum session length of {minutes} min reached, stopping")
            self._stop(auto_stopped=True)
            self.notifier.notify(f"Maximum session length of {minutes} minutes reached. Session stopped.")

    def _on_flush_tick(self) -> None:
        session = self._session
        if session is None:
            return
        now = self._now()
        if now.date() != session.start_time.date():
            self._rollover(session, now)
            return
        self._write_running_entry()

    # ---- Internal ----

    def _stop(self, auto_stopped: bool = False, write_entry: bool = True) -> bool:
        session = self._session
        if session is None:
            return False

        self._cancel_ticks()
        if write_entry:
            self._write_final_entry(session, auto_stopped)
        if session.task:
            try:
                self.task_history.record_usage(session.task)
            except Exception:
                logger.exception(f"Task history update failed for '{session.task}'")

        self._session = None
        self.session_store.clear()
        self._engine.stop()
        logger.info(f"Session {session.timestamp_id} stopped (auto_stopped={auto_stopped})")
        self.events.emit(SessionEvent.STOPPED)
        self.events.emit(SessionEvent.TICK, self._engine.time_left_s)
        return True

    def _rollover(self, session: Session, now: datetime) -> None:
        """Close a session that crossed midnight inside the previous day's note."""
        logger.info(f"Day changed during session {session.timestamp_id}, closing it")
        previous = self.journal_file(session.start_time.date())
        self._guarded(journal.strip_timestamp, previous, session.timestamp_id)
        self._stop(write_entry=False)
        self.notifier.notify(f"A new day has started. Start a new session for {now:%Y-%m-%d}.")

    def _write_running_entry(self, initial: bool = False) -> bool:
        session = self._session
        if session is None:
            return False
        start = session.start_time
        if initial:
            # Forward-looking stub so the entry shows up right away
            end = start + timedelta(seconds=self._settings.flush_interval_s)
        else:
            end = self._now()
            if _same_minute(start, end):
                logger.debug("Start and end are in the same minute, not logging session")
                return False
        entry = format_entry(start, end, session.task, session.project, session.timestamp_id)
        return self._upsert(session, entry)

    def _write_final_entry(self, session: Session, auto_stopped: bool) -> bool:
        path = self.journal_file(session.start_time.date())
        end = self._now()
        if _same_minute(session.start_time, end) and not auto_stopped:
            logger.debug("Session shorter than a minute, removing its in-progress entry")
            return bool(self._guarded(journal.remove_entry, path, session.timestamp_id))
        entry = format_entry(session.start_time, end, session.task, session.project, auto_stopped=auto_stopped)
        return self._upsert(session, entry)

    def _upsert(self, session: Session, entry: str) -> bool:
        path = self.journal_file(session.start_time.date())
        outcome = self._guarded(journal.upsert_entry, path, self._settings.header, session.timestamp_id, entry)
        return outcome is not None

    def _guarded(self, operation, path: Path, *args):
        """Run a journal operation; I/O failures skip this write only."""
        try:
            return operation(path, *args)
        except _JOURNAL_ERRORS as e:
            logger.warning(f"Journal {operation.__name__} on {path} failed, skipping: {e}")
            return None

    def _dispatch(self, result) -> None:
        for event in result.events:
            if event == TimerEvent.TICK:
                self.events.emit(SessionEvent.TICK, result.time_left_s)
            elif event == TimerEvent.OVERRUN_TICK:
                self.events.emit(SessionEvent.OVERRUN_TICK, result.overrun_elapsed_s)
            elif event in _EVENT_MAP:
                self.events.emit(_EVENT_MAP[event])

    def _arm_ticks(self, flush_now: bool = False) -> None:
        self.clock.every(COUNTDOWN_JOB, COUNTDOWN_INTERVAL_S, self._on_countdown_tick)
        self.clock.every(FLUSH_JOB, self._settings.flush_interval_s, self._on_flush_tick, run_now=flush_now)

    def _cancel_ticks(self) -> None:
        self.clock.cancel(COUNTDOWN_JOB)
        self.clock.cancel(FLUSH_JOB)

    def _persist(self, **changes) -> None:
        for key, value in changes.items():
            setattr(self._settings, key, value)
        try:
            self.settings_store.update(**changes)
        except ValueError as e:
            logger.warning(f"Could not persist {sorted(changes)}: {e}")

    def _notify_blocked(self, path: Path, day: date) -> None:
        """Refuse to start without today's note, notifying at most once a day."""
        logger.info(f"Journal file does not exist: {path}. Timer start blocked.")
        if self._settings.last_journal_check_date == day.isoformat():
            return
        self.notifier.notify(
            "Cannot start timer: today's journal does not exist.\n\n"
            f"Please create it in Obsidian first:\n{path}"
        )
        self._persist(last_journal_check_date=day.isoformat())
