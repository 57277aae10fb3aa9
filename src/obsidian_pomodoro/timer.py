"""Countdown engine: pure logic, no I/O.

All durations are integer seconds. Wall-clock time since the session began
is injected into tick() so the engine stays deterministic under test.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TimerPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    OVERRUN = "overrun"


class TimerEvent(Enum):
    TICK = "tick"
    OVERRUN_TICK = "overrun_tick"
    REVERSE_COUNTDOWN_STARTED = "reverse_countdown_started"
    REVERSE_COUNTDOWN_ENDED = "reverse_countdown_ended"
    MAX_LENGTH_REACHED = "max_length_reached"


@dataclass
class TickResult:
    events: list[TimerEvent] = field(default_factory=list)
    time_left_s: int = 0
    overrun_elapsed_s: int = 0


MIN_LENGTH_MINUTES = 5
MAX_LENGTH_MINUTES = 2400
DEFAULT_LENGTH_MINUTES = 25


def clamp_length(minutes: int) -> int:
    """Clamp a session length to the supported [5, 2400] minute range."""
    return max(MIN_LENGTH_MINUTES, min(MAX_LENGTH_MINUTES, int(minutes)))


def format_countdown(seconds: int, negative: bool = False) -> str:
    """Format seconds as 'MM:SS' (or 'H:MM:SS' past an hour).

    Overrun time is shown with a leading minus sign.
    """
    abs_s = abs(int(seconds))
    hours, rem = divmod(abs_s, 3600)
    minutes, secs = divmod(rem, 60)
    sign = "-" if negative and abs_s > 0 else ""
    if hours:
        return f"{sign}{hours}:{minutes:02d}:{secs:02d}"
    return f"{sign}{minutes:02d}:{secs:02d}"


class CountdownEngine:
    """Forward countdown followed by an open-ended overrun phase.

    The engine never touches the journal or the clock; the controller feeds
    it one tick per second and reacts to the events it returns.
    """

    def __init__(self, length_minutes: int = DEFAULT_LENGTH_MINUTES):
        self._length_minutes: int = clamp_length(length_minutes)
        self._time_left_s: int = self._length_minutes * 60
        self._overrun_elapsed_s: int = 0
        self._is_running: bool = False
        self._is_overrun: bool = False

    # ---- Read-only properties ----

    @property
    def length_minutes(self) -> int:
        return self._length_minutes

    @property
    def time_left_s(self) -> int:
        return self._time_left_s

    @property
    def overrun_elapsed_s(self) -> int:
        return self._overrun_elapsed_s

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def is_overrun(self) -> bool:
        return self._is_overrun

    @property
    def phase(self) -> TimerPhase:
        if not self._is_running:
            return TimerPhase.IDLE
        if self._is_overrun:
            return TimerPhase.OVERRUN
        return TimerPhase.RUNNING

    # ---- Transitions ----

    def set_length(self, minutes: int) -> int:
        """Change the configured length. Reloads the countdown when idle."""
        self._length_minutes = clamp_length(minutes)
        if not self._is_running:
            self.reset()
        return self._length_minutes

    def start(self) -> bool:
        if self._is_running:
            return False
        self._time_left_s = self._length_minutes * 60
        self._overrun_elapsed_s = 0
        self._is_overrun = False
        self._is_running = True
        return True

    def restore(self, elapsed_s: int) -> bool:
        """Resume a session that has already run for elapsed_s seconds.

        Returns True when the restored session is already overrunning.
        """
        remaining = self._length_minutes * 60 - max(0, int(elapsed_s))
        self._is_running = True
        if remaining > 0:
            self._time_left_s = remaining
            self._overrun_elapsed_s = 0
            self._is_overrun = False
        else:
            self._time_left_s = 0
            self._overrun_elapsed_s = -remaining
            self._is_overrun = True
        return self._is_overrun

    def stop(self) -> None:
        self._is_running = False
        self.reset()

    def reset(self) -> bool:
        """Reload the configured length. Refused while a session runs."""
        if self._is_running:
            return False
        self._time_left_s = self._length_minutes * 60
        self._overrun_elapsed_s = 0
        self._is_overrun = False
        return True

    def tick(self, elapsed_wall_s: int, max_session_s: int | None = None) -> TickResult:
        """Advance by one second.

        Args:
            elapsed_wall_s: Wall-clock seconds since the session started.
            max_session_s: Session ceiling in seconds; None or 0 disables it.
        """
        result = TickResult()
        if not self._is_running:
            return self._fill(result)

        if not self._is_overrun:
            if self._time_left_s > 0:
                self._time_left_s -= 1
            if self._time_left_s > 0:
                result.events.append(TimerEvent.TICK)
                if self._ceiling_reached(elapsed_wall_s, max_session_s):
                    result.events.append(TimerEvent.MAX_LENGTH_REACHED)
            else:
                # Show 00:00 at the transition, then count the overrun
                self._time_left_s = 0
                self._is_overrun = True
                self._overrun_elapsed_s = 0
                result.events.append(TimerEvent.TICK)
                result.events.append(TimerEvent.REVERSE_COUNTDOWN_STARTED)
        else:
            self._overrun_elapsed_s += 1
            result.events.append(TimerEvent.OVERRUN_TICK)
            if self._ceiling_reached(elapsed_wall_s, max_session_s):
                result.events.append(TimerEvent.MAX_LENGTH_REACHED)

        return self._fill(result)

    def adjust_length(self, delta_minutes: int, ceiling_minutes: int = MAX_LENGTH_MINUTES) -> TickResult:
        """Add (or remove) minutes from the running session.

        During overrun the delta is taken off the elapsed overtime; once that
        reaches zero the residual becomes a fresh forward countdown. Results
        outside [0, ceiling] are clamped, never rejected.
        """
        result = TickResult()
        if not self._is_running:
            return self._fill(result)

        delta_s = int(delta_minutes) * 60
        ceiling_s = max(0, int(ceiling_minutes)) * 60

        if self._is_overrun:
            residual = self._overrun_elapsed_s - delta_s
            if residual <= 0:
                self._is_overrun = False
                self._overrun_elapsed_s = 0
                self._time_left_s = min(-residual, ceiling_s)
                result.events.append(TimerEvent.REVERSE_COUNTDOWN_ENDED)
                result.events.append(TimerEvent.TICK)
            else:
                self._overrun_elapsed_s = residual
                result.events.append(TimerEvent.OVERRUN_TICK)
        else:
            self._time_left_s = max(0, min(self._time_left_s + delta_s, ceiling_s))
            result.events.append(TimerEvent.TICK)

        return self._fill(result)

    # ---- Serialization ----

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "length_minutes": self._length_minutes,
            "time_left_s": self._time_left_s,
            "overrun_elapsed_s": self._overrun_elapsed_s,
        }

    # ---- Internal ----

    @staticmethod
    def _ceiling_reached(elapsed_wall_s: int, max_session_s: int | None) -> bool:
        return bool(max_session_s) and elapsed_wall_s >= max_session_s

    def _fill(self, result: TickResult) -> TickResult:
        result.time_left_s = self._time_left_s
        result.overrun_elapsed_s = self._overrun_elapsed_s
        return result
