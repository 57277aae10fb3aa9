"""Session record, entry-line formatting and the resume file."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger(__name__)

AUTO_STOPPED_MARKER = "[auto-stopped]"
TIMESTAMP_ID_FORMAT = "%Y%m%d%H%M%S"


class TimestampIdMinter:
    """Mints 'yyyyMMddHHmmssfff' ids that strictly increase per minter."""

    def __init__(self):
        self._last: int = 0

    def mint(self, now: datetime) -> str:
        value = int(now.strftime(TIMESTAMP_ID_FORMAT) + f"{now.microsecond // 1000:03d}")
        if value <= self._last:
            value = self._last + 1
        self._last = value
        return str(value)


def format_entry(
    start: datetime,
    end: datetime,
    task: str,
    project: str = "",
    timestamp_id: str | None = None,
    auto_stopped: bool = False,
) -> str:
    """Build a journal entry line.

    '- HH:mm - HH:mm <task> <project>[ <timestamp_id>][ [auto-stopped]]'
    """
    # Journal lines are single-line by construction
    task = " ".join((task or "").splitlines())
    project = " ".join((project or "").splitlines())
    entry = f"- {start:%H:%M} - {end:%H:%M} {task} {project}"
    if timestamp_id:
        entry += f" {timestamp_id}"
    if auto_stopped:
        entry += f" {AUTO_STOPPED_MARKER}"
    return entry


class Session(BaseModel):
    timestamp_id: str
    start_time: datetime
    task: str = ""
    project: str = ""

    @field_validator("task", "project", mode="before")
    @classmethod
    def _none_as_empty(cls, v):
        return "" if v is None else v

    def elapsed_s(self, now: datetime) -> int:
        return max(0, int((now - self.start_time).total_seconds()))


class SessionStore:
    """Keeps the minimal fields needed to resume a session after a restart."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Session | None:
        if not self.path.exists():
            return None
        try:
            return Session.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return None

    def save(self, session: Session) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(session.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not persist session {session.timestamp_id}: {e}")

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove session file {self.path}: {e}")
