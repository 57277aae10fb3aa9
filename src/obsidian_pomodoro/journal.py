"""
Journal synchronizer: keeps one entry line per session inside a section of
an Obsidian daily note.

The document is human-editable and not locked. Every write re-reads the
whole file, merges the entry, and writes it back (last writer wins).
"""

from __future__ import annotations

import logging
import os
import re
from datetime import date
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_HEADER = "# Pomodoro Sessions"

_SECTION_HEADER_RE = re.compile(r"^#+\s")
_LINE_BREAK_RE = re.compile(r"(\r\n|\n)")

# Moment.js tokens used by Obsidian's daily-note setting, longest first
_DATE_TOKEN_RE = re.compile(r"\[([^\]]*)\]|YYYY|YY|MMMM|MMM|MM|M|DD|D|dddd|ddd")


class JournalError(Exception):
    """Raised for requests the synchronizer cannot express as a line merge."""
    pass


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    INSERTED = "inserted"
    SECTION_APPENDED = "section_appended"


# ── Path resolution ────────────────────────────────────────────


def format_note_date(pattern: str, day: date) -> str:
    """Render an Obsidian date pattern such as 'YYYY-MM-DD' for a day."""

    def _token(match: re.Match) -> str:
        if match.group(1) is not None:
            return match.group(1)
        token = match.group(0)
        if token == "YYYY":
            return f"{day.year:04d}"
        if token == "YY":
            return f"{day.year % 100:02d}"
        if token == "MMMM":
            return day.strftime("%B")
        if token == "MMM":
            return day.strftime("%b")
        if token == "MM":
            return f"{day.month:02d}"
        if token == "M":
            return str(day.month)
        if token == "DD":
            return f"{day.day:02d}"
        if token == "D":
            return str(day.day)
        if token == "dddd":
            return day.strftime("%A")
        return day.strftime("%a")

    return _DATE_TOKEN_RE.sub(_token, pattern or "YYYY-MM-DD")


def journal_path_for(journal_dir: str | Path, note_date_format: str, day: date) -> Path:
    """Path of the daily note for a given day."""
    return Path(journal_dir).expanduser() / f"{format_note_date(note_date_format, day)}.md"


def effective_header(header: str | None) -> str:
    return header.strip() if header and header.strip() else DEFAULT_HEADER


def is_section_header(line: str) -> bool:
    """True for header-shaped lines: '#' markers followed by whitespace."""
    return bool(_SECTION_HEADER_RE.match(line.strip()))


# ── Read / write helpers ───────────────────────────────────────


class _Document:
    """A note as lines plus the terminator each line ended with.

    Existing lines keep their own '\\r\\n' or '\\n'; new lines use the
    document's first line break. The last terminator may be '' when the
    file has no trailing newline.
    """

    def __init__(self, lines: list[str], endings: list[str], newline: str):
        self.lines = lines
        self.endings = endings
        self.newline = newline

    @classmethod
    def new(cls, lines: list[str]) -> _Document:
        return cls(list(lines), [os.linesep] * len(lines), os.linesep)

    @classmethod
    def read(cls, path: Path) -> _Document:
        with open(path, encoding="utf-8", newline="") as f:
            content = f.read()
        if not content:
            return cls([], [], os.linesep)

        parts = _LINE_BREAK_RE.split(content)
        lines, endings = parts[0::2], parts[1::2]
        if endings and lines[-1] == "":
            lines.pop()
        else:
            endings.append("")
        newline = next((e for e in endings if e), os.linesep)
        return cls(lines, endings, newline)

    def write(self, path: Path) -> None:
        content = "".join(line + ending for line, ending in zip(self.lines, self.endings))
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)

    def insert(self, index: int, line: str) -> None:
        if index < len(self.lines):
            self.lines.insert(index, line)
            self.endings.insert(index, self.newline)
            return
        # Appending: the new last line inherits the old last line's terminator
        if not self.lines:
            ending = self.newline
        elif self.endings[-1] == "":
            self.endings[-1] = self.newline
            ending = ""
        else:
            ending = self.endings[-1]
        self.lines.append(line)
        self.endings.append(ending)

    def append(self, line: str) -> None:
        self.insert(len(self.lines), line)

    def delete(self, index: int) -> None:
        ending = self.endings.pop(index)
        del self.lines[index]
        if self.lines and index == len(self.lines):
            self.endings[-1] = ending

    def find_token(self, timestamp_id: str) -> int:
        for i, line in enumerate(self.lines):
            if timestamp_id in line:
                return i
        return -1

    def find_header(self, header: str) -> int:
        """Index of the last line equal to header (after stripping), or -1."""
        header_index = -1
        for i, line in enumerate(self.lines):
            if line.strip() == header:
                header_index = i
        return header_index

    def section_end(self, header_index: int) -> int:
        """Index of the next section header after header_index, or end of file."""
        for i in range(header_index + 1, len(self.lines)):
            if is_section_header(self.lines[i]):
                return i
        return len(self.lines)


# ── Operations ─────────────────────────────────────────────────


def upsert_entry(path: str | Path, header: str, timestamp_id: str | None, entry_line: str) -> UpsertOutcome:
    """Write or refresh a single entry line inside the header's section.

    A line already carrying timestamp_id is replaced in place. Otherwise the
    entry is inserted at the end of the (last) matching section, or a new
    section is appended at the end of the document.
    """
    path = Path(path)
    header = effective_header(header)
    if "\n" in entry_line or "\r" in entry_line:
        raise JournalError("Entry line must be a single line")

    if not path.exists() or path.stat().st_size == 0:
        path.parent.mkdir(parents=True, exist_ok=True)
        _Document.new([header, entry_line]).write(path)
        logger.debug(f"Created {path} with header '{header}' and entry")
        return UpsertOutcome.CREATED

    doc = _Document.read(path)
    found_line = doc.find_token(timestamp_id) if timestamp_id else -1
    header_index = doc.find_header(header)

    if found_line >= 0:
        doc.lines[found_line] = entry_line
        outcome = UpsertOutcome.UPDATED
        logger.debug(f"Updated entry {timestamp_id} at line {found_line} in {path}")
    elif header_index >= 0:
        insert_index = doc.section_end(header_index)
        doc.insert(insert_index, entry_line)
        outcome = UpsertOutcome.INSERTED
        logger.debug(f"Inserted entry at line {insert_index} under '{header}' in {path}")
    else:
        for line in ("", header, entry_line):
            doc.append(line)
        outcome = UpsertOutcome.SECTION_APPENDED
        logger.debug(f"Header '{header}' not found, appended new section to {path}")

    doc.write(path)
    return outcome


def strip_timestamp(path: str | Path, timestamp_id: str) -> bool:
    """Remove an in-progress timestamp token, leaving a plain historical entry.

    Returns False when the document or the token is missing.
    """
    path = Path(path)
    if not timestamp_id or not path.exists():
        return False

    doc = _Document.read(path)
    index = doc.find_token(timestamp_id)
    if index < 0:
        return False

    stripped = doc.lines[index].replace(f" {timestamp_id}", "", 1)
    doc.lines[index] = stripped.replace(timestamp_id, "", 1)
    doc.write(path)
    logger.debug(f"Stripped in-progress token {timestamp_id} at line {index} in {path}")
    return True


def remove_entry(path: str | Path, timestamp_id: str) -> bool:
    """Delete the in-progress line carrying timestamp_id, if any."""
    path = Path(path)
    if not timestamp_id or not path.exists():
        return False

    doc = _Document.read(path)
    index = doc.find_token(timestamp_id)
    if index < 0:
        return False

    doc.delete(index)
    doc.write(path)
    logger.debug(f"Removed entry {timestamp_id} from line {index} in {path}")
    return True


def read_section(path: str | Path, header: str) -> list[str]:
    """Lines of the last section titled header (without the header line)."""
    path = Path(path)
    if not path.exists():
        return []
    doc = _Document.read(path)
    header_index = doc.find_header(effective_header(header))
    if header_index < 0:
        return []
    return doc.lines[header_index + 1:doc.section_end(header_index)]
