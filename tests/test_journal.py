"""Tests for the journal synchronizer: idempotent upserts into a daily note."""

from datetime import date

import pytest

from obsidian_pomodoro.journal import (
    DEFAULT_HEADER,
    JournalError,
    UpsertOutcome,
    format_note_date,
    is_section_header,
    journal_path_for,
    read_section,
    remove_entry,
    strip_timestamp,
    upsert_entry,
)

HEADER = "# Pomodoro Sessions"


def read(path) -> str:
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def write(path, text: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)


# ---- Path resolution ----

class TestFormatNoteDate:
    def test_default_pattern(self):
        assert format_note_date("YYYY-MM-DD", date(2026, 3, 7)) == "2026-03-07"

    def test_unpadded_tokens(self):
        assert format_note_date("D.M.YY", date(2026, 3, 7)) == "7.3.26"

    def test_subfolders(self):
        assert format_note_date("YYYY/MM/YYYY-MM-DD", date(2026, 3, 7)) == "2026/03/2026-03-07"

    def test_literal_brackets(self):
        assert format_note_date("[Week of] YYYY-MM-DD", date(2026, 3, 7)) == "Week of 2026-03-07"

    def test_weekday_and_month_names(self):
        assert format_note_date("dddd, MMMM D", date(2026, 3, 7)) == "Saturday, March 7"

    def test_journal_path_for(self, tmp_path):
        path = journal_path_for(tmp_path, "YYYY-MM-DD", date(2026, 3, 7))
        assert path == tmp_path / "2026-03-07.md"

    def test_journal_path_expands_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        path = journal_path_for("~/vault/Journal", "YYYY-MM-DD", date(2026, 3, 7))
        assert path == tmp_path / "vault" / "Journal" / "2026-03-07.md"


class TestSectionHeader:
    @pytest.mark.parametrize("line", ["# Notes", "## Log", "  ### Indented", "#\tTabbed"])
    def test_header_shaped(self, line):
        assert is_section_header(line)

    @pytest.mark.parametrize("line", ["#tag", "- # not a header", "", "#"])
    def test_not_header(self, line):
        assert not is_section_header(line)


# ---- Scenario from a fresh note ----

class TestScenario:
    def test_empty_file_update_then_finalize(self, tmp_path):
        """Empty note → header + entry; refresh keeps two lines; stop drops the id."""
        path = tmp_path / "j.md"
        write(path, "")

        first = upsert_entry(path, HEADER, "t1", "- 09:00 - 09:03 Write spec  t1")
        assert first == UpsertOutcome.CREATED
        assert read(path).splitlines() == [HEADER, "- 09:00 - 09:03 Write spec  t1"]

        second = upsert_entry(path, HEADER, "t1", "- 09:00 - 09:05 Write spec  t1")
        assert second == UpsertOutcome.UPDATED
        lines = read(path).splitlines()
        assert len(lines) == 2
        assert lines[1].endswith("t1")
        assert "09:05" in lines[1]

        upsert_entry(path, HEADER, "t1", "- 09:00 - 09:05 Write spec ")
        lines = read(path).splitlines()
        assert lines == [HEADER, "- 09:00 - 09:05 Write spec "]

    def test_missing_file_is_created(self, tmp_path):
        path = tmp_path / "sub" / "2026-03-07.md"
        outcome = upsert_entry(path, HEADER, "t1", "- 09:00 - 09:03 a  t1")
        assert outcome == UpsertOutcome.CREATED
        assert read(path).splitlines() == [HEADER, "- 09:00 - 09:03 a  t1"]

    def test_blank_header_falls_back(self, tmp_path):
        path = tmp_path / "j.md"
        upsert_entry(path, "   ", "t1", "- 09:00 - 09:03 a  t1")
        assert read(path).splitlines()[0] == DEFAULT_HEADER


# ---- Idempotency ----

class TestIdempotentUpsert:
    def test_same_id_twice_leaves_one_line(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, "# Journal\n\n" + HEADER + "\n")
        upsert_entry(path, HEADER, "20260307090000000", "- 09:00 - 09:03 a  20260307090000000")
        upsert_entry(path, HEADER, "20260307090000000", "- 09:00 - 09:06 b  20260307090000000")

        matching = [line for line in read(path).splitlines() if "20260307090000000" in line]
        assert matching == ["- 09:00 - 09:06 b  20260307090000000"]

    def test_update_found_outside_section(self, tmp_path):
        """The id is looked up in the whole document, wherever a human moved it."""
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n# Other\n- 09:00 - 09:03 a  t1\n")
        outcome = upsert_entry(path, HEADER, "t1", "- 09:00 - 09:09 a  t1")
        assert outcome == UpsertOutcome.UPDATED
        assert read(path) == f"{HEADER}\n# Other\n- 09:00 - 09:09 a  t1\n"

    def test_no_id_always_inserts(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n- 08:00 - 08:25 old \n")
        outcome = upsert_entry(path, HEADER, None, "- 08:00 - 08:25 old ")
        assert outcome == UpsertOutcome.INSERTED
        assert read(path).splitlines().count("- 08:00 - 08:25 old ") == 2

    def test_multiline_entry_rejected(self, tmp_path):
        with pytest.raises(JournalError):
            upsert_entry(tmp_path / "j.md", HEADER, "t1", "- a\n- b")


# ---- Section containment ----

class TestSectionContainment:
    def test_insert_lands_before_next_header(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n- 08:00 - 08:25 first \n\n## Notes\n- not a session\n")
        outcome = upsert_entry(path, HEADER, "t2", "- 09:00 - 09:03 second  t2")

        assert outcome == UpsertOutcome.INSERTED
        lines = read(path).splitlines()
        assert lines.index("- 09:00 - 09:03 second  t2") < lines.index("## Notes")
        assert lines[lines.index("## Notes") + 1] == "- not a session"

    def test_hashtag_lines_stay_in_section(self, tmp_path):
        """'#tag' lines are content, not section boundaries."""
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n#focus\n# Next\n")
        upsert_entry(path, HEADER, "t1", "- 09:00 - 09:03 a  t1")
        assert read(path).splitlines() == [HEADER, "#focus", "- 09:00 - 09:03 a  t1", "# Next"]

    def test_last_matching_header_wins(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n# Middle\n{HEADER}\n")
        upsert_entry(path, HEADER, "t1", "- 09:00 - 09:03 a  t1")
        assert read(path).splitlines()[-1] == "- 09:00 - 09:03 a  t1"

    def test_header_missing_appends_section(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, "# Journal\nSome text\n")
        outcome = upsert_entry(path, HEADER, "t1", "- 09:00 - 09:03 a  t1")
        assert outcome == UpsertOutcome.SECTION_APPENDED
        assert read(path) == f"# Journal\nSome text\n\n{HEADER}\n- 09:00 - 09:03 a  t1\n"

    def test_read_section(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"# Intro\n{HEADER}\n- a\n- b\n## After\n- c\n")
        assert read_section(path, HEADER) == ["- a", "- b"]


# ---- Newline preservation ----

class TestNewlines:
    def test_without_trailing_newline(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n- 08:00 - 08:25 old ")
        upsert_entry(path, HEADER, "t1", "- 09:00 - 09:03 a  t1")
        content = read(path)
        assert not content.endswith("\n")
        assert content == f"{HEADER}\n- 08:00 - 08:25 old \n- 09:00 - 09:03 a  t1"

    def test_with_trailing_newline(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n")
        upsert_entry(path, HEADER, "t1", "- 09:00 - 09:03 a  t1")
        assert read(path) == f"{HEADER}\n- 09:00 - 09:03 a  t1\n"

    def test_crlf_preserved(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\r\n- 08:00 - 08:25 old \r\n")
        upsert_entry(path, HEADER, "t1", "- 09:00 - 09:03 a  t1")
        assert read(path) == f"{HEADER}\r\n- 08:00 - 08:25 old \r\n- 09:00 - 09:03 a  t1\r\n"

    def test_unicode_content_round_trips(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n- 08:00 - 08:25 Übung café \n")
        upsert_entry(path, HEADER, "t1", "- 09:00 - 09:03 日本語  t1")
        assert "Übung café" in read(path)
        assert "日本語" in read(path)

    def test_mixed_endings_kept_per_line(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, "# H\r\n- a\n")
        upsert_entry(path, "# H", "t1", "- 09:00 - 09:03 x  t1")
        assert read(path) == "# H\r\n- a\n- 09:00 - 09:03 x  t1\n"

    def test_mixed_endings_update_in_place(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\r\n- 09:00 - 09:03 a  t1\n## Notes\r\n")
        upsert_entry(path, HEADER, "t1", "- 09:00 - 09:06 a  t1")
        assert read(path) == f"{HEADER}\r\n- 09:00 - 09:06 a  t1\n## Notes\r\n"

    def test_remove_last_line_keeps_missing_trailing_newline(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n- 09:00 - 09:03 a  t1")
        remove_entry(path, "t1")
        assert read(path) == HEADER


# ---- Finalizing ----

class TestStripAndRemove:
    def test_strip_timestamp(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n- 23:40 - 23:58 late  t9\n")
        assert strip_timestamp(path, "t9") is True
        assert read(path) == f"{HEADER}\n- 23:40 - 23:58 late \n"

    def test_strip_missing_token(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n")
        assert strip_timestamp(path, "t9") is False
        assert read(path) == f"{HEADER}\n"

    def test_strip_missing_file(self, tmp_path):
        assert strip_timestamp(tmp_path / "nope.md", "t9") is False

    def test_remove_entry(self, tmp_path):
        path = tmp_path / "j.md"
        write(path, f"{HEADER}\n- 09:00 - 09:03 a  t1\n- 10:00 - 10:25 b \n")
        assert remove_entry(path, "t1") is True
        assert read(path) == f"{HEADER}\n- 10:00 - 10:25 b \n"
