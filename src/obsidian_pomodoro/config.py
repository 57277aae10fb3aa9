"""Settings persistence for the pomodoro engine."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .timer import DEFAULT_LENGTH_MINUTES, MAX_LENGTH_MINUTES, clamp_length

logger = logging.getLogger(__name__)

HOME_ENV_VAR = "OBSIDIAN_POMODORO_HOME"
SETTINGS_FILE = "settings.json"
SESSION_FILE = "session.json"
TASK_HISTORY_FILE = "task-history.json"
DEBUG_LOG_FILE = "debug.log"

DEFAULT_HEADER = "# Day Planner"
DEFAULT_MAX_SESSION_MINUTES = 120
DEFAULT_FLUSH_INTERVAL_MINUTES = 3
MAX_FLUSH_INTERVAL_MINUTES = 60


class Settings(BaseModel):
    """User-editable configuration plus the few fields the engine owns.

    Out-of-range numbers are clamped rather than rejected; unknown keys in
    the settings file are ignored.
    """

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    journal_path: str = ""
    vault_path: str = ""
    note_date_format: str = "YYYY-MM-DD"
    default_length_minutes: int = DEFAULT_LENGTH_MINUTES
    max_session_length_minutes: int = DEFAULT_MAX_SESSION_MINUTES
    header: str = DEFAULT_HEADER
    current_task_text: str = ""
    flush_interval_minutes: int = DEFAULT_FLUSH_INTERVAL_MINUTES
    debug_log_enabled: bool = False
    last_journal_check_date: Optional[str] = None

    @field_validator("default_length_minutes")
    @classmethod
    def _clamp_default_length(cls, v: int) -> int:
        return clamp_length(v)

    @field_validator("max_session_length_minutes")
    @classmethod
    def _clamp_max_session(cls, v: int) -> int:
        # 0 disables the ceiling
        return max(0, min(MAX_LENGTH_MINUTES, v))

    @field_validator("flush_interval_minutes")
    @classmethod
    def _clamp_flush_interval(cls, v: int) -> int:
        return max(1, min(MAX_FLUSH_INTERVAL_MINUTES, v))

    @property
    def flush_interval_s(self) -> int:
        return self.flush_interval_minutes * 60

    @property
    def max_session_s(self) -> int:
        return self.max_session_length_minutes * 60

    @property
    def adjust_ceiling_minutes(self) -> int:
        """Upper bound for remaining time after an adjustment."""
        return self.max_session_length_minutes or MAX_LENGTH_MINUTES


EDITABLE_KEYS = [
    name for name in Settings.model_fields
    if name not in ("current_task_text", "last_journal_check_date")
]


def coerce_value(key: str, raw):
    """Validate a raw value for one settings field.

    Raises ValueError for unknown keys or values that cannot be converted.
    """
    if key not in Settings.model_fields:
        raise ValueError(f"Unknown setting '{key}'")
    # pydantic's ValidationError is a ValueError
    return getattr(Settings.model_validate({key: raw}), key)


def default_state_dir() -> Path:
    env_dir = os.environ.get(HOME_ENV_VAR)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".config" / "obsidian-pomodoro"


class SettingsStore:
    """Loads and saves Settings as indented JSON."""

    def __init__(self, state_dir: Optional[Path] = None):
        self.state_dir = Path(state_dir) if state_dir else default_state_dir()
        self.path = self.state_dir / SETTINGS_FILE

    def load(self) -> Settings:
        if not self.path.exists():
            logger.info(f"{SETTINGS_FILE} not found at '{self.path}', creating with defaults")
            settings = Settings()
            self.save(settings)
            return settings

        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not read {self.path}, using defaults: {e}")
            return Settings()

        try:
            return Settings.model_validate_json(raw)
        except ValidationError as e:
            return self._salvage(raw, e)

    def _salvage(self, raw: str, error: ValidationError) -> Settings:
        """Keep the valid fields of a partly malformed file; defaults for the rest."""
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Could not parse {self.path}, using defaults: {e}")
            return Settings()
        if not isinstance(data, dict):
            logger.warning(f"{self.path} does not hold an object, using defaults")
            return Settings()

        bad = {str(err["loc"][0]) for err in error.errors() if err["loc"]}
        logger.warning(f"Ignoring malformed settings {sorted(bad)} in {self.path}")
        return Settings.model_validate({k: v for k, v in data.items() if k not in bad})

    def save(self, settings: Settings) -> bool:
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            self.path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
            return True
        except OSError as e:
            logger.warning(f"Could not save settings to {self.path}: {e}")
            return False

    def update(self, **changes) -> Settings:
        """Re-read the file, apply changes and save it back."""
        settings = self.load()
        for key, value in changes.items():
            setattr(settings, key, value)
        self.save(settings)
        return settings

    @property
    def session_path(self) -> Path:
        return self.state_dir / SESSION_FILE

    @property
    def task_history_path(self) -> Path:
        return self.state_dir / TASK_HISTORY_FILE

    @property
    def debug_log_path(self) -> Path:
        return self.state_dir / DEBUG_LOG_FILE
