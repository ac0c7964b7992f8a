from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import os

DEFAULT_API_URL = "http://127.0.0.1:8000"
DEFAULT_AUTOSAVE_DEBOUNCE_MS = 2000
DEFAULT_SEARCH_DEBOUNCE_MS = 300


def _home_dir() -> Path:
    return Path.home() / ".nts"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def db_path() -> Path:
    env_path = os.getenv("NTS_DB_PATH")
    if env_path:
        return Path(env_path)
    return _home_dir() / "nts.db"


@dataclass(frozen=True)
class Settings:
    api_url: str = DEFAULT_API_URL
    autosave: bool = True
    autosave_debounce_ms: int = DEFAULT_AUTOSAVE_DEBOUNCE_MS
    search_debounce_ms: int = DEFAULT_SEARCH_DEBOUNCE_MS
    session_file: Path = Path()

    @classmethod
    def from_env(cls) -> "Settings":
        session_file = os.getenv("NTS_SESSION_FILE")
        return cls(
            api_url=os.getenv("NTS_API_URL") or DEFAULT_API_URL,
            autosave=_env_bool("NTS_AUTOSAVE", True),
            autosave_debounce_ms=_env_int("NTS_AUTOSAVE_DEBOUNCE_MS", DEFAULT_AUTOSAVE_DEBOUNCE_MS),
            search_debounce_ms=_env_int("NTS_SEARCH_DEBOUNCE_MS", DEFAULT_SEARCH_DEBOUNCE_MS),
            session_file=Path(session_file) if session_file else _home_dir() / "session.json",
        )
