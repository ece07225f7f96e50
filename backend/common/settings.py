"""
Runtime settings

Environment-driven configuration for the notification engine.
Values are read when load_settings() is called, not at import time, so tests
can switch modes with monkeypatch.setenv().
"""

import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_STORAGE_DIR = Path.home() / ".rideshare" / "storage"


@dataclass(frozen=True)
class Settings:
    """Typed view of the environment."""
    mode: str = "prod"  # "demo"/"test" use fixture-backed fakes
    storage_backend: str = "file"  # "file", "mongo" or "memory"
    storage_dir: Path = DEFAULT_STORAGE_DIR
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "rideshare"
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_access_token: str = ""
    expo_access_token: str = ""
    reminder_check_interval_seconds: int = 60
    log_level: str = "INFO"

    @property
    def uses_fakes(self) -> bool:
        return self.mode in {"demo", "test"}


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    storage_dir = os.environ.get("NOTIFICATIONS_STORAGE_DIR", "").strip()
    return Settings(
        mode=os.environ.get("RIDESHARE_MODE", "prod").strip().lower(),
        storage_backend=os.environ.get("NOTIFICATIONS_STORAGE", "file").strip().lower(),
        storage_dir=Path(storage_dir).expanduser() if storage_dir else DEFAULT_STORAGE_DIR,
        mongo_url=os.environ.get("MONGO_URL", "mongodb://localhost:27017"),
        db_name=os.environ.get("DB_NAME", "rideshare"),
        supabase_url=os.environ.get("SUPABASE_URL", "").rstrip("/"),
        supabase_anon_key=os.environ.get("SUPABASE_ANON_KEY", ""),
        supabase_access_token=os.environ.get("SUPABASE_ACCESS_TOKEN", ""),
        expo_access_token=os.environ.get("EXPO_ACCESS_TOKEN", ""),
        reminder_check_interval_seconds=_int_env("REMINDER_CHECK_INTERVAL_SECONDS", 60),
        log_level=os.environ.get("LOG_LEVEL", "INFO").strip().upper(),
    )
