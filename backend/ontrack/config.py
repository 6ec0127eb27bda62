# backend/ontrack/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/ontrack.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///ontrack.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Fixed civil offset used to turn HH:MM shift text into instants (UTC+8)
    ATTENDANCE_UTC_OFFSET_MINUTES = int(os.environ.get("ATTENDANCE_UTC_OFFSET_MINUTES", "480"))

    # Same-kind punches received inside this trailing window are rejected
    ATTENDANCE_DUPLICATE_WINDOW_SECONDS = int(os.environ.get("ATTENDANCE_DUPLICATE_WINDOW_SECONDS", "15"))

    # Opt-in storage constraint on (student, kind, 15s bucket); changes behavior under true concurrency
    ATTENDANCE_STRICT_DUPLICATE_GUARD = _env_bool("ATTENDANCE_STRICT_DUPLICATE_GUARD", False)
