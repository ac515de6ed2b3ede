from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _resolve_project_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


PROJECT_ROOT = _resolve_project_root()


def runtime_root() -> Path:
    """Project root for a source checkout or frozen build, else the working directory."""
    if getattr(sys, "frozen", False) or (PROJECT_ROOT / "pyproject.toml").exists():
        return PROJECT_ROOT
    return Path.cwd()


def load_env() -> None:
    env_name = os.getenv("APP_ENV", "development")
    candidates = list(dict.fromkeys([Path.cwd(), runtime_root()]))
    for base in candidates:
        env_path = base / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            break

    for base in candidates:
        env_specific = base / f".env.{env_name}"
        if env_specific.exists():
            load_dotenv(env_specific, override=True)
            break


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"
    log_dir: str = "logs"
    check_interval_seconds: int = 3600
    reminder_interval_hours: int = 24
    retention_days: int = 7
    week_start_day: int = 6
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_sender: str = "noreply@kitchenops.local"
    smtp_use_tls: bool = True
    smtp_timeout: float = 30.0


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    load_env()

    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set. Create a .env file with your connection string.")

    week_start_day = int(os.getenv("WEEK_START_DAY", "6"))
    if not 0 <= week_start_day <= 6:
        raise ValueError(f"WEEK_START_DAY must be between 0 (Monday) and 6 (Sunday), got {week_start_day}")

    return Settings(
        database_url=database_url,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_dir=os.getenv("LOG_DIR", "logs"),
        check_interval_seconds=int(os.getenv("CHECK_INTERVAL_SECONDS", "3600")),
        reminder_interval_hours=int(os.getenv("REMINDER_INTERVAL_HOURS", "24")),
        retention_days=int(os.getenv("RETENTION_DAYS", "7")),
        week_start_day=week_start_day,
        smtp_host=os.getenv("SMTP_HOST", "").strip() or None,
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        smtp_user=os.getenv("SMTP_USER", "").strip() or None,
        smtp_password=os.getenv("SMTP_PASSWORD") or None,
        smtp_sender=os.getenv("SMTP_SENDER", "").strip() or "noreply@kitchenops.local",
        smtp_use_tls=_env_flag("SMTP_USE_TLS", True),
        smtp_timeout=float(os.getenv("SMTP_TIMEOUT", "30")),
    )
