# src/subconscious/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole process.
- No secrets or network access required at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "SUBCON"

CAPABILITY_BACKENDS = ("ollama", "openai", "offline")
DRIVE_MODES = ("rate_bounded", "continuous")
DEQUEUE_MODES = ("pop", "lease")

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_non_negative(name: str, default: float) -> float:
    """Like _env_float, but 0 is kept and negative values fall back to default."""
    value = _env_float(name, default)
    if value is None or value < 0:
        return default
    return value


def _env_choice(name: str, choices: tuple[str, ...], default: str) -> str:
    raw = _env(name, default).strip().lower()
    return raw if raw in choices else default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Queue store ----
    redis_url: str
    dequeue_mode: str
    lease_seconds: float
    liveness_marker_ttl_seconds: int

    # ---- Capability ----
    capability_backend: str
    capability_base_url: str
    capability_model: str
    capability_api_key: str | None
    capability_timeout_seconds: float | None

    # ---- Core loop ----
    routine_interval_seconds: float
    liveness_interval_seconds: float
    drive_mode: str
    max_in_flight: int
    drive_slice_seconds: float

    # ---- Memory ----
    short_term_capacity: int

    # ---- Bootstrap / connectors ----
    seed_permanent_tasks: bool
    console_enabled: bool

    @property
    def log_file(self) -> Path:
        return self.data_dir / "subconscious.log"

    @staticmethod
    def from_env() -> Settings:
        backend = _env_choice(_k("CAPABILITY_BACKEND"), CAPABILITY_BACKENDS, "ollama")
        default_base_url = "http://127.0.0.1:11434" if backend != "openai" else "https://openrouter.ai/api/v1"

        return Settings(
            app_name=_env(_k("APP_NAME"), "subconscious") or "subconscious",
            log_level=_env(_k("LOG_LEVEL"), "INFO"),
            data_dir=_env_path(_k("DATA_DIR"), Path(".local/subconscious")),
            redis_url=_env(_k("REDIS_URL"), "redis://127.0.0.1:6379/0"),
            dequeue_mode=_env_choice(_k("DEQUEUE_MODE"), DEQUEUE_MODES, "pop"),
            lease_seconds=_env_non_negative(_k("LEASE_SECONDS"), 60.0),
            liveness_marker_ttl_seconds=max(1, _env_int(_k("LIVENESS_MARKER_TTL_SECONDS"), 10)),
            capability_backend=backend,
            capability_base_url=_env(_k("CAPABILITY_BASE_URL"), default_base_url),
            capability_model=_env(_k("CAPABILITY_MODEL"), "llama3"),
            capability_api_key=_env(_k("CAPABILITY_API_KEY"), "").strip() or None,
            capability_timeout_seconds=_env_float(_k("CAPABILITY_TIMEOUT_SECONDS"), None),
            routine_interval_seconds=_env_non_negative(_k("ROUTINE_INTERVAL_SECONDS"), 10.0),
            liveness_interval_seconds=_env_non_negative(_k("LIVENESS_INTERVAL_SECONDS"), 10.0),
            drive_mode=_env_choice(_k("DRIVE_MODE"), DRIVE_MODES, "rate_bounded"),
            max_in_flight=max(1, _env_int(_k("MAX_IN_FLIGHT"), 10)),
            drive_slice_seconds=_env_non_negative(_k("DRIVE_SLICE_SECONDS"), 0.1),
            short_term_capacity=max(1, _env_int(_k("SHORT_TERM_CAPACITY"), 10)),
            seed_permanent_tasks=_env_bool(_k("SEED_PERMANENT_TASKS"), True),
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
