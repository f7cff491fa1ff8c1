from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-integer %s=%r", name, raw)
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-numeric %s=%r", name, raw)
        return default


def refund_threshold_days() -> int:
    return _int_env("GRAIN_REFUND_THRESHOLD_DAYS", 30)


def refund_min_amount() -> float:
    return _float_env("GRAIN_REFUND_MIN_AMOUNT", 50.0)


def log_level() -> str:
    return (os.getenv("GRAIN_LOG_LEVEL") or "INFO").upper()


def cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS")
    if raw is None:
        return ["http://localhost:5173", "http://127.0.0.1:5173"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def sql_echo() -> bool:
    return (os.getenv("GRAIN_SQL_ECHO") or "").strip().lower() in ("1", "true", "yes", "on")
