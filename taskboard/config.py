"""
Centralized configuration for taskboard.
All settings come from environment variables.
"""

import os


def _env_int(name: str, default: int) -> int:
    val = os.environ.get(name)
    if val is None or not val.strip():
        return default
    return int(val)


def _env_float(name: str, default: float) -> float:
    val = os.environ.get(name)
    if val is None or not val.strip():
        return default
    return float(val)


VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./taskboard.db")
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = _env_int("PORT", 8000)
DEFAULT_BOARD_COLOR = os.environ.get("DEFAULT_BOARD_COLOR", "#0079BF")
INVITATION_TTL_DAYS = _env_int("INVITATION_TTL_DAYS", 7)

# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------
API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8000/v1")
API_TIMEOUT_SECONDS = _env_float("API_TIMEOUT_SECONDS", 15.0)

# Advisory board cache (write-behind mirror of reorder state)
CACHE_DIR = os.environ.get("CACHE_DIR", ".taskboard-cache")
CACHE_DEBOUNCE_SECONDS = _env_float("CACHE_DEBOUNCE_SECONDS", 0.5)
CACHE_MAX_AGE_SECONDS = _env_float("CACHE_MAX_AGE_SECONDS", 24 * 60 * 60)
