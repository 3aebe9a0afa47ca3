"""Configuration loaded from environment variables."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env: try package dir then project root
_base = Path(__file__).resolve().parent
for _env_path in (_base / ".env", _base.parent / ".env"):
    if load_dotenv(_env_path):
        break
load_dotenv()  # also allow process env


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Invalid integer for %s=%r; using %s", key, raw, default)
        return default


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Invalid number for %s=%r; using %s", key, raw, default)
        return default


# API keys – never hardcode
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
MODEL_NAME: str = os.getenv("MODEL_NAME", "gpt-4o-mini")
LLM_TEMPERATURE: float = 0.1

# Gmail OAuth (refresh token obtained out of band)
GMAIL_CLIENT_ID: str = os.getenv("GMAIL_CLIENT_ID", "")
GMAIL_CLIENT_SECRET: str = os.getenv("GMAIL_CLIENT_SECRET", "")
GMAIL_REFRESH_TOKEN: str = os.getenv("GMAIL_REFRESH_TOKEN", "")
DEFAULT_EMAIL_QUERY: str = os.getenv(
    "DEFAULT_EMAIL_QUERY",
    "from:placementoffice@vitbhopal.ac.in OR subject:placement",
)
GMAIL_PAGE_SIZE: int = _env_int("GMAIL_PAGE_SIZE", 10)

# HTTP / fetch settings
HTTP_TIMEOUT_SECONDS: float = 30.0

# Pipeline concurrency
WORKER_COUNT: int = _env_int("WORKER_COUNT", 5)  # 10 hits OpenAI rate limits too fast
ENRICHMENT_CONCURRENCY: int = _env_int("ENRICHMENT_CONCURRENCY", 10)  # global cap on in-flight LLM calls
ENRICHMENT_MAX_ATTEMPTS: int = _env_int("ENRICHMENT_MAX_ATTEMPTS", 3)
BACKOFF_INITIAL_SECONDS: float = _env_float("BACKOFF_INITIAL_SECONDS", 2.0)  # doubles per retry: 2s, 4s
HEARTBEAT_INTERVAL_SECONDS: float = _env_float("HEARTBEAT_INTERVAL_SECONDS", 15.0)

# Enrichment input limits and in-process analysis cache
MAX_BODY_CHARS: int = 4000
ANALYSIS_CACHE_TTL_SECONDS: float = 3600.0
ANALYSIS_CACHE_KEY_MAX: int = 100
ANALYSIS_CACHE_CLEANUP_SECONDS: float = 300.0

# Result store
DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{_base.parent / 'inbox_signal.db'}")

# Per-client request limiting for the HTTP API
RATE_LIMIT_MAX_REQUESTS: int = _env_int("RATE_LIMIT_MAX_REQUESTS", 10)
RATE_LIMIT_WINDOW_SECONDS: float = _env_float("RATE_LIMIT_WINDOW_SECONDS", 60.0)
RATE_LIMIT_CLEANUP_SECONDS: float = 300.0

# Streamlit runs single-user; the API takes the principal from a header
DEFAULT_USER_ID: str = os.getenv("DEFAULT_USER_ID", "local")

# Categories that must name an organization (compared lowercase)
ORGANIZATION_REQUIRED_CATEGORIES: tuple = ("internship", "job offer", "full-time")

PRIORITY_LEVELS: tuple = ("high", "medium", "low")

# HTTP API server
API_HOST: str = os.getenv("API_HOST", "127.0.0.1")
API_PORT: int = _env_int("API_PORT", 8000)
