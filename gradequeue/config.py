"""
Configuration management for the grading-queue backend.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Base paths
BASE_DIR = Path(__file__).parent.parent
PACKAGE_DIR = Path(__file__).parent


def _env_float(name, default):
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return float(value)


def _env_int(name, default):
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return int(value)


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Supabase (profiles, credential RPC, JWT issuer)
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", "")

# Canvas API behaviour
CANVAS_API_PREFIX = "/api/v1"
CANVAS_TIMEOUT = _env_float("CANVAS_TIMEOUT", 30.0)
CANVAS_MAX_RETRIES = _env_int("CANVAS_MAX_RETRIES", 2)
CANVAS_BACKOFF_BASE = _env_float("CANVAS_BACKOFF_BASE", 1.0)  # seconds, doubles per retry
CANVAS_PACING_DELAY = _env_float("CANVAS_PACING_DELAY", 0.1)  # seconds between per-quiz calls
CANVAS_PER_PAGE = _env_int("CANVAS_PER_PAGE", 100)

# Aggregation
COURSE_WORKERS = _env_int("COURSE_WORKERS", 4)
CREDENTIAL_CACHE_TTL = _env_float("CREDENTIAL_CACHE_TTL", 300.0)  # 5 minutes

# Server configuration
HOST = os.getenv("HOST", "0.0.0.0")
PORT = _env_int("PORT", 3000)
DEBUG = _env_bool("DEBUG", False)
LOCAL_DEV = _env_bool("LOCAL_DEV", False)


class Config:
    """Application configuration class."""

    def __init__(self):
        self.canvas_timeout = CANVAS_TIMEOUT
        self.canvas_max_retries = CANVAS_MAX_RETRIES
        self.canvas_backoff_base = CANVAS_BACKOFF_BASE
        self.canvas_pacing_delay = CANVAS_PACING_DELAY
        self.course_workers = COURSE_WORKERS
        self.credential_cache_ttl = CREDENTIAL_CACHE_TTL
        self.default_sort_order = "oldest-first"
        self.default_course_filter = "active"

    def to_dict(self):
        return {
            "canvas_timeout": self.canvas_timeout,
            "canvas_max_retries": self.canvas_max_retries,
            "canvas_backoff_base": self.canvas_backoff_base,
            "canvas_pacing_delay": self.canvas_pacing_delay,
            "course_workers": self.course_workers,
            "credential_cache_ttl": self.credential_cache_ttl,
            "default_sort_order": self.default_sort_order,
            "default_course_filter": self.default_course_filter,
        }

    def update(self, data: dict):
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)


# Global config instance
config = Config()
