"""
Configuration for the foundry directory maintenance pipeline.
All settings come from environment variables; .env.local and .env are loaded first.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(".env.local")
load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/foundries.db")

# Debug flag (see debug_enabled() for the dynamic version)
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Shared admin secret for privileged API routes
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

# Text-generation service (Ollama)
OLLAMA_HOST = os.getenv("OLLAMA_HOST")  # None -> client default (localhost:11434)
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.1:8b")
LLM_TIMEOUT_SEC = float(os.getenv("LLM_TIMEOUT_SEC", "120"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "2000"))
ANALYZER_MAX_CONTEXT_CHARS = int(os.getenv("ANALYZER_MAX_CONTEXT_CHARS", "15000"))

# Content fetching
FETCH_TIMEOUT_SEC = float(os.getenv("FETCH_TIMEOUT_SEC", "10"))
RENDERED_FETCH_TIMEOUT_SEC = float(os.getenv("RENDERED_FETCH_TIMEOUT_SEC", "30"))
FETCH_MIN_TEXT_CHARS = int(os.getenv("FETCH_MIN_TEXT_CHARS", "500"))
FETCH_MAX_TEXT_CHARS = int(os.getenv("FETCH_MAX_TEXT_CHARS", "15000"))
FETCH_USER_AGENT = os.getenv(
    "FETCH_USER_AGENT",
    "Mozilla/5.0 (compatible; FoundryDirectoryBot/1.0)"
)

# Validation runs
VALIDATION_DELAY_SEC = float(os.getenv("VALIDATION_DELAY_SEC", "1.0"))
REPORT_DIR = os.getenv("REPORT_DIR", "./reports")
VALIDATION_STATE_FILE = os.getenv("VALIDATION_STATE_FILE", "./validation-state.json")
JOB_PROGRESS_TTL_SEC = int(os.getenv("JOB_PROGRESS_TTL_SEC", "300"))

# Backups
BACKUP_LIST_LIMIT = int(os.getenv("BACKUP_LIST_LIMIT", "20"))

# Version string
VERSION = "1.0.0"


def get_db_path() -> str:
    """Database path, read at call time so tests can point at a temporary file."""
    return os.getenv("DB_PATH", DB_PATH)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_admin_password():
    """Shared admin secret, read at call time."""
    return os.getenv("ADMIN_PASSWORD", ADMIN_PASSWORD or "") or None


def ensure_db_directory():
    """Ensure the database directory exists."""
    Path(get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if not get_admin_password():
        issues.append("ADMIN_PASSWORD is not set; admin API routes will reject every request")

    if VALIDATION_DELAY_SEC < 0:
        issues.append("VALIDATION_DELAY_SEC must be >= 0")

    if FETCH_TIMEOUT_SEC <= 0 or RENDERED_FETCH_TIMEOUT_SEC <= 0:
        issues.append("Fetch timeouts must be > 0")

    if LLM_TIMEOUT_SEC <= 0:
        issues.append("LLM_TIMEOUT_SEC must be > 0")

    if FETCH_MIN_TEXT_CHARS >= FETCH_MAX_TEXT_CHARS:
        issues.append("FETCH_MIN_TEXT_CHARS must be smaller than FETCH_MAX_TEXT_CHARS")

    if JOB_PROGRESS_TTL_SEC < 1:
        issues.append("JOB_PROGRESS_TTL_SEC must be >= 1")

    return issues
