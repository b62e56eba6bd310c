"""
config.py
---------
Loads environment variables (and an optional .env file) and exposes them
as typed module constants.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ── Runtime ───────────────────────────────────────────────
APP_ENV: str = os.getenv("APP_ENV", "development")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# ── Database ──────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///db/bookmark.db")

# ── Admin session ─────────────────────────────────────────
ADMIN_JWT_SECRET: str = os.getenv("ADMIN_JWT_SECRET", "")
ADMIN_SESSION_COOKIE_NAME: str = os.getenv("ADMIN_SESSION_COOKIE_NAME", "admin_session")
ADMIN_SESSION_MAX_AGE: int = int(os.getenv("ADMIN_SESSION_MAX_AGE", str(60 * 60 * 24 * 7)))
COOKIE_SECURE: bool = _env_bool("COOKIE_SECURE", APP_ENV == "production")

# ── Site ──────────────────────────────────────────────────
DEFAULT_SITE_NAME: str = os.getenv("DEFAULT_SITE_NAME", "Bookmark")
REDIRECT_COUNTDOWN_SECONDS: int = int(os.getenv("REDIRECT_COUNTDOWN_SECONDS", "3"))
PUBLIC_PAGE_SIZE: int = int(os.getenv("PUBLIC_PAGE_SIZE", "24"))
MAX_PAGE_SIZE: int = int(os.getenv("MAX_PAGE_SIZE", "100"))
