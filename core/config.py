# ABOUTME: Shared app configuration and constants for the goal tracking API and service (core package).
# ABOUTME: Values come from .env / environment; defaults live here so API and service stay in sync.

import os

from dotenv import load_dotenv

load_dotenv()

GOALS_DB_PATH = os.environ.get("GOALS_DB_PATH", "mentorconnect.db")

DEFAULT_GOALS_PAGE_SIZE = 20
MAX_GOALS_PAGE_SIZE = 100
MAX_TITLE_LENGTH = 200

# Auth: SECRET_KEY must be set (e.g. in .env); no default to avoid JWT forgery in production.
_SECRET_KEY = os.environ.get("SECRET_KEY")
if not _SECRET_KEY:
    raise ValueError(
        "SECRET_KEY environment variable must be set. For local dev, add SECRET_KEY=your-secret to .env."
    )
SECRET_KEY = _SECRET_KEY
ALGORITHM = "HS256"
_DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES = 60


def _parse_access_token_expire_minutes() -> int:
    raw = os.environ.get(
        "ACCESS_TOKEN_EXPIRE_MINUTES", str(_DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    try:
        return int(raw)
    except ValueError:
        return _DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES


def _parse_csv(name: str, default: str = "") -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


ACCESS_TOKEN_EXPIRE_MINUTES = _parse_access_token_expire_minutes()
MIN_PASSWORD_LENGTH = 8
MIN_USERNAME_LENGTH = 1
MAX_USERNAME_LENGTH = 128

# Usernames that receive the ADMIN role at signup; there is no self-service admin path.
ADMIN_USERNAMES = frozenset(_parse_csv("ADMIN_USERNAMES"))

# CORS: comma-separated origins; default allows a local frontend dev server. Set in production.
CORS_ORIGINS = _parse_csv("CORS_ORIGINS", "http://localhost:5173") or [
    "http://localhost:5173"
]
