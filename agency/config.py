"""
Service configuration, read from the environment once at import.

Other modules import constants from here instead of reading os.environ.

Usage:
    from agency.config import MONGO_URI, NOTIFY_WEBHOOK_URL
"""

import os

# ─── DATABASE ────────────────────────────────────────────────

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/agency")

# ─── NOTIFICATIONS ───────────────────────────────────────────

# empty = webhook disabled, in-app notifications only
NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL", "")
NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "5"))

# ─── API ─────────────────────────────────────────────────────

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# ─── LOGGING ─────────────────────────────────────────────────

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
LOG_FILE = os.getenv("LOG_FILE", "")  # empty = stdout only

# ─── VALIDATION ──────────────────────────────────────────────

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VALID_LOG_FORMATS = {"text", "json"}

_errors = []

if LOG_LEVEL not in _VALID_LOG_LEVELS:
    _errors.append(f"LOG_LEVEL must be one of {_VALID_LOG_LEVELS}, got '{LOG_LEVEL}'")

if LOG_FORMAT not in _VALID_LOG_FORMATS:
    _errors.append(f"LOG_FORMAT must be one of {_VALID_LOG_FORMATS}, got '{LOG_FORMAT}'")

if NOTIFY_TIMEOUT_SECONDS <= 0:
    _errors.append(f"NOTIFY_TIMEOUT_SECONDS must be positive, got {NOTIFY_TIMEOUT_SECONDS}")

if _errors:
    raise RuntimeError("Invalid configuration:\n  " + "\n  ".join(_errors))
