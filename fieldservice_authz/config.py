"""
Centralised configuration constants and environment helpers.
"""

import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Permission data ──────────────────────────────────────────────────
DEFAULT_PERMISSIONS_PATH = Path(__file__).resolve().parent / "data" / "permissions.json"
PERMISSIONS_PATH = Path(os.getenv("PERMISSIONS_PATH", str(DEFAULT_PERMISSIONS_PATH)))

# ── RLS ──────────────────────────────────────────────────────────────
# Values accepted for a resource's unset-policy classification.
UNSET_FAILSAFE = "failsafe"
UNSET_PERMISSIVE = "permissive"
UNSET_CLASSIFICATIONS = {UNSET_FAILSAFE, UNSET_PERMISSIVE}

# ── Pagination ───────────────────────────────────────────────────────
DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 200

# ── API server ───────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = 24

# ── Logging ──────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging once for the CLI and the API server."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
