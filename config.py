# config.py
from pathlib import Path
from typing import Tuple
import os

# ====== Storage ======
# Allow the DB path to be overridden for hosted environments (e.g. a
# persistent disk). Locally we default to ./data/waiverwire.db.
DB_PATH = Path(os.environ.get("WAIVERWIRE_DB_PATH", "data/waiverwire.db"))


# ====== Sessions ======
SESSION_COOKIE: str = "waiverwire_session"
SESSION_TTL_DAYS: int = 30


# ====== League defaults ======
ASSET_TYPES: Tuple[str, ...] = ("manufacturer", "strain", "product", "pharmacy", "brand")

# Sentinel used for drop_asset_type when a claim fills an open roster slot.
NO_DROP: str = "none"

DEFAULT_FAAB_BUDGET: int = 100
MAX_FAAB_BUDGET: int = 1000
DEFAULT_WAIVER_PRIORITY: int = 1


# ====== Waiver settlement ======
# Ordering key applied after bid (desc) and priority (asc) are both equal.
#   "created_at" -> earliest submitted claim first, then lowest claim id
#   "id"         -> lowest claim id first
TIEBREAK_KEYS: Tuple[str, ...] = ("created_at", "id")
WAIVER_TIEBREAK: str = os.environ.get("WAIVERWIRE_TIEBREAK", "created_at")

# How long a second settlement run for the same league waits before giving up.
SETTLEMENT_LOCK_TIMEOUT_S: float = float(os.environ.get("WAIVERWIRE_LOCK_TIMEOUT_S", "30"))


# ====== Logging ======
LOG_LEVEL: str = os.environ.get("WAIVERWIRE_LOG_LEVEL", "INFO")
LOG_DIR: str = os.environ.get("WAIVERWIRE_LOG_DIR", "")
