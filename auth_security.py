from __future__ import annotations

import hmac
import os
import secrets
from hashlib import sha256
from typing import Optional
from datetime import datetime, timedelta, timezone

from config import SESSION_TTL_DAYS  # type: ignore[import]


SESSION_SECRET = os.environ.get("WAIVERWIRE_SESSION_SECRET", "dev-session-secret-change-me").encode(
    "utf-8"
)


def _sign(base: str) -> str:
    return hmac.new(SESSION_SECRET, base.encode("utf-8"), sha256).hexdigest()


def create_session_token(user_id: int, now: Optional[datetime] = None) -> str:
    """
    Create a signed session token identifying the acting user.

    Format: user_id:timestamp:nonce:signature
    signature = HMAC-SHA256(SESSION_SECRET, "user_id:timestamp:nonce")
    """
    ts = int((now or datetime.now(tz=timezone.utc)).timestamp())
    nonce = secrets.token_hex(16)
    base = f"{user_id}:{ts}:{nonce}"
    return f"{base}:{_sign(base)}"


def parse_session_token(token: str) -> Optional[int]:
    """
    Validate a session token and return the user_id if valid, else None.
    """
    try:
        user_str, ts_str, nonce, sig = token.split(":", 3)
    except ValueError:
        return None
    base = f"{user_str}:{ts_str}:{nonce}"

    if not hmac.compare_digest(_sign(base), sig):
        return None

    try:
        user_id = int(user_str)
        ts = int(ts_str)
    except ValueError:
        return None

    created_at = datetime.fromtimestamp(ts, tz=timezone.utc)
    if created_at < datetime.now(tz=timezone.utc) - timedelta(days=SESSION_TTL_DAYS):
        return None

    return user_id
