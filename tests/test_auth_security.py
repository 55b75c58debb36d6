from datetime import datetime, timedelta, timezone

from auth_security import create_session_token, parse_session_token
from config import SESSION_TTL_DAYS


def test_round_trip():
    token = create_session_token(42)
    assert parse_session_token(token) == 42


def test_tampered_user_id_is_rejected():
    token = create_session_token(42)
    _, rest = token.split(":", 1)
    assert parse_session_token(f"43:{rest}") is None


def test_expired_token_is_rejected():
    issued = datetime.now(tz=timezone.utc) - timedelta(days=SESSION_TTL_DAYS + 1)
    assert parse_session_token(create_session_token(42, now=issued)) is None


def test_malformed_tokens():
    assert parse_session_token("") is None
    assert parse_session_token("1:2:3") is None
    assert parse_session_token("abc:def:ghi:jkl") is None
