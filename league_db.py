from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Dict, Any, Iterator, List
import hashlib
import secrets
from datetime import datetime, timezone

from config import (  # type: ignore[import]
    DB_PATH as _DEFAULT_DB_PATH,
    DEFAULT_FAAB_BUDGET,
)
from models import Team, AssetKey  # type: ignore[import]

DB_PATH: Path = _DEFAULT_DB_PATH


def utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def _get_conn() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """
    Open a connection and hold a write transaction for the body of the block.

    BEGIN IMMEDIATE takes the write lock up front, so two writers never both
    read a row and then race to update it. Commits on success, rolls back on
    any exception and re-raises it.
    """
    conn = _get_conn()
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db() -> None:
    conn = _get_conn()
    cur = conn.cursor()

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS leagues (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            commissioner_user_id INTEGER NOT NULL,
            season_year INTEGER NOT NULL,
            current_week INTEGER NOT NULL DEFAULT 1,
            faab_budget INTEGER NOT NULL DEFAULT 100 CHECK (faab_budget >= 0),
            created_at TEXT NOT NULL,
            FOREIGN KEY(commissioner_user_id) REFERENCES users(id)
        )
        """
    )

    # One team per user per league. The CHECK keeps a debit from ever
    # leaving a negative budget behind, whatever the caller did.
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS teams (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            league_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            faab_budget INTEGER NOT NULL CHECK (faab_budget >= 0),
            waiver_priority INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            UNIQUE (league_id, user_id),
            FOREIGN KEY(league_id) REFERENCES leagues(id) ON DELETE CASCADE,
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        )
        """
    )

    # league_id is denormalized onto the roster row so the storage layer can
    # enforce "at most one team holds an asset per league" on its own.
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS rosters (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            league_id INTEGER NOT NULL,
            team_id INTEGER NOT NULL,
            asset_type TEXT NOT NULL,
            asset_id INTEGER NOT NULL,
            acquired_week INTEGER NOT NULL,
            acquired_via TEXT NOT NULL,
            created_at TEXT NOT NULL,
            UNIQUE (team_id, asset_type, asset_id),
            UNIQUE (league_id, asset_type, asset_id),
            FOREIGN KEY(team_id) REFERENCES teams(id) ON DELETE CASCADE
        )
        """
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS waiver_claims (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            league_id INTEGER NOT NULL,
            team_id INTEGER NOT NULL,
            year INTEGER NOT NULL,
            week INTEGER NOT NULL,
            add_asset_type TEXT NOT NULL,
            add_asset_id INTEGER NOT NULL,
            drop_asset_type TEXT NOT NULL,
            drop_asset_id INTEGER NOT NULL,
            bid_amount INTEGER NOT NULL CHECK (bid_amount >= 0),
            priority INTEGER NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'success', 'failed', 'error')),
            reason TEXT,
            created_at TEXT NOT NULL,
            processed_at TEXT,
            FOREIGN KEY(team_id) REFERENCES teams(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_waiver_claims_league_status "
        "ON waiver_claims (league_id, status)"
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS waiver_audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            run_id TEXT NOT NULL,
            league_id INTEGER NOT NULL,
            claim_id INTEGER NOT NULL,
            status TEXT NOT NULL,
            line TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_waiver_audit_league_run "
        "ON waiver_audit_log (league_id, run_id)"
    )

    conn.commit()
    conn.close()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def _hash_password(password: str) -> str:
    """Hash a password using PBKDF2-HMAC-SHA256 with a random salt."""
    salt = secrets.token_bytes(16)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 100_000)
    return salt.hex() + ":" + dk.hex()


def _verify_password(password: str, stored_hash: str) -> bool:
    try:
        salt_hex, hash_hex = stored_hash.split(":", 1)
    except ValueError:
        return False
    salt = bytes.fromhex(salt_hex)
    expected = bytes.fromhex(hash_hex)
    dk = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, 100_000)
    return secrets.compare_digest(dk, expected)


def create_user(email: str, password: str) -> int:
    conn = _get_conn()
    cur = conn.cursor()
    cur.execute(
        "INSERT INTO users (email, password_hash, created_at) VALUES (?, ?, ?)",
        (email.lower(), _hash_password(password), utc_now()),
    )
    conn.commit()
    user_id = cur.lastrowid
    conn.close()
    return int(user_id)


def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    conn = _get_conn()
    row = conn.execute("SELECT * FROM users WHERE email = ?", (email.lower(),)).fetchone()
    conn.close()
    return dict(row) if row else None


def get_user_by_id(user_id: int) -> Optional[Dict[str, Any]]:
    conn = _get_conn()
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    conn.close()
    return dict(row) if row else None


def verify_user_credentials(email: str, password: str) -> Optional[Dict[str, Any]]:
    user = get_user_by_email(email)
    if not user:
        return None
    if not _verify_password(password, user["password_hash"]):
        return None
    return user


# ---------------------------------------------------------------------------
# Leagues & teams
# ---------------------------------------------------------------------------

def create_league(
    name: str,
    commissioner_user_id: int,
    season_year: int,
    current_week: int = 1,
    faab_budget: int = DEFAULT_FAAB_BUDGET,
    commissioner_team_name: Optional[str] = None,
) -> int:
    """
    Create a league. faab_budget is the starting budget of every team in it.

    With commissioner_team_name, the commissioner's team is created in the
    same transaction and takes waiver priority 1.
    """
    with transaction() as conn:
        cur = conn.execute(
            """
            INSERT INTO leagues (name, commissioner_user_id, season_year, current_week, faab_budget, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (name, commissioner_user_id, season_year, current_week, faab_budget, utc_now()),
        )
        league_id = int(cur.lastrowid)
        if commissioner_team_name is not None:
            conn.execute(
                """
                INSERT INTO teams (league_id, user_id, name, faab_budget, waiver_priority, created_at)
                VALUES (?, ?, ?, ?, 1, ?)
                """,
                (league_id, commissioner_user_id, commissioner_team_name, faab_budget, utc_now()),
            )
    return league_id


def get_league(league_id: int) -> Optional[Dict[str, Any]]:
    conn = _get_conn()
    row = conn.execute("SELECT * FROM leagues WHERE id = ?", (league_id,)).fetchone()
    conn.close()
    return dict(row) if row else None


def _team_from_row(row: sqlite3.Row) -> Team:
    return Team(
        id=int(row["id"]),
        league_id=int(row["league_id"]),
        user_id=int(row["user_id"]),
        name=row["name"],
        faab_budget=int(row["faab_budget"]),
        waiver_priority=int(row["waiver_priority"]),
    )


def create_team(
    league_id: int,
    user_id: int,
    name: str,
    faab_budget: Optional[int] = None,
    waiver_priority: Optional[int] = None,
) -> int:
    """
    Add a team to a league.

    Without an explicit faab_budget the team starts with the league's budget.
    Without an explicit waiver_priority the new team goes to the back of the
    order (one past the current team count).
    """
    conn = _get_conn()
    cur = conn.cursor()
    if faab_budget is None:
        row = cur.execute("SELECT faab_budget FROM leagues WHERE id = ?", (league_id,)).fetchone()
        faab_budget = int(row["faab_budget"]) if row else DEFAULT_FAAB_BUDGET
    if waiver_priority is None:
        (count,) = cur.execute(
            "SELECT COUNT(*) FROM teams WHERE league_id = ?", (league_id,)
        ).fetchone()
        waiver_priority = int(count) + 1
    cur.execute(
        """
        INSERT INTO teams (league_id, user_id, name, faab_budget, waiver_priority, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (league_id, user_id, name, faab_budget, waiver_priority, utc_now()),
    )
    conn.commit()
    team_id = cur.lastrowid
    conn.close()
    return int(team_id)


def get_team(team_id: int) -> Optional[Team]:
    conn = _get_conn()
    row = conn.execute("SELECT * FROM teams WHERE id = ?", (team_id,)).fetchone()
    conn.close()
    return _team_from_row(row) if row else None


def get_team_for_user(league_id: int, user_id: int) -> Optional[Team]:
    conn = _get_conn()
    row = conn.execute(
        "SELECT * FROM teams WHERE league_id = ? AND user_id = ?",
        (league_id, user_id),
    ).fetchone()
    conn.close()
    return _team_from_row(row) if row else None


def get_team_budgets(league_id: int) -> Dict[int, int]:
    """Current FAAB budget per team_id for every team in the league."""
    conn = _get_conn()
    rows = conn.execute(
        "SELECT id, faab_budget FROM teams WHERE league_id = ?", (league_id,)
    ).fetchall()
    conn.close()
    return {int(r["id"]): int(r["faab_budget"]) for r in rows}


# ---------------------------------------------------------------------------
# Rosters
# ---------------------------------------------------------------------------

def add_roster_entry(
    league_id: int,
    team_id: int,
    asset: AssetKey,
    acquired_week: int = 1,
    acquired_via: str = "draft",
) -> None:
    with transaction() as conn:
        insert_roster_entry(conn, league_id, team_id, asset, acquired_week, acquired_via)


def remove_roster_entry(team_id: int, asset: AssetKey) -> bool:
    with transaction() as conn:
        return delete_roster_entry(conn, team_id, asset)


def get_roster(team_id: int) -> List[Dict[str, Any]]:
    conn = _get_conn()
    rows = conn.execute(
        "SELECT * FROM rosters WHERE team_id = ? ORDER BY asset_type, asset_id",
        (team_id,),
    ).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def team_holds_asset(team_id: int, asset: AssetKey) -> bool:
    conn = _get_conn()
    row = conn.execute(
        "SELECT 1 FROM rosters WHERE team_id = ? AND asset_type = ? AND asset_id = ?",
        (team_id, asset.asset_type, asset.asset_id),
    ).fetchone()
    conn.close()
    return row is not None


def asset_owner(league_id: int, asset: AssetKey) -> Optional[int]:
    """team_id holding the asset in this league, or None for a free agent."""
    conn = _get_conn()
    row = conn.execute(
        "SELECT team_id FROM rosters WHERE league_id = ? AND asset_type = ? AND asset_id = ?",
        (league_id, asset.asset_type, asset.asset_id),
    ).fetchone()
    conn.close()
    return int(row["team_id"]) if row else None


# Mutation primitives below run on a caller-owned connection so the
# settlement executor can group them into one transaction per claim.

def insert_roster_entry(
    conn: sqlite3.Connection,
    league_id: int,
    team_id: int,
    asset: AssetKey,
    acquired_week: int,
    acquired_via: str,
) -> None:
    conn.execute(
        """
        INSERT INTO rosters (league_id, team_id, asset_type, asset_id, acquired_week, acquired_via, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (league_id, team_id, asset.asset_type, asset.asset_id, acquired_week, acquired_via, utc_now()),
    )


def delete_roster_entry(conn: sqlite3.Connection, team_id: int, asset: AssetKey) -> bool:
    cur = conn.execute(
        "DELETE FROM rosters WHERE team_id = ? AND asset_type = ? AND asset_id = ?",
        (team_id, asset.asset_type, asset.asset_id),
    )
    return cur.rowcount > 0


def debit_budget(conn: sqlite3.Connection, team_id: int, amount: int) -> bool:
    """Subtract amount from the team's budget; False if it would go negative."""
    cur = conn.execute(
        "UPDATE teams SET faab_budget = faab_budget - ? WHERE id = ? AND faab_budget >= ?",
        (amount, team_id, amount),
    )
    return cur.rowcount > 0
