"""
claim_store.py
--------------

Durable record of waiver claims and their lifecycle.

A claim is inserted as `pending` and becomes terminal exactly once. Every
status change below is a conditional update on `status = 'pending'`, so a
terminal row is never rewritten even if two writers race for it.
"""

from __future__ import annotations

import sqlite3
from typing import List, Optional

from league_db import _get_conn, utc_now  # type: ignore[import]
from models import Claim, ClaimStatus  # type: ignore[import]


def _claim_from_row(row: sqlite3.Row) -> Claim:
    return Claim(
        id=int(row["id"]),
        league_id=int(row["league_id"]),
        team_id=int(row["team_id"]),
        year=int(row["year"]),
        week=int(row["week"]),
        add_asset_type=row["add_asset_type"],
        add_asset_id=int(row["add_asset_id"]),
        drop_asset_type=row["drop_asset_type"],
        drop_asset_id=int(row["drop_asset_id"]),
        bid_amount=int(row["bid_amount"]),
        priority=int(row["priority"]),
        status=ClaimStatus(row["status"]),
        created_at=row["created_at"],
        processed_at=row["processed_at"],
        reason=row["reason"],
    )


def insert_claim(
    league_id: int,
    team_id: int,
    year: int,
    week: int,
    add_asset_type: str,
    add_asset_id: int,
    drop_asset_type: str,
    drop_asset_id: int,
    bid_amount: int,
    priority: int,
) -> int:
    conn = _get_conn()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO waiver_claims (
            league_id, team_id, year, week,
            add_asset_type, add_asset_id, drop_asset_type, drop_asset_id,
            bid_amount, priority, status, created_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?)
        """,
        (
            league_id, team_id, year, week,
            add_asset_type, add_asset_id, drop_asset_type, drop_asset_id,
            bid_amount, priority, utc_now(),
        ),
    )
    conn.commit()
    claim_id = cur.lastrowid
    conn.close()
    return int(claim_id)


def get_claim(claim_id: int) -> Optional[Claim]:
    conn = _get_conn()
    row = conn.execute("SELECT * FROM waiver_claims WHERE id = ?", (claim_id,)).fetchone()
    conn.close()
    return _claim_from_row(row) if row else None


def list_pending_for_league(league_id: int) -> List[Claim]:
    """Snapshot of every pending claim in the league (unordered)."""
    conn = _get_conn()
    rows = conn.execute(
        "SELECT * FROM waiver_claims WHERE league_id = ? AND status = 'pending'",
        (league_id,),
    ).fetchall()
    conn.close()
    return [_claim_from_row(r) for r in rows]


def list_pending_for_team(team_id: int) -> List[Claim]:
    conn = _get_conn()
    rows = conn.execute(
        "SELECT * FROM waiver_claims WHERE team_id = ? AND status = 'pending' ORDER BY id",
        (team_id,),
    ).fetchall()
    conn.close()
    return [_claim_from_row(r) for r in rows]


def list_terminal_for_league(league_id: int) -> List[Claim]:
    """Processed claims for the league, most recently processed first."""
    conn = _get_conn()
    rows = conn.execute(
        """
        SELECT * FROM waiver_claims
        WHERE league_id = ? AND status != 'pending'
        ORDER BY processed_at DESC, id DESC
        """,
        (league_id,),
    ).fetchall()
    conn.close()
    return [_claim_from_row(r) for r in rows]


def delete_pending_claim(claim_id: int) -> bool:
    """Delete the claim only while it is still pending."""
    conn = _get_conn()
    cur = conn.execute(
        "DELETE FROM waiver_claims WHERE id = ? AND status = 'pending'",
        (claim_id,),
    )
    conn.commit()
    deleted = cur.rowcount > 0
    conn.close()
    return deleted


def mark_terminal(
    claim_id: int,
    status: ClaimStatus,
    reason: Optional[str] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> bool:
    """
    Move a pending claim to a terminal status.

    With `conn` the update joins the caller's transaction; otherwise it is
    committed on its own connection. Returns False if the claim was no
    longer pending.
    """
    if status == ClaimStatus.pending:
        raise ValueError("mark_terminal needs a terminal status")

    own_conn = conn is None
    if own_conn:
        conn = _get_conn()
    try:
        cur = conn.execute(
            """
            UPDATE waiver_claims
            SET status = ?, reason = ?, processed_at = ?
            WHERE id = ? AND status = 'pending'
            """,
            (status.value, reason, utc_now(), claim_id),
        )
        if own_conn:
            conn.commit()
        return cur.rowcount > 0
    finally:
        if own_conn:
            conn.close()
