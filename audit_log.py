"""
audit_log.py
------------

Human-readable trace of a settlement run: one line per processed claim.

The lines are returned to whoever triggered the run and also written to
waiver_audit_log under the run's id, so a league can look back at what a
past run did and why.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from league_db import _get_conn, utc_now  # type: ignore[import]
from models import ClaimOutcome, ClaimStatus  # type: ignore[import]


def format_outcome(outcome: ClaimOutcome) -> str:
    if outcome.status == ClaimStatus.success:
        return (
            f"claim {outcome.claim_id} success: team {outcome.team_id} "
            f"got asset {outcome.add_asset} for bid {outcome.bid_amount}"
        )
    return f"claim {outcome.claim_id} {outcome.status.value}: {outcome.detail}"


class AuditLog:
    def __init__(self, run_id: str, league_id: int):
        self.run_id = run_id
        self.league_id = league_id
        self.outcomes: List[ClaimOutcome] = []

    def record(self, outcome: ClaimOutcome) -> str:
        self.outcomes.append(outcome)
        return format_outcome(outcome)

    @property
    def lines(self) -> List[str]:
        return [format_outcome(o) for o in self.outcomes]

    def persist(self) -> None:
        if not self.outcomes:
            return
        now = utc_now()
        conn = _get_conn()
        conn.executemany(
            """
            INSERT INTO waiver_audit_log (run_id, league_id, claim_id, status, line, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (self.run_id, self.league_id, o.claim_id, o.status.value, format_outcome(o), now)
                for o in self.outcomes
            ],
        )
        conn.commit()
        conn.close()


def get_audit_log(league_id: int, run_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Stored lines of one run for a league: `run_id`, or the latest run.

    Returns {"run_id": None, "lines": []} when the league has no runs yet.
    """
    conn = _get_conn()
    if run_id is None:
        row = conn.execute(
            "SELECT run_id FROM waiver_audit_log WHERE league_id = ? ORDER BY id DESC LIMIT 1",
            (league_id,),
        ).fetchone()
        if row is None:
            conn.close()
            return {"run_id": None, "lines": []}
        run_id = row["run_id"]

    rows = conn.execute(
        "SELECT line FROM waiver_audit_log WHERE league_id = ? AND run_id = ? ORDER BY id",
        (league_id, run_id),
    ).fetchall()
    conn.close()
    return {"run_id": run_id, "lines": [r["line"] for r in rows]}
