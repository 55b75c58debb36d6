"""
settlement.py
-------------

Settlement executor for waiver runs.

process_waivers() takes a league's pending claims, orders them with the
auction resolver, and settles them one by one. Every accepted claim is applied
in its own transaction (drop, add, debit, mark success); if anything in that
transaction fails, it rolls back, the claim is marked `error`, and the run
moves on. A partially successful run is a normal outcome. The caller always
gets one audit line per claim.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import uuid4

import claim_store  # type: ignore[import]
import league_db  # type: ignore[import]
from auction import WaiverAuction, order_claims  # type: ignore[import]
from audit_log import AuditLog  # type: ignore[import]
from config import SETTLEMENT_LOCK_TIMEOUT_S, WAIVER_TIEBREAK  # type: ignore[import]
from errors import (  # type: ignore[import]
    WaiverError,
    LEAGUE_NOT_FOUND,
    NOT_AUTHORIZED,
    SETTLEMENT_IN_PROGRESS,
)
from locks import league_settlement_lock  # type: ignore[import]
from models import Claim, ClaimOutcome, ClaimStatus, Reject  # type: ignore[import]

logger = logging.getLogger(__name__)

ACQUIRED_VIA_WAIVER = "waiver"


class _SettlementConflict(Exception):
    """An accepted claim can no longer be applied as decided."""


class _ClaimNoLongerPending(Exception):
    """The claim was cancelled or settled elsewhere after the snapshot."""


@dataclass
class SettlementReport:
    run_id: str
    league_id: int
    outcomes: List[ClaimOutcome] = field(default_factory=list)
    log: List[str] = field(default_factory=list)

    def count(self, status: ClaimStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def summary(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "processed": len(self.outcomes),
            "success": self.count(ClaimStatus.success),
            "failed": self.count(ClaimStatus.failed),
            "error": self.count(ClaimStatus.error),
        }


def _outcome(claim: Claim, status: ClaimStatus, detail: Optional[str] = None) -> ClaimOutcome:
    return ClaimOutcome(
        claim_id=claim.id,
        team_id=claim.team_id,
        add_asset=claim.add_key,
        bid_amount=claim.bid_amount,
        status=status,
        detail=detail,
    )


def _apply_claim(claim: Claim, acquired_week: int) -> None:
    """Drop, add, debit and mark success for one claim, all or nothing."""
    with league_db.transaction() as conn:
        if claim.has_drop:
            drop = claim.drop_key
            if not league_db.delete_roster_entry(conn, claim.team_id, drop.asset):
                raise _SettlementConflict(
                    f"drop asset {drop.asset} is no longer on team {claim.team_id}'s roster"
                )

        try:
            league_db.insert_roster_entry(
                conn,
                claim.league_id,
                claim.team_id,
                claim.add_key,
                acquired_week,
                ACQUIRED_VIA_WAIVER,
            )
        except sqlite3.IntegrityError as exc:
            raise _SettlementConflict(f"asset {claim.add_key} is already rostered in this league") from exc

        if not league_db.debit_budget(conn, claim.team_id, claim.bid_amount):
            raise _SettlementConflict(
                f"bid {claim.bid_amount} exceeds team {claim.team_id}'s current budget"
            )

        if not claim_store.mark_terminal(claim.id, ClaimStatus.success, conn=conn):
            raise _ClaimNoLongerPending()


def _settle_accepted(claim: Claim, acquired_week: int) -> Optional[ClaimOutcome]:
    try:
        _apply_claim(claim, acquired_week)
    except _ClaimNoLongerPending:
        logger.info("claim %s skipped: no longer pending", claim.id)
        return None
    except _SettlementConflict as exc:
        cause = str(exc)
        logger.warning("claim %s error: %s", claim.id, cause)
    except Exception as exc:
        cause = f"database transaction failed ({type(exc).__name__})"
        logger.exception("claim %s error: transaction failed", claim.id)
    else:
        return _outcome(claim, ClaimStatus.success)
    return _record_error(claim, cause)


def _record_error(claim: Claim, cause: str) -> ClaimOutcome:
    try:
        claim_store.mark_terminal(claim.id, ClaimStatus.error, reason=cause)
    except sqlite3.Error:
        logger.exception("claim %s: could not record error status", claim.id)
    return _outcome(claim, ClaimStatus.error, cause)


def _settle_rejected(claim: Claim, reason: str) -> Optional[ClaimOutcome]:
    try:
        marked = claim_store.mark_terminal(claim.id, ClaimStatus.failed, reason=reason)
    except sqlite3.Error as exc:
        logger.exception("claim %s: could not record failed status", claim.id)
        return _record_error(claim, f"could not record rejection ({type(exc).__name__}): {reason}")
    if not marked:
        logger.info("claim %s skipped: no longer pending", claim.id)
        return None
    return _outcome(claim, ClaimStatus.failed, reason)


def settle_league(league: Dict[str, Any], tiebreak: str = WAIVER_TIEBREAK) -> SettlementReport:
    """
    Run one settlement pass over the league's current pending claims.

    Callers must hold league_settlement_lock for the league.
    """
    league_id = int(league["id"])
    audit = AuditLog(uuid4().hex, league_id)
    report = SettlementReport(run_id=audit.run_id, league_id=league_id)

    pending = claim_store.list_pending_for_league(league_id)
    if not pending:
        logger.info("waiver run %s for league %s: no pending claims", audit.run_id, league_id)
        return report

    auction = WaiverAuction(league_db.get_team_budgets(league_id))
    acquired_week = int(league["current_week"])

    for claim in order_claims(pending, tiebreak):
        decision = auction.decide(claim)
        if isinstance(decision, Reject):
            outcome = _settle_rejected(claim, decision.reason)
        else:
            outcome = _settle_accepted(claim, acquired_week)
            if outcome is not None and outcome.status == ClaimStatus.success:
                auction.commit(claim)
        if outcome is None:
            continue
        line = audit.record(outcome)
        logger.info("waiver run %s: %s", audit.run_id, line)

    try:
        audit.persist()
    except sqlite3.Error:
        logger.exception("waiver run %s: could not persist audit log", audit.run_id)
    report.outcomes = list(audit.outcomes)
    report.log = audit.lines
    logger.info("waiver run %s for league %s done: %s", audit.run_id, league_id, report.summary())
    return report


def process_waivers(
    league_id: int,
    acting_user_id: int,
    tiebreak: Optional[str] = None,
    lock_timeout_s: Optional[float] = SETTLEMENT_LOCK_TIMEOUT_S,
) -> SettlementReport:
    """
    Commissioner entrypoint: settle every pending claim in the league.

    Raises WaiverError for a missing league, a non-commissioner caller, or
    when another run for the same league holds the lock past the timeout.
    """
    league = league_db.get_league(league_id)
    if not league:
        raise WaiverError(LEAGUE_NOT_FOUND, "League not found", {"league_id": league_id})
    if int(league["commissioner_user_id"]) != int(acting_user_id):
        raise WaiverError(NOT_AUTHORIZED, "Only commissioner can process waivers", {"league_id": league_id})

    try:
        with league_settlement_lock(league_id, reason="PROCESS_WAIVERS", timeout_s=lock_timeout_s):
            return settle_league(league, tiebreak or WAIVER_TIEBREAK)
    except TimeoutError as exc:
        raise WaiverError(
            SETTLEMENT_IN_PROGRESS,
            "Another waiver run for this league is in progress",
            {"league_id": league_id},
        ) from exc
