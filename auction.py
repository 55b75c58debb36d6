"""
auction.py
----------

Waiver auction resolver.

Turns a league's pending claims into a deterministic, conflict-free set of
accept/reject decisions:

  1. Order claims by bid (high first), then waiver priority (low first),
     then an explicit tie-break key so equal claims always land the same way.
  2. Walk the order once. A claim is rejected if its add asset was already
     granted, if its drop asset was already released, or if its bid exceeds
     what its team has left after the bids already accepted in this pass.
     Anything else is accepted.

No decision is revisited. This module does no I/O; settlement.py applies
the decisions.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Mapping, Set, Tuple

from config import TIEBREAK_KEYS, WAIVER_TIEBREAK  # type: ignore[import]
from models import Accept, AssetKey, Claim, Decision, Reject, TeamAssetKey  # type: ignore[import]

REASON_ASSET_TAKEN = "asset already taken"
REASON_DROP_MOVED = "drop asset already moved"
REASON_NO_BUDGET = "insufficient remaining budget"


def _sort_key(tiebreak: str) -> Callable[[Claim], Tuple]:
    if tiebreak not in TIEBREAK_KEYS:
        raise ValueError(f"Unknown waiver tiebreak {tiebreak!r}; expected one of {TIEBREAK_KEYS}")
    if tiebreak == "id":
        return lambda c: (-c.bid_amount, c.priority, c.id)
    return lambda c: (-c.bid_amount, c.priority, c.created_at, c.id)


def order_claims(claims: Iterable[Claim], tiebreak: str = WAIVER_TIEBREAK) -> List[Claim]:
    """Processing order for a settlement pass."""
    return sorted(claims, key=_sort_key(tiebreak))


class WaiverAuction:
    """
    Bookkeeping for one settlement pass.

    `decide` only looks; `commit` records an accepted claim. Keeping them
    apart lets the executor commit a claim only once its transaction has gone
    through, so a claim that errors out leaves its asset and budget to the
    claims behind it.
    """

    def __init__(self, budgets: Mapping[int, int]):
        self._budgets: Dict[int, int] = dict(budgets)
        self._spent: Dict[int, int] = {}
        self._taken: Set[AssetKey] = set()
        self._dropped: Set[TeamAssetKey] = set()

    def remaining_budget(self, team_id: int) -> int:
        return self._budgets.get(team_id, 0) - self._spent.get(team_id, 0)

    def decide(self, claim: Claim) -> Decision:
        if claim.add_key in self._taken:
            return Reject(claim, REASON_ASSET_TAKEN)
        drop_key = claim.drop_key
        if drop_key is not None and drop_key in self._dropped:
            return Reject(claim, REASON_DROP_MOVED)
        if claim.bid_amount > self.remaining_budget(claim.team_id):
            return Reject(claim, REASON_NO_BUDGET)
        return Accept(claim)

    def commit(self, claim: Claim) -> None:
        self._taken.add(claim.add_key)
        drop_key = claim.drop_key
        if drop_key is not None:
            self._dropped.add(drop_key)
        self._spent[claim.team_id] = self._spent.get(claim.team_id, 0) + claim.bid_amount


def resolve(
    claims: Iterable[Claim],
    budgets: Mapping[int, int],
    tiebreak: str = WAIVER_TIEBREAK,
) -> List[Decision]:
    """
    Decide every claim, in processing order, assuming each accept sticks.

    `budgets` maps team_id to the team's FAAB budget at the start of the
    run; a team missing from it has nothing to spend.
    """
    auction = WaiverAuction(budgets)
    decisions: List[Decision] = []
    for claim in order_claims(claims, tiebreak):
        decision = auction.decide(claim)
        if isinstance(decision, Accept):
            auction.commit(claim)
        decisions.append(decision)
    return decisions
