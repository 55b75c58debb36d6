"""
claim_validator.py
------------------

Admission control for waiver claims.

Checks run at submission time only. A claim that passes is stored as
`pending`; nothing is reserved, so a team's budget stays spendable by its
other claims until settlement decides between them.
"""

from __future__ import annotations

import logging
from typing import List

import claim_store  # type: ignore[import]
import league_db  # type: ignore[import]
from config import ASSET_TYPES, NO_DROP  # type: ignore[import]
from errors import (  # type: ignore[import]
    WaiverError,
    ASSET_NOT_OWNED,
    ASSET_UNAVAILABLE,
    CLAIM_NOT_FOUND,
    CLAIM_NOT_PENDING,
    INSUFFICIENT_BUDGET,
    INVALID_CLAIM,
    LEAGUE_NOT_FOUND,
    NOT_AUTHORIZED,
    TEAM_NOT_FOUND,
)
from models import AssetKey, Claim  # type: ignore[import]

logger = logging.getLogger(__name__)


def _check_shape(add_asset: AssetKey, drop_asset: AssetKey, bid_amount: int) -> None:
    if add_asset.asset_type not in ASSET_TYPES:
        raise WaiverError(
            INVALID_CLAIM,
            f"Unknown asset type to add: {add_asset.asset_type}",
            {"allowed": list(ASSET_TYPES)},
        )
    if drop_asset.asset_type != NO_DROP and drop_asset.asset_type not in ASSET_TYPES:
        raise WaiverError(
            INVALID_CLAIM,
            f"Unknown asset type to drop: {drop_asset.asset_type}",
            {"allowed": list(ASSET_TYPES) + [NO_DROP]},
        )
    if add_asset.asset_id <= 0:
        raise WaiverError(INVALID_CLAIM, "add asset id must be positive")
    if drop_asset.asset_type != NO_DROP and drop_asset.asset_id <= 0:
        raise WaiverError(INVALID_CLAIM, "drop asset id must be positive")
    if isinstance(bid_amount, bool) or not isinstance(bid_amount, int) or bid_amount < 0:
        raise WaiverError(INVALID_CLAIM, "bid amount must be a non-negative integer")


def submit_claim(
    league_id: int,
    team_id: int,
    add_asset: AssetKey,
    drop_asset: AssetKey,
    bid_amount: int,
) -> int:
    """
    Validate a claim and store it as pending. Returns the new claim id.

    `drop_asset` uses asset_type == NO_DROP to mean "fill an open slot".
    Raises WaiverError on the first failed check.
    """
    _check_shape(add_asset, drop_asset, bid_amount)

    league = league_db.get_league(league_id)
    if not league:
        raise WaiverError(LEAGUE_NOT_FOUND, "League not found", {"league_id": league_id})

    team = league_db.get_team(team_id)
    if team is None or team.league_id != league_id:
        raise WaiverError(
            TEAM_NOT_FOUND,
            "Team not found in this league",
            {"league_id": league_id, "team_id": team_id},
        )

    if bid_amount > team.faab_budget:
        raise WaiverError(
            INSUFFICIENT_BUDGET,
            f"Insufficient FAAB. You have {team.faab_budget}.",
            {"faab_budget": team.faab_budget, "bid_amount": bid_amount},
        )

    if drop_asset.asset_type != NO_DROP and not league_db.team_holds_asset(team.id, drop_asset):
        raise WaiverError(
            ASSET_NOT_OWNED,
            "You do not own the asset you are trying to drop.",
            {"asset": str(drop_asset)},
        )

    if league_db.asset_owner(league_id, add_asset) is not None:
        raise WaiverError(
            ASSET_UNAVAILABLE,
            "This asset is already owned by another team.",
            {"asset": str(add_asset)},
        )

    claim_id = claim_store.insert_claim(
        league_id=league_id,
        team_id=team.id,
        year=int(league["season_year"]),
        week=int(league["current_week"]),
        add_asset_type=add_asset.asset_type,
        add_asset_id=add_asset.asset_id,
        drop_asset_type=drop_asset.asset_type,
        drop_asset_id=drop_asset.asset_id if drop_asset.asset_type != NO_DROP else 0,
        bid_amount=bid_amount,
        priority=team.waiver_priority,
    )
    logger.info(
        "waiver claim %s submitted: team %s bids %s on %s (drop %s)",
        claim_id, team.id, bid_amount, add_asset, drop_asset,
    )
    return claim_id


def cancel_claim(claim_id: int, acting_team_id: int) -> None:
    claim = claim_store.get_claim(claim_id)
    if claim is None:
        raise WaiverError(CLAIM_NOT_FOUND, "Claim not found", {"claim_id": claim_id})
    if claim.team_id != acting_team_id:
        raise WaiverError(NOT_AUTHORIZED, "You can only cancel your own claims", {"claim_id": claim_id})

    # The delete re-checks status itself; a claim settled after the read
    # above must not disappear.
    if not claim_store.delete_pending_claim(claim_id):
        raise WaiverError(
            CLAIM_NOT_PENDING,
            "Claim has already been processed",
            {"claim_id": claim_id},
        )
    logger.info("waiver claim %s cancelled by team %s", claim_id, acting_team_id)


def list_pending_claims(team_id: int) -> List[Claim]:
    return claim_store.list_pending_for_team(team_id)


def transaction_log(league_id: int) -> List[Claim]:
    """Terminal claims for the league, newest first."""
    if not league_db.get_league(league_id):
        raise WaiverError(LEAGUE_NOT_FOUND, "League not found", {"league_id": league_id})
    return claim_store.list_terminal_for_league(league_id)
