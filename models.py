# models.py

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from config import NO_DROP  # type: ignore[import]


class ClaimStatus(str, Enum):
    pending = "pending"
    success = "success"
    failed = "failed"
    error = "error"


TERMINAL_STATUSES = (ClaimStatus.success, ClaimStatus.failed, ClaimStatus.error)


@dataclass(frozen=True)
class AssetKey:
    """League-wide identity of a rosterable asset."""
    asset_type: str
    asset_id: int

    def __str__(self) -> str:
        return f"{self.asset_type}:{self.asset_id}"


@dataclass(frozen=True)
class TeamAssetKey:
    """An asset as held by one particular team (used for drops)."""
    team_id: int
    asset_type: str
    asset_id: int

    @property
    def asset(self) -> AssetKey:
        return AssetKey(self.asset_type, self.asset_id)


@dataclass
class Team:
    id: int
    league_id: int
    user_id: int
    name: str
    faab_budget: int
    waiver_priority: int


@dataclass
class Claim:
    id: int
    league_id: int
    team_id: int
    year: int
    week: int
    add_asset_type: str
    add_asset_id: int
    drop_asset_type: str     # NO_DROP when filling an open slot
    drop_asset_id: int
    bid_amount: int
    priority: int            # team's waiver priority at submission time
    status: ClaimStatus = ClaimStatus.pending
    created_at: str = ""
    processed_at: Optional[str] = None
    reason: Optional[str] = None

    @property
    def add_key(self) -> AssetKey:
        return AssetKey(self.add_asset_type, self.add_asset_id)

    @property
    def has_drop(self) -> bool:
        return self.drop_asset_type != NO_DROP

    @property
    def drop_key(self) -> Optional[TeamAssetKey]:
        if not self.has_drop:
            return None
        return TeamAssetKey(self.team_id, self.drop_asset_type, self.drop_asset_id)


# ---------------------------------------------------------------------------
# Resolver decisions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Accept:
    claim: Claim


@dataclass(frozen=True)
class Reject:
    claim: Claim
    reason: str


Decision = Union[Accept, Reject]


# ---------------------------------------------------------------------------
# Settlement outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClaimOutcome:
    """Terminal result of one claim in a settlement run.

    `detail` carries the rejection reason for failed claims and the error
    cause for errored ones; it is None on success.
    """
    claim_id: int
    team_id: int
    add_asset: AssetKey
    bid_amount: int
    status: ClaimStatus
    detail: Optional[str] = None
