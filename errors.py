from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class WaiverError(Exception):
    """Structured error for claim submission, cancellation and settlement.

    The API layer maps `code` to an HTTP status while keeping a stable
    machine-readable code for the UI.
    """

    code: str
    message: str
    details: Optional[Any] = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


# Error codes (stable API surface)
LEAGUE_NOT_FOUND = "LEAGUE_NOT_FOUND"
TEAM_NOT_FOUND = "TEAM_NOT_FOUND"
INSUFFICIENT_BUDGET = "INSUFFICIENT_BUDGET"
ASSET_NOT_OWNED = "ASSET_NOT_OWNED"
ASSET_UNAVAILABLE = "ASSET_UNAVAILABLE"
INVALID_CLAIM = "INVALID_CLAIM"
CLAIM_NOT_FOUND = "CLAIM_NOT_FOUND"
CLAIM_NOT_PENDING = "CLAIM_NOT_PENDING"
NOT_AUTHORIZED = "NOT_AUTHORIZED"
SETTLEMENT_IN_PROGRESS = "SETTLEMENT_IN_PROGRESS"


HTTP_STATUS_BY_CODE = {
    LEAGUE_NOT_FOUND: 404,
    TEAM_NOT_FOUND: 404,
    CLAIM_NOT_FOUND: 404,
    INSUFFICIENT_BUDGET: 400,
    ASSET_NOT_OWNED: 400,
    ASSET_UNAVAILABLE: 400,
    INVALID_CLAIM: 400,
    NOT_AUTHORIZED: 403,
    CLAIM_NOT_PENDING: 409,
    SETTLEMENT_IN_PROGRESS: 409,
}
