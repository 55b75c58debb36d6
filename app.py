# app.py
#
# FastAPI wrapper around the waiver wire engine.
# Exposes:
#   POST   /auth/register | /auth/login | /auth/logout,  GET /auth/me
#   POST   /leagues
#   POST   /leagues/{league_id}/teams
#   GET    /leagues/{league_id}/teams/me
#   POST   /leagues/{league_id}/waivers/claims
#   GET    /leagues/{league_id}/waivers/claims
#   DELETE /waivers/claims/{claim_id}
#   GET    /leagues/{league_id}/waivers/transactions
#   POST   /leagues/{league_id}/waivers/process
#   GET    /leagues/{league_id}/waivers/audit
#   GET    /health
#
# Start with:
#   uvicorn app:app --reload

from sqlite3 import IntegrityError
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, Request, Response  # type: ignore[import]
from fastapi.middleware.cors import CORSMiddleware  # type: ignore[import]
from fastapi.responses import JSONResponse  # type: ignore[import]
from pydantic import BaseModel, Field  # type: ignore[import]

import league_db  # type: ignore[import]
from audit_log import get_audit_log  # type: ignore[import]
from auth_security import create_session_token, parse_session_token  # type: ignore[import]
from claim_validator import (  # type: ignore[import]
    cancel_claim,
    list_pending_claims,
    submit_claim,
    transaction_log,
)
from config import ASSET_TYPES, DEFAULT_FAAB_BUDGET, MAX_FAAB_BUDGET, NO_DROP, SESSION_COOKIE  # type: ignore[import]
from claim_store import get_claim  # type: ignore[import]
from errors import (  # type: ignore[import]
    HTTP_STATUS_BY_CODE,
    WaiverError,
    CLAIM_NOT_FOUND,
    LEAGUE_NOT_FOUND,
    TEAM_NOT_FOUND,
)
from logging_config import setup_logging  # type: ignore[import]
from models import AssetKey, Claim, Team  # type: ignore[import]
from settlement import process_waivers  # type: ignore[import]


# ---------------------------------------------------------------------------
# Pydantic view models
# ---------------------------------------------------------------------------

class UserView(BaseModel):
    id: int
    email: str


class RegisterRequest(BaseModel):
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class CreateLeagueRequest(BaseModel):
    name: str
    season_year: int
    current_week: int = 1
    faab_budget: int = Field(default=DEFAULT_FAAB_BUDGET, ge=0, le=MAX_FAAB_BUDGET)
    team_name: Optional[str] = None   # commissioner's own team


class LeagueView(BaseModel):
    id: int
    name: str
    commissioner_user_id: int
    season_year: int
    current_week: int
    faab_budget: int


class JoinLeagueRequest(BaseModel):
    team_name: str


class RosterEntryView(BaseModel):
    asset_type: str
    asset_id: int
    acquired_week: int
    acquired_via: str


class TeamView(BaseModel):
    id: int
    league_id: int
    name: str
    faab_budget: int
    waiver_priority: int
    roster: List[RosterEntryView] = []


class AssetRef(BaseModel):
    asset_type: str               # manufacturer / strain / product / pharmacy / brand
    asset_id: int


class SubmitClaimRequest(BaseModel):
    """
    Body for POST /leagues/{league_id}/waivers/claims.

    Leave `drop` out (or null) to claim into an open roster slot.
    """
    add: AssetRef
    drop: Optional[AssetRef] = None
    bid_amount: int = Field(ge=0)


class SubmitClaimResult(BaseModel):
    claim_id: int


class ClaimView(BaseModel):
    id: int
    league_id: int
    team_id: int
    year: int
    week: int
    add_asset_type: str
    add_asset_id: int
    drop_asset_type: str          # "none" for an open slot
    drop_asset_id: int
    bid_amount: int
    priority: int
    status: str                   # pending / success / failed / error
    reason: Optional[str] = None
    created_at: str
    processed_at: Optional[str] = None


class SettlementResult(BaseModel):
    run_id: str
    processed: int
    success: int
    failed: int
    error: int
    log: List[str]


class AuditLogView(BaseModel):
    run_id: Optional[str] = None
    lines: List[str]


# ---------------------------------------------------------------------------
# Helper functions to map engine objects -> API models
# ---------------------------------------------------------------------------

def _claim_view(c: Claim) -> ClaimView:
    return ClaimView(
        id=c.id,
        league_id=c.league_id,
        team_id=c.team_id,
        year=c.year,
        week=c.week,
        add_asset_type=c.add_asset_type,
        add_asset_id=c.add_asset_id,
        drop_asset_type=c.drop_asset_type,
        drop_asset_id=c.drop_asset_id,
        bid_amount=c.bid_amount,
        priority=c.priority,
        status=c.status.value,
        reason=c.reason,
        created_at=c.created_at,
        processed_at=c.processed_at,
    )


def _team_view(team: Team) -> TeamView:
    roster = [
        RosterEntryView(
            asset_type=r["asset_type"],
            asset_id=int(r["asset_id"]),
            acquired_week=int(r["acquired_week"]),
            acquired_via=r["acquired_via"],
        )
        for r in league_db.get_roster(team.id)
    ]
    return TeamView(
        id=team.id,
        league_id=team.league_id,
        name=team.name,
        faab_budget=team.faab_budget,
        waiver_priority=team.waiver_priority,
        roster=roster,
    )


def _league_view(row: dict) -> LeagueView:
    return LeagueView(
        id=int(row["id"]),
        name=row["name"],
        commissioner_user_id=int(row["commissioner_user_id"]),
        season_year=int(row["season_year"]),
        current_week=int(row["current_week"]),
        faab_budget=int(row["faab_budget"]),
    )


# ---------------------------------------------------------------------------
# FastAPI app + routes
# ---------------------------------------------------------------------------

app = FastAPI(title="Waiver Wire API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def _on_startup():
    setup_logging()
    # Ensure the database / tables exist.
    league_db.init_db()


@app.exception_handler(WaiverError)
async def _waiver_error_handler(request: Request, exc: WaiverError):
    return JSONResponse(
        status_code=HTTP_STATUS_BY_CODE.get(exc.code, 400),
        content={"detail": {"code": exc.code, "message": exc.message, "details": exc.details}},
    )


def _user_from_dict(row: dict) -> UserView:
    return UserView(id=int(row["id"]), email=row["email"])


def get_current_user(request: Request) -> UserView:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = parse_session_token(token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    row = league_db.get_user_by_id(user_id)
    if not row:
        raise HTTPException(status_code=401, detail="User not found")
    return _user_from_dict(row)


def _league_or_404(league_id: int) -> dict:
    league = league_db.get_league(league_id)
    if not league:
        raise WaiverError(LEAGUE_NOT_FOUND, "League not found", {"league_id": league_id})
    return league


def _my_team(league_id: int, user: UserView) -> Team:
    """The acting user's team in this league; 404 if they have none."""
    _league_or_404(league_id)
    team = league_db.get_team_for_user(league_id, user.id)
    if team is None:
        raise WaiverError(TEAM_NOT_FOUND, "Team not found in this league", {"league_id": league_id})
    return team


def _require_member(league_id: int, user: UserView) -> None:
    """League-wide reads: the commissioner or any team owner."""
    league = _league_or_404(league_id)
    if int(league["commissioner_user_id"]) != user.id:
        _my_team(league_id, user)


# ---------------------------------------------------------------------------
# Auth endpoints
# ---------------------------------------------------------------------------


@app.post("/auth/register", response_model=UserView)
def register(req: RegisterRequest):
    try:
        user_id = league_db.create_user(req.email, req.password)
    except IntegrityError:
        raise HTTPException(status_code=400, detail="Email already registered")
    row = league_db.get_user_by_id(user_id)
    assert row is not None
    return _user_from_dict(row)


@app.post("/auth/login", response_model=UserView)
def login(req: LoginRequest, response: Response):
    user = league_db.verify_user_credentials(req.email, req.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_session_token(int(user["id"]))
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
    )
    return _user_from_dict(user)


@app.post("/auth/logout")
def logout(response: Response):
    response.delete_cookie(SESSION_COOKIE)
    return {"status": "ok"}


@app.get("/auth/me", response_model=UserView)
def me(user: UserView = Depends(get_current_user)):
    return user


@app.get("/health")
def health():
    return {"status": "ok", "asset_types": list(ASSET_TYPES)}


# ---------------------------------------------------------------------------
# Leagues & teams
# ---------------------------------------------------------------------------


@app.post("/leagues", response_model=LeagueView)
def create_league(req: CreateLeagueRequest, user: UserView = Depends(get_current_user)):
    """
    Create a league; the caller becomes its commissioner and gets the first
    team. Every team in the league starts with the league's FAAB budget.
    """
    team_name = req.team_name or f"{user.email.split('@')[0]}'s Team"
    league_id = league_db.create_league(
        req.name,
        user.id,
        req.season_year,
        req.current_week,
        faab_budget=req.faab_budget,
        commissioner_team_name=team_name,
    )
    return _league_view(_league_or_404(league_id))


@app.post("/leagues/{league_id}/teams", response_model=TeamView)
def join_league(league_id: int, req: JoinLeagueRequest, user: UserView = Depends(get_current_user)):
    """
    Create the caller's team in this league, last in waiver priority and
    with the league's FAAB budget.
    """
    _league_or_404(league_id)
    try:
        team_id = league_db.create_team(league_id, user.id, req.team_name)
    except IntegrityError:
        raise HTTPException(status_code=400, detail="You already have a team in this league")
    team = league_db.get_team(team_id)
    assert team is not None
    return _team_view(team)


@app.get("/leagues/{league_id}/teams/me", response_model=TeamView)
def get_my_team(league_id: int, user: UserView = Depends(get_current_user)):
    return _team_view(_my_team(league_id, user))


# ---------------------------------------------------------------------------
# Waivers
# ---------------------------------------------------------------------------


@app.post("/leagues/{league_id}/waivers/claims", response_model=SubmitClaimResult)
def create_claim(league_id: int, req: SubmitClaimRequest, user: UserView = Depends(get_current_user)):
    """
    Place a waiver claim for the caller's own team.
    """
    team = _my_team(league_id, user)
    drop = AssetKey(req.drop.asset_type, req.drop.asset_id) if req.drop else AssetKey(NO_DROP, 0)
    claim_id = submit_claim(
        league_id,
        team.id,
        AssetKey(req.add.asset_type, req.add.asset_id),
        drop,
        req.bid_amount,
    )
    return SubmitClaimResult(claim_id=claim_id)


@app.get("/leagues/{league_id}/waivers/claims", response_model=List[ClaimView])
def get_claims(league_id: int, user: UserView = Depends(get_current_user)):
    """
    The caller's pending claims in this league.
    """
    team = _my_team(league_id, user)
    return [_claim_view(c) for c in list_pending_claims(team.id)]


@app.delete("/waivers/claims/{claim_id}")
def delete_claim(claim_id: int, user: UserView = Depends(get_current_user)):
    """
    Cancel one of the caller's pending claims.
    """
    claim = get_claim(claim_id)
    if claim is None:
        raise WaiverError(CLAIM_NOT_FOUND, "Claim not found", {"claim_id": claim_id})
    team = league_db.get_team_for_user(claim.league_id, user.id)
    # A user without a team in the claim's league can't own it; cancel_claim
    # reports that as NOT_AUTHORIZED.
    cancel_claim(claim_id, team.id if team else -1)
    return {"status": "ok"}


@app.get("/leagues/{league_id}/waivers/transactions", response_model=List[ClaimView])
def get_transaction_log(league_id: int, user: UserView = Depends(get_current_user)):
    """
    Processed (non-pending) claims for the whole league, newest first.
    """
    _require_member(league_id, user)
    return [_claim_view(c) for c in transaction_log(league_id)]


@app.post("/leagues/{league_id}/waivers/process", response_model=SettlementResult)
def run_waivers(league_id: int, user: UserView = Depends(get_current_user)):
    """
    Commissioner only: settle every pending claim in the league and return
    the per-claim log.
    """
    report = process_waivers(league_id, user.id)
    summary = report.summary()
    return SettlementResult(
        run_id=summary["run_id"],
        processed=summary["processed"],
        success=summary["success"],
        failed=summary["failed"],
        error=summary["error"],
        log=report.log,
    )


@app.get("/leagues/{league_id}/waivers/audit", response_model=AuditLogView)
def get_waiver_audit(league_id: int, run_id: Optional[str] = None, user: UserView = Depends(get_current_user)):
    """
    Stored audit lines of a settlement run (the latest one by default).
    """
    _require_member(league_id, user)
    stored = get_audit_log(league_id, run_id)
    return AuditLogView(run_id=stored["run_id"], lines=stored["lines"])
