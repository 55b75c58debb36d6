"""
Pytest fixtures for the waiver wire tests.

Provides:
- a fresh SQLite database per test (league_db.DB_PATH points at tmp_path)
- a league with a commissioner
- a team factory and a roster helper
- a plain Claim builder for resolver tests that need no database
"""

import pytest

import league_db
from config import NO_DROP
from models import AssetKey, Claim


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture
def db(tmp_path, monkeypatch):
    """Point the store at a throwaway database file and create the schema."""
    monkeypatch.setattr(league_db, "DB_PATH", tmp_path / "waiverwire_test.db")
    league_db.init_db()
    return league_db.DB_PATH


@pytest.fixture
def league(db):
    commissioner_id = league_db.create_user("commish@example.com", "pw")
    league_id = league_db.create_league("Test League", commissioner_id, 2025, current_week=3)
    return {"id": league_id, "commissioner_id": commissioner_id}


@pytest.fixture
def make_team(league):
    """Factory: make_team("Alpha", budget=50, priority=1) -> team_id."""

    def _make(name, budget=100, priority=None, league_id=None):
        user_id = league_db.create_user(f"{name.lower()}@example.com", "pw")
        return league_db.create_team(
            league_id or league["id"],
            user_id,
            name,
            faab_budget=budget,
            waiver_priority=priority,
        )

    return _make


@pytest.fixture
def roster(league):
    """Helper: roster(team_id, "product", 7) puts the asset on that team."""

    def _add(team_id, asset_type, asset_id):
        league_db.add_roster_entry(league["id"], team_id, AssetKey(asset_type, asset_id))

    return _add


# ============================================================================
# PURE CLAIM BUILDER
# ============================================================================

def build_claim(
    claim_id,
    team_id,
    add,
    bid,
    priority=1,
    drop=None,
    created_at=None,
    league_id=1,
):
    """Claim value for resolver tests. `add`/`drop` are (asset_type, asset_id)."""
    drop_type, drop_id = drop if drop else (NO_DROP, 0)
    return Claim(
        id=claim_id,
        league_id=league_id,
        team_id=team_id,
        year=2025,
        week=1,
        add_asset_type=add[0],
        add_asset_id=add[1],
        drop_asset_type=drop_type,
        drop_asset_id=drop_id,
        bid_amount=bid,
        priority=priority,
        created_at=created_at or f"2025-09-01T00:00:00.{claim_id:06d}+00:00",
    )


@pytest.fixture
def claim():
    return build_claim
