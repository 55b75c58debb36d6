import sqlite3
import threading

import pytest

import claim_store
import league_db
import settlement
from audit_log import get_audit_log
from claim_validator import submit_claim
from config import NO_DROP
from errors import LEAGUE_NOT_FOUND, NOT_AUTHORIZED, SETTLEMENT_IN_PROGRESS, WaiverError
from locks import league_settlement_lock
from models import AssetKey, ClaimStatus
from settlement import process_waivers

OPEN_SLOT = AssetKey(NO_DROP, 0)
X = AssetKey("product", 100)
Y = AssetKey("strain", 200)
Z = AssetKey("brand", 300)
W = AssetKey("pharmacy", 400)


def _run(league):
    return process_waivers(league["id"], league["commissioner_id"])


def _status(claim_id):
    return claim_store.get_claim(claim_id).status


def _budget(team_id):
    return league_db.get_team(team_id).faab_budget


def _owner(league, asset):
    return league_db.asset_owner(league["id"], asset)


class TestScenarios:
    def test_priority_breaks_equal_bids(self, league, make_team):
        team_a = make_team("A", budget=50, priority=1)
        team_b = make_team("B", budget=100, priority=2)
        claim_b = submit_claim(league["id"], team_b, X, OPEN_SLOT, 30)
        claim_a = submit_claim(league["id"], team_a, X, OPEN_SLOT, 30)

        report = _run(league)

        assert _status(claim_a) == ClaimStatus.success
        assert _status(claim_b) == ClaimStatus.failed
        assert _owner(league, X) == team_a
        assert _budget(team_a) == 20
        assert _budget(team_b) == 100
        assert report.log == [
            f"claim {claim_a} success: team {team_a} got asset {X} for bid 30",
            f"claim {claim_b} failed: asset already taken",
        ]

    def test_cumulative_bids_never_overdraw_budget(self, league, make_team):
        team_c = make_team("C", budget=40)
        first = submit_claim(league["id"], team_c, Y, OPEN_SLOT, 30)
        second = submit_claim(league["id"], team_c, Z, OPEN_SLOT, 30)

        report = _run(league)

        statuses = sorted([_status(first), _status(second)], key=lambda s: s.value)
        assert statuses == [ClaimStatus.failed, ClaimStatus.success]
        assert _budget(team_c) == 10
        assert report.count(ClaimStatus.success) == 1
        assert any("insufficient remaining budget" in line for line in report.log)

    def test_missing_drop_asset_is_an_error_and_grants_nothing(self, league, make_team, roster):
        team_d = make_team("D", budget=100)
        roster(team_d, W.asset_type, W.asset_id)
        claim_id = submit_claim(league["id"], team_d, X, W, 15)

        # Another process releases W before settlement.
        assert league_db.remove_roster_entry(team_d, W)

        report = _run(league)

        stored = claim_store.get_claim(claim_id)
        assert stored.status == ClaimStatus.error
        assert "no longer on team" in stored.reason
        assert _owner(league, X) is None
        assert _budget(team_d) == 100
        assert report.log[0].startswith(f"claim {claim_id} error: ")

    def test_rejected_claim_is_terminal(self, league, make_team):
        winner = make_team("Winner", priority=1)
        loser = make_team("Loser", priority=2)
        submit_claim(league["id"], winner, X, OPEN_SLOT, 5)
        lost = submit_claim(league["id"], loser, X, OPEN_SLOT, 5)

        _run(league)
        stored = claim_store.get_claim(lost)
        assert stored.status == ClaimStatus.failed
        assert stored.processed_at is not None

        # A later run does not pick it up again.
        again = _run(league)
        assert again.log == []
        assert claim_store.get_claim(lost).status == ClaimStatus.failed


class TestSettlementEffects:
    def test_success_moves_roster_and_debits_budget(self, league, make_team, roster):
        team_id = make_team("Alpha", budget=60)
        roster(team_id, W.asset_type, W.asset_id)
        claim_id = submit_claim(league["id"], team_id, X, W, 25)

        _run(league)

        entries = league_db.get_roster(team_id)
        assert [(e["asset_type"], e["asset_id"]) for e in entries] == [(X.asset_type, X.asset_id)]
        assert entries[0]["acquired_via"] == "waiver"
        assert entries[0]["acquired_week"] == 3
        assert _budget(team_id) == 35

        stored = claim_store.get_claim(claim_id)
        assert stored.status == ClaimStatus.success
        assert stored.processed_at is not None
        assert stored.reason is None

    def test_empty_run_changes_nothing(self, league, make_team, roster):
        team_id = make_team("Alpha", budget=60)
        roster(team_id, W.asset_type, W.asset_id)

        report = _run(league)

        assert report.log == []
        assert report.outcomes == []
        assert _budget(team_id) == 60
        assert len(league_db.get_roster(team_id)) == 1
        assert get_audit_log(league["id"]) == {"run_id": None, "lines": []}

    def test_two_claims_dropping_same_asset(self, league, make_team, roster):
        team_id = make_team("Alpha", budget=100)
        roster(team_id, W.asset_type, W.asset_id)
        high = submit_claim(league["id"], team_id, X, W, 20)
        low = submit_claim(league["id"], team_id, Y, W, 10)

        _run(league)

        assert _status(high) == ClaimStatus.success
        assert _status(low) == ClaimStatus.failed
        assert claim_store.get_claim(low).reason == "drop asset already moved"
        assert _owner(league, Y) is None

    def test_errored_claim_leaves_asset_for_next_bidder(self, league, make_team, roster):
        top = make_team("Top", budget=100, priority=1)
        runner_up = make_team("RunnerUp", budget=100, priority=2)
        roster(top, W.asset_type, W.asset_id)
        top_claim = submit_claim(league["id"], top, X, W, 50)
        runner_claim = submit_claim(league["id"], runner_up, X, OPEN_SLOT, 40)
        league_db.remove_roster_entry(top, W)

        _run(league)

        assert _status(top_claim) == ClaimStatus.error
        assert _status(runner_claim) == ClaimStatus.success
        assert _owner(league, X) == runner_up
        assert _budget(top) == 100
        assert _budget(runner_up) == 60

    def test_persistence_failure_rolls_back_claim_and_continues(self, league, make_team, roster, monkeypatch):
        alpha = make_team("Alpha", budget=100, priority=1)
        beta = make_team("Beta", budget=100, priority=2)
        roster(alpha, W.asset_type, W.asset_id)
        broken = submit_claim(league["id"], alpha, X, W, 30)
        fine = submit_claim(league["id"], beta, Y, OPEN_SLOT, 10)

        real_insert = league_db.insert_roster_entry

        def flaky_insert(conn, league_id, team_id, asset, acquired_week, acquired_via):
            if asset == X:
                raise sqlite3.OperationalError("disk I/O error")
            return real_insert(conn, league_id, team_id, asset, acquired_week, acquired_via)

        monkeypatch.setattr(league_db, "insert_roster_entry", flaky_insert)

        report = _run(league)

        assert _status(broken) == ClaimStatus.error
        assert "OperationalError" in claim_store.get_claim(broken).reason
        # The drop inside the failed transaction was rolled back.
        assert league_db.team_holds_asset(alpha, W)
        assert _budget(alpha) == 100
        assert _status(fine) == ClaimStatus.success
        assert report.summary()["error"] == 1
        assert report.summary()["success"] == 1

    def test_failure_marking_a_rejection_does_not_halt_the_batch(self, league, make_team, monkeypatch):
        winner = make_team("Winner", budget=100, priority=1)
        loser = make_team("Loser", budget=100, priority=2)
        bystander = make_team("Bystander", budget=100, priority=3)
        won = submit_claim(league["id"], winner, X, OPEN_SLOT, 30)
        lost = submit_claim(league["id"], loser, X, OPEN_SLOT, 20)
        later = submit_claim(league["id"], bystander, Y, OPEN_SLOT, 10)

        real_mark = claim_store.mark_terminal

        def locked_for_loser(claim_id, status, reason=None, conn=None):
            if claim_id == lost and status == ClaimStatus.failed:
                raise sqlite3.OperationalError("database is locked")
            return real_mark(claim_id, status, reason=reason, conn=conn)

        monkeypatch.setattr(claim_store, "mark_terminal", locked_for_loser)

        report = _run(league)

        assert _status(won) == ClaimStatus.success
        assert _status(lost) == ClaimStatus.error
        assert "OperationalError" in claim_store.get_claim(lost).reason
        assert _status(later) == ClaimStatus.success
        assert _owner(league, Y) == bystander
        assert len(report.log) == 3
        assert report.log[1].startswith(f"claim {lost} error: ")
        assert get_audit_log(league["id"])["lines"] == report.log

    def test_audit_persistence_failure_still_returns_the_log(self, league, make_team, monkeypatch):
        team_id = make_team("Alpha", budget=100)
        claim_id = submit_claim(league["id"], team_id, X, OPEN_SLOT, 10)

        def unwritable(self):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(settlement.AuditLog, "persist", unwritable)

        report = _run(league)

        assert _status(claim_id) == ClaimStatus.success
        assert report.log == [f"claim {claim_id} success: team {team_id} got asset {X} for bid 10"]
        assert get_audit_log(league["id"]) == {"run_id": None, "lines": []}

    def test_asset_rostered_elsewhere_after_submission(self, league, make_team, roster):
        claimant = make_team("Claimant", budget=100)
        drafter = make_team("Drafter", budget=100)
        roster(claimant, W.asset_type, W.asset_id)
        claim_id = submit_claim(league["id"], claimant, X, W, 10)

        # Another collaborator rosters X before the run.
        roster(drafter, X.asset_type, X.asset_id)

        _run(league)

        assert _status(claim_id) == ClaimStatus.error
        assert "already rostered" in claim_store.get_claim(claim_id).reason
        assert _owner(league, X) == drafter
        assert league_db.team_holds_asset(claimant, W)
        assert _budget(claimant) == 100

    def test_budget_lowered_after_submission(self, league, make_team):
        team_id = make_team("Alpha", budget=30)
        claim_id = submit_claim(league["id"], team_id, X, OPEN_SLOT, 30)

        conn = league_db._get_conn()
        conn.execute("UPDATE teams SET faab_budget = 5 WHERE id = ?", (team_id,))
        conn.commit()
        conn.close()

        _run(league)

        stored = claim_store.get_claim(claim_id)
        assert stored.status == ClaimStatus.failed
        assert stored.reason == "insufficient remaining budget"
        assert _budget(team_id) == 5

    def test_budgets_stay_non_negative_across_many_claims(self, league, make_team):
        teams = [make_team(f"T{i}", budget=25, priority=i) for i in range(1, 5)]
        asset_id = 1
        for team_id in teams:
            for bid in (20, 15, 10, 5):
                submit_claim(league["id"], team_id, AssetKey("product", asset_id), OPEN_SLOT, bid)
                asset_id += 1

        _run(league)

        for team_id in teams:
            assert _budget(team_id) >= 0


class TestAccessAndAudit:
    def test_only_commissioner_may_process(self, league, make_team):
        team_id = make_team("Alpha")
        member_user = league_db.get_team(team_id).user_id
        with pytest.raises(WaiverError) as excinfo:
            process_waivers(league["id"], member_user)
        assert excinfo.value.code == NOT_AUTHORIZED

    def test_unknown_league(self, db):
        with pytest.raises(WaiverError) as excinfo:
            process_waivers(777, 1)
        assert excinfo.value.code == LEAGUE_NOT_FOUND

    def test_audit_log_is_persisted_per_run(self, league, make_team):
        team_id = make_team("Alpha", budget=100)
        submit_claim(league["id"], team_id, X, OPEN_SLOT, 1)
        first = _run(league)
        submit_claim(league["id"], team_id, Y, OPEN_SLOT, 1)
        second = _run(league)

        assert get_audit_log(league["id"]) == {"run_id": second.run_id, "lines": second.log}
        assert get_audit_log(league["id"], first.run_id)["lines"] == first.log
        assert first.run_id != second.run_id

    def test_concurrent_run_for_same_league_is_refused(self, league, make_team):
        team_id = make_team("Alpha")
        claim_id = submit_claim(league["id"], team_id, X, OPEN_SLOT, 1)

        holding = threading.Event()
        release = threading.Event()

        def hold_lock():
            with league_settlement_lock(league["id"], reason="test"):
                holding.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        try:
            assert holding.wait(5)
            with pytest.raises(WaiverError) as excinfo:
                process_waivers(league["id"], league["commissioner_id"], lock_timeout_s=0.05)
            assert excinfo.value.code == SETTLEMENT_IN_PROGRESS
            assert _status(claim_id) == ClaimStatus.pending
        finally:
            release.set()
            holder.join(5)

        _run(league)
        assert _status(claim_id) == ClaimStatus.success

    def test_claim_cancelled_after_snapshot_is_skipped(self, league, make_team, monkeypatch):
        team_id = make_team("Alpha")
        claim_id = submit_claim(league["id"], team_id, X, OPEN_SLOT, 1)

        real_list = claim_store.list_pending_for_league

        def snapshot_then_cancel(league_id):
            claims = real_list(league_id)
            claim_store.delete_pending_claim(claim_id)
            return claims

        monkeypatch.setattr(settlement.claim_store, "list_pending_for_league", snapshot_then_cancel)

        report = _run(league)

        assert report.log == []
        assert _owner(league, X) is None
        assert _budget(team_id) == 100
