"""Tests for the SQLite rating store."""

from __future__ import annotations

import sqlite3
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from club_elo.config import HISTORY_LIMIT
from club_elo.elo import EloHistoryEntry, MatchResult, create_elo_history_entry
from club_elo.persistence import RatingsDB


@pytest.fixture
def db(tmp_path: Path):
    db = RatingsDB(tmp_path / "ratings.db")
    yield db
    db.close()


def _entry(rating: int, change: int, minutes: int = 0) -> EloHistoryEntry:
    return EloHistoryEntry(
        date=datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes),
        rating=rating,
        change=change,
        opponent_id="bob",
        opponent_rating=1200,
        tournament_id="t1",
        result=MatchResult.WIN if change >= 0 else MatchResult.LOSS,
    )


# ── schema ───────────────────────────────────────────────────────────

def test_create_db():
    """Creating a DB initializes the schema."""
    with tempfile.TemporaryDirectory() as tmp:
        db_path = Path(tmp) / "test.db"
        db = RatingsDB(db_path)
        db.close()
        conn = sqlite3.connect(db_path)
        tables = {r[0] for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()}
        conn.close()
        assert {"players", "game_stats", "elo_history",
                "points_transactions", "tournaments"} <= tables


# ── players ──────────────────────────────────────────────────────────

def test_new_player_starts_at_default_rating(db: RatingsDB):
    player = db.ensure_player("alice", "Alice")
    assert player.elo_rating == 1200
    assert player.display_name == "Alice"
    assert player.points == 0


def test_ensure_player_is_idempotent(db: RatingsDB):
    db.ensure_player("alice", "Alice", elo_rating=1400)
    again = db.ensure_player("alice", "Someone Else", elo_rating=900)
    assert again.elo_rating == 1400
    assert again.display_name == "Alice"


def test_get_missing_player(db: RatingsDB):
    assert db.get_player("nobody") is None


def test_update_player_rating(db: RatingsDB):
    db.ensure_player("alice")
    db.update_player_rating("alice", 1234)
    assert db.get_player("alice").elo_rating == 1234


# ── game stats and history ───────────────────────────────────────────

def test_game_stats_missing_until_played(db: RatingsDB):
    db.ensure_player("alice")
    assert db.get_game_stats("alice", "chess") is None


def test_game_stats_start_from_overall_rating(db: RatingsDB):
    db.ensure_player("alice", elo_rating=1500)
    db.record_match_stats("alice", "chess", "win")
    stats = db.get_game_stats("alice", "chess")
    assert stats.elo_rating == 1500
    assert stats.games_played == 1


def test_record_match_stats_tallies(db: RatingsDB):
    db.ensure_player("alice")
    for res in ("win", "win", "loss", "draw"):
        db.record_match_stats("alice", "smash", res)
    stats = db.get_game_stats("alice", "smash")
    assert (stats.games_played, stats.wins, stats.losses, stats.draws) == (4, 2, 1, 1)
    assert stats.win_rate == 0.5


def test_record_match_stats_rejects_bad_result(db: RatingsDB):
    db.ensure_player("alice")
    from club_elo.elo import InvalidMatchResult

    with pytest.raises(InvalidMatchResult):
        db.record_match_stats("alice", "smash", "bye")


def test_update_game_rating_appends_history(db: RatingsDB):
    db.ensure_player("alice")
    db.update_game_rating("alice", "chess", 1210, _entry(1210, 10))
    db.update_game_rating("alice", "chess", 1200, _entry(1200, -10, minutes=5))

    assert db.get_game_stats("alice", "chess").elo_rating == 1200
    history = db.list_history("alice", "chess")
    assert [e.change for e in history] == [10, -10]
    assert history[0].result is MatchResult.WIN
    assert history[1].date == datetime(2026, 1, 1, 0, 5, tzinfo=timezone.utc)


def test_history_is_per_game(db: RatingsDB):
    db.ensure_player("alice")
    db.update_game_rating("alice", "chess", 1210, _entry(1210, 10))
    assert db.list_history("alice", "smash") == []
    assert db.list_game_types("alice") == ["chess"]


def test_history_keeps_newest_entries(db: RatingsDB):
    db.ensure_player("alice")
    for i in range(HISTORY_LIMIT + 5):
        db.update_game_rating("alice", "chess", 1200 + i, _entry(1200 + i, 1, minutes=i))

    history = db.list_history("alice", "chess")
    assert len(history) == HISTORY_LIMIT
    assert history[0].rating == 1205
    assert history[-1].rating == 1200 + HISTORY_LIMIT + 4


def test_history_round_trips_created_entry(db: RatingsDB):
    db.ensure_player("alice")
    entry = create_elo_history_entry(1218, 18, "bob", 1400, "t9", "win")
    db.update_game_rating("alice", "chess", 1218, entry)
    assert db.list_history("alice", "chess") == [entry]


# ── points ───────────────────────────────────────────────────────────

def test_award_elo_points(db: RatingsDB):
    db.ensure_player("alice")
    db.award_elo_points("alice", 30, 18, reason="upset", admin_id="admin",
                        tournament_id="t1", rating_before=1000)
    db.award_elo_points("alice", 10, -5, reason="loss", admin_id="admin")

    player = db.get_player("alice")
    assert player.points == 40
    assert player.weekly_points == 40
    assert player.monthly_points == 40

    txns = db.list_transactions("alice")
    assert [t["amount"] for t in txns] == [30, 10]
    assert txns[0]["elo_change"] == 18
    assert txns[0]["rating_before"] == 1000
    assert txns[0]["tournament_id"] == "t1"
    assert all(t["is_elo_calculated"] is True for t in txns)


# ── tournaments ──────────────────────────────────────────────────────

def test_tournament_lifecycle(db: RatingsDB):
    t = db.ensure_tournament("t1", "Spring Cup", "mario_kart", created_by="admin")
    assert t.status == "upcoming"
    assert t.completed_at is None

    db.mark_tournament_completed("t1")
    t = db.get_tournament("t1")
    assert t.status == "completed"
    assert t.completed_at is not None


def test_get_missing_tournament(db: RatingsDB):
    assert db.get_tournament("nope") is None


# ── leaderboards ─────────────────────────────────────────────────────

def test_overall_leaderboard_ranks(db: RatingsDB):
    db.ensure_player("alice", elo_rating=1300)
    db.ensure_player("bob", elo_rating=1500)
    db.ensure_player("carol", elo_rating=1100)

    board = db.leaderboard()
    assert [e.player_id for e in board] == ["bob", "alice", "carol"]
    assert [e.rank for e in board] == [1, 2, 3]
    assert board[0].games_played is None


def test_leaderboard_limit(db: RatingsDB):
    for i in range(5):
        db.ensure_player(f"p{i}", elo_rating=1000 + i)
    assert [e.player_id for e in db.leaderboard(limit=2)] == ["p4", "p3"]


def test_game_leaderboard_uses_game_rating(db: RatingsDB):
    db.ensure_player("alice", elo_rating=1800)
    db.ensure_player("bob", elo_rating=1000)
    db.ensure_player("carol")
    db.update_game_rating("alice", "chess", 1150, _entry(1150, -50))
    db.update_game_rating("bob", "chess", 1250, _entry(1250, 50))

    board = db.leaderboard("chess")
    assert [e.player_id for e in board] == ["bob", "alice"]
    assert board[0].elo_rating == 1250


# ── transactions ─────────────────────────────────────────────────────

def test_transaction_commits_together(db: RatingsDB):
    db.ensure_player("alice")
    with db.transaction():
        db.update_player_rating("alice", 1300)
        db.award_elo_points("alice", 15, 100, reason="r", admin_id="a")
    assert db.get_player("alice").elo_rating == 1300
    assert db.get_player("alice").points == 15


def test_transaction_rolls_back_on_error(db: RatingsDB):
    db.ensure_player("alice")
    with pytest.raises(RuntimeError):
        with db.transaction():
            db.update_player_rating("alice", 1300)
            db.award_elo_points("alice", 15, 100, reason="r", admin_id="a")
            raise RuntimeError("boom")
    player = db.get_player("alice")
    assert player.elo_rating == 1200
    assert player.points == 0
    assert db.list_transactions("alice") == []


# ── migration ────────────────────────────────────────────────────────

def test_migrate_default_ratings(tmp_path: Path):
    db_path = tmp_path / "legacy.db"
    db = RatingsDB(db_path)
    db.ensure_player("rated", elo_rating=1500)

    conn = sqlite3.connect(db_path)
    conn.execute("INSERT INTO players (id, display_name, elo_rating) VALUES ('old', 'Old', NULL)")
    conn.execute(
        "INSERT INTO game_stats (player_id, game_type, elo_rating) VALUES ('old', 'chess', NULL)"
    )
    conn.commit()
    conn.close()

    assert db.migrate_default_ratings() == 2
    assert db.get_player("old").elo_rating == 1200
    assert db.get_player("rated").elo_rating == 1500
    assert db.get_game_stats("old", "chess").elo_rating == 1200
    assert db.migrate_default_ratings() == 0
    db.close()
