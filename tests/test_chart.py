"""Tests for the leaderboard and history charts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

from club_elo.chart import make_history_chart, make_leaderboard_chart
from club_elo.elo import EloHistoryEntry, MatchResult
from club_elo.persistence import LeaderboardEntry


def test_leaderboard_chart_writes_png(tmp_path: Path):
    entries = [
        LeaderboardEntry(rank=1, player_id="a", display_name="Alice", elo_rating=1310),
        LeaderboardEntry(rank=2, player_id="b", display_name="Bob", elo_rating=1190),
    ]
    out = make_leaderboard_chart(entries, output_path=str(tmp_path / "board.png"))
    assert Path(out).exists()
    assert Path(out).read_bytes()[:4] == b"\x89PNG"


def test_history_chart_writes_png(tmp_path: Path):
    start = datetime(2026, 3, 1, tzinfo=timezone.utc)
    history = [
        EloHistoryEntry(start + timedelta(days=i), 1200 + 10 * i, 10, "bob", 1200, "t1",
                        MatchResult.WIN)
        for i in range(4)
    ]
    out = make_history_chart(history, output_path=str(tmp_path / "history.png"))
    assert Path(out).exists()
    assert Path(out).stat().st_size > 0
