"""SQLite storage for players, per-game ratings and rating history.

The database only stores what it is given. Ratings are computed by
``club_elo.elo`` and written back by the caller, inside
:meth:`RatingsDB.transaction` when several rows must change together.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from club_elo.config import ELO_CONSTANTS, HISTORY_LIMIT, LEADERBOARD_LIMIT
from club_elo.elo import EloHistoryEntry, MatchResult

logger = logging.getLogger(__name__)


@dataclass
class Player:
    id: str
    display_name: str
    elo_rating: float
    points: int = 0
    weekly_points: int = 0
    monthly_points: int = 0


@dataclass
class GameStats:
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    elo_rating: float = ELO_CONSTANTS.default_rating

    @property
    def win_rate(self) -> float:
        return self.wins / self.games_played if self.games_played else 0.0


@dataclass
class Tournament:
    id: str
    name: str
    game_type: str
    created_by: str = ""
    status: str = "upcoming"  # "upcoming" | "ongoing" | "completed"
    completed_at: str | None = None


@dataclass
class LeaderboardEntry:
    rank: int
    player_id: str
    display_name: str
    elo_rating: float
    points: int = 0
    games_played: int | None = None  # per-game boards only


class RatingsDB:
    """Thin wrapper around a SQLite database of club ratings."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.path)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._in_transaction = False
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS players (
                id              TEXT PRIMARY KEY,
                display_name    TEXT NOT NULL,
                elo_rating      REAL DEFAULT {ELO_CONSTANTS.default_rating},
                points          INTEGER NOT NULL DEFAULT 0,
                weekly_points   INTEGER NOT NULL DEFAULT 0,
                monthly_points  INTEGER NOT NULL DEFAULT 0,
                created_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            CREATE TABLE IF NOT EXISTS game_stats (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                player_id       TEXT NOT NULL REFERENCES players(id),
                game_type       TEXT NOT NULL,
                games_played    INTEGER NOT NULL DEFAULT 0,
                wins            INTEGER NOT NULL DEFAULT 0,
                losses          INTEGER NOT NULL DEFAULT 0,
                draws           INTEGER NOT NULL DEFAULT 0,
                elo_rating      REAL DEFAULT {ELO_CONSTANTS.default_rating},
                UNIQUE(player_id, game_type)
            );
            CREATE TABLE IF NOT EXISTS elo_history (
                id              INTEGER PRIMARY KEY AUTOINCREMENT,
                player_id       TEXT NOT NULL REFERENCES players(id),
                game_type       TEXT NOT NULL,
                date            TEXT NOT NULL,
                rating          REAL NOT NULL,
                change          INTEGER NOT NULL,
                opponent_id     TEXT NOT NULL,
                opponent_rating REAL NOT NULL,
                tournament_id   TEXT NOT NULL,
                result          TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS points_transactions (
                id                INTEGER PRIMARY KEY AUTOINCREMENT,
                player_id         TEXT NOT NULL REFERENCES players(id),
                amount            INTEGER NOT NULL,
                reason            TEXT NOT NULL,
                admin_id          TEXT NOT NULL,
                tournament_id     TEXT,
                opponent_id       TEXT,
                elo_change        INTEGER NOT NULL DEFAULT 0,
                rating_before     REAL,
                is_elo_calculated INTEGER NOT NULL DEFAULT 0,
                created_at        TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            CREATE TABLE IF NOT EXISTS tournaments (
                id              TEXT PRIMARY KEY,
                name            TEXT NOT NULL,
                game_type       TEXT NOT NULL,
                created_by      TEXT NOT NULL DEFAULT '',
                status          TEXT NOT NULL DEFAULT 'upcoming',
                completed_at    TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_history_player
                ON elo_history (player_id, game_type, id);
        """)
        self._conn.commit()

    def _commit(self) -> None:
        if not self._in_transaction:
            self._conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[RatingsDB]:
        """Group writes into one commit; roll all of them back on error."""
        if self._in_transaction:
            yield self
            return
        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self._conn.rollback()
            raise
        else:
            self._conn.commit()
        finally:
            self._in_transaction = False

    # ── Players ─────────────────────────────────────────────────────

    def ensure_player(
        self,
        player_id: str,
        display_name: str | None = None,
        elo_rating: float | None = None,
    ) -> Player:
        """Insert a player if missing and return the stored row."""
        self._conn.execute(
            "INSERT OR IGNORE INTO players (id, display_name, elo_rating) VALUES (?, ?, ?)",
            (player_id, display_name or player_id,
             ELO_CONSTANTS.default_rating if elo_rating is None else elo_rating),
        )
        self._commit()
        return self._to_player(self._player_row(player_id))

    def get_player(self, player_id: str) -> Player | None:
        row = self._player_row(player_id)
        if row is None:
            return None
        return self._to_player(row)

    def _player_row(self, player_id: str) -> tuple | None:
        return self._conn.execute(
            "SELECT id, display_name, elo_rating, points, weekly_points, monthly_points "
            "FROM players WHERE id = ?",
            (player_id,),
        ).fetchone()

    @staticmethod
    def _to_player(row: tuple) -> Player:
        rating = ELO_CONSTANTS.default_rating if row[2] is None else row[2]
        return Player(
            id=row[0], display_name=row[1], elo_rating=rating,
            points=row[3], weekly_points=row[4], monthly_points=row[5],
        )

    def update_player_rating(self, player_id: str, new_rating: float) -> None:
        """Overwrite a player's overall rating."""
        self._conn.execute(
            "UPDATE players SET elo_rating = ? WHERE id = ?", (new_rating, player_id)
        )
        self._commit()

    # ── Tournaments ─────────────────────────────────────────────────

    def ensure_tournament(
        self,
        tournament_id: str,
        name: str,
        game_type: str,
        created_by: str = "",
    ) -> Tournament:
        self._conn.execute(
            "INSERT OR IGNORE INTO tournaments (id, name, game_type, created_by) "
            "VALUES (?, ?, ?, ?)",
            (tournament_id, name, game_type, created_by),
        )
        self._commit()
        return Tournament(*self._tournament_row(tournament_id))

    def get_tournament(self, tournament_id: str) -> Tournament | None:
        row = self._tournament_row(tournament_id)
        if row is None:
            return None
        return Tournament(*row)

    def _tournament_row(self, tournament_id: str) -> tuple | None:
        return self._conn.execute(
            "SELECT id, name, game_type, created_by, status, completed_at "
            "FROM tournaments WHERE id = ?",
            (tournament_id,),
        ).fetchone()

    def mark_tournament_completed(self, tournament_id: str) -> None:
        self._conn.execute(
            "UPDATE tournaments SET status = 'completed', completed_at = ? WHERE id = ?",
            (datetime.now(timezone.utc).isoformat(), tournament_id),
        )
        self._commit()

    # ── Per-game stats and history ──────────────────────────────────

    def get_game_stats(self, player_id: str, game_type: str) -> GameStats | None:
        """Stored stats for one game, or ``None`` if the player never played it."""
        row = self._conn.execute(
            "SELECT games_played, wins, losses, draws, elo_rating "
            "FROM game_stats WHERE player_id = ? AND game_type = ?",
            (player_id, game_type),
        ).fetchone()
        if row is None:
            return None
        rating = ELO_CONSTANTS.default_rating if row[4] is None else row[4]
        return GameStats(
            games_played=row[0], wins=row[1], losses=row[2], draws=row[3],
            elo_rating=rating,
        )

    def list_game_types(self, player_id: str | None = None) -> list[str]:
        if player_id is None:
            rows = self._conn.execute(
                "SELECT DISTINCT game_type FROM game_stats ORDER BY game_type"
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT game_type FROM game_stats WHERE player_id = ? ORDER BY game_type",
                (player_id,),
            ).fetchall()
        return [r[0] for r in rows]

    def _ensure_game_stats(self, player_id: str, game_type: str) -> None:
        """Start a player's stats for a game at their overall rating."""
        self._conn.execute(
            "INSERT OR IGNORE INTO game_stats (player_id, game_type, elo_rating) "
            "SELECT id, ?, COALESCE(elo_rating, ?) FROM players WHERE id = ?",
            (game_type, ELO_CONSTANTS.default_rating, player_id),
        )

    def record_match_stats(
        self,
        player_id: str,
        game_type: str,
        result: MatchResult | str,
    ) -> None:
        """Count one played match towards games played and the win/loss/draw tally."""
        column = {
            MatchResult.WIN: "wins",
            MatchResult.LOSS: "losses",
            MatchResult.DRAW: "draws",
        }[MatchResult.parse(result)]
        self._ensure_game_stats(player_id, game_type)
        self._conn.execute(
            f"UPDATE game_stats SET games_played = games_played + 1, {column} = {column} + 1 "
            "WHERE player_id = ? AND game_type = ?",
            (player_id, game_type),
        )
        self._commit()

    def update_game_rating(
        self,
        player_id: str,
        game_type: str,
        new_rating: float,
        entry: EloHistoryEntry,
    ) -> None:
        """Set the per-game rating and append *entry* to its history.

        Only the newest ``HISTORY_LIMIT`` entries are kept.
        """
        self._ensure_game_stats(player_id, game_type)
        self._conn.execute(
            "UPDATE game_stats SET elo_rating = ? WHERE player_id = ? AND game_type = ?",
            (new_rating, player_id, game_type),
        )
        self._conn.execute(
            "INSERT INTO elo_history (player_id, game_type, date, rating, change, "
            "opponent_id, opponent_rating, tournament_id, result) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (player_id, game_type, entry.date.isoformat(), entry.rating, entry.change,
             entry.opponent_id, entry.opponent_rating, entry.tournament_id,
             entry.result.value),
        )
        self._conn.execute(
            "DELETE FROM elo_history WHERE player_id = ? AND game_type = ? AND id NOT IN ("
            "  SELECT id FROM elo_history WHERE player_id = ? AND game_type = ? "
            "  ORDER BY id DESC LIMIT ?"
            ")",
            (player_id, game_type, player_id, game_type, HISTORY_LIMIT),
        )
        self._commit()

    def list_history(self, player_id: str, game_type: str) -> list[EloHistoryEntry]:
        """History entries for one player and game, oldest first."""
        rows = self._conn.execute(
            "SELECT date, rating, change, opponent_id, opponent_rating, tournament_id, result "
            "FROM elo_history WHERE player_id = ? AND game_type = ? ORDER BY id",
            (player_id, game_type),
        ).fetchall()
        return [
            EloHistoryEntry(
                date=datetime.fromisoformat(r[0]),
                rating=r[1],
                change=r[2],
                opponent_id=r[3],
                opponent_rating=r[4],
                tournament_id=r[5],
                result=MatchResult(r[6]),
            )
            for r in rows
        ]

    # ── Points ──────────────────────────────────────────────────────

    def award_elo_points(
        self,
        player_id: str,
        points: int,
        elo_change: int,
        reason: str,
        admin_id: str,
        tournament_id: str | None = None,
        opponent_id: str | None = None,
        rating_before: float | None = None,
    ) -> int:
        """Credit bonus points and log the transaction. Returns the transaction id."""
        self._conn.execute(
            "UPDATE players SET points = points + ?, weekly_points = weekly_points + ?, "
            "monthly_points = monthly_points + ? WHERE id = ?",
            (points, points, points, player_id),
        )
        cur = self._conn.execute(
            "INSERT INTO points_transactions (player_id, amount, reason, admin_id, "
            "tournament_id, opponent_id, elo_change, rating_before, is_elo_calculated) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1)",
            (player_id, points, reason, admin_id, tournament_id, opponent_id,
             elo_change, rating_before),
        )
        self._commit()
        return cur.lastrowid  # type: ignore[return-value]

    def list_transactions(self, player_id: str) -> list[dict]:
        cur = self._conn.execute(
            "SELECT id, amount, reason, admin_id, tournament_id, opponent_id, "
            "elo_change, rating_before, is_elo_calculated "
            "FROM points_transactions WHERE player_id = ? ORDER BY id",
            (player_id,),
        )
        columns = [c[0] for c in cur.description]
        rows = [dict(zip(columns, r)) for r in cur.fetchall()]
        for row in rows:
            row["is_elo_calculated"] = bool(row["is_elo_calculated"])
        return rows

    # ── Leaderboards ────────────────────────────────────────────────

    def leaderboard(
        self,
        game_type: str | None = None,
        limit: int = LEADERBOARD_LIMIT,
    ) -> list[LeaderboardEntry]:
        """Players by rating, highest first; per-game when *game_type* is given."""
        if game_type is None:
            rows = self._conn.execute(
                "SELECT id, display_name, COALESCE(elo_rating, ?), points, NULL "
                "FROM players ORDER BY COALESCE(elo_rating, ?) DESC, id LIMIT ?",
                (ELO_CONSTANTS.default_rating, ELO_CONSTANTS.default_rating, limit),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT p.id, p.display_name, s.elo_rating, p.points, s.games_played "
                "FROM game_stats s JOIN players p ON p.id = s.player_id "
                "WHERE s.game_type = ? AND s.elo_rating IS NOT NULL "
                "ORDER BY s.elo_rating DESC, p.id LIMIT ?",
                (game_type, limit),
            ).fetchall()
        return [
            LeaderboardEntry(
                rank=i + 1, player_id=r[0], display_name=r[1],
                elo_rating=r[2], points=r[3], games_played=r[4],
            )
            for i, r in enumerate(rows)
        ]

    # ── Maintenance ─────────────────────────────────────────────────

    def migrate_default_ratings(self) -> int:
        """Backfill missing ratings with the default. Returns rows updated."""
        default = ELO_CONSTANTS.default_rating
        players = self._conn.execute(
            "UPDATE players SET elo_rating = ? WHERE elo_rating IS NULL", (default,)
        ).rowcount
        stats = self._conn.execute(
            "UPDATE game_stats SET elo_rating = ? WHERE elo_rating IS NULL", (default,)
        ).rowcount
        self._commit()
        logger.info("Backfilled %d player and %d game ratings", players, stats)
        return players + stats

    def close(self) -> None:
        self._conn.close()
