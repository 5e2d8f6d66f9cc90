"""CLI entry point: python -m club_elo {match,record,tournament,leaderboard,history,chart,migrate,export}."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from club_elo.bracket import BracketMatch, OpponentResult
from club_elo.chart import make_history_chart, make_leaderboard_chart
from club_elo.config import DB_PATH, LEADERBOARD_LIMIT, MissingSetting, PublishConfig
from club_elo.elo import EloCalculationParams, InvalidMatchResult, calculate_elo_change
from club_elo.persistence import RatingsDB
from club_elo.tournament import (
    PlayerResult,
    TournamentAlreadyCompleted,
    TournamentNotFound,
    process_bracket,
    process_tournament,
    record_single_match,
)


def _open_db(must_exist: bool = False) -> RatingsDB:
    if must_exist and not DB_PATH.exists():
        print(f"No database found at {DB_PATH}. Record some matches first.", file=sys.stderr)
        sys.exit(1)
    return RatingsDB(DB_PATH)


# ── match ────────────────────────────────────────────────────────────

def cmd_match(args: argparse.Namespace) -> None:
    """Calculate one match without touching the database."""
    result = calculate_elo_change(
        EloCalculationParams(
            player_rating=args.player_rating,
            opponent_rating=args.opponent_rating,
            player_result=args.result,
            k_factor=args.k_factor,
        ),
        args.player_games,
        args.opponent_games,
    )
    print(f"Player:   {args.player_rating:g} → {result.new_player_rating:g} "
          f"({result.player_rating_change:+d})")
    print(f"Opponent: {args.opponent_rating:g} → {result.new_opponent_rating:g} "
          f"({result.opponent_rating_change:+d})")
    print(f"Bonus points: {result.points_awarded}")


# ── record ───────────────────────────────────────────────────────────

def cmd_record(args: argparse.Namespace) -> None:
    """Apply a single match to stored ratings."""
    db = _open_db()
    try:
        result = record_single_match(
            db, args.player, args.opponent, args.result, args.game,
            tournament_id=args.tournament or "",
        )
    finally:
        db.close()
    print(f"{args.player}: {result.new_player_rating:g} ({result.player_rating_change:+d}), "
          f"+{result.points_awarded} points")
    print(f"{args.opponent}: {result.new_opponent_rating:g} ({result.opponent_rating_change:+d})")


# ── tournament ───────────────────────────────────────────────────────

def _load_tournament(db: RatingsDB, data: dict) -> str:
    """Register the tournament and its players from a results file."""
    tournament_id = str(data["id"])
    db.ensure_tournament(
        tournament_id,
        name=data.get("name", tournament_id),
        game_type=data.get("game", "general"),
        created_by=data.get("created_by", ""),
    )
    for p in data.get("players", []):
        db.ensure_player(str(p["id"]), p.get("name"), p.get("rating"))
    return tournament_id


def cmd_tournament(args: argparse.Namespace) -> None:
    """Process a finished tournament from a JSON results file."""
    data = json.loads(Path(args.file).read_text())
    db = _open_db()
    try:
        tournament_id = _load_tournament(db, data)
        if "bracket" in data:
            matches = [BracketMatch.from_dict(m) for m in data["bracket"]]
            outcomes = process_bracket(db, tournament_id, matches, data.get("positions"))
        else:
            results = [
                PlayerResult(
                    player_id=str(r["player_id"]),
                    position=int(r.get("position", 0)),
                    opponent_results=[
                        OpponentResult(str(o["opponent_id"]), o["result"])
                        for o in r.get("opponent_results", [])
                    ],
                )
                for r in data.get("results", [])
            ]
            outcomes = process_tournament(db, tournament_id, results)
    finally:
        db.close()

    print(f"\nTournament {tournament_id}")
    print("=" * 52)
    for player_id, o in sorted(outcomes.items(), key=lambda kv: kv[1].new_rating, reverse=True):
        print(f"  {player_id:24s} {o.new_rating:7.0f} {o.rating_change:+5d} "
              f"{o.total_bonus_points:5d} pts")


# ── leaderboard ──────────────────────────────────────────────────────

def cmd_leaderboard(args: argparse.Namespace) -> None:
    db = _open_db(must_exist=True)
    entries = db.leaderboard(args.game, limit=args.limit)
    db.close()

    if not entries:
        print("No rated players yet.", file=sys.stderr)
        sys.exit(1)

    print(f"\nElo Ratings ({args.game or 'overall'})")
    print("=" * 48)
    for e in entries:
        print(f"  {e.rank:3d}. {e.display_name:30s} {e.elo_rating:7.0f}")


# ── history ──────────────────────────────────────────────────────────

def cmd_history(args: argparse.Namespace) -> None:
    db = _open_db(must_exist=True)
    history = db.list_history(args.player, args.game)
    db.close()

    if not history:
        print(f"No {args.game} history for {args.player}.", file=sys.stderr)
        sys.exit(1)

    for e in history:
        print(f"  {e.date:%Y-%m-%d %H:%M}  {e.result.value:4s} vs {e.opponent_id:20s} "
              f"({e.opponent_rating:6.0f})  {e.rating:6.0f} {e.change:+4d}")


# ── chart ────────────────────────────────────────────────────────────

def cmd_chart(args: argparse.Namespace) -> None:
    """Generate a leaderboard chart, or a history chart with --player."""
    db = _open_db(must_exist=True)
    if args.player:
        history = db.list_history(args.player, args.game or "general")
        db.close()
        if not history:
            print(f"No history for {args.player}.", file=sys.stderr)
            sys.exit(1)
        out = make_history_chart(
            history,
            output_path=args.output or "elo_history.png",
            title=f"{args.player} ({args.game or 'general'})",
        )
    else:
        entries = db.leaderboard(args.game)
        db.close()
        if not entries:
            print("No rated players yet.", file=sys.stderr)
            sys.exit(1)
        out = make_leaderboard_chart(entries, output_path=args.output or "elo_leaderboard.png")
    print(f"Chart saved to {out}")


# ── migrate / export ─────────────────────────────────────────────────

def cmd_migrate(args: argparse.Namespace) -> None:
    db = _open_db(must_exist=True)
    updated = db.migrate_default_ratings()
    db.close()
    print(f"Backfilled {updated} ratings")


def cmd_export(args: argparse.Namespace) -> None:
    from club_elo.export import generate_all, publish

    if not DB_PATH.exists():
        print(f"No database found at {DB_PATH}.", file=sys.stderr)
        sys.exit(1)
    # Check credentials before writing anything
    config = PublishConfig.from_env() if args.upload else None

    out_dir = Path(args.output)
    generated = generate_all(DB_PATH, out_dir)
    print(f"Generated {len(generated)} JSON files in {out_dir}")

    if config is not None:
        count = publish(generated, out_dir, config)
        print(f"Uploaded {count} files to {config.bucket_name}")


# ── main ─────────────────────────────────────────────────────────────

COMMANDS = {
    "match": cmd_match,
    "record": cmd_record,
    "tournament": cmd_tournament,
    "leaderboard": cmd_leaderboard,
    "history": cmd_history,
    "chart": cmd_chart,
    "migrate": cmd_migrate,
    "export": cmd_export,
}

RESULT_CHOICES = ["win", "loss", "draw"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="club_elo",
        description="Gaming club Elo ratings",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    p_match = sub.add_parser("match", help="Calculate a single match (no database)")
    p_match.add_argument("player_rating", type=float)
    p_match.add_argument("opponent_rating", type=float)
    p_match.add_argument("result", choices=RESULT_CHOICES, help="Result from the player's side")
    p_match.add_argument("--player-games", type=int, default=50)
    p_match.add_argument("--opponent-games", type=int, default=50)
    p_match.add_argument("--k-factor", type=float, default=None, help="Override the player's K-factor")

    p_record = sub.add_parser("record", help="Record a single match")
    p_record.add_argument("player")
    p_record.add_argument("opponent")
    p_record.add_argument("result", choices=RESULT_CHOICES)
    p_record.add_argument("--game", default="general")
    p_record.add_argument("--tournament", default=None)

    p_tournament = sub.add_parser("tournament", help="Process a tournament results file")
    p_tournament.add_argument("file", help="JSON file with 'results' or 'bracket'")

    p_board = sub.add_parser("leaderboard", help="Show ratings")
    p_board.add_argument("--game", default=None, help="Per-game leaderboard")
    p_board.add_argument("--limit", type=int, default=LEADERBOARD_LIMIT)

    p_history = sub.add_parser("history", help="Show a player's rating history")
    p_history.add_argument("player")
    p_history.add_argument("--game", default="general")

    p_chart = sub.add_parser("chart", help="Generate a leaderboard or history chart")
    p_chart.add_argument("--game", default=None)
    p_chart.add_argument("--player", default=None, help="Chart this player's history")
    p_chart.add_argument("--output", "-o", help="Output PNG path")

    sub.add_parser("migrate", help="Backfill missing ratings with the default")

    p_export = sub.add_parser("export", help="Export leaderboards and histories to JSON")
    p_export.add_argument("--output", "-o", default="export", help="Output directory")
    p_export.add_argument("--upload", action="store_true",
                          help="Upload the files to Backblaze B2 (credentials from BACKBLAZE_* env vars)")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return

    try:
        handler(args)
    except (
        InvalidMatchResult,
        TournamentNotFound,
        TournamentAlreadyCompleted,
        MissingSetting,
        FileNotFoundError,
        json.JSONDecodeError,
    ) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyError as e:
        print(f"Error: missing field {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
