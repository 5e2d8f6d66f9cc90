"""Export leaderboards and rating histories to JSON, with optional B2 upload."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path

from club_elo.config import PublishConfig
from club_elo.persistence import RatingsDB

logger = logging.getLogger(__name__)


def export_leaderboard(db_path: Path | str, game_type: str | None = None) -> list[dict]:
    """Read a leaderboard from the DB and return it as a list of dicts."""
    db = RatingsDB(db_path)
    try:
        return [asdict(e) for e in db.leaderboard(game_type)]
    finally:
        db.close()


def export_player_history(db_path: Path | str, player_id: str) -> dict | None:
    """Export a player's per-game stats and rating history.

    Returns ``None`` if the player does not exist.
    """
    db = RatingsDB(db_path)
    try:
        player = db.get_player(player_id)
        if player is None:
            return None

        games: dict[str, dict] = {}
        for game_type in db.list_game_types(player_id):
            stats = db.get_game_stats(player_id, game_type)
            if stats is None:
                continue
            games[game_type] = {
                "stats": {**asdict(stats), "win_rate": stats.win_rate},
                "history": [e.to_dict() for e in db.list_history(player_id, game_type)],
            }
        return {"player": asdict(player), "games": games}
    finally:
        db.close()


def generate_all(db_path: Path | str, output_dir: Path) -> list[Path]:
    """Generate leaderboard JSON files and one history file per player.

    Returns a list of all generated file paths.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    players_dir = output_dir / "players"
    players_dir.mkdir(exist_ok=True)

    generated: list[Path] = []

    overall = export_leaderboard(db_path)
    path = output_dir / "leaderboard.json"
    path.write_text(json.dumps(overall, indent=2))
    generated.append(path)

    db = RatingsDB(db_path)
    game_types = db.list_game_types()
    db.close()

    for game_type in game_types:
        path = output_dir / f"leaderboard_{game_type}.json"
        path.write_text(json.dumps(export_leaderboard(db_path, game_type), indent=2))
        generated.append(path)

    for entry in overall:
        data = export_player_history(db_path, entry["player_id"])
        if data is None:
            continue
        path = players_dir / f"{entry['player_id']}.json"
        path.write_text(json.dumps(data, indent=2))
        generated.append(path)

    return generated


def upload_to_b2(
    files: dict[str, bytes],
    bucket_name: str,
    endpoint_url: str,
    key_id: str,
    app_key: str,
) -> None:
    """Upload files to Backblaze B2 using the S3-compatible API.

    ``files`` maps object keys (e.g. ``"data/leaderboard.json"``) to content bytes.
    """
    import boto3  # type: ignore[import-untyped]

    s3 = boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=key_id,
        aws_secret_access_key=app_key,
    )

    for key, content in files.items():
        s3.put_object(
            Bucket=bucket_name,
            Key=key,
            Body=content,
            ContentType="application/json",
        )


def object_keys(generated: list[Path], output_dir: Path, prefix: str = "data/") -> dict[str, bytes]:
    """Map generated files to B2 object keys, mirroring their layout under *output_dir*."""
    return {
        prefix + path.relative_to(output_dir).as_posix(): path.read_bytes()
        for path in generated
    }


def publish(generated: list[Path], output_dir: Path, config: PublishConfig) -> int:
    """Upload generated files to the configured bucket. Returns the file count."""
    files = object_keys(generated, output_dir, config.prefix)
    upload_to_b2(
        files,
        bucket_name=config.bucket_name,
        endpoint_url=config.endpoint_url,
        key_id=config.key_id,
        app_key=config.app_key,
    )
    logger.info("Uploaded %d files to %s", len(files), config.bucket_name)
    return len(files)
