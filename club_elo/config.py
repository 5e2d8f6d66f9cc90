"""Rating constants, runtime paths and publishing settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping


@dataclass(frozen=True)
class EloConstants:
    default_rating: int = 1200
    k_factor_high: int = 40  # fewer than new_player_games
    k_factor_medium: int = 20
    k_factor_low: int = 10  # experienced_player_games and up
    min_rating: int = 100
    max_rating: int = 3000
    rating_difference_threshold: int = 400  # smallest massive upset
    new_player_games: int = 30
    experienced_player_games: int = 100
    # Experienced players outside this band keep the medium K-factor.
    extreme_rating_high: int = 2000
    extreme_rating_low: int = 800


@dataclass(frozen=True)
class PointsMultipliers:
    massive_upset: float = 3.0  # 400+ rating difference
    major_upset: float = 2.5  # 300-399
    moderate_upset: float = 2.0  # 200-299
    minor_upset: float = 1.5  # 100-199
    even_match: float = 1.0  # within 100 either way
    expected_win: float = 0.8  # favourite wins


@dataclass(frozen=True)
class BonusPolicy:
    base_points: int = 10
    draw_multiplier: float = 1.2
    min_win_points: int = 15
    max_win_points: int = 150
    # (minimum opponent-minus-player difference, multiplier attribute), checked in order
    upset_thresholds: tuple[tuple[int, str], ...] = field(default=(
        (EloConstants.rating_difference_threshold, "massive_upset"),
        (300, "major_upset"),
        (200, "moderate_upset"),
        (100, "minor_upset"),
        (-100, "even_match"),
    ))


ELO_CONSTANTS = EloConstants()
POINTS_MULTIPLIERS = PointsMultipliers()
BONUS_POLICY = BonusPolicy()


# ── Storage ──────────────────────────────────────────────────────────

RESULTS_DIR = Path("results")


def db_path_from_env(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    return Path(env.get("CLUB_ELO_DB", RESULTS_DIR / "ratings.db"))


DB_PATH = db_path_from_env()

HISTORY_LIMIT = 50  # history entries kept per player per game
LEADERBOARD_LIMIT = 100


# ── Publishing ───────────────────────────────────────────────────────

PUBLISH_ENV_VARS = (
    "BACKBLAZE_KEY_ID",
    "BACKBLAZE_APPLICATION_KEY",
    "BACKBLAZE_CLUB_ELO_BUCKET_NAME",
    "BACKBLAZE_CLUB_ELO_HOST",  # S3-compatible endpoint hostname
)


class MissingSetting(RuntimeError):
    """Raised when a required environment variable is unset or empty."""


@dataclass(frozen=True)
class PublishConfig:
    key_id: str
    app_key: str
    bucket_name: str
    host: str
    prefix: str = "data/"

    @property
    def endpoint_url(self) -> str:
        return f"https://{self.host}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> PublishConfig:
        env = os.environ if environ is None else environ
        missing = [var for var in PUBLISH_ENV_VARS if not env.get(var)]
        if missing:
            raise MissingSetting(f"Missing env var: {', '.join(missing)}")
        return cls(
            key_id=env["BACKBLAZE_KEY_ID"],
            app_key=env["BACKBLAZE_APPLICATION_KEY"],
            bucket_name=env["BACKBLAZE_CLUB_ELO_BUCKET_NAME"],
            host=env["BACKBLAZE_CLUB_ELO_HOST"],
        )
