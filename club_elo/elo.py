"""Elo rating and upset-bonus calculation for club matches.

Everything in this module is a pure function over plain values. Callers
read ratings from storage, run the calculation, and write the results back.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from club_elo.config import BONUS_POLICY, ELO_CONSTANTS, POINTS_MULTIPLIERS

logger = logging.getLogger(__name__)


class InvalidMatchResult(ValueError):
    """Raised for a match result other than win, loss or draw."""


class MatchResult(str, Enum):
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"

    @classmethod
    def parse(cls, value: MatchResult | str) -> MatchResult:
        try:
            return cls(value)
        except ValueError:
            raise InvalidMatchResult(f"Invalid match result: {value!r}") from None

    @property
    def score(self) -> float:
        return _ACTUAL_SCORES[self]

    def flipped(self) -> MatchResult:
        """The same match seen from the opponent's side."""
        if self is MatchResult.WIN:
            return MatchResult.LOSS
        if self is MatchResult.LOSS:
            return MatchResult.WIN
        return MatchResult.DRAW


_ACTUAL_SCORES = {
    MatchResult.WIN: 1.0,
    MatchResult.DRAW: 0.5,
    MatchResult.LOSS: 0.0,
}


# ── Records ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EloCalculationParams:
    player_rating: float
    opponent_rating: float
    player_result: MatchResult | str
    k_factor: float | None = None  # None = derive from experience


@dataclass(frozen=True)
class EloCalculationResult:
    new_player_rating: float
    new_opponent_rating: float
    player_rating_change: int
    opponent_rating_change: int
    points_awarded: int


@dataclass(frozen=True)
class EloHistoryEntry:
    """One audit row per processed match; append-only."""

    date: datetime
    rating: float
    change: int
    opponent_id: str
    opponent_rating: float
    tournament_id: str
    result: MatchResult

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "rating": self.rating,
            "change": self.change,
            "opponent_id": self.opponent_id,
            "opponent_rating": self.opponent_rating,
            "tournament_id": self.tournament_id,
            "result": self.result.value,
        }


@dataclass(frozen=True)
class TournamentMatch:
    opponent_id: str
    opponent_rating: float
    opponent_games_played: int
    result: MatchResult | str


@dataclass(frozen=True)
class TournamentParticipant:
    player_id: str
    current_rating: float
    games_played: int
    matches: tuple[TournamentMatch, ...] = field(default=())


@dataclass(frozen=True)
class TournamentEloResult:
    new_rating: float
    rating_change: int
    total_bonus_points: int
    # One per match, in the order folded
    match_outcomes: tuple[EloCalculationResult, ...] = ()


# ── Building blocks ──────────────────────────────────────────────────

def round_half_up(value: float) -> int:
    """Round .5 toward +infinity, so -0.5 -> 0 and 2.5 -> 3."""
    return math.floor(value + 0.5)


def clamp_rating(rating: float) -> float:
    return max(ELO_CONSTANTS.min_rating, min(ELO_CONSTANTS.max_rating, rating))


def expected_score(player_rating: float, opponent_rating: float) -> float:
    """Logistic expectation, 400-point scale:

      E = 1 / (1 + 10^((R_opp - R_player) / 400))
    """
    return 1.0 / (1.0 + 10.0 ** ((opponent_rating - player_rating) / 400.0))


def k_factor(games_played: int, current_rating: float) -> int:
    c = ELO_CONSTANTS
    if games_played < c.new_player_games:
        return c.k_factor_high
    if games_played < c.experienced_player_games:
        return c.k_factor_medium
    if current_rating > c.extreme_rating_high or current_rating < c.extreme_rating_low:
        return c.k_factor_medium
    return c.k_factor_low


def upset_multiplier(player_rating: float, opponent_rating: float) -> float:
    """Multiplier for a win; positive difference means the opponent was stronger."""
    difference = opponent_rating - player_rating
    for threshold, name in BONUS_POLICY.upset_thresholds:
        if difference >= threshold:
            return getattr(POINTS_MULTIPLIERS, name)
    return POINTS_MULTIPLIERS.expected_win


def bonus_points(
    player_rating: float,
    opponent_rating: float,
    result: MatchResult | str,
) -> int:
    """Points awarded to the player for one match.

    Losses pay the flat base and skip the [15, 150] clamp that wins get.
    """
    result = MatchResult.parse(result)
    base = BONUS_POLICY.base_points

    if result is MatchResult.LOSS:
        return base
    if result is MatchResult.DRAW:
        return round_half_up(base * BONUS_POLICY.draw_multiplier)

    points = round_half_up(base * upset_multiplier(player_rating, opponent_rating))
    return max(BONUS_POLICY.min_win_points, min(BONUS_POLICY.max_win_points, points))


# ── Match update ─────────────────────────────────────────────────────

def calculate_elo_change(
    params: EloCalculationParams,
    player_games_played: int = 50,
    opponent_games_played: int = 50,
) -> EloCalculationResult:
    """New ratings and bonus points for both sides of one match.

    Each side gets its own K-factor, so the two changes need not cancel.
    """
    result = MatchResult.parse(params.player_result)
    player_k = params.k_factor
    if player_k is None:
        player_k = k_factor(player_games_played, params.player_rating)
    opponent_k = k_factor(opponent_games_played, params.opponent_rating)

    actual = result.score
    player_expected = expected_score(params.player_rating, params.opponent_rating)
    opponent_expected = expected_score(params.opponent_rating, params.player_rating)

    player_change = round_half_up(player_k * (actual - player_expected))
    opponent_change = round_half_up(opponent_k * ((1.0 - actual) - opponent_expected))

    return EloCalculationResult(
        new_player_rating=clamp_rating(params.player_rating + player_change),
        new_opponent_rating=clamp_rating(params.opponent_rating + opponent_change),
        player_rating_change=player_change,
        opponent_rating_change=opponent_change,
        points_awarded=bonus_points(params.player_rating, params.opponent_rating, result),
    )


def calculate_tournament_elo_changes(
    participants: list[TournamentParticipant],
) -> dict[str, TournamentEloResult]:
    """Fold every participant's matches, in the order given.

    Opponent ratings are used as recorded in each match, never updated
    live. The participant's own rating carries forward between matches, so
    reordering a participant's matches can change the final rating.
    """
    results: dict[str, TournamentEloResult] = {}

    for participant in participants:
        rating = participant.current_rating
        total_change = 0
        total_bonus = 0
        match_outcomes = []

        for match in participant.matches:
            outcome = calculate_elo_change(
                EloCalculationParams(
                    player_rating=rating,
                    opponent_rating=match.opponent_rating,
                    player_result=match.result,
                ),
                participant.games_played,
                match.opponent_games_played,
            )
            logger.debug(
                "%s vs %s (%s): %+d",
                participant.player_id, match.opponent_id,
                MatchResult.parse(match.result).value, outcome.player_rating_change,
            )
            total_change += outcome.player_rating_change
            total_bonus += outcome.points_awarded
            rating = outcome.new_player_rating
            match_outcomes.append(outcome)

        results[participant.player_id] = TournamentEloResult(
            new_rating=rating,
            rating_change=total_change,
            total_bonus_points=total_bonus,
            match_outcomes=tuple(match_outcomes),
        )

    return results


def create_elo_history_entry(
    new_rating: float,
    rating_change: int,
    opponent_id: str,
    opponent_rating: float,
    tournament_id: str,
    result: MatchResult | str,
) -> EloHistoryEntry:
    return EloHistoryEntry(
        date=datetime.now(timezone.utc),
        rating=new_rating,
        change=rating_change,
        opponent_id=opponent_id,
        opponent_rating=opponent_rating,
        tournament_id=tournament_id,
        result=MatchResult.parse(result),
    )
