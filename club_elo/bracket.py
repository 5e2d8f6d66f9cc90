"""Turn completed bracket matches into rating-engine input."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from club_elo.elo import (
    InvalidMatchResult,
    MatchResult,
    TournamentMatch,
    TournamentParticipant,
)

logger = logging.getLogger(__name__)


@dataclass
class BracketMatch:
    """One match as stored with a tournament bracket."""

    id: str
    round: int
    match_number: int
    bracket: str = "winners"  # "winners" | "losers" | "grand_final"
    player1_id: str | None = None
    player2_id: str | None = None
    winner_id: str | None = None
    loser_id: str | None = None
    score1: int | None = None
    score2: int | None = None
    status: str = "pending"  # "pending" | "in_progress" | "completed"

    @classmethod
    def from_dict(cls, data: dict) -> BracketMatch:
        """Build from the camelCase document shape the bracket editor saves."""
        score = data.get("score") or {}
        return cls(
            id=str(data["id"]),
            round=int(data.get("round", 0)),
            match_number=int(data.get("matchNumber", 0)),
            bracket=data.get("bracket", "winners"),
            player1_id=data.get("player1Id"),
            player2_id=data.get("player2Id"),
            winner_id=data.get("winnerId"),
            loser_id=data.get("loserId"),
            score1=score.get("player1"),
            score2=score.get("player2"),
            status=data.get("status", "pending"),
        )

    @property
    def is_bye(self) -> bool:
        return self.player1_id is None or self.player2_id is None

    def result_for_player1(self) -> MatchResult:
        if self.winner_id is None or (
            self.score1 is not None and self.score1 == self.score2
        ):
            return MatchResult.DRAW
        if self.winner_id == self.player1_id:
            return MatchResult.WIN
        if self.winner_id == self.player2_id:
            return MatchResult.LOSS
        raise InvalidMatchResult(
            f"Match {self.id}: winner {self.winner_id!r} is not one of its players"
        )


@dataclass
class OpponentResult:
    opponent_id: str
    result: MatchResult


_BRACKET_ORDER = {"winners": 0, "losers": 1, "grand_final": 2}


def opponent_results(matches: list[BracketMatch]) -> dict[str, list[OpponentResult]]:
    """Per-player results of every completed, two-player match.

    Matches are taken in round order (winners before losers before the
    grand final within a round), then by match number.
    """
    ordered = sorted(
        matches,
        key=lambda m: (m.round, _BRACKET_ORDER.get(m.bracket, 0), m.match_number),
    )
    results: dict[str, list[OpponentResult]] = {}
    for match in ordered:
        if match.status != "completed" or match.is_bye:
            continue
        p1_result = match.result_for_player1()
        results.setdefault(match.player1_id, []).append(
            OpponentResult(match.player2_id, p1_result)
        )
        results.setdefault(match.player2_id, []).append(
            OpponentResult(match.player1_id, p1_result.flipped())
        )
    return results


def build_participants(
    results: dict[str, list[OpponentResult]],
    ratings: dict[str, float],
    games_played: dict[str, int],
) -> list[TournamentParticipant]:
    """Engine input from opponent results and pre-tournament stored data.

    Players and opponents missing from *ratings* are skipped, since there is
    no rating to start from or to measure against.
    """
    participants = []
    for player_id, player_results in results.items():
        if player_id not in ratings:
            logger.debug("Skipping %s: no stored rating", player_id)
            continue
        matches = []
        for r in player_results:
            if r.opponent_id not in ratings:
                logger.debug("Skipping %s vs %s: opponent has no stored rating",
                             player_id, r.opponent_id)
                continue
            matches.append(TournamentMatch(
                opponent_id=r.opponent_id,
                opponent_rating=ratings[r.opponent_id],
                opponent_games_played=games_played.get(r.opponent_id, 0),
                result=r.result,
            ))
        participants.append(TournamentParticipant(
            player_id=player_id,
            current_rating=ratings[player_id],
            games_played=games_played.get(player_id, 0),
            matches=tuple(matches),
        ))
    return participants
