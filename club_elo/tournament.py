"""Apply finished tournaments and single matches to stored ratings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from club_elo.bracket import (
    BracketMatch,
    OpponentResult,
    build_participants,
    opponent_results,
)
from club_elo.elo import (
    EloCalculationParams,
    EloCalculationResult,
    MatchResult,
    TournamentEloResult,
    calculate_elo_change,
    calculate_tournament_elo_changes,
    create_elo_history_entry,
)
from club_elo.persistence import Player, RatingsDB

logger = logging.getLogger(__name__)


class TournamentNotFound(LookupError):
    """Raised when processing a tournament id that is not stored."""


class TournamentAlreadyCompleted(ValueError):
    """Raised when a tournament's results have already been applied."""


@dataclass
class PlayerResult:
    """A participant's final placing and the matches they played."""

    player_id: str
    position: int
    opponent_results: list[OpponentResult] = field(default_factory=list)


@dataclass
class _Snapshot:
    rating: float
    games_played: int


def _player_snapshot(db: RatingsDB, player: Player, game_type: str) -> _Snapshot:
    stats = db.get_game_stats(player.id, game_type)
    if stats is None:
        return _Snapshot(rating=player.elo_rating, games_played=0)
    return _Snapshot(rating=stats.elo_rating, games_played=stats.games_played)


def _snapshot(db: RatingsDB, player_id: str, game_type: str) -> _Snapshot | None:
    player = db.get_player(player_id)
    if player is None:
        return None
    return _player_snapshot(db, player, game_type)


def process_tournament(
    db: RatingsDB,
    tournament_id: str,
    results: list[PlayerResult],
) -> dict[str, TournamentEloResult]:
    """Rate every participant's matches and store the outcome.

    Every participant is measured against the opponents' ratings from before
    the tournament. Players and opponents with no stored rating are skipped.
    All writes happen in one transaction: either the whole tournament is
    applied or none of it is.
    """
    tournament = db.get_tournament(tournament_id)
    if tournament is None:
        raise TournamentNotFound(f"Tournament not found: {tournament_id}")
    if tournament.status == "completed":
        raise TournamentAlreadyCompleted(f"Tournament already completed: {tournament_id}")
    game_type = tournament.game_type

    # Validate everything before touching the database
    positions: dict[str, int] = {}
    played: dict[str, list[OpponentResult]] = {}
    for result in results:
        positions[result.player_id] = result.position
        if result.opponent_results:
            played[result.player_id] = [
                OpponentResult(opp.opponent_id, MatchResult.parse(opp.result))
                for opp in result.opponent_results
            ]

    ratings: dict[str, float] = {}
    games_played: dict[str, int] = {}
    everyone = set(played) | {opp.opponent_id for opps in played.values() for opp in opps}
    for player_id in everyone:
        snap = _snapshot(db, player_id, game_type)
        if snap is not None:
            ratings[player_id] = snap.rating
            games_played[player_id] = snap.games_played

    participants = build_participants(played, ratings, games_played)
    outcomes = calculate_tournament_elo_changes(participants)

    with db.transaction():
        for participant in participants:
            player_id = participant.player_id
            outcome = outcomes[player_id]
            for match, change in zip(participant.matches, outcome.match_outcomes):
                entry = create_elo_history_entry(
                    change.new_player_rating, change.player_rating_change,
                    match.opponent_id, match.opponent_rating, tournament_id, match.result,
                )
                db.record_match_stats(player_id, game_type, entry.result)
                db.update_game_rating(player_id, game_type, entry.rating, entry)
            db.award_elo_points(
                player_id,
                outcome.total_bonus_points,
                outcome.rating_change,
                reason=f"Tournament {tournament.name} - Position {positions[player_id]} (ELO-based)",
                admin_id=tournament.created_by,
                tournament_id=tournament_id,
                rating_before=participant.current_rating,
            )
            db.update_player_rating(player_id, outcome.new_rating)
        db.mark_tournament_completed(tournament_id)

    logger.info(
        "Processed tournament %s: %d participants rated",
        tournament_id, len(outcomes),
    )
    return outcomes


def process_bracket(
    db: RatingsDB,
    tournament_id: str,
    matches: list[BracketMatch],
    positions: dict[str, int] | None = None,
) -> dict[str, TournamentEloResult]:
    """Derive each player's results from bracket matches, then process them."""
    positions = positions or {}
    per_player = opponent_results(matches)
    results = [
        PlayerResult(
            player_id=player_id,
            position=positions.get(player_id, 0),
            opponent_results=opps,
        )
        for player_id, opps in per_player.items()
    ]
    return process_tournament(db, tournament_id, results)


def record_single_match(
    db: RatingsDB,
    player_id: str,
    opponent_id: str,
    result: MatchResult | str,
    game_type: str,
    tournament_id: str = "",
    admin_id: str = "",
) -> EloCalculationResult:
    """Rate one match and store both sides of it."""
    result = MatchResult.parse(result)
    me = _player_snapshot(db, db.ensure_player(player_id), game_type)
    them = _player_snapshot(db, db.ensure_player(opponent_id), game_type)

    outcome = calculate_elo_change(
        EloCalculationParams(
            player_rating=me.rating,
            opponent_rating=them.rating,
            player_result=result,
        ),
        me.games_played,
        them.games_played,
    )

    sides = (
        (player_id, opponent_id, them.rating, result,
         outcome.new_player_rating, outcome.player_rating_change),
        (opponent_id, player_id, me.rating, result.flipped(),
         outcome.new_opponent_rating, outcome.opponent_rating_change),
    )
    with db.transaction():
        for pid, oid, opp_rating, res, new_rating, change in sides:
            entry = create_elo_history_entry(
                new_rating, change, oid, opp_rating, tournament_id, res,
            )
            db.record_match_stats(pid, game_type, res)
            db.update_game_rating(pid, game_type, new_rating, entry)
            db.update_player_rating(pid, new_rating)
        db.award_elo_points(
            player_id,
            outcome.points_awarded,
            outcome.player_rating_change,
            reason=f"Match vs {opponent_id} ({result.value})",
            admin_id=admin_id,
            tournament_id=tournament_id or None,
            opponent_id=opponent_id,
            rating_before=me.rating,
        )

    logger.info(
        "%s %s vs %s: %+d / %+d",
        player_id, result.value, opponent_id,
        outcome.player_rating_change, outcome.opponent_rating_change,
    )
    return outcome
