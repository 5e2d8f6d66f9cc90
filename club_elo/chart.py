"""Leaderboard and rating-history charts."""

from __future__ import annotations

import matplotlib
matplotlib.use("Agg")  # non-interactive backend

import matplotlib.pyplot as plt

from club_elo.config import ELO_CONSTANTS
from club_elo.elo import EloHistoryEntry
from club_elo.persistence import LeaderboardEntry


def make_leaderboard_chart(
    entries: list[LeaderboardEntry],
    output_path: str = "elo_leaderboard.png",
    title: str = "Club Elo Leaderboard",
) -> str:
    """Create a horizontal bar chart of ratings, sorted descending.

    Returns the path to the saved PNG.
    """
    sorted_entries = sorted(entries, key=lambda e: e.elo_rating, reverse=True)
    names = [e.display_name for e in sorted_entries]
    scores = [e.elo_rating for e in sorted_entries]

    fig, ax = plt.subplots(figsize=(10, max(3, len(names) * 0.7)))
    bars = ax.barh(names, scores, color="#4A90D9", edgecolor="white")

    for bar, score in zip(bars, scores):
        ax.text(
            bar.get_width() + 2, bar.get_y() + bar.get_height() / 2,
            f"{score:.0f}",
            va="center", fontsize=11, fontweight="bold",
        )

    ax.set_xlabel("Elo Rating")
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.invert_yaxis()  # highest on top
    if scores:
        ax.set_xlim(left=min(scores) - 50, right=max(scores) + 60)

    plt.tight_layout()
    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    return output_path


def make_history_chart(
    history: list[EloHistoryEntry],
    output_path: str = "elo_history.png",
    title: str = "Rating History",
) -> str:
    """Plot rating after each match, with the rating bounds as dashed lines."""
    dates = [e.date for e in history]
    ratings = [e.rating for e in history]

    fig, ax = plt.subplots(figsize=(10, 4))
    ax.plot(dates, ratings, marker="o", color="#4A90D9")

    for e in history:
        if e.change:
            ax.annotate(
                f"{e.change:+d}", (e.date, e.rating),
                textcoords="offset points", xytext=(0, 8),
                ha="center", fontsize=8,
            )

    for bound in (ELO_CONSTANTS.min_rating, ELO_CONSTANTS.max_rating):
        if ratings and min(ratings) - 200 <= bound <= max(ratings) + 200:
            ax.axhline(bound, linestyle="--", color="grey", linewidth=1)

    ax.set_ylabel("Elo Rating")
    ax.set_title(title, fontsize=14, fontweight="bold")
    fig.autofmt_xdate()

    plt.tight_layout()
    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    return output_path
