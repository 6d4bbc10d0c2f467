"""
Immutable snapshot types produced by the provider client.

Snapshots are validated on construction; the client skips rows that fail
validation instead of failing the whole response.
"""
from dataclasses import dataclass, asdict
from datetime import date
from typing import Optional

SUPPORTED_TOURS = ("ATP", "WTA")

# Provider round names → canonical short codes stored in matches.round
ROUND_CODES = {
    "final": "F",
    "semifinal": "SF",
    "quarterfinal": "QF",
    "round_of_16": "R16",
    "round_of_32": "R32",
    "round_of_64": "R64",
    "round_of_128": "R128",
    "round_robin": "RR",
}

FINAL_ROUND = "F"


def canonical_round(value: Optional[str]) -> Optional[str]:
    """Map a provider round name onto its short code."""
    if not value:
        return None
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    return ROUND_CODES.get(key, value.strip().upper())


@dataclass(frozen=True)
class RankingSnapshot:
    """One player's position in a tour ranking on a given date."""

    player_name: str
    country: Optional[str]
    rank: int
    points: int
    as_of_date: date
    tour: str
    provider_player_id: Optional[str] = None
    previous_rank: Optional[int] = None
    movement: int = 0

    def __post_init__(self):
        if not self.player_name:
            raise ValueError("player_name is required")
        if self.tour not in SUPPORTED_TOURS:
            raise ValueError(f"unsupported tour {self.tour!r}")
        if not isinstance(self.rank, int) or self.rank < 1:
            raise ValueError(f"rank must be a positive integer, got {self.rank!r}")
        if not isinstance(self.points, int) or self.points < 0:
            raise ValueError(f"points must be a non-negative integer, got {self.points!r}")


@dataclass(frozen=True)
class TournamentSnapshot:
    provider_id: str
    name: str
    tour: Optional[str] = None
    level: Optional[str] = None
    surface: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[str] = None

    def __post_init__(self):
        if not self.provider_id or not self.name:
            raise ValueError("tournament id and name are required")

    @property
    def season(self) -> Optional[int]:
        day = self.start_date or self.end_date
        return day.year if day else None

    @property
    def is_completed(self) -> bool:
        return (self.status or "").lower() in ("closed", "ended", "completed")


@dataclass(frozen=True)
class ServiceStats:
    """Serve counters for one player in one match."""

    aces: Optional[int] = None
    double_faults: Optional[int] = None
    serve_points: Optional[int] = None
    first_serves_in: Optional[int] = None
    first_serve_points_won: Optional[int] = None
    second_serve_points_won: Optional[int] = None
    break_points_saved: Optional[int] = None
    break_points_faced: Optional[int] = None

    def as_columns(self, prefix: str) -> dict:
        """Flatten into Match column names, e.g. winner_aces."""
        return {f"{prefix}_{key}": value for key, value in asdict(self).items()}


@dataclass(frozen=True)
class MatchResultSnapshot:
    """A finished match as reported by the provider."""

    provider_id: str
    tournament_id: str
    winner_name: str
    loser_name: str
    round: Optional[str] = None
    winner_provider_id: Optional[str] = None
    loser_provider_id: Optional[str] = None
    score: Optional[str] = None
    match_date: Optional[date] = None
    duration_minutes: Optional[int] = None
    winner_stats: Optional[ServiceStats] = None
    loser_stats: Optional[ServiceStats] = None

    def __post_init__(self):
        if not self.provider_id or not self.tournament_id:
            raise ValueError("match id and tournament id are required")
        if not self.winner_name or not self.loser_name:
            raise ValueError("match needs both a winner and a loser")
        if self.winner_name == self.loser_name:
            raise ValueError("winner and loser must differ")
