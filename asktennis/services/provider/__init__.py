"""Sportradar provider client and the snapshot types it produces."""
from asktennis.services.provider.schemas import (
    MatchResultSnapshot,
    RankingSnapshot,
    ServiceStats,
    TournamentSnapshot,
)
from asktennis.services.provider.sportradar_client import SportradarClient

__all__ = [
    "SportradarClient",
    "RankingSnapshot",
    "TournamentSnapshot",
    "MatchResultSnapshot",
    "ServiceStats",
]
