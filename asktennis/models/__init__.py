"""
SQLAlchemy models for the canonical tennis store.

Usage:
    from asktennis.models import Player, Ranking, Tournament, Match
"""
from asktennis.models.models import (
    Base,
    Player,
    Ranking,
    Tournament,
    Match,
    SyncMetadata,
)

__all__ = [
    "Base",
    "Player",
    "Ranking",
    "Tournament",
    "Match",
    "SyncMetadata",
]
