"""
Repository layer for data access.

Usage:
    from asktennis.repositories import TennisRepository
    from asktennis.core.database import SessionLocal

    db = SessionLocal()
    repo = TennisRepository(db)
    finals = repo.find_finals(["wimbledon"], 2019)
    db.close()
"""

from asktennis.repositories.base import BaseRepository
from asktennis.repositories.tennis_repository import TennisRepository

__all__ = [
    "BaseRepository",
    "TennisRepository",
]
