"""
Database models for the AskTennis stats API.

Every table carries a natural key so the sync engine can upsert
idempotently:
- players: name
- rankings: (tour, player_id, as_of_date)
- tournaments: provider tournament id (primary key)
- matches: provider match id (external_id)
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Date, ForeignKey, Text, Index, UniqueConstraint
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


class Player(Base):
    """Tennis player, keyed by display name."""
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    normalized_name = Column(String(255), nullable=False, index=True)  # accent/case/suffix folded
    provider_id = Column(String(64), unique=True, nullable=True)  # e.g. sr:competitor:14882
    country = Column(String(3), nullable=True, index=True)
    tour = Column(String(3), nullable=True, index=True)  # ATP or WTA
    current_ranking = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    rankings = relationship("Ranking", back_populates="player", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Player {self.name!r} ({self.tour})>"


class Ranking(Base):
    """Weekly ranking row, one per (tour, player, as_of_date)."""
    __tablename__ = "rankings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    tour = Column(String(3), nullable=False)
    rank = Column(Integer, nullable=False)
    points = Column(Integer, nullable=False, default=0)
    as_of_date = Column(Date, nullable=False)
    previous_rank = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    player = relationship("Player", back_populates="rankings")

    __table_args__ = (
        UniqueConstraint('tour', 'player_id', 'as_of_date', name='uq_rankings_tour_player_date'),
        Index('ix_rankings_tour_date', 'tour', 'as_of_date'),
    )


class Tournament(Base):
    """Tournament (competition edition) keyed by provider id."""
    __tablename__ = "tournaments"

    id = Column(String(64), primary_key=True)  # provider tournament id
    name = Column(String(255), nullable=False, index=True)
    normalized_name = Column(String(255), nullable=False, index=True)  # lowercase, accent-free
    tour = Column(String(3), nullable=True)
    level = Column(String(32), nullable=True)  # grand_slam, atp_1000, ...
    surface = Column(String(20), nullable=True)
    season = Column(Integer, nullable=True, index=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    matches = relationship("Match", back_populates="tournament")


class Match(Base):
    """Completed singles match with per-player service statistics."""
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(64), unique=True, nullable=False)  # provider match id
    tournament_id = Column(String(64), ForeignKey("tournaments.id"), nullable=False, index=True)
    round = Column(String(8), nullable=True, index=True)  # F, SF, QF, R16, ...
    winner_id = Column(Integer, ForeignKey("players.id"), nullable=False, index=True)
    loser_id = Column(Integer, ForeignKey("players.id"), nullable=False, index=True)
    score = Column(String(64), nullable=True)
    match_date = Column(Date, nullable=True, index=True)
    duration_minutes = Column(Integer, nullable=True)

    winner_aces = Column(Integer, nullable=True)
    winner_double_faults = Column(Integer, nullable=True)
    winner_serve_points = Column(Integer, nullable=True)
    winner_first_serves_in = Column(Integer, nullable=True)
    winner_first_serve_points_won = Column(Integer, nullable=True)
    winner_second_serve_points_won = Column(Integer, nullable=True)
    winner_break_points_saved = Column(Integer, nullable=True)
    winner_break_points_faced = Column(Integer, nullable=True)

    loser_aces = Column(Integer, nullable=True)
    loser_double_faults = Column(Integer, nullable=True)
    loser_serve_points = Column(Integer, nullable=True)
    loser_first_serves_in = Column(Integer, nullable=True)
    loser_first_serve_points_won = Column(Integer, nullable=True)
    loser_second_serve_points_won = Column(Integer, nullable=True)
    loser_break_points_saved = Column(Integer, nullable=True)
    loser_break_points_faced = Column(Integer, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    tournament = relationship("Tournament", back_populates="matches")
    winner = relationship("Player", foreign_keys=[winner_id])
    loser = relationship("Player", foreign_keys=[loser_id])

    __table_args__ = (
        Index('ix_matches_winner_loser', 'winner_id', 'loser_id'),
    )


class SyncMetadata(Base):
    """Tracks the last outcome of each ingestion batch kind.

    One row per (source, data_type), e.g. ('sportradar', 'rankings_atp').
    The in-memory SyncStatus is the live view; this table keeps the
    history across restarts.
    """
    __tablename__ = "sync_metadata"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(32), nullable=False)
    data_type = Column(String(64), nullable=False)
    last_sync_started_at = Column(DateTime, nullable=True)
    last_sync_completed_at = Column(DateTime, nullable=True, index=True)
    last_sync_status = Column(String(16), nullable=True, index=True)  # success, failed
    records_processed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    sync_duration_ms = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint('source', 'data_type', name='uq_sync_metadata_source_type'),
    )
