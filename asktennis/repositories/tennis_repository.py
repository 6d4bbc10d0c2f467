"""
Tennis Repository for the canonical store.

Two halves:
- Upserts used by the sync engine. Each one is a check-then-insert on the
  record's natural key, so replaying the same snapshots leaves row counts
  unchanged.
- Read-only queries used by the query resolver.

Usage:
    repo = TennisRepository(db)
    player, created = repo.upsert_player("Novak Djokovic", country="SRB", tour="ATP")
    finals = repo.find_finals(["wimbledon"], 2019)
"""
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, desc, func, or_
from sqlalchemy.orm import joinedload

from asktennis.core.logging import get_logger
from asktennis.models import Match, Player, Ranking, SyncMetadata, Tournament
from asktennis.repositories.base import BaseRepository
from asktennis.services.provider.schemas import (
    FINAL_ROUND,
    MatchResultSnapshot,
    RankingSnapshot,
    ServiceStats,
    TournamentSnapshot,
)
from asktennis.services.sync.name_normalizer import normalize, normalize_tournament

logger = get_logger(__name__)

SERVICE_STAT_FIELDS = tuple(ServiceStats.__dataclass_fields__)


class TennisRepository(BaseRepository[Match]):
    """Data access for players, rankings, tournaments and matches."""

    def __init__(self, db):
        super().__init__(Match, db)

    # ========================================================================
    # Upserts (sync engine)
    # ========================================================================

    def upsert_player(
        self,
        name: str,
        country: Optional[str] = None,
        tour: Optional[str] = None,
        provider_id: Optional[str] = None,
        current_ranking: Optional[int] = None,
    ) -> Tuple[Player, bool]:
        """
        Find a player by provider id, then by display name; create if absent.

        A player matched by provider id takes the provider's current name,
        unless another player row already holds that name.

        Returns:
            (player, created)
        """
        player = None
        renamed = {}
        if provider_id:
            player = self.db.query(Player).filter(Player.provider_id == provider_id).first()
            if player is not None and player.name != name:
                if self._name_taken(name, player.id):
                    logger.warning(f"Not renaming player {player.name!r} to {name!r}: name already in use")
                else:
                    renamed = dict(name=name, normalized_name=normalize(name))
        if player is None:
            player = self.db.query(Player).filter(Player.name == name).first()

        if player is None:
            player = Player(
                name=name,
                normalized_name=normalize(name),
                provider_id=provider_id,
                country=country,
                tour=tour,
                current_ranking=current_ranking,
            )
            self.db.add(player)
            self.db.flush()
            return player, True

        self.apply(
            player,
            provider_id=provider_id if player.provider_id is None else None,
            country=country,
            tour=tour,
            current_ranking=current_ranking,
            **renamed,
        )
        return player, False

    def _name_taken(self, name: str, player_id: int) -> bool:
        return self.db.query(Player.id).filter(Player.name == name, Player.id != player_id).first() is not None

    def upsert_ranking(self, player: Player, snapshot: RankingSnapshot) -> Tuple[Ranking, bool]:
        """Insert or update the ranking row keyed by (tour, player, as_of_date)."""
        ranking = self.db.query(Ranking).filter(
            Ranking.tour == snapshot.tour,
            Ranking.player_id == player.id,
            Ranking.as_of_date == snapshot.as_of_date,
        ).first()

        if ranking is None:
            ranking = Ranking(
                player_id=player.id,
                tour=snapshot.tour,
                rank=snapshot.rank,
                points=snapshot.points,
                as_of_date=snapshot.as_of_date,
                previous_rank=snapshot.previous_rank,
            )
            self.db.add(ranking)
            self.db.flush()
            return ranking, True

        self.apply(ranking, rank=snapshot.rank, points=snapshot.points, previous_rank=snapshot.previous_rank)
        return ranking, False

    def upsert_tournament(self, snapshot: TournamentSnapshot) -> Tuple[Tournament, bool]:
        """Insert or update a tournament keyed by provider id."""
        values = dict(
            name=snapshot.name,
            normalized_name=normalize_tournament(snapshot.name),
            tour=snapshot.tour,
            level=snapshot.level,
            surface=snapshot.surface,
            season=snapshot.season,
            start_date=snapshot.start_date,
            end_date=snapshot.end_date,
            status=snapshot.status,
        )
        tournament = self.db.get(Tournament, snapshot.provider_id)
        if tournament is None:
            tournament = Tournament(id=snapshot.provider_id, **values)
            self.db.add(tournament)
            self.db.flush()
            return tournament, True

        self.apply(tournament, **values)
        return tournament, False

    def upsert_match(
        self,
        snapshot: MatchResultSnapshot,
        winner: Player,
        loser: Player,
    ) -> Tuple[Match, bool]:
        """Insert or update a finished match keyed by provider match id."""
        values = dict(
            tournament_id=snapshot.tournament_id,
            round=snapshot.round,
            winner_id=winner.id,
            loser_id=loser.id,
            score=snapshot.score,
            match_date=snapshot.match_date,
            duration_minutes=snapshot.duration_minutes,
        )
        if snapshot.winner_stats:
            values.update(snapshot.winner_stats.as_columns("winner"))
        if snapshot.loser_stats:
            values.update(snapshot.loser_stats.as_columns("loser"))

        match = self.where_first(Match.external_id == snapshot.provider_id)
        if match is None:
            match = self.create(external_id=snapshot.provider_id, **values)
            self.flush()
            return match, True

        self.apply(match, **values)
        return match, False

    def record_sync_batch(
        self,
        source: str,
        data_type: str,
        started_at: datetime,
        status: str,
        records_processed: int = 0,
        error_message: Optional[str] = None,
    ) -> SyncMetadata:
        """Store the latest outcome of one ingestion batch kind."""
        completed_at = datetime.utcnow()
        row = self.db.query(SyncMetadata).filter(
            SyncMetadata.source == source,
            SyncMetadata.data_type == data_type,
        ).first()
        if row is None:
            row = SyncMetadata(source=source, data_type=data_type)
            self.db.add(row)
            self.db.flush()

        row.last_sync_started_at = started_at
        row.last_sync_completed_at = completed_at
        row.last_sync_status = status
        row.records_processed = records_processed
        row.error_message = error_message
        row.sync_duration_ms = int((completed_at - started_at).total_seconds() * 1000)
        return row

    # ========================================================================
    # Sync support
    # ========================================================================

    def find_recently_completed_tournaments(
        self,
        since: date,
        until: date,
        limit: int,
    ) -> List[Tournament]:
        """Tournaments that ended within [since, until], most recent first."""
        return self.db.query(Tournament).filter(
            Tournament.end_date >= since,
            Tournament.end_date <= until,
        ).order_by(desc(Tournament.end_date), Tournament.id).limit(limit).all()

    def latest_sync_completed_at(self, status: str = "success") -> Optional[datetime]:
        """Completion time of the newest batch with the given status."""
        return self.db.query(func.max(SyncMetadata.last_sync_completed_at)).filter(
            SyncMetadata.last_sync_status == status
        ).scalar()

    def table_counts(self) -> Dict[str, int]:
        """Row counts for the canonical tables."""
        return {
            "players": self.db.query(func.count(Player.id)).scalar() or 0,
            "rankings": self.db.query(func.count(Ranking.id)).scalar() or 0,
            "tournaments": self.db.query(func.count(Tournament.id)).scalar() or 0,
            "matches": self.db.query(func.count(Match.id)).scalar() or 0,
        }

    # ========================================================================
    # Read queries (query resolver)
    # ========================================================================

    def find_player_ids(self, normalized_name: str) -> List[int]:
        """Ids of players whose folded name equals the argument."""
        rows = self.db.query(Player.id).filter(Player.normalized_name == normalized_name).all()
        return [row[0] for row in rows]

    def find_player(self, normalized_name: str) -> Optional[Player]:
        return self.db.query(Player).filter(
            Player.normalized_name == normalized_name
        ).order_by(Player.id).first()

    def find_finals(
        self,
        name_patterns: Sequence[str],
        season: int,
        tour: Optional[str] = None,
    ) -> List[Match]:
        """
        Final-round matches of a season whose folded tournament name
        (see normalize_tournament) contains any of the patterns. Most
        recent first.
        """
        name = Tournament.normalized_name
        query = self.db.query(Match).join(Tournament, Match.tournament_id == Tournament.id).options(
            joinedload(Match.winner),
            joinedload(Match.loser),
            joinedload(Match.tournament),
        ).filter(
            Match.round == FINAL_ROUND,
            Tournament.season == season,
            or_(*[name.contains(pattern, autoescape=True) for pattern in name_patterns]),
        )
        if tour:
            query = query.filter(Tournament.tour == tour)

        return query.order_by(
            Match.match_date.desc().nullslast(),
            Match.id.desc(),
        ).all()

    def find_head_to_head(self, a_ids: Sequence[int], b_ids: Sequence[int]) -> List[Match]:
        """All matches between two player id sets, newest first."""
        return self.db.query(Match).options(
            joinedload(Match.winner),
            joinedload(Match.loser),
            joinedload(Match.tournament),
        ).filter(
            or_(
                and_(Match.winner_id.in_(a_ids), Match.loser_id.in_(b_ids)),
                and_(Match.winner_id.in_(b_ids), Match.loser_id.in_(a_ids)),
            )
        ).order_by(
            Match.match_date.desc().nullslast(),
            Match.id.desc(),
        ).all()

    def career_aggregates(self, player_ids: Sequence[int]) -> Dict[str, int]:
        """
        Win/loss counts, titles, lost finals and summed service counters.

        Service counters come from the winner_* columns of won matches and
        the loser_* columns of lost matches.
        """
        totals = {field: 0 for field in SERVICE_STAT_FIELDS}

        won = self._side_totals(Match.winner_id, "winner", player_ids)
        lost = self._side_totals(Match.loser_id, "loser", player_ids)
        for field in SERVICE_STAT_FIELDS:
            totals[field] = won[field] + lost[field]

        totals.update(
            wins=won["matches"],
            losses=lost["matches"],
            titles=won["finals"],
            finals_lost=lost["finals"],
        )
        return totals

    def _side_totals(self, side_column, prefix: str, player_ids: Sequence[int]) -> Dict[str, int]:
        columns = [
            func.count(Match.id),
            func.coalesce(func.sum(case((Match.round == FINAL_ROUND, 1), else_=0)), 0),
        ]
        columns += [
            func.coalesce(func.sum(getattr(Match, f"{prefix}_{field}")), 0)
            for field in SERVICE_STAT_FIELDS
        ]
        row = self.db.query(*columns).filter(side_column.in_(player_ids)).one()

        result = {"matches": int(row[0] or 0), "finals": int(row[1] or 0)}
        for index, field in enumerate(SERVICE_STAT_FIELDS, start=2):
            result[field] = int(row[index] or 0)
        return result

    def win_leaderboard(self, limit: int, tour: Optional[str] = None) -> List[Tuple[Player, int]]:
        """Players ordered by recorded wins, ties broken by name."""
        wins = func.count(Match.id).label("wins")
        query = self.db.query(Player, wins).join(Match, Match.winner_id == Player.id)
        if tour:
            query = query.filter(Player.tour == tour)
        return query.group_by(Player.id).order_by(desc(wins), Player.name).limit(limit).all()

    def latest_rankings(self, tour: str, limit: int) -> Tuple[Optional[date], List[Tuple[Ranking, Player]]]:
        """The newest ranking snapshot for a tour, ordered by rank."""
        as_of = self.db.query(func.max(Ranking.as_of_date)).filter(Ranking.tour == tour).scalar()
        if as_of is None:
            return None, []

        rows = self.db.query(Ranking, Player).join(Player, Ranking.player_id == Player.id).filter(
            Ranking.tour == tour,
            Ranking.as_of_date == as_of,
        ).order_by(Ranking.rank, Player.name).limit(limit).all()
        return as_of, rows

