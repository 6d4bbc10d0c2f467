"""
Query resolver for tennis statistics.

Every lookup follows the same path:
1. Validate arguments (bad input never reaches the store)
2. Normalize names and fill defaults
3. Build the cache fingerprint
4. Serve from the query cache, or compute from the store and cache it

Results come back as a QueryOutcome instead of raising, so callers only
have to branch on ``outcome.status``.

Usage:
    resolver = QueryResolver(db, cache, max_limit=100)
    outcome = resolver.get_tournament_winner("Wimbledon", 2019)
    if outcome.status == "ok":
        print(outcome.data["winner"])
"""
import copy
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from asktennis.core.exceptions import InvalidArgument, NotFound, QueryError
from asktennis.core.logging import get_logger
from asktennis.models import Match
from asktennis.repositories import TennisRepository
from asktennis.services.cache.query_cache import QueryCache, fingerprint
from asktennis.services.provider.schemas import SUPPORTED_TOURS
from asktennis.services.sync.name_normalizer import normalize, normalize_tournament

logger = get_logger(__name__)

# Query types
TOURNAMENT_WINNER = "tournament_winner"
HEAD_TO_HEAD = "head_to_head"
CAREER_STATS = "career_stats"
GRAND_SLAMS = "grand_slams"
MOST_SUCCESSFUL = "most_successful"
RANKINGS = "rankings"

# Outcome statuses
OK = "ok"
NOT_FOUND = "not_found"
INVALID_ARGUMENT = "invalid_argument"

NO_DATA_MESSAGE = "No data available"

FIRST_TOURNAMENT_YEAR = 1877

_ROLAND_GARROS = ("roland garros", "roland-garros", "french open")

# Normalized query name -> lowercase substrings matched against tournament names
TOURNAMENT_ALIASES = {
    "french open": _ROLAND_GARROS,
    "roland garros": _ROLAND_GARROS,
    "roland-garros": _ROLAND_GARROS,
    "australian open": ("australian open",),
    "wimbledon": ("wimbledon",),
    "us open": ("us open",),
}

# Majors in calendar order
GRAND_SLAM_EVENTS = (
    ("Australian Open", TOURNAMENT_ALIASES["australian open"]),
    ("French Open", _ROLAND_GARROS),
    ("Wimbledon", TOURNAMENT_ALIASES["wimbledon"]),
    ("US Open", TOURNAMENT_ALIASES["us open"]),
)


class StatsQuery(BaseModel):
    """Typed request handed over by the natural-language front end."""

    query_type: Literal[
        "tournament_winner",
        "head_to_head",
        "career_stats",
        "grand_slams",
        "most_successful",
        "rankings",
    ]
    tournament: Optional[str] = Field(None, description="Tournament name, e.g. 'Wimbledon'")
    year: Optional[int] = None
    tour: Optional[str] = Field(None, description="ATP or WTA")
    player: Optional[str] = None
    player_a: Optional[str] = None
    player_b: Optional[str] = None
    limit: Optional[int] = None


@dataclass(frozen=True)
class QueryOutcome:
    status: str
    query_type: str
    data: Any = None
    cached: bool = False
    computed_at: Optional[datetime] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "query_type": self.query_type,
            "data": self.data,
            "cached": self.cached,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
            "message": self.message,
        }


def _match_summary(match: Match) -> Dict[str, Any]:
    tournament = match.tournament
    return {
        "tournament": tournament.name if tournament else None,
        "year": tournament.season if tournament else None,
        "round": match.round,
        "winner": match.winner.name,
        "loser": match.loser.name,
        "score": match.score,
        "match_date": match.match_date.isoformat() if match.match_date else None,
    }


def _pct(numerator: int, denominator: int) -> Optional[float]:
    if not denominator:
        return None
    return round(100.0 * numerator / denominator, 1)


class QueryResolver:
    """
    Resolves typed statistical queries against the store through the cache.

    Args:
        db: Read session for this request
        cache: Process-wide query cache
        max_limit: Upper clamp for leaderboard/ranking sizes
    """

    def __init__(self, db: Session, cache: QueryCache, max_limit: int = 100):
        self.repo = TennisRepository(db)
        self.cache = cache
        self.max_limit = max_limit

    # ========================================================================
    # Operations
    # ========================================================================

    def get_tournament_winner(self, tournament_name: str, year: int, tour: Optional[str] = None) -> QueryOutcome:
        """Winner of the final of a tournament edition (substring, case-insensitive)."""
        def prepare():
            name = normalize_tournament(self._require_text(tournament_name, "tournament_name"))
            season = self._require_year(year)
            tour_code = self._optional_tour(tour)
            key = fingerprint(TOURNAMENT_WINNER, tournament=name, year=season, tour=tour_code)
            return key, lambda: self._tournament_winner(name, season, tour_code), None

        return self._resolve(TOURNAMENT_WINNER, prepare)

    def get_head_to_head(self, player_a: str, player_b: str) -> QueryOutcome:
        """Head-to-head record between two players, oriented as requested."""
        def prepare():
            a = normalize(self._require_text(player_a, "player_a"))
            b = normalize(self._require_text(player_b, "player_b"))
            if not a or not b:
                raise InvalidArgument("player names must contain letters")
            if a == b:
                raise InvalidArgument("player_a and player_b must be different players")

            first, second = sorted((a, b))
            key = fingerprint(HEAD_TO_HEAD, player_a=first, player_b=second)
            present = None if a == first else self._swap_head_to_head
            return key, lambda: self._head_to_head(first, second), present

        return self._resolve(HEAD_TO_HEAD, prepare)

    def get_player_career_stats(self, player_name: str) -> QueryOutcome:
        """Career win/loss record, titles and service aggregates."""
        def prepare():
            name = normalize(self._require_text(player_name, "player_name"))
            if not name:
                raise InvalidArgument("player_name must contain letters")
            key = fingerprint(CAREER_STATS, player=name)
            return key, lambda: self._career_stats(name), None

        return self._resolve(CAREER_STATS, prepare)

    def get_grand_slam_winners(self, year: int, tour: Optional[str] = None) -> QueryOutcome:
        """Champions of the four majors of a year, in calendar order."""
        def prepare():
            season = self._require_year(year)
            tour_code = self._optional_tour(tour)
            key = fingerprint(GRAND_SLAMS, year=season, tour=tour_code)
            return key, lambda: self._grand_slams(season, tour_code), None

        return self._resolve(GRAND_SLAMS, prepare)

    def get_most_successful_players(self, limit: int = 10, tour: Optional[str] = None) -> QueryOutcome:
        """Players ordered by recorded wins; ties broken alphabetically."""
        def prepare():
            size = self._require_limit(limit)
            tour_code = self._optional_tour(tour)
            key = fingerprint(MOST_SUCCESSFUL, limit=size, tour=tour_code)
            return key, lambda: self._most_successful(size, tour_code), None

        return self._resolve(MOST_SUCCESSFUL, prepare)

    def get_current_rankings(self, tour: str = "ATP", limit: int = 10) -> QueryOutcome:
        """Latest synced ranking snapshot for a tour."""
        def prepare():
            tour_code = self._optional_tour(tour) or "ATP"
            size = self._require_limit(limit)
            key = fingerprint(RANKINGS, tour=tour_code, limit=size)
            return key, lambda: self._rankings(tour_code, size), None

        return self._resolve(RANKINGS, prepare)

    def resolve(self, request: StatsQuery) -> QueryOutcome:
        """Dispatch a typed request to the matching operation."""
        query_type = request.query_type
        if query_type == TOURNAMENT_WINNER:
            return self.get_tournament_winner(request.tournament, request.year, request.tour)
        if query_type == HEAD_TO_HEAD:
            return self.get_head_to_head(request.player_a, request.player_b)
        if query_type == CAREER_STATS:
            return self.get_player_career_stats(request.player)
        if query_type == GRAND_SLAMS:
            return self.get_grand_slam_winners(request.year, request.tour)
        if query_type == MOST_SUCCESSFUL:
            limit = 10 if request.limit is None else request.limit
            return self.get_most_successful_players(limit, request.tour)
        if query_type == RANKINGS:
            limit = 10 if request.limit is None else request.limit
            return self.get_current_rankings(request.tour or "ATP", limit)
        return QueryOutcome(INVALID_ARGUMENT, query_type, message=f"Unsupported query type: {query_type}")

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()

    # ========================================================================
    # Cache path
    # ========================================================================

    def _resolve(self, query_type: str, prepare: Callable) -> QueryOutcome:
        try:
            key, compute, present = prepare()
        except InvalidArgument as e:
            return QueryOutcome(INVALID_ARGUMENT, query_type, message=str(e))

        # Syncs run by another process only show up in the store
        self.cache.observe_data_version(self.repo.latest_sync_completed_at())
        generation = self.cache.generation

        entry = self.cache.get(key)
        cached = entry is not None
        if entry is None:
            try:
                data = compute()
            except NotFound as e:
                logger.debug(f"{query_type} not found: {e}")
                return QueryOutcome(NOT_FOUND, query_type, message=NO_DATA_MESSAGE)
            except QueryError as e:
                return QueryOutcome(INVALID_ARGUMENT, query_type, message=str(e))
            entry = self.cache.put(key, data, generation=generation)

        # Callers never get a reference into the cache
        data = copy.deepcopy(entry.result)
        if present is not None:
            data = present(data)
        return QueryOutcome(OK, query_type, data=data, cached=cached, computed_at=entry.computed_at)

    # ========================================================================
    # Validation
    # ========================================================================

    @staticmethod
    def _require_text(value: Any, name: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise InvalidArgument(f"{name} is required")
        return value.strip()

    @staticmethod
    def _require_year(value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidArgument("year must be an integer")
        latest = date.today().year + 1
        if not FIRST_TOURNAMENT_YEAR <= value <= latest:
            raise InvalidArgument(f"year must be between {FIRST_TOURNAMENT_YEAR} and {latest}")
        return value

    @staticmethod
    def _optional_tour(value: Optional[str]) -> Optional[str]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        if not isinstance(value, str) or value.strip().upper() not in SUPPORTED_TOURS:
            raise InvalidArgument(f"tour must be one of {', '.join(SUPPORTED_TOURS)}")
        return value.strip().upper()

    def _require_limit(self, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidArgument("limit must be a positive integer")
        return min(value, self.max_limit)

    # ========================================================================
    # Store queries
    # ========================================================================

    def _tournament_winner(self, name: str, season: int, tour: Optional[str]) -> Dict[str, Any]:
        patterns = TOURNAMENT_ALIASES.get(name, (name,))
        finals = self.repo.find_finals(patterns, season, tour)
        if not finals:
            raise NotFound(f"no final for {name!r} in {season}")

        final = finals[0]
        return {
            "tournament": final.tournament.name,
            "year": season,
            "tour": final.tournament.tour,
            "surface": final.tournament.surface,
            "winner": final.winner.name,
            "runner_up": final.loser.name,
            "score": final.score,
            "match_date": final.match_date.isoformat() if final.match_date else None,
        }

    def _head_to_head(self, first: str, second: str) -> Dict[str, Any]:
        first_ids = self.repo.find_player_ids(first)
        second_ids = self.repo.find_player_ids(second)
        if not first_ids or not second_ids:
            raise NotFound("unknown player")

        matches = self.repo.find_head_to_head(first_ids, second_ids)
        if not matches:
            raise NotFound("players never met")

        first_wins = sum(1 for match in matches if match.winner_id in first_ids)
        return {
            "player_a": self.repo.find_player(first).name,
            "player_b": self.repo.find_player(second).name,
            "player_a_wins": first_wins,
            "player_b_wins": len(matches) - first_wins,
            "total_matches": len(matches),
            "matches": [_match_summary(match) for match in matches],
        }

    @staticmethod
    def _swap_head_to_head(data: Dict[str, Any]) -> Dict[str, Any]:
        data["player_a"], data["player_b"] = data["player_b"], data["player_a"]
        data["player_a_wins"], data["player_b_wins"] = data["player_b_wins"], data["player_a_wins"]
        return data

    def _career_stats(self, name: str) -> Dict[str, Any]:
        player_ids = self.repo.find_player_ids(name)
        if not player_ids:
            raise NotFound("unknown player")

        totals = self.repo.career_aggregates(player_ids)
        matches = totals["wins"] + totals["losses"]
        if not matches:
            raise NotFound("no recorded matches")

        player = self.repo.find_player(name)
        serve_points = totals["serve_points"]
        first_in = totals["first_serves_in"]
        return {
            "player": player.name,
            "country": player.country,
            "matches": matches,
            "wins": totals["wins"],
            "losses": totals["losses"],
            "win_percentage": _pct(totals["wins"], matches),
            "titles": totals["titles"],
            "finals_lost": totals["finals_lost"],
            "service": {
                "aces": totals["aces"],
                "double_faults": totals["double_faults"],
                "serve_points": serve_points,
                "first_serve_in_pct": _pct(first_in, serve_points),
                "first_serve_won_pct": _pct(totals["first_serve_points_won"], first_in),
                "second_serve_won_pct": _pct(totals["second_serve_points_won"], serve_points - first_in),
                "break_points_saved": totals["break_points_saved"],
                "break_points_faced": totals["break_points_faced"],
            },
        }

    def _grand_slams(self, season: int, tour: Optional[str]) -> Dict[str, Any]:
        winners: List[Dict[str, Any]] = []
        for event, patterns in GRAND_SLAM_EVENTS:
            # Most recent final per tour
            per_tour: Dict[str, Match] = {}
            for final in self.repo.find_finals(patterns, season, tour):
                per_tour.setdefault(final.tournament.tour or "", final)

            for tour_code in sorted(per_tour):
                final = per_tour[tour_code]
                winners.append({
                    "event": event,
                    "tournament": final.tournament.name,
                    "tour": final.tournament.tour,
                    "winner": final.winner.name,
                    "runner_up": final.loser.name,
                    "score": final.score,
                })

        return {"year": season, "tour": tour, "winners": winners}

    def _most_successful(self, limit: int, tour: Optional[str]) -> Dict[str, Any]:
        rows = self.repo.win_leaderboard(limit, tour)
        return {
            "tour": tour,
            "players": [
                {"position": index, "player": player.name, "country": player.country, "wins": wins}
                for index, (player, wins) in enumerate(rows, start=1)
            ],
        }

    def _rankings(self, tour: str, limit: int) -> Dict[str, Any]:
        as_of, rows = self.repo.latest_rankings(tour, limit)
        if not rows:
            raise NotFound(f"no {tour} rankings synced")

        return {
            "tour": tour,
            "as_of_date": as_of.isoformat(),
            "rankings": [
                {
                    "rank": ranking.rank,
                    "player": player.name,
                    "country": player.country,
                    "points": ranking.points,
                    "previous_rank": ranking.previous_rank,
                }
                for ranking, player in rows
            ],
        }
