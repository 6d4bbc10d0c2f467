"""Shared pytest fixtures for AskTennis tests."""
import asyncio
import itertools
import os
import sys
from datetime import date
from pathlib import Path
from typing import Dict, Generator, List, Optional

# Settings are read at import time; configure the test environment first
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SYNC_ENABLED"] = "false"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["SPORTRADAR_API_KEY"] = ""
os.environ["LOG_JSON"] = "false"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from asktennis.core.database import init_db
from asktennis.models import Match, Player, Ranking, Tournament
from asktennis.services.cache.query_cache import QueryCache
from asktennis.services.provider.schemas import (
    MatchResultSnapshot,
    RankingSnapshot,
    TournamentSnapshot,
)
from asktennis.services.sync.name_normalizer import normalize, normalize_tournament

ADMIN_TOKEN = "test-admin-token"


# =============================================================================
# Database
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Fresh in-memory database shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Cache
# =============================================================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def query_cache(clock) -> QueryCache:
    return QueryCache(max_entries=50, ttl_seconds=600, clock=clock)


# =============================================================================
# Store seeding
# =============================================================================

class StoreBuilder:
    """Writes canonical rows directly, bypassing the sync engine."""

    def __init__(self, db: Session):
        self.db = db
        self._ids = itertools.count(1)

    def player(self, name: str, tour: str = "ATP", country: Optional[str] = None) -> Player:
        player = self.db.query(Player).filter(Player.name == name).first()
        if player is None:
            player = Player(name=name, normalized_name=normalize(name), tour=tour, country=country)
            self.db.add(player)
            self.db.flush()
        return player

    def tournament(
        self,
        name: str,
        season: int,
        tour: str = "ATP",
        level: Optional[str] = None,
        surface: Optional[str] = None,
    ) -> Tournament:
        tournament_id = f"t:{name}:{season}:{tour}"
        tournament = self.db.get(Tournament, tournament_id)
        if tournament is None:
            tournament = Tournament(
                id=tournament_id,
                name=name,
                normalized_name=normalize_tournament(name),
                season=season,
                tour=tour,
                level=level,
                surface=surface,
            )
            self.db.add(tournament)
            self.db.flush()
        return tournament

    def match(
        self,
        tournament: Tournament,
        winner: str,
        loser: str,
        round: str = "R32",
        match_date: Optional[date] = None,
        score: Optional[str] = None,
        **stats,
    ) -> Match:
        match = Match(
            external_id=f"m:{next(self._ids)}",
            tournament_id=tournament.id,
            round=round,
            winner_id=self.player(winner, tour=tournament.tour).id,
            loser_id=self.player(loser, tour=tournament.tour).id,
            match_date=match_date,
            score=score,
            **stats,
        )
        self.db.add(match)
        self.db.flush()
        return match

    def final(self, name: str, season: int, winner: str, loser: str, tour: str = "ATP", **kwargs) -> Match:
        tournament = self.tournament(name, season, tour=tour, level="grand_slam")
        return self.match(tournament, winner, loser, round="F", **kwargs)

    def ranking(self, name: str, rank: int, points: int, as_of: date, tour: str = "ATP") -> Ranking:
        player = self.player(name, tour=tour)
        ranking = Ranking(player_id=player.id, tour=tour, rank=rank, points=points, as_of_date=as_of)
        self.db.add(ranking)
        self.db.flush()
        return ranking

    def commit(self):
        self.db.commit()


@pytest.fixture
def store(db_session) -> StoreBuilder:
    return StoreBuilder(db_session)


# =============================================================================
# Provider
# =============================================================================

RANKING_DATE = date(2024, 1, 15)


def ranking_snapshots(tour: str = "ATP") -> List[RankingSnapshot]:
    names = {
        "ATP": [("Novak Djokovic", "SRB", "sr:competitor:14882"), ("Carlos Alcaraz", "ESP", "sr:competitor:407573"),
                ("Daniil Medvedev", "RUS", "sr:competitor:163504")],
        "WTA": [("Iga Swiatek", "POL", "sr:competitor:675135"), ("Aryna Sabalenka", "BLR", "sr:competitor:229844")],
    }[tour]
    return [
        RankingSnapshot(
            player_name=name,
            country=country,
            rank=index,
            points=12000 - index * 1000,
            as_of_date=RANKING_DATE,
            tour=tour,
            provider_player_id=provider_id,
        )
        for index, (name, country, provider_id) in enumerate(names, start=1)
    ]


def tournament_snapshots(today: Optional[date] = None) -> List[TournamentSnapshot]:
    today = today or date.today()
    return [
        TournamentSnapshot(
            provider_id="sr:tournament:recent",
            name="Recent Open",
            tour="ATP",
            level="atp_500",
            surface="hardcourt_outdoor",
            start_date=date.fromordinal(today.toordinal() - 9),
            end_date=date.fromordinal(today.toordinal() - 3),
            status="closed",
        ),
        TournamentSnapshot(
            provider_id="sr:tournament:old",
            name="Old Classic",
            tour="ATP",
            start_date=date(2019, 7, 1),
            end_date=date(2019, 7, 14),
            status="closed",
        ),
    ]


def result_snapshots(tournament_id: str = "sr:tournament:recent") -> List[MatchResultSnapshot]:
    return [
        MatchResultSnapshot(
            provider_id="sr:match:1",
            tournament_id=tournament_id,
            winner_name="Novak Djokovic",
            loser_name="Carlos Alcaraz",
            round="F",
            winner_provider_id="sr:competitor:14882",
            loser_provider_id="sr:competitor:407573",
            score="6-4 6-4",
        ),
        MatchResultSnapshot(
            provider_id="sr:match:2",
            tournament_id=tournament_id,
            winner_name="Carlos Alcaraz",
            loser_name="Daniil Medvedev",
            round="SF",
            winner_provider_id="sr:competitor:407573",
            loser_provider_id="sr:competitor:163504",
            score="7-6 6-3",
        ),
    ]


class FakeProvider:
    """
    In-process stand-in for SportradarClient.

    failures maps a call name ('rankings:WTA', 'tournaments', 'results:<id>')
    to a list of exceptions raised on consecutive calls before succeeding.
    """

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.rankings: Dict[str, List[RankingSnapshot]] = {
            "ATP": ranking_snapshots("ATP"),
            "WTA": ranking_snapshots("WTA"),
        }
        self.tournaments: List[TournamentSnapshot] = tournament_snapshots()
        self.results: Dict[str, List[MatchResultSnapshot]] = {"sr:tournament:recent": result_snapshots()}
        self.failures: Dict[str, List[Exception]] = {}
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None

    def is_configured(self) -> bool:
        return self.configured

    async def _call(self, name: str):
        self.calls.append(name)
        if self.gate is not None:
            await self.gate.wait()
        pending = self.failures.get(name)
        if pending:
            raise pending.pop(0)

    async def get_rankings(self, tour: str):
        await self._call(f"rankings:{tour}")
        return list(self.rankings.get(tour, []))

    async def get_tournaments(self):
        await self._call("tournaments")
        return list(self.tournaments)

    async def get_match_results(self, tournament_id: str):
        await self._call(f"results:{tournament_id}")
        return list(self.results.get(tournament_id, []))


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def sync_engine(fake_provider, session_factory, query_cache):
    from asktennis.services.sync.engine import SyncEngine

    return SyncEngine(
        provider=fake_provider,
        session_factory=session_factory,
        cache=query_cache,
        fetch_attempts=2,
        retry_wait_seconds=0,
        interval_seconds=3600,
    )


# =============================================================================
# HTTP
# =============================================================================

@pytest.fixture
def client(db_session, query_cache, sync_engine):
    """TestClient with the database and singletons overridden (lifespan not run)."""
    from fastapi.testclient import TestClient
    from asktennis.main import app
    from asktennis.core.database import get_db

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.query_cache = query_cache
    app.state.sync_engine = sync_engine

    yield TestClient(app)

    app.dependency_overrides.clear()
    app.state.query_cache = None
    app.state.sync_engine = None


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"X-Admin-Token": ADMIN_TOKEN}
