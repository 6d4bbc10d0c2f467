"""Tests for the QueryResolver.

Test Strategy:
1. Each operation against a seeded store (ok and not_found paths)
2. Argument validation rejects bad input before the store is touched
3. Cache behavior: second identical call is served from cache, not_found is never cached
4. Head-to-head symmetry and alias handling for the French Open
"""
from datetime import date, datetime
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from asktennis.models import Match, Tournament
from asktennis.repositories import TennisRepository
from asktennis.services.query_resolver import NO_DATA_MESSAGE, QueryResolver, StatsQuery


@pytest.fixture
def resolver(db_session, query_cache) -> QueryResolver:
    return QueryResolver(db_session, query_cache, max_limit=100)


@pytest.fixture
def wimbledon_2019(store):
    store.final(
        "Wimbledon",
        2019,
        "Novak Djokovic",
        "Roger Federer",
        score="7-6 1-6 7-6 4-6 13-12",
        match_date=date(2019, 7, 14),
    )
    store.commit()


class TestTournamentWinner:

    def test_returns_final_winner(self, resolver, wimbledon_2019):
        outcome = resolver.get_tournament_winner("Wimbledon", 2019)

        assert outcome.status == "ok"
        assert outcome.cached is False
        assert outcome.data["winner"] == "Novak Djokovic"
        assert outcome.data["runner_up"] == "Roger Federer"
        assert outcome.data["score"] == "7-6 1-6 7-6 4-6 13-12"
        assert outcome.data["match_date"] == "2019-07-14"

    def test_second_call_is_cached_and_identical(self, resolver, query_cache, wimbledon_2019):
        first = resolver.get_tournament_winner("Wimbledon", 2019)
        second = resolver.get_tournament_winner("Wimbledon", 2019)

        assert second.cached is True
        assert second.data == first.data
        assert second.computed_at == first.computed_at
        assert query_cache.stats()["hits"] == 1

    def test_name_match_is_case_insensitive(self, resolver, wimbledon_2019):
        outcome = resolver.get_tournament_winner("wimbledon", 2019)

        assert outcome.status == "ok"
        assert outcome.data["tournament"] == "Wimbledon"

    def test_case_variants_share_cache_entry(self, resolver, wimbledon_2019):
        resolver.get_tournament_winner("Wimbledon", 2019)

        assert resolver.get_tournament_winner("  WIMBLEDON ", 2019).cached is True

    def test_french_open_aliases_roland_garros(self, resolver, store):
        store.final("Roland Garros", 2019, "Rafael Nadal", "Dominic Thiem")
        store.commit()

        for name in ("French Open", "Roland Garros", "roland-garros"):
            outcome = resolver.get_tournament_winner(name, 2019)
            assert outcome.status == "ok", name
            assert outcome.data["winner"] == "Rafael Nadal"

    def test_accented_tournament_name(self, resolver, store):
        store.final("Düsseldorf Open", 2019, "Alexander Zverev", "Nicolas Jarry")
        store.commit()

        for name in ("Düsseldorf Open", "dusseldorf", "DÜSSELDORF"):
            outcome = resolver.get_tournament_winner(name, 2019)
            assert outcome.status == "ok", name
            assert outcome.data["winner"] == "Alexander Zverev"

    def test_tour_filter(self, resolver, store):
        store.final("Wimbledon", 2019, "Novak Djokovic", "Roger Federer")
        store.final("Wimbledon", 2019, "Simona Halep", "Serena Williams", tour="WTA")
        store.commit()

        outcome = resolver.get_tournament_winner("Wimbledon", 2019, tour="wta")

        assert outcome.data["winner"] == "Simona Halep"
        assert outcome.data["tour"] == "WTA"

    def test_missing_edition_is_not_found_and_not_cached(self, resolver, query_cache, store):
        outcome = resolver.get_tournament_winner("Wimbledon", 2018)

        assert outcome.status == "not_found"
        assert outcome.message == NO_DATA_MESSAGE
        assert outcome.data is None
        assert query_cache.stats()["size"] == 0

        # Data appearing later is picked up on the next call
        store.final("Wimbledon", 2018, "Novak Djokovic", "Kevin Anderson")
        store.commit()

        assert resolver.get_tournament_winner("Wimbledon", 2018).data["winner"] == "Novak Djokovic"

    @pytest.mark.parametrize("name,year", [
        ("", 2019),
        ("   ", 2019),
        (None, 2019),
        ("Wimbledon", 1876),
        ("Wimbledon", date.today().year + 2),
        ("Wimbledon", "2019"),
        ("Wimbledon", True),
    ])
    def test_invalid_arguments(self, resolver, name, year):
        outcome = resolver.get_tournament_winner(name, year)

        assert outcome.status == "invalid_argument"
        assert outcome.message

    def test_invalid_tour(self, resolver):
        assert resolver.get_tournament_winner("Wimbledon", 2019, tour="ITF").status == "invalid_argument"


class TestHeadToHead:

    @pytest.fixture
    def rivalry(self, store):
        event = store.tournament("ATP Finals", 2019)
        store.match(event, "Novak Djokovic", "Roger Federer", match_date=date(2019, 11, 10))
        store.match(event, "Roger Federer", "Novak Djokovic", match_date=date(2019, 11, 14))
        store.match(event, "Novak Djokovic", "Roger Federer", round="F", match_date=date(2019, 11, 17))
        store.match(event, "Rafael Nadal", "Novak Djokovic")
        store.commit()

    def test_counts_wins_for_each_side(self, resolver, rivalry):
        outcome = resolver.get_head_to_head("Novak Djokovic", "Roger Federer")

        assert outcome.status == "ok"
        assert outcome.data["player_a"] == "Novak Djokovic"
        assert outcome.data["player_a_wins"] == 2
        assert outcome.data["player_b_wins"] == 1
        assert outcome.data["total_matches"] == 3
        assert outcome.data["matches"][0]["round"] == "F"

    def test_symmetric(self, resolver, rivalry):
        forward = resolver.get_head_to_head("Novak Djokovic", "Roger Federer")
        reverse = resolver.get_head_to_head("Roger Federer", "Novak Djokovic")

        assert reverse.cached is True
        assert reverse.data["player_a"] == "Roger Federer"
        assert reverse.data["player_a_wins"] == forward.data["player_b_wins"]
        assert reverse.data["player_b_wins"] == forward.data["player_a_wins"]
        assert reverse.data["total_matches"] == forward.data["total_matches"]

    def test_reverse_call_does_not_mutate_cached_entry(self, resolver, rivalry):
        resolver.get_head_to_head("Roger Federer", "Novak Djokovic")

        again = resolver.get_head_to_head("Novak Djokovic", "Roger Federer")

        assert again.data["player_a"] == "Novak Djokovic"
        assert again.data["player_a_wins"] == 2

    def test_accent_and_order_folding(self, resolver, rivalry):
        outcome = resolver.get_head_to_head("Djokovic, Novak", "roger FEDERER")

        assert outcome.status == "ok"
        assert outcome.data["player_a_wins"] == 2

    def test_same_player_is_invalid(self, resolver):
        outcome = resolver.get_head_to_head("Novak Djokovic", "novak  djokovic")

        assert outcome.status == "invalid_argument"

    def test_players_who_never_met(self, resolver, rivalry):
        assert resolver.get_head_to_head("Rafael Nadal", "Roger Federer").status == "not_found"

    def test_unknown_player(self, resolver, rivalry):
        assert resolver.get_head_to_head("Novak Djokovic", "Nobody Known").status == "not_found"


class TestCareerStats:

    def test_aggregates_record_and_service(self, resolver, store):
        wimbledon = store.tournament("Wimbledon", 2019)
        store.match(
            wimbledon, "Novak Djokovic", "Roger Federer", round="F",
            winner_aces=10, winner_double_faults=3, winner_serve_points=100,
            winner_first_serves_in=60, winner_first_serve_points_won=45, winner_second_serve_points_won=20,
        )
        roland_garros = store.tournament("Roland Garros", 2019)
        store.match(
            roland_garros, "Rafael Nadal", "Novak Djokovic", round="SF",
            loser_aces=4, loser_double_faults=1, loser_serve_points=100,
            loser_first_serves_in=40, loser_first_serve_points_won=30, loser_second_serve_points_won=30,
        )
        store.commit()

        outcome = resolver.get_player_career_stats("Novak Djokovic")

        data = outcome.data
        assert outcome.status == "ok"
        assert data["matches"] == 2
        assert data["wins"] == 1
        assert data["losses"] == 1
        assert data["win_percentage"] == 50.0
        assert data["titles"] == 1
        assert data["finals_lost"] == 0
        assert data["service"]["aces"] == 14
        assert data["service"]["double_faults"] == 4
        assert data["service"]["first_serve_in_pct"] == 50.0
        assert data["service"]["first_serve_won_pct"] == 75.0
        assert data["service"]["second_serve_won_pct"] == 50.0

    def test_missing_stats_give_empty_percentages(self, resolver, store):
        event = store.tournament("Qatar Open", 2020)
        store.match(event, "Andy Murray", "Stan Wawrinka")
        store.commit()

        service = resolver.get_player_career_stats("Andy Murray").data["service"]

        assert service["aces"] == 0
        assert service["first_serve_in_pct"] is None

    def test_unknown_player(self, resolver):
        assert resolver.get_player_career_stats("Nobody Known").status == "not_found"

    @pytest.mark.parametrize("name", ["", "!!!", None])
    def test_invalid_name(self, resolver, name):
        assert resolver.get_player_career_stats(name).status == "invalid_argument"


class TestGrandSlams:

    def test_calendar_order_and_one_entry_per_tour(self, resolver, store):
        store.final("US Open", 2019, "Rafael Nadal", "Daniil Medvedev")
        store.final("Wimbledon", 2019, "Simona Halep", "Serena Williams", tour="WTA")
        store.final("Wimbledon", 2019, "Novak Djokovic", "Roger Federer")
        store.final("Roland Garros", 2019, "Rafael Nadal", "Dominic Thiem")
        store.final("Australian Open", 2019, "Novak Djokovic", "Rafael Nadal")
        store.final("Australian Open", 2018, "Roger Federer", "Marin Cilic")
        store.commit()

        outcome = resolver.get_grand_slam_winners(2019)

        assert outcome.status == "ok"
        assert [(w["event"], w["tour"], w["winner"]) for w in outcome.data["winners"]] == [
            ("Australian Open", "ATP", "Novak Djokovic"),
            ("French Open", "ATP", "Rafael Nadal"),
            ("Wimbledon", "ATP", "Novak Djokovic"),
            ("Wimbledon", "WTA", "Simona Halep"),
            ("US Open", "ATP", "Rafael Nadal"),
        ]

    def test_tour_filter(self, resolver, store):
        store.final("Wimbledon", 2019, "Novak Djokovic", "Roger Federer")
        store.final("Wimbledon", 2019, "Simona Halep", "Serena Williams", tour="WTA")
        store.commit()

        winners = resolver.get_grand_slam_winners(2019, tour="WTA").data["winners"]

        assert [w["winner"] for w in winners] == ["Simona Halep"]

    def test_first_year_with_no_data_is_ok_and_empty(self, resolver):
        outcome = resolver.get_grand_slam_winners(1877)

        assert outcome.status == "ok"
        assert outcome.data == {"year": 1877, "tour": None, "winners": []}

    @pytest.mark.parametrize("year", [1876, 0, -5, None, 2019.0])
    def test_invalid_year(self, resolver, year):
        assert resolver.get_grand_slam_winners(year).status == "invalid_argument"


class TestMostSuccessful:

    @pytest.fixture
    def leaderboard(self, store):
        event = store.tournament("Tour Events", 2020)
        for name, wins in [("Cara Seven", 7), ("Bea Ten", 10), ("Eve One", 1), ("Ann Ten", 10), ("Dan Three", 3)]:
            for _ in range(wins):
                store.match(event, name, "Sparring Partner")
        store.commit()

    def test_orders_by_wins_then_name(self, resolver, leaderboard):
        outcome = resolver.get_most_successful_players(limit=5)

        players = outcome.data["players"]
        assert [p["wins"] for p in players] == [10, 10, 7, 3, 1]
        assert [p["player"] for p in players[:2]] == ["Ann Ten", "Bea Ten"]
        assert [p["position"] for p in players] == [1, 2, 3, 4, 5]

    def test_limit(self, resolver, leaderboard):
        assert len(resolver.get_most_successful_players(limit=2).data["players"]) == 2

    def test_limit_is_clamped(self, db_session, query_cache, leaderboard):
        resolver = QueryResolver(db_session, query_cache, max_limit=3)

        outcome = resolver.get_most_successful_players(limit=50)

        assert len(outcome.data["players"]) == 3
        assert query_cache.stats()["keys"] == ["most_successful:limit=3"]

    def test_empty_store_is_ok(self, resolver):
        outcome = resolver.get_most_successful_players()

        assert outcome.status == "ok"
        assert outcome.data["players"] == []

    @pytest.mark.parametrize("limit", [0, -1, True, False, "5", 2.5])
    def test_invalid_limit_never_touches_store(self, query_cache, limit):
        db = MagicMock()
        resolver = QueryResolver(db, query_cache)

        outcome = resolver.get_most_successful_players(limit=limit)

        assert outcome.status == "invalid_argument"
        assert not db.query.called
        assert query_cache.stats()["misses"] == 0


class TestRankings:

    def test_latest_snapshot(self, resolver, store):
        store.ranking("Iga Swiatek", 1, 10000, date(2024, 1, 15), tour="WTA")
        store.ranking("Aryna Sabalenka", 2, 8000, date(2024, 1, 15), tour="WTA")
        store.ranking("Iga Swiatek", 1, 9900, date(2024, 1, 8), tour="WTA")
        store.commit()

        outcome = resolver.get_current_rankings("wta", limit=10)

        assert outcome.status == "ok"
        assert outcome.data["tour"] == "WTA"
        assert outcome.data["as_of_date"] == "2024-01-15"
        assert [(r["rank"], r["player"], r["points"]) for r in outcome.data["rankings"]] == [
            (1, "Iga Swiatek", 10000),
            (2, "Aryna Sabalenka", 8000),
        ]

    def test_no_rankings_synced(self, resolver):
        assert resolver.get_current_rankings("ATP").status == "not_found"

    def test_invalid_tour(self, resolver):
        assert resolver.get_current_rankings("ITF").status == "invalid_argument"


class TestResolve:

    def test_dispatches_typed_request(self, resolver, wimbledon_2019):
        outcome = resolver.resolve(StatsQuery(query_type="tournament_winner", tournament="wimbledon", year=2019))

        assert outcome.query_type == "tournament_winner"
        assert outcome.data["winner"] == "Novak Djokovic"

    def test_defaults_limit(self, resolver):
        outcome = resolver.resolve(StatsQuery(query_type="most_successful"))

        assert outcome.status == "ok"

    def test_missing_fields_are_invalid(self, resolver):
        outcome = resolver.resolve(StatsQuery(query_type="head_to_head", player_a="Novak Djokovic"))

        assert outcome.status == "invalid_argument"

    def test_unknown_query_type_rejected_by_model(self):
        with pytest.raises(ValidationError):
            StatsQuery(query_type="weather")

    def test_callers_cannot_mutate_cache(self, resolver, wimbledon_2019):
        outcome = resolver.get_tournament_winner("Wimbledon", 2019)
        outcome.data["winner"] = "Someone Else"

        assert resolver.get_tournament_winner("Wimbledon", 2019).data["winner"] == "Novak Djokovic"

    def test_to_dict(self, resolver, wimbledon_2019):
        payload = resolver.get_tournament_winner("Wimbledon", 2019).to_dict()

        assert payload["status"] == "ok"
        assert payload["cached"] is False
        assert payload["computed_at"] is not None


def swap_final(session_factory, tournament: str, season: int):
    """Rewrite a final's result from another session, the way a sync would."""
    db = session_factory()
    try:
        final = db.query(Match).join(Tournament).filter(
            Tournament.name == tournament, Tournament.season == season, Match.round == "F"
        ).one()
        final.winner_id, final.loser_id = final.loser_id, final.winner_id
        db.commit()
    finally:
        db.close()


class TestCacheCoherence:
    """The cache never serves results older than the latest committed sync."""

    def test_read_overlapping_invalidation_is_not_cached(
        self, resolver, query_cache, session_factory, wimbledon_2019, monkeypatch
    ):
        read_finals = resolver.repo.find_finals

        def find_finals_then_sync(*args, **kwargs):
            finals = read_finals(*args, **kwargs)
            swap_final(session_factory, "Wimbledon", 2019)
            query_cache.invalidate_all()
            return finals

        monkeypatch.setattr(resolver.repo, "find_finals", find_finals_then_sync)

        first = resolver.get_tournament_winner("Wimbledon", 2019)

        assert first.data["winner"] == "Novak Djokovic"
        assert len(query_cache) == 0

        # A later request gets its own session
        fresh = QueryResolver(session_factory(), query_cache)
        second = fresh.get_tournament_winner("Wimbledon", 2019)

        assert second.cached is False
        assert second.data["winner"] == "Roger Federer"

    def test_sync_from_another_process_invalidates(self, resolver, query_cache, session_factory, wimbledon_2019):
        assert resolver.get_tournament_winner("Wimbledon", 2019).data["winner"] == "Novak Djokovic"
        assert resolver.get_tournament_winner("Wimbledon", 2019).cached is True

        # Standalone runner: commits land in the store, this cache is never told
        swap_final(session_factory, "Wimbledon", 2019)
        db = session_factory()
        TennisRepository(db).record_sync_batch("sportradar", "match_results", datetime.utcnow(), "success")
        db.commit()
        db.close()

        fresh = QueryResolver(session_factory(), query_cache)
        outcome = fresh.get_tournament_winner("Wimbledon", 2019)

        assert outcome.cached is False
        assert outcome.data["winner"] == "Roger Federer"
        assert query_cache.stats()["invalidations"] == 1

    def test_failed_sync_keeps_cache(self, resolver, query_cache, session_factory, wimbledon_2019):
        resolver.get_tournament_winner("Wimbledon", 2019)

        db = session_factory()
        TennisRepository(db).record_sync_batch("sportradar", "tournaments", datetime.utcnow(), "failed")
        db.commit()
        db.close()

        assert resolver.get_tournament_winner("Wimbledon", 2019).cached is True
