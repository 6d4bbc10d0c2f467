"""Tests for the Sportradar client using httpx.MockTransport."""
import json
from datetime import date

import httpx
import pytest

from asktennis.core.config import ProviderConfig
from asktennis.core.exceptions import ProviderError, ProviderTimeout, ProviderUnavailable
from asktennis.services.provider.sportradar_client import SportradarClient, parse_date

BASE_URL = "https://api.sportradar.com/tennis/trial/v3/en"

RANKINGS_PAYLOAD = {
    "generated_at": "2024-01-15T06:00:00+00:00",
    "rankings": [
        {
            "rank": 2,
            "points": 8855,
            "previous_ranking": 2,
            "ranking_movement": 0,
            "player": {"id": "sr:competitor:407573", "name": "Alcaraz, Carlos", "country_code": "ESP"},
        },
        {
            "rank": 1,
            "points": 11245,
            "previous_ranking": 1,
            "ranking_movement": 0,
            "player": {"id": "sr:competitor:14882", "name": "Djokovic, Novak", "country_code": "SRB"},
        },
        # No name: skipped
        {"rank": 3, "points": 100, "player": {"id": "sr:competitor:0"}},
    ],
}

TOURNAMENTS_PAYLOAD = {
    "tournaments": [
        {
            "id": "sr:tournament:2555",
            "name": "Wimbledon Men Singles",
            "category": {"name": "ATP"},
            "level": "grand_slam",
            "surface": "grass",
            "start_date": "2019-07-01",
            "end_date": "2019-07-14",
            "status": "closed",
        },
        {"id": "sr:tournament:2556", "name": "Wimbledon Women Singles", "gender": "women",
         "start_date": "2019-07-01", "end_date": "2019-07-13"},
        {"id": "sr:tournament:9", "name": ""},
    ]
}

RESULTS_PAYLOAD = {
    "tournament": {"id": "sr:tournament:2555"},
    "results": [
        {
            "id": "sr:match:18528",
            "player1": {"id": "sr:competitor:14882", "name": "Djokovic, Novak"},
            "player2": {"id": "sr:competitor:14342", "name": "Federer, Roger"},
            "winner": {"id": "sr:competitor:14882", "name": "Djokovic, Novak"},
            "score": "7-6 1-6 7-6 4-6 13-12",
            "duration": 297,
            "scheduled": "2019-07-14T13:00:00+00:00",
            "round": "final",
            "status": "closed",
            "statistics": [
                {"player_id": "sr:competitor:14882", "aces": 10, "double_faults": 3, "serve_points": 204},
                {"player_id": "sr:competitor:14342", "aces": 25, "double_faults": 6, "serve_points": 214},
            ],
        },
        {
            "id": "sr:match:18529",
            "player1": {"id": "sr:competitor:1", "name": "Nadal, Rafael"},
            "player2": {"id": "sr:competitor:2", "name": "Murray, Andy"},
            "round": "semifinal",
            "status": "not_started",
        },
    ],
}


def make_client(handler, api_key: str = "real-key", timeout: float = 5.0) -> SportradarClient:
    config = ProviderConfig(api_key=api_key, base_url=BASE_URL, timeout_seconds=timeout)
    return SportradarClient(config, transport=httpx.MockTransport(handler))


def json_handler(payload, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(200, json=payload)
    return handler


class TestConfiguration:

    @pytest.mark.parametrize("key,expected", [
        ("real-key", True),
        ("", False),
        ("   ", False),
        ("your_sportradar_api_key_here", False),
    ])
    def test_is_configured(self, key, expected):
        assert make_client(json_handler({}), api_key=key).is_configured() is expected

    @pytest.mark.asyncio
    async def test_unconfigured_client_makes_no_request(self):
        seen = []
        client = make_client(json_handler({}, seen), api_key="")

        with pytest.raises(ProviderUnavailable):
            await client.get_rankings("ATP")
        assert seen == []


class TestRankings:

    @pytest.mark.asyncio
    async def test_parses_and_orders_by_rank(self):
        seen = []
        client = make_client(json_handler(RANKINGS_PAYLOAD, seen))

        rankings = await client.get_rankings("atp")
        await client.close()

        assert [r.player_name for r in rankings] == ["Novak Djokovic", "Carlos Alcaraz"]
        top = rankings[0]
        assert top.rank == 1
        assert top.points == 11245
        assert top.country == "SRB"
        assert top.tour == "ATP"
        assert top.provider_player_id == "sr:competitor:14882"
        assert top.as_of_date == date(2024, 1, 15)

        request = seen[0]
        assert request.url.path.endswith("/rankings.json")
        assert request.url.params["type"] == "atp"
        assert request.headers["x-api-key"] == "real-key"

    @pytest.mark.asyncio
    async def test_rank_falls_back_to_position(self):
        payload = {"rankings": [
            {"points": 10, "player": {"name": "Swiatek, Iga"}},
            {"points": 5, "player": {"name": "Sabalenka, Aryna"}},
        ]}
        client = make_client(json_handler(payload))

        rankings = await client.get_rankings("WTA")

        assert [(r.rank, r.player_name) for r in rankings] == [(1, "Iga Swiatek"), (2, "Aryna Sabalenka")]
        assert rankings[0].as_of_date == date.today()

    @pytest.mark.asyncio
    async def test_unsupported_tour(self):
        client = make_client(json_handler(RANKINGS_PAYLOAD))
        with pytest.raises(ValueError):
            await client.get_rankings("ITF")


class TestTournamentsAndResults:

    @pytest.mark.asyncio
    async def test_tournaments(self):
        client = make_client(json_handler(TOURNAMENTS_PAYLOAD))

        tournaments = await client.get_tournaments()

        assert [t.provider_id for t in tournaments] == ["sr:tournament:2555", "sr:tournament:2556"]
        men, women = tournaments
        assert men.tour == "ATP"
        assert men.season == 2019
        assert men.is_completed
        assert women.tour == "WTA"
        assert women.end_date == date(2019, 7, 13)

    @pytest.mark.asyncio
    async def test_results_skip_unplayed_matches(self):
        seen = []
        client = make_client(json_handler(RESULTS_PAYLOAD, seen))

        results = await client.get_match_results("sr:tournament:2555")

        assert seen[0].url.path.endswith("/tournaments/sr:tournament:2555/results.json")
        assert len(results) == 1
        final = results[0]
        assert final.winner_name == "Novak Djokovic"
        assert final.loser_name == "Roger Federer"
        assert final.loser_provider_id == "sr:competitor:14342"
        assert final.round == "F"
        assert final.match_date == date(2019, 7, 14)
        assert final.duration_minutes == 297
        assert final.winner_stats.aces == 10
        assert final.loser_stats.aces == 25
        assert final.loser_stats.first_serves_in is None


class TestFailures:

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ProviderTimeout):
            await make_client(handler).get_tournaments()

    @pytest.mark.asyncio
    async def test_http_error_carries_status(self):
        client = make_client(lambda request: httpx.Response(403, json={"message": "Forbidden"}))

        with pytest.raises(ProviderError) as exc_info:
            await client.get_tournaments()

        assert exc_info.value.status_code == 403
        assert not isinstance(exc_info.value, ProviderTimeout)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderError):
            await make_client(handler).get_rankings("ATP")

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = make_client(lambda request: httpx.Response(200, content=b"<html>oops</html>"))

        with pytest.raises(ProviderError):
            await client.get_rankings("ATP")

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        client = make_client(lambda request: httpx.Response(200, content=json.dumps([1, 2]).encode()))

        with pytest.raises(ProviderError):
            await client.get_tournaments()


@pytest.mark.parametrize("value,expected", [
    ("2019-07-14", date(2019, 7, 14)),
    ("2019-07-14T13:00:00+00:00", date(2019, 7, 14)),
    ("not a date", None),
    (None, None),
])
def test_parse_date(value, expected):
    assert parse_date(value) == expected
