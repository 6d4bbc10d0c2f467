"""
Sportradar Tennis API client.

Fetch-and-parse adapter only: it turns Sportradar JSON into immutable
snapshots and maps transport failures onto the provider error taxonomy.
Retries belong to the sync engine, so every call here is a single attempt
bounded by the configured timeout.

Endpoints used:
- /rankings.json?type={atp|wta}
- /tournaments.json
- /tournaments/{id}/results.json
"""
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from asktennis.core.config import ProviderConfig
from asktennis.core.exceptions import ProviderError, ProviderTimeout, ProviderUnavailable
from asktennis.core.logging import get_logger
from asktennis.core.metrics import record_provider_request
from asktennis.services.provider.schemas import (
    SUPPORTED_TOURS,
    MatchResultSnapshot,
    RankingSnapshot,
    ServiceStats,
    TournamentSnapshot,
    canonical_round,
)
from asktennis.services.sync.name_normalizer import display_name

logger = get_logger(__name__)

API_KEY_HEADER = "x-api-key"

_STAT_FIELDS = (
    "aces",
    "double_faults",
    "serve_points",
    "first_serves_in",
    "first_serve_points_won",
    "second_serve_points_won",
    "break_points_saved",
    "break_points_faced",
)


def parse_date(value: Any) -> Optional[date]:
    """Parse 'YYYY-MM-DD' or an ISO timestamp; None when missing or invalid."""
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class SportradarClient:
    """
    Async client for the Sportradar Tennis v3 API.

    The client never inspects the environment: whether it may talk to the
    provider is decided by the ProviderConfig it was built with.
    """

    def __init__(
        self,
        config: ProviderConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            config: Resolved provider settings (key, base URL, timeout)
            transport: Optional httpx transport, used by tests to mock the API
        """
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if not config.available:
            logger.warning("Sportradar API key not configured. Live data sync will be disabled.")

    def is_configured(self) -> bool:
        """True iff a real API key is configured."""
        return self.config.available

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                headers=self._get_headers(),
                transport=self._transport,
            )
        return self._client

    def _get_headers(self) -> Dict[str, str]:
        return {
            API_KEY_HEADER: self.config.api_key,
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, endpoint: str, label: str, params: Optional[Dict] = None) -> Dict:
        """
        Perform one GET and decode the JSON body.

        Raises:
            ProviderUnavailable: No API key configured
            ProviderTimeout: No answer within the configured timeout
            ProviderError: Transport failure, non-2xx status or non-JSON body
        """
        if not self.is_configured():
            raise ProviderUnavailable("Sportradar API key not configured", endpoint=endpoint)

        client = await self._get_client()
        logger.info(f"Fetching from Sportradar: {endpoint}")

        try:
            response = await client.get(endpoint, params=params)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            record_provider_request(label, "timeout")
            raise ProviderTimeout(
                f"Sportradar request to {endpoint} timed out after {self.config.timeout_seconds}s",
                endpoint=endpoint,
            ) from e
        except httpx.HTTPStatusError as e:
            record_provider_request(label, "http_error")
            raise ProviderError(
                f"Sportradar returned HTTP {e.response.status_code} for {endpoint}",
                status_code=e.response.status_code,
                endpoint=endpoint,
            ) from e
        except httpx.RequestError as e:
            record_provider_request(label, "transport_error")
            raise ProviderError(f"Sportradar request to {endpoint} failed: {e}", endpoint=endpoint) from e

        try:
            payload = response.json()
        except ValueError as e:
            record_provider_request(label, "invalid_payload")
            raise ProviderError(f"Sportradar returned a non-JSON body for {endpoint}", endpoint=endpoint) from e

        if not isinstance(payload, dict):
            record_provider_request(label, "invalid_payload")
            raise ProviderError(f"Unexpected payload shape from {endpoint}", endpoint=endpoint)

        record_provider_request(label, "success")
        return payload

    # Rankings

    async def get_rankings(self, tour: str) -> List[RankingSnapshot]:
        """
        Fetch the current singles ranking for a tour, ordered by rank.

        Args:
            tour: 'ATP' or 'WTA'
        """
        tour = tour.upper()
        if tour not in SUPPORTED_TOURS:
            raise ValueError(f"Unsupported tour: {tour}. Must be one of: {list(SUPPORTED_TOURS)}")

        payload = await self._request("/rankings.json", "rankings", params={"type": tour.lower()})
        snapshots = self._parse_rankings(payload, tour)
        logger.info(f"{tour} rankings: {len(snapshots)} players")
        return snapshots

    def _parse_rankings(self, payload: Dict, tour: str) -> List[RankingSnapshot]:
        as_of = (
            parse_date(payload.get("ranking_date"))
            or parse_date(payload.get("generated_at"))
            or date.today()
        )

        snapshots = []
        for index, row in enumerate(payload.get("rankings") or []):
            player = row.get("player") or {}
            try:
                snapshots.append(RankingSnapshot(
                    player_name=display_name(player.get("name") or ""),
                    country=player.get("country_code"),
                    rank=_as_int(row.get("rank") or row.get("ranking")) or index + 1,
                    points=_as_int(row.get("points")) or 0,
                    as_of_date=as_of,
                    tour=tour,
                    provider_player_id=player.get("id"),
                    previous_rank=_as_int(row.get("previous_ranking")),
                    movement=_as_int(row.get("ranking_movement")) or 0,
                ))
            except ValueError as e:
                logger.warning(f"Skipping malformed {tour} ranking row {index}: {e}")

        snapshots.sort(key=lambda s: s.rank)
        return snapshots

    # Tournaments

    async def get_tournaments(self) -> List[TournamentSnapshot]:
        """Fetch the provider's current tournament list."""
        payload = await self._request("/tournaments.json", "tournaments")

        snapshots = []
        for row in payload.get("tournaments") or []:
            try:
                snapshots.append(TournamentSnapshot(
                    provider_id=row.get("id"),
                    name=(row.get("name") or "").strip(),
                    tour=self._tour_of(row),
                    level=row.get("level"),
                    surface=row.get("surface"),
                    start_date=parse_date(row.get("start_date")),
                    end_date=parse_date(row.get("end_date")),
                    status=row.get("status"),
                ))
            except ValueError as e:
                logger.warning(f"Skipping malformed tournament {row.get('id')}: {e}")

        logger.info(f"Tournaments: {len(snapshots)}")
        return snapshots

    @staticmethod
    def _tour_of(row: Dict) -> Optional[str]:
        for candidate in ((row.get("category") or {}).get("name"), row.get("tour")):
            if candidate and candidate.upper() in SUPPORTED_TOURS:
                return candidate.upper()
        gender = (row.get("gender") or "").lower()
        if gender == "men":
            return "ATP"
        if gender == "women":
            return "WTA"
        return None

    # Match results

    async def get_match_results(self, tournament_id: str) -> List[MatchResultSnapshot]:
        """Fetch finished matches for one tournament."""
        payload = await self._request(f"/tournaments/{tournament_id}/results.json", "results")
        tournament = (payload.get("tournament") or {}).get("id") or tournament_id

        snapshots = []
        for row in payload.get("results") or []:
            snapshot = self._parse_result(row, tournament)
            if snapshot is not None:
                snapshots.append(snapshot)

        logger.info(f"Tournament {tournament_id}: {len(snapshots)} finished matches")
        return snapshots

    def _parse_result(self, row: Dict, tournament_id: str) -> Optional[MatchResultSnapshot]:
        winner = row.get("winner") or {}
        players = [row.get("player1") or {}, row.get("player2") or {}]
        if not winner.get("id") and not winner.get("name"):
            # Not played yet, walkover without result, etc.
            return None

        def is_winner(player: Dict) -> bool:
            if winner.get("id") and player.get("id"):
                return player["id"] == winner["id"]
            return player.get("name") == winner.get("name")

        losers = [p for p in players if p and not is_winner(p)]
        if len(losers) != 1:
            logger.warning(f"Skipping match {row.get('id')}: cannot tell the loser apart")
            return None
        loser = losers[0]

        stats = {
            str(entry.get("player_id")): entry
            for entry in (row.get("statistics") or [])
            if isinstance(entry, dict)
        }

        try:
            return MatchResultSnapshot(
                provider_id=row.get("id"),
                tournament_id=tournament_id,
                winner_name=display_name(winner.get("name") or ""),
                loser_name=display_name(loser.get("name") or ""),
                round=canonical_round(row.get("round")),
                winner_provider_id=winner.get("id"),
                loser_provider_id=loser.get("id"),
                score=row.get("score"),
                match_date=parse_date(row.get("scheduled")),
                duration_minutes=_as_int(row.get("duration")),
                winner_stats=self._parse_stats(stats.get(str(winner.get("id")))),
                loser_stats=self._parse_stats(stats.get(str(loser.get("id")))),
            )
        except ValueError as e:
            logger.warning(f"Skipping malformed match {row.get('id')}: {e}")
            return None

    @staticmethod
    def _parse_stats(entry: Optional[Dict]) -> Optional[ServiceStats]:
        if not entry:
            return None
        return ServiceStats(**{field: _as_int(entry.get(field)) for field in _STAT_FIELDS})
