"""Sync engine: pulls provider snapshots and upserts them into the store.

A sync run processes ingestion batches in a fixed order:
- rankings_atp, rankings_wta: one batch per supported tour
- tournaments: the provider's tournament list
- results:<tournament id>: finished matches of each recently completed
  tournament (bounded by lookback days and a max tournament count)

Each batch fetches with retries and then applies its upserts in a single
transaction, so a batch commits fully or not at all. A failing batch
fails the run but does not undo batches that already committed.

At most one run is in flight per process. A second request while a run is
active returns immediately with status "already_running".
"""
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from asktennis.core.exceptions import ProviderError, ProviderUnavailable, StoreWriteError
from asktennis.core.logging import correlation_scope, get_logger
from asktennis.core.metrics import record_sync_run, record_upserts, sync_batches_failed_total
from asktennis.repositories import TennisRepository
from asktennis.services.cache.query_cache import QueryCache
from asktennis.services.provider.schemas import SUPPORTED_TOURS
from asktennis.services.provider.sportradar_client import SportradarClient

logger = get_logger(__name__)

SOURCE = "sportradar"

# Sync result statuses
SUCCESS = "success"
FAILED = "failed"
SKIPPED = "skipped"
ALREADY_RUNNING = "already_running"

ENTITIES = ("players", "rankings", "tournaments", "matches")


@dataclass(frozen=True)
class SyncStatus:
    """Read-only copy of the engine state."""

    is_running: bool
    provider_available: bool
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    last_result: Optional[Dict[str, Any]] = None
    next_sync_in_seconds: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("last_sync_at", "last_attempt_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass
class BatchOutcome:
    name: str
    status: str
    counts: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass
class SyncResult:
    status: str
    trigger: str
    message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    counts: Dict[str, int] = field(default_factory=lambda: dict.fromkeys(ENTITIES, 0))
    batches: List[BatchOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    @property
    def committed_batches(self) -> int:
        return sum(1 for batch in self.batches if batch.status == SUCCESS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "trigger": self.trigger,
            "message": self.message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "counts": dict(self.counts),
            "batches": [asdict(batch) for batch in self.batches],
            "errors": list(self.errors),
        }


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and not isinstance(exc, ProviderUnavailable)


class SyncEngine:
    """
    Owns the sync state machine (Idle -> Running -> Idle) and the SyncStatus.

    Args:
        provider: Sportradar client (or any object with the same interface)
        session_factory: Callable returning a new SQLAlchemy Session
        cache: Query cache to invalidate when new data commits
        fetch_attempts: Attempts per provider fetch (>= 1)
        retry_wait_seconds: Base of the exponential wait between attempts
        interval_seconds: Background interval, used for next_sync_in_seconds
        results_lookback_days: How far back a tournament may have ended to have results fetched
        results_max_tournaments: Cap on result batches per run
    """

    def __init__(
        self,
        provider: SportradarClient,
        session_factory: Callable[[], Session],
        cache: QueryCache,
        fetch_attempts: int = 3,
        retry_wait_seconds: float = 2.0,
        interval_seconds: Optional[int] = None,
        results_lookback_days: int = 14,
        results_max_tournaments: int = 10,
    ):
        self.provider = provider
        self.session_factory = session_factory
        self.cache = cache
        self.fetch_attempts = max(1, fetch_attempts)
        self.retry_wait_seconds = retry_wait_seconds
        self.interval_seconds = interval_seconds
        self.results_lookback_days = results_lookback_days
        self.results_max_tournaments = results_max_tournaments

        # Held for the whole run; only ever acquired without blocking
        self._run_lock = threading.Lock()
        # Guards the status fields below
        self._state_lock = threading.Lock()
        self._is_running = False
        self._provider_available = provider.is_configured()
        self._last_sync_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._last_attempt_at: Optional[datetime] = None
        self._last_result: Optional[Dict[str, Any]] = None

    # ========================================================================
    # Public API
    # ========================================================================

    async def force_sync(self, trigger: str = "manual") -> SyncResult:
        """
        Run one sync now.

        Returns immediately with status "skipped" when the provider is not
        configured and "already_running" when another run is in flight.
        Never raises for provider or store failures; those come back as a
        "failed" result and in SyncStatus.last_error.
        """
        if not self.provider.is_configured():
            with self._state_lock:
                self._provider_available = False
            logger.info("Sync skipped: Sportradar API key not configured")
            record_sync_run(trigger, SKIPPED)
            return SyncResult(status=SKIPPED, trigger=trigger, message="Sportradar API key not configured")

        if not self._run_lock.acquire(blocking=False):
            logger.info(f"Sync ({trigger}) skipped: sync already in progress")
            record_sync_run(trigger, ALREADY_RUNNING)
            return SyncResult(status=ALREADY_RUNNING, trigger=trigger, message="sync already in progress")

        started_at = datetime.utcnow()
        with self._state_lock:
            self._is_running = True
            self._provider_available = True
            self._last_attempt_at = started_at

        result = SyncResult(status=FAILED, trigger=trigger, started_at=started_at)
        try:
            with correlation_scope(f"sync-{uuid.uuid4().hex[:12]}"):
                logger.info(f"Sync started (trigger={trigger})")
                try:
                    await self._run_batches(result)
                except Exception as e:
                    logger.exception(f"Sync aborted by unexpected error: {e}")
                    result.errors.append(f"unexpected error: {e}")
                self._finish(result)
        finally:
            with self._state_lock:
                self._is_running = False
            self._run_lock.release()

        return result

    async def run_background_sync(self) -> SyncResult:
        """Scheduled entry point; skipped (not queued) while a run is active."""
        return await self.force_sync(trigger="background")

    def is_running(self) -> bool:
        with self._state_lock:
            return self._is_running

    def get_sync_status(self) -> SyncStatus:
        """Copy of the current state; never waits for an in-flight run."""
        with self._state_lock:
            last_sync_at = self._last_sync_at
            status = SyncStatus(
                is_running=self._is_running,
                provider_available=self._provider_available,
                last_sync_at=last_sync_at,
                last_error=self._last_error,
                last_attempt_at=self._last_attempt_at,
                last_result=dict(self._last_result) if self._last_result else None,
                next_sync_in_seconds=self._next_sync_in(last_sync_at),
            )
        return status

    # ========================================================================
    # Run
    # ========================================================================

    async def _run_batches(self, result: SyncResult):
        for tour in SUPPORTED_TOURS:
            await self._run_batch(
                result,
                f"rankings_{tour.lower()}",
                lambda tour=tour: self.provider.get_rankings(tour),
                self._apply_rankings,
            )

        await self._run_batch(result, "tournaments", self.provider.get_tournaments, self._apply_tournaments)

        for tournament_id in self._recent_tournament_ids():
            await self._run_batch(
                result,
                f"results:{tournament_id}",
                lambda tid=tournament_id: self.provider.get_match_results(tid),
                self._apply_results,
            )

    async def _run_batch(self, result: SyncResult, name: str, fetch, apply) -> None:
        batch_started = datetime.utcnow()
        try:
            snapshots = await self._fetch_with_retry(fetch)
            counts = self._apply_batch(name, apply, snapshots)
        except (ProviderError, StoreWriteError) as e:
            logger.error(f"Batch {name} failed: {e}")
            sync_batches_failed_total.labels(batch_kind=name.split(":")[0]).inc()
            result.batches.append(BatchOutcome(name=name, status=FAILED, error=str(e)))
            result.errors.append(f"{name}: {e}")
            self._record_batch(name, batch_started, FAILED, error=str(e))
            return

        for entity, count in counts.items():
            result.counts[entity] = result.counts.get(entity, 0) + count
        record_upserts(counts)
        result.batches.append(BatchOutcome(name=name, status=SUCCESS, counts=counts))
        self._record_batch(name, batch_started, SUCCESS, records=sum(counts.values()))
        logger.info(f"Batch {name} committed", extra={"counts": counts})

    async def _fetch_with_retry(self, fetch):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.fetch_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=60),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retrying provider fetch (attempt {attempt.retry_state.attempt_number})")
                return await fetch()

    def _apply_batch(self, name: str, apply, snapshots) -> Dict[str, int]:
        """Apply one batch in its own session; commit or roll back as a unit."""
        db = self.session_factory()
        try:
            counts = apply(TennisRepository(db), snapshots)
            db.commit()
            return counts
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreWriteError(f"store write failed: {e}", batch=name) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _finish(self, result: SyncResult):
        result.finished_at = datetime.utcnow()
        result.status = FAILED if result.errors else SUCCESS

        if result.committed_batches:
            self.cache.invalidate_all()

        with self._state_lock:
            if result.status == SUCCESS:
                self._last_sync_at = result.finished_at
                self._last_error = None
            else:
                self._last_error = "; ".join(result.errors)
            self._last_result = result.to_dict()

        record_sync_run(result.trigger, result.status, result.duration_seconds)
        if result.status == SUCCESS:
            logger.info(f"Sync completed in {result.duration_seconds:.2f}s", extra={"counts": result.counts})
        else:
            logger.error(f"Sync failed: {'; '.join(result.errors)}")

    # ========================================================================
    # Batch appliers
    # ========================================================================

    @staticmethod
    def _apply_rankings(repo: TennisRepository, snapshots) -> Dict[str, int]:
        counts = {"players": 0, "rankings": 0}
        for snapshot in snapshots:
            player, _ = repo.upsert_player(
                snapshot.player_name,
                country=snapshot.country,
                tour=snapshot.tour,
                provider_id=snapshot.provider_player_id,
                current_ranking=snapshot.rank,
            )
            repo.upsert_ranking(player, snapshot)
            counts["players"] += 1
            counts["rankings"] += 1
        return counts

    @staticmethod
    def _apply_tournaments(repo: TennisRepository, snapshots) -> Dict[str, int]:
        for snapshot in snapshots:
            repo.upsert_tournament(snapshot)
        return {"tournaments": len(snapshots)}

    @staticmethod
    def _apply_results(repo: TennisRepository, snapshots) -> Dict[str, int]:
        counts = {"players": 0, "matches": 0}
        for snapshot in snapshots:
            winner, _ = repo.upsert_player(snapshot.winner_name, provider_id=snapshot.winner_provider_id)
            loser, _ = repo.upsert_player(snapshot.loser_name, provider_id=snapshot.loser_provider_id)
            repo.upsert_match(snapshot, winner, loser)
            counts["players"] += 2
            counts["matches"] += 1
        return counts

    # ========================================================================
    # Helpers
    # ========================================================================

    def _recent_tournament_ids(self) -> List[str]:
        today = date.today()
        db = self.session_factory()
        try:
            tournaments = TennisRepository(db).find_recently_completed_tournaments(
                since=today - timedelta(days=self.results_lookback_days),
                until=today,
                limit=self.results_max_tournaments,
            )
            return [tournament.id for tournament in tournaments]
        finally:
            db.close()

    def _record_batch(self, name: str, started_at: datetime, status: str, records: int = 0, error: str = None):
        db = self.session_factory()
        try:
            TennisRepository(db).record_sync_batch(
                SOURCE, name, started_at, status, records_processed=records, error_message=error
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"Could not record sync metadata for {name}: {e}")
        finally:
            db.close()

    def _next_sync_in(self, last_sync_at: Optional[datetime]) -> Optional[int]:
        if not self.interval_seconds or last_sync_at is None:
            return None
        elapsed = (datetime.utcnow() - last_sync_at).total_seconds()
        return max(0, int(self.interval_seconds - elapsed))
