# Hey future me - LibrarySyncOrchestrator is the ONE object that owns sync status!
# Adapters only sync data and raise; the orchestrator decides what a failure means for the
# provider's status, persists completion timestamps and runs dedup after every cycle.
#
# ARCHITECTURE:
# - API routes call sync_all / sync_source / disconnect on the app-wide instance
# - Every run goes through ONE SingleFlightQueue, so two runs never touch storage together
# - Per provider: tracks -> playlists -> albums, each phase in its own session
# - Dedup runs after every cycle, success or not
#
# Failure rules per provider:
# - tracks fail            -> status error, playlists/albums skipped
# - playlists fail         -> error for the local library; logged only for Spotify
#                             (adapter's fatal_playlist_errors flag)
# - albums fail            -> status error
# - a failing provider never stops the next one
"""Sync orchestration across all library providers."""

import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, TypeVar

from musicsync.application.services.deduplication_service import DeduplicationService
from musicsync.application.services.library_cleanup_service import (
    CleanupResult,
    LibraryCleanupService,
)
from musicsync.application.workers.run_queue import SingleFlightQueue
from musicsync.domain.entities import Source, SourceSyncStatus
from musicsync.domain.exceptions import DomainException, SyncError, ValidationError
from musicsync.domain.ports import ISyncStateRepository
from musicsync.domain.value_objects import ensure_utc
from musicsync.infrastructure.observability.logging import set_correlation_id
from musicsync.infrastructure.persistence.models import utc_now

if TYPE_CHECKING:
    from musicsync.application.sources.library_source import LibrarySyncSource, StoreScope

logger = logging.getLogger(__name__)

T = TypeVar("T")

FULL_SYNC_KEY = "full_sync"


def state_key(source: Source) -> str:
    """Persisted sync_state key for a provider."""
    return f"source:{source.value}"


class LibrarySyncOrchestrator:
    """Runs provider syncs one at a time and tracks their status.

    Statuses and timestamps are only ever mutated by this object's coroutines.
    """

    def __init__(
        self,
        sources: "Iterable[LibrarySyncSource]",
        store_scope: "StoreScope",
        state_repository: ISyncStateRepository,
        staleness_threshold_seconds: float = 300.0,
        primary_source: Source = Source.LOCAL_LIBRARY,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sources: dict[Source, "LibrarySyncSource"] = {s.source: s for s in sources}
        self._store_scope = store_scope
        self._state_repository = state_repository
        self._staleness = timedelta(seconds=staleness_threshold_seconds)
        self._primary_source = primary_source
        self._clock = clock

        self._statuses: dict[Source, SourceSyncStatus] = {
            source: SourceSyncStatus.idle() for source in self._sources
        }
        self._last_full_sync_at: datetime | None = None
        self._pending: dict[Source, int] = {}
        self._queue = SingleFlightQueue()
        self.last_merged_count = 0

    # =========================================================================
    # STATUS (read side)
    # =========================================================================

    @property
    def sources(self) -> list[Source]:
        return list(self._sources)

    @property
    def statuses(self) -> dict[Source, SourceSyncStatus]:
        return dict(self._statuses)

    def status(self, source: Source) -> SourceSyncStatus:
        self._require(source)
        return self._statuses[source]

    @property
    def last_synced_at(self) -> datetime | None:
        """When the last full sync cycle finished."""
        return self._last_full_sync_at

    @property
    def is_syncing(self) -> bool:
        return self._queue.is_busy or any(s.is_syncing for s in self._statuses.values())

    @property
    def first_error_message(self) -> str | None:
        """Error of the first failed provider, in registration order."""
        for status in self._statuses.values():
            if status.is_error:
                return status.error_message
        return None

    # =========================================================================
    # STATUS (write side)
    # =========================================================================

    def dismiss_errors(self) -> None:
        """Turn every error status back to idle."""
        for source, status in self._statuses.items():
            if status.is_error:
                self._statuses[source] = SourceSyncStatus.idle()

    def clear_error(self, source: Source) -> None:
        """Clear one provider's error; it shows syncing if a run for it is queued or running."""
        self._require(source)
        if not self._statuses[source].is_error:
            return
        if self._pending.get(source):
            self._statuses[source] = SourceSyncStatus.syncing()
        else:
            self._statuses[source] = SourceSyncStatus.idle()

    def reset_status(self, source: Source) -> None:
        self._require(source)
        self._statuses[source] = SourceSyncStatus.idle()

    # Yo, this restores what a previous process finished. Without it every restart would look like
    # "never synced" and the first sync_all() would re-run every provider regardless of staleness.
    async def load_state(self) -> None:
        """Restore persisted completion timestamps."""
        try:
            stored = await self._state_repository.get_all()
        except SyncError as e:
            logger.warning(f"Could not restore sync state: {e.message}")
            return

        restored = 0
        for source in self._sources:
            timestamp = stored.get(state_key(source))
            if timestamp is None:
                continue
            self._statuses[source] = SourceSyncStatus.completed(ensure_utc(timestamp))
            restored += 1
        full_sync = stored.get(FULL_SYNC_KEY)
        self._last_full_sync_at = ensure_utc(full_sync) if full_sync else None
        logger.info(f"Restored sync state for {restored} providers")

    # =========================================================================
    # RUNS
    # =========================================================================

    async def sync_all(self, force: bool = False) -> dict[Source, SourceSyncStatus]:
        """Sync every connected provider that is stale (or all of them when forced).

        Queued behind any run already in flight. Returns the statuses after the run.
        """
        return await self._enqueue(lambda: self._run_all(force), "sync_all", list(self._sources))

    async def sync_source(self, source: Source) -> SourceSyncStatus:
        """Sync one provider now, ignoring staleness, then dedup."""
        self._require(source)
        return await self._enqueue(
            lambda: self._run_single(source), f"sync_{source.value}", [source]
        )

    async def disconnect(self, source: Source) -> CleanupResult:
        """Delete everything a provider contributed and forget its sync state.

        Raises:
            StorageUnavailableError: If the cleanup could not be committed
        """
        self._require(source)
        return await self._queue.run(
            lambda: self._disconnect(source), f"disconnect_{source.value}"
        )

    async def join(self) -> None:
        """Wait for the run currently queued last."""
        await self._queue.join()

    async def _enqueue(
        self, job: Callable[[], Awaitable[T]], name: str, sources: list[Source]
    ) -> T:
        for source in sources:
            self._pending[source] = self._pending.get(source, 0) + 1
        try:
            return await self._queue.run(job, name)
        finally:
            for source in sources:
                self._pending[source] -= 1

    async def _run_all(self, force: bool) -> dict[Source, SourceSyncStatus]:
        correlation_id = set_correlation_id()
        logger.info(f"Full sync started (force={force}, run={correlation_id})")

        for source, adapter in self._sources.items():
            if not await self._is_connected(adapter):
                logger.info(f"{source.display_name}: not connected, skipping")
                continue
            if not force and not self._is_stale(source):
                logger.info(f"{source.display_name}: synced recently, skipping")
                continue
            await self._run_source(adapter)

        await self._run_dedup()
        await self._record_full_sync()
        return self.statuses

    async def _run_single(self, source: Source) -> SourceSyncStatus:
        set_correlation_id()
        await self._run_source(self._sources[source])
        await self._run_dedup()
        await self._record_full_sync()
        return self._statuses[source]

    async def _run_source(self, adapter: "LibrarySyncSource") -> None:
        source = adapter.source
        self._statuses[source] = SourceSyncStatus.syncing()

        error = await self._run_phases(adapter)
        if error is not None:
            self._statuses[source] = SourceSyncStatus.error(error)
            return

        now = self._clock()
        self._statuses[source] = SourceSyncStatus.completed(now)
        await self._persist(state_key(source), now)

    async def _run_phases(self, adapter: "LibrarySyncSource") -> str | None:
        """Run tracks -> playlists -> albums; return the error message to record, if any."""
        source = adapter.source
        try:
            summary = await adapter.sync_tracks()
        except Exception as e:
            return self._failure(source, "tracks", e)
        logger.info(
            f"{source.display_name}: tracks done "
            f"(processed={summary.processed}, created={summary.tracks_created}, "
            f"updated={summary.tracks_updated}, skipped_unchanged={summary.skipped_unchanged})"
        )

        error: str | None = None
        try:
            await adapter.sync_playlists()
        except Exception as e:
            message = self._failure(source, "playlists", e)
            if adapter.fatal_playlist_errors:
                error = message

        try:
            await adapter.sync_albums()
        except Exception as e:
            message = self._failure(source, "albums", e)
            error = error or message
        return error

    def _failure(self, source: Source, phase: str, error: Exception) -> str:
        if isinstance(error, DomainException):
            logger.warning(f"{source.display_name}: {phase} sync failed: {error.message}")
            return error.message
        logger.exception(f"{source.display_name}: {phase} sync failed unexpectedly")
        return str(error) or type(error).__name__

    async def _run_dedup(self) -> None:
        try:
            async with self._store_scope() as store:
                service = DeduplicationService(store, primary_source=self._primary_source)
                self.last_merged_count = await service.deduplicate()
        except Exception:
            logger.exception("Deduplication pass failed")

    async def _disconnect(self, source: Source) -> CleanupResult:
        async with self._store_scope() as store:
            result = await LibraryCleanupService(store).remove_source(source)
        self._statuses[source] = SourceSyncStatus.idle()
        try:
            await self._state_repository.clear(state_key(source))
        except SyncError as e:
            logger.warning(f"Could not clear sync state for {source.value}: {e.message}")
        return result

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _require(self, source: Source) -> None:
        if source not in self._sources:
            raise ValidationError(f"{source.display_name} is not configured.")

    async def _is_connected(self, adapter: "LibrarySyncSource") -> bool:
        try:
            return await adapter.is_connected()
        except Exception:
            logger.exception(f"{adapter.source.display_name}: connection check failed")
            return False

    # Staleness reads the CURRENT status: only completed(ts) carries a timestamp. A provider in
    # error, or reset/dismissed to idle, is stale right away and gets retried by the next sync_all.
    def _is_stale(self, source: Source) -> bool:
        last = self._statuses[source].last_synced_at
        if last is None:
            return True
        return self._clock() - last >= self._staleness

    async def _record_full_sync(self) -> None:
        now = self._clock()
        self._last_full_sync_at = now
        await self._persist(FULL_SYNC_KEY, now)

    async def _persist(self, key: str, value: datetime) -> None:
        try:
            await self._state_repository.set(key, value)
        except SyncError as e:
            logger.warning(f"Could not persist sync state {key}: {e.message}")


__all__ = ["FULL_SYNC_KEY", "LibrarySyncOrchestrator", "state_key"]
