"""Application services."""

from musicsync.application.services.deduplication_service import DeduplicationService
from musicsync.application.services.library_cleanup_service import (
    CleanupResult,
    LibraryCleanupService,
)
from musicsync.application.services.library_reconciler import (
    LibraryReconciler,
    ReconcileCounters,
    TrackIndex,
)
from musicsync.application.services.library_sync_orchestrator import (
    FULL_SYNC_KEY,
    LibrarySyncOrchestrator,
    state_key,
)

__all__ = [
    "FULL_SYNC_KEY",
    "CleanupResult",
    "DeduplicationService",
    "LibraryCleanupService",
    "LibraryReconciler",
    "LibrarySyncOrchestrator",
    "ReconcileCounters",
    "TrackIndex",
    "state_key",
]
