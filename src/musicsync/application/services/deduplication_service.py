"""Cross-source deduplication of canonical tracks by ISRC."""

import logging
from collections import defaultdict

from musicsync.domain.entities import Source
from musicsync.domain.ports import ILibraryStore
from musicsync.domain.value_objects import earliest, normalize_isrc
from musicsync.infrastructure.observability.logger_template import log_operation
from musicsync.infrastructure.persistence.models import TrackModel

logger = logging.getLogger(__name__)


# Hey future me - the reconciler matches by title|artist|album, which misses the SAME recording
# spelled differently across providers ("Song (Remastered)" vs "Song - Remastered"). This pass
# catches those via ISRC after every sync cycle. The two identity systems can disagree (same ISRC
# on differently titled releases) - we keep both on purpose, ISRC wins here.
#
# Order matters: tracks are walked oldest first (created_at, then id) so the survivor choice is
# stable between runs. Once merged, a group collapses to one track and the next run finds nothing.
class DeduplicationService:
    """Merges tracks that share an ISRC into one survivor."""

    def __init__(self, store: ILibraryStore, primary_source: Source = Source.LOCAL_LIBRARY) -> None:
        self._store = store
        self._primary_source = primary_source

    async def deduplicate(self) -> int:
        """Merge ISRC duplicates and commit.

        Returns:
            Number of tracks merged away (deleted)
        """
        async with log_operation(logger, "dedup"):
            tracks = await self._store.fetch(
                TrackModel, order_by=(TrackModel.created_at, TrackModel.id)
            )

            groups: dict[str, list[TrackModel]] = defaultdict(list)
            for track in tracks:
                key = normalize_isrc(track.isrc)
                if key:
                    groups[key].append(track)

            duplicates: list[TrackModel] = []
            for isrc, members in groups.items():
                if len(members) < 2:
                    continue
                duplicates.extend(self._merge_group(isrc, members))

            # Two checkpoints: the re-pointed SourceTracks/entries are committed first, so deleting
            # the merged-away tracks cannot cascade into rows they no longer own.
            if duplicates:
                await self._store.save()
                for duplicate in duplicates:
                    await self._store.delete(duplicate)
                await self._store.save()
                logger.info(f"Dedup: merged {len(duplicates)} duplicate tracks")
        return len(duplicates)

    def _merge_group(self, isrc: str, members: list[TrackModel]) -> list[TrackModel]:
        survivor = next(
            (m for m in members if m.has_source(self._primary_source)),
            members[0],
        )
        others = [m for m in members if m is not survivor]

        # Canonical fields are picked BEFORE re-pointing - has_source() must still see
        # which member each SourceTrack came from.
        artwork_donor = next(
            (m for m in members if m.artwork_url and m.has_source(self._primary_source)),
            None,
        ) or next((m for m in members if m.artwork_url), None)
        if artwork_donor is not None:
            survivor.artwork_url = artwork_donor.artwork_url
            survivor.artwork_source = artwork_donor.artwork_source

        survivor.added_at = earliest(*(m.added_at for m in members))
        survivor.genre_names = sorted({g for m in members for g in (m.genre_names or [])})
        for field in ("album_artist_name", "composer_name", "release_date"):
            if getattr(survivor, field) is None:
                value = next(
                    (getattr(m, field) for m in others if getattr(m, field) is not None),
                    None,
                )
                setattr(survivor, field, value)

        for duplicate in others:
            for source_track in list(duplicate.source_tracks):
                source_track.track = survivor
            for entry in list(duplicate.playlist_entries):
                entry.track = survivor

        logger.debug(
            f"Dedup: ISRC {isrc} kept track {survivor.id}, merged {len(others)} duplicates"
        )
        return others
