"""SQLAlchemy implementation of the library storage contract."""

import logging
from collections.abc import Sequence
from typing import Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from musicsync.domain.exceptions import StorageUnavailableError
from musicsync.domain.ports import ILibraryStore

from .models import TrackModel

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class SqlAlchemyLibraryStore(ILibraryStore):
    """Library store bound to one AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def insert(self, entity: Any) -> None:
        self.session.add(entity)

    async def delete(self, entity: Any) -> None:
        await self.session.delete(entity)

    # Hey future me - save() is the commit CHECKPOINT. Uniqueness is enforced by the DB
    # constraints, so an IntegrityError shows up here, not at insert(). We roll back and raise
    # StorageUnavailableError; whatever earlier checkpoints committed stays committed.
    async def save(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.exception("Library store commit failed")
            await self.session.rollback()
            raise StorageUnavailableError(f"Storage not available: {e.__class__.__name__}") from e

    async def fetch(
        self,
        model: type[ModelT],
        *criteria: Any,
        order_by: Sequence[Any] = (),
    ) -> list[ModelT]:
        stmt = select(model)
        if criteria:
            stmt = stmt.where(*criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            logger.exception("Library store query failed")
            raise StorageUnavailableError() from e
        return list(result.scalars().all())

    async def tracks_for_album(self, album_name: str, artist_name: str) -> list[TrackModel]:
        """Tracks belonging to an album, matched by album and artist name.

        Matching is case-insensitive and ignores surrounding whitespace. Tracks are
        ordered by disc number, then track number.
        """
        return await self.fetch(
            TrackModel,
            func.lower(TrackModel.album_name) == album_name.strip().lower(),
            func.lower(TrackModel.artist_name) == artist_name.strip().lower(),
            order_by=(
                TrackModel.disc_number.asc().nulls_last(),
                TrackModel.track_number.asc().nulls_last(),
                TrackModel.title,
            ),
        )
