"""Repository for persisted sync timestamps."""

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from musicsync.domain.exceptions import StorageUnavailableError
from musicsync.domain.ports import ISyncStateRepository
from musicsync.domain.value_objects import ensure_utc

from .database import Database
from .models import SyncStateModel


class SqlAlchemySyncStateRepository(ISyncStateRepository):
    """Sync state rows, one short session per call.

    Each call opens its own session so the orchestrator can persist a timestamp
    right after a provider finishes, independent of the run's library store.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    async def get_all(self) -> dict[str, datetime]:
        try:
            async with self._database.session_scope() as session:
                result = await session.execute(select(SyncStateModel))
                return {
                    row.key: ensure_utc(row.last_synced_at)
                    for row in result.scalars().all()
                }
        except SQLAlchemyError as e:
            raise StorageUnavailableError() from e

    async def set(self, key: str, value: datetime) -> None:
        try:
            async with self._database.session_scope() as session:
                row = await session.get(SyncStateModel, key)
                if row is None:
                    session.add(SyncStateModel(key=key, last_synced_at=value))
                else:
                    row.last_synced_at = value
        except SQLAlchemyError as e:
            raise StorageUnavailableError() from e

    async def clear(self, key: str) -> None:
        try:
            async with self._database.session_scope() as session:
                await session.execute(delete(SyncStateModel).where(SyncStateModel.key == key))
        except SQLAlchemyError as e:
            raise StorageUnavailableError() from e
