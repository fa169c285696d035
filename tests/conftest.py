"""Shared fixtures: in-memory database and fake provider ports."""

from collections.abc import AsyncGenerator

import pytest
from fakes import (
    FakeCredentials,
    FakeLocalLibrary,
    FakeSpotifyClient,
    InMemorySyncStateRepository,
)

from musicsync.config.settings import DatabaseSettings, Settings
from musicsync.infrastructure.persistence import Database


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at an in-memory SQLite database."""
    return Settings(database=DatabaseSettings(url="sqlite+aiosqlite://"))


@pytest.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """Fresh in-memory database with all tables created."""
    db = Database(settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def fake_library() -> FakeLocalLibrary:
    return FakeLocalLibrary()


@pytest.fixture
def fake_spotify() -> FakeSpotifyClient:
    return FakeSpotifyClient()


@pytest.fixture
def fake_credentials() -> FakeCredentials:
    return FakeCredentials()


@pytest.fixture
def state_repository() -> InMemorySyncStateRepository:
    return InMemorySyncStateRepository()
