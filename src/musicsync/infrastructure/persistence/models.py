"""SQLAlchemy ORM models for musicsync."""

import uuid
from datetime import UTC, date, datetime

import sqlalchemy as sa
from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from musicsync.domain.entities import Source


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


# Hey future me - this is THE storage boundary for the provider tag. Python code only ever sees
# Source members; the column stores the member VALUE ("local_library", "spotify"), not the member
# name. native_enum=False keeps it a plain VARCHAR + CHECK so SQLite and PostgreSQL behave the same.
SourceType = sa.Enum(
    Source,
    name="source",
    native_enum=False,
    length=20,
    values_callable=lambda enum: [member.value for member in enum],
    validate_strings=True,
)


# AsyncAttrs gives every model `await obj.awaitable_attrs.<relationship>` for the rare case where
# a relationship is not loaded yet (e.g. an object flushed mid-run by autoflush).
class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Listen up, TrackModel is the CANONICAL song - one row per (title, artist, album) identity, shared
# by every provider through SourceTrackModel rows. metadata_key is that identity, normalized, and
# UNIQUE: the reconciler keeps it in sync whenever it renames a Track. Never write
# title/artist/album without updating metadata_key or the next sync creates a duplicate!
# All relationships are lazy="selectin" because we run on AsyncSession - a plain lazy load outside
# the greenlet raises MissingGreenlet. Eager-loading keeps attribute access safe everywhere.
class TrackModel(Base):
    """Canonical track, shared across providers."""

    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    artist_name: Mapped[str] = mapped_column(String(512), nullable=False)
    album_name: Mapped[str] = mapped_column(String(512), nullable=False)
    metadata_key: Mapped[str] = mapped_column(
        String(1600), nullable=False, unique=True, index=True
    )
    album_artist_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    artwork_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # Provider that supplied artwork_url (primary-provider artwork wins merges)
    artwork_source: Mapped[Source | None] = mapped_column(SourceType, nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    genre_names: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    release_date: Mapped[date | None] = mapped_column(sa.Date(), nullable=True)
    is_explicit: Mapped[bool] = mapped_column(
        sa.Boolean(), nullable=False, default=False, server_default="0"
    )
    isrc: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    disc_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    track_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    composer_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    added_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    last_synced_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )

    source_tracks: Mapped[list["SourceTrackModel"]] = relationship(
        "SourceTrackModel",
        back_populates="track",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="SourceTrackModel.created_at",
    )
    playlist_entries: Mapped[list["PlaylistTrackModel"]] = relationship(
        "PlaylistTrackModel",
        back_populates="track",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def has_source(self, source: Source) -> bool:
        """Whether any provider attachment of this track comes from source."""
        return any(st.source is source for st in self.source_tracks)

    __table_args__ = (Index("ix_tracks_album_artist", "album_name", "artist_name"),)


class SourceTrackModel(Base):
    """A provider's attachment record to a canonical track."""

    __tablename__ = "source_tracks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    source: Mapped[Source] = mapped_column(SourceType, nullable=False, index=True)
    source_id: Mapped[str] = mapped_column(String(255), nullable=False)
    track_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=True, index=True
    )
    added_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    # Local library only
    play_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_played_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Spotify only
    popularity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    preview_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    artwork_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    last_synced_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )

    track: Mapped["TrackModel | None"] = relationship(
        "TrackModel", back_populates="source_tracks", lazy="selectin"
    )

    __table_args__ = (
        sa.UniqueConstraint("source", "source_id", name="uq_source_tracks_source_id"),
    )


class PlaylistModel(Base):
    """Playlist header from one provider. Owns its ordered entries."""

    __tablename__ = "playlists"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    source: Mapped[Source] = mapped_column(SourceType, nullable=False, index=True)
    source_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    artwork_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    track_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    owner_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_public: Mapped[bool | None] = mapped_column(sa.Boolean(), nullable=True)
    last_synced_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )

    entries: Mapped[list["PlaylistTrackModel"]] = relationship(
        "PlaylistTrackModel",
        back_populates="playlist",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PlaylistTrackModel.position",
    )

    __table_args__ = (
        sa.UniqueConstraint("source", "source_id", name="uq_playlists_source_id"),
    )


# Hey future me - own surrogate id, NOT (playlist_id, track_id) like a classic association table:
# the same song can sit in a playlist twice. Also no unique constraint on (playlist_id, position)!
# Re-sync deletes all entries and inserts fresh ones in the same flush, and the unit of work emits
# the INSERTs before the DELETEs - a unique position would blow up on every re-sync.
class PlaylistTrackModel(Base):
    """Ordered playlist slot pointing at a canonical track."""

    __tablename__ = "playlist_tracks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    playlist_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("playlists.id", ondelete="CASCADE"), nullable=False
    )
    track_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    added_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )

    playlist: Mapped["PlaylistModel"] = relationship(
        "PlaylistModel", back_populates="entries", lazy="selectin"
    )
    track: Mapped["TrackModel"] = relationship(
        "TrackModel", back_populates="playlist_entries", lazy="selectin"
    )

    __table_args__ = (Index("ix_playlist_tracks_position", "playlist_id", "position"),)


# Yo, AlbumModel has NO foreign key to tracks on purpose. Albums are associated with tracks at
# query time by (album name, artist name) - see SqlAlchemyLibraryStore.tracks_for_album().
class AlbumModel(Base):
    """Saved album from one provider."""

    __tablename__ = "albums"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    source: Mapped[Source] = mapped_column(SourceType, nullable=False, index=True)
    source_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    artist_name: Mapped[str] = mapped_column(String(512), nullable=False)
    artwork_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    release_date: Mapped[date | None] = mapped_column(sa.Date(), nullable=True)
    track_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    genre_names: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    last_synced_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        sa.UniqueConstraint("source", "source_id", name="uq_albums_source_id"),
        Index("ix_albums_name_artist", "name", "artist_name"),
    )


class SyncStateModel(Base):
    """Persisted sync timestamps.

    Keys are ``source:<tag>`` for per-provider completion and ``full_sync`` for the
    last full run.
    """

    __tablename__ = "sync_state"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_synced_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )


__all__ = [
    "AlbumModel",
    "Base",
    "PlaylistModel",
    "PlaylistTrackModel",
    "SourceTrackModel",
    "SyncStateModel",
    "TrackModel",
    "utc_now",
]
