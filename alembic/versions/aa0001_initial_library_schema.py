"""initial library schema

Revision ID: aa0001
Revises:
Create Date: 2026-01-12 10:00:00.000000

Hey future me - THE MERGED LIBRARY!

tracks          canonical songs, one per normalized (title, artist, album) = metadata_key
source_tracks   one row per provider record, points at its track (unique per source+source_id)
playlists       playlist headers per provider, own their playlist_tracks
playlist_tracks ordered slots, fully replaced on every playlist re-sync
albums          saved albums per provider, NO FK to tracks (matched by name at query time)
sync_state      last completion timestamps (source:<tag>, full_sync)

Provider columns store the Source enum VALUE ("local_library", "spotify") as VARCHAR(20).
"""

import logging

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "aa0001"
down_revision = None
branch_labels = None
depends_on = None

SOURCE = sa.Enum(
    "local_library",
    "spotify",
    name="source",
    native_enum=False,
    length=20,
)


def upgrade() -> None:
    """Create all library tables (idempotent - skips if tracks exists)."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)

    if "tracks" in inspector.get_table_names():
        logging.info("Table tracks already exists - skipping initial schema")
        return

    op.create_table(
        "tracks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("artist_name", sa.String(512), nullable=False),
        sa.Column("album_name", sa.String(512), nullable=False),
        sa.Column("metadata_key", sa.String(1600), nullable=False),
        sa.Column("album_artist_name", sa.String(512), nullable=True),
        sa.Column("artwork_url", sa.String(1024), nullable=True),
        sa.Column("artwork_source", SOURCE, nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=False),
        sa.Column("genre_names", sa.JSON(), nullable=False),
        sa.Column("release_date", sa.Date(), nullable=True),
        sa.Column("is_explicit", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("isrc", sa.String(32), nullable=True),
        sa.Column("disc_number", sa.Integer(), nullable=True),
        sa.Column("track_number", sa.Integer(), nullable=True),
        sa.Column("composer_name", sa.String(512), nullable=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_tracks_metadata_key", "tracks", ["metadata_key"], unique=True)
    op.create_index("ix_tracks_isrc", "tracks", ["isrc"])
    op.create_index("ix_tracks_album_artist", "tracks", ["album_name", "artist_name"])

    op.create_table(
        "source_tracks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source", SOURCE, nullable=False),
        sa.Column("source_id", sa.String(255), nullable=False),
        sa.Column(
            "track_id",
            sa.String(36),
            sa.ForeignKey("tracks.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("play_count", sa.Integer(), nullable=True),
        sa.Column("last_played_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("popularity", sa.Integer(), nullable=True),
        sa.Column("preview_url", sa.String(1024), nullable=True),
        sa.Column("artwork_url", sa.String(1024), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        # SQLite can't ADD CONSTRAINT later - unique constraints go inline
        sa.UniqueConstraint("source", "source_id", name="uq_source_tracks_source_id"),
    )
    op.create_index("ix_source_tracks_source", "source_tracks", ["source"])
    op.create_index("ix_source_tracks_track_id", "source_tracks", ["track_id"])

    op.create_table(
        "playlists",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source", SOURCE, nullable=False),
        sa.Column("source_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("artwork_url", sa.String(1024), nullable=True),
        sa.Column("track_count", sa.Integer(), nullable=False),
        sa.Column("owner_name", sa.String(255), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("source", "source_id", name="uq_playlists_source_id"),
    )
    op.create_index("ix_playlists_source", "playlists", ["source"])

    op.create_table(
        "playlist_tracks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "playlist_id",
            sa.String(36),
            sa.ForeignKey("playlists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "track_id",
            sa.String(36),
            sa.ForeignKey("tracks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_playlist_tracks_track_id", "playlist_tracks", ["track_id"])
    op.create_index(
        "ix_playlist_tracks_position", "playlist_tracks", ["playlist_id", "position"]
    )

    op.create_table(
        "albums",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("source", SOURCE, nullable=False),
        sa.Column("source_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("artist_name", sa.String(512), nullable=False),
        sa.Column("artwork_url", sa.String(1024), nullable=True),
        sa.Column("release_date", sa.Date(), nullable=True),
        sa.Column("track_count", sa.Integer(), nullable=False),
        sa.Column("genre_names", sa.JSON(), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("source", "source_id", name="uq_albums_source_id"),
    )
    op.create_index("ix_albums_source", "albums", ["source"])
    op.create_index("ix_albums_name_artist", "albums", ["name", "artist_name"])

    op.create_table(
        "sync_state",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    """Drop all library tables, children first."""
    op.drop_table("sync_state")
    op.drop_index("ix_albums_name_artist", table_name="albums")
    op.drop_index("ix_albums_source", table_name="albums")
    op.drop_table("albums")
    op.drop_index("ix_playlist_tracks_position", table_name="playlist_tracks")
    op.drop_index("ix_playlist_tracks_track_id", table_name="playlist_tracks")
    op.drop_table("playlist_tracks")
    op.drop_index("ix_playlists_source", table_name="playlists")
    op.drop_table("playlists")
    op.drop_index("ix_source_tracks_track_id", table_name="source_tracks")
    op.drop_index("ix_source_tracks_source", table_name="source_tracks")
    op.drop_table("source_tracks")
    op.drop_index("ix_tracks_album_artist", table_name="tracks")
    op.drop_index("ix_tracks_isrc", table_name="tracks")
    op.drop_index("ix_tracks_metadata_key", table_name="tracks")
    op.drop_table("tracks")
