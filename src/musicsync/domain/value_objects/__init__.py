"""Value objects and normalization helpers shared by every provider."""

from collections.abc import Sequence
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from musicsync.domain.dtos import ArtworkCandidate

UNKNOWN_TRACK = "Unknown Track"
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"

PLACEHOLDERS = frozenset({UNKNOWN_TRACK, UNKNOWN_ARTIST, UNKNOWN_ALBUM})

# 150px is the list-row artwork size; candidates at least this big on either side are "suitable".
ARTWORK_TARGET_SIZE = 150


def clean_text(value: str | None, placeholder: str) -> str:
    """Trim whitespace and substitute a placeholder for empty strings."""
    cleaned = (value or "").strip()
    return cleaned or placeholder


def clean_optional(value: str | None) -> str | None:
    """Trim whitespace, returning None for empty strings."""
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def is_placeholder(value: str | None) -> bool:
    """True if value is one of the ``Unknown ...`` substitutes."""
    return value in PLACEHOLDERS


# Hey future me, THIS is the metadata identity of a Track! Two records with the same key are the
# same song as far as cross-provider attach is concerned. Lowercase + trim only - no accent folding,
# no "feat." stripping. Making it fuzzier would merge songs the user considers different, and the
# unique constraint on tracks.metadata_key would start rejecting legit rows.
def track_metadata_key(title: str, artist_name: str, album_name: str) -> str:
    """Normalized (title, artist, album) identity key."""
    return "|".join(
        part.strip().lower() for part in (title, artist_name, album_name)
    )


def normalize_isrc(isrc: str | None) -> str:
    """Trimmed, upper-cased ISRC; empty string when missing."""
    return (isrc or "").strip().upper()


def clamp_duration_ms(duration_ms: float | int | None) -> int:
    """Duration in ms, never negative."""
    if duration_ms is None:
        return 0
    return max(0, int(duration_ms))


# Yo, nearest-size match: prefer the SMALLEST candidate that still covers the target on either
# side (no upscaling blur), else fall back to the biggest thing we have. Spotify orders images
# largest-first, the local library in whatever order - so we sort instead of trusting order.
def best_artwork_url(
    candidates: Sequence["ArtworkCandidate"],
    target_size: int = ARTWORK_TARGET_SIZE,
) -> str | None:
    """Pick the best-fit artwork URL from a list of size candidates."""
    usable = [c for c in candidates if c.url]
    if not usable:
        return None

    def size(candidate: "ArtworkCandidate") -> int:
        return max(candidate.width or 0, candidate.height or 0)

    suitable = [c for c in usable if size(c) >= target_size]
    if suitable:
        return min(suitable, key=size).url
    return max(usable, key=size).url


def parse_release_date(value: str | None) -> date | None:
    """Parse ``YYYY-MM-DD``, ``YYYY-MM`` or ``YYYY`` release dates."""
    if not value:
        return None
    text = value.strip()
    for fmt in ("%Y-%m-%d", "%Y-%m", "%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_iso8601(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp with or without fractional seconds.

    Naive timestamps are treated as UTC.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def earliest(*candidates: datetime | None) -> datetime | None:
    """Earliest non-null datetime, or None."""
    present = [ensure_utc(c) for c in candidates if c is not None]
    return min(present) if present else None


# SQLite hands datetimes back without tzinfo. Everything we store is UTC, so attach it before
# comparing, otherwise "can't compare offset-naive and offset-aware datetimes".
def ensure_utc(value: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


__all__ = [
    "ARTWORK_TARGET_SIZE",
    "PLACEHOLDERS",
    "UNKNOWN_ALBUM",
    "UNKNOWN_ARTIST",
    "UNKNOWN_TRACK",
    "best_artwork_url",
    "clamp_duration_ms",
    "clean_optional",
    "clean_text",
    "earliest",
    "ensure_utc",
    "is_placeholder",
    "normalize_isrc",
    "parse_iso8601",
    "parse_release_date",
    "track_metadata_key",
]
