"""Database models for melody."""

from __future__ import annotations

from datetime import UTC, datetime
import uuid

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from melody.db import Base

DEFAULT_RATING = 1500.0


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp for ORM defaults."""

    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


def as_utc(value: datetime | None) -> datetime | None:
    """Interpret naive datetimes read back from SQLite as UTC."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Identity(Base):
    """A user authenticated against the external music account."""

    __tablename__ = "identities"

    id = Column(String(36), primary_key=True, default=_new_id)
    spotify_id = Column(String(128), unique=True, nullable=False)
    display_name = Column(String(512), nullable=True)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )


class Song(Base):
    __tablename__ = "songs"

    id = Column(String(36), primary_key=True, default=_new_id)
    identity_id = Column(String(36), ForeignKey("identities.id"), nullable=False, index=True)
    spotify_id = Column(String(128), nullable=False)
    name = Column(String(1024), nullable=False)
    artist = Column(String(1024), nullable=False)
    album = Column(String(1024), nullable=True)
    album_art = Column(String(2048), nullable=True)
    preview_url = Column(String(2048), nullable=True)
    rating = Column(Float, nullable=False, default=DEFAULT_RATING)
    matches_played = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("identity_id", "spotify_id", name="uq_songs_identity_spotify"),
        Index("ix_songs_identity_rating", "identity_id", "rating"),
    )


class MatchRecord(Base):
    """Append-only ledger entry documenting one reported outcome."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    identity_id = Column(String(36), ForeignKey("identities.id"), nullable=False, index=True)
    winner_id = Column(String(36), ForeignKey("songs.id"), nullable=False)
    loser_id = Column(String(36), ForeignKey("songs.id"), nullable=False)
    winner_rating_before = Column(Float, nullable=False)
    loser_rating_before = Column(Float, nullable=False)
    winner_rating_after = Column(Float, nullable=False)
    loser_rating_after = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


__all__ = ["DEFAULT_RATING", "Identity", "MatchRecord", "Song", "as_utc"]
