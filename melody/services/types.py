"""Plain data rows returned by the service layer.

Services hand these out instead of ORM instances so callers never touch a
session-bound object after its unit of work has closed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from melody.models import MatchRecord, Song


@dataclass(slots=True, frozen=True)
class SongRow:
    id: str
    spotify_id: str
    name: str
    artist: str
    album: str | None
    album_art: str | None
    preview_url: str | None
    rating: float
    matches_played: int
    created_at: datetime | None

    @classmethod
    def from_model(cls, record: Song) -> "SongRow":
        return cls(
            id=record.id,
            spotify_id=record.spotify_id,
            name=record.name,
            artist=record.artist,
            album=record.album,
            album_art=record.album_art,
            preview_url=record.preview_url,
            rating=float(record.rating),
            matches_played=int(record.matches_played or 0),
            created_at=record.created_at,
        )


@dataclass(slots=True, frozen=True)
class MatchRow:
    id: int
    winner_id: str
    loser_id: str
    winner_rating_before: float
    loser_rating_before: float
    winner_rating_after: float
    loser_rating_after: float
    created_at: datetime | None

    @classmethod
    def from_model(cls, record: MatchRecord) -> "MatchRow":
        return cls(
            id=record.id,
            winner_id=record.winner_id,
            loser_id=record.loser_id,
            winner_rating_before=float(record.winner_rating_before),
            loser_rating_before=float(record.loser_rating_before),
            winner_rating_after=float(record.winner_rating_after),
            loser_rating_after=float(record.loser_rating_after),
            created_at=record.created_at,
        )


@dataclass(slots=True, frozen=True)
class OutcomeResult:
    winner: SongRow
    loser: SongRow
    winner_delta: float
    loser_delta: float
    match_id: int


@dataclass(slots=True, frozen=True)
class ImportResult:
    imported: int
    total: int


@dataclass(slots=True, frozen=True)
class PlaylistRow:
    id: str
    name: str
    image: str | None
    track_count: int


@dataclass(slots=True, frozen=True)
class IdentitySummary:
    id: str
    display_name: str | None
    created_at: datetime | None
    song_count: int
    match_count: int


@dataclass(slots=True, frozen=True)
class HistoryReport:
    match_count: int
    mismatches: dict[str, tuple[float, float]]

    @property
    def consistent(self) -> bool:
        return not self.mismatches


class CredentialProvider(Protocol):
    """Anything able to hand out a valid external access token for an identity."""

    async def get_valid_credential(self, identity_id: str) -> str:
        """Return a currently valid access token or raise ``CredentialUnavailableError``."""


__all__ = [
    "CredentialProvider",
    "HistoryReport",
    "IdentitySummary",
    "ImportResult",
    "MatchRow",
    "OutcomeResult",
    "PlaylistRow",
    "SongRow",
]
