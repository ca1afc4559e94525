"""Import songs from the Spotify catalog into an identity's library."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from melody.config import RatingConfig, SpotifyConfig
from melody.core.spotify_client import SpotifyCatalogClient
from melody.db import session_scope
from melody.logging import get_logger, log_event
from melody.models import Song
from melody.services.types import CredentialProvider, ImportResult, PlaylistRow

__all__ = ["CatalogClientFactory", "LibraryService", "TrackCandidate", "track_from_item"]

logger = get_logger(__name__)

CatalogClientFactory = Callable[[str], SpotifyCatalogClient]


@dataclass(slots=True, frozen=True)
class TrackCandidate:
    spotify_id: str
    name: str
    artist: str
    album: str | None
    album_art: str | None
    preview_url: str | None


def _first_image_url(images: Any) -> str | None:
    if not isinstance(images, list) or not images:
        return None
    first = images[0]
    if isinstance(first, Mapping):
        url = first.get("url")
        return str(url) if url else None
    return None


def track_from_item(item: Mapping[str, Any]) -> TrackCandidate | None:
    """Convert a saved-track or playlist item into a candidate, or ``None`` to skip it."""

    track = item.get("track")
    if not isinstance(track, Mapping) or not track.get("id"):
        return None
    artists = track.get("artists") or []
    artist = ", ".join(
        str(entry.get("name"))
        for entry in artists
        if isinstance(entry, Mapping) and entry.get("name")
    )
    album = track.get("album") if isinstance(track.get("album"), Mapping) else {}
    return TrackCandidate(
        spotify_id=str(track["id"]),
        name=str(track.get("name") or ""),
        artist=artist,
        album=album.get("name") or None,
        album_art=_first_image_url(album.get("images")),
        preview_url=track.get("preview_url") or None,
    )


class LibraryService:
    def __init__(
        self,
        *,
        spotify: SpotifyConfig,
        rating: RatingConfig,
        credentials: CredentialProvider,
        catalog_factory: CatalogClientFactory | None = None,
    ) -> None:
        self._spotify = spotify
        self._rating = rating
        self._credentials = credentials
        self._catalog_factory = catalog_factory or (
            lambda token: SpotifyCatalogClient(token, requests_timeout=spotify.http_timeout)
        )

    async def _catalog(self, identity_id: str) -> SpotifyCatalogClient:
        token = await self._credentials.get_valid_credential(identity_id)
        return self._catalog_factory(token)

    def store_tracks(self, identity_id: str, items: Iterable[Mapping[str, Any]]) -> ImportResult:
        """Insert unseen tracks for ``identity_id``; already imported ids are ignored."""

        items = list(items)
        candidates: dict[str, TrackCandidate] = {}
        for item in items:
            candidate = track_from_item(item)
            if candidate is not None:
                candidates.setdefault(candidate.spotify_id, candidate)

        imported = 0
        with session_scope() as session:
            existing = set(
                session.execute(
                    select(Song.spotify_id).where(
                        Song.identity_id == identity_id,
                        Song.spotify_id.in_(list(candidates)),
                    )
                )
                .scalars()
                .all()
            )
            for spotify_id, candidate in candidates.items():
                if spotify_id in existing:
                    continue
                try:
                    with session.begin_nested():
                        session.add(
                            Song(
                                identity_id=identity_id,
                                spotify_id=candidate.spotify_id,
                                name=candidate.name,
                                artist=candidate.artist,
                                album=candidate.album,
                                album_art=candidate.album_art,
                                preview_url=candidate.preview_url,
                                rating=self._rating.initial_rating,
                                matches_played=0,
                            )
                        )
                except IntegrityError:
                    # A concurrent import stored the same track first.
                    continue
                imported += 1

        return ImportResult(imported=imported, total=len(items))

    async def _import(
        self,
        identity_id: str,
        fetch: Callable[[SpotifyCatalogClient], list[dict[str, Any]]],
        *,
        source: str,
    ) -> ImportResult:
        catalog = await self._catalog(identity_id)
        items = await asyncio.to_thread(fetch, catalog)
        result = await asyncio.to_thread(self.store_tracks, identity_id, items)
        log_event(
            logger,
            "library.imported",
            identity_id=identity_id,
            source=source,
            imported=result.imported,
            total=result.total,
        )
        return result

    async def import_liked(self, identity_id: str) -> ImportResult:
        limit = self._spotify.import_max_tracks
        return await self._import(
            identity_id,
            lambda catalog: catalog.get_saved_tracks(max_items=limit),
            source="liked",
        )

    async def import_playlist(self, identity_id: str, playlist_id: str) -> ImportResult:
        limit = self._spotify.import_max_tracks
        return await self._import(
            identity_id,
            lambda catalog: catalog.get_playlist_tracks(playlist_id, max_items=limit),
            source="playlist",
        )

    async def list_playlists(self, identity_id: str) -> list[PlaylistRow]:
        catalog = await self._catalog(identity_id)
        payload = await asyncio.to_thread(catalog.get_user_playlists, 50)
        playlists: list[PlaylistRow] = []
        for entry in payload:
            if not entry.get("id"):
                continue
            tracks = entry.get("tracks") if isinstance(entry.get("tracks"), Mapping) else {}
            playlists.append(
                PlaylistRow(
                    id=str(entry["id"]),
                    name=str(entry.get("name") or ""),
                    image=_first_image_url(entry.get("images")),
                    track_count=int(tracks.get("total") or 0),
                )
            )
        return playlists
