"""Shared stubs and seed helpers for the melody test-suite."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from melody.db import session_scope
from melody.models import Identity, Song


@dataclass(slots=True)
class FrozenClock:
    """Deterministic clock helper used for expiry tests."""

    current: datetime = field(default_factory=lambda: datetime(2024, 1, 1, 12, 0, tzinfo=UTC))

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class StubResponse:
    """Minimal httpx-like response."""

    def __init__(self, status_code: int, payload: Mapping[str, Any] | None = None) -> None:
        self.status_code = status_code
        self._payload = dict(payload or {})

    def json(self) -> Mapping[str, Any]:
        return dict(self._payload)


class StubAsyncClient:
    """Async client capturing outgoing requests for assertions."""

    def __init__(self, factory: "StubHttpClientFactory") -> None:
        self._factory = factory

    async def __aenter__(self) -> "StubAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        return None

    def _next(self, method: str, url: str, **kwargs: Any) -> StubResponse:
        call = {"method": method, "url": url}
        call.update({key: dict(value) for key, value in kwargs.items() if value is not None})
        self._factory.calls.append(call)
        if not self._factory.responses:
            raise AssertionError(f"Unexpected HTTP {method} {url} without a stubbed response")
        outcome = self._factory.responses.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def post(
        self,
        url: str,
        *,
        data: Mapping[str, Any] | None = None,
        headers: Mapping[str, Any] | None = None,
    ) -> StubResponse:
        return self._next("POST", url, data=data, headers=headers)

    async def get(self, url: str, *, headers: Mapping[str, Any] | None = None) -> StubResponse:
        return self._next("GET", url, headers=headers)


class StubHttpClientFactory:
    """Factory producing :class:`StubAsyncClient` instances sharing one queue."""

    def __init__(self) -> None:
        self.responses: deque[StubResponse | Exception] = deque()
        self.calls: list[dict[str, Any]] = []

    def enqueue(self, status_code: int, payload: Mapping[str, Any] | None = None) -> None:
        self.responses.append(StubResponse(status_code, payload))

    def enqueue_error(self, message: str = "connection refused") -> None:
        self.responses.append(httpx.ConnectError(message))

    def calls_to(self, url: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["url"] == url]

    def __call__(self) -> StubAsyncClient:
        return StubAsyncClient(self)


def track_item(spotify_id: str | None, name: str = "Song", *, artists: Iterable[str] = ("Artist",)) -> dict[str, Any]:
    """Build a saved-track/playlist item shaped like the Spotify payload."""

    if spotify_id is None:
        return {"track": None}
    return {
        "track": {
            "id": spotify_id,
            "name": name,
            "artists": [{"name": artist} for artist in artists],
            "album": {"name": f"{name} LP", "images": [{"url": f"https://img/{spotify_id}"}]},
            "preview_url": None,
        }
    }


class FakeCatalogClient:
    """In-memory replacement for :class:`melody.core.spotify_client.SpotifyCatalogClient`."""

    def __init__(
        self,
        *,
        saved: list[dict[str, Any]] | None = None,
        playlists: dict[str, list[dict[str, Any]]] | None = None,
        owned_playlists: list[dict[str, Any]] | None = None,
    ) -> None:
        self.saved = list(saved or [])
        self.playlists = dict(playlists or {})
        self.owned_playlists = list(owned_playlists or [])
        self.tokens: list[str] = []

    def factory(self, token: str) -> "FakeCatalogClient":
        self.tokens.append(token)
        return self

    def get_saved_tracks(self, max_items: int = 500) -> list[dict[str, Any]]:
        return self.saved[:max_items]

    def get_playlist_tracks(self, playlist_id: str, max_items: int = 500) -> list[dict[str, Any]]:
        return self.playlists.get(playlist_id, [])[:max_items]

    def get_user_playlists(self, limit: int = 50) -> list[dict[str, Any]]:
        return self.owned_playlists[:limit]


def create_identity(
    spotify_id: str = "spotify-user",
    *,
    display_name: str | None = "Listener",
    access_token: str | None = "access-1",
    refresh_token: str | None = "refresh-1",
    expires_at: datetime | None = None,
) -> str:
    with session_scope() as session:
        record = Identity(
            spotify_id=spotify_id,
            display_name=display_name,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expires_at=expires_at,
        )
        session.add(record)
        session.flush()
        return record.id


def add_songs(identity_id: str, count: int, *, rating: float = 1500.0) -> list[str]:
    ids: list[str] = []
    with session_scope() as session:
        for index in range(count):
            song = Song(
                identity_id=identity_id,
                spotify_id=f"{identity_id[:8]}-track-{index}",
                name=f"Song {index}",
                artist="Artist",
                rating=rating,
                matches_played=0,
            )
            session.add(song)
            session.flush()
            ids.append(song.id)
    return ids


def load_song(song_id: str) -> Song | None:
    with session_scope() as session:
        return session.get(Song, song_id)
