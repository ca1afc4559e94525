"""Spotify catalog client wrapper used for library imports."""

from __future__ import annotations

from collections.abc import Callable
import time
from typing import Any, Dict, List, Optional

import spotipy
from spotipy.exceptions import SpotifyException

from melody.logging import get_logger

logger = get_logger(__name__)

__all__ = ["SpotifyCatalogClient"]

_RETRYABLE_STATUS = {429, 502, 503}


class SpotifyCatalogClient:
    """Thin wrapper around Spotipy acting on behalf of a single user.

    The caller supplies an already valid access token; refreshing it is the
    responsibility of :class:`melody.services.credential_service.CredentialRefresher`.
    """

    def __init__(
        self,
        access_token: str,
        *,
        client: Optional[spotipy.Spotify] = None,
        max_retries: int = 3,
        requests_timeout: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._max_retries = max(1, max_retries)
        self._sleep = sleep
        self._client = client or spotipy.Spotify(
            auth=access_token,
            requests_timeout=requests_timeout,
            retries=0,
        )

    def _execute(self, func, *args, **kwargs):
        backoff = 0.5
        for attempt in range(1, self._max_retries + 1):
            try:
                return func(*args, **kwargs)
            except SpotifyException as exc:
                status = getattr(exc, "http_status", None)
                if status not in _RETRYABLE_STATUS or attempt == self._max_retries:
                    logger.error(
                        "Spotify API request failed",
                        extra={"event": "spotify.api.failed", "status": status},
                    )
                    raise
                logger.warning("Retrying Spotify API request due to status %s", status)
                self._sleep(backoff)
                backoff *= 2
        raise RuntimeError("unreachable")  # pragma: no cover

    def _collect(self, first_page: Dict[str, Any] | None, max_items: int) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = first_page
        while page and len(items) < max_items:
            items.extend(item for item in page.get("items") or [] if isinstance(item, dict))
            if len(items) >= max_items or not page.get("next"):
                break
            page = self._execute(self._client.next, page)
        return items[:max_items]

    def get_saved_tracks(self, max_items: int = 500) -> List[Dict[str, Any]]:
        first = self._execute(self._client.current_user_saved_tracks, limit=50)
        return self._collect(first, max_items)

    def get_playlist_tracks(self, playlist_id: str, max_items: int = 500) -> List[Dict[str, Any]]:
        first = self._execute(self._client.playlist_items, playlist_id, limit=100)
        return self._collect(first, max_items)

    def get_user_playlists(self, limit: int = 50) -> List[Dict[str, Any]]:
        page = self._execute(self._client.current_user_playlists, limit=limit)
        return [item for item in (page or {}).get("items") or [] if isinstance(item, dict)]
