"""Library endpoints: ranked listing, imports, playlists and reset."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from melody.dependencies import (
    CurrentIdentity,
    get_library_service,
    get_ranking_service,
    require_identity,
)
from melody.logging import get_logger
from melody.schemas import ImportResponse, PlaylistEntry, ResetResponse, SongEntry
from melody.services.library_service import LibraryService
from melody.services.ranking_service import RankingService

router = APIRouter(tags=["Songs"])
logger = get_logger(__name__)


@router.get("/songs", response_model=list[SongEntry])
def list_songs(
    identity: CurrentIdentity = Depends(require_identity),
    service: RankingService = Depends(get_ranking_service),
) -> list[SongEntry]:
    """Return the caller's songs ordered from highest to lowest rating."""

    songs = service.list_ranked(identity.identity_id)
    logger.debug("Fetched %d song(s) for %s", len(songs), identity.identity_id)
    return [SongEntry.model_validate(song) for song in songs]


@router.delete("/songs", response_model=ResetResponse)
def reset_songs(
    identity: CurrentIdentity = Depends(require_identity),
    service: RankingService = Depends(get_ranking_service),
) -> ResetResponse:
    songs_deleted, matches_deleted = service.reset_library(identity.identity_id)
    return ResetResponse(songs_deleted=songs_deleted, matches_deleted=matches_deleted)


@router.post("/songs/import/liked", response_model=ImportResponse)
async def import_liked(
    identity: CurrentIdentity = Depends(require_identity),
    service: LibraryService = Depends(get_library_service),
) -> ImportResponse:
    result = await service.import_liked(identity.identity_id)
    return ImportResponse(imported=result.imported, total=result.total)


@router.post("/songs/import/playlist/{playlist_id}", response_model=ImportResponse)
async def import_playlist(
    playlist_id: str,
    identity: CurrentIdentity = Depends(require_identity),
    service: LibraryService = Depends(get_library_service),
) -> ImportResponse:
    result = await service.import_playlist(identity.identity_id, playlist_id)
    return ImportResponse(imported=result.imported, total=result.total)


@router.get("/playlists", response_model=list[PlaylistEntry])
async def list_playlists(
    identity: CurrentIdentity = Depends(require_identity),
    service: LibraryService = Depends(get_library_service),
) -> list[PlaylistEntry]:
    playlists = await service.list_playlists(identity.identity_id)
    return [
        PlaylistEntry(id=item.id, name=item.name, image=item.image, trackCount=item.track_count)
        for item in playlists
    ]
