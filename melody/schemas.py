"""Pydantic schemas for request and response bodies."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class LoginResponse(BaseModel):
    url: str


class SuccessResponse(BaseModel):
    success: bool = True


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    timestamp: int


class MeResponse(BaseModel):
    id: str
    display_name: Optional[str] = None
    created_at: Optional[datetime] = None
    songCount: int
    matchCount: int


class SongEntry(BaseModel):
    id: str
    spotify_id: str
    name: str
    artist: str
    album: Optional[str] = None
    album_art: Optional[str] = None
    preview_url: Optional[str] = None
    rating: float
    matches_played: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MatchupResponse(BaseModel):
    song1: SongEntry
    song2: SongEntry


class MatchRequest(BaseModel):
    winner_id: Optional[str] = Field(default=None, alias="winnerId")
    loser_id: Optional[str] = Field(default=None, alias="loserId")

    model_config = ConfigDict(populate_by_name=True)


class RatingChange(BaseModel):
    winner: float
    loser: float


class MatchResponse(BaseModel):
    winner: SongEntry
    loser: SongEntry
    ratingChange: RatingChange
    matchId: int


class MatchEntry(BaseModel):
    id: int
    winner_id: str
    loser_id: str
    winner_rating_before: float
    loser_rating_before: float
    winner_rating_after: float
    loser_rating_after: float
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MatchHistoryResponse(BaseModel):
    items: List[MatchEntry]


class HistoryCheckResponse(BaseModel):
    consistent: bool
    match_count: int
    mismatches: Dict[str, List[float]] = Field(default_factory=dict)


class ImportResponse(BaseModel):
    imported: int
    total: int


class PlaylistEntry(BaseModel):
    id: str
    name: str
    image: Optional[str] = None
    trackCount: int


class ResetResponse(BaseModel):
    success: bool = True
    songs_deleted: int
    matches_deleted: int
