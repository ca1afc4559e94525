"""Matchup and outcome endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from melody.dependencies import CurrentIdentity, get_ranking_service, require_identity
from melody.schemas import (
    HistoryCheckResponse,
    MatchEntry,
    MatchHistoryResponse,
    MatchRequest,
    MatchResponse,
    MatchupResponse,
    RatingChange,
    SongEntry,
)
from melody.services.ranking_service import RankingService

router = APIRouter(tags=["Matches"])


@router.get("/matchup", response_model=MatchupResponse)
def get_matchup(
    identity: CurrentIdentity = Depends(require_identity),
    service: RankingService = Depends(get_ranking_service),
) -> MatchupResponse:
    first, second = service.select_pair(identity.identity_id)
    return MatchupResponse(
        song1=SongEntry.model_validate(first),
        song2=SongEntry.model_validate(second),
    )


@router.post("/match", response_model=MatchResponse)
def post_match(
    payload: MatchRequest,
    identity: CurrentIdentity = Depends(require_identity),
    service: RankingService = Depends(get_ranking_service),
) -> MatchResponse:
    outcome = service.report_outcome(
        identity.identity_id,
        (payload.winner_id or "").strip(),
        (payload.loser_id or "").strip(),
    )
    return MatchResponse(
        winner=SongEntry.model_validate(outcome.winner),
        loser=SongEntry.model_validate(outcome.loser),
        ratingChange=RatingChange(winner=outcome.winner_delta, loser=outcome.loser_delta),
        matchId=outcome.match_id,
    )


@router.get("/matches", response_model=MatchHistoryResponse)
def list_matches(
    identity: CurrentIdentity = Depends(require_identity),
    service: RankingService = Depends(get_ranking_service),
) -> MatchHistoryResponse:
    items = [MatchEntry.model_validate(row) for row in service.list_matches(identity.identity_id)]
    return MatchHistoryResponse(items=items)


@router.get("/matches/verify", response_model=HistoryCheckResponse)
def verify_matches(
    identity: CurrentIdentity = Depends(require_identity),
    service: RankingService = Depends(get_ranking_service),
) -> HistoryCheckResponse:
    """Replay the ledger and report songs whose stored rating disagrees."""

    report = service.verify_history(identity.identity_id)
    return HistoryCheckResponse(
        consistent=report.consistent,
        match_count=report.match_count,
        mismatches={song_id: list(values) for song_id, values in report.mismatches.items()},
    )
