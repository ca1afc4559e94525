"""Matchmaking, outcome reporting and the match ledger."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime
import random
from threading import Lock
from weakref import WeakValueDictionary

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from melody.config import RatingConfig
from melody.core import rating as elo
from melody.db import session_scope
from melody.errors import NotEnoughEntitiesError, NotFoundError, ValidationAppError
from melody.logging import get_logger, log_event
from melody.models import MatchRecord, Song
from melody.services.types import HistoryReport, MatchRow, OutcomeResult, SongRow

__all__ = ["IdentityLocks", "RankingService"]

logger = get_logger(__name__)

# Draw attempts spent avoiding a recently shown pair before giving up.
_RECENT_PAIR_ATTEMPTS = 8


class IdentityLocks:
    """Hand out one mutex per identity so rating updates never interleave.

    Entries are weakly held: a lock lives while some caller holds a reference
    to it and disappears once the last ``with`` block releases it.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: WeakValueDictionary[str, Lock] = WeakValueDictionary()

    def get(self, identity_id: str) -> Lock:
        with self._guard:
            lock = self._locks.get(identity_id)
            if lock is None:
                lock = Lock()
                self._locks[identity_id] = lock
            return lock


class RankingService:
    def __init__(
        self,
        config: RatingConfig,
        *,
        rng: random.Random | None = None,
        now_fn: Callable[[], datetime] | None = None,
        locks: IdentityLocks | None = None,
    ) -> None:
        self._config = config
        self._rng = rng or random.SystemRandom()
        self._now = now_fn or (lambda: datetime.now(UTC))
        self._locks = locks or IdentityLocks()
        self._recent_guard = Lock()
        self._recent_pairs: dict[str, deque[frozenset[str]]] = {}

    def _ranked(self, session: Session, identity_id: str) -> list[SongRow]:
        records = (
            session.execute(
                select(Song)
                .where(Song.identity_id == identity_id)
                .order_by(Song.rating.desc(), Song.id.asc())
            )
            .scalars()
            .all()
        )
        return [SongRow.from_model(record) for record in records]

    def list_ranked(self, identity_id: str) -> list[SongRow]:
        with session_scope() as session:
            return self._ranked(session, identity_id)

    def _remember_pair(self, identity_id: str, pair: frozenset[str]) -> None:
        window = self._config.recent_pair_window
        if window <= 0:
            return
        with self._recent_guard:
            history = self._recent_pairs.get(identity_id)
            if history is None or history.maxlen != window:
                history = deque(history or (), maxlen=window)
                self._recent_pairs[identity_id] = history
            history.append(pair)

    def _is_recent(self, identity_id: str, pair: frozenset[str]) -> bool:
        if self._config.recent_pair_window <= 0:
            return False
        with self._recent_guard:
            return pair in (self._recent_pairs.get(identity_id) or ())

    def _draw_ids(self, identity_id: str, song_ids: list[str]) -> tuple[str, str]:
        possible_pairs = len(song_ids) * (len(song_ids) - 1) // 2
        first, second = self._rng.sample(song_ids, 2)
        if possible_pairs > self._config.recent_pair_window:
            attempts = 1
            while (
                self._is_recent(identity_id, frozenset((first, second)))
                and attempts < _RECENT_PAIR_ATTEMPTS
            ):
                first, second = self._rng.sample(song_ids, 2)
                attempts += 1
        return first, second

    def select_pair(self, identity_id: str) -> tuple[SongRow, SongRow]:
        """Draw two distinct songs uniformly at random from the identity's pool."""

        with session_scope() as session:
            song_ids = list(
                session.execute(
                    select(Song.id).where(Song.identity_id == identity_id).order_by(Song.id)
                )
                .scalars()
                .all()
            )
            if len(song_ids) < 2:
                raise NotEnoughEntitiesError(available=len(song_ids))

            first_id, second_id = self._draw_ids(identity_id, song_ids)
            first = session.get(Song, first_id)
            second = session.get(Song, second_id)
            if first is None or second is None:
                raise NotFoundError("Songs not found")
            pair = (SongRow.from_model(first), SongRow.from_model(second))

        self._remember_pair(identity_id, frozenset((first_id, second_id)))
        return pair

    def _load_owned(self, session: Session, identity_id: str, song_id: str) -> Song | None:
        statement = (
            select(Song)
            .where(Song.id == song_id, Song.identity_id == identity_id)
            .with_for_update()
        )
        return session.execute(statement).scalars().first()

    def report_outcome(self, identity_id: str, winner_id: str, loser_id: str) -> OutcomeResult:
        """Apply one comparison outcome and append it to the ledger atomically."""

        if not winner_id or not loser_id:
            raise ValidationAppError("winnerId and loserId required")
        if winner_id == loser_id:
            raise ValidationAppError("winnerId and loserId must differ")

        with self._locks.get(identity_id):
            with session_scope() as session:
                winner = self._load_owned(session, identity_id, winner_id)
                loser = self._load_owned(session, identity_id, loser_id)
                if winner is None or loser is None:
                    raise NotFoundError("Songs not found")

                winner_before = float(winner.rating)
                loser_before = float(loser.rating)
                result = elo.update(winner_before, loser_before, self._config.k_factor)

                winner.rating = result.winner
                loser.rating = result.loser
                winner.matches_played = int(winner.matches_played or 0) + 1
                loser.matches_played = int(loser.matches_played or 0) + 1

                record = MatchRecord(
                    identity_id=identity_id,
                    winner_id=winner.id,
                    loser_id=loser.id,
                    winner_rating_before=winner_before,
                    loser_rating_before=loser_before,
                    winner_rating_after=result.winner,
                    loser_rating_after=result.loser,
                    created_at=self._now(),
                )
                session.add(record)
                session.flush()

                winner_delta, loser_delta = result.deltas(winner_before, loser_before)
                outcome = OutcomeResult(
                    winner=SongRow.from_model(winner),
                    loser=SongRow.from_model(loser),
                    winner_delta=winner_delta,
                    loser_delta=loser_delta,
                    match_id=int(record.id),
                )

        log_event(
            logger,
            "match.recorded",
            identity_id=identity_id,
            match_id=outcome.match_id,
            winner_delta=outcome.winner_delta,
            loser_delta=outcome.loser_delta,
        )
        return outcome

    def _matches(self, session: Session, identity_id: str) -> list[MatchRow]:
        records = (
            session.execute(
                select(MatchRecord)
                .where(MatchRecord.identity_id == identity_id)
                .order_by(MatchRecord.id.asc())
            )
            .scalars()
            .all()
        )
        return [MatchRow.from_model(record) for record in records]

    def list_matches(self, identity_id: str) -> list[MatchRow]:
        with session_scope() as session:
            return self._matches(session, identity_id)

    def verify_history(self, identity_id: str) -> HistoryReport:
        """Replay the ledger from the seed rating and compare with stored ratings.

        Both reads happen in one transaction under the identity lock so an
        outcome reported concurrently is either fully visible or not at all.
        """

        with self._locks.get(identity_id):
            with session_scope() as session:
                matches = self._matches(session, identity_id)
                songs = self._ranked(session, identity_id)
        replayed = elo.replay(
            (elo.ReplayStep(match.winner_id, match.loser_id) for match in matches),
            initial_rating=self._config.initial_rating,
            k_factor=self._config.k_factor,
        )
        mismatches: dict[str, tuple[float, float]] = {}
        for song in songs:
            expected = replayed.get(song.id, self._config.initial_rating)
            if expected != song.rating:
                mismatches[song.id] = (song.rating, expected)
        return HistoryReport(match_count=len(matches), mismatches=mismatches)

    def reset_library(self, identity_id: str) -> tuple[int, int]:
        """Delete every match and song of ``identity_id``; returns both counts."""

        with self._locks.get(identity_id):
            with session_scope() as session:
                matches = session.execute(
                    delete(MatchRecord).where(MatchRecord.identity_id == identity_id)
                ).rowcount
                songs = session.execute(
                    delete(Song).where(Song.identity_id == identity_id)
                ).rowcount
        with self._recent_guard:
            self._recent_pairs.pop(identity_id, None)
        log_event(
            logger,
            "library.reset",
            identity_id=identity_id,
            matches_deleted=int(matches or 0),
            songs_deleted=int(songs or 0),
        )
        return int(songs or 0), int(matches or 0)
