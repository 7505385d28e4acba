"""Match service: the operation surface used by routes and socket handlers.

A score submission is one critical section per match: validate, upsert the
record, recompute both team totals from scratch, persist them, then notify
viewers. Two submissions for the same match never recompute from the same
snapshot.
"""

import threading
from contextlib import contextmanager
from typing import Callable, Dict, Optional

from flask import current_app

from bestball import db
from bestball.errors import MatchClosed, NotFound, ValidationError
from bestball.models import BestBallMatch, Player
from . import lifecycle
from .aggregation import build_scorecard, compute_team_totals
from .store import ScoreStore, SqlAlchemyScoreStore, storage_transaction
from .validators import MAX_STROKES, require_int, require_privileged


class MatchLocks:
    """One lock per match id, kept only while someone holds or awaits it.

    Entries are reference counted and dropped when the last holder leaves.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}
        self._holders: Dict[int, int] = {}

    @contextmanager
    def for_match(self, match_id: int):
        with self._guard:
            lock = self._locks.get(match_id)
            if lock is None:
                lock = self._locks[match_id] = threading.Lock()
            self._holders[match_id] = self._holders.get(match_id, 0) + 1
        try:
            with lock:
                yield lock
        finally:
            with self._guard:
                self._holders[match_id] -= 1
                if not self._holders[match_id]:
                    del self._holders[match_id]
                    del self._locks[match_id]

    def __len__(self):
        with self._guard:
            return len(self._locks)


class MatchService:

    def __init__(self, store: Optional[ScoreStore] = None, notifier: Optional[Callable] = None,
                 locks: Optional[MatchLocks] = None, config=None):
        self.store = store or SqlAlchemyScoreStore()
        self.notifier = notifier
        self.locks = locks if locks is not None else MatchLocks()
        self.config = config or {}

    # ---- lifecycle ----

    def create_match(self, round_id, team1_id, team2_id, privileged=False) -> BestBallMatch:
        return lifecycle.create_match(round_id, team1_id, team2_id, privileged=privileged)

    def list_matches_by_round(self, round_id):
        return lifecycle.list_matches_by_round(round_id)

    def get_match(self, match_id) -> BestBallMatch:
        return lifecycle.get_match(match_id)

    def set_match_status(self, match_id, status, privileged=False) -> BestBallMatch:
        require_privileged(privileged)
        match_id = require_int(match_id, 'match_id', minimum=1)
        with self.locks.for_match(match_id):
            match = lifecycle.set_match_status(match_id, status, privileged=privileged)
            self._notify(match, reason='status')
        return match

    # ---- scores ----

    def list_scores(self, match_id):
        match = lifecycle.get_match(match_id)
        return self.store.list_scores(match.id)

    def get_scorecard(self, match_id) -> dict:
        match = lifecycle.get_match(match_id)
        scorecard = build_scorecard(
            self.store.list_scores(match.id),
            self._team_resolver(match),
            match.team1_id,
            match.team2_id,
            count_unplayed_as_zero=self._count_unplayed_as_zero(),
        )
        scorecard['match'] = match.to_dict()
        return scorecard

    def submit_score(self, match_id, player_id, hole_number, score=None, handicap_strokes=0, privileged=False):
        """Store one player's hole score and refresh the match totals.

        Re-submitting identical values overwrites the same record, so the
        stored rows and the totals are unchanged.
        """
        require_privileged(privileged)
        match_id = require_int(match_id, 'match_id', minimum=1)
        player_id = require_int(player_id, 'player_id', minimum=1)
        hole_number = require_int(hole_number, 'hole_number', minimum=1,
                                  maximum=int(self.config.get('HOLES_PER_ROUND', 18)))
        score = require_int(score, 'score', minimum=1, maximum=MAX_STROKES, optional=True)
        if handicap_strokes is None:
            handicap_strokes = 0
        handicap_strokes = require_int(handicap_strokes, 'handicap_strokes', minimum=0, maximum=MAX_STROKES)
        # Net scores, and so team totals, never go below zero
        if score is not None and handicap_strokes > score:
            raise ValidationError('handicap_strokes cannot exceed score')

        with self.locks.for_match(match_id):
            with storage_transaction('submit_score'):
                match = lifecycle.get_match(match_id, for_update=True)
                if match.status == 'completed' and not self.config.get('ALLOW_SCORES_AFTER_COMPLETION', False):
                    raise MatchClosed()
                player = db.session.get(Player, player_id)
                if not player:
                    raise NotFound('Player not found')
                if player.team_id not in match.team_ids():
                    raise ValidationError('Player is not on either team in this match')
                record = self.store.upsert_score(match.id, player_id, hole_number, score, handicap_strokes)
                self._apply_totals(match)
            current_app.logger.info(
                f"[score-saved] match={match.id} player={player_id} hole={hole_number} "
                f"score={score} hcp={handicap_strokes} totals={match.team1_score}-{match.team2_score}"
            )
            self._notify(match, reason='score', score=record)
        return record

    def recompute(self, match_id, privileged=False) -> BestBallMatch:
        """Rebuild the cached totals from the stored records."""
        require_privileged(privileged)
        match_id = require_int(match_id, 'match_id', minimum=1)
        with self.locks.for_match(match_id):
            with storage_transaction('recompute'):
                match = lifecycle.get_match(match_id, for_update=True)
                self._apply_totals(match)
            self._notify(match, reason='recompute')
        return match

    # ---- internals ----

    def _count_unplayed_as_zero(self) -> bool:
        return bool(self.config.get('COUNT_UNPLAYED_HOLES_AS_ZERO', False))

    def _team_resolver(self, match: BestBallMatch) -> Callable[[int], Optional[int]]:
        return self.store.player_teams(match.team_ids()).get

    def _apply_totals(self, match: BestBallMatch) -> None:
        match.team1_score, match.team2_score = compute_team_totals(
            self.store.list_scores(match.id),
            self._team_resolver(match),
            match.team1_id,
            match.team2_id,
            count_unplayed_as_zero=self._count_unplayed_as_zero(),
        )
        db.session.add(match)

    def _notify(self, match: BestBallMatch, reason: str, score=None) -> None:
        if self.notifier is None:
            return
        self.notifier(match.to_dict(), reason=reason, score=score.to_dict() if score is not None else None)


def get_match_service() -> MatchService:
    """The service bound to the current app, built on first use."""
    service = current_app.extensions.get('bestball.match_service')
    if service is None:
        from bestball.socketio_events import broadcast_match_update
        service = MatchService(notifier=broadcast_match_update, config=current_app.config)
        current_app.extensions['bestball.match_service'] = service
    return service
