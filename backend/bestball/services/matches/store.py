"""Score Store: the data-access seam the match service writes through.

``ScoreStore`` is the contract; ``SqlAlchemyScoreStore`` is the default
implementation over Flask-SQLAlchemy. Neither commits: the caller owns the
transaction so upsert and recompute land together.
"""

import abc
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from bestball import db
from bestball.errors import MatchError, StorageError
from bestball.models import BestBallPlayerScore, Player
from .aggregation import net_score

# Dialects with a native INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}
_SCORE_KEY = ('match_id', 'player_id', 'hole_number')


class ScoreStore(abc.ABC):

    @abc.abstractmethod
    def upsert_score(self, match_id: int, player_id: int, hole_number: int,
                     score: Optional[int], handicap_strokes: int) -> BestBallPlayerScore:
        """Insert or overwrite the record for (match, player, hole)."""

    @abc.abstractmethod
    def list_scores(self, match_id: int) -> List[BestBallPlayerScore]:
        """All records for a match, ordered by hole then team."""

    @abc.abstractmethod
    def player_teams(self, team_ids: Iterable[int]) -> Dict[int, int]:
        """Map player id -> team id for players on the given teams."""


class SqlAlchemyScoreStore(ScoreStore):

    def upsert_score(self, match_id, player_id, hole_number, score, handicap_strokes):
        now = datetime.now(timezone.utc)
        values = {
            'match_id': match_id,
            'player_id': player_id,
            'hole_number': hole_number,
            'score': score,
            'handicap_strokes': handicap_strokes,
            'net_score': net_score(score, handicap_strokes),
        }
        insert = _UPSERT_INSERTS.get(db.session.get_bind().dialect.name)
        if insert is not None:
            stmt = insert(BestBallPlayerScore.__table__).values(created_at=now, updated_at=now, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=list(_SCORE_KEY),
                set_={
                    'score': stmt.excluded.score,
                    'handicap_strokes': stmt.excluded.handicap_strokes,
                    'net_score': stmt.excluded.net_score,
                    'updated_at': stmt.excluded.updated_at,
                },
            )
            db.session.execute(stmt)
        else:
            existing = (
                BestBallPlayerScore.query
                .filter_by(match_id=match_id, player_id=player_id, hole_number=hole_number)
                .with_for_update()
                .first()
            )
            if existing is None:
                db.session.add(BestBallPlayerScore(created_at=now, updated_at=now, **values))
            else:
                existing.score = values['score']
                existing.handicap_strokes = values['handicap_strokes']
                existing.net_score = values['net_score']
                existing.updated_at = now
            db.session.flush()
        # The row may already sit in the identity map with pre-upsert values
        return (
            BestBallPlayerScore.query
            .options(joinedload(BestBallPlayerScore.player))
            .filter_by(match_id=match_id, player_id=player_id, hole_number=hole_number)
            .populate_existing()
            .one()
        )

    def list_scores(self, match_id):
        return (
            BestBallPlayerScore.query
            .join(Player, Player.id == BestBallPlayerScore.player_id)
            .options(joinedload(BestBallPlayerScore.player))
            .filter(BestBallPlayerScore.match_id == match_id)
            .order_by(BestBallPlayerScore.hole_number, Player.team_id, BestBallPlayerScore.player_id)
            .populate_existing()
            .all()
        )

    def player_teams(self, team_ids):
        rows = Player.query.filter(Player.team_id.in_(list(team_ids))).all()
        return {p.id: p.team_id for p in rows}


@contextmanager
def storage_transaction(action: str):
    """Commit on success; roll back on any failure.

    Domain errors propagate unchanged. Database failures are logged with
    their cause and re-raised as a generic ``StorageError``.
    """
    try:
        yield
        db.session.commit()
    except MatchError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(f"[storage-error] action={action}")
        raise StorageError() from exc
    except Exception:
        db.session.rollback()
        raise
