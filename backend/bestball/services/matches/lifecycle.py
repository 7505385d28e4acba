"""Match lifecycle: creation, status state machine and read accessors."""

from flask import current_app

from bestball import db
from bestball.errors import InvalidTransition, NotFound, ValidationError
from bestball.models import MATCH_STATUSES, BestBallMatch, Round, Team, utcnow
from .store import storage_transaction
from .validators import require_int, require_privileged

# Forward-only; skipping a stage (e.g. a forfeit straight to completed) is allowed
TRANSITIONS = {
    'pending': {'in_progress', 'completed'},
    'in_progress': {'completed'},
    'completed': set(),
}


def check_transition(current: str, new: str) -> None:
    if new not in MATCH_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(MATCH_STATUSES)}")
    if new != current and new not in TRANSITIONS.get(current, set()):
        raise InvalidTransition(f'Cannot move match from {current} to {new}')


def get_match(match_id, for_update: bool = False) -> BestBallMatch:
    match_id = require_int(match_id, 'match_id', minimum=1)
    query = BestBallMatch.query.filter_by(id=match_id)
    if for_update:
        query = query.with_for_update()
    match = query.first()
    if not match:
        raise NotFound('Match not found')
    return match


def list_matches_by_round(round_id):
    round_id = require_int(round_id, 'round_id', minimum=1)
    return (
        BestBallMatch.query
        .filter_by(round_id=round_id)
        .order_by(BestBallMatch.created_at.desc(), BestBallMatch.id.desc())
        .all()
    )


def create_match(round_id, team1_id, team2_id, privileged: bool = False) -> BestBallMatch:
    """Create a pending match between two distinct teams with zeroed totals."""
    require_privileged(privileged)
    round_id = require_int(round_id, 'round_id', minimum=1)
    team1_id = require_int(team1_id, 'team1_id', minimum=1)
    team2_id = require_int(team2_id, 'team2_id', minimum=1)
    if team1_id == team2_id:
        raise ValidationError('team1_id and team2_id must be different teams')

    with storage_transaction('create_match'):
        if not db.session.get(Round, round_id):
            raise NotFound('Round not found')
        for team_id in (team1_id, team2_id):
            if not db.session.get(Team, team_id):
                raise NotFound(f'Team {team_id} not found')
        match = BestBallMatch(
            round_id=round_id,
            team1_id=team1_id,
            team2_id=team2_id,
            team1_score=0,
            team2_score=0,
            status='pending',
        )
        db.session.add(match)
    current_app.logger.info(f"[match-created] match={match.id} round={round_id} teams={team1_id}v{team2_id}")
    return match


def set_match_status(match_id, status, privileged: bool = False) -> BestBallMatch:
    require_privileged(privileged)
    if status not in MATCH_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(MATCH_STATUSES)}")
    with storage_transaction('set_match_status'):
        match = get_match(match_id, for_update=True)
        previous = match.status
        check_transition(previous, status)
        match.status = status
        match.updated_at = utcnow()
        db.session.add(match)
    current_app.logger.info(f"[match-status] match={match.id} {previous} -> {status}")
    return match
