from flask import Blueprint, jsonify, request, current_app
from flask_login import current_user
from bestball.errors import MatchError, StorageError
from bestball.services.matches.service import get_match_service


best_ball = Blueprint('best_ball', __name__)


def _is_privileged() -> bool:
    return bool(current_user.is_authenticated and getattr(current_user, 'is_admin', False))


@best_ball.errorhandler(MatchError)
def handle_match_error(exc):
    if isinstance(exc, StorageError):
        # Cause already logged by the storage layer
        return jsonify({'error': StorageError.public_message}), exc.status_code
    current_app.logger.info(f"[rejected] {request.method} {request.path} status={exc.status_code} error={exc.message}")
    return jsonify(exc.to_dict()), exc.status_code


@best_ball.route('/matches', methods=['POST'])
def create_match():
    data = request.get_json(silent=True) or {}
    match = get_match_service().create_match(
        data.get('round_id'),
        data.get('team1_id'),
        data.get('team2_id'),
        privileged=_is_privileged(),
    )
    return jsonify(match.to_dict()), 201


@best_ball.route('/rounds/<int:round_id>/matches', methods=['GET'])
def list_matches_by_round(round_id):
    matches = get_match_service().list_matches_by_round(round_id)
    return jsonify([m.to_dict() for m in matches])


@best_ball.route('/matches/<int:match_id>', methods=['GET'])
def get_match(match_id):
    return jsonify(get_match_service().get_match(match_id).to_dict())


@best_ball.route('/matches/<int:match_id>/status', methods=['POST'])
def set_match_status(match_id):
    data = request.get_json(silent=True) or {}
    match = get_match_service().set_match_status(match_id, data.get('status'), privileged=_is_privileged())
    return jsonify(match.to_dict())


@best_ball.route('/matches/<int:match_id>/scores', methods=['GET'])
def list_scores(match_id):
    scores = get_match_service().list_scores(match_id)
    return jsonify([s.to_dict() for s in scores])


@best_ball.route('/matches/<int:match_id>/scores', methods=['POST'])
def submit_score(match_id):
    data = request.get_json(silent=True) or {}
    record = get_match_service().submit_score(
        match_id,
        data.get('player_id'),
        data.get('hole_number'),
        score=data.get('score'),
        handicap_strokes=data.get('handicap_strokes', 0),
        privileged=_is_privileged(),
    )
    return jsonify(record.to_dict())


@best_ball.route('/matches/<int:match_id>/scorecard', methods=['GET'])
def get_scorecard(match_id):
    return jsonify(get_match_service().get_scorecard(match_id))


@best_ball.route('/matches/<int:match_id>/recompute', methods=['POST'])
def recompute(match_id):
    match = get_match_service().recompute(match_id, privileged=_is_privileged())
    return jsonify(match.to_dict())
