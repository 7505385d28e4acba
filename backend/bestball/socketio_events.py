from flask import current_app, request
from flask_socketio import ConnectionRefusedError, emit, join_room, leave_room
from bestball import socketio
from bestball.errors import MatchError
from bestball.messages import (
    CONNECTION_SUCCESS, ERROR, MATCH_UPDATED, MESSAGE_EVENT, NAMESPACE, PING, PONG,
    SUBSCRIBE, SUBSCRIBED, UNSUBSCRIBE, UNSUBSCRIBED, MalformedMessage, envelope,
    match_room, parse_envelope,
)
from bestball.models import User
from typing import Dict, Set
import time


class Viewer:
    """Server-side state for one live connection."""

    def __init__(self, sid: str, user: User):
        self.sid = sid
        self.user_id = user.id
        self.username = user.username
        self.match_ids: Set[int] = set()


_viewers: Dict[str, Viewer] = {}


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _send(message_type, **payload):
    emit(MESSAGE_EVENT, envelope(message_type, **payload))


def handle_connect(auth=None):
    token = auth.get('token') if isinstance(auth, dict) else None
    token = token or request.args.get('token')
    user = User.from_token(token)
    if not user:
        current_app.logger.warning("[ws-reject] missing or unknown identity token")
        raise ConnectionRefusedError('invalid token')
    viewer = Viewer(_get_sid(), user)
    _viewers[viewer.sid] = viewer
    current_app.logger.info(f"[ws-connect] sid={viewer.sid} user={user.username}")
    _send(CONNECTION_SUCCESS, user=user.to_dict())


def handle_disconnect(reason=None):
    viewer = _viewers.pop(_get_sid(), None)
    if viewer:
        current_app.logger.info(f"[ws-disconnect] sid={viewer.sid} user={viewer.username} reason={reason}")


def handle_message(data):
    try:
        message = parse_envelope(data)
    except MalformedMessage as exc:
        current_app.logger.warning(f"[ws-malformed] sid={_get_sid()} {exc}")
        _send(ERROR, message=str(exc))
        return

    message_type = message['type']
    if message_type == PING:
        payload = {k: v for k, v in message.items() if k != 'type'}
        payload['server_time'] = time.time()
        _send(PONG, **payload)
    elif message_type == SUBSCRIBE:
        _subscribe(message.get('match_id'))
    elif message_type == UNSUBSCRIBE:
        _unsubscribe(message.get('match_id'))
    else:
        current_app.logger.warning(f"[ws-unknown] sid={_get_sid()} type={message_type}")


def _subscribe(match_id):
    from bestball.services.matches.service import get_match_service
    try:
        match = get_match_service().get_match(match_id)
    except MatchError as exc:
        _send(ERROR, message=exc.message, match_id=match_id)
        return
    join_room(match_room(match.id))
    viewer = _viewers.get(_get_sid())
    if viewer:
        viewer.match_ids.add(match.id)
    # Current snapshot lets a reconnecting viewer resynchronize
    _send(SUBSCRIBED, match_id=match.id, match=match.to_dict())


def _unsubscribe(match_id):
    viewer = _viewers.get(_get_sid())
    try:
        match_id = int(match_id)
    except (TypeError, ValueError):
        _send(ERROR, message='match_id must be an integer')
        return
    leave_room(match_room(match_id))
    if viewer:
        viewer.match_ids.discard(match_id)
    _send(UNSUBSCRIBED, match_id=match_id)


def broadcast_match_update(match: dict, reason: str, score: dict = None) -> None:
    """Push a match's new state to every viewer subscribed to it."""
    payload = {'match': match, 'reason': reason}
    if score is not None:
        payload['score'] = score
    # socketio.emit since this runs outside a socket handler
    socketio.emit(MESSAGE_EVENT, envelope(MATCH_UPDATED, **payload), to=match_room(match['id']), namespace=NAMESPACE)


def connected_viewers():
    return list(_viewers.values())


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the live namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event(MESSAGE_EVENT, handle_message, namespace=NAMESPACE)
