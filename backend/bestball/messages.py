"""Tagged message envelopes exchanged on the live channel.

Every message is a JSON object ``{"type": ..., **payload}`` carried on the
Socket.IO ``message`` event.
"""

import json

MESSAGE_EVENT = 'message'
NAMESPACE = '/ws'

CONNECTION_SUCCESS = 'connection-success'
PING = 'ping'
PONG = 'pong'
SUBSCRIBE = 'subscribe'
SUBSCRIBED = 'subscribed'
UNSUBSCRIBE = 'unsubscribe'
UNSUBSCRIBED = 'unsubscribed'
MATCH_UPDATED = 'match-updated'
ERROR = 'error'


class MalformedMessage(ValueError):
    pass


def envelope(message_type, **payload):
    message = dict(payload)
    message['type'] = message_type
    return message


def parse_envelope(raw):
    """Decode an inbound message into a dict with a string ``type``."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode('utf-8')
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise MalformedMessage(f'not JSON: {exc}')
    if not isinstance(raw, dict) or not isinstance(raw.get('type'), str):
        raise MalformedMessage('message must be an object with a string "type"')
    return raw


def match_room(match_id):
    return f"match:{match_id}"
