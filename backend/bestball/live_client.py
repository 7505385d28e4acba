"""Viewer side of the live channel.

``LiveMatchClient`` owns at most one connection, keyed by the viewer's
identity token, and reconnects after abnormal closes with capped, jittered
exponential backoff. It is constructed explicitly per authenticated session
and torn down with ``close()`` (or by leaving its ``with`` block).

Transport and timers are injected so the state machine can be driven
without a network; ``SocketIOTransport`` is the real transport.
"""

import logging
import random
import threading
import time
from urllib.parse import quote

import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from bestball.messages import (
    CONNECTION_SUCCESS, ERROR, MATCH_UPDATED, MESSAGE_EVENT, NAMESPACE, PING, PONG,
    SUBSCRIBE, SUBSCRIBED, UNSUBSCRIBE, UNSUBSCRIBED, MalformedMessage, envelope,
    parse_envelope,
)

logger = logging.getLogger(__name__)

DISCONNECTED = 'disconnected'
CONNECTING = 'connecting'
CONNECTED = 'connected'

CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006
CLOSE_POLICY_VIOLATION = 1008
RECONNECT_CODES = frozenset({CLOSE_ABNORMAL, CLOSE_POLICY_VIOLATION})

# Forwarded to on_message; anything else is logged and dropped
FORWARDED_TYPES = frozenset({SUBSCRIBED, UNSUBSCRIBED, MATCH_UPDATED, ERROR})


class ReconnectPolicy:
    """Exponential backoff with a ceiling, jitter and an attempt limit."""

    def __init__(self, base_delay=1.0, max_delay=30.0, max_attempts=10, jitter=0.2, rng=random.random):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.jitter = jitter
        self._rng = rng

    @classmethod
    def from_config(cls, config, **kwargs):
        def get(key, default):
            if isinstance(config, dict):
                return config.get(key, default)
            return getattr(config, key, default)
        return cls(
            base_delay=float(get('RECONNECT_BASE_DELAY_SEC', 1.0)),
            max_delay=float(get('RECONNECT_MAX_DELAY_SEC', 30.0)),
            max_attempts=int(get('RECONNECT_MAX_ATTEMPTS', 10)),
            jitter=float(get('RECONNECT_JITTER', 0.2)),
            **kwargs
        )

    def delay(self, attempt: int) -> float:
        raw = min(self.max_delay, self.base_delay * (2 ** max(0, attempt - 1)))
        spread = raw * self.jitter
        return max(0.0, min(self.max_delay, raw + (self._rng() * 2 - 1) * spread))

    def exhausted(self, attempt: int) -> bool:
        return self.max_attempts is not None and attempt > self.max_attempts


def _default_timer(delay, callback):
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class SocketIOTransport:
    """One Socket.IO connection reporting closes as WebSocket-style codes."""

    NORMAL_REASONS = ('client disconnect', 'server disconnect')

    def __init__(self, url, token, on_open, on_message, on_close, namespace=NAMESPACE):
        self.url = url
        self.token = token
        self.namespace = namespace
        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._closing = False
        self._refused = False
        self._client = socketio.Client(reconnection=False)
        self._client.on('connect', self._handle_connect, namespace=namespace)
        self._client.on('connect_error', self._handle_connect_error, namespace=namespace)
        self._client.on('disconnect', self._handle_disconnect, namespace=namespace)
        self._client.on(MESSAGE_EVENT, self._on_message, namespace=namespace)

    def open(self):
        sep = '&' if '?' in self.url else '?'
        try:
            self._client.connect(f"{self.url}{sep}token={quote(self.token)}", namespaces=[self.namespace])
        except SocketIOConnectionError as exc:
            code = CLOSE_POLICY_VIOLATION if self._refused else CLOSE_ABNORMAL
            self._on_close(code, str(exc))

    def send(self, message):
        self._client.emit(MESSAGE_EVENT, message, namespace=self.namespace)

    def close(self):
        self._closing = True
        self._client.disconnect()

    def _handle_connect(self):
        self._on_open()

    def _handle_connect_error(self, data=None):
        self._refused = True

    def _handle_disconnect(self, reason=None):
        if self._closing or reason in self.NORMAL_REASONS:
            self._on_close(CLOSE_NORMAL, reason)
        else:
            self._on_close(CLOSE_ABNORMAL, reason)


class LiveMatchClient:

    def __init__(self, url, policy=None, transport_factory=SocketIOTransport, timer_factory=_default_timer,
                 on_message=None, on_state_change=None, on_give_up=None):
        self.url = url
        self.policy = policy or ReconnectPolicy()
        self._transport_factory = transport_factory
        self._timer_factory = timer_factory
        self._on_message = on_message
        self._on_state_change = on_state_change
        self._on_give_up = on_give_up

        self._lock = threading.RLock()
        self._token = None
        self._transport = None
        self._generation = 0
        self._timer = None
        self._attempts = 0
        self._state = DISCONNECTED
        self._subscriptions = set()
        self.identity = None
        self.last_pong = None

    # ---- public API ----

    @property
    def state(self):
        return self._state

    @property
    def token(self):
        return self._token

    @property
    def retry_pending(self):
        return self._timer is not None

    def set_token(self, token):
        """Follow the session's identity token.

        Same token with a live connection is a no-op; a different token
        closes the old connection before opening a new one; ``None`` closes.
        """
        with self._lock:
            if token == self._token and self._transport is not None:
                return
            stale = self._detach()
            self._token = token
            self._attempts = 0
            self.identity = None
            fresh = self._prepare() if token else None
        self._close_transport(stale)
        self._open_transport(fresh)

    def close(self):
        """Close the connection and forget token and pending retries."""
        with self._lock:
            stale = self._detach()
            self._token = None
            self._attempts = 0
            self.identity = None
        self._close_transport(stale)

    def subscribe(self, match_id):
        with self._lock:
            self._subscriptions.add(match_id)
        return self.send(SUBSCRIBE, match_id=match_id)

    def unsubscribe(self, match_id):
        with self._lock:
            self._subscriptions.discard(match_id)
        return self.send(UNSUBSCRIBE, match_id=match_id)

    def ping(self):
        return self.send(PING, client_time=time.time())

    def send(self, message_type, **payload):
        with self._lock:
            transport = self._transport if self._state == CONNECTED else None
        if transport is None:
            return False
        transport.send(envelope(message_type, **payload))
        return True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ---- transport callbacks ----

    def _handle_open(self, generation):
        with self._lock:
            if generation != self._generation:
                return
            self._attempts = 0
            self._set_state(CONNECTED)
            transport = self._transport
            subscriptions = sorted(self._subscriptions)
        logger.info("live channel connected to %s", self.url)
        # Rejoin rooms so a reconnect picks up current match snapshots
        for match_id in subscriptions:
            transport.send(envelope(SUBSCRIBE, match_id=match_id))

    def _handle_message(self, generation, raw):
        if generation != self._generation:
            return
        try:
            message = parse_envelope(raw)
        except MalformedMessage as exc:
            logger.warning("ignoring malformed live message: %s", exc)
            return
        message_type = message['type']
        if message_type == CONNECTION_SUCCESS:
            self.identity = message.get('user')
            logger.info("live channel authenticated as %s", (self.identity or {}).get('username'))
        elif message_type == PONG:
            self.last_pong = time.time()
        elif message_type in FORWARDED_TYPES:
            if self._on_message is not None:
                self._on_message(message)
        else:
            logger.warning("unknown live message type: %s", message_type)

    def _handle_close(self, generation, code, reason=None):
        give_up = None
        with self._lock:
            if generation != self._generation:
                return
            self._transport = None
            self._set_state(DISCONNECTED)
            logger.info("live channel closed code=%s reason=%s", code, reason)
            if code in RECONNECT_CODES and self._token:
                give_up = self._schedule_retry(code)
        if give_up is not None and self._on_give_up is not None:
            self._on_give_up(*give_up)

    # ---- internals ----

    def _set_state(self, state):
        if state == self._state:
            return
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _schedule_retry(self, code):
        if self._timer is not None:
            return None
        self._attempts += 1
        if self.policy.exhausted(self._attempts):
            failures = self._attempts - 1
            logger.error("live channel giving up after %s reconnection attempts", failures)
            return (failures, code)
        delay = self.policy.delay(self._attempts)
        logger.info("live channel reconnecting in %.2fs (attempt %s)", delay, self._attempts)
        self._timer = self._timer_factory(delay, self._retry)
        self._timer.start()
        return None

    def _retry(self):
        with self._lock:
            self._timer = None
            if not self._token or self._transport is not None:
                return
            fresh = self._prepare()
        self._open_transport(fresh)

    def _prepare(self):
        """Create the next transport under the lock; opened after release."""
        self._generation += 1
        generation = self._generation
        self._transport = self._transport_factory(
            self.url,
            self._token,
            on_open=lambda: self._handle_open(generation),
            on_message=lambda raw: self._handle_message(generation, raw),
            on_close=lambda code, reason=None: self._handle_close(generation, code, reason),
        )
        self._set_state(CONNECTING)
        return self._transport

    def _detach(self):
        """Cancel retries and orphan the current transport; returns it for closing."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        stale = self._transport
        self._transport = None
        # Callbacks from the orphaned transport now carry a stale generation
        self._generation += 1
        self._set_state(DISCONNECTED)
        return stale

    @staticmethod
    def _close_transport(transport):
        if transport is not None:
            transport.close()

    @staticmethod
    def _open_transport(transport):
        if transport is not None:
            transport.open()
