"""
Identity provider: who is signed in.

The dashboard only reads sessions; it never inspects credentials.  The
provider interface mirrors a hosted popup sign-in service:

    sign_in(uid, display_name, photo_url) -> Session
    sign_out(token)
    session(token) -> Session | None
    on_session_change(callback) -> Subscription

LocalIdentityProvider is a development stand-in.  It keeps sessions in
process memory and accepts whatever ``uid`` the client sends without any
credential check, so "one vote per identity" only means one vote per uid
string.  A deployment behind a real identity service swaps in its own
provider with the same interface.

Local sessions end on sign-out, after ``session_ttl`` seconds without use,
or when more than ``max_sessions`` are open (least recently used first).
Every ending is announced to ``on_session_change`` listeners.
"""

from __future__ import annotations

import itertools
import logging
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from votes.store import Subscription

logger = logging.getLogger(__name__)

SessionCallback = Callable[[str, "Session | None"], None]


class AuthError(Exception):
    """Sign-in or sign-out failed, or an action required a session."""


@dataclass(frozen=True)
class Session:
    """An authenticated identity as exposed by the provider."""

    uid: str
    display_name: str = ""
    photo_url: str = ""
    token: str = ""


class IdentityProvider:
    """Base class for identity providers."""

    def sign_in(self, uid: str, display_name: str = "", photo_url: str = "") -> Session:
        raise NotImplementedError

    def sign_out(self, token: str) -> None:
        raise NotImplementedError

    def session(self, token: str | None) -> Session | None:
        raise NotImplementedError

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        raise NotImplementedError


class LocalIdentityProvider(IdentityProvider):
    """In-memory session table keyed by an opaque random token.

    Development only: sign-in trusts the caller's ``uid``.

    Listeners registered with ``on_session_change`` receive
    ``(token, session)`` on sign-in and ``(token, None)`` when a session
    ends, whether by sign-out or expiry.
    """

    def __init__(
        self,
        session_ttl: float = 86_400,
        max_sessions: int = 10_000,
        sweep_interval: float = 60.0,
    ) -> None:
        self.session_ttl = session_ttl
        self.max_sessions = max_sessions
        self.sweep_interval = sweep_interval
        self._sessions: dict[str, Session] = {}
        self._last_seen: dict[str, float] = {}
        self._last_sweep = 0.0
        self._listeners: dict[int, SessionCallback] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def sign_in(self, uid: str, display_name: str = "", photo_url: str = "") -> Session:
        uid = (uid or "").strip()
        if not uid:
            raise AuthError("Sign-in requires a user id")
        token = secrets.token_urlsafe(24)
        session = Session(
            uid=uid,
            display_name=(display_name or "").strip(),
            photo_url=(photo_url or "").strip(),
            token=token,
        )
        with self._lock:
            self._sessions[token] = session
            self._last_seen[token] = time.monotonic()
            over_limit = len(self._sessions) > self.max_sessions
        logger.info("signed in uid=%s", uid)
        self._emit(token, session)
        self.sweep(force=over_limit)
        return session

    def sign_out(self, token: str) -> None:
        session = self._end(token) if token else None
        if session is None:
            raise AuthError("No active session for this token")
        logger.info("signed out uid=%s", session.uid)
        self._emit(token, None)

    def session(self, token: str | None) -> Session | None:
        if not token:
            return None
        now = time.monotonic()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if now - self._last_seen[token] <= self.session_ttl:
                self._last_seen[token] = now
                return session
        if self._end(token) is not None:
            logger.info("session expired uid=%s", session.uid)
            self._emit(token, None)
        return None

    def sweep(self, force: bool = False) -> int:
        """End idle sessions and trim to ``max_sessions``.

        Runs at most once per ``sweep_interval`` unless *force* is set.
        Returns the number of sessions ended.
        """
        now = time.monotonic()
        with self._lock:
            if not force and now - self._last_sweep < self.sweep_interval:
                return 0
            self._last_sweep = now
            stale = {t for t, seen in self._last_seen.items() if now - seen > self.session_ttl}
            overflow = len(self._sessions) - len(stale) - self.max_sessions
            if overflow > 0:
                live = sorted(
                    (t for t in self._last_seen if t not in stale),
                    key=self._last_seen.__getitem__,
                )
                stale.update(live[:overflow])
            ended = [(t, self._sessions.pop(t)) for t in stale]
            for token in stale:
                del self._last_seen[token]
        for token, session in ended:
            logger.info("session expired uid=%s", session.uid)
            self._emit(token, None)
        return len(ended)

    def _end(self, token: str) -> Session | None:
        with self._lock:
            self._last_seen.pop(token, None)
            return self._sessions.pop(token, None)

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        listener_id = next(self._ids)
        with self._lock:
            self._listeners[listener_id] = callback

        def cancel() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)

        return Subscription(cancel)

    def _emit(self, token: str, session: Session | None) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for callback in listeners:
            try:
                callback(token, session)
            except Exception:
                logger.exception("session listener raised")
