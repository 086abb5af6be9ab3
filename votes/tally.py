"""
Vote tally: one viewer's single-vote state machine over the shared counter.

States::

    UNAUTHENTICATED --attach(session)--> NO_VOTE | VOTED
    NO_VOTE         --cast_vote(kind)--> VOTED
    VOTED           (terminal for that identity)
    any             --attach(None)-----> UNAUTHENTICATED

Casting writes two documents in one store batch, record first:

    userVotes/<uid>   {"vote": kind, "timestamp": ISO-8601 UTC}   write-once
    votes/salesData   {"support": n, "against": m}                atomic +1

If the batch fails nothing is written and the viewer stays in NO_VOTE, so the
vote can be retried.  The counter is only ever changed through the store's
atomic increment; there is no read-modify-write on the client side.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from utils.config import USER_VOTES_COLLECTION, VOTE_KINDS, VOTES_COLLECTION, VOTES_DOC_ID
from votes.identity import AuthError, IdentityProvider, Session
from votes.store import DocumentExistsError, DocumentStore, StoreError, Subscription

logger = logging.getLogger(__name__)


class VoteWriteError(Exception):
    """Recording the vote or incrementing the counter failed; retry is allowed."""


@dataclass(frozen=True)
class VoteCounts:
    """Snapshot of the shared two-bucket counter."""

    support: int = 0
    against: int = 0

    @classmethod
    def from_document(cls, doc: dict[str, Any] | None) -> "VoteCounts":
        if not doc:
            return cls()

        def count(name: str) -> int:
            try:
                return max(int(doc.get(name) or 0), 0)
            except (TypeError, ValueError):
                return 0

        return cls(support=count("support"), against=count("against"))

    @property
    def total(self) -> int:
        return self.support + self.against

    @property
    def support_fraction(self) -> float:
        """Share of support votes; 0.5 when nobody has voted yet."""
        if self.total == 0:
            return 0.5
        return self.support / self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "support": self.support,
            "against": self.against,
            "total": self.total,
            "support_fraction": self.support_fraction,
        }


class VoteTally:
    """Vote state for one viewer."""

    UNAUTHENTICATED = "unauthenticated"
    NO_VOTE = "no_vote"
    VOTED = "voted"

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self.session: Session | None = None
        self.state = self.UNAUTHENTICATED
        self.vote: str | None = None

    def attach(self, session: Session | None) -> str:
        """Enter the state for *session* (``None`` signs the viewer out).

        On sign-in the viewer's existing vote record decides between
        NO_VOTE and VOTED.  If that read fails the viewer starts in NO_VOTE;
        the write-once record still blocks a second vote at cast time.
        """
        with self._lock:
            self.session = session
            self.vote = None
            if session is None:
                self.state = self.UNAUTHENTICATED
                return self.state
            self.state = self.NO_VOTE
            try:
                record = self._store.get(USER_VOTES_COLLECTION, session.uid)
            except StoreError as exc:
                logger.warning("could not read vote record uid=%s: %s", session.uid, exc)
                return self.state
            if record and record.get("vote") in VOTE_KINDS:
                self.state = self.VOTED
                self.vote = record["vote"]
            return self.state

    def cast_vote(self, kind: str) -> str:
        """Record *kind* for the signed-in identity and bump the counter.

        Returns:
            The viewer's vote.  When already VOTED this is the earlier vote
            and nothing is written.

        Raises:
            ValueError: *kind* is not "support" or "against".
            AuthError: no identity is attached.
            VoteWriteError: the store rejected the writes; state is unchanged.
        """
        if kind not in VOTE_KINDS:
            raise ValueError(f"vote must be one of: {', '.join(VOTE_KINDS)}")
        with self._lock:
            if self.session is None:
                raise AuthError("Sign in to vote")
            if self.state == self.VOTED:
                return self.vote
            uid = self.session.uid
            record = {
                "vote": kind,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            try:
                with self._store.batch():
                    self._store.create(USER_VOTES_COLLECTION, uid, record)
                    self._store.increment(
                        VOTES_COLLECTION, VOTES_DOC_ID, kind, 1,
                        initial={k: 0 for k in VOTE_KINDS},
                    )
            except DocumentExistsError:
                # Voted from another session of the same identity.
                return self._adopt_existing_vote(uid)
            except StoreError as exc:
                logger.error("vote write failed uid=%s vote=%s: %s", uid, kind, exc)
                raise VoteWriteError(f"Could not record vote: {exc}") from exc
            self.state = self.VOTED
            self.vote = kind
            logger.info("vote recorded uid=%s vote=%s", uid, kind)
            return kind

    def _adopt_existing_vote(self, uid: str) -> str:
        try:
            existing = self._store.get(USER_VOTES_COLLECTION, uid)
        except StoreError as exc:
            logger.error("could not read existing vote uid=%s: %s", uid, exc)
            raise VoteWriteError(f"Could not confirm existing vote: {exc}") from exc
        vote = (existing or {}).get("vote")
        if vote not in VOTE_KINDS:
            raise VoteWriteError(f"Vote record for {uid} is malformed")
        self.state = self.VOTED
        self.vote = vote
        return vote

    def counts(self) -> VoteCounts:
        return VoteCounts.from_document(self._store.get(VOTES_COLLECTION, VOTES_DOC_ID))

    def watch(self, callback: Callable[[VoteCounts], None]) -> Subscription:
        """Subscribe to the shared counter; cancel the result to stop."""
        return self._store.subscribe(
            VOTES_COLLECTION, VOTES_DOC_ID,
            lambda doc: callback(VoteCounts.from_document(doc)),
        )


class TallyRegistry:
    """One VoteTally per signed-in session, kept in step with the provider."""

    def __init__(self, store: DocumentStore, identity: IdentityProvider) -> None:
        self._store = store
        self._identity = identity
        self._tallies: dict[str, VoteTally] = {}
        self._lock = threading.Lock()
        self._subscription = identity.on_session_change(self._on_session_change)

    def _on_session_change(self, token: str, session: Session | None) -> None:
        if session is None:
            with self._lock:
                tally = self._tallies.pop(token, None)
            if tally is not None:
                tally.attach(None)
            return
        tally = VoteTally(self._store)
        tally.attach(session)
        with self._lock:
            self._tallies[token] = tally

    def for_token(self, token: str | None) -> VoteTally:
        """The viewer's tally; an unauthenticated one for unknown or expired tokens."""
        session = self._identity.session(token) if token else None
        if session is not None:
            with self._lock:
                tally = self._tallies.get(token)
            if tally is None:
                self._on_session_change(token, session)
                with self._lock:
                    tally = self._tallies.get(token)
            if tally is not None:
                return tally
        return VoteTally(self._store)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tallies)

    def close(self) -> None:
        self._subscription.cancel()
        with self._lock:
            self._tallies.clear()
