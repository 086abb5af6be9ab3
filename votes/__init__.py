"""
Community vote widget: document store, identity provider and tally.

Modules:
  - store:     SQLite-backed JSON documents with atomic increment and live
               subscriptions
  - identity:  sessions (LocalIdentityProvider) and AuthError
  - tally:     per-viewer single-vote state machine over the shared counter
"""

from votes.store import DocumentExistsError, DocumentStore, StoreError, Subscription
from votes.identity import AuthError, IdentityProvider, LocalIdentityProvider, Session
from votes.tally import TallyRegistry, VoteCounts, VoteTally, VoteWriteError

__all__ = [
    "DocumentExistsError",
    "DocumentStore",
    "StoreError",
    "Subscription",
    "AuthError",
    "IdentityProvider",
    "LocalIdentityProvider",
    "Session",
    "TallyRegistry",
    "VoteCounts",
    "VoteTally",
    "VoteWriteError",
]
