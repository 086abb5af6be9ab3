"""
Tests for the auth and vote endpoints (api/routes/auth.py, api/routes/votes.py).

Covers the sign-in cookie flow, single-vote enforcement over HTTP, error
mapping (401/503), POST rate limiting, and the live SSE counter stream.
"""
import asyncio
import json
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from api.routes.votes import vote_events
from votes.identity import Session
from votes.store import DocumentStore, StoreError
from votes.tally import VoteTally


def _sign_in(client, uid="u1", name="Ada"):
    resp = client.post("/api/v1/auth/sign-in", json={"uid": uid, "display_name": name})
    assert resp.status_code == 200
    return resp


class TestAuth:
    def test_anonymous_session(self, client):
        data = client.get("/api/v1/auth/session").json()
        assert data["authenticated"] is False
        assert data["vote_state"] == "unauthenticated"

    def test_sign_in_sets_cookie(self, client):
        resp = _sign_in(client)
        assert "session" in resp.cookies
        data = resp.json()
        assert data["authenticated"] is True
        assert data["uid"] == "u1"
        assert data["display_name"] == "Ada"
        assert data["vote_state"] == "no_vote"

    def test_session_after_sign_in(self, client):
        _sign_in(client)
        data = client.get("/api/v1/auth/session").json()
        assert data["uid"] == "u1"

    def test_sign_in_with_existing_vote(self, client, store):
        store.create("userVotes", "u1", {"vote": "against", "timestamp": "t"})
        data = _sign_in(client).json()
        assert data["vote_state"] == "voted"
        assert data["vote"] == "against"

    def test_sign_out(self, client):
        _sign_in(client)
        resp = client.post("/api/v1/auth/sign-out")
        assert resp.status_code == 200
        assert resp.json()["authenticated"] is False
        client.cookies.clear()
        assert client.get("/api/v1/auth/session").json()["authenticated"] is False

    def test_sign_out_without_session_is_401(self, client):
        resp = client.post("/api/v1/auth/sign-out")
        assert resp.status_code == 401
        assert resp.json()["error"] == "Unauthorized"

    def test_blank_uid_is_422(self, client):
        resp = client.post("/api/v1/auth/sign-in", json={"uid": ""})
        assert resp.status_code == 422

    def test_switching_identity_re_evaluates(self, client, store):
        store.create("userVotes", "u1", {"vote": "support"})
        assert _sign_in(client, "u1").json()["vote_state"] == "voted"
        assert _sign_in(client, "u2").json()["vote_state"] == "no_vote"


class TestGetVotes:
    def test_no_votes_yet(self, client):
        data = client.get("/api/v1/votes").json()
        assert data["counts"] == {"support": 0, "against": 0, "total": 0, "support_fraction": 0.5}
        assert data["vote_state"] == "unauthenticated"

    def test_existing_counter(self, client, store):
        store.set("votes", "salesData", {"support": 3, "against": 1})
        data = client.get("/api/v1/votes").json()
        assert data["counts"]["support_fraction"] == 0.75


class TestCastVote:
    def test_requires_sign_in(self, client, store):
        resp = client.post("/api/v1/votes", json={"vote": "support"})
        assert resp.status_code == 401
        assert store.get("votes", "salesData") is None

    def test_first_vote_initializes_counter(self, client, store):
        _sign_in(client)
        resp = client.post("/api/v1/votes", json={"vote": "support"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["vote_state"] == "voted"
        assert data["vote"] == "support"
        assert data["counts"]["support"] == 1
        assert store.get("votes", "salesData") == {"support": 1, "against": 0}
        assert store.get("userVotes", "u1")["vote"] == "support"

    def test_second_vote_does_not_count(self, client, store):
        _sign_in(client)
        client.post("/api/v1/votes", json={"vote": "support"})
        resp = client.post("/api/v1/votes", json={"vote": "against"})
        assert resp.status_code == 200
        assert resp.json()["vote"] == "support"
        assert store.get("votes", "salesData") == {"support": 1, "against": 0}

    def test_vote_again_after_new_session_does_not_count(self, client, store):
        _sign_in(client)
        client.post("/api/v1/votes", json={"vote": "support"})
        client.post("/api/v1/auth/sign-out")
        data = _sign_in(client).json()
        assert data["vote_state"] == "voted"
        client.post("/api/v1/votes", json={"vote": "against"})
        assert store.get("votes", "salesData") == {"support": 1, "against": 0}

    def test_invalid_vote_is_422(self, client):
        _sign_in(client)
        assert client.post("/api/v1/votes", json={"vote": "maybe"}).status_code == 422

    def test_store_failure_is_503_and_retryable(self, client, store):
        _sign_in(client)
        with patch.object(DocumentStore, "increment", side_effect=StoreError("disk full")):
            resp = client.post("/api/v1/votes", json={"vote": "support"})
        assert resp.status_code == 503
        assert resp.json()["error"] == "Vote not recorded"
        assert client.get("/api/v1/auth/session").json()["vote_state"] == "no_vote"
        assert client.post("/api/v1/votes", json={"vote": "support"}).status_code == 200
        assert store.get("votes", "salesData") == {"support": 1, "against": 0}

    def test_two_viewers(self, app, store):
        alice, bob = TestClient(app), TestClient(app)
        _sign_in(alice, "alice")
        _sign_in(bob, "bob")
        alice.post("/api/v1/votes", json={"vote": "support"})
        data = bob.post("/api/v1/votes", json={"vote": "against"}).json()
        assert data["counts"] == {"support": 1, "against": 1, "total": 2, "support_fraction": 0.5}


class TestRateLimit:
    def test_vote_posts_limited(self, app_config, sample_records, store, identity):
        from api.app import create_app
        from sales.loader import SalesDataset

        app_config.rate_limit_votes = 2
        app = create_app(config=app_config, dataset=SalesDataset.from_records(sample_records),
                         store=store, identity=identity)
        client = TestClient(app)
        for _ in range(2):
            client.post("/api/v1/votes", json={"vote": "support"})
        resp = client.post("/api/v1/votes", json={"vote": "support"})
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "60"
        # Reads are not affected by the POST limit.
        assert client.get("/api/v1/votes").status_code == 200


class TestVoteStream:
    def test_stream_route_registered(self, app):
        paths = {getattr(r, "path", "") for r in app.routes}
        assert "/api/v1/votes/stream" in paths

    def test_events_and_release_on_close(self, store):
        async def never_disconnected():
            return False

        async def scenario():
            watcher = VoteTally(store)
            events = vote_events(watcher.watch, never_disconnected, keepalive=5)
            first = await events.__anext__()
            assert store.subscriber_count("votes", "salesData") == 1

            voter = VoteTally(store)
            voter.attach(Session(uid="u1"))
            voter.cast_vote("against")
            second = await events.__anext__()

            await events.aclose()
            return first, second

        first, second = asyncio.run(scenario())
        assert first.startswith("event: votes\n")
        assert json.loads(first.split("data: ", 1)[1])["total"] == 0
        payload = json.loads(second.split("data: ", 1)[1])
        assert payload["against"] == 1
        assert payload["support_fraction"] == 0.0
        assert store.subscriber_count("votes", "salesData") == 0

    def test_keepalive_when_idle(self, store):
        async def never_disconnected():
            return False

        async def scenario():
            events = vote_events(VoteTally(store).watch, never_disconnected, keepalive=0.01)
            await events.__anext__()          # initial snapshot
            frame = await events.__anext__()  # nothing changed
            await events.aclose()
            return frame

        assert asyncio.run(scenario()) == ": keep-alive\n\n"
        assert store.subscriber_count("votes", "salesData") == 0

    def test_disconnect_ends_stream(self, store):
        async def disconnected():
            return True

        async def scenario():
            frames = [f async for f in vote_events(VoteTally(store).watch, disconnected)]
            return frames

        assert asyncio.run(scenario()) == []
        assert store.subscriber_count("votes", "salesData") == 0
