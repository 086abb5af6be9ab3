"""
Session endpoints.

POST /api/v1/auth/sign-in   → start a session, set the ``session`` cookie
                              (development sign-in with the local provider)
POST /api/v1/auth/sign-out  → end the session, clear the cookie
GET  /api/v1/auth/session   → who is signed in and their vote state
"""

import logging

from fastapi import APIRouter, Depends, Request, Response

from api.dependencies import (
    SESSION_COOKIE,
    get_identity,
    get_session_token,
    get_tallies,
)
from api.models import ErrorResponse, SessionOut, SignInRequest
from votes.identity import AuthError, IdentityProvider
from votes.tally import TallyRegistry, VoteTally

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={401: {"model": ErrorResponse, "description": "No active session"}},
)


def _session_body(tally: VoteTally) -> dict:
    session = tally.session
    return {
        "authenticated": session is not None,
        "uid": session.uid if session else None,
        "display_name": session.display_name if session else None,
        "photo_url": session.photo_url if session else None,
        "vote_state": tally.state,
        "vote": tally.vote,
    }


@router.post("/sign-in", response_model=SessionOut, summary="Sign in")
def sign_in(
    body: SignInRequest,
    request: Request,
    response: Response,
    identity: IdentityProvider = Depends(get_identity),
) -> dict:
    """Start a session for ``uid``.

    With the bundled LocalIdentityProvider this is a development sign-in:
    the client-supplied ``uid`` is trusted as-is and no credential is
    checked.  Production deployments must install a real IdentityProvider.

    Any session already carried by the request is ended first, so the vote
    state is always evaluated for the identity that just signed in.
    """
    tallies = get_tallies(request)
    previous = get_session_token(request)
    if previous and identity.session(previous) is not None:
        identity.sign_out(previous)
    session = identity.sign_in(body.uid, body.display_name, body.photo_url)
    response.set_cookie(
        SESSION_COOKIE, session.token, httponly=True, samesite="lax",
    )
    return _session_body(tallies.for_token(session.token))


@router.post("/sign-out", response_model=SessionOut, summary="Sign out")
def sign_out(
    request: Request,
    response: Response,
    identity: IdentityProvider = Depends(get_identity),
    tallies: TallyRegistry = Depends(get_tallies),
) -> dict:
    token = get_session_token(request)
    if not token:
        raise AuthError("Not signed in")
    identity.sign_out(token)
    response.delete_cookie(SESSION_COOKIE)
    return _session_body(tallies.for_token(None))


@router.get("/session", response_model=SessionOut, summary="Current session")
def current_session(request: Request, tallies: TallyRegistry = Depends(get_tallies)) -> dict:
    return _session_body(tallies.for_token(get_session_token(request)))
