"""
Community vote endpoints.

GET  /api/v1/votes         → shared counter plus the viewer's vote state
POST /api/v1/votes         → cast the viewer's single vote
GET  /api/v1/votes/stream  → Server-Sent Events; one ``votes`` event per
                             counter change, starting with the current value
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from api.dependencies import get_tallies, get_viewer_tally
from api.models import ErrorResponse, VoteRequest, VoteStatusOut
from votes.store import Subscription
from votes.tally import TallyRegistry, VoteCounts, VoteTally

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/votes",
    tags=["votes"],
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        503: {"model": ErrorResponse, "description": "Vote store unavailable or write failed"},
    },
)

# Seconds between keep-alive comments on an idle stream.
KEEPALIVE_SECONDS = 15.0


def _status_body(tally: VoteTally) -> dict:
    return {
        "counts": tally.counts().to_dict(),
        "vote_state": tally.state,
        "vote": tally.vote,
    }


@router.get("", response_model=VoteStatusOut, summary="Vote counts")
def get_votes(tally: VoteTally = Depends(get_viewer_tally)) -> dict:
    """Current counter, support fraction (0.5 with no votes) and viewer state."""
    return _status_body(tally)


@router.post("", response_model=VoteStatusOut, summary="Cast a vote")
def cast_vote(body: VoteRequest, tally: VoteTally = Depends(get_viewer_tally)) -> dict:
    """Record the viewer's vote and increment the shared counter once.

    Returns 401 without a session.  A viewer who already voted gets their
    existing vote back and the counter is not touched.  A failed write
    returns 503 and the vote can be retried.
    """
    tally.cast_vote(body.vote)
    return _status_body(tally)


async def vote_events(
    watch: Callable[[Callable[[VoteCounts], None]], Subscription],
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """Yield SSE frames for every counter snapshot delivered by *watch*.

    The subscription is cancelled when the generator is closed, which
    happens when the client disconnects.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[VoteCounts] = asyncio.Queue()

    def push(counts: VoteCounts) -> None:
        if loop.is_closed():
            return
        loop.call_soon_threadsafe(queue.put_nowait, counts)

    subscription = await run_in_threadpool(watch, push)
    try:
        while not await is_disconnected():
            try:
                counts = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            yield f"event: votes\ndata: {json.dumps(counts.to_dict())}\n\n"
    finally:
        subscription.cancel()
        logger.debug("vote stream closed")


@router.get("/stream", summary="Live vote counter (SSE)")
async def stream_votes(
    request: Request,
    tallies: TallyRegistry = Depends(get_tallies),
) -> StreamingResponse:
    tally = tallies.for_token(None)
    return StreamingResponse(
        vote_events(tally.watch, request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
