"""Caption endpoints.

POST /api/captions/create            - submit a caption to the current contest
POST /api/captions/{captionId}/upvote - toggle the caller's upvote
GET  /api/captions                   - all captions with votes and caller state
GET  /api/captions/mine              - captions the caller authored

Routers are thin: call services for business logic.
"""

from fastapi import APIRouter, Depends, Path
import redis.asyncio as redis

from caption_contest.dependencies import ID_PATTERN, get_contest_id, get_current_username
from caption_contest.errors import SelfVote
from caption_contest.schemas import (
    AuthoredCaptionsResponse,
    CaptionListResponse,
    CaptionPayload,
    CaptionResponse,
    UpvoteResponse,
)
from caption_contest.services.entries import (
    create_entry,
    get_entry,
    list_authored_by,
    list_entries_with_votes,
)
from caption_contest.services.votes import toggle_vote
from caption_contest.stores.redis import get_redis

router = APIRouter()


@router.post("/create", response_model=CaptionResponse)
async def create_caption(
    payload: CaptionPayload,
    contest_id: str = Depends(get_contest_id),
    username: str = Depends(get_current_username),
    client: redis.Redis = Depends(get_redis),
) -> CaptionResponse:
    """Submit a caption. The id and author come from the server, not the body."""
    caption = await create_entry(client, contest_id, username, payload)
    return CaptionResponse(caption=caption)


@router.post("/{caption_id}/upvote", response_model=UpvoteResponse)
async def upvote_caption(
    caption_id: str = Path(min_length=1, max_length=100, pattern=ID_PATTERN),
    contest_id: str = Depends(get_contest_id),
    username: str = Depends(get_current_username),
    client: redis.Redis = Depends(get_redis),
) -> UpvoteResponse:
    """Toggle the caller's upvote; returns the new membership state."""
    caption = await get_entry(client, contest_id, caption_id)
    if caption.username == username:
        raise SelfVote()

    user_upvoted = await toggle_vote(client, contest_id, caption_id, username)
    return UpvoteResponse(user_upvoted=user_upvoted)


@router.get("", response_model=CaptionListResponse)
async def get_captions(
    contest_id: str = Depends(get_contest_id),
    username: str = Depends(get_current_username),
    client: redis.Redis = Depends(get_redis),
) -> CaptionListResponse:
    """All captions, highest voted first."""
    captions = await list_entries_with_votes(client, contest_id, username)
    return CaptionListResponse(captions=captions)


@router.get("/mine", response_model=AuthoredCaptionsResponse)
async def get_my_captions(
    contest_id: str = Depends(get_contest_id),
    username: str = Depends(get_current_username),
    client: redis.Redis = Depends(get_redis),
) -> AuthoredCaptionsResponse:
    """Captions the caller submitted; empty means the client shows a draft."""
    captions = await list_authored_by(client, contest_id, username)
    return AuthoredCaptionsResponse(captions=captions)
