"""Session context endpoints.

GET /api/username   - caller's username (404 if the platform sent none)
GET /api/post/image - image URL of the current contest
"""

from fastapi import APIRouter, Depends
import redis.asyncio as redis

from caption_contest.dependencies import get_contest_id, get_optional_username
from caption_contest.errors import NotFound
from caption_contest.schemas import ImageResponse, UsernameResponse
from caption_contest.services.contests import get_contest
from caption_contest.stores.redis import get_redis

router = APIRouter()


@router.get("/username", response_model=UsernameResponse)
async def get_username(username: str | None = Depends(get_optional_username)) -> UsernameResponse:
    if username is None:
        raise NotFound("Username not found")
    return UsernameResponse(username=username)


@router.get("/post/image", response_model=ImageResponse)
async def get_post_image(
    contest_id: str = Depends(get_contest_id),
    client: redis.Redis = Depends(get_redis),
) -> ImageResponse:
    contest = await get_contest(client, contest_id)
    return ImageResponse(image_url=contest.image_url)
