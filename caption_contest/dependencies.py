"""FastAPI dependencies: request context and injected collaborators.

Routes never reach for process-wide clients directly; they receive the Redis
client, scheduler and publisher through these dependencies, which tests
replace via `app.dependency_overrides`.
"""

import re

from fastapi import Depends, Header, Request
import redis.asyncio as redis

from caption_contest.errors import MissingField, Unauthenticated, ValidationError
from caption_contest.services.publisher import CaptionPublisher, build_publisher
from caption_contest.services.scheduler import RedisScheduler
from caption_contest.settings import get_settings
from caption_contest.stores.redis import get_redis

# Contest and caption ids become part of Redis keys
ID_PATTERN = r"^[a-zA-Z0-9_-]+$"

# Publisher (initialized on startup)
_publisher: CaptionPublisher | None = None


async def init_publisher() -> None:
    """Create the renderer/publisher client."""
    global _publisher
    _publisher = build_publisher()


async def close_publisher() -> None:
    """Close the renderer/publisher client."""
    global _publisher
    if _publisher:
        await _publisher.close()
        _publisher = None


def get_publisher() -> CaptionPublisher:
    if _publisher is None:
        raise RuntimeError("Publisher not initialized. Call init_publisher() first.")
    return _publisher


def get_scheduler(client: redis.Redis = Depends(get_redis)) -> RedisScheduler:
    return RedisScheduler(client)


def get_optional_username(request: Request) -> str | None:
    """Username forwarded by the hosting platform, if any."""
    value = request.headers.get(get_settings().user_header, "").strip()
    return value or None


def get_current_username(username: str | None = Depends(get_optional_username)) -> str:
    if username is None:
        raise Unauthenticated()
    return username


def get_contest_id(request: Request) -> str:
    """Contest (post) the request is scoped to."""
    value = request.headers.get(get_settings().contest_header, "").strip()
    if not value:
        raise MissingField("Contest ID")
    if len(value) > 100 or not re.match(ID_PATTERN, value):
        raise ValidationError("Invalid Contest ID")
    return value


def require_admin(x_api_key: str | None = Header(default=None)) -> None:
    """Check the admin API key when ADMIN_API_KEY is configured."""
    expected = get_settings().admin_api_key
    if expected and x_api_key != expected:
        raise Unauthenticated("Invalid API key")
