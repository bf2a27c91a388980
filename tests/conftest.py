"""Shared fixtures: in-memory Redis, fake publisher, API client."""

import fakeredis
import pytest
from httpx import ASGITransport, AsyncClient

from caption_contest.dependencies import get_publisher
from caption_contest.errors import PublishError
from caption_contest.main import app
from caption_contest.schemas import Caption, CaptionPayload, Contest
from caption_contest.services.contests import create_contest
from caption_contest.services.scheduler import RedisScheduler
from caption_contest.settings import get_settings
from caption_contest.stores.redis import get_redis


class RecordingPublisher:
    """Publisher double: records calls, fails for chosen caption ids."""

    def __init__(self, fail_ids: set[str] | None = None):
        self.calls: list[tuple[str, str]] = []
        self.fail_ids = fail_ids if fail_ids is not None else set()

    async def publish(self, image_url: str, caption: Caption) -> str:
        self.calls.append((image_url, caption.id))
        if caption.id in self.fail_ids:
            raise PublishError(f"renderer rejected {caption.id}")
        return f"post-{caption.id}"

    async def close(self) -> None:
        return None


def payload(text: str = "when the tests pass", **extra) -> CaptionPayload:
    return CaptionPayload(top_caption=text, **extra)


def headers(username: str | None = None, contest_id: str | None = None) -> dict[str, str]:
    settings = get_settings()
    out: dict[str, str] = {}
    if username is not None:
        out[settings.user_header] = username
    if contest_id is not None:
        out[settings.contest_header] = contest_id
    return out


@pytest.fixture
async def redis_client():
    """Fresh in-memory Redis (with Lua scripting)."""
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    await client.flushall()
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def scheduler(redis_client) -> RedisScheduler:
    return RedisScheduler(redis_client, lease_seconds=60)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
async def contest(redis_client, scheduler) -> Contest:
    return await create_contest(redis_client, scheduler, "https://images.example/cat.png", duration_seconds=3600)


@pytest.fixture
async def client(redis_client, publisher):
    """Create test client wired to the in-memory Redis and fake publisher."""
    app.dependency_overrides[get_redis] = lambda: redis_client
    app.dependency_overrides[get_publisher] = lambda: publisher
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
