"""Unit tests for publisher clients (no network calls)."""

import json

import httpx
import pytest

from caption_contest.errors import PublishError
from caption_contest.schemas import Caption
from caption_contest.services.publisher import HttpCaptionPublisher, LogPublisher, build_publisher
from caption_contest.settings import Settings

CAPTION = Caption(
    id="c-1",
    username="alice",
    top_caption="hello",
    bottom_extended_caption="world",
    bottom_extension_white=True,
    created_at=1700000000000,
)


@pytest.mark.asyncio
async def test_http_publisher_posts_caption_and_returns_ref():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ref": "t3_abc"})

    publisher = HttpCaptionPublisher(
        "https://renderer.test/generateCaption",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )
    try:
        ref = await publisher.publish("https://img/1.png", CAPTION)
    finally:
        await publisher.close()

    assert ref == "t3_abc"
    request = seen[0]
    assert request.headers["x-api-key"] == "secret"
    body = json.loads(request.content)
    assert body["imageUrl"] == "https://img/1.png"
    assert body["caption"]["topCaption"] == "hello"
    assert body["caption"]["bottomExtendedCaption"] == "world"
    assert body["caption"]["bottomExtensionWhite"] is True


@pytest.mark.asyncio
async def test_http_publisher_falls_back_to_text_body():
    publisher = HttpCaptionPublisher(
        "https://renderer.test/generateCaption",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="post-42\n")),
    )
    assert await publisher.publish("https://img/1.png", CAPTION) == "post-42"
    await publisher.close()


@pytest.mark.asyncio
async def test_http_publisher_error_status_raises():
    publisher = HttpCaptionPublisher(
        "https://renderer.test/generateCaption",
        transport=httpx.MockTransport(lambda request: httpx.Response(403, text="Invalid API Key")),
    )
    with pytest.raises(PublishError):
        await publisher.publish("https://img/1.png", CAPTION)
    await publisher.close()


@pytest.mark.asyncio
async def test_http_publisher_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    publisher = HttpCaptionPublisher("https://renderer.test/generateCaption", transport=httpx.MockTransport(handler))
    with pytest.raises(PublishError):
        await publisher.publish("https://img/1.png", CAPTION)
    await publisher.close()


def test_build_publisher_picks_implementation():
    assert isinstance(build_publisher(Settings(PUBLISHER_URL="")), LogPublisher)
    http = build_publisher(Settings(PUBLISHER_URL="https://renderer.test/x", PUBLISHER_API_KEY="k"))
    assert isinstance(http, HttpCaptionPublisher)
    assert http.api_key == "k"


@pytest.mark.asyncio
async def test_log_publisher_returns_reference():
    assert await LogPublisher().publish("https://img/1.png", CAPTION) == "log:c-1"
