"""Renderer/publisher clients used at settlement.

The renderer/publisher composites a caption onto the contest image and posts
the result. It is an external service; this module only speaks its contract:

    POST <PUBLISHER_URL>
    x-api-key: <PUBLISHER_API_KEY>
    {"imageUrl": "...", "caption": {...caption fields...}}
    -> 2xx {"ref": "<external post reference>"}

Any transport error or non-2xx status raises PublishError.
"""

import logging
from typing import Protocol

import httpx

from caption_contest.errors import PublishError
from caption_contest.schemas import Caption
from caption_contest.settings import Settings, get_settings

logger = logging.getLogger("uvicorn.error")


class CaptionPublisher(Protocol):
    async def publish(self, image_url: str, caption: Caption) -> str:
        """Render and publish one caption. Returns an external reference."""
        ...

    async def close(self) -> None: ...


class HttpCaptionPublisher:
    """Client for an HTTP renderer/publisher service."""

    def __init__(
        self,
        url: str,
        api_key: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def publish(self, image_url: str, caption: Caption) -> str:
        client = await self._get_client()
        body = {
            "imageUrl": image_url,
            "caption": caption.model_dump(by_alias=True),
        }
        headers = {"x-api-key": self.api_key} if self.api_key else {}

        try:
            resp = await client.post(self.url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise PublishError(f"Publisher request failed for caption {caption.id}: {e}") from e

        if resp.status_code >= 400:
            logger.error(f"Publisher error: {resp.status_code} - {resp.text[:200]}")
            raise PublishError(f"Publisher returned {resp.status_code} for caption {caption.id}")

        try:
            data = resp.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("ref"):
            return str(data["ref"])
        return resp.text.strip()


class LogPublisher:
    """Stand-in used when no PUBLISHER_URL is configured (local runs)."""

    async def publish(self, image_url: str, caption: Caption) -> str:
        logger.info(f"PUBLISHER_URL not set, not publishing caption {caption.id} for {image_url}")
        return f"log:{caption.id}"

    async def close(self) -> None:
        return None


def build_publisher(settings: Settings | None = None) -> CaptionPublisher:
    """Pick the publisher implementation from settings."""
    settings = settings or get_settings()
    if not settings.publisher_url:
        return LogPublisher()
    return HttpCaptionPublisher(
        url=settings.publisher_url,
        api_key=settings.publisher_api_key,
        timeout=settings.publisher_timeout_seconds,
    )
