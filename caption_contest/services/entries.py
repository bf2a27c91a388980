"""Entry store: caption submissions scoped to a contest.

A caption is one Redis hash plus exactly one ranking member. Both are written
by a single Lua script together with the author index, so they cannot
diverge and no rollback path is needed.
"""

import logging
import time
from uuid import uuid4

import redis.asyncio as redis

from caption_contest.errors import ContestFull, ContestNotFound, DuplicateEntry, EntryNotFound
from caption_contest.schemas import Caption, CaptionPayload, CaptionWithUpvotes, ContestStatus
from caption_contest.settings import get_settings
from caption_contest.stores.redis import (
    CREATE_ENTRY_SCRIPT,
    SCORE_SCALE,
    author_entries_key,
    authors_key,
    contest_key,
    entry_key,
    ranking_key,
    run_script,
    sequence_key,
    votes_key,
)

logger = logging.getLogger("uvicorn.error")


def _to_redis(caption: Caption) -> dict[str, str]:
    return {
        "id": caption.id,
        "username": caption.username,
        "topCaption": caption.top_caption or "",
        "bottomCaption": caption.bottom_caption or "",
        "topExtendedCaption": caption.top_extended_caption or "",
        "bottomExtendedCaption": caption.bottom_extended_caption or "",
        "topExtensionWhite": "true" if caption.top_extension_white else "false",
        "bottomExtensionWhite": "true" if caption.bottom_extension_white else "false",
        "createdAt": str(caption.created_at),
    }


def _from_redis(data: dict[str, str]) -> Caption:
    return Caption(
        id=data["id"],
        username=data["username"],
        top_caption=data.get("topCaption") or None,
        bottom_caption=data.get("bottomCaption") or None,
        top_extended_caption=data.get("topExtendedCaption") or None,
        bottom_extended_caption=data.get("bottomExtendedCaption") or None,
        top_extension_white=data.get("topExtensionWhite") == "true",
        bottom_extension_white=data.get("bottomExtensionWhite") == "true",
        created_at=int(data.get("createdAt") or 0),
    )


async def create_entry(
    client: redis.Redis,
    contest_id: str,
    author_id: str,
    payload: CaptionPayload,
    *,
    max_per_author: int | None = None,
) -> Caption:
    """Create a caption and register it in the ranking at zero votes.

    Args:
        client: Redis client.
        contest_id: Contest the caption belongs to.
        author_id: Username of the author.
        payload: Validated caption payload.
        max_per_author: Captions one author may hold in this contest
            (defaults to MAX_CAPTIONS_PER_USER).

    Returns:
        The stored caption with its generated id.

    Raises:
        ContestNotFound: The contest is closed (settling or cancelled), purged,
            or never existed.
        DuplicateEntry: The author already reached the per-author limit.
        ContestFull: The contest's sequence space is exhausted.
    """
    if max_per_author is None:
        max_per_author = get_settings().max_captions_per_user

    caption = Caption(
        id=str(uuid4()),
        username=author_id,
        created_at=int(time.time() * 1000),
        **payload.model_dump(),
    )
    fields: list[str] = []
    for field, value in _to_redis(caption).items():
        fields.extend((field, value))

    result = await run_script(
        client,
        CREATE_ENTRY_SCRIPT,
        [
            contest_key(contest_id),
            sequence_key(contest_id),
            entry_key(contest_id, caption.id),
            ranking_key(contest_id),
            authors_key(contest_id),
            author_entries_key(contest_id, author_id),
        ],
        [caption.id, author_id, max_per_author, SCORE_SCALE, ContestStatus.SCHEDULED.value, *fields],
    )
    if result == -1:
        raise ContestNotFound(contest_id)
    if result == -2:
        raise DuplicateEntry()
    if result == -3:
        raise ContestFull()

    logger.info(f"Caption created: contest={contest_id} caption={caption.id} author={author_id}")
    return caption


async def get_entry(client: redis.Redis, contest_id: str, entry_id: str) -> Caption:
    """Get a caption by id.

    Raises:
        EntryNotFound: No such caption (possibly purged by settlement).
    """
    data = await client.hgetall(entry_key(contest_id, entry_id))
    if not data:
        raise EntryNotFound(contest_id, entry_id)
    return _from_redis(data)


async def list_authored_by(client: redis.Redis, contest_id: str, author_id: str) -> list[Caption]:
    """List the captions an author submitted to a contest, oldest first.

    An empty list means the author has nothing stored yet; clients show their
    own local draft in that case.
    """
    entry_ids = await client.smembers(author_entries_key(contest_id, author_id))
    if not entry_ids:
        return []

    async with client.pipeline(transaction=False) as pipe:
        for entry_id in entry_ids:
            pipe.hgetall(entry_key(contest_id, entry_id))
        rows = await pipe.execute()

    captions = [_from_redis(row) for row in rows if row]
    captions.sort(key=lambda c: c.created_at)
    return captions


async def list_entries_with_votes(
    client: redis.Redis,
    contest_id: str,
    voter_id: str,
) -> list[CaptionWithUpvotes]:
    """List every caption in ranking order with its votes and the caller's vote.

    Ranking members without a caption record are skipped and logged.
    """
    entry_ids = await client.zrevrange(ranking_key(contest_id), 0, -1)
    if not entry_ids:
        return []

    async with client.pipeline(transaction=False) as pipe:
        for entry_id in entry_ids:
            pipe.hgetall(entry_key(contest_id, entry_id))
            pipe.scard(votes_key(contest_id, entry_id))
            pipe.sismember(votes_key(contest_id, entry_id), voter_id)
        rows = await pipe.execute()

    captions: list[CaptionWithUpvotes] = []
    for i, entry_id in enumerate(entry_ids):
        data, upvotes, voted = rows[3 * i : 3 * i + 3]
        if not data:
            logger.warning(f"Ranked caption without record, skipping: contest={contest_id} caption={entry_id}")
            continue
        caption = _from_redis(data)
        captions.append(
            CaptionWithUpvotes(
                **caption.model_dump(),
                upvotes=upvotes,
                user_upvoted=bool(voted),
            )
        )
    return captions
