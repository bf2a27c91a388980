"""Ranking index for top-K caption selection.

Ranking logic:
1. Sort by vote count DESC
2. Ties go to the earliest submitted caption

Both keys live in one Redis sorted-set score:
    score = votes * SCORE_SCALE - sequence
so a single ZREVRANGE returns the order above and the sort key never has to
be assembled client-side. The vote count is recovered with `decode_score`.
"""

from dataclasses import dataclass
import logging

import redis.asyncio as redis

from caption_contest.stores.redis import (
    SCORE_SCALE,
    UPSERT_SCORE_SCRIPT,
    entry_key,
    ranking_key,
    run_script,
    votes_key,
)

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class RankedEntry:
    entry_id: str
    votes: int


def encode_score(votes: int, sequence: int) -> int:
    """Encode a vote count and insertion sequence into a sortable score."""
    return votes * SCORE_SCALE - sequence


def decode_score(raw: float) -> int:
    """Recover the vote count from a stored score (ceil(raw / SCORE_SCALE))."""
    return -(-int(raw) // SCORE_SCALE)


async def upsert_score(client: redis.Redis, contest_id: str, entry_id: str, score: int) -> bool:
    """Reposition an entry in the ranking at `score` votes.

    Only existing ranking members are moved; an entry without a ranking
    record is left alone.

    Returns:
        True if the stored score changed.
    """
    changed = await run_script(
        client,
        UPSERT_SCORE_SCRIPT,
        [entry_key(contest_id, entry_id), ranking_key(contest_id)],
        [entry_id, score, SCORE_SCALE],
    )
    return bool(changed)


async def top_k(client: redis.Redis, contest_id: str, k: int) -> list[RankedEntry]:
    """Get the `k` highest ranked entries, highest score first.

    Args:
        client: Redis client.
        contest_id: Contest to rank.
        k: Number of entries; larger than the entry count returns all.

    Returns:
        List of RankedEntry, sorted by votes DESC, insertion ASC.
    """
    if k <= 0:
        return []
    rows = await client.zrevrange(ranking_key(contest_id), 0, k - 1, withscores=True)
    return [RankedEntry(entry_id=member, votes=decode_score(raw)) for member, raw in rows]


async def get_score(client: redis.Redis, contest_id: str, entry_id: str) -> int | None:
    """Get the ranked vote count for an entry, or None if it is not ranked."""
    raw = await client.zscore(ranking_key(contest_id), entry_id)
    if raw is None:
        return None
    return decode_score(raw)


async def rebuild_scores(client: redis.Redis, contest_id: str) -> int:
    """Re-derive every ranking score from its voter set.

    Returns:
        Number of entries whose stored score was corrected.
    """
    corrected = 0
    for entry_id in await client.zrange(ranking_key(contest_id), 0, -1):
        count = await client.scard(votes_key(contest_id, entry_id))
        if await upsert_score(client, contest_id, entry_id, count):
            corrected += 1
            logger.warning(f"Ranking score corrected: contest={contest_id} caption={entry_id} votes={count}")
    return corrected
