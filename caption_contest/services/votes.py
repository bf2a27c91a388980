"""Vote store: per-caption voter sets with toggle semantics.

Votes are a set, not a counter. A toggle flips one voter's membership and
rewrites the caption's ranking score from the set cardinality in the same
Lua script, so concurrent toggles on one caption never lose an update and
the ranking never lags the votes.
"""

import logging

import redis.asyncio as redis

from caption_contest.errors import ContestNotFound, EntryNotFound
from caption_contest.schemas import ContestStatus
from caption_contest.stores.redis import (
    SCORE_SCALE,
    TOGGLE_VOTE_SCRIPT,
    contest_key,
    entry_key,
    ranking_key,
    run_script,
    votes_key,
)

logger = logging.getLogger("uvicorn.error")


async def toggle_vote(client: redis.Redis, contest_id: str, entry_id: str, voter_id: str) -> bool:
    """Cast the vote if absent, retract it if present.

    Self-vote policy is the caller's job; this only manages membership.

    Returns:
        New membership state (True = now upvoted).

    Raises:
        ContestNotFound: The contest is closed or gone (settling, settled or cancelled).
        EntryNotFound: The caption is gone.
    """
    result = await run_script(
        client,
        TOGGLE_VOTE_SCRIPT,
        [
            contest_key(contest_id),
            entry_key(contest_id, entry_id),
            votes_key(contest_id, entry_id),
            ranking_key(contest_id),
        ],
        [voter_id, entry_id, SCORE_SCALE, ContestStatus.SCHEDULED.value],
    )
    if result == -1:
        raise ContestNotFound(contest_id)
    if result == -2:
        raise EntryNotFound(contest_id, entry_id)

    voted, count = result
    logger.info(
        f"Vote toggled: contest={contest_id} caption={entry_id} voter={voter_id} "
        f"upvoted={bool(voted)} count={count}"
    )
    return bool(voted)


async def count_votes(client: redis.Redis, contest_id: str, entry_id: str) -> int:
    """Current number of voters for a caption."""
    return await client.scard(votes_key(contest_id, entry_id))


async def has_voted(client: redis.Redis, contest_id: str, entry_id: str, voter_id: str) -> bool:
    """Whether `voter_id` currently upvotes the caption."""
    return bool(await client.sismember(votes_key(contest_id, entry_id), voter_id))
