"""Contest registry: records, status transitions, cancellation and purge.

Status lifecycle:
    scheduled -> running   (settlement claimed the contest at its deadline)
    scheduled -> cancelled (moderator cancelled before the deadline)

Only a `scheduled` contest accepts captions and votes: the entry/vote scripts
check the status, so leaving `scheduled` closes the contest to writes even
before anything is deleted.

Completed and cancelled contests are purged, so absence of the record is the
terminal state. Purge deletes the contest record before anything else, and a
purge that died halfway is finished by the next call.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
from uuid import uuid4

import redis.asyncio as redis

from caption_contest.errors import ContestNotFound, SchedulerError
from caption_contest.schemas import Contest, ContestStatus
from caption_contest.services.scheduler import RedisScheduler
from caption_contest.settings import get_settings
from caption_contest.stores.redis import (
    TRANSITION_STATUS_SCRIPT,
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

SETTLE_CONTEST_JOB = "settle_contest"

# Keys deleted per round trip during purge
PURGE_BATCH = 500


class ClaimResult(str, Enum):
    CLAIMED = "claimed"
    ALREADY_RUNNING = "already_running"
    CANCELLED = "cancelled"
    MISSING = "missing"


def settlement_job_id(contest_id: str) -> str:
    """Stable job id: one pending settlement job per contest."""
    return f"settle:{contest_id}"


async def create_contest(
    client: redis.Redis,
    scheduler: RedisScheduler,
    image_url: str,
    *,
    duration_seconds: int | None = None,
    now: datetime | None = None,
) -> Contest:
    """Launch a contest and schedule its settlement at the deadline.

    Raises:
        SchedulerError: Scheduling failed; the contest record is removed again.
    """
    duration_seconds = duration_seconds or get_settings().contest_duration_seconds
    created_at = now or datetime.now(timezone.utc)
    contest = Contest(
        id=uuid4().hex,
        image_url=image_url,
        created_at=created_at,
        deadline=created_at + timedelta(seconds=duration_seconds),
        status=ContestStatus.SCHEDULED,
    )

    key = contest_key(contest.id)
    await client.hset(
        key,
        mapping={
            "id": contest.id,
            "imageUrl": contest.image_url,
            "createdAt": contest.created_at.isoformat(),
            "deadline": contest.deadline.isoformat(),
            "status": contest.status.value,
        },
    )

    try:
        job_id = await scheduler.schedule_at(
            contest.deadline,
            SETTLE_CONTEST_JOB,
            {"contestId": contest.id},
            job_id=settlement_job_id(contest.id),
        )
    except SchedulerError:
        await client.delete(key)
        raise

    await client.hset(key, "jobId", job_id)
    contest.job_id = job_id

    logger.info(f"Contest created: id={contest.id} deadline={contest.deadline.isoformat()}")
    return contest


def _contest_from_redis(data: dict[str, str]) -> Contest:
    return Contest(
        id=data["id"],
        image_url=data["imageUrl"],
        created_at=datetime.fromisoformat(data["createdAt"]),
        deadline=datetime.fromisoformat(data["deadline"]),
        job_id=data.get("jobId") or None,
        status=ContestStatus(data.get("status", ContestStatus.SCHEDULED.value)),
    )


async def get_contest(client: redis.Redis, contest_id: str) -> Contest:
    """Get a contest by id.

    Raises:
        ContestNotFound: Never existed, settled or cancelled.
    """
    data = await client.hgetall(contest_key(contest_id))
    if not data:
        raise ContestNotFound(contest_id)
    return _contest_from_redis(data)


async def _transition(client: redis.Redis, contest_id: str, expected: ContestStatus, new: ContestStatus) -> str:
    return await run_script(
        client,
        TRANSITION_STATUS_SCRIPT,
        [contest_key(contest_id)],
        [expected.value, new.value],
    )


async def claim_settlement(client: redis.Redis, contest_id: str) -> ClaimResult:
    """Atomically move a contest from scheduled to running."""
    result = await _transition(client, contest_id, ContestStatus.SCHEDULED, ContestStatus.RUNNING)
    if result == "ok":
        return ClaimResult.CLAIMED
    if result == ContestStatus.RUNNING.value:
        return ClaimResult.ALREADY_RUNNING
    if result == ContestStatus.CANCELLED.value:
        return ClaimResult.CANCELLED
    return ClaimResult.MISSING


async def cancel_contest(client: redis.Redis, scheduler: RedisScheduler, contest_id: str) -> bool:
    """Cancel a scheduled contest: purge it, then revoke its settlement job.

    The status flip closes the contest to writes and the purge runs before
    the job is revoked, so a failed revoke leaves only a job that settles
    to a no-op.

    Returns:
        True if the contest was cancelled; False if it was missing or its
        settlement is already running.

    Raises:
        SchedulerError: The contest was purged but its job could not be revoked.
    """
    job_id = await client.hget(contest_key(contest_id), "jobId")
    result = await _transition(client, contest_id, ContestStatus.SCHEDULED, ContestStatus.CANCELLED)
    if result != "ok":
        logger.info(f"Contest not cancelled: id={contest_id} status={result}")
        return False

    await purge_contest(client, contest_id)
    await scheduler.cancel(job_id or settlement_job_id(contest_id))
    logger.info(f"Contest cancelled: id={contest_id}")
    return True


async def purge_contest(client: redis.Redis, contest_id: str) -> bool:
    """Delete a contest and everything it owns. Safe to call repeatedly.

    Also finishes a purge that was interrupted after the contest record was
    already gone.

    Returns:
        True if anything was deleted.
    """
    deleted = await client.delete(contest_key(contest_id))

    entry_ids = set(await client.zrange(ranking_key(contest_id), 0, -1))
    authors = await client.smembers(authors_key(contest_id))
    for author_id in authors:
        entry_ids.update(await client.smembers(author_entries_key(contest_id, author_id)))

    doomed: list[str] = []
    for entry_id in entry_ids:
        doomed.append(entry_key(contest_id, entry_id))
        doomed.append(votes_key(contest_id, entry_id))
    for author_id in authors:
        doomed.append(author_entries_key(contest_id, author_id))
    doomed.extend((ranking_key(contest_id), sequence_key(contest_id), authors_key(contest_id)))

    for i in range(0, len(doomed), PURGE_BATCH):
        deleted += await client.delete(*doomed[i : i + PURGE_BATCH])

    if deleted:
        logger.info(f"Contest purged: id={contest_id} captions={len(entry_ids)} keys={deleted}")
    return bool(deleted)
