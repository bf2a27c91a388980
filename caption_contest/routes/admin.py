"""Admin endpoints for launching and managing contests.

These back the moderator actions of the hosting platform. When ADMIN_API_KEY
is set every request must carry it in the `x-api-key` header.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query
import redis.asyncio as redis

from caption_contest.dependencies import ID_PATTERN, get_publisher, get_scheduler, require_admin
from caption_contest.errors import EntryNotFound
from caption_contest.schemas import (
    CancelResponse,
    ContestResponse,
    CreateContestRequest,
    LeaderboardResponse,
    RankedCaption,
    RebuildScoresResponse,
    SettlementResponse,
    SettlementState,
)
from caption_contest.services.contests import cancel_contest, create_contest, get_contest
from caption_contest.services.entries import get_entry
from caption_contest.services.publisher import CaptionPublisher
from caption_contest.services.ranking import rebuild_scores, top_k
from caption_contest.services.scheduler import RedisScheduler
from caption_contest.services.settlement import settle_contest
from caption_contest.stores.redis import get_redis

router = APIRouter(dependencies=[Depends(require_admin)])
logger = logging.getLogger("uvicorn.error")

ContestId = Annotated[str, Path(description="Contest ID", min_length=1, max_length=100, pattern=ID_PATTERN)]


@router.post("/contests", response_model=ContestResponse)
async def launch_contest(
    request: CreateContestRequest,
    client: redis.Redis = Depends(get_redis),
    scheduler: RedisScheduler = Depends(get_scheduler),
) -> ContestResponse:
    """Create a contest and schedule its settlement."""
    contest = await create_contest(
        client,
        scheduler,
        request.image_url,
        duration_seconds=request.duration_seconds,
    )
    return ContestResponse(contest=contest)


@router.get("/contests/{contest_id}", response_model=ContestResponse)
async def read_contest(
    contest_id: ContestId,
    client: redis.Redis = Depends(get_redis),
) -> ContestResponse:
    return ContestResponse(contest=await get_contest(client, contest_id))


@router.get("/contests/{contest_id}/leaderboard", response_model=LeaderboardResponse)
async def read_leaderboard(
    contest_id: ContestId,
    limit: int = Query(default=3, ge=1, le=100),
    client: redis.Redis = Depends(get_redis),
) -> LeaderboardResponse:
    """Current top captions with their vote counts."""
    await get_contest(client, contest_id)

    entries: list[RankedCaption] = []
    for ranked in await top_k(client, contest_id, limit):
        try:
            caption = await get_entry(client, contest_id, ranked.entry_id)
        except EntryNotFound:
            logger.warning(f"Ranked caption without record, skipping: contest={contest_id} caption={ranked.entry_id}")
            continue
        entries.append(RankedCaption(rank=len(entries) + 1, upvotes=ranked.votes, caption=caption))

    return LeaderboardResponse(contest_id=contest_id, entries=entries)


@router.delete("/contests/{contest_id}", response_model=CancelResponse)
async def delete_contest(
    contest_id: ContestId,
    client: redis.Redis = Depends(get_redis),
    scheduler: RedisScheduler = Depends(get_scheduler),
) -> CancelResponse:
    """Cancel a contest before its deadline; settlement will not run."""
    cancelled = await cancel_contest(client, scheduler, contest_id)
    return CancelResponse(cancelled=cancelled)


@router.post("/contests/{contest_id}/settle", response_model=SettlementResponse)
async def settle_now(
    contest_id: ContestId,
    client: redis.Redis = Depends(get_redis),
    scheduler: RedisScheduler = Depends(get_scheduler),
    publisher: CaptionPublisher = Depends(get_publisher),
) -> SettlementResponse:
    """Settle a contest immediately instead of waiting for its deadline."""
    contest = await get_contest(client, contest_id)
    report = await settle_contest(client, publisher, contest_id)
    if contest.job_id and report.state != SettlementState.SKIPPED:
        await scheduler.cancel(contest.job_id)
    return SettlementResponse(report=report)


@router.post("/contests/{contest_id}/rebuild-scores", response_model=RebuildScoresResponse)
async def rebuild_contest_scores(
    contest_id: ContestId,
    client: redis.Redis = Depends(get_redis),
) -> RebuildScoresResponse:
    """Re-derive ranking scores from voter sets."""
    await get_contest(client, contest_id)
    corrected = await rebuild_scores(client, contest_id)
    return RebuildScoresResponse(corrected=corrected)
