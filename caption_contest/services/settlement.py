"""Settlement engine: publish the winning captions, then purge the contest.

Flow (one delivery of the scheduled `settle_contest` job):
1. Take the settlement lease so redeliveries never run side by side
2. Claim scheduled -> running; a missing or cancelled contest only gets purged
3. Read top-K, fetch each caption, publish one at a time
   (a failed publish is logged and the rest still go out)
4. Purge the contest; every delivery that gets the lease purges

The scheduler delivers at least once. A delivery that finds the contest
already running (the previous worker died mid-run) skips publishing and
only purges: publishing is at-most-once, purge is at-least-once.
"""

import logging
from typing import Any

import redis.asyncio as redis

from caption_contest.errors import ContestNotFound, EntryNotFound
from caption_contest.schemas import PublishedCaption, SettlementReport, SettlementState
from caption_contest.services.contests import ClaimResult, claim_settlement, get_contest, purge_contest
from caption_contest.services.entries import get_entry
from caption_contest.services.publisher import CaptionPublisher
from caption_contest.services.ranking import top_k
from caption_contest.services.scheduler import JobHandler
from caption_contest.settings import get_settings
from caption_contest.stores.redis import acquire_lock, release_lock

logger = logging.getLogger("uvicorn.error")


async def settle_contest(
    client: redis.Redis,
    publisher: CaptionPublisher,
    contest_id: str,
    *,
    k: int | None = None,
    lock_ttl: int | None = None,
) -> SettlementReport:
    """Run settlement for one contest.

    Args:
        client: Redis client.
        publisher: Renderer/publisher for the winning captions.
        contest_id: Contest to settle.
        k: Number of winners (defaults to SETTLEMENT_TOP_K).
        lock_ttl: Settlement lease in seconds.

    Returns:
        SettlementReport describing what this delivery did.
    """
    settings = get_settings()
    k = settings.settlement_top_k if k is None else k
    lock_ttl = lock_ttl or settings.settlement_lock_ttl_seconds
    report = SettlementReport(contest_id=contest_id, state=SettlementState.SKIPPED)

    lock_name = f"settle:{contest_id}"
    token = await acquire_lock(client, lock_name, ttl=lock_ttl)
    if token is None:
        logger.info(f"Settlement already in progress, skipping: contest={contest_id}")
        return report

    try:
        try:
            contest = await get_contest(client, contest_id)
        except ContestNotFound:
            contest = None

        claim = ClaimResult.MISSING if contest is None else await claim_settlement(client, contest_id)
        if claim in (ClaimResult.MISSING, ClaimResult.CANCELLED):
            logger.info(f"Nothing to settle: contest={contest_id} ({claim.value})")
            # Finishes a cancel or an earlier purge that died halfway
            report.purged = await purge_contest(client, contest_id)
            report.state = SettlementState.MISSING
            return report

        try:
            if claim == ClaimResult.CLAIMED:
                await _publish_winners(client, publisher, contest_id, contest.image_url, k, report)
            else:
                logger.warning(f"Settlement was interrupted earlier, purging without publishing: contest={contest_id}")
        finally:
            report.purged = await purge_contest(client, contest_id)

        report.state = SettlementState.COMPLETED
        logger.info(
            f"Contest settled: id={contest_id} published={len(report.published)} "
            f"failed={len(report.failed)} skipped={len(report.skipped)}"
        )
        return report
    finally:
        await release_lock(client, lock_name, token)


async def _publish_winners(
    client: redis.Redis,
    publisher: CaptionPublisher,
    contest_id: str,
    image_url: str,
    k: int,
    report: SettlementReport,
) -> None:
    for ranked in await top_k(client, contest_id, k):
        try:
            caption = await get_entry(client, contest_id, ranked.entry_id)
        except EntryNotFound:
            logger.warning(f"Ranked caption without record, skipping: contest={contest_id} caption={ranked.entry_id}")
            report.skipped.append(ranked.entry_id)
            continue

        try:
            ref = await publisher.publish(image_url, caption)
        except Exception:
            logger.exception(f"Publishing caption {caption.id} failed: contest={contest_id}")
            report.failed.append(caption.id)
            continue

        logger.info(f"Caption published: contest={contest_id} caption={caption.id} votes={ranked.votes} ref={ref}")
        report.published.append(PublishedCaption(caption_id=caption.id, ref=ref))


def make_settlement_handler(client: redis.Redis, publisher: CaptionPublisher) -> JobHandler:
    """Scheduler handler for `settle_contest` jobs."""

    async def handle(data: dict[str, Any]) -> None:
        contest_id = str(data["contestId"])
        report = await settle_contest(client, publisher, contest_id)
        if report.state == SettlementState.SKIPPED:
            # Keep the job leased so it is redelivered if the lease holder dies.
            raise RuntimeError(f"Settlement for contest {contest_id} is held by another worker")

    return handle
