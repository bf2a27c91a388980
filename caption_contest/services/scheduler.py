"""Redis-backed delayed job scheduler.

Jobs live in two keys:
- scheduler:jobs      zset  job_id -> due time (epoch seconds)
- scheduler:payloads  hash  job_id -> JSON {"name", "data", "runAt"}

Delivery is at-least-once. `claim_due` leases due jobs by pushing their due
time `lease_seconds` into the future; a worker acks a job once its handler
succeeds, and a job whose worker died or failed comes due again when the
lease runs out. Handlers must therefore be idempotent.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
import json
import logging
import time
from typing import Any
from uuid import uuid4

import redis.asyncio as redis

from caption_contest.errors import SchedulerError
from caption_contest.settings import get_settings
from caption_contest.stores.redis import (
    CLAIM_JOBS_SCRIPT,
    KEY_SCHEDULER_JOBS,
    KEY_SCHEDULER_PAYLOADS,
    run_script,
)

logger = logging.getLogger("uvicorn.error")

JobHandler = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class ScheduledJob:
    job_id: str
    name: str
    data: dict[str, Any]
    run_at: float


class RedisScheduler:
    """Schedules named jobs and delivers them when due."""

    def __init__(self, client: redis.Redis, *, lease_seconds: int | None = None):
        self.client = client
        self.lease_seconds = lease_seconds or get_settings().scheduler_lease_seconds

    async def schedule_at(
        self,
        run_at: datetime,
        name: str,
        data: dict[str, Any],
        *,
        job_id: str | None = None,
    ) -> str:
        """Schedule `name` to fire with `data` at `run_at`.

        Scheduling an existing `job_id` replaces it, so a stable id keeps at
        most one pending job per subject.

        Returns:
            The job id.
        """
        job_id = job_id or uuid4().hex
        due = run_at.timestamp()
        payload = json.dumps({"name": name, "data": data, "runAt": due})
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(KEY_SCHEDULER_PAYLOADS, job_id, payload)
                pipe.zadd(KEY_SCHEDULER_JOBS, {job_id: due})
                await pipe.execute()
        except redis.RedisError as e:
            raise SchedulerError(f"Failed to schedule job {job_id}: {e}") from e

        logger.info(f"Job scheduled: id={job_id} name={name} run_at={run_at.isoformat()}")
        return job_id

    async def cancel(self, job_id: str) -> bool:
        """Revoke a pending job. Returns True if it was pending."""
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.zrem(KEY_SCHEDULER_JOBS, job_id)
                pipe.hdel(KEY_SCHEDULER_PAYLOADS, job_id)
                removed, _ = await pipe.execute()
        except redis.RedisError as e:
            raise SchedulerError(f"Failed to cancel job {job_id}: {e}") from e

        if removed:
            logger.info(f"Job cancelled: id={job_id}")
        return bool(removed)

    async def claim_due(self, now: float | None = None, limit: int = 10) -> list[ScheduledJob]:
        """Lease up to `limit` due jobs."""
        now = time.time() if now is None else now
        flat = await run_script(
            self.client,
            CLAIM_JOBS_SCRIPT,
            [KEY_SCHEDULER_JOBS, KEY_SCHEDULER_PAYLOADS],
            [now, now + self.lease_seconds, limit],
        )

        jobs: list[ScheduledJob] = []
        for job_id, raw in zip(flat[::2], flat[1::2]):
            try:
                payload = json.loads(raw)
                jobs.append(
                    ScheduledJob(
                        job_id=job_id,
                        name=str(payload["name"]),
                        data=dict(payload.get("data") or {}),
                        run_at=float(payload.get("runAt", now)),
                    )
                )
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                logger.error(f"Dropping malformed job payload: id={job_id} payload={raw[:200]}")
                await self.ack(job_id)
        return jobs

    async def ack(self, job_id: str) -> None:
        """Mark a delivered job as done."""
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.zrem(KEY_SCHEDULER_JOBS, job_id)
            pipe.hdel(KEY_SCHEDULER_PAYLOADS, job_id)
            await pipe.execute()

    async def run_pending(
        self,
        handlers: Mapping[str, JobHandler],
        now: float | None = None,
        limit: int = 10,
    ) -> int:
        """Deliver due jobs to their handlers.

        Returns:
            Number of jobs handled successfully.
        """
        handled = 0
        for job in await self.claim_due(now=now, limit=limit):
            handler = handlers.get(job.name)
            if handler is None:
                logger.error(f"No handler for job {job.job_id} ({job.name}), dropping")
                await self.ack(job.job_id)
                continue
            try:
                await handler(job.data)
            except Exception:
                # Left leased; redelivered once the lease expires.
                logger.exception(f"Job {job.job_id} ({job.name}) failed")
                continue
            await self.ack(job.job_id)
            handled += 1
        return handled

    async def run_forever(
        self,
        handlers: Mapping[str, JobHandler],
        *,
        poll_interval: float | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Poll for due jobs until `stop_event` is set."""
        poll_interval = poll_interval or get_settings().scheduler_poll_interval_seconds
        stop_event = stop_event or asyncio.Event()
        logger.info(f"Scheduler started (poll every {poll_interval}s, lease {self.lease_seconds}s)")

        while not stop_event.is_set():
            try:
                await self.run_pending(handlers)
            except redis.RedisError:
                logger.exception("Scheduler poll failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Scheduler stopped")