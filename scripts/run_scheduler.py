#!/usr/bin/env python3
"""Scheduler worker: delivers due jobs (contest settlement).

Run alongside the API (one or more replicas; jobs are leased, so replicas
never settle the same contest at the same time):
  python -m scripts.run_scheduler

Optional env vars:
  SCHEDULER_ONCE=1   process due jobs once and exit (for cron-style runs)
"""

import asyncio
import logging
import os
import signal
import sys

from dotenv import load_dotenv

# Ensure imports work when executed as a script/module
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from caption_contest.services.contests import SETTLE_CONTEST_JOB  # noqa: E402
from caption_contest.services.publisher import build_publisher  # noqa: E402
from caption_contest.services.scheduler import RedisScheduler  # noqa: E402
from caption_contest.services.settlement import make_settlement_handler  # noqa: E402
from caption_contest.stores.redis import close_redis, get_redis, init_redis  # noqa: E402

load_dotenv()

logger = logging.getLogger("uvicorn.error")


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    await init_redis()
    client = get_redis()
    publisher = build_publisher()
    scheduler = RedisScheduler(client)
    handlers = {SETTLE_CONTEST_JOB: make_settlement_handler(client, publisher)}

    try:
        if os.getenv("SCHEDULER_ONCE", "").strip() in ("1", "true", "yes"):
            handled = await scheduler.run_pending(handlers, limit=100)
            print({"ok": True, "handled": handled})
            return

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        await scheduler.run_forever(handlers, stop_event=stop)
    finally:
        await publisher.close()
        await close_redis()


if __name__ == "__main__":
    asyncio.run(main())
