"""Redis store: connection, key layout, atomic scripts and locks.

Redis is the only durable store. Everything a contest owns lives under the
`contest:{id}` prefix:

- contest:{id}                          hash   contest record
- contest:{id}:seq                      string insertion counter
- contest:{id}:entries                  zset   ranking index
- contest:{id}:entries:{eid}            hash   entry record
- contest:{id}:entries:{eid}:votes      set    voter ids
- contest:{id}:authors                  set    every author that submitted
- contest:{id}:authors:{author}         set    entry ids by author

Multi-key invariants (entry + ranking registration, vote toggle + score,
status transitions, scheduler leases) are enforced by the Lua scripts below,
so each runs as a single atomic step on the server.
"""

import logging
from uuid import uuid4

import redis.asyncio as redis

from caption_contest.settings import get_settings

# Ranking scores are stored as votes * SCORE_SCALE - sequence so that ties
# resolve to the earliest entry. Sequence numbers must stay below the scale.
SCORE_SCALE = 1_000_000

# Key prefixes
PREFIX_CONTEST = "contest:"
PREFIX_LOCK = "lock:"
KEY_SCHEDULER_JOBS = "scheduler:jobs"
KEY_SCHEDULER_PAYLOADS = "scheduler:payloads"

TTL_SETTLEMENT_LOCK = 300  # 5 minutes

# Redis client (initialized on startup)
_redis: redis.Redis | None = None
logger = logging.getLogger("uvicorn.error")


async def init_redis() -> None:
    """Initialize Redis connection."""
    global _redis
    settings = get_settings()
    _redis = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    # Validate connectivity early (especially for `rediss://` in production).
    await _redis.ping()
    logger.info("Redis connected")


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> redis.Redis:
    """Get Redis client instance (also used as a FastAPI dependency)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


# ============================================================
# Key builders
# ============================================================


def contest_key(contest_id: str) -> str:
    return f"{PREFIX_CONTEST}{contest_id}"


def sequence_key(contest_id: str) -> str:
    return f"{contest_key(contest_id)}:seq"


def ranking_key(contest_id: str) -> str:
    return f"{contest_key(contest_id)}:entries"


def entry_key(contest_id: str, entry_id: str) -> str:
    return f"{ranking_key(contest_id)}:{entry_id}"


def votes_key(contest_id: str, entry_id: str) -> str:
    return f"{entry_key(contest_id, entry_id)}:votes"


def authors_key(contest_id: str) -> str:
    return f"{contest_key(contest_id)}:authors"


def author_entries_key(contest_id: str, author_id: str) -> str:
    return f"{authors_key(contest_id)}:{author_id}"


# ============================================================
# Lua scripts
# ============================================================

# Shared by every script that passes a variable number of ARGV to a command.
_LUA_PRELUDE = "local unpack = unpack or table.unpack\n"

# KEYS: contest, seq, entry, ranking, authors, author_entries
# ARGV: entry_id, author_id, max_per_author, score_scale, open_status, field, value, ...
# Returns the entry sequence, or -1 (contest missing or closed), -2 (author limit), -3 (full).
CREATE_ENTRY_SCRIPT = _LUA_PRELUDE + """
if redis.call('HGET', KEYS[1], 'status') ~= ARGV[5] then
  return -1
end
if redis.call('SCARD', KEYS[6]) >= tonumber(ARGV[3]) then
  return -2
end
local seq = redis.call('INCR', KEYS[2])
if seq >= tonumber(ARGV[4]) then
  return -3
end
redis.call('HSET', KEYS[3], 'seq', seq, unpack(ARGV, 6))
redis.call('ZADD', KEYS[4], string.format('%d', -seq), ARGV[1])
redis.call('SADD', KEYS[5], ARGV[2])
redis.call('SADD', KEYS[6], ARGV[1])
return seq
"""

# KEYS: contest, entry, votes, ranking
# ARGV: voter_id, entry_id, score_scale, open_status
# Returns {voted (0/1), count}, or -1 (contest missing or closed), -2 (no entry).
TOGGLE_VOTE_SCRIPT = """
if redis.call('HGET', KEYS[1], 'status') ~= ARGV[4] then
  return -1
end
local seq = redis.call('HGET', KEYS[2], 'seq')
if not seq then
  return -2
end
local voted = 1
if redis.call('SREM', KEYS[3], ARGV[1]) == 1 then
  voted = 0
else
  redis.call('SADD', KEYS[3], ARGV[1])
end
local count = redis.call('SCARD', KEYS[3])
local score = count * tonumber(ARGV[3]) - tonumber(seq)
redis.call('ZADD', KEYS[4], string.format('%d', score), ARGV[2])
return {voted, count}
"""

# KEYS: entry, ranking
# ARGV: entry_id, votes, score_scale
# Returns 1 if the stored score changed, 0 otherwise (including missing entry).
UPSERT_SCORE_SCRIPT = """
local seq = redis.call('HGET', KEYS[1], 'seq')
if not seq then
  return 0
end
local score = tonumber(ARGV[2]) * tonumber(ARGV[3]) - tonumber(seq)
return redis.call('ZADD', KEYS[2], 'XX', 'CH', string.format('%d', score), ARGV[1])
"""

# KEYS: contest
# ARGV: expected_status, new_status
# Returns 'ok', 'missing', or the status that blocked the transition.
TRANSITION_STATUS_SCRIPT = """
local status = redis.call('HGET', KEYS[1], 'status')
if not status then
  return 'missing'
end
if status ~= ARGV[1] then
  return status
end
redis.call('HSET', KEYS[1], 'status', ARGV[2])
return 'ok'
"""

# KEYS: jobs, payloads
# ARGV: now, lease_until, limit
# Returns a flat list: job_id, payload, job_id, payload, ...
CLAIM_JOBS_SCRIPT = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, tonumber(ARGV[3]))
local out = {}
for _, id in ipairs(ids) do
  local payload = redis.call('HGET', KEYS[2], id)
  if payload then
    redis.call('ZADD', KEYS[1], ARGV[2], id)
    table.insert(out, id)
    table.insert(out, payload)
  else
    redis.call('ZREM', KEYS[1], id)
  end
end
return out
"""

# KEYS: lock
# ARGV: token
RELEASE_LOCK_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
  return redis.call('DEL', KEYS[1])
end
return 0
"""


async def run_script(client: redis.Redis, source: str, keys: list[str], args: list) -> object:
    """Run a Lua script (EVALSHA with automatic SCRIPT LOAD on first use)."""
    script = client.register_script(source)
    return await script(keys=keys, args=args)


# ============================================================
# Distributed locks
# ============================================================


async def acquire_lock(client: redis.Redis, key: str, ttl: int = TTL_SETTLEMENT_LOCK) -> str | None:
    """Acquire a distributed lock.

    Args:
        client: Redis client.
        key: Lock key (e.g., "settle:<contest_id>").
        ttl: Lock timeout in seconds.

    Returns:
        Owner token if the lock was acquired, None if already locked.
    """
    token = uuid4().hex
    # SET NX (only if not exists) with TTL
    result = await client.set(f"{PREFIX_LOCK}{key}", token, nx=True, ex=ttl)
    return token if result else None


async def release_lock(client: redis.Redis, key: str, token: str) -> bool:
    """Release a distributed lock if it is still held by `token`."""
    released = await run_script(client, RELEASE_LOCK_SCRIPT, [f"{PREFIX_LOCK}{key}"], [token])
    return bool(released)


async def is_locked(client: redis.Redis, key: str) -> bool:
    """Check if a lock exists."""
    return bool(await client.exists(f"{PREFIX_LOCK}{key}"))
