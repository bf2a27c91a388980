"""Tests for the ranking index."""

import pytest

from caption_contest.services.entries import create_entry
from caption_contest.services.ranking import (
    decode_score,
    encode_score,
    get_score,
    rebuild_scores,
    top_k,
    upsert_score,
)
from caption_contest.services.votes import toggle_vote
from caption_contest.stores.redis import ranking_key
from tests.conftest import payload


def test_encode_decode_score():
    assert decode_score(encode_score(0, 1)) == 0
    assert decode_score(encode_score(0, 999_999)) == 0
    assert decode_score(encode_score(1, 1)) == 1
    assert decode_score(encode_score(42, 17)) == 42
    # Same votes: earlier insertion sorts higher
    assert encode_score(3, 1) > encode_score(3, 2)
    # More votes always win over insertion order
    assert encode_score(4, 999_999) > encode_score(3, 1)


async def _captions(redis_client, contest_id: str, authors: list[str]):
    return [await create_entry(redis_client, contest_id, a, payload(f"by {a}")) for a in authors]


@pytest.mark.asyncio
async def test_top_k_orders_by_votes_then_insertion(redis_client, contest):
    a, b, c, d = await _captions(redis_client, contest.id, ["a", "b", "c", "d"])
    for voter in ("v1", "v2"):
        await toggle_vote(redis_client, contest.id, c.id, voter)
    await toggle_vote(redis_client, contest.id, d.id, "v1")
    await toggle_vote(redis_client, contest.id, b.id, "v1")

    ranked = await top_k(redis_client, contest.id, 3)
    assert [r.entry_id for r in ranked] == [c.id, b.id, d.id]
    assert [r.votes for r in ranked] == [2, 1, 1]

    full = await top_k(redis_client, contest.id, 10)
    assert [r.entry_id for r in full] == [c.id, b.id, d.id, a.id]
    votes = [r.votes for r in full]
    assert votes == sorted(votes, reverse=True)


@pytest.mark.asyncio
async def test_top_k_reflects_toggle_immediately(redis_client, contest):
    a, b = await _captions(redis_client, contest.id, ["a", "b"])
    assert [r.entry_id for r in await top_k(redis_client, contest.id, 1)] == [a.id]

    await toggle_vote(redis_client, contest.id, b.id, "v1")
    assert [r.entry_id for r in await top_k(redis_client, contest.id, 1)] == [b.id]

    await toggle_vote(redis_client, contest.id, b.id, "v1")
    assert [r.entry_id for r in await top_k(redis_client, contest.id, 1)] == [a.id]


@pytest.mark.asyncio
async def test_top_k_edge_sizes(redis_client, contest):
    assert await top_k(redis_client, contest.id, 3) == []
    await _captions(redis_client, contest.id, ["a"])
    assert len(await top_k(redis_client, contest.id, 3)) == 1
    assert await top_k(redis_client, contest.id, 0) == []


@pytest.mark.asyncio
async def test_upsert_score_repositions_existing_only(redis_client, contest):
    a, b = await _captions(redis_client, contest.id, ["a", "b"])

    assert await upsert_score(redis_client, contest.id, b.id, 5) is True
    assert await get_score(redis_client, contest.id, b.id) == 5
    assert [r.entry_id for r in await top_k(redis_client, contest.id, 2)] == [b.id, a.id]

    assert await upsert_score(redis_client, contest.id, b.id, 5) is False
    assert await upsert_score(redis_client, contest.id, "missing", 3) is False
    assert await get_score(redis_client, contest.id, "missing") is None


@pytest.mark.asyncio
async def test_rebuild_scores_corrects_drift(redis_client, contest):
    a, b = await _captions(redis_client, contest.id, ["a", "b"])
    await toggle_vote(redis_client, contest.id, a.id, "v1")
    await redis_client.zadd(ranking_key(contest.id), {b.id: encode_score(7, 2)})

    assert await rebuild_scores(redis_client, contest.id) == 1
    assert await get_score(redis_client, contest.id, a.id) == 1
    assert await get_score(redis_client, contest.id, b.id) == 0
    assert await rebuild_scores(redis_client, contest.id) == 0
