"""Tests for the entry store."""

import pydantic
import pytest

from caption_contest.errors import ContestNotFound, DuplicateEntry, EntryNotFound
from caption_contest.schemas import CaptionPayload, ContestStatus
from caption_contest.services.contests import purge_contest
from caption_contest.services.entries import (
    create_entry,
    get_entry,
    list_authored_by,
    list_entries_with_votes,
)
from caption_contest.services.ranking import get_score, top_k
from caption_contest.services.votes import toggle_vote
from caption_contest.stores.redis import contest_key, ranking_key
from tests.conftest import payload


@pytest.mark.asyncio
async def test_create_entry_assigns_id_and_seeds_ranking_at_zero(redis_client, contest):
    caption = await create_entry(
        redis_client,
        contest.id,
        "alice",
        payload("top text", bottom_extended_caption="banner", bottom_extension_white=True),
    )

    assert caption.id
    assert caption.username == "alice"
    assert caption.created_at > 0
    assert await get_score(redis_client, contest.id, caption.id) == 0

    stored = await get_entry(redis_client, contest.id, caption.id)
    assert stored == caption
    assert stored.top_caption == "top text"
    assert stored.bottom_caption is None
    assert stored.bottom_extended_caption == "banner"
    assert stored.bottom_extension_white is True
    assert stored.top_extension_white is False


@pytest.mark.asyncio
async def test_create_entry_ids_are_unique(redis_client, contest):
    a = await create_entry(redis_client, contest.id, "alice", payload())
    b = await create_entry(redis_client, contest.id, "bob", payload())
    assert a.id != b.id
    assert [r.entry_id for r in await top_k(redis_client, contest.id, 10)] == [a.id, b.id]


@pytest.mark.asyncio
async def test_create_entry_unknown_contest(redis_client):
    with pytest.raises(ContestNotFound):
        await create_entry(redis_client, "nope", "alice", payload())
    assert await redis_client.exists(ranking_key("nope")) == 0


@pytest.mark.asyncio
async def test_create_entry_after_purge_fails_closed(redis_client, contest):
    await purge_contest(redis_client, contest.id)
    with pytest.raises(ContestNotFound):
        await create_entry(redis_client, contest.id, "alice", payload())


@pytest.mark.asyncio
async def test_one_caption_per_author_by_default(redis_client, contest):
    await create_entry(redis_client, contest.id, "alice", payload("first"))
    with pytest.raises(DuplicateEntry):
        await create_entry(redis_client, contest.id, "alice", payload("second"))

    # Other authors are unaffected
    await create_entry(redis_client, contest.id, "bob", payload("bob's"))


@pytest.mark.asyncio
async def test_author_limit_is_configurable(redis_client, contest):
    await create_entry(redis_client, contest.id, "alice", payload("first"), max_per_author=2)
    await create_entry(redis_client, contest.id, "alice", payload("second"), max_per_author=2)
    with pytest.raises(DuplicateEntry):
        await create_entry(redis_client, contest.id, "alice", payload("third"), max_per_author=2)


@pytest.mark.asyncio
async def test_get_entry_missing(redis_client, contest):
    with pytest.raises(EntryNotFound):
        await get_entry(redis_client, contest.id, "missing")


@pytest.mark.asyncio
async def test_list_authored_by(redis_client, contest):
    first = await create_entry(redis_client, contest.id, "alice", payload("one"), max_per_author=5)
    second = await create_entry(redis_client, contest.id, "alice", payload("two"), max_per_author=5)
    await create_entry(redis_client, contest.id, "bob", payload("bob"))

    mine = await list_authored_by(redis_client, contest.id, "alice")
    assert {c.id for c in mine} == {first.id, second.id}
    assert [c.created_at for c in mine] == sorted(c.created_at for c in mine)

    assert await list_authored_by(redis_client, contest.id, "carol") == []


@pytest.mark.asyncio
async def test_list_entries_with_votes_reports_caller_state(redis_client, contest):
    a = await create_entry(redis_client, contest.id, "alice", payload("a"))
    b = await create_entry(redis_client, contest.id, "bob", payload("b"))
    await toggle_vote(redis_client, contest.id, b.id, "carol")
    await toggle_vote(redis_client, contest.id, b.id, "alice")

    rows = await list_entries_with_votes(redis_client, contest.id, "carol")
    assert [r.id for r in rows] == [b.id, a.id]
    assert rows[0].upvotes == 2
    assert rows[0].user_upvoted is True
    assert rows[1].upvotes == 0
    assert rows[1].user_upvoted is False


@pytest.mark.asyncio
async def test_list_entries_skips_dangling_ranking_members(redis_client, contest):
    a = await create_entry(redis_client, contest.id, "alice", payload("a"))
    await redis_client.zadd(ranking_key(contest.id), {"ghost": 5_000_000})

    rows = await list_entries_with_votes(redis_client, contest.id, "bob")
    assert [r.id for r in rows] == [a.id]


@pytest.mark.asyncio
async def test_list_entries_empty_contest(redis_client, contest):
    assert await list_entries_with_votes(redis_client, contest.id, "bob") == []


def test_payload_requires_some_caption_text():
    with pytest.raises(pydantic.ValidationError):
        CaptionPayload()
    with pytest.raises(pydantic.ValidationError):
        CaptionPayload(top_caption="   ", bottom_caption="")


def test_payload_blank_fields_become_none():
    p = CaptionPayload.model_validate({"topCaption": "hi", "bottomCaption": "  "})
    assert p.top_caption == "hi"
    assert p.bottom_caption is None


def test_payload_ignores_client_chosen_identity():
    p = CaptionPayload.model_validate({"id": "mine", "username": "someone", "bottomCaption": "x"})
    assert "id" not in p.model_dump()
    assert "username" not in p.model_dump()


def test_payload_rejects_overlong_text():
    with pytest.raises(pydantic.ValidationError):
        CaptionPayload(top_caption="x" * 201)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ContestStatus.CANCELLED, ContestStatus.RUNNING])
async def test_create_entry_rejected_once_contest_is_closed(redis_client, contest, status):
    await redis_client.hset(contest_key(contest.id), "status", status.value)

    with pytest.raises(ContestNotFound):
        await create_entry(redis_client, contest.id, "alice", payload())
    assert await top_k(redis_client, contest.id, 3) == []
