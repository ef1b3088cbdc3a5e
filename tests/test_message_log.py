import asyncio

import pytest

from chatr.core.directory import AgentDirectory
from chatr.core.message_log import MessageLog
from chatr.exceptions import AgentNotFound, BackingStoreError, ContentInvalid
from chatr.store import InMemoryChatStore


async def test_append_assigns_increasing_ids(log, author):
    first = await log.append(author.id, "one")
    second = await log.append(author.id, "two")
    assert (first.id, second.id) == (1, 2)
    assert first.agent_name == "Author"
    assert await log.last_id() == 2
    assert await log.count() == 2


async def test_concurrent_appends_get_distinct_consecutive_ids(log, author):
    messages = await asyncio.gather(*(log.append(author.id, f"m{i}") for i in range(50)))
    ids = sorted(m.id for m in messages)
    assert ids == list(range(1, 51))
    stored = await log.range(limit=100)
    assert [m.id for m in stored] == ids


async def test_content_is_stripped_and_validated(log, author):
    message = await log.append(author.id, "  hello  ")
    assert message.content == "hello"

    for bad in ["", "   ", None, 5, "x" * 2001]:
        with pytest.raises(ContentInvalid):
            await log.append(author.id, bad)

    assert (await log.append(author.id, "x" * 2000)).id == 2


async def test_append_for_missing_agent(log):
    with pytest.raises(AgentNotFound):
        await log.append("no-such-agent", "hi")


async def test_range_modes(log, author):
    for i in range(1, 11):
        await log.append(author.id, f"m{i}")

    latest = await log.range(limit=3)
    assert [m.id for m in latest] == [8, 9, 10]

    newer = await log.range(after=7, limit=10)
    assert [m.id for m in newer] == [8, 9, 10]

    older = await log.range(before=5, limit=3)
    assert [m.id for m in older] == [2, 3, 4]

    assert await log.range(after=10) == []
    assert [m.id for m in await log.range(before=2)] == [1]


async def test_range_prefers_after_when_both_cursors_given(log, author):
    for i in range(1, 4):
        await log.append(author.id, f"m{i}")

    assert [m.id for m in await log.range(after=1, before=3)] == [2, 3]


def test_clamp_limit(log):
    assert log.clamp_limit(None) == 50
    assert log.clamp_limit(0) == 50
    assert log.clamp_limit(-5) == 50
    assert log.clamp_limit(10) == 10
    assert log.clamp_limit(1000) == 100


async def test_after_polling_sees_every_message_once(log, author):
    seen = []
    cursor = 0

    async def writer():
        for i in range(40):
            await log.append(author.id, f"m{i}")
            await asyncio.sleep(0)

    async def poller():
        nonlocal cursor
        for _ in range(200):
            page = await log.range(after=cursor, limit=7)
            if page:
                seen.extend(m.id for m in page)
                cursor = page[-1].id
            await asyncio.sleep(0)

    await asyncio.gather(writer(), poller())
    page = await log.range(after=cursor, limit=100)
    seen.extend(m.id for m in page)

    assert seen == list(range(1, 41))


async def test_retention_keeps_newest(store, directory):
    agent, _ = await directory.register("Author")
    log = MessageLog(store, retention=3)
    for i in range(5):
        await log.append(agent.id, f"m{i}")

    assert [m.id for m in await log.range()] == [3, 4, 5]
    assert await log.count() == 3
    # Ids are never reused after trimming
    assert (await log.append(agent.id, "next")).id == 6


async def test_recent_is_not_clamped(log, author):
    for i in range(120):
        await log.append(author.id, f"m{i}")
    assert len(await log.recent(110)) == 110
    assert await log.recent(0) == []


async def test_listeners_called_in_id_order(log, author):
    received = []
    unsubscribe = log.subscribe(lambda m: received.append(m.id))

    await asyncio.gather(*(log.append(author.id, f"m{i}") for i in range(10)))
    unsubscribe()
    await log.append(author.id, "unheard")

    assert received == list(range(1, 11))


async def test_failing_listener_does_not_block_append(log, author):
    def broken(message):
        raise RuntimeError("boom")

    received = []
    log.subscribe(broken)
    log.subscribe(lambda m: received.append(m.id))

    message = await log.append(author.id, "still stored")

    assert received == [message.id]


class TrimFailingStore(InMemoryChatStore):
    async def trim_messages(self, keep: int) -> int:
        raise BackingStoreError("trim failed")


async def test_trim_failure_does_not_fail_append():
    store = TrimFailingStore()
    agent, _ = await AgentDirectory(store).register("Author")
    log = MessageLog(store, retention=1)

    await log.append(agent.id, "one")
    message = await log.append(agent.id, "two")

    assert message.id == 2
    assert await log.count() == 2
