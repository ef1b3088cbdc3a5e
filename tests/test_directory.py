import asyncio

import pytest

from chatr.core.credentials import is_well_formed
from chatr.core.directory import validate_name
from chatr.exceptions import (
    AgentNotFound,
    InvalidCredential,
    NameConflict,
    NameInvalid,
    ValidationError,
)


@pytest.mark.parametrize("name", ["Bot1", "ab", "under_score", "dash-ed", "x" * 32])
def test_valid_names(name):
    assert validate_name(name) == name


@pytest.mark.parametrize("name", [None, "", "a", "x" * 33, "has space", "emoji🙂", "Bot1\n", 42])
def test_invalid_names(name):
    with pytest.raises(NameInvalid):
        validate_name(name)


async def test_register_returns_credential_and_stores_only_hash(directory, store):
    agent, credential = await directory.register("Bot1", avatar="🤖")

    assert is_well_formed(credential)
    assert agent.name == "Bot1"
    assert agent.avatar == "🤖"
    assert agent.online is False
    stored = await store.get_agent(agent.id)
    assert credential not in (stored.api_key_hash, stored.id)


async def test_names_are_unique_case_insensitively(directory):
    await directory.register("Bot1")
    with pytest.raises(NameConflict):
        await directory.register("bot1")
    with pytest.raises(NameConflict):
        await directory.register("BOT1")


async def test_concurrent_registrations_of_one_name_admit_exactly_one(directory):
    results = await asyncio.gather(
        *(directory.register(name) for name in ["Racer", "racer", "RACER", "rAcEr"]),
        return_exceptions=True,
    )
    winners = [r for r in results if not isinstance(r, Exception)]
    assert len(winners) == 1
    assert all(isinstance(r, NameConflict) for r in results if isinstance(r, Exception))


async def test_avatar_length_is_bounded(directory):
    with pytest.raises(ValidationError):
        await directory.register("Bot1", avatar="x" * 65)
    with pytest.raises(ValidationError):
        await directory.register("Bot2", avatar=123)


async def test_credentials_are_distinct(directory):
    credentials = set()
    for i in range(20):
        _, credential = await directory.register(f"agent{i}")
        credentials.add(credential)
    assert len(credentials) == 20


async def test_authenticate_marks_online_and_refreshes_last_seen(directory, wall_clock):
    agent, credential = await directory.register("Bot1")
    wall_clock.advance(30)

    resolved = await directory.authenticate(credential)

    assert resolved.id == agent.id
    assert resolved.online is True
    assert resolved.last_seen == wall_clock.now


async def test_authenticate_unknown_credential(directory):
    await directory.register("Bot1")
    with pytest.raises(InvalidCredential):
        await directory.authenticate("chatr_" + "0" * 32)


async def test_presence_times_out(directory, wall_clock):
    _, first = await directory.register("First")
    _, second = await directory.register("Second")
    await directory.authenticate(first)
    await directory.authenticate(second)
    assert [a.name for a in await directory.list_online()] == ["First", "Second"]

    wall_clock.advance(60)
    await directory.authenticate(second)
    wall_clock.advance(61)

    assert [a.name for a in await directory.list_online()] == ["Second"]
    assert await directory.count_online() == 1
    assert await directory.count() == 2


async def test_list_online_sorted_by_name_case_insensitively(directory):
    for name in ["charlie", "Alpha", "bravo"]:
        _, credential = await directory.register(name)
        await directory.authenticate(credential)
    assert [a.name for a in await directory.list_online()] == ["Alpha", "bravo", "charlie"]


async def test_mark_offline_is_idempotent(directory):
    agent, credential = await directory.register("Bot1")
    await directory.authenticate(credential)

    await directory.mark_offline(agent.id)
    await directory.mark_offline(agent.id)

    assert await directory.list_online() == []


async def test_set_verification(directory):
    agent, _ = await directory.register("Bot1")
    updated = await directory.set_verification(agent.id, "@bot1", True)
    assert updated.verified is True
    assert updated.verified_handle == "@bot1"
    with pytest.raises(AgentNotFound):
        await directory.set_verification("missing", None, False)


async def test_remove_cascades_to_messages(directory, log):
    keep, _ = await directory.register("Keep")
    gone, credential = await directory.register("Gone")
    await log.append(keep.id, "stays")
    await log.append(gone.id, "goes")
    await log.append(gone.id, "goes too")

    await directory.remove(gone.id)

    assert [m.content for m in await log.range()] == ["stays"]
    with pytest.raises(AgentNotFound):
        await directory.get(gone.id)
    with pytest.raises(InvalidCredential):
        await directory.authenticate(credential)
    with pytest.raises(AgentNotFound):
        await directory.remove(gone.id)
    # The name is free again
    await directory.register("gone")
