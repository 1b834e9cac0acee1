"""Tests for the per-outing lock registry."""

import asyncio
from uuid import uuid4

import pytest

from club_outings.core.locking import OutingLockRegistry


@pytest.mark.asyncio
async def test_same_outing_is_serialized(test_session):
    registry = OutingLockRegistry()
    outing_id = uuid4()
    events = []

    async def critical(name: str):
        async with registry.hold(test_session, outing_id):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(critical("a"), critical("b"))

    assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])


@pytest.mark.asyncio
async def test_different_outings_do_not_block(test_session):
    registry = OutingLockRegistry()
    first, second = uuid4(), uuid4()
    inside = asyncio.Event()

    async def holder():
        async with registry.hold(test_session, first):
            await asyncio.wait_for(inside.wait(), timeout=1)

    async def other():
        async with registry.hold(test_session, second):
            inside.set()

    await asyncio.gather(holder(), other())


@pytest.mark.asyncio
async def test_locks_are_released_after_use(test_session):
    registry = OutingLockRegistry()
    outing_id = uuid4()

    with pytest.raises(RuntimeError):
        async with registry.hold(test_session, outing_id):
            assert registry.active_keys() == [str(outing_id)]
            raise RuntimeError("boom")

    assert registry.active_keys() == []
