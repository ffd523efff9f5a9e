"""
Tests for SessionStore locking and idle sweeping.
"""

import asyncio

import pytest

from ..models import ConversationStep, PatientStatus
from ..sessions import SessionStore
from .conftest import FakeClock, PHONE


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(idle_timeout=1800, clock=clock)


def create(store, user_id=PHONE):
    return store.create(user_id, ConversationStep.WELCOME_RESPONSE, PatientStatus(), "Asha")


class TestSessionMap:

    def test_create_replaces_existing(self, store):
        first = create(store)
        second = create(store)
        assert store.get(PHONE) is second
        assert first is not second
        assert len(store) == 1

    def test_touch_updates_activity(self, store, clock):
        session = create(store)
        clock.advance(120)
        store.touch(PHONE)
        assert session.last_activity == clock.now
        assert store.expires_at(session) == clock.now + 1800

    def test_delete(self, store):
        create(store)
        assert store.delete(PHONE) is True
        assert store.delete(PHONE) is False
        assert PHONE not in store


class TestLocking:
    """Per-user serialization"""

    @pytest.mark.asyncio
    async def test_same_user_is_serialized(self, store):
        order = []

        async def work(tag):
            async with store.locked(PHONE):
                order.append(f"{tag}-start")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-end")

        await asyncio.gather(work("a"), work("b"))
        assert order == ["a-start", "a-end", "b-start", "b-end"]

    @pytest.mark.asyncio
    async def test_different_users_run_in_parallel(self, store):
        inside = set()
        overlap = []

        async def work(user_id):
            async with store.locked(user_id):
                inside.add(user_id)
                await asyncio.sleep(0.01)
                overlap.append(len(inside))
                inside.discard(user_id)

        await asyncio.gather(work("u1"), work("u2"))
        assert max(overlap) == 2

    @pytest.mark.asyncio
    async def test_lock_entries_are_released(self, store):
        async with store.locked(PHONE):
            assert store.is_locked(PHONE)
        assert not store.is_locked(PHONE)
        assert store._locks == {}


class TestIdleSweep:

    @pytest.mark.asyncio
    async def test_sweeps_only_idle_sessions(self, store, clock):
        create(store, "idle")
        clock.advance(1000)
        create(store, "fresh")
        clock.advance(900)

        swept = await store.sweep_idle()
        assert swept == 1
        assert "idle" not in store
        assert "fresh" in store

    @pytest.mark.asyncio
    async def test_sweep_waits_for_lock_and_rechecks(self, store, clock):
        create(store)
        clock.advance(1801)

        release = asyncio.Event()

        async def in_flight_message():
            async with store.locked(PHONE):
                await release.wait()
                store.touch(PHONE)

        handler = asyncio.create_task(in_flight_message())
        await asyncio.sleep(0)
        sweep = asyncio.create_task(store.sweep_idle())
        await asyncio.sleep(0)

        assert not sweep.done()
        release.set()
        await handler

        assert await sweep == 0
        assert PHONE in store

    @pytest.mark.asyncio
    async def test_run_sweeper_is_cancellable(self, store, clock):
        create(store)
        clock.advance(1801)

        task = asyncio.create_task(store.run_sweeper(0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert PHONE not in store
