"""Tests for the reminder worker and the worker manager."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from club_outings.models import Outing
from club_outings.services.notification_service import NotificationTemplate
from club_outings.services.reservation_service import ReservationService
from club_outings.workers.base import BaseWorker
from club_outings.workers.manager import WorkerManager
from club_outings.workers.reminder_worker import ReminderWorker


@pytest.fixture
def worker(test_engine, notifier, clock):
    session_factory = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return ReminderWorker(
        interval_seconds=1,
        session_factory=session_factory,
        notifier=notifier,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_reminds_confirmed_participants_once(
    worker, test_session, notifier, clock, member_factory, outing_factory, dispatcher, now
):
    outing = await outing_factory(max_participants=1, date_time=now + timedelta(hours=25))
    seated = await member_factory()
    queued = await member_factory()
    reservations = ReservationService(test_session, notifier=notifier, clock=clock)
    await reservations.create_reservation(outing.id, seated)
    await reservations.create_reservation(outing.id, queued)
    dispatcher.sent.clear()

    await worker.process()
    await worker.process()

    assert dispatcher.recipients(NotificationTemplate.REMINDER) == [seated.email]
    await test_session.refresh(outing)
    assert outing.reminder_sent is True


@pytest.mark.asyncio
async def test_skips_outings_outside_window_or_closed(worker, test_session, member_factory, outing_factory, now):
    await outing_factory(title="Too far", date_time=now + timedelta(days=3))
    await outing_factory(title="Too close", date_time=now + timedelta(hours=2))
    await outing_factory(title="Archived", date_time=now + timedelta(hours=25), is_archived=True)
    await outing_factory(title="Cancelled", date_time=now + timedelta(hours=25), is_deleted=True)

    async with worker.session_factory() as db:
        assert await worker.send_due_reminders(db) == 0


@pytest.mark.asyncio
async def test_window_follows_the_clock(worker, test_session, outing_factory, clock, now):
    outing = await outing_factory(date_time=now + timedelta(days=3))

    async with worker.session_factory() as db:
        assert await worker.send_due_reminders(db) == 0

    clock.advance(days=2)

    async with worker.session_factory() as db:
        assert await worker.send_due_reminders(db) == 1
        reminded = await db.get(Outing, outing.id)
        assert reminded.reminder_sent is True


class CountingWorker(BaseWorker):
    def __init__(self):
        super().__init__(name="Counting", interval_seconds=0)
        self.calls = 0

    async def process(self) -> None:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("first pass fails")


@pytest.mark.asyncio
async def test_worker_loop_survives_errors_and_stops():
    worker = CountingWorker()
    manager = WorkerManager({"counting": worker})

    await manager.start_all()
    assert manager.get_worker_status() == {"counting": True}
    for _ in range(50):
        if worker.calls >= 2:
            break
        await asyncio.sleep(0.01)
    await manager.stop_all()

    assert worker.calls >= 2
    assert manager.get_worker_status() == {"counting": False}
    assert manager.get_worker("counting") is worker
