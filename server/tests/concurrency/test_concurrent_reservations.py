"""Concurrency tests for seat and carpool accounting."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from club_outings.core.clock import utc_now
from club_outings.core.database import Base
from club_outings.core.exceptions import CarpoolFullError, DuplicateReservationError
from club_outings.models import Carpool, CarpoolPassenger, Member, Outing, OutingType, Reservation, ReservationStatus
from club_outings.services.carpool_service import CarpoolService
from club_outings.services.notification_service import LoggingDispatcher, OutingNotifier
from club_outings.services.reservation_service import ReservationService


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Sessions on a file database, so each task gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'outings.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
def notifier() -> OutingNotifier:
    return OutingNotifier(LoggingDispatcher())


async def seed(session_factory, members: int, max_participants: int) -> tuple[Outing, list[Member]]:
    async with session_factory() as db:
        people = [
            Member(id=uuid4(), email=f"racer{i}@club.example", first_name=f"Racer{i}", last_name="Test")
            for i in range(members)
        ]
        db.add_all(people)
        outing = Outing(
            title="Popular reef dive",
            date_time=utc_now() + timedelta(days=30),
            location="Port-Cros",
            outing_type=OutingType.SEA,
            max_participants=max_participants,
            confirmed_count=0,
        )
        db.add(outing)
        await db.commit()
        return outing, people


async def count_by_status(session_factory, outing_id) -> dict[str, int]:
    async with session_factory() as db:
        rows = await db.execute(
            select(Reservation.status, func.count(Reservation.id))
            .where(Reservation.outing_id == outing_id)
            .group_by(Reservation.status)
        )
        counts = {status: count for status, count in rows.all()}
        stored = await db.scalar(select(Outing.confirmed_count).where(Outing.id == outing_id))
    counts["stored"] = stored
    return counts


@pytest.mark.asyncio
async def test_concurrent_registrations_never_overbook(session_factory, notifier):
    outing, members = await seed(session_factory, members=20, max_participants=5)

    async def register(member: Member):
        async with session_factory() as db:
            service = ReservationService(db, notifier=notifier)
            return await service.create_reservation(outing.id, member)

    results = await asyncio.gather(*(register(m) for m in members))

    statuses = [r.status for r in results]
    assert statuses.count(ReservationStatus.CONFIRMED) == 5
    assert statuses.count(ReservationStatus.WAITLISTED) == 15

    counts = await count_by_status(session_factory, outing.id)
    assert counts[ReservationStatus.CONFIRMED.value] == 5
    assert counts["stored"] == 5


@pytest.mark.asyncio
async def test_concurrent_cancellations_promote_each_seat_once(session_factory, notifier):
    outing, members = await seed(session_factory, members=6, max_participants=3)
    async with session_factory() as db:
        service = ReservationService(db, notifier=notifier)
        for member in members:
            await service.create_reservation(outing.id, member)

    async def cancel(member: Member):
        async with session_factory() as db:
            service = ReservationService(db, notifier=notifier)
            return await service.cancel_reservation(outing.id, member)

    results = await asyncio.gather(*(cancel(m) for m in members[:3]))

    promoted = {r.promoted.member_id for r in results}
    assert promoted == {m.id for m in members[3:]}

    counts = await count_by_status(session_factory, outing.id)
    assert counts[ReservationStatus.CONFIRMED.value] == 3
    assert counts.get(ReservationStatus.WAITLISTED.value, 0) == 0
    assert counts["stored"] == 3


@pytest.mark.asyncio
async def test_double_submit_creates_one_reservation(session_factory, notifier):
    outing, (member,) = await seed(session_factory, members=1, max_participants=2)

    async def register():
        async with session_factory() as db:
            service = ReservationService(db, notifier=notifier)
            return await service.create_reservation(outing.id, member)

    results = await asyncio.gather(register(), register(), return_exceptions=True)

    assert sum(1 for r in results if isinstance(r, DuplicateReservationError)) == 1
    counts = await count_by_status(session_factory, outing.id)
    assert counts[ReservationStatus.CONFIRMED.value] == 1
    assert counts["stored"] == 1


@pytest.mark.asyncio
async def test_concurrent_carpool_bookings_respect_seats(session_factory, notifier):
    outing, members = await seed(session_factory, members=9, max_participants=20)
    driver, riders = members[0], members[1:]
    async with session_factory() as db:
        carpool = Carpool(
            outing_id=outing.id,
            driver_id=driver.id,
            departure_time=outing.date_time - timedelta(hours=2),
            meeting_point="Hyères harbour",
            available_seats=2,
        )
        db.add(carpool)
        await db.commit()

    async def book(rider: Member):
        async with session_factory() as db:
            service = CarpoolService(db, notifier=notifier)
            return await service.book_carpool_seat(carpool.id, outing.id, rider)

    results = await asyncio.gather(*(book(r) for r in riders), return_exceptions=True)

    booked = [r for r in results if isinstance(r, CarpoolPassenger)]
    full = [r for r in results if isinstance(r, CarpoolFullError)]
    assert len(booked) == 2
    assert len(full) == 6

    async with session_factory() as db:
        stored = await db.scalar(
            select(func.count(CarpoolPassenger.id)).where(CarpoolPassenger.carpool_id == carpool.id)
        )
    assert stored == 2
