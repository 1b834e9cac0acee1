"""Unit tests for the carpool service."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from club_outings.core.exceptions import (
    AuthorizationError,
    CapacityConflictError,
    CarpoolFullError,
    DuplicateBookingError,
    DuplicateCarpoolError,
    NotFoundError,
    OutingClosedError,
    ValidationError,
)
from club_outings.models import CarpoolPassenger
from club_outings.schemas.carpool import CreateCarpoolRequest, UpdateCarpoolRequest
from club_outings.services.carpool_service import CarpoolService
from club_outings.services.notification_service import NotificationTemplate


@pytest.fixture
def service(test_session, notifier, clock):
    return CarpoolService(test_session, notifier=notifier, clock=clock)


@pytest.fixture
def offer(service, now):
    """Async helper that offers a ride to an outing."""

    async def create(outing, driver, seats: int = 3, **overrides):
        values = {
            "outing_id": outing.id,
            "departure_time": now + timedelta(days=7, hours=-2),
            "meeting_point": "Club car park",
            "available_seats": seats,
        }
        values.update(overrides)
        return await service.create_carpool(CreateCarpoolRequest(**values), driver)

    return create


@pytest.mark.asyncio
async def test_single_seat_carpool_fills_up(service, offer, outing_factory, member_factory):
    outing = await outing_factory()
    driver = await member_factory()
    x = await member_factory()
    y = await member_factory()
    carpool = await offer(outing, driver, seats=1)

    booking = await service.book_carpool_seat(carpool.id, outing.id, x)
    assert booking.passenger_id == x.id

    with pytest.raises(CarpoolFullError) as exc_info:
        await service.book_carpool_seat(carpool.id, outing.id, y)

    assert exc_info.value.code == "CARPOOL_FULL"
    reloaded = await service.get_carpool_or_raise(carpool.id)
    assert [p.passenger_id for p in reloaded.passengers] == [x.id]
    assert reloaded.seats_left == 0


@pytest.mark.asyncio
async def test_one_booking_per_outing_across_carpools(service, offer, outing_factory, member_factory):
    outing = await outing_factory()
    first = await offer(outing, await member_factory())
    second = await offer(outing, await member_factory())
    rider = await member_factory()

    await service.book_carpool_seat(first.id, outing.id, rider)

    with pytest.raises(DuplicateBookingError):
        await service.book_carpool_seat(second.id, outing.id, rider)
    with pytest.raises(DuplicateBookingError):
        await service.book_carpool_seat(first.id, outing.id, rider)


@pytest.mark.asyncio
async def test_booking_checks_outing_and_driver(service, offer, outing_factory, member_factory):
    outing = await outing_factory()
    other = await outing_factory(title="Another outing")
    driver = await member_factory()
    carpool = await offer(outing, driver)

    with pytest.raises(NotFoundError):
        await service.book_carpool_seat(carpool.id, other.id, await member_factory())

    with pytest.raises(ValidationError):
        await service.book_carpool_seat(carpool.id, outing.id, driver)


@pytest.mark.asyncio
async def test_driver_offers_one_carpool_per_outing(offer, outing_factory, member_factory):
    outing = await outing_factory()
    driver = await member_factory()
    await offer(outing, driver)

    with pytest.raises(DuplicateCarpoolError):
        await offer(outing, driver, meeting_point="Harbour")


@pytest.mark.asyncio
async def test_no_carpools_on_archived_or_hidden_outings(offer, outing_factory, member_factory, organizer):
    archived = await outing_factory(is_archived=True)
    hidden = await outing_factory(organizer, is_staff_only=True)
    member = await member_factory()

    with pytest.raises(OutingClosedError):
        await offer(archived, member)
    with pytest.raises(NotFoundError):
        await offer(hidden, member)


@pytest.mark.asyncio
async def test_update_is_driver_only_and_respects_bookings(service, offer, outing_factory, member_factory):
    outing = await outing_factory()
    driver = await member_factory()
    carpool = await offer(outing, driver, seats=3)
    await service.book_carpool_seat(carpool.id, outing.id, await member_factory())
    await service.book_carpool_seat(carpool.id, outing.id, await member_factory())

    with pytest.raises(AuthorizationError):
        await service.update_carpool(
            UpdateCarpoolRequest(carpool_id=carpool.id, notes="hijack"), await member_factory()
        )

    with pytest.raises(CapacityConflictError):
        await service.update_carpool(UpdateCarpoolRequest(carpool_id=carpool.id, available_seats=1), driver)

    with pytest.raises(ValidationError):
        await service.update_carpool(UpdateCarpoolRequest(carpool_id=carpool.id, meeting_point=None), driver)

    updated = await service.update_carpool(
        UpdateCarpoolRequest(carpool_id=carpool.id, available_seats=2, notes="Room for one bag each"),
        driver
    )
    assert updated.available_seats == 2
    assert updated.notes == "Room for one bag each"
    assert updated.seats_left == 0


@pytest.mark.asyncio
async def test_delete_releases_seats_and_notifies(
    service, test_session, offer, outing_factory, member_factory, dispatcher
):
    outing = await outing_factory()
    driver = await member_factory(first_name="Dora")
    riders = [await member_factory() for _ in range(2)]
    carpool = await offer(outing, driver)
    for rider in riders:
        await service.book_carpool_seat(carpool.id, outing.id, rider)

    with pytest.raises(AuthorizationError):
        await service.delete_carpool(carpool.id, riders[0])

    displaced = await service.delete_carpool(carpool.id, driver)

    assert displaced == 2
    assert await service.get_carpool(carpool.id) is None
    remaining = await test_session.scalar(select(func.count(CarpoolPassenger.id)))
    assert remaining == 0
    assert sorted(dispatcher.recipients(NotificationTemplate.CARPOOL_CANCELLED)) == sorted(
        rider.email for rider in riders
    )
    assert all(
        email.context["driver_name"] == "Dora Test"
        for email in dispatcher.sent
        if email.template == NotificationTemplate.CARPOOL_CANCELLED
    )


@pytest.mark.asyncio
async def test_admin_can_delete_any_carpool(service, offer, outing_factory, member_factory, admin):
    outing = await outing_factory()
    carpool = await offer(outing, await member_factory())

    assert await service.delete_carpool(carpool.id, admin) == 0


@pytest.mark.asyncio
async def test_cancel_booking_frees_seat(service, offer, outing_factory, member_factory):
    outing = await outing_factory()
    carpool = await offer(outing, await member_factory(), seats=1)
    rider = await member_factory()
    booking = await service.book_carpool_seat(carpool.id, outing.id, rider)

    with pytest.raises(AuthorizationError):
        await service.cancel_carpool_booking(booking.id, await member_factory())

    await service.cancel_carpool_booking(booking.id, rider)

    replacement = await member_factory()
    rebooked = await service.book_carpool_seat(carpool.id, outing.id, replacement)
    assert rebooked.passenger_id == replacement.id


@pytest.mark.asyncio
async def test_list_carpools_orders_by_departure(service, offer, outing_factory, member_factory, now):
    outing = await outing_factory()
    late = await offer(outing, await member_factory(), departure_time=now + timedelta(days=7))
    early = await offer(outing, await member_factory(), departure_time=now + timedelta(days=6))

    carpools = await service.list_carpools(outing.id, await member_factory())

    assert [c.id for c in carpools] == [early.id, late.id]
