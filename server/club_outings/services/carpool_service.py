"""Carpool service: ride offers and passenger seat bookings."""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utc_now
from ..core.exceptions import (
    AuthorizationError,
    CapacityConflictError,
    CarpoolFullError,
    DuplicateBookingError,
    DuplicateCarpoolError,
    NotFoundError,
    OutingClosedError,
    ValidationError,
)
from ..core.locking import outing_locks
from ..core.observability import metrics_collector
from ..models.carpool import Carpool, CarpoolPassenger
from ..models.member import Member, MemberRole
from ..schemas.carpool import CreateCarpoolRequest, UpdateCarpoolRequest
from .notification_service import NotificationTemplate, OutingNotifier
from .outing_service import OutingService

logger = logging.getLogger(__name__)


class CarpoolService:
    """
    Service for carpool-related operations.

    Carpool capacity is independent of outing capacity. Seat bookings lock
    on the carpool's outing so the per-outing passenger rule and the seat
    ceiling are checked and written without interleaving.
    """

    def __init__(
        self,
        db: AsyncSession,
        notifier: OutingNotifier | None = None,
        clock: Clock = utc_now
    ):
        self.db = db
        self.notifier = notifier or OutingNotifier()
        self.clock = clock
        self.outing_service = OutingService(db, notifier=self.notifier, clock=clock)

    async def get_carpool(self, carpool_id: UUID) -> Carpool | None:
        stmt = (
            select(Carpool)
            .where(Carpool.id == carpool_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_carpool_or_raise(self, carpool_id: UUID) -> Carpool:
        carpool = await self.get_carpool(carpool_id)
        if not carpool:
            logger.warning("Carpool not found", extra={"carpool_id": str(carpool_id)})
            raise NotFoundError(resource_type="carpool", resource_id=str(carpool_id))
        return carpool

    async def _count_passengers(self, carpool_id: UUID) -> int:
        count = await self.db.scalar(
            select(func.count(CarpoolPassenger.id)).where(CarpoolPassenger.carpool_id == carpool_id)
        )
        return count or 0

    async def create_carpool(self, request: CreateCarpoolRequest, driver: Member) -> Carpool:
        """
        Offer a ride to an outing.

        Raises:
            NotFoundError: If the outing is missing or not visible
            OutingClosedError: If the outing is archived
            DuplicateCarpoolError: If the driver already offers a ride for the outing
        """
        async with outing_locks.hold(self.db, request.outing_id):
            try:
                outing = await self.outing_service.get_visible_outing(request.outing_id, driver)
                if outing.is_archived:
                    raise OutingClosedError(str(outing.id))

                existing_id = await self.db.scalar(
                    select(Carpool.id).where(
                        Carpool.outing_id == request.outing_id,
                        Carpool.driver_id == driver.id
                    )
                )
                if existing_id is not None:
                    raise DuplicateCarpoolError(str(request.outing_id), str(driver.id), str(existing_id))

                carpool = Carpool(
                    outing_id=request.outing_id,
                    driver_id=driver.id,
                    departure_time=request.departure_time,
                    meeting_point=request.meeting_point,
                    available_seats=request.available_seats,
                    maps_link=request.maps_link,
                    notes=request.notes,
                )
                self.db.add(carpool)
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                raise DuplicateCarpoolError(str(request.outing_id), str(driver.id), "unknown") from e
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "Carpool created successfully",
            extra={
                "carpool_id": str(carpool.id),
                "outing_id": str(request.outing_id),
                "driver_id": str(driver.id),
                "available_seats": request.available_seats,
            }
        )
        return await self.get_carpool_or_raise(carpool.id)

    async def update_carpool(self, request: UpdateCarpoolRequest, actor: Member) -> Carpool:
        """
        Edit a ride. Only its driver may do so.

        Raises:
            NotFoundError: If the carpool is missing
            AuthorizationError: If the actor is not the driver
            CapacityConflictError: If the seat count drops below current bookings
        """
        carpool = await self.get_carpool_or_raise(request.carpool_id)
        await self.outing_service.get_visible_outing(carpool.outing_id, actor)
        if carpool.driver_id != actor.id:
            raise AuthorizationError(detail="Only the driver can change this carpool")

        async with outing_locks.hold(self.db, carpool.outing_id):
            try:
                carpool = await self.get_carpool_or_raise(request.carpool_id)
                changes = request.model_dump(exclude_unset=True, exclude={"carpool_id"})

                for field in ("departure_time", "meeting_point", "available_seats"):
                    if field in changes and changes[field] is None:
                        raise ValidationError(detail=f"{field} cannot be cleared")

                seats = changes.get("available_seats")
                if seats is not None:
                    booked = await self._count_passengers(carpool.id)
                    if seats < booked:
                        raise CapacityConflictError(
                            resource_type="carpool",
                            resource_id=str(carpool.id),
                            requested=seats,
                            taken=booked
                        )

                for field, value in changes.items():
                    setattr(carpool, field, value)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "Carpool updated successfully",
            extra={"carpool_id": str(request.carpool_id), "fields": sorted(changes)}
        )
        return await self.get_carpool_or_raise(request.carpool_id)

    async def delete_carpool(self, carpool_id: UUID, actor: Member) -> int:
        """
        Withdraw a ride and release every seat booked in it.

        Each displaced passenger is emailed after the deletion is committed.

        Returns:
            Number of displaced passengers

        Raises:
            NotFoundError: If the carpool is missing
            AuthorizationError: If the actor is neither the driver nor an admin
        """
        carpool = await self.get_carpool_or_raise(carpool_id)
        await self.outing_service.get_visible_outing(carpool.outing_id, actor)
        if carpool.driver_id != actor.id and actor.role != MemberRole.ADMIN:
            raise AuthorizationError(detail="Only the driver or an admin can delete this carpool")

        outing_id = carpool.outing_id
        async with outing_locks.hold(self.db, outing_id):
            try:
                carpool = await self.get_carpool_or_raise(carpool_id)
                displaced = [booking.passenger for booking in carpool.passengers]
                driver_name = carpool.driver.display_name
                await self.db.delete(carpool)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "Carpool deleted",
            extra={
                "carpool_id": str(carpool_id),
                "outing_id": str(outing_id),
                "actor_id": str(actor.id),
                "displaced_passengers": len(displaced),
            }
        )

        outing = await self.outing_service.get_outing(outing_id)
        if displaced and outing is not None:
            await self.notifier.notify_many(
                displaced, NotificationTemplate.CARPOOL_CANCELLED, outing, driver_name=driver_name
            )
        return len(displaced)

    async def book_carpool_seat(self, carpool_id: UUID, outing_id: UUID, passenger: Member) -> CarpoolPassenger:
        """
        Book one passenger seat.

        Args:
            carpool_id: Carpool to ride in
            outing_id: Outing the carpool must belong to
            passenger: Booking member

        Returns:
            The created booking

        Raises:
            NotFoundError: If the carpool is missing or belongs to another outing
            ValidationError: If the driver tries to book their own carpool
            DuplicateBookingError: If the passenger already rides in a carpool of the outing
            CarpoolFullError: If every seat is taken
        """
        async with outing_locks.hold(self.db, outing_id):
            try:
                carpool = await self.get_carpool(carpool_id)
                if carpool is None or carpool.outing_id != outing_id:
                    raise NotFoundError(resource_type="carpool", resource_id=str(carpool_id))

                outing = await self.outing_service.get_visible_outing(outing_id, passenger)
                if outing.is_archived:
                    raise OutingClosedError(str(outing_id))

                if carpool.driver_id == passenger.id:
                    raise ValidationError(detail="A driver cannot book a seat in their own carpool")

                existing = await self.db.scalar(
                    select(CarpoolPassenger.carpool_id).where(
                        CarpoolPassenger.outing_id == outing_id,
                        CarpoolPassenger.passenger_id == passenger.id
                    )
                )
                if existing is not None:
                    metrics_collector.record_carpool_rejection("duplicate")
                    logger.warning(
                        "Carpool booking rejected - passenger already booked for outing",
                        extra={
                            "outing_id": str(outing_id),
                            "passenger_id": str(passenger.id),
                            "booked_carpool_id": str(existing),
                        }
                    )
                    raise DuplicateBookingError(str(outing_id), str(passenger.id), str(existing))

                booked = await self._count_passengers(carpool_id)
                if booked >= carpool.available_seats:
                    metrics_collector.record_carpool_rejection("full")
                    logger.warning(
                        "Carpool booking rejected - carpool full",
                        extra={
                            "carpool_id": str(carpool_id),
                            "available_seats": carpool.available_seats,
                            "booked": booked,
                        }
                    )
                    raise CarpoolFullError(str(carpool_id), carpool.available_seats)

                booking = CarpoolPassenger(
                    carpool_id=carpool_id,
                    outing_id=carpool.outing_id,
                    passenger_id=passenger.id,
                )
                self.db.add(booking)
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                metrics_collector.record_carpool_rejection("duplicate")
                raise DuplicateBookingError(str(outing_id), str(passenger.id)) from e
            except Exception:
                await self.db.rollback()
                raise

        metrics_collector.record_carpool_booking()
        logger.info(
            "Carpool seat booked",
            extra={
                "booking_id": str(booking.id),
                "carpool_id": str(carpool_id),
                "outing_id": str(outing_id),
                "passenger_id": str(passenger.id),
                "seats_left": carpool.available_seats - booked - 1,
            }
        )
        return booking

    async def cancel_carpool_booking(self, booking_id: UUID, actor: Member) -> None:
        """
        Release a passenger seat. Only the passenger may do so.

        Raises:
            NotFoundError: If the booking is missing
            AuthorizationError: If the actor is not the passenger
        """
        booking = await self.db.get(CarpoolPassenger, booking_id)
        if booking is None:
            raise NotFoundError(resource_type="carpool booking", resource_id=str(booking_id))
        await self.outing_service.get_visible_outing(booking.outing_id, actor)
        if booking.passenger_id != actor.id:
            raise AuthorizationError(detail="Only the passenger can cancel this booking")

        async with outing_locks.hold(self.db, booking.outing_id):
            try:
                await self.db.delete(booking)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "Carpool booking cancelled",
            extra={
                "booking_id": str(booking_id),
                "carpool_id": str(booking.carpool_id),
                "passenger_id": str(actor.id),
            }
        )

    async def list_carpools(self, outing_id: UUID, member: Member) -> list[Carpool]:
        """Carpools of a visible outing ordered by departure time."""
        await self.outing_service.get_visible_outing(outing_id, member)
        result = await self.db.execute(
            select(Carpool)
            .where(Carpool.outing_id == outing_id)
            .order_by(Carpool.departure_time, Carpool.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())
