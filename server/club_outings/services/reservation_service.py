"""Reservation service: registration, waitlist and promotion."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.clock import Clock, utc_now
from ..core.exceptions import (
    AlreadyCancelledError,
    DuplicateReservationError,
    NotFoundError,
    OutingClosedError,
)
from ..core.locking import outing_locks
from ..core.observability import metrics_collector
from ..models.member import Member
from ..models.outing import Outing
from ..models.reservation import ACTIVE_STATUSES, CarpoolOption, Reservation, ReservationStatus
from .notification_service import NotificationTemplate, OutingNotifier
from .outing_service import OutingService
from .seat_ledger import SeatLedger, next_queue_seq

logger = logging.getLogger(__name__)


@dataclass
class CancellationResult:
    """Outcome of a cancellation: the cancelled row and the promoted one, if any."""

    cancelled: Reservation
    promoted: Reservation | None = None


@dataclass
class Roster:
    """Confirmed participants and the ordered waitlist of one outing."""

    outing: Outing
    confirmed: list[Reservation]
    waitlist: list[Reservation]


class ReservationService:
    """Service for reservation-related operations."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: OutingNotifier | None = None,
        clock: Clock = utc_now
    ):
        self.db = db
        self.notifier = notifier or OutingNotifier()
        self.clock = clock
        self.seats = SeatLedger(db)
        self.outing_service = OutingService(db, notifier=self.notifier, clock=clock)

    async def get_active_reservation(self, outing_id: UUID, member_id: UUID) -> Reservation | None:
        stmt = (
            select(Reservation)
            .where(
                Reservation.outing_id == outing_id,
                Reservation.member_id == member_id,
                Reservation.status.in_(ACTIVE_STATUSES)
            )
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _has_cancelled_reservation(self, outing_id: UUID, member_id: UUID) -> bool:
        reservation_id = await self.db.scalar(
            select(Reservation.id)
            .where(
                Reservation.outing_id == outing_id,
                Reservation.member_id == member_id,
                Reservation.status == ReservationStatus.CANCELLED
            )
            .limit(1)
        )
        return reservation_id is not None

    async def create_reservation(
        self,
        outing_id: UUID,
        member: Member,
        carpool_option: CarpoolOption = CarpoolOption.NONE,
        carpool_seats: int = 0
    ) -> Reservation:
        """
        Register a member for an outing.

        The member gets a confirmed seat if one is left, otherwise a place at
        the back of the waitlist. A member who cancelled earlier registers
        again with a new reservation row.

        Args:
            outing_id: Outing to register for
            member: Registering member
            carpool_option: Transport intent
            carpool_seats: Seats offered when driving

        Returns:
            Created reservation with its assigned status

        Raises:
            NotFoundError: If the outing is missing, cancelled or not visible
            OutingClosedError: If the outing is archived
            DuplicateReservationError: If the member already holds an active reservation
        """
        async with outing_locks.hold(self.db, outing_id):
            try:
                outing = await self.outing_service.get_visible_outing(outing_id, member)
                if outing.is_archived:
                    raise OutingClosedError(str(outing_id))

                existing = await self.get_active_reservation(outing_id, member.id)
                if existing:
                    logger.warning(
                        "Reservation rejected - member already registered",
                        extra={
                            "outing_id": str(outing_id),
                            "member_id": str(member.id),
                            "existing_status": existing.status,
                        }
                    )
                    raise DuplicateReservationError(str(outing_id), str(member.id), existing.status)

                seated = await self.seats.claim_seat(outing_id)
                reservation = Reservation(
                    outing_id=outing_id,
                    member_id=member.id,
                    status=ReservationStatus.CONFIRMED if seated else ReservationStatus.WAITLISTED,
                    carpool_option=carpool_option,
                    carpool_seats=carpool_seats,
                    queue_seq=next_queue_seq(outing_id),
                )
                self.db.add(reservation)
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                raise DuplicateReservationError(
                    str(outing_id), str(member.id), ReservationStatus.CONFIRMED.value
                ) from e
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(reservation)
        outing = await self.outing_service.get_outing_or_raise(outing_id)

        status = ReservationStatus(reservation.status)
        metrics_collector.record_reservation_created(status.value)
        metrics_collector.set_capacity_utilization(
            str(outing_id), outing.confirmed_count, outing.max_participants
        )

        logger.info(
            "Reservation created successfully",
            extra={
                "reservation_id": str(reservation.id),
                "outing_id": str(outing_id),
                "member_id": str(member.id),
                "status": status.value,
                "confirmed_count": outing.confirmed_count,
                "max_participants": outing.max_participants,
            }
        )

        template = (
            NotificationTemplate.REGISTRATION
            if status == ReservationStatus.CONFIRMED
            else NotificationTemplate.WAITLIST
        )
        await self.notifier.notify(member, template, outing)

        return reservation

    async def cancel_reservation(self, outing_id: UUID, member: Member) -> CancellationResult:
        """
        Cancel the member's active reservation for an outing.

        When a confirmed seat is freed, the oldest waitlisted reservation takes
        it in the same transaction; otherwise the seat count goes down.

        Raises:
            NotFoundError: If the outing or any reservation of the member is missing
            AlreadyCancelledError: If the member's only reservation is already cancelled
            OutingClosedError: If the outing is archived
        """
        promoted: Reservation | None = None

        async with outing_locks.hold(self.db, outing_id):
            try:
                outing = await self.outing_service.get_visible_outing(outing_id, member)
                if outing.is_archived:
                    raise OutingClosedError(str(outing_id))

                reservation = await self.get_active_reservation(outing_id, member.id)
                if reservation is None:
                    if await self._has_cancelled_reservation(outing_id, member.id):
                        raise AlreadyCancelledError(str(outing_id), str(member.id))
                    raise NotFoundError(
                        resource_type="reservation",
                        detail=f"Member {member.id} has no reservation for outing {outing_id}"
                    )

                was_confirmed = reservation.status == ReservationStatus.CONFIRMED
                now = self.clock()
                reservation.status = ReservationStatus.CANCELLED
                reservation.cancelled_at = now
                await self.db.flush()

                if was_confirmed:
                    promoted = await self.seats.promote_next_waitlisted(outing_id, now)
                    if promoted is None:
                        await self.seats.release_seat(outing_id)

                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        outing = await self.outing_service.get_outing_or_raise(outing_id)
        metrics_collector.record_reservation_cancelled()
        metrics_collector.set_capacity_utilization(
            str(outing_id), outing.confirmed_count, outing.max_participants
        )

        logger.info(
            "Reservation cancelled successfully",
            extra={
                "reservation_id": str(reservation.id),
                "outing_id": str(outing_id),
                "member_id": str(member.id),
                "was_confirmed": was_confirmed,
                "promoted_reservation_id": str(promoted.id) if promoted else None,
                "confirmed_count": outing.confirmed_count,
            }
        )

        await self.notifier.notify(member, NotificationTemplate.CANCELLATION, outing)
        if promoted is not None:
            metrics_collector.record_promotion()
            await self.notifier.notify(promoted.member, NotificationTemplate.PROMOTION, outing)

        return CancellationResult(cancelled=reservation, promoted=promoted)

    async def set_presence(self, reservation_id: UUID, is_present: bool, actor: Member) -> Reservation:
        """
        Mark whether a participant attended.

        Raises:
            NotFoundError: If the reservation or its outing is missing
            AuthorizationError: If the actor does not manage the outing
            AlreadyCancelledError: If the reservation is cancelled
        """
        reservation = await self.db.scalar(
            select(Reservation)
            .where(Reservation.id == reservation_id)
            .execution_options(populate_existing=True)
        )
        if reservation is None:
            raise NotFoundError(resource_type="reservation", resource_id=str(reservation_id))

        outing = await self.outing_service.get_manageable_outing(reservation.outing_id, actor)
        if reservation.status == ReservationStatus.CANCELLED:
            raise AlreadyCancelledError(str(outing.id), str(reservation.member_id))

        reservation.is_present = is_present
        await self.db.commit()

        logger.info(
            "Presence updated",
            extra={
                "reservation_id": str(reservation_id),
                "outing_id": str(outing.id),
                "is_present": is_present,
                "actor_id": str(actor.id),
            }
        )
        return reservation

    async def list_outing_reservations(self, outing_id: UUID, member: Member) -> Roster:
        """Confirmed participants and the waitlist in promotion order."""
        outing = await self.outing_service.get_visible_outing(outing_id, member)

        result = await self.db.execute(
            select(Reservation)
            .where(
                Reservation.outing_id == outing_id,
                Reservation.status.in_(ACTIVE_STATUSES)
            )
            .order_by(Reservation.queue_seq)
            .execution_options(populate_existing=True)
        )
        reservations = list(result.scalars())

        return Roster(
            outing=outing,
            confirmed=[r for r in reservations if r.status == ReservationStatus.CONFIRMED],
            waitlist=[r for r in reservations if r.status == ReservationStatus.WAITLISTED],
        )

    async def list_member_reservations(self, member: Member) -> list[Reservation]:
        """The member's active reservations on outings that still exist, newest first."""
        result = await self.db.execute(
            select(Reservation)
            .join(Outing, Outing.id == Reservation.outing_id)
            .options(selectinload(Reservation.outing))
            .where(
                Reservation.member_id == member.id,
                Reservation.status.in_(ACTIVE_STATUSES),
                Outing.is_deleted.is_(False)
            )
            .order_by(Reservation.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars())
