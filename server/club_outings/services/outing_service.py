"""Outing service for business logic operations."""

import base64
import binascii
import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utc_now
from ..core.exceptions import (
    AuthorizationError,
    CapacityConflictError,
    NotFoundError,
    OutingClosedError,
    ValidationError,
)
from ..core.locking import outing_locks
from ..core.observability import metrics_collector
from ..models.carpool import Carpool
from ..models.member import STAFF_ROLES, Member, MemberRole
from ..models.outing import Outing
from ..models.reservation import ACTIVE_STATUSES, Reservation, ReservationStatus
from ..schemas.outing import CreateOutingRequest, SearchOutingsRequest, UpdateOutingRequest
from .notification_service import NotificationTemplate, OutingNotifier
from .seat_ledger import SeatLedger, next_queue_seq

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "title",
    "description",
    "date_time",
    "end_date",
    "location",
    "outing_type",
    "is_staff_only",
)


def encode_cursor(outing: Outing) -> str:
    raw = f"{outing.date_time.isoformat()}|{outing.id}"
    return base64.urlsafe_b64encode(raw.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    """Raises ValueError for anything that is not a cursor produced by ``encode_cursor``."""
    try:
        raw = base64.urlsafe_b64decode(cursor.encode()).decode()
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError("malformed cursor") from e
    date_part, _, id_part = raw.partition("|")
    return datetime.fromisoformat(date_part), UUID(id_part)


class OutingService:
    """Service for outing-related operations."""

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

    @staticmethod
    def ensure_can_manage(outing: Outing, actor: Member) -> None:
        """Only the outing's organizer or an admin may change it."""
        if actor.role == MemberRole.ADMIN or outing.organizer_id == actor.id:
            return
        raise AuthorizationError(
            detail="Only the organizer of this outing or an admin can change it",
            required_roles=[MemberRole.ADMIN.value, "outing_organizer"]
        )

    async def create_outing(self, request: CreateOutingRequest, organizer: Member) -> Outing:
        """
        Schedule a new outing.

        The organizer is registered as its first confirmed participant.

        Args:
            request: Outing creation request
            organizer: Acting member, must be staff

        Returns:
            Created outing entity

        Raises:
            AuthorizationError: If the member is not an organizer or admin
        """
        if not organizer.is_staff:
            raise AuthorizationError(
                detail="Only organizers and admins can schedule outings",
                required_roles=[role.value for role in STAFF_ROLES]
            )

        outing = Outing(
            title=request.title,
            description=request.description,
            date_time=request.date_time,
            end_date=request.end_date,
            location=request.location,
            outing_type=request.outing_type,
            max_participants=request.max_participants,
            confirmed_count=1,
            organizer_id=organizer.id,
            is_staff_only=request.is_staff_only,
        )
        self.db.add(outing)
        await self.db.flush()

        self.db.add(Reservation(
            outing_id=outing.id,
            member_id=organizer.id,
            status=ReservationStatus.CONFIRMED,
            queue_seq=next_queue_seq(outing.id),
        ))
        await self.db.commit()

        outing = await self.get_outing_or_raise(outing.id)
        metrics_collector.record_reservation_created(ReservationStatus.CONFIRMED.value)
        metrics_collector.set_capacity_utilization(
            str(outing.id), outing.confirmed_count, outing.max_participants
        )

        logger.info(
            "Outing created successfully",
            extra={
                "outing_id": str(outing.id),
                "organizer_id": str(organizer.id),
                "outing_type": outing.outing_type,
                "date_time": outing.date_time.isoformat(),
                "max_participants": outing.max_participants,
            }
        )

        return outing

    async def get_outing(self, outing_id: UUID) -> Outing | None:
        """Return the outing unless it is missing or soft-deleted."""
        stmt = (
            select(Outing)
            .where(Outing.id == outing_id, Outing.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_outing_or_raise(self, outing_id: UUID) -> Outing:
        """
        Get outing by ID or raise NotFoundError.

        Raises:
            NotFoundError: If the outing does not exist or was cancelled
        """
        outing = await self.get_outing(outing_id)
        if not outing:
            logger.warning("Outing not found", extra={"outing_id": str(outing_id)})
            raise NotFoundError(resource_type="outing", resource_id=str(outing_id))
        return outing

    async def get_visible_outing(self, outing_id: UUID, member: Member) -> Outing:
        """Like ``get_outing_or_raise`` but staff-only outings are hidden from non-staff."""
        outing = await self.get_outing_or_raise(outing_id)
        if outing.is_staff_only and not member.is_staff:
            logger.info(
                "Staff-only outing requested by non-staff member",
                extra={"outing_id": str(outing_id), "member_id": str(member.id)}
            )
            raise NotFoundError(resource_type="outing", resource_id=str(outing_id))
        return outing

    async def get_manageable_outing(self, outing_id: UUID, actor: Member) -> Outing:
        """Resolve an outing the actor may change. Hidden outings are not found, not forbidden."""
        outing = await self.get_visible_outing(outing_id, actor)
        self.ensure_can_manage(outing, actor)
        return outing

    async def search_outings(
        self,
        request: SearchOutingsRequest,
        member: Member
    ) -> tuple[list[Outing], str | None]:
        """
        List outings ordered by start time with keyset pagination.

        Args:
            request: Search filters and cursor
            member: Reading member, used for staff-only visibility

        Returns:
            The page of outings and the cursor of the next page, if any
        """
        stmt = select(Outing).where(Outing.is_deleted.is_(False))

        if request.upcoming_only:
            stmt = stmt.where(func.coalesce(Outing.end_date, Outing.date_time) > self.clock())
        if not request.include_archived:
            stmt = stmt.where(Outing.is_archived.is_(False))
        if request.outing_type:
            stmt = stmt.where(Outing.outing_type == request.outing_type)
        if not member.is_staff:
            stmt = stmt.where(Outing.is_staff_only.is_(False))

        if request.cursor:
            try:
                cursor_date, cursor_id = decode_cursor(request.cursor)
                stmt = stmt.where(
                    or_(
                        Outing.date_time > cursor_date,
                        and_(Outing.date_time == cursor_date, Outing.id > cursor_id)
                    )
                )
            except ValueError:
                logger.warning(
                    "Invalid cursor provided in outing search",
                    extra={"cursor": request.cursor}
                )

        stmt = stmt.order_by(Outing.date_time, Outing.id).limit(request.limit + 1)
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        outings = list(result.scalars())

        has_next_page = len(outings) > request.limit
        if has_next_page:
            outings = outings[:-1]

        next_cursor = encode_cursor(outings[-1]) if has_next_page and outings else None

        logger.info(
            "Outing search completed",
            extra={
                "total_found": len(outings),
                "has_next_page": has_next_page,
                "filters": {
                    "outing_type": request.outing_type,
                    "upcoming_only": request.upcoming_only,
                    "include_archived": request.include_archived,
                }
            }
        )

        return outings, next_cursor

    async def carpool_summaries(self, outing_ids: list[UUID]) -> dict[UUID, tuple[int, int]]:
        """Map outing id to (carpool count, seats offered)."""
        if not outing_ids:
            return {}
        stmt = (
            select(
                Carpool.outing_id,
                func.count(Carpool.id),
                func.coalesce(func.sum(Carpool.available_seats), 0)
            )
            .where(Carpool.outing_id.in_(outing_ids))
            .group_by(Carpool.outing_id)
        )
        result = await self.db.execute(stmt)
        return {row[0]: (row[1], row[2]) for row in result.all()}

    async def update_outing(self, request: UpdateOutingRequest, actor: Member) -> Outing:
        """
        Edit an outing.

        Raising ``max_participants`` promotes waitlisted reservations in
        FIFO order until the new ceiling is reached.

        Raises:
            NotFoundError: If the outing does not exist
            AuthorizationError: If the actor does not manage the outing
            OutingClosedError: If the outing is archived
            CapacityConflictError: If the new ceiling is below confirmed seats
            ValidationError: If the resulting end date precedes the start
        """
        promoted: list[Reservation] = []

        async with outing_locks.hold(self.db, request.outing_id):
            try:
                outing = await self.get_manageable_outing(request.outing_id, actor)
                if outing.is_archived:
                    raise OutingClosedError(str(outing.id))

                changes = request.model_dump(include=set(UPDATABLE_FIELDS), exclude_unset=True)
                for field, value in changes.items():
                    if value is None and field in ("title", "date_time", "location", "outing_type", "is_staff_only"):
                        raise ValidationError(detail=f"{field} cannot be cleared")
                    setattr(outing, field, value)

                if outing.end_date is not None and outing.end_date < outing.date_time:
                    raise ValidationError(detail="end_date must not be before date_time")

                new_capacity = request.max_participants
                if new_capacity is not None and new_capacity != outing.max_participants:
                    if new_capacity < outing.confirmed_count:
                        raise CapacityConflictError(
                            resource_type="outing",
                            resource_id=str(outing.id),
                            requested=new_capacity,
                            taken=outing.confirmed_count
                        )
                    grew = new_capacity > outing.max_participants
                    outing.max_participants = new_capacity
                    await self.db.flush()
                    if grew:
                        promoted = await self._fill_from_waitlist(outing.id)

                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        outing = await self.get_outing_or_raise(request.outing_id)
        metrics_collector.set_capacity_utilization(
            str(outing.id), outing.confirmed_count, outing.max_participants
        )

        logger.info(
            "Outing updated successfully",
            extra={
                "outing_id": str(outing.id),
                "actor_id": str(actor.id),
                "fields": sorted(request.model_dump(exclude_unset=True, exclude={"outing_id"})),
                "promoted_count": len(promoted),
            }
        )

        for reservation in promoted:
            metrics_collector.record_promotion()
            await self.notifier.notify(reservation.member, NotificationTemplate.PROMOTION, outing)

        return outing

    async def _fill_from_waitlist(self, outing_id: UUID) -> list[Reservation]:
        promoted = []
        while await self.seats.claim_seat(outing_id):
            reservation = await self.seats.promote_next_waitlisted(outing_id, self.clock())
            if reservation is None:
                await self.seats.release_seat(outing_id)
                break
            promoted.append(reservation)
        return promoted

    async def update_session_report(self, outing_id: UUID, report: str, actor: Member) -> Outing:
        """Record the post-outing session report. Archived outings accept reports."""
        outing = await self.get_manageable_outing(outing_id, actor)

        outing.session_report = report
        await self.db.commit()

        logger.info(
            "Session report saved",
            extra={"outing_id": str(outing_id), "actor_id": str(actor.id), "length": len(report)}
        )
        return await self.get_outing_or_raise(outing_id)

    async def archive_outing(self, outing_id: UUID, actor: Member) -> Outing:
        """Close an outing for registration. Archiving twice is a no-op."""
        async with outing_locks.hold(self.db, outing_id):
            try:
                outing = await self.get_manageable_outing(outing_id, actor)
                if not outing.is_archived:
                    outing.is_archived = True
                    await self.db.commit()
                    logger.info(
                        "Outing archived",
                        extra={"outing_id": str(outing_id), "actor_id": str(actor.id)}
                    )
                else:
                    await self.db.rollback()
            except Exception:
                await self.db.rollback()
                raise

        return await self.get_outing_or_raise(outing_id)

    async def cancel_outing(self, outing_id: UUID, reason: str | None, actor: Member) -> int:
        """
        Cancel an outing and every active reservation on it.

        The outing is soft-deleted and its carpools are removed. Each member
        who held an active reservation or a carpool seat is emailed once the
        change is committed.

        Returns:
            Number of reservations cancelled
        """
        async with outing_locks.hold(self.db, outing_id):
            try:
                outing = await self.get_manageable_outing(outing_id, actor)

                result = await self.db.execute(
                    select(Reservation)
                    .where(
                        Reservation.outing_id == outing_id,
                        Reservation.status.in_(ACTIVE_STATUSES)
                    )
                    .order_by(Reservation.queue_seq)
                )
                registrants = [reservation.member for reservation in result.scalars()]

                carpools = (await self.db.execute(
                    select(Carpool)
                    .where(Carpool.outing_id == outing_id)
                    .execution_options(populate_existing=True)
                )).scalars().all()
                riders = [booking.passenger for carpool in carpools for booking in carpool.passengers]
                for carpool in carpools:
                    await self.db.delete(carpool)

                now = self.clock()
                await self.db.execute(
                    update(Reservation)
                    .where(
                        Reservation.outing_id == outing_id,
                        Reservation.status.in_(ACTIVE_STATUSES)
                    )
                    .values(status=ReservationStatus.CANCELLED, cancelled_at=now, updated_at=now)
                    .execution_options(synchronize_session=False)
                )

                outing.is_deleted = True
                outing.is_archived = False
                outing.confirmed_count = 0
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "Outing cancelled",
            extra={
                "outing_id": str(outing_id),
                "actor_id": str(actor.id),
                "cancelled_reservations": len(registrants),
                "removed_carpools": len(carpools),
                "reason": reason,
            }
        )
        metrics_collector.set_capacity_utilization(str(outing_id), 0, outing.max_participants)

        # Carpool riders without a reservation are told too, once each
        registrant_ids = {member.id for member in registrants}
        recipients = registrants + [
            rider for rider in {rider.id: rider for rider in riders}.values()
            if rider.id not in registrant_ids
        ]
        await self.notifier.notify_many(
            recipients, NotificationTemplate.OUTING_CANCELLED, outing, reason=reason
        )
        return len(registrants)
