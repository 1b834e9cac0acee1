"""Reservation router for registration, cancellation and rosters."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock
from ..core.dependencies import ClockDependency, CurrentMember, DatabaseSession, NotifierDependency
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..models.member import Member
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.reservation import (
    CancelReservationRequest,
    CancelReservationResponse,
    CreateReservationRequest,
    ListReservationsRequest,
    MemberReservation,
    MemberReservationsResponse,
    OutingRoster,
    Reservation,
    RosterEntry,
    SetPresenceRequest,
)
from ..services.notification_service import OutingNotifier
from ..services.reservation_service import ReservationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/reservation", tags=["reservation"], responses=PROBLEM_RESPONSES)


def _convert_reservation_to_schema(reservation_model) -> Reservation:
    """Convert reservation model to schema."""
    return Reservation(
        id=str(reservation_model.id),
        outing_id=str(reservation_model.outing_id),
        member_id=str(reservation_model.member_id),
        status=reservation_model.status,
        is_present=reservation_model.is_present,
        cancelled_at=reservation_model.cancelled_at,
        carpool_option=reservation_model.carpool_option,
        carpool_seats=reservation_model.carpool_seats,
        created_at=reservation_model.created_at
    )


def _convert_roster_entry(reservation_model, position: int | None = None) -> RosterEntry:
    member = reservation_model.member
    return RosterEntry(
        reservation_id=str(reservation_model.id),
        member_id=str(reservation_model.member_id),
        first_name=member.first_name,
        last_name=member.last_name,
        status=reservation_model.status,
        is_present=reservation_model.is_present,
        carpool_option=reservation_model.carpool_option,
        carpool_seats=reservation_model.carpool_seats,
        created_at=reservation_model.created_at,
        waitlist_position=position
    )


@router.post("/create", response_model=Reservation)
async def create_reservation(
    request: CreateReservationRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    notifier: OutingNotifier = NotifierDependency,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """
    Register the current member for an outing.

    The response status tells whether a seat was taken (``confirmed``) or
    the member joined the waitlist (``waitlisted``).
    """
    reservation_service = ReservationService(db, notifier=notifier, clock=clock)

    try:
        reservation = await reservation_service.create_reservation(
            request.outing_id,
            member,
            carpool_option=request.carpool_option,
            carpool_seats=request.carpool_seats
        )
        response_data = _convert_reservation_to_schema(reservation)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in reservation creation",
            extra={"outing_id": str(request.outing_id), "member_id": str(member.id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/cancel", response_model=CancelReservationResponse)
async def cancel_reservation(
    request: CancelReservationRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    notifier: OutingNotifier = NotifierDependency,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """
    Cancel the current member's reservation for an outing.

    A freed seat goes to the oldest waitlisted reservation, returned as ``promoted``.
    """
    reservation_service = ReservationService(db, notifier=notifier, clock=clock)

    try:
        result = await reservation_service.cancel_reservation(request.outing_id, member)
        response_data = CancelReservationResponse(
            cancelled=_convert_reservation_to_schema(result.cancelled),
            promoted=_convert_reservation_to_schema(result.promoted) if result.promoted else None
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in reservation cancellation",
            extra={"outing_id": str(request.outing_id), "member_id": str(member.id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/presence", response_model=Reservation)
async def set_presence(
    request: SetPresenceRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """Mark attendance of a participant. Outing organizer or admin only."""
    reservation_service = ReservationService(db, clock=clock)

    try:
        reservation = await reservation_service.set_presence(
            request.reservation_id, request.is_present, member
        )
        response_data = _convert_reservation_to_schema(reservation)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in presence update",
            extra={"reservation_id": str(request.reservation_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/list", response_model=OutingRoster)
async def list_outing_reservations(
    request: ListReservationsRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """Confirmed participants and waitlist of an outing."""
    reservation_service = ReservationService(db, clock=clock)

    try:
        roster = await reservation_service.list_outing_reservations(request.outing_id, member)
        response_data = OutingRoster(
            outing_id=str(roster.outing.id),
            max_participants=roster.outing.max_participants,
            confirmed_count=roster.outing.confirmed_count,
            confirmed=[_convert_roster_entry(r) for r in roster.confirmed],
            waitlist=[
                _convert_roster_entry(r, position)
                for position, r in enumerate(roster.waitlist, start=1)
            ]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in roster retrieval",
            extra={"outing_id": str(request.outing_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/mine", response_model=MemberReservationsResponse)
async def list_member_reservations(
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """Active reservations of the current member, newest first."""
    reservation_service = ReservationService(db, clock=clock)

    try:
        reservations = await reservation_service.list_member_reservations(member)
        response_data = MemberReservationsResponse(
            items=[
                MemberReservation(
                    reservation=_convert_reservation_to_schema(r),
                    outing_title=r.outing.title,
                    outing_date_time=r.outing.date_time,
                    outing_location=r.outing.location
                )
                for r in reservations
            ]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in member reservation listing",
            extra={"member_id": str(member.id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e
