"""Carpool router for ride offers and seat bookings."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock
from ..core.dependencies import ClockDependency, CurrentMember, DatabaseSession, NotifierDependency
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..models.member import Member
from ..schemas.carpool import (
    BookCarpoolSeatRequest,
    CancelCarpoolBookingRequest,
    Carpool,
    CarpoolListResponse,
    CarpoolPassenger,
    CreateCarpoolRequest,
    DeleteCarpoolRequest,
    DeleteCarpoolResponse,
    ListCarpoolsRequest,
    UpdateCarpoolRequest,
)
from ..schemas.common import PROBLEM_RESPONSES
from ..services.carpool_service import CarpoolService
from ..services.notification_service import OutingNotifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/carpool", tags=["carpool"], responses=PROBLEM_RESPONSES)


def _convert_passenger_to_schema(booking_model) -> CarpoolPassenger:
    """Convert passenger booking model to schema."""
    return CarpoolPassenger(
        id=str(booking_model.id),
        carpool_id=str(booking_model.carpool_id),
        passenger_id=str(booking_model.passenger_id),
        first_name=booking_model.passenger.first_name,
        last_name=booking_model.passenger.last_name,
        created_at=booking_model.created_at
    )


def _convert_carpool_to_schema(carpool_model) -> Carpool:
    """Convert carpool model to schema."""
    return Carpool(
        id=str(carpool_model.id),
        outing_id=str(carpool_model.outing_id),
        driver_id=str(carpool_model.driver_id),
        driver_name=carpool_model.driver.display_name,
        departure_time=carpool_model.departure_time,
        meeting_point=carpool_model.meeting_point,
        available_seats=carpool_model.available_seats,
        seats_left=carpool_model.seats_left,
        maps_link=carpool_model.maps_link,
        notes=carpool_model.notes,
        passengers=[_convert_passenger_to_schema(p) for p in carpool_model.passengers]
    )


@router.post("/create", response_model=Carpool)
async def create_carpool(
    request: CreateCarpoolRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """Offer a ride to an outing with the current member as driver."""
    carpool_service = CarpoolService(db, clock=clock)

    try:
        carpool = await carpool_service.create_carpool(request, member)
        response_data = _convert_carpool_to_schema(carpool)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in carpool creation",
            extra={"outing_id": str(request.outing_id), "driver_id": str(member.id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/update", response_model=Carpool)
async def update_carpool(
    request: UpdateCarpoolRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """Edit a ride. Driver only."""
    carpool_service = CarpoolService(db, clock=clock)

    try:
        carpool = await carpool_service.update_carpool(request, member)
        response_data = _convert_carpool_to_schema(carpool)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in carpool update",
            extra={"carpool_id": str(request.carpool_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/delete", response_model=DeleteCarpoolResponse)
async def delete_carpool(
    request: DeleteCarpoolRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    notifier: OutingNotifier = NotifierDependency,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """
    Withdraw a ride.

    Passengers lose their booking and are emailed.
    """
    carpool_service = CarpoolService(db, notifier=notifier, clock=clock)

    try:
        displaced = await carpool_service.delete_carpool(request.carpool_id, member)
        response_data = DeleteCarpoolResponse(
            carpool_id=str(request.carpool_id),
            displaced_passengers=displaced
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in carpool deletion",
            extra={"carpool_id": str(request.carpool_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/book", response_model=Carpool)
async def book_carpool_seat(
    request: BookCarpoolSeatRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """Book a passenger seat; returns the carpool with its updated passenger list."""
    carpool_service = CarpoolService(db, clock=clock)

    try:
        await carpool_service.book_carpool_seat(request.carpool_id, request.outing_id, member)
        carpool = await carpool_service.get_carpool_or_raise(request.carpool_id)
        response_data = _convert_carpool_to_schema(carpool)
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in carpool booking",
            extra={
                "carpool_id": str(request.carpool_id),
                "outing_id": str(request.outing_id),
                "passenger_id": str(member.id),
                "error": str(e)
            },
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/unbook")
async def cancel_carpool_booking(
    request: CancelCarpoolBookingRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """Release the current member's passenger seat."""
    carpool_service = CarpoolService(db, clock=clock)

    try:
        await carpool_service.cancel_carpool_booking(request.booking_id, member)
        return JSONResponse(
            status_code=200,
            content={"booking_id": str(request.booking_id), "status": "cancelled"}
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in carpool booking cancellation",
            extra={"booking_id": str(request.booking_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/list", response_model=CarpoolListResponse)
async def list_carpools(
    request: ListCarpoolsRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """Carpools of an outing with their passengers."""
    carpool_service = CarpoolService(db, clock=clock)

    try:
        carpools = await carpool_service.list_carpools(request.outing_id, member)
        response_data = CarpoolListResponse(
            items=[_convert_carpool_to_schema(c) for c in carpools]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in carpool listing",
            extra={"outing_id": str(request.outing_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e
