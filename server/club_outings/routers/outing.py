"""Outing router for scheduling and managing outings."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock
from ..core.dependencies import ClockDependency, CurrentMember, DatabaseSession, NotifierDependency
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..models.member import Member
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.outing import (
    ArchiveOutingRequest,
    CancelOutingRequest,
    CancelOutingResponse,
    CreateOutingRequest,
    GetOutingRequest,
    Outing,
    SearchOutingsRequest,
    SearchOutingsResponse,
    SessionReportRequest,
    UpdateOutingRequest,
)
from ..services.notification_service import OutingNotifier
from ..services.outing_service import OutingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/outing", tags=["outing"], responses=PROBLEM_RESPONSES)


def _convert_outing_to_schema(outing_model, carpool_summary: tuple[int, int] = (0, 0)) -> Outing:
    """Convert outing model to schema with derived seat and carpool figures."""
    organizer = outing_model.organizer
    return Outing(
        id=str(outing_model.id),
        title=outing_model.title,
        description=outing_model.description,
        date_time=outing_model.date_time,
        end_date=outing_model.end_date,
        location=outing_model.location,
        outing_type=outing_model.outing_type,
        max_participants=outing_model.max_participants,
        confirmed_count=outing_model.confirmed_count,
        seats_left=outing_model.seats_left,
        organizer_id=str(outing_model.organizer_id) if outing_model.organizer_id else None,
        organizer_name=organizer.display_name if organizer else None,
        is_staff_only=outing_model.is_staff_only,
        is_archived=outing_model.is_archived,
        session_report=outing_model.session_report,
        carpool_count=carpool_summary[0],
        carpool_seats_offered=carpool_summary[1],
        created_at=outing_model.created_at,
    )


async def _outing_response(service: OutingService, outing_model) -> JSONResponse:
    summaries = await service.carpool_summaries([outing_model.id])
    response_data = _convert_outing_to_schema(outing_model, summaries.get(outing_model.id, (0, 0)))
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/create", response_model=Outing)
async def create_outing(
    request: CreateOutingRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    notifier: OutingNotifier = NotifierDependency,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """
    Schedule a new outing.

    Organizers and admins only; the organizer is registered automatically.
    """
    outing_service = OutingService(db, notifier=notifier, clock=clock)

    try:
        outing = await outing_service.create_outing(request, member)
        return await _outing_response(outing_service, outing)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in outing creation",
            extra={"title": request.title, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/get", response_model=Outing)
async def get_outing(
    request: GetOutingRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """Get outing details."""
    outing_service = OutingService(db, clock=clock)

    try:
        outing = await outing_service.get_visible_outing(request.outing_id, member)
        return await _outing_response(outing_service, outing)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in outing retrieval",
            extra={"outing_id": str(request.outing_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/search", response_model=SearchOutingsResponse)
async def search_outings(
    request: SearchOutingsRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """
    List outings ordered by start time.

    Upcoming outings only by default; pass the returned ``next_cursor`` to
    fetch the next page.
    """
    outing_service = OutingService(db, clock=clock)

    try:
        outings, next_cursor = await outing_service.search_outings(request, member)
        summaries = await outing_service.carpool_summaries([outing.id for outing in outings])

        response_data = SearchOutingsResponse(
            items=[
                _convert_outing_to_schema(outing, summaries.get(outing.id, (0, 0)))
                for outing in outings
            ],
            next_cursor=next_cursor
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in outing search",
            extra={"cursor": request.cursor, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/update", response_model=Outing)
async def update_outing(
    request: UpdateOutingRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    notifier: OutingNotifier = NotifierDependency,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """
    Edit an outing.

    Raising the participant ceiling promotes waitlisted members in
    registration order.
    """
    outing_service = OutingService(db, notifier=notifier, clock=clock)

    try:
        outing = await outing_service.update_outing(request, member)
        return await _outing_response(outing_service, outing)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in outing update",
            extra={"outing_id": str(request.outing_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/report", response_model=Outing)
async def update_session_report(
    request: SessionReportRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """Save the session report of an outing."""
    outing_service = OutingService(db, clock=clock)

    try:
        outing = await outing_service.update_session_report(
            request.outing_id, request.session_report, member
        )
        return await _outing_response(outing_service, outing)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in session report update",
            extra={"outing_id": str(request.outing_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/archive", response_model=Outing)
async def archive_outing(
    request: ArchiveOutingRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """Archive an outing, closing it for registration."""
    outing_service = OutingService(db, clock=clock)

    try:
        outing = await outing_service.archive_outing(request.outing_id, member)
        return await _outing_response(outing_service, outing)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in outing archival",
            extra={"outing_id": str(request.outing_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post("/cancel", response_model=CancelOutingResponse)
async def cancel_outing(
    request: CancelOutingRequest,
    db: AsyncSession = DatabaseSession,
    member: Member = CurrentMember,
    notifier: OutingNotifier = NotifierDependency,
    clock: Clock = ClockDependency
) -> JSONResponse:
    """
    Cancel an outing.

    Every active reservation is cancelled and the registrants are emailed.
    """
    outing_service = OutingService(db, notifier=notifier, clock=clock)

    try:
        cancelled = await outing_service.cancel_outing(request.outing_id, request.reason, member)
        response_data = CancelOutingResponse(
            outing_id=str(request.outing_id),
            cancelled_reservations=cancelled
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in outing cancellation",
            extra={"outing_id": str(request.outing_id), "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e
