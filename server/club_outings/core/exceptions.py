"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .clock import utc_now

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://club-outings.example/problems"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )

    @property
    def code(self) -> Optional[str]:
        """Application-specific error code."""
        return self.problem_details.get("code")


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {"code": "VALIDATION_ERROR", "retryable": False}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri=f"{PROBLEM_TYPE_BASE}/validation-error",
            instance=instance,
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Raised when a mutation is attempted without a resolved member identity."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri=f"{PROBLEM_TYPE_BASE}/not-authenticated",
            instance=instance,
            extensions={"code": "NOT_AUTHENTICATED", "retryable": False},
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(ProblemDetailsException):
    """Exception for authorization errors."""

    def __init__(
        self,
        detail: str = "Insufficient permissions to access this resource",
        required_roles: Optional[list] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": "FORBIDDEN", "retryable": False}
        if required_roles:
            extensions["required_roles"] = required_roles

        super().__init__(
            status_code=403,
            title="Access Forbidden",
            detail=detail,
            type_uri=f"{PROBLEM_TYPE_BASE}/forbidden",
            instance=instance,
            extensions=extensions,
        )


class NotFoundError(ProblemDetailsException):
    """Referenced outing, carpool or reservation is missing or soft-deleted."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions: Dict[str, Any] = {
            "code": "NOT_FOUND",
            "retryable": False,
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri=f"{PROBLEM_TYPE_BASE}/not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        code: str = "CONFLICT",
        title: str = "Resource Conflict",
        slug: str = "conflict",
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions: Dict[str, Any] = {"code": code, "retryable": False}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title=title,
            detail=detail,
            type_uri=f"{PROBLEM_TYPE_BASE}/{slug}",
            instance=instance,
            extensions=extensions,
        )


class InternalServerError(ProblemDetailsException):
    """Raised by routers for failures that are not part of the domain error taxonomy."""

    def __init__(self, detail: str = "An unexpected error occurred while processing the request"):
        super().__init__(
            status_code=500,
            title="Internal Server Error",
            detail=detail,
            type_uri=f"{PROBLEM_TYPE_BASE}/internal-server-error",
            extensions={"code": "INTERNAL_ERROR", "retryable": True},
        )


# Business logic exceptions

class DuplicateReservationError(ConflictError):
    """Member already holds an active reservation for the outing."""

    def __init__(self, outing_id: str, member_id: str, status: str):
        super().__init__(
            detail=f"Member {member_id} already has a {status} reservation for outing {outing_id}",
            code="DUPLICATE_RESERVATION",
            title="Duplicate Reservation",
            slug="duplicate-reservation",
            conflicting_resource={
                "outing_id": outing_id,
                "member_id": member_id,
                "status": status,
            },
        )


class AlreadyCancelledError(ConflictError):
    """The member's reservation for the outing is already cancelled."""

    def __init__(self, outing_id: str, member_id: str):
        super().__init__(
            detail=f"Reservation of member {member_id} for outing {outing_id} is already cancelled",
            code="ALREADY_CANCELLED",
            title="Already Cancelled",
            slug="already-cancelled",
            conflicting_resource={"outing_id": outing_id, "member_id": member_id},
        )


class OutingClosedError(ConflictError):
    """The outing is archived and no longer accepts changes."""

    def __init__(self, outing_id: str):
        super().__init__(
            detail=f"Outing {outing_id} is archived and closed for registration",
            code="OUTING_CLOSED",
            title="Outing Closed",
            slug="outing-closed",
            conflicting_resource={"outing_id": outing_id},
        )


class CapacityConflictError(ConflictError):
    """A capacity change would drop below seats already taken."""

    def __init__(self, resource_type: str, resource_id: str, requested: int, taken: int):
        super().__init__(
            detail=(
                f"Cannot set capacity of {resource_type} {resource_id} to {requested}: "
                f"{taken} seats are already taken"
            ),
            code="CAPACITY_CONFLICT",
            title="Capacity Conflict",
            slug="capacity-conflict",
            conflicting_resource={
                "resource_type": resource_type,
                "resource_id": resource_id,
                "requested_capacity": requested,
                "taken_seats": taken,
            },
        )


class CarpoolFullError(ConflictError):
    """Every seat of the carpool is booked."""

    def __init__(self, carpool_id: str, available_seats: int):
        super().__init__(
            detail=f"Carpool {carpool_id} is full ({available_seats}/{available_seats} seats booked)",
            code="CARPOOL_FULL",
            title="Carpool Full",
            slug="carpool-full",
            conflicting_resource={
                "carpool_id": carpool_id,
                "available_seats": available_seats,
            },
        )


class DuplicateBookingError(ConflictError):
    """Passenger already holds a seat in a carpool of the same outing."""

    def __init__(self, outing_id: str, passenger_id: str, carpool_id: Optional[str] = None):
        conflicting: Dict[str, Any] = {"outing_id": outing_id, "passenger_id": passenger_id}
        if carpool_id:
            conflicting["carpool_id"] = carpool_id
        super().__init__(
            detail=f"Member {passenger_id} already booked a carpool seat for outing {outing_id}",
            code="DUPLICATE_BOOKING",
            title="Duplicate Booking",
            slug="duplicate-booking",
            conflicting_resource=conflicting,
        )


class DuplicateCarpoolError(ConflictError):
    """Driver already offers a carpool for the outing."""

    def __init__(self, outing_id: str, driver_id: str, carpool_id: str):
        super().__init__(
            detail=f"Member {driver_id} already offers carpool {carpool_id} for outing {outing_id}",
            code="DUPLICATE_CARPOOL",
            title="Duplicate Carpool",
            slug="duplicate-carpool",
            conflicting_resource={
                "outing_id": outing_id,
                "driver_id": driver_id,
                "carpool_id": carpool_id,
            },
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI request validation failures as Problem Details with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "type": f"{PROBLEM_TYPE_BASE}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "The request data failed validation",
            "code": "VALIDATION_ERROR",
            "retryable": False,
            "violations": violations,
        },
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())
    logger.error(
        "Unhandled exception",
        extra={"error_id": error_id, "path": request.url.path, "error": str(exc)},
        exc_info=exc,
    )

    problem_details = {
        "type": f"{PROBLEM_TYPE_BASE}/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": error_id,
        "timestamp": utc_now().isoformat() + "Z",
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )
