"""Reservation-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ..models.reservation import CarpoolOption, ReservationStatus


class CreateReservationRequest(BaseModel):
    """Request schema for registering to an outing."""

    outing_id: UUID = Field(..., description="Outing to register for")
    carpool_option: CarpoolOption = Field(CarpoolOption.NONE, description="Transport intent")
    carpool_seats: int = Field(0, ge=0, le=8, description="Seats offered when driving")

    @model_validator(mode="after")
    def check_seats_match_option(self) -> "CreateReservationRequest":
        if self.carpool_seats and self.carpool_option != CarpoolOption.DRIVER:
            raise ValueError("carpool_seats can only be offered by drivers")
        return self


class CancelReservationRequest(BaseModel):
    """Request schema for cancelling one's own reservation."""

    outing_id: UUID = Field(..., description="Outing to withdraw from")


class SetPresenceRequest(BaseModel):
    """Request schema for marking attendance."""

    reservation_id: UUID = Field(..., description="Reservation to mark")
    is_present: bool = Field(..., description="Whether the member attended")


class ListReservationsRequest(BaseModel):
    """Request schema for an outing roster."""

    outing_id: UUID = Field(..., description="Outing whose roster is requested")


class Reservation(BaseModel):
    """Reservation response schema."""

    id: str = Field(..., description="Unique reservation ID")
    outing_id: str = Field(..., description="Associated outing ID")
    member_id: str = Field(..., description="Reserving member ID")
    status: ReservationStatus = Field(..., description="Reservation status")
    is_present: bool = Field(..., description="Attendance marker")
    cancelled_at: datetime | None = Field(None, description="Cancellation time (ISO 8601, UTC)")
    carpool_option: CarpoolOption = Field(..., description="Transport intent")
    carpool_seats: int = Field(..., ge=0, description="Seats offered when driving")
    created_at: datetime = Field(..., description="Registration time (ISO 8601, UTC)")

    class Config:
        from_attributes = True


class CancelReservationResponse(BaseModel):
    """Response schema for a cancellation."""

    cancelled: Reservation = Field(..., description="The cancelled reservation")
    promoted: Reservation | None = Field(None, description="Waitlisted reservation that took the seat")


class RosterEntry(BaseModel):
    """One participant line of an outing roster."""

    reservation_id: str = Field(..., description="Reservation ID")
    member_id: str = Field(..., description="Member ID")
    first_name: str = Field(..., description="Given name")
    last_name: str = Field(..., description="Family name")
    status: ReservationStatus = Field(..., description="Reservation status")
    is_present: bool = Field(..., description="Attendance marker")
    carpool_option: CarpoolOption = Field(..., description="Transport intent")
    carpool_seats: int = Field(..., ge=0, description="Seats offered when driving")
    created_at: datetime = Field(..., description="Registration time (ISO 8601, UTC)")
    waitlist_position: int | None = Field(None, ge=1, description="1-based queue position")


class OutingRoster(BaseModel):
    """Confirmed list and waitlist of an outing."""

    outing_id: str = Field(..., description="Outing ID")
    max_participants: int = Field(..., ge=1, description="Participant ceiling")
    confirmed_count: int = Field(..., ge=0, description="Confirmed participants")
    confirmed: list[RosterEntry] = Field(..., description="Seated participants")
    waitlist: list[RosterEntry] = Field(..., description="Queued participants in promotion order")


class MemberReservation(BaseModel):
    """A member's reservation together with the outing it targets."""

    reservation: Reservation = Field(..., description="The reservation")
    outing_title: str = Field(..., description="Outing title")
    outing_date_time: datetime = Field(..., description="Outing start time (ISO 8601, UTC)")
    outing_location: str = Field(..., description="Outing location")


class MemberReservationsResponse(BaseModel):
    """Response schema for the member's own reservations."""

    items: list[MemberReservation] = Field(..., description="Active reservations, newest first")
