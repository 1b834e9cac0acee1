"""Carpool-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from .common import normalize_datetime


class CreateCarpoolRequest(BaseModel):
    """Request schema for offering a ride."""

    outing_id: UUID = Field(..., description="Outing the ride goes to")
    departure_time: datetime = Field(..., description="Departure time (ISO 8601)")
    meeting_point: str = Field(..., min_length=1, max_length=255, description="Where passengers meet")
    available_seats: int = Field(..., ge=1, le=8, description="Passenger seats offered")
    maps_link: str | None = Field(None, max_length=2048, description="Link to the meeting point on a map")
    notes: str | None = Field(None, max_length=2000, description="Free-form notes")

    @field_validator("departure_time")
    @classmethod
    def to_utc(cls, v: datetime | None) -> datetime | None:
        return normalize_datetime(v)


class UpdateCarpoolRequest(BaseModel):
    """Request schema for editing a ride; omitted fields are unchanged."""

    carpool_id: UUID = Field(..., description="Carpool to update")
    departure_time: datetime | None = None
    meeting_point: str | None = Field(None, min_length=1, max_length=255)
    available_seats: int | None = Field(None, ge=1, le=8)
    maps_link: str | None = Field(None, max_length=2048)
    notes: str | None = Field(None, max_length=2000)

    @field_validator("departure_time")
    @classmethod
    def to_utc(cls, v: datetime | None) -> datetime | None:
        return normalize_datetime(v)


class DeleteCarpoolRequest(BaseModel):
    """Request schema for withdrawing a ride."""

    carpool_id: UUID = Field(..., description="Carpool to delete")


class BookCarpoolSeatRequest(BaseModel):
    """Request schema for booking a passenger seat."""

    carpool_id: UUID = Field(..., description="Carpool to ride in")
    outing_id: UUID = Field(..., description="Outing the carpool belongs to")


class CancelCarpoolBookingRequest(BaseModel):
    """Request schema for releasing a passenger seat."""

    booking_id: UUID = Field(..., description="Passenger booking to cancel")


class ListCarpoolsRequest(BaseModel):
    """Request schema for listing the carpools of an outing."""

    outing_id: UUID = Field(..., description="Outing whose carpools are requested")


class CarpoolPassenger(BaseModel):
    """Passenger booking response schema."""

    id: str = Field(..., description="Booking ID")
    carpool_id: str = Field(..., description="Carpool ID")
    passenger_id: str = Field(..., description="Passenger member ID")
    first_name: str = Field(..., description="Passenger given name")
    last_name: str = Field(..., description="Passenger family name")
    created_at: datetime = Field(..., description="Booking time (ISO 8601, UTC)")


class Carpool(BaseModel):
    """Carpool response schema."""

    id: str = Field(..., description="Unique carpool ID")
    outing_id: str = Field(..., description="Outing ID")
    driver_id: str = Field(..., description="Driver member ID")
    driver_name: str = Field(..., description="Driver display name")
    departure_time: datetime = Field(..., description="Departure time (ISO 8601, UTC)")
    meeting_point: str = Field(..., description="Where passengers meet")
    available_seats: int = Field(..., ge=1, description="Passenger seats offered")
    seats_left: int = Field(..., ge=0, description="Seats still free")
    maps_link: str | None = Field(None, description="Map link")
    notes: str | None = Field(None, description="Free-form notes")
    passengers: list[CarpoolPassenger] = Field(default_factory=list, description="Booked passengers")


class CarpoolListResponse(BaseModel):
    """Response schema for the carpools of an outing."""

    items: list[Carpool] = Field(..., description="Carpools ordered by departure time")


class DeleteCarpoolResponse(BaseModel):
    """Response schema for a deleted carpool."""

    carpool_id: str = Field(..., description="Deleted carpool ID")
    displaced_passengers: int = Field(..., ge=0, description="Passengers whose booking was removed")
