"""Outing-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from ..models.outing import OutingType
from .common import PaginatedResponse, normalize_datetime


class CreateOutingRequest(BaseModel):
    """Request schema for scheduling an outing."""

    title: str = Field(..., min_length=1, max_length=255, description="Outing title")
    description: str | None = Field(None, max_length=5000, description="Free-form description")
    date_time: datetime = Field(..., description="Start time (ISO 8601)")
    end_date: datetime | None = Field(None, description="Optional end time (ISO 8601)")
    location: str = Field(..., min_length=1, max_length=255, description="Dive site or venue")
    outing_type: OutingType = Field(..., description="Kind of activity")
    max_participants: int = Field(..., ge=1, le=500, description="Participant ceiling")
    is_staff_only: bool = Field(False, description="Restrict visibility to organizers and admins")

    @field_validator("date_time", "end_date")
    @classmethod
    def to_utc(cls, v: datetime | None) -> datetime | None:
        return normalize_datetime(v)

    @model_validator(mode="after")
    def check_end_after_start(self) -> "CreateOutingRequest":
        if self.end_date is not None and self.end_date < self.date_time:
            raise ValueError("end_date must not be before date_time")
        return self


class GetOutingRequest(BaseModel):
    """Request schema for reading one outing."""

    outing_id: UUID = Field(..., description="Outing to retrieve")


class SearchOutingsRequest(BaseModel):
    """Request schema for listing outings."""

    outing_type: OutingType | None = Field(None, description="Filter by activity type")
    upcoming_only: bool = Field(True, description="Hide outings that have already ended")
    include_archived: bool = Field(False, description="Include archived outings")
    cursor: str | None = Field(None, description="Pagination cursor")
    limit: int = Field(20, ge=1, le=100, description="Results per page")


class UpdateOutingRequest(BaseModel):
    """Request schema for editing an outing; omitted fields are unchanged."""

    outing_id: UUID = Field(..., description="Outing to update")
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    date_time: datetime | None = None
    end_date: datetime | None = None
    location: str | None = Field(None, min_length=1, max_length=255)
    outing_type: OutingType | None = None
    max_participants: int | None = Field(None, ge=1, le=500)
    is_staff_only: bool | None = None

    @field_validator("date_time", "end_date")
    @classmethod
    def to_utc(cls, v: datetime | None) -> datetime | None:
        return normalize_datetime(v)


class SessionReportRequest(BaseModel):
    """Request schema for recording the post-outing session report."""

    outing_id: UUID = Field(..., description="Outing the report belongs to")
    session_report: str = Field(..., max_length=20000, description="Report text")


class ArchiveOutingRequest(BaseModel):
    """Request schema for archiving an outing."""

    outing_id: UUID = Field(..., description="Outing to archive")


class CancelOutingRequest(BaseModel):
    """Request schema for cancelling an outing."""

    outing_id: UUID = Field(..., description="Outing to cancel")
    reason: str | None = Field(None, max_length=1000, description="Reason sent to registrants")


class Outing(BaseModel):
    """Outing response schema."""

    id: str = Field(..., description="Unique outing ID")
    title: str = Field(..., description="Outing title")
    description: str | None = Field(None, description="Free-form description")
    date_time: datetime = Field(..., description="Start time (ISO 8601, UTC)")
    end_date: datetime | None = Field(None, description="End time (ISO 8601, UTC)")
    location: str = Field(..., description="Dive site or venue")
    outing_type: OutingType = Field(..., description="Kind of activity")
    max_participants: int = Field(..., ge=1, description="Participant ceiling")
    confirmed_count: int = Field(..., ge=0, description="Confirmed participants")
    seats_left: int = Field(..., ge=0, description="Seats still open")
    organizer_id: str | None = Field(None, description="Organizing member ID")
    organizer_name: str | None = Field(None, description="Organizing member name")
    is_staff_only: bool = Field(..., description="Visible to staff only")
    is_archived: bool = Field(..., description="Closed for registration")
    session_report: str | None = Field(None, description="Post-outing report")
    carpool_count: int = Field(0, ge=0, description="Carpools offered for the outing")
    carpool_seats_offered: int = Field(0, ge=0, description="Seats offered across all carpools")
    created_at: datetime = Field(..., description="Creation time (ISO 8601, UTC)")

    class Config:
        from_attributes = True


class SearchOutingsResponse(PaginatedResponse):
    """Response schema for outing search."""

    items: list[Outing] = Field(..., description="Matching outings")


class CancelOutingResponse(BaseModel):
    """Response schema for outing cancellation."""

    outing_id: str = Field(..., description="Cancelled outing ID")
    cancelled_reservations: int = Field(..., ge=0, description="Reservations cancelled with the outing")
