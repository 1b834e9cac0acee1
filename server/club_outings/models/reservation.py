"""Reservation model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utc_now
from ..core.database import Base

if TYPE_CHECKING:
    from .member import Member
    from .outing import Outing


class ReservationStatus(str, Enum):
    """Reservation status enumeration."""
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (ReservationStatus.CONFIRMED, ReservationStatus.WAITLISTED)


class CarpoolOption(str, Enum):
    """What the member intends to do about transport."""
    NONE = "none"
    DRIVER = "driver"
    PASSENGER = "passenger"


class Reservation(Base):
    """A member's claim, seated or queued, on one outing."""

    __tablename__ = "reservations"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    outing_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("outings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    member_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status: Mapped[ReservationStatus] = mapped_column(String(20), nullable=False, index=True)
    is_present: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    carpool_option: Mapped[CarpoolOption] = mapped_column(
        String(20),
        nullable=False,
        default=CarpoolOption.NONE
    )
    carpool_seats: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Promotion order within the outing, computed by the database at insert time
    queue_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        CheckConstraint(
            "status in ('confirmed', 'waitlisted', 'cancelled')",
            name="ck_reservation_status_valid"
        ),
        CheckConstraint(
            "carpool_option in ('none', 'driver', 'passenger')",
            name="ck_reservation_carpool_option_valid"
        ),
        CheckConstraint("carpool_seats >= 0", name="ck_reservation_carpool_seats_non_negative"),
        UniqueConstraint("outing_id", "queue_seq", name="uq_reservation_outing_queue_seq"),
        CheckConstraint(
            "(status = 'cancelled') = (cancelled_at IS NOT NULL)",
            name="ck_reservation_cancelled_at_matches_status"
        ),
        # One live reservation per member and outing; cancelled rows are history
        Index(
            "uq_reservation_active_member",
            "outing_id",
            "member_id",
            unique=True,
            postgresql_where=text("status != 'cancelled'"),
            sqlite_where=text("status != 'cancelled'"),
        ),
    )

    # Relationships
    outing: Mapped["Outing"] = relationship("Outing", back_populates="reservations")
    member: Mapped["Member"] = relationship("Member", lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, outing_id={self.outing_id}, "
            f"member_id={self.member_id}, status={self.status})>"
        )
