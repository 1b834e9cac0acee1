"""Outing model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utc_now
from ..core.database import Base

if TYPE_CHECKING:
    from .carpool import Carpool
    from .member import Member
    from .reservation import Reservation


class OutingType(str, Enum):
    """Kind of club activity."""
    SEA = "sea"
    POOL = "pool"
    QUARRY = "quarry"
    PIT = "pit"
    CLEAN_UP = "clean_up"


class Outing(Base):
    """A single scheduled club activity with a participant ceiling."""

    __tablename__ = "outings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    date_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    outing_type: Mapped[OutingType] = mapped_column(String(20), nullable=False, index=True)

    # Capacity; confirmed_count is only changed by conditional updates
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    confirmed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Weak reference: removing the organizer keeps the outing
    organizer_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("members.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    is_staff_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    reminder_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    session_report: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        CheckConstraint("max_participants >= 1", name="ck_outing_max_participants_positive"),
        CheckConstraint("confirmed_count >= 0", name="ck_outing_confirmed_count_non_negative"),
        CheckConstraint("confirmed_count <= max_participants", name="ck_outing_confirmed_lte_max"),
        CheckConstraint("NOT (is_archived AND is_deleted)", name="ck_outing_single_lifecycle_state"),
        CheckConstraint("length(title) > 0", name="ck_outing_title_not_empty"),
    )

    # Relationships
    organizer: Mapped["Member | None"] = relationship("Member", lazy="selectin")
    reservations: Mapped[list["Reservation"]] = relationship(
        "Reservation",
        back_populates="outing",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    carpools: Mapped[list["Carpool"]] = relationship(
        "Carpool",
        back_populates="outing",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    @property
    def seats_left(self) -> int:
        return max(self.max_participants - self.confirmed_count, 0)

    def __repr__(self) -> str:
        return (
            f"<Outing(id={self.id}, title='{self.title}', date_time={self.date_time}, "
            f"confirmed={self.confirmed_count}/{self.max_participants})>"
        )
