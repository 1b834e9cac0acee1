"""Carpool and passenger booking model definitions."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utc_now
from ..core.database import Base

if TYPE_CHECKING:
    from .member import Member
    from .outing import Outing


class Carpool(Base):
    """A ride offered by a driver for one outing."""

    __tablename__ = "carpools"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    outing_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("outings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    driver_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    departure_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    meeting_point: Mapped[str] = mapped_column(String(255), nullable=False)
    available_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    maps_link: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        CheckConstraint("available_seats >= 1", name="ck_carpool_available_seats_positive"),
        CheckConstraint("length(meeting_point) > 0", name="ck_carpool_meeting_point_not_empty"),
        UniqueConstraint("outing_id", "driver_id", name="uq_carpool_outing_driver"),
    )

    # Relationships
    outing: Mapped["Outing"] = relationship("Outing", back_populates="carpools")
    driver: Mapped["Member"] = relationship("Member", lazy="selectin")
    passengers: Mapped[list["CarpoolPassenger"]] = relationship(
        "CarpoolPassenger",
        back_populates="carpool",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="CarpoolPassenger.created_at"
    )

    @property
    def seats_left(self) -> int:
        return max(self.available_seats - len(self.passengers), 0)

    def __repr__(self) -> str:
        return (
            f"<Carpool(id={self.id}, outing_id={self.outing_id}, driver_id={self.driver_id}, "
            f"seats={len(self.passengers)}/{self.available_seats})>"
        )


class CarpoolPassenger(Base):
    """One booked seat in one carpool."""

    __tablename__ = "carpool_passengers"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    carpool_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("carpools.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # Copied from the carpool so the per-outing rule is a table constraint
    outing_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("outings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    passenger_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("outing_id", "passenger_id", name="uq_carpool_passenger_per_outing"),
    )

    # Relationships
    carpool: Mapped["Carpool"] = relationship("Carpool", back_populates="passengers")
    passenger: Mapped["Member"] = relationship("Member", lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<CarpoolPassenger(id={self.id}, carpool_id={self.carpool_id}, "
            f"passenger_id={self.passenger_id})>"
        )
