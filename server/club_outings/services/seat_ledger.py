"""Atomic seat accounting on the outing row."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ..models.outing import Outing
from ..models.reservation import Reservation, ReservationStatus

logger = logging.getLogger(__name__)


def next_queue_seq(outing_id: UUID):
    """
    SQL expression for the next queue position of an outing.

    Evaluated by the database inside the INSERT. Callers hold the outing lock.
    """
    queued = aliased(Reservation)
    return (
        select(func.coalesce(func.max(queued.queue_seq), 0) + 1)
        .where(queued.outing_id == outing_id)
        .scalar_subquery()
    )


class SeatLedger:
    """
    Keeps ``outings.confirmed_count`` in step with confirmed reservations.

    Every change is a single conditional UPDATE, so the database decides
    whether a seat is free and the check constraint on the outing rejects
    any overshoot. Callers run inside the outing lock and own the commit.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def claim_seat(self, outing_id: UUID) -> bool:
        """Take one seat if any is left. Returns False when the outing is full."""
        stmt = (
            update(Outing)
            .where(
                Outing.id == outing_id,
                Outing.confirmed_count < Outing.max_participants
            )
            .values(confirmed_count=Outing.confirmed_count + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def release_seat(self, outing_id: UUID) -> None:
        stmt = (
            update(Outing)
            .where(Outing.id == outing_id, Outing.confirmed_count > 0)
            .values(confirmed_count=Outing.confirmed_count - 1)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)

    async def promote_next_waitlisted(self, outing_id: UUID, now: datetime) -> Reservation | None:
        """
        Move the oldest waitlisted reservation to confirmed.

        The seat count is not touched: the caller either hands over a seat
        freed by a cancellation or has already claimed one.
        """
        while True:
            candidate_id = await self.db.scalar(
                select(Reservation.id)
                .where(
                    Reservation.outing_id == outing_id,
                    Reservation.status == ReservationStatus.WAITLISTED
                )
                .order_by(Reservation.queue_seq)
                .limit(1)
            )
            if candidate_id is None:
                return None

            stmt = (
                update(Reservation)
                .where(
                    Reservation.id == candidate_id,
                    Reservation.status == ReservationStatus.WAITLISTED
                )
                .values(status=ReservationStatus.CONFIRMED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            if result.rowcount == 1:
                break

            logger.debug(
                "Waitlist candidate changed before promotion, retrying",
                extra={"outing_id": str(outing_id), "reservation_id": str(candidate_id)}
            )

        promoted = await self.db.execute(
            select(Reservation)
            .where(Reservation.id == candidate_id)
            .execution_options(populate_existing=True)
        )
        return promoted.scalar_one()
