"""Background worker sending the day-before outing reminder."""

import logging
from datetime import timedelta
from typing import List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import Clock, utc_now
from ..core.config import settings
from ..core.database import async_session_factory
from ..models.outing import Outing
from ..models.reservation import Reservation, ReservationStatus
from ..services.notification_service import NotificationTemplate, OutingNotifier
from .base import BaseWorker

logger = logging.getLogger(__name__)


class ReminderWorker(BaseWorker):
    """
    Emails confirmed participants of outings that start soon.

    An outing is due when it is active, has not been reminded yet and starts
    between ``window_start_hours`` and ``window_end_hours`` from now. The
    ``reminder_sent`` flag is claimed before sending, so concurrent workers
    never remind the same outing twice.
    """

    def __init__(
        self,
        interval_seconds: int = 900,
        window_start_hours: int = 24,
        window_end_hours: int = 26,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        notifier: OutingNotifier | None = None,
        clock: Clock = utc_now,
    ):
        super().__init__(name="Reminder", interval_seconds=interval_seconds)
        self.window_start = timedelta(hours=window_start_hours)
        self.window_end = timedelta(hours=window_end_hours)
        self.session_factory = session_factory
        self.notifier = notifier
        self.clock = clock

    @classmethod
    def from_settings(cls) -> "ReminderWorker":
        return cls(
            interval_seconds=settings.reminder_interval_seconds,
            window_start_hours=settings.reminder_window_start_hours,
            window_end_hours=settings.reminder_window_end_hours,
        )

    async def process(self) -> None:
        async with self.session_factory() as db:
            reminded = await self.send_due_reminders(db)
            if reminded:
                logger.info(
                    f"Sent reminders for {reminded} outings",
                    extra={"outing_count": reminded, "worker": self.name}
                )

    async def send_due_reminders(self, db: AsyncSession) -> int:
        """
        Remind every due outing once.

        Returns:
            Number of outings reminded in this pass
        """
        notifier = self.notifier or OutingNotifier()
        reminded = 0

        for outing in await self._find_due_outings(db):
            try:
                claimed = await db.execute(
                    update(Outing)
                    .where(Outing.id == outing.id, Outing.reminder_sent.is_(False))
                    .values(reminder_sent=True)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

            if claimed.rowcount != 1:
                continue

            participants = await self._confirmed_members(db, outing)
            delivered = await notifier.notify_many(participants, NotificationTemplate.REMINDER, outing)
            reminded += 1

            logger.info(
                "Outing reminder sent",
                extra={
                    "outing_id": str(outing.id),
                    "participants": len(participants),
                    "delivered": delivered,
                    "worker": self.name,
                }
            )

        return reminded

    async def _find_due_outings(self, db: AsyncSession) -> List[Outing]:
        now = self.clock()
        query = (
            select(Outing)
            .where(
                Outing.is_deleted.is_(False),
                Outing.is_archived.is_(False),
                Outing.reminder_sent.is_(False),
                Outing.date_time >= now + self.window_start,
                Outing.date_time <= now + self.window_end,
            )
            .order_by(Outing.date_time)
            .limit(100)
        )
        result = await db.execute(query)
        return list(result.scalars().all())

    async def _confirmed_members(self, db: AsyncSession, outing: Outing) -> list:
        result = await db.execute(
            select(Reservation)
            .where(
                Reservation.outing_id == outing.id,
                Reservation.status == ReservationStatus.CONFIRMED
            )
            .order_by(Reservation.queue_seq)
            .execution_options(populate_existing=True)
        )
        return [reservation.member for reservation in result.scalars()]
