"""Service layer package."""

from .carpool_service import CarpoolService
from .member_service import MemberService
from .notification_service import (
    LoggingDispatcher,
    NotificationTemplate,
    OutingNotifier,
    ResendDispatcher,
)
from .outing_service import OutingService
from .reservation_service import ReservationService
from .seat_ledger import SeatLedger

__all__ = [
    "CarpoolService",
    "LoggingDispatcher",
    "MemberService",
    "NotificationTemplate",
    "OutingNotifier",
    "OutingService",
    "ReservationService",
    "ResendDispatcher",
    "SeatLedger",
]
