"""Models module exporting all database models."""

from .carpool import Carpool, CarpoolPassenger
from .member import Member, MemberRole
from .outing import Outing, OutingType
from .reservation import CarpoolOption, Reservation, ReservationStatus

__all__ = [
    # Directory
    "Member",
    "MemberRole",

    # Outings and reservations
    "Outing",
    "OutingType",
    "Reservation",
    "ReservationStatus",
    "CarpoolOption",

    # Carpooling
    "Carpool",
    "CarpoolPassenger",
]
