"""Pydantic schemas for request/response validation."""

from .carpool import *  # noqa: F403
from .common import *  # noqa: F403
from .health import *  # noqa: F403
from .member import *  # noqa: F403
from .outing import *  # noqa: F403
from .reservation import *  # noqa: F403
