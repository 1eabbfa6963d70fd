"""Local wall-clock helpers.

Appointments, stays and reminder fire times are stored as naive datetimes in
the service's configured timezone, so every "now" comparison goes through
this module.
"""

from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from .config import settings

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Current time in the configured timezone, without tzinfo."""
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def fixed_clock(moment: datetime) -> Clock:
    """Clock that always returns ``moment``."""
    return lambda: moment


def to_local_naive(moment: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(ZoneInfo(settings.timezone)).replace(tzinfo=None)
