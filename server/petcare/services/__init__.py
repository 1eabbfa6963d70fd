"""Service layer package."""

from .availability_ledger import AvailabilityLedger
from .content_event_service import ContentEventService
from .keyword_service import KeywordMatcher, KeywordSubscriptionService
from .live_channels import LiveChannelRegistry, live_channels
from .member_service import MemberDirectory
from .notification_service import NotificationHub
from .reminder_service import ReminderScheduler
from .reservation_service import ReservationService
from .venue_service import VenueService

__all__ = [
    "AvailabilityLedger",
    "ContentEventService",
    "KeywordMatcher",
    "KeywordSubscriptionService",
    "LiveChannelRegistry",
    "live_channels",
    "MemberDirectory",
    "NotificationHub",
    "ReminderScheduler",
    "ReservationService",
    "VenueService",
]
