"""Pydantic schemas for request/response validation."""

from .common import *  # noqa: F403
from .health import *  # noqa: F403
from .notification import *  # noqa: F403
from .reservation import *  # noqa: F403
from .venue import *  # noqa: F403
