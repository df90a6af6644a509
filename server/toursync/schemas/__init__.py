"""Pydantic schemas for request/response validation."""

from .common import *  # noqa: F403
from .country import *  # noqa: F403
from .health import *  # noqa: F403
from .integration import *  # noqa: F403
from .period import *  # noqa: F403
from .tour import *  # noqa: F403
