"""Core package: provides models, database helpers, settings, errors, and shared utilities."""

from .db import get_engine, get_session_factory  # noqa: F401
from .models import JobState, JobStatus, LineItem  # noqa: F401
from .settings import Settings, get_settings  # noqa: F401
from .utils import get_logger  # noqa: F401
