"""Workers package: the categorization job runner and the worker pool."""

from .job_runner import JobRunner  # noqa: F401
from .pool import CategorizingPool  # noqa: F401
