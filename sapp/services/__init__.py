"""Services package: job store, persistence committer, and directory/catalog lookups."""

from .committer import PersistenceCommitter  # noqa: F401
from .directory import CategoryCatalog, UserDirectory  # noqa: F401
from .job_store import JobStore  # noqa: F401
