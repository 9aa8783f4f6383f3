"""FastAPI dependencies for DI (settings, job store, directory, pool, etc).

This module wires the pipeline components together once at startup and exposes them to the
endpoints through small dependency functions.
"""

from dataclasses import dataclass

from fastapi import Header, HTTPException, Request
from sqlalchemy.engine import Engine

from sapp.agents import BaseGenerationClient, build_generation_client
from sapp.core.db import get_engine, get_session_factory
from sapp.core.settings import Settings
from sapp.services.committer import PersistenceCommitter
from sapp.services.directory import CategoryCatalog, UserDirectory
from sapp.services.job_store import JobStore
from sapp.workers.job_runner import JobRunner
from sapp.workers.pool import CategorizingPool


@dataclass
class Services:
    """Everything the API and the workers share."""

    settings: Settings
    engine: Engine
    job_store: JobStore
    directory: UserDirectory
    catalog: CategoryCatalog
    pool: CategorizingPool


def build_services(settings: Settings, generation_client: BaseGenerationClient | None = None) -> Services:
    """Create the engine, stores, generation client and worker pool from the settings."""
    engine = get_engine(settings)
    session_factory = get_session_factory(engine)
    job_store = JobStore(session_factory)
    directory = UserDirectory(session_factory)
    catalog = CategoryCatalog(session_factory)
    client = generation_client or build_generation_client(settings)
    runner = JobRunner(
        settings,
        job_store,
        directory,
        catalog,
        client,
        PersistenceCommitter(session_factory, job_store),
    )
    pool = CategorizingPool(settings, job_store, runner)
    return Services(settings, engine, job_store, directory, catalog, pool)


def get_services(request: Request) -> Services:
    """Provide the wired services for dependency injection."""
    return request.app.state.services


def get_current_user_id(x_user_id: int = Header(..., description="Authenticated user id")) -> int:
    """Stand-in for the session auth collaborator: the caller's user id comes from a header."""
    if x_user_id <= 0:
        raise HTTPException(401, "Invalid user")
    return x_user_id
