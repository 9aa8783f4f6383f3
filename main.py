"""Main entrypoint and application factory for the sapp categorization API.

This module initializes the FastAPI application, configures logging, creates the database tables,
seeds the category catalog, and starts and stops the categorization worker pool with the app's
lifespan. It also exposes the Scalar API reference endpoint and the Uvicorn entrypoint.
"""

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import HTMLResponse
from scalar_fastapi import get_scalar_api_reference
from sqlalchemy.exc import SQLAlchemyError

from sapp.agents import BaseGenerationClient
from sapp.api import build_services, router
from sapp.core.db import get_session_factory, init_db, seed_default_categories
from sapp.core.settings import Settings, get_settings
from sapp.core.utils import get_logger

logger = get_logger("sapp")


# --- Logging Setup ---
def setup_logging() -> None:
    """Configure logging to file and console, and ensure jobs directory exists."""
    Path("jobs").mkdir(parents=True, exist_ok=True)
    logger.setLevel(logging.INFO)
    # Add file handler for persistent logs (not colorized)
    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        file_handler = logging.FileHandler("jobs/sapp.log")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(file_handler)
    logger.propagate = False


def make_lifespan(
    settings: Settings | None, generation_client: BaseGenerationClient | None
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    """Build the lifespan handler that owns the database and the worker pool."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        resolved = settings or get_settings()
        services = build_services(resolved, generation_client)
        try:
            init_db(services.engine)
            if resolved.seed_categories:
                with get_session_factory(services.engine)() as session:
                    added = seed_default_categories(session)
                if added:
                    logger.info(f"Seeded {added} default categories")
        except SQLAlchemyError:
            logger.exception("Failed to initialize the database")
            raise
        app.state.services = services
        services.pool.recover()
        services.pool.start()
        try:
            yield
        finally:
            services.pool.stop()
            services.engine.dispose()

    return lifespan


def create_app(settings: Settings | None = None, generation_client: BaseGenerationClient | None = None) -> FastAPI:
    """Create the FastAPI application. Settings are read from the environment at startup when not given."""
    application = FastAPI(
        lifespan=make_lifespan(settings, generation_client),
        docs_url="/docs",
        redoc_url="/redoc",
        title="sapp Categorization API",
        description="""
    The sapp Categorization API splits a purchase description and total amount into categorized spendings shared
    between two partners, using an LLM in background jobs.

    **Endpoints:**
    - `POST /categorize`: Submit a purchase for categorization. Returns a `job_id`.
    - `GET /jobs/{{job_id}}`: Check the status of a categorization job and read its line items.
    - `GET /categories`: List the category catalog.
    - `GET /health`: Health check endpoint.
    - `GET /scalar`: Interactive Scalar OpenAPI documentation.
    """,
        version="1.0.0",
    )
    application.include_router(router)

    @application.get("/scalar", include_in_schema=False)
    async def scalar_docs() -> HTMLResponse:
        """Return Scalar API reference."""
        return get_scalar_api_reference(openapi_url=application.openapi_url, title=application.title)

    return application


setup_logging()

app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("main:app", host=settings.server_host, port=settings.server_port, reload=True)
