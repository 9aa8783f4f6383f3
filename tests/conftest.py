"""Shared fixtures: a file-backed SQLite database per test, seeded users, and the scripted generation client."""

import json
from collections.abc import Callable, Iterator
from decimal import Decimal

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from sapp.agents.scripted_client import ScriptedGenerationClient
from sapp.core.db import Partnership, User, get_engine, get_session_factory, init_db, seed_default_categories
from sapp.core.models import JobSubmission, SharingHint
from sapp.core.settings import Settings
from sapp.services.committer import PersistenceCommitter
from sapp.services.directory import CategoryCatalog, UserDirectory
from sapp.services.job_store import JobStore
from sapp.workers.job_runner import JobRunner
from sapp.workers.pool import CategorizingPool

BUYER_ID = 1
PARTNER_ID = 2
SOLO_ID = 3


def seed_users(session_factory: sessionmaker) -> None:
    """Demo and Partner are partners; Solo has no partner."""
    with session_factory() as session:
        session.add_all(
            [
                User(id=BUYER_ID, username="demo_user", first_name="Demo"),
                User(id=PARTNER_ID, username="partner_user", first_name="Partner"),
                User(id=SOLO_ID, username="solo_user", first_name="Solo"),
            ]
        )
        session.flush()
        session.add(Partnership(user1_id=BUYER_ID, user2_id=PARTNER_ID))
        session.commit()


def reply_json(*items: tuple[str, str, str] | tuple[str, str, str, str], ambiguity: str = "") -> str:
    """Build a generation reply from (category, amount, mode[, description]) tuples."""
    spendings = []
    for item in items:
        category, amount, mode = item[:3]
        description = item[3] if len(item) > 3 else ""
        spendings.append(
            {"apportion_mode": mode, "category": category, "amount": float(amount), "description": description}
        )
    return json.dumps({"ambiguity_flag": ambiguity, "spendings": spendings})


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        groq_api_key="test-key",
        generation_backend="scripted",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        num_workers=3,
        queue_size=100,
        enqueue_timeout_seconds=1.0,
        max_attempts=3,
        sweep_interval_seconds=0,
    )


@pytest.fixture
def engine(settings: Settings) -> Iterator[Engine]:
    engine = get_engine(settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    factory = get_session_factory(engine)
    with factory() as session:
        seed_default_categories(session)
    seed_users(factory)
    return factory


@pytest.fixture
def job_store(session_factory: sessionmaker) -> JobStore:
    return JobStore(session_factory)


@pytest.fixture
def committer(session_factory: sessionmaker, job_store: JobStore) -> PersistenceCommitter:
    return PersistenceCommitter(session_factory, job_store)


@pytest.fixture
def scripted_client() -> ScriptedGenerationClient:
    return ScriptedGenerationClient()


@pytest.fixture
def runner(
    settings: Settings,
    session_factory: sessionmaker,
    job_store: JobStore,
    committer: PersistenceCommitter,
    scripted_client: ScriptedGenerationClient,
) -> JobRunner:
    return JobRunner(
        settings,
        job_store,
        UserDirectory(session_factory),
        CategoryCatalog(session_factory),
        scripted_client,
        committer,
    )


@pytest.fixture
def pool(settings: Settings, job_store: JobStore, runner: JobRunner) -> Iterator[CategorizingPool]:
    pool = CategorizingPool(settings, job_store, runner)
    pool.start()
    yield pool
    pool.stop(timeout=10)


@pytest.fixture
def make_submission() -> Callable[..., JobSubmission]:
    def _make(
        amount: str = "100.00",
        prompt: str = "Shared dinner",
        buyer_id: int = BUYER_ID,
        shared_with_id: int | None = PARTNER_ID,
        sharing_hint: SharingHint | None = None,
        **kwargs: object,
    ) -> JobSubmission:
        return JobSubmission(
            buyer_id=buyer_id,
            shared_with_id=shared_with_id,
            prompt=prompt,
            total_amount=Decimal(amount),
            sharing_hint=sharing_hint,
            **kwargs,
        )

    return _make


@pytest.fixture
def reply() -> Callable[..., str]:
    return reply_json
