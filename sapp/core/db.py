"""DB models and connection helpers for the sapp categorization backend."""

from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from sapp.core.settings import Settings
from sapp.core.utils import utcnow

Base = declarative_base()

MONEY = Numeric(12, 2)


class User(Base):
    """A person who can submit spendings; only the display name matters here."""

    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String, unique=True, nullable=False)
    first_name = Column(String, nullable=True)


class Partnership(Base):
    """Links two users; user1_id is always the lower id."""

    __tablename__ = "partnerships"
    __table_args__ = (CheckConstraint("user1_id < user2_id", name="ck_partnership_order"),)
    user1_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    user2_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)


class Category(Base):
    """A spending category, with optional notes used to steer the generation service."""

    __tablename__ = "categories"
    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False, index=True)
    ai_notes = Column(Text, nullable=True)


class CategorizationJob(Base):
    """One categorization request from submission to terminal status."""

    __tablename__ = "ai_categorization_jobs"
    __table_args__ = (CheckConstraint("total_amount > 0", name="ck_job_positive_total"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    buyer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    shared_with_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    prompt = Column(Text, nullable=False)
    total_amount = Column(MONEY, nullable=False)
    transaction_date = Column(DateTime, nullable=True)
    pre_settled = Column(Boolean, nullable=False, default=False)
    sharing_hint = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending", index=True)
    error_message = Column(Text, nullable=True)
    is_ambiguity_flagged = Column(Boolean, nullable=False, default=False)
    ambiguity_flag_reason = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    status_updated_at = Column(DateTime, nullable=True, default=utcnow)


class Spending(Base):
    """A persisted spending record."""

    __tablename__ = "spendings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(MONEY, nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column("category", Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    made_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    spending_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class AICategorizedSpending(Base):
    """Provenance link from a spending back to the job that produced it."""

    __tablename__ = "ai_categorized_spendings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    spending_id = Column(Integer, ForeignKey("spendings.id", ondelete="CASCADE"), unique=True, nullable=False)
    job_id = Column(Integer, ForeignKey("ai_categorization_jobs.id", ondelete="CASCADE"), nullable=False, index=True)


class UserSpending(Base):
    """Attribution of a spending between buyer and partner."""

    __tablename__ = "user_spendings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    spending_id = Column(Integer, ForeignKey("spendings.id", ondelete="CASCADE"), nullable=False, index=True)
    buyer = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    shared_with = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    shared_user_takes_all = Column(Boolean, nullable=False, default=False)
    settled_at = Column(DateTime, nullable=True)


DEFAULT_CATEGORIES: list[tuple[str, str | None]] = [
    ("Groceries", "food bought to cook at home; a plain mention of food or dinner means Groceries, not Eating Out"),
    ("Transport", None),
    ("Eating Out", None),
    ("Entertainment (general)", None),
    ("Travel, Events & Vacation", None),
    ("Utilities", None),
    ("Technology", "e.g. phone, computer, etc."),
    ("Subscription (general)", None),
    ("Coffee", None),
    ("Alcohol", None),
    ("Nutritional drink", "e.g. Nutridrink, Fresubin, etc."),
    ("Rent/Mortgage", None),
    ("Shopping (general)", None),
    ("Clothes", None),
    ("Education", None),
    ("Health", None),
    ("Energy Drinks", None),
    ("Other", None),
]


def get_engine(settings: Settings) -> Engine:
    """Create a SQLAlchemy engine using the configured database URL."""
    url = settings.database_url
    kwargs: dict[str, Any] = {}
    if url.startswith("sqlite"):
        # Worker threads share the engine's pooled connections.
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, **kwargs)


def get_session_factory(engine: Engine) -> sessionmaker:
    """Build the session factory shared by the job store, committer and directory."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)


def seed_default_categories(session: Session) -> int:
    """Insert the default category catalog entries that are missing. Returns how many were added."""
    existing = set(session.execute(select(Category.name)).scalars())
    added = 0
    for name, notes in DEFAULT_CATEGORIES:
        if name not in existing:
            session.add(Category(name=name, ai_notes=notes))
            added += 1
    session.commit()
    return added
