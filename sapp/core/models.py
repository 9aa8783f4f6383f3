"""Pydantic models for the sapp categorization pipeline.

This module defines the value objects that flow between the pipeline stages (people,
categories, job snapshots, validated line items) and the request/response models of the API.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):
    """Lifecycle states of a categorization job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED})


class ApportionMode(str, Enum):
    """Who bears the cost of a line item."""

    ALONE = "alone"
    SHARED = "shared"
    OTHER = "other"


class SharingHint(str, Enum):
    """What the submitter said about sharing when creating the job."""

    ALONE = "alone"
    SHARED = "shared"


class Person(BaseModel):
    """A submitter or co-payer as presented to the prompt."""

    id: int
    name: str


class CategoryInfo(BaseModel):
    """A catalog entry: name plus an optional hint for the generation service."""

    name: str
    hint: str = ""


class LineItem(BaseModel):
    """One categorized, attributed portion of a job's total."""

    category: str
    amount: Decimal
    description: str = ""
    apportion_mode: ApportionMode


class CategorizationResult(BaseModel):
    """A validated reply, ready to be committed."""

    line_items: list[LineItem]
    is_ambiguity_flagged: bool = False
    ambiguity_flag_reason: str = ""


class JobRecord(BaseModel):
    """Snapshot of a job row handed to the pipeline stages."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    buyer_id: int
    shared_with_id: int | None = None
    prompt: str
    total_amount: Decimal
    transaction_date: datetime | None = None
    pre_settled: bool = False
    sharing_hint: SharingHint | None = None
    status: JobState
    error_message: str | None = None
    is_ambiguity_flagged: bool = False
    ambiguity_flag_reason: str | None = None
    attempts: int = 0
    created_at: datetime
    status_updated_at: datetime | None = None

    @property
    def has_co_payer(self) -> bool:
        return self.shared_with_id is not None


class JobSubmission(BaseModel):
    """Everything the pool needs to create a job row."""

    buyer_id: int
    shared_with_id: int | None = None
    prompt: str
    total_amount: Decimal = Field(gt=0)
    transaction_date: datetime | None = None
    pre_settled: bool = False
    sharing_hint: SharingHint | None = None


class CategorizeRequest(BaseModel):
    """Request body of POST /categorize."""

    amount: Decimal = Field(gt=0, decimal_places=2)
    prompt: str = Field(min_length=1)
    transaction_date: date | None = None
    pre_settled: bool = False
    shared_status: SharingHint | None = None


class CommittedLineItem(BaseModel):
    """A line item as persisted for a completed job."""

    spending_id: int
    category: str
    amount: Decimal
    description: str
    apportion_mode: ApportionMode
    spending_date: datetime
    settled_at: datetime | None = None


class JobStatus(BaseModel):
    """Pydantic model representing the status of a categorization job."""

    job_id: int
    status: JobState
    created_at: datetime
    status_updated_at: datetime | None = None
    error: str | None = None
    attempts: int = 0
    is_ambiguity_flagged: bool = False
    ambiguity_flag_reason: str | None = None
    line_items: list[CommittedLineItem] = Field(default_factory=list)
