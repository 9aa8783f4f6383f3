"""Error taxonomy for the categorization pipeline.

Validator rejections are values, not exceptions: they ask the worker to run the
pipeline again. Everything that derives from ``CategorizationError`` ends the
job, and its message is stored on the job record as-is.
"""

from dataclasses import dataclass
from enum import Enum


class RejectionReason(str, Enum):
    """Why a generated reply was not accepted."""

    MALFORMED = "malformed"
    INVALID_ATTRIBUTION_MODE = "invalid_attribution_mode"
    ATTRIBUTION_WITHOUT_CO_PAYER = "attribution_without_co_payer"
    INCONSISTENT_ATTRIBUTION_HINT = "inconsistent_attribution_hint"
    AMOUNT_MISMATCH = "amount_mismatch"


@dataclass(frozen=True)
class Rejection:
    """A validator verdict that asks for another generation attempt."""

    reason: RejectionReason
    detail: str = ""

    def __str__(self) -> str:
        if self.detail:
            return f"{self.reason.value}: {self.detail}"
        return self.reason.value


class CategorizationError(Exception):
    """Base class for failures that terminate a categorization job."""


class RetryBudgetExhausted(CategorizationError):
    """Every allowed attempt produced a rejected reply."""

    def __init__(self, attempts: int, last_rejection: Rejection) -> None:
        self.attempts = attempts
        self.last_rejection = last_rejection
        super().__init__(f"categorization rejected after {attempts} attempts (last: {last_rejection})")


class GenerationFailure(CategorizationError):
    """The text-generation service could not produce a usable reply."""


class GenerationUnavailable(GenerationFailure):
    """Network error, timeout or non-2xx response from the generation service."""


class GenerationMalformed(GenerationFailure):
    """The generation service answered, but not with the expected envelope."""


class PersistenceFailure(CategorizationError):
    """Committing a validated result failed; nothing was written."""


class UnknownCategory(PersistenceFailure):
    """A line item names a category that is not in the catalog."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"category '{name}' not found")


class ConfigurationFailure(CategorizationError):
    """Missing catalog, unknown user or unusable setup."""


class QueueFullError(Exception):
    """The job queue did not accept a job within the enqueue timeout."""
