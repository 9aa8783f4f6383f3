"""Validation of generated categorization replies.

The generation service's output is untrusted. ``validate_result`` turns a raw reply into a
``CategorizationResult`` or a ``Rejection`` explaining why the job should be attempted again.
It has no side effects.
"""

import re
from decimal import Decimal

from pydantic import BaseModel, ValidationError

from sapp.core.errors import Rejection, RejectionReason
from sapp.core.models import ApportionMode, CategorizationResult, JobRecord, LineItem, SharingHint
from sapp.core.utils import to_money

DEFAULT_TOLERANCE = Decimal("0.01")
VALID_MODES = frozenset(mode.value for mode in ApportionMode)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


class ReplyLineItem(BaseModel):
    category: str
    amount: Decimal
    description: str | None = ""
    apportion_mode: str


class ReplyEnvelope(BaseModel):
    """The JSON object the prompt asks for."""

    ambiguity_flag: str | None = ""
    spendings: list[ReplyLineItem]


def parse_reply(raw_reply: str) -> ReplyEnvelope | Rejection:
    """Parse the reply text into the envelope, tolerating markdown fences around the JSON."""
    text = _FENCE_RE.sub("", raw_reply.strip())
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        return Rejection(RejectionReason.MALFORMED, "no JSON object in reply")
    try:
        return ReplyEnvelope.model_validate_json(text[start : end + 1])
    except ValidationError as exc:
        return Rejection(RejectionReason.MALFORMED, f"{exc.error_count()} error(s): {exc.errors()[0]['msg']}")


def check_attribution_hint(envelope: ReplyEnvelope, job: JobRecord) -> Rejection | None:
    """Reject ``other`` when the submitter said the purchase was not shared.

    Business heuristic kept separate from the structural checks so it can be revisited on its own.
    """
    if job.sharing_hint != SharingHint.ALONE or not job.has_co_payer:
        return None
    for item in envelope.spendings:
        if item.apportion_mode == ApportionMode.OTHER.value:
            return Rejection(
                RejectionReason.INCONSISTENT_ATTRIBUTION_HINT,
                f"'{item.category}' attributed to the partner although the purchase was marked as not shared",
            )
    return None


def validate_result(
    raw_reply: str, job: JobRecord, tolerance: Decimal = DEFAULT_TOLERANCE
) -> CategorizationResult | Rejection:
    """Check a raw reply against the job and return the validated result or a rejection."""
    envelope = parse_reply(raw_reply)
    if isinstance(envelope, Rejection):
        return envelope

    for item in envelope.spendings:
        if item.apportion_mode not in VALID_MODES:
            return Rejection(
                RejectionReason.INVALID_ATTRIBUTION_MODE,
                f"'{item.apportion_mode}' for '{item.category}'",
            )

    if not job.has_co_payer:
        for item in envelope.spendings:
            if item.apportion_mode != ApportionMode.ALONE.value:
                return Rejection(
                    RejectionReason.ATTRIBUTION_WITHOUT_CO_PAYER,
                    f"'{item.apportion_mode}' for '{item.category}' but the job has no partner",
                )

    rejection = check_attribution_hint(envelope, job)
    if rejection is not None:
        return rejection

    amounts = [to_money(item.amount) for item in envelope.spendings]
    counted_total = sum(amounts, Decimal(0))
    if abs(counted_total - Decimal(job.total_amount)) > tolerance:
        return Rejection(
            RejectionReason.AMOUNT_MISMATCH,
            f"line items sum to {counted_total}, expected {job.total_amount}",
        )

    reason = (envelope.ambiguity_flag or "").strip()
    return CategorizationResult(
        line_items=[
            LineItem(
                category=item.category,
                amount=amount,
                description=item.description or "",
                apportion_mode=ApportionMode(item.apportion_mode),
            )
            for item, amount in zip(envelope.spendings, amounts, strict=True)
        ],
        is_ambiguity_flagged=bool(reason),
        ambiguity_flag_reason=reason,
    )
