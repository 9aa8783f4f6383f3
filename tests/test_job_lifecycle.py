"""End-to-end job lifecycle through the worker pool, with the scripted generation client."""

from decimal import Decimal

from sqlalchemy import func, select

from conftest import PARTNER_ID, SOLO_ID
from sapp.core.db import Spending, UserSpending
from sapp.core.errors import GenerationMalformed, GenerationUnavailable
from sapp.core.models import ApportionMode, JobState


def spendings_for(session_factory, buyer_id: int) -> list[tuple[Spending, UserSpending]]:
    with session_factory() as session:
        rows = session.execute(
            select(Spending, UserSpending)
            .join(UserSpending, UserSpending.spending_id == Spending.id)
            .where(Spending.made_by == buyer_id)
            .order_by(Spending.id)
        ).all()
    return [(spending, attribution) for spending, attribution in rows]


def test_shared_dinner(pool, job_store, scripted_client, session_factory, make_submission, reply) -> None:
    """A single shared item for the whole amount ends completed with one attributed spending."""
    scripted_client.add_reply(reply(("Eating Out", "100.00", "shared", "Dinner")))
    job_id = pool.add_job(make_submission())
    pool.wait_idle()

    status = job_store.get_status(job_id)
    if status.status != JobState.COMPLETED or status.error is not None:
        msg = f"Expected the job to complete, got {status.status} ({status.error})"
        raise AssertionError(msg)
    rows = spendings_for(session_factory, 1)
    if len(rows) != 1:
        msg = f"Expected one spending, got {len(rows)}"
        raise AssertionError(msg)
    spending, attribution = rows[0]
    if spending.amount != Decimal("100.00") or attribution.shared_with != PARTNER_ID:
        msg = f"Unexpected spending: amount={spending.amount}, shared_with={attribution.shared_with}"
        raise AssertionError(msg)
    if attribution.shared_user_takes_all or attribution.settled_at is not None:
        msg = "Expected an unsettled, evenly shared spending"
        raise AssertionError(msg)
    items = status.line_items
    if [(i.category, i.amount, i.apportion_mode) for i in items] != [
        ("Eating Out", Decimal("100.00"), ApportionMode.SHARED)
    ]:
        msg = f"Unexpected line items: {items!r}"
        raise AssertionError(msg)


def test_snack_without_co_payer_retries_once(
    pool, job_store, scripted_client, session_factory, make_submission, reply
) -> None:
    """The first reply shares a solo purchase and is rejected; the second is accepted."""
    scripted_client.add_reply(reply(("Groceries", "40.00", "shared")))
    scripted_client.add_reply(reply(("Groceries", "40.00", "alone", "Snack")))
    job_id = pool.add_job(make_submission(amount="40.00", prompt="Snack", buyer_id=SOLO_ID, shared_with_id=None))
    pool.wait_idle()

    if scripted_client.call_count != 2:
        msg = f"Expected exactly two generation calls, got {scripted_client.call_count}"
        raise AssertionError(msg)
    status = job_store.get_status(job_id)
    if status.status != JobState.COMPLETED or status.attempts != 2:
        msg = f"Expected completion on the second attempt, got {status.status} after {status.attempts}"
        raise AssertionError(msg)
    rows = spendings_for(session_factory, SOLO_ID)
    if len(rows) != 1 or rows[0][1].shared_with is not None:
        msg = "Expected one spending attributed to the buyer alone"
        raise AssertionError(msg)
    if "There is no partner involved." not in scripted_client.history[0]:
        msg = "Expected the prompt to say there is no partner"
        raise AssertionError(msg)


def test_retry_budget_is_bounded(pool, job_store, scripted_client, make_submission, reply) -> None:
    """A reply that never validates fails the job after exactly max_attempts calls."""
    scripted_client.default_reply = reply(("Groceries", "10.00", "shared"))
    job_id = pool.add_job(make_submission())
    pool.wait_idle()

    if scripted_client.call_count != 3:
        msg = f"Expected three generation calls, got {scripted_client.call_count}"
        raise AssertionError(msg)
    status = job_store.get_status(job_id)
    if status.status != JobState.FAILED or status.attempts != 3:
        msg = f"Expected failure after three attempts, got {status.status} after {status.attempts}"
        raise AssertionError(msg)
    if "rejected after 3 attempts" not in status.error or "amount_mismatch" not in status.error:
        msg = f"Unexpected error text: {status.error!r}"
        raise AssertionError(msg)
    if status.line_items:
        msg = "Expected no line items for a failed job"
        raise AssertionError(msg)


def test_generation_errors_fail_without_retry(pool, job_store, scripted_client, make_submission) -> None:
    """Unavailable and malformed generation results end the job on the first attempt."""
    scripted_client.add_error(GenerationUnavailable("service down"))
    first = pool.add_job(make_submission())
    pool.wait_idle()
    scripted_client.add_error(GenerationMalformed("no choices"))
    second = pool.add_job(make_submission())
    pool.wait_idle()

    if scripted_client.call_count != 2:
        msg = f"Expected one call per job, got {scripted_client.call_count}"
        raise AssertionError(msg)
    for job_id, text in ((first, "service down"), (second, "no choices")):
        status = job_store.get_status(job_id)
        if status.status != JobState.FAILED or text not in status.error or status.attempts != 1:
            msg = f"Unexpected status for job {job_id}: {status!r}"
            raise AssertionError(msg)


def test_no_co_payer_always_shared_writes_nothing(
    pool, job_store, scripted_client, session_factory, make_submission, reply
) -> None:
    scripted_client.default_reply = reply(("Groceries", "40.00", "shared"))
    job_id = pool.add_job(make_submission(amount="40.00", buyer_id=SOLO_ID, shared_with_id=None))
    pool.wait_idle()

    status = job_store.get_status(job_id)
    if status.status != JobState.FAILED or "attribution_without_co_payer" not in status.error:
        msg = f"Unexpected status: {status!r}"
        raise AssertionError(msg)
    with session_factory() as session:
        count = session.scalar(select(func.count()).select_from(Spending))
    if count != 0:
        msg = f"Expected no spendings, got {count}"
        raise AssertionError(msg)


def test_unknown_category_fails_job(pool, job_store, scripted_client, make_submission, reply) -> None:
    scripted_client.add_reply(reply(("Yachts", "100.00", "shared")))
    job_id = pool.add_job(make_submission())
    pool.wait_idle()

    status = job_store.get_status(job_id)
    if status.status != JobState.FAILED or "category 'Yachts' not found" not in status.error:
        msg = f"Unexpected status: {status!r}"
        raise AssertionError(msg)


def test_unknown_buyer_fails_job(pool, job_store, scripted_client, make_submission) -> None:
    job_id = pool.add_job(make_submission(buyer_id=999, shared_with_id=None))
    pool.wait_idle()

    status = job_store.get_status(job_id)
    if status.status != JobState.FAILED or status.error != "user 999 not found":
        msg = f"Unexpected status: {status!r}"
        raise AssertionError(msg)
    if scripted_client.call_count:
        msg = "Did not expect a generation call for an unknown buyer"
        raise AssertionError(msg)


def test_concurrent_jobs_all_complete(pool, job_store, scripted_client, make_submission, reply) -> None:
    """Jobs submitted together are spread over the workers and each reaches completed."""
    scripted_client.default_reply = reply(("Groceries", "60.00", "shared"), ("Coffee", "40.00", "alone"))
    job_ids = [pool.add_job(make_submission(prompt=f"purchase {i}")) for i in range(10)]
    pool.wait_idle()

    statuses = [job_store.get_status(job_id).status for job_id in job_ids]
    if statuses != [JobState.COMPLETED] * 10:
        msg = f"Expected every job to complete, got {statuses}"
        raise AssertionError(msg)
    if scripted_client.call_count != 10:
        msg = f"Expected one call per job, got {scripted_client.call_count}"
        raise AssertionError(msg)


def test_terminal_job_is_not_rerun(runner, job_store, scripted_client, make_submission, reply) -> None:
    """Running a job that already finished is a no-op."""
    scripted_client.add_reply(reply(("Eating Out", "100.00", "shared")))
    job_id = job_store.create_job(make_submission())
    runner.run_job(job_id)
    runner.run_job(job_id)

    if scripted_client.call_count != 1:
        msg = f"Expected the second run to be skipped, got {scripted_client.call_count} calls"
        raise AssertionError(msg)
    if job_store.get_status(job_id).status != JobState.COMPLETED:
        msg = "Expected the job to stay completed"
        raise AssertionError(msg)
