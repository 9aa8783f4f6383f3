"""FastAPI endpoints for the sapp categorization backend.

This module defines the API routes for submitting categorization jobs, checking job status, listing
the category catalog, and health checks. It wires the request models to the worker pool and job store.
"""

from datetime import datetime, time

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from sapp.api.dependencies import Services, get_current_user_id, get_services
from sapp.core.errors import QueueFullError
from sapp.core.models import CategorizeRequest, CategoryInfo, JobStatus, JobSubmission
from sapp.core.utils import get_logger

router = APIRouter()
logger = get_logger("sapp.api")


@router.post(
    "/categorize",
    status_code=202,
    summary="Submit a purchase description for AI categorization",
    description=(
        "Create a categorization job for one purchase. The server splits the amount into categorized, "
        "attributed spendings in the background and returns a job_id immediately.\n\n"
        "**Headers:**\n"
        "- `X-User-Id`: the submitting user.\n\n"
        "**Response:**\n"
        "- 202 Accepted: `{ 'job_id': <int> }`.\n"
        "- 404 Not Found: If the submitting user does not exist.\n"
        "- 422 Unprocessable Entity: Invalid amount or empty prompt.\n"
        "- 503 Service Unavailable: The job queue is full; the job is kept and processed later."
    ),
    response_description="Job accepted. Returns job_id.",
    responses={
        202: {
            "description": "Job accepted. Returns job_id.",
            "content": {"application/json": {"example": {"job_id": 42}}},
        },
        404: {"description": "User not found."},
        503: {"description": "Job queue full."},
    },
)
def categorize(
    payload: CategorizeRequest,
    user_id: int = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Submit a purchase for categorization."""
    if services.directory.find_person(user_id) is None:
        logger.warning(f"Categorization requested by unknown user {user_id}")
        raise HTTPException(404, "User not found")
    partner_id = services.directory.partner_id(user_id)
    transaction_date = datetime.combine(payload.transaction_date, time.min) if payload.transaction_date else None
    submission = JobSubmission(
        buyer_id=user_id,
        shared_with_id=partner_id,
        prompt=payload.prompt,
        total_amount=payload.amount,
        transaction_date=transaction_date,
        pre_settled=payload.pre_settled,
        sharing_hint=payload.shared_status,
    )
    try:
        job_id = services.pool.add_job(submission)
    except QueueFullError as exc:
        raise HTTPException(503, "Categorization queue is full, the job will be processed later") from exc
    logger.info(f"Categorization job {job_id} accepted for user {user_id} (partner={partner_id})")
    return JSONResponse({"job_id": job_id}, status_code=202)


@router.get(
    "/jobs/{job_id}",
    response_model=JobStatus,
    summary="Get categorization job status",
    description=(
        "Check the status of a categorization job by job_id.\n\n"
        "**Response:**\n"
        "- 200 OK: Status, error if any, ambiguity flag and, once completed, the committed line items.\n"
        "- 404 Not Found: If the job_id does not exist."
    ),
    response_description="Job status and line items.",
    responses={404: {"description": "Job not found."}},
)
def get_job_status(job_id: int, services: Services = Depends(get_services)) -> JobStatus:
    """Get the status of a job."""
    status = services.job_store.get_status(job_id)
    if status is None:
        raise HTTPException(404, "Job not found")
    return status


@router.get(
    "/categories",
    response_model=list[CategoryInfo],
    summary="List the category catalog",
    response_description="Categories sorted by name.",
)
def list_categories(services: Services = Depends(get_services)) -> list[CategoryInfo]:
    """List the categories the generation service can choose from."""
    return services.catalog.list_categories()


@router.get(
    "/health",
    summary="Health check",
    description="Simple health check endpoint. Returns status ok.",
    response_description="Status ok.",
    responses={200: {"description": "API is healthy.", "content": {"application/json": {"example": {"status": "ok"}}}}},
)
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
