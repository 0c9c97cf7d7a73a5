import logging
from typing import Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from .. import metrics
from ..auth import require_api_key
from ..creator import JobCreator
from ..dependencies import get_job_creator
from ..errors import (
    InternalError,
    InvalidArgumentError,
    InvalidConfigError,
    JobSchedulerError,
    NotFoundError,
)
from ..jobs.base import is_valid_label_key, is_valid_label_value
from ..schemas import (
    CancelJobResponse,
    GetJobStatusResponse,
    JobStatus,
    ListJobsResponse,
    ScheduleJobRequest,
    ScheduleJobResponse,
    status_message,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _fail(exc: JobSchedulerError, operation: str) -> NoReturn:
    if isinstance(exc, (InvalidArgumentError, InvalidConfigError)):
        code = 400
    elif isinstance(exc, NotFoundError):
        code = 404
    else:
        code = 500
    metrics.error_count.labels(operation=operation).inc()
    fields = exc.log_fields()
    fields.setdefault("operation", operation)
    if code == 500:
        logger.error(f"{operation} failed", extra=fields)
    else:
        logger.info(f"{operation} rejected", extra=fields)
    raise HTTPException(status_code=code, detail=exc.message)


def _check_schedule_request(request: ScheduleJobRequest) -> None:
    if not request.name:
        raise InvalidArgumentError("job name is required")
    if not request.job_configs():
        raise InvalidArgumentError("job configuration is required")
    if len(request.job_configs()) > 1:
        raise InvalidArgumentError("exactly one job configuration is allowed")
    if request.job_id is not None and not request.job_id.strip():
        raise InvalidArgumentError("job_id must not be empty")


def _require_job_id(job_id: str) -> None:
    if not job_id.strip():
        raise InvalidArgumentError("job_id is required")


def _parse_labels(terms: List[str]) -> Dict[str, str]:
    labels = {}
    for term in terms:
        key, sep, value = term.partition("=")
        if not sep or not key:
            raise InvalidArgumentError(f"invalid label filter: {term!r}, expected key=value")
        if not is_valid_label_key(key):
            raise InvalidArgumentError(f"invalid label key in filter: {term!r}")
        if not is_valid_label_value(value):
            raise InvalidArgumentError(f"invalid label value in filter: {term!r}")
        labels[key] = value
    return labels


@router.post("/jobs", response_model=ScheduleJobResponse)
async def schedule_job(
    request: ScheduleJobRequest,
    authorized: bool = Depends(require_api_key),
    creator: JobCreator = Depends(get_job_creator),
):
    logger.info("Received ScheduleJob request", extra={"job_id": request.job_id, "job_name": request.name})
    try:
        _check_schedule_request(request)
        response = await creator.schedule(request)
    except JobSchedulerError as exc:
        _fail(exc, "schedule")
    return response


@router.get("/jobs/{job_id}", response_model=GetJobStatusResponse)
async def get_job_status(
    job_id: str,
    namespace: Optional[str] = None,
    creator: JobCreator = Depends(get_job_creator),
):
    logger.debug("Received GetJobStatus request", extra={"job_id": job_id})
    try:
        _require_job_id(job_id)
        info = await creator.get_status(job_id, namespace)
    except JobSchedulerError as exc:
        _fail(exc, "get_status")
    return GetJobStatusResponse(
        job_id=job_id, job_info=info, status=info.status, message=status_message(info.status)
    )


@router.get("/jobs", response_model=ListJobsResponse)
async def list_jobs(
    namespace: Optional[str] = None,
    label: List[str] = Query(default=[]),
    status: List[JobStatus] = Query(default=[]),
    creator: JobCreator = Depends(get_job_creator),
):
    logger.debug(
        "Received ListJobs request",
        extra={"namespace": namespace, "label_selector": label, "status_filter": [s.value for s in status]},
    )
    try:
        labels = _parse_labels(label)
        jobs, total = await creator.list(namespace, labels, status)
    except InvalidArgumentError as exc:
        _fail(exc, "list")
    except JobSchedulerError as exc:
        # listing has no caller-side failure besides a bad filter
        _fail(InternalError(exc.message, operation="list"), "list")
    return ListJobsResponse(jobs=jobs, total_count=total)


@router.post("/jobs/{job_id}/cancel", response_model=CancelJobResponse)
async def cancel_job(
    job_id: str,
    namespace: Optional[str] = None,
    authorized: bool = Depends(require_api_key),
    creator: JobCreator = Depends(get_job_creator),
):
    logger.info("Received CancelJob request", extra={"job_id": job_id})
    try:
        _require_job_id(job_id)
        await creator.cancel(job_id, namespace)
    except InvalidArgumentError as exc:
        _fail(exc, "cancel")
    except JobSchedulerError as exc:
        _fail(InternalError(exc.message, job_id=job_id, operation="cancel"), "cancel")
    return CancelJobResponse(success=True, message="Job successfully cancelled")
