"""
Job creator: schedule, inspect, list and cancel jobs on the cluster.

Nothing is cached here. Every query re-reads the cluster, and job identity
and status are rebuilt from the labels and annotations written at schedule
time.
"""

import logging
import secrets
import time
from typing import Dict, Iterable, List, Optional, Tuple

from kubernetes import client

from . import metrics
from .cluster import ClusterClient
from .errors import (
    ClusterError,
    InternalError,
    InvalidConfigError,
    JobSchedulerError,
    NotFoundError,
    NotRegisteredError,
    TerminalStateError,
)
from .jobs.base import (
    ANNOTATION_CREATED_BY,
    ANNOTATION_JOB_NAME,
    LABEL_JOB_ID,
    LABEL_JOB_TYPE,
    LABEL_MANAGED_BY,
    MANAGED_BY,
    JobDefaults,
    is_system_key,
)
from .jobs.registry import JobRegistry
from .schemas import JobInfo, JobStatus, ScheduleJobRequest, ScheduleJobResponse

logger = logging.getLogger(__name__)


def generate_job_id() -> str:
    try:
        return f"job-{secrets.token_bytes(8).hex()}"
    except (NotImplementedError, OSError):
        # no entropy source; fall back rather than fail the call
        return f"job-{time.time_ns()}"


def _epoch(ts) -> Optional[int]:
    return int(ts.timestamp()) if ts is not None else None


class JobCreator:
    def __init__(self, cluster: ClusterClient, registry: JobRegistry, defaults: JobDefaults):
        self.cluster = cluster
        self.registry = registry
        self.defaults = defaults

    async def schedule(self, request: ScheduleJobRequest) -> ScheduleJobResponse:
        kind = request.job_kind()
        if kind is None:
            raise InvalidConfigError("unknown job configuration type", job_id=request.job_id, operation="schedule")
        try:
            handler = self.registry.lookup(kind)
        except NotRegisteredError as exc:
            raise InvalidConfigError(str(exc), job_id=request.job_id, operation="schedule") from exc

        handler.validate(request)

        job_id = request.job_id or generate_job_id()
        request = request.model_copy(update={"job_id": job_id})

        try:
            manifest = handler.build_manifest(request, self.defaults)
        except JobSchedulerError:
            raise
        except (TypeError, ValueError) as exc:
            raise InternalError(f"failed to generate job manifest: {exc}", job_id=job_id, operation="schedule") from exc

        try:
            created = await self.cluster.create_job(manifest)
        except ClusterError as exc:
            exc.job_id = job_id
            raise

        metrics.jobs_scheduled_total.labels(kind=kind).inc()
        logger.info(
            "Scheduled job",
            extra={
                "job_id": job_id,
                "job_name": request.name,
                "kind": kind,
                "k8s_job_name": created.metadata.name,
                "namespace": created.metadata.namespace,
            },
        )
        return ScheduleJobResponse(
            job_id=job_id,
            status=JobStatus.PENDING,
            message="Job successfully scheduled",
            k8s_job_name=created.metadata.name,
        )

    async def _find(self, job_id: str, namespace: Optional[str]) -> client.V1Job:
        namespace = namespace or self.defaults.namespace
        try:
            jobs = await self.cluster.list_jobs(namespace, {LABEL_JOB_ID: job_id})
        except ClusterError as exc:
            exc.job_id = job_id
            raise
        if not jobs:
            raise NotFoundError(f"job with ID {job_id} not found", job_id=job_id, operation="get")
        if len(jobs) > 1:
            # first match wins; see DESIGN.md
            logger.warning(
                "Multiple jobs found with same job ID",
                extra={"job_id": job_id, "namespace": namespace, "count": len(jobs)},
            )
        return jobs[0]

    async def get_status(self, job_id: str, namespace: Optional[str] = None) -> JobInfo:
        job = await self._find(job_id, namespace)
        return self.to_job_info(job)

    async def list(
        self,
        namespace: Optional[str] = None,
        label_filters: Optional[Dict[str, str]] = None,
        status_filters: Optional[Iterable[JobStatus]] = None,
    ) -> Tuple[List[JobInfo], int]:
        namespace = namespace or self.defaults.namespace
        selector = dict(label_filters or {})
        selector[LABEL_MANAGED_BY] = MANAGED_BY
        wanted = set(status_filters or ())

        jobs = await self.cluster.list_jobs(namespace, selector)

        infos = []
        for job in jobs:
            if wanted and self.cluster.job_status(job) not in wanted:
                continue
            try:
                infos.append(self.to_job_info(job))
            except JobSchedulerError as exc:
                logger.error(
                    "Failed to convert job to job info",
                    extra={"k8s_job_name": job.metadata.name, "error": exc.message},
                )
        return infos, len(infos)

    async def cancel(self, job_id: str, namespace: Optional[str] = None) -> None:
        info = await self.get_status(job_id, namespace)
        if info.status.is_terminal:
            raise TerminalStateError(
                f"cannot cancel job in status: {info.status.value}", job_id=job_id, operation="cancel"
            )
        try:
            await self.cluster.delete_job(info.namespace, info.k8s_job_name)
        except ClusterError as exc:
            exc.job_id = job_id
            raise
        metrics.jobs_cancelled_total.inc()
        logger.info("Cancelled job", extra={"job_id": job_id, "k8s_job_name": info.k8s_job_name})

    def to_job_info(self, job: client.V1Job) -> JobInfo:
        meta = job.metadata
        labels = meta.labels or {}
        annotations = meta.annotations or {}
        job_id = labels.get(LABEL_JOB_ID)
        if not job_id:
            raise InternalError(f"job {meta.name} has no {LABEL_JOB_ID} label", operation="convert")
        kind = labels.get(LABEL_JOB_TYPE, "")
        status = job.status or client.V1JobStatus()

        details = {}
        if self.registry.is_registered(kind):
            try:
                details = self.registry.lookup(kind).job_info_fields(job)
            except JobSchedulerError as exc:
                logger.debug("No job details", extra={"job_id": job_id, "error": exc.message})

        return JobInfo(
            job_id=job_id,
            name=annotations.get(ANNOTATION_JOB_NAME, ""),
            k8s_job_name=meta.name,
            namespace=meta.namespace,
            kind=kind,
            status=self.cluster.job_status(job),
            created_at=_epoch(meta.creation_timestamp),
            started_at=_epoch(status.start_time),
            completed_at=_epoch(status.completion_time),
            created_by=annotations.get(ANNOTATION_CREATED_BY, ""),
            labels={k: v for k, v in labels.items() if not is_system_key(k)},
            annotations={k: v for k, v in annotations.items() if not is_system_key(k)},
            **details,
        )
