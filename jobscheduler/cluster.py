import asyncio
import copy
import logging
import os
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from kubernetes import client, config as kube_config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from . import metrics
from .errors import ClusterError
from .schemas import JobStatus

logger = logging.getLogger(__name__)

TESTING = os.getenv("TESTING") == "1"

FOREGROUND = "Foreground"


def label_selector(labels: Optional[Dict[str, str]]) -> Optional[str]:
    if not labels:
        return None
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def _condition_true(job: client.V1Job, condition_type: str) -> bool:
    conditions = (job.status.conditions if job.status else None) or []
    return any(c.type == condition_type and c.status == "True" for c in conditions)


def derive_status(job: client.V1Job) -> JobStatus:
    """Terminal conditions win over the active count."""
    if _condition_true(job, "Complete"):
        return JobStatus.SUCCEEDED
    if _condition_true(job, "Failed"):
        return JobStatus.FAILED
    if job.status and (job.status.active or 0) > 0:
        return JobStatus.RUNNING
    return JobStatus.PENDING


class InMemoryBatchApi:
    """Stands in for ``BatchV1Api`` in tests and local runs.

    Only the calls ``ClusterClient`` makes are implemented. Objects are kept
    per namespace and handed out as copies, like a real API server would.
    """

    def __init__(self):
        self._jobs: Dict[str, Dict[str, client.V1Job]] = {}

    def create_namespaced_job(self, namespace: str, body: client.V1Job, **kwargs) -> client.V1Job:
        jobs = self._jobs.setdefault(namespace, {})
        name = body.metadata.name
        if name in jobs:
            raise ApiException(status=409, reason=f'jobs.batch "{name}" already exists')
        job = copy.deepcopy(body)
        job.metadata.namespace = namespace
        job.metadata.uid = f"uid-{namespace}-{name}"
        job.metadata.creation_timestamp = datetime.now(timezone.utc)
        job.status = client.V1JobStatus()
        jobs[name] = job
        return copy.deepcopy(job)

    def read_namespaced_job(self, name: str, namespace: str, **kwargs) -> client.V1Job:
        return copy.deepcopy(self._get(namespace, name))

    def list_namespaced_job(
        self, namespace: str, label_selector: Optional[str] = None, limit: Optional[int] = None, **kwargs
    ) -> client.V1JobList:
        wanted = {}
        for term in (label_selector or "").split(","):
            if term:
                key, _, value = term.partition("=")
                wanted[key] = value
        items = [
            copy.deepcopy(job)
            for job in self._jobs.get(namespace, {}).values()
            if all((job.metadata.labels or {}).get(k) == v for k, v in wanted.items())
        ]
        items.sort(key=lambda j: (j.metadata.creation_timestamp, j.metadata.name))
        if limit:
            items = items[:limit]
        return client.V1JobList(items=items)

    def delete_namespaced_job(self, name: str, namespace: str, **kwargs) -> client.V1Status:
        self._get(namespace, name)
        del self._jobs[namespace][name]
        return client.V1Status(status="Success")

    def _get(self, namespace: str, name: str) -> client.V1Job:
        job = self._jobs.get(namespace, {}).get(name)
        if job is None:
            raise ApiException(status=404, reason=f'jobs.batch "{name}" not found')
        return job

    # status drivers, standing in for the cluster's job controller

    def mark_running(self, namespace: str, name: str) -> None:
        job = self._get(namespace, name)
        job.status.active = 1
        job.status.start_time = datetime.now(timezone.utc)

    def mark_succeeded(self, namespace: str, name: str) -> None:
        self._finish(namespace, name, "Complete")
        self._get(namespace, name).status.succeeded = 1

    def mark_failed(self, namespace: str, name: str) -> None:
        self._finish(namespace, name, "Failed")
        self._get(namespace, name).status.failed = 1

    def _finish(self, namespace: str, name: str, condition_type: str) -> None:
        job = self._get(namespace, name)
        now = datetime.now(timezone.utc)
        job.status.active = None
        job.status.start_time = job.status.start_time or now
        if condition_type == "Complete":
            job.status.completion_time = now
        job.status.conditions = [client.V1JobCondition(type=condition_type, status="True")]


class ClusterClient:
    """Thin async wrapper over the batch API.

    The underlying client blocks, so every call runs on a worker thread and is
    bounded by ``timeout``. Cancelling the awaiting task returns immediately.
    """

    def __init__(self, batch_api, timeout: float = 10.0):
        self._api = batch_api
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "ClusterClient":
        if TESTING:
            return cls(get_batch_api(), timeout=settings.cluster_timeout_seconds)
        try:
            if settings.in_cluster:
                kube_config.load_incluster_config()
                logger.info("Using in-cluster Kubernetes configuration")
            else:
                path = settings.kubeconfig_path or os.path.join(os.path.expanduser("~"), ".kube", "config")
                kube_config.load_kube_config(config_file=path)
                logger.info("Using kubeconfig file", extra={"kubeconfig": path})
        except (ConfigException, OSError) as exc:
            raise ClusterError(f"failed to load Kubernetes configuration: {exc}", operation="configure") from exc
        return cls(client.BatchV1Api(), timeout=settings.cluster_timeout_seconds)

    async def _call(self, operation: str, fn: Callable, *args, namespace: str, name: str = "", **kwargs):
        start = time.time()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, _request_timeout=self.timeout, **kwargs),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ClusterError(
                f"{operation} {namespace}/{name} timed out after {self.timeout}s", operation=operation
            ) from exc
        except ApiException as exc:
            raise ClusterError(
                f"{operation} {namespace}/{name} failed: {exc.status} {exc.reason}",
                status=exc.status,
                operation=operation,
            ) from exc
        except (HTTPError, OSError) as exc:
            raise ClusterError(f"{operation} {namespace}/{name} failed: {exc}", operation=operation) from exc
        finally:
            metrics.cluster_request_latency_seconds.labels(operation=operation).observe(time.time() - start)

    async def create_job(self, job: client.V1Job) -> client.V1Job:
        namespace, name = job.metadata.namespace, job.metadata.name
        try:
            created = await self._call(
                "create", self._api.create_namespaced_job, namespace, job, namespace=namespace, name=name
            )
        except ClusterError as exc:
            logger.error(
                "Failed to create Kubernetes job",
                extra={"k8s_job_name": name, "namespace": namespace, "error": exc.message},
            )
            raise
        logger.info(
            "Created Kubernetes job",
            extra={"k8s_job_name": created.metadata.name, "namespace": namespace, "uid": created.metadata.uid},
        )
        return created

    async def get_job(self, namespace: str, name: str) -> client.V1Job:
        return await self._call(
            "get", self._api.read_namespaced_job, name, namespace, namespace=namespace, name=name
        )

    async def list_jobs(
        self, namespace: str, labels: Optional[Dict[str, str]] = None, limit: Optional[int] = None
    ) -> List[client.V1Job]:
        kwargs = {"label_selector": label_selector(labels)}
        if limit:
            kwargs["limit"] = limit
        result = await self._call("list", self._api.list_namespaced_job, namespace, namespace=namespace, **kwargs)
        return list(result.items or [])

    async def delete_job(self, namespace: str, name: str) -> None:
        try:
            await self._call(
                "delete",
                self._api.delete_namespaced_job,
                name,
                namespace,
                namespace=namespace,
                name=name,
                propagation_policy=FOREGROUND,
            )
        except ClusterError as exc:
            logger.error(
                "Failed to delete Kubernetes job",
                extra={"k8s_job_name": name, "namespace": namespace, "error": exc.message},
            )
            raise
        logger.info("Deleted Kubernetes job", extra={"k8s_job_name": name, "namespace": namespace})

    async def ping(self, namespace: str) -> None:
        await self.list_jobs(namespace, limit=1)

    @staticmethod
    def job_status(job: client.V1Job) -> JobStatus:
        return derive_status(job)


# Singleton in-memory API for testing
_inmemory_api: Optional[InMemoryBatchApi] = None


def get_batch_api() -> InMemoryBatchApi:
    global _inmemory_api
    if _inmemory_api is None:
        _inmemory_api = InMemoryBatchApi()
    return _inmemory_api
