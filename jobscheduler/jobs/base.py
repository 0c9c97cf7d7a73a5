"""
Job kind handler interface and the scaffolding shared by every kind.

A handler turns a ``ScheduleJobRequest`` into a ``V1Job`` manifest and reads
its kind-specific details back out of a job fetched from the cluster. The
functions below build the parts that do not depend on the kind: object name,
system labels and annotations, and the job-level policy fields.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from kubernetes import client

from ..schemas import ResourceRequirements, ScheduleJobRequest

KIND_TIMER = "timer"

MAX_NAME_LENGTH = 63
PLACEHOLDER_NAME = "unnamed-job"

LABEL_NAME = "app.kubernetes.io/name"
LABEL_COMPONENT = "app.kubernetes.io/component"
LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
LABEL_JOB_TYPE = "ctrlsys.io/job-type"
LABEL_JOB_ID = "ctrlsys.io/job-id"

ANNOTATION_JOB_ID = "ctrlsys.io/job-id"
ANNOTATION_JOB_NAME = "ctrlsys.io/job-name"
ANNOTATION_CREATED_BY = "ctrlsys.io/created-by"

APP_NAME = "ctrlsys-job"
MANAGED_BY = "jobscheduler"

SYSTEM_PREFIXES = ("app.kubernetes.io/", "ctrlsys.io/")

_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9-]")
_LABEL_NAME = re.compile(r"[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?")
_DNS_SUBDOMAIN = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*")


@dataclass(frozen=True)
class JobDefaults:
    namespace: str = "default"
    cpu_request: str = "100m"
    memory_request: str = "64Mi"
    cpu_limit: str = "200m"
    memory_limit: str = "128Mi"
    registry: str = ""
    ttl_seconds: Optional[int] = 86400
    restart_policy: str = "Never"
    backoff_limit: Optional[int] = 3
    parallelism: Optional[int] = 1
    completions: Optional[int] = 1
    completion_mode: str = "NonIndexed"


@dataclass
class JobMetadata:
    job_id: str
    name: str
    namespace: str
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    created_by: str = ""

    @classmethod
    def from_request(cls, request: ScheduleJobRequest, defaults: JobDefaults) -> "JobMetadata":
        return cls(
            job_id=request.job_id or "",
            name=request.name,
            namespace=request.namespace or defaults.namespace,
            labels=dict(request.labels),
            annotations=dict(request.annotations),
            created_by=request.created_by or "",
        )


class JobHandler(ABC):
    """One implementation per job kind."""

    kind: str

    @abstractmethod
    def validate(self, request: ScheduleJobRequest) -> None:
        """Raise ``InvalidConfigError`` if the kind payload is missing or wrong."""

    @abstractmethod
    def build_manifest(self, request: ScheduleJobRequest, defaults: JobDefaults) -> client.V1Job:
        ...

    @abstractmethod
    def extract_details(self, job: client.V1Job):
        ...

    @abstractmethod
    def job_info_fields(self, job: client.V1Job) -> Dict[str, Any]:
        """``JobInfo`` fields carrying this kind's details, keyed by field name."""

    @abstractmethod
    def default_image(self) -> str:
        ...


def is_system_key(key: str) -> bool:
    return key.startswith(SYSTEM_PREFIXES)


def is_valid_label_key(key: str) -> bool:
    """Qualified name: optional DNS subdomain prefix, then a name of at most 63 chars."""
    prefix, sep, name = key.rpartition("/")
    if sep and (len(prefix) > 253 or not _DNS_SUBDOMAIN.fullmatch(prefix)):
        return False
    return len(name) <= MAX_NAME_LENGTH and bool(_LABEL_NAME.fullmatch(name))


def is_valid_label_value(value: str) -> bool:
    return value == "" or (len(value) <= MAX_NAME_LENGTH and bool(_LABEL_NAME.fullmatch(value)))


def sanitize_job_name(name: str) -> str:
    """Make ``name`` a valid DNS-1123 label. Idempotent."""
    cleaned = name.lower().replace("_", "-").replace(" ", "-")
    cleaned = _INVALID_NAME_CHARS.sub("", cleaned).strip("-")
    if not cleaned:
        cleaned = PLACEHOLDER_NAME
    if len(cleaned) > MAX_NAME_LENGTH:
        cleaned = cleaned[:MAX_NAME_LENGTH].rstrip("-")
    return cleaned


def generate_job_name(kind: str, job_id: str) -> str:
    return sanitize_job_name(f"{kind}-{job_id}")


def common_labels(kind: str, metadata: JobMetadata) -> Dict[str, str]:
    labels = {
        LABEL_NAME: APP_NAME,
        LABEL_COMPONENT: kind,
        LABEL_MANAGED_BY: MANAGED_BY,
        LABEL_JOB_TYPE: kind,
        LABEL_JOB_ID: metadata.job_id,
    }
    for key, value in metadata.labels.items():
        labels.setdefault(key, value)
    return labels


def common_annotations(metadata: JobMetadata) -> Dict[str, str]:
    annotations = {
        ANNOTATION_JOB_ID: metadata.job_id,
        ANNOTATION_JOB_NAME: metadata.name,
    }
    if metadata.created_by:
        annotations[ANNOTATION_CREATED_BY] = metadata.created_by
    for key, value in metadata.annotations.items():
        annotations.setdefault(key, value)
    return annotations


def resolve_image(override: Optional[str], default_image: str, defaults: JobDefaults) -> str:
    if override:
        return override
    if defaults.registry and default_image:
        return f"{defaults.registry.rstrip('/')}/{default_image}"
    return default_image


def resolve_resources(
    resources: Optional[ResourceRequirements], defaults: JobDefaults
) -> client.V1ResourceRequirements:
    """Per-field override, falling back to the site defaults."""
    requests = resources.requests if resources else None
    limits = resources.limits if resources else None
    return client.V1ResourceRequirements(
        requests={
            "cpu": (requests and requests.cpu) or defaults.cpu_request,
            "memory": (requests and requests.memory) or defaults.memory_request,
        },
        limits={
            "cpu": (limits and limits.cpu) or defaults.cpu_limit,
            "memory": (limits and limits.memory) or defaults.memory_limit,
        },
    )


def build_base_job(
    kind: str,
    metadata: JobMetadata,
    defaults: JobDefaults,
    containers: List[client.V1Container],
) -> client.V1Job:
    labels = common_labels(kind, metadata)
    return client.V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=client.V1ObjectMeta(
            name=generate_job_name(kind, metadata.job_id),
            namespace=metadata.namespace,
            labels=labels,
            annotations=common_annotations(metadata),
        ),
        spec=client.V1JobSpec(
            ttl_seconds_after_finished=defaults.ttl_seconds,
            backoff_limit=defaults.backoff_limit,
            completions=defaults.completions,
            parallelism=defaults.parallelism,
            completion_mode=defaults.completion_mode,
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=dict(labels)),
                spec=client.V1PodSpec(
                    restart_policy=defaults.restart_policy,
                    containers=containers,
                ),
            ),
        ),
    )
