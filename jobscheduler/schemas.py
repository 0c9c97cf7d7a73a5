from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED)


STATUS_MESSAGES = {
    JobStatus.PENDING: "Job is pending execution",
    JobStatus.RUNNING: "Job is currently running",
    JobStatus.SUCCEEDED: "Job completed successfully",
    JobStatus.FAILED: "Job failed to complete",
    JobStatus.CANCELLED: "Job was cancelled",
}


def status_message(status: JobStatus) -> str:
    return STATUS_MESSAGES.get(status, "Unknown job status")


class ResourceSpec(BaseModel):
    cpu: Optional[str] = None
    memory: Optional[str] = None


class ResourceRequirements(BaseModel):
    requests: Optional[ResourceSpec] = None
    limits: Optional[ResourceSpec] = None


class TimerJobConfig(BaseModel):
    kind: Literal["timer"] = "timer"
    duration_seconds: StrictInt = 0
    timer_name: str = ""
    control_plane_endpoint: str = ""
    image: Optional[str] = None
    log_level: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)


class TimerJobDetails(BaseModel):
    duration_seconds: int = 0
    timer_name: str = ""
    control_plane_endpoint: str = ""


class ScheduleJobRequest(BaseModel):
    name: str = ""
    job_id: Optional[str] = None
    namespace: Optional[str] = None
    resources: Optional[ResourceRequirements] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    created_by: Optional[str] = None
    # one field per job kind; exactly one must be set
    timer_job: Optional[TimerJobConfig] = None

    def job_configs(self) -> List[BaseModel]:
        return [c for c in (self.timer_job,) if c is not None]

    def job_kind(self) -> Optional[str]:
        configs = self.job_configs()
        if len(configs) != 1:
            return None
        return getattr(configs[0], "kind", None)


class ScheduleJobResponse(BaseModel):
    job_id: str
    status: JobStatus
    message: str
    k8s_job_name: str


class JobInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    job_id: str
    name: str = ""
    k8s_job_name: str
    namespace: str
    kind: str = ""
    status: JobStatus
    created_at: Optional[int] = None  # epoch seconds
    started_at: Optional[int] = None
    completed_at: Optional[int] = None
    created_by: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    timer_details: Optional[TimerJobDetails] = None


class GetJobStatusResponse(BaseModel):
    job_id: str
    job_info: JobInfo
    status: JobStatus
    message: str


class ListJobsResponse(BaseModel):
    jobs: list[JobInfo]
    total_count: int


class CancelJobResponse(BaseModel):
    success: bool
    message: str
