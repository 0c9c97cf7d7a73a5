import logging
from typing import Any, Dict, Optional

from kubernetes import client

from ..errors import InternalError, InvalidConfigError
from ..schemas import ScheduleJobRequest, TimerJobConfig, TimerJobDetails
from .base import (
    KIND_TIMER,
    JobDefaults,
    JobHandler,
    JobMetadata,
    build_base_job,
    resolve_image,
    resolve_resources,
)

logger = logging.getLogger(__name__)

DEFAULT_IMAGE = "timer-service:latest"
MAX_DURATION_SECONDS = 86400
LOG_LEVELS = ("trace", "debug", "info", "warn", "error")
GRPC_PORT = 50051

ENV_DURATION = "TIMER_DURATION_SECONDS"
ENV_NAME = "TIMER_NAME"
ENV_ENDPOINT = "CONTROL_PLANE_ENDPOINT"
ENV_TIMER_ID = "TIMER_ID"
ENV_GRPC_PORT = "GRPC_PORT"
ENV_LOG_LEVEL = "RUST_LOG"
RESERVED_ENV = (ENV_DURATION, ENV_NAME, ENV_ENDPOINT, ENV_TIMER_ID, ENV_GRPC_PORT, ENV_LOG_LEVEL)

HEALTH_COMMAND = ["timer-service", "health"]


class TimerJobHandler(JobHandler):
    kind = KIND_TIMER

    def __init__(self, image: Optional[str] = None, log_level: str = "info"):
        self._image = image or DEFAULT_IMAGE
        self._log_level = log_level

    def _config(self, request: ScheduleJobRequest) -> TimerJobConfig:
        if request.timer_job is None:
            raise InvalidConfigError("timer job configuration is required", job_id=request.job_id)
        return request.timer_job

    def validate(self, request: ScheduleJobRequest) -> None:
        config = self._config(request)
        job_id = request.job_id

        if config.duration_seconds <= 0:
            raise InvalidConfigError(
                f"timer duration must be positive, got: {config.duration_seconds}", job_id=job_id
            )
        if config.duration_seconds > MAX_DURATION_SECONDS:
            raise InvalidConfigError(
                f"timer duration cannot exceed 24 hours, got: {config.duration_seconds} seconds",
                job_id=job_id,
            )
        if not config.timer_name:
            raise InvalidConfigError("timer name is required", job_id=job_id)
        if not config.control_plane_endpoint:
            raise InvalidConfigError("control plane endpoint is required", job_id=job_id)
        if config.log_level and config.log_level not in LOG_LEVELS:
            raise InvalidConfigError(f"invalid log level: {config.log_level}", job_id=job_id)

        clashing = sorted(set(config.env) & set(RESERVED_ENV))
        if clashing:
            raise InvalidConfigError(
                f"environment variables are reserved: {', '.join(clashing)}", job_id=job_id
            )

    def build_manifest(self, request: ScheduleJobRequest, defaults: JobDefaults) -> client.V1Job:
        config = self._config(request)
        metadata = JobMetadata.from_request(request, defaults)
        image = resolve_image(config.image, self.default_image(), defaults)

        env = [
            client.V1EnvVar(name=ENV_DURATION, value=str(config.duration_seconds)),
            client.V1EnvVar(name=ENV_NAME, value=config.timer_name),
            client.V1EnvVar(name=ENV_ENDPOINT, value=config.control_plane_endpoint),
            client.V1EnvVar(name=ENV_TIMER_ID, value=metadata.job_id),
            client.V1EnvVar(name=ENV_GRPC_PORT, value=str(GRPC_PORT)),
            client.V1EnvVar(name=ENV_LOG_LEVEL, value=config.log_level or self._log_level),
        ]
        env.extend(client.V1EnvVar(name=k, value=v) for k, v in config.env.items())

        container = client.V1Container(
            name="timer",
            image=image,
            env=env,
            resources=resolve_resources(request.resources, defaults),
            ports=[client.V1ContainerPort(name="grpc", container_port=GRPC_PORT, protocol="TCP")],
            liveness_probe=client.V1Probe(
                _exec=client.V1ExecAction(command=list(HEALTH_COMMAND)),
                initial_delay_seconds=10,
                period_seconds=30,
                timeout_seconds=5,
                failure_threshold=3,
            ),
            readiness_probe=client.V1Probe(
                _exec=client.V1ExecAction(command=list(HEALTH_COMMAND)),
                initial_delay_seconds=5,
                period_seconds=10,
                timeout_seconds=5,
                failure_threshold=3,
            ),
            image_pull_policy="IfNotPresent",
        )

        job = build_base_job(self.kind, metadata, defaults, [container])
        logger.debug(
            "Generated timer job manifest",
            extra={
                "job_id": metadata.job_id,
                "job_name": metadata.name,
                "timer_name": config.timer_name,
                "duration_seconds": config.duration_seconds,
                "image": image,
            },
        )
        return job

    def extract_details(self, job: client.V1Job) -> TimerJobDetails:
        pod_spec = job.spec.template.spec if job.spec and job.spec.template else None
        if pod_spec is None or not pod_spec.containers:
            raise InternalError("job has no containers", operation="extract_details")

        details = TimerJobDetails()
        for var in pod_spec.containers[0].env or []:
            if var.name == ENV_DURATION:
                try:
                    details.duration_seconds = int(var.value)
                except (TypeError, ValueError):
                    logger.warning(
                        "Unparseable timer duration", extra={"k8s_job_name": job.metadata.name, "value": var.value}
                    )
            elif var.name == ENV_NAME:
                details.timer_name = var.value or ""
            elif var.name == ENV_ENDPOINT:
                details.control_plane_endpoint = var.value or ""
        return details

    def job_info_fields(self, job: client.V1Job) -> Dict[str, Any]:
        return {"timer_details": self.extract_details(job)}

    def default_image(self) -> str:
        return self._image
