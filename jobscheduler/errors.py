from typing import Optional


class JobSchedulerError(Exception):
    """Base error. Carries the job id and operation it happened in so the
    API layer can log it without re-deriving the context."""

    def __init__(self, message: str, *, job_id: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id
        self.operation = operation

    def log_fields(self) -> dict:
        fields = {"error": self.message}
        if self.job_id:
            fields["job_id"] = self.job_id
        if self.operation:
            fields["operation"] = self.operation
        return fields


class InvalidConfigError(JobSchedulerError):
    pass


class InvalidArgumentError(JobSchedulerError):
    pass


class NotFoundError(JobSchedulerError):
    pass


class NotRegisteredError(NotFoundError):
    pass


class InternalError(JobSchedulerError):
    pass


class ClusterError(InternalError):
    """Cluster I/O failed or timed out. ``status`` is the orchestrator's HTTP
    status when it answered at all."""

    def __init__(self, message: str, *, status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status


class TerminalStateError(InternalError):
    pass


class RegistrationError(JobSchedulerError):
    pass
