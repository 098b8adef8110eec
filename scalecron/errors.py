"""Error kinds raised by the scheduling engine and its collaborators."""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for engine failures surfaced to callers."""

    code = "scheduling_error"


class ValidationError(SchedulingError):
    """The create request is missing fields or carries invalid values."""

    code = "validation_error"

    def __init__(self, fields: list[str]):
        self.fields = list(fields)
        super().__init__(f"invalid input: {', '.join(self.fields)}")


class InvalidCronExpression(SchedulingError):
    """The timer rejected the schedule expression."""

    code = "invalid_cron"

    def __init__(self, expression: str, reason: str = ""):
        self.expression = expression
        detail = f": {reason}" if reason else ""
        super().__init__(f"invalid cron expression '{expression}'{detail}")


class ScheduleNotFound(SchedulingError):
    code = "schedule_not_found"

    def __init__(self, job_handle: int):
        self.job_handle = job_handle
        super().__init__(f"schedule {job_handle} not found")


class PersistenceError(SchedulingError):
    """The durable store failed after the in-memory change was committed."""

    code = "persistence_error"


class EngineNotReady(SchedulingError):
    code = "engine_not_ready"


class DispatchFailure(SchedulingError):
    """A fired job's remote call failed. Logged by the dispatcher, never raised to callers."""

    code = "dispatch_failure"

    def __init__(self, service_name: str, service_kind: str, cause: Exception):
        self.service_name = service_name
        self.service_kind = service_kind
        self.cause = cause
        super().__init__(f"failed to scale {service_kind} {service_name}: {cause}")


class ControlPlaneError(Exception):
    """Non-success response or transport failure from the control-plane API."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
