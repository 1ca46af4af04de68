"""Errors raised inside the instrumentation pipeline.

None of these reach the queue worker: JobStatsListener traps them all.
"""


class JobStatsError(Exception):
    """Base class for instrumentation errors."""


class UnsupportedDriver(JobStatsError):
    """The event came from a queue driver outside the allow-list."""

    def __init__(self, driver: str) -> None:
        super().__init__(f"Queue driver {driver!r} is not supported")
        self.driver = driver


class NotOptedIn(JobStatsError):
    """The job handler type does not declare the CollectsStats capability."""

    def __init__(self, handler_type: object) -> None:
        name = getattr(handler_type, "__qualname__", repr(handler_type))
        super().__init__(f"Handler {name} does not collect statistics")
        self.handler_type = handler_type


class IdentityResolutionFailure(JobStatsError):
    """The job uuid could not be recovered from the event."""


class JobRecordNotFound(JobStatsError):
    """No job record exists for the uuid, e.g. it was queued before instrumentation."""

    def __init__(self, uuid: str) -> None:
        super().__init__(f"No job record for uuid {uuid}")
        self.uuid = uuid


class AttemptLookupMiss(JobStatsError):
    """The attempt to finalize could not be found."""

    def __init__(self, uuid: str, attempt_number: int | None = None) -> None:
        if attempt_number is None:
            message = f"No started attempt for job {uuid}"
        else:
            message = f"No attempt #{attempt_number} for job {uuid}"
        super().__init__(message)
        self.uuid = uuid
        self.attempt_number = attempt_number


class DuplicateAttempt(JobStatsError):
    """An attempt with this number already exists (redelivered event)."""

    def __init__(self, uuid: str, attempt_number: int) -> None:
        super().__init__(f"Attempt #{attempt_number} already recorded for job {uuid}")
        self.uuid = uuid
        self.attempt_number = attempt_number


class DuplicateJobUuid(JobStatsError):
    """A job record with this uuid already exists."""

    def __init__(self, uuid: str) -> None:
        super().__init__(f"Job uuid {uuid} is already recorded")
        self.uuid = uuid


class RepositoryWriteFailure(JobStatsError):
    """The storage engine failed to read or write stats."""
