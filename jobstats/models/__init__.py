from jobstats.models.attempt import Attempt, AttemptStatus
from jobstats.models.base import Base
from jobstats.models.job import Job, JobStatus

__all__ = [
    "Base",
    "Job",
    "JobStatus",
    "Attempt",
    "AttemptStatus",
]
