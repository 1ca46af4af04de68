"""Per-job, per-attempt execution statistics for queue workers."""

from jobstats.capability import CollectsStats
from jobstats.events import (
    EventDispatcher,
    EventSource,
    JobExceptionOccurred,
    JobFailed,
    JobProcessed,
    JobProcessing,
    QueueJob,
)
from jobstats.filters import DriverFilter, QueueDriver
from jobstats.identity import JobIdentityResolver, serialize_handler
from jobstats.listener import JobStatsListener, build_listener, install
from jobstats.repository import SqlAlchemyStatsRepository, StatsRepository
from jobstats.state_machine import AttemptStateMachine

__all__ = [
    "AttemptStateMachine",
    "CollectsStats",
    "DriverFilter",
    "EventDispatcher",
    "EventSource",
    "JobExceptionOccurred",
    "JobFailed",
    "JobIdentityResolver",
    "JobProcessed",
    "JobProcessing",
    "JobStatsListener",
    "QueueDriver",
    "QueueJob",
    "SqlAlchemyStatsRepository",
    "StatsRepository",
    "build_listener",
    "install",
    "serialize_handler",
]
