"""
Event listener bridge.

Attaches to a host queue engine's EventSource and threads every lifecycle
event through: eligibility filter -> identity resolution -> state machine.
Whatever goes wrong in there is logged and stops at this module; the worker
running the job never sees it.
"""

from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

from jobstats.config import AppConfig, get_config
from jobstats.core.database import get_session_factory, init_db
from jobstats.core.datetime_utils import utc_now
from jobstats.core.logging import get_logger
from jobstats.errors import (
    AttemptLookupMiss,
    DuplicateAttempt,
    DuplicateJobUuid,
    IdentityResolutionFailure,
    JobRecordNotFound,
    NotOptedIn,
    RepositoryWriteFailure,
    UnsupportedDriver,
)
from jobstats.events import (
    EventSource,
    JobExceptionOccurred,
    JobFailed,
    JobProcessed,
    JobProcessing,
    QueueJob,
)
from jobstats.filters import DriverFilter
from jobstats.identity import JobIdentityResolver, assign_uuid
from jobstats.repository import SqlAlchemyStatsRepository, StatsRepository
from jobstats.schemas import FailureInfo
from jobstats.state_machine import AttemptStateMachine

logger = get_logger(__name__)

T = TypeVar("T")


class JobStatsListener:
    """Translates queue lifecycle events into attempt state transitions."""

    def __init__(
        self,
        repository: StatsRepository,
        driver_filter: DriverFilter | None = None,
        resolver: JobIdentityResolver | None = None,
        clock: Callable[[], datetime] = utc_now,
        max_stack_frames: int = 50,
    ) -> None:
        self.driver_filter = driver_filter or DriverFilter()
        self.resolver = resolver or JobIdentityResolver()
        self.state_machine = AttemptStateMachine(repository, clock=clock)
        self.max_stack_frames = max_stack_frames

    def register(self, source: EventSource) -> None:
        """Attach the four lifecycle callbacks to an event source."""
        source.before(self.handle_job_processing)
        source.after(self.handle_job_processed)
        source.failing(self.handle_job_failed)
        source.exception_occurred(self.handle_job_exception_occurred)
        logger.bind(source=type(source).__name__).info("job_stats_listener_registered")

    # -- enqueue hook -------------------------------------------------------

    def record_dispatch(
        self,
        handler: object,
        connection: str | None,
        queue: str | None,
        driver: str,
    ) -> str | None:
        """
        Record a handler being queued, called by the engine at dispatch time.

        Assigns the handler a uuid (before the engine serializes it) and
        creates the job record. Returns the uuid, or None when the handler
        is not instrumented or recording failed.
        """
        if not self.driver_filter.is_eligible(_DispatchedJob(driver, type(handler), queue)):
            return None

        def _record() -> str:
            uuid = assign_uuid(handler)
            self.state_machine.record_queued(uuid, connection, queue)
            return uuid

        return self._contain("dispatch", _record)

    # -- lifecycle callbacks ------------------------------------------------

    def handle_job_processing(self, event: JobProcessing) -> None:
        self._run_pipeline(
            "before_execute",
            event.job,
            lambda uuid: self.state_machine.start_attempt(
                uuid,
                connection=event.connection_name,
                queue=event.job.queue,
                attempt=event.job.attempts,
            ),
        )

    def handle_job_processed(self, event: JobProcessed) -> None:
        self._run_pipeline("after_execute", event.job, self.state_machine.complete_attempt)

    def handle_job_failed(self, event: JobFailed) -> None:
        self._run_pipeline(
            "final_failure",
            event.job,
            lambda uuid: self.state_machine.fail_job(uuid, self._failure(event.exception)),
        )

    def handle_job_exception_occurred(self, event: JobExceptionOccurred) -> None:
        self._run_pipeline(
            "exception_during_execute",
            event.job,
            lambda uuid: self.state_machine.fail_attempt(
                uuid,
                event.job.attempts,
                self._failure(event.exception),
            ),
        )

    # -- internals ----------------------------------------------------------

    def _failure(self, exc: BaseException) -> FailureInfo:
        return FailureInfo.from_exception(exc, max_frames=self.max_stack_frames)

    def _run_pipeline(self, stage: str, job: QueueJob, transition: Callable[[str], object]) -> None:
        """Filter, resolve identity and apply one transition, all errors contained."""

        def _step() -> None:
            if not self.driver_filter.is_eligible(job):
                return
            uuid = self.resolver.resolve(job)
            transition(uuid)

        self._contain(stage, _step, job)

    def _contain(self, stage: str, step: Callable[[], T], job: QueueJob | None = None) -> T | None:
        """Run a pipeline step, logging any error instead of raising it."""
        log = logger.bind(stage=stage)
        if job is not None:
            log = log.bind(driver=getattr(job, "driver", None), attempt=getattr(job, "attempts", None))
        try:
            return step()
        except (UnsupportedDriver, NotOptedIn):
            pass
        except IdentityResolutionFailure as e:
            log.bind(error=str(e)).warning("job_stats_identity_rejected")
        except JobRecordNotFound as e:
            log.bind(job_uuid=e.uuid).warning("job_stats_job_not_found")
        except AttemptLookupMiss as e:
            log.bind(job_uuid=e.uuid, error=str(e)).warning("job_stats_attempt_not_found")
        except (DuplicateAttempt, DuplicateJobUuid) as e:
            log.bind(job_uuid=e.uuid, error=str(e)).warning("job_stats_duplicate_ignored")
        except RepositoryWriteFailure as e:
            log.bind(error=str(e)).error("job_stats_write_failed")
        except Exception as e:
            log.bind(error=str(e), error_type=type(e).__name__).exception("job_stats_unexpected_error")
        return None


class _DispatchedJob:
    """Minimal QueueJob view of a handler that has only just been queued."""

    def __init__(self, driver: str, handler_type: type, queue: str | None) -> None:
        self.driver = driver
        self.handler_type = handler_type
        self.queue = queue or ""
        self.attempts = 0
        self.uuid = None
        self.payload = None


def build_listener(config: AppConfig | None = None) -> JobStatsListener:
    """Build a listener backed by the configured SQL database."""
    config = config or get_config()
    repository = SqlAlchemyStatsRepository(get_session_factory())
    return JobStatsListener(
        repository,
        driver_filter=DriverFilter(config.jobs_stats.supported_drivers),
        max_stack_frames=config.jobs_stats.max_stack_frames,
    )


def install(
    source: EventSource,
    config: AppConfig | None = None,
    create_tables: bool = False,
) -> JobStatsListener | None:
    """
    Instrument a queue engine's event source.

    Returns the registered listener, or None when instrumentation is
    disabled by configuration.
    """
    config = config or get_config()
    if not config.jobs_stats.enabled:
        logger.info("job_stats_disabled_by_config")
        return None

    if create_tables:
        init_db()

    listener = build_listener(config)
    listener.register(source)
    return listener
