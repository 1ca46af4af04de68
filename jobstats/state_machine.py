"""
Attempt state machine.

Applies job lifecycle transitions to the stats repository:

    job:      queued -> processing -> success | failed
    attempt:  started -> completed | failed

Operations take plain values (uuid, attempt count, failure info) and never see
a host engine's event objects. Problems are raised as JobStatsError
subclasses; containing them is the listener's job.
"""

from collections.abc import Callable
from datetime import datetime

from jobstats.core.datetime_utils import elapsed_seconds, utc_now
from jobstats.core.logging import get_logger
from jobstats.errors import AttemptLookupMiss, DuplicateAttempt, JobRecordNotFound
from jobstats.models import Attempt, AttemptStatus, Job, JobStatus
from jobstats.repository import StatsRepository
from jobstats.schemas import FailureInfo

logger = get_logger(__name__)


class AttemptStateMachine:
    """Computes and persists attempt and job state transitions."""

    def __init__(
        self,
        repository: StatsRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.clock = clock

    def _load_job(self, uuid: str) -> Job:
        job = self.repository.find_job_by_uuid(uuid)
        if job is None:
            raise JobRecordNotFound(uuid)
        return job

    def record_queued(self, uuid: str, connection: str | None, queue: str | None) -> Job:
        """Create the job record at enqueue time."""
        job = self.repository.create_job(uuid, connection, queue, queued_at=self.clock())
        logger.bind(job_uuid=uuid, queue=queue).debug("job_stats_queued")
        return job

    def start_attempt(self, uuid: str, connection: str, queue: str, attempt: int) -> Attempt:
        """
        Open a new attempt (before-execute).

        Waiting time runs from enqueue for the first attempt and from the end
        of the previous attempt otherwise.

        Raises:
            ValueError: attempt is not a positive integer
            JobRecordNotFound: the job was never recorded
            DuplicateAttempt: this attempt number is already recorded
        """
        if attempt < 1:
            raise ValueError(f"Attempt count must be >= 1, got {attempt}")

        job = self._load_job(uuid)
        if self.repository.find_attempt(job, attempt) is not None:
            raise DuplicateAttempt(uuid, attempt)

        job = self.repository.update_job(
            job,
            connection=connection,
            queue=queue,
            status=JobStatus.PROCESSING,
        )

        if attempt == 1:
            previous_end = job.queued_at
        else:
            previous = self.repository.find_attempt(job, attempt - 1)
            previous_end = previous.finished_at if previous is not None else None

        now = self.clock()
        waiting_duration = None
        if previous_end is None:
            logger.bind(job_uuid=uuid, attempt=attempt).warning("job_stats_previous_end_unknown")
        else:
            waiting_duration = elapsed_seconds(previous_end, now)

        created = self.repository.create_attempt(
            job,
            attempt,
            status=AttemptStatus.STARTED,
            started_at=now,
            waiting_duration=waiting_duration,
        )
        logger.bind(job_uuid=uuid, attempt=attempt).debug("job_stats_attempt_started")
        return created

    def complete_attempt(self, uuid: str) -> Attempt:
        """Mark the job successful and close its running attempt (after-execute)."""
        now = self.clock()
        job = self._load_job(uuid)
        job = self.repository.update_job(job, status=JobStatus.SUCCESS)

        attempt = self.repository.find_latest_started_attempt(job)
        if attempt is None:
            raise AttemptLookupMiss(uuid)

        completed = self.repository.update_attempt(
            attempt,
            status=AttemptStatus.COMPLETED,
            finished_at=now,
            handling_duration=self._handling_duration(attempt, now),
        )
        logger.bind(job_uuid=uuid, attempt=attempt.attempt_number).debug("job_stats_attempt_completed")
        return completed

    def fail_job(self, uuid: str, failure: FailureInfo) -> Attempt:
        """Mark the job failed for good and close its running attempt (final-failure)."""
        now = self.clock()
        job = self._load_job(uuid)
        job = self.repository.update_job(job, status=JobStatus.FAILED)

        attempt = self.repository.find_latest_started_attempt(job)
        if attempt is None:
            raise AttemptLookupMiss(uuid)

        return self._finish_failed(uuid, attempt, failure, now)

    def fail_attempt(self, uuid: str, attempt_number: int, failure: FailureInfo) -> Attempt:
        """
        Close one attempt as failed, the job will be retried (exception-during-execute).

        The attempt is matched by number: this event is not ordered against
        completion of other attempts, so "latest started" would be wrong.
        """
        now = self.clock()
        job = self._load_job(uuid)

        attempt = self.repository.find_attempt(job, attempt_number)
        if attempt is None:
            raise AttemptLookupMiss(uuid, attempt_number)

        if attempt.status.is_terminal:
            logger.bind(
                job_uuid=uuid,
                attempt=attempt_number,
                status=attempt.status.value,
            ).info("job_stats_attempt_already_finished")
            return attempt

        return self._finish_failed(uuid, attempt, failure, now)

    def _finish_failed(self, uuid: str, attempt: Attempt, failure: FailureInfo, now: datetime) -> Attempt:
        failed = self.repository.update_attempt(
            attempt,
            status=AttemptStatus.FAILED,
            finished_at=now,
            handling_duration=self._handling_duration(attempt, now),
            exception_message=failure.message,
            exception_call_stack=failure.call_stack_json(),
        )
        logger.bind(
            job_uuid=uuid,
            attempt=attempt.attempt_number,
            exception=failure.exception_class,
        ).debug("job_stats_attempt_failed")
        return failed

    @staticmethod
    def _handling_duration(attempt: Attempt, now: datetime) -> float | None:
        if attempt.started_at is None:
            return None
        return elapsed_seconds(attempt.started_at, now)
