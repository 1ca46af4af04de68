"""Durable storage for job and attempt statistics."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from jobstats.core.database import session_scope
from jobstats.core.logging import get_logger
from jobstats.errors import (
    DuplicateAttempt,
    DuplicateJobUuid,
    JobStatsError,
    RepositoryWriteFailure,
)
from jobstats.models import Attempt, AttemptStatus, Job, JobStatus

logger = get_logger(__name__)

T = TypeVar("T")

JOB_FIELDS = frozenset({"connection", "queue", "status", "queued_at"})
ATTEMPT_FIELDS = frozenset(
    {
        "status",
        "started_at",
        "finished_at",
        "waiting_duration",
        "handling_duration",
        "exception_message",
        "exception_call_stack",
    }
)


class StatsRepository(ABC):
    """
    Storage contract consumed by the attempt state machine.

    All operations are synchronous. Lookups return None when nothing matches;
    storage errors raise RepositoryWriteFailure.
    """

    @abstractmethod
    def create_job(
        self,
        uuid: str,
        connection: str | None,
        queue: str | None,
        queued_at: datetime,
    ) -> Job:
        """
        Record a newly queued job.

        Raises:
            DuplicateJobUuid: a job with this uuid already exists
        """

    @abstractmethod
    def find_job_by_uuid(self, uuid: str) -> Job | None:
        """Find the most recently created job with this uuid."""

    @abstractmethod
    def update_job(self, job: Job, **fields: Any) -> Job:
        """Update job columns and return the refreshed job."""

    @abstractmethod
    def create_attempt(self, job: Job, attempt_number: int, **fields: Any) -> Attempt:
        """
        Create an attempt under a job.

        Raises:
            DuplicateAttempt: the job already has an attempt with this number
        """

    @abstractmethod
    def find_attempt(self, job: Job, attempt_number: int) -> Attempt | None:
        """Find a job's attempt by its number."""

    @abstractmethod
    def find_latest_started_attempt(self, job: Job) -> Attempt | None:
        """Find the most recently created attempt still in STARTED status."""

    @abstractmethod
    def update_attempt(self, attempt: Attempt, **fields: Any) -> Attempt:
        """Update attempt columns and return the refreshed attempt."""

    @abstractmethod
    def list_attempts(self, job: Job) -> list[Attempt]:
        """List a job's attempts ordered by attempt number."""


def _check_fields(fields: dict[str, Any], allowed: frozenset[str], model: str) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Cannot update {model} fields: {', '.join(sorted(unknown))}")


class SqlAlchemyStatsRepository(StatsRepository):
    """StatsRepository backed by SQLAlchemy, one transaction per operation."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def _run(
        self,
        operation: str,
        fn: Callable[[Session], T],
        on_conflict: Callable[[], JobStatsError] | None = None,
    ) -> T:
        try:
            with session_scope(self._session_factory) as session:
                return fn(session)
        except IntegrityError as e:
            if on_conflict is not None:
                raise on_conflict() from e
            logger.bind(operation=operation, error=str(e)).error("stats_repository_error")
            raise RepositoryWriteFailure(f"{operation} failed: {e}") from e
        except SQLAlchemyError as e:
            logger.bind(operation=operation, error=str(e)).error("stats_repository_error")
            raise RepositoryWriteFailure(f"{operation} failed: {e}") from e

    def create_job(
        self,
        uuid: str,
        connection: str | None,
        queue: str | None,
        queued_at: datetime,
    ) -> Job:
        def _create(session: Session) -> Job:
            job = Job(
                uuid=uuid,
                connection=connection,
                queue=queue,
                status=JobStatus.QUEUED,
                queued_at=queued_at,
            )
            session.add(job)
            session.flush()
            return job

        return self._run("create_job", _create, on_conflict=lambda: DuplicateJobUuid(uuid))

    def find_job_by_uuid(self, uuid: str) -> Job | None:
        def _find(session: Session) -> Job | None:
            result = session.execute(
                select(Job).where(Job.uuid == uuid).order_by(Job.id.desc()).limit(1)
            )
            return result.scalar_one_or_none()

        return self._run("find_job_by_uuid", _find)

    def update_job(self, job: Job, **fields: Any) -> Job:
        _check_fields(fields, JOB_FIELDS, "job")

        def _update(session: Session) -> Job:
            row = session.get(Job, job.id)
            if row is None:
                raise RepositoryWriteFailure(f"Job {job.uuid} disappeared during update")
            for key, value in fields.items():
                setattr(row, key, value)
            session.flush()
            return row

        return self._run("update_job", _update)

    def create_attempt(self, job: Job, attempt_number: int, **fields: Any) -> Attempt:
        _check_fields(fields, ATTEMPT_FIELDS, "attempt")

        def _create(session: Session) -> Attempt:
            attempt = Attempt(job_id=job.id, attempt_number=attempt_number, **fields)
            session.add(attempt)
            session.flush()
            return attempt

        return self._run(
            "create_attempt",
            _create,
            on_conflict=lambda: DuplicateAttempt(job.uuid, attempt_number),
        )

    def find_attempt(self, job: Job, attempt_number: int) -> Attempt | None:
        def _find(session: Session) -> Attempt | None:
            result = session.execute(
                select(Attempt)
                .where(Attempt.job_id == job.id, Attempt.attempt_number == attempt_number)
                .order_by(Attempt.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

        return self._run("find_attempt", _find)

    def find_latest_started_attempt(self, job: Job) -> Attempt | None:
        def _find(session: Session) -> Attempt | None:
            result = session.execute(
                select(Attempt)
                .where(Attempt.job_id == job.id, Attempt.status == AttemptStatus.STARTED)
                .order_by(Attempt.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

        return self._run("find_latest_started_attempt", _find)

    def update_attempt(self, attempt: Attempt, **fields: Any) -> Attempt:
        _check_fields(fields, ATTEMPT_FIELDS, "attempt")

        def _update(session: Session) -> Attempt:
            row = session.get(Attempt, attempt.id)
            if row is None:
                raise RepositoryWriteFailure(f"Attempt {attempt.id} disappeared during update")
            for key, value in fields.items():
                setattr(row, key, value)
            session.flush()
            return row

        return self._run("update_attempt", _update)

    def list_attempts(self, job: Job) -> list[Attempt]:
        def _list(session: Session) -> list[Attempt]:
            result = session.execute(
                select(Attempt).where(Attempt.job_id == job.id).order_by(Attempt.attempt_number)
            )
            return list(result.scalars().all())

        return self._run("list_attempts", _list)
