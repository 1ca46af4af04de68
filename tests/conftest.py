"""
Pytest configuration and fixtures for jobstats tests.

Provides:
- In-memory SQLite stats database
- A frozen, manually advanced clock
- A fake queue worker firing lifecycle events through an EventDispatcher
- Factory fixtures for handlers and queue jobs
"""

from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import pytest
from sqlalchemy import Engine, StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from jobstats.capability import CollectsStats
from jobstats.core.database import create_session_factory
from jobstats.events import (
    EventDispatcher,
    JobExceptionOccurred,
    JobFailed,
    JobProcessed,
    JobProcessing,
)
from jobstats.identity import serialize_handler
from jobstats.listener import JobStatsListener
from jobstats.models import Base
from jobstats.repository import SqlAlchemyStatsRepository

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite://"


class SendReport(CollectsStats):
    """Handler opted into statistics collection."""

    def __init__(self, report_id: int) -> None:
        self.report_id = report_id


class PurgeCache:
    """Handler without the capability marker."""

    def __init__(self, key: str) -> None:
        self.key = key


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@dataclass
class FakeQueueJob:
    """QueueJob adapter as a host engine would provide it."""

    handler: object
    driver: str = "redis"
    queue: str = "default"
    attempts: int = 1
    uuid: str | None = None
    payload: bytes | None = None
    handler_type: type = field(default=None)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.handler_type is None:
            self.handler_type = type(self.handler)
        if self.payload is None:
            self.payload = serialize_handler(self.handler)


class FakeWorker:
    """Runs a handler once, firing lifecycle events around it."""

    def __init__(self, events: EventDispatcher, connection: str = "redis", max_tries: int = 3) -> None:
        self.events = events
        self.connection = connection
        self.max_tries = max_tries

    def process(self, job: FakeQueueJob, run: Callable[[], object] = lambda: None) -> str:
        """Return the outcome as the queue engine sees it: processed, released or failed."""
        self.events.dispatch(JobProcessing(self.connection, job))
        try:
            run()
        except Exception as exc:
            if job.attempts >= self.max_tries:
                self.events.dispatch(JobFailed(self.connection, job, exc))
                outcome = "failed"
            else:
                outcome = "released"
            self.events.dispatch(JobExceptionOccurred(self.connection, job, exc))
            return outcome
        self.events.dispatch(JobProcessed(self.connection, job))
        return "processed"


@pytest.fixture
def db_engine() -> Generator[Engine, None, None]:
    """Create the test database engine with the stats tables."""
    engine = create_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(db_engine)


@pytest.fixture
def repository(session_factory: sessionmaker[Session]) -> SqlAlchemyStatsRepository:
    return SqlAlchemyStatsRepository(session_factory)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 1, 10, 8, 0, 0))


@pytest.fixture
def listener(repository: SqlAlchemyStatsRepository, clock: FrozenClock) -> JobStatsListener:
    return JobStatsListener(repository, clock=clock)


@pytest.fixture
def events(listener: JobStatsListener) -> EventDispatcher:
    """Event dispatcher with the stats listener registered."""
    dispatcher = EventDispatcher()
    listener.register(dispatcher)
    return dispatcher


@pytest.fixture
def worker(events: EventDispatcher) -> FakeWorker:
    return FakeWorker(events)


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest.fixture
def report_factory(listener: JobStatsListener):
    """Factory for opted-in handlers, recorded as queued through the dispatch hook."""

    def _create_report(report_id: int = 1, driver: str = "redis", queue: str = "default") -> SendReport:
        handler = SendReport(report_id)
        listener.record_dispatch(handler, connection=driver, queue=queue, driver=driver)
        return handler

    return _create_report


@pytest.fixture
def queue_job_factory():
    """Factory for queue jobs wrapping a handler."""

    def _create_queue_job(handler: object, attempts: int = 1, **kwargs) -> FakeQueueJob:
        return FakeQueueJob(handler=handler, attempts=attempts, **kwargs)

    return _create_queue_job


@pytest.fixture
def plain_handler() -> PurgeCache:
    return PurgeCache("homepage")


@pytest.fixture
def send_report_cls() -> type[SendReport]:
    return SendReport
