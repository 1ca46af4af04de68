from collections.abc import Generator
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from jobstats.config import get_settings
from jobstats.core.logging import get_logger
from jobstats.models import Base

logger = get_logger(__name__)


def create_stats_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the engine backing the stats tables.

    SQLite needs check_same_thread disabled because queue workers fire
    lifecycle events from their own threads.
    """
    connect_args: dict = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        return create_engine(database_url, echo=echo, connect_args=connect_args)

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=280,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Build a session factory whose objects stay readable after commit."""
    return sessionmaker(
        engine,
        class_=Session,
        expire_on_commit=False,
        autoflush=False,
    )


@lru_cache
def get_engine() -> Engine:
    """Get the cached engine for the configured database."""
    settings = get_settings()
    return create_stats_engine(settings.database_url, echo=settings.debug)


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    """Get the cached session factory bound to get_engine()."""
    return create_session_factory(get_engine())


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Provide a transactional session, rolled back if the block raises."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        logger.bind(error=str(e)).debug("database_transaction_rollback")
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine | None = None) -> None:
    """Create the jobs and attempts tables if they do not exist."""
    Base.metadata.create_all(engine or get_engine())
