"""Eligibility filter: supported queue driver and opted-in handler type."""

import enum
from collections.abc import Iterable

from jobstats.capability import collects_stats
from jobstats.errors import NotOptedIn, UnsupportedDriver
from jobstats.events import QueueJob


class QueueDriver(str, enum.Enum):
    """Queue-backing technologies instrumented by default."""

    BEANSTALKD = "beanstalkd"  # Disk-backed message queue
    DATABASE = "database"  # Relational-DB-backed queue
    REDIS = "redis"  # In-memory/cache-backed queue


class DriverFilter:
    """Decides whether a queue job's events are instrumented at all."""

    def __init__(self, supported_drivers: Iterable[str | QueueDriver] | None = None) -> None:
        if supported_drivers is None:
            supported_drivers = list(QueueDriver)
        self.supported_drivers: frozenset[str] = frozenset(
            d.value if isinstance(d, QueueDriver) else str(d).lower() for d in supported_drivers
        )

    def is_supported_driver(self, job: QueueJob) -> bool:
        driver = getattr(job, "driver", None)
        return isinstance(driver, str) and driver.lower() in self.supported_drivers

    def check(self, job: QueueJob) -> None:
        """
        Raise if the job is not eligible for instrumentation.

        Raises:
            UnsupportedDriver: driver is not in the allow-list
            NotOptedIn: handler type does not subclass CollectsStats
        """
        if not self.is_supported_driver(job):
            raise UnsupportedDriver(str(getattr(job, "driver", None)))
        handler_type = getattr(job, "handler_type", None)
        if not collects_stats(handler_type):
            raise NotOptedIn(handler_type)

    def is_eligible(self, job: QueueJob) -> bool:
        try:
            self.check(job)
        except (UnsupportedDriver, NotOptedIn):
            return False
        return True
