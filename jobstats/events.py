"""
Lifecycle event contract between a host queue engine and the instrumentation.

A host engine adapts its own job objects to the QueueJob protocol and fires
the four event types through something implementing EventSource. Engines with
no event bus of their own can use EventDispatcher.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar


class QueueJob(Protocol):
    """Driver adapter for a job as the queue engine sees it."""

    #: Queue-backing technology delivering the job (e.g. "redis")
    driver: str
    #: Class of the handler the job runs
    handler_type: type
    #: Queue name the job was reserved from
    queue: str
    #: Driver-reported attempt count, 1 for the first execution
    attempts: int
    #: Explicit job uuid, when the engine carries one on the job itself
    uuid: str | None
    #: Serialized handler, as produced by identity.serialize_handler
    payload: bytes | None


@dataclass(frozen=True)
class JobProcessing:
    """Fired before the handler executes."""

    connection_name: str
    job: QueueJob


@dataclass(frozen=True)
class JobProcessed:
    """Fired after the handler returned successfully."""

    connection_name: str
    job: QueueJob


@dataclass(frozen=True)
class JobFailed:
    """Fired when the job failed and will not be retried."""

    connection_name: str
    job: QueueJob
    exception: BaseException


@dataclass(frozen=True)
class JobExceptionOccurred:
    """Fired when the handler raised and the job may be retried."""

    connection_name: str
    job: QueueJob
    exception: BaseException


LifecycleEvent = JobProcessing | JobProcessed | JobFailed | JobExceptionOccurred

E = TypeVar("E")
Listener = Callable[[E], Any]


class EventSource(Protocol):
    """Registration contract a host queue engine exposes."""

    def before(self, callback: Listener[JobProcessing]) -> None: ...

    def after(self, callback: Listener[JobProcessed]) -> None: ...

    def failing(self, callback: Listener[JobFailed]) -> None: ...

    def exception_occurred(self, callback: Listener[JobExceptionOccurred]) -> None: ...


class EventDispatcher:
    """
    In-process EventSource.

    Callbacks run synchronously, in registration order, on the thread that
    calls dispatch(). Exceptions raised by callbacks propagate to the caller.
    """

    def __init__(self) -> None:
        self._listeners: dict[type, list[Callable[[Any], Any]]] = {
            JobProcessing: [],
            JobProcessed: [],
            JobFailed: [],
            JobExceptionOccurred: [],
        }

    def before(self, callback: Listener[JobProcessing]) -> None:
        self._listeners[JobProcessing].append(callback)

    def after(self, callback: Listener[JobProcessed]) -> None:
        self._listeners[JobProcessed].append(callback)

    def failing(self, callback: Listener[JobFailed]) -> None:
        self._listeners[JobFailed].append(callback)

    def exception_occurred(self, callback: Listener[JobExceptionOccurred]) -> None:
        self._listeners[JobExceptionOccurred].append(callback)

    def dispatch(self, event: LifecycleEvent) -> None:
        """Deliver an event to every callback registered for its type."""
        try:
            listeners = self._listeners[type(event)]
        except KeyError:
            raise TypeError(f"Unknown lifecycle event: {type(event).__name__}") from None
        for callback in list(listeners):
            callback(event)

    def listener_count(self, event_type: type) -> int:
        return len(self._listeners.get(event_type, []))
