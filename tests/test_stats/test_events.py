"""Tests for the in-process event dispatcher."""

from types import SimpleNamespace

import pytest

from jobstats.events import EventDispatcher, JobFailed, JobProcessed, JobProcessing


@pytest.fixture
def job() -> SimpleNamespace:
    return SimpleNamespace(driver="redis", queue="default", attempts=1)


class TestEventDispatcher:
    """Tests for EventDispatcher."""

    def test_routes_by_event_type(self, job):
        dispatcher = EventDispatcher()
        seen = []
        dispatcher.before(lambda e: seen.append(("before", e)))
        dispatcher.after(lambda e: seen.append(("after", e)))

        event = JobProcessed("redis", job)
        dispatcher.dispatch(event)

        assert seen == [("after", event)]

    def test_runs_callbacks_in_registration_order(self, job):
        dispatcher = EventDispatcher()
        seen = []
        dispatcher.failing(lambda e: seen.append(1))
        dispatcher.failing(lambda e: seen.append(2))

        dispatcher.dispatch(JobFailed("redis", job, RuntimeError("x")))

        assert seen == [1, 2]

    def test_unknown_event_type(self):
        with pytest.raises(TypeError):
            EventDispatcher().dispatch(object())  # type: ignore[arg-type]

    def test_callback_errors_propagate(self, job):
        """The dispatcher itself does not contain errors; listeners must."""
        dispatcher = EventDispatcher()
        dispatcher.before(lambda e: 1 / 0)

        with pytest.raises(ZeroDivisionError):
            dispatcher.dispatch(JobProcessing("redis", job))
