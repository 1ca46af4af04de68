"""Capability marker for job handlers that opt into statistics collection."""

from abc import ABC


class CollectsStats(ABC):  # noqa: B024
    """
    Marker base class: subclass it to have a job handler instrumented.

    Declares no methods. Handlers recorded through the dispatch hook get a
    string ``uuid`` attribute, which is how their events are correlated.

    Example:
        ```python
        class SendReport(CollectsStats):
            def __init__(self, report_id: int) -> None:
                self.report_id = report_id
        ```
    """


def collects_stats(handler_type: object) -> bool:
    """Check whether a handler type declares the CollectsStats capability."""
    return isinstance(handler_type, type) and issubclass(handler_type, CollectsStats)
