"""Per-attempt execution statistics."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Enum, Float, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from jobstats.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from jobstats.models.job import Job


class AttemptStatus(str, enum.Enum):
    """Attempt status. COMPLETED and FAILED are terminal."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not AttemptStatus.STARTED


class Attempt(Base, TimestampMixin):
    """One execution try of a job, numbered from 1."""

    __tablename__ = "attempts"
    __table_args__ = (
        UniqueConstraint("job_id", "attempt_number", name="uq_attempts_job_attempt_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    attempt_number: Mapped[int] = mapped_column(Integer)
    status: Mapped[AttemptStatus] = mapped_column(
        Enum(
            AttemptStatus,
            values_callable=lambda e: [x.value for x in e],
            name="attemptstatus",
        ),
        default=AttemptStatus.STARTED,
        index=True,
    )

    # Timing
    started_at: Mapped[datetime | None] = mapped_column(default=None)
    finished_at: Mapped[datetime | None] = mapped_column(default=None)
    waiting_duration: Mapped[float | None] = mapped_column(Float)
    handling_duration: Mapped[float | None] = mapped_column(Float)

    # Failure diagnostics
    exception_message: Mapped[str | None] = mapped_column(Text)
    exception_call_stack: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)

    # Relationships
    job: Mapped[Job] = relationship(back_populates="attempts")

    def __repr__(self) -> str:
        return f"<Attempt job={self.job_id} #{self.attempt_number} status={self.status.value}>"
