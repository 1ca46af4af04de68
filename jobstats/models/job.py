"""Instrumented job model."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from jobstats.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from jobstats.models.attempt import Attempt


class JobStatus(str, enum.Enum):
    """Lifecycle status of an instrumented job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class Job(Base, TimestampMixin):
    """One logical unit of queued work, tracked across all of its attempts."""

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    connection: Mapped[str | None] = mapped_column(String(100))
    queue: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            values_callable=lambda e: [x.value for x in e],
            name="jobstatus",
        ),
        default=JobStatus.QUEUED,
    )
    queued_at: Mapped[datetime | None] = mapped_column(default=None)

    # Relationships
    attempts: Mapped[list[Attempt]] = relationship(
        back_populates="job",
        lazy="selectin",
        order_by="Attempt.attempt_number",
    )

    def __repr__(self) -> str:
        return f"<Job {self.uuid} status={self.status.value}>"
