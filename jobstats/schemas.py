"""Failure diagnostics captured from job exceptions."""

import traceback
from typing import Any

from pydantic import BaseModel, Field


class StackFrame(BaseModel):
    """A single frame of an exception traceback."""

    file: str
    line: int | None = None
    function: str
    code: str | None = None


class FailureInfo(BaseModel):
    """Exception message and structured call stack for a failed attempt."""

    exception_class: str
    message: str
    call_stack: list[StackFrame] = Field(default_factory=list)

    @classmethod
    def from_exception(cls, exc: BaseException, max_frames: int = 50) -> "FailureInfo":
        """
        Capture an exception raised by a job handler.

        Keeps the innermost max_frames frames, where the failure happened.
        """
        frames = traceback.extract_tb(exc.__traceback__) if exc.__traceback__ else []
        if max_frames > 0:
            frames = frames[-max_frames:]
        return cls(
            exception_class=type(exc).__qualname__,
            message=str(exc),
            call_stack=[
                StackFrame(file=f.filename, line=f.lineno, function=f.name, code=f.line)
                for f in frames
            ],
        )

    def call_stack_json(self) -> list[dict[str, Any]]:
        return [frame.model_dump() for frame in self.call_stack]
