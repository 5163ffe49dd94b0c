"""Data models shared by the pipeline stages, the orchestrator and the host."""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ImageArtifact(BaseModel):
    """One captured screenshot, ready to be attached to a request.

    ``data`` is the base64 encoding of the file contents.
    """

    model_config = ConfigDict(frozen=True)

    reference: str
    preview: bytes = b""
    data: str


class ProblemInfo(BaseModel):
    """The extracted problem, kept across the main → debug transition."""

    problem_statement: str
    solution_text: str | None = None


class StructuredSolution(BaseModel):
    """Normalized solution shape produced from free-text model output."""

    short_answer: str | None = None
    code: str = ""
    thoughts: list[str] = Field(min_length=1)
    time_complexity: str = "N/A"
    space_complexity: str = "N/A"


class ProcessingOutcome(BaseModel):
    """Uniform result of every stage helper.

    Either ``success`` with ``data`` or a failure with an ``error`` message.
    """

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any) -> ProcessingOutcome:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> ProcessingOutcome:
        return cls(success=False, error=error)


class LifecycleEvent(str, Enum):
    """Signals emitted to the consumer layer."""

    INITIAL_START = "initial-start"
    NO_SCREENSHOTS = "processing-no-screenshots"
    PROBLEM_EXTRACTED = "problem-extracted"
    SOLUTION_SUCCESS = "solution-success"
    INITIAL_SOLUTION_ERROR = "solution-error"
    DEBUG_START = "debug-start"
    DEBUG_SUCCESS = "debug-success"
    DEBUG_ERROR = "debug-error"
    OUT_OF_CREDITS = "out-of-credits"
    RESET = "reset"


class ProcessingEvent(BaseModel):
    """A lifecycle event with its optional payload, as streamed over SSE.

    Payload is a StructuredSolution, a ProblemInfo, a debug text or an
    error message depending on the event.
    """

    event: LifecycleEvent
    payload: Any = None


# ---------------------------------------------------------------------------
# HTTP request bodies
# ---------------------------------------------------------------------------


class ScreenshotRequest(BaseModel):
    """Enqueue an image file already written to disk."""

    path: str


class LanguageRequest(BaseModel):
    language: str = Field(min_length=1)


class ViewRequest(BaseModel):
    view: Literal["queue", "solutions"]
