"""Session state and the LangGraph state that flows between stage nodes."""

from __future__ import annotations

from dataclasses import dataclass

from typing_extensions import TypedDict

from snapsolve.schemas import ImageArtifact, ProblemInfo, StructuredSolution


@dataclass
class SessionState:
    """Data that survives from the main branch into the debug branch.

    Mutated only by the orchestrator and the cancellation sweep.
    """

    problem_info: ProblemInfo | None = None
    has_debugged: bool = False

    def reset(self) -> None:
        self.problem_info = None
        self.has_debugged = False


class PipelineState(TypedDict, total=False):
    """State passed through the stage graphs.

    screenshots   — image artifacts attached to the requests.
    problem_info  — set by extract_problem on success.
    solution      — set by generate_solution on success.
    debug_text    — set by debug_solution on success.
    error         — failure message of the stage that stopped the graph.
    """

    screenshots: list[ImageArtifact]
    problem_info: ProblemInfo | None
    solution: StructuredSolution | None
    debug_text: str | None
    error: str | None
