"""Stage helpers, one completion exchange each, returning a ProcessingOutcome.

Stages catch every failure at their boundary. A cancelled request becomes a
"canceled" outcome rather than an exception. The ``make_*_node`` factories
wrap the stages as LangGraph nodes; the cancellation token reaches them
through the run config.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langchain_core.runnables import RunnableConfig

from snapsolve.errors import MissingProblemInfo, RequestCanceled
from snapsolve.gateway import CompletionRequest, extract_content
from snapsolve.parser import parse_solution
from snapsolve.pipeline.prompts import debug_messages, extraction_messages, generation_messages
from snapsolve.pipeline.state import PipelineState
from snapsolve.schemas import ImageArtifact, ProblemInfo, ProcessingOutcome

if TYPE_CHECKING:
    from collections.abc import Callable

    from snapsolve.cancellation import OperationToken
    from snapsolve.config import SolverConfig
    from snapsolve.gateway import CompletionGateway
    from snapsolve.language import LanguageResolver
    from snapsolve.pipeline.state import SessionState

logger = logging.getLogger(__name__)

CANCELED_MESSAGE = "Processing was canceled by the user."
DEBUG_CANCELED_MESSAGE = "Extra processing was canceled by the user."
TIMEOUT_MESSAGE = "Request timed out. The server took too long to respond. Please try again."


def _failure(context: str, error: Exception) -> ProcessingOutcome:
    logger.error(f"{context} error details: {error!r}", exc_info=True)
    return ProcessingOutcome.fail(str(error) or error.__class__.__name__)


class ProcessingStages:
    """The three request stages, sharing gateway, resolver and session."""

    def __init__(
        self,
        config: SolverConfig,
        gateway: CompletionGateway,
        resolver: LanguageResolver,
        session: SessionState,
        on_generation_timeout: Callable[[], None] | None = None,
    ) -> None:
        self._config = config
        self._gateway = gateway
        self._resolver = resolver
        self._session = session
        self._on_generation_timeout = on_generation_timeout

    def _request(self, messages) -> CompletionRequest:
        return CompletionRequest(
            model=self._config.model,
            messages=messages,
            max_tokens=self._config.max_tokens,
        )

    async def extract_problem(
        self, screenshots: list[ImageArtifact], token: OperationToken | None
    ) -> ProcessingOutcome:
        """Extract the problem statement and code from the screenshots."""
        try:
            language = await self._resolver.resolve()
            messages = extraction_messages(screenshots, language, self._config.response_language)
            response = await self._gateway.invoke("Extract", self._request(messages), token)
            problem = ProblemInfo(problem_statement=extract_content(response.content))
            self._session.problem_info = problem
            return ProcessingOutcome.ok(problem)
        except RequestCanceled:
            return ProcessingOutcome.fail(CANCELED_MESSAGE)
        except Exception as e:
            return _failure("Extract", e)

    async def generate_solution(self, token: OperationToken | None) -> ProcessingOutcome:
        """Generate a structured solution for the stored problem.

        A cancellation here is treated as a server-side timeout: the
        ``on_generation_timeout`` hook runs before the failure is returned.
        """
        try:
            problem = self._session.problem_info
            language = await self._resolver.resolve()
            if problem is None:
                raise MissingProblemInfo()

            messages = generation_messages(problem, language, self._config.response_language)
            response = await self._gateway.invoke("Generate", self._request(messages), token)
            solution = parse_solution(
                extract_content(response.content), self._config.response_language
            )
            problem.solution_text = solution.code
            return ProcessingOutcome.ok(solution)
        except RequestCanceled:
            if self._on_generation_timeout is not None:
                self._on_generation_timeout()
            return ProcessingOutcome.fail(TIMEOUT_MESSAGE)
        except Exception as e:
            return _failure("Generate", e)

    async def debug_solution(
        self, screenshots: list[ImageArtifact], token: OperationToken | None
    ) -> ProcessingOutcome:
        """Ask for a free-text debugging answer; the result is not parsed."""
        try:
            problem = self._session.problem_info
            language = await self._resolver.resolve()
            if problem is None:
                raise MissingProblemInfo()

            messages = debug_messages(
                problem, screenshots, language, self._config.response_language
            )
            response = await self._gateway.invoke("Debug", self._request(messages), token)
            return ProcessingOutcome.ok(extract_content(response.content))
        except RequestCanceled:
            return ProcessingOutcome.fail(DEBUG_CANCELED_MESSAGE)
        except Exception as e:
            return _failure("Debug", e)


# ---------------------------------------------------------------------------
# Node factories
# ---------------------------------------------------------------------------


def _token(config: RunnableConfig | None) -> OperationToken | None:
    return ((config or {}).get("configurable") or {}).get("token")


def make_extract_node(stages: ProcessingStages) -> Callable:
    async def extract_problem(state: PipelineState, config: RunnableConfig) -> dict:
        outcome = await stages.extract_problem(state.get("screenshots", []), _token(config))
        if outcome.success:
            return {"problem_info": outcome.data, "error": None}
        return {"problem_info": None, "error": outcome.error}

    return extract_problem


def make_generate_node(stages: ProcessingStages) -> Callable:
    async def generate_solution(state: PipelineState, config: RunnableConfig) -> dict:
        outcome = await stages.generate_solution(_token(config))
        if outcome.success:
            return {"solution": outcome.data, "error": None}
        return {"solution": None, "error": outcome.error or "Failed to generate solutions"}

    return generate_solution


def make_debug_node(stages: ProcessingStages) -> Callable:
    async def debug_solution(state: PipelineState, config: RunnableConfig) -> dict:
        outcome = await stages.debug_solution(state.get("screenshots", []), _token(config))
        if outcome.success:
            return {"debug_text": outcome.data, "error": None}
        return {"debug_text": None, "error": outcome.error}

    return debug_solution


def route_after_extraction(state: PipelineState) -> str:
    """Continue to generation only when extraction stored a problem."""
    if state.get("error") or not state.get("problem_info"):
        return "__failed__"
    return "generate_solution"
