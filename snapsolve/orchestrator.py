"""Processing orchestrator — picks a branch from the current view and reports it.

queue view      → main branch: extraction chained into solution generation.
solutions view  → debug branch: free-text debugging of the stored problem.

Each branch streams its stage graph, translates the outcome into lifecycle
events for the consumer, and always releases its cancellation token.
Nothing raised inside a branch escapes ``process_screenshots``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from snapsolve.cancellation import CancellationController
from snapsolve.errors import RequestCanceled
from snapsolve.gateway import CompletionGateway
from snapsolve.language import LanguageResolver
from snapsolve.pipeline import (
    CANCELED_MESSAGE,
    DEBUG_CANCELED_MESSAGE,
    ProcessingStages,
    SessionState,
    build_debug_graph,
    build_main_graph,
)
from snapsolve.schemas import ImageArtifact, LifecycleEvent, ProcessingOutcome
from snapsolve.screenshots import load_artifacts

if TYPE_CHECKING:
    from snapsolve.cancellation import OperationToken
    from snapsolve.config import SolverConfig
    from snapsolve.consumer import ProcessingConsumer
    from snapsolve.screenshots import ImageSource

logger = logging.getLogger(__name__)

SERVER_ERROR_MESSAGE = "Server error. Please try again."
API_KEY_MISSING_MESSAGE = (
    "OpenAI API key not found in environment variables. "
    "Please set the OPENAI_API_KEY environment variable."
)


class ProcessingOrchestrator:
    """Runs one branch per ``process_screenshots`` call."""

    def __init__(
        self,
        config: SolverConfig,
        screenshots: ImageSource,
        consumer: ProcessingConsumer,
        gateway: CompletionGateway | None = None,
    ) -> None:
        self.config = config
        self.screenshots = screenshots
        self.consumer = consumer
        self.gateway = gateway or CompletionGateway(config)

        self.session = SessionState()
        self.cancellation = CancellationController(self.session, on_sweep=self._after_sweep)
        self.resolver = LanguageResolver(
            lambda: self.consumer,
            fallback=config.fallback_language,
            poll_interval=config.readiness_poll_interval,
            max_attempts=config.readiness_max_attempts,
        )
        self.stages = ProcessingStages(
            config,
            self.gateway,
            self.resolver,
            self.session,
            on_generation_timeout=self._on_generation_timeout,
        )
        self._main_graph = build_main_graph(self.stages)
        self._debug_graph = build_debug_graph(self.stages)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process_screenshots(self) -> None:
        view = self.consumer.get_current_view()
        logger.info(f"Processing screenshots in view: {view}")

        if view == "queue":
            await self._process_main_queue()
        else:
            await self._process_extra_queue()

    def cancel_ongoing_requests(self) -> bool:
        """Full sweep: abort both branches and clear the session."""
        return self.cancellation.cancel_all()

    def cancel_processing(self) -> bool:
        """Abort both branches, keeping the session intact."""
        main = self.cancellation.cancel("main")
        extra = self.cancellation.cancel("extra")
        return main or extra

    def reset(self) -> None:
        """Cancel everything, empty both queues and return to the queue view."""
        self.cancel_ongoing_requests()
        self.screenshots.clear_queues()
        self.consumer.set_view("queue")
        self.consumer.emit(LifecycleEvent.RESET)

    # ------------------------------------------------------------------
    # Main branch
    # ------------------------------------------------------------------

    async def _process_main_queue(self) -> None:
        self.consumer.emit(LifecycleEvent.INITIAL_START)
        queue = self.screenshots.list_main_queue()
        logger.info(f"Processing main queue screenshots: {queue}")
        if not queue:
            self.consumer.emit(LifecycleEvent.NO_SCREENSHOTS)
            return

        token = self.cancellation.begin("main")
        try:
            screenshots = await load_artifacts(self.screenshots, queue)
            outcome = await self._run_main_graph(screenshots, token)

            if not outcome.success:
                self._report_main_failure(outcome.error)
                return

            # Extra screenshots belong to the previous solution
            self.screenshots.clear_extra_queue()
            logger.info("Setting view to solutions after successful processing")
            self.consumer.emit(LifecycleEvent.SOLUTION_SUCCESS, outcome.data)
            self.consumer.set_view("solutions")
        except Exception as e:
            logger.error(f"Processing error: {e}", exc_info=True)
            if isinstance(e, RequestCanceled):
                message = CANCELED_MESSAGE
            else:
                message = str(e) or SERVER_ERROR_MESSAGE
            self.consumer.emit(LifecycleEvent.INITIAL_SOLUTION_ERROR, message)
            logger.info("Resetting view to queue due to error")
            self.consumer.set_view("queue")
        finally:
            self.cancellation.release("main", token)

    async def _run_main_graph(
        self, screenshots: list[ImageArtifact], token: OperationToken
    ) -> ProcessingOutcome:
        final: dict = {}
        async for event in self._main_graph.astream(
            {"screenshots": screenshots},
            config={"configurable": {"token": token}},
        ):
            for node_name, update in event.items():
                if not update:
                    continue
                final.update(update)
                if node_name == "extract_problem" and update.get("problem_info"):
                    self.consumer.emit(
                        LifecycleEvent.PROBLEM_EXTRACTED,
                        update["problem_info"].model_copy(),
                    )

        if final.get("error"):
            return ProcessingOutcome.fail(final["error"])
        if final.get("solution") is None:
            return ProcessingOutcome.fail("Failed to generate solutions")
        return ProcessingOutcome.ok(final["solution"])

    def _report_main_failure(self, error: str | None) -> None:
        error = error or SERVER_ERROR_MESSAGE
        logger.info(f"Processing failed: {error}")

        if "API Key out of credits" in error:
            self.consumer.emit(LifecycleEvent.OUT_OF_CREDITS)
        elif "api key not found" in error.lower():
            self.consumer.emit(LifecycleEvent.INITIAL_SOLUTION_ERROR, API_KEY_MISSING_MESSAGE)
        else:
            self.consumer.emit(LifecycleEvent.INITIAL_SOLUTION_ERROR, error)

        logger.info("Resetting view to queue due to error")
        self.consumer.set_view("queue")

    def _on_generation_timeout(self) -> None:
        # Generation cancellations come from server timeouts, not the user
        self.cancel_ongoing_requests()
        self.screenshots.clear_queues()
        self.consumer.set_view("queue")
        self.consumer.emit(LifecycleEvent.RESET)

    # ------------------------------------------------------------------
    # Debug branch
    # ------------------------------------------------------------------

    async def _process_extra_queue(self) -> None:
        extra_queue = self.screenshots.list_extra_queue()
        combined = self.screenshots.list_main_queue() + extra_queue
        logger.info(f"Processing extra queue screenshots: {extra_queue}")
        if not combined:
            self.consumer.emit(LifecycleEvent.NO_SCREENSHOTS)
            return

        self.consumer.emit(LifecycleEvent.DEBUG_START)
        token = self.cancellation.begin("extra")
        try:
            screenshots = await load_artifacts(self.screenshots, combined)
            logger.info(f"Combined screenshots for processing: {[s.reference for s in screenshots]}")

            outcome = await self._run_debug_graph(screenshots, token)
            if outcome.success:
                self.session.has_debugged = True
                self.consumer.set_has_debugged(True)
                self.consumer.emit(LifecycleEvent.DEBUG_SUCCESS, outcome.data)
            else:
                self.consumer.emit(LifecycleEvent.DEBUG_ERROR, outcome.error)
        except Exception as e:
            logger.error(f"Debug processing error: {e}", exc_info=True)
            if isinstance(e, RequestCanceled):
                message = DEBUG_CANCELED_MESSAGE
            else:
                message = str(e) or SERVER_ERROR_MESSAGE
            self.consumer.emit(LifecycleEvent.DEBUG_ERROR, message)
        finally:
            self.cancellation.release("extra", token)

    async def _run_debug_graph(
        self, screenshots: list[ImageArtifact], token: OperationToken
    ) -> ProcessingOutcome:
        result = await self._debug_graph.ainvoke(
            {"screenshots": screenshots},
            config={"configurable": {"token": token}},
        )
        if result.get("error") or result.get("debug_text") is None:
            return ProcessingOutcome.fail(result.get("error") or SERVER_ERROR_MESSAGE)
        return ProcessingOutcome.ok(result["debug_text"])

    # ------------------------------------------------------------------
    # Cancellation sweep hook
    # ------------------------------------------------------------------

    def _after_sweep(self, was_cancelled: bool) -> None:
        self.consumer.set_has_debugged(False)
        if was_cancelled:
            self.consumer.emit(LifecycleEvent.NO_SCREENSHOTS)
