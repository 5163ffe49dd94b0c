"""End-to-end tests for both processing branches with a scripted chat model."""

import asyncio
from pathlib import Path

import pytest
from conftest import HANG, SOLUTION_JSON, ScriptedChatModel

from snapsolve.config import SolverConfig
from snapsolve.errors import ConfigurationError
from snapsolve.orchestrator import API_KEY_MISSING_MESSAGE, ProcessingOrchestrator
from snapsolve.pipeline import CANCELED_MESSAGE, TIMEOUT_MESSAGE
from snapsolve.schemas import LifecycleEvent as E
from snapsolve.schemas import ProblemInfo, StructuredSolution


def _payload(consumer, event):
    return next(m.payload for m in consumer.history if m.event is event)


def test_construction_requires_api_key(store, consumer):
    with pytest.raises(ConfigurationError):
        ProcessingOrchestrator(SolverConfig(), store, consumer)


class TestMainBranch:
    @pytest.mark.asyncio
    async def test_empty_queue(self, make_orchestrator, consumer):
        model = ScriptedChatModel()
        orchestrator = make_orchestrator(model)

        await orchestrator.process_screenshots()

        assert consumer.events() == [E.INITIAL_START, E.NO_SCREENSHOTS]
        assert model.calls == []

    @pytest.mark.asyncio
    async def test_success_sequence(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot())
        extra = make_shot()
        store.add(extra, extra=True)
        model = ScriptedChatModel("Problem: print(1)", "```json\n" + SOLUTION_JSON + "\n```")
        orchestrator = make_orchestrator(model)

        await orchestrator.process_screenshots()

        assert consumer.events() == [E.INITIAL_START, E.PROBLEM_EXTRACTED, E.SOLUTION_SUCCESS]
        assert consumer.get_current_view() == "solutions"
        assert _payload(consumer, E.PROBLEM_EXTRACTED) == ProblemInfo(
            problem_statement="Problem: print(1)"
        )
        solution = _payload(consumer, E.SOLUTION_SUCCESS)
        assert isinstance(solution, StructuredSolution)
        assert solution.code == "x=1"
        assert solution.short_answer == "1"
        assert store.list_extra_queue() == []
        assert not Path(extra).exists()
        assert orchestrator.session.problem_info.solution_text == "x=1"
        assert orchestrator.cancellation.active("main") is None

    @pytest.mark.asyncio
    async def test_requests_carry_images_and_problem(self, make_orchestrator, store, make_shot):
        store.add(make_shot(b"img-1"))
        store.add(make_shot(b"img-2"))
        model = ScriptedChatModel("the problem", SOLUTION_JSON)

        await make_orchestrator(model).process_screenshots()

        extract_parts = model.calls[0][0].content
        assert [p["type"] for p in extract_parts] == ["text", "image_url", "image_url"]
        assert "Programming Language: python" in extract_parts[0]["text"]
        assert "Respond in English" in extract_parts[0]["text"]
        system, user = model.calls[1]
        assert "JSON" in system.content
        assert "the problem" in user.content

    @pytest.mark.asyncio
    async def test_unparseable_solution_still_succeeds(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot())
        model = ScriptedChatModel("problem", "I refuse to answer in JSON")

        await make_orchestrator(model).process_screenshots()

        assert consumer.events()[-1] is E.SOLUTION_SUCCESS
        solution = _payload(consumer, E.SOLUTION_SUCCESS)
        assert solution.thoughts[-1] == "I refuse to answer in JSON"

    @pytest.mark.asyncio
    async def test_out_of_credits(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot())
        consumer.set_view("queue")
        model = ScriptedChatModel(RuntimeError("API Key out of credits"))

        await make_orchestrator(model).process_screenshots()

        assert consumer.events() == [E.INITIAL_START, E.OUT_OF_CREDITS]
        assert consumer.get_current_view() == "queue"

    @pytest.mark.asyncio
    async def test_missing_api_key_message(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot())
        model = ScriptedChatModel(RuntimeError("OpenAI API key not found"))

        await make_orchestrator(model).process_screenshots()

        assert consumer.events() == [E.INITIAL_START, E.INITIAL_SOLUTION_ERROR]
        assert _payload(consumer, E.INITIAL_SOLUTION_ERROR) == API_KEY_MISSING_MESSAGE

    @pytest.mark.asyncio
    async def test_generation_failure_reports_raw_error(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot())
        model = ScriptedChatModel("problem", RuntimeError("502 Bad Gateway"))
        orchestrator = make_orchestrator(model)

        await orchestrator.process_screenshots()

        assert consumer.events() == [
            E.INITIAL_START,
            E.PROBLEM_EXTRACTED,
            E.INITIAL_SOLUTION_ERROR,
        ]
        assert _payload(consumer, E.INITIAL_SOLUTION_ERROR) == "502 Bad Gateway"
        assert consumer.get_current_view() == "queue"
        assert orchestrator.cancellation.active("main") is None

    @pytest.mark.asyncio
    async def test_unreadable_screenshot_is_reported(self, make_orchestrator, consumer, store, make_shot):
        path = make_shot()
        store.add(path)
        Path(path).unlink()
        orchestrator = make_orchestrator(ScriptedChatModel())

        await orchestrator.process_screenshots()

        assert consumer.events() == [E.INITIAL_START, E.INITIAL_SOLUTION_ERROR]
        assert consumer.get_current_view() == "queue"
        assert orchestrator.cancellation.active("main") is None

    @pytest.mark.asyncio
    async def test_cancel_during_extraction(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot())
        model = ScriptedChatModel(HANG)
        orchestrator = make_orchestrator(model)

        task = asyncio.ensure_future(orchestrator.process_screenshots())
        await model.wait_for_calls(1)
        assert orchestrator.cancellation.cancel("main") is True
        await asyncio.wait_for(task, 2)

        assert consumer.events() == [E.INITIAL_START, E.INITIAL_SOLUTION_ERROR]
        assert _payload(consumer, E.INITIAL_SOLUTION_ERROR) == CANCELED_MESSAGE
        assert consumer.get_current_view() == "queue"

    @pytest.mark.asyncio
    async def test_cancel_during_generation_is_a_timeout(
        self, make_orchestrator, consumer, store, make_shot
    ):
        store.add(make_shot())
        store.add(make_shot(), extra=True)
        model = ScriptedChatModel("problem", HANG)
        orchestrator = make_orchestrator(model)

        task = asyncio.ensure_future(orchestrator.process_screenshots())
        await model.wait_for_calls(2)
        orchestrator.cancellation.cancel("main")
        await asyncio.wait_for(task, 2)

        assert consumer.events() == [
            E.INITIAL_START,
            E.PROBLEM_EXTRACTED,
            E.RESET,
            E.INITIAL_SOLUTION_ERROR,
        ]
        assert _payload(consumer, E.INITIAL_SOLUTION_ERROR) == TIMEOUT_MESSAGE
        assert consumer.get_current_view() == "queue"
        assert orchestrator.cancellation.active("main") is None
        assert orchestrator.cancellation.active("extra") is None
        assert orchestrator.session.problem_info is None
        assert store.list_main_queue() == []
        assert store.list_extra_queue() == []


class TestDebugBranch:
    @pytest.fixture(autouse=True)
    def solutions_view(self, consumer):
        consumer.set_view("solutions")

    @pytest.mark.asyncio
    async def test_empty_combined_queue(self, make_orchestrator, consumer, monkeypatch):
        orchestrator = make_orchestrator(ScriptedChatModel())

        def no_token(operation):
            raise AssertionError("token must not be acquired")

        monkeypatch.setattr(orchestrator.cancellation, "begin", no_token)

        await orchestrator.process_screenshots()

        assert consumer.events() == [E.NO_SCREENSHOTS]

    @pytest.mark.asyncio
    async def test_success(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot())
        store.add(make_shot(), extra=True)
        model = ScriptedChatModel("Fixed: use range(n)")
        orchestrator = make_orchestrator(model)
        orchestrator.session.problem_info = ProblemInfo(
            problem_statement="sum numbers", solution_text="for i in n: pass"
        )

        await orchestrator.process_screenshots()

        assert consumer.events() == [E.DEBUG_START, E.DEBUG_SUCCESS]
        assert _payload(consumer, E.DEBUG_SUCCESS) == "Fixed: use range(n)"
        assert consumer.has_debugged is True
        assert orchestrator.session.has_debugged is True
        assert orchestrator.cancellation.active("extra") is None

        system, user = model.calls[0]
        assert "expert debugger" in system.content
        parts = user.content
        assert "sum numbers" in parts[0]["text"]
        assert "for i in n: pass" in parts[0]["text"]
        assert sum(p["type"] == "image_url" for p in parts) == 2

    @pytest.mark.asyncio
    async def test_extra_queue_alone_is_enough(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot(), extra=True)
        orchestrator = make_orchestrator(ScriptedChatModel("ok"))
        orchestrator.session.problem_info = ProblemInfo(problem_statement="p")

        await orchestrator.process_screenshots()

        assert consumer.events() == [E.DEBUG_START, E.DEBUG_SUCCESS]

    @pytest.mark.asyncio
    async def test_missing_problem_info(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot(), extra=True)
        model = ScriptedChatModel()

        await make_orchestrator(model).process_screenshots()

        assert consumer.events() == [E.DEBUG_START, E.DEBUG_ERROR]
        assert _payload(consumer, E.DEBUG_ERROR) == "No problem info available"
        assert consumer.has_debugged is False
        assert model.calls == []

    @pytest.mark.asyncio
    async def test_upstream_failure(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot(), extra=True)
        orchestrator = make_orchestrator(ScriptedChatModel(RuntimeError("rate limit")))
        orchestrator.session.problem_info = ProblemInfo(problem_statement="p")

        await orchestrator.process_screenshots()

        assert consumer.events() == [E.DEBUG_START, E.DEBUG_ERROR]
        assert _payload(consumer, E.DEBUG_ERROR) == "rate limit"

    @pytest.mark.asyncio
    async def test_cancel_in_flight(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot(), extra=True)
        model = ScriptedChatModel(HANG)
        orchestrator = make_orchestrator(model)
        orchestrator.session.problem_info = ProblemInfo(problem_statement="p")

        task = asyncio.ensure_future(orchestrator.process_screenshots())
        await model.wait_for_calls(1)
        assert orchestrator.cancel_ongoing_requests() is True
        await asyncio.wait_for(task, 2)

        assert consumer.events() == [E.DEBUG_START, E.NO_SCREENSHOTS, E.DEBUG_ERROR]
        assert "canceled" in _payload(consumer, E.DEBUG_ERROR)
        assert orchestrator.session.problem_info is None
        assert orchestrator.cancellation.active("extra") is None


class TestCancellationSweep:
    def test_sweep_without_live_tokens_is_silent(self, make_orchestrator, consumer):
        orchestrator = make_orchestrator(ScriptedChatModel())
        orchestrator.session.problem_info = ProblemInfo(problem_statement="p")
        consumer.set_has_debugged(True)

        assert orchestrator.cancel_ongoing_requests() is False

        assert consumer.events() == []
        assert consumer.has_debugged is False
        assert orchestrator.session.problem_info is None

    def test_sweep_with_live_token_notifies(self, make_orchestrator, consumer):
        orchestrator = make_orchestrator(ScriptedChatModel())
        orchestrator.cancellation.begin("main")

        assert orchestrator.cancel_ongoing_requests() is True
        assert consumer.events() == [E.NO_SCREENSHOTS]

    def test_cancel_processing_keeps_session(self, make_orchestrator, consumer):
        orchestrator = make_orchestrator(ScriptedChatModel())
        orchestrator.session.problem_info = ProblemInfo(problem_statement="p")
        token = orchestrator.cancellation.begin("extra")

        assert orchestrator.cancel_processing() is True
        assert token.cancelled
        assert orchestrator.session.problem_info is not None
        assert consumer.events() == []

    def test_reset(self, make_orchestrator, consumer, store, make_shot):
        store.add(make_shot())
        consumer.set_view("solutions")
        orchestrator = make_orchestrator(ScriptedChatModel())

        orchestrator.reset()

        assert consumer.events() == [E.RESET]
        assert consumer.get_current_view() == "queue"
        assert store.list_main_queue() == []
