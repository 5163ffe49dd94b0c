"""Request stages and the LangGraph graphs that sequence them."""

from snapsolve.pipeline.builder import build_debug_graph, build_main_graph
from snapsolve.pipeline.stages import (
    CANCELED_MESSAGE,
    DEBUG_CANCELED_MESSAGE,
    TIMEOUT_MESSAGE,
    ProcessingStages,
)
from snapsolve.pipeline.state import PipelineState, SessionState

__all__ = [
    "CANCELED_MESSAGE",
    "DEBUG_CANCELED_MESSAGE",
    "TIMEOUT_MESSAGE",
    "PipelineState",
    "ProcessingStages",
    "SessionState",
    "build_debug_graph",
    "build_main_graph",
]
