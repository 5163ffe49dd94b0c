"""Graph builder — wires stage nodes into LangGraph StateGraphs.

Two graphs, one per branch:
- main:   extract_problem → generate_solution (skipped when extraction fails)
- debug:  debug_solution
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langgraph.graph import END, StateGraph

from snapsolve.pipeline.stages import (
    make_debug_node,
    make_extract_node,
    make_generate_node,
    route_after_extraction,
)
from snapsolve.pipeline.state import PipelineState

if TYPE_CHECKING:
    from langgraph.graph.state import CompiledStateGraph

    from snapsolve.pipeline.stages import ProcessingStages

logger = logging.getLogger(__name__)


def build_main_graph(stages: ProcessingStages) -> CompiledStateGraph:
    """Extraction chained into solution generation.

    START → [extract_problem] → conditional (route_after_extraction)
      → "generate_solution" → [generate_solution] → END
      → "__failed__"        → END
    """
    graph = StateGraph(PipelineState)

    graph.add_node("extract_problem", make_extract_node(stages))
    graph.add_node("generate_solution", make_generate_node(stages))
    graph.set_entry_point("extract_problem")

    graph.add_conditional_edges(
        "extract_problem",
        route_after_extraction,
        {"generate_solution": "generate_solution", "__failed__": END},
    )
    graph.add_edge("generate_solution", END)

    logger.info("Built main graph: extract_problem → generate_solution")
    return graph.compile()


def build_debug_graph(stages: ProcessingStages) -> CompiledStateGraph:
    """START → [debug_solution] → END"""
    graph = StateGraph(PipelineState)

    graph.add_node("debug_solution", make_debug_node(stages))
    graph.set_entry_point("debug_solution")
    graph.add_edge("debug_solution", END)

    logger.info("Built debug graph: debug_solution")
    return graph.compile()
