"""Outline pipeline — score-driven refinement loop with best-draft fallback.

    generate_outline ─> review_outline ─┬─ score >= threshold ───────> save_outline ─> END
                             ^          ├─ iterations exhausted ─> use_best ─┘
                             │          └─ otherwise ─> revise_outline ─┐
                             └──────────────────────────────────────────┘

The loop always ends with a draft: when no iteration reaches the threshold
the highest-scoring one seen is saved.
"""

import logging
from functools import partial
from typing import Literal

from cflow.agents.screenwriter import generate_outline_node, review_outline_node, revise_outline_node
from cflow.config import get_config
from cflow.errors import StorageError
from cflow.graph import END, CompiledWorkflow, WorkflowGraph
from cflow.state import OutlineNode, PipelineState
from cflow.workflows.terminals import finish_success, handle_error_node

logger = logging.getLogger(__name__)


def route_after_review(state: PipelineState) -> Literal["save", "use_best", "revise"]:
    """Conditional edge: decide next step after the outline reviewer.

    Priority order:
    1. review_score >= acceptance_threshold → save
    2. iteration_count >= max_refinement_iterations → use_best
    3. otherwise → revise
    """
    config = get_config()
    score = state.get("review_score") or 0

    if score >= config.get("acceptance_threshold", 80):
        return "save"

    if state.get("iteration_count", 0) >= config.get("max_refinement_iterations", 3):
        logger.warning(
            "[%s] No draft reached the threshold after %d iterations; using best (%s/100).",
            state.get("workflow_id"), state.get("iteration_count", 0), state.get("best_score"),
        )
        return "use_best"

    return "revise"


def use_best_node(state: PipelineState, ctx) -> dict:
    """Substitute the best-scoring draft seen across iterations."""
    return {"candidate": state.get("best_candidate") or "", "review_score": state.get("best_score")}


def save_outline_node(state: PipelineState, ctx) -> dict:
    """Persister node: write the outline and metadata, then complete the run."""
    outline = state.get("candidate", "")
    meta = {
        "workflow_id": state["workflow_id"],
        "idea": state["source_text"],
        "score": state.get("review_score"),
        "iterations": state.get("iteration_count", 0),
        "fallback": (state.get("review_score") or 0) < get_config().get("acceptance_threshold", 80),
    }
    try:
        ref = ctx.artifact_store.save({"kind": "outline", "outline": outline, "meta": meta})
    except StorageError as exc:
        return {"error_message": f"Saving outline failed: {exc}"}

    finish_success(state, ctx, {
        "outline": outline,
        "score": meta["score"],
        "iterations": meta["iterations"],
        "saved_path": ref,
    })
    return {"saved_artifact_path": ref}


_NODE_FNS = {
    OutlineNode.GENERATE_OUTLINE: generate_outline_node,
    OutlineNode.REVIEW_OUTLINE: review_outline_node,
    OutlineNode.REVISE_OUTLINE: revise_outline_node,
    OutlineNode.USE_BEST: use_best_node,
    OutlineNode.SAVE_OUTLINE: save_outline_node,
    OutlineNode.HANDLE_ERROR: handle_error_node,
}


def build_outline_graph(ctx) -> CompiledWorkflow:
    """Declare and compile the outline pipeline with every node bound to ``ctx``."""
    workflow = WorkflowGraph(PipelineState, node_ids=OutlineNode)
    for node_id, fn in _NODE_FNS.items():
        workflow.add_node(node_id, partial(fn, ctx=ctx))

    workflow.set_entry_point(OutlineNode.GENERATE_OUTLINE)
    workflow.set_error_node(OutlineNode.HANDLE_ERROR)

    workflow.add_edge(OutlineNode.GENERATE_OUTLINE, OutlineNode.REVIEW_OUTLINE)
    workflow.add_conditional_edges(
        OutlineNode.REVIEW_OUTLINE,
        route_after_review,
        {
            "save": OutlineNode.SAVE_OUTLINE,
            "use_best": OutlineNode.USE_BEST,
            "revise": OutlineNode.REVISE_OUTLINE,
        },
    )
    workflow.add_edge(OutlineNode.REVISE_OUTLINE, OutlineNode.REVIEW_OUTLINE)
    workflow.add_edge(OutlineNode.USE_BEST, OutlineNode.SAVE_OUTLINE)
    workflow.add_edge(OutlineNode.SAVE_OUTLINE, END)
    workflow.add_edge(OutlineNode.HANDLE_ERROR, END)

    return workflow.compile(reporter=ctx.reporter)
