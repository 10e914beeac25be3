"""Quiz pipeline — document to scored, human-approved quiz.

    classify ─┬─ question ─> parse_questions ────┐
              ├─ note ─────> generate_questions ─┤
              └─ error ─┐                        v
                        │               review_questions
                        │                        v
                        │                 wait_feedback ─┬─ Accept ─> save_quiz ─> END
                        │                        ^       └─ Reject / Revise (retry_count < max)
                        │                        └── parse_questions / generate_questions
                        v
                   handle_error ─> END
"""

import logging
from datetime import datetime, timezone
from functools import partial
from typing import Literal

from cflow.agents.author import generate_questions_node, parse_questions_node
from cflow.agents.classifier import classify_node
from cflow.agents.reviewer import review_questions_node
from cflow.config import get_config
from cflow.errors import StorageError
from cflow.feedback import wait_for_feedback
from cflow.graph import END, CompiledWorkflow, WorkflowGraph
from cflow.state import PipelineState, QuizNode
from cflow.workflows.terminals import finish_success, handle_error_node

logger = logging.getLogger(__name__)


def route_after_classification(state: PipelineState) -> Literal["parse", "generate", "error"]:
    """Conditional edge: pick the authoring node for the document type."""
    label = state.get("classification_label")
    if state.get("error_message") or label not in ("question", "note"):
        return "error"
    return "parse" if label == "question" else "generate"


def route_after_feedback(state: PipelineState) -> Literal["save", "retry_parse", "retry_generate"]:
    """Conditional edge: decide next step after the human feedback gate.

    Priority order:
    1. Accept (or no decision) → save
    2. retry_count >= max_feedback_retries → save, whatever was decided
    3. Reject / Revise → back to the node that produced the batch
    """
    config = get_config()
    decision = state.get("user_feedback_decision")

    if decision in (None, "Accept"):
        return "save"

    max_retries = config.get("max_feedback_retries", 5)
    if state.get("retry_count", 0) >= max_retries:
        logger.warning(
            "[%s] %s ignored: retry ceiling of %d reached, saving current batch.",
            state.get("workflow_id"), decision, max_retries,
        )
        return "save"

    return "retry_parse" if state.get("classification_label") == "question" else "retry_generate"


def save_quiz_node(state: PipelineState, ctx) -> dict:
    """Persister node: write the batch and metadata, then complete the run."""
    items = state.get("generated_items", [])
    record = {
        "kind": "quiz",
        "questions": items,
        "scoreDistribution": state.get("score_distribution"),
        "meta": {
            "workflow_id": state["workflow_id"],
            "classification": state.get("classification_label"),
            "subject": state.get("subject_tag"),
            "attempts": state.get("retry_count", 0),
            "feedback": state.get("user_feedback_decision"),
            "generated_at": datetime.now(timezone.utc).isoformat(),
        },
    }
    try:
        ref = ctx.artifact_store.save(record)
    except StorageError as exc:
        return {"error_message": f"Saving quiz failed: {exc}"}

    finish_success(state, ctx, {
        "questions": items,
        "scoreDistribution": state.get("score_distribution"),
        "classification": state.get("classification_label"),
        "subject": state.get("subject_tag"),
        "saved_path": ref,
    })
    return {"saved_artifact_path": ref}


_NODE_FNS = {
    QuizNode.CLASSIFY: classify_node,
    QuizNode.PARSE_QUESTIONS: parse_questions_node,
    QuizNode.GENERATE_QUESTIONS: generate_questions_node,
    QuizNode.REVIEW_QUESTIONS: review_questions_node,
    QuizNode.WAIT_FEEDBACK: wait_for_feedback,
    QuizNode.SAVE_QUIZ: save_quiz_node,
    QuizNode.HANDLE_ERROR: handle_error_node,
}


def build_quiz_graph(ctx) -> CompiledWorkflow:
    """Declare and compile the quiz pipeline with every node bound to ``ctx``."""
    workflow = WorkflowGraph(PipelineState, node_ids=QuizNode)
    for node_id, fn in _NODE_FNS.items():
        workflow.add_node(node_id, partial(fn, ctx=ctx))

    workflow.set_entry_point(QuizNode.CLASSIFY)
    workflow.set_error_node(QuizNode.HANDLE_ERROR)

    workflow.add_conditional_edges(
        QuizNode.CLASSIFY,
        route_after_classification,
        {
            "parse": QuizNode.PARSE_QUESTIONS,
            "generate": QuizNode.GENERATE_QUESTIONS,
            "error": QuizNode.HANDLE_ERROR,
        },
    )
    workflow.add_edge(QuizNode.PARSE_QUESTIONS, QuizNode.REVIEW_QUESTIONS)
    workflow.add_edge(QuizNode.GENERATE_QUESTIONS, QuizNode.REVIEW_QUESTIONS)
    workflow.add_edge(QuizNode.REVIEW_QUESTIONS, QuizNode.WAIT_FEEDBACK)
    workflow.add_conditional_edges(
        QuizNode.WAIT_FEEDBACK,
        route_after_feedback,
        {
            "save": QuizNode.SAVE_QUIZ,
            "retry_parse": QuizNode.PARSE_QUESTIONS,
            "retry_generate": QuizNode.GENERATE_QUESTIONS,
        },
    )
    workflow.add_edge(QuizNode.SAVE_QUIZ, END)
    workflow.add_edge(QuizNode.HANDLE_ERROR, END)

    return workflow.compile(reporter=ctx.reporter)
