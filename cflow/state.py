"""Pipeline state — single source of truth passed through the graph."""

from enum import Enum
from typing import Any, Literal, TypedDict

ClassificationLabel = Literal["note", "question", "mixed", "unknown"]
Subject = Literal["math", "physics", "chemistry", "biology", "chinese", "english", "unknown"]
QuizKind = Literal["single_choice", "multiple_choice", "true_false", "unknown"]
FeedbackDecision = Literal["Accept", "Reject", "Revise"]
PipelineKind = Literal["quiz", "outline"]

CLASSIFICATION_LABELS = ("note", "question", "mixed", "unknown")
SUBJECTS = ("math", "physics", "chemistry", "biology", "chinese", "english", "unknown")
QUIZ_KINDS = ("single_choice", "multiple_choice", "true_false", "unknown")
FEEDBACK_DECISIONS = ("Accept", "Reject", "Revise")


class QuizNode(str, Enum):
    """Node identifiers of the quiz pipeline."""

    CLASSIFY = "classify"
    PARSE_QUESTIONS = "parse_questions"
    GENERATE_QUESTIONS = "generate_questions"
    REVIEW_QUESTIONS = "review_questions"
    WAIT_FEEDBACK = "wait_feedback"
    SAVE_QUIZ = "save_quiz"
    HANDLE_ERROR = "handle_error"


class OutlineNode(str, Enum):
    """Node identifiers of the outline pipeline."""

    GENERATE_OUTLINE = "generate_outline"
    REVIEW_OUTLINE = "review_outline"
    REVISE_OUTLINE = "revise_outline"
    USE_BEST = "use_best"
    SAVE_OUTLINE = "save_outline"
    HANDLE_ERROR = "handle_error"


class QuizItem(TypedDict, total=False):
    kind: QuizKind
    prompt: str
    options: list[str]
    correct_answer: str
    explanation: str
    score: int  # Set only by the reviewer node.


class ChatMessage(TypedDict):
    role: Literal["user", "ai", "system"]
    content: str


class PipelineState(TypedDict, total=False):
    workflow_id: str  # Correlation id for feedback, progress and the execution record.
    pipeline_kind: PipelineKind
    source_text: str  # Document text (quiz) or story idea (outline). Immutable after init.
    classification_label: ClassificationLabel
    subject_tag: Subject
    generated_items: list[QuizItem]
    num_requested_items: int
    score_distribution: dict | None
    user_feedback_decision: FeedbackDecision | None
    revision_note: str | None
    error_message: str | None  # Once set, only the error terminal runs next.
    failed_node: str | None  # Node that set error_message.
    saved_artifact_path: str | None
    retry_count: int  # Quiz generation attempts. Never decreases.
    iteration_count: int  # Outline drafts produced. Never decreases.
    candidate: str  # Current outline draft.
    review_score: int | None
    review_feedback: str | None
    best_candidate: str | None
    best_score: int | None
    chat_history: list[ChatMessage]
    node_config_overrides: dict[str, dict[str, Any]]


def create_quiz_state(
    workflow_id: str,
    source_text: str,
    num_requested_items: int,
    node_config_overrides: dict | None = None,
) -> PipelineState:
    """Create the entry state for a quiz run."""
    return PipelineState(
        workflow_id=workflow_id,
        pipeline_kind="quiz",
        source_text=source_text,
        classification_label="unknown",
        subject_tag="unknown",
        generated_items=[],
        num_requested_items=num_requested_items,
        score_distribution=None,
        user_feedback_decision=None,
        revision_note=None,
        error_message=None,
        failed_node=None,
        saved_artifact_path=None,
        retry_count=0,
        iteration_count=0,
        node_config_overrides=node_config_overrides or {},
    )


def create_outline_state(
    workflow_id: str,
    idea: str,
    chat_history: list[ChatMessage] | None = None,
    node_config_overrides: dict | None = None,
) -> PipelineState:
    """Create the entry state for an outline run."""
    return PipelineState(
        workflow_id=workflow_id,
        pipeline_kind="outline",
        source_text=idea,
        chat_history=chat_history or [],
        candidate="",
        review_score=None,
        review_feedback=None,
        best_candidate=None,
        best_score=None,
        error_message=None,
        failed_node=None,
        saved_artifact_path=None,
        retry_count=0,
        iteration_count=0,
        node_config_overrides=node_config_overrides or {},
    )


def failure_of(state: PipelineState) -> dict | None:
    """Return the structured failure of a finished run, or None if it succeeded."""
    if not state.get("error_message"):
        return None
    return {
        "workflow_id": state.get("workflow_id"),
        "node_type": state.get("failed_node") or "unknown",
        "message": state["error_message"],
    }
