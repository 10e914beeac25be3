"""Tests for pipeline routing: route_after_classification, route_after_feedback, route_after_review."""

from unittest.mock import patch

from cflow.workflows.outline import route_after_review, use_best_node
from cflow.workflows.quiz import route_after_classification, route_after_feedback


class TestRouteAfterClassification:
    def test_question_goes_to_parse(self, base_state):
        base_state["classification_label"] = "question"
        assert route_after_classification(base_state) == "parse"

    def test_note_goes_to_generate(self, base_state):
        base_state["classification_label"] = "note"
        assert route_after_classification(base_state) == "generate"

    def test_mixed_goes_to_error(self, base_state):
        base_state["classification_label"] = "mixed"
        assert route_after_classification(base_state) == "error"

    def test_unknown_goes_to_error(self, base_state):
        base_state["classification_label"] = "unknown"
        assert route_after_classification(base_state) == "error"

    def test_error_message_wins(self, base_state):
        base_state["classification_label"] = "note"
        base_state["error_message"] = "Classification failed"
        assert route_after_classification(base_state) == "error"


class TestRouteAfterFeedback:
    @patch("cflow.workflows.quiz.get_config", return_value={"max_feedback_retries": 5})
    def test_accept_saves(self, _mock_gc, base_state):
        base_state["user_feedback_decision"] = "Accept"
        base_state["retry_count"] = 1
        assert route_after_feedback(base_state) == "save"

    @patch("cflow.workflows.quiz.get_config", return_value={"max_feedback_retries": 5})
    def test_no_decision_saves(self, _mock_gc, base_state):
        base_state["user_feedback_decision"] = None
        assert route_after_feedback(base_state) == "save"

    @patch("cflow.workflows.quiz.get_config", return_value={"max_feedback_retries": 5})
    def test_reject_on_questions_reparses(self, _mock_gc, base_state):
        base_state["classification_label"] = "question"
        base_state["user_feedback_decision"] = "Reject"
        base_state["retry_count"] = 1
        assert route_after_feedback(base_state) == "retry_parse"

    @patch("cflow.workflows.quiz.get_config", return_value={"max_feedback_retries": 5})
    def test_revise_on_notes_regenerates(self, _mock_gc, base_state):
        base_state["classification_label"] = "note"
        base_state["user_feedback_decision"] = "Revise"
        base_state["retry_count"] = 4
        assert route_after_feedback(base_state) == "retry_generate"

    @patch("cflow.workflows.quiz.get_config", return_value={"max_feedback_retries": 5})
    def test_at_ceiling_saves_despite_reject(self, _mock_gc, base_state):
        base_state["classification_label"] = "note"
        base_state["user_feedback_decision"] = "Reject"
        base_state["retry_count"] = 5
        assert route_after_feedback(base_state) == "save"

    @patch("cflow.workflows.quiz.get_config", return_value={"max_feedback_retries": 2})
    def test_over_ceiling_saves(self, _mock_gc, base_state):
        base_state["classification_label"] = "question"
        base_state["user_feedback_decision"] = "Revise"
        base_state["retry_count"] = 7
        assert route_after_feedback(base_state) == "save"


class TestRouteAfterReview:
    @patch("cflow.workflows.outline.get_config",
           return_value={"acceptance_threshold": 80, "max_refinement_iterations": 3})
    def test_score_at_threshold_saves(self, _mock_gc, outline_state):
        outline_state["review_score"] = 80
        outline_state["iteration_count"] = 1
        assert route_after_review(outline_state) == "save"

    @patch("cflow.workflows.outline.get_config",
           return_value={"acceptance_threshold": 80, "max_refinement_iterations": 3})
    def test_threshold_beats_exhausted_iterations(self, _mock_gc, outline_state):
        outline_state["review_score"] = 95
        outline_state["iteration_count"] = 3
        assert route_after_review(outline_state) == "save"

    @patch("cflow.workflows.outline.get_config",
           return_value={"acceptance_threshold": 80, "max_refinement_iterations": 3})
    def test_low_score_revises(self, _mock_gc, outline_state):
        outline_state["review_score"] = 79
        outline_state["iteration_count"] = 2
        assert route_after_review(outline_state) == "revise"

    @patch("cflow.workflows.outline.get_config",
           return_value={"acceptance_threshold": 80, "max_refinement_iterations": 3})
    def test_exhausted_iterations_use_best(self, _mock_gc, outline_state):
        outline_state["review_score"] = 60
        outline_state["iteration_count"] = 3
        assert route_after_review(outline_state) == "use_best"

    @patch("cflow.workflows.outline.get_config",
           return_value={"acceptance_threshold": 80, "max_refinement_iterations": 3})
    def test_missing_score_revises(self, _mock_gc, outline_state):
        outline_state["review_score"] = None
        outline_state["iteration_count"] = 1
        assert route_after_review(outline_state) == "revise"


class TestUseBestNode:
    def test_substitutes_best_draft(self, outline_state):
        outline_state.update(candidate="latest", review_score=50, best_candidate="earlier", best_score=72)
        assert use_best_node(outline_state, ctx=None) == {"candidate": "earlier", "review_score": 72}
