"""Tests for the question Reviewer agent: _validate_response, check_total, review_questions_node."""

import json

import pytest
from unittest.mock import patch

from conftest import review_reply
from cflow.agents.reviewer import _validate_response, check_total, review_questions_node
from cflow.errors import LLMTimeoutError, ParseError


def _batch(n):
    return [{"kind": "single_choice", "prompt": f"Q{i}?", "options": ["A", "B"], "correct_answer": "A"}
            for i in range(1, n + 1)]


class TestValidateResponse:
    def test_returns_scores_in_order(self):
        data = {"questions": [{"score": 30}, {"score": 70}]}
        assert _validate_response(data, 2) == [30, 70]

    def test_float_scores_rounded(self):
        assert _validate_response({"questions": [{"score": 33.4}, {"score": 66.6}]}, 2) == [33, 67]

    def test_missing_questions_raises(self):
        with pytest.raises(ParseError, match="missing 'questions'"):
            _validate_response({"scoreDistribution": {}}, 2)

    def test_non_list_questions_raises(self):
        with pytest.raises(ParseError, match="must be an array"):
            _validate_response({"questions": {"score": 100}}, 1)

    def test_count_mismatch_raises(self):
        with pytest.raises(ParseError, match="2 questions for a batch of 3"):
            _validate_response({"questions": [{"score": 50}, {"score": 50}]}, 3)

    def test_missing_score_raises(self):
        with pytest.raises(ParseError, match="question 1 missing 'score'"):
            _validate_response({"questions": [{"score": 50}, {"prompt": "Q2"}]}, 2)

    def test_negative_score_raises(self):
        with pytest.raises(ParseError, match="invalid score"):
            _validate_response({"questions": [{"score": -5}]}, 1)

    def test_bool_score_raises(self):
        with pytest.raises(ParseError, match="invalid score"):
            _validate_response({"questions": [{"score": True}]}, 1)

    def test_string_score_raises(self):
        with pytest.raises(ParseError):
            _validate_response({"questions": [{"score": "10"}]}, 1)

    def test_non_object_distribution_dropped(self):
        data = {"questions": [{"score": 100}], "scoreDistribution": "lots"}
        _validate_response(data, 1)
        assert data["scoreDistribution"] is None


class TestCheckTotal:
    @patch("cflow.agents.reviewer.get_config", return_value={"score_total": 100, "score_tolerance": 0})
    def test_exact_total(self, _mock_gc):
        assert check_total([40, 60]) is True

    @patch("cflow.agents.reviewer.get_config", return_value={"score_total": 100, "score_tolerance": 0})
    def test_mismatch_warns(self, _mock_gc, caplog):
        assert check_total([40, 50]) is False
        assert "total 90, expected 100" in caplog.text

    @patch("cflow.agents.reviewer.get_config", return_value={"score_total": 100, "score_tolerance": 2})
    def test_within_tolerance(self, _mock_gc):
        assert check_total([49, 49]) is True


class TestReviewQuestionsNode:
    def test_copies_scores_onto_batch(self, ctx, base_state, fake_llm):
        base_state["generated_items"] = _batch(3)
        fake_llm.queue(review_reply(3))

        result = review_questions_node(base_state, ctx)

        assert [q["score"] for q in result["generated_items"]] == [33, 33, 34]
        assert result["generated_items"][0]["prompt"] == "Q1?"
        assert result["score_distribution"]["single_choice"]["total"] == 100
        assert "error_message" not in result

    def test_prompt_contains_batch_and_total(self, ctx, base_state, fake_llm):
        base_state["generated_items"] = _batch(1)
        fake_llm.queue(review_reply(1))

        review_questions_node(base_state, ctx)

        call = fake_llm.calls[0]
        assert "totals exactly 100 points" in call["system"]
        assert '"prompt": "Q1?"' in call["user"]
        assert call["params"]["model"] == "test-sonnet"

    def test_count_mismatch_sets_error(self, ctx, base_state, fake_llm):
        base_state["generated_items"] = _batch(3)
        fake_llm.queue(review_reply(2))
        result = review_questions_node(base_state, ctx)
        assert result["error_message"].startswith("Question review failed:")

    def test_unparseable_reply_sets_error(self, ctx, base_state, fake_llm):
        base_state["generated_items"] = _batch(1)
        fake_llm.queue("Looks good to me!")
        result = review_questions_node(base_state, ctx)
        assert "not valid JSON" in result["error_message"]

    def test_llm_failure_sets_error(self, ctx, base_state, fake_llm):
        base_state["generated_items"] = _batch(1)
        fake_llm.queue(LLMTimeoutError("LLM call timed out"))
        result = review_questions_node(base_state, ctx)
        assert result == {"error_message": "Question review failed: LLM call timed out"}

    def test_bad_total_still_passes_batch(self, ctx, base_state, fake_llm):
        base_state["generated_items"] = _batch(2)
        fake_llm.queue(json.dumps({"questions": [{"score": 10}, {"score": 10}]}))
        result = review_questions_node(base_state, ctx)
        assert [q["score"] for q in result["generated_items"]] == [10, 10]
        assert result["score_distribution"] is None
