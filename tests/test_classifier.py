"""Tests for the Classifier agent: parse_classification and classify_node."""

import pytest

from cflow.agents.classifier import MIXED_MESSAGE, UNKNOWN_MESSAGE, classify_node, parse_classification
from cflow.errors import LLMAuthError


class TestParseClassification:
    def test_two_line_reply(self):
        assert parse_classification("type: note\nsubject: biology") == ("note", "biology")

    def test_case_and_fullwidth_colon(self):
        assert parse_classification("Type：Question\nSubject：MATH") == ("question", "math")

    def test_bold_markdown(self):
        assert parse_classification("**type:** mixed\n**subject:** unknown") == ("mixed", "unknown")

    def test_missing_subject_defaults_unknown(self):
        assert parse_classification("type: note") == ("note", "unknown")

    def test_garbage_is_unknown(self):
        assert parse_classification("I cannot tell.") == ("unknown", "unknown")

    def test_empty_reply(self):
        assert parse_classification("") == ("unknown", "unknown")


class TestClassifyNode:
    def test_note(self, ctx, base_state, fake_llm):
        fake_llm.queue("type: note\nsubject: biology")
        assert classify_node(base_state, ctx) == {"classification_label": "note", "subject_tag": "biology"}

    def test_sends_only_prefix(self, ctx, base_state, fake_llm, mock_config):
        mock_config["classifier_prefix_chars"] = 10
        base_state["source_text"] = "x" * 50
        fake_llm.queue("type: note\nsubject: math")
        classify_node(base_state, ctx)
        assert fake_llm.calls[0]["user"] == "x" * 10
        assert fake_llm.calls[0]["params"]["model"] == "test-haiku"

    def test_mixed_sets_error(self, ctx, base_state, fake_llm):
        fake_llm.queue("type: mixed\nsubject: physics")
        result = classify_node(base_state, ctx)
        assert result["classification_label"] == "mixed"
        assert result["error_message"] == MIXED_MESSAGE

    def test_unreadable_reply_sets_error(self, ctx, base_state, fake_llm):
        fake_llm.queue("This looks like a shopping list.")
        result = classify_node(base_state, ctx)
        assert result["classification_label"] == "unknown"
        assert result["error_message"] == UNKNOWN_MESSAGE

    def test_llm_failure_sets_error(self, ctx, base_state, fake_llm):
        fake_llm.queue(LLMAuthError("LLM authentication failed"))
        result = classify_node(base_state, ctx)
        assert result == {
            "classification_label": "unknown",
            "subject_tag": "unknown",
            "error_message": "Classification failed: LLM authentication failed",
        }

    def test_non_capability_errors_propagate(self, ctx, base_state, fake_llm):
        fake_llm.queue(KeyError("bug"))
        with pytest.raises(KeyError):
            classify_node(base_state, ctx)
