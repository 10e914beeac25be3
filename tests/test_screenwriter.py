"""Tests for the outline agents: parse_review and the screenwriter/reviewer nodes."""

import json

from cflow.agents.screenwriter import (
    build_generate_prompt,
    generate_outline_node,
    parse_review,
    review_outline_node,
    revise_outline_node,
)
from cflow.errors import LLMTimeoutError


class TestParseReview:
    def test_json_contract(self):
        assert parse_review('{"score": 85, "feedback": "Tighten chapter 4."}') == (85, "Tighten chapter 4.")

    def test_fenced_json(self):
        assert parse_review('```json\n{"score": 72, "feedback": "ok"}\n```')[0] == 72

    def test_score_clamped(self):
        assert parse_review('{"score": 140}')[0] == 100
        assert parse_review('{"score": -3}')[0] == 0

    def test_chinese_total_line(self):
        reply = "【总分】：78\n问题：节奏拖沓"
        assert parse_review(reply) == (78, reply)

    def test_total_score_line(self):
        assert parse_review("Strong opening.\nTotal score: 91")[0] == 91

    def test_score_out_of_100(self):
        assert parse_review("Overall score: 64/100.")[0] == 64

    def test_non_numeric_json_score_falls_back(self):
        assert parse_review('{"score": "great"}')[0] == 0

    def test_unreadable_scores_zero(self, caplog):
        assert parse_review("Nice work overall.") == (0, "Nice work overall.")
        assert "Could not parse an outline score" in caplog.text


class TestOutlineNodes:
    def test_generate_prompt_includes_history(self, outline_state):
        outline_state["chat_history"] = [{"role": "user", "content": "Make it noir."}]
        prompt = build_generate_prompt(outline_state)
        assert "stolen time" in prompt
        assert "user: Make it noir." in prompt

    def test_generate_counts_iteration(self, ctx, outline_state, fake_llm):
        fake_llm.queue("  # Chapter 1: Tick\n...  ")
        result = generate_outline_node(outline_state, ctx)
        assert result == {"candidate": "# Chapter 1: Tick\n...", "iteration_count": 1}

    def test_revise_uses_feedback(self, ctx, outline_state, fake_llm):
        outline_state.update(candidate="draft one", review_feedback="Chapter 3 sags.", iteration_count=1)
        fake_llm.queue("draft two")
        result = revise_outline_node(outline_state, ctx)
        assert result["iteration_count"] == 2
        assert "Chapter 3 sags." in fake_llm.calls[0]["user"]
        assert "draft one" in fake_llm.calls[0]["user"]

    def test_empty_draft_sets_error(self, ctx, outline_state, fake_llm):
        fake_llm.queue("   ")
        result = generate_outline_node(outline_state, ctx)
        assert result["error_message"] == "Outline drafting failed: Screenwriter returned an empty outline."
        assert result["iteration_count"] == 1

    def test_review_records_first_best(self, ctx, outline_state, fake_llm):
        outline_state["candidate"] = "draft one"
        fake_llm.queue(json.dumps({"score": 60, "feedback": "More twists."}))
        result = review_outline_node(outline_state, ctx)
        assert result == {
            "review_score": 60,
            "review_feedback": "More twists.",
            "best_candidate": "draft one",
            "best_score": 60,
        }

    def test_review_keeps_better_earlier_draft(self, ctx, outline_state, fake_llm):
        outline_state.update(candidate="draft two", best_candidate="draft one", best_score=70)
        fake_llm.queue(json.dumps({"score": 65, "feedback": "Worse."}))
        result = review_outline_node(outline_state, ctx)
        assert "best_candidate" not in result

    def test_review_tie_keeps_earlier_draft(self, ctx, outline_state, fake_llm):
        outline_state.update(candidate="draft two", best_candidate="draft one", best_score=70)
        fake_llm.queue(json.dumps({"score": 70, "feedback": "Same."}))
        assert "best_score" not in review_outline_node(outline_state, ctx)

    def test_review_failure_sets_error(self, ctx, outline_state, fake_llm):
        fake_llm.queue(LLMTimeoutError("LLM call timed out"))
        result = review_outline_node(outline_state, ctx)
        assert result == {"error_message": "Outline review failed: LLM call timed out"}
