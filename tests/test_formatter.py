"""Tests for cflow.utils.formatter.render_markdown."""

from cflow.utils.formatter import render_markdown


def _quiz_artifact():
    return {
        "kind": "quiz",
        "questions": [
            {"kind": "single_choice", "prompt": "What is 2 + 2?", "options": ["A. 3", "B. 4"],
             "correct_answer": "B", "explanation": "Basic addition.", "score": 60},
            {"kind": "true_false", "prompt": "The sun is a star.", "options": ["True", "False"],
             "correct_answer": "True", "score": 40},
        ],
        "scoreDistribution": {
            "single_choice": {"perQuestion": 60, "total": 60},
            "true_false": {"perQuestion": 40, "total": 40},
        },
        "meta": {"classification": "note", "subject": "math", "attempts": 2},
    }


class TestRenderQuiz:
    def test_header_and_meta(self):
        md = render_markdown(_quiz_artifact())
        assert md.startswith("# Quiz")
        assert "- **Subject:** math" in md
        assert "- **Generation attempts:** 2" in md
        assert "- **Total score:** 100" in md

    def test_questions_numbered_with_scores(self):
        md = render_markdown(_quiz_artifact())
        assert "## 1. Single choice (60 pts)" in md
        assert "## 2. True / False (40 pts)" in md
        assert "- B. 4" in md
        assert "**Answer:** B" in md
        assert "*Basic addition.*" in md

    def test_score_distribution_table(self):
        md = render_markdown(_quiz_artifact())
        assert "## Score Distribution" in md
        assert "| Single choice | 60 | 60 |" in md

    def test_unscored_batch_has_no_total(self):
        data = _quiz_artifact()
        for q in data["questions"]:
            del q["score"]
        data["scoreDistribution"] = None
        md = render_markdown(data)
        assert "Total score" not in md
        assert "## 1. Single choice\n" in md
        assert "Score Distribution" not in md

    def test_empty_data_gracefully(self):
        md = render_markdown({})
        assert md.startswith("# Quiz")


class TestRenderOutline:
    def test_outline_rendered_with_meta(self):
        md = render_markdown({
            "kind": "outline",
            "outline": "# Chapter 1: The Clock",
            "meta": {"idea": "Stolen time", "score": 85, "iterations": 2, "fallback": False},
        })
        assert md.startswith("# Story Outline")
        assert "- **Review score:** 85/100" in md
        assert "# Chapter 1: The Clock" in md
        assert "best-scoring draft kept" not in md

    def test_fallback_note(self):
        md = render_markdown({
            "kind": "outline",
            "outline": "draft",
            "meta": {"idea": "x", "score": 70, "iterations": 3, "fallback": True},
        })
        assert "best-scoring draft kept" in md
