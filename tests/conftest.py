"""Shared fixtures for the ContentFlow test suite."""

import json

import pytest
from unittest.mock import patch

from cflow.context import WorkflowContext
from cflow.feedback import HumanFeedbackEntry, InMemoryFeedbackStore
from cflow.progress import InMemoryProgressChannel, ProgressReporter
from cflow.state import create_outline_state, create_quiz_state
from cflow.storage import InMemoryArtifactStore


class FakeLLM:
    """Returns scripted replies in call order and records every call."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls = []

    def queue(self, *replies):
        self.replies.extend(replies)
        return self

    def invoke(self, system_prompt, user_prompt, params):
        self.calls.append({"system": system_prompt, "user": user_prompt, "params": params})
        if not self.replies:
            raise AssertionError(f"Unexpected LLM call #{len(self.calls)}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeClock:
    """Monotonic clock that only moves when something sleeps on it."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedFeedbackStore(InMemoryFeedbackStore):
    """Answers each gate with the next scripted decision, as a reviewer would."""

    def __init__(self, decisions):
        super().__init__()
        self.decisions = list(decisions)

    def poll(self, workflow_id):
        entry = super().poll(workflow_id)
        if entry is None and self.decisions:
            decision = self.decisions.pop(0)
            note = None
            if isinstance(decision, tuple):
                decision, note = decision
            entry = HumanFeedbackEntry(workflow_id, decision, note)
            self.submit(workflow_id, entry)
        return entry


def quiz_reply(count, kind="single_choice"):
    """Author reply with ``count`` well-formed questions."""
    return json.dumps([
        {
            "type": kind,
            "question": f"Question {i}?",
            "options": ["A. one", "B. two", "C. three", "D. four"],
            "answer": "A",
            "explanation": f"Because {i}.",
        }
        for i in range(1, count + 1)
    ])


def review_reply(count, total=100):
    """Reviewer reply scoring ``count`` questions so that they add up to ``total``."""
    scores = [total // count] * count
    scores[-1] += total - sum(scores)
    return json.dumps({
        "questions": [{"question": f"Question {i}?", "score": s} for i, s in enumerate(scores, 1)],
        "scoreDistribution": {"single_choice": {"perQuestion": scores[0], "total": total}},
    })


@pytest.fixture
def base_state():
    """Minimal valid quiz PipelineState."""
    return create_quiz_state("wf-test", "Photosynthesis converts light into chemical energy.", 3)


@pytest.fixture
def outline_state():
    """Minimal valid outline PipelineState."""
    return create_outline_state("wf-outline", "A courier discovers the city's clocks run on stolen time.")


@pytest.fixture
def test_config():
    return {
        "node_models": {
            "classify": {"provider": "anthropic", "model": "test-haiku", "temperature": 0},
            "parse_questions": {"provider": "google", "model": "test-flash", "temperature": 0},
            "generate_questions": {"provider": "google", "model": "test-flash", "temperature": 0.3},
            "review_questions": {"provider": "anthropic", "model": "test-sonnet", "temperature": 0},
            "generate_outline": {"provider": "google", "model": "test-flash", "temperature": 0.8},
            "revise_outline": {"provider": "google", "model": "test-flash", "temperature": 0.8},
            "review_outline": {"provider": "anthropic", "model": "test-sonnet", "temperature": 0.3},
        },
        "llm_timeout": 5,
        "classifier_prefix_chars": 3000,
        "default_num_questions": 3,
        "max_feedback_retries": 5,
        "score_total": 100,
        "score_tolerance": 0,
        "hitl_enabled": True,
        "feedback_poll_interval": 1.0,
        "feedback_timeout": 3,
        "feedback_store": "memory",
        "acceptance_threshold": 80,
        "max_refinement_iterations": 3,
        "guidance_enabled": False,
        "output_dir": "./output",
        "write_markdown": False,
        "recursion_limit": 500,
        "preview_workers": 2,
        "retained_results": 100,
    }


@pytest.fixture
def mock_config(test_config):
    """Patch the config singleton with test-friendly values."""
    with patch("cflow.config._config", test_config):
        yield test_config


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def ctx(mock_config, fake_llm, fake_clock):
    """WorkflowContext wired to in-memory collaborators and a fake clock."""
    return WorkflowContext(
        llm=fake_llm,
        feedback_store=InMemoryFeedbackStore(),
        artifact_store=InMemoryArtifactStore(),
        reporter=ProgressReporter(InMemoryProgressChannel()),
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
