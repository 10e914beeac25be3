"""Human feedback rendezvous — the only point where a run waits on the outside.

The UI submits one decision per workflow id; the gate node polls the store,
consumes the entry and merges it into the pipeline state. If nobody answers
within the timeout the gate accepts, so an abandoned session cannot stall a
run forever.
"""

import json
import logging
import os
import threading
import time
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Callable, Protocol

import redis
from tenacity import Retrying, retry_if_result, wait_fixed

from cflow.config import get_config
from cflow.state import FEEDBACK_DECISIONS, FeedbackDecision, PipelineState

if TYPE_CHECKING:
    from cflow.context import WorkflowContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HumanFeedbackEntry:
    workflow_id: str
    decision: FeedbackDecision
    revision_note: str | None = None

    def __post_init__(self):
        if self.decision not in FEEDBACK_DECISIONS:
            raise ValueError(
                f"Invalid feedback decision '{self.decision}'. Must be one of: {FEEDBACK_DECISIONS}"
            )


class FeedbackStore(Protocol):
    def submit(self, workflow_id: str, entry: HumanFeedbackEntry) -> None:
        ...

    def poll(self, workflow_id: str) -> HumanFeedbackEntry | None:
        ...

    def consume(self, workflow_id: str) -> None:
        ...


class InMemoryFeedbackStore:
    """Process-local store. The lock is held only for the duration of one call.

    Entries expire after ``ttl`` seconds, like the Redis store, so a decision
    submitted for a run that never polls again does not linger.
    """

    def __init__(self, ttl: float = 600, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[HumanFeedbackEntry, float]] = {}

    def _purge_expired(self, now: float) -> None:
        for workflow_id in [wid for wid, (_, expires) in self._entries.items() if expires <= now]:
            del self._entries[workflow_id]

    def submit(self, workflow_id: str, entry: HumanFeedbackEntry) -> None:
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            self._entries[workflow_id] = (entry, now + self.ttl)

    def poll(self, workflow_id: str) -> HumanFeedbackEntry | None:
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            found = self._entries.get(workflow_id)
        return found[0] if found else None

    def consume(self, workflow_id: str) -> None:
        with self._lock:
            self._entries.pop(workflow_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisFeedbackStore:
    """Store shared between processes. Entries expire after ``ttl`` seconds."""

    KEY_PREFIX = "cflow:feedback:"

    def __init__(self, client: redis.Redis | None = None, ttl: int = 600):
        self.client = client or redis.from_url(
            os.getenv("REDIS_URL", "redis://localhost:6379/0"), decode_responses=True,
        )
        self.ttl = ttl

    def _key(self, workflow_id: str) -> str:
        return f"{self.KEY_PREFIX}{workflow_id}"

    def submit(self, workflow_id: str, entry: HumanFeedbackEntry) -> None:
        self.client.set(self._key(workflow_id), json.dumps(asdict(entry)), ex=self.ttl)

    def poll(self, workflow_id: str) -> HumanFeedbackEntry | None:
        raw = self.client.get(self._key(workflow_id))
        if raw is None:
            return None
        return HumanFeedbackEntry(**json.loads(raw))

    def consume(self, workflow_id: str) -> None:
        self.client.delete(self._key(workflow_id))


def make_feedback_store() -> FeedbackStore:
    """Build the store named by the ``feedback_store`` config key."""
    config = get_config()
    kind = config.get("feedback_store", "memory")
    ttl = config.get("feedback_ttl", 600)
    if kind == "memory":
        return InMemoryFeedbackStore(ttl=ttl)
    if kind == "redis":
        return RedisFeedbackStore(ttl=ttl)
    raise ValueError(f"Unknown feedback_store '{kind}'. Must be 'memory' or 'redis'.")


def poll_feedback(
    store: FeedbackStore,
    workflow_id: str,
    interval: float,
    timeout: float,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> HumanFeedbackEntry | None:
    """Poll ``store`` every ``interval`` seconds until an entry arrives or ``timeout`` passes.

    A found entry is consumed before it is returned. Returns None on timeout.
    """
    started = clock()

    def _deadline_passed(retry_state) -> bool:
        return clock() - started >= timeout

    def _take() -> HumanFeedbackEntry | None:
        entry = store.poll(workflow_id)
        if entry is not None:
            store.consume(workflow_id)
        return entry

    retrying = Retrying(
        stop=_deadline_passed,
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda entry: entry is None),
        sleep=sleep,
        retry_error_callback=lambda retry_state: None,
    )
    return retrying(_take)


def wait_for_feedback(state: PipelineState, ctx: "WorkflowContext") -> dict:
    """Gate node: block until the reviewer decides, defaulting to Accept on timeout."""
    config = get_config()
    workflow_id = state["workflow_id"]

    if not ctx.gate_enabled():
        return {"user_feedback_decision": "Accept", "revision_note": None}

    timeout = config.get("feedback_timeout", 90)
    ctx.reporter.node_status(
        workflow_id, "wait_feedback", "pending",
        f"Waiting up to {timeout}s for reviewer feedback",
        {"questions": state.get("generated_items", []), "scoreDistribution": state.get("score_distribution")},
    )

    entry = poll_feedback(
        ctx.feedback_store,
        workflow_id,
        interval=config.get("feedback_poll_interval", 1.0),
        timeout=timeout,
        clock=ctx.clock,
        sleep=ctx.sleep,
    )

    if entry is None:
        # A decision landing after the deadline must not leak into a later gate.
        ctx.feedback_store.consume(workflow_id)
        logger.info("[%s] No feedback within %ss, accepting.", workflow_id, timeout)
        return {"user_feedback_decision": "Accept", "revision_note": None}

    logger.info("[%s] Feedback received: %s", workflow_id, entry.decision)
    return {"user_feedback_decision": entry.decision, "revision_note": entry.revision_note}
