"""Progress reporting — node lifecycle events pushed to a broadcast channel.

Publishing is fire-and-forget: a channel failure is logged and dropped, it
never fails the run. The channel itself is key-scoped by workflow id so
concurrent runs never see each other's events.
"""

import logging
import queue
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Protocol

logger = logging.getLogger(__name__)

NodeStatus = Literal["pending", "running", "completed", "error"]
EventType = Literal["workflow_progress", "workflow_completed", "workflow_error"]


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ProgressEvent:
    workflow_id: str
    node_type: str
    node_status: NodeStatus
    message: str | None = None
    result_payload: Any = None
    event: EventType = "workflow_progress"
    timestamp: int = field(default_factory=_now_ms)

    def to_dict(self) -> dict:
        return asdict(self)


class ProgressChannel(Protocol):
    def publish(self, workflow_id: str, event: ProgressEvent) -> None:
        ...


class InMemoryProgressChannel:
    """In-process broadcast: every subscriber of a workflow id gets its own queue."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[queue.Queue]] = {}

    def subscribe(self, workflow_id: str) -> queue.Queue:
        q: queue.Queue = queue.Queue()
        with self._lock:
            self._subscribers.setdefault(workflow_id, []).append(q)
        return q

    def unsubscribe(self, workflow_id: str, q: queue.Queue) -> None:
        with self._lock:
            subscribers = self._subscribers.get(workflow_id, [])
            if q in subscribers:
                subscribers.remove(q)
            if not subscribers:
                self._subscribers.pop(workflow_id, None)

    def publish(self, workflow_id: str, event: ProgressEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(workflow_id, []))
        for q in subscribers:
            q.put_nowait(event)


class ProgressReporter:
    """Emits ProgressEvents for one or many runs through a channel."""

    def __init__(self, channel: ProgressChannel | None = None):
        self.channel = channel

    def _publish(self, event: ProgressEvent) -> None:
        if self.channel is None:
            return
        try:
            self.channel.publish(event.workflow_id, event)
        except Exception as exc:
            logger.warning(
                "Dropped progress event %s/%s for workflow %s: %r",
                event.node_type, event.node_status, event.workflow_id, exc,
            )

    def node_status(
        self,
        workflow_id: str,
        node_type: str,
        status: NodeStatus,
        message: str | None = None,
        result: Any = None,
    ) -> None:
        logger.debug("[%s] %s: %s", workflow_id, node_type, status)
        self._publish(ProgressEvent(workflow_id, node_type, status, message, result))

    def complete(self, workflow_id: str, result: Any = None) -> None:
        logger.info("[%s] workflow completed", workflow_id)
        self._publish(ProgressEvent(
            workflow_id, "workflow", "completed", result_payload=result, event="workflow_completed",
        ))

    def error(self, workflow_id: str, message: str, node_type: str | None = None) -> None:
        logger.error("[%s] workflow failed at %s: %s", workflow_id, node_type or "unknown", message)
        self._publish(ProgressEvent(
            workflow_id, node_type or "unknown", "error", message=message, event="workflow_error",
        ))
