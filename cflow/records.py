"""Workflow execution records — one per run, finalized exactly once."""

import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from cflow.errors import RecordStateError

RecordStatus = Literal["running", "completed", "failed", "stopped"]


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class WorkflowExecutionRecord:
    id: str
    pipeline_kind: str
    status: RecordStatus
    input: dict
    output: Any = None
    error: str | None = None
    started_at: str = ""
    completed_at: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class ExecutionRecordStore:
    """Thread-safe in-process record store keyed by workflow id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: dict[str, WorkflowExecutionRecord] = {}

    def create(self, workflow_id: str, pipeline_kind: str, input: dict) -> WorkflowExecutionRecord:
        record = WorkflowExecutionRecord(
            id=workflow_id,
            pipeline_kind=pipeline_kind,
            status="running",
            input=input,
            started_at=_utcnow(),
        )
        with self._lock:
            if workflow_id in self._records:
                raise RecordStateError(f"Execution record '{workflow_id}' already exists.")
            self._records[workflow_id] = record
        return record

    def get(self, workflow_id: str) -> WorkflowExecutionRecord | None:
        with self._lock:
            return self._records.get(workflow_id)

    def _finalize(self, workflow_id: str, status: RecordStatus, **fields) -> WorkflowExecutionRecord:
        with self._lock:
            record = self._records.get(workflow_id)
            if record is None:
                raise RecordStateError(f"No execution record '{workflow_id}'.")
            if record.status != "running":
                raise RecordStateError(
                    f"Execution record '{workflow_id}' is already {record.status}."
                )
            record.status = status
            record.completed_at = _utcnow()
            for name, value in fields.items():
                setattr(record, name, value)
            return record

    def mark_completed(self, workflow_id: str, output: Any) -> WorkflowExecutionRecord:
        return self._finalize(workflow_id, "completed", output=output)

    def mark_failed(self, workflow_id: str, error: str) -> WorkflowExecutionRecord:
        return self._finalize(workflow_id, "failed", error=error)
