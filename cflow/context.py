"""Run-time collaborators shared by every node of a pipeline."""

import time
from dataclasses import dataclass, field
from typing import Callable

from cflow.config import get_config, project_path
from cflow.feedback import FeedbackStore, make_feedback_store
from cflow.llm import LLM, LangChainLLM
from cflow.progress import InMemoryProgressChannel, ProgressReporter
from cflow.records import ExecutionRecordStore
from cflow.storage import ArtifactStore, JsonFileArtifactStore


@dataclass
class WorkflowContext:
    llm: LLM
    feedback_store: FeedbackStore
    artifact_store: ArtifactStore
    records: ExecutionRecordStore = field(default_factory=ExecutionRecordStore)
    reporter: ProgressReporter = field(default_factory=ProgressReporter)
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], None] = time.sleep
    # None defers to the hitl_enabled config key.
    hitl_enabled: bool | None = None

    def gate_enabled(self) -> bool:
        if self.hitl_enabled is not None:
            return self.hitl_enabled
        return get_config().get("hitl_enabled", True)


def build_default_context(hitl_enabled: bool | None = None) -> WorkflowContext:
    """Wire the production collaborators named in config.yaml."""
    config = get_config()
    return WorkflowContext(
        llm=LangChainLLM(),
        feedback_store=make_feedback_store(),
        artifact_store=JsonFileArtifactStore(
            project_path(config.get("output_dir", "./output")),
            write_markdown=config.get("write_markdown", False),
        ),
        reporter=ProgressReporter(InMemoryProgressChannel()),
        hitl_enabled=hitl_enabled,
    )
