"""Terminal bookkeeping shared by every pipeline.

The execution record moves out of ``running`` exactly once: from the
persister on success or from the error node on failure.
"""

import logging
from typing import Any

from cflow.state import PipelineState

logger = logging.getLogger(__name__)


def finish_success(state: PipelineState, ctx, output: Any) -> None:
    """Mark the run's record completed and broadcast the result."""
    workflow_id = state["workflow_id"]
    if ctx.records.get(workflow_id) is not None:
        ctx.records.mark_completed(workflow_id, output)
    else:
        logger.debug("[%s] No execution record to complete.", workflow_id)
    ctx.reporter.complete(workflow_id, output)


def handle_error_node(state: PipelineState, ctx) -> dict:
    """Error terminal: record the failure and broadcast {workflow_id, node_type, message}."""
    workflow_id = state["workflow_id"]
    message = state.get("error_message") or "Workflow failed."
    if ctx.records.get(workflow_id) is not None:
        ctx.records.mark_failed(workflow_id, message)
    else:
        logger.debug("[%s] No execution record to fail.", workflow_id)
    ctx.reporter.error(workflow_id, message, state.get("failed_node"))
    return {}
