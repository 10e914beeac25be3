"""Orchestration entrypoints: blocking runs, detached runs and classify-only previews.

A detached run returns its workflow id immediately; from then on the only
way to observe it is the progress channel (or ``wait()`` in-process).
"""

import logging
import secrets
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from cflow.agents.classifier import classify_node
from cflow.config import get_config
from cflow.context import WorkflowContext, build_default_context
from cflow.errors import DocumentLoadError, RecordStateError
from cflow.feedback import HumanFeedbackEntry
from cflow.graph import CompiledWorkflow
from cflow.loader import load_text
from cflow.records import WorkflowExecutionRecord
from cflow.state import ChatMessage, PipelineState, create_outline_state, create_quiz_state
from cflow.utils.validator import validate_input, validate_item_count
from cflow.workflows.outline import build_outline_graph
from cflow.workflows.quiz import build_quiz_graph

logger = logging.getLogger(__name__)


def new_workflow_id() -> str:
    """Return a URL-safe random workflow id."""
    return secrets.token_urlsafe(16)[:21]


class WorkflowRunner:
    """Runs quiz and outline pipelines against one set of collaborators.

    Each detached pipeline run gets its own thread, since a run may sit at the
    feedback gate for the whole feedback timeout. Classify-only previews are
    short and share a small pool of ``max_workers`` threads.
    """

    def __init__(self, ctx: WorkflowContext | None = None, max_workers: int | None = None):
        config = get_config()
        self.ctx = ctx or build_default_context()
        self.quiz_graph = build_quiz_graph(self.ctx)
        self.outline_graph = build_outline_graph(self.ctx)
        self._preview_executor = ThreadPoolExecutor(
            max_workers=max_workers or config.get("preview_workers", 4),
            thread_name_prefix="cflow-preview",
        )
        self._retained_results = config.get("retained_results", 100)
        self._futures: dict[str, Future] = {}
        self._finished: OrderedDict[str, None] = OrderedDict()
        self._threads: set[threading.Thread] = set()
        self._lock = threading.Lock()

    # --- state preparation ---

    def _claim_id(self, workflow_id: str | None) -> str:
        workflow_id = workflow_id or new_workflow_id()
        with self._lock:
            taken = workflow_id in self._futures
        if taken or self.ctx.records.get(workflow_id) is not None:
            raise RecordStateError(f"Execution record '{workflow_id}' already exists.")
        return workflow_id

    def _prepare_quiz(self, text, item_count, node_config, workflow_id=None) -> tuple[PipelineState, dict]:
        source_text = validate_input(text)
        count = validate_item_count(item_count, get_config().get("default_num_questions", 15))
        state = create_quiz_state(self._claim_id(workflow_id), source_text, count, node_config)
        return state, {
            "text_length": len(source_text),
            "num_questions": count,
            "node_config": node_config or {},
        }

    def _prepare_outline(self, idea, chat_history, node_config, workflow_id=None) -> tuple[PipelineState, dict]:
        state = create_outline_state(
            self._claim_id(workflow_id), validate_input(idea), chat_history, node_config,
        )
        return state, {
            "idea": state["source_text"],
            "chat_turns": len(state["chat_history"]),
            "node_config": node_config or {},
        }

    # --- execution ---

    def _execute(self, graph: CompiledWorkflow, state: PipelineState, record_input: dict) -> PipelineState:
        workflow_id = state["workflow_id"]
        # The record goes to running only once the graph is about to start.
        self.ctx.records.create(workflow_id, state["pipeline_kind"], record_input)
        logger.info("[%s] Starting %s workflow", workflow_id, state["pipeline_kind"])
        try:
            final_state = graph.run(state)
        except Exception as exc:
            # Only engine faults and ConfigurationError reach here; nodes never raise.
            record = self.ctx.records.get(workflow_id)
            if record is not None and record.status == "running":
                self.ctx.records.mark_failed(workflow_id, str(exc))
            self.ctx.reporter.error(workflow_id, str(exc))
            raise
        logger.info(
            "[%s] Finished %s workflow (%s)",
            workflow_id, state["pipeline_kind"], "failed" if final_state.get("error_message") else "ok",
        )
        return final_state

    def _track(self, workflow_id: str, future: Future) -> None:
        with self._lock:
            self._futures[workflow_id] = future
        future.add_done_callback(lambda _: self._on_done(workflow_id))

    def _on_done(self, workflow_id: str) -> None:
        # Results nobody collects with wait() are dropped oldest first.
        with self._lock:
            if workflow_id not in self._futures:
                return
            self._finished[workflow_id] = None
            while len(self._finished) > self._retained_results:
                stale, _ = self._finished.popitem(last=False)
                self._futures.pop(stale, None)

    def _spawn(self, workflow_id: str, fn, *args) -> str:
        future: Future = Future()
        self._track(workflow_id, future)

        def _work():
            try:
                if future.set_running_or_notify_cancel():
                    try:
                        result = fn(*args)
                    except BaseException as exc:
                        future.set_exception(exc)
                    else:
                        future.set_result(result)
            finally:
                with self._lock:
                    self._threads.discard(threading.current_thread())

        thread = threading.Thread(target=_work, name=f"cflow-run-{workflow_id}", daemon=True)
        with self._lock:
            self._threads.add(thread)
        thread.start()
        return workflow_id

    # --- quiz pipeline ---

    def run_workflow(self, text: str, item_count: int | None = None, node_config: dict | None = None) -> PipelineState:
        """Run the quiz pipeline to completion and return the final state."""
        state, record_input = self._prepare_quiz(text, item_count, node_config)
        return self._execute(self.quiz_graph, state, record_input)

    def run_workflow_async(
        self,
        text: str,
        item_count: int | None = None,
        node_config: dict | None = None,
        workflow_id: str | None = None,
    ) -> str:
        """Start the quiz pipeline in the background and return its workflow id.

        Pass ``workflow_id`` to subscribe to progress before the run starts.
        The execution record appears once the run's thread starts the graph.
        """
        state, record_input = self._prepare_quiz(text, item_count, node_config, workflow_id)
        return self._spawn(state["workflow_id"], self._execute, self.quiz_graph, state, record_input)

    def run_workflow_from_file(
        self,
        file_ref: str | Path,
        item_count: int | None = None,
        node_config: dict | None = None,
    ) -> PipelineState:
        """Load a document and run the quiz pipeline on it.

        A load failure raises DocumentLoadError before any record is created.
        """
        return self.run_workflow(load_text(file_ref), item_count, node_config)

    def classify_only(self, file_ref: str | Path) -> dict:
        """Load and classify a document without generating anything.

        Returns {"label", "subject"} plus "error" when loading or classifying failed.
        """
        try:
            text = load_text(file_ref)
        except DocumentLoadError as exc:
            logger.error("Classify-only load failed: %s", exc)
            return {"label": "unknown", "subject": "unknown", "error": str(exc)}

        state = create_quiz_state(new_workflow_id(), text, 0)
        update = classify_node(state, self.ctx)
        result = {"label": update["classification_label"], "subject": update["subject_tag"]}
        if update.get("error_message"):
            result["error"] = update["error_message"]
        return result

    def classify_only_async(self, file_ref: str | Path, workflow_id: str | None = None) -> str:
        """Run classify_only in the background, reporting through the progress channel."""
        workflow_id = self._claim_id(workflow_id)
        self._track(workflow_id, self._preview_executor.submit(self._classify_detached, workflow_id, file_ref))
        return workflow_id

    def _classify_detached(self, workflow_id: str, file_ref) -> dict:
        reporter = self.ctx.reporter
        reporter.node_status(workflow_id, "classify", "running", "Analysing file content")
        result = self.classify_only(file_ref)
        if result.get("error"):
            reporter.node_status(workflow_id, "classify", "error", result["error"])
            reporter.error(workflow_id, result["error"], "classify")
        else:
            reporter.node_status(
                workflow_id, "classify", "completed", f"Classified as {result['label']}", result,
            )
            reporter.complete(workflow_id, result)
        return result

    def submit_feedback(self, workflow_id: str, decision: str, revision_note: str | None = None) -> None:
        """Hand a reviewer decision to the run waiting on ``workflow_id``."""
        entry = HumanFeedbackEntry(workflow_id, decision, revision_note)
        self.ctx.feedback_store.submit(workflow_id, entry)

    # --- outline pipeline ---

    def run_outline_workflow(
        self,
        idea: str,
        chat_history: list[ChatMessage] | None = None,
        node_config: dict | None = None,
    ) -> PipelineState:
        """Run the outline pipeline to completion and return the final state."""
        state, record_input = self._prepare_outline(idea, chat_history, node_config)
        return self._execute(self.outline_graph, state, record_input)

    def run_outline_workflow_async(
        self,
        idea: str,
        chat_history: list[ChatMessage] | None = None,
        node_config: dict | None = None,
        workflow_id: str | None = None,
    ) -> str:
        """Start the outline pipeline in the background and return its workflow id."""
        state, record_input = self._prepare_outline(idea, chat_history, node_config, workflow_id)
        return self._spawn(state["workflow_id"], self._execute, self.outline_graph, state, record_input)

    # --- observation ---

    def get_record(self, workflow_id: str) -> WorkflowExecutionRecord | None:
        return self.ctx.records.get(workflow_id)

    def wait(self, workflow_id: str, timeout: float | None = None):
        """Block until a detached run finishes and return its result.

        Re-raises whatever the run raised. Raises KeyError for an unknown id,
        including one whose result was already collected.
        """
        with self._lock:
            future = self._futures[workflow_id]
        try:
            return future.result(timeout=timeout)
        finally:
            if future.done():
                with self._lock:
                    self._futures.pop(workflow_id, None)
                    self._finished.pop(workflow_id, None)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting previews; with ``wait`` also join every detached run."""
        self._preview_executor.shutdown(wait=wait)
        if wait:
            with self._lock:
                threads = list(self._threads)
            for thread in threads:
                thread.join()
