"""Workflow graph compiler and execution engine.

A pipeline is declared as named nodes joined by unconditional edges or by
router-selected conditional edges. ``WorkflowGraph.compile()`` validates the
declaration up front (one entry point, every router label mapped, no dead
ends, everything reachable) and lowers it onto a LangGraph ``StateGraph``.

Two rules are enforced by the engine rather than left to each pipeline:

* once ``error_message`` is set, every outgoing edge of a non-error node
  resolves to the declared error node;
* a node never raises past the engine. An unexpected exception becomes
  ``error_message``; only ConfigurationError escapes ``run()``.
"""

import logging
from enum import Enum
from typing import Any, Callable, Iterable, Literal, get_args, get_origin, get_type_hints

from langgraph.graph import END, StateGraph

from cflow.config import get_config
from cflow.errors import ConfigurationError
from cflow.progress import ProgressReporter

logger = logging.getLogger(__name__)

__all__ = ["END", "WorkflowGraph", "CompiledWorkflow", "router_labels"]

# Label the error guard returns; never produced by a pipeline router.
_ERROR_LABEL = "__error__"

# Fields left out of progress payloads: large and already known to the caller.
_PAYLOAD_EXCLUDE = {"source_text", "node_config_overrides", "chat_history"}

NodeFn = Callable[[dict], dict | None]
Router = Callable[[dict], str]


def _name(node) -> str:
    return node.value if isinstance(node, Enum) else node


def router_labels(router: Router, labels: Iterable | None = None) -> set[str]:
    """Return every label ``router`` can produce.

    Taken from ``labels`` when given, else from a ``Literal[...]`` return
    annotation. Raises ConfigurationError if neither is available.
    """
    if labels is not None:
        return {_name(label) for label in labels}
    try:
        hints = get_type_hints(router)
    except (NameError, TypeError):
        hints = getattr(router, "__annotations__", {})
    returns = hints.get("return")
    if get_origin(returns) is Literal:
        return set(get_args(returns))
    router_name = getattr(router, "__name__", repr(router))
    raise ConfigurationError(
        f"Router '{router_name}' must declare its labels with a Literal return annotation or labels=."
    )


class WorkflowGraph:
    """Declarative builder for a pipeline graph.

    Declaration problems are collected and reported together by compile(),
    so a malformed graph fails before any run starts.
    """

    def __init__(self, state_schema: type, node_ids: type[Enum] | None = None):
        self.state_schema = state_schema
        self.node_ids = node_ids
        self._nodes: dict[str, NodeFn] = {}
        self._edges: dict[str, str] = {}
        self._branches: dict[str, tuple[Router, dict[str, str], set[str]]] = {}
        self._entry_points: list[str] = []
        self._error_node: str | None = None
        self._problems: list[str] = []

    # --- declaration ---

    def add_node(self, node, fn: NodeFn) -> "WorkflowGraph":
        name = _name(node)
        if name == END:
            self._problems.append(f"'{END}' is reserved and cannot be a node name.")
        elif name in self._nodes:
            self._problems.append(f"Node '{name}' is declared twice.")
        else:
            self._nodes[name] = fn
        return self

    def set_entry_point(self, node) -> "WorkflowGraph":
        self._entry_points.append(_name(node))
        return self

    def set_error_node(self, node) -> "WorkflowGraph":
        if self._error_node is not None:
            self._problems.append("Error node is declared twice.")
        self._error_node = _name(node)
        return self

    def _claim_exit(self, source: str) -> bool:
        if source in self._edges or source in self._branches:
            self._problems.append(f"Node '{source}' has more than one outgoing edge declaration.")
            return False
        return True

    def add_edge(self, source, target) -> "WorkflowGraph":
        source = _name(source)
        if self._claim_exit(source):
            self._edges[source] = _name(target)
        return self

    def add_conditional_edges(
        self,
        source,
        router: Router,
        path_map: dict,
        labels: Iterable | None = None,
    ) -> "WorkflowGraph":
        source = _name(source)
        try:
            produced = router_labels(router, labels)
        except ConfigurationError as exc:
            self._problems.append(str(exc))
            return self
        if self._claim_exit(source):
            mapping = {_name(label): _name(target) for label, target in path_map.items()}
            self._branches[source] = (router, mapping, produced)
        return self

    # --- validation ---

    def _successors(self, name: str) -> set[str]:
        targets = set()
        if name in self._edges:
            targets.add(self._edges[name])
        if name in self._branches:
            targets.update(self._branches[name][1].values())
        if self._error_node and name != self._error_node:
            targets.add(self._error_node)
        return targets - {END}

    def validate(self) -> list[str]:
        """Return a list of declaration problems. Empty list = compilable."""
        issues = list(self._problems)
        declared = set(self._nodes)

        # --- Exactly one entry point ---
        if len(self._entry_points) != 1:
            issues.append(f"Expected exactly one entry point, found {len(self._entry_points)}.")
        for entry in self._entry_points:
            if entry not in declared:
                issues.append(f"Entry point '{entry}' is not a declared node.")

        if self._error_node is not None and self._error_node not in declared:
            issues.append(f"Error node '{self._error_node}' is not a declared node.")

        # --- Edges reference declared nodes ---
        for source, target in self._edges.items():
            if source not in declared:
                issues.append(f"Edge source '{source}' is not a declared node.")
            if target != END and target not in declared:
                issues.append(f"Edge '{source}' -> '{target}' targets an undeclared node.")

        # --- Routers are complete ---
        for source, (router, mapping, produced) in self._branches.items():
            router_name = getattr(router, "__name__", repr(router))
            if source not in declared:
                issues.append(f"Conditional edge source '{source}' is not a declared node.")
            unmapped = sorted(produced - set(mapping))
            if unmapped:
                issues.append(f"Router '{router_name}' on '{source}' has unmapped labels: {unmapped}.")
            for label, target in mapping.items():
                if target != END and target not in declared:
                    issues.append(
                        f"Router '{router_name}' maps '{label}' to undeclared node '{target}'."
                    )

        # --- No dead ends ---
        for name in sorted(declared - set(self._edges) - set(self._branches)):
            issues.append(f"Node '{name}' has no outgoing edge.")

        # --- Everything reachable from the entry ---
        if len(self._entry_points) == 1 and self._entry_points[0] in declared:
            seen = {self._entry_points[0]}
            frontier = [self._entry_points[0]]
            while frontier:
                for successor in self._successors(frontier.pop()):
                    if successor in declared and successor not in seen:
                        seen.add(successor)
                        frontier.append(successor)
            for name in sorted(declared - seen):
                issues.append(f"Node '{name}' is unreachable from entry '{self._entry_points[0]}'.")

        # --- Exhaustive node identifiers ---
        if self.node_ids is not None:
            expected = {member.value for member in self.node_ids}
            for name in sorted(expected - declared):
                issues.append(f"{self.node_ids.__name__}.{name} has no node implementation.")
            for name in sorted(declared - expected):
                issues.append(f"Node '{name}' is not a member of {self.node_ids.__name__}.")

        return issues

    # --- compilation ---

    def compile(
        self,
        reporter: ProgressReporter | None = None,
        recursion_limit: int | None = None,
    ) -> "CompiledWorkflow":
        """Validate the declaration and build an executable workflow.

        Raises ConfigurationError listing every problem found.
        """
        issues = self.validate()
        if issues:
            raise ConfigurationError("Invalid workflow graph: " + " ".join(issues))

        error_node = self._error_node
        builder = StateGraph(self.state_schema)
        for name, fn in self._nodes.items():
            builder.add_node(name, _instrument(name, fn, reporter))
        builder.set_entry_point(self._entry_points[0])

        for source, target in self._edges.items():
            if error_node is None or source == error_node:
                builder.add_edge(source, target)
            else:
                builder.add_conditional_edges(
                    source,
                    _guard_edge(source, target),
                    {target: target, _ERROR_LABEL: error_node},
                )

        for source, (router, mapping, _) in self._branches.items():
            path_map = dict(mapping)
            if error_node is not None and source != error_node:
                path_map[_ERROR_LABEL] = error_node
            builder.add_conditional_edges(
                source,
                _guard_router(source, router, mapping, error_node),
                path_map,
            )

        if recursion_limit is None:
            recursion_limit = get_config().get("recursion_limit", 500)
        return CompiledWorkflow(builder.compile(), dict(self._nodes), self._entry_points[0], recursion_limit)


def _guard_edge(source: str, target: str) -> Router:
    def route(state: dict) -> str:
        return _ERROR_LABEL if state.get("error_message") else target

    route.__name__ = f"after_{source}"
    return route


def _guard_router(source: str, router: Router, mapping: dict[str, str], error_node: str | None) -> Router:
    def route(state: dict) -> str:
        if error_node is not None and state.get("error_message"):
            return _ERROR_LABEL
        label = _name(router(state))
        if label not in mapping:
            raise ConfigurationError(f"Router on '{source}' returned unmapped label '{label}'.")
        return label

    route.__name__ = getattr(router, "__name__", f"route_after_{source}")
    return route


def _instrument(name: str, fn: NodeFn, reporter: ProgressReporter | None) -> NodeFn:
    """Wrap a node with progress events and the no-raise contract."""

    def node(state: dict) -> dict:
        workflow_id = state.get("workflow_id", "")
        if reporter is not None:
            reporter.node_status(workflow_id, name, "running")

        try:
            update = fn(state) or {}
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.exception("[%s] Node '%s' raised", workflow_id, name)
            update = {"error_message": f"{name} failed: {exc}"}

        if update.get("error_message") and not state.get("error_message"):
            update = {**update, "failed_node": name}
            if reporter is not None:
                reporter.node_status(workflow_id, name, "error", update["error_message"])
        elif reporter is not None:
            payload = {k: v for k, v in update.items() if k not in _PAYLOAD_EXCLUDE}
            reporter.node_status(workflow_id, name, "completed", result=payload)
        return update

    node.__name__ = name
    return node


class CompiledWorkflow:
    """Executable graph. Stateless between runs, so one instance serves many threads."""

    def __init__(self, graph, nodes: dict[str, NodeFn], entry_point: str, recursion_limit: int):
        self._graph = graph
        self._nodes = nodes
        self.entry_point = entry_point
        self.recursion_limit = recursion_limit

    @property
    def node_names(self) -> list[str]:
        return list(self._nodes)

    def run(self, entry_state: dict) -> dict:
        """Run from the entry node until END and return the final merged state."""
        return self._graph.invoke(entry_state, config={"recursion_limit": self.recursion_limit})

    def step(self, state: dict, node) -> dict:
        """Run a single node without routing and return the merged state."""
        updates = self._nodes[_name(node)](state) or {}
        return {**state, **updates}

    def get_graph(self) -> Any:
        """Return LangGraph's drawable view of the compiled graph."""
        return self._graph.get_graph()
