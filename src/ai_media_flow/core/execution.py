"""
Execution Engine - Dependency-driven async scheduling of a node graph.

A run validates the graph, seeds a state per node and drains a ready
queue with a pool of worker tasks. Each worker hands one node at a time to
the Dispatcher. All state changes go through ``_Run._transition`` which
only ever executes on the event loop, so each read-decide-write on a node
is atomic.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Iterable, Mapping

from ai_media_flow.core.graph import Edge, Graph, NodeId
from ai_media_flow.core.node_types import NodeRegistry, NodeType
from ai_media_flow.core.settings import EngineSettings
from ai_media_flow.core.validation import GraphValidationError, validate
from ai_media_flow.providers.base import DispatchError
from ai_media_flow.providers.credentials import CredentialResolver
from ai_media_flow.providers.dispatch import Dispatcher

logger = logging.getLogger(__name__)


class NodeStatus(Enum):
    """Status of one node within a run."""
    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    BLOCKED = "blocked"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({
    NodeStatus.SUCCEEDED,
    NodeStatus.FAILED,
    NodeStatus.BLOCKED,
    NodeStatus.SKIPPED,
})

# Error kinds that do not come from the dispatch taxonomy
CANCELLED = "cancelled"
UPSTREAM_FAILED = "upstream_failed"
MISSING_INPUT = "missing_input"
ABORTED = "aborted"


@dataclass(frozen=True)
class ErrorDescriptor:
    """Why a node failed or was blocked."""
    kind: str
    message: str
    node_id: NodeId | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "nodeId": self.node_id}


@dataclass(frozen=True)
class ExecutionState:
    """Snapshot of one node's state. Replaced, never mutated, on transition."""
    status: NodeStatus = NodeStatus.PENDING
    outputs: dict[str, Any] | None = None
    error: ErrorDescriptor | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": self.status.value}
        if self.outputs is not None:
            result["outputs"] = sorted(self.outputs)
        if self.error is not None:
            result["error"] = self.error.to_dict()
        return result


@dataclass(frozen=True)
class StateTransition:
    """One state change, as delivered to listeners."""
    node_id: NodeId
    previous: NodeStatus
    current: NodeStatus
    state: ExecutionState
    timestamp: float = field(default_factory=time.monotonic)


class InternalError(Exception):
    """
    An executor raised something other than a DispatchError.

    This is a programming error, not a backend failure, and aborts the run.
    """

    def __init__(self, node_id: NodeId, original: BaseException):
        super().__init__(
            f"Node {node_id} raised {type(original).__name__}: {original}"
        )
        self.node_id = node_id
        self.original = original


TransitionListener = Callable[[StateTransition], None]


# ============================================================================
# Run
# ============================================================================

class _Run:
    """State machine of one execution. Owned by the loop it was started on."""

    def __init__(
        self,
        graph: Graph,
        node_ids: list[NodeId],
        types: dict[NodeId, NodeType],
        dispatcher: Dispatcher,
        credentials: CredentialResolver,
        concurrency_limit: int,
    ):
        self.order = node_ids
        self.data: dict[NodeId, dict[str, Any]] = {
            node_id: dict(graph.get_node(node_id).data) for node_id in node_ids
        }
        self.locked = {node_id for node_id in node_ids if graph.is_locked(node_id)}
        self.types = types
        self.dispatcher = dispatcher
        self.credentials = credentials
        self.concurrency_limit = concurrency_limit

        self.states: dict[NodeId, ExecutionState] = {
            node_id: ExecutionState() for node_id in node_ids
        }
        self.incoming: dict[NodeId, list[Edge]] = {node_id: [] for node_id in node_ids}
        self.dependents: dict[NodeId, list[NodeId]] = {node_id: [] for node_id in node_ids}
        for edge in graph.edges:
            if edge.target_node_id in self.incoming and edge.source_node_id in self.states:
                self.incoming[edge.target_node_id].append(edge)
                if edge.target_node_id not in self.dependents[edge.source_node_id]:
                    self.dependents[edge.source_node_id].append(edge.target_node_id)

        self.history: list[StateTransition] = []
        self.listeners: list[TransitionListener] = []
        self.cancel_requested = asyncio.Event()
        self.finished = asyncio.Event()
        self.changed = asyncio.Event()
        self.closed = False
        self.internal_error: InternalError | None = None

        self._ready: asyncio.Queue[NodeId] = asyncio.Queue()
        self._remaining = len(node_ids)
        if not node_ids:
            self.finished.set()
        self.started_at = time.monotonic()
        self.ended_at: float | None = None

    # -------------------------------------------------------------------------
    # State ownership
    # -------------------------------------------------------------------------

    def _transition(
        self,
        node_id: NodeId,
        status: NodeStatus,
        outputs: dict[str, Any] | None = None,
        error: ErrorDescriptor | None = None,
    ) -> None:
        previous = self.states[node_id].status
        if previous.is_terminal:
            raise RuntimeError(f"Node {node_id} is already {previous.value}")

        state = ExecutionState(status, outputs, error)
        self.states[node_id] = state
        transition = StateTransition(node_id, previous, status, state)
        self.history.append(transition)

        for listener in list(self.listeners):
            try:
                listener(transition)
            except Exception:
                logger.exception("Transition listener failed")

        changed, self.changed = self.changed, asyncio.Event()
        changed.set()

        if status is NodeStatus.READY:
            self._ready.put_nowait(node_id)
        if status.is_terminal:
            self._remaining -= 1
            if self._remaining == 0:
                self.finished.set()

    def _settle(self, node_ids: Iterable[NodeId]) -> None:
        """Re-evaluate pending nodes until no further decision can be made."""
        worklist = list(node_ids)
        while worklist:
            node_id = worklist.pop(0)
            if self.states[node_id].status is not NodeStatus.PENDING:
                continue
            decision = self._evaluate(node_id)
            if decision is None:
                continue
            status, error = decision
            self._transition(node_id, status, error=error)
            if status.is_terminal:
                worklist.extend(self.dependents[node_id])

    def _evaluate(
        self, node_id: NodeId
    ) -> tuple[NodeStatus, ErrorDescriptor | None] | None:
        """
        Decide Ready or Blocked for a pending node, or None to keep waiting.

        A required handle is blocked as soon as one of its producers ends in
        anything but Succeeded. Optional handles never block.
        """
        node_type = self.types[node_id]
        edges = self.incoming[node_id]
        by_handle: dict[str, list[Edge]] = {}
        for edge in edges:
            by_handle.setdefault(edge.target_handle, []).append(edge)

        for inp in node_type.required_inputs():
            if inp.name not in by_handle:
                return NodeStatus.BLOCKED, ErrorDescriptor(
                    MISSING_INPUT, f"Required input '{inp.name}' is not connected", node_id
                )
            for edge in by_handle[inp.name]:
                producer = self.states[edge.source_node_id].status
                if producer.is_terminal and producer is not NodeStatus.SUCCEEDED:
                    return NodeStatus.BLOCKED, ErrorDescriptor(
                        UPSTREAM_FAILED,
                        f"Input '{inp.name}' depends on {edge.source_node_id}, "
                        f"which is {producer.value}",
                        node_id,
                    )

        if not all(self.states[e.source_node_id].status.is_terminal for e in edges):
            return None

        if node_type.require_any_of:
            fed = {
                e.target_handle for e in edges
                if self.states[e.source_node_id].status is NodeStatus.SUCCEEDED
            }
            if not fed.intersection(node_type.require_any_of):
                wanted = " or ".join(node_type.require_any_of)
                return NodeStatus.BLOCKED, ErrorDescriptor(
                    MISSING_INPUT, f"Needs a {wanted} input", node_id
                )

        return NodeStatus.READY, None

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def seed(self) -> None:
        for node_id in self.order:
            if node_id in self.locked:
                self._transition(node_id, NodeStatus.SKIPPED)
        self._settle(
            node_id for node_id in self.order
            if self.states[node_id].status is NodeStatus.PENDING
        )

    def collect_inputs(self, node_id: NodeId) -> dict[str, Any]:
        """Gather values from succeeded producers, keyed by input handle."""
        node_type = self.types[node_id]
        inputs: dict[str, Any] = {}
        for edge in self.incoming[node_id]:
            state = self.states[edge.source_node_id]
            if state.status is not NodeStatus.SUCCEEDED or not state.outputs:
                continue
            value = state.outputs.get(edge.source_handle)
            if value is None:
                continue
            inp = node_type.get_input(edge.target_handle)
            if inp is not None and inp.accepts_many:
                values = inputs.setdefault(edge.target_handle, [])
                if isinstance(value, list):
                    values.extend(value)
                else:
                    values.append(value)
            else:
                inputs[edge.target_handle] = value
        return inputs

    async def _worker(self) -> None:
        while True:
            node_id = await self._ready.get()
            if self.cancel_requested.is_set():
                continue
            try:
                await self._execute(node_id)
            except Exception as e:
                logger.exception("Scheduling node %s failed", node_id)
                self._abort(node_id, e)

    def _abort(self, node_id: NodeId, error: Exception) -> None:
        if self.internal_error is None:
            self.internal_error = InternalError(node_id, error)
        self.cancel_requested.set()

    async def _execute(self, node_id: NodeId) -> None:
        node_type = self.types[node_id]
        inputs = self.collect_inputs(node_id)
        self._transition(node_id, NodeStatus.RUNNING)

        try:
            outputs = await self.dispatcher.dispatch(
                node_type, dict(self.data[node_id]), inputs, self.credentials
            )
            if outputs is None:
                outputs = {}
            if not isinstance(outputs, Mapping):
                raise TypeError(
                    f"executor returned {type(outputs).__name__}, expected a mapping"
                )
            outputs = dict(outputs)
        except DispatchError as e:
            logger.warning("Node %s (%s) failed: %s", node_id, node_type.name, e.message)
            self._transition(
                node_id, NodeStatus.FAILED,
                error=ErrorDescriptor(e.kind, e.message, node_id),
            )
            self._settle(self.dependents[node_id])
            return
        except Exception as e:
            logger.error("Node %s (%s) raised %s", node_id, node_type.name, type(e).__name__)
            self._abort(node_id, e)
            return

        self._transition(node_id, NodeStatus.SUCCEEDED, outputs=outputs)
        self._settle(self.dependents[node_id])

    async def main(self) -> dict[NodeId, ExecutionState]:
        logger.info(
            "Run started: %d node(s), concurrency %d",
            len(self.order), self.concurrency_limit,
        )
        workers: list[asyncio.Task] = []
        try:
            self.seed()
            if not self.finished.is_set():
                workers = [
                    asyncio.create_task(self._worker())
                    for _ in range(self.concurrency_limit)
                ]
                waiters = [
                    asyncio.create_task(self.finished.wait()),
                    asyncio.create_task(self.cancel_requested.wait()),
                ]
                try:
                    await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
                finally:
                    for waiter in waiters:
                        waiter.cancel()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        if not self.finished.is_set():
            kind = ABORTED if self.internal_error else CANCELLED
            message = "Run aborted" if self.internal_error else "Run cancelled"
            for node_id in self.order:
                if not self.states[node_id].status.is_terminal:
                    self._transition(
                        node_id, NodeStatus.BLOCKED,
                        error=ErrorDescriptor(kind, message, node_id),
                    )
        self._close()

        if self.internal_error is not None:
            raise self.internal_error
        return dict(self.states)

    def _close(self) -> None:
        self.ended_at = time.monotonic()
        self.closed = True
        changed, self.changed = self.changed, asyncio.Event()
        changed.set()

        counts: dict[str, int] = {}
        for state in self.states.values():
            counts[state.status.value] = counts.get(state.status.value, 0) + 1
        logger.info(
            "Run finished in %.2fs: %s",
            self.ended_at - self.started_at,
            ", ".join(f"{count} {status}" for status, count in sorted(counts.items())),
        )


# ============================================================================
# Public API
# ============================================================================

class RunHandle:
    """
    Handle on a started run.

    Example:
        handle = run_graph(graph)
        async for t in handle.transitions():
            print(t.node_id, t.current)
        states = await handle.wait()
    """

    def __init__(self, run: _Run, task: asyncio.Task):
        self._run = run
        self._task = task

    @property
    def states(self) -> dict[NodeId, ExecutionState]:
        """Live node_id -> state map. Read-only for callers."""
        return self._run.states

    @property
    def cancelled(self) -> bool:
        return self._run.cancel_requested.is_set() and self._run.internal_error is None

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def elapsed(self) -> float:
        end = self._run.ended_at if self._run.ended_at is not None else time.monotonic()
        return end - self._run.started_at

    def add_listener(self, listener: TransitionListener) -> None:
        """Call ``listener`` synchronously for every subsequent transition."""
        self._run.listeners.append(listener)

    def remove_listener(self, listener: TransitionListener) -> None:
        if listener in self._run.listeners:
            self._run.listeners.remove(listener)

    async def transitions(self) -> AsyncIterator[StateTransition]:
        """
        Iterate over every transition of the run, from the first one.

        Ends when the run has finished.
        """
        index = 0
        while True:
            changed = self._run.changed
            history = self._run.history
            while index < len(history):
                yield history[index]
                index += 1
            if self._run.closed:
                return
            await changed.wait()

    def cancel(self) -> None:
        """
        Stop dispatching new nodes and cancel in-flight ones.

        Non-terminal nodes end Blocked with a ``cancelled`` error.
        """
        if not self._task.done():
            logger.info("Run cancellation requested")
            self._run.cancel_requested.set()

    async def wait(self) -> dict[NodeId, ExecutionState]:
        """
        Wait for the run to finish and return the final states.

        Raises:
            InternalError: If an executor raised an unexpected exception
        """
        return await asyncio.shield(self._task)


class Scheduler:
    """
    Starts runs of a graph.

    Handles:
    - Validation before anything runs
    - Scope restriction to a selection and its upstream nodes
    - Per-run credential resolution
    """

    def __init__(
        self,
        dispatcher: Dispatcher | None = None,
        settings: EngineSettings | None = None,
        registry: NodeRegistry | None = None,
    ):
        self.settings = settings or getattr(dispatcher, "settings", None) or EngineSettings()
        self.dispatcher = dispatcher or Dispatcher(self.settings)
        self.registry = registry or NodeRegistry.instance()

    def scope_nodes(self, graph: Graph, scope: Iterable[NodeId] | None) -> list[NodeId]:
        """
        Nodes a run covers, in topological order.

        A scope covers its nodes and everything upstream of them. None or
        an empty scope covers the whole graph.
        """
        order = graph.get_execution_order()
        scope = list(scope or [])
        if not scope:
            return order
        wanted: set[NodeId] = set()
        for node_id in scope:
            if node_id in graph:
                wanted.add(node_id)
                wanted.update(graph.get_upstream_nodes(node_id))
        return [node_id for node_id in order if node_id in wanted]

    def start(
        self,
        graph: Graph,
        scope: Iterable[NodeId] | None = None,
        credentials_override: dict[str, str] | None = None,
        concurrency_limit: int | None = None,
    ) -> RunHandle:
        """
        Validate and start a run on the current event loop.

        Raises:
            GraphValidationError: If the graph is invalid; nothing has run
        """
        result = validate(graph, self.registry)
        if not result.ok:
            raise GraphValidationError(result)
        for issue in result.warnings:
            logger.info("Validation warning: %s", issue.message)

        node_ids = self.scope_nodes(graph, scope)
        types = {node_id: self.registry.get(graph.get_node(node_id).type) for node_id in node_ids}
        limit = concurrency_limit or self.settings.concurrency_limit
        if limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

        run = _Run(
            graph,
            node_ids,
            types,
            self.dispatcher,
            self.dispatcher.credentials_for_run(credentials_override),
            limit,
        )
        task = asyncio.get_running_loop().create_task(run.main())
        return RunHandle(run, task)


def run_graph(
    graph: Graph,
    scope: Iterable[NodeId] | None = None,
    credentials_override: dict[str, str] | None = None,
    concurrency_limit: int | None = None,
    *,
    dispatcher: Dispatcher | None = None,
    settings: EngineSettings | None = None,
) -> RunHandle:
    """
    Validate a graph and start executing it.

    Must be called from a running event loop. Built-in node types are
    registered on first use.

    Raises:
        GraphValidationError: If the graph is invalid; nothing has run
    """
    registry = NodeRegistry.instance()
    if len(registry) == 0:
        from ai_media_flow.nodes import register_all_nodes
        register_all_nodes()

    scheduler = Scheduler(dispatcher, settings, registry)
    return scheduler.start(graph, scope, credentials_override, concurrency_limit)
