"""
Tests for the execution engine.
"""

import asyncio

import pytest

from ai_media_flow.core.data_types import ImageData
from ai_media_flow.core.execution import (
    InternalError,
    NodeStatus,
    Scheduler,
    run_graph,
)
from ai_media_flow.core.graph import Graph, Group, Node
from ai_media_flow.core.settings import EngineSettings
from ai_media_flow.core.validation import GraphValidationError
from ai_media_flow.providers.base import GenerationResult, InvalidInput
from ai_media_flow.providers.dispatch import DispatchContext, Dispatcher


class FakeDispatcher(Dispatcher):
    """
    Dispatcher that runs scripted behaviours instead of executors.

    Nodes are told apart by ``data["label"]``. Without a behaviour every
    output handle is filled with ``"<label>:<handle>"``.
    """

    def __init__(self, behaviours=None):
        super().__init__(EngineSettings())
        self.behaviours = behaviours or {}
        self.started = []
        self.inputs = {}
        self.running = 0
        self.max_running = 0

    async def dispatch(self, node_type, config, resolved_inputs, credentials=None):
        label = config.get("label", node_type.id)
        self.started.append(label)
        self.inputs[label] = resolved_inputs
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            behaviour = self.behaviours.get(label)
            if behaviour is not None:
                return await behaviour(resolved_inputs)
            await asyncio.sleep(0)
            return {out.name: f"{label}:{out.name}" for out in node_type.outputs}
        finally:
            self.running -= 1


def make_graph(nodes, edges=()):
    graph = Graph()
    for node_id, node_type in nodes:
        graph.add_node(Node.create(node_type, {"label": node_id}, node_id=node_id))
    for source, source_handle, target, target_handle in edges:
        graph.connect(source, source_handle, target, target_handle)
    return graph


def chain():
    return make_graph(
        [("a", "prompt"), ("b", "generate-text"), ("c", "generate-text")],
        [("a", "text", "b", "text"), ("b", "text", "c", "text")],
    )


@pytest.fixture(autouse=True)
def _nodes(node_registry):
    return node_registry


class TestScheduling:
    """Readiness, ordering and propagation."""

    @pytest.mark.asyncio
    async def test_empty_graph(self):
        handle = run_graph(Graph(), dispatcher=FakeDispatcher())
        assert await handle.wait() == {}

    @pytest.mark.asyncio
    async def test_nodes_without_edges(self):
        graph = make_graph([("p", "prompt"), ("g", "generate-image"), ("o", "output")])
        dispatcher = FakeDispatcher()
        states = await run_graph(graph, dispatcher=dispatcher).wait()

        assert states["p"].status is NodeStatus.SUCCEEDED
        assert states["g"].status is NodeStatus.BLOCKED
        assert states["g"].error.kind == "missing_input"
        assert states["o"].status is NodeStatus.BLOCKED
        assert dispatcher.started == ["p"]

    @pytest.mark.asyncio
    async def test_dependency_order(self):
        dispatcher = FakeDispatcher()
        states = await run_graph(chain(), dispatcher=dispatcher).wait()

        assert dispatcher.started == ["a", "b", "c"]
        assert dispatcher.inputs["b"] == {"text": "a:text"}
        assert dispatcher.inputs["c"] == {"text": "b:text"}
        assert all(s.status is NodeStatus.SUCCEEDED for s in states.values())
        assert states["c"].outputs == {"text": "c:text"}

    @pytest.mark.asyncio
    async def test_locked_node_is_skipped_and_blocks_dependents(self):
        graph = make_graph(
            [("A", "prompt"), ("B", "generate-text")],
            [("A", "text", "B", "text")],
        )
        graph.add_group(Group.create("frozen", ["A"], locked=True))
        dispatcher = FakeDispatcher()
        states = await run_graph(graph, dispatcher=dispatcher).wait()

        assert states["A"].status is NodeStatus.SKIPPED
        assert states["B"].status is NodeStatus.BLOCKED
        assert states["B"].error.kind == "upstream_failed"
        assert dispatcher.started == []

    @pytest.mark.asyncio
    async def test_failure_blocks_dependents_only(self):
        async def fail(inputs):
            raise InvalidInput("Prompt is empty")

        graph = make_graph(
            [("a", "prompt"), ("b", "generate-text"), ("x", "prompt"), ("y", "generate-text")],
            [("a", "text", "b", "text"), ("x", "text", "y", "text")],
        )
        states = await run_graph(graph, dispatcher=FakeDispatcher({"a": fail})).wait()

        assert states["a"].status is NodeStatus.FAILED
        assert states["a"].error.kind == "invalid_input"
        assert states["a"].error.message == "Prompt is empty"
        assert states["b"].status is NodeStatus.BLOCKED
        assert states["b"].error.kind == "upstream_failed"
        assert states["y"].status is NodeStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_failed_optional_input_does_not_block(self):
        async def fail(inputs):
            raise InvalidInput("No image loaded")

        graph = make_graph(
            [("i", "input"), ("p", "prompt"), ("g", "generate-image")],
            [("i", "image", "g", "image"), ("p", "text", "g", "text")],
        )
        dispatcher = FakeDispatcher({"i": fail})
        states = await run_graph(graph, dispatcher=dispatcher).wait()

        assert states["i"].status is NodeStatus.FAILED
        assert states["g"].status is NodeStatus.SUCCEEDED
        assert dispatcher.inputs["g"] == {"text": "p:text"}

    @pytest.mark.asyncio
    async def test_sequence_output_is_flattened(self):
        async def cells(inputs):
            return {"image": ["c1", "c2", "c3"]}

        graph = make_graph(
            [("i", "input"), ("i2", "input"), ("s", "split"), ("o", "output")],
            [
                ("i", "image", "s", "image"),
                ("s", "image", "o", "image"),
                ("i2", "image", "o", "image"),
            ],
        )
        dispatcher = FakeDispatcher({"s": cells})
        await run_graph(graph, dispatcher=dispatcher).wait()

        assert sorted(dispatcher.inputs["o"]["image"]) == ["c1", "c2", "c3", "i2:image"]

    @pytest.mark.asyncio
    async def test_scope_runs_selection_and_upstream(self):
        dispatcher = FakeDispatcher()
        states = await run_graph(chain(), scope=["b"], dispatcher=dispatcher).wait()

        assert set(states) == {"a", "b"}
        assert dispatcher.started == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty_scope_runs_everything(self):
        dispatcher = FakeDispatcher()
        states = await run_graph(chain(), scope=[], dispatcher=dispatcher).wait()

        assert set(states) == {"a", "b", "c"}
        assert dispatcher.started == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_run_uses_graph_as_it_was_at_start(self):
        release = asyncio.Event()

        async def gated(inputs):
            await release.wait()
            return {"text": "b:text"}

        graph = chain()
        dispatcher = FakeDispatcher({"b": gated})
        handle = run_graph(graph, dispatcher=dispatcher)
        while handle.states["b"].status is not NodeStatus.RUNNING:
            await asyncio.sleep(0)

        graph.remove_node("c")
        release.set()
        states = await asyncio.wait_for(handle.wait(), 2)

        assert all(s.status is NodeStatus.SUCCEEDED for s in states.values())
        assert dispatcher.started == ["a", "b", "c"]
        assert dispatcher.inputs["c"] == {"text": "b:text"}

    @pytest.mark.asyncio
    async def test_concurrency_limit(self):
        async def slow(inputs):
            await asyncio.sleep(0.01)
            return {"text": "done"}

        graph = make_graph([(f"p{i}", "prompt") for i in range(5)])
        dispatcher = FakeDispatcher({f"p{i}": slow for i in range(5)})
        states = await run_graph(graph, concurrency_limit=2, dispatcher=dispatcher).wait()

        assert dispatcher.max_running == 2
        assert all(s.status is NodeStatus.SUCCEEDED for s in states.values())

    @pytest.mark.asyncio
    async def test_invalid_graph_raises_before_running(self):
        graph = make_graph(
            [("A", "generate-text"), ("B", "generate-text")],
            [("A", "text", "B", "text"), ("B", "text", "A", "text")],
        )
        dispatcher = FakeDispatcher()
        with pytest.raises(GraphValidationError):
            run_graph(graph, dispatcher=dispatcher)
        assert dispatcher.started == []

    @pytest.mark.asyncio
    async def test_concurrency_limit_must_be_positive(self):
        with pytest.raises(ValueError):
            Scheduler(FakeDispatcher()).start(chain(), concurrency_limit=-1)


class TestCancellation:
    """Cancellation and aborted runs."""

    @pytest.mark.asyncio
    async def test_cancel_blocks_unfinished_nodes(self):
        never = asyncio.Event()

        async def hang(inputs):
            await never.wait()
            return {"text": "late"}

        dispatcher = FakeDispatcher({"b": hang})
        handle = run_graph(chain(), dispatcher=dispatcher)
        while handle.states["b"].status is not NodeStatus.RUNNING:
            await asyncio.sleep(0)

        handle.cancel()
        states = await handle.wait()

        assert handle.cancelled
        assert states["a"].status is NodeStatus.SUCCEEDED
        for node_id in ("b", "c"):
            assert states[node_id].status is NodeStatus.BLOCKED
            assert states[node_id].error.kind == "cancelled"
        assert "c" not in dispatcher.started

    @pytest.mark.asyncio
    async def test_unexpected_exception_aborts_run(self):
        async def crash(inputs):
            raise RuntimeError("boom")

        handle = run_graph(chain(), dispatcher=FakeDispatcher({"b": crash}))
        with pytest.raises(InternalError) as exc_info:
            await handle.wait()

        assert exc_info.value.node_id == "b"
        assert isinstance(exc_info.value.original, RuntimeError)
        assert not handle.cancelled
        assert handle.states["b"].error.kind == "aborted"
        assert handle.states["c"].status is NodeStatus.BLOCKED

    @pytest.mark.asyncio
    async def test_non_mapping_outputs_abort_run(self):
        async def listing(inputs):
            return ["not", "a", "mapping"]

        handle = run_graph(chain(), dispatcher=FakeDispatcher({"b": listing}))
        with pytest.raises(InternalError) as exc_info:
            await asyncio.wait_for(handle.wait(), 2)

        assert exc_info.value.node_id == "b"
        assert isinstance(exc_info.value.original, TypeError)
        assert handle.states["a"].status is NodeStatus.SUCCEEDED
        for node_id in ("b", "c"):
            assert handle.states[node_id].status is NodeStatus.BLOCKED
            assert handle.states[node_id].error.kind == "aborted"


class TestObservation:
    """Transition stream and listeners."""

    @pytest.mark.asyncio
    async def test_transitions_stream(self):
        handle = run_graph(chain(), dispatcher=FakeDispatcher())
        seen = [t async for t in handle.transitions()]

        a_steps = [(t.previous, t.current) for t in seen if t.node_id == "a"]
        assert a_steps == [
            (NodeStatus.PENDING, NodeStatus.READY),
            (NodeStatus.READY, NodeStatus.RUNNING),
            (NodeStatus.RUNNING, NodeStatus.SUCCEEDED),
        ]
        assert len(seen) == 9

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_break_the_run(self):
        received = []

        def broken(transition):
            raise ValueError("listener bug")

        handle = run_graph(chain(), dispatcher=FakeDispatcher())
        handle.add_listener(broken)
        handle.add_listener(received.append)
        states = await handle.wait()

        assert all(s.status is NodeStatus.SUCCEEDED for s in states.values())
        assert len(received) == 9
        assert handle.elapsed >= 0

    @pytest.mark.asyncio
    async def test_state_to_dict(self):
        async def fail(inputs):
            raise InvalidInput("bad")

        graph = make_graph([("a", "prompt")])
        states = await run_graph(graph, dispatcher=FakeDispatcher({"a": fail})).wait()
        assert states["a"].to_dict() == {
            "status": "failed",
            "error": {"kind": "invalid_input", "message": "bad", "nodeId": "a"},
        }


class TestEndToEnd:
    """Runs through the real Dispatcher and node executors."""

    @pytest.fixture
    def pipeline(self, png_data_url):
        graph = Graph()
        graph.add_node(Node.create("input", {"image": png_data_url}, node_id="in"))
        graph.add_node(Node.create("prompt", {"prompt": "make it blue"}, node_id="p"))
        graph.add_node(Node.create("generate-image", {"model": "nano-banana"}, node_id="gen"))
        graph.add_node(Node.create("output", node_id="out"))
        graph.connect("in", "image", "gen", "image")
        graph.connect("p", "text", "gen", "text")
        graph.connect("gen", "image", "out", "image")
        return graph

    @pytest.mark.asyncio
    async def test_image_pipeline(self, pipeline, monkeypatch):
        requests = []

        async def fake_generate(self, request):
            requests.append(request)
            return GenerationResult(model_id=request.model.id, images=[ImageData.empty(4, 4)])

        monkeypatch.setattr(DispatchContext, "generate", fake_generate)
        handle = run_graph(pipeline, dispatcher=Dispatcher(EngineSettings()))
        steps = [(t.node_id, t.current) async for t in handle.transitions()]
        states = await handle.wait()

        gen_running = steps.index(("gen", NodeStatus.RUNNING))
        assert steps.index(("in", NodeStatus.SUCCEEDED)) < gen_running
        assert steps.index(("p", NodeStatus.SUCCEEDED)) < gen_running

        assert all(s.status is NodeStatus.SUCCEEDED for s in states.values())
        assert len(states["out"].outputs["image"]) == 1
        assert requests[0].prompt == "make it blue"
        assert requests[0].model.provider == "gemini"
        assert requests[0].images[0].size == (8, 6)

    @pytest.mark.asyncio
    async def test_missing_credential(self, pipeline, monkeypatch, tmp_path):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("SECRET_NAME_GEMINI", raising=False)
        monkeypatch.chdir(tmp_path)

        states = await run_graph(pipeline, dispatcher=Dispatcher(EngineSettings())).wait()

        assert states["gen"].status is NodeStatus.FAILED
        assert states["gen"].error.kind == "missing_credential"
        assert states["out"].status is NodeStatus.BLOCKED
