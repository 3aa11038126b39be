"""
Tests for the graph module.
"""

import pytest

from ai_media_flow.core.graph import (
    Edge,
    Graph,
    Group,
    Node,
    new_node_id,
)
from ai_media_flow.core.node_types import NodeVariant


class TestNode:
    """Tests for Node dataclass."""

    def test_create_node(self):
        node = Node.create("prompt", {"prompt": "a cat"})
        assert node.type is NodeVariant.PROMPT
        assert node.type_name == "prompt"
        assert len(node.id) == 32

    def test_unknown_type_is_kept_as_string(self):
        node = Node.create("teleport", node_id="n1")
        assert node.type == "teleport"
        assert node.variant is None
        assert node.type_name == "teleport"

    def test_get_parameter_default(self):
        node = Node.create("prompt")
        assert node.get_parameter("missing", "default") == "default"

    def test_custom_title(self):
        node = Node.create("prompt", {"customTitle": "Hero shot"})
        assert node.custom_title == "Hero shot"
        assert Node.create("prompt").custom_title is None

    def test_round_trip_keeps_group_id(self):
        node = Node.create("output", node_id="out", group_id="g1")
        data = node.to_dict()
        assert data["groupId"] == "g1"
        assert Node.from_dict(data) == node


class TestEdge:
    """Tests for Edge dataclass."""

    def test_id_follows_editor_pattern(self):
        edge = Edge.create("a", "text", "b", "text")
        assert edge.id == "edge-a-b-text-text"

    def test_from_dict_without_id(self):
        edge = Edge.from_dict({
            "source": "a", "sourceHandle": "image",
            "target": "b", "targetHandle": "image",
        })
        assert edge.id == "edge-a-b-image-image"
        assert edge.to_dict()["sourceHandle"] == "image"


class TestGraph:
    """Tests for Graph class."""

    @pytest.fixture
    def chain(self):
        graph = Graph()
        for node_id, node_type in (("a", "prompt"), ("b", "generate-text"), ("c", "generate-image")):
            graph.add_node(Node.create(node_type, node_id=node_id))
        graph.connect("a", "text", "b", "text")
        graph.connect("b", "text", "c", "text")
        return graph

    def test_nodes_is_a_copy(self, chain):
        nodes = chain.nodes
        nodes.clear()
        assert len(chain) == 3

    def test_remove_node_removes_its_edges(self, chain):
        chain.remove_node("b")
        assert "b" not in chain
        assert chain.edges == []

    def test_execution_order(self, chain):
        assert chain.get_execution_order() == ["a", "b", "c"]

    def test_execution_order_rejects_cycle(self, chain):
        chain.connect("c", "image", "a", "image")
        with pytest.raises(ValueError):
            chain.get_execution_order()

    def test_upstream_and_downstream(self, chain):
        assert chain.get_upstream_nodes("c") == {"a", "b"}
        assert chain.get_downstream_nodes("a") == {"b", "c"}
        assert chain.get_upstream_nodes("a") == set()

    def test_incoming_edges_by_handle(self, chain):
        assert len(chain.incoming_edges("b")) == 1
        assert chain.incoming_edges("b", handle="image") == []

    def test_locked_group_by_membership(self, chain):
        chain.add_group(Group.create("frozen", ["b"], locked=True, group_id="g"))
        assert chain.is_locked("b")
        assert not chain.is_locked("a")

    def test_locked_group_by_back_reference(self):
        graph = Graph()
        graph.add_node(Node.create("prompt", node_id="p", group_id="g"))
        graph.add_group(Group.create("frozen", locked=True, group_id="g"))
        assert graph.is_locked("p")

    def test_from_dict_accepts_group_list(self):
        graph = Graph.from_dict({
            "nodes": [{"id": "p", "type": "prompt", "data": {"prompt": "hi"}}],
            "edges": [],
            "groups": [{"id": "g", "name": "G", "locked": True, "nodeIds": ["p"]}],
        })
        assert graph.is_locked("p")
        assert graph.get_node("p").data == {"prompt": "hi"}

    def test_to_dict_round_trip(self, chain):
        again = Graph.from_dict(chain.to_dict())
        assert again.to_dict() == chain.to_dict()


def test_new_node_id_is_unique():
    assert new_node_id() != new_node_id()
