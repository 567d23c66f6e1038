"""Tests for flow nodes, edges, graph accessors and structural validation."""

import pytest
from pydantic import ValidationError

from branchflow.graph.edge import FlowEdge, FlowGraph, incomers, outgoers
from branchflow.graph.node import ExecutionMode, FlowNode
from branchflow.graph.validator import CycleDetectedError, topological_order


def _graph(node_ids, pairs):
    return FlowGraph(
        nodes=[FlowNode(id=n) for n in node_ids],
        edges=[FlowEdge(id=f"{s}-{t}", source=s, target=t) for s, t in pairs],
    )


# ---------------------------------------------------------------------------
# FlowNode
# ---------------------------------------------------------------------------
class TestFlowNode:
    def test_defaults(self):
        node = FlowNode(id="a")
        assert node.type == "conversation"
        assert node.prompt == ""
        assert node.execution_mode == ExecutionMode.ALL
        assert node.is_decision is False
        assert node.display_name == "a"

    def test_camel_case_aliases(self):
        node = FlowNode.model_validate(
            {"id": "r", "executionMode": "choose", "conditionPrompt": "pick one"}
        )
        assert node.is_decision
        assert node.condition_prompt == "pick one"

    def test_execution_mode_is_case_insensitive(self):
        assert FlowNode(id="r", execution_mode=" Choose ").is_decision

    def test_unknown_execution_mode_rejected(self):
        with pytest.raises(ValidationError):
            FlowNode(id="r", execution_mode="sometimes")

    def test_none_fields_become_empty(self):
        node = FlowNode(id="a", prompt=None, label=None, condition_prompt=None)
        assert node.prompt == ""
        assert node.label == ""
        assert node.condition_prompt == ""

    def test_display_name_prefers_label(self):
        assert FlowNode(id="a", label="Intro").display_name == "Intro"

    def test_extra_editor_fields_are_kept(self):
        node = FlowNode.model_validate({"id": "a", "position": {"x": 1, "y": 2}})
        assert node.model_extra["position"] == {"x": 1, "y": 2}

    def test_frozen(self):
        node = FlowNode(id="a")
        with pytest.raises(ValidationError):
            node.prompt = "changed"


class TestFromRecord:
    def test_flattens_data_bag(self):
        node = FlowNode.from_record(
            {
                "id": "route",
                "type": "conversation",
                "data": {
                    "label": "Router",
                    "prompt": "Who reads this?",
                    "executionMode": "choose",
                    "conditionPrompt": "Pick the audience",
                },
            }
        )
        assert node.id == "route"
        assert node.label == "Router"
        assert node.prompt == "Who reads this?"
        assert node.is_decision

    def test_drops_run_scoped_fields(self):
        node = FlowNode.from_record(
            {
                "id": "a",
                "data": {
                    "prompt": "hi",
                    "response": "stale answer",
                    "loading": True,
                    "selectionState": "skipped",
                },
            }
        )
        extra = node.model_extra or {}
        assert "response" not in extra
        assert "loading" not in extra
        assert "selectionState" not in extra

    def test_flat_record(self):
        node = FlowNode.from_record({"id": "a", "prompt": "hi"})
        assert node.prompt == "hi"

    def test_identity_columns_win_over_data(self):
        node = FlowNode.from_record({"id": "a", "data": {"id": "other"}})
        assert node.id == "a"


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------
class TestAccessors:
    def test_incomers_in_edge_list_order(self):
        graph = _graph(["a", "b", "c"], [("b", "c"), ("a", "c")])
        assert [n.id for n in graph.incomers("c")] == ["b", "a"]

    def test_outgoers_in_edge_list_order(self):
        graph = _graph(["a", "b", "c"], [("a", "c"), ("a", "b")])
        assert [n.id for n in graph.outgoers("a")] == ["c", "b"]

    def test_duplicate_edges_yield_one_neighbour(self):
        graph = FlowGraph(
            nodes=[FlowNode(id="a"), FlowNode(id="b")],
            edges=[
                FlowEdge(id="e1", source="a", target="b"),
                FlowEdge(id="e2", source="a", target="b"),
            ],
        )
        assert [n.id for n in graph.outgoers("a")] == ["b"]
        assert len(graph.get_outgoing_edges("a")) == 2

    def test_unknown_node_has_no_neighbours(self):
        graph = _graph(["a", "b"], [("a", "b")])
        assert graph.incomers("zzz") == []
        assert graph.outgoers("zzz") == []

    def test_edges_to_missing_nodes_are_ignored(self):
        graph = _graph(["a"], [("a", "ghost")])
        assert graph.outgoers("a") == []

    def test_module_level_functions_match_methods(self):
        graph = _graph(["a", "b"], [("a", "b")])
        assert incomers("b", graph.nodes, graph.edges) == graph.incomers("b")
        assert outgoers("a", graph.nodes, graph.edges) == graph.outgoers("a")

    def test_get_node(self):
        graph = _graph(["a", "b"], [])
        assert graph.get_node("b").id == "b"
        assert graph.get_node("nope") is None

    def test_from_dict_with_handles(self):
        graph = FlowGraph.from_dict(
            {
                "nodes": [{"id": "a", "data": {"prompt": "x"}}, {"id": "b"}],
                "edges": [
                    {"id": "e", "source": "a", "target": "b", "sourceHandle": "bottom"}
                ],
            }
        )
        assert graph.edges[0].source_handle == "bottom"
        assert graph.nodes[0].prompt == "x"


# ---------------------------------------------------------------------------
# Topological order and validation
# ---------------------------------------------------------------------------
class TestTopologicalOrder:
    def test_orders_dependencies_first(self):
        graph = _graph(["c", "b", "a"], [("a", "b"), ("b", "c")])
        assert graph.topological_order() == ["a", "b", "c"]

    def test_ties_keep_node_order(self):
        graph = _graph(["x", "y", "z"], [])
        assert graph.topological_order() == ["x", "y", "z"]

    def test_diamond(self):
        graph = _graph(["a", "b", "c", "d"], [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")])
        order = graph.topological_order()
        assert order.index("a") < order.index("b") < order.index("d")
        assert order.index("c") < order.index("d")

    def test_cycle_raises(self):
        graph = _graph(["a", "b", "c"], [("a", "b"), ("b", "c"), ("c", "b")])
        with pytest.raises(CycleDetectedError) as exc_info:
            graph.topological_order()
        assert set(exc_info.value.cycle_nodes) == {"b", "c"}
        assert "Cycle detected" in str(exc_info.value)

    def test_self_loop_is_a_cycle(self):
        graph = _graph(["a"], [("a", "a")])
        with pytest.raises(CycleDetectedError):
            topological_order(graph.nodes, graph.edges)

    def test_duplicate_node_ids_do_not_fake_a_cycle(self):
        nodes = [FlowNode(id="a"), FlowNode(id="a"), FlowNode(id="b")]
        edges = [FlowEdge(id="e", source="a", target="b")]
        assert topological_order(nodes, edges) == ["a", "b"]


class TestValidate:
    def test_valid_graph(self):
        assert _graph(["a", "b"], [("a", "b")]).validate() == []

    def test_duplicate_ids(self):
        graph = FlowGraph(nodes=[FlowNode(id="a"), FlowNode(id="a")])
        assert "Duplicate node ID: 'a'" in graph.validate()

    def test_missing_references(self):
        graph = FlowGraph(
            nodes=[FlowNode(id="a")],
            edges=[FlowEdge(id="e", source="ghost", target="a")],
        )
        assert graph.validate() == ["Edge 'e' references missing source 'ghost'"]

    def test_cycle_reported(self):
        errors = _graph(["a", "b"], [("a", "b"), ("b", "a")]).validate()
        assert len(errors) == 1
        assert errors[0].startswith("Cycle detected in graph involving nodes:")
