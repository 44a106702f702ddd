"""Tests for the adjacency-list dependency graph."""

import pytest

from swarm_orchestrator.decomposition.dependency_graph import DependencyGraph


def build(edges):
    graph = DependencyGraph()
    for node_id, depends_on in edges:
        graph.add_node(node_id)
        graph.add_node(depends_on)
        graph.add_dependency(node_id, depends_on)
    return graph


def test_add_dependency_maintains_reverse_edges():
    """Test forward and reverse edges are both recorded."""
    graph = build([("B", "A"), ("C", "A")])

    assert graph.get_dependencies("B") == ["A"]
    assert graph.get_dependents("A") == {"B", "C"}
    assert graph.check_consistency() == []


def test_self_dependency_rejected():
    """Test self-loops raise."""
    graph = DependencyGraph()
    with pytest.raises(ValueError):
        graph.add_dependency("A", "A")


def test_unknown_dependency_creates_placeholder():
    """Test referencing an unregistered node creates a placeholder."""
    graph = DependencyGraph()
    graph.add_node("B")
    graph.add_dependency("B", "A")

    assert graph.is_placeholder("A")
    assert not graph.is_placeholder("B")
    assert graph.validate().missing_dependencies == ["A"]


def test_remove_node_leaves_no_dangling_edges():
    """Test removal cleans both directions and reports dependents."""
    graph = build([("B", "A"), ("C", "B"), ("D", "B")])

    dependents = graph.remove_node("B")

    assert dependents == {"C", "D"}
    assert "B" not in graph
    assert graph.get_dependencies("C") == []
    assert graph.get_dependents("A") == set()
    assert graph.check_consistency() == []


def test_remove_unknown_node_is_noop():
    """Test removing a missing node returns no dependents."""
    assert DependencyGraph().remove_node("missing") == set()


def test_set_dependencies_replaces_edges():
    """Test outgoing edges are replaced, reverse edges follow."""
    graph = build([("C", "A")])
    graph.add_node("B")

    graph.set_dependencies("C", ["B"])

    assert graph.get_dependencies("C") == ["B"]
    assert graph.get_dependents("A") == set()
    assert graph.get_dependents("B") == {"C"}


def test_cycle_detection():
    """Test circular dependency detection."""
    graph = build([("B", "A"), ("C", "B"), ("A", "C")])

    validation = graph.validate()

    assert not validation.is_valid
    assert validation.has_cycles
    assert len(validation.cycles) > 0


def test_execution_batches():
    """Test diamond graph produces three ordered batches."""
    graph = build([("B", "A"), ("C", "A"), ("D", "B"), ("D", "C")])

    assert graph.get_execution_batches() == [["A"], ["B", "C"], ["D"]]

    validation = graph.validate()
    assert validation.is_valid
    assert validation.execution_order.index("A") < validation.execution_order.index("D")


def test_transitive_dependents():
    """Test transitive dependents follow reverse edges."""
    graph = build([("B", "A"), ("C", "B"), ("D", "X")])
    assert graph.get_transitive_dependents("A") == {"B", "C"}


def test_visualize_lists_nodes():
    """Test text visualization."""
    graph = build([("B", "A")])
    text = graph.visualize()

    assert "B depends on: A" in text
    assert "A (no dependencies)" in text
