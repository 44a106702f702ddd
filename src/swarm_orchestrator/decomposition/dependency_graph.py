"""Adjacency-list dependency graph with DAG validation and topological sorting."""

import logging
from graphlib import TopologicalSorter, CycleError
from typing import Dict, Iterable, List, Set

from ..models.sharding_models import DependencyValidation


logger = logging.getLogger(__name__)


class GraphInvariantError(RuntimeError):
    """Forward and reverse adjacency disagree."""


class DependencyGraph:
    """
    Directed graph of node dependencies with maintained reverse edges.

    PATTERN: Outgoing edges kept in insertion order, reverse edges as sets
    CRITICAL: remove_node cleans both directions and verifies nothing dangles
    GOTCHA: Dependencies on unknown ids create placeholder nodes
    """

    def __init__(self):
        """Initialize dependency graph."""
        # node -> ordered dependencies (dict used as an ordered set)
        self.graph: Dict[str, Dict[str, None]] = {}
        # node -> set of dependents
        self.reverse_graph: Dict[str, Set[str]] = {}
        # nodes added explicitly, as opposed to placeholders
        self.registered: Set[str] = set()
        self.logger = logging.getLogger(__name__)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.graph

    def __len__(self) -> int:
        return len(self.graph)

    def nodes(self) -> List[str]:
        return list(self.graph)

    def add_node(self, node_id: str, placeholder: bool = False) -> None:
        """
        Add a node to the graph.

        Args:
            node_id: Node ID to add
            placeholder: Whether the node is only referenced, not registered
        """
        if node_id not in self.graph:
            self.graph[node_id] = {}
            self.reverse_graph[node_id] = set()
        if not placeholder:
            self.registered.add(node_id)

    def add_dependency(self, node_id: str, depends_on: str) -> None:
        """
        Add a dependency relationship.

        PATTERN: node_id depends on depends_on

        Args:
            node_id: Node that has the dependency
            depends_on: Node that must come first

        Raises:
            ValueError: On a self-loop
        """
        if node_id == depends_on:
            raise ValueError(f"Node {node_id} cannot depend on itself")

        self.add_node(node_id, placeholder=node_id not in self.registered)
        self.add_node(depends_on, placeholder=depends_on not in self.registered)

        self.graph[node_id][depends_on] = None
        self.reverse_graph[depends_on].add(node_id)

        self.logger.debug(f"Added dependency: {node_id} depends on {depends_on}")

    def set_dependencies(self, node_id: str, dependencies: Iterable[str]) -> None:
        """
        Replace all outgoing edges of a node.

        Args:
            node_id: Node to update
            dependencies: New ordered dependencies
        """
        self.add_node(node_id)
        for previous in list(self.graph[node_id]):
            self.remove_dependency(node_id, previous)
        for dependency in dependencies:
            self.add_dependency(node_id, dependency)

    def remove_dependency(self, node_id: str, depends_on: str) -> None:
        """
        Remove a dependency relationship.

        Args:
            node_id: Node ID
            depends_on: Dependency to remove
        """
        if node_id in self.graph:
            self.graph[node_id].pop(depends_on, None)

        if depends_on in self.reverse_graph:
            self.reverse_graph[depends_on].discard(node_id)

    def remove_node(self, node_id: str) -> Set[str]:
        """
        Remove a node and every edge touching it.

        CRITICAL: Verifies no adjacency still references the removed id

        Args:
            node_id: Node to remove

        Returns:
            Former dependents of the node (their outgoing edges changed)

        Raises:
            GraphInvariantError: If a dangling reference survives removal
        """
        if node_id not in self.graph:
            return set()

        for dependency in list(self.graph[node_id]):
            self.remove_dependency(node_id, dependency)

        dependents = set(self.reverse_graph[node_id])
        for dependent in dependents:
            self.remove_dependency(dependent, node_id)

        del self.graph[node_id]
        del self.reverse_graph[node_id]
        self.registered.discard(node_id)

        for other, dependencies in self.graph.items():
            if node_id in dependencies or node_id in self.reverse_graph[other]:
                raise GraphInvariantError(
                    f"Node {other} still references removed node {node_id}"
                )

        return dependents

    def get_dependencies(self, node_id: str) -> List[str]:
        """
        Get all direct dependencies for a node, in insertion order.

        Args:
            node_id: Node ID

        Returns:
            List of node IDs this node depends on
        """
        return list(self.graph.get(node_id, {}))

    def get_dependents(self, node_id: str) -> Set[str]:
        """
        Get all nodes that depend on this node.

        Args:
            node_id: Node ID

        Returns:
            Set of node IDs that depend on this node
        """
        return self.reverse_graph.get(node_id, set()).copy()

    def is_isolated(self, node_id: str) -> bool:
        """Whether a node has no edges in either direction."""
        return not self.graph.get(node_id) and not self.reverse_graph.get(node_id)

    def is_placeholder(self, node_id: str) -> bool:
        return node_id in self.graph and node_id not in self.registered

    def edge_count(self) -> int:
        return sum(len(dependencies) for dependencies in self.graph.values())

    def check_consistency(self) -> List[str]:
        """
        Check that forward and reverse adjacency mirror each other.

        Returns:
            Human-readable problems, empty when consistent
        """
        problems = []

        for node_id, dependencies in self.graph.items():
            for dependency in dependencies:
                if dependency not in self.reverse_graph:
                    problems.append(f"{node_id} -> {dependency}: target missing")
                elif node_id not in self.reverse_graph[dependency]:
                    problems.append(f"{node_id} -> {dependency}: reverse edge missing")

        for node_id, dependents in self.reverse_graph.items():
            if node_id not in self.graph:
                problems.append(f"{node_id}: reverse entry without node")
                continue
            for dependent in dependents:
                if dependent not in self.graph:
                    problems.append(f"{dependent} <- {node_id}: dangling reverse edge")
                elif node_id not in self.graph[dependent]:
                    problems.append(f"{dependent} <- {node_id}: forward edge missing")

        return problems

    def validate(self) -> DependencyValidation:
        """
        Validate dependency graph and detect cycles.

        PATTERN: Use TopologicalSorter for efficient cycle detection

        Returns:
            DependencyValidation with results
        """
        missing = sorted(
            node_id
            for node_id in self.graph
            if node_id not in self.registered and self.reverse_graph[node_id]
        )

        try:
            sorter = TopologicalSorter(self._sorter_graph())
            execution_order = list(sorter.static_order())

            self.logger.debug(
                f"Dependency validation successful: {len(execution_order)} nodes"
            )

            return DependencyValidation(
                is_valid=True,
                has_cycles=False,
                missing_dependencies=missing,
                execution_order=execution_order,
            )

        except CycleError as e:
            self.logger.error(f"Circular dependencies detected: {e}")

            return DependencyValidation(
                is_valid=False,
                has_cycles=True,
                cycles=self._find_all_cycles(),
                missing_dependencies=missing,
            )

    def _sorter_graph(self) -> Dict[str, List[str]]:
        return {node_id: list(deps) for node_id, deps in self.graph.items()}

    def _find_all_cycles(self) -> List[List[str]]:
        """
        Find circular dependency chains using DFS.

        Returns:
            List of cycle chains (each cycle is a list of node IDs)
        """
        cycles = []
        visited = set()
        rec_stack = set()

        def dfs(node: str, path: List[str]) -> None:
            visited.add(node)
            rec_stack.add(node)
            path.append(node)

            for neighbor in self.graph.get(node, {}):
                if neighbor not in visited:
                    dfs(neighbor, path.copy())
                elif neighbor in rec_stack:
                    cycle_start = path.index(neighbor)
                    cycles.append(path[cycle_start:] + [neighbor])

            rec_stack.remove(node)

        for node in self.graph:
            if node not in visited:
                dfs(node, [])

        return cycles

    def get_execution_batches(self) -> List[List[str]]:
        """
        Get batches of nodes that can execute in parallel.

        PATTERN: Nodes in same batch have no dependencies on each other

        Returns:
            List of batches, each a list of node IDs

        Raises:
            CycleError: If circular dependencies exist
        """
        sorter = TopologicalSorter(self._sorter_graph())
        sorter.prepare()

        batches = []
        while sorter.is_active():
            ready = sorted(sorter.get_ready())

            if ready:
                batches.append(ready)
                for node_id in ready:
                    sorter.done(node_id)

        self.logger.debug(
            f"Generated {len(batches)} execution batches "
            f"with {sum(len(b) for b in batches)} nodes"
        )

        return batches

    def get_transitive_dependents(self, node_id: str) -> Set[str]:
        """All nodes that depend on node_id directly or indirectly."""
        found: Set[str] = set()
        stack = [node_id]
        while stack:
            current = stack.pop()
            for dependent in self.reverse_graph.get(current, set()):
                if dependent not in found:
                    found.add(dependent)
                    stack.append(dependent)
        return found

    def clear(self) -> None:
        self.graph.clear()
        self.reverse_graph.clear()
        self.registered.clear()

    def visualize(self) -> str:
        """
        Generate a text visualization of the dependency graph.

        Returns:
            String visualization
        """
        lines = ["Dependency Graph:"]
        lines.append("=" * 50)

        for node_id, dependencies in sorted(self.graph.items()):
            if dependencies:
                deps_str = ", ".join(sorted(dependencies))
                lines.append(f"{node_id} depends on: {deps_str}")
            else:
                lines.append(f"{node_id} (no dependencies)")

        return "\n".join(lines)
