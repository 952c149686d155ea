"""
attrflow Dependency Graph - Derived Attribute Ordering
======================================================

Maintains the dependency relation between attribute names and derived
attributes. An edge ``dep -> derived`` means *derived* depends on *dep*.
Cycles are detected as edges are added, so a graph that finished building is
always a DAG.

Usage:
    graph = DependencyGraph()
    graph.add_edge("first_name", "name")
    graph.add_edge("name", "greeting")

    graph.get_all_dependents("first_name")   # {"name", "greeting"}
    graph.topological_sort({"greeting", "name"})  # ["name", "greeting"]

    graph.add_edge("greeting", "first_name")  # raises CircularDependencyError
"""

from collections import deque
from typing import Dict, Iterable, List, Set

from .exceptions import CircularDependencyError


class DependencyGraph:
    """
    Directed acyclic graph over attribute names.

    Attributes:
        _forward: node -> nodes that depend on it
        _reverse: node -> nodes it depends on
        _order: insertion order of nodes, used to keep sorts deterministic
    """

    def __init__(self):
        self._forward: Dict[str, Set[str]] = {}
        self._reverse: Dict[str, Set[str]] = {}
        self._order: Dict[str, int] = {}

    def add_node(self, node: str) -> None:
        if node not in self._order:
            self._order[node] = len(self._order)
            self._forward[node] = set()
            self._reverse[node] = set()

    def add_edge(self, dependency: str, dependent: str) -> None:
        """
        Record that *dependent* depends on *dependency*.

        Raises:
            CircularDependencyError: If the edge would close a cycle
        """
        self.add_node(dependency)
        self.add_node(dependent)

        if dependent in self._forward[dependency]:
            return

        path = self._find_path(dependent, dependency)
        if path is not None:
            chain = " -> ".join([dependency] + path)
            raise CircularDependencyError(
                f"Circular dependency detected between derived properties: {chain}"
            )

        self._forward[dependency].add(dependent)
        self._reverse[dependent].add(dependency)

    def nodes(self) -> List[str]:
        """All nodes in insertion order."""
        return list(self._order)

    def get_dependents(self, node: str) -> Set[str]:
        return set(self._forward.get(node, ()))

    def get_dependencies(self, node: str) -> Set[str]:
        return set(self._reverse.get(node, ()))

    def get_all_dependents(self, node: str) -> Set[str]:
        """Get all transitive dependents of a node."""
        return self.get_all_dependents_of([node])

    def get_all_dependents_of(self, nodes: Iterable[str]) -> Set[str]:
        affected: Set[str] = set()
        to_visit = deque(nodes)

        while to_visit:
            current = to_visit.popleft()
            for dependent in self._forward.get(current, ()):
                if dependent not in affected:
                    affected.add(dependent)
                    to_visit.append(dependent)

        return affected

    def get_all_dependencies(self, node: str) -> Set[str]:
        """Get every node *node* depends on, directly or through other nodes."""
        found: Set[str] = set()
        to_visit = deque([node])

        while to_visit:
            current = to_visit.popleft()
            for dependency in self._reverse.get(current, ()):
                if dependency not in found:
                    found.add(dependency)
                    to_visit.append(dependency)

        return found

    def topological_sort(self, keys: Iterable[str]) -> List[str]:
        """
        Sort a subset of nodes so every node follows its dependencies.

        Ties are broken by insertion order. Edges leaving the subset are ignored.
        """
        keys = set(keys)
        if not keys:
            return []

        in_degree = {
            key: sum(1 for dep in self._reverse.get(key, ()) if dep in keys)
            for key in keys
        }
        rank = self._rank
        ready = sorted((k for k in keys if in_degree[k] == 0), key=rank)
        result = []

        while ready:
            current = ready.pop(0)
            result.append(current)

            released = []
            for dependent in self._forward.get(current, ()):
                if dependent in keys:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        released.append(dependent)
            if released:
                ready = sorted(ready + released, key=rank)

        return result

    def _rank(self, node: str) -> int:
        return self._order.get(node, len(self._order))

    def _find_path(self, start: str, target: str):
        """Return the node path from start to target, or None if unreachable."""
        if start == target:
            return [start]

        parents = {start: None}
        to_visit = deque([start])
        while to_visit:
            current = to_visit.popleft()
            for dependent in self._forward.get(current, ()):
                if dependent in parents:
                    continue
                parents[dependent] = current
                if dependent == target:
                    path = [dependent]
                    while parents[path[-1]] is not None:
                        path.append(parents[path[-1]])
                    return list(reversed(path))
                to_visit.append(dependent)
        return None

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, node: str) -> bool:
        return node in self._order

    def __repr__(self) -> str:
        edges = sum(len(deps) for deps in self._forward.values())
        return f"DependencyGraph(nodes={len(self._order)}, edges={edges})"
