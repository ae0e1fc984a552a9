"""
Dependency graph - file relationships as a typed, weighted digraph.

Nodes live in a dict keyed by id and edges in per-id adjacency lists, so
cycles are plain data. Edges are idempotent on ``(from, to, type)``; adding
an edge to an unknown id creates a placeholder node that a later
``add_node`` fills in.

Traversals (BFS, three-colour DFS, Tarjan, Kahn) are iterative, so deep
import chains do not hit the recursion limit.
"""

from __future__ import annotations

import dataclasses
from collections import deque
from typing import Any, Iterator, Optional

from depscope.models import CircularDependency, DependencyEdge, DependencyNode, DependencyType

WHITE, GRAY, BLACK = 0, 1, 2


class DependencyGraph:
    """
    Directed graph of analysis units.

    Usage:
        graph = DependencyGraph()
        graph.add_edge("a.py", "b.py", DependencyType.IMPORT)
        graph.add_edge("b.py", "c.py", DependencyType.IMPORT)

        graph.find_shortest_path("a.py", "c.py")
        # → ["a.py", "b.py", "c.py"]

        graph.topological_sort()
        # → ["a.py", "b.py", "c.py"] (None if there is a cycle)
    """

    def __init__(self):
        self._nodes: dict[str, DependencyNode] = {}
        self._out: dict[str, list[DependencyEdge]] = {}
        self._in: dict[str, list[DependencyEdge]] = {}
        self._edge_keys: set[tuple[str, str, DependencyType]] = set()

    # =========================================================================
    # MUTATION
    # =========================================================================

    def add_node(self, node: DependencyNode) -> DependencyNode:
        """
        Add or replace a node. Degree counters are owned by the graph and
        survive replacement (e.g. filling in a placeholder).
        """
        existing = self._nodes.get(node.id)
        stored = dataclasses.replace(
            node,
            in_degree=existing.in_degree if existing else 0,
            out_degree=existing.out_degree if existing else 0,
        )
        self._nodes[node.id] = stored
        self._out.setdefault(node.id, [])
        self._in.setdefault(node.id, [])
        return stored

    def _ensure_node(self, node_id: str) -> DependencyNode:
        node = self._nodes.get(node_id)
        if node is None:
            node = self.add_node(DependencyNode(id=node_id, path=node_id, is_placeholder=True))
        return node

    def add_edge(
        self,
        from_id: str,
        to_id: str,
        type: DependencyType = DependencyType.IMPORT,
        weight: float = 1,
    ) -> bool:
        """
        Add a directed edge. Returns False if the same ``(from, to, type)``
        edge already exists.
        """
        edge = DependencyEdge(from_id, to_id, type, weight)
        if edge.key in self._edge_keys:
            return False

        source = self._ensure_node(from_id)
        target = self._ensure_node(to_id)

        self._edge_keys.add(edge.key)
        self._out[from_id].append(edge)
        self._in[to_id].append(edge)
        source.out_degree += 1
        target.in_degree += 1
        return True

    def remove_edge(self, from_id: str, to_id: str, type: Optional[DependencyType] = None) -> int:
        """Remove edges ``from → to`` (of one type, or all types). Returns the count removed."""
        doomed = [
            e for e in self._out.get(from_id, [])
            if e.to_id == to_id and (type is None or e.type == type)
        ]
        for edge in doomed:
            self._unlink(edge)
        return len(doomed)

    def remove_node(self, node_id: str) -> bool:
        if node_id not in self._nodes:
            return False
        for edge in list(self._out[node_id]) + list(self._in[node_id]):
            if edge.key in self._edge_keys:
                self._unlink(edge)
        del self._nodes[node_id]
        del self._out[node_id]
        del self._in[node_id]
        return True

    def _unlink(self, edge: DependencyEdge) -> None:
        self._edge_keys.discard(edge.key)
        self._out[edge.from_id].remove(edge)
        self._in[edge.to_id].remove(edge)
        self._nodes[edge.from_id].out_degree -= 1
        self._nodes[edge.to_id].in_degree -= 1

    def clear(self) -> None:
        self._nodes.clear()
        self._out.clear()
        self._in.clear()
        self._edge_keys.clear()

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get_node(self, node_id: str) -> Optional[DependencyNode]:
        return self._nodes.get(node_id)

    def nodes(self) -> list[DependencyNode]:
        """Nodes in insertion order."""
        return list(self._nodes.values())

    def node_ids(self) -> list[str]:
        return list(self._nodes.keys())

    def edges(self) -> list[DependencyEdge]:
        return [e for edges in self._out.values() for e in edges]

    def get_edges(self, node_id: str) -> list[DependencyEdge]:
        """Outgoing edges, in insertion order. Empty for unknown ids."""
        return list(self._out.get(node_id, []))

    def get_incoming_edges(self, node_id: str) -> list[DependencyEdge]:
        return list(self._in.get(node_id, []))

    def successors(self, node_id: str) -> list[str]:
        """Distinct targets of outgoing edges, in first-seen order."""
        return list(dict.fromkeys(e.to_id for e in self._out.get(node_id, [])))

    def predecessors(self, node_id: str) -> list[str]:
        return list(dict.fromkeys(e.from_id for e in self._in.get(node_id, [])))

    def get_root_nodes(self) -> list[str]:
        """Nodes nothing depends on (in-degree 0)."""
        return [n.id for n in self._nodes.values() if n.in_degree == 0]

    def get_leaf_nodes(self) -> list[str]:
        """Nodes that depend on nothing (out-degree 0)."""
        return [n.id for n in self._nodes.values() if n.out_degree == 0]

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return len(self._edge_keys)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._nodes))

    # =========================================================================
    # PATHS
    # =========================================================================

    def find_shortest_path(self, from_id: str, to_id: str) -> Optional[list[str]]:
        """
        Fewest-hops path (edge weights are ignored).

        Returns:
            ``[from, ..., to]``, ``[from]`` when both ids are equal, or None
            when either id is unknown or ``to`` is unreachable
        """
        if from_id not in self._nodes or to_id not in self._nodes:
            return None
        if from_id == to_id:
            return [from_id]

        parent: dict[str, str] = {}
        visited = {from_id}
        queue = deque([from_id])

        while queue:
            current = queue.popleft()
            for nxt in self.successors(current):
                if nxt in visited:
                    continue
                visited.add(nxt)
                parent[nxt] = current
                if nxt == to_id:
                    path = [to_id]
                    while path[-1] != from_id:
                        path.append(parent[path[-1]])
                    return path[::-1]
                queue.append(nxt)

        return None

    def has_path(self, from_id: str, to_id: str) -> bool:
        return self.find_shortest_path(from_id, to_id) is not None

    def find_all_paths(self, from_id: str, to_id: str, max_depth: int = 10) -> list[list[str]]:
        """Every simple path from ``from_id`` to ``to_id`` with at most ``max_depth`` edges."""
        if from_id not in self._nodes or to_id not in self._nodes:
            return []
        if from_id == to_id:
            return [[from_id]]

        paths: list[list[str]] = []
        path = [from_id]
        on_path = {from_id}
        stack = [iter(self.successors(from_id))]

        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if nxt in on_path:
                continue
            if nxt == to_id:
                paths.append(path + [nxt])
                continue
            if len(path) < max_depth:
                path.append(nxt)
                on_path.add(nxt)
                stack.append(iter(self.successors(nxt)))

        return paths

    # =========================================================================
    # CYCLES & ORDERING
    # =========================================================================

    def _back_edges(self) -> list[tuple[str, list[str]]]:
        """
        Three-colour DFS from every white node, in insertion order.

        Returns one ``(target, path_snapshot)`` per back edge, where the
        snapshot is the DFS path from ``target`` to the edge's source.
        """
        color = dict.fromkeys(self._nodes, WHITE)
        found: list[tuple[str, list[str]]] = []

        for root in self._nodes:
            if color[root] != WHITE:
                continue

            color[root] = GRAY
            path = [root]
            position = {root: 0}
            stack = [iter(self.successors(root))]

            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    stack.pop()
                    done = path.pop()
                    del position[done]
                    color[done] = BLACK
                    continue

                state = color[nxt]
                if state == GRAY:
                    found.append((nxt, path[position[nxt]:]))
                elif state == WHITE:
                    color[nxt] = GRAY
                    position[nxt] = len(path)
                    path.append(nxt)
                    stack.append(iter(self.successors(nxt)))

        return found

    def find_cycles(self) -> list[CircularDependency]:
        """
        Report one cycle per back edge, as ``[entry, ..., entry]``.

        A self-import is reported as ``[a, a]``. Acyclic graphs return [].
        """
        cycles = []
        for entry, segment in self._back_edges():
            path = tuple(segment) + (entry,)
            files = tuple(self._nodes[n].path or n for n in path)
            cycles.append(CircularDependency(path=path, files=files))
        return cycles

    def topological_sort(self) -> Optional[list[str]]:
        """
        Kahn's algorithm; the queue is seeded in node insertion order.

        Returns:
            Every node id, each edge pointing forward; None if the graph
            has a cycle (never a partial order)
        """
        in_degree = {node_id: len(edges) for node_id, edges in self._in.items()}
        queue = deque(n for n in self._nodes if in_degree[n] == 0)
        order: list[str] = []

        while queue:
            current = queue.popleft()
            order.append(current)
            for edge in self._out[current]:
                in_degree[edge.to_id] -= 1
                if in_degree[edge.to_id] == 0:
                    queue.append(edge.to_id)

        if len(order) != len(self._nodes):
            return None
        return order

    def strongly_connected_components(self, min_size: int = 1) -> list[list[str]]:
        """Tarjan's algorithm. Components are returned in completion order."""
        index: dict[str, int] = {}
        lowlink: dict[str, int] = {}
        on_stack: set[str] = set()
        scc_stack: list[str] = []
        components: list[list[str]] = []
        counter = 0

        for root in self._nodes:
            if root in index:
                continue

            work = [(root, iter(self.successors(root)))]
            index[root] = lowlink[root] = counter
            counter += 1
            scc_stack.append(root)
            on_stack.add(root)

            while work:
                v, successors = work[-1]
                w = next(successors, None)

                if w is not None:
                    if w not in index:
                        index[w] = lowlink[w] = counter
                        counter += 1
                        scc_stack.append(w)
                        on_stack.add(w)
                        work.append((w, iter(self.successors(w))))
                    elif w in on_stack:
                        lowlink[v] = min(lowlink[v], index[w])
                    continue

                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[v])

                if lowlink[v] == index[v]:
                    component: list[str] = []
                    while True:
                        w = scc_stack.pop()
                        on_stack.discard(w)
                        component.append(w)
                        if w == v:
                            break
                    if len(component) >= min_size:
                        components.append(component)

        return components

    def compute_levels(self) -> dict[str, int]:
        """
        Assign each node its longest distance from a root, ignoring the back
        edges that close cycles. Stores the result on ``node.level``.
        """
        back = {(segment[-1], entry) for entry, segment in self._back_edges()}
        forward = {
            node_id: [t for t in self.successors(node_id) if (node_id, t) not in back]
            for node_id in self._nodes
        }

        in_degree = dict.fromkeys(self._nodes, 0)
        for targets in forward.values():
            for t in targets:
                in_degree[t] += 1

        levels = dict.fromkeys(self._nodes, 0)
        queue = deque(n for n in self._nodes if in_degree[n] == 0)
        while queue:
            current = queue.popleft()
            for t in forward[current]:
                levels[t] = max(levels[t], levels[current] + 1)
                in_degree[t] -= 1
                if in_degree[t] == 0:
                    queue.append(t)

        for node_id, level in levels.items():
            self._nodes[node_id].level = level
        return levels

    # =========================================================================
    # METRICS & EXPORT
    # =========================================================================

    def _weak_component_count(self) -> int:
        seen: set[str] = set()
        count = 0
        for start in self._nodes:
            if start in seen:
                continue
            count += 1
            seen.add(start)
            queue = deque([start])
            while queue:
                current = queue.popleft()
                for other in self.successors(current) + self.predecessors(current):
                    if other not in seen:
                        seen.add(other)
                        queue.append(other)
        return count

    def get_metrics(self) -> dict[str, Any]:
        n = len(self._nodes)
        e = len(self._edge_keys)
        return {
            "node_count": n,
            "edge_count": e,
            "density": e / (n * (n - 1)) if n > 1 else 0.0,
            "average_degree": 2 * e / n if n else 0.0,
            "weakly_connected_components": self._weak_component_count(),
            "has_cycles": bool(self._back_edges()),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self._nodes.values()],
            "edges": [e.to_dict() for e in self.edges()],
        }


class DependencyGraphView:
    """
    Read-only facade over a DependencyGraph.

    Handed out in analysis reports so callers can query the graph without
    being able to change it. Nodes are returned as copies.
    """

    def __init__(self, graph: DependencyGraph):
        self._graph = graph

    def get_node(self, node_id: str) -> Optional[DependencyNode]:
        node = self._graph.get_node(node_id)
        return dataclasses.replace(node) if node else None

    def nodes(self) -> list[DependencyNode]:
        return [dataclasses.replace(n) for n in self._graph.nodes()]

    def node_ids(self) -> list[str]:
        return self._graph.node_ids()

    def edges(self) -> list[DependencyEdge]:
        return self._graph.edges()

    def get_edges(self, node_id: str) -> list[DependencyEdge]:
        return self._graph.get_edges(node_id)

    def get_incoming_edges(self, node_id: str) -> list[DependencyEdge]:
        return self._graph.get_incoming_edges(node_id)

    def successors(self, node_id: str) -> list[str]:
        return self._graph.successors(node_id)

    def predecessors(self, node_id: str) -> list[str]:
        return self._graph.predecessors(node_id)

    def get_root_nodes(self) -> list[str]:
        return self._graph.get_root_nodes()

    def get_leaf_nodes(self) -> list[str]:
        return self._graph.get_leaf_nodes()

    def find_shortest_path(self, from_id: str, to_id: str) -> Optional[list[str]]:
        return self._graph.find_shortest_path(from_id, to_id)

    def has_path(self, from_id: str, to_id: str) -> bool:
        return self._graph.has_path(from_id, to_id)

    def find_all_paths(self, from_id: str, to_id: str, max_depth: int = 10) -> list[list[str]]:
        return self._graph.find_all_paths(from_id, to_id, max_depth)

    def find_cycles(self) -> list[CircularDependency]:
        return self._graph.find_cycles()

    def topological_sort(self) -> Optional[list[str]]:
        return self._graph.topological_sort()

    def strongly_connected_components(self, min_size: int = 1) -> list[list[str]]:
        return self._graph.strongly_connected_components(min_size)

    def get_metrics(self) -> dict[str, Any]:
        return self._graph.get_metrics()

    def to_dict(self) -> dict[str, Any]:
        return self._graph.to_dict()

    @property
    def node_count(self) -> int:
        return self._graph.node_count

    @property
    def edge_count(self) -> int:
        return self._graph.edge_count

    def __len__(self) -> int:
        return len(self._graph)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._graph
