# gradleflow/infra/flow/dependency_resolver.py
"""
Dependency resolution over the task graph.

Cycle detection and execution ordering only look at hard (dependsOn) edges
between enabled nodes. Advisory edges (mustRunAfter, shouldRunAfter,
finalizedBy) are excluded from the scheduler's graph.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set

from gradleflow.infra.flow.models import DependencyType, Edge, TaskNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionValidation:
    valid: bool
    message: Optional[str] = None


# ============================================================
#                   HARD-DEPENDENCY SUBGRAPH
# ============================================================
def _hard_adjacency(
    nodes: Sequence[TaskNode],
    edges: Iterable[Edge],
    include_disabled: bool = False,
) -> Dict[str, List[str]]:
    """
    Build the adjacency list of the hard-dependency subgraph.

    Args:
        nodes: Nodes of the graph (order is preserved)
        edges: All edges; advisory edges are ignored
        include_disabled: Keep disabled nodes in the subgraph

    Returns:
        Map of node id to the ids of its hard dependents
    """
    adjacency: Dict[str, List[str]] = {
        node.id: [] for node in nodes if include_disabled or node.enabled
    }
    for edge in edges:
        if not edge.kind.is_hard:
            continue
        if edge.source in adjacency and edge.target in adjacency:
            if edge.target not in adjacency[edge.source]:
                adjacency[edge.source].append(edge.target)
    return adjacency


def _find_cycle_in(adjacency: Dict[str, List[str]]) -> Optional[List[str]]:
    """
    Depth-first search with an in-path set.

    Returns:
        The node ids forming a cycle (first node repeated at the end), or None
    """
    visited: Set[str] = set()
    in_path: List[str] = []
    in_path_set: Set[str] = set()

    def visit(node_id: str) -> Optional[List[str]]:
        visited.add(node_id)
        in_path.append(node_id)
        in_path_set.add(node_id)
        for neighbor in adjacency.get(node_id, ()):
            if neighbor in in_path_set:
                start = in_path.index(neighbor)
                return in_path[start:] + [neighbor]
            if neighbor not in visited:
                cycle = visit(neighbor)
                if cycle:
                    return cycle
        in_path.pop()
        in_path_set.discard(node_id)
        return None

    for node_id in adjacency:
        if node_id not in visited:
            cycle = visit(node_id)
            if cycle:
                return cycle
    return None


# ============================================================
#                   CYCLE CHECK
# ============================================================
def find_cycle(
    nodes: Sequence[TaskNode],
    edges: Iterable[Edge],
    include_disabled: bool = False,
) -> Optional[List[str]]:
    """
    Find one cycle in the hard-dependency subgraph.

    Args:
        nodes: Nodes of the graph
        edges: Edges of the graph
        include_disabled: Also consider disabled nodes (used by export validation)

    Returns:
        Node ids along the cycle, or None when the subgraph is acyclic
    """
    return _find_cycle_in(_hard_adjacency(nodes, edges, include_disabled))


def would_create_cycle(
    nodes: Sequence[TaskNode],
    edges: Iterable[Edge],
    source: str,
    target: str,
) -> bool:
    """
    Check whether adding a hard edge source -> target closes a cycle.

    A self-loop always counts as a cycle. Edges touching a disabled node are
    outside the scheduler's graph and never close a cycle.

    Args:
        nodes: Nodes of the graph
        edges: Existing edges
        source: Proposed edge source
        target: Proposed edge target

    Returns:
        True if the edge would create a cycle
    """
    if source == target:
        return True
    proposed = list(edges) + [Edge(source, target, DependencyType.DEPENDS_ON)]
    return find_cycle(nodes, proposed) is not None


def validate_connection(
    nodes: Sequence[TaskNode],
    edges: Sequence[Edge],
    source: str,
    target: str,
    kind: DependencyType = DependencyType.DEPENDS_ON,
) -> ConnectionValidation:
    """
    Validate a proposed edge before it is added.

    Checks, in order: self-loop, exact duplicate (source, target, kind), and
    for hard edges a cycle.

    Returns:
        ConnectionValidation with a human-readable message when invalid
    """
    kind = DependencyType(kind)
    if source == target:
        return ConnectionValidation(False, "Cannot connect a task to itself")

    if any(e.source == source and e.target == target and e.kind == kind for e in edges):
        return ConnectionValidation(False, "This dependency already exists")

    if kind.is_hard and would_create_cycle(nodes, edges, source, target):
        return ConnectionValidation(False, "This would create a circular dependency")

    return ConnectionValidation(True)


# ============================================================
#                   EXECUTION ORDER
# ============================================================
def required_closure(
    nodes: Sequence[TaskNode],
    edges: Iterable[Edge],
    targets: Iterable[str],
) -> Set[str]:
    """
    Back-walk hard edges from the requested targets.

    Args:
        nodes: Nodes of the graph
        edges: Edges of the graph
        targets: Requested node ids (unknown or disabled ids are ignored)

    Returns:
        The targets plus every enabled node they transitively depend on
    """
    adjacency = _hard_adjacency(nodes, edges)
    predecessors: Dict[str, List[str]] = {node_id: [] for node_id in adjacency}
    for node_id, dependents in adjacency.items():
        for dependent in dependents:
            predecessors[dependent].append(node_id)

    closure: Set[str] = set()
    stack = [t for t in targets if t in adjacency]
    while stack:
        node_id = stack.pop()
        if node_id in closure:
            continue
        closure.add(node_id)
        stack.extend(predecessors[node_id])
    return closure


def execution_order(
    nodes: Sequence[TaskNode],
    edges: Iterable[Edge],
    targets: Optional[Iterable[str]] = None,
) -> List[str]:
    """
    Compute the execution order with Kahn's algorithm.

    Only enabled nodes and hard edges participate. When ``targets`` is given,
    the order is restricted to the targets and their transitive hard
    dependencies. Zero in-degree candidates are taken in discovery order
    (node order first, then the order dependents become ready).

    Args:
        nodes: Nodes of the graph
        edges: Edges of the graph
        targets: Optional subset of node ids to run

    Returns:
        Node ids in execution order
    """
    edges = list(edges)
    adjacency = _hard_adjacency(nodes, edges)
    if targets is not None:
        closure = required_closure(nodes, edges, targets)
        adjacency = {
            node_id: [d for d in dependents if d in closure]
            for node_id, dependents in adjacency.items()
            if node_id in closure
        }

    in_degree: Dict[str, int] = {node_id: 0 for node_id in adjacency}
    for dependents in adjacency.values():
        for dependent in dependents:
            in_degree[dependent] += 1

    queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
    order: List[str] = []
    while queue:
        node_id = queue.popleft()
        order.append(node_id)
        for dependent in adjacency[node_id]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(order) < len(adjacency):
        seen = set(order)
        leftovers = [node_id for node_id in adjacency if node_id not in seen]
        logger.warning(f"Cycle detected while ordering tasks, appending unresolved tasks: {leftovers}")
        order.extend(leftovers)

    return order


# ============================================================
#                   TRAVERSAL HELPERS
# ============================================================
def upstream_dependencies(edges: Iterable[Edge], node_id: str, hard_only: bool = True) -> List[str]:
    """
    Get all nodes that must run before ``node_id`` (transitively).

    Args:
        edges: Edges of the graph
        node_id: Node to inspect
        hard_only: Only follow dependsOn edges

    Returns:
        Upstream node ids in breadth-first discovery order
    """
    edges = [e for e in edges if e.kind.is_hard or not hard_only]
    result: List[str] = []
    seen = {node_id}
    queue = deque([node_id])
    while queue:
        current = queue.popleft()
        for edge in edges:
            if edge.target == current and edge.source not in seen:
                seen.add(edge.source)
                result.append(edge.source)
                queue.append(edge.source)
    return result


def downstream_dependents(edges: Iterable[Edge], node_id: str, hard_only: bool = True) -> List[str]:
    """
    Get all nodes that depend on ``node_id`` (transitively).

    Args:
        edges: Edges of the graph
        node_id: Node to inspect
        hard_only: Only follow dependsOn edges

    Returns:
        Downstream node ids in breadth-first discovery order
    """
    edges = [e for e in edges if e.kind.is_hard or not hard_only]
    result: List[str] = []
    seen = {node_id}
    queue = deque([node_id])
    while queue:
        current = queue.popleft()
        for edge in edges:
            if edge.source == current and edge.target not in seen:
                seen.add(edge.target)
                result.append(edge.target)
                queue.append(edge.target)
    return result


def find_all_paths(edges: Iterable[Edge], source: str, target: str) -> List[List[str]]:
    """
    Enumerate simple paths from ``source`` to ``target`` over all edge kinds.

    Used to explain why one task ends up after another.
    """
    adjacency: Dict[str, List[str]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source, [])
        if edge.target not in adjacency[edge.source]:
            adjacency[edge.source].append(edge.target)

    paths: List[List[str]] = []
    path: List[str] = []

    def walk(current: str) -> None:
        path.append(current)
        if current == target:
            paths.append(list(path))
        else:
            for neighbor in adjacency.get(current, ()):
                if neighbor not in path:
                    walk(neighbor)
        path.pop()

    walk(source)
    return paths
