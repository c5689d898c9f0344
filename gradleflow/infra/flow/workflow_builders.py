# gradleflow/infra/flow/workflow_builders.py
"""
Builder pattern for task graph construction.

This module provides a fluent builder API for constructing task graphs
programmatically, addressing nodes by name instead of by id.
"""
from __future__ import annotations

from typing import Iterable, Optional

from gradleflow.infra.flow.graph import TaskGraph
from gradleflow.infra.flow.ids import IdGenerator
from gradleflow.infra.flow.models import (
    DependencyType,
    TaskCondition,
    TaskConfig,
    TaskGroup,
    TaskKind,
    TaskNode,
    Trigger,
    Variable,
    VariableType,
)


# ============================================================
#                   BUILDER PATTERN
# ============================================================
class GraphBuilder:
    """
    Fluent builder for constructing task graphs.

    Every call goes through the TaskGraph mutations, so the same structural
    errors are raised as when editing a graph directly.

    Example:
        ```python
        graph = (GraphBuilder()
            .add_task("compileJava", TaskKind.JAVA_COMPILE)
            .add_task("test", TaskKind.TEST, depends_on=["compileJava"])
            .add_task("jar", TaskKind.JAR, depends_on=["test"])
            .add_variable("buildEnv", "dev")
            .build())
        ```
    """

    def __init__(self, ids: Optional[IdGenerator] = None, graph: Optional[TaskGraph] = None):
        """
        Initialize the graph builder.

        Args:
            ids: Id generator for new nodes, groups and variables
            graph: Graph to extend (an empty graph with system variables by default)
        """
        self._graph = graph or TaskGraph.empty()
        self._ids = ids or IdGenerator()
        self._ids.reserve(self._graph.node_ids)
        self._ids.reserve(g.id for g in self._graph.groups)
        self._ids.reserve(v.id for v in self._graph.variables)

    def _node_id(self, name: str) -> str:
        node = self._graph.find_node_by_name(name)
        if node is None:
            raise KeyError(f"Task not found: {name}")
        return node.id

    def add_task(
        self,
        name: str,
        kind: TaskKind = TaskKind.CUSTOM,
        config: Optional[TaskConfig] = None,
        *,
        depends_on: Optional[Iterable[str]] = None,
        group: Optional[str] = None,
        description: Optional[str] = None,
        enabled: bool = True,
        timeout_minutes: Optional[int] = None,
        condition: Optional[TaskCondition] = None,
        trigger: Optional[Trigger] = None,
    ) -> GraphBuilder:
        """
        Add a node to the graph.

        Args:
            name: Task name
            kind: Build-step kind
            config: Kind-specific configuration (defaults for ``kind`` when omitted)
            depends_on: Names of tasks this one depends on
            group: Free-text group label
            description: Task description
            enabled: Whether the node takes part in ordering and execution
            timeout_minutes: Optional timeout
            condition: Optional guard
            trigger: Optional trigger metadata

        Returns:
            Self for method chaining
        """
        node = TaskNode(
            id=self._ids.next("task"),
            name=name,
            kind=kind,
            config=config,
            group=group,
            description=description,
            enabled=enabled,
            timeout_minutes=timeout_minutes,
            condition=condition,
            trigger=trigger,
        )
        self._graph = self._graph.add_node(node)
        for upstream in depends_on or ():
            self.depends_on(name, upstream)
        return self

    def connect(self, source: str, target: str, kind: DependencyType = DependencyType.DEPENDS_ON) -> GraphBuilder:
        """
        Add a typed edge between two tasks given by name.

        Returns:
            Self for method chaining
        """
        self._graph = self._graph.add_edge(self._node_id(source), self._node_id(target), kind)
        return self

    def depends_on(self, name: str, upstream: str) -> GraphBuilder:
        return self.connect(upstream, name, DependencyType.DEPENDS_ON)

    def must_run_after(self, name: str, other: str) -> GraphBuilder:
        return self.connect(other, name, DependencyType.MUST_RUN_AFTER)

    def should_run_after(self, name: str, other: str) -> GraphBuilder:
        return self.connect(other, name, DependencyType.SHOULD_RUN_AFTER)

    def finalized_by(self, name: str, finalizer: str) -> GraphBuilder:
        return self.connect(name, finalizer, DependencyType.FINALIZED_BY)

    def add_group(self, name: str, members: Iterable[str] = (), color: str = "#6366f1",
                  description: Optional[str] = None) -> GraphBuilder:
        """
        Add a visual group containing the named tasks.

        Returns:
            Self for method chaining
        """
        group = TaskGroup(
            id=self._ids.next("group"),
            name=name,
            color=color,
            description=description,
            task_ids=tuple(self._node_id(member) for member in members),
        )
        self._graph = self._graph.add_group(group)
        return self

    def add_variable(
        self,
        name: str,
        default_value: str = "",
        type: VariableType = VariableType.STRING,
        value: Optional[str] = None,
        description: Optional[str] = None,
    ) -> GraphBuilder:
        """
        Declare a user variable.

        Returns:
            Self for method chaining
        """
        variable = Variable(
            id=self._ids.next("var"),
            name=name,
            type=type,
            default_value=default_value,
            value=value,
            description=description,
        )
        self._graph = self._graph.add_variable(variable)
        return self

    def build(self) -> TaskGraph:
        """
        Return the constructed graph.

        Returns:
            The TaskGraph built so far
        """
        return self._graph
