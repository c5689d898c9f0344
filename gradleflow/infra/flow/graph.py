# gradleflow/infra/flow/graph.py
"""
In-memory task graph.

A TaskGraph is immutable: every mutation validates its input and returns a
new graph, leaving the original untouched. Structural errors are raised
before anything is changed.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from gradleflow.infra.flow.dependency_resolver import execution_order, find_cycle, validate_connection
from gradleflow.infra.flow.errors import (
    CycleError,
    DuplicateEdgeError,
    DuplicateGroupNameError,
    DuplicateTaskNameError,
    DuplicateVariableError,
    InvalidNameError,
    InvalidVariableValueError,
    SelfLoopError,
    StructuralValidationError,
    SystemVariableError,
    UnknownGroupError,
    UnknownNodeError,
    UnknownVariableError,
)
from gradleflow.infra.flow.models import (
    DependencyType,
    Edge,
    ManualTrigger,
    TaskGroup,
    TaskNode,
    Variable,
    default_config,
)
from gradleflow.infra.flow.variables import (
    default_system_variables,
    is_valid_variable_name,
    validate_variable_value,
)

logger = logging.getLogger(__name__)

MAX_GROUP_NAME_LENGTH = 50


@dataclass(frozen=True)
class GroupStats:
    total: int = 0
    enabled: int = 0
    disabled: int = 0
    with_conditions: int = 0
    with_triggers: int = 0


def validate_group_name(name: str, groups: Iterable[TaskGroup], exclude_id: Optional[str] = None) -> Optional[str]:
    """
    Validate a group name against existing groups.

    Args:
        name: Proposed name (surrounding whitespace is ignored)
        groups: Existing groups
        exclude_id: Group being renamed, excluded from the uniqueness check

    Returns:
        An error message, or None when the name is acceptable
    """
    trimmed = (name or "").strip()
    if not trimmed:
        return "Group name is required"
    if len(trimmed) > MAX_GROUP_NAME_LENGTH:
        return f"Group name must be {MAX_GROUP_NAME_LENGTH} characters or less"
    if any(g.id != exclude_id and g.name.lower() == trimmed.lower() for g in groups):
        return "A group with this name already exists"
    return None


# ============================================================
#                   TASK GRAPH
# ============================================================
@dataclass(frozen=True)
class TaskGraph:
    """
    Nodes, typed edges, groups and variables of a build pipeline.

    Attributes:
        nodes: Task nodes in insertion order
        edges: Typed dependency edges
        groups: Visual groups
        variables: Declared variables, system ones included
    """
    nodes: Tuple[TaskNode, ...] = ()
    edges: Tuple[Edge, ...] = ()
    groups: Tuple[TaskGroup, ...] = ()
    variables: Tuple[Variable, ...] = ()

    @classmethod
    def empty(cls, with_system_variables: bool = True) -> TaskGraph:
        return cls(variables=default_system_variables() if with_system_variables else ())

    # ---------- Queries ----------

    @property
    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def has_node(self, node_id: str) -> bool:
        return any(node.id == node_id for node in self.nodes)

    def get_node(self, node_id: str) -> TaskNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise UnknownNodeError(node_id)

    def find_node_by_name(self, name: str) -> Optional[TaskNode]:
        """Find a node by its name or script identifier."""
        for node in self.nodes:
            if node.name == name or node.identifier == name:
                return node
        return None

    def incoming(self, node_id: str, kind: Optional[DependencyType] = None) -> List[Edge]:
        return [e for e in self.edges if e.target == node_id and (kind is None or e.kind == kind)]

    def outgoing(self, node_id: str, kind: Optional[DependencyType] = None) -> List[Edge]:
        return [e for e in self.edges if e.source == node_id and (kind is None or e.kind == kind)]

    def get_group(self, group_id: str) -> TaskGroup:
        for group in self.groups:
            if group.id == group_id:
                return group
        raise UnknownGroupError(group_id)

    def group_of(self, node_id: str) -> Optional[TaskGroup]:
        for group in self.groups:
            if node_id in group.task_ids:
                return group
        return None

    def group_stats(self, group_id: str) -> GroupStats:
        """
        Count the members of a group by state.

        Args:
            group_id: Group to inspect

        Returns:
            GroupStats with totals, enabled/disabled counts, and how many
            members carry conditions or non-manual triggers
        """
        group = self.get_group(group_id)
        members = [node for node in self.nodes if node.id in group.task_ids]
        enabled = sum(1 for node in members if node.enabled)
        return GroupStats(
            total=len(members),
            enabled=enabled,
            disabled=len(members) - enabled,
            with_conditions=sum(1 for node in members if node.condition and node.condition.conditions),
            with_triggers=sum(
                1 for node in members
                if node.trigger is not None and not isinstance(node.trigger, ManualTrigger)
            ),
        )

    def get_variable(self, name: str) -> Variable:
        for variable in self.variables:
            if variable.name == name:
                return variable
        raise UnknownVariableError(name)

    @property
    def user_variables(self) -> List[Variable]:
        return [v for v in self.variables if not v.is_system]

    def execution_order(self, targets: Optional[Iterable[str]] = None) -> List[str]:
        return execution_order(self.nodes, self.edges, targets)

    # ---------- Nodes ----------

    def _check_identifier_free(self, node: TaskNode, ignore_id: Optional[str] = None) -> None:
        for other in self.nodes:
            if other.id != ignore_id and other.identifier == node.identifier:
                raise DuplicateTaskNameError(node.name)

    def add_node(self, node: TaskNode) -> TaskGraph:
        """
        Add a node.

        Raises:
            StructuralValidationError: If the id is already used
            DuplicateTaskNameError: If another node maps to the same script identifier
        """
        if self.has_node(node.id):
            raise StructuralValidationError(f"Task id already exists: {node.id}")
        if not node.name.strip():
            raise InvalidNameError("Task name is required")
        self._check_identifier_free(node)
        return dataclasses.replace(self, nodes=self.nodes + (node,))

    def update_node(self, node_id: str, **changes) -> TaskGraph:
        """
        Edit node properties.

        Changing ``kind`` without supplying ``config`` resets the configuration
        to the new kind's defaults.

        Args:
            node_id: Node to edit
            **changes: TaskNode fields to replace (``id`` cannot change)

        Returns:
            The updated graph
        """
        if "id" in changes and changes["id"] != node_id:
            raise StructuralValidationError("Task id cannot be changed")
        current = self.get_node(node_id)
        if "kind" in changes and changes["kind"] != current.kind and "config" not in changes:
            changes["config"] = default_config(changes["kind"])
        updated = dataclasses.replace(current, **changes)
        if not updated.name.strip():
            raise InvalidNameError("Task name is required")
        self._check_identifier_free(updated, ignore_id=node_id)

        graph = dataclasses.replace(
            self, nodes=tuple(updated if n.id == node_id else n for n in self.nodes)
        )
        if updated.enabled and not current.enabled:
            cycle = _enabled_cycle(graph)
            if cycle:
                raise CycleError("Enabling this task would create a circular dependency", cycle)
        return graph

    def remove_node(self, node_id: str) -> TaskGraph:
        """Remove a node together with its edges and group membership."""
        self.get_node(node_id)
        return TaskGraph(
            nodes=tuple(n for n in self.nodes if n.id != node_id),
            edges=tuple(e for e in self.edges if node_id not in (e.source, e.target)),
            groups=tuple(
                dataclasses.replace(g, task_ids=tuple(t for t in g.task_ids if t != node_id))
                for g in self.groups
            ),
            variables=self.variables,
        )

    # ---------- Edges ----------

    def add_edge(self, source: str, target: str, kind: DependencyType = DependencyType.DEPENDS_ON) -> TaskGraph:
        """
        Add a typed edge.

        Args:
            source: Node that runs first
            target: Node that runs after ``source``
            kind: Relation kind

        Raises:
            UnknownNodeError: If an endpoint does not exist
            SelfLoopError: If source equals target
            DuplicateEdgeError: If the exact (source, target, kind) edge exists
            CycleError: If a hard edge would close a cycle
        """
        kind = DependencyType(kind)
        self.get_node(source)
        self.get_node(target)
        validation = validate_connection(self.nodes, self.edges, source, target, kind)
        if not validation.valid:
            if source == target:
                raise SelfLoopError(source)
            if any(e.source == source and e.target == target and e.kind == kind for e in self.edges):
                raise DuplicateEdgeError(source, target, kind)
            raise CycleError(validation.message)
        return dataclasses.replace(self, edges=self.edges + (Edge(source, target, kind),))

    def remove_edge(self, source: str, target: str, kind: DependencyType = DependencyType.DEPENDS_ON) -> TaskGraph:
        kind = DependencyType(kind)
        remaining = tuple(
            e for e in self.edges if not (e.source == source and e.target == target and e.kind == kind)
        )
        if len(remaining) == len(self.edges):
            raise StructuralValidationError(f"Dependency not found: {source} -[{kind}]-> {target}")
        return dataclasses.replace(self, edges=remaining)

    def update_edge_kind(
        self, source: str, target: str, kind: DependencyType, new_kind: DependencyType
    ) -> TaskGraph:
        """Change an edge's relation kind, re-validating it as a new edge."""
        return self.remove_edge(source, target, kind).add_edge(source, target, new_kind)

    # ---------- Groups ----------

    def add_group(self, group: TaskGroup) -> TaskGraph:
        """
        Add a group. Its initial members are moved out of any other group.

        Raises:
            InvalidNameError: If the name is blank or too long
            DuplicateGroupNameError: If the name is taken (case-insensitive)
        """
        if any(g.id == group.id for g in self.groups):
            raise StructuralValidationError(f"Group id already exists: {group.id}")
        self._validate_group_name(group.name)
        members = self._unique_members(group.task_ids)
        group = dataclasses.replace(group, name=group.name.strip(), task_ids=())
        graph = dataclasses.replace(self, groups=self.groups + (group,))
        return graph.assign_to_group(group.id, members) if members else graph

    def rename_group(self, group_id: str, name: str) -> TaskGraph:
        group = self.get_group(group_id)
        self._validate_group_name(name, exclude_id=group_id)
        return self._replace_group(dataclasses.replace(group, name=name.strip()))

    def remove_group(self, group_id: str) -> TaskGraph:
        """Remove a group; its member nodes are kept."""
        self.get_group(group_id)
        return dataclasses.replace(self, groups=tuple(g for g in self.groups if g.id != group_id))

    def assign_to_group(self, group_id: str, node_ids: Iterable[str]) -> TaskGraph:
        """
        Move nodes into a group.

        A node belongs to at most one group, so the nodes leave any group they
        were in before.
        """
        self.get_group(group_id)
        node_ids = self._unique_members(node_ids)
        for node_id in node_ids:
            self.get_node(node_id)
        groups = []
        for group in self.groups:
            kept = tuple(t for t in group.task_ids if t not in node_ids)
            if group.id == group_id:
                kept = kept + tuple(node_ids)
            groups.append(dataclasses.replace(group, task_ids=kept))
        return dataclasses.replace(self, groups=tuple(groups))

    def remove_from_group(self, group_id: str, node_ids: Iterable[str]) -> TaskGraph:
        group = self.get_group(group_id)
        removed = set(node_ids)
        return self._replace_group(
            dataclasses.replace(group, task_ids=tuple(t for t in group.task_ids if t not in removed))
        )

    def _validate_group_name(self, name: str, exclude_id: Optional[str] = None) -> None:
        error = validate_group_name(name, self.groups, exclude_id)
        if error is None:
            return
        if "already exists" in error:
            raise DuplicateGroupNameError(name.strip())
        raise InvalidNameError(error)

    def _replace_group(self, group: TaskGroup) -> TaskGraph:
        return dataclasses.replace(
            self, groups=tuple(group if g.id == group.id else g for g in self.groups)
        )

    @staticmethod
    def _unique_members(node_ids: Iterable[str]) -> List[str]:
        unique: List[str] = []
        for node_id in node_ids:
            if node_id not in unique:
                unique.append(node_id)
        return unique

    # ---------- Variables ----------

    def add_variable(self, variable: Variable) -> TaskGraph:
        """
        Declare a variable.

        Raises:
            InvalidNameError: If the name is not a valid identifier
            DuplicateVariableError: If the name is already declared (system ones included)
            InvalidVariableValueError: If a value does not match the declared type
        """
        if not is_valid_variable_name(variable.name):
            raise InvalidNameError(f"Invalid variable name: \"{variable.name}\"")
        if any(v.name == variable.name for v in self.variables):
            raise DuplicateVariableError(variable.name)
        if any(v.id == variable.id for v in self.variables):
            raise StructuralValidationError(f"Variable id already exists: {variable.id}")
        _check_value(variable, variable.default_value)
        if variable.value is not None:
            _check_value(variable, variable.value)
        return dataclasses.replace(self, variables=self.variables + (variable,))

    def update_variable_value(self, name: str, value: Optional[str]) -> TaskGraph:
        variable = self.get_variable(name)
        if value is not None:
            _check_value(variable, value)
        return self._replace_variable(name, dataclasses.replace(variable, value=value))

    def rename_variable(self, name: str, new_name: str) -> TaskGraph:
        variable = self.get_variable(name)
        if variable.is_system:
            raise SystemVariableError(name, "renamed")
        if new_name == name:
            return self
        if not is_valid_variable_name(new_name):
            raise InvalidNameError(f"Invalid variable name: \"{new_name}\"")
        if any(v.name == new_name for v in self.variables):
            raise DuplicateVariableError(new_name)
        return self._replace_variable(name, dataclasses.replace(variable, name=new_name))

    def remove_variable(self, name: str) -> TaskGraph:
        variable = self.get_variable(name)
        if variable.is_system:
            raise SystemVariableError(name, "deleted")
        return dataclasses.replace(self, variables=tuple(v for v in self.variables if v.name != name))

    def _replace_variable(self, name: str, variable: Variable) -> TaskGraph:
        return dataclasses.replace(
            self, variables=tuple(variable if v.name == name else v for v in self.variables)
        )


def _check_value(variable: Variable, value: str) -> None:
    check = validate_variable_value(value, variable.type)
    if not check.valid:
        raise InvalidVariableValueError(f"Variable \"{variable.name}\": {check.error}")


def _enabled_cycle(graph: TaskGraph) -> Optional[List[str]]:
    return find_cycle(graph.nodes, graph.edges)


def node_map(nodes: Sequence[TaskNode]) -> Dict[str, TaskNode]:
    return {node.id: node for node in nodes}
