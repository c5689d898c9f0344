# gradleflow/infra/flow/serialization.py
"""
Plain-dict (JSON-ready) representation of task graphs.

``graph_to_dict`` flattens a graph with ``dataclasses.asdict``;
``graph_from_dict`` rebuilds it through the TaskGraph mutations, so a
document describing an invalid graph raises the same structural errors as
editing a graph directly.
"""
from __future__ import annotations

import dataclasses
from dataclasses import asdict
from typing import Any, Dict, Mapping, Optional

from gradleflow.infra.flow.graph import TaskGraph
from gradleflow.infra.flow.models import (
    Condition,
    ConditionLogic,
    ConditionMode,
    ConditionOperator,
    DuplicatesStrategy,
    FileWatchTrigger,
    ManualTrigger,
    OperandSource,
    ScheduleTrigger,
    TaskCondition,
    TaskConfig,
    TaskGroup,
    TaskKind,
    TaskNode,
    Trigger,
    Variable,
    VariableType,
    WebhookTrigger,
    config_type_for,
)
from gradleflow.infra.flow.variables import default_system_variables

_TRIGGER_TYPES = {
    "manual": ManualTrigger,
    "fileWatch": FileWatchTrigger,
    "schedule": ScheduleTrigger,
    "webhook": WebhookTrigger,
}


def _plain(value: Any) -> Any:
    if isinstance(value, str):
        return str(value)
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _record(record_type: type, data: Mapping[str, Any]) -> Any:
    """Build a frozen dataclass from a dict, turning lists back into tuples and dropping unknown keys."""
    values = {}
    for f in dataclasses.fields(record_type):
        if f.name not in data:
            continue
        value = data[f.name]
        values[f.name] = tuple(value) if isinstance(value, list) else value
    return record_type(**values)


# ============================================================
#                   TO DICT
# ============================================================
def node_to_dict(node: TaskNode) -> Dict[str, Any]:
    return _plain(asdict(node))


def graph_to_dict(graph: TaskGraph) -> Dict[str, Any]:
    """
    Convert a graph to nested dicts, lists and strings.

    Returns:
        Dict with ``nodes``, ``edges``, ``groups`` and ``variables`` keys
    """
    return {
        "nodes": [node_to_dict(node) for node in graph.nodes],
        "edges": [_plain(asdict(edge)) for edge in graph.edges],
        "groups": [_plain(asdict(group)) for group in graph.groups],
        "variables": [_plain(asdict(variable)) for variable in graph.variables],
    }


# ============================================================
#                   FROM DICT
# ============================================================
def config_from_dict(kind: TaskKind, data: Optional[Mapping[str, Any]]) -> TaskConfig:
    config = _record(config_type_for(kind), data or {})
    strategy = getattr(config, "duplicates_strategy", None)
    if strategy is not None:
        config = dataclasses.replace(config, duplicates_strategy=DuplicatesStrategy(strategy))
    return config


def condition_from_dict(data: Optional[Mapping[str, Any]]) -> Optional[TaskCondition]:
    if not data:
        return None
    conditions = tuple(
        Condition(
            left_source=OperandSource(item["left_source"]),
            left_value=item.get("left_value", ""),
            operator=ConditionOperator(item["operator"]),
            right_source=OperandSource(item.get("right_source", OperandSource.LITERAL)),
            right_value=item.get("right_value", ""),
        )
        for item in data.get("conditions", ())
    )
    return TaskCondition(
        mode=ConditionMode(data.get("mode", ConditionMode.ONLY_IF)),
        conditions=conditions,
        logic=ConditionLogic(data.get("logic", ConditionLogic.AND)),
    )


def trigger_from_dict(data: Optional[Mapping[str, Any]]) -> Optional[Trigger]:
    if not data:
        return None
    trigger_type = _TRIGGER_TYPES.get(data.get("type", "manual"))
    if trigger_type is None:
        raise ValueError(f"Unknown trigger type: {data.get('type')}")
    return _record(trigger_type, data)


def node_from_dict(data: Mapping[str, Any]) -> TaskNode:
    kind = TaskKind(data.get("kind", TaskKind.CUSTOM))
    return TaskNode(
        id=data["id"],
        name=data["name"],
        kind=kind,
        config=config_from_dict(kind, data.get("config")),
        group=data.get("group"),
        description=data.get("description"),
        enabled=data.get("enabled", True),
        timeout_minutes=data.get("timeout_minutes"),
        condition=condition_from_dict(data.get("condition")),
        trigger=trigger_from_dict(data.get("trigger")),
    )


def variable_from_dict(data: Mapping[str, Any]) -> Variable:
    return Variable(
        id=data["id"],
        name=data["name"],
        type=VariableType(data.get("type", VariableType.STRING)),
        default_value=data.get("default_value", ""),
        value=data.get("value"),
        is_system=data.get("is_system", False),
        description=data.get("description"),
    )


def graph_from_dict(data: Mapping[str, Any]) -> TaskGraph:
    """
    Rebuild a graph from the output of ``graph_to_dict``.

    Built-in variables missing from the document are added back.

    Raises:
        StructuralValidationError: If the document describes an invalid graph
        KeyError, ValueError: If required keys are missing or values are malformed
    """
    graph = TaskGraph.empty(with_system_variables=False)
    for item in data.get("variables", ()):
        graph = graph.add_variable(variable_from_dict(item))
    declared = {v.name for v in graph.variables}
    for variable in default_system_variables():
        if variable.name not in declared:
            graph = graph.add_variable(variable)

    for item in data.get("nodes", ()):
        graph = graph.add_node(node_from_dict(item))
    for item in data.get("edges", ()):
        graph = graph.add_edge(item["source"], item["target"], item.get("kind", "dependsOn"))
    for item in data.get("groups", ()):
        graph = graph.add_group(_record(TaskGroup, item))
    return graph
