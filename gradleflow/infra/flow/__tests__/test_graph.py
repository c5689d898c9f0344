"""
Tests for the immutable task graph and the fluent GraphBuilder.

This module tests node, edge, group and variable mutations, and that
structural errors leave the graph untouched.
"""
import pytest

from gradleflow.infra.flow import GraphBuilder, IdGenerator, TaskGraph, TaskKind, TaskNode
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
    UnknownNodeError,
)
from gradleflow.infra.flow.models import (
    CopyConfig,
    DependencyType,
    ExecConfig,
    ScheduleTrigger,
    TaskGroup,
    Variable,
    VariableType,
)
from conftest import build_graph, chain_graph, env_condition, node_id


# ============================================================
#                   NODES
# ============================================================

def test_add_node_returns_new_graph():
    graph = TaskGraph.empty()
    updated = graph.add_node(TaskNode("n1", "compile", TaskKind.JAVA_COMPILE))

    assert graph.nodes == ()
    assert updated.node_ids == ["n1"]
    assert updated.get_node("n1").kind is TaskKind.JAVA_COMPILE


def test_node_gets_default_config_for_kind():
    node = TaskNode("n1", "copyIt", TaskKind.COPY)
    assert node.config == CopyConfig()


def test_node_rejects_mismatched_config():
    with pytest.raises(TypeError):
        TaskNode("n1", "copyIt", TaskKind.COPY, ExecConfig())


def test_duplicate_identifier_is_rejected():
    graph = TaskGraph.empty().add_node(TaskNode("n1", "my task"))

    # "my task" and "my-task" both export as my_task
    with pytest.raises(DuplicateTaskNameError):
        graph.add_node(TaskNode("n2", "my-task"))


def test_blank_name_is_rejected():
    with pytest.raises(InvalidNameError):
        TaskGraph.empty().add_node(TaskNode("n1", "  "))


def test_field_errors_are_derived_from_properties():
    node = TaskNode("n1", "9 lives", TaskKind.COPY, timeout_minutes=0)
    fields = {error.field for error in node.errors}

    assert fields == {"name", "timeout_minutes", "into"}
    assert node.identifier == "_9_lives"
    assert not node.is_valid


def test_update_node_changing_kind_resets_config():
    graph = build_graph([{"name": "run", "kind": TaskKind.EXEC, "config": ExecConfig(command_line=("ls",))}])
    task_id = node_id(graph, "run")

    updated = graph.update_node(task_id, kind=TaskKind.COPY)

    assert updated.get_node(task_id).config == CopyConfig()


def test_update_node_cannot_change_id():
    graph = chain_graph("a")
    with pytest.raises(StructuralValidationError):
        graph.update_node(node_id(graph, "a"), id="other")


def test_enabling_node_that_closes_cycle_is_rejected():
    graph = build_graph([{"name": "a"}, {"name": "b", "depends_on": ["a"]}, {"name": "c", "enabled": False}])
    a, b, c = (node_id(graph, n) for n in "abc")
    # Edges touching a disabled node never close a cycle.
    graph = graph.add_edge(b, c).add_edge(c, a)

    with pytest.raises(CycleError):
        graph.update_node(c, enabled=True)


def test_remove_node_drops_edges_and_membership():
    graph = chain_graph("a", "b", "c")
    b = node_id(graph, "b")
    graph = graph.add_group(TaskGroup("g1", "core", task_ids=(b,)))

    updated = graph.remove_node(b)

    assert len(updated.nodes) == 2
    assert updated.edges == ()
    assert updated.get_group("g1").task_ids == ()


def test_unknown_node_lookup():
    with pytest.raises(UnknownNodeError):
        TaskGraph.empty().get_node("missing")


# ============================================================
#                   EDGES
# ============================================================

def test_self_loop_is_rejected():
    graph = chain_graph("a")
    a = node_id(graph, "a")
    with pytest.raises(SelfLoopError):
        graph.add_edge(a, a)


def test_duplicate_edge_is_rejected_but_other_kind_allowed():
    graph = chain_graph("a", "b")
    a, b = node_id(graph, "a"), node_id(graph, "b")

    with pytest.raises(DuplicateEdgeError):
        graph.add_edge(a, b)
    updated = graph.add_edge(a, b, DependencyType.MUST_RUN_AFTER)
    assert len(updated.edges) == 2


def test_hard_cycle_is_rejected_and_graph_unchanged():
    graph = chain_graph("a", "b", "c")
    a, c = node_id(graph, "a"), node_id(graph, "c")

    with pytest.raises(CycleError):
        graph.add_edge(c, a)
    assert len(graph.edges) == 2


def test_advisory_edges_never_create_cycles():
    graph = chain_graph("a", "b")
    a, b = node_id(graph, "a"), node_id(graph, "b")

    updated = graph.add_edge(b, a, DependencyType.SHOULD_RUN_AFTER)

    assert updated.execution_order() == [a, b]


def test_update_edge_kind_revalidates():
    graph = chain_graph("a", "b")
    a, b = node_id(graph, "a"), node_id(graph, "b")
    graph = graph.add_edge(b, a, DependencyType.MUST_RUN_AFTER)

    with pytest.raises(CycleError):
        graph.update_edge_kind(b, a, DependencyType.MUST_RUN_AFTER, DependencyType.DEPENDS_ON)


# ============================================================
#                   GROUPS
# ============================================================

def test_group_names_are_unique_case_insensitive():
    graph = TaskGraph.empty().add_group(TaskGroup("g1", "Build"))
    with pytest.raises(DuplicateGroupNameError):
        graph.add_group(TaskGroup("g2", " build "))


def test_group_name_length_is_limited():
    with pytest.raises(InvalidNameError):
        TaskGraph.empty().add_group(TaskGroup("g1", "x" * 51))


def test_node_belongs_to_at_most_one_group():
    graph = chain_graph("a", "b")
    a = node_id(graph, "a")
    graph = graph.add_group(TaskGroup("g1", "one", task_ids=(a,)))
    graph = graph.add_group(TaskGroup("g2", "two"))

    graph = graph.assign_to_group("g2", [a])

    assert graph.get_group("g1").task_ids == ()
    assert graph.group_of(a).id == "g2"


def test_group_stats():
    graph = build_graph([
        {"name": "a", "condition": env_condition("CI")},
        {"name": "b", "enabled": False},
        {"name": "c", "trigger": ScheduleTrigger(cron="0 * * * *")},
    ])
    graph = graph.add_group(TaskGroup("g1", "all", task_ids=tuple(graph.node_ids)))

    stats = graph.group_stats("g1")

    assert (stats.total, stats.enabled, stats.disabled) == (3, 2, 1)
    assert stats.with_conditions == 1
    assert stats.with_triggers == 1


# ============================================================
#                   VARIABLES
# ============================================================

def test_graph_starts_with_system_variables():
    names = [v.name for v in TaskGraph.empty().variables]
    assert names == ["projectDir", "buildDir", "version"]


def test_system_variables_cannot_be_renamed_or_removed():
    graph = TaskGraph.empty()
    with pytest.raises(SystemVariableError):
        graph.rename_variable("version", "v")
    with pytest.raises(SystemVariableError):
        graph.remove_variable("buildDir")


def test_system_variable_value_can_be_set():
    graph = TaskGraph.empty().update_variable_value("version", "1.2.3")
    assert graph.get_variable("version").effective_value == "1.2.3"


def test_variable_names_and_values_are_validated():
    graph = TaskGraph.empty()
    with pytest.raises(InvalidNameError):
        graph.add_variable(Variable("v1", "1bad"))
    with pytest.raises(DuplicateVariableError):
        graph.add_variable(Variable("v1", "version"))
    with pytest.raises(InvalidVariableValueError):
        graph.add_variable(Variable("v1", "retries", VariableType.NUMBER, default_value="many"))


def test_rename_and_remove_user_variable():
    graph = TaskGraph.empty().add_variable(Variable("v1", "env", default_value="dev"))

    graph = graph.rename_variable("env", "stage")

    assert graph.get_variable("stage").default_value == "dev"
    assert [v.name for v in graph.remove_variable("stage").user_variables] == []


# ============================================================
#                   BUILDER
# ============================================================

def test_builder_wires_edges_by_name():
    graph = (GraphBuilder()
        .add_task("compile", TaskKind.JAVA_COMPILE)
        .add_task("test", TaskKind.TEST, depends_on=["compile"])
        .add_task("report")
        .finalized_by("test", "report")
        .add_group("verification", ["test", "report"])
        .add_variable("buildEnv", "dev")
        .build())

    compile_id, test_id, report_id = graph.node_ids
    assert (compile_id, test_id, report_id) == ("task_1", "task_2", "task_3")
    assert [(e.source, e.target, e.kind) for e in graph.edges] == [
        ("task_1", "task_2", DependencyType.DEPENDS_ON),
        ("task_2", "task_3", DependencyType.FINALIZED_BY),
    ]
    assert graph.groups[0].task_ids == ("task_2", "task_3")
    assert graph.get_variable("buildEnv").default_value == "dev"


def test_builder_unknown_task_name():
    with pytest.raises(KeyError):
        GraphBuilder().add_task("a", depends_on=["missing"])


# ============================================================
#                   IDS
# ============================================================

def test_ids_share_one_counter_and_skip_reserved(ids):
    ids.reserve(["task_2"])

    assert [ids.next("task"), ids.next("task"), ids.next("group")] == ["task_1", "task_3", "group_4"]


def test_unique_ids_get_suffixes(ids):
    assert [ids.unique("task_build"), ids.unique("task_build"), ids.unique("task_build")] == [
        "task_build", "task_build_2", "task_build_3",
    ]


def test_random_ids_are_distinct():
    ids = IdGenerator(random=True)
    issued = {ids.next("task") for _ in range(50)}

    assert len(issued) == 50
    assert all(i.startswith("task_") for i in issued)
