"""
Tests for the plain-dict representation of graphs used by the HTTP API.
"""
import json

import pytest

from gradleflow.application.sample_graph import build_sample_graph
from gradleflow.infra.flow import GraphBuilder, TaskKind
from gradleflow.infra.flow.errors import StructuralValidationError
from gradleflow.infra.flow.models import ExecConfig, ScheduleTrigger
from gradleflow.infra.flow.serialization import graph_from_dict, graph_to_dict, trigger_from_dict
from conftest import env_condition


def test_sample_graph_survives_json():
    graph = build_sample_graph()

    document = json.loads(json.dumps(graph_to_dict(graph)))

    assert graph_from_dict(document) == graph


def test_configs_conditions_and_groups_are_restored():
    graph = (GraphBuilder()
        .add_task("run", TaskKind.EXEC, ExecConfig(command_line=("sh", "x.sh"), environment={"A": "1"}),
                  condition=env_condition("CI"), trigger=ScheduleTrigger(cron="0 * * * *"))
        .add_task("after", depends_on=["run"])
        .add_group("Scripts", ["run", "after"])
        .build())

    restored = graph_from_dict(json.loads(json.dumps(graph_to_dict(graph))))

    run = restored.find_node_by_name("run")
    assert run.config == ExecConfig(command_line=("sh", "x.sh"), environment={"A": "1"})
    assert run.condition == env_condition("CI")
    assert run.trigger == ScheduleTrigger(cron="0 * * * *")
    assert restored.groups == graph.groups
    assert restored.edges == graph.edges


def test_missing_system_variables_are_added_back():
    restored = graph_from_dict({"nodes": [{"id": "n1", "name": "hello"}]})

    assert restored.find_node_by_name("hello").kind is TaskKind.CUSTOM
    assert any(v.is_system for v in restored.variables)


def test_invalid_documents_raise():
    with pytest.raises(StructuralValidationError):
        graph_from_dict({"nodes": [{"id": "n1", "name": "a"}, {"id": "n1", "name": "b"}]})
    with pytest.raises(ValueError, match="Unknown trigger type: cron"):
        trigger_from_dict({"type": "cron"})
    with pytest.raises(KeyError):
        graph_from_dict({"nodes": [{"name": "no id"}]})
