# gradleflow/infra/flow/script_generator.py
"""
Graph to Gradle Kotlin DSL generation.

``generate_script`` is a pure function of the graph and the export options:
the same input always produces byte-identical output, unless
``ExportOptions.include_timestamp`` is set (the timestamp line then changes
between calls).
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from gradleflow.infra.flow.dependency_resolver import find_cycle
from gradleflow.infra.flow.graph import TaskGraph
from gradleflow.infra.flow.kotlin import quote, quote_all
from gradleflow.infra.flow.models import (
    ArchiveConfig,
    Condition,
    ConditionLogic,
    ConditionMode,
    ConditionOperator,
    CopyConfig,
    DeleteConfig,
    DependencyType,
    ExecConfig,
    HttpRequestConfig,
    JavaCompileConfig,
    OperandSource,
    TaskCondition,
    TaskNode,
    TestConfig,
    Variable,
)
from gradleflow.infra.flow.variables import validate_variable_references

logger = logging.getLogger(__name__)

INDENT = "    "
BANNER = "// " + "=" * 77
DISABLED_MARKER = "Task disabled in visual editor"


class DisabledTaskStyle(enum.StrEnum):
    """How disabled nodes appear in the script."""
    COMMENT = "comment"
    OMIT = "omit"
    EMIT = "emit"


class VariableFormat(enum.StrEnum):
    PROPERTIES = "properties"
    INLINE = "inline"


@dataclass(frozen=True)
class ExportOptions:
    """
    Options for script generation.

    Attributes:
        include_comments: Emit the header and section comments
        include_descriptions: Emit task descriptions as KDoc above each block
        disabled_tasks: COMMENT emits a comment stub, OMIT drops the node,
                        EMIT writes the full block with ``enabled = false``
        variable_format: PROPERTIES declares overridable top-level properties,
                         INLINE substitutes default values into guards
        project_name: Optional project name for the header
        include_timestamp: Add a "Generated on" line. Breaks byte-determinism.
        timestamp: Fixed timestamp to use with ``include_timestamp``
    """
    include_comments: bool = True
    include_descriptions: bool = True
    disabled_tasks: DisabledTaskStyle = DisabledTaskStyle.COMMENT
    variable_format: VariableFormat = VariableFormat.PROPERTIES
    project_name: Optional[str] = None
    include_timestamp: bool = False
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ExportValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


# ============================================================
#                   GUARD CONDITIONS
# ============================================================
def compile_operand(source: OperandSource, value: str, variables: Dict[str, Variable],
                    variable_format: VariableFormat = VariableFormat.PROPERTIES) -> str:
    """
    Compile a condition operand to a Kotlin String expression.

    Variables compile to a project-property lookup falling back to the
    variable's default value (or to the default itself in INLINE format).
    Absent environment variables and properties compile to the empty string.
    """
    source = OperandSource(source)
    if source is OperandSource.VARIABLE:
        variable = variables.get(value)
        default = variable.default_value if variable else ""
        if VariableFormat(variable_format) is VariableFormat.INLINE:
            return quote(default)
        return f"(project.findProperty({quote(value)})?.toString() ?: {quote(default)})"
    if source is OperandSource.ENVIRONMENT:
        return f"System.getenv({quote(value)}).orEmpty()"
    if source is OperandSource.PROPERTY:
        return f"project.findProperty({quote(value)})?.toString().orEmpty()"
    return quote(value)


def _as_number(operand: str) -> str:
    return f"({operand}.toDoubleOrNull() ?: Double.NaN)"


_COMPARISONS = {
    ConditionOperator.GREATER_THAN: ">",
    ConditionOperator.LESS_THAN: "<",
    ConditionOperator.GREATER_OR_EQUAL: ">=",
    ConditionOperator.LESS_OR_EQUAL: "<=",
}


def compile_condition(condition: Condition, variables: Dict[str, Variable],
                      variable_format: VariableFormat = VariableFormat.PROPERTIES) -> str:
    """Compile a single condition to a Kotlin Boolean expression."""
    operator = ConditionOperator(condition.operator)
    left = compile_operand(condition.left_source, condition.left_value, variables, variable_format)
    if operator is ConditionOperator.IS_EMPTY:
        return f"{left}.isBlank()"
    if operator is ConditionOperator.IS_NOT_EMPTY:
        return f"{left}.isNotBlank()"
    if operator is ConditionOperator.IS_TRUE:
        return f"{left}.lowercase() in listOf(\"true\", \"1\")"
    if operator is ConditionOperator.IS_FALSE:
        return f"{left}.lowercase() in listOf(\"false\", \"0\", \"\")"

    right = compile_operand(condition.right_source, condition.right_value, variables, variable_format)
    if operator is ConditionOperator.EQUALS:
        return f"{left} == {right}"
    if operator is ConditionOperator.NOT_EQUALS:
        return f"{left} != {right}"
    if operator is ConditionOperator.CONTAINS:
        return f"{left}.contains({right})"
    if operator is ConditionOperator.NOT_CONTAINS:
        return f"!{left}.contains({right})"
    if operator is ConditionOperator.STARTS_WITH:
        return f"{left}.startsWith({right})"
    if operator is ConditionOperator.ENDS_WITH:
        return f"{left}.endsWith({right})"
    if operator is ConditionOperator.MATCHES:
        return f"runCatching {{ Regex({right}).containsMatchIn({left}) }}.getOrDefault(false)"
    return f"{_as_number(left)} {_COMPARISONS[operator]} {_as_number(right)}"


def compile_task_condition(task_condition: TaskCondition, variables: Dict[str, Variable],
                           variable_format: VariableFormat = VariableFormat.PROPERTIES) -> Optional[str]:
    """
    Compile a guard to the ``onlyIf { ... }`` statement.

    skipIf guards are negated, so the task runs iff the combined condition is
    false. An empty guard compiles to nothing.

    Returns:
        The statement, or None when there is nothing to emit
    """
    if not task_condition.conditions:
        return None
    parts = [compile_condition(c, variables, variable_format) for c in task_condition.conditions]
    if len(parts) == 1:
        expression = parts[0]
    else:
        joiner = " && " if ConditionLogic(task_condition.logic) is ConditionLogic.AND else " || "
        expression = joiner.join(f"({part})" for part in parts)
    if ConditionMode(task_condition.mode) is ConditionMode.SKIP_IF:
        expression = f"!({expression})"
    return f"onlyIf {{ {expression} }}"


# ============================================================
#                   KIND-SPECIFIC CONFIGURATION
# ============================================================
def _exec_lines(config: ExecConfig) -> List[str]:
    lines = []
    if config.command_line:
        lines.append(f"commandLine({quote_all(config.command_line)})")
    if config.working_dir:
        lines.append(f"workingDir = file({quote(config.working_dir)})")
    if config.args:
        lines.append(f"args({quote_all(config.args)})")
    for key, value in config.environment.items():
        lines.append(f"environment({quote(key)}, {quote(value)})")
    if config.ignore_exit_value:
        lines.append("isIgnoreExitValue = true")
    return lines


def _copy_lines(config: CopyConfig) -> List[str]:
    lines = [f"from({quote(path)})" for path in config.from_paths]
    if config.into:
        lines.append(f"into({quote(config.into)})")
    lines.extend(f"include({quote(p)})" for p in config.include)
    lines.extend(f"exclude({quote(p)})" for p in config.exclude)
    if config.duplicates_strategy:
        lines.append(f"duplicatesStrategy = DuplicatesStrategy.{config.duplicates_strategy}")
    return lines


def _delete_lines(config: DeleteConfig) -> List[str]:
    lines = []
    if config.delete:
        lines.append(f"delete({quote_all(config.delete)})")
    if config.follow_symlinks:
        lines.append("followSymlinks = true")
    return lines


def _archive_lines(config: ArchiveConfig) -> List[str]:
    lines = [f"from({quote(path)})" for path in config.from_paths]
    if config.archive_file_name:
        lines.append(f"archiveFileName = {quote(config.archive_file_name)}")
    if config.destination_directory:
        lines.append(f"destinationDirectory = layout.projectDirectory.dir({quote(config.destination_directory)})")
    lines.extend(f"include({quote(p)})" for p in config.include)
    lines.extend(f"exclude({quote(p)})" for p in config.exclude)
    if config.duplicates_strategy:
        lines.append(f"duplicatesStrategy = DuplicatesStrategy.{config.duplicates_strategy}")
    if not config.preserve_file_timestamps:
        lines.append("isPreserveFileTimestamps = false")
    return lines


def _test_lines(config: TestConfig) -> List[str]:
    lines = [f"include({quote(p)})" for p in config.include]
    lines.extend(f"exclude({quote(p)})" for p in config.exclude)
    if config.max_parallel_forks is not None:
        lines.append(f"maxParallelForks = {config.max_parallel_forks}")
    if config.fork_every is not None:
        lines.append(f"forkEvery = {config.fork_every}")
    if config.fail_fast:
        lines.append("failFast = true")
    if config.ignore_failures:
        lines.append("ignoreFailures = true")
    if config.jvm_args:
        lines.append(f"jvmArgs({quote_all(config.jvm_args)})")
    return lines


def _java_compile_lines(config: JavaCompileConfig) -> List[str]:
    lines = []
    if config.source_compatibility:
        lines.append(f"sourceCompatibility = {quote(config.source_compatibility)}")
    if config.target_compatibility:
        lines.append(f"targetCompatibility = {quote(config.target_compatibility)}")
    options = []
    if config.encoding:
        options.append(f"encoding = {quote(config.encoding)}")
    if config.compiler_args:
        options.append(f"compilerArgs.addAll(listOf({quote_all(config.compiler_args)}))")
    if config.deprecation:
        options.append("isDeprecation = true")
    if not config.warnings:
        options.append("isWarnings = false")
    if options:
        lines.append("options.apply {")
        lines.extend(INDENT + option for option in options)
        lines.append("}")
    return lines


def curl_arguments(config: HttpRequestConfig) -> List[str]:
    """
    Build the curl argument list for an HTTP call.

    Order: method, headers, body, content type, timeout, redirects, output, URL.
    """
    args = ["-X", config.method or "GET"]
    for key, value in config.headers.items():
        args.extend(["-H", f"{key}: {value}"])
    if config.body:
        args.extend(["-d", config.body])
    if config.content_type:
        args.extend(["-H", f"Content-Type: {config.content_type}"])
    if config.timeout_seconds:
        args.extend(["--max-time", str(config.timeout_seconds)])
    if config.follow_redirects:
        args.append("-L")
    if config.output_file:
        args.extend(["-o", config.output_file])
    if config.url:
        args.append(config.url)
    return args


def _http_lines(config: HttpRequestConfig, include_comments: bool) -> List[str]:
    lines = ["// HTTP Request (using curl)"] if include_comments else []
    lines.append(f"commandLine({quote_all(['curl'] + curl_arguments(config))})")
    return lines


def config_lines(node: TaskNode, include_comments: bool = True) -> List[str]:
    """Kotlin statements (unindented) for the node's kind-specific configuration."""
    config = node.config
    if isinstance(config, HttpRequestConfig):
        return _http_lines(config, include_comments)
    if isinstance(config, ExecConfig):
        return _exec_lines(config)
    if isinstance(config, CopyConfig):
        return _copy_lines(config)
    if isinstance(config, DeleteConfig):
        return _delete_lines(config)
    if isinstance(config, ArchiveConfig):
        return _archive_lines(config)
    if isinstance(config, TestConfig):
        return _test_lines(config)
    if isinstance(config, JavaCompileConfig):
        return _java_compile_lines(config)
    return []


# ============================================================
#                   TASK BLOCKS
# ============================================================
def registration_header(node: TaskNode) -> str:
    gradle_class = node.kind.gradle_class
    if gradle_class is None:
        return f"tasks.register({quote(node.identifier)})"
    return f"tasks.register<{gradle_class}>({quote(node.identifier)})"


def _description_kdoc(description: str) -> List[str]:
    lines = ["/**"]
    for line in description.replace("*/", "* /").splitlines() or [""]:
        lines.append(f" * {line}".rstrip())
    lines.append(" */")
    return lines


def task_block(
    node: TaskNode,
    graph: TaskGraph,
    registered: Set[str],
    variables: Dict[str, Variable],
    options: ExportOptions,
) -> List[str]:
    """
    Emit the registration block of one node.

    Args:
        node: Node to emit
        graph: Graph the node belongs to (for its edges)
        registered: Ids of nodes registered in the script; edges to other
                    nodes are left out
        variables: Declared variables by name
        options: Export options

    Returns:
        Script lines, ending with a blank line
    """
    lines: List[str] = []
    if options.include_descriptions and node.description:
        lines.extend(_description_kdoc(node.description))

    if not node.enabled and DisabledTaskStyle(options.disabled_tasks) is DisabledTaskStyle.COMMENT:
        lines.append(f"// {DISABLED_MARKER}")
        lines.append(f"// {registration_header(node)} {{ ... }}")
        lines.append("")
        return lines

    body: List[str] = []
    if node.group:
        body.append(f"group = {quote(node.group)}")
    if node.description:
        body.append(f"description = {quote(node.description)}")
    if not node.enabled:
        body.append("enabled = false")

    identifiers = {n.id: n.identifier for n in graph.nodes}
    for edge in graph.incoming(node.id):
        if edge.kind is DependencyType.FINALIZED_BY or edge.source not in registered:
            continue
        body.append(f"{edge.kind}({quote(identifiers[edge.source])})")
    for edge in graph.outgoing(node.id, DependencyType.FINALIZED_BY):
        if edge.target in registered:
            body.append(f"finalizedBy({quote(identifiers[edge.target])})")

    body.extend(config_lines(node, options.include_comments))

    if node.condition is not None:
        guard = compile_task_condition(node.condition, variables, options.variable_format)
        if guard:
            body.append(guard)
    if node.timeout_minutes:
        body.append(f"timeout.set(Duration.ofMinutes({node.timeout_minutes}))")

    lines.append(f"{registration_header(node)} {{")
    lines.extend(INDENT + line for line in body)
    lines.append("}")
    lines.append("")
    return lines


def emitted_nodes(graph: TaskGraph, options: ExportOptions) -> List[TaskNode]:
    """
    Nodes in script order: enabled nodes in execution order, then disabled
    nodes in graph order (unless omitted).
    """
    by_id = {node.id: node for node in graph.nodes}
    ordered = [by_id[node_id] for node_id in graph.execution_order()]
    if DisabledTaskStyle(options.disabled_tasks) is not DisabledTaskStyle.OMIT:
        ordered.extend(node for node in graph.nodes if not node.enabled)
    return ordered


# ============================================================
#                   SCRIPT
# ============================================================
def generate_script(graph: TaskGraph, options: Optional[ExportOptions] = None) -> str:
    """
    Generate a ``build.gradle.kts`` script from a task graph.

    Args:
        graph: Graph to export
        options: Export options (defaults to ExportOptions())

    Returns:
        The script text, ending with a newline
    """
    options = options or ExportOptions()
    lines: List[str] = []

    if options.include_comments:
        lines.append("/**")
        lines.append(" * Generated by Gradle Flow Visual Editor")
        if options.include_timestamp:
            stamp = options.timestamp or datetime.now(timezone.utc)
            lines.append(f" * Generated on: {stamp.isoformat()}")
        if options.project_name:
            lines.append(f" * Project: {options.project_name}")
        lines.append(" */")
        lines.append("")

    lines.append("import java.time.Duration")
    lines.append("")

    nodes = emitted_nodes(graph, options)
    if options.include_comments:
        lines.append("// Apply necessary plugins")
    lines.append("plugins {")
    lines.append(INDENT + "base")
    if any(node.kind.requires_java_plugin for node in nodes):
        lines.append(INDENT + "java")
    lines.append("}")
    lines.append("")

    user_variables = graph.user_variables
    if user_variables and VariableFormat(options.variable_format) is VariableFormat.PROPERTIES:
        if options.include_comments:
            lines.append("// Project properties (can be overridden via gradle.properties or -P flags)")
        for variable in user_variables:
            lines.append(
                f"val {variable.name}: String = "
                f"project.findProperty({quote(variable.name)})?.toString() ?: {quote(variable.default_value)}"
            )
        lines.append("")

    if options.include_comments:
        lines.append(BANNER)
        lines.append("// Task Definitions")
        lines.append(BANNER)
        lines.append("")

    registered = {
        node.id for node in nodes
        if node.enabled or DisabledTaskStyle(options.disabled_tasks) is DisabledTaskStyle.EMIT
    }
    variables = {v.name: v for v in graph.variables}
    for node in nodes:
        lines.extend(task_block(node, graph, registered, variables, options))

    logger.debug(f"Generated script: tasks={len(nodes)}, edges={len(graph.edges)}")
    return "\n".join(lines).rstrip("\n") + "\n"


# ============================================================
#                   PRE-EXPORT VALIDATION
# ============================================================
def validate_for_export(graph: TaskGraph) -> ExportValidation:
    """
    Check a graph before exporting it.

    Errors: duplicate task identifiers, circular hard dependencies (disabled
    nodes included) and missing required kind-specific fields. Warnings:
    references to undeclared variables.

    Returns:
        ExportValidation
    """
    errors: List[str] = []
    warnings: List[str] = []

    seen: Set[str] = set()
    for node in graph.nodes:
        if node.identifier in seen:
            errors.append(f"Duplicate task name: \"{node.name}\"")
        seen.add(node.identifier)

    if find_cycle(graph.nodes, graph.edges, include_disabled=True):
        errors.append("Circular dependency detected in task graph")

    for node in graph.nodes:
        for error in node.errors:
            if error.field == "name":
                continue
            errors.append(f"Task \"{node.name}\": {error.message}")
        references = validate_variable_references(node.config, graph.variables)
        for name in references.missing:
            warnings.append(f"Task \"{node.name}\": undefined variable ${{{name}}}")

    return ExportValidation(not errors, errors, warnings)
