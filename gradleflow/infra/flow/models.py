# gradleflow/infra/flow/models.py
"""
Core data models and types for the Gradle task graph.

This module contains all dataclasses, enums, protocols, and type definitions
used throughout the flow package: task nodes and their kind-specific
configuration, typed dependency edges, groups, variables, conditions,
triggers, and the execution snapshot.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union


# ============================================================
#                   TASK KINDS
# ============================================================
class TaskKind(enum.StrEnum):
    """Closed set of build-step kinds a node can take."""
    EXEC = "Exec"
    COPY = "Copy"
    DELETE = "Delete"
    ZIP = "Zip"
    JAR = "Jar"
    TEST = "Test"
    JAVA_COMPILE = "JavaCompile"
    PROCESS_RESOURCES = "ProcessResources"
    HTTP_REQUEST = "HttpRequest"
    CUSTOM = "Custom"

    @property
    def gradle_class(self) -> Optional[str]:
        """
        Gradle task class used when registering this kind.

        Returns:
            The class name, or None for kinds registered as a plain DefaultTask
        """
        if self is TaskKind.CUSTOM:
            return None
        if self is TaskKind.HTTP_REQUEST:
            return "Exec"
        return self.value

    @property
    def requires_java_plugin(self) -> bool:
        return self in {TaskKind.TEST, TaskKind.JAVA_COMPILE, TaskKind.JAR}


# ============================================================
#                   DEPENDENCY TYPES
# ============================================================
class DependencyType(enum.StrEnum):
    """
    Typed relation between two nodes.

    Only DEPENDS_ON is a hard ordering constraint; the others are emitted to
    the script but never influence ordering or cycle detection.
    """
    DEPENDS_ON = "dependsOn"
    MUST_RUN_AFTER = "mustRunAfter"
    SHOULD_RUN_AFTER = "shouldRunAfter"
    FINALIZED_BY = "finalizedBy"

    @property
    def is_hard(self) -> bool:
        return self is DependencyType.DEPENDS_ON


class DuplicatesStrategy(enum.StrEnum):
    INCLUDE = "INCLUDE"
    EXCLUDE = "EXCLUDE"
    WARN = "WARN"
    FAIL = "FAIL"
    INHERIT = "INHERIT"


# ============================================================
#                   KIND-SPECIFIC CONFIGURATION
# ============================================================
@dataclass(frozen=True)
class ExecConfig:
    """
    Configuration for a run-command step.

    Attributes:
        command_line: Executable followed by its arguments
        working_dir: Directory the command runs in
        args: Extra arguments appended after the command line
        environment: Environment variables for the process
        ignore_exit_value: Whether a non-zero exit code is tolerated
    """
    command_line: Tuple[str, ...] = ()
    working_dir: Optional[str] = None
    args: Tuple[str, ...] = ()
    environment: Dict[str, str] = field(default_factory=dict)
    ignore_exit_value: bool = False


@dataclass(frozen=True)
class CopyConfig:
    """
    Configuration for Copy and ProcessResources steps.

    Attributes:
        from_paths: Source paths
        into: Destination directory (required)
        include: Include patterns
        exclude: Exclude patterns
        duplicates_strategy: How duplicate entries are handled
    """
    from_paths: Tuple[str, ...] = ()
    into: str = ""
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    duplicates_strategy: Optional[DuplicatesStrategy] = None


@dataclass(frozen=True)
class DeleteConfig:
    delete: Tuple[str, ...] = ()
    follow_symlinks: bool = False


@dataclass(frozen=True)
class ArchiveConfig:
    """
    Configuration for Zip and Jar steps.

    Attributes:
        from_paths: Source paths packed into the archive
        archive_file_name: Output file name
        destination_directory: Output directory, relative to the project
        include: Include patterns
        exclude: Exclude patterns
        duplicates_strategy: How duplicate entries are handled
        preserve_file_timestamps: Whether file timestamps are kept
    """
    from_paths: Tuple[str, ...] = ()
    archive_file_name: Optional[str] = None
    destination_directory: Optional[str] = None
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    duplicates_strategy: Optional[DuplicatesStrategy] = None
    preserve_file_timestamps: bool = True


@dataclass(frozen=True)
class TestConfig:
    """Configuration for a Test step."""
    __test__ = False

    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    max_parallel_forks: Optional[int] = None
    fork_every: Optional[int] = None
    fail_fast: bool = False
    ignore_failures: bool = False
    jvm_args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class JavaCompileConfig:
    source_compatibility: Optional[str] = None
    target_compatibility: Optional[str] = None
    encoding: Optional[str] = None
    compiler_args: Tuple[str, ...] = ()
    deprecation: bool = False
    warnings: bool = True


@dataclass(frozen=True)
class HttpRequestConfig:
    """
    Configuration for an HTTP call step.

    The step is emitted to the script as an Exec task running curl.

    Attributes:
        url: Target URL (required)
        method: HTTP method
        headers: Request headers
        body: Request body
        content_type: Content-Type header value
        timeout_seconds: curl --max-time value
        follow_redirects: Whether redirects are followed
        output_file: File the response body is written to
    """
    url: str = ""
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    content_type: Optional[str] = None
    timeout_seconds: Optional[int] = None
    follow_redirects: bool = True
    output_file: Optional[str] = None


@dataclass(frozen=True)
class CustomConfig:
    pass


TaskConfig = Union[
    ExecConfig,
    CopyConfig,
    DeleteConfig,
    ArchiveConfig,
    TestConfig,
    JavaCompileConfig,
    HttpRequestConfig,
    CustomConfig,
]

_CONFIG_TYPES = {
    TaskKind.EXEC: ExecConfig,
    TaskKind.COPY: CopyConfig,
    TaskKind.PROCESS_RESOURCES: CopyConfig,
    TaskKind.DELETE: DeleteConfig,
    TaskKind.ZIP: ArchiveConfig,
    TaskKind.JAR: ArchiveConfig,
    TaskKind.TEST: TestConfig,
    TaskKind.JAVA_COMPILE: JavaCompileConfig,
    TaskKind.HTTP_REQUEST: HttpRequestConfig,
    TaskKind.CUSTOM: CustomConfig,
}


def config_type_for(kind: TaskKind) -> type:
    """Return the configuration record type matching a task kind."""
    return _CONFIG_TYPES[TaskKind(kind)]


def default_config(kind: TaskKind) -> TaskConfig:
    """Return an empty configuration record for a task kind."""
    return config_type_for(kind)()


# ============================================================
#                   CONDITIONS
# ============================================================
class ConditionOperator(enum.StrEnum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    MATCHES = "matches"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    GREATER_OR_EQUAL = "greaterOrEqual"
    LESS_OR_EQUAL = "lessOrEqual"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"
    IS_TRUE = "isTrue"
    IS_FALSE = "isFalse"

    @property
    def is_unary(self) -> bool:
        return self in UNARY_OPERATORS

    @property
    def is_numeric(self) -> bool:
        return self in NUMERIC_OPERATORS


UNARY_OPERATORS = frozenset({
    ConditionOperator.IS_EMPTY,
    ConditionOperator.IS_NOT_EMPTY,
    ConditionOperator.IS_TRUE,
    ConditionOperator.IS_FALSE,
})

NUMERIC_OPERATORS = frozenset({
    ConditionOperator.GREATER_THAN,
    ConditionOperator.LESS_THAN,
    ConditionOperator.GREATER_OR_EQUAL,
    ConditionOperator.LESS_OR_EQUAL,
})


class OperandSource(enum.StrEnum):
    """Where a condition operand takes its value from."""
    VARIABLE = "variable"
    ENVIRONMENT = "environment"
    PROPERTY = "property"
    LITERAL = "literal"


class ConditionMode(enum.StrEnum):
    ONLY_IF = "onlyIf"
    SKIP_IF = "skipIf"


class ConditionLogic(enum.StrEnum):
    AND = "and"
    OR = "or"


@dataclass(frozen=True)
class Condition:
    """
    A single comparison evaluated against the execution context.

    Attributes:
        left_source: Source of the left operand
        left_value: Variable/environment/property name, or the literal itself
        operator: Comparison operator
        right_source: Source of the right operand (ignored for unary operators)
        right_value: Right operand name or literal
    """
    left_source: OperandSource
    left_value: str
    operator: ConditionOperator
    right_source: OperandSource = OperandSource.LITERAL
    right_value: str = ""


@dataclass(frozen=True)
class TaskCondition:
    """
    Conditions guarding a node's execution.

    Attributes:
        mode: ONLY_IF runs the node when the combined result is true,
              SKIP_IF skips it when the combined result is true
        conditions: Conditions combined with ``logic``
        logic: AND or OR
    """
    mode: ConditionMode = ConditionMode.ONLY_IF
    conditions: Tuple[Condition, ...] = ()
    logic: ConditionLogic = ConditionLogic.AND


# ============================================================
#                   TRIGGERS
# ============================================================
@dataclass(frozen=True)
class ManualTrigger:
    type: str = "manual"


@dataclass(frozen=True)
class FileWatchTrigger:
    """
    Re-run the node when matching files change.

    Attributes:
        patterns: Glob patterns to watch
        directories: Directories to watch
        recursive: Whether subdirectories are watched
        debounce_ms: Quiet period before firing
        events: File events that fire the trigger (create, modify, delete)
    """
    patterns: Tuple[str, ...] = ()
    directories: Tuple[str, ...] = ()
    recursive: bool = True
    debounce_ms: int = 500
    events: Tuple[str, ...] = ("create", "modify", "delete")
    type: str = "fileWatch"


@dataclass(frozen=True)
class ScheduleTrigger:
    cron: str = ""
    description: Optional[str] = None
    timezone: Optional[str] = None
    enabled: bool = True
    type: str = "schedule"


@dataclass(frozen=True)
class WebhookTrigger:
    endpoint: str = ""
    methods: Tuple[str, ...] = ("POST",)
    required_headers: Dict[str, str] = field(default_factory=dict)
    type: str = "webhook"


Trigger = Union[ManualTrigger, FileWatchTrigger, ScheduleTrigger, WebhookTrigger]


# ============================================================
#                   TASK NODE
# ============================================================
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def to_task_identifier(name: str) -> str:
    """
    Derive the script identifier for a task name.

    Characters outside ``[A-Za-z0-9_]`` become underscores, a leading digit
    gets an underscore prefix, and runs of underscores collapse to one.

    Args:
        name: Human-entered task name

    Returns:
        Identifier usable as a Gradle task name
    """
    identifier = re.sub(r"[^A-Za-z0-9_]", "_", name)
    if identifier and identifier[0].isdigit():
        identifier = "_" + identifier
    return re.sub(r"_+", "_", identifier)


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


@dataclass(frozen=True)
class TaskNode:
    """
    A single build step in the graph.

    Attributes:
        id: Opaque, stable identifier (never reused)
        name: Task name, also the source of the script identifier
        kind: Build-step kind
        config: Kind-specific configuration (must match ``kind``)
        group: Optional free-text group label emitted as ``group = ...``
        description: Optional description
        enabled: Disabled nodes are excluded from ordering and execution
        timeout_minutes: Optional per-task timeout
        condition: Optional guard evaluated before execution
        trigger: Informational trigger metadata
    """
    id: str
    name: str
    kind: TaskKind = TaskKind.CUSTOM
    config: TaskConfig = field(default=None)  # type: ignore[assignment]
    group: Optional[str] = None
    description: Optional[str] = None
    enabled: bool = True
    timeout_minutes: Optional[int] = None
    condition: Optional[TaskCondition] = None
    trigger: Optional[Trigger] = None

    def __post_init__(self):
        object.__setattr__(self, "kind", TaskKind(self.kind))
        if self.config is None:
            object.__setattr__(self, "config", default_config(self.kind))
        expected = config_type_for(self.kind)
        if not isinstance(self.config, expected):
            raise TypeError(
                f"Task '{self.name}' of kind {self.kind} needs {expected.__name__}, "
                f"got {type(self.config).__name__}"
            )

    @property
    def identifier(self) -> str:
        return to_task_identifier(self.name)

    @property
    def errors(self) -> List[FieldError]:
        """
        Field-level validation errors, derived from the current properties.

        Returns:
            Empty list when the node is valid
        """
        errors: List[FieldError] = []
        if not self.name.strip():
            errors.append(FieldError("name", "Task name is required"))
        elif not _IDENTIFIER_RE.match(self.name):
            errors.append(FieldError(
                "name", f"Task name must be a valid identifier (exported as '{self.identifier}')"
            ))
        if self.timeout_minutes is not None and self.timeout_minutes <= 0:
            errors.append(FieldError("timeout_minutes", "Timeout must be a positive number of minutes"))

        config = self.config
        if isinstance(config, CopyConfig) and not config.into:
            errors.append(FieldError("into", "Copy task requires a destination (into)"))
        elif isinstance(config, DeleteConfig) and not config.delete:
            errors.append(FieldError("delete", "Delete task requires paths to delete"))
        elif isinstance(config, HttpRequestConfig) and not config.url:
            errors.append(FieldError("url", "HTTP Request task requires a URL"))
        return errors

    @property
    def is_valid(self) -> bool:
        return not self.errors


# ============================================================
#                   EDGES AND GROUPS
# ============================================================
@dataclass(frozen=True)
class Edge:
    """
    Directed, typed relation between two nodes.

    For DEPENDS_ON, MUST_RUN_AFTER and SHOULD_RUN_AFTER the target runs after
    the source. For FINALIZED_BY the target runs after the source finishes.
    """
    source: str
    target: str
    kind: DependencyType = DependencyType.DEPENDS_ON

    def __post_init__(self):
        object.__setattr__(self, "kind", DependencyType(self.kind))

    @property
    def id(self) -> str:
        return f"{self.source}->{self.target}:{self.kind}"


@dataclass(frozen=True)
class TaskGroup:
    """
    Named visual grouping of nodes. Membership has no effect on ordering.

    Attributes:
        id: Unique group identifier
        name: Unique (case-insensitive) display name
        color: Display color
        collapsed: Whether the group is shown collapsed
        description: Optional description
        task_ids: Member node ids (a node belongs to at most one group)
    """
    id: str
    name: str
    color: str = "#6366f1"
    collapsed: bool = False
    description: Optional[str] = None
    task_ids: Tuple[str, ...] = ()


# ============================================================
#                   VARIABLES
# ============================================================
class VariableType(enum.StrEnum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    PATH = "path"
    LIST = "list"


@dataclass(frozen=True)
class Variable:
    """
    Named, typed value referenced as ``${name}`` and by conditions.

    Attributes:
        id: Unique identifier
        name: Identifier, unique across the graph
        type: Declared value type
        default_value: Value used when no explicit value is set
        value: Current explicit value, if any
        is_system: Built-in variables cannot be renamed or removed and are
                   not emitted to the script
        description: Optional description
    """
    id: str
    name: str
    type: VariableType = VariableType.STRING
    default_value: str = ""
    value: Optional[str] = None
    is_system: bool = False
    description: Optional[str] = None

    @property
    def effective_value(self) -> str:
        return self.value if self.value is not None else self.default_value


# ============================================================
#                   EXECUTION STATE
# ============================================================
class TaskStatus:
    """
    Enumeration of possible execution states for a node during a run.
    """
    IDLE = "idle"
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """
        Check if the given status represents a terminal (final) state.

        Args:
            status: The status to check

        Returns:
            True if the status is SUCCESS, FAILED, or SKIPPED
        """
        return status in {cls.SUCCESS, cls.FAILED, cls.SKIPPED}


def utc_now() -> datetime:
    """Current time, timezone-aware in UTC. Run and history timestamps all use it."""
    return datetime.now(timezone.utc)


class LogLevel(enum.StrEnum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    SUCCESS = "success"
    DEBUG = "debug"


@dataclass(frozen=True)
class TaskResult:
    """
    Per-node outcome within a run.

    Attributes:
        task_id: Node id
        task_name: Node name at the time of the run
        status: One of the TaskStatus values
        start_time: When the node started running
        end_time: When the node reached a terminal status
        duration_ms: Wall-clock duration in milliseconds
        output: Captured output
        error: Failure message
        skip_reason: Why the node was skipped
    """
    task_id: str
    task_name: str
    status: str = TaskStatus.IDLE
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_ms: Optional[int] = None
    output: Optional[str] = None
    error: Optional[str] = None
    skip_reason: Optional[str] = None


@dataclass(frozen=True)
class ExecutionLogEntry:
    timestamp: datetime
    level: LogLevel
    message: str
    task_id: Optional[str] = None
    task_name: Optional[str] = None


@dataclass(frozen=True)
class ExecutionState:
    """
    Immutable snapshot of a run, derived from the run's event log.

    Attributes:
        is_running: A run is in progress
        is_paused: The run is waiting at the resume gate
        cancelled: The run was aborted
        start_time: When the run started
        end_time: When the run finished
        execution_order: Node ids in the order they are visited
        task_results: Map of node id to its result
        logs: Ordered log entries
    """
    is_running: bool = False
    is_paused: bool = False
    cancelled: bool = False
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    execution_order: Tuple[str, ...] = ()
    task_results: Dict[str, TaskResult] = field(default_factory=dict)
    logs: Tuple[ExecutionLogEntry, ...] = ()

    def status_of(self, task_id: str) -> str:
        result = self.task_results.get(task_id)
        return result.status if result else TaskStatus.IDLE

    def count(self, status: str) -> int:
        return sum(1 for result in self.task_results.values() if result.status == status)


class ExecutionEventType(enum.StrEnum):
    """Types of events appended to a run's event log."""
    RUN_STARTED = "runStarted"
    TASK_STARTED = "taskStarted"
    TASK_OUTPUT = "taskOutput"
    TASK_COMPLETED = "taskCompleted"
    TASK_FAILED = "taskFailed"
    TASK_SKIPPED = "taskSkipped"
    RUN_PAUSED = "runPaused"
    RUN_RESUMED = "runResumed"
    RUN_ABORTED = "runAborted"
    RUN_FINISHED = "runFinished"
    RESET = "reset"


@dataclass(frozen=True)
class ExecutionEvent:
    """
    One entry of a run's append-only event log.

    Attributes:
        type: Type of event
        run_id: ID of the run the event belongs to
        timestamp: When the event happened
        task_id: Node the event concerns, if any
        task_name: Node name at the time of the event
        level: Level of the log entry recorded for the event
        message: Log message; events without one add no log entry
        data: Event payload (execution order, output, error, duration, skip reason)
    """
    type: ExecutionEventType
    run_id: str
    timestamp: datetime
    task_id: Optional[str] = None
    task_name: Optional[str] = None
    level: LogLevel = LogLevel.INFO
    message: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


# ============================================================
#                   UNIT OF WORK
# ============================================================
@dataclass(frozen=True)
class WorkRequest:
    """
    What the orchestrator asks a unit of work to run.

    Attributes:
        task_id: Node id
        task_name: Script identifier of the task
        kind: Node kind
        config: Node configuration
        project_path: Working directory of the build
        arguments: Extra build-tool arguments (including -P properties)
        environment: Extra environment variables
    """
    task_id: str
    task_name: str
    kind: TaskKind = TaskKind.CUSTOM
    config: Optional[TaskConfig] = None
    project_path: Optional[str] = None
    arguments: Tuple[str, ...] = ()
    environment: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkResult:
    success: bool
    output: str = ""
    error: Optional[str] = None
    exit_code: Optional[int] = None
    duration_ms: int = 0


ProgressCallback = Callable[[str], None]


class UnitOfWork(Protocol):
    """Executes a single node on behalf of the orchestrator."""

    async def execute(self, request: WorkRequest, on_progress: ProgressCallback) -> WorkResult:
        ...


# ============================================================
#                   HOST BRIDGE
# ============================================================
class BridgeEventType(enum.StrEnum):
    STARTED = "started"
    OUTPUT = "output"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class BridgeEvent:
    type: BridgeEventType
    task_name: str
    data: Optional[str] = None
    result: Optional[WorkResult] = None


class HostBridge(Protocol):
    """
    Boundary to the hosting environment (IDE plugin, CLI, HTTP surface).

    Only the interface is defined here; transports implement it.
    """

    async def read_build_file(self) -> Optional[str]:
        ...

    async def write_build_file(self, content: str) -> bool:
        ...

    async def available_tasks(self) -> List[str]:
        ...

    async def execute_task(self, request: WorkRequest) -> WorkResult:
        ...

    async def stop_task(self, task_name: str) -> None:
        ...

    def subscribe(self, listener: Callable[[BridgeEvent], Any]) -> Callable[[], None]:
        ...


