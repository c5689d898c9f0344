# gradleflow/infra/flow/script_parser.py
"""
Best-effort Gradle Kotlin DSL to graph parsing.

The parser tokenizes the script and recognizes a constrained set of task
registration idioms with a small recursive-descent recognizer. It never
raises: blocks that cannot be read are reported in ``ParseResult.errors``
and parsing continues with the next block; anything else that is not
understood is reported in ``ParseResult.warnings`` or ignored.

Everything ``generate_script`` emits is recognized, so a generated script
parses back to an equivalent graph.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Sequence, Tuple

from gradleflow.infra.flow.errors import ScriptParseError, StructuralValidationError
from gradleflow.infra.flow.graph import TaskGraph
from gradleflow.infra.flow.ids import IdGenerator
from gradleflow.infra.flow.kotlin import (
    COMMENT,
    NEWLINE,
    OP,
    STRING,
    Cursor,
    Token,
    UnbalancedError,
    source_text,
    split_arguments,
    split_statements,
    split_top_level,
    statement_end,
    strip_parens,
    tokenize,
)
from gradleflow.infra.flow.models import (
    Condition,
    ConditionLogic,
    ConditionMode,
    ConditionOperator,
    DependencyType,
    DuplicatesStrategy,
    Edge,
    HttpRequestConfig,
    OperandSource,
    TaskCondition,
    TaskKind,
    TaskNode,
    Variable,
    VariableType,
    config_type_for,
    to_task_identifier,
)
from gradleflow.infra.flow.script_generator import DISABLED_MARKER

logger = logging.getLogger(__name__)

NO_TASKS_WARNING = (
    "No tasks found in the build script. "
    "Make sure tasks are defined using tasks.register<Type>(\"name\") { ... }"
)

GRADLE_CLASSES = {
    "Exec": TaskKind.EXEC,
    "Copy": TaskKind.COPY,
    "Delete": TaskKind.DELETE,
    "Zip": TaskKind.ZIP,
    "Jar": TaskKind.JAR,
    "Test": TaskKind.TEST,
    "JavaCompile": TaskKind.JAVA_COMPILE,
    "ProcessResources": TaskKind.PROCESS_RESOURCES,
    "DefaultTask": TaskKind.CUSTOM,
}

_RELATIONS = {kind.value: kind for kind in DependencyType}
_COMPARISONS = {
    ">": ConditionOperator.GREATER_THAN,
    "<": ConditionOperator.LESS_THAN,
    ">=": ConditionOperator.GREATER_OR_EQUAL,
    "<=": ConditionOperator.LESS_OR_EQUAL,
}
_STRING_METHODS = {
    "contains": ConditionOperator.CONTAINS,
    "startsWith": ConditionOperator.STARTS_WITH,
    "endsWith": ConditionOperator.ENDS_WITH,
}
_BOOLEAN_FIELDS = {
    "isIgnoreExitValue": "ignore_exit_value",
    "ignoreExitValue": "ignore_exit_value",
    "followSymlinks": "follow_symlinks",
    "failFast": "fail_fast",
    "ignoreFailures": "ignore_failures",
    "isPreserveFileTimestamps": "preserve_file_timestamps",
    "preserveFileTimestamps": "preserve_file_timestamps",
}
_LIST_CALLS = {
    "from": "from_paths",
    "include": "include",
    "exclude": "exclude",
    "commandLine": "command_line",
    "args": "args",
    "jvmArgs": "jvm_args",
    "delete": "delete",
}


# ============================================================
#                   RESULT
# ============================================================
@dataclass
class ParseResult:
    """
    Outcome of parsing a script.

    Attributes:
        graph: Recovered graph (system variables included)
        errors: Blocks that could not be read at all
        warnings: Non-fatal findings (no tasks, unknown references, unrecognized guards)
    """
    graph: TaskGraph
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def nodes(self) -> Tuple[TaskNode, ...]:
        return self.graph.nodes

    @property
    def edges(self) -> Tuple[Edge, ...]:
        return self.graph.edges

    @property
    def variables(self) -> List[Variable]:
        return self.graph.user_variables

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass
class _Block:
    """A recognized registration block before it becomes a TaskNode."""
    name: str
    kind: TaskKind
    line: int
    enabled: bool = True
    group: Optional[str] = None
    description: Optional[str] = None
    timeout_minutes: Optional[int] = None
    condition: Optional[TaskCondition] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    references: List[Tuple[DependencyType, str]] = field(default_factory=list)

    def append(self, key: str, values: Sequence[Any]) -> None:
        self.fields[key] = tuple(self.fields.get(key, ())) + tuple(values)


# ============================================================
#                   HEADERS
# ============================================================
def _type_name(cursor: Cursor) -> Optional[str]:
    """Read a (possibly qualified) class name and return its simple name."""
    name = cursor.ident()
    if name is None:
        return None
    while cursor.peek() is not None and cursor.peek().is_op(".") and cursor.peek(1) is not None \
            and cursor.peek(1).is_ident() and cursor.peek(1).value not in ("java", "class"):
        cursor.next()
        name = cursor.ident()
    return name


def _class_literal(cursor: Cursor) -> Optional[str]:
    """Read ``Type::class`` or ``Type::class.java``."""
    save = cursor.pos
    name = _type_name(cursor)
    if name is None or not cursor.op("::") or cursor.ident("class") is None:
        cursor.pos = save
        return None
    if cursor.op("."):
        cursor.ident("java")
    return name


def _type_argument(cursor: Cursor) -> Optional[str]:
    save = cursor.pos
    if not cursor.op("<"):
        return None
    name = _type_name(cursor)
    if name is None or not cursor.op(">"):
        cursor.pos = save
        return None
    return name


def match_registration(cursor: Cursor) -> Optional[Tuple[str, Optional[str]]]:
    """
    Recognize a task registration header.

    Supported forms::

        tasks.register<Type>("name")
        tasks.register("name")
        tasks.register("name", Type::class[.java])
        tasks.create<Type>("name") / tasks.create("name"[, Type::class])
        val name by tasks.registering[(Type::class)]
        val name by tasks.creating[(Type::class)]

    Returns:
        (task name, simple class name or None), with the cursor left after
        the header; None (cursor untouched) when no header matches
    """
    save = cursor.pos
    try:
        return _match_registration(cursor, save)
    except UnbalancedError:
        cursor.pos = save
        return None


def _match_registration(cursor: Cursor, save: int) -> Optional[Tuple[str, Optional[str]]]:
    if cursor.ident("tasks") and cursor.op("."):
        method = cursor.ident()
        if method in ("register", "create"):
            type_name = _type_argument(cursor)
            args = cursor.group("(")
            if args is not None:
                parts = split_arguments(args)
                if parts and len(parts[0]) == 1 and parts[0][0].kind == STRING:
                    name = parts[0][0].value
                    if len(parts) == 2 and type_name is None:
                        type_name = _class_literal(Cursor(parts[1]))
                        if type_name is None:
                            cursor.pos = save
                            return None
                    if len(parts) <= 2:
                        return name, type_name
    cursor.pos = save

    if cursor.ident("val"):
        name = cursor.ident()
        if name and cursor.ident("by") and cursor.path("tasks") and cursor.op("."):
            method = cursor.ident()
            if method in ("registering", "creating"):
                type_name = _type_argument(cursor)
                args_save = cursor.pos
                args = cursor.group("(")
                if args is not None:
                    type_name = _class_literal(Cursor(args)) or type_name
                    if type_name is None:
                        cursor.pos = args_save
                return name, type_name
    cursor.pos = save
    return None


# ============================================================
#                   GUARDS
# ============================================================
class _GuardReader:
    """Recursive-descent recognizer for guard expressions."""

    def __init__(self, declared_variables: Sequence[str]):
        self.declared_variables = set(declared_variables)

    # ---------- Operands ----------

    def operand(self, c: Cursor) -> Optional[Tuple[OperandSource, str]]:
        save = c.pos
        value = c.string()
        if value is not None:
            return OperandSource.LITERAL, value

        # System.getenv("X").orEmpty()
        if c.path("System", "getenv"):
            args = c.group("(")
            name = _single_string(args)
            if name is not None and c.op(".") and c.ident("orEmpty") and c.op("(", ")"):
                return OperandSource.ENVIRONMENT, name
        c.pos = save

        # project.findProperty("p")?.toString().orEmpty()
        if c.path("project", "findProperty"):
            name = _single_string(c.group("("))
            if name is not None and c.op("?.") and c.ident("toString") and c.op("(", ")") \
                    and c.op(".") and c.ident("orEmpty") and c.op("(", ")"):
                return OperandSource.PROPERTY, name
        c.pos = save

        # (project.findProperty("v")?.toString() ?: "default")
        inner = c.group("(") if c.peek() is not None and c.peek().is_op("(") else None
        if inner is not None:
            ic = Cursor(inner)
            if ic.path("project", "findProperty"):
                name = _single_string(ic.group("("))
                if name is not None and ic.op("?.") and ic.ident("toString") and ic.op("(", ")") \
                        and ic.op("?:") and ic.string() is not None and ic.at_end:
                    return OperandSource.VARIABLE, name
            # (System.getenv("X") ?: "")
            ic = Cursor(inner)
            if ic.path("System", "getenv"):
                name = _single_string(ic.group("("))
                if name is not None and ic.op("?:") and ic.string() == "" and ic.at_end:
                    return OperandSource.ENVIRONMENT, name
        c.pos = save

        token = c.peek()
        if token is not None and token.is_ident() and token.value in self.declared_variables:
            c.next()
            return OperandSource.VARIABLE, token.value
        return None

    def _numeric_operand(self, c: Cursor) -> Optional[Tuple[OperandSource, str]]:
        """``(X.toDoubleOrNull() ?: Double.NaN)``"""
        save = c.pos
        inner = c.group("(")
        if inner is not None:
            ic = Cursor(inner)
            operand = self.operand(ic)
            if operand and ic.op(".") and ic.ident("toDoubleOrNull") and ic.op("(", ")") \
                    and ic.op("?:") and ic.path("Double", "NaN") and ic.at_end:
                return operand
        c.pos = save
        return None

    # ---------- Atoms ----------

    def atom(self, tokens: Sequence[Token]) -> Optional[Condition]:
        for recognizer in (self._regex, self._idiom, self._negated_contains, self._numeric, self._binary):
            c = Cursor(tokens)
            try:
                condition = recognizer(c)
            except UnbalancedError:
                condition = None
            if condition is not None and c.at_end:
                return condition
        return None

    def _regex(self, c: Cursor) -> Optional[Condition]:
        wrapped = False
        if c.ident("runCatching"):
            inner = c.group("{")
            if inner is None or not (c.op(".") and c.ident("getOrDefault") and c.op("(")
                                     and c.ident("false") and c.op(")")):
                return None
            c = Cursor(inner)
            wrapped = True
        if not c.ident("Regex"):
            return None
        pattern_args = c.group("(")
        if pattern_args is None or not (c.op(".") and c.ident("containsMatchIn")):
            return None
        subject_args = c.group("(")
        if subject_args is None or (wrapped and not c.at_end):
            return None
        right = self._whole_operand(pattern_args)
        left = self._whole_operand(subject_args)
        if right is None or left is None:
            return None
        return Condition(left[0], left[1], ConditionOperator.MATCHES, right[0], right[1])

    def _idiom(self, c: Cursor) -> Optional[Condition]:
        negated = c.op("!")
        if c.path("project", "hasProperty"):
            name = _single_string(c.group("("))
            if name is None:
                return None
            operator = ConditionOperator.IS_EMPTY if negated else ConditionOperator.IS_NOT_EMPTY
            return Condition(OperandSource.PROPERTY, name, operator)
        if negated:
            return None
        if c.path("System", "getenv"):
            name = _single_string(c.group("("))
            if name is None:
                return None
            if c.op("!=") and c.ident("null"):
                return Condition(OperandSource.ENVIRONMENT, name, ConditionOperator.IS_NOT_EMPTY)
            if c.op("==") and c.ident("null"):
                return Condition(OperandSource.ENVIRONMENT, name, ConditionOperator.IS_EMPTY)
        return None

    def _negated_contains(self, c: Cursor) -> Optional[Condition]:
        if not c.op("!"):
            return None
        left = self.operand(c)
        if left is None or not (c.op(".") and c.ident("contains")):
            return None
        right = self._whole_operand(c.group("("))
        if right is None:
            return None
        return Condition(left[0], left[1], ConditionOperator.NOT_CONTAINS, right[0], right[1])

    def _numeric(self, c: Cursor) -> Optional[Condition]:
        left = self._numeric_operand(c)
        if left is None:
            return None
        token = c.next()
        if token is None or token.kind != OP or token.value not in _COMPARISONS:
            return None
        right = self._numeric_operand(c)
        if right is None:
            return None
        return Condition(left[0], left[1], _COMPARISONS[token.value], right[0], right[1])

    def _binary(self, c: Cursor) -> Optional[Condition]:
        left = self.operand(c)
        if left is None:
            return None
        if c.op("=="):
            right = self.operand(c)
            return Condition(left[0], left[1], ConditionOperator.EQUALS, *right) if right else None
        if c.op("!="):
            right = self.operand(c)
            return Condition(left[0], left[1], ConditionOperator.NOT_EQUALS, *right) if right else None
        if not c.op("."):
            return None
        method = c.ident()
        if method == "isBlank" and c.op("(", ")"):
            return Condition(left[0], left[1], ConditionOperator.IS_EMPTY)
        if method == "isNotBlank" and c.op("(", ")"):
            return Condition(left[0], left[1], ConditionOperator.IS_NOT_EMPTY)
        if method == "lowercase" and c.op("(", ")") and c.ident("in") and c.ident("listOf"):
            values = _string_list(c.group("("))
            if values == ["true", "1"]:
                return Condition(left[0], left[1], ConditionOperator.IS_TRUE)
            if values == ["false", "0", ""]:
                return Condition(left[0], left[1], ConditionOperator.IS_FALSE)
            return None
        if method in _STRING_METHODS:
            right = self._whole_operand(c.group("("))
            if right is None:
                return None
            return Condition(left[0], left[1], _STRING_METHODS[method], right[0], right[1])
        return None

    def _whole_operand(self, tokens: Optional[Sequence[Token]]) -> Optional[Tuple[OperandSource, str]]:
        if tokens is None:
            return None
        c = Cursor(tokens)
        operand = self.operand(c)
        return operand if operand and c.at_end else None

    # ---------- Expressions ----------

    def guard(self, tokens: Sequence[Token]) -> Optional[TaskCondition]:
        """
        Recognize the body of ``onlyIf { ... }``.

        ``!( ... )`` around the whole expression is read as a skipIf guard.
        The expression is a single atom or atoms joined by only ``&&`` or only
        ``||``.

        Returns:
            The TaskCondition, or None when the expression is not recognized
        """
        tokens = strip_parens(tokens)
        mode = ConditionMode.ONLY_IF
        if len(tokens) >= 3 and tokens[0].is_op("!") and tokens[1].is_op("(") and tokens[-1].is_op(")"):
            inner = strip_parens(tokens[1:])
            if len(inner) < len(tokens) - 1:
                mode = ConditionMode.SKIP_IF
                tokens = inner

        and_parts = split_top_level(tokens, "&&")
        or_parts = split_top_level(tokens, "||")
        if len(and_parts) > 1 and len(or_parts) > 1:
            return None
        if len(or_parts) > 1:
            logic, parts = ConditionLogic.OR, or_parts
        else:
            logic, parts = ConditionLogic.AND, and_parts

        conditions = []
        for part in parts:
            condition = self.atom(strip_parens(part))
            if condition is None:
                return None
            conditions.append(condition)
        return TaskCondition(mode=mode, conditions=tuple(conditions), logic=logic)


def _single_string(args: Optional[Sequence[Token]]) -> Optional[str]:
    if args is None:
        return None
    significant = [t for t in args if t.kind not in (NEWLINE, COMMENT)]
    if len(significant) == 1 and significant[0].kind == STRING:
        return significant[0].value
    return None


def _string_list(args: Optional[Sequence[Token]]) -> Optional[List[str]]:
    if args is None:
        return None
    values = []
    for arg in split_arguments(args):
        if len(arg) != 1 or arg[0].kind != STRING:
            return None
        values.append(arg[0].value)
    return values


# ============================================================
#                   CURL
# ============================================================
def parse_curl(arguments: Sequence[str]) -> Optional[HttpRequestConfig]:
    """
    Recover an HTTP call from curl arguments (without the leading "curl").

    Returns:
        HttpRequestConfig, or None when an argument is not understood
    """
    method = "GET"
    headers: List[str] = []
    body = None
    timeout = None
    follow = False
    output = None
    url = None
    i = 0
    while i < len(arguments):
        arg = arguments[i]
        value = arguments[i + 1] if i + 1 < len(arguments) else None
        if arg in ("-X", "--request", "-H", "--header", "-d", "--data", "--max-time", "-o", "--output"):
            if value is None:
                return None
            if arg in ("-X", "--request"):
                method = value
            elif arg in ("-H", "--header"):
                headers.append(value)
            elif arg in ("-d", "--data"):
                body = value
            elif arg == "--max-time":
                if not value.isdigit():
                    return None
                timeout = int(value)
            else:
                output = value
            i += 2
            continue
        if arg in ("-L", "--location"):
            follow = True
        elif not arg.startswith("-") and url is None:
            url = arg
        else:
            return None
        i += 1

    content_type = None
    if headers and headers[-1].lower().startswith("content-type: "):
        content_type = headers.pop()[len("content-type: "):]
    parsed_headers: Dict[str, str] = {}
    for header in headers:
        if ": " not in header:
            return None
        key, value = header.split(": ", 1)
        parsed_headers[key] = value

    return HttpRequestConfig(
        url=url or "",
        method=method,
        headers=parsed_headers,
        body=body,
        content_type=content_type,
        timeout_seconds=timeout,
        follow_redirects=follow,
        output_file=output,
    )


# ============================================================
#                   PARSER
# ============================================================
class ScriptParser:
    """
    Parses one script into a ParseResult.

    A fresh parser is used per script; ``parse_script`` is the entry point.
    """

    def __init__(self, text: str, ids: Optional[IdGenerator] = None):
        self.text = text
        self.ids = ids or IdGenerator()
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.blocks: List[_Block] = []
        self.variables: List[Variable] = []

    def parse(self) -> ParseResult:
        tokenized = tokenize(self.text)
        for line, message in tokenized.errors:
            self.warnings.append(f"Line {line}: {message}")
        self._scan(tokenized.tokens)
        graph = self._build_graph()
        if not graph.nodes:
            self.warnings.append(NO_TASKS_WARNING)
        logger.info(
            f"Parsed build script: tasks={len(graph.nodes)}, edges={len(graph.edges)}, "
            f"errors={len(self.errors)}, warnings={len(self.warnings)}"
        )
        return ParseResult(graph=graph, errors=self.errors, warnings=self.warnings)

    # ---------- Top level ----------

    def _scan(self, tokens: List[Token]) -> None:
        i = 0
        end = len(tokens)
        previous_comment: Optional[str] = None
        while i < end:
            token = tokens[i]
            if token.kind == NEWLINE or token.is_op(";"):
                i += 1
                continue
            if token.kind == COMMENT:
                if previous_comment == DISABLED_MARKER:
                    self._disabled_stub(token)
                previous_comment = token.value
                i += 1
                continue
            previous_comment = None

            try:
                stmt_end = statement_end(tokens, i, end)
            except UnbalancedError as exc:
                i = self._recover(tokens, i, exc)
                continue
            self._statement(tokens[i:stmt_end])
            i = stmt_end

    def _recover(self, tokens: List[Token], i: int, exc: UnbalancedError) -> int:
        """
        Handle a statement whose delimiters do not balance.

        A registration block is reported as a parse error and scanning resumes
        inside its body, so later blocks are still found. Any other statement
        is skipped up to the end of its line.
        """
        cursor = Cursor(tokens[i:])
        header = match_registration(cursor)
        if header is not None:
            error = ScriptParseError(f"Malformed task block: {exc}", header[0], tokens[i].line)
            self.errors.append(str(error))
            logger.warning(f"Skipping malformed task block: task={header[0]}, line={tokens[i].line}, error={exc}")
            resume = i + cursor.pos
            if cursor.peek() is not None and cursor.peek().is_op("{"):
                resume = i + cursor.tokens.index(cursor.peek()) + 1
            return max(resume, i + 1)
        j = i + 1
        while j < len(tokens) and tokens[j].kind != NEWLINE:
            j += 1
        return j

    def _statement(self, tokens: Sequence[Token]) -> None:
        cursor = Cursor(tokens)
        header = match_registration(cursor)
        if header is not None:
            name, class_name = header
            body = cursor.group("{")
            self._block(name, class_name, body or [], tokens[0].line)
            return
        cursor = Cursor(tokens)
        variable = self._variable_declaration(cursor)
        if variable is not None and cursor.at_end:
            self.variables.append(variable)

    def _disabled_stub(self, token: Token) -> None:
        tokenized = tokenize(token.value)
        cursor = Cursor(tokenized.tokens)
        header = match_registration(cursor)
        if header is None or cursor.peek() is None or not cursor.peek().is_op("{"):
            return
        name, class_name = header
        block = _Block(name=name, kind=self._kind_for(class_name, name), line=token.line, enabled=False)
        self.blocks.append(block)

    def _kind_for(self, class_name: Optional[str], task_name: str) -> TaskKind:
        if class_name is None:
            return TaskKind.CUSTOM
        kind = GRADLE_CLASSES.get(class_name)
        if kind is None:
            logger.debug(f"Unknown task class mapped to Custom: task={task_name}, class={class_name}")
            return TaskKind.CUSTOM
        return kind

    def _variable_declaration(self, c: Cursor) -> Optional[Variable]:
        """
        ``val name: String = project.findProperty("name")?.toString() ?: "default"``
        ``val name: String = (project.findProperty("name") ?: "default").toString()``
        ``val name: String by project.extra { "default" }``
        """
        if not c.ident("val"):
            return None
        name = c.ident()
        if name is None or not c.op(":") or not c.ident("String"):
            return None
        default: Optional[str] = None
        if c.op("="):
            save = c.pos
            if c.path("project", "findProperty"):
                prop = _single_string(c.group("("))
                if prop is not None and c.op("?.") and c.ident("toString") and c.op("(", ")") and c.op("?:"):
                    default = c.string()
            if default is None:
                c.pos = save
                inner = c.group("(")
                if inner is not None and c.op(".") and c.ident("toString") and c.op("(", ")"):
                    ic = Cursor(inner)
                    if ic.path("project", "findProperty") and _single_string(ic.group("(")) is not None \
                            and ic.op("?:"):
                        default = ic.string()
                        if not ic.at_end:
                            default = None
        elif c.ident("by") and c.path("project", "extra"):
            inner = c.group("{")
            if inner is not None:
                default = _single_string(inner)
        if default is None:
            return None
        return Variable(id=self.ids.unique(f"var_{name}"), name=name, type=VariableType.STRING,
                        default_value=default)

    # ---------- Blocks ----------

    def _block(self, name: str, class_name: Optional[str], body: Sequence[Token], line: int) -> None:
        block = _Block(name=name, kind=self._kind_for(class_name, name), line=line)
        declared = [v.name for v in self.variables]
        reader = _GuardReader(declared)
        try:
            statements = split_statements(body)
        except UnbalancedError as exc:
            self.errors.append(str(ScriptParseError(f"Malformed task block: {exc}", name, line)))
            return

        for start, stop in statements:
            tokens = body[start:stop]
            try:
                handled = self._body_statement(block, Cursor(tokens), reader)
            except UnbalancedError:
                handled = False
            if not handled:
                logger.debug(f"Ignoring unrecognized statement: task={name}, text={source_text(self.text, tokens)!r}")

        if block.kind is TaskKind.EXEC and set(block.fields) == {"command_line"} \
                and block.fields["command_line"] and block.fields["command_line"][0] == "curl":
            http = parse_curl(block.fields["command_line"][1:])
            if http is not None:
                block.kind = TaskKind.HTTP_REQUEST
                block.fields = {"http": http}
        self.blocks.append(block)

    def _body_statement(self, block: _Block, c: Cursor, reader: _GuardReader) -> bool:
        save = c.pos
        for recognizer in (self._assignment, self._setter, self._call, self._guard, self._options):
            c.pos = save
            if recognizer(block, c, reader) and c.at_end:
                return True
        c.pos = save
        return False

    def _assignment(self, block: _Block, c: Cursor, reader: _GuardReader) -> bool:
        target = c.ident()
        if target is None or not c.op("="):
            return False
        if target in ("group", "description"):
            value = c.string()
            if value is None:
                return False
            setattr(block, target, value)
            return True
        if target == "enabled":
            value = _boolean(c)
            if value is None:
                return False
            block.enabled = value
            return True
        if target in _BOOLEAN_FIELDS:
            value = _boolean(c)
            if value is None:
                return False
            block.fields[_BOOLEAN_FIELDS[target]] = value
            return True
        if target in ("maxParallelForks", "forkEvery"):
            value = _integer(c)
            if value is None:
                return False
            block.fields["max_parallel_forks" if target == "maxParallelForks" else "fork_every"] = value
            return True
        if target == "duplicatesStrategy":
            if not (c.ident("DuplicatesStrategy") and c.op(".")):
                return False
            strategy = c.ident()
            if strategy not in DuplicatesStrategy.__members__:
                return False
            block.fields["duplicates_strategy"] = DuplicatesStrategy(strategy)
            return True
        if target in ("archiveFileName", "sourceCompatibility", "targetCompatibility"):
            value = c.string()
            if value is None:
                return False
            key = {"archiveFileName": "archive_file_name",
                   "sourceCompatibility": "source_compatibility",
                   "targetCompatibility": "target_compatibility"}[target]
            block.fields[key] = value
            return True
        if target == "destinationDirectory":
            value = _directory(c)
            if value is None:
                return False
            block.fields["destination_directory"] = value
            return True
        if target == "workingDir":
            value = _file_call(c)
            if value is None:
                return False
            block.fields["working_dir"] = value
            return True
        if target == "timeout":
            minutes = _duration_minutes(c)
            if minutes is None:
                return False
            block.timeout_minutes = minutes
            return True
        return False

    def _setter(self, block: _Block, c: Cursor, reader: _GuardReader) -> bool:
        """``property.set(value)`` forms."""
        target = c.ident()
        if target is None or not (c.op(".") and c.ident("set")):
            return False
        args = c.group("(")
        if args is None:
            return False
        inner = Cursor(args)
        if target == "timeout":
            minutes = _duration_minutes(inner)
            if minutes is None or not inner.at_end:
                return False
            block.timeout_minutes = minutes
            return True
        if target == "archiveFileName":
            value = _single_string(args)
            if value is None:
                return False
            block.fields["archive_file_name"] = value
            return True
        if target == "destinationDirectory":
            value = _directory(inner)
            if value is None or not inner.at_end:
                return False
            block.fields["destination_directory"] = value
            return True
        return False

    def _call(self, block: _Block, c: Cursor, reader: _GuardReader) -> bool:
        method = c.ident()
        if method is None:
            return False
        args = c.group("(")
        if args is None:
            return False
        if method in _RELATIONS:
            for arg in split_arguments(args):
                reference = _task_reference(arg)
                if reference is None:
                    self.warnings.append(
                        f"Task \"{block.name}\": unrecognized {method} reference "
                        f"\"{source_text(self.text, arg)}\""
                    )
                    continue
                block.references.append((_RELATIONS[method], reference))
            return True
        if method in _LIST_CALLS:
            values = _string_list(args)
            if values is None:
                return False
            block.append(_LIST_CALLS[method], values)
            return True
        if method == "into":
            value = _single_string(args)
            if value is None:
                return False
            block.fields["into"] = value
            return True
        if method == "workingDir":
            value = _single_string(args)
            if value is None:
                return False
            block.fields["working_dir"] = value
            return True
        if method == "environment":
            values = _string_list(args)
            if values is None or len(values) != 2:
                return False
            environment = dict(block.fields.get("environment", {}))
            environment[values[0]] = values[1]
            block.fields["environment"] = environment
            return True
        return False

    def _guard(self, block: _Block, c: Cursor, reader: _GuardReader) -> bool:
        if not c.ident("onlyIf"):
            return False
        body = c.group("{")
        if body is None:
            return False
        significant = [t for t in body if t.kind not in (NEWLINE, COMMENT)]
        if not significant:
            return False
        condition = reader.guard(significant)
        if condition is None:
            raw = source_text(self.text, significant)
            condition = TaskCondition(
                mode=ConditionMode.ONLY_IF,
                conditions=(Condition(OperandSource.LITERAL, raw, ConditionOperator.IS_TRUE),),
            )
            self.warnings.append(f"Task \"{block.name}\": unrecognized onlyIf condition kept as literal: {raw}")
        block.condition = condition
        return True

    def _options(self, block: _Block, c: Cursor, reader: _GuardReader) -> bool:
        """``options.apply { ... }`` and ``options.<field> ...`` for JavaCompile."""
        if not (c.ident("options") and c.op(".")):
            return False
        if c.ident("apply"):
            body = c.group("{")
            if body is None:
                return False
            for start, stop in split_statements(body):
                if not self._compile_option(block, Cursor(body[start:stop])):
                    return False
            return True
        return self._compile_option(block, c)

    def _compile_option(self, block: _Block, c: Cursor) -> bool:
        target = c.ident()
        if target == "encoding" and c.op("="):
            value = c.string()
            if value is None:
                return False
            block.fields["encoding"] = value
        elif target in ("isDeprecation", "isWarnings") and c.op("="):
            value = _boolean(c)
            if value is None:
                return False
            block.fields["deprecation" if target == "isDeprecation" else "warnings"] = value
        elif target == "compilerArgs" and c.op("."):
            method = c.ident()
            args = c.group("(")
            if args is None:
                return False
            if method == "addAll":
                inner = Cursor(args)
                if not inner.ident("listOf"):
                    return False
                values = _string_list(inner.group("("))
                if values is None or not inner.at_end:
                    return False
            elif method == "add":
                value = _single_string(args)
                if value is None:
                    return False
                values = [value]
            else:
                return False
            block.append("compiler_args", values)
        else:
            return False
        return c.at_end

    # ---------- Graph assembly ----------

    def _build_graph(self) -> TaskGraph:
        graph = TaskGraph.empty()
        for variable in self.variables:
            try:
                graph = graph.add_variable(variable)
            except StructuralValidationError as exc:
                self.warnings.append(f"Variable \"{variable.name}\" ignored: {exc}")

        built: List[Tuple[_Block, TaskNode]] = []
        for block in self.blocks:
            node = self._node_for(block)
            try:
                graph = graph.add_node(node)
            except StructuralValidationError as exc:
                self.errors.append(str(ScriptParseError(str(exc), block.name, block.line)))
                continue
            built.append((block, node))

        for block, node in built:
            for kind, reference in block.references:
                other = graph.find_node_by_name(reference)
                if other is None:
                    self.warnings.append(
                        f"Task \"{block.name}\": {kind} references unknown task \"{reference}\""
                    )
                    continue
                source, target = (node.id, other.id) if kind is DependencyType.FINALIZED_BY else (other.id, node.id)
                try:
                    graph = graph.add_edge(source, target, kind)
                except StructuralValidationError as exc:
                    self.warnings.append(f"Task \"{block.name}\": {kind}(\"{reference}\") ignored: {exc}")
        return graph

    def _node_for(self, block: _Block) -> TaskNode:
        if block.kind is TaskKind.HTTP_REQUEST:
            config = block.fields["http"]
        else:
            config_type = config_type_for(block.kind)
            allowed = {f.name for f in fields(config_type)}
            ignored = [key for key in block.fields if key not in allowed]
            if ignored:
                logger.debug(f"Ignoring fields not applicable to kind: task={block.name}, kind={block.kind}, fields={ignored}")
            config = config_type(**{k: v for k, v in block.fields.items() if k in allowed})
        return TaskNode(
            id=self.ids.unique(f"task_{to_task_identifier(block.name)}"),
            name=block.name,
            kind=block.kind,
            config=config,
            group=block.group,
            description=block.description,
            enabled=block.enabled,
            timeout_minutes=block.timeout_minutes,
            condition=block.condition,
        )


# ============================================================
#                   VALUE HELPERS
# ============================================================
def _boolean(c: Cursor) -> Optional[bool]:
    if c.ident("true"):
        return True
    if c.ident("false"):
        return False
    return None


def _integer(c: Cursor) -> Optional[int]:
    value = c.number()
    if value is None:
        return None
    value = value.rstrip("Ll").replace("_", "")
    return int(value) if value.isdigit() else None


def _file_call(c: Cursor) -> Optional[str]:
    if c.ident("file"):
        return _single_string(c.group("("))
    return None


def _directory(c: Cursor) -> Optional[str]:
    """``layout.projectDirectory.dir("x")``, ``layout.buildDirectory.dir("x")`` or ``file("x")``."""
    save = c.pos
    if c.ident("layout") and c.op(".") and c.ident() in ("projectDirectory", "buildDirectory") \
            and c.op(".") and c.ident("dir"):
        value = _single_string(c.group("("))
        if value is not None:
            return value
    c.pos = save
    return _file_call(c)


def _duration_minutes(c: Cursor) -> Optional[int]:
    if not (c.path("Duration", "ofMinutes")):
        return None
    args = c.group("(")
    if args is None:
        return None
    inner = Cursor(args)
    value = _integer(inner)
    return value if value is not None and inner.at_end else None


def _task_reference(tokens: Sequence[Token]) -> Optional[str]:
    """
    Resolve one dependency argument to a task name.

    Accepts ``"name"``, ``":name"``, ``tasks.named("name")``,
    ``tasks.getByName("name")``, ``tasks["name"]`` and a bare identifier
    (a task declared with ``val name by tasks.registering``).
    """
    c = Cursor(tokens)
    value = c.string()
    if value is None:
        if c.ident("tasks"):
            if c.op("."):
                if c.ident() not in ("named", "getByName"):
                    return None
                _type_argument(c)
                value = _single_string(c.group("("))
            else:
                value = _single_string(c.group("["))
        else:
            value = c.ident()
    if value is None or not c.at_end:
        return None
    return value.lstrip(":") or None


def parse_script(text: str, ids: Optional[IdGenerator] = None) -> ParseResult:
    """
    Parse a Gradle Kotlin DSL script into a task graph.

    Never raises. Node ids are derived from task identifiers (``task_<name>``).

    Args:
        text: Script text
        ids: Id generator for nodes and variables (a fresh one by default)

    Returns:
        ParseResult with the recovered graph, errors and warnings
    """
    return ScriptParser(text, ids).parse()
