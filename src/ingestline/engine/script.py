# src/ingestline/engine/script.py
"""Restricted script interpreter for scripted commands.

Scripts are small blocks of Python statements embedded in configuration.
They run against the current record with an implicit reference to the
command's child, under the same process(record) -> bool contract as every
other command:

    if "hello" not in record.get("tags"):
        return False
    record["tags"].append("world")
    return child.process(record)

Like ExpressionParser, scripts are parsed and validated once, when the chain
is built, and interpreted per record by walking the validated AST. Nothing is
compiled or passed to eval()/exec().

Allowed statements: if/elif/else, for (no else), break, continue, pass,
return, expression statements, assignment to local names or record fields,
augmented assignment to local names, and ``del record[...]``. A script that
finishes without returning forwards the record to the child.
"""

from __future__ import annotations

import ast
from typing import Any, Protocol

from ingestline.contracts.errors import ScriptSecurityError, ScriptSyntaxError
from ingestline.contracts.record import Record
from ingestline.engine.expression_parser import (
    _BINARY_OPS,
    _ExpressionEvaluator,
    _ExpressionValidator,
    ExpressionEvaluationError,
)

# Record methods available to scripts (reads plus in-place mutation)
RECORD_SCRIPT_METHODS: frozenset[str] = frozenset(
    {"get", "first", "fields", "put", "put_all", "replace", "remove", "remove_value"}
)

# Methods callable on list values
LIST_METHODS: frozenset[str] = frozenset({"append", "extend", "insert", "remove", "index", "count"})

# Methods callable on str values
STR_METHODS: frozenset[str] = frozenset({"lower", "upper", "strip", "startswith", "endswith", "split", "join", "replace"})

# Names the script may read but never rebind
_RESERVED_NAMES = frozenset({"record", "child", "True", "False", "None"})

_ALLOWED_STATEMENTS: tuple[type[ast.stmt], ...] = (
    ast.If,
    ast.For,
    ast.Break,
    ast.Continue,
    ast.Pass,
    ast.Return,
    ast.Expr,
    ast.Assign,
    ast.AugAssign,
    ast.Delete,
)


class ChildCommand(Protocol):
    """What a script sees as ``child``."""

    def process(self, record: Record) -> bool: ...


class _Return(Exception):  # noqa: N818 - control flow, not an error
    def __init__(self, value: Any) -> None:
        self.value = value


class _Break(Exception):  # noqa: N818
    pass


class _Continue(Exception):  # noqa: N818
    pass


def _assigned_names(tree: ast.Module) -> frozenset[str]:
    """Collect local names bound anywhere in the script."""
    names: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Assign):
            targets: list[ast.expr] = list(node.targets)
        elif isinstance(node, ast.AugAssign | ast.For):
            targets = [node.target]
        else:
            continue
        for target in targets:
            for sub in ast.walk(target):
                if isinstance(sub, ast.Name):
                    names.add(sub.id)
    return frozenset(names)


class _ScriptValidator(_ExpressionValidator):
    """Extends expression validation with statements and mutating calls."""

    record_methods = RECORD_SCRIPT_METHODS

    def __init__(self, local_names: frozenset[str]) -> None:
        super().__init__(extra_names=local_names | {"child"})
        self._loop_depth = 0

    def visit(self, node: ast.AST) -> Any:
        if isinstance(node, ast.stmt) and not isinstance(node, _ALLOWED_STATEMENTS):
            self.errors.append(f"Forbidden statement: {type(node).__name__}")
            return None
        return super().visit(node)

    def _check_subscript_target(self, node: ast.Subscript) -> None:
        # Local names hold record-derived values, so any subscript is allowed
        return

    def _check_value_attribute(self, node: ast.Attribute) -> None:
        if isinstance(node.value, ast.Name) and node.value.id == "child":
            if node.attr != "process":
                self.errors.append(f"Forbidden child attribute: {node.attr!r} (only 'process' is allowed)")
            elif not self._in_call_func:
                self.errors.append("Bare 'child.process' is forbidden; call child.process(record)")
            return
        if node.attr not in LIST_METHODS | STR_METHODS:
            self.errors.append(f"Forbidden attribute access: {node.attr!r}")
        elif not self._in_call_func:
            self.errors.append(f"Bare method reference {node.attr!r} is forbidden; call it instead")

    def _check_target(self, target: ast.expr) -> None:
        if isinstance(target, ast.Name):
            if target.id in _RESERVED_NAMES:
                self.errors.append(f"Cannot assign to reserved name {target.id!r}")
        elif isinstance(target, ast.Subscript):
            if not (isinstance(target.value, ast.Name) and target.value.id == "record"):
                self.errors.append("Subscript assignment is only allowed on record fields")
        else:
            self.errors.append(f"Forbidden assignment target: {type(target).__name__}")

    def visit_Assign(self, node: ast.Assign) -> None:
        for target in node.targets:
            self._check_target(target)
        self.generic_visit(node)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        if not isinstance(node.target, ast.Name):
            self.errors.append("Augmented assignment is only allowed on local names")
        else:
            self._check_target(node.target)
        if type(node.op) not in _BINARY_OPS:
            self.errors.append(f"Forbidden binary operator: {type(node.op).__name__}")
        self.generic_visit(node)

    def visit_Delete(self, node: ast.Delete) -> None:
        for target in node.targets:
            if not (isinstance(target, ast.Subscript) and isinstance(target.value, ast.Name) and target.value.id == "record"):
                self.errors.append("'del' is only allowed on record fields")
        self.generic_visit(node)

    def visit_For(self, node: ast.For) -> None:
        if node.orelse:
            self.errors.append("'for ... else' is forbidden")
        if not isinstance(node.target, ast.Name):
            self.errors.append("Loop target must be a single name")
        else:
            self._check_target(node.target)
        self._loop_depth += 1
        self.generic_visit(node)
        self._loop_depth -= 1

    def visit_Break(self, node: ast.Break) -> None:
        if self._loop_depth == 0:
            self.errors.append("'break' outside loop")

    def visit_Continue(self, node: ast.Continue) -> None:
        if self._loop_depth == 0:
            self.errors.append("'continue' outside loop")


class _ScriptEvaluator(_ExpressionEvaluator):
    """Interprets validated script statements against one record."""

    record_methods = RECORD_SCRIPT_METHODS

    def __init__(self, record: Record, child: ChildCommand) -> None:
        super().__init__({"record": record, "child": child})
        self._child = child

    def _resolve_attribute(self, value: Any, attr: str) -> Any:
        if value is self._child and attr == "process":
            return self._child.process
        if isinstance(value, list) and attr in LIST_METHODS:
            return getattr(value, attr)
        if isinstance(value, str) and attr in STR_METHODS:
            return getattr(value, attr)
        msg = f"'{type(value).__name__}' value has no allowed method {attr!r}"
        raise ExpressionEvaluationError(msg)

    def _call(self, func: Any, args: list[Any]) -> Any:
        # Errors from the child belong to the child's command, not this script
        if func == self._child.process:
            return func(*args)
        return super()._call(func, args)

    def run_body(self, body: list[ast.stmt]) -> None:
        for statement in body:
            self.visit(statement)

    def visit_Module(self, node: ast.Module) -> Any:
        self.run_body(node.body)

    def visit_Expr(self, node: ast.Expr) -> None:
        self.visit(node.value)

    def visit_Pass(self, node: ast.Pass) -> None:
        return

    def visit_Return(self, node: ast.Return) -> None:
        raise _Return(None if node.value is None else self.visit(node.value))

    def visit_Break(self, node: ast.Break) -> None:
        raise _Break()

    def visit_Continue(self, node: ast.Continue) -> None:
        raise _Continue()

    def visit_If(self, node: ast.If) -> None:
        if self.visit(node.test):
            self.run_body(node.body)
        else:
            self.run_body(node.orelse)

    def visit_For(self, node: ast.For) -> None:
        iterable = self.visit(node.iter)
        assert isinstance(node.target, ast.Name)  # guaranteed by validator
        try:
            items = list(iterable)
        except TypeError as e:
            msg = f"cannot iterate over {type(iterable).__name__}"
            raise ExpressionEvaluationError(msg) from e
        for item in items:
            self._namespace[node.target.id] = item
            try:
                self.run_body(node.body)
            except _Continue:
                continue
            except _Break:
                break

    def _assign(self, target: ast.expr, value: Any) -> None:
        if isinstance(target, ast.Name):
            self._namespace[target.id] = value
            return
        assert isinstance(target, ast.Subscript)  # guaranteed by validator
        field = self.visit(target.slice)
        if not isinstance(field, str):
            msg = f"record field names must be str, got {type(field).__name__}"
            raise ExpressionEvaluationError(msg)
        self._record[field] = value

    def visit_Assign(self, node: ast.Assign) -> None:
        value = self.visit(node.value)
        for target in node.targets:
            self._assign(target, value)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        assert isinstance(node.target, ast.Name)  # guaranteed by validator
        current = self.visit_Name(node.target)
        right = self.visit(node.value)
        try:
            self._namespace[node.target.id] = _BINARY_OPS[type(node.op)](current, right)
        except (TypeError, ZeroDivisionError) as e:
            msg = f"augmented assignment to {node.target.id!r} failed: {e}"
            raise ExpressionEvaluationError(msg) from e

    def visit_Delete(self, node: ast.Delete) -> None:
        for target in node.targets:
            assert isinstance(target, ast.Subscript)  # guaranteed by validator
            self._record.remove(self.visit(target.slice))


# Marker returned by Script.run when the script ended without a return statement
FALL_THROUGH = object()


class Script:
    """A parsed and validated script, reusable across records.

    Example:
        script = Script("record.put('seen', True)")
        script.run(record, child)  # FALL_THROUGH; caller forwards to child
    """

    def __init__(self, source: str) -> None:
        """Parse and validate source.

        Raises:
            ScriptSyntaxError: If source is not valid Python syntax
            ScriptSecurityError: If source contains forbidden constructs
        """
        self._source = source
        try:
            self._ast = ast.parse(source, mode="exec")
        except SyntaxError as e:
            raise ScriptSyntaxError(f"Invalid script syntax at line {e.lineno}: {e.msg}") from e

        validator = _ScriptValidator(_assigned_names(self._ast))
        validator.visit(self._ast)
        if validator.errors:
            raise ScriptSecurityError("; ".join(validator.errors))

    @property
    def source(self) -> str:
        return self._source

    def run(self, record: Record, child: ChildCommand) -> Any:
        """Execute against record.

        Returns:
            The value of the first return statement reached, or FALL_THROUGH

        Raises:
            ExpressionEvaluationError: For data-dependent failures
        """
        evaluator = _ScriptEvaluator(record, child)
        try:
            evaluator.visit(self._ast)
        except _Return as r:
            return r.value
        return FALL_THROUGH

    def __repr__(self) -> str:
        return f"Script({self._source!r})"
