# src/ingestline/engine/expression_parser.py
"""Safe expression parser for command conditions.

Uses Python's ast module to parse and evaluate expressions in a restricted
subset of Python. This is NOT eval() - it's a whitelist-based interpreter.

The parser operates in two phases:
1. Parse-time validation: reject forbidden constructs when the chain is built
2. Evaluation: execute the validated AST against a Record

Expressions see a single name, ``record``, plus a handful of pure builtins.
The statement-level script interpreter in engine/script.py extends the
validator and evaluator defined here.
"""

from __future__ import annotations

import ast
import operator
from typing import Any

from ingestline.contracts.record import Record


class ExpressionSecurityError(Exception):
    """Raised when expression contains forbidden constructs."""


class ExpressionSyntaxError(Exception):
    """Raised when expression is not valid Python syntax."""


class ExpressionEvaluationError(Exception):
    """Raised when expression evaluation fails at runtime.

    Wraps operational errors (missing fields, bad types, division by zero)
    raised while evaluating a valid expression against a record. The original
    exception is chained via __cause__.
    """


# Allowed comparison operators
_COMPARISON_OPS: dict[type[ast.cmpop], Any] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

# Allowed binary operators
_BINARY_OPS: dict[type[ast.operator], Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

# Allowed unary operators
_UNARY_OPS: dict[type[ast.unaryop], Any] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

# Pure builtins callable by name
SAFE_FUNCTIONS: dict[str, Any] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "list": list,
    "sorted": sorted,
    "min": min,
    "max": max,
    "any": any,
    "all": all,
}

# Record methods that only read
RECORD_READ_METHODS: frozenset[str] = frozenset({"get", "first", "fields"})

_CONSTANT_NAMES = ("True", "False", "None")


class _ExpressionValidator(ast.NodeVisitor):
    """AST visitor that validates expressions for security.

    Collects errors rather than raising so every problem is reported at once.
    """

    record_methods: frozenset[str] = RECORD_READ_METHODS

    def __init__(self, extra_names: frozenset[str] = frozenset()) -> None:
        self.errors: list[str] = []
        self._in_call_func: bool = False  # Track if currently visiting a Call's func
        self._names = frozenset({"record", *_CONSTANT_NAMES, *SAFE_FUNCTIONS, *extra_names})

    def _is_none_constant(self, node: ast.expr) -> bool:
        if isinstance(node, ast.Constant) and node.value is None:
            return True
        return isinstance(node, ast.Name) and node.id == "None"

    def _is_record_derived(self, node: ast.expr) -> bool:
        """Check if node is 'record' or derived from record access.

        Handles: record['x'], record['x'][0], record.get('x')[0]
        """
        if isinstance(node, ast.Name) and node.id == "record":
            return True
        if isinstance(node, ast.Subscript):
            return self._is_record_derived(node.value)
        return (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Attribute)
            and isinstance(node.func.value, ast.Name)
            and node.func.value.id == "record"
        )

    def _check_subscript_target(self, node: ast.Subscript) -> None:
        if not self._is_record_derived(node.value):
            self.errors.append(f"Subscript access is only allowed on record data; got subscript on {ast.dump(node.value)}")

    def _check_value_attribute(self, node: ast.Attribute) -> None:
        """Attribute access on anything other than record. Forbidden in expressions."""
        self.errors.append(f"Forbidden attribute access: {node.attr!r}")

    def visit_Name(self, node: ast.Name) -> None:
        if node.id not in self._names:
            self.errors.append(f"Forbidden name: {node.id!r}")
        self.generic_visit(node)

    def visit_Subscript(self, node: ast.Subscript) -> None:
        if isinstance(node.slice, ast.Slice):
            self.errors.append("Slice syntax (e.g., [1:3]) is forbidden")
        self._check_subscript_target(node)
        self.generic_visit(node)

    def visit_Slice(self, node: ast.Slice) -> None:
        self.errors.append("Slice syntax (e.g., [1:3]) is forbidden")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        """Allow record methods when called; defer everything else to _check_value_attribute."""
        if isinstance(node.value, ast.Name) and node.value.id == "record":
            if node.attr not in self.record_methods:
                allowed = ", ".join(sorted(self.record_methods))
                self.errors.append(f"Forbidden record attribute: {node.attr!r} (allowed: {allowed})")
            elif not self._in_call_func:
                self.errors.append(f"Bare 'record.{node.attr}' is forbidden; call it instead")
        else:
            self._check_value_attribute(node)
        self._in_call_func = False
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        if node.keywords:
            self.errors.append("Keyword arguments are forbidden in calls")
        if isinstance(node.func, ast.Name):
            if node.func.id not in SAFE_FUNCTIONS and node.func.id not in self._callable_names():
                self.errors.append(f"Forbidden function call: {node.func.id!r}")
        elif isinstance(node.func, ast.Attribute):
            # Visit func with context flag set so the attribute is allowed
            self._in_call_func = True
            self.visit(node.func)
            self._in_call_func = False
            for arg in node.args:
                self.visit(arg)
            return
        else:
            self.errors.append(f"Forbidden function call: {ast.dump(node.func)}")
        self.generic_visit(node)

    def _callable_names(self) -> frozenset[str]:
        return frozenset()

    def visit_Compare(self, node: ast.Compare) -> None:
        all_operands = [node.left, *node.comparators]
        for i, op in enumerate(node.ops):
            if type(op) not in _COMPARISON_OPS:
                self.errors.append(f"Forbidden comparison operator: {type(op).__name__}")
            elif isinstance(op, ast.Is | ast.IsNot):
                if not (self._is_none_constant(all_operands[i]) or self._is_none_constant(all_operands[i + 1])):
                    self.errors.append("'is' and 'is not' operators are only allowed for None checks")
        self.generic_visit(node)

    def visit_BinOp(self, node: ast.BinOp) -> None:
        if type(node.op) not in _BINARY_OPS:
            self.errors.append(f"Forbidden binary operator: {type(node.op).__name__}")
        self.generic_visit(node)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> None:
        if type(node.op) not in _UNARY_OPS:
            self.errors.append(f"Forbidden unary operator: {type(node.op).__name__}")
        self.generic_visit(node)

    def visit_Constant(self, node: ast.Constant) -> None:
        if node.value is None or isinstance(node.value, str | int | float | bool):
            return
        self.errors.append(f"Forbidden constant type: {type(node.value).__name__}")

    def visit_Dict(self, node: ast.Dict) -> None:
        for key in node.keys:
            if key is None:
                self.errors.append("Dict spread (**) is forbidden")
        self.generic_visit(node)

    # Explicitly forbidden constructs

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self.errors.append("Lambda expressions are forbidden")

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self.errors.append("List comprehensions are forbidden")

    def visit_DictComp(self, node: ast.DictComp) -> None:
        self.errors.append("Dict comprehensions are forbidden")

    def visit_SetComp(self, node: ast.SetComp) -> None:
        self.errors.append("Set comprehensions are forbidden")

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> None:
        self.errors.append("Generator expressions are forbidden")

    def visit_Await(self, node: ast.Await) -> None:
        self.errors.append("Await expressions are forbidden")

    def visit_Yield(self, node: ast.Yield) -> None:
        self.errors.append("Yield expressions are forbidden")

    def visit_YieldFrom(self, node: ast.YieldFrom) -> None:
        self.errors.append("Yield from expressions are forbidden")

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self.errors.append("Assignment expressions (:=) are forbidden")

    def visit_JoinedStr(self, node: ast.JoinedStr) -> None:
        self.errors.append("F-strings are forbidden")

    def visit_Starred(self, node: ast.Starred) -> None:
        self.errors.append("Starred expressions (*) are forbidden")


class _ExpressionEvaluator(ast.NodeVisitor):
    """AST visitor that evaluates validated expressions.

    Args:
        namespace: Name bindings visible to the expression. Always contains
            "record".
    """

    record_methods: frozenset[str] = RECORD_READ_METHODS

    def __init__(self, namespace: dict[str, Any]) -> None:
        self._namespace = namespace
        self._record: Record = namespace["record"]

    def visit_Expression(self, node: ast.Expression) -> Any:
        return self.visit(node.body)

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id == "True":
            return True
        if node.id == "False":
            return False
        if node.id == "None":
            return None
        if node.id in self._namespace:
            return self._namespace[node.id]
        if node.id in SAFE_FUNCTIONS:
            return SAFE_FUNCTIONS[node.id]
        msg = f"name {node.id!r} is not defined"
        raise ExpressionEvaluationError(msg)

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        value = self.visit(node.value)
        key = self.visit(node.slice)
        try:
            return value[key]
        except KeyError as e:
            if isinstance(value, Record):
                msg = f"Field '{key}' not found. Available fields: {value.fields()}"
            else:
                msg = f"Key '{key}' not found in {type(value).__name__}"
            raise ExpressionEvaluationError(msg) from e
        except IndexError as e:
            msg = f"Index {key} out of range for {type(value).__name__} of length {len(value)}"
            raise ExpressionEvaluationError(msg) from e
        except TypeError as e:
            msg = f"Cannot access '{key}' on {type(value).__name__}: {e}"
            raise ExpressionEvaluationError(msg) from e

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        value = self.visit(node.value)
        if value is self._record and node.attr in self.record_methods:
            return getattr(value, node.attr)
        return self._resolve_attribute(value, node.attr)

    def _resolve_attribute(self, value: Any, attr: str) -> Any:
        msg = f"Forbidden attribute access: {attr}"
        raise ExpressionSecurityError(msg)

    def visit_Call(self, node: ast.Call) -> Any:
        func = self.visit(node.func)
        args = [self.visit(arg) for arg in node.args]
        return self._call(func, args)

    def _call(self, func: Any, args: list[Any]) -> Any:
        try:
            return func(*args)
        except (TypeError, ValueError, KeyError, IndexError) as e:
            name = getattr(func, "__name__", type(func).__name__)
            msg = f"call to {name}() failed: {e}"
            raise ExpressionEvaluationError(msg) from e

    def visit_Compare(self, node: ast.Compare) -> Any:
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators, strict=True):
            right = self.visit(comparator)
            op_func = _COMPARISON_OPS[type(op)]
            try:
                if not op_func(left, right):
                    return False
            except TypeError as e:
                op_name = type(op).__name__
                msg = f"type error in comparison ({op_name}): cannot compare {type(left).__name__} and {type(right).__name__}"
                raise ExpressionEvaluationError(msg) from e
            left = right
        return True

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        if isinstance(node.op, ast.And):
            for value in node.values:
                result = self.visit(value)
                if not result:
                    return result
            return result
        for value in node.values:
            result = self.visit(value)
            if result:
                return result
        return result

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        left = self.visit(node.left)
        right = self.visit(node.right)
        op_func = _BINARY_OPS[type(node.op)]
        try:
            return op_func(left, right)
        except ZeroDivisionError as e:
            msg = f"division by zero in {type(node.op).__name__} operation"
            raise ExpressionEvaluationError(msg) from e
        except TypeError as e:
            op_name = type(node.op).__name__
            msg = f"type error in {op_name}: cannot apply to {type(left).__name__} and {type(right).__name__}"
            raise ExpressionEvaluationError(msg) from e

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        op_func = _UNARY_OPS[type(node.op)]
        try:
            return op_func(operand)
        except TypeError as e:
            msg = f"type error in unary {type(node.op).__name__}: cannot apply to {type(operand).__name__}"
            raise ExpressionEvaluationError(msg) from e

    def visit_List(self, node: ast.List) -> Any:
        return [self.visit(elt) for elt in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> Any:
        return tuple(self.visit(elt) for elt in node.elts)

    def visit_Dict(self, node: ast.Dict) -> Any:
        try:
            return {self.visit(k): self.visit(v) for k, v in zip(node.keys, node.values, strict=True) if k is not None}
        except TypeError as e:
            msg = f"cannot create dict literal: {e}"
            raise ExpressionEvaluationError(msg) from e

    def visit_Set(self, node: ast.Set) -> Any:
        try:
            return {self.visit(elt) for elt in node.elts}
        except TypeError as e:
            msg = f"cannot create set literal: {e}"
            raise ExpressionEvaluationError(msg) from e

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        if self.visit(node.test):
            return self.visit(node.body)
        return self.visit(node.orelse)

    def generic_visit(self, node: ast.AST) -> Any:
        # Validation rejects anything without an explicit visitor
        msg = f"Unsupported construct: {type(node).__name__}"
        raise ExpressionSecurityError(msg)


class ExpressionParser:
    """Safe expression parser for filter and branch conditions.

    Parses and validates expressions at construction time, then evaluates
    them against a Record. Only a restricted subset of Python is allowed.

    Allowed operations:
    - Field access: record['field'] (value list), record.get('field'),
      record.first('field'), record.first('field', default), record.fields()
    - Comparisons, membership (in, not in), None checks (is, is not)
    - Boolean operators: and, or, not
    - Literals, including list/tuple/dict/set literals
    - Ternary expressions: x if condition else y
    - Basic arithmetic: +, -, *, /, //, %
    - Pure builtins: len, str, int, float, bool, list, sorted, min, max, any, all

    Example:
        parser = ExpressionParser("'hello' in record.get('tags')")
        parser.evaluate(Record({"tags": ["hello"]}))  # True
    """

    def __init__(self, expression: str) -> None:
        """Parse and validate expression at construction time.

        Raises:
            ExpressionSecurityError: If expression contains forbidden constructs
            ExpressionSyntaxError: If expression is not valid Python syntax
        """
        self._expression = expression

        try:
            self._ast = ast.parse(expression, mode="eval")
        except SyntaxError as e:
            msg = f"Invalid syntax: {e.msg}"
            raise ExpressionSyntaxError(msg) from e

        validator = _ExpressionValidator()
        validator.visit(self._ast)
        if validator.errors:
            raise ExpressionSecurityError("; ".join(validator.errors))

    @property
    def expression(self) -> str:
        return self._expression

    def evaluate(self, record: Record) -> Any:
        """Evaluate expression against a record.

        Raises:
            ExpressionEvaluationError: If evaluation fails on this record's data
        """
        evaluator = _ExpressionEvaluator({"record": record})
        return evaluator.visit(self._ast)

    def __repr__(self) -> str:
        return f"ExpressionParser({self._expression!r})"
