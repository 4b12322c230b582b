"""
Condition Evaluator

Evaluates while/if conditions against workflow `input` and `state`.

Safe mode (default) supports a restricted grammar only:
- Property access: input.foo, state.bar.baz (numeric segments index lists,
  `length` reads list/string length)
- Comparisons: ===, !==, ==, !=, >=, <=, >, <
- Logical operators: &&, ||, !
- Parentheses for grouping
- Literals: strings ('...' or "..."), numbers, true, false, null

Operator precedence (from lowest to highest):
1. || (logical OR)
2. && (logical AND)
3. ===, !==, ==, !=, >=, <=, >, < (comparisons)
4. ! (negation)
5. (...) (parentheses)

`==`/`!=` use SameValue semantics (identity for containers, NaN equals
NaN, 0 and -0 differ) and never coerce types. `===`/`!==` are strict
equality (NaN never equal, 0 equals -0).

Unsafe mode evaluates the condition as a Python expression with `input`
and `state` bound, and logs a security warning on every evaluation.
"""

from __future__ import annotations

import functools
import json
import logging
import math
import operator
import re
from typing import Any, Mapping

from workflow_interpreter.core.errors import ConditionEvaluationError
from workflow_interpreter.core.sandbox import SAFE_BUILTINS

_logger = logging.getLogger(__name__)

COMPARISON_OPERATORS = ("===", "!==", "==", "!=", ">=", "<=", ">", "<")

_STRING_LITERAL = re.compile(r"""(["'])(?:(?=(\\?))\2.)*?\1""")
_NUMBER_LITERAL = re.compile(r"-?\d*\.?\d+(?:[eE][+-]?\d+)?")

_ORDERING = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
}

UNSAFE_CONDITION_CACHE_SIZE = 256


def evaluate_condition(
    condition: str,
    input: Mapping[str, Any],
    state: Mapping[str, Any],
    allow_unsafe_code_execution: bool = False,
    logger: logging.Logger | None = None,
) -> bool:
    """Evaluate a condition, in unsafe mode only when explicitly enabled."""
    if allow_unsafe_code_execution:
        (logger or _logger).warning(
            f"[SECURITY] Executing unsafe code evaluation for condition: {condition}. "
            "This allows arbitrary Python execution and should only be used for trusted workflows."
        )
        return evaluate_condition_unsafe(condition, input, state)
    return evaluate_condition_safe(condition, input, state)


def evaluate_condition_safe(
    condition: str,
    input: Mapping[str, Any] | None = None,
    state: Mapping[str, Any] | None = None,
) -> bool:
    input = input if input is not None else {}
    state = state if state is not None else {}
    condition = condition.strip()

    if condition == "true":
        return True
    if condition == "false":
        return False

    or_index = find_top_level_operator(condition, "||")
    if or_index != -1:
        left = condition[:or_index].strip()
        right = condition[or_index + 2:].strip()
        return evaluate_condition_safe(left, input, state) or evaluate_condition_safe(right, input, state)

    and_index = find_top_level_operator(condition, "&&")
    if and_index != -1:
        left = condition[:and_index].strip()
        right = condition[and_index + 2:].strip()
        return evaluate_condition_safe(left, input, state) and evaluate_condition_safe(right, input, state)

    for op in COMPARISON_OPERATORS:
        op_index = find_top_level_operator(condition, op)
        if op_index != -1:
            left_value = evaluate_value(condition[:op_index], input, state)
            right_value = evaluate_value(condition[op_index + len(op):], input, state)
            return compare_values(left_value, right_value, op)

    if condition.startswith("!"):
        return not evaluate_condition_safe(condition[1:], input, state)

    if has_enclosing_parens(condition):
        return evaluate_condition_safe(condition[1:-1], input, state)

    return is_truthy(evaluate_value(condition, input, state))


def _scan(expr: str):
    """
    Yield (index, char) for characters outside string literals.

    Backslash-escaped characters and quoted spans are skipped.
    """
    in_string = False
    string_char = ""
    escape_next = False

    for i, char in enumerate(expr):
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if not in_string and char in ("'", '"'):
            in_string = True
            string_char = char
            continue
        if in_string and char == string_char:
            in_string = False
            string_char = ""
            continue
        if in_string:
            continue
        yield i, char


def find_top_level_operator(expr: str, op: str) -> int:
    """Index of the leftmost `op` outside parentheses and string literals, or -1."""
    depth = 0
    last_start = len(expr) - len(op)
    for i, char in _scan(expr):
        if i > last_start:
            break
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if depth == 0 and expr.startswith(op, i):
            return i
    return -1


def has_enclosing_parens(expr: str) -> bool:
    """True for "(A && B)", false for "(A) && (B)"."""
    expr = expr.strip()
    if not expr.startswith("(") or not expr.endswith(")"):
        return False

    depth = 0
    last = len(expr) - 1
    for i, char in _scan(expr):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return i == last
    return False


def evaluate_value(expr: str, input: Mapping[str, Any], state: Mapping[str, Any]) -> Any:
    """Evaluate an atomic value: literal or input./state. property path."""
    expr = expr.strip()

    if _STRING_LITERAL.fullmatch(expr):
        return _parse_string_literal(expr)

    if _NUMBER_LITERAL.fullmatch(expr):
        return float(expr)

    if expr == "true":
        return True
    if expr == "false":
        return False
    if expr == "null":
        return None

    if expr.startswith("input."):
        return get_nested_property(input, expr[len("input."):])
    if expr.startswith("state."):
        return get_nested_property(state, expr[len("state."):])

    raise ConditionEvaluationError(
        f'Unrecognized expression in condition: "{expr}". Valid expressions are: '
        'string literals, numbers, boolean literals, null, or property access like '
        '"input.foo" or "state.bar"'
    )


def _parse_string_literal(expr: str) -> str:
    if expr[0] == '"':
        encoded = expr
    else:
        inner = expr[1:-1].replace("\\'", "'").replace('\\"', '"')
        encoded = '"' + inner.replace("\\", "\\\\").replace('"', '\\"') + '"'
    try:
        return json.loads(encoded)
    except json.JSONDecodeError as e:
        raise ConditionEvaluationError(f'Invalid string literal: "{expr}". Error: {e}') from e


def get_nested_property(obj: Any, path: str) -> Any:
    current = obj
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)):
            if part == "length":
                current = len(current)
            elif part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                return None
        elif isinstance(current, str) and part == "length":
            current = len(current)
        else:
            return None
    return current


def _value_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


def _is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def strict_equals(left: Any, right: Any) -> bool:
    kind = _value_type(left)
    if kind != _value_type(right):
        return False
    if kind == "object":
        return left is right
    return left == right


def same_value(left: Any, right: Any) -> bool:
    kind = _value_type(left)
    if kind != _value_type(right):
        return False
    if kind == "object":
        return left is right
    if kind == "number":
        if _is_nan(left) or _is_nan(right):
            return _is_nan(left) and _is_nan(right)
        if left == 0 and right == 0:
            return math.copysign(1, left) == math.copysign(1, right)
    return left == right


def compare_values(left: Any, right: Any, op: str) -> bool:
    if op == "===":
        return strict_equals(left, right)
    if op == "!==":
        return not strict_equals(left, right)
    if op == "==":
        return same_value(left, right)
    if op == "!=":
        return not same_value(left, right)
    if op in _ORDERING:
        left_kind, right_kind = _value_type(left), _value_type(right)
        numeric = ("number", "boolean")
        if (left_kind in numeric and right_kind in numeric) or left_kind == right_kind == "string":
            return _ORDERING[op](left, right)
        return False
    raise ConditionEvaluationError(f"Unknown comparison operator: {op}")


def is_truthy(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return not (value == 0 or _is_nan(value))
    if isinstance(value, str):
        return value != ""
    return True


class _AttributeView:
    """Read-only attribute access over a mapping; missing keys read as None."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any]):
        self._data = data

    def __getattr__(self, name: str) -> Any:
        return _wrap(self._data.get(name))

    def __getitem__(self, key: str) -> Any:
        return _wrap(self._data.get(key))

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return True


def _wrap(value: Any) -> Any:
    return _AttributeView(value) if isinstance(value, Mapping) else value


@functools.lru_cache(maxsize=UNSAFE_CONDITION_CACHE_SIZE)
def _compile_condition(condition: str) -> Any:
    try:
        return compile(condition.strip(), "<condition>", "eval")
    except SyntaxError as e:
        raise ConditionEvaluationError(
            f"Failed to evaluate condition: {condition}. Error: {e}"
        ) from e


def evaluate_condition_unsafe(
    condition: str,
    input: Mapping[str, Any],
    state: Mapping[str, Any],
) -> bool:
    """Evaluate `condition` as a Python expression. Trusted definitions only."""
    program = _compile_condition(condition)

    try:
        result = eval(
            program,
            {"__builtins__": SAFE_BUILTINS},
            {"input": _wrap(dict(input or {})), "state": _wrap(dict(state or {}))},
        )
    except Exception as e:
        raise ConditionEvaluationError(
            f"Failed to evaluate condition: {condition}. Error: {e}"
        ) from e
    return bool(result)


__all__ = [
    "evaluate_condition",
    "evaluate_condition_safe",
    "evaluate_condition_unsafe",
    "find_top_level_operator",
    "has_enclosing_parens",
    "evaluate_value",
    "compare_values",
    "is_truthy",
]
