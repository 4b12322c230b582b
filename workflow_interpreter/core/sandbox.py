"""
Restricted execution surface for persisted step code and unsafe conditions.

This narrows what workflow-authored Python can reach (no imports, no file
access, no dunder traversal). It is not a security boundary: code only runs
when the runner is built with allow_unsafe_code_execution=True.
"""

from __future__ import annotations

import ast
import builtins

BLOCKED_BUILTINS = frozenset({
    "open", "eval", "exec", "compile", "__import__", "input", "breakpoint",
    "globals", "locals", "vars", "exit", "quit", "help", "memoryview",
})

BLOCKED_ATTRIBUTES = frozenset({
    "__builtins__", "__import__", "__class__", "__bases__", "__subclasses__",
    "__mro__", "__globals__", "__code__", "__getattribute__", "__dict__",
    "__module__", "__loader__", "__spec__", "__init_subclass__", "__closure__",
    "gi_frame", "cr_frame", "f_globals", "f_locals", "f_back",
})

SAFE_BUILTINS: dict[str, object] = {
    name: value for name, value in vars(builtins).items() if name not in BLOCKED_BUILTINS
}


def _bound_names(tree: ast.AST) -> set[str]:
    """Names the code assigns, deletes or takes as parameters."""
    bound: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and isinstance(node.ctx, (ast.Store, ast.Del)):
            bound.add(node.id)
        elif isinstance(node, ast.arg):
            bound.add(node.arg)
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            bound.add(node.name)
    return bound


def find_restricted_constructs(tree: ast.AST) -> list[str]:
    """Return a message per import, blocked attribute access or read of an unbound blocked builtin."""
    problems: list[str] = []
    bound = _bound_names(tree)
    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            problems.append(f"line {node.lineno}: imports are not allowed in step code")
        elif isinstance(node, ast.Attribute) and node.attr in BLOCKED_ATTRIBUTES:
            problems.append(f"line {node.lineno}: access to '{node.attr}' is not allowed")
        elif (
            isinstance(node, ast.Name)
            and isinstance(node.ctx, ast.Load)
            and node.id in BLOCKED_BUILTINS
            and node.id not in bound
        ):
            problems.append(f"line {node.lineno}: '{node.id}' is not available in step code")
    return problems
