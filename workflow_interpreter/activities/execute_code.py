"""
Persisted Code Step Execution

A step's `code` is the body of `async def step(ctx)`, compiled once per
runner and cached by "<workflow_id>.<step_id>". The body runs with a
narrowed builtins table and `json`, `re`, `math`, `asyncio` pre-bound, and
receives a StepRuntimeContext as `ctx`.
"""

from __future__ import annotations

import ast
import asyncio
import json
import logging
import math
import re
import textwrap
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from workflow_interpreter.core.context import StepFn, ToolInfo
from workflow_interpreter.core.errors import StepCompilationError
from workflow_interpreter.core.sandbox import SAFE_BUILTINS, find_restricted_constructs

logger = logging.getLogger(__name__)

STEP_FUNCTION_NAME = "__workflow_step__"
CODE_PREVIEW_LENGTH = 200

RunWorkflowFn = Callable[..., Awaitable[Any]]
CompiledStep = Callable[["StepRuntimeContext"], Awaitable[Any]]


@dataclass
class StepRuntimeContext:
    """The `ctx` object handed to persisted step code."""
    workflow_id: str
    step_id: str
    input: dict[str, Any]
    state: dict[str, Any]
    tools: Any
    logger: logging.Logger
    step: StepFn
    run_workflow: RunWorkflowFn
    tool_info: list[ToolInfo] | None = None
    agent_tools: dict[str, Callable[[Any], Awaitable[Any]]] = field(default_factory=dict)


def _wrap_source(code: str) -> str:
    body = textwrap.indent(textwrap.dedent(code).strip("\n"), "    ")
    # `pass` keeps comment-only bodies valid
    return f"async def {STEP_FUNCTION_NAME}(ctx):\n{body}\n    pass\n"


def _preview(code: str) -> str:
    if len(code) <= CODE_PREVIEW_LENGTH:
        return code
    return code[:CODE_PREVIEW_LENGTH] + "..."


def check_step_code(code: str) -> list[str]:
    """Syntax and restriction problems for a code body (empty when it compiles)."""
    try:
        tree = ast.parse(_wrap_source(code), filename="<workflow-step>")
    except SyntaxError as e:
        # the wrapper adds one line above the body
        line = (e.lineno or 1) - 1
        return [f"SyntaxError at line {max(line, 1)}: {e.msg}"]
    return find_restricted_constructs(tree)


def compile_step_code(workflow_id: str, step_id: str, code: str) -> CompiledStep:
    problems = check_step_code(code)
    if problems:
        raise StepCompilationError(
            f"Failed to compile code for step '{step_id}' in workflow '{workflow_id}': "
            f"{'; '.join(problems)}\nCode preview:\n{_preview(code)}",
            workflow_id=workflow_id,
            step_id=step_id,
        )

    namespace: dict[str, Any] = {
        "__builtins__": SAFE_BUILTINS,
        "json": json,
        "re": re,
        "math": math,
        "asyncio": asyncio,
    }
    compiled = compile(_wrap_source(code), f"<workflow-step {workflow_id}.{step_id}>", "exec")
    exec(compiled, namespace)
    return namespace[STEP_FUNCTION_NAME]


class StepCodeCache:
    """Compiled step functions owned by one runner, keyed "<workflow_id>.<step_id>"."""

    def __init__(self) -> None:
        self._compiled: dict[str, CompiledStep] = {}

    def __len__(self) -> int:
        return len(self._compiled)

    def __contains__(self, key: str) -> bool:
        return key in self._compiled

    def get_or_compile(self, workflow_id: str, step_id: str, code: str) -> CompiledStep:
        key = f"{workflow_id}.{step_id}"
        fn = self._compiled.get(key)
        if fn is None:
            logger.debug(f"[Step] Compiling code for step '{key}'")
            fn = compile_step_code(workflow_id, step_id, code)
            self._compiled[key] = fn
        return fn


async def execute_step_code(
    code: str,
    runtime: StepRuntimeContext,
    cache: StepCodeCache,
) -> Any:
    fn = cache.get_or_compile(runtime.workflow_id, runtime.step_id, code)
    runtime.logger.debug(
        f"[Step] Executing persisted code for step '{runtime.step_id}' in workflow '{runtime.workflow_id}'"
    )
    return await fn(runtime)


def build_agent_tools(tools: Any, tool_info: list[ToolInfo] | None) -> dict[str, Callable[[Any], Awaitable[Any]]]:
    """Per-tool async callables that route through the host's `invoke_tool`."""
    invoke_tool = getattr(tools, "invoke_tool", None)
    if not callable(invoke_tool) or not tool_info:
        return {}

    def _bind(tool_name: str) -> Callable[[Any], Awaitable[Any]]:
        async def call(tool_input: Any = None) -> Any:
            return await invoke_tool(tool_name=tool_name, input=tool_input)
        return call

    return {info.name: _bind(info.name) for info in tool_info}
