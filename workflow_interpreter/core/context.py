"""
Host Execution Context

The interpreter never talks to LLMs or tool handlers directly: the host
supplies a WorkflowContext whose `tools` object exposes async callables
(`generate_text`, `invoke_tool`, `task_event`, ...), a logger for execution
logs and a `step` wrapper used to checkpoint/retry units of work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

WORKFLOW_LOGGER_NAME = "workflow_interpreter.workflow"


class StepFn(Protocol):
    def __call__(
        self,
        name: str,
        fn: Callable[[], Awaitable[Any]],
        retry: int | None = None,
    ) -> Awaitable[Any]: ...


ToolHandler = Callable[[Any], Awaitable[dict[str, Any]]]


@dataclass
class ToolInfo:
    """One entry of the tool catalog offered to agent-executed steps."""
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    handler: ToolHandler | None = None

    def to_spec(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters}


async def _run_step(name: str, fn: Callable[[], Awaitable[Any]], retry: int | None = None) -> Any:
    return await fn()


@dataclass
class WorkflowContext:
    tools: Any = None
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(WORKFLOW_LOGGER_NAME))
    step: StepFn = _run_step


def make_step_fn() -> StepFn:
    """
    Build a memoizing step function.

    Nested step names form a path key ("outer>inner"); a completed result is
    returned again for the same key without re-running. A failing function is
    retried `retry` extra times (default 1) before the last error propagates.
    """
    results: dict[str, Any] = {}
    call_stack: list[str] = []

    async def step(name: str, fn: Callable[[], Awaitable[Any]], retry: int | None = None) -> Any:
        call_stack.append(name)
        key = ">".join(call_stack)
        try:
            if key in results:
                return results[key]

            max_retry = 1 if retry is None else retry
            last_error: Exception | None = None
            for _ in range(max_retry + 1):
                try:
                    result = await fn()
                    results[key] = result
                    return result
                except Exception as e:
                    last_error = e
            raise last_error
        finally:
            call_stack.pop()

    return step


def create_context(
    tools: Any = None,
    step: StepFn | None = None,
    logger: logging.Logger | None = None,
) -> WorkflowContext:
    return WorkflowContext(
        tools=tools,
        logger=logger or logging.getLogger(WORKFLOW_LOGGER_NAME),
        step=step or _run_step,
    )


def has_agent_tools(tools: Any) -> bool:
    """True when `tools` exposes the LLM surface agent steps need."""
    return all(
        callable(getattr(tools, name, None))
        for name in ("generate_text", "invoke_tool", "task_event")
    )
