from __future__ import annotations

from typing import Any

import pytest

from workflow_interpreter.core.context import ToolInfo, create_context
from workflow_interpreter.workflows.dynamic_workflow import DynamicWorkflowRunnerOptions


def text_message(text: str) -> dict[str, Any]:
    return {"role": "assistant", "content": [{"type": "text", "text": text}]}


def tool_call_message(tool_name: str, input: Any, call_id: str = "call-1") -> dict[str, Any]:
    return {
        "role": "assistant",
        "content": [
            {"type": "tool-call", "tool_call_id": call_id, "tool_name": tool_name, "input": input},
        ],
    }


class FakeTools:
    """Scripted stand-in for the host LLM/tool surface."""

    def __init__(self, responses: list[Any] | None = None, default_text: str = "{}"):
        self.responses = list(responses or [])
        self.default_text = default_text
        self.generate_calls: list[dict[str, Any]] = []
        self.tool_calls: list[dict[str, Any]] = []
        self.events: list[dict[str, Any]] = []

    async def generate_text(self, *, messages, tools=None, model=None):
        self.generate_calls.append({"messages": messages, "tools": tools, "model": model})
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return [text_message(self.default_text)]

    async def invoke_tool(self, *, tool_name, input=None):
        self.tool_calls.append({"tool_name": tool_name, "input": input})
        return {"success": True, "message": {"type": "text", "value": f"{tool_name} done"}}

    async def task_event(self, event):
        self.events.append(event)


def tool_catalog() -> list[ToolInfo]:
    names = ["readFile", "listFiles", "writeToFile", "fetchUrl", "search", "executeCommand"]
    return [ToolInfo(name=n, description=f"{n} tool") for n in names]


@pytest.fixture
def fake_tools():
    return FakeTools()


@pytest.fixture
def agent_context(fake_tools):
    return create_context(tools=fake_tools)


@pytest.fixture
def code_options():
    return DynamicWorkflowRunnerOptions(allow_unsafe_code_execution=True)


@pytest.fixture
def agent_options():
    return DynamicWorkflowRunnerOptions(tool_info=tool_catalog())
