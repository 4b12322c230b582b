from __future__ import annotations

import pytest
from pydantic import BaseModel

from conftest import FakeTools, text_message, tool_call_message
from workflow_interpreter.activities.agent_loop import extract_text, extract_tool_calls, run_agent
from workflow_interpreter.core.context import ToolInfo, create_context


class Answer(BaseModel):
    name: str
    score: float


class RaisingTools(FakeTools):
    async def invoke_tool(self, *, tool_name, input=None):
        raise OSError("disk on fire")


@pytest.mark.asyncio
async def test_exit_without_tool_calls():
    tools = FakeTools([[text_message("hello"), text_message("world")]])

    result = await run_agent(
        tools=[],
        system_prompt="sys",
        user_messages=[{"role": "user", "content": "hi"}],
        context=create_context(tools=tools),
    )

    assert result.type == "Exit"
    assert result.message == "hello\nworld"
    assert result.object is None
    assert tools.generate_calls[0]["messages"] == [
        {"role": "system", "content": "sys"},
        {"role": "user", "content": "hi"},
    ]


@pytest.mark.asyncio
async def test_single_message_response_is_accepted():
    tools = FakeTools([{"role": "assistant", "content": "plain string content"}])

    result = await run_agent(
        tools=[],
        system_prompt="sys",
        user_messages=[],
        context=create_context(tools=tools),
    )

    assert result.message == "plain string content"


@pytest.mark.asyncio
async def test_output_model_retries_until_valid():
    tools = FakeTools([
        [text_message("not json at all")],
        [text_message('{"name": "x"}')],
        [text_message('```json\n{"name": "x", "score": 1}\n```')],
    ])

    result = await run_agent(
        tools=[],
        system_prompt="sys",
        user_messages=[{"role": "user", "content": "give me an answer"}],
        context=create_context(tools=tools),
        output_model=Answer,
    )

    assert result.type == "Exit"
    assert result.object == {"name": "x", "score": 1.0}
    assert len(tools.generate_calls) == 3
    feedback = tools.generate_calls[1]["messages"][-1]
    assert feedback["role"] == "user"
    assert "did not contain valid JSON" in feedback["content"]
    assert "did not match the expected schema" in tools.generate_calls[2]["messages"][-1]["content"]


@pytest.mark.asyncio
async def test_tool_exceptions_become_error_results():
    tools = RaisingTools([
        [tool_call_message("readFile", {"path": "a"})],
        [text_message("done")],
    ])

    result = await run_agent(
        tools=[ToolInfo(name="readFile", description="Read")],
        system_prompt="sys",
        user_messages=[],
        context=create_context(tools=tools),
    )

    assert result.type == "Exit"
    tool_message = tools.generate_calls[1]["messages"][-1]
    assert tool_message["content"][0]["output"] == {"type": "error-text", "value": "disk on fire"}


@pytest.mark.asyncio
async def test_task_events_and_tool_specs():
    tools = FakeTools([
        [tool_call_message("readFile", {"path": "a"})],
        [text_message("done")],
    ])
    catalog = [ToolInfo(name="readFile", description="Read", parameters={"type": "object"})]

    await run_agent(
        tools=catalog,
        system_prompt="sys",
        user_messages=[],
        context=create_context(tools=tools),
        model="m",
    )

    assert tools.generate_calls[0]["tools"] == [
        {"name": "readFile", "description": "Read", "parameters": {"type": "object"}},
    ]
    assert [e["kind"] for e in tools.events] == ["StartTask", "ToolUse", "EndTask"]
    assert tools.events[1]["tool"] == "readFile"
    assert tools.events[-1]["exitReason"] == "Exit"


@pytest.mark.asyncio
async def test_round_budget():
    tools = FakeTools([[tool_call_message("readFile", {})] for _ in range(5)])

    result = await run_agent(
        tools=[],
        system_prompt="sys",
        user_messages=[],
        context=create_context(tools=tools),
        max_tool_round_trips=3,
    )

    assert result.type == "UsageExceeded"
    assert len(tools.generate_calls) == 3


def test_extract_helpers():
    messages = [
        {"role": "user", "content": "ignored"},
        {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "thinking"},
                {"type": "tool-call", "tool_call_id": "1", "tool_name": "a", "input": {}},
            ],
        },
    ]
    assert extract_text(messages) == "thinking"
    assert [c["tool_name"] for c in extract_tool_calls(messages)] == ["a"]


@pytest.mark.asyncio
async def test_zero_round_budget_is_respected():
    tools = FakeTools([[text_message("never asked")]])

    result = await run_agent(
        tools=[],
        system_prompt="sys",
        user_messages=[],
        context=create_context(tools=tools),
        max_tool_round_trips=0,
    )

    assert result.type == "UsageExceeded"
    assert tools.generate_calls == []
