"""
Agent Round-Trip Loop

Drives a tool-using LLM conversation through the host's `generate_text`,
`invoke_tool` and `task_event` callables until the model answers without
requesting tools, the round budget runs out, or the backend fails.

Message shapes:
  {"role": "system" | "user" | "assistant" | "tool", "content": str | list[part]}
  tool call part:   {"type": "tool-call", "tool_call_id", "tool_name", "input"}
  tool result part: {"type": "tool-result", "tool_call_id", "tool_name", "output"}
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from workflow_interpreter.core.context import ToolInfo, WorkflowContext
from workflow_interpreter.core.json_markdown import parse_json_from_markdown
from workflow_interpreter.core.types import AgentExitReason

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ROUND_TRIPS = 50


def _as_message_list(response: Any) -> list[dict[str, Any]]:
    if response is None:
        return []
    if isinstance(response, dict):
        return [response]
    return list(response)


def extract_tool_calls(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []
    for message in messages:
        content = message.get("content")
        if message.get("role") != "assistant" or not isinstance(content, list):
            continue
        for part in content:
            if isinstance(part, dict) and part.get("type") == "tool-call":
                calls.append(part)
    return calls


def extract_text(messages: list[dict[str, Any]]) -> str:
    chunks: list[str] = []
    for message in messages:
        if message.get("role") != "assistant":
            continue
        content = message.get("content")
        if isinstance(content, str):
            chunks.append(content)
        elif isinstance(content, list):
            for part in content:
                if isinstance(part, dict) and part.get("type") == "text":
                    chunks.append(str(part.get("text", "")))
    return "\n".join(chunk for chunk in chunks if chunk)


def _validate_output(output_model: type[BaseModel], text: str) -> tuple[Any, str | None]:
    """Return (dumped object, None) or (None, problem description)."""
    ok, data = parse_json_from_markdown(text)
    if not ok:
        return None, "The response did not contain valid JSON."
    try:
        validated = output_model.model_validate(data)
    except ValidationError as e:
        return None, f"The JSON did not match the expected schema:\n{e}"
    return validated.model_dump(by_alias=True, exclude_none=True), None


async def _invoke(context: WorkflowContext, call: dict[str, Any]) -> dict[str, Any]:
    tool_name = call.get("tool_name")
    try:
        response = await context.tools.invoke_tool(tool_name=tool_name, input=call.get("input"))
    except Exception as e:
        logger.warning(f"[Agent] Tool '{tool_name}' raised: {e}")
        return {"type": "error-text", "value": str(e)}

    if isinstance(response, dict) and "message" in response:
        return response["message"]
    return {"type": "json", "value": response}


async def run_agent(
    *,
    tools: list[ToolInfo],
    system_prompt: str,
    user_messages: list[dict[str, Any]],
    context: WorkflowContext,
    max_tool_round_trips: int | None = None,
    model: str | None = None,
    output_model: type[BaseModel] | None = None,
) -> AgentExitReason:
    max_rounds = DEFAULT_MAX_TOOL_ROUND_TRIPS if max_tool_round_trips is None else max_tool_round_trips
    messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}, *user_messages]
    tool_specs = [t.to_spec() for t in tools]

    await context.tools.task_event({"kind": "StartTask", "systemPrompt": system_prompt})

    for round_number in range(1, max_rounds + 1):
        try:
            response = await context.tools.generate_text(
                messages=list(messages),
                tools=tool_specs,
                model=model,
            )
        except Exception as e:
            context.logger.error(f"[Agent] generate_text failed in round {round_number}: {e}")
            await context.tools.task_event({"kind": "EndTask", "exitReason": "Error"})
            return AgentExitReason(type="Error", error=str(e))

        response_messages = _as_message_list(response)
        messages.extend(response_messages)
        tool_calls = extract_tool_calls(response_messages)

        if not tool_calls:
            text = extract_text(response_messages)
            if output_model is None:
                await context.tools.task_event({"kind": "EndTask", "exitReason": "Exit"})
                return AgentExitReason(type="Exit", message=text)

            obj, problem = _validate_output(output_model, text)
            if problem is None:
                await context.tools.task_event({"kind": "EndTask", "exitReason": "Exit"})
                return AgentExitReason(type="Exit", message=text, object=obj)

            context.logger.debug(f"[Agent] Output rejected in round {round_number}: {problem}")
            messages.append({
                "role": "user",
                "content": f"{problem}\nRespond again with only the corrected JSON.",
            })
            continue

        results: list[dict[str, Any]] = []
        for call in tool_calls:
            await context.tools.task_event({
                "kind": "ToolUse",
                "tool": call.get("tool_name"),
                "input": call.get("input"),
            })
            output = await _invoke(context, call)
            context.logger.debug(
                f"[Agent] Tool '{call.get('tool_name')}' returned: "
                f"{json.dumps(output, default=str)[:200]}"
            )
            results.append({
                "type": "tool-result",
                "tool_call_id": call.get("tool_call_id"),
                "tool_name": call.get("tool_name"),
                "output": output,
            })
        messages.append({"role": "tool", "content": results})

    context.logger.warning(f"[Agent] Exceeded {max_rounds} tool round trips")
    await context.tools.task_event({"kind": "EndTask", "exitReason": "UsageExceeded"})
    return AgentExitReason(type="UsageExceeded")
