"""
Agent-Delegated Step Execution

Steps without runnable code are handed to the agent loop with:
- the tool catalog filtered by the step's `tools` list (tool groups
  expanded, "all" meaning the whole catalog, no list meaning everything)
- a virtual `runWorkflow` tool that runs a sub-workflow in-process
- an `invoke_tool` guard that reports disallowed tools back to the model
  as tool errors instead of failing the step
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any, Awaitable, Callable

from workflow_interpreter.activities.agent_loop import run_agent
from workflow_interpreter.core.context import ToolInfo, WorkflowContext, has_agent_tools
from workflow_interpreter.core.errors import AgentConfigurationError, AgentExecutionError
from workflow_interpreter.core.json_markdown import parse_json_from_markdown
from workflow_interpreter.core.types import TaskStep

RUN_WORKFLOW_TOOL = "runWorkflow"

TOOL_GROUPS: dict[str, list[str]] = {
    "readonly": ["readFile", "readBinaryFile", "listFiles", "searchFiles"],
    "readwrite": [
        "readFile", "readBinaryFile", "listFiles", "searchFiles",
        "writeToFile", "replaceInFile", "removeFile", "renameFile",
    ],
    "internet": ["fetchUrl", "search"],
}

DEFAULT_STEP_SYSTEM_PROMPT = "\n".join([
    "You are an AI assistant executing a workflow step.",
    "",
    "# Instructions",
    "- Execute the task defined in the user message.",
    "- Use the provided tools to accomplish the task.",
    "- Return the step output as valid JSON in markdown.",
    "- Do not ask for user input. If information is missing, make a reasonable assumption or fail.",
])


async def _virtual_handler(_input: Any) -> dict[str, Any]:
    return {"success": False, "message": {"type": "error-text", "value": "runWorkflow is virtual."}}


RUN_WORKFLOW_TOOL_INFO = ToolInfo(
    name=RUN_WORKFLOW_TOOL,
    description="Run a named sub-workflow defined in the current workflow file.",
    parameters={
        "type": "object",
        "properties": {
            "workflowId": {"type": "string", "description": "Sub-workflow id to run"},
            "input": {"type": ["object", "null"], "description": "Optional input object for the sub-workflow"},
        },
        "required": ["workflowId"],
    },
    handler=_virtual_handler,
)


def select_step_tools(tool_names: list[str] | None, catalog: list[ToolInfo]) -> list[ToolInfo]:
    """Catalog entries a step may use, plus the virtual runWorkflow tool when permitted."""
    # the virtual runWorkflow tool always replaces a host entry of the same name
    catalog = [t for t in catalog if t.name != RUN_WORKFLOW_TOOL]
    if tool_names is None or "all" in tool_names:
        selected = list(catalog)
    else:
        expanded: set[str] = set()
        for name in tool_names:
            expanded.update(TOOL_GROUPS.get(name, [name]))
        selected = [t for t in catalog if t.name in expanded]

    if tool_names is None or "all" in tool_names or RUN_WORKFLOW_TOOL in tool_names:
        selected.append(RUN_WORKFLOW_TOOL_INFO)
    return selected


def _tool_error(message: str) -> dict[str, Any]:
    return {"success": False, "message": {"type": "error-text", "value": message}}


class StepAgentTools:
    """Host tools as seen by one agent step: allow-listed and with runWorkflow intercepted."""

    def __init__(
        self,
        host_tools: Any,
        allowed: set[str],
        run_workflow: Callable[..., Awaitable[Any]],
    ) -> None:
        self._host = host_tools
        self._allowed = allowed
        self._run_workflow = run_workflow

    async def generate_text(self, **kwargs: Any) -> Any:
        return await self._host.generate_text(**kwargs)

    async def task_event(self, event: Any) -> Any:
        return await self._host.task_event(event)

    async def invoke_tool(self, *, tool_name: str, input: Any = None) -> dict[str, Any]:
        if tool_name not in self._allowed:
            return _tool_error(f"Tool '{tool_name}' is not allowed in this step.")

        if tool_name != RUN_WORKFLOW_TOOL:
            return await self._host.invoke_tool(tool_name=tool_name, input=input)

        args = input if isinstance(input, dict) else {}
        sub_workflow_id = args.get("workflowId")
        sub_input = args.get("input")
        if not isinstance(sub_workflow_id, str):
            return _tool_error("runWorkflow.workflowId must be a string.")
        try:
            output = await self._run_workflow(sub_workflow_id, sub_input if isinstance(sub_input, dict) else None)
        except Exception as e:
            return _tool_error(str(e))
        return {"success": True, "message": {"type": "json", "value": output}}


def build_step_user_message(
    workflow_id: str,
    step: TaskStep,
    input: dict[str, Any],
    state: dict[str, Any],
) -> str:
    lines = [
        f"Workflow: {workflow_id}",
        f"Step: {step.id}",
        f"Task: {step.task}",
        f"Expected outcome: {step.expected_outcome}" if step.expected_outcome else "",
        f"Workflow Input: {json.dumps(input, default=str)}",
        f"Current State: {json.dumps(state, default=str)}",
    ]
    return "\n".join(line for line in lines if line)


async def execute_step_with_agent(
    step: TaskStep,
    workflow_id: str,
    input: dict[str, Any],
    state: dict[str, Any],
    context: WorkflowContext,
    options: Any,
    run_workflow: Callable[..., Awaitable[Any]],
) -> Any:
    if not has_agent_tools(context.tools):
        raise AgentConfigurationError(
            f"Step '{step.id}' in workflow '{workflow_id}' requires agent execution, "
            "but the generate_text/invoke_tool/task_event tools are not available.",
            workflow_id=workflow_id,
            step_id=step.id,
        )
    if options.tool_info is None:
        raise AgentConfigurationError(
            f"Step '{step.id}' in workflow '{workflow_id}' requires agent execution, "
            "but no tool_info was provided to the workflow runner.",
            workflow_id=workflow_id,
            step_id=step.id,
        )

    step_tools = select_step_tools(step.tools, list(options.tool_info))
    allowed = {t.name for t in step_tools}
    context.logger.debug(f"[Agent] Available tools for step '{step.id}': {', '.join(sorted(allowed))}")

    if options.step_system_prompt is not None:
        system_prompt = options.step_system_prompt(
            workflow_id=workflow_id, step=step, input=input, state=state
        )
    else:
        system_prompt = DEFAULT_STEP_SYSTEM_PROMPT

    agent_context = dataclasses.replace(
        context,
        tools=StepAgentTools(context.tools, allowed, run_workflow),
    )
    result = await run_agent(
        tools=step_tools,
        system_prompt=system_prompt,
        user_messages=[{"role": "user", "content": build_step_user_message(workflow_id, step, input, state)}],
        context=agent_context,
        max_tool_round_trips=options.max_tool_round_trips,
        model=options.model,
    )

    if result.type == "Exit":
        if result.object is not None:
            return result.object
        ok, data = parse_json_from_markdown(result.message)
        if ok:
            return data
        if options.wrap_agent_result_in_object:
            context.logger.warning(
                f"[Agent] Step '{step.id}' returned plain text instead of JSON. Wrapping in {{result: ...}}"
            )
            return {"result": result.message}
        return result.message

    if result.type == "Error":
        raise AgentExecutionError(
            f"Agent step '{step.id}' in workflow '{workflow_id}' failed: {result.error or 'Unknown error'}",
            workflow_id=workflow_id,
            step_id=step.id,
        )

    raise AgentExecutionError(
        f"Agent step '{step.id}' in workflow '{workflow_id}' exceeded usage limits (tokens or rounds)",
        workflow_id=workflow_id,
        step_id=step.id,
    )
