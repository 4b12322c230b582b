from __future__ import annotations

import json
import textwrap

import pytest

from conftest import FakeTools, text_message
from workflow_interpreter.core.context import create_context, make_step_fn
from workflow_interpreter.core.errors import AgentConfigurationError, AgentExecutionError
from workflow_interpreter.core.types import WorkflowFile
from workflow_interpreter.workflows.dynamic_workflow import (
    DynamicWorkflowRunnerOptions,
    create_dynamic_workflow,
)
from workflow_interpreter.workflows.generator import (
    BUILT_IN_WORKFLOWS,
    generate_workflow_code,
    generate_workflow_definition,
    validate_workflow_code_syntax,
    validate_workflow_definition,
)


def _workflow(code: str | None = None) -> dict:
    step = {"id": "a", "task": "Do A"}
    if code is not None:
        step["code"] = code
    return {"workflows": {"main": {"task": "t", "steps": [step]}}}


def _reply(workflow: dict) -> list[dict]:
    return [text_message(f"```json\n{json.dumps(workflow)}\n```")]


@pytest.mark.asyncio
async def test_generate_definition():
    tools = FakeTools([_reply(_workflow())])
    context = create_context(tools=tools, step=make_step_fn())

    result = await generate_workflow_definition(
        {"prompt": "Do A", "availableTools": [{"name": "readFile", "description": "Read a file"}]},
        context,
    )

    assert result == _workflow()
    system_prompt = tools.generate_calls[0]["messages"][0]["content"]
    assert "expert workflow architect" in system_prompt
    assert "- readFile: Read a file" in system_prompt
    assert tools.generate_calls[0]["messages"][1] == {"role": "user", "content": "Do A"}


@pytest.mark.asyncio
async def test_generate_definition_failure():
    tools = FakeTools([RuntimeError("model unavailable")])

    with pytest.raises(AgentExecutionError, match="Failed to generate workflow definition"):
        await generate_workflow_definition({"prompt": "Do A"}, create_context(tools=tools))


@pytest.mark.asyncio
async def test_generators_require_agent_tools():
    with pytest.raises(AgentConfigurationError, match="requires agent execution"):
        await generate_workflow_definition({"prompt": "Do A"}, create_context())


@pytest.mark.asyncio
async def test_generate_code_retries_on_syntax_errors():
    tools = FakeTools([
        _reply(_workflow("return (")),
        _reply(_workflow("return 1")),
    ])

    result = await generate_workflow_code(
        {"workflow": _workflow(), "skipReview": True},
        create_context(tools=tools),
    )

    assert result == _workflow("return 1")
    assert len(tools.generate_calls) == 2
    retry_prompt = tools.generate_calls[1]["messages"][1]["content"]
    assert "main.a: SyntaxError" in retry_prompt
    assert "expert Python developer" in tools.generate_calls[0]["messages"][0]["content"]


@pytest.mark.asyncio
async def test_generate_code_gives_up_after_three_attempts():
    tools = FakeTools([_reply(_workflow("return (")) for _ in range(3)])

    with pytest.raises(AgentExecutionError, match="after 3 attempts"):
        await generate_workflow_code({"workflow": _workflow(), "skipReview": True}, create_context(tools=tools))


@pytest.mark.asyncio
async def test_generate_code_review_pass():
    tools = FakeTools([
        _reply(_workflow("return 1")),
        _reply(_workflow("return 2")),
    ])

    result = await generate_workflow_code({"workflow": _workflow()}, create_context(tools=tools))

    assert result == _workflow("return 2")
    assert "code reviewer" in tools.generate_calls[1]["messages"][0]["content"]


@pytest.mark.asyncio
async def test_invalid_review_keeps_generated_code():
    tools = FakeTools([
        _reply(_workflow("return 1")),
        _reply(_workflow("import os")),
    ])

    result = await generate_workflow_code({"workflow": _workflow()}, create_context(tools=tools))

    assert result == _workflow("return 1")


def test_validate_workflow_definition():
    ok = WorkflowFile.model_validate(_workflow())
    assert validate_workflow_definition(ok) == {"valid": True, "errors": []}

    bad = WorkflowFile.model_validate({
        "workflows": {
            "helper": {
                "task": "t",
                "steps": [
                    {"id": "a", "task": "A"},
                    {"id": "loop", "while": {"condition": "true", "steps": [{"id": "a", "task": "again"}]}},
                ],
            },
        },
    })
    result = validate_workflow_definition(bad)
    assert result["valid"] is False
    assert result["errors"] == [
        "Workflow file must define a 'main' workflow",
        "Workflow 'helper' has duplicate step id 'a'",
    ]


def test_validate_workflow_code_syntax():
    workflow_file = WorkflowFile.model_validate({
        "workflows": {
            "main": {
                "task": "t",
                "steps": [
                    {"id": "good", "task": "Good", "code": "return 1"},
                    {"id": "no_code", "task": "Agent step"},
                    {
                        "id": "check",
                        "if": {
                            "condition": "true",
                            "thenBranch": [{"id": "bad", "task": "Bad", "code": "return )"}],
                        },
                    },
                ],
            },
        },
    })

    result = validate_workflow_code_syntax(workflow_file)

    assert result["valid"] is False
    assert len(result["errors"]) == 1
    assert result["errors"][0].startswith("main.bad: SyntaxError")


@pytest.mark.asyncio
async def test_built_ins_are_reachable_from_workflows():
    options = DynamicWorkflowRunnerOptions(
        allow_unsafe_code_execution=True,
        built_in_workflows=BUILT_IN_WORKFLOWS,
    )
    runner = create_dynamic_workflow(textwrap.dedent("""
        workflows:
          main:
            task: Generate a workflow
            steps:
              - id: generated
                task: Generate
                code: |
                  return await ctx.run_workflow("generateWorkflowDefinition", {"prompt": "Do A"})
    """), options)
    tools = FakeTools([_reply(_workflow())])

    result = await runner("main", {}, create_context(tools=tools))

    assert result["generated"] == _workflow()
