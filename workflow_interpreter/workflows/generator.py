"""
Workflow Generation Built-ins

Two agent-backed workflows that can be registered as `built_in_workflows`:

- generateWorkflowDefinition: prompt -> workflow file (steps without code)
- generateWorkflowCode: workflow file -> same file with each task step's
  `code` filled in, syntax-checked and optionally reviewed
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator

from workflow_interpreter.activities.agent_loop import run_agent
from workflow_interpreter.activities.execute_code import check_step_code
from workflow_interpreter.core.context import WorkflowContext, has_agent_tools
from workflow_interpreter.core.errors import AgentConfigurationError, AgentExecutionError
from workflow_interpreter.core.types import TaskStep, WorkflowFile, child_step_lists

logger = logging.getLogger(__name__)

MAX_CODE_GENERATION_ATTEMPTS = 3

WORKFLOW_DEFINITION_SYSTEM_PROMPT = """You are an expert workflow architect.
Your task is to create a JSON workflow definition based on the user's request.

The workflow definition must follow this structure:
{
  "workflows": {
    "main": {
      "task": "Description of the workflow",
      "inputs": [
        {"id": "inputName", "description": "Description", "default": "optionalDefault"}
      ],
      "steps": [
        {
          "id": "stepId",
          "task": "Description of the step",
          "tools": ["toolName1", "toolName2"],
          "output": "outputVariableName",
          "expected_outcome": "What the step should produce, e.g. a JSON object with a 'files' list"
        }
      ],
      "output": "outputVariableName"
    }
  }
}

Control flow steps are also available:
- {"id": "loop", "while": {"condition": "state.count < 3", "steps": [...]}}
- {"id": "check", "if": {"condition": "state.ok === true", "thenBranch": [...], "elseBranch": [...]}}
- {"id": "guard", "try": {"trySteps": [...], "catchSteps": [...]}}
- {"break": true} and {"continue": true}, only inside a while loop

Conditions may only use input.<path> and state.<path> references, string, number,
boolean and null literals, comparisons (===, !==, ==, !=, >, <, >=, <=), &&, || and !.

Constraints:
- The entry point workflow must be named "main".
- Break down complex tasks into logical steps.
- Define clear inputs and outputs.
- Use expected_outcome to describe the shape of each step's result so later steps can rely on it.
- Step ids must be unique within a workflow.

Example:
User: "Research a topic and summarize it."
Output:
```json
{
  "workflows": {
    "main": {
      "task": "Research a topic and provide a summary",
      "inputs": [{"id": "topic", "description": "The topic to research"}],
      "steps": [
        {"id": "search", "task": "Search for information about the topic", "tools": ["internet"], "output": "searchResults"},
        {"id": "summarize", "task": "Summarize the search results", "output": "summary"}
      ],
      "output": "summary"
    }
  }
}
```
"""

WORKFLOW_CODE_SYSTEM_PROMPT = """You are an expert Python developer.
Your task is to implement the Python code for the steps in the provided workflow definition.

You will receive a JSON workflow definition. Fill in the "code" field of every task step
with valid Python code. Leave control flow steps (while, if, try, break, continue) as they are.

The code is the body of an async function:
async def step(ctx):
    # your code here

The `ctx` object provides:
- ctx.input: dict of workflow inputs
- ctx.state: dict shared between steps, holding earlier step outputs
- ctx.tools: the host tools; call tools with `await ctx.tools.invoke_tool(tool_name="name", input={...})`
  and LLMs with `await ctx.tools.generate_text(messages=[...])`
- ctx.agent_tools: dict of tool name -> async callable taking the tool input
- ctx.run_workflow: `await ctx.run_workflow("workflowId", {...})` runs another workflow from the file
- ctx.logger: a logging.Logger

Guidelines:
- Use `await` for asynchronous operations.
- Return the output value of the step.
- Access inputs via ctx.input["inputName"] and earlier outputs via ctx.state["outputName"].
- `json`, `re`, `math` and `asyncio` are available; imports are not allowed.

Example code for a step:
```python
results = await ctx.tools.invoke_tool(tool_name="search", input={"query": ctx.input["topic"]})
return results
```

Example code invoking a sub-workflow:
```python
reviews = []
for pr in ctx.state["prs"]:
    reviews.append(await ctx.run_workflow("reviewPR", {"prId": pr["id"]}))
return reviews
```

Return the complete workflow JSON with the "code" fields populated.
"""

WORKFLOW_REVIEW_SYSTEM_PROMPT = """You are an expert Python code reviewer.
You will receive a JSON workflow definition whose task steps contain Python code.

Review every step's code for:
- bugs and unhandled edge cases (missing keys, empty lists, None values)
- consistency between step outputs and the ctx.state keys later steps read
- use of forbidden constructs (imports, open, eval, exec)

Fix any problems you find and return the complete workflow JSON. If nothing needs
changing, return the workflow unchanged.
"""


def _require_agent_tools(context: WorkflowContext, workflow_id: str) -> None:
    if not has_agent_tools(context.tools):
        raise AgentConfigurationError(
            f"Built-in workflow '{workflow_id}' requires agent execution, "
            "but the generate_text/invoke_tool/task_event tools are not available.",
            workflow_id=workflow_id,
        )


def iter_steps(steps: list[Any]) -> Iterator[Any]:
    """Depth-first walk over a step list and every nested step list."""
    for step in steps:
        yield step
        for _suffix, children, _enters_loop in child_step_lists(step):
            yield from iter_steps(children)


def validate_workflow_definition(workflow_file: WorkflowFile) -> dict[str, Any]:
    """Checks for generated definitions: a `main` entry point and unique step ids."""
    errors: list[str] = []
    if "main" not in workflow_file.workflows:
        errors.append("Workflow file must define a 'main' workflow")

    for workflow_id, workflow in workflow_file.workflows.items():
        seen: set[str] = set()
        for step in iter_steps(workflow.steps):
            step_id = getattr(step, "id", None)
            if step_id is None:
                continue
            if step_id in seen:
                errors.append(f"Workflow '{workflow_id}' has duplicate step id '{step_id}'")
            seen.add(step_id)

    return {"valid": not errors, "errors": errors}


def validate_workflow_code_syntax(workflow_file: WorkflowFile) -> dict[str, Any]:
    errors: list[str] = []
    for workflow_id, workflow in workflow_file.workflows.items():
        for step in iter_steps(workflow.steps):
            if not isinstance(step, TaskStep) or not (step.code and step.code.strip()):
                continue
            for problem in check_step_code(step.code):
                errors.append(f"{workflow_id}.{step.id}: {problem}")
    return {"valid": not errors, "errors": errors}


async def _generate_file(
    context: WorkflowContext,
    step_name: str,
    system_prompt: str,
    user_content: str,
) -> WorkflowFile | None:
    async def call_agent():
        return await run_agent(
            tools=[],
            system_prompt=system_prompt,
            user_messages=[{"role": "user", "content": user_content}],
            context=context,
            output_model=WorkflowFile,
        )

    result = await context.step(step_name, call_agent)
    if result.type != "Exit" or result.object is None:
        logger.warning(f"[Agent] {step_name} ended with {result.type}: {result.error or 'no workflow object'}")
        return None
    return WorkflowFile.model_validate(result.object)


async def generate_workflow_definition(input: dict[str, Any], context: WorkflowContext) -> dict[str, Any]:
    _require_agent_tools(context, "generateWorkflowDefinition")

    system_prompt = WORKFLOW_DEFINITION_SYSTEM_PROMPT
    available_tools = input.get("availableTools") or []
    if available_tools:
        tools_list = "\n".join(f"- {t['name']}: {t.get('description', '')}" for t in available_tools)
        system_prompt += f"\n\nAvailable Tools:\n{tools_list}\n\nUse these tools when appropriate."

    generated = await _generate_file(
        context, "generate-workflow-definition", system_prompt, input["prompt"]
    )
    if generated is None:
        raise AgentExecutionError(
            "Failed to generate workflow definition",
            workflow_id="generateWorkflowDefinition",
        )

    checks = validate_workflow_definition(generated)
    if not checks["valid"]:
        context.logger.warning(f"[Workflow] Generated definition has problems: {'; '.join(checks['errors'])}")

    return generated.to_dict()


async def generate_workflow_code(input: dict[str, Any], context: WorkflowContext) -> dict[str, Any]:
    _require_agent_tools(context, "generateWorkflowCode")

    workflow = input["workflow"]
    if not isinstance(workflow, WorkflowFile):
        workflow = WorkflowFile.model_validate(workflow)

    user_content = json.dumps(workflow.to_dict(), indent=2)
    generated: WorkflowFile | None = None

    for attempt in range(1, MAX_CODE_GENERATION_ATTEMPTS + 1):
        generated = await _generate_file(
            context, f"generate-workflow-code-{attempt}", WORKFLOW_CODE_SYSTEM_PROMPT, user_content
        )
        if generated is None:
            raise AgentExecutionError("Failed to generate workflow code", workflow_id="generateWorkflowCode")

        syntax = validate_workflow_code_syntax(generated)
        if syntax["valid"]:
            break

        context.logger.warning(
            f"[Workflow] Generated code has syntax errors (attempt {attempt}/{MAX_CODE_GENERATION_ATTEMPTS}): "
            f"{'; '.join(syntax['errors'])}"
        )
        user_content = (
            f"{json.dumps(generated.to_dict(), indent=2)}\n\n"
            "The code above has these errors, fix them:\n"
            + "\n".join(f"- {e}" for e in syntax["errors"])
        )
    else:
        raise AgentExecutionError(
            f"Generated workflow code still has syntax errors after {MAX_CODE_GENERATION_ATTEMPTS} attempts",
            workflow_id="generateWorkflowCode",
        )

    if input.get("skipReview"):
        return generated.to_dict()

    reviewed = await _generate_file(
        context,
        "review-workflow-code",
        WORKFLOW_REVIEW_SYSTEM_PROMPT,
        json.dumps(generated.to_dict(), indent=2),
    )
    if reviewed is None or not validate_workflow_code_syntax(reviewed)["valid"]:
        context.logger.warning("[Workflow] Review pass did not produce valid code, keeping generated version")
        return generated.to_dict()

    return reviewed.to_dict()


BUILT_IN_WORKFLOWS = {
    "generateWorkflowDefinition": generate_workflow_definition,
    "generateWorkflowCode": generate_workflow_code,
}
