"""
Dynamic Workflow Interpreter

Interprets a WorkflowFile directly instead of generating code per workflow.
The runner walks each workflow's step tree in declaration order, keeping a
single mutable `state` dict per invocation that every step writes its result
into (under `output` or its `id`).

Step kinds:
1. task      - persisted code (when unsafe execution is allowed) or agent delegation
2. while     - bounded by MAX_WHILE_LOOP_ITERATIONS
3. if        - then/else branch selection
4. try       - trySteps with catchSteps as the recovery path
5. break / continue - returned as signals and consumed by the nearest while loop

Sub-workflows re-enter the runner with input `{**input, **state, **sub_input}`
and a shallow copy of the caller's state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, NamedTuple

from workflow_interpreter.activities.execute_agent import execute_step_with_agent
from workflow_interpreter.activities.execute_code import (
    StepCodeCache,
    StepRuntimeContext,
    build_agent_tools,
    execute_step_code,
)
from workflow_interpreter.core.condition_evaluator import evaluate_condition
from workflow_interpreter.core.config import InterpreterConfig
from workflow_interpreter.core.context import ToolInfo, WorkflowContext, create_context
from workflow_interpreter.core.errors import (
    ControlFlowError,
    LoopLimitExceededError,
    OutputValidationError,
    StepTimeoutError,
    WorkflowDefinitionError,
    WorkflowNotFoundError,
)
from workflow_interpreter.core.inputs import validate_and_apply_defaults
from workflow_interpreter.core.json_schema import validate_against_json_schema
from workflow_interpreter.core.types import (
    BreakStep,
    ContinueStep,
    IfElseStep,
    TaskStep,
    TryCatchStep,
    WhileLoopStep,
    WorkflowFile,
    step_label,
    step_output_key,
)
from workflow_interpreter.core.validation import (
    load_workflow_file,
    parse_workflow_definition,
    validate_workflow_file,
)

logger = logging.getLogger(__name__)

MAX_WHILE_LOOP_ITERATIONS = 1000

BuiltInWorkflow = Callable[[dict[str, Any], WorkflowContext], Awaitable[Any]]
StepSystemPromptFn = Callable[..., str]


@dataclass
class DynamicWorkflowRunnerOptions:
    tool_info: list[ToolInfo] | None = None
    model: str | None = None
    max_tool_round_trips: int = 50
    step_system_prompt: StepSystemPromptFn | None = None
    wrap_agent_result_in_object: bool = False
    built_in_workflows: dict[str, BuiltInWorkflow] = field(default_factory=dict)
    # Gates both unsafe condition evaluation and persisted code execution
    allow_unsafe_code_execution: bool = False

    @classmethod
    def from_config(cls, cfg: InterpreterConfig, **overrides: Any) -> DynamicWorkflowRunnerOptions:
        values: dict[str, Any] = {
            "model": cfg.WORKFLOW_MODEL,
            "max_tool_round_trips": cfg.WORKFLOW_MAX_TOOL_ROUND_TRIPS,
            "wrap_agent_result_in_object": cfg.WORKFLOW_WRAP_AGENT_RESULT,
            "allow_unsafe_code_execution": cfg.WORKFLOW_ALLOW_UNSAFE_CODE_EXECUTION,
        }
        values.update(overrides)
        return cls(**values)


class ControlFlowResult(NamedTuple):
    result: Any = None
    should_break: bool = False
    should_continue: bool = False

    @property
    def signalled(self) -> bool:
        return self.should_break or self.should_continue


class DynamicWorkflowRunner:
    """Awaitable `runner(workflow_id, input, context)` over one WorkflowFile."""

    def __init__(
        self,
        definition: WorkflowFile,
        options: DynamicWorkflowRunnerOptions | None = None,
    ) -> None:
        self.definition = definition
        self.options = options or DynamicWorkflowRunnerOptions()
        self.code_cache = StepCodeCache()

    async def __call__(
        self,
        workflow_id: str,
        input: dict[str, Any] | None = None,
        context: WorkflowContext | None = None,
    ) -> Any:
        return await self.run(workflow_id, input, context)

    async def run(
        self,
        workflow_id: str,
        input: dict[str, Any] | None = None,
        context: WorkflowContext | None = None,
    ) -> Any:
        return await self._run_internal(
            workflow_id,
            dict(input or {}),
            context or create_context(),
            inherited_state=None,
        )

    async def _run_internal(
        self,
        workflow_id: str,
        input: dict[str, Any],
        context: WorkflowContext,
        inherited_state: dict[str, Any] | None,
    ) -> Any:
        workflow = self.definition.workflows.get(workflow_id)
        if workflow is None:
            built_in = self.options.built_in_workflows.get(workflow_id)
            if built_in is not None:
                context.logger.info(f"[Workflow] Running built-in workflow '{workflow_id}'")
                return await built_in(input, context)
            raise WorkflowNotFoundError(f"Workflow '{workflow_id}' not found", workflow_id=workflow_id)

        validated_input = validate_and_apply_defaults(workflow_id, workflow, input)
        state: dict[str, Any] = dict(inherited_state or {})

        context.logger.info(f"[Workflow] Starting workflow '{workflow_id}' ({len(workflow.steps)} steps)")

        for step in workflow.steps:
            outcome = await self._execute_control_flow_step(
                step, workflow_id, validated_input, state, context, loop_depth=0
            )
            key = step_output_key(step)
            if key is not None:
                state[key] = outcome.result

        context.logger.info(f"[Workflow] Completed workflow '{workflow_id}'")

        if workflow.output:
            return state.get(workflow.output)
        return state

    async def _execute_control_flow_step(
        self,
        step: Any,
        workflow_id: str,
        input: dict[str, Any],
        state: dict[str, Any],
        context: WorkflowContext,
        loop_depth: int,
    ) -> ControlFlowResult:
        if isinstance(step, BreakStep):
            if loop_depth == 0:
                raise ControlFlowError(
                    f"break statement outside of a while loop in workflow '{workflow_id}'",
                    workflow_id=workflow_id,
                )
            context.logger.debug(f"[ControlFlow] break at loop depth {loop_depth}")
            return ControlFlowResult(should_break=True)

        if isinstance(step, ContinueStep):
            if loop_depth == 0:
                raise ControlFlowError(
                    f"continue statement outside of a while loop in workflow '{workflow_id}'",
                    workflow_id=workflow_id,
                )
            context.logger.debug(f"[ControlFlow] continue at loop depth {loop_depth}")
            return ControlFlowResult(should_continue=True)

        if isinstance(step, WhileLoopStep):
            return await self._execute_while(step, workflow_id, input, state, context, loop_depth)

        if isinstance(step, IfElseStep):
            return await self._execute_if_else(step, workflow_id, input, state, context, loop_depth)

        if isinstance(step, TryCatchStep):
            return await self._execute_try_catch(step, workflow_id, input, state, context, loop_depth)

        result = await self._execute_step(step, workflow_id, input, state, context)
        return ControlFlowResult(result=result)

    async def _execute_step_list(
        self,
        steps: list[Any],
        workflow_id: str,
        input: dict[str, Any],
        state: dict[str, Any],
        context: WorkflowContext,
        loop_depth: int,
        last_result: Any = None,
    ) -> ControlFlowResult:
        """
        Run steps in order, storing each result under its output key.

        Stops at the first break/continue signal (the signalling step's own
        result is not stored) and hands the signal to the caller.
        """
        for step in steps:
            context.logger.debug(f"[Step] {workflow_id}/{step_label(step)} (loop depth {loop_depth})")
            outcome = await self._execute_control_flow_step(
                step, workflow_id, input, state, context, loop_depth
            )
            if outcome.signalled:
                return ControlFlowResult(last_result, outcome.should_break, outcome.should_continue)
            key = step_output_key(step)
            if key is not None:
                state[key] = outcome.result
            last_result = outcome.result
        return ControlFlowResult(last_result)

    def _evaluate(self, condition: str, input: dict[str, Any], state: dict[str, Any], context: WorkflowContext) -> bool:
        return evaluate_condition(
            condition,
            input,
            state,
            allow_unsafe_code_execution=self.options.allow_unsafe_code_execution,
            logger=context.logger,
        )

    async def _execute_while(
        self,
        step: WhileLoopStep,
        workflow_id: str,
        input: dict[str, Any],
        state: dict[str, Any],
        context: WorkflowContext,
        loop_depth: int,
    ) -> ControlFlowResult:
        iterations = 0
        last_result: Any = None

        while self._evaluate(step.while_.condition, input, state, context):
            iterations += 1
            if iterations > MAX_WHILE_LOOP_ITERATIONS:
                raise LoopLimitExceededError(
                    f"While loop '{step.id}' in workflow '{workflow_id}' exceeded maximum iteration limit "
                    f"of {MAX_WHILE_LOOP_ITERATIONS}",
                    workflow_id=workflow_id,
                    step_id=step.id,
                )

            body = await self._execute_step_list(
                step.while_.steps, workflow_id, input, state, context, loop_depth + 1, last_result
            )
            last_result = body.result

            if body.should_break:
                context.logger.debug(f"[ControlFlow] Breaking out of while loop '{step.id}' after {iterations} iterations")
                break
            # continue needs no handling: the iteration is already cut short

        context.logger.debug(f"[ControlFlow] While loop '{step.id}' finished after {iterations} iterations")
        state[step_output_key(step)] = last_result
        return ControlFlowResult(last_result)

    async def _execute_if_else(
        self,
        step: IfElseStep,
        workflow_id: str,
        input: dict[str, Any],
        state: dict[str, Any],
        context: WorkflowContext,
        loop_depth: int,
    ) -> ControlFlowResult:
        matched = self._evaluate(step.if_.condition, input, state, context)
        branch = step.if_.thenBranch if matched else (step.if_.elseBranch or [])
        context.logger.debug(
            f"[ControlFlow] If '{step.id}' condition {'matched' if matched else 'did not match'}, "
            f"running {len(branch)} steps"
        )

        outcome = await self._execute_step_list(branch, workflow_id, input, state, context, loop_depth)
        if outcome.signalled:
            return outcome

        state[step_output_key(step)] = outcome.result
        return outcome

    async def _execute_try_catch(
        self,
        step: TryCatchStep,
        workflow_id: str,
        input: dict[str, Any],
        state: dict[str, Any],
        context: WorkflowContext,
        loop_depth: int,
    ) -> ControlFlowResult:
        try:
            outcome = await self._execute_step_list(
                step.try_.trySteps, workflow_id, input, state, context, loop_depth
            )
        except Exception as e:
            context.logger.warning(f"[ControlFlow] Try block '{step.id}' failed, running catch steps: {e}")
            outcome = await self._execute_step_list(
                step.try_.catchSteps, workflow_id, input, state, context, loop_depth
            )

        if outcome.signalled:
            return outcome

        state[step_output_key(step)] = outcome.result
        return outcome

    async def _execute_step(
        self,
        step: TaskStep,
        workflow_id: str,
        input: dict[str, Any],
        state: dict[str, Any],
        context: WorkflowContext,
    ) -> Any:
        run_workflow = self._make_run_workflow(input, state, context)
        has_code = bool(step.code and step.code.strip())

        if has_code and self.options.allow_unsafe_code_execution:
            runtime = StepRuntimeContext(
                workflow_id=workflow_id,
                step_id=step.id,
                input=input,
                state=state,
                tools=context.tools,
                logger=context.logger,
                step=context.step,
                run_workflow=run_workflow,
                tool_info=self.options.tool_info,
                agent_tools=build_agent_tools(context.tools, self.options.tool_info),
            )
            pending = execute_step_code(step.code, runtime, self.code_cache)
        else:
            if has_code:
                context.logger.debug(
                    f"[Step] Code for step '{step.id}' ignored because unsafe code execution is disabled"
                )
            context.logger.info(f"[Step] Delegating step '{step.id}' to agent")
            pending = execute_step_with_agent(
                step, workflow_id, input, state, context, self.options, run_workflow
            )

        if step.timeout is not None:
            result = await self._with_timeout(pending, step, workflow_id)
        else:
            result = await pending

        if step.outputSchema is not None:
            self._validate_output(step, workflow_id, result)

        return result

    async def _with_timeout(self, pending: Awaitable[Any], step: TaskStep, workflow_id: str) -> Any:
        task = asyncio.ensure_future(pending)
        try:
            done, _ = await asyncio.wait({task}, timeout=step.timeout / 1000)
        except BaseException:
            task.cancel()
            raise

        # Only the runner's deadline counts; a TimeoutError raised by the step itself propagates as is
        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise StepTimeoutError(
            f"Step '{step.id}' in workflow '{workflow_id}' timed out after {step.timeout:g}ms",
            workflow_id=workflow_id,
            step_id=step.id,
        )

    def _validate_output(self, step: TaskStep, workflow_id: str, result: Any) -> None:
        issues = validate_against_json_schema(step.outputSchema, result)
        if not issues:
            return
        details = "\n".join(f"  - {issue}" for issue in issues)
        raise OutputValidationError(
            f"Step '{step.id}' in workflow '{workflow_id}' output validation failed: "
            f"Output does not match expected schema:\n{details}",
            issues=issues,
            workflow_id=workflow_id,
            step_id=step.id,
        )

    def _make_run_workflow(
        self,
        input: dict[str, Any],
        state: dict[str, Any],
        context: WorkflowContext,
    ) -> Callable[..., Awaitable[Any]]:
        async def run_workflow(sub_workflow_id: str, sub_input: dict[str, Any] | None = None) -> Any:
            merged_input = {**input, **state, **(sub_input or {})}
            context.logger.info(f"[Workflow] Running sub-workflow '{sub_workflow_id}'")
            return await self._run_internal(sub_workflow_id, merged_input, context, inherited_state=state)

        return run_workflow


def create_dynamic_workflow(
    definition_or_source: str | dict[str, Any] | WorkflowFile,
    options: DynamicWorkflowRunnerOptions | None = None,
) -> DynamicWorkflowRunner:
    """
    Build a runner from YAML/JSON source, a raw dict or a WorkflowFile.

    Invalid definitions raise WorkflowDefinitionError carrying every
    collected problem.
    """
    if isinstance(definition_or_source, WorkflowFile):
        validation = validate_workflow_file(definition_or_source)
        if not validation.success:
            raise WorkflowDefinitionError(validation.errors)
        definition = definition_or_source
    else:
        if isinstance(definition_or_source, str):
            parsed = parse_workflow_definition(definition_or_source)
        else:
            parsed = load_workflow_file(definition_or_source)
        if not parsed.success:
            raise WorkflowDefinitionError(parsed.errors)
        definition = parsed.definition

    logger.info(
        f"[Workflow] Created dynamic workflow runner with workflows: {', '.join(definition.workflows)}"
    )
    return DynamicWorkflowRunner(definition, options)


__all__ = [
    "MAX_WHILE_LOOP_ITERATIONS",
    "ControlFlowResult",
    "DynamicWorkflowRunner",
    "DynamicWorkflowRunnerOptions",
    "create_dynamic_workflow",
]
