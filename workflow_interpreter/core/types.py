"""
Core Types for the Workflow Interpreter

These types define the workflow file schema (workflows, inputs and the
step tree) plus the result models exchanged with callers.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class WorkflowInputDefinition(BaseModel):
    """Declared workflow input; `default` is used when the caller omits it."""
    id: str
    description: str | None = None
    default: Any = None


class TaskStep(BaseModel):
    """Basic step - runs persisted code or is delegated to an agent."""
    id: str
    task: str
    tools: list[str] | None = None
    output: str | None = None
    expected_outcome: str | None = None
    code: str | None = None
    outputSchema: dict[str, Any] | None = None
    timeout: float | None = Field(default=None, gt=0, description="Timeout in milliseconds")


class WhileBody(BaseModel):
    condition: str
    steps: list[StepNode]


class WhileLoopStep(BaseModel):
    """Repeats `steps` while `condition` is true."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    while_: WhileBody = Field(alias="while")
    output: str | None = None


class IfElseBody(BaseModel):
    condition: str
    thenBranch: list[StepNode]
    elseBranch: list[StepNode] | None = None


class IfElseStep(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    if_: IfElseBody = Field(alias="if")
    output: str | None = None


class TryCatchBody(BaseModel):
    trySteps: list[StepNode]
    catchSteps: list[StepNode]


class TryCatchStep(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    try_: TryCatchBody = Field(alias="try")
    output: str | None = None


class BreakStep(BaseModel):
    """Exits the nearest enclosing while loop."""
    model_config = ConfigDict(populate_by_name=True)

    break_: Literal[True] = Field(default=True, alias="break")


class ContinueStep(BaseModel):
    """Skips to the next iteration of the nearest enclosing while loop."""
    model_config = ConfigDict(populate_by_name=True)

    continue_: Literal[True] = Field(default=True, alias="continue")


_STEP_KEYS = ("while", "if", "try", "break", "continue")
_STEP_TYPES: dict[type, str] = {
    WhileLoopStep: "while",
    IfElseStep: "if",
    TryCatchStep: "try",
    BreakStep: "break",
    ContinueStep: "continue",
    TaskStep: "task",
}


def _step_kind(value: Any) -> str | None:
    """Pick the step variant by which control-flow key is present."""
    if isinstance(value, dict):
        for key in _STEP_KEYS:
            if key in value:
                return key
        return "task"
    return _STEP_TYPES.get(type(value))


StepNode = Annotated[
    Union[
        Annotated[TaskStep, Tag("task")],
        Annotated[WhileLoopStep, Tag("while")],
        Annotated[IfElseStep, Tag("if")],
        Annotated[TryCatchStep, Tag("try")],
        Annotated[BreakStep, Tag("break")],
        Annotated[ContinueStep, Tag("continue")],
    ],
    Discriminator(_step_kind),
]


class WorkflowDefinition(BaseModel):
    """A named workflow: inputs, ordered steps and an optional output key."""
    task: str
    inputs: list[WorkflowInputDefinition] | None = None
    steps: list[StepNode]
    output: str | None = None


class WorkflowFile(BaseModel):
    workflows: dict[str, WorkflowDefinition]

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the textual (aliased) shape."""
        return self.model_dump(by_alias=True, exclude_none=True)


WhileBody.model_rebuild()
WhileLoopStep.model_rebuild()
IfElseStep.model_rebuild()
TryCatchStep.model_rebuild()
IfElseBody.model_rebuild()
TryCatchBody.model_rebuild()
WorkflowDefinition.model_rebuild()
WorkflowFile.model_rebuild()


def step_output_key(step: Any) -> str | None:
    """State key a step writes to: `output` if set, else its `id`."""
    if isinstance(step, (BreakStep, ContinueStep)):
        return None
    return step.output or step.id


def step_label(step: Any) -> str:
    """Step identifier for logging."""
    if isinstance(step, BreakStep):
        return "break"
    if isinstance(step, ContinueStep):
        return "continue"
    return step.id


def child_step_lists(step: Any) -> list[tuple[str, list[Any], bool]]:
    """
    Nested step lists of a control-flow step.

    Returns (path suffix, steps, enters_loop) tuples; empty for task,
    break and continue steps.
    """
    if isinstance(step, WhileLoopStep):
        return [("", step.while_.steps, True)]
    if isinstance(step, IfElseStep):
        lists = [("/then", step.if_.thenBranch, False)]
        if step.if_.elseBranch:
            lists.append(("/else", step.if_.elseBranch, False))
        return lists
    if isinstance(step, TryCatchStep):
        return [
            ("/try", step.try_.trySteps, False),
            ("/catch", step.try_.catchSteps, False),
        ]
    return []


class ValidationResult(BaseModel):
    success: bool
    errors: list[str] = Field(default_factory=list)


class WorkflowParseResult(BaseModel):
    """Outcome of parsing a workflow file; errors are collected, never raised."""
    success: bool
    definition: WorkflowFile | None = None
    errors: list[str] = Field(default_factory=list)


class AgentExitReason(BaseModel):
    """How an agent round-trip loop ended."""
    type: Literal["Exit", "Error", "UsageExceeded"]
    message: str | None = None
    object: Any = None
    error: str | None = None


class DynamicWorkflowOutput(BaseModel):
    """Output from a workflow run over the HTTP surface."""
    success: bool
    output: Any = None
    error: str | None = None
    durationMs: int = 0
