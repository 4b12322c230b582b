"""Core types and utilities for the workflow interpreter."""

from .types import (
    WorkflowInputDefinition,
    TaskStep,
    WhileLoopStep,
    IfElseStep,
    TryCatchStep,
    BreakStep,
    ContinueStep,
    StepNode,
    WorkflowDefinition,
    WorkflowFile,
    ValidationResult,
    WorkflowParseResult,
    AgentExitReason,
    DynamicWorkflowOutput,
    step_output_key,
)
from .condition_evaluator import evaluate_condition, evaluate_condition_safe
from .context import ToolInfo, WorkflowContext, create_context, make_step_fn
from .inputs import validate_and_apply_defaults
from .validation import parse_workflow_definition, validate_workflow_file, load_workflow_file

__all__ = [
    "WorkflowInputDefinition",
    "TaskStep",
    "WhileLoopStep",
    "IfElseStep",
    "TryCatchStep",
    "BreakStep",
    "ContinueStep",
    "StepNode",
    "WorkflowDefinition",
    "WorkflowFile",
    "ValidationResult",
    "WorkflowParseResult",
    "AgentExitReason",
    "DynamicWorkflowOutput",
    "step_output_key",
    "evaluate_condition",
    "evaluate_condition_safe",
    "ToolInfo",
    "WorkflowContext",
    "create_context",
    "make_step_fn",
    "validate_and_apply_defaults",
    "parse_workflow_definition",
    "validate_workflow_file",
    "load_workflow_file",
]
