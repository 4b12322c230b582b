"""Workflow runners for the workflow interpreter."""

from .dynamic_workflow import (
    MAX_WHILE_LOOP_ITERATIONS,
    ControlFlowResult,
    DynamicWorkflowRunner,
    DynamicWorkflowRunnerOptions,
    create_dynamic_workflow,
)
from .generator import BUILT_IN_WORKFLOWS

__all__ = [
    "MAX_WHILE_LOOP_ITERATIONS",
    "ControlFlowResult",
    "DynamicWorkflowRunner",
    "DynamicWorkflowRunnerOptions",
    "create_dynamic_workflow",
    "BUILT_IN_WORKFLOWS",
]
