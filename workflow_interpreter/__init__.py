"""Dynamic workflow interpreter for declarative agentic workflows."""

from .core.errors import WorkflowError
from .core.context import ToolInfo, WorkflowContext, create_context
from .core.validation import parse_workflow_definition
from .workflows.dynamic_workflow import DynamicWorkflowRunnerOptions, create_dynamic_workflow

__all__ = [
    "WorkflowError",
    "ToolInfo",
    "WorkflowContext",
    "create_context",
    "parse_workflow_definition",
    "DynamicWorkflowRunnerOptions",
    "create_dynamic_workflow",
]
