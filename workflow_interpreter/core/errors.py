"""
Workflow Interpreter Errors

Every error raised by the interpreter derives from WorkflowError and carries
the workflow/step it was raised for, so hosts can log failures without
parsing messages.
"""

from __future__ import annotations


class WorkflowError(RuntimeError):
    """Base error for workflow parsing and execution failures."""

    def __init__(
        self,
        message: str,
        *,
        workflow_id: str | None = None,
        step_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.workflow_id = workflow_id
        self.step_id = step_id


class WorkflowDefinitionError(WorkflowError):
    """A workflow file failed to parse or failed structural validation."""

    def __init__(self, errors: list[str]) -> None:
        lines = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Workflow validation failed:\n{lines}")
        self.errors = list(errors)


class WorkflowNotFoundError(WorkflowError):
    pass


class WorkflowInputError(WorkflowError):
    """One or more required workflow inputs are missing."""

    def __init__(self, workflow_id: str, errors: list[str]) -> None:
        lines = "\n".join(f"  - {e}" for e in errors)
        super().__init__(
            f"Workflow '{workflow_id}' input validation failed:\n{lines}",
            workflow_id=workflow_id,
        )
        self.errors = list(errors)


class ConditionEvaluationError(WorkflowError):
    pass


class ControlFlowError(WorkflowError):
    """break/continue executed with no enclosing while loop."""


class LoopLimitExceededError(WorkflowError):
    pass


class StepCompilationError(WorkflowError):
    pass


class AgentConfigurationError(WorkflowError):
    """An agent-delegated step cannot run with the supplied host tools/options."""


class AgentExecutionError(WorkflowError):
    pass


class OutputValidationError(WorkflowError):
    def __init__(
        self,
        message: str,
        *,
        issues: list[str],
        workflow_id: str | None = None,
        step_id: str | None = None,
    ) -> None:
        super().__init__(message, workflow_id=workflow_id, step_id=step_id)
        self.issues = list(issues)


class StepTimeoutError(WorkflowError):
    pass
