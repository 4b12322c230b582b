"""
Workflow File Parsing & Structural Validation

Parsing never raises: YAML errors, schema errors and structural problems
are all collected into the returned result so callers can report every
issue at once.
"""

from __future__ import annotations

import logging
from typing import Any

import yaml
from pydantic import ValidationError

from workflow_interpreter.core.types import (
    BreakStep,
    ContinueStep,
    ValidationResult,
    WorkflowFile,
    WorkflowParseResult,
    child_step_lists,
)

logger = logging.getLogger(__name__)


def format_validation_errors(error: ValidationError) -> list[str]:
    """One message per pydantic error, prefixed with its location."""
    messages: list[str] = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "root"
        messages.append(f"{location}: {item.get('msg')}")
    return messages


def _check_break_outside_loop(steps: list[Any], in_loop: bool, path: str, errors: list[str]) -> None:
    for step in steps:
        if isinstance(step, (BreakStep, ContinueStep)):
            if not in_loop:
                errors.append(f"{path} has break/continue outside of a loop")
            continue
        for suffix, children, enters_loop in child_step_lists(step):
            _check_break_outside_loop(
                children,
                in_loop or enters_loop,
                f"{path}/{step.id}{suffix}",
                errors,
            )


def validate_workflow_file(workflow_file: WorkflowFile) -> ValidationResult:
    """
    Structural checks that the schema cannot express.

    - every workflow has at least one step
    - break/continue only appear inside a while loop body (if/else and
      try/catch keep the enclosing loop context; a new workflow resets it)
    """
    errors: list[str] = []

    if not workflow_file.workflows:
        errors.append("Workflow file defines no workflows")

    for workflow_id, workflow in workflow_file.workflows.items():
        if not workflow.steps:
            errors.append(f"Workflow '{workflow_id}' has no steps")
            continue
        _check_break_outside_loop(workflow.steps, False, workflow_id, errors)

    if errors:
        return ValidationResult(success=False, errors=errors)
    return ValidationResult(success=True)


def load_workflow_file(raw: Any) -> WorkflowParseResult:
    """Schema + structural validation of an already-deserialized document."""
    if not isinstance(raw, dict):
        return WorkflowParseResult(
            success=False,
            errors=[f"Workflow file must be a mapping with a 'workflows' key, got {type(raw).__name__}"],
        )

    try:
        workflow_file = WorkflowFile.model_validate(raw)
    except ValidationError as e:
        return WorkflowParseResult(success=False, errors=format_validation_errors(e))

    validation = validate_workflow_file(workflow_file)
    if not validation.success:
        return WorkflowParseResult(success=False, errors=validation.errors)

    return WorkflowParseResult(success=True, definition=workflow_file)


def parse_workflow_definition(source: str) -> WorkflowParseResult:
    """Parse a YAML (or JSON) workflow file."""
    try:
        raw = yaml.safe_load(source)
    except yaml.YAMLError as e:
        logger.debug(f"[Validation] YAML parse failed: {e}")
        return WorkflowParseResult(success=False, errors=[f"Invalid YAML: {e}"])

    return load_workflow_file(raw)
