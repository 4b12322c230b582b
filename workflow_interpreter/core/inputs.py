from __future__ import annotations

from typing import Any

from workflow_interpreter.core.errors import WorkflowInputError
from workflow_interpreter.core.types import WorkflowDefinition


def validate_and_apply_defaults(
    workflow_id: str,
    definition: WorkflowDefinition,
    raw_input: dict[str, Any],
) -> dict[str, Any]:
    """
    Resolve declared workflow inputs.

    A provided (non-None) value wins over the declared default; an input with
    neither is reported. All missing inputs are raised together. Workflows
    that declare no inputs get `raw_input` back unchanged.
    """
    if not definition.inputs:
        return raw_input

    validated: dict[str, Any] = dict(raw_input)
    errors: list[str] = []

    for input_def in definition.inputs:
        provided = raw_input.get(input_def.id)
        if provided is not None:
            validated[input_def.id] = provided
        elif input_def.default is not None:
            validated[input_def.id] = input_def.default
        else:
            suffix = f": {input_def.description}" if input_def.description else ""
            errors.append(f"Missing required input '{input_def.id}'{suffix}")

    if errors:
        raise WorkflowInputError(workflow_id, errors)

    return validated
