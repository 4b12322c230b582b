from __future__ import annotations

import pytest

from workflow_interpreter.core.errors import WorkflowInputError
from workflow_interpreter.core.inputs import validate_and_apply_defaults
from workflow_interpreter.core.types import WorkflowDefinition


def _definition(inputs):
    return WorkflowDefinition.model_validate(
        {"task": "t", "inputs": inputs, "steps": [{"id": "a", "task": "A"}]}
    )


def test_default_fills_missing_input():
    definition = _definition([{"id": "limit", "default": 5}, {"id": "name"}])
    assert validate_and_apply_defaults("main", definition, {"name": "x"}) == {"limit": 5, "name": "x"}


def test_provided_value_wins_over_default():
    definition = _definition([{"id": "limit", "default": 5}])
    assert validate_and_apply_defaults("main", definition, {"limit": 9}) == {"limit": 9}


def test_none_counts_as_missing():
    definition = _definition([{"id": "limit", "default": 5}])
    assert validate_and_apply_defaults("main", definition, {"limit": None}) == {"limit": 5}


def test_falsy_values_are_kept():
    definition = _definition([{"id": "flag", "default": True}, {"id": "count", "default": 3}])
    assert validate_and_apply_defaults("main", definition, {"flag": False, "count": 0}) == {
        "flag": False,
        "count": 0,
    }


def test_missing_inputs_are_reported_together():
    definition = _definition([
        {"id": "repo", "description": "Repository to inspect"},
        {"id": "branch"},
        {"id": "limit", "default": 1},
    ])
    with pytest.raises(WorkflowInputError) as exc_info:
        validate_and_apply_defaults("main", definition, {})

    error = exc_info.value
    assert error.workflow_id == "main"
    assert error.errors == [
        "Missing required input 'repo': Repository to inspect",
        "Missing required input 'branch'",
    ]
    assert "Repository to inspect" in str(error)


def test_no_declared_inputs_passes_through():
    definition = WorkflowDefinition.model_validate({"task": "t", "steps": [{"id": "a", "task": "A"}]})
    raw = {"anything": 1}
    assert validate_and_apply_defaults("main", definition, raw) is raw


def test_extra_keys_are_kept():
    definition = _definition([{"id": "limit", "default": 5}])
    assert validate_and_apply_defaults("main", definition, {"extra": "x"}) == {"extra": "x", "limit": 5}
