"""Step execution activities for the workflow interpreter."""

from .execute_code import StepCodeCache, StepRuntimeContext, execute_step_code, check_step_code
from .execute_agent import TOOL_GROUPS, execute_step_with_agent, select_step_tools
from .agent_loop import run_agent

__all__ = [
    "StepCodeCache",
    "StepRuntimeContext",
    "execute_step_code",
    "check_step_code",
    "TOOL_GROUPS",
    "execute_step_with_agent",
    "select_step_tools",
    "run_agent",
]
