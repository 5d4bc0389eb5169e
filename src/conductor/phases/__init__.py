from conductor.phases.base import Phase
from conductor.phases.execution import (
    ExecutionOutcome,
    ExecutionPhase,
    build_retry_context,
    render_execution_prompt,
)
from conductor.phases.planning import (
    PlanningPhase,
    PlanningResult,
    plan_file_name,
    render_plan_feedback_prompt,
    render_planning_prompt,
)

__all__ = [
    "ExecutionOutcome",
    "ExecutionPhase",
    "Phase",
    "PlanningPhase",
    "PlanningResult",
    "build_retry_context",
    "plan_file_name",
    "render_execution_prompt",
    "render_plan_feedback_prompt",
    "render_planning_prompt",
]
