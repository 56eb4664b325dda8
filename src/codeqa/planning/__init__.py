"""Planning records and the planner."""

from .planner import fallback_plan, number_steps, plan_from_query
from .schemas import Plan, PlanDecision, PlanStep, StepOutcome

__all__ = [
    "Plan",
    "PlanDecision",
    "PlanStep",
    "StepOutcome",
    "fallback_plan",
    "number_steps",
    "plan_from_query",
]
