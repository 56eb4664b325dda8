"""Typed plan, outcome and decision records exchanged with the model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, List, Literal

from pydantic import Field

__all__ = [
    "DecisionKind",
    "OutcomeStatus",
    "Plan",
    "PlanDecision",
    "PlanStep",
    "StepOutcome",
    "StepStatus",
]


StepStatus = Literal["pending", "in_progress", "completed", "failed"]
# Unrecognised values from the model collapse to the first option.
OutcomeStatus = Literal["failed", "completed"]
DecisionKind = Literal["continue", "finalize", "revise"]


@dataclass(slots=True)
class PlanStep:
    """One unit of work in a plan.

    Ids are assigned by the orchestrator; an id of ``0`` means the model left
    it out and the step has not been numbered yet.
    """

    title: Annotated[str, Field(min_length=1)]
    description: Annotated[str, Field(min_length=1)]
    id: Annotated[int, Field(ge=0)] = 0
    status: StepStatus = "pending"


@dataclass(slots=True)
class Plan:
    """Ordered steps produced by the planner."""

    steps: Annotated[List[PlanStep], Field(min_length=1)]


@dataclass(frozen=True, slots=True)
class StepOutcome:
    """Recorded result of executing one step; never modified afterwards."""

    step_id: Annotated[int, Field(ge=1)]
    status: OutcomeStatus
    summary: Annotated[str, Field(min_length=1)]


@dataclass(slots=True)
class PlanDecision:
    """Evaluator verdict after a step."""

    decision: DecisionKind
    reason: str = ""
    new_steps: List[PlanStep] = field(default_factory=list)
