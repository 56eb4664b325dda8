"""Per-question runtime: step execution, evaluation, finalization."""

from .agent import AgentRun, QueryAgent, apply_revision
from .evaluator import evaluate
from .finalizer import finalize
from .step_runner import StepRunner, TurnState

__all__ = [
    "AgentRun",
    "QueryAgent",
    "StepRunner",
    "TurnState",
    "apply_revision",
    "evaluate",
    "finalize",
]
