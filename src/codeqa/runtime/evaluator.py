"""Decide what happens after each step."""

from __future__ import annotations

import logging
from typing import Sequence

from ..models.llm_client import LLMClient, LLMClientError, system_message, user_message
from ..planning.schemas import PlanDecision, PlanStep, StepOutcome
from ..prompts import PromptLibrary

__all__ = ["evaluate", "render_evaluation_context"]

LOGGER = logging.getLogger(__name__)


def render_evaluation_context(outcome: StepOutcome, remaining: Sequence[PlanStep]) -> str:
    """Only the latest outcome and the remaining step titles are shown."""
    remaining_lines = "\n".join(f"- Step {step.id}: {step.title}" for step in remaining) or "(none)"
    return (
        "Recent step outcome:\n"
        f"Step {outcome.step_id} ({outcome.status}): {outcome.summary}\n\n"
        f"Remaining plan steps:\n{remaining_lines}"
    )


def evaluate(
    outcome: StepOutcome,
    remaining: Sequence[PlanStep],
    *,
    client: LLMClient,
    prompts: PromptLibrary,
) -> PlanDecision:
    """Return continue, finalize or revise; failures default to continue."""
    messages = [
        system_message(prompts.evaluator_system),
        user_message(render_evaluation_context(outcome, remaining)),
    ]
    try:
        return client.structured_output(messages, PlanDecision)
    except LLMClientError as error:
        LOGGER.warning("Evaluator failed, continuing with plan: %s", error)
        return PlanDecision(
            decision="continue",
            reason=f"Evaluation failed, continuing with plan: {error}",
        )
