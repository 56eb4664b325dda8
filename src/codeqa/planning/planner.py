"""Turn a user question into an ordered plan."""

from __future__ import annotations

import logging
from typing import List, Sequence

from ..models.llm_client import LLMClient, LLMClientError, system_message, user_message
from ..prompts import PromptLibrary
from .schemas import Plan, PlanStep

__all__ = ["fallback_plan", "number_steps", "plan_from_query"]

LOGGER = logging.getLogger(__name__)


def number_steps(steps: Sequence[PlanStep], start: int = 1) -> List[PlanStep]:
    """Return pending copies of ``steps`` with sequential ids from ``start``."""
    return [
        PlanStep(id=start + offset, title=step.title, description=step.description, status="pending")
        for offset, step in enumerate(steps)
    ]


def fallback_plan(question: str) -> Plan:
    """Single-step plan used when the planner cannot produce one."""
    return Plan(
        steps=[
            PlanStep(
                id=1,
                title="Investigate the question",
                description=(
                    "Search the indexed code for the symbols, files and behaviour the user asks "
                    f"about, then gather the evidence needed to answer: {question}"
                ),
            )
        ]
    )


def _planner_input(question: str, history: str) -> str:
    if history.strip():
        return f"Previous Conversation Context:\n{history}\n\nCurrent User Query: {question}"
    return question


def plan_from_query(
    question: str,
    *,
    client: LLMClient,
    prompts: PromptLibrary,
    history: str = "",
) -> Plan:
    """Ask the model for a plan; ids are renumbered 1..n and every step starts pending."""
    messages = [
        system_message(prompts.planner_system),
        user_message(_planner_input(question, history)),
    ]
    try:
        plan = client.structured_output(messages, Plan)
    except LLMClientError as error:
        LOGGER.warning("Planner failed, using a single-step plan: %s", error)
        return fallback_plan(question)
    if not plan.steps:
        return fallback_plan(question)
    return Plan(steps=number_steps(plan.steps))
