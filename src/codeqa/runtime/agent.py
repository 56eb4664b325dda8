"""Orchestrate planner, step runner, evaluator and finalizer for one question."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import VectorStoreError
from ..memory.conversation import ConversationMemory
from ..models.llm_client import LLMClient
from ..planning.planner import number_steps, plan_from_query
from ..planning.schemas import Plan, PlanDecision, PlanStep, StepOutcome
from ..prompts import PromptLibrary
from ..retrieval.store import MultiCollectionStore
from .evaluator import evaluate
from .finalizer import finalize
from .step_runner import StepRunner

__all__ = ["AgentRun", "QueryAgent", "apply_revision"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class AgentRun:
    """Everything produced while answering one question."""

    answer: str
    plan: List[PlanStep] = field(default_factory=list)
    outcomes: List[StepOutcome] = field(default_factory=list)
    decisions: List[PlanDecision] = field(default_factory=list)
    cached: bool = False


def apply_revision(steps: List[PlanStep], cursor: int, new_steps: List[PlanStep]) -> List[PlanStep]:
    """Replace everything after ``cursor`` with ``new_steps``.

    The executed prefix ``steps[: cursor + 1]`` is kept as is. New steps get
    fresh ids continuing after the highest id seen so far, so outcome ids stay
    unique for the whole run.
    """
    if not new_steps:
        return steps
    next_id = max((step.id for step in steps), default=0) + 1
    return steps[: cursor + 1] + number_steps(new_steps, start=next_id)


class QueryAgent:
    """Answer one question at a time: cache, plan, execute, evaluate, finalize."""

    def __init__(
        self,
        *,
        client: LLMClient,
        store: MultiCollectionStore,
        step_runner: StepRunner,
        prompts: PromptLibrary,
        memory: Optional[ConversationMemory] = None,
    ) -> None:
        self._client = client
        self._store = store
        self._step_runner = step_runner
        self._prompts = prompts
        self._memory = memory

    def close(self) -> None:
        """Release the store's worker threads."""
        self._store.close()

    def answer(self, question: str) -> AgentRun:
        if self._memory is not None:
            cached = self._memory.find_cached_response(question)
            if cached is not None:
                return AgentRun(answer=cached, cached=True)

        if not self._store.health_check():
            raise VectorStoreError(
                "Vector store health check failed: no collection is reachable "
                f"({', '.join(self._store.list_collections()) or 'none configured'})."
            )

        history = self._memory.history_context() if self._memory is not None else ""
        plan = plan_from_query(question, client=self._client, prompts=self._prompts, history=history)
        run = self._execute(question, plan)
        run.answer = finalize(question, run.outcomes, client=self._client, prompts=self._prompts)

        if self._memory is not None:
            try:
                self._memory.save_turn(question, run.answer)
            except Exception as error:
                LOGGER.warning("Failed to record the conversation turn: %s", error)
        return run

    def _execute(self, question: str, plan: Plan) -> AgentRun:
        steps: List[PlanStep] = list(plan.steps)
        run = AgentRun(answer="")
        cursor = 0
        while cursor < len(steps):
            step = steps[cursor]
            step.status = "in_progress"
            LOGGER.info("Step %d/%d: %s", cursor + 1, len(steps), step.title)
            outcome = self._step_runner.run(question, step)
            step.status = outcome.status
            run.outcomes.append(outcome)

            decision = evaluate(
                outcome,
                steps[cursor + 1 :],
                client=self._client,
                prompts=self._prompts,
            )
            run.decisions.append(decision)
            LOGGER.info("Decision after step %d: %s (%s)", step.id, decision.decision, decision.reason)
            if decision.decision == "finalize":
                break
            if decision.decision == "revise":
                steps = apply_revision(steps, cursor, decision.new_steps)
            cursor += 1
        run.plan = steps
        return run
