"""Execute one plan step through a bounded tool-calling conversation."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import format_error
from ..models.llm_client import (
    ChatResponse,
    LLMClient,
    LLMClientError,
    Message,
    ToolCall,
    assistant_message,
    assistant_tool_call_message,
    system_message,
    tool_result_message,
    user_message,
)
from ..planning.schemas import PlanStep, StepOutcome
from ..prompts import PromptLibrary
from ..tools.base import ToolContext, ToolFormat
from ..tools.registry import ToolRegistry

__all__ = ["StepRunner", "TurnState"]

LOGGER = logging.getLogger(__name__)


class TurnState(str, Enum):
    """Where the step conversation currently is."""

    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    SUMMARIZING = "summarizing"


class StepRunner:
    """Drive the model through tool calls until the step is answered.

    The conversation alternates between asking the model for a turn and
    executing the tool calls it requested. At most ``max_turns`` model turns
    are spent; a turn without tool calls, or a model failure, moves straight to
    summarizing. Tool calls from one turn run one after another and any failure
    is returned to the model as an ``{"error": ...}`` result.
    """

    def __init__(
        self,
        *,
        client: LLMClient,
        registry: ToolRegistry,
        context: ToolContext,
        prompts: PromptLibrary,
        max_turns: int = 10,
        tool_format: ToolFormat = "openai",
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1.")
        self._client = client
        self._registry = registry
        self._context = context
        self._prompts = prompts
        self._max_turns = max_turns
        self._tool_format = tool_format

    def seed_messages(self, question: str, step: PlanStep) -> List[Message]:
        return [
            system_message(self._prompts.step_system),
            # Sent as a user turn so every provider accepts it.
            user_message(self._prompts.step_developer),
            user_message(
                f"Original question: {question}\n\n"
                f"Current step to complete:\n{step.title}\n\n{step.description}"
            ),
        ]

    def run(self, question: str, step: PlanStep) -> StepOutcome:
        messages = self.seed_messages(question, step)
        specs = self._registry.specs(self._tool_format)
        state = TurnState.AWAITING_MODEL
        turns = 0
        pending: Optional[ChatResponse] = None

        while state is not TurnState.SUMMARIZING:
            if state is TurnState.AWAITING_MODEL:
                if turns >= self._max_turns:
                    LOGGER.info("Step %s reached the turn budget (%d)", step.id, self._max_turns)
                    state = TurnState.SUMMARIZING
                    continue
                turns += 1
                try:
                    response = self._client.chat(messages, specs, single_tool_call=True)
                except LLMClientError as error:
                    LOGGER.warning("Model turn %d for step %s failed: %s", turns, step.id, error)
                    state = TurnState.SUMMARIZING
                    continue
                if not response.tool_calls:
                    if response.content:
                        messages.append(assistant_message(response.content))
                    state = TurnState.SUMMARIZING
                    continue
                messages.append(assistant_tool_call_message(response))
                pending = response
                state = TurnState.EXECUTING_TOOLS
            else:
                assert pending is not None
                for call in pending.tool_calls:
                    result = self._execute(call)
                    messages.append(tool_result_message(call.id, call.name, result))
                pending = None
                state = TurnState.AWAITING_MODEL

        LOGGER.debug("Step %s used %d model turn(s)", step.id, turns)
        return self._summarize(messages, step)

    def _execute(self, call: ToolCall) -> Any:
        LOGGER.info("Tool call %s(%s)", call.name, call.arguments)
        try:
            return self._registry.invoke(call.name, call.arguments, self._context)
        except Exception as error:
            LOGGER.warning("Tool %s failed: %s", call.name, format_error(error))
            failure: Dict[str, str] = {"error": format_error(error)}
            return failure

    def _summarize(self, messages: List[Message], step: PlanStep) -> StepOutcome:
        messages.append(
            user_message(
                "Summarize the outcome of this step. Provide stepId: "
                f"{step.id}, status (completed|failed), and a concise summary of what was "
                "found, including file paths and line ranges."
            )
        )
        try:
            outcome = self._client.structured_output(messages, StepOutcome)
        except LLMClientError as error:
            return StepOutcome(
                step_id=step.id,
                status="failed",
                summary=f"Failed to complete step: {error}",
            )
        return StepOutcome(step_id=step.id, status=outcome.status, summary=outcome.summary)
