"""Write the final answer from recorded step outcomes only."""

from __future__ import annotations

from typing import Sequence

from ..errors import LLMError
from ..models.llm_client import LLMClient, LLMClientError, system_message, user_message
from ..planning.schemas import StepOutcome
from ..prompts import PromptLibrary

__all__ = ["finalize", "render_findings"]


def render_findings(outcomes: Sequence[StepOutcome]) -> str:
    return "\n\n".join(
        f"Step {outcome.step_id} ({outcome.status}):\n{outcome.summary}" for outcome in outcomes
    )


def finalize(
    question: str,
    outcomes: Sequence[StepOutcome],
    *,
    client: LLMClient,
    prompts: PromptLibrary,
) -> str:
    """Synthesize the answer without tools; any failure is terminal."""
    messages = [
        system_message(prompts.finalizer_system),
        user_message(
            f"Question: {question}\n\nFindings from the executed steps:\n\n"
            f"{render_findings(outcomes) or '(no findings)'}"
        ),
    ]
    try:
        response = client.chat(messages, None)
    except LLMClientError as error:
        raise LLMError(f"Failed to generate the final answer: {error}") from error
    answer = (response.content or "").strip()
    if not answer:
        raise LLMError("Failed to generate the final answer: the model returned no content.")
    return answer
