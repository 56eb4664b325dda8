"""Default behavioural prompts and the per-process prompt library."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

__all__ = ["DEFAULT_PROMPTS", "PromptLibrary"]

LOGGER = logging.getLogger(__name__)


PLANNER_SYSTEM = """You are an expert software engineer answering questions about THIS codebase.

Break the user query into a concise, ordered to-do plan. Each step has:
- id: step number (1, 2, 3, ...)
- title: brief title of the step
- description: what needs to be done in this step
- status: always "pending"

Return structured JSON only: the plan object, no explanatory text.

Keep the plan achievable with the available tools (symbol_search, get_file,
regex_search, semantic_search and, when configured, the source file tools)."""


STEP_SYSTEM = """You are solving ONE step from the plan.

Call the available tools until you have enough information to complete this step accurately.

Guidelines:
- Prefer precise symbol lookup (symbol_search) and file retrieval (get_file) before broad regex or semantic search
- Stop calling tools once you have sufficient context
- Give every tool call a clear purpose

Stop when you have gathered enough information to complete this step."""


STEP_DEVELOPER = """Context: you are analysing a source-code corpus that was indexed into semantic chunks.

Metadata available on each chunk:
- relativePath: file path from the source root
- absolutePath: full file path
- package: package or namespace (optional)
- className: class or type name (optional)
- methodName: method or function name (optional)
- chunkType: kind of chunk (class, function, method, property, file, ...)
- language: source language of the chunk
- lineStart, lineEnd: line range in the source file
- contentHash: SHA-256 of the chunk text

Available tools:
1. symbol_search(query, filePaths?) - find chunks by class or method name
2. get_file(filePath) - retrieve the complete indexed contents of a file
3. regex_search(pattern, filePaths?) - pattern search over chunk text (escape regex special characters)
4. semantic_search(query, topK?, filter?) - embedding similarity search
5. read_source_file, list_source_directory, find_source_files - raw source access, when configured

Cite exact file paths and line numbers in your findings."""


EVALUATOR_SYSTEM = """Compare the most recent step outcome with the remaining plan steps.

Decide one of:
- "continue": move on to the next step
- "finalize": there is enough information to answer the user's question completely
- "revise": the remaining plan needs to change; provide newSteps to replace it

Give a concise reason for the decision. Return structured JSON only."""


FINALIZER_SYSTEM = """Produce the final answer to the user's question using only the findings of the completed steps.

Requirements:
- Cite exact file paths and symbol names for every code reference
- Citation format: filepath:lineStart-lineEnd
- Quote relevant code snippets in code blocks
- If information gaps remain, say so and suggest next steps
- Only reference code that was actually retrieved"""


SUMMARIZE_HISTORY = """Summarize the following conversation history in 2-3 sentences, focusing on key facts discovered:

{{HISTORY}}

Summary:"""


DEFAULT_PROMPTS: Dict[str, str] = {
    "planner_system": PLANNER_SYSTEM,
    "step_system": STEP_SYSTEM,
    "step_developer": STEP_DEVELOPER,
    "evaluator_system": EVALUATOR_SYSTEM,
    "finalizer_system": FINALIZER_SYSTEM,
    "summarize_history": SUMMARIZE_HISTORY,
}


class PromptLibrary:
    """Resolve prompt text, reading each override file at most once."""

    def __init__(self, overrides: Optional[Mapping[str, str | Path]] = None) -> None:
        unknown = set(overrides or {}) - set(DEFAULT_PROMPTS)
        if unknown:
            raise KeyError(f"Unknown prompt name(s): {', '.join(sorted(unknown))}")
        self._overrides: Dict[str, Path] = {
            name: Path(path) for name, path in (overrides or {}).items()
        }
        self._cache: Dict[str, str] = {}

    def get(self, name: str) -> str:
        if name in self._cache:
            return self._cache[name]
        if name not in DEFAULT_PROMPTS:
            raise KeyError(f"Unknown prompt: {name}")
        text = DEFAULT_PROMPTS[name]
        override = self._overrides.get(name)
        if override is not None:
            try:
                loaded = override.read_text(encoding="utf-8").strip()
            except OSError as error:
                LOGGER.warning("Prompt override %s unreadable (%s); using default", override, error)
            else:
                if loaded:
                    text = loaded
        self._cache[name] = text
        return text

    @property
    def planner_system(self) -> str:
        return self.get("planner_system")

    @property
    def step_system(self) -> str:
        return self.get("step_system")

    @property
    def step_developer(self) -> str:
        return self.get("step_developer")

    @property
    def evaluator_system(self) -> str:
        return self.get("evaluator_system")

    @property
    def finalizer_system(self) -> str:
        return self.get("finalizer_system")

    @property
    def summarize_history(self) -> str:
        return self.get("summarize_history")
