"""Name-indexed catalog of the tools offered to the model."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ..errors import ToolError
from .base import Tool, ToolContext, ToolFormat
from .retrieval import GetFileTool, RegexSearchTool, SemanticSearchTool, SymbolSearchTool
from .source_files import FindSourceFilesTool, ListSourceDirectoryTool, ReadSourceFileTool

__all__ = ["ToolRegistry"]


class ToolRegistry:
    """Closed set of tools registered under stable names."""

    def __init__(self, tools: Iterable[Tool[Any]]) -> None:
        self._tools: Dict[str, Tool[Any]] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    @classmethod
    def default(cls, *, include_source_tools: bool = False) -> "ToolRegistry":
        """Retrieval tools, plus the file-system tools when sources are configured."""
        tools: List[Tool[Any]] = [
            SymbolSearchTool(),
            GetFileTool(),
            RegexSearchTool(),
            SemanticSearchTool(),
        ]
        if include_source_tools:
            tools.extend([ReadSourceFileTool(), ListSourceDirectoryTool(), FindSourceFilesTool()])
        return cls(tools)

    def names(self) -> List[str]:
        return list(self._tools)

    def get(self, name: str) -> Tool[Any]:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolError(name, f"Unknown tool. Available tools: {', '.join(self._tools)}")
        return tool

    def specs(self, fmt: ToolFormat = "openai") -> List[Dict[str, Any]]:
        return [tool.to_spec(fmt) for tool in self._tools.values()]

    def invoke(
        self,
        name: str,
        raw_arguments: Optional[Union[str, Mapping[str, Any]]],
        context: ToolContext,
    ) -> Any:
        """Look up, validate and execute one tool call."""
        tool = self.get(name)
        arguments: Any = raw_arguments
        if isinstance(raw_arguments, str):
            try:
                arguments = json.loads(raw_arguments) if raw_arguments.strip() else {}
            except json.JSONDecodeError as error:
                raise ToolError(name, f"Arguments are not valid JSON: {error.msg}") from error
        return tool.run(arguments, context)
