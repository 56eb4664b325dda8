"""Retrieval tools backed by the multi-collection store."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import Field

from ..errors import ToolError
from ..retrieval.store import compile_pattern
from ..retrieval.types import QueryFilter
from .base import Tool, ToolContext, ToolParams, hit_to_dict

__all__ = ["GetFileTool", "RegexSearchTool", "SemanticSearchTool", "SymbolSearchTool"]


class SymbolSearchParams(ToolParams):
    query: str = Field(min_length=1, description="Class, method or function name (substring match).")
    filePaths: Optional[List[str]] = Field(
        default=None, description="Only return hits whose path contains one of these fragments."
    )


class SymbolSearchTool(Tool[SymbolSearchParams]):
    name = "symbol_search"
    description = (
        "Find code chunks by class, method or function name. Fragments of the same "
        "unit are merged into one result."
    )
    params_model = SymbolSearchParams

    def execute(self, args: SymbolSearchParams, context: ToolContext) -> Dict[str, Any]:
        hits = context.store.search_by_symbol(args.query, args.filePaths)
        return {
            "query": args.query,
            "totalResults": len(hits),
            "results": [hit_to_dict(hit) for hit in hits],
        }


class GetFileParams(ToolParams):
    filePath: str = Field(min_length=1, description="Relative path of the file, as shown in search results.")


class GetFileTool(Tool[GetFileParams]):
    name = "get_file"
    description = "Retrieve the complete indexed contents of one file."
    params_model = GetFileParams

    def execute(self, args: GetFileParams, context: ToolContext) -> Dict[str, Any]:
        result = context.store.get_file(args.filePath)
        return {"filePath": result.path, "content": result.text}


class RegexSearchParams(ToolParams):
    pattern: str = Field(
        min_length=1,
        description="Regular expression; prefix with (?i) for case-insensitive matching.",
    )
    filePaths: Optional[List[str]] = Field(
        default=None, description="Only search files whose path contains one of these fragments."
    )


class RegexSearchTool(Tool[RegexSearchParams]):
    name = "regex_search"
    description = "Search chunk text with a regular expression."
    params_model = RegexSearchParams

    def parse(self, raw: Any) -> RegexSearchParams:
        args = super().parse(raw)
        try:
            compile_pattern(args.pattern)
        except re.error as error:
            raise ToolError(self.name, f"Invalid regular expression: {error}") from error
        return args

    def execute(self, args: RegexSearchParams, context: ToolContext) -> Dict[str, Any]:
        hits = context.store.regex_search(args.pattern, args.filePaths)
        return {
            "pattern": args.pattern,
            "totalResults": len(hits),
            "results": [hit_to_dict(hit, code_key="matchingCode") for hit in hits],
        }


class SemanticFilter(ToolParams):
    chunkType: Optional[str] = None
    language: Optional[str] = None
    package: Optional[str] = None
    className: Optional[str] = None
    relativePath: Optional[str] = Field(default=None, description="Substring of the file path.")
    collectionName: Optional[str] = Field(default=None, description="Search only this collection.")


class SemanticSearchParams(ToolParams):
    query: str = Field(min_length=1, description="Natural-language description of the code sought.")
    topK: Optional[int] = Field(default=None, ge=1, le=50, description="Number of results to return.")
    filter: Optional[SemanticFilter] = None


class SemanticSearchTool(Tool[SemanticSearchParams]):
    name = "semantic_search"
    description = "Embedding similarity search across all collections, best matches first."
    params_model = SemanticSearchParams

    def execute(self, args: SemanticSearchParams, context: ToolContext) -> Dict[str, Any]:
        query_filter = None
        if args.filter is not None:
            query_filter = QueryFilter(
                chunk_type=args.filter.chunkType,
                language=args.filter.language,
                package=args.filter.package,
                class_name=args.filter.className,
                relative_path=args.filter.relativePath,
                collection_name=args.filter.collectionName,
            )
        hits = context.store.semantic_search(
            args.query, args.topK or context.default_top_k, query_filter
        )
        return {
            "query": args.query,
            "totalResults": len(hits),
            "results": [hit_to_dict(hit) for hit in hits],
        }
