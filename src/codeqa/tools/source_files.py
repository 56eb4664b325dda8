"""Sandboxed read-only access to configured source roots."""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from ..config import SourceRoot
from ..errors import ToolError
from .base import Tool, ToolContext, ToolParams

__all__ = ["FindSourceFilesTool", "ListSourceDirectoryTool", "ReadSourceFileTool"]


MAX_FILE_BYTES = 1024 * 1024
MAX_DIRECTORY_ENTRIES = 100


def _resolve_root(tool: str, context: ToolContext, module: Optional[str]) -> Tuple[SourceRoot, Path]:
    if not context.sources:
        raise ToolError(tool, "No source roots are configured.")
    if module is None:
        source = context.sources[0]
    else:
        matches = [source for source in context.sources if source.module == module]
        if not matches:
            known = ", ".join(source.module for source in context.sources)
            raise ToolError(tool, f"Unknown module '{module}'. Available: {known}")
        source = matches[0]
    root = Path(source.code_path).expanduser().resolve()
    if not root.is_dir():
        raise ToolError(tool, f"Source root for '{source.module}' does not exist: {root}")
    return source, root


def _inside(tool: str, root: Path, relative: str) -> Path:
    target = (root / relative).resolve()
    try:
        target.relative_to(root)
    except ValueError as error:
        raise ToolError(tool, f"Path '{relative}' is outside the source root.") from error
    return target


class ReadSourceFileParams(ToolParams):
    path: str = Field(min_length=1, description="File path relative to the source root.")
    module: Optional[str] = Field(default=None, description="Source module; defaults to the first one.")


class ReadSourceFileTool(Tool[ReadSourceFileParams]):
    name = "read_source_file"
    description = "Read a file directly from a configured source root (max 1 MB)."
    params_model = ReadSourceFileParams

    def execute(self, args: ReadSourceFileParams, context: ToolContext) -> Dict[str, Any]:
        source, root = _resolve_root(self.name, context, args.module)
        target = _inside(self.name, root, args.path)
        if not target.is_file():
            raise ToolError(self.name, f"File not found: {args.path}")
        size = target.stat().st_size
        if size > MAX_FILE_BYTES:
            raise ToolError(self.name, f"File is too large ({size} bytes; limit {MAX_FILE_BYTES}).")
        content = target.read_text(encoding="utf-8", errors="replace")
        return {
            "module": source.module,
            "path": target.relative_to(root).as_posix(),
            "lineCount": len(content.splitlines()),
            "content": content,
        }


class ListSourceDirectoryParams(ToolParams):
    path: str = Field(default=".", description="Directory relative to the source root.")
    module: Optional[str] = None
    pattern: Optional[str] = Field(default=None, description="Glob applied to entry names, e.g. '*.py'.")


class ListSourceDirectoryTool(Tool[ListSourceDirectoryParams]):
    name = "list_source_directory"
    description = "List a directory in a configured source root; directories first."
    params_model = ListSourceDirectoryParams

    def execute(self, args: ListSourceDirectoryParams, context: ToolContext) -> Dict[str, Any]:
        source, root = _resolve_root(self.name, context, args.module)
        target = _inside(self.name, root, args.path)
        if not target.is_dir():
            raise ToolError(self.name, f"Directory not found: {args.path}")

        directories: List[Dict[str, Any]] = []
        files: List[Dict[str, Any]] = []
        for entry in target.iterdir():
            if args.pattern and not fnmatch.fnmatch(entry.name, args.pattern):
                continue
            if entry.is_dir():
                directories.append({"name": entry.name, "type": "directory"})
            else:
                files.append({"name": entry.name, "type": "file", "size": entry.stat().st_size})
        directories.sort(key=lambda item: item["name"])
        files.sort(key=lambda item: item["name"])
        entries = directories + files
        return {
            "module": source.module,
            "path": target.relative_to(root).as_posix() or ".",
            "totalEntries": len(entries),
            "truncated": len(entries) > MAX_DIRECTORY_ENTRIES,
            "entries": entries[:MAX_DIRECTORY_ENTRIES],
        }


class FindSourceFilesParams(ToolParams):
    pattern: str = Field(min_length=1, description="Glob such as '*.py' or 'src/**/test_*.py'.")
    module: Optional[str] = None
    maxResults: int = Field(default=50, ge=1, le=500)


class FindSourceFilesTool(Tool[FindSourceFilesParams]):
    name = "find_source_files"
    description = "Find files by glob pattern in a configured source root."
    params_model = FindSourceFilesParams

    def execute(self, args: FindSourceFilesParams, context: ToolContext) -> Dict[str, Any]:
        source, root = _resolve_root(self.name, context, args.module)
        # Bare name patterns search the whole tree.
        if "/" in args.pattern or "**" in args.pattern:
            candidates = root.glob(args.pattern)
        else:
            candidates = root.rglob(args.pattern)
        matches = sorted(
            path.relative_to(root).as_posix()
            for path in candidates
            if path.is_file() and path.resolve().is_relative_to(root)
        )
        return {
            "module": source.module,
            "pattern": args.pattern,
            "totalResults": len(matches),
            "files": matches[: args.maxResults],
        }
