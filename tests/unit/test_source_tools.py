from __future__ import annotations

from pathlib import Path

import pytest

from codeqa.config import SourceRoot
from codeqa.errors import ToolError
from codeqa.retrieval import MultiCollectionStore
from codeqa.tools import ToolContext, ToolRegistry
from codeqa.tools import source_files


@pytest.fixture()
def source_tree(tmp_path: Path) -> Path:
    root = tmp_path / "service"
    (root / "src" / "pkg").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "src" / "pkg" / "core.py").write_text("class Core:\n    pass\n", encoding="utf-8")
    (root / "src" / "pkg" / "util.py").write_text("def helper():\n    return 1\n", encoding="utf-8")
    (root / "README.md").write_text("# Service\n", encoding="utf-8")
    (root / "setup.py").write_text("", encoding="utf-8")
    (tmp_path / "secret.txt").write_text("do not read", encoding="utf-8")
    return root


@pytest.fixture()
def context(source_tree: Path, foo_store: MultiCollectionStore, tmp_path: Path) -> ToolContext:
    other = tmp_path / "other"
    other.mkdir()
    (other / "main.go").write_text("package main\n", encoding="utf-8")
    return ToolContext(
        store=foo_store,
        sources=[
            SourceRoot(module="service", code_path=str(source_tree)),
            SourceRoot(module="other", code_path=str(other)),
        ],
    )


REGISTRY = ToolRegistry.default(include_source_tools=True)


def test_read_source_file_returns_content_and_line_count(context: ToolContext) -> None:
    result = REGISTRY.invoke("read_source_file", {"path": "src/pkg/core.py"}, context)

    assert result == {
        "module": "service",
        "path": "src/pkg/core.py",
        "lineCount": 2,
        "content": "class Core:\n    pass\n",
    }


def test_read_source_file_selects_module(context: ToolContext) -> None:
    result = REGISTRY.invoke("read_source_file", {"path": "main.go", "module": "other"}, context)

    assert result["module"] == "other"
    assert result["content"] == "package main\n"


def test_read_source_file_blocks_traversal(context: ToolContext) -> None:
    with pytest.raises(ToolError, match="outside the source root"):
        REGISTRY.invoke("read_source_file", {"path": "../secret.txt"}, context)


def test_read_source_file_rejects_unknown_module_and_missing_file(context: ToolContext) -> None:
    with pytest.raises(ToolError, match="Unknown module 'nope'. Available: service, other"):
        REGISTRY.invoke("read_source_file", {"path": "x.py", "module": "nope"}, context)
    with pytest.raises(ToolError, match="File not found: src/missing.py"):
        REGISTRY.invoke("read_source_file", {"path": "src/missing.py"}, context)


def test_read_source_file_enforces_size_limit(
    context: ToolContext, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(source_files, "MAX_FILE_BYTES", 8)

    with pytest.raises(ToolError, match="too large"):
        REGISTRY.invoke("read_source_file", {"path": "src/pkg/core.py"}, context)


def test_list_source_directory_puts_directories_first(context: ToolContext) -> None:
    result = REGISTRY.invoke("list_source_directory", {}, context)

    assert [entry["name"] for entry in result["entries"]] == ["docs", "src", "README.md", "setup.py"]
    assert [entry["type"] for entry in result["entries"]] == ["directory", "directory", "file", "file"]
    assert result["path"] == "."
    assert result["totalEntries"] == 4
    assert result["truncated"] is False


def test_list_source_directory_applies_pattern_and_cap(
    context: ToolContext, monkeypatch: pytest.MonkeyPatch
) -> None:
    filtered = REGISTRY.invoke("list_source_directory", {"path": "src/pkg", "pattern": "c*.py"}, context)
    monkeypatch.setattr(source_files, "MAX_DIRECTORY_ENTRIES", 1)
    capped = REGISTRY.invoke("list_source_directory", {}, context)

    assert [entry["name"] for entry in filtered["entries"]] == ["core.py"]
    assert filtered["path"] == "src/pkg"
    assert capped["truncated"] is True
    assert capped["totalEntries"] == 4
    assert len(capped["entries"]) == 1


def test_find_source_files_searches_recursively(context: ToolContext) -> None:
    bare = REGISTRY.invoke("find_source_files", {"pattern": "*.py"}, context)
    anchored = REGISTRY.invoke("find_source_files", {"pattern": "src/**/u*.py"}, context)
    limited = REGISTRY.invoke("find_source_files", {"pattern": "*.py", "maxResults": 1}, context)

    assert bare["files"] == ["setup.py", "src/pkg/core.py", "src/pkg/util.py"]
    assert anchored["files"] == ["src/pkg/util.py"]
    assert limited["totalResults"] == 3
    assert limited["files"] == ["setup.py"]


def test_source_tools_require_configured_roots(foo_store: MultiCollectionStore) -> None:
    with pytest.raises(ToolError, match="No source roots are configured"):
        REGISTRY.invoke("find_source_files", {"pattern": "*.py"}, ToolContext(store=foo_store))
