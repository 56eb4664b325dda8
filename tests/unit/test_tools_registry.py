from __future__ import annotations

import pytest

from codeqa.errors import ToolError
from codeqa.retrieval import MultiCollectionStore
from codeqa.tools import ToolContext, ToolRegistry
from codeqa.tools.retrieval import SymbolSearchTool

from conftest import InMemoryCollection, VectorEmbedder, chunk

RETRIEVAL_TOOLS = ["symbol_search", "get_file", "regex_search", "semantic_search"]


def test_default_registry_names() -> None:
    assert ToolRegistry.default().names() == RETRIEVAL_TOOLS
    assert ToolRegistry.default(include_source_tools=True).names() == RETRIEVAL_TOOLS + [
        "read_source_file",
        "list_source_directory",
        "find_source_files",
    ]


def test_duplicate_tool_names_are_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate tool name: symbol_search"):
        ToolRegistry([SymbolSearchTool(), SymbolSearchTool()])


def test_specs_render_in_both_wire_formats() -> None:
    registry = ToolRegistry.default()

    openai_spec = registry.specs("openai")[0]
    anthropic_spec = registry.specs("anthropic")[0]

    assert openai_spec["type"] == "function"
    assert openai_spec["function"]["name"] == "symbol_search"
    parameters = openai_spec["function"]["parameters"]
    assert parameters["type"] == "object"
    assert parameters["required"] == ["query"]
    assert "title" not in parameters
    assert anthropic_spec["name"] == "symbol_search"
    assert anthropic_spec["input_schema"] == parameters


def test_unknown_tool_lists_available_names(foo_store: MultiCollectionStore) -> None:
    registry = ToolRegistry.default()

    with pytest.raises(ToolError) as excinfo:
        registry.invoke("delete_everything", {}, ToolContext(store=foo_store))

    assert excinfo.value.tool_name == "delete_everything"
    assert "Available tools: symbol_search, get_file, regex_search, semantic_search" in str(excinfo.value)


def test_invalid_arguments_are_rejected_before_execution(foo_store: MultiCollectionStore) -> None:
    registry = ToolRegistry.default()
    context = ToolContext(store=foo_store)

    with pytest.raises(ToolError, match="Invalid arguments - query"):
        registry.invoke("symbol_search", {"query": ""}, context)
    with pytest.raises(ToolError, match="Invalid arguments - topK"):
        registry.invoke("semantic_search", {"query": "foo", "topK": 500}, context)
    with pytest.raises(ToolError, match="must be a JSON object"):
        registry.invoke("get_file", '["src/app/foo.py"]', context)


def test_invalid_regex_is_a_tool_error(foo_store: MultiCollectionStore) -> None:
    registry = ToolRegistry.default()

    with pytest.raises(ToolError, match="Invalid regular expression"):
        registry.invoke("regex_search", {"pattern": "(unclosed"}, ToolContext(store=foo_store))


def test_invoke_accepts_json_string_arguments(foo_store: MultiCollectionStore) -> None:
    registry = ToolRegistry.default()

    result = registry.invoke("symbol_search", '{"query": "Foo"}', ToolContext(store=foo_store))

    assert result["query"] == "Foo"
    assert result["totalResults"] == 1
    assert result["results"][0]["className"] == "Foo"
    assert result["results"][0]["code"].startswith("class Foo:")
    assert result["results"][0]["collection"] == "code"


def test_regex_results_use_matching_code_key(foo_store: MultiCollectionStore) -> None:
    result = ToolRegistry.default().invoke(
        "regex_search", {"pattern": r"def \w+\(self\)"}, ToolContext(store=foo_store)
    )

    assert result["totalResults"] == 1
    assert "matchingCode" in result["results"][0]
    assert "code" not in result["results"][0]


def test_get_file_returns_content(foo_store: MultiCollectionStore) -> None:
    result = ToolRegistry.default().invoke(
        "get_file", {"filePath": "src/app/foo.py"}, ToolContext(store=foo_store)
    )

    assert result == {
        "filePath": "src/app/foo.py",
        "content": "class Foo:\n    def bar(self):\n        return 1\n",
    }


def test_semantic_search_defaults_to_context_top_k() -> None:
    collection = InMemoryCollection(
        [
            chunk(f"c{index}", f"src/m{index}.py", f"module {index}", embedding=[1.0, float(index)])
            for index in range(5)
        ]
    )
    store = MultiCollectionStore({"code": collection}, VectorEmbedder({"modules": [1.0, 0.0]}))
    registry = ToolRegistry.default()

    default = registry.invoke("semantic_search", {"query": "modules"}, ToolContext(store=store, default_top_k=2))
    explicit = registry.invoke(
        "semantic_search",
        {"query": "modules", "topK": 4, "filter": {"relativePath": "src/m"}},
        ToolContext(store=store, default_top_k=2),
    )

    assert default["totalResults"] == 2
    assert [item["filePath"] for item in default["results"]] == ["src/m0.py", "src/m1.py"]
    assert all("score" in item for item in default["results"])
    assert explicit["totalResults"] == 4
    assert collection.queries[0]["k"] == 2
    store.close()
