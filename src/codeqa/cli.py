"""Command-line entry point: ask one question about the indexed codebase."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .config import DEFAULT_CONFIG_NAME, AppConfig, load_config
from .embeddings import create_embedder
from .errors import format_error
from .memory import ConversationMemory, HistorySummarizer, MemorySettings
from .models import create_client
from .prompts import PromptLibrary
from .retrieval import MultiCollectionStore
from .retrieval.chroma import create_backends
from .runtime import QueryAgent, StepRunner
from .tools import ToolContext, ToolRegistry

APP_HELP = "Answer natural-language questions about an indexed codebase."

LOG_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}

app = typer.Typer(help=APP_HELP, add_completion=False)


def configure_logging(level: str) -> None:
    """Send log records to stderr so stdout carries only the answer."""
    logging.basicConfig(
        level=LOG_LEVELS.get(level, logging.ERROR),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_agent(config: AppConfig, *, use_memory: bool = True) -> QueryAgent:
    """Wire every collaborator from validated configuration."""
    client = create_client(config)
    embedder = create_embedder(config)
    store = MultiCollectionStore(
        create_backends(config.vector_store),
        embedder,
        default_top_k=config.runtime.top_k,
    )
    prompts = PromptLibrary(config.prompts.overrides())
    registry = ToolRegistry.default(include_source_tools=bool(config.sources))
    context = ToolContext(store=store, sources=list(config.sources), default_top_k=config.runtime.top_k)
    step_runner = StepRunner(
        client=client,
        registry=registry,
        context=context,
        prompts=prompts,
        max_turns=config.runtime.max_turns,
        tool_format=config.llm.tool_format or "openai",
    )

    memory = None
    if use_memory and config.memory.enabled:
        summarizer = HistorySummarizer(client, prompts.summarize_history)
        memory = ConversationMemory(
            config.memory.history_path,
            embedder=embedder,
            summarizer=summarizer,
            settings=MemorySettings.from_config(config.memory),
        )
    return QueryAgent(
        client=client,
        store=store,
        step_runner=step_runner,
        prompts=prompts,
        memory=memory,
    )


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question about the indexed code."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the YAML configuration file (environment variables override it).",
    ),
    no_memory: bool = typer.Option(
        False,
        "--no-memory",
        help="Skip the answer cache and do not record this question.",
    ),
) -> None:
    """Answer QUESTION and print the grounded answer."""
    agent: Optional[QueryAgent] = None
    try:
        settings = load_config(Path(config))
        configure_logging(settings.logging.level)
        agent = build_agent(settings, use_memory=not no_memory)
        run = agent.answer(question)
    except Exception as error:
        typer.echo(f"Error: {format_error(error)}", err=True)
        typer.echo(f"Details: {error!r}", err=True)
        raise typer.Exit(code=1) from error
    finally:
        if agent is not None:
            agent.close()
    typer.echo(run.answer)


if __name__ == "__main__":
    app()
