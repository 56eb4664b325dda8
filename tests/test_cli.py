from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, Dict, List

import pytest
from typer.testing import CliRunner

from codeqa import cli
from codeqa.cli import app
from codeqa.config import AppConfig
from codeqa.errors import VectorStoreError
from codeqa.runtime import AgentRun


class StubAgent:
    def __init__(self, answer: str = "", error: Exception | None = None) -> None:
        self._answer = answer
        self._error = error
        self.questions: List[str] = []
        self.closed = False

    def answer(self, question: str) -> AgentRun:
        self.questions.append(question)
        if self._error is not None:
            raise self._error
        return AgentRun(answer=self._answer)

    def close(self) -> None:
        self.closed = True


def _config(tmp_path: Path, extra: str = "") -> Path:
    path = tmp_path / "codeqa.yaml"
    path.write_text(
        textwrap.dedent(
            """
            llm:
              provider: openai
              model: gpt-4o
            credentials:
              openai_api_key: sk-test
            embeddings:
              provider: hash
            """
        ).strip()
        + "\n"
        + extra,
        encoding="utf-8",
    )
    return path


def test_ask_prints_answer(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    agent = StubAgent("Class Foo is defined in src/app/foo.py:1-20.")
    calls: Dict[str, Any] = {}

    def fake_build_agent(config: AppConfig, *, use_memory: bool = True) -> StubAgent:
        calls["config"] = config
        calls["use_memory"] = use_memory
        return agent

    monkeypatch.setattr(cli, "build_agent", fake_build_agent)

    result = CliRunner().invoke(app, ["What is class Foo?", "--config", str(_config(tmp_path)), "--no-memory"])

    assert result.exit_code == 0, result.output
    assert "Class Foo is defined in src/app/foo.py:1-20." in result.output
    assert agent.questions == ["What is class Foo?"]
    assert calls["use_memory"] is False
    assert calls["config"].llm.model == "gpt-4o"
    assert agent.closed is True


def test_ask_reports_configuration_errors(tmp_path: Path) -> None:
    path = _config(tmp_path, "runtime:\n  max_turn: 3\n")

    result = CliRunner().invoke(app, ["q", "--config", str(path)])

    assert result.exit_code == 1
    assert "Error: Configuration Error: Invalid configuration:" in result.output
    assert "runtime.max_turn" in result.output


def test_ask_reports_runtime_failures(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    agent = StubAgent(error=VectorStoreError("Vector store health check failed: no collection is reachable (code)."))
    monkeypatch.setattr(cli, "build_agent", lambda config, use_memory=True: agent)

    result = CliRunner().invoke(app, ["q", "-c", str(_config(tmp_path))])

    assert result.exit_code == 1
    assert "Error: Vector store health check failed" in result.output
    assert "Details: VectorStoreError(" in result.output
    assert agent.closed is True
