"""Configuration loading: YAML file, environment overrides and pydantic validation."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError

__all__ = [
    "AppConfig",
    "CredentialsConfig",
    "EmbeddingsConfig",
    "LLMConfig",
    "LoggingConfig",
    "MemoryConfig",
    "PromptsConfig",
    "RuntimeConfig",
    "SourceRoot",
    "VectorStoreConfig",
    "load_config",
]


DEFAULT_CONFIG_NAME = "codeqa.yaml"


class ConfigModel(BaseModel):
    """Base model rejecting unknown keys so typos surface as errors."""

    model_config = ConfigDict(extra="forbid")


class LLMConfig(ConfigModel):
    provider: Literal["openai", "anthropic", "azure_openai"] = "openai"
    model: str = Field(min_length=1)
    tool_format: Optional[Literal["openai", "anthropic"]] = None
    timeout: float = Field(default=120.0, gt=0)

    @model_validator(mode="after")
    def _default_tool_format(self) -> "LLMConfig":
        if self.tool_format is None:
            self.tool_format = "anthropic" if self.provider == "anthropic" else "openai"
        return self


class CredentialsConfig(ConfigModel):
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_endpoint: Optional[str] = None
    azure_openai_deployment: Optional[str] = None


class EmbeddingsConfig(ConfigModel):
    provider: Literal["openai", "hash"] = "openai"
    model: str = "text-embedding-3-small"
    api_key: Optional[str] = None
    dimension: int = Field(default=256, gt=0)


class VectorStoreConfig(ConfigModel):
    host: str = "localhost"
    port: int = Field(default=8000, gt=0, lt=65536)
    collections: List[str] = Field(default_factory=lambda: ["code"], min_length=1)
    tenant: Optional[str] = None
    database: Optional[str] = None

    @field_validator("collections", mode="before")
    @classmethod
    def _split_collections(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class SourceRoot(ConfigModel):
    module: str = Field(min_length=1)
    code_path: str = Field(min_length=1)


class RuntimeConfig(ConfigModel):
    max_turns: int = Field(default=10, ge=1)
    top_k: int = Field(default=6, ge=1)


class LoggingConfig(ConfigModel):
    level: Literal["error", "warn", "info", "debug", "trace"] = "error"

    @field_validator("level", mode="before")
    @classmethod
    def _lower_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class PromptsConfig(ConfigModel):
    planner_system: Optional[str] = None
    step_system: Optional[str] = None
    step_developer: Optional[str] = None
    evaluator_system: Optional[str] = None
    finalizer_system: Optional[str] = None
    summarize_history: Optional[str] = None

    def overrides(self) -> Dict[str, str]:
        """Return only the prompt names that point at an override file."""
        return {name: path for name, path in self.model_dump().items() if path}


class MemoryConfig(ConfigModel):
    enabled: bool = True
    history_path: str = ".conversation_history.json"
    context_size: int = Field(default=6, ge=0)
    retention_size: int = Field(default=50, ge=2)
    summarization_enabled: bool = True
    max_tokens: int = Field(default=2000, gt=0)
    cache_threshold: float = Field(default=0.85, ge=0.0, le=1.0)


class AppConfig(ConfigModel):
    """Fully validated application configuration."""

    llm: LLMConfig
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    embeddings: EmbeddingsConfig = Field(default_factory=EmbeddingsConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    sources: List[SourceRoot] = Field(default_factory=list)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)


# Environment variable -> (section, key) in the raw configuration mapping.
ENV_OVERRIDES: Dict[str, tuple[str, str]] = {
    "LLM_PROVIDER": ("llm", "provider"),
    "LLM_MODEL": ("llm", "model"),
    "TOOL_FORMAT": ("llm", "tool_format"),
    "LLM_TIMEOUT": ("llm", "timeout"),
    "OPENAI_API_KEY": ("credentials", "openai_api_key"),
    "ANTHROPIC_API_KEY": ("credentials", "anthropic_api_key"),
    "AZURE_OPENAI_API_KEY": ("credentials", "azure_openai_api_key"),
    "AZURE_OPENAI_ENDPOINT": ("credentials", "azure_openai_endpoint"),
    "AZURE_OPENAI_DEPLOYMENT": ("credentials", "azure_openai_deployment"),
    "EMBEDDING_PROVIDER": ("embeddings", "provider"),
    "EMBEDDING_MODEL": ("embeddings", "model"),
    "EMBEDDING_API_KEY": ("embeddings", "api_key"),
    "CHROMA_HOST": ("vector_store", "host"),
    "CHROMA_PORT": ("vector_store", "port"),
    "CHROMA_COLLECTIONS": ("vector_store", "collections"),
    "CHROMA_TENANT": ("vector_store", "tenant"),
    "CHROMA_DATABASE": ("vector_store", "database"),
    "MAX_TURNS": ("runtime", "max_turns"),
    "TOP_K": ("runtime", "top_k"),
    "LOG_LEVEL": ("logging", "level"),
    "PROMPT_PLANNER_SYSTEM": ("prompts", "planner_system"),
    "PROMPT_STEP_SYSTEM": ("prompts", "step_system"),
    "PROMPT_STEP_DEVELOPER": ("prompts", "step_developer"),
    "PROMPT_EVALUATOR_SYSTEM": ("prompts", "evaluator_system"),
    "PROMPT_FINALIZER_SYSTEM": ("prompts", "finalizer_system"),
    "PROMPT_SUMMARIZE_HISTORY": ("prompts", "summarize_history"),
    "MEMORY_ENABLED": ("memory", "enabled"),
    "HISTORY_PATH": ("memory", "history_path"),
    "HISTORY_CONTEXT_SIZE": ("memory", "context_size"),
    "HISTORY_RETENTION_SIZE": ("memory", "retention_size"),
    "MEMORY_SUMMARIZATION_ENABLED": ("memory", "summarization_enabled"),
    "MEMORY_MAX_TOKENS": ("memory", "max_tokens"),
    "MEMORY_CACHE_THRESHOLD": ("memory", "cache_threshold"),
}


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk; a missing file is an empty mapping."""
    if not config_path.exists():
        return {}
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse {config_path}: {error}") from error
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level.")
    return data


def _apply_env(data: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    merged = {key: (dict(value) if isinstance(value, dict) else value) for key, value in data.items()}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        target = merged.setdefault(section, {})
        if not isinstance(target, dict):
            continue
        target[key] = value

    raw_sources = environ.get("SOURCES")
    if raw_sources:
        try:
            merged["sources"] = json.loads(raw_sources)
        except json.JSONDecodeError as error:
            raise ConfigError(f"SOURCES must be a JSON array: {error}") from error
    elif environ.get("CODE_SOURCE_PATH") and not merged.get("sources"):
        code_path = environ["CODE_SOURCE_PATH"]
        module = Path(code_path).name or "default"
        merged["sources"] = [{"module": module, "code_path": code_path}]
    return merged


def _format_validation_error(error: ValidationError) -> str:
    lines = ["Invalid configuration:"]
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "(root)"
        lines.append(f"  - {location}: {item.get('msg', 'invalid value')}")
    return "\n".join(lines)


def _check_credentials(config: AppConfig) -> None:
    creds = config.credentials
    provider = config.llm.provider
    if provider == "openai" and not creds.openai_api_key:
        raise ConfigError("OPENAI_API_KEY is required when llm.provider is 'openai'.")
    if provider == "anthropic" and not creds.anthropic_api_key:
        raise ConfigError("ANTHROPIC_API_KEY is required when llm.provider is 'anthropic'.")
    if provider == "azure_openai":
        missing = [
            name
            for name, value in (
                ("AZURE_OPENAI_API_KEY", creds.azure_openai_api_key),
                ("AZURE_OPENAI_ENDPOINT", creds.azure_openai_endpoint),
                ("AZURE_OPENAI_DEPLOYMENT", creds.azure_openai_deployment),
            )
            if not value
        ]
        if missing:
            raise ConfigError(
                f"{', '.join(missing)} required when llm.provider is 'azure_openai'."
            )
    if config.embeddings.provider == "openai" and not (
        config.embeddings.api_key or creds.openai_api_key
    ):
        raise ConfigError(
            "EMBEDDING_API_KEY or OPENAI_API_KEY is required when embeddings.provider is 'openai'."
        )


def load_config(
    path: Optional[Path | str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Load, merge and validate configuration.

    The YAML file at ``path`` (default ``codeqa.yaml``) provides the base values
    and environment variables override individual keys. Validation happens here,
    before any client is built, so every error is reported up front.
    """
    config_path = Path(path) if path is not None else Path(DEFAULT_CONFIG_NAME)
    env = os.environ if environ is None else environ
    data = _apply_env(_read_yaml(config_path), env)
    try:
        config = AppConfig.model_validate(data)
    except ValidationError as error:
        raise ConfigError(_format_validation_error(error)) from error
    _check_credentials(config)
    return config
