"""Application error hierarchy surfaced to the command line."""

from __future__ import annotations

__all__ = [
    "AppError",
    "ConfigError",
    "LLMError",
    "ToolError",
    "VectorStoreError",
    "format_error",
]


class AppError(Exception):
    """Base error carrying a short machine-readable code."""

    def __init__(self, message: str, code: str = "APP_ERROR") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigError(AppError):
    """Raised when configuration is missing or invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Configuration Error: {message}", "CONFIG_ERROR")


class ToolError(AppError):
    """Raised when a tool rejects its arguments or fails downstream."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f'Tool "{tool_name}" Error: {message}', "TOOL_ERROR")
        self.tool_name = tool_name


class VectorStoreError(AppError):
    """Raised when the vector store is unreachable or a lookup fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "VECTOR_STORE_ERROR")


class LLMError(AppError):
    """Raised when a language-model failure is terminal for the query."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "LLM_ERROR")


def format_error(error: object) -> str:
    """Render ``error`` as a single user-facing line."""
    if isinstance(error, AppError):
        return error.message
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    return repr(error)
