"""Tools exposed to the model during step execution."""

from .base import Tool, ToolContext, ToolFormat, ToolParams, hit_to_dict
from .registry import ToolRegistry

__all__ = ["Tool", "ToolContext", "ToolFormat", "ToolParams", "ToolRegistry", "hit_to_dict"]
