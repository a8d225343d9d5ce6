"""
Agent Tools

Tool contract, built-in output types and the per-agent registry.
"""

from .base import (
    Tool,
    DynamicTool,
    ToolOutput,
    StringOutput,
    JSONOutput,
    ToolOptions,
    RunOptions,
    ToolEvents,
)
from .registry import ToolRegistry

__all__ = [
    "Tool",
    "DynamicTool",
    "ToolOutput",
    "StringOutput",
    "JSONOutput",
    "ToolOptions",
    "RunOptions",
    "ToolEvents",
    "ToolRegistry",
]
