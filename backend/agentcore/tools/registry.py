"""
Tool Registry

Per-agent catalogue of tools: registration, lookup and model-facing descriptions.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel

from .base import DynamicTool, RunOptions, Tool, ToolOptions, ToolOutput
from ..errors import ConfigurationError, ToolError
from ...utils.logger import get_logger

logger = get_logger(__name__)


class ToolRegistry:
    """
    Tools owned by one agent. Registries are never shared between agents.

    Insertion order is kept so tool lists sent to the model are stable.
    """

    def __init__(self):
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> Tool:
        """
        Register a tool instance.

        Raises:
            ConfigurationError: If a tool with the same name exists
        """
        if tool.name in self._tools:
            raise ConfigurationError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        logger.debug("Registered tool", tool_name=tool.name)
        return tool

    def register_function(
        self,
        name: str,
        description: str,
        input_model: Type[BaseModel],
        func: Callable[..., Any],
        options: Optional[ToolOptions] = None,
    ) -> Tool:
        """Register a standalone callable as a tool."""
        return self.register(DynamicTool(name, description, input_model, func, options))

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def all(self) -> List[Tool]:
        return list(self._tools.values())

    def function_descriptions(self, exclude: Iterable[str] = ()) -> List[Dict[str, Any]]:
        """Function-calling definitions for every tool not in ``exclude``."""
        excluded = set(exclude)
        return [tool.to_openai_function() for tool in self._tools.values() if tool.name not in excluded]

    async def execute_tool(
        self,
        name: str,
        arguments: Dict[str, Any],
        options: Optional[RunOptions] = None,
    ) -> ToolOutput:
        """
        Run a tool by name.

        Raises:
            ToolError: Unknown tool, or the tool's own failure
        """
        tool = self._tools.get(name)
        if not tool:
            raise ToolError(f"Unknown tool: {name}", {"tool": name, "available": self.names()})
        return await tool.run(arguments, options)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
