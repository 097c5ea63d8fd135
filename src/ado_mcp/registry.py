"""Tool registry.

Single source of truth for which tools exist and how a call is routed.
Populated once at startup and only read afterwards.
"""
import logging
from typing import Any, Optional

from mcp.types import CallToolResult

from ado_core.errors import ErrorKind, UnknownToolError, build_user_message

from .entity_tool import EntityTool, ToolContract

logger = logging.getLogger("ado-mcp.registry")


class DuplicateToolError(ValueError):
    """Raised when two tools are registered under the same name."""


class ToolRegistry:
    """Holds entity tools in registration order.

    Usage:
        registry = ToolRegistry()
        registry.register(EntityTool.from_config(PROJECTS, client))
        contracts = registry.get_all_contracts()
        result = await registry.invoke("projects", {"operation": "list"})
    """

    def __init__(self) -> None:
        self._tools: dict[str, EntityTool] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def register(self, tool: EntityTool) -> None:
        """Register a tool under its contract name.

        Raises:
            DuplicateToolError: If a tool with the same name is already registered
        """
        name = tool.get_contract().name
        if name in self._tools:
            raise DuplicateToolError(f"Tool '{name}' is already registered")
        self._tools[name] = tool
        logger.debug(f"Registered tool: {name} ({', '.join(tool.operation_names)})")

    def get_all_contracts(self) -> list[ToolContract]:
        return [tool.get_contract() for tool in self._tools.values()]

    def route(self, name: str) -> Optional[EntityTool]:
        return self._tools.get(name)

    async def invoke(self, name: str, arguments: Any) -> CallToolResult:
        """Route a call by tool name and execute it.

        Raises:
            UnknownToolError: If no tool is registered under name
            ClassifiedError: Propagated unchanged from the tool
        """
        tool = self.route(name)
        if tool is None:
            available = ", ".join(self._tools)
            message = f"Tool not found: {name}. Available tools: {available}"
            logger.warning(message)
            raise UnknownToolError(
                kind=ErrorKind.NOT_FOUND,
                source="ToolRegistry",
                source_operation="invoke",
                raw_message=message,
                user_message=build_user_message(ErrorKind.NOT_FOUND, message, "invoke"),
            )
        return await tool.execute(arguments)
