"""
Tool Registry
=============

Maps tool names to executors and is the single place tools are run from.

Guarantees callers rely on:
- execute() never raises: executor exceptions become failed results
- an unknown name fails with the full list of registered tools so the
  model can correct itself
- requires_approval() is fail-closed: unknown names need approval
- registering a name twice replaces the earlier executor
"""

from typing import Any, Mapping

from lumina.tools.base import ToolContext, ToolExecutor, ToolResult
from lumina.utils.logger import Logger

logger = Logger("ToolRegistry")


class ToolRegistry:
    """
    Registry of tool executors.

    Example:
        registry = ToolRegistry()
        registry.register(ReadNoteTool())

        if registry.requires_approval("read_note"):
            ...
        result = await registry.execute("read_note", {"paths": ["a.md"]}, context)
    """

    def __init__(self):
        self._tools: dict[str, ToolExecutor] = {}

    def register(self, tool: ToolExecutor) -> None:
        """Register a tool, replacing any tool with the same name."""
        if not tool.name:
            raise ValueError(f"{tool!r} has no name")

        if tool.name in self._tools:
            logger.debug(f"Replacing tool: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolExecutor | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def requires_approval(self, name: str) -> bool:
        tool = self._tools.get(name)
        if tool is None:
            return True
        return tool.requires_approval

    def tool_names(self) -> list[str]:
        """Registered names, in registration order."""
        return list(self._tools.keys())

    def get_all(self) -> list[ToolExecutor]:
        return list(self._tools.values())

    async def execute(
        self,
        name: str,
        params: Mapping[str, Any],
        context: ToolContext,
        raw_params: Mapping[str, str] | None = None
    ) -> ToolResult:
        """
        Execute a tool by name.

        Args:
            name: Tool name
            params: Coerced parameter values
            context: Workspace access for the tool
            raw_params: Source text of each parameter; used for the tool's
                text_parameters so prose reaches it exactly as written

        Returns:
            The tool's result, or a failed result for unknown tools and
            executor exceptions
        """
        tool = self._tools.get(name)
        if tool is None:
            available = ", ".join(self._tools) or "(none)"
            logger.warning(f"Unknown tool requested: {name}")
            return ToolResult.fail(f"unknown tool: {name}. Available tools: {available}")

        if raw_params and tool.text_parameters:
            params = dict(params)
            params.update(
                (key, raw_params[key]) for key in tool.text_parameters if key in raw_params
            )

        try:
            logger.info(f"Executing tool: {name}")
            return await tool.execute(params, context)
        except Exception as e:
            logger.error(f"Tool execution failed: {name}", e)
            return ToolResult.fail(f"tool execution failed: {e}")
