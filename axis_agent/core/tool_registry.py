"""
Tool Registry — the fixed catalog of planner tools and their executor.

Dispatch is a dictionary lookup; each tool's arguments are validated
against its ``input_schema`` before the handler touches planner state.
Any failure becomes an isolated error ``ToolResult`` so sibling calls in
the same turn still run.  Cancellation is the one exception: it propagates.
"""

from __future__ import annotations

import logging
from typing import Any

from .errors import AxisError, ToolExecutionError, UnknownToolError
from .models import ToolCall, ToolResult, ToolSchema
from .schema_validation import validate_arguments
from .stream_cancellation import StreamCancelledError
from .structured_logger import log_context

logger = logging.getLogger(__name__)

# Successes of these never mark the planner record dirty.
READ_ONLY_TOOLS = frozenset({"get_snapshot", "list_tasks", "get_calendar_links"})


def is_read_only(name: str) -> bool:
    return name in READ_ONLY_TOOLS


class ToolRegistry:
    """Central registry for all planner tools."""

    def __init__(self):
        self._tools: dict = {}  # name -> BaseTool instance, insertion ordered

    def register(self, tool) -> None:
        """Register a tool instance."""
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get_tool(self, name: str):
        if name not in self._tools:
            raise UnknownToolError(f"Unknown tool: {name}. Available: {list(self._tools.keys())}")
        return self._tools[name]

    def get_schemas(self) -> list[ToolSchema]:
        """Return all tool schemas for the planning prompt."""
        return [tool.get_schema() for tool in self._tools.values()]

    def catalog(self) -> list[dict]:
        """``{name, description, inputSchema}`` per tool, in registration order."""
        return [schema.to_dict() for schema in self.get_schemas()]

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    async def execute_tool(self, call: ToolCall, data: dict, context: Any) -> ToolResult:
        """Execute a single tool call against *data* (mutated in place)."""
        try:
            tool = self.get_tool(call.name)
            args = validate_arguments(call.name, tool.input_schema, call.arguments)
            with log_context(tool_name=call.name, user_id=context.user_id):
                result = await tool.execute(data, context, **args)
            return ToolResult(name=call.name, ok=True, result=result)
        except StreamCancelledError:
            raise
        except ToolExecutionError as e:
            logger.warning("Tool %s failed: %s", call.name, e)
            return ToolResult(name=call.name, ok=False, error=str(e))
        except AxisError as e:
            # Provider or structure failures from a nested model call.
            logger.warning("Tool %s failed in nested call: %s", call.name, e)
            return ToolResult(name=call.name, ok=False, error=str(e))
        except Exception as e:
            logger.exception("Unexpected error in tool %s", call.name)
            return ToolResult(name=call.name, ok=False, error=f"Tool execution error: {e}")
