"""
Base tool class — all planner tools inherit from this.
Defines the standard interface: name, description, schema, execute().
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from ..core.errors import EntityNotFoundError, ToolExecutionError
from ..core.models import ToolSchema

if TYPE_CHECKING:
    from ..core.providers.base import BaseLLMProvider
    from ..core.stream_cancellation import StreamCancellationToken

# user_id -> {token, subscribeUrl, webcalUrl} or None for an unknown user
CalendarLinksFn = Callable[[str], Awaitable[Optional[dict]]]


@dataclass
class ToolContext:
    """Per-turn collaborators a tool may need besides the planner data."""
    user_id: str
    provider: Optional["BaseLLMProvider"] = None
    cancel_token: Optional["StreamCancellationToken"] = None
    calendar_links: Optional[CalendarLinksFn] = None


class BaseTool(ABC):
    """Abstract base class for all planner tools."""

    name: str = ""
    description: str = ""
    input_schema: dict = {}

    @abstractmethod
    async def execute(self, data: dict, context: ToolContext, **kwargs) -> Any:
        """
        Apply the tool to *data* (mutated in place) and return a JSON-able result.

        Arguments arrive already validated against ``input_schema``.
        Raise ``ToolExecutionError`` (or a subclass) on failure.
        """

    def get_schema(self) -> ToolSchema:
        """Return the tool's schema for LLM consumption."""
        return ToolSchema(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
        )

    def _error(self, message: str) -> ToolExecutionError:
        return ToolExecutionError(message)

    def _not_found(self, entity: str) -> EntityNotFoundError:
        return EntityNotFoundError(f"{entity} not found")

    @staticmethod
    def _find_index(items: list, entity_id: str) -> int:
        for i, item in enumerate(items):
            if isinstance(item, dict) and str(item.get("id")) == entity_id:
                return i
        return -1
