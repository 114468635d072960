"""Calendar subscription links, relayed from the calendar token service."""

from __future__ import annotations

from typing import Any

from .base import BaseTool, ToolContext


class GetCalendarLinksTool(BaseTool):
    name = "get_calendar_links"
    description = "Get calendar subscription links (subscribeUrl + webcalUrl)."
    input_schema = {"type": "object", "properties": {}}

    async def execute(self, data: dict, context: ToolContext, **kwargs) -> Any:
        if context.calendar_links is None:
            raise self._error("Calendar links are not available.")
        links = await context.calendar_links(context.user_id)
        if not links:
            raise self._not_found("User")
        return {
            "token": links.get("token"),
            "subscribeUrl": links.get("subscribeUrl"),
            "webcalUrl": links.get("webcalUrl"),
        }
