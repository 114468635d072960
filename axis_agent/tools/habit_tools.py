"""Daily habit tools."""

from __future__ import annotations

from typing import Any

from .base import BaseTool, ToolContext
from .planner_entities import create_habit_record


class AddHabitTool(BaseTool):
    name = "add_habit"
    description = "Add a daily habit (name + time)."
    input_schema = {
        "type": "object",
        "required": ["name", "time"],
        "properties": {
            "name": {"type": "string", "minLength": 1, "maxLength": 120},
            "time": {"type": "string", "minLength": 1, "maxLength": 40},
            "description": {"type": "string", "maxLength": 240, "default": ""},
        },
    }

    async def execute(self, data: dict, context: ToolContext, **fields) -> Any:
        habit = create_habit_record(fields)
        data.setdefault("dailyHabits", []).append(habit)
        return {"habit": habit}


class DeleteHabitTool(BaseTool):
    name = "delete_habit"
    description = "Delete a daily habit by id."
    input_schema = {
        "type": "object",
        "required": ["id"],
        "properties": {"id": {"type": "string", "minLength": 1, "maxLength": 200}},
    }

    async def execute(self, data: dict, context: ToolContext, id: str, **kwargs) -> Any:
        habits = data.get("dailyHabits", [])
        if self._find_index(habits, id) < 0:
            raise self._not_found("Habit")
        data["dailyHabits"] = [h for h in habits if not (isinstance(h, dict) and str(h.get("id")) == id)]
        return {"success": True}
