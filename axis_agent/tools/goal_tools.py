"""
Goal tools — create, update and delete goals, keeping daily-goal tasks in sync.
"""

from __future__ import annotations

from typing import Any

from .base import BaseTool, ToolContext
from .planner_entities import (
    apply_goal_patch, create_goal_record, ensure_daily_goal_task, goal_slug,
    normalize_goal_level, remove_daily_goal_tasks,
)

_ID = {"type": "string", "minLength": 1, "maxLength": 200}

_GOAL_FIELDS = {
    "name": {"type": "string", "minLength": 1, "maxLength": 200},
    "level": {"type": "string"},
    "parentId": {"type": ["string", "null"]},
    "startDate": {"type": "string"},
    "endDate": {"type": "string"},
    "manualProgress": {"type": "number", "minimum": 0, "maximum": 100},
    "milestones": {"type": "array", "items": {"type": "number"}},
}


class CreateGoalTool(BaseTool):
    name = "create_goal"
    description = "Create a new goal (name + timeframe level, optional parentId and dates)."
    input_schema = {"type": "object", "required": ["name"], "properties": dict(_GOAL_FIELDS)}

    async def execute(self, data: dict, context: ToolContext, **fields) -> Any:
        goals = data.setdefault("goals", [])
        goal = create_goal_record(fields, index=len(goals))
        goals.append(goal)
        ensure_daily_goal_task(data, goal)
        return {"goal": goal}


class UpdateGoalTool(BaseTool):
    name = "update_goal"
    description = "Update an existing goal by id (rename, change level, dates, progress, or parent)."
    input_schema = {
        "type": "object",
        "required": ["id"],
        "properties": {"id": _ID, **_GOAL_FIELDS, "completed": {"type": "boolean"}},
    }

    async def execute(self, data: dict, context: ToolContext, id: str, **patch) -> Any:
        goals = data.setdefault("goals", [])
        idx = self._find_index(goals, id)
        if idx < 0:
            raise self._not_found("Goal")

        goal = goals[idx]
        was_daily = normalize_goal_level(goal.get("level")) == "daily"
        apply_goal_patch(goal, patch)

        if was_daily and goal["level"] != "daily":
            remove_daily_goal_tasks(data, goal["id"])
        elif goal["level"] == "daily":
            ensure_daily_goal_task(data, goal)
        return {"goal": goal}


class DeleteGoalTool(BaseTool):
    name = "delete_goal"
    description = "Delete a goal by id (only if the user explicitly asked to delete)."
    input_schema = {"type": "object", "required": ["id"], "properties": {"id": _ID}}

    async def execute(self, data: dict, context: ToolContext, id: str, **kwargs) -> Any:
        goals = data.get("goals", [])
        idx = self._find_index(goals, id)
        if idx < 0:
            raise self._not_found("Goal")

        goal = goals[idx]
        data["goals"] = [g for g in goals if not (isinstance(g, dict) and str(g.get("id")) == id)]
        if goal.get("level") == "daily":
            remove_daily_goal_tasks(data, id)

        slug = goal_slug(goal)
        if slug:
            for task in data.get("tasks", []):
                if not isinstance(task, dict):
                    continue
                if task.get("goalId") == id:
                    task["goalId"] = None
                if task.get("task_category") == slug:
                    task["task_category"] = "study"
        return {"success": True}
