"""
Task tools — snapshot, list, create, update and delete planner tasks.
"""

from __future__ import annotations

from typing import Any

from .base import BaseTool, ToolContext
from .planner_entities import apply_task_patch, create_task_record, task_listing
from ..core.snapshot import build_snapshot

_ID = {"type": "string", "minLength": 1, "maxLength": 200}

_TASK_FIELDS = {
    "task_name": {"type": "string", "minLength": 1, "maxLength": 200},
    "task_priority": {"type": "string"},
    "task_category": {"type": "string"},
    "task_deadline": {"type": "string"},
    "task_deadline_time": {"type": "string"},
    "task_duration_hours": {"type": ["number", "null"]},
    "computer_required": {"type": "boolean"},
}


class GetSnapshotTool(BaseTool):
    name = "get_snapshot"
    description = (
        "Get a compact snapshot of the user's profile, tasks, goals, schedule, "
        "fixed blocks, and daily habits."
    )
    input_schema = {"type": "object", "properties": {}}

    async def execute(self, data: dict, context: ToolContext, **kwargs) -> Any:
        # Built from current state, so it sees earlier calls in this turn.
        return {"snapshot": build_snapshot(data)}


class ListTasksTool(BaseTool):
    name = "list_tasks"
    description = "List tasks. Optionally include completed tasks."
    input_schema = {
        "type": "object",
        "properties": {"includeCompleted": {"type": "boolean", "default": False}},
    }

    async def execute(self, data: dict, context: ToolContext, includeCompleted: bool = False,
                      **kwargs) -> Any:
        tasks = [
            t for t in data.get("tasks", [])
            if isinstance(t, dict) and (includeCompleted or not t.get("completed"))
        ]
        return {"tasks": [task_listing(t) for t in tasks[:500]]}


class CreateTaskTool(BaseTool):
    name = "create_task"
    description = (
        "Create a new task in the user's task list (canonical fields: task_name, task_priority, "
        "task_category, task_deadline, task_deadline_time, task_duration_hours)."
    )
    input_schema = {
        "type": "object",
        "required": ["task_name"],
        "properties": dict(_TASK_FIELDS),
    }

    async def execute(self, data: dict, context: ToolContext, **fields) -> Any:
        task = create_task_record(fields)
        data.setdefault("tasks", []).append(task)
        return {"task": task}


class UpdateTaskTool(BaseTool):
    name = "update_task"
    description = "Update an existing task by id (supports completing, renaming, changing deadline, etc.)."
    input_schema = {
        "type": "object",
        "required": ["id"],
        "properties": {"id": _ID, **_TASK_FIELDS, "completed": {"type": "boolean"}},
    }

    async def execute(self, data: dict, context: ToolContext, id: str, **patch) -> Any:
        tasks = data.setdefault("tasks", [])
        idx = self._find_index(tasks, id)
        if idx < 0:
            raise self._not_found("Task")
        return {"task": apply_task_patch(tasks[idx], patch)}


class DeleteTaskTool(BaseTool):
    name = "delete_task"
    description = "Delete an existing task by id (only if the user explicitly asked to delete)."
    input_schema = {"type": "object", "required": ["id"], "properties": {"id": _ID}}

    async def execute(self, data: dict, context: ToolContext, id: str, **kwargs) -> Any:
        tasks = data.get("tasks", [])
        if self._find_index(tasks, id) < 0:
            raise self._not_found("Task")
        data["tasks"] = [t for t in tasks if not (isinstance(t, dict) and str(t.get("id")) == id)]
        data["schedule"] = [
            b for b in data.get("schedule", [])
            if not (isinstance(b, dict) and b.get("kind") == "task" and str(b.get("taskId")) == id)
        ]
        return {"success": True}
