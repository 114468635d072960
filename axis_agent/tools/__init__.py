"""Planner tools exposed to the assistant."""

from __future__ import annotations

from ..core.tool_registry import ToolRegistry
from .calendar_tools import GetCalendarLinksTool
from .goal_tools import CreateGoalTool, DeleteGoalTool, UpdateGoalTool
from .habit_tools import AddHabitTool, DeleteHabitTool
from .schedule_tools import RebalanceScheduleTool
from .task_tools import (
    CreateTaskTool, DeleteTaskTool, GetSnapshotTool, ListTasksTool, UpdateTaskTool,
)

# Catalog order, as shown to the model.
PLANNER_TOOLS = (
    GetSnapshotTool,
    ListTasksTool,
    CreateTaskTool,
    UpdateTaskTool,
    DeleteTaskTool,
    CreateGoalTool,
    UpdateGoalTool,
    DeleteGoalTool,
    AddHabitTool,
    DeleteHabitTool,
    RebalanceScheduleTool,
    GetCalendarLinksTool,
)


def build_planner_registry() -> ToolRegistry:
    registry = ToolRegistry()
    for tool_cls in PLANNER_TOOLS:
        registry.register(tool_cls())
    return registry
