"""
Planner data shape and the read-only snapshot handed to the model.
"""

from __future__ import annotations

from typing import Any, Optional

from .provider_selector import normalize_provider

_LIST_KEYS = (
    "tasks", "rankedTasks", "schedule", "fixedBlocks", "goals", "reflections",
    "blockingRules", "dailyHabits", "focusSessions", "assistantHistory", "taskTemplates",
)
_NULLABLE_KEYS = ("profile", "weeklyInsights", "calendarExportSettings", "firstReflectionDueDate")

PROFILE_BRIEF_KEYS = (
    "most_productive_time", "preferred_work_style", "preferred_study_method",
    "procrastinator_type", "has_trouble_finishing",
)


def normalize_user_data(data: Optional[dict]) -> dict:
    """Fill in any missing planner keys. Mutates and returns *data*."""
    if not isinstance(data, dict):
        data = {}

    settings = data.get("settings") if isinstance(data.get("settings"), dict) else {}
    settings["aiProvider"] = normalize_provider(settings.get("aiProvider"))
    data["settings"] = settings

    for key in _LIST_KEYS:
        if not isinstance(data.get(key), list):
            data[key] = []
    for key in _NULLABLE_KEYS:
        data.setdefault(key, None)
    if not isinstance(data.get("achievements"), dict):
        data["achievements"] = {}
    return data


def _s(value: Any, limit: Optional[int] = None) -> str:
    text = "" if value is None else str(value)
    return text[:limit] if limit else text


def _num(*values: Any) -> float:
    for value in values:
        if value is None:
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0
    return 0.0


def _dicts(items: list) -> list[dict]:
    return [x for x in items if isinstance(x, dict)]


def _task_brief(t: dict) -> dict:
    return {
        "id": _s(t.get("id")),
        "name": _s(t.get("task_name") or t.get("name"), 180),
        "priority": _s(t.get("task_priority") or t.get("priority")),
        "category": _s(t.get("task_category") or t.get("category")),
        "deadline": _s(t.get("task_deadline") or t.get("deadline")),
        "deadlineTime": _s(t.get("task_deadline_time") or t.get("deadlineTime")),
        "durationHours": _num(t.get("task_duration_hours"), t.get("durationHours"),
                              t.get("estimatedHours")),
        "completed": bool(t.get("completed")),
    }


def _goal_brief(g: dict) -> dict:
    return {
        "id": _s(g.get("id")),
        "name": _s(g.get("name"), 180),
        "level": _s(g.get("level")),
        "parentId": _s(g.get("parentId") or ""),
        "startDate": _s(g.get("startDate") or ""),
        "endDate": _s(g.get("endDate") or ""),
        "manualProgress": _num(g.get("manualProgress"), g.get("progress")),
        "completed": bool(g.get("completed")),
    }


def _profile_brief(profile: Any) -> Optional[dict]:
    if not isinstance(profile, dict):
        return None
    brief = {
        "user_name": _s(profile.get("user_name"), 100) if isinstance(profile.get("user_name"), str) else "",
        "user_age_group": profile.get("user_age_group") if isinstance(profile.get("user_age_group"), str) else "",
    }
    for key in PROFILE_BRIEF_KEYS:
        brief[key] = profile.get(key) or ""
    return brief


def build_snapshot(data: dict) -> dict:
    """
    Size-capped, field-whitelisted projection of *data*.

    Every value is copied, so later tool mutations in the same turn never
    show up in a snapshot that was already built.
    """
    data = normalize_user_data(data)
    return {
        "profile": _profile_brief(data.get("profile")),
        "tasks": [_task_brief(t) for t in _dicts(data["tasks"])[:120]],
        "goals": [_goal_brief(g) for g in _dicts(data["goals"])[:120]],
        "schedule": [
            {
                "kind": _s(b.get("kind")),
                "taskId": _s(b.get("taskId")),
                "start": _s(b.get("start")),
                "end": _s(b.get("end")),
                "reason": b["reason"][:140] if isinstance(b.get("reason"), str) else "",
            }
            for b in _dicts(data["schedule"])[:200]
        ],
        "fixedBlocks": [
            {
                "label": _s(b.get("label") or b.get("kind") or "Fixed", 80),
                "start": _s(b.get("start")),
                "end": _s(b.get("end")),
                "category": _s(b.get("category")),
            }
            for b in _dicts(data["fixedBlocks"])[:200]
        ],
        "dailyHabits": [
            {
                "id": _s(h.get("id")),
                "name": _s(h.get("name"), 120),
                "time": _s(h.get("time"), 40),
                "description": _s(h.get("description"), 180),
            }
            for h in _dicts(data["dailyHabits"])[:80]
        ],
    }
