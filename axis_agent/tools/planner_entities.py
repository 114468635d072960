"""
Planner entity shapes — tasks, goals and habits as stored in the user record.

Plain normalization helpers shared by the tool handlers.  Field names
(``task_name``, ``manualProgress`` …) match what the web client reads.
"""

from __future__ import annotations

import calendar
import math
import re
import secrets
import time
from datetime import date, timedelta
from typing import Any, Optional

from ..core.models import utc_now_iso

TASK_PRIORITIES = (
    "Urgent & Important",
    "Urgent, Not Important",
    "Important, Not Urgent",
    "Not Urgent & Not Important",
)
DEFAULT_TASK_PRIORITY = "Important, Not Urgent"

_LEGACY_PRIORITIES = {
    "urgent-important": "Urgent & Important",
    "urgent-not-important": "Urgent, Not Important",
    "important-not-urgent": "Important, Not Urgent",
    "not-urgent-not-important": "Not Urgent & Not Important",
}

GOAL_LEVELS = ("lifetime", "yearly", "seasonal", "monthly", "weekly", "daily")

_GOAL_LEVEL_SYNONYMS = {
    "lifetime": "lifetime", "life": "lifetime", "long-term": "lifetime", "longterm": "lifetime",
    "yearly": "yearly", "annual": "yearly", "year": "yearly",
    "seasonal": "seasonal", "quarterly": "seasonal", "quarter": "seasonal",
    "monthly": "monthly", "month": "monthly",
    "weekly": "weekly", "week": "weekly",
    "daily": "daily", "day": "daily",
}

GOAL_COLOR_PALETTE = (
    {"bg": "rgba(139, 92, 246, 0.15)", "border": "rgba(139, 92, 246, 0.3)", "text": "#7c3aed"},
    {"bg": "rgba(14, 165, 233, 0.15)", "border": "rgba(14, 165, 233, 0.3)", "text": "#0284c7"},
    {"bg": "rgba(236, 72, 153, 0.15)", "border": "rgba(236, 72, 153, 0.3)", "text": "#db2777"},
    {"bg": "rgba(34, 197, 94, 0.15)", "border": "rgba(34, 197, 94, 0.3)", "text": "#16a34a"},
    {"bg": "rgba(251, 146, 60, 0.15)", "border": "rgba(251, 146, 60, 0.3)", "text": "#ea580c"},
    {"bg": "rgba(168, 85, 247, 0.15)", "border": "rgba(168, 85, 247, 0.3)", "text": "#7c3aed"},
)

DEFAULT_MILESTONES = [25, 50, 75]


def new_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


# ── Tasks ───────────────────────────────────────────────────────────

def normalize_task_priority(value: Any) -> str:
    """One of ``TASK_PRIORITIES``, or ``""`` if unrecognised."""
    if not value:
        return ""
    text = str(value).strip()
    if text in TASK_PRIORITIES:
        return text
    key = re.sub(r"[^a-z]+", "-", text.lower())
    return _LEGACY_PRIORITIES.get(key, "")


def normalize_task_category(value: Any) -> str:
    if not value:
        return "study"
    return str(value).strip().lower()


def clamp_task_duration_hours(value: Any) -> float:
    n = _finite(value) if value is not None else None
    if n is None or n < 0:
        return 0
    return min(24, n)


def create_task_record(fields: dict) -> dict:
    return {
        "id": new_id("task"),
        "task_name": str(fields.get("task_name") or "").strip(),
        "task_priority": normalize_task_priority(fields.get("task_priority")) or DEFAULT_TASK_PRIORITY,
        "task_category": normalize_task_category(fields.get("task_category")),
        "task_deadline": str(fields.get("task_deadline") or "").strip(),
        "task_deadline_time": str(fields.get("task_deadline_time") or "23:59").strip(),
        "task_duration_hours": clamp_task_duration_hours(fields.get("task_duration_hours")),
        "computer_required": bool(fields.get("computer_required")),
        "completed": False,
        "createdAt": utc_now_iso(),
    }


def apply_task_patch(task: dict, patch: dict) -> dict:
    """Apply the fields present in *patch* to *task* in place."""
    if "task_name" in patch:
        task["task_name"] = str(patch["task_name"] or "").strip()
    if "task_priority" in patch:
        priority = normalize_task_priority(patch["task_priority"])
        if priority:
            task["task_priority"] = priority
    if "task_category" in patch:
        task["task_category"] = normalize_task_category(patch["task_category"])
    if "task_deadline" in patch:
        task["task_deadline"] = str(patch["task_deadline"] or "").strip()
    if "task_deadline_time" in patch:
        task["task_deadline_time"] = str(patch["task_deadline_time"] or "23:59").strip()
    if "task_duration_hours" in patch:
        task["task_duration_hours"] = clamp_task_duration_hours(patch["task_duration_hours"])
    if "computer_required" in patch:
        task["computer_required"] = bool(patch["computer_required"])
    if "completed" in patch:
        task["completed"] = bool(patch["completed"])
        if task["completed"]:
            task["completedAt"] = utc_now_iso()
        else:
            task.pop("completedAt", None)
    task["updatedAt"] = utc_now_iso()
    return task


def task_listing(task: dict) -> dict:
    return {
        "id": task.get("id"),
        "task_name": task.get("task_name"),
        "task_priority": task.get("task_priority"),
        "task_category": task.get("task_category"),
        "task_deadline": task.get("task_deadline"),
        "task_deadline_time": task.get("task_deadline_time"),
        "task_duration_hours": task.get("task_duration_hours"),
        "completed": bool(task.get("completed")),
    }


# ── Goals ───────────────────────────────────────────────────────────

def normalize_goal_level(value: Any) -> str:
    raw = str(value or "").strip().lower()
    if not raw:
        return "lifetime"
    return _GOAL_LEVEL_SYNONYMS.get(re.sub(r"[^a-z]+", "-", raw), "lifetime")


def clamp_goal_progress(value: Any) -> int:
    n = _finite(value) if value is not None else None
    if n is None:
        return 0
    return max(0, min(100, int(math.floor(n + 0.5))))


def normalize_goal_milestones(value: Any) -> list[int]:
    if not value:
        return list(DEFAULT_MILESTONES)
    if isinstance(value, list):
        items = value
    else:
        items = [v.strip() for v in str(value).split(",") if v.strip()]
    cleaned = {clamp_goal_progress(n) for n in (_finite(v) for v in items) if n is not None}
    return sorted(cleaned) or list(DEFAULT_MILESTONES)


def goal_slug(goal: Any) -> str:
    name = goal if isinstance(goal, str) else (goal or {}).get("name")
    return re.sub(r"\s+", "-", str(name or "").strip().lower())


def default_goal_dates(level: str, today: Optional[date] = None) -> tuple[str, str]:
    """Start/end dates for a goal at *level*; lifetime goals are open-ended."""
    if level == "lifetime":
        return "", ""
    today = today or date.today()
    start = end = today
    if level == "yearly":
        start, end = date(today.year, 1, 1), date(today.year, 12, 31)
    elif level == "seasonal":
        first_month = (today.month - 1) // 3 * 3 + 1
        last_month = first_month + 2
        start = date(today.year, first_month, 1)
        end = date(today.year, last_month, calendar.monthrange(today.year, last_month)[1])
    elif level == "monthly":
        start = today.replace(day=1)
        end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
    elif level == "weekly":
        start = today - timedelta(days=today.weekday())
        end = start + timedelta(days=6)
    return start.isoformat(), end.isoformat()


def create_goal_record(fields: dict, index: int = 0, today: Optional[date] = None) -> dict:
    level = normalize_goal_level(fields.get("level"))
    start_date = str(fields.get("startDate") or "").strip()
    end_date = str(fields.get("endDate") or "").strip()
    if not start_date and not end_date:
        start_date, end_date = default_goal_dates(level, today)

    parent_id = fields.get("parentId")
    return {
        "id": new_id("goal"),
        "name": str(fields.get("name") or "").strip(),
        "level": level,
        "parentId": str(parent_id).strip() if parent_id else None,
        "color": dict(GOAL_COLOR_PALETTE[index % len(GOAL_COLOR_PALETTE)]),
        "createdAt": utc_now_iso(),
        "manualProgress": clamp_goal_progress(fields.get("manualProgress")),
        "milestones": normalize_goal_milestones(fields.get("milestones")),
        "startDate": start_date,
        "endDate": end_date,
        "completed": False,
        "completedAt": "",
    }


def apply_goal_patch(goal: dict, patch: dict) -> dict:
    if "name" in patch:
        goal["name"] = str(patch["name"] or "").strip()
    if "level" in patch:
        goal["level"] = normalize_goal_level(patch["level"])
    if "parentId" in patch:
        goal["parentId"] = str(patch["parentId"]).strip() if patch["parentId"] else None
    if "startDate" in patch:
        goal["startDate"] = str(patch["startDate"] or "").strip()
    if "endDate" in patch:
        goal["endDate"] = str(patch["endDate"] or "").strip()
    if "manualProgress" in patch:
        goal["manualProgress"] = clamp_goal_progress(patch["manualProgress"])
    if "milestones" in patch:
        goal["milestones"] = normalize_goal_milestones(patch["milestones"])
    if "completed" in patch:
        goal["completed"] = bool(patch["completed"])
        goal["completedAt"] = utc_now_iso() if goal["completed"] else ""
    goal["updatedAt"] = utc_now_iso()
    return goal


def ensure_daily_goal_task(data: dict, goal: dict, today: Optional[date] = None) -> bool:
    """Create or sync the task mirroring a daily goal. True if anything changed."""
    if not goal or goal.get("level") != "daily":
        return False
    tasks = data.setdefault("tasks", [])
    slug = goal_slug(goal)
    existing = next(
        (t for t in tasks if isinstance(t, dict) and t.get("fromDailyGoal") and t.get("goalId") == goal.get("id")),
        None,
    )
    if existing is None:
        tasks.append({
            "id": f"task_goal_{goal['id']}",
            "task_name": goal.get("name", ""),
            "task_priority": DEFAULT_TASK_PRIORITY,
            "task_category": slug or "study",
            "task_deadline": (today or date.today()).isoformat(),
            "task_deadline_time": "23:59",
            "task_duration_hours": 1,
            "computer_required": False,
            "completed": False,
            "fromDailyGoal": True,
            "goalId": goal["id"],
            "createdAt": utc_now_iso(),
        })
        return True

    changed = False
    if goal.get("name") and existing.get("task_name") != goal["name"]:
        existing["task_name"] = goal["name"]
        changed = True
    if slug and existing.get("task_category") != slug:
        existing["task_category"] = slug
        changed = True
    return changed


def remove_daily_goal_tasks(data: dict, goal_id: str) -> bool:
    """Drop a daily goal's mirrored tasks and their schedule blocks."""
    removed = set()
    kept = []
    for task in data.get("tasks", []):
        if isinstance(task, dict) and task.get("fromDailyGoal") and task.get("goalId") == goal_id:
            if task.get("id"):
                removed.add(str(task["id"]))
            continue
        kept.append(task)
    data["tasks"] = kept
    if removed:
        data["schedule"] = [
            b for b in data.get("schedule", [])
            if not (isinstance(b, dict) and str(b.get("taskId") or "") in removed)
        ]
    return bool(removed)


# ── Habits ──────────────────────────────────────────────────────────

def create_habit_record(fields: dict) -> dict:
    return {
        "id": new_id("habit"),
        "name": str(fields.get("name") or "").strip(),
        "time": str(fields.get("time") or "").strip(),
        "description": str(fields.get("description") or "").strip(),
        "createdAt": utc_now_iso(),
    }
