"""
Schedule rebalancing — the one tool that makes its own model call.

The proposal is coerced through the JSON repair pipeline, then every block
is checked on its own; invalid blocks are dropped.  If nothing survives the
tool fails and ``schedule`` is left exactly as it was.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

from .base import BaseTool, ToolContext
from ..core.json_repair import JsonRepairPipeline
from ..core.models import CompletionOptions, utc_now_iso
from ..core.schemas import SCHEDULE_SCHEMA_HINT, ScheduleProposal

logger = logging.getLogger(__name__)

REBALANCE_SYSTEM_PROMPT = "You are a time-blocking assistant. Return strict JSON only."

PROFILE_KEEP = (
    "user_name", "user_age_group", "procrastinator_type", "preferred_work_style",
    "preferred_study_method", "most_productive_time", "is_procrastinator",
    "has_trouble_finishing", "productive_windows", "weekly_personal_time", "weekly_review_hours",
)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string to an aware UTC datetime; naive means UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def iso_z(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _intervals(blocks: Iterable[Any]) -> list[tuple[datetime, datetime]]:
    out = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        start, end = parse_timestamp(block.get("start")), parse_timestamp(block.get("end"))
        if start and end and end > start:
            out.append((start, end))
    return out


def _overlaps(start: datetime, end: datetime, taken: list[tuple[datetime, datetime]]) -> bool:
    return any(start < other_end and other_start < end for other_start, other_end in taken)


def validate_blocks(
    proposed: list[Any],
    task_ids: set[str],
    fixed_blocks: list[Any],
    max_hours_per_day: float,
) -> list[dict]:
    """Keep only blocks that are well-formed and fit around fixed time and each other."""
    fixed = _intervals(fixed_blocks)
    accepted: list[tuple[datetime, datetime]] = []
    hours_by_day: dict[date, float] = defaultdict(float)
    blocks: list[dict] = []

    for raw in proposed:
        if not isinstance(raw, dict) or not isinstance(raw.get("taskId"), str) \
                or raw["taskId"] not in task_ids:
            continue
        start, end = parse_timestamp(raw.get("start")), parse_timestamp(raw.get("end"))
        if start is None or end is None or end <= start:
            continue
        if _overlaps(start, end, fixed) or _overlaps(start, end, accepted):
            continue
        hours = (end - start).total_seconds() / 3600
        if hours_by_day[start.date()] + hours > max_hours_per_day:
            continue

        hours_by_day[start.date()] += hours
        accepted.append((start, end))
        block = {"kind": "task", "taskId": raw["taskId"], "start": iso_z(start), "end": iso_z(end)}
        if isinstance(raw.get("reason"), str) and raw["reason"].strip():
            block["reason"] = raw["reason"].strip()[:140]
        blocks.append(block)

    if len(blocks) < len(proposed):
        logger.info("Discarded %d of %d proposed schedule blocks", len(proposed) - len(blocks), len(proposed))
    return blocks


def build_rebalance_prompt(data: dict, horizon_days: int, max_hours_per_day: float,
                           today: Optional[date] = None) -> tuple[str, list[dict]]:
    """Return the user prompt and the task brief it was built from."""
    tasks_brief = [
        {
            "id": t["id"],
            "name": str(t.get("task_name") or "")[:140],
            "priority": str(t.get("task_priority") or ""),
            "category": str(t.get("task_category") or ""),
            "deadline": f"{t.get('task_deadline') or ''}T{t.get('task_deadline_time') or '23:59'}",
            "durationHours": t.get("task_duration_hours") or 0,
        }
        for t in data.get("tasks", [])
        if isinstance(t, dict) and isinstance(t.get("id"), str) and not t.get("completed")
    ][:350]
    fixed_brief = [
        {
            "start": b["start"],
            "end": b["end"],
            "label": str(b.get("label") or b.get("kind") or "Fixed")[:80],
            "category": str(b.get("category") or ""),
        }
        for b in data.get("fixedBlocks", [])
        if isinstance(b, dict) and b.get("start") and b.get("end")
    ][:500]
    schedule_brief = [
        {"taskId": b.get("taskId") or "", "start": b["start"], "end": b["end"]}
        for b in data.get("schedule", [])
        if isinstance(b, dict) and b.get("start") and b.get("end")
    ][:500]
    profile = data.get("profile") if isinstance(data.get("profile"), dict) else {}
    profile_brief = {k: profile[k] for k in PROFILE_KEEP if k in profile}

    start_day = (today or datetime.now(timezone.utc).date()).isoformat()
    prompt = f"""Rebalance the user's schedule for the next {horizon_days} days starting {start_day}.
Return JSON only: {SCHEDULE_SCHEMA_HINT}.

Hard rules:
- "start" and "end" MUST be ISO-8601 timestamps in UTC with a trailing "Z".
- Do not create blocks that overlap fixedBlocks.
- Do not overlap your own blocks.
- Only use taskIds from the provided tasks list.
- Keep total scheduled work per day <= {max_hours_per_day} hours.
- Each block must be at least 15 minutes and end after start.

Soft rules:
- Prefer scheduling higher priority and earlier deadlines first.
- Split long tasks into multiple blocks, adding small buffers when reasonable.
- Use the user's focus preferences when provided in profile.

Tasks: {json.dumps(tasks_brief)[:7000]}
Fixed blocks (unavailable): {json.dumps(fixed_brief)[:7000]}
Current schedule (may be ignored): {json.dumps(schedule_brief)[:6000]}
Profile: {json.dumps(profile_brief, default=str)[:2000]}"""
    return prompt, tasks_brief


class RebalanceScheduleTool(BaseTool):
    name = "rebalance_schedule"
    description = (
        "Use the LLM to rebalance the user's schedule into time blocks for the next N days, "
        "respecting fixed blocks."
    )
    input_schema = {
        "type": "object",
        "properties": {
            "horizonDays": {"type": "integer", "default": 7, "minimum": 1, "maximum": 21},
            "maxHoursPerDay": {"type": "number", "default": 10, "minimum": 1, "maximum": 16},
        },
    }

    async def execute(self, data: dict, context: ToolContext, horizonDays: int = 7,
                      maxHoursPerDay: float = 10, **kwargs) -> Any:
        if context.provider is None:
            raise self._error("No language model available for rebalancing.")

        prompt, tasks_brief = build_rebalance_prompt(data, horizonDays, maxHoursPerDay)
        proposal = await JsonRepairPipeline(context.provider).complete(
            REBALANCE_SYSTEM_PROMPT,
            prompt,
            ScheduleProposal,
            CompletionOptions(temperature=0.25, max_tokens=1200, expect_json=True),
            schema_hint=SCHEDULE_SCHEMA_HINT,
            cancel_token=context.cancel_token,
        )
        if not proposal.blocks:
            raise self._error("AI returned no schedule blocks.")

        blocks = validate_blocks(
            proposal.blocks,
            {t["id"] for t in tasks_brief},
            data.get("fixedBlocks", []),
            maxHoursPerDay,
        )
        if not blocks:
            raise self._error("AI returned invalid schedule blocks.")

        data["schedule"] = blocks
        data["lastRebalancedAt"] = utc_now_iso()
        return {"blocksAdded": len(blocks)}
