"""Pydantic schemas for structured model replies."""

from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, Field


class PlannedToolCall(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    arguments: Any = None


class PlannerResponse(BaseModel):
    assistant_reply: str = Field(min_length=1, max_length=6000)
    tool_calls: List[PlannedToolCall] = Field(default_factory=list)


PLANNER_SCHEMA_HINT = '{"assistant_reply":"string","tool_calls":[{"name":"tool","arguments":{...}}]}'


class ScheduleProposal(BaseModel):
    # Blocks are checked one by one later so a single bad block is dropped, not fatal.
    blocks: List[Any] = Field(default_factory=list)


SCHEDULE_SCHEMA_HINT = '{"blocks":[{"taskId":"...","start":"ISO","end":"ISO","reason":"short"}]}'
