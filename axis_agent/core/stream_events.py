"""
Stream Events — the only values the agent places on the outbound stream.

Each event serializes to one SSE frame::

    event: <name>
    data: <json>

Names are restricted to ``meta``, ``status``, ``token``, ``result``,
``error`` and ``done``; ``done`` and ``error`` terminate a turn.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .models import ToolResult


@dataclass
class MetaEvent:
    """Resolved provider, sent once per turn."""
    provider: str
    name = "meta"

    def to_dict(self) -> dict:
        return {"provider": self.provider}


@dataclass
class StatusEvent:
    """Lifecycle marker: planning, acting, tool_start, tool_done, responding."""
    stage: str
    tool: Optional[str] = None
    tool_calls: Optional[int] = None
    ok: Optional[bool] = None
    error: Optional[str] = None
    name = "status"

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"stage": self.stage}
        if self.tool_calls is not None:
            out["toolCalls"] = self.tool_calls
        if self.tool is not None:
            out["tool"] = self.tool
        if self.ok is not None:
            out["ok"] = self.ok
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class TokenEvent:
    token: str
    name = "token"

    def to_dict(self) -> dict:
        return {"token": self.token}


@dataclass
class ResultEvent:
    reply: str
    tool_results: list[ToolResult] = field(default_factory=list)
    data: Any = None
    name = "result"

    def to_dict(self) -> dict:
        return {
            "reply": self.reply,
            "toolResults": [r.to_dict() for r in self.tool_results],
            "data": self.data,
        }


@dataclass
class ErrorEvent:
    error: str
    name = "error"

    def to_dict(self) -> dict:
        return {"error": self.error}


@dataclass
class DoneEvent:
    name = "done"

    def to_dict(self) -> dict:
        return {}


StreamEvent = Union[MetaEvent, StatusEvent, TokenEvent, ResultEvent, ErrorEvent, DoneEvent]


def format_sse(event: StreamEvent) -> str:
    """Serialize *event* as one SSE frame."""
    payload = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
    return f"event: {event.name}\ndata: {payload}\n\n"
