"""
Conversation history — bounded FIFO log of user/assistant turns.

The entries list lives inside the user's planner record
(``assistantHistory``) and is mutated in place, so persisting the record
persists the history.
"""

from __future__ import annotations

from typing import Any, Optional

from .models import HistoryEntry, utc_now_iso

HISTORY_LIMIT = 20
HISTORY_CONTEXT = 12
MAX_CONTENT_CHARS = 1200


class ConversationHistory:
    def __init__(self, entries: Optional[list] = None, limit: int = HISTORY_LIMIT):
        self._entries: list = entries if entries is not None else []
        self.limit = limit

    @property
    def entries(self) -> list:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, role: str, content: Any) -> bool:
        """Append one entry, evicting the oldest over the limit. False if skipped."""
        text = str(content or "").strip()
        if not text:
            return False
        entry = HistoryEntry(
            role="assistant" if role == "assistant" else "user",
            content=text[:MAX_CONTENT_CHARS],
            ts=utc_now_iso(),
        )
        self._entries.append(entry.to_dict())
        overflow = len(self._entries) - self.limit
        if overflow > 0:
            del self._entries[:overflow]
        return True

    def append_turn(self, message: str, reply: str) -> bool:
        added_user = self.append("user", message)
        added_reply = self.append("assistant", reply)
        return added_user or added_reply

    def recent(self, count: int = HISTORY_CONTEXT) -> list[HistoryEntry]:
        if count <= 0:
            return []
        out = []
        for item in self._entries[-count:]:
            if not isinstance(item, dict):
                continue
            content = str(item.get("content") or "").strip()
            if content:
                out.append(HistoryEntry(
                    role=item.get("role", "user"), content=content, ts=item.get("ts", ""),
                ))
        return out

    def format_for_prompt(self, count: int = HISTORY_CONTEXT) -> str:
        lines = []
        for entry in self.recent(count):
            speaker = "Assistant" if entry.role == "assistant" else "User"
            lines.append(f"{speaker}: {entry.content}")
        return "\n".join(lines)
