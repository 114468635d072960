"""
Prompt Builder — the planning and final-reply prompts for one turn.

The planning prompt embeds the history block, the user message, the
snapshot and the tool catalog verbatim; the final prompt embeds the tool
results so the model can report what actually happened.
"""

from __future__ import annotations

import json
from typing import Iterable

from .models import ToolResult
from .schemas import PLANNER_SCHEMA_HINT

PLANNER_SYSTEM_PROMPT = (
    "You are Axis Assistant, an agent that can update the user's planner via tools "
    "(tasks, goals, habits, schedule). Return strict JSON only. Do not wrap JSON in markdown fences."
)

FINAL_REPLY_SYSTEM_PROMPT = (
    "You are Axis Assistant. Write the final user-facing reply in Markdown only (no JSON)."
)

PLANNER_RULES = (
    f"You MUST return strict JSON only matching: {PLANNER_SCHEMA_HINT}.",
    "Only call tools from the provided tool list.",
    "Use the conversation history to resolve references and keep context.",
    "If the user request is ambiguous, ask a clarifying question in assistant_reply and leave tool_calls empty.",
    "Never invent task, habit, or goal IDs; use snapshot/listed IDs.",
    "Do NOT delete anything unless the user explicitly asked.",
    "Keep tool_calls minimal (0–4 is ideal).",
    "If the user asks to add/edit tasks, use create_task/update_task. "
    "If the user asks to manage goals, use create_goal/update_goal.",
    "Only rebalance_schedule if the user asks to change/rebalance the schedule.",
    "assistant_reply may use Markdown (bullets, **bold**, *italics*, ++underline++, $math$).",
)


def history_block(history: str) -> str:
    if history:
        return f"Recent conversation (most recent last):\n{history}"
    return "Recent conversation: (none)"


def build_planner_prompt(message: str, snapshot: dict, history: str, catalog: list[dict]) -> str:
    rules = "\n".join(f"- {rule}" for rule in PLANNER_RULES)
    return (
        "You are an agent running inside Axis (a student planner). You can take actions via tools.\n\n"
        f"Rules:\n{rules}\n\n"
        f"{history_block(history)}\n\n"
        f"User message:\n{message}\n\n"
        f"Current user snapshot:\n{json.dumps(snapshot, indent=2, ensure_ascii=False)}\n\n"
        f"Available tools (JSON):\n{json.dumps(catalog, indent=2, ensure_ascii=False)}"
    )


def build_final_reply_prompt(message: str, tool_results: Iterable[ToolResult], history: str) -> str:
    results = json.dumps([r.to_dict() for r in tool_results], indent=2, ensure_ascii=False, default=str)
    return (
        "Write the final user-facing reply in Markdown (no JSON).\n"
        "Be concise, but include any important outcomes:\n"
        "- What you changed (tasks, habits, goals, schedule).\n"
        "- If something failed, say what and what to do next.\n"
        "Use Markdown for formatting. For underline, use ++text++. "
        "For formulas, use $...$ or $$...$$.\n\n"
        f"{history_block(history)}\n\n"
        f"User message:\n{message}\n\n"
        f"Tool results:\n{results}"
    )
