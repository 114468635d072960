"""
Core data models for the Axis assistant.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping, Optional


# Sorted; doubles as the deterministic fallback order.
PROVIDER_NAMES: tuple[str, ...] = ("deepseek", "gemini", "openai")

PROVIDER_ENV_KEYS = {
    "deepseek": "DEEPSEEK_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
}


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a trailing Z."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def normalize_api_key(value: Any) -> str:
    key = str(value or "").strip()
    if key.lower().startswith("bearer "):
        key = key[7:].strip()
    return key


def mask_api_key(key: str) -> str:
    if not key:
        return ""
    if len(key) <= 8:
        return "********"
    return f"{key[:3]}…{key[-4:]}"


@dataclass(frozen=True)
class ProviderConfig:
    """Connection settings for one LLM backend. Read-only after startup."""
    name: str
    base_url: str
    model: str
    api_key: str = ""
    proxy: str = ""
    timeout: float = 60.0

    @property
    def is_configured(self) -> bool:
        if not self.api_key:
            return False
        return self.api_key != f"your_{self.name}_api_key_here"

    @property
    def env_key(self) -> str:
        return PROVIDER_ENV_KEYS.get(self.name, f"{self.name.upper()}_API_KEY")

    def __repr__(self) -> str:
        return (
            f"ProviderConfig(name={self.name!r}, model={self.model!r}, "
            f"base_url={self.base_url!r}, api_key={mask_api_key(self.api_key)!r})"
        )


@dataclass(frozen=True)
class LLMSettings:
    """Process-wide provider configuration, constructed once and passed down."""
    default_provider: str
    providers: Mapping[str, ProviderConfig]

    def __post_init__(self):
        object.__setattr__(self, "providers", MappingProxyType(dict(self.providers)))

    def get(self, name: str) -> Optional[ProviderConfig]:
        return self.providers.get(name)

    def configured_providers(self) -> list[str]:
        return sorted(n for n, cfg in self.providers.items() if cfg.is_configured)


@dataclass
class CompletionOptions:
    temperature: float = 0.35
    max_tokens: int = 900
    expect_json: bool = False


@dataclass(frozen=True)
class ToolSchema:
    """Catalog entry for one tool, embedded verbatim in the planning prompt."""
    name: str
    description: str
    input_schema: dict

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass
class ToolCall:
    """A tool invocation requested by the planner."""
    name: str
    arguments: Any = None

    def to_dict(self) -> dict:
        return {"name": self.name, "arguments": self.arguments}


@dataclass
class ToolResult:
    """Outcome of one tool call: either ``result`` or ``error``."""
    name: str
    ok: bool
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        if self.ok:
            return {"name": self.name, "ok": True, "result": self.result}
        return {"name": self.name, "ok": False, "error": self.error}


@dataclass
class HistoryEntry:
    role: str
    content: str
    ts: str = ""

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content, "ts": self.ts}


@dataclass
class AgentTurn:
    """One finished conversation turn."""
    message: str
    reply: str
    provider: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    data_changed: bool = False
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "reply": self.reply,
            "provider": self.provider,
            "toolCalls": [c.to_dict() for c in self.tool_calls],
            "toolResults": [r.to_dict() for r in self.tool_results],
        }
