"""
Error taxonomy — every failure the agent surfaces maps to one class here.

Retries are decided by each adapter's ``RetryPolicy`` from the exception
type.  Tool errors are always converted into an isolated ``ToolResult`` by
the registry and never abort a turn.
"""

from __future__ import annotations

import re
from typing import Any, Optional


class AxisError(Exception):
    """Base class for all agent errors."""


# ── Provider errors ─────────────────────────────────────────────────

class ProviderError(AxisError):
    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class ProviderNotConfiguredError(ProviderError):
    def __init__(self, provider: str, env_key: str):
        super().__init__(f"{env_key} is not configured on the server.", provider)
        self.env_key = env_key


class TransportError(ProviderError):
    """Network reset, timeout or DNS failure talking to a backend."""


_JSON_MODE_RE = re.compile(r"response_format|json_object|response format|responseMimeType", re.I)


class UpstreamAPIError(ProviderError):
    """Non-2xx response from a backend."""

    def __init__(self, message: str, status: int, provider: str = ""):
        super().__init__(f"{message} (status {status})", provider)
        self.status = status
        self.upstream_message = message

    @property
    def rejects_json_mode(self) -> bool:
        return bool(_JSON_MODE_RE.search(self.upstream_message))


class EmptyReplyError(ProviderError):
    """Backend answered 2xx but with no text."""


class SafetyBlockError(ProviderError):
    """Backend refused the prompt on safety grounds. Never retried."""


# ── Structure / tool / agent errors ─────────────────────────────────

class InvalidStructureError(AxisError):
    """Model output could not be coerced into the requested schema."""

    def __init__(self, message: str, raw: str = "", repaired_raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw
        self.repaired_raw = repaired_raw


class ToolExecutionError(AxisError):
    """Raised when a requested tool cannot run or fails."""


class UnknownToolError(ToolExecutionError):
    pass


class ToolValidationError(ToolExecutionError):
    pass


class EntityNotFoundError(ToolExecutionError):
    pass


class AgentTurnError(AxisError):
    """A non-streaming turn ended in the ERROR state."""

    def __init__(self, message: str, cancelled: bool = False):
        super().__init__(message)
        self.cancelled = cancelled


def upstream_error_message(body: Any, status: int, provider_label: str) -> str:
    """Pull a human-readable message out of a backend error body."""
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        if body.get("message"):
            return str(body["message"])
    if isinstance(body, str) and body.strip():
        return body.strip()[:500]
    return f"{provider_label} request failed"
