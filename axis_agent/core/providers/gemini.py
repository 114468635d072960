"""
Gemini provider — native ``generateContent`` / ``streamGenerateContent``.

Quirks handled here:
  - ``promptFeedback.blockReason`` (or a safety finish with no text) is a
    ``SafetyBlockError`` and is never retried.
  - Gemini sometimes answers 200 with no text at all; that empty reply is
    retried like a transport error, up to the same attempt cap.
  - 5xx responses are retried; other non-2xx responses are not.
  - Streamed chunks may carry cumulative text, so each chunk is diffed
    against the text seen so far.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

from .base import BaseLLMProvider, ProviderFactory
from ..errors import EmptyReplyError, SafetyBlockError, TransportError
from ..models import CompletionOptions
from ..retry import SERVER_ERROR_STATUSES, RetryPolicy
from ..stream_cancellation import StreamCancellationToken
from ..wire_decoder import iter_json_lines

logger = logging.getLogger(__name__)

SAFETY_FINISH_REASONS = frozenset({"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"})


def candidate_text(body: Any) -> str:
    try:
        parts = body["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return ""
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


def check_blocked(body: Any) -> None:
    """Raise ``SafetyBlockError`` if *body* reports a blocked prompt or reply."""
    if not isinstance(body, dict):
        return
    reason = (body.get("promptFeedback") or {}).get("blockReason")
    if reason:
        raise SafetyBlockError(f"Gemini blocked the prompt: {reason}", "gemini")
    candidates = body.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        finish = candidates[0].get("finishReason")
        if finish in SAFETY_FINISH_REASONS and not candidate_text(body):
            raise SafetyBlockError(f"Gemini blocked the reply: {finish}", "gemini")


class GeminiProvider(BaseLLMProvider):
    """Google Gemini via the v1beta REST API."""

    name = "gemini"
    label = "Gemini"

    @classmethod
    def default_retry_policy(cls) -> RetryPolicy:
        return RetryPolicy(
            retryable_exceptions=(TransportError, EmptyReplyError),
            retry_statuses=SERVER_ERROR_STATUSES,
        )

    def _url(self, method: str) -> str:
        return f"{self.base_url}/models/{self.model}:{method}"

    def _payload(self, system: str, user: str, options: CompletionOptions) -> dict:
        generation_config: dict[str, Any] = {
            "temperature": options.temperature,
            "maxOutputTokens": options.max_tokens,
        }
        if options.expect_json:
            generation_config["responseMimeType"] = "application/json"
        return {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [{"role": "user", "parts": [{"text": user}]}],
            "generationConfig": generation_config,
        }

    async def _complete_once(
        self,
        system: str,
        user: str,
        options: CompletionOptions,
        cancel_token: Optional[StreamCancellationToken],
    ) -> str:
        body = await self._post_json(
            self._url("generateContent"),
            self._payload(system, user, options),
            cancel_token,
            params={"key": self.api_key},
        )
        check_blocked(body)
        text = candidate_text(body).strip()
        if not text:
            raise EmptyReplyError("Gemini reply missing content", self.name)
        return text

    async def _stream_once(
        self,
        system: str,
        user: str,
        options: CompletionOptions,
        cancel_token: Optional[StreamCancellationToken],
    ) -> AsyncIterator[str]:
        seen = ""
        async with self._client() as client:
            response = await self._open_stream(
                client,
                self._url("streamGenerateContent"),
                self._payload(system, user, options),
                cancel_token,
                params={"key": self.api_key, "alt": "sse"},
            )
            try:
                async for chunk in iter_json_lines(self._iter_body(response), cancel_token):
                    check_blocked(chunk)
                    text = candidate_text(chunk)
                    if not text:
                        continue
                    if text.startswith(seen):
                        delta = text[len(seen):]
                        seen = text
                    else:
                        delta = text
                        seen += text
                    if delta:
                        yield delta
            finally:
                await response.aclose()

        if not seen.strip():
            raise EmptyReplyError("Gemini streaming reply empty", self.name)


ProviderFactory.register("gemini", GeminiProvider)
