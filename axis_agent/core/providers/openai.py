"""
OpenAI provider — chat completions or the Responses API, over raw httpx.

The shape is picked from the configured URL: anything containing
``/responses`` speaks the Responses API (``input`` + ``instructions``),
everything else speaks chat completions (``messages``).  The Responses API
is always requested as a stream; the non-streaming call just accumulates it.
"""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Optional

from .base import BaseLLMProvider, ProviderFactory
from .deepseek import chat_delta_text, chat_message_text, chat_messages
from ..errors import EmptyReplyError
from ..models import CompletionOptions
from ..stream_cancellation import StreamCancellationToken
from ..wire_decoder import iter_sse_events

logger = logging.getLogger(__name__)


def responses_output_text(body: Any) -> str:
    """Extract reply text from a Responses API envelope."""
    if not isinstance(body, dict):
        return ""
    if isinstance(body.get("output_text"), str):
        return body["output_text"]
    parts = []
    for item in body.get("output") or []:
        if not isinstance(item, dict) or item.get("type", "message") != "message":
            continue
        for content in item.get("content") or []:
            if isinstance(content, dict) and isinstance(content.get("text"), str):
                parts.append(content["text"])
    return "".join(parts)


def _part_key(event: dict) -> tuple[int, int]:
    output_index = event.get("output_index")
    content_index = event.get("content_index")
    return (
        output_index if isinstance(output_index, int) else 0,
        content_index if isinstance(content_index, int) else 0,
    )


class ResponsesText:
    """
    Reply text of a Responses API stream, kept per output_text part.

    Only ``response.output_text.delta`` events add text; reasoning, refusal
    and function-argument deltas are ignored.  A ``.done`` event settles its
    own part.  Envelopes carrying the whole response only extend the text.
    """

    def __init__(self) -> None:
        self._parts: dict[tuple[int, int], str] = {}
        self._tail = ""

    @property
    def text(self) -> str:
        return "".join(self._parts[key] for key in sorted(self._parts)) + self._tail

    def feed(self, event: dict) -> str:
        """Apply *event* and return the text it appended, if any."""
        kind = event.get("type")
        if kind == "response.output_text.delta":
            delta = event.get("delta")
            if not isinstance(delta, str) or not delta:
                return ""
            key = _part_key(event)
            self._parts[key] = self._parts.get(key, "") + delta
            return delta
        if kind == "response.output_text.done":
            full = event.get("text")
            if not isinstance(full, str):
                return ""
            key = _part_key(event)
            seen = self._parts.get(key, "")
            self._parts[key] = full
            return full[len(seen):] if full.startswith(seen) else ""
        if kind not in (None, "response.completed"):
            return ""

        current = self.text
        full = responses_output_text(event.get("response") or event)
        if full.startswith(current) and len(full) > len(current):
            suffix = full[len(current):]
            self._tail += suffix
            return suffix
        return ""


class OpenAIProvider(BaseLLMProvider):
    """OpenAI provider with chat-completions and Responses API shapes."""

    name = "openai"
    label = "OpenAI"

    @property
    def uses_responses_api(self) -> bool:
        return "/responses" in self.base_url

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _payload(self, system: str, user: str, options: CompletionOptions, stream: bool) -> dict:
        if self.uses_responses_api:
            payload: dict[str, Any] = {
                "model": self.model,
                "input": user,
                "instructions": system,
                "temperature": options.temperature,
                "max_output_tokens": options.max_tokens,
                "stream": True,
            }
            if options.expect_json:
                payload["text"] = {"format": {"type": "json_object"}}
            return payload

        payload = {
            "model": self.model,
            "messages": chat_messages(system, user),
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if stream:
            payload["stream"] = True
        if options.expect_json:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def _complete_once(
        self,
        system: str,
        user: str,
        options: CompletionOptions,
        cancel_token: Optional[StreamCancellationToken],
    ) -> str:
        if self.uses_responses_api:
            text = await self._accumulate_responses(system, user, options, cancel_token)
            if not text.strip():
                raise EmptyReplyError("OpenAI streaming reply empty", self.name)
            return text.strip()

        body = await self._post_json(
            self.base_url, self._payload(system, user, options, stream=False), cancel_token,
        )
        text = chat_message_text(body) or responses_output_text(body).strip()
        if not text:
            raise EmptyReplyError("OpenAI reply missing content", self.name)
        return text

    async def _accumulate_responses(
        self,
        system: str,
        user: str,
        options: CompletionOptions,
        cancel_token: Optional[StreamCancellationToken],
    ) -> str:
        collected = ResponsesText()
        async for event in self._responses_events(system, user, options, cancel_token):
            collected.feed(event)
        return collected.text

    async def _responses_events(
        self,
        system: str,
        user: str,
        options: CompletionOptions,
        cancel_token: Optional[StreamCancellationToken],
    ) -> AsyncIterator[dict]:
        payload = self._payload(system, user, options, stream=True)
        async with self._client() as client:
            response = await self._open_stream(client, self.base_url, payload, cancel_token)
            try:
                async for event in iter_sse_events(self._iter_body(response), cancel_token):
                    try:
                        parsed = json.loads(event.data)
                    except ValueError:
                        continue
                    if isinstance(parsed, dict):
                        yield parsed
            finally:
                await response.aclose()

    async def _stream_once(
        self,
        system: str,
        user: str,
        options: CompletionOptions,
        cancel_token: Optional[StreamCancellationToken],
    ) -> AsyncIterator[str]:
        if not self.uses_responses_api:
            async with aclosing(self._stream_chat(system, user, options, cancel_token)) as deltas:
                async for delta in deltas:
                    yield delta
            return

        collected = ResponsesText()
        async with aclosing(self._responses_events(system, user, options, cancel_token)) as events:
            async for event in events:
                appended = collected.feed(event)
                if appended:
                    yield appended

    async def _stream_chat(
        self,
        system: str,
        user: str,
        options: CompletionOptions,
        cancel_token: Optional[StreamCancellationToken],
    ) -> AsyncIterator[str]:
        payload = self._payload(system, user, options, stream=True)
        async with self._client() as client:
            response = await self._open_stream(client, self.base_url, payload, cancel_token)
            try:
                async for event in iter_sse_events(self._iter_body(response), cancel_token):
                    try:
                        chunk = json.loads(event.data)
                    except ValueError:
                        continue
                    delta = chat_delta_text(chunk)
                    if delta:
                        yield delta
            finally:
                await response.aclose()


ProviderFactory.register("openai", OpenAIProvider)
