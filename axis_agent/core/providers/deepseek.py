"""
DeepSeek provider — OpenAI-compatible chat completions over raw httpx.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Optional

from .base import BaseLLMProvider, ProviderFactory
from ..errors import EmptyReplyError
from ..models import CompletionOptions
from ..stream_cancellation import StreamCancellationToken
from ..wire_decoder import iter_sse_events

logger = logging.getLogger(__name__)


def chat_messages(system: str, user: str) -> list[dict]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


def chat_delta_text(chunk: Any) -> str:
    """Text of ``choices[0].delta.content`` in a streamed chat chunk."""
    try:
        content = chunk["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""
    return content if isinstance(content, str) else ""


def chat_message_text(body: Any) -> str:
    try:
        content = body["choices"][0]["message"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""
    return content.strip() if isinstance(content, str) else ""


class DeepSeekProvider(BaseLLMProvider):
    """DeepSeek chat completions, with optional ``json_object`` response format."""

    name = "deepseek"
    label = "DeepSeek"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _payload(self, system: str, user: str, options: CompletionOptions, stream: bool) -> dict:
        payload: dict[str, Any] = {
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
        body = await self._post_json(
            self.base_url, self._payload(system, user, options, stream=False), cancel_token,
        )
        text = chat_message_text(body)
        if not text:
            raise EmptyReplyError("DeepSeek reply missing content", self.name)
        return text

    async def _stream_once(
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
                        logger.debug("DeepSeek: skipping non-JSON frame")
                        continue
                    delta = chat_delta_text(chunk)
                    if delta:
                        yield delta
            finally:
                await response.aclose()


ProviderFactory.register("deepseek", DeepSeekProvider)
