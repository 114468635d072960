"""
Abstract base class for LLM providers.
All backends (DeepSeek, OpenAI, Gemini) implement this interface.

Callers only see two operations:

    text = await provider.complete(system, user, options, cancel_token=token)
    async for token in provider.stream(system, user, options, cancel_token=token):
        ...

Request shapes, response envelopes, retry quirks and the strict-JSON
fallback stay inside the adapter.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import replace
from typing import Any, AsyncIterator, Mapping, Optional

import httpx

from ..errors import (
    AxisError, ProviderNotConfiguredError, TransportError, UpstreamAPIError,
    upstream_error_message,
)
from ..models import CompletionOptions, LLMSettings, ProviderConfig, mask_api_key
from ..retry import RetryPolicy, retry_async
from ..stream_cancellation import StreamCancellationToken, StreamCancelledError, guard

logger = logging.getLogger(__name__)


class BaseLLMProvider(ABC):
    """Abstract LLM provider interface."""

    name: str = ""
    label: str = ""

    def __init__(
        self,
        config: ProviderConfig,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.model = config.model
        self.base_url = config.base_url
        self.timeout = config.timeout
        self.retry_policy = retry_policy or self.default_retry_policy()
        self._transport = transport

    @classmethod
    def default_retry_policy(cls) -> RetryPolicy:
        return RetryPolicy()

    @property
    def api_key(self) -> str:
        """Access the API key (property to avoid accidental logging)."""
        return self.config.api_key

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(model={self.model!r}, "
            f"api_key={mask_api_key(self.api_key)!r})"
        )

    # ── Public operations ───────────────────────────────────────

    async def complete(
        self,
        system: str,
        user: str,
        options: Optional[CompletionOptions] = None,
        cancel_token: Optional[StreamCancellationToken] = None,
    ) -> str:
        """Return the whole reply text for one system/user exchange."""
        self._require_configured()
        opts = options or CompletionOptions()

        async def attempt() -> str:
            try:
                return await self._complete_once(system, user, opts, cancel_token)
            except UpstreamAPIError as exc:
                if not (opts.expect_json and exc.rejects_json_mode):
                    raise
                logger.info("%s rejected JSON mode, retrying without it: %s", self.label, exc)
                return await self._complete_once(
                    system, user, replace(opts, expect_json=False), cancel_token,
                )

        return await retry_async(attempt, policy=self.retry_policy, cancel_token=cancel_token)

    async def stream(
        self,
        system: str,
        user: str,
        options: Optional[CompletionOptions] = None,
        cancel_token: Optional[StreamCancellationToken] = None,
    ) -> AsyncIterator[str]:
        """
        Yield reply text incrementally.

        Retries follow ``retry_policy`` but only while nothing has been
        yielded yet; once a token is out, failures propagate.
        """
        self._require_configured()
        opts = options or CompletionOptions()
        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            emitted = False
            try:
                async with aclosing(self._stream_once(system, user, opts, cancel_token)) as tokens:
                    async for token in tokens:
                        emitted = True
                        yield token
                return
            except StreamCancelledError:
                raise
            except AxisError as exc:
                if emitted or not policy.should_retry(exc, attempt):
                    raise
                delay = policy.delay_for(attempt)
                logger.warning("%s stream retry %d/%d after %.2fs: %s",
                               self.label, attempt, policy.max_attempts, delay, exc)
                if cancel_token is not None:
                    await cancel_token.sleep(delay)
                else:
                    await asyncio.sleep(delay)

    # ── Adapter hooks ───────────────────────────────────────────

    @abstractmethod
    async def _complete_once(
        self,
        system: str,
        user: str,
        options: CompletionOptions,
        cancel_token: Optional[StreamCancellationToken],
    ) -> str:
        """One request/response round trip, no retries."""

    @abstractmethod
    def _stream_once(
        self,
        system: str,
        user: str,
        options: CompletionOptions,
        cancel_token: Optional[StreamCancellationToken],
    ) -> AsyncIterator[str]:
        """One streamed request, yielding incremental text."""

    # ── HTTP helpers ────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        kwargs: dict[str, Any] = {"timeout": self.timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        elif self.config.proxy:
            kwargs["proxy"] = self.config.proxy
        return httpx.AsyncClient(**kwargs)

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise ProviderNotConfiguredError(self.name, self.config.env_key)

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _post_json(
        self,
        url: str,
        payload: dict,
        cancel_token: Optional[StreamCancellationToken],
        params: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """POST *payload* and return the decoded JSON body of a 2xx reply."""
        async with self._client() as client:
            try:
                response = await guard(
                    client.post(url, json=payload, headers=self._headers(), params=params),
                    cancel_token,
                )
            except httpx.TransportError as exc:
                raise TransportError(f"{self.label} request failed: {exc!r}", self.name) from exc

        if response.is_error:
            raise self._upstream_error(response.status_code, response.text)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamAPIError(
                f"{self.label} returned a non-JSON body", response.status_code, self.name,
            ) from exc

    async def _open_stream(
        self,
        client: httpx.AsyncClient,
        url: str,
        payload: dict,
        cancel_token: Optional[StreamCancellationToken],
        params: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        """Send a streaming POST; the caller must ``aclose()`` the response."""
        headers = {**self._headers(), "Accept": "text/event-stream"}
        request = client.build_request("POST", url, json=payload, headers=headers, params=params)
        try:
            response = await guard(client.send(request, stream=True), cancel_token)
        except httpx.TransportError as exc:
            raise TransportError(f"{self.label} stream failed: {exc!r}", self.name) from exc

        if response.is_error:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await response.aclose()
            raise self._upstream_error(response.status_code, body)
        return response

    async def _iter_body(self, response: httpx.Response) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.TransportError as exc:
            raise TransportError(f"{self.label} stream interrupted: {exc!r}", self.name) from exc

    def _upstream_error(self, status: int, body_text: str) -> UpstreamAPIError:
        try:
            body: Any = json.loads(body_text)
        except ValueError:
            body = body_text
        message = upstream_error_message(body, status, self.label)
        return UpstreamAPIError(message, status, self.name)


class ProviderFactory:
    """Create LLM providers from ``LLMSettings``."""

    _providers: dict[str, type[BaseLLMProvider]] = {}

    @classmethod
    def register(cls, name: str, provider_class: type[BaseLLMProvider]):
        cls._providers[name] = provider_class

    @classmethod
    def available(cls) -> list[str]:
        return sorted(cls._providers)

    @classmethod
    def create(cls, config: ProviderConfig, **kwargs: Any) -> BaseLLMProvider:
        if config.name not in cls._providers:
            raise ValueError(
                f"Unknown provider: {config.name}. "
                f"Available: {cls.available()}"
            )
        return cls._providers[config.name](config, **kwargs)

    @classmethod
    def create_all(cls, settings: LLMSettings, **kwargs: Any) -> dict[str, BaseLLMProvider]:
        """One adapter per configured-or-not backend; unconfigured ones fail on first call."""
        return {name: cls.create(cfg, **kwargs) for name, cfg in settings.providers.items()}
