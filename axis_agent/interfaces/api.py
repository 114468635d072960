"""
REST API — the assistant endpoints of the Axis planner service.

Usage::

    axis-agent --host 127.0.0.1 --port 3000

The caller is identified by the ``X-User-Id`` header; authentication
happens in front of this service.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from ..core.agent import AssistantAgent
from ..core.errors import AgentTurnError
from ..core.provider_selector import provider_summary
from ..core.stream_cancellation import StreamCancellationToken
from ..core.stream_events import ErrorEvent, format_sse
from ..core.structured_logger import log_context
from ..core.user_store import JsonUserStore

logger = logging.getLogger(__name__)

DISCONNECT_POLL_SECONDS = 0.5


class AssistantRequest(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    provider: Optional[str] = Field(default=None, max_length=40)


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


class RestAPIInterface:
    """FastAPI server over one shared ``AssistantAgent``.

    Endpoints:
        POST   /api/assistant/agent         — run a turn (full response)
        POST   /api/assistant/agent/stream  — run a turn (SSE stream)
        GET    /api/assistant/tools         — tool catalog + provider summary
        GET    /api/ai/providers            — provider summary
        GET    /api/health                  — health check
    """

    def __init__(
        self,
        agent: AssistantAgent,
        store: JsonUserStore,
        host: str = "127.0.0.1",
        port: int = 3000,
    ):
        self.agent = agent
        self.store = store
        self.host = host
        self.port = port
        self.app = FastAPI(
            title="Axis Assistant API",
            description="Planner assistant: plan, act on planner data, reply.",
            version="0.1.0",
        )
        self._setup_routes()

    async def _load_user(self, user_id: Optional[str]) -> tuple[Optional[dict], Optional[JSONResponse]]:
        if not user_id:
            return None, _error(401, "Missing X-User-Id header")
        try:
            data = await self.store.get_user_data(user_id)
        except ValueError as e:
            return None, _error(400, str(e))
        if data is None:
            return None, _error(404, "User not found")
        return data, None

    def _setup_routes(self) -> None:
        app = self.app

        @app.post("/api/assistant/agent")
        async def run_agent(body: AssistantRequest, x_user_id: Optional[str] = Header(default=None)):
            """Run one turn and return the finished reply with updated data."""
            message = body.message.strip()
            if not message:
                return _error(400, "message is required")
            data, failure = await self._load_user(x_user_id)
            if failure is not None:
                return failure

            with log_context(user_id=x_user_id):
                try:
                    turn = await self.agent.run(x_user_id, data, message, body.provider)
                except AgentTurnError as e:
                    return _error(502, str(e))
                if turn.persist_needed:
                    await self.store.save_user_data(x_user_id, turn.data)

            return {
                "reply": turn.reply,
                "toolCalls": [c.to_dict() for c in turn.tool_calls],
                "toolResults": [r.to_dict() for r in turn.tool_results],
                "data": turn.data,
                "provider": turn.provider_name,
            }

        @app.post("/api/assistant/agent/stream")
        async def run_agent_stream(
            body: AssistantRequest,
            request: Request,
            x_user_id: Optional[str] = Header(default=None),
        ):
            """Run one turn as an SSE stream: meta, status…, token…, result, done (or error)."""
            message = body.message.strip()
            if not message:
                return _error(400, "message is required")
            data, failure = await self._load_user(x_user_id)
            if failure is not None:
                return failure

            token = StreamCancellationToken()
            turn = self.agent.new_turn(x_user_id, data, message, body.provider, cancel_token=token)

            async def watch_disconnect():
                while not token.is_cancelled:
                    if await request.is_disconnected():
                        token.cancel("Client disconnected")
                        return
                    await asyncio.sleep(DISCONNECT_POLL_SECONDS)

            async def event_generator():
                watcher = asyncio.ensure_future(watch_disconnect())
                try:
                    async for event in turn.events(stream_reply=True):
                        if event.name == "result" and turn.persist_needed:
                            try:
                                await self.store.save_user_data(x_user_id, turn.data)
                            except OSError as e:
                                logger.error(f"Failed to save planner data for {x_user_id}: {e}")
                                yield format_sse(ErrorEvent("Failed to save planner data."))
                                return
                        yield format_sse(event)
                finally:
                    # Generator closed early means the client went away.
                    token.cancel("Client disconnected")
                    watcher.cancel()

            return StreamingResponse(
                event_generator(),
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
            )

        @app.get("/api/assistant/tools")
        async def list_tools(x_user_id: Optional[str] = Header(default=None)):
            """Tool catalog as shown to the planner, plus provider resolution."""
            data = await self._optional_user(x_user_id)
            return {
                "tools": self.agent.registry.catalog(),
                "providers": provider_summary(self.agent.settings, data),
            }

        @app.get("/api/ai/providers")
        async def list_providers(x_user_id: Optional[str] = Header(default=None)):
            data = await self._optional_user(x_user_id)
            return provider_summary(self.agent.settings, data)

        @app.get("/api/health")
        async def health_check():
            return {
                "status": "ok",
                "service": "axis-assistant-api",
                "configuredProviders": self.agent.settings.configured_providers(),
                "timestamp": time.time(),
            }

    async def _optional_user(self, user_id: Optional[str]) -> Optional[dict]:
        if not user_id:
            return None
        try:
            return await self.store.get_user_data(user_id)
        except ValueError:
            return None

    async def run(self) -> None:
        """Start the FastAPI server via uvicorn."""
        import uvicorn

        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="info")
        server = uvicorn.Server(config)
        await server.serve()


def create_app(agent: AssistantAgent, store: JsonUserStore) -> FastAPI:
    return RestAPIInterface(agent, store).app
