"""
Agent Orchestrator — plan → act → respond over the planner tools.

One ``AssistantAgent`` is built at startup and shared by every request; it
holds only read-only collaborators.  Each request gets its own ``TurnRun``,
which walks the state machine and yields ``StreamEvent`` values:

    PLANNING   structured {assistant_reply, tool_calls} via the repair pipeline
    ACTING     up to ``max_tool_calls`` calls, sequentially, failures isolated
    RESPONDING final Markdown reply (streamed or not) when any tool ran
    DONE       history appended, result emitted
    ERROR      terminal from any state; exactly one error event
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from enum import Enum
from typing import AsyncIterator, Mapping, Optional

from .errors import AgentTurnError, AxisError, InvalidStructureError
from .history import HISTORY_CONTEXT, HISTORY_LIMIT, ConversationHistory
from .json_repair import JsonRepairPipeline
from .models import AgentTurn, CompletionOptions, LLMSettings, ToolCall, ToolResult
from .prompt_builder import (
    FINAL_REPLY_SYSTEM_PROMPT, PLANNER_SYSTEM_PROMPT, build_final_reply_prompt,
    build_planner_prompt,
)
from .provider_selector import resolve_for_user
from .providers.base import BaseLLMProvider
from .schemas import PLANNER_SCHEMA_HINT, PlannerResponse
from .snapshot import build_snapshot, normalize_user_data
from .stream_cancellation import StreamCancellationToken, StreamCancelledError
from .stream_events import (
    DoneEvent, ErrorEvent, MetaEvent, ResultEvent, StatusEvent, StreamEvent, TokenEvent,
)
from .structured_logger import StructuredLogger
from .tool_registry import ToolRegistry, is_read_only
from ..tools.base import CalendarLinksFn, ToolContext

logger = logging.getLogger(__name__)

MAX_TOOL_CALLS = 6

PLANNING_OPTIONS = CompletionOptions(temperature=0.15, max_tokens=900, expect_json=True)
FINAL_REPLY_OPTIONS = CompletionOptions(temperature=0.25, max_tokens=700)

INVALID_PLAN_MESSAGE = "Assistant returned an invalid response."
DISCONNECTED_MESSAGE = "Client disconnected."


class AgentState(str, Enum):
    PLANNING = "planning"
    ACTING = "acting"
    RESPONDING = "responding"
    DONE = "done"
    ERROR = "error"


class AssistantAgent:
    """Stateless orchestrator shared across requests."""

    def __init__(
        self,
        settings: LLMSettings,
        providers: Mapping[str, BaseLLMProvider],
        registry: ToolRegistry,
        calendar_links: Optional[CalendarLinksFn] = None,
        max_tool_calls: int = MAX_TOOL_CALLS,
        history_limit: int = HISTORY_LIMIT,
        history_context: int = HISTORY_CONTEXT,
    ):
        self.settings = settings
        self.providers = dict(providers)
        self.registry = registry
        self.calendar_links = calendar_links
        self.max_tool_calls = max_tool_calls
        self.history_limit = history_limit
        self.history_context = history_context

    def resolve_provider(self, data: dict, requested: Optional[str] = None) -> str:
        return resolve_for_user(self.settings, data, requested)

    def new_turn(
        self,
        user_id: str,
        data: dict,
        message: str,
        requested_provider: Optional[str] = None,
        cancel_token: Optional[StreamCancellationToken] = None,
    ) -> "TurnRun":
        return TurnRun(self, user_id, data, message, requested_provider, cancel_token)

    async def run(
        self,
        user_id: str,
        data: dict,
        message: str,
        requested_provider: Optional[str] = None,
        cancel_token: Optional[StreamCancellationToken] = None,
    ) -> "TurnRun":
        """
        Run a whole turn without streaming the final reply.

        Raises:
            AgentTurnError: if the turn ends in the ERROR state.
        """
        turn = self.new_turn(user_id, data, message, requested_provider, cancel_token)
        async for _event in turn.events(stream_reply=False):
            pass
        if turn.state is AgentState.ERROR:
            raise AgentTurnError(turn.error or "Assistant failed", cancelled=turn.cancelled)
        return turn


class TurnRun:
    """State for one user message through to one finished reply."""

    def __init__(
        self,
        agent: AssistantAgent,
        user_id: str,
        data: dict,
        message: str,
        requested_provider: Optional[str] = None,
        cancel_token: Optional[StreamCancellationToken] = None,
    ):
        self.agent = agent
        self.user_id = user_id
        self.data = normalize_user_data(data)
        self.message = message
        self.cancel_token = cancel_token or StreamCancellationToken()

        # Fixed for the whole turn.
        self.provider_name = agent.resolve_provider(self.data, requested_provider)
        self.provider = agent.providers[self.provider_name]

        self.state = AgentState.PLANNING
        self.plan: Optional[PlannerResponse] = None
        self.tool_calls: list[ToolCall] = []
        self.tool_results: list[ToolResult] = []
        self.reply = ""
        self.error: Optional[str] = None
        self.cancelled = False
        self.data_changed = False
        self.history_changed = False
        self.result: Optional[AgentTurn] = None

        self._history = ConversationHistory(self.data["assistantHistory"], limit=agent.history_limit)
        self._log = StructuredLogger(__name__).with_context(
            trace_id=StructuredLogger.generate_trace_id(),
            user_id=user_id,
            provider_name=self.provider_name,
        )

    @property
    def persist_needed(self) -> bool:
        return self.state is AgentState.DONE and (self.data_changed or self.history_changed)

    async def events(self, stream_reply: bool = True) -> AsyncIterator[StreamEvent]:
        """Drive the state machine; the last event is always ``done`` or ``error``."""
        # Built before any tool runs; tools only see in-flight changes through data.
        snapshot = build_snapshot(self.data)
        history_text = self._history.format_for_prompt(self.agent.history_context)

        yield MetaEvent(self.provider_name)
        yield StatusEvent("planning")
        try:
            self.plan = await self._plan(snapshot, history_text)
        except InvalidStructureError as exc:
            self._log.warning("Planner reply unusable", detail=str(exc))
            yield self._fail(INVALID_PLAN_MESSAGE)
            return
        except StreamCancelledError:
            yield self._fail(DISCONNECTED_MESSAGE, cancelled=True)
            return
        except AxisError as exc:
            yield self._fail(str(exc))
            return

        self._transition(AgentState.ACTING)
        planned = self.plan.tool_calls
        if len(planned) > self.agent.max_tool_calls:
            self._log.info(
                "Ignoring planned tool calls over the cap",
                planned=len(planned), cap=self.agent.max_tool_calls,
            )
        planned = planned[:self.agent.max_tool_calls]

        yield StatusEvent("acting", tool_calls=len(planned))
        context = ToolContext(
            user_id=self.user_id,
            provider=self.provider,
            cancel_token=self.cancel_token,
            calendar_links=self.agent.calendar_links,
        )
        for planned_call in planned:
            name = planned_call.name.strip()
            if not name:
                continue
            if self.cancel_token.is_cancelled:
                yield self._fail(DISCONNECTED_MESSAGE, cancelled=True)
                return

            call = ToolCall(name=name, arguments=planned_call.arguments)
            self.tool_calls.append(call)
            yield StatusEvent("tool_start", tool=name)
            try:
                result = await self.agent.registry.execute_tool(call, self.data, context)
            except StreamCancelledError:
                yield self._fail(DISCONNECTED_MESSAGE, cancelled=True)
                return
            self.tool_results.append(result)
            if result.ok and not is_read_only(name):
                self.data_changed = True
            yield StatusEvent("tool_done", tool=name, ok=result.ok, error=result.error)

        if not self.tool_calls:
            self.reply = self.plan.assistant_reply
            yield TokenEvent(self.reply)
            for event in self._finish():
                yield event
            return

        self._transition(AgentState.RESPONDING)
        yield StatusEvent("responding")
        prompt = build_final_reply_prompt(self.message, self.tool_results, history_text)
        parts: list[str] = []
        try:
            if stream_reply:
                tokens = self.provider.stream(
                    FINAL_REPLY_SYSTEM_PROMPT, prompt, FINAL_REPLY_OPTIONS, self.cancel_token,
                )
                async with aclosing(tokens):
                    async for token in tokens:
                        self.cancel_token.check()
                        parts.append(token)
                        yield TokenEvent(token)
            else:
                parts.append(await self.provider.complete(
                    FINAL_REPLY_SYSTEM_PROMPT, prompt, FINAL_REPLY_OPTIONS, self.cancel_token,
                ))
        except StreamCancelledError:
            yield self._fail(DISCONNECTED_MESSAGE, cancelled=True)
            return
        except AxisError as exc:
            if parts:
                yield self._fail(str(exc))
                return
            # Nothing reached the caller yet, so the planning reply can stand in.
            self._log.warning("Final reply failed, using planning reply", detail=str(exc))
            parts = [self.plan.assistant_reply]
            if stream_reply:
                yield TokenEvent(self.plan.assistant_reply)

        self.reply = "".join(parts).strip() or self.plan.assistant_reply
        for event in self._finish():
            yield event

    async def _plan(self, snapshot: dict, history_text: str) -> PlannerResponse:
        prompt = build_planner_prompt(self.message, snapshot, history_text, self.agent.registry.catalog())
        return await JsonRepairPipeline(self.provider).complete(
            PLANNER_SYSTEM_PROMPT,
            prompt,
            PlannerResponse,
            PLANNING_OPTIONS,
            schema_hint=PLANNER_SCHEMA_HINT,
            cancel_token=self.cancel_token,
        )

    def _finish(self) -> list[StreamEvent]:
        self.history_changed = self._history.append_turn(self.message, self.reply)
        self.result = AgentTurn(
            message=self.message,
            reply=self.reply,
            provider=self.provider_name,
            tool_calls=list(self.tool_calls),
            tool_results=list(self.tool_results),
            data_changed=self.data_changed,
        )
        self._transition(AgentState.DONE)
        self._log.info("Turn complete", tools=len(self.tool_calls), changed=self.data_changed)
        return [ResultEvent(self.reply, self.tool_results, self.data), DoneEvent()]

    def _fail(self, message: str, cancelled: bool = False) -> ErrorEvent:
        self.error = message
        self.cancelled = cancelled
        self._transition(AgentState.ERROR)
        self._log.warning("Turn failed", error=message, cancelled=cancelled)
        return ErrorEvent(message)

    def _transition(self, state: AgentState) -> None:
        self._log.debug(f"{self.state.value} -> {state.value}")
        self.state = state
