"""
Shared test helpers: a scripted LLM provider and small planner fixtures.
"""

import asyncio
import json

from axis_agent.core.agent import AssistantAgent
from axis_agent.core.errors import EmptyReplyError
from axis_agent.core.models import LLMSettings, PROVIDER_NAMES, ProviderConfig
from axis_agent.core.providers.base import BaseLLMProvider
from axis_agent.core.retry import RetryPolicy
from axis_agent.tools import build_planner_registry


def _run(coro):
    """Run an async function synchronously."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def provider_config(name="deepseek", api_key="sk-test-1234567890", base_url="http://llm.test",
                    model="test-model"):
    return ProviderConfig(name=name, base_url=base_url, model=model, api_key=api_key)


class ScriptedProvider(BaseLLMProvider):
    """
    Provider whose replies come from a script instead of the network.

    ``replies`` feeds ``complete``: each item is a string or an exception to raise.
    ``stream_replies`` feeds ``stream``: each item is a list of tokens (an
    exception inside the list is raised at that point) or an exception.
    """

    label = "Scripted"

    def __init__(self, replies=None, stream_replies=None, name="deepseek", retry_policy=None):
        super().__init__(
            provider_config(name=name),
            retry_policy=retry_policy or RetryPolicy(max_attempts=1, backoff_base=0),
        )
        self.name = name
        self.replies = list(replies or [])
        self.stream_replies = list(stream_replies or [])
        self.calls = []

    async def _complete_once(self, system, user, options, cancel_token):
        self.calls.append(("complete", system, user, options))
        if not self.replies:
            raise EmptyReplyError("Scripted reply missing content", self.name)
        item = self.replies.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def _stream_once(self, system, user, options, cancel_token):
        self.calls.append(("stream", system, user, options))
        item = self.stream_replies.pop(0) if self.stream_replies else []
        if isinstance(item, BaseException):
            raise item
        for token in item:
            if isinstance(token, BaseException):
                raise token
            if cancel_token is not None:
                cancel_token.check()
            yield token

    @property
    def systems(self):
        return [c[1] for c in self.calls]


def plan(reply, *calls):
    """Planner JSON with ``calls`` given as ``(name, arguments)`` pairs."""
    return json.dumps({
        "assistant_reply": reply,
        "tool_calls": [{"name": name, "arguments": args} for name, args in calls],
    })


def make_settings(configured=("deepseek",), default="deepseek"):
    providers = {
        name: provider_config(name=name, api_key="sk-test-1234567890" if name in configured else "")
        for name in PROVIDER_NAMES
    }
    return LLMSettings(default_provider=default, providers=providers)


def make_agent(provider, calendar_links=None, **kwargs):
    settings = make_settings(configured=(provider.name,), default=provider.name)
    return AssistantAgent(
        settings,
        {provider.name: provider},
        build_planner_registry(),
        calendar_links=calendar_links,
        **kwargs,
    )


def user_data(**overrides):
    data = {
        "settings": {"aiProvider": None},
        "tasks": [
            {
                "id": "task_1",
                "task_name": "Essay draft",
                "task_priority": "Urgent & Important",
                "task_category": "study",
                "task_deadline": "2026-10-22",
                "task_deadline_time": "23:59",
                "task_duration_hours": 3,
                "completed": False,
            },
        ],
        "goals": [],
        "dailyHabits": [],
        "schedule": [],
        "fixedBlocks": [],
        "assistantHistory": [],
    }
    data.update(overrides)
    return data
