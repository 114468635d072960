"""
REST API and user store tests.

Uses FastAPI's TestClient against a temporary data directory and a
scripted provider, so no network or real model is involved.

Run: python -m pytest axis_agent/tests/test_api.py -v
"""

import json
import os
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from fastapi.testclient import TestClient

from axis_agent.core.agent import INVALID_PLAN_MESSAGE
from axis_agent.core.user_store import JsonUserStore, safe_user_id
from axis_agent.interfaces.api import create_app
from axis_agent.tests.helpers import ScriptedProvider, _run, make_agent, plan, user_data


def parse_sse(text):
    frames = []
    for chunk in text.split("\n\n"):
        if not chunk.strip():
            continue
        fields = dict(line.split(": ", 1) for line in chunk.splitlines())
        frames.append((fields["event"], json.loads(fields["data"])))
    return frames


class ApiTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = JsonUserStore(self._tmp.name, public_base_url="https://axis.example/")
        _run(self.store.save_user_data("u1", user_data()))

    def tearDown(self):
        self._tmp.cleanup()

    def client(self, provider):
        agent = make_agent(provider, calendar_links=self.store.get_calendar_links)
        return TestClient(create_app(agent, self.store))

    def stored(self, user_id="u1"):
        return _run(self.store.get_user_data(user_id))


class TestRequestChecks(ApiTestCase):

    def test_health(self):
        response = self.client(ScriptedProvider()).get("/api/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["configuredProviders"], ["deepseek"])

    def test_missing_user_header(self):
        response = self.client(ScriptedProvider()).post("/api/assistant/agent", json={"message": "hi"})
        self.assertEqual(response.status_code, 401)

    def test_unknown_user(self):
        response = self.client(ScriptedProvider()).post(
            "/api/assistant/agent", json={"message": "hi"}, headers={"X-User-Id": "ghost"},
        )
        self.assertEqual((response.status_code, response.json()), (404, {"error": "User not found"}))

    def test_unsafe_user_id(self):
        response = self.client(ScriptedProvider()).post(
            "/api/assistant/agent", json={"message": "hi"}, headers={"X-User-Id": "../etc"},
        )
        self.assertEqual(response.status_code, 400)

    def test_blank_message(self):
        client = self.client(ScriptedProvider())
        response = client.post("/api/assistant/agent", json={"message": "   "}, headers={"X-User-Id": "u1"})
        self.assertEqual((response.status_code, response.json()), (400, {"error": "message is required"}))
        response = client.post("/api/assistant/agent", json={"message": ""}, headers={"X-User-Id": "u1"})
        self.assertEqual(response.status_code, 422)


class TestAgentEndpoint(ApiTestCase):

    def test_tool_turn_persists(self):
        provider = ScriptedProvider([
            plan("Adding.", ("create_task", {"task_name": "Lab report", "task_priority": "urgent-important"})),
            "Added **Lab report**.",
        ])
        response = self.client(provider).post(
            "/api/assistant/agent", json={"message": "add lab report"}, headers={"X-User-Id": "u1"},
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["reply"], "Added **Lab report**.")
        self.assertEqual(body["provider"], "deepseek")
        self.assertEqual(body["toolCalls"][0]["name"], "create_task")
        self.assertTrue(body["toolResults"][0]["ok"])

        saved = self.stored()
        self.assertEqual(saved["tasks"][-1]["task_name"], "Lab report")
        self.assertEqual(saved["tasks"][-1]["task_priority"], "Urgent & Important")
        self.assertEqual(len(saved["assistantHistory"]), 2)

    def test_failed_turn_is_502_and_not_saved(self):
        provider = ScriptedProvider(["prose", "more prose"])
        response = self.client(provider).post(
            "/api/assistant/agent", json={"message": "hello"}, headers={"X-User-Id": "u1"},
        )
        self.assertEqual((response.status_code, response.json()), (502, {"error": INVALID_PLAN_MESSAGE}))
        self.assertEqual(self.stored()["assistantHistory"], [])


class TestStreamEndpoint(ApiTestCase):

    def test_stream_frames_and_calendar_links(self):
        provider = ScriptedProvider(
            [plan("Fetching links.", ("get_calendar_links", {}))],
            stream_replies=[["Here are ", "your links."]],
        )
        response = self.client(provider).post(
            "/api/assistant/agent/stream", json={"message": "calendar link?"}, headers={"X-User-Id": "u1"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/event-stream"))
        self.assertEqual(response.headers["cache-control"], "no-cache")

        frames = parse_sse(response.text)
        self.assertEqual([name for name, _ in frames], [
            "meta", "status", "status", "status", "status", "status",
            "token", "token", "result", "done",
        ])
        self.assertEqual(frames[0][1], {"provider": "deepseek"})
        self.assertEqual(frames[2][1], {"stage": "acting", "toolCalls": 1})

        result = frames[-2][1]
        self.assertEqual(result["reply"], "Here are your links.")
        links = result["toolResults"][0]["result"]
        self.assertEqual(len(links["token"]), 48)
        self.assertEqual(links["subscribeUrl"], f"https://axis.example/api/calendar/subscribe/{links['token']}.ics")
        self.assertTrue(links["webcalUrl"].startswith("webcal://axis.example/"))

        # Read-only tool, but the history still changed.
        self.assertEqual(len(self.stored()["assistantHistory"]), 2)

    def test_stream_error_frame(self):
        provider = ScriptedProvider(["prose", "more prose"])
        response = self.client(provider).post(
            "/api/assistant/agent/stream", json={"message": "hello"}, headers={"X-User-Id": "u1"},
        )
        frames = parse_sse(response.text)
        self.assertEqual([name for name, _ in frames], ["meta", "status", "error"])
        self.assertEqual(frames[-1][1], {"error": INVALID_PLAN_MESSAGE})
        self.assertEqual(self.stored()["assistantHistory"], [])


class TestCatalogEndpoints(ApiTestCase):

    def test_tools(self):
        body = self.client(ScriptedProvider()).get("/api/assistant/tools", headers={"X-User-Id": "u1"}).json()
        self.assertEqual(len(body["tools"]), 12)
        self.assertEqual(body["tools"][0]["name"], "get_snapshot")
        self.assertEqual(body["providers"]["effectiveProvider"], "deepseek")

    def test_providers_follow_user_preference(self):
        _run(self.store.save_user_data("u2", user_data(settings={"aiProvider": "gemini"})))
        client = self.client(ScriptedProvider())

        body = client.get("/api/ai/providers", headers={"X-User-Id": "u2"}).json()
        self.assertEqual(body["selectedProvider"], "gemini")
        self.assertEqual(body["effectiveProvider"], "deepseek")

        anonymous = client.get("/api/ai/providers").json()
        self.assertIsNone(anonymous["selectedProvider"])


class TestUserStore(ApiTestCase):

    def test_calendar_token_reused(self):
        first = _run(self.store.get_calendar_links("u1"))
        second = _run(self.store.get_calendar_links("u1"))
        self.assertEqual(first, second)
        self.assertIsNone(_run(self.store.get_calendar_links("ghost")))

    def test_short_token_replaced(self):
        with open(os.path.join(self._tmp.name, "calendar_tokens.json"), "w") as f:
            json.dump({"u1": "short"}, f)
        links = _run(self.store.get_calendar_links("u1"))
        self.assertEqual(len(links["token"]), 48)

    def test_malformed_data(self):
        with open(os.path.join(self._tmp.name, "users", "u3.json"), "w") as f:
            f.write("[1, 2]")
        self.assertEqual(_run(self.store.get_user_data("u3")), {})
        self.assertIsNone(_run(self.store.get_user_data("u4")))

    def test_safe_user_id(self):
        self.assertEqual(safe_user_id(" ann@example.com "), "ann@example.com")
        for bad in ("", "..", "a/b", "x" * 200):
            with self.assertRaises(ValueError):
                safe_user_id(bad)


if __name__ == "__main__":
    unittest.main()
