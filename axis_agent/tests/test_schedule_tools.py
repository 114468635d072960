"""
Schedule rebalancing tests.

Covers: per-block validation (unknown tasks, bad times, fixed-block and
self overlap, daily hour cap), the rebalance tool's model call, and the
failure paths that must leave the schedule untouched.

Run: python -m pytest axis_agent/tests/test_schedule_tools.py -v
"""

import copy
import json
import os
import sys
import unittest
from datetime import date

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from axis_agent.core.models import ToolCall
from axis_agent.tools import build_planner_registry
from axis_agent.tools.base import ToolContext
from axis_agent.tools.schedule_tools import (
    REBALANCE_SYSTEM_PROMPT, build_rebalance_prompt, parse_timestamp, validate_blocks,
)
from axis_agent.tests.helpers import ScriptedProvider, _run, user_data

TASKS = {"task_1", "task_2"}


def block(task_id, start, end, **extra):
    return {"taskId": task_id, "start": start, "end": end, **extra}


class TestValidateBlocks(unittest.TestCase):

    def test_well_formed_block_kept(self):
        blocks = validate_blocks(
            [block("task_1", "2026-10-20T09:00:00Z", "2026-10-20T10:30:00Z", reason="  focus  ")],
            TASKS, [], 10,
        )
        self.assertEqual(blocks, [{
            "kind": "task", "taskId": "task_1",
            "start": "2026-10-20T09:00:00.000Z", "end": "2026-10-20T10:30:00.000Z",
            "reason": "focus",
        }])

    def test_offsets_normalized_to_utc(self):
        blocks = validate_blocks(
            [block("task_1", "2026-10-20T11:00:00+02:00", "2026-10-20T12:00:00+02:00")], TASKS, [], 10,
        )
        self.assertEqual(blocks[0]["start"], "2026-10-20T09:00:00.000Z")

    def test_invalid_blocks_dropped(self):
        proposed = [
            block("task_9", "2026-10-20T09:00:00Z", "2026-10-20T10:00:00Z"),
            block("task_1", "not a time", "2026-10-20T10:00:00Z"),
            block("task_1", "2026-10-20T10:00:00Z", "2026-10-20T10:00:00Z"),
            {"taskId": 7, "start": "2026-10-20T09:00:00Z", "end": "2026-10-20T10:00:00Z"},
            "junk",
        ]
        self.assertEqual(validate_blocks(proposed, TASKS, [], 10), [])

    def test_fixed_block_overlap_dropped(self):
        fixed = [{"start": "2026-10-20T12:00:00Z", "end": "2026-10-20T13:00:00Z", "label": "Lunch"}]
        blocks = validate_blocks([
            block("task_1", "2026-10-20T12:30:00Z", "2026-10-20T13:30:00Z"),
            block("task_2", "2026-10-20T13:00:00Z", "2026-10-20T14:00:00Z"),
        ], TASKS, fixed, 10)
        self.assertEqual([b["taskId"] for b in blocks], ["task_2"])

    def test_self_overlap_dropped(self):
        blocks = validate_blocks([
            block("task_1", "2026-10-20T09:00:00Z", "2026-10-20T11:00:00Z"),
            block("task_2", "2026-10-20T10:00:00Z", "2026-10-20T12:00:00Z"),
        ], TASKS, [], 10)
        self.assertEqual(len(blocks), 1)

    def test_daily_hour_cap(self):
        blocks = validate_blocks([
            block("task_1", "2026-10-20T08:00:00Z", "2026-10-20T11:00:00Z"),
            block("task_2", "2026-10-20T12:00:00Z", "2026-10-20T14:00:00Z"),
            block("task_2", "2026-10-21T12:00:00Z", "2026-10-21T14:00:00Z"),
        ], TASKS, [], 4)
        self.assertEqual([b["start"][:10] for b in blocks], ["2026-10-20", "2026-10-21"])

    def test_parse_timestamp(self):
        self.assertIsNone(parse_timestamp(""))
        self.assertIsNone(parse_timestamp(None))
        self.assertEqual(parse_timestamp("2026-10-20T09:00:00").hour, 9)


class TestRebalancePrompt(unittest.TestCase):

    def test_prompt_lists_open_tasks_only(self):
        data = user_data()
        data["tasks"].append({"id": "task_2", "task_name": "Done already", "completed": True})
        prompt, brief = build_rebalance_prompt(data, 5, 6, today=date(2026, 10, 19))
        self.assertEqual([t["id"] for t in brief], ["task_1"])
        self.assertIn("next 5 days starting 2026-10-19", prompt)
        self.assertIn("<= 6 hours", prompt)
        self.assertIn('"deadline": "2026-10-22T23:59"', prompt)
        self.assertNotIn("Done already", prompt)


class TestRebalanceTool(unittest.TestCase):
    EXISTING = [{"kind": "task", "taskId": "task_1",
                 "start": "2026-10-19T09:00:00.000Z", "end": "2026-10-19T10:00:00.000Z"}]

    def _execute(self, provider, data, arguments=None):
        context = ToolContext(user_id="u1", provider=provider)
        return _run(build_planner_registry().execute_tool(
            ToolCall("rebalance_schedule", arguments or {}), data, context,
        ))

    def test_rebalance_replaces_schedule(self):
        reply = json.dumps({"blocks": [
            block("task_1", "2026-10-20T09:00:00Z", "2026-10-20T11:00:00Z", reason="deadline soon"),
            block("task_404", "2026-10-20T12:00:00Z", "2026-10-20T13:00:00Z"),
        ]})
        provider = ScriptedProvider([reply])
        data = user_data(schedule=copy.deepcopy(self.EXISTING))

        result = self._execute(provider, data, {"horizonDays": 3})

        self.assertTrue(result.ok, result.error)
        self.assertEqual(result.result, {"blocksAdded": 1})
        self.assertEqual(data["schedule"][0]["start"], "2026-10-20T09:00:00.000Z")
        self.assertIn("lastRebalancedAt", data)

        _kind, system, user, options = provider.calls[0]
        self.assertEqual(system, REBALANCE_SYSTEM_PROMPT)
        self.assertIn("next 3 days", user)
        self.assertEqual((options.temperature, options.max_tokens), (0.25, 1200))
        self.assertTrue(options.expect_json)

    def test_no_blocks_leaves_schedule(self):
        provider = ScriptedProvider(['{"blocks": []}'])
        data = user_data(schedule=copy.deepcopy(self.EXISTING))
        result = self._execute(provider, data)
        self.assertEqual((result.ok, result.error), (False, "AI returned no schedule blocks."))
        self.assertEqual(data["schedule"], self.EXISTING)

    def test_all_invalid_leaves_schedule(self):
        reply = json.dumps({"blocks": [block("task_404", "2026-10-20T09:00:00Z", "2026-10-20T10:00:00Z")]})
        data = user_data(schedule=copy.deepcopy(self.EXISTING))
        result = self._execute(ScriptedProvider([reply]), data)
        self.assertEqual(result.error, "AI returned invalid schedule blocks.")
        self.assertEqual(data["schedule"], self.EXISTING)
        self.assertNotIn("lastRebalancedAt", data)

    def test_unparseable_reply_is_tool_error(self):
        data = user_data(schedule=copy.deepcopy(self.EXISTING))
        result = self._execute(ScriptedProvider(["no json", "still none"]), data)
        self.assertFalse(result.ok)
        self.assertEqual(data["schedule"], self.EXISTING)

    def test_horizon_out_of_range(self):
        result = self._execute(ScriptedProvider([]), user_data(), {"horizonDays": 30})
        self.assertFalse(result.ok)
        self.assertIn("'horizonDays' must be <= 21", result.error)

    def test_nan_hour_cap_rejected(self):
        provider = ScriptedProvider([])
        data = user_data(schedule=copy.deepcopy(self.EXISTING))
        arguments = json.loads('{"maxHoursPerDay": NaN}')
        result = self._execute(provider, data, arguments)
        self.assertFalse(result.ok)
        self.assertIn("'maxHoursPerDay' should be number, got nan", result.error)
        self.assertEqual(provider.calls, [])
        self.assertEqual(data["schedule"], self.EXISTING)

    def test_without_provider(self):
        result = self._execute(None, user_data())
        self.assertEqual(result.error, "No language model available for rebalancing.")


if __name__ == "__main__":
    unittest.main()
