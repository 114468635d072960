"""
Wire decoder tests — SSE frames and newline-delimited JSON over chunked bodies.

Covers: frames split across reads, split multi-byte characters, event names,
comments, CRLF, [DONE], tail flush, malformed-line skipping, cancellation.

Run: python -m pytest axis_agent/tests/test_wire_decoder.py -v
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from axis_agent.core.stream_cancellation import StreamCancellationToken, StreamCancelledError
from axis_agent.core.wire_decoder import iter_json_lines, iter_sse_events
from axis_agent.tests.helpers import _run


async def _chunks(*parts):
    for part in parts:
        yield part


async def _collect(agen):
    return [item async for item in agen]


class TestSSEDecoding(unittest.TestCase):

    def test_frame_split_across_reads(self):
        events = _run(_collect(iter_sse_events(_chunks(
            b'data: {"a"', b': 1}\n', b'\ndata: [DONE]\n\n',
        ))))
        self.assertEqual([e.data for e in events], ['{"a": 1}'])
        self.assertEqual(events[0].event, "message")

    def test_multibyte_character_split(self):
        events = _run(_collect(iter_sse_events(_chunks(b"data: caf\xc3", b"\xa9\n\n"))))
        self.assertEqual(events[0].data, "café")

    def test_event_name_and_comments(self):
        events = _run(_collect(iter_sse_events(_chunks(
            b": keep-alive\n\n",
            b"event: status\ndata: x\n\n",
            b"data: y\n\n",
        ))))
        self.assertEqual([(e.event, e.data) for e in events], [("status", "x"), ("message", "y")])

    def test_crlf_line_endings(self):
        events = _run(_collect(iter_sse_events(_chunks(b"data: a\r\n\r\ndata: b\r\n\r\n"))))
        self.assertEqual([e.data for e in events], ["a", "b"])

    def test_multiline_data_joined(self):
        events = _run(_collect(iter_sse_events(_chunks(b"data: one\ndata: two\n\n"))))
        self.assertEqual(events[0].data, "one\ntwo")

    def test_done_stops_early(self):
        events = _run(_collect(iter_sse_events(_chunks(
            b"data: 1\n\ndata: [DONE]\n\ndata: 2\n\n",
        ))))
        self.assertEqual([e.data for e in events], ["1"])

    def test_tail_flushed_without_blank_line(self):
        events = _run(_collect(iter_sse_events(_chunks(b"data: 1\n\ndata: tail"))))
        self.assertEqual([e.data for e in events], ["1", "tail"])

    def test_str_chunks_accepted(self):
        events = _run(_collect(iter_sse_events(_chunks("data: plain\n\n"))))
        self.assertEqual(events[0].data, "plain")

    def test_cancelled_token_stops_decoding(self):
        async def go():
            token = StreamCancellationToken()
            token.cancel("Client disconnected")
            return await _collect(iter_sse_events(_chunks(b"data: 1\n\n"), token))

        with self.assertRaises(StreamCancelledError):
            _run(go())


class TestJSONLines(unittest.TestCase):

    def test_malformed_lines_skipped(self):
        values = _run(_collect(iter_json_lines(_chunks(b'{"a":1}\n{bad\n', b'{"b":2}'))))
        self.assertEqual(values, [{"a": 1}, {"b": 2}])

    def test_data_prefix_and_blank_lines(self):
        values = _run(_collect(iter_json_lines(_chunks(
            b'data: {"x":1}\n\n', b'data: {"x":2}\n',
        ))))
        self.assertEqual(values, [{"x": 1}, {"x": 2}])

    def test_done_sentinel(self):
        values = _run(_collect(iter_json_lines(_chunks(b'{"x":1}\ndata: [DONE]\n{"x":2}\n'))))
        self.assertEqual(values, [{"x": 1}])

    def test_object_split_across_reads(self):
        values = _run(_collect(iter_json_lines(_chunks(b'{"text": "Hel', b'lo"}\n'))))
        self.assertEqual(values, [{"text": "Hello"}])


if __name__ == "__main__":
    unittest.main()
