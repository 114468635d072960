"""
Retry layer and cancellation token tests.

Run: python -m pytest axis_agent/tests/test_retry_and_cancellation.py -v
"""

import asyncio
import inspect
import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from axis_agent.core.errors import (
    EmptyReplyError, SafetyBlockError, TransportError, UpstreamAPIError,
)
from axis_agent.core.retry import SERVER_ERROR_STATUSES, RetryExecutor, RetryPolicy, retry_async
from axis_agent.core.stream_cancellation import (
    StreamCancellationToken, StreamCancelledError, guard,
)
from axis_agent.tests.helpers import _run


class Flaky:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        item = self.outcomes.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class TestRetryPolicy(unittest.TestCase):

    def test_should_retry(self):
        policy = RetryPolicy(retry_statuses=SERVER_ERROR_STATUSES)
        self.assertTrue(policy.should_retry(TransportError("reset"), 1))
        self.assertFalse(policy.should_retry(TransportError("reset"), 3))
        self.assertTrue(policy.should_retry(UpstreamAPIError("busy", 503), 1))
        self.assertFalse(policy.should_retry(UpstreamAPIError("bad key", 401), 1))
        self.assertFalse(policy.should_retry(SafetyBlockError("blocked"), 1))
        self.assertFalse(policy.should_retry(StreamCancelledError(), 1))

    def test_linear_backoff(self):
        policy = RetryPolicy(backoff_base=1.0)
        self.assertEqual([policy.delay_for(n) for n in (1, 2)], [1.0, 2.0])


class TestRetryExecution(unittest.TestCase):

    def test_transient_failures_then_success(self):
        fn = Flaky(TransportError("reset"), TransportError("reset"), "ok")
        result = _run(retry_async(fn, policy=RetryPolicy(backoff_base=0)))
        self.assertEqual(result, "ok")
        self.assertEqual(fn.calls, 3)

    def test_exhaustion_raises_last_error(self):
        fn = Flaky(TransportError("one"), TransportError("two"), TransportError("three"))
        with self.assertRaises(TransportError) as ctx:
            _run(retry_async(fn, policy=RetryPolicy(backoff_base=0)))
        self.assertEqual(str(ctx.exception), "three")
        self.assertEqual(fn.calls, 3)

    def test_non_retryable_raised_immediately(self):
        fn = Flaky(EmptyReplyError("empty"), "never")
        with self.assertRaises(EmptyReplyError):
            _run(retry_async(fn, policy=RetryPolicy(backoff_base=0)))
        self.assertEqual(fn.calls, 1)

    def test_executor_reports_attempts(self):
        fn = Flaky(TransportError("reset"), "ok")
        result = _run(RetryExecutor(RetryPolicy(backoff_base=0)).execute(fn))
        self.assertTrue(result.success)
        self.assertEqual(result.attempts, 2)
        self.assertEqual(len(result.errors), 1)

    def test_cancellation_cuts_backoff_short(self):
        async def go():
            token = StreamCancellationToken()

            async def fail_and_cancel():
                token.cancel("Client disconnected")
                raise TransportError("reset")

            return await retry_async(
                fail_and_cancel, policy=RetryPolicy(backoff_base=30), cancel_token=token,
            )

        with self.assertRaises(StreamCancelledError):
            _run(asyncio.wait_for(go(), timeout=5))


class TestCancellationToken(unittest.TestCase):

    def test_cancel_is_idempotent(self):
        async def go():
            token = StreamCancellationToken()
            token.check()
            token.cancel("first")
            token.cancel("second")
            return token

        token = _run(go())
        self.assertTrue(token.is_cancelled)
        self.assertEqual(token.cancel_reason, "first")
        with self.assertRaises(StreamCancelledError):
            token.check()

    def test_race_returns_result(self):
        async def go():
            token = StreamCancellationToken()

            async def work():
                return 42

            return await token.race(work())

        self.assertEqual(_run(go()), 42)

    def test_race_abandons_pending_work(self):
        async def go():
            token = StreamCancellationToken()
            asyncio.get_running_loop().call_later(0.01, token.cancel, "stop")
            await token.race(asyncio.sleep(10))

        with self.assertRaises(StreamCancelledError):
            _run(asyncio.wait_for(go(), timeout=5))

    def test_guard_on_cancelled_token_closes_work(self):
        ran = []

        async def work():
            ran.append(True)
            return "never"

        async def go():
            token = StreamCancellationToken()
            token.cancel("Client disconnected")
            pending = work()
            with self.assertRaises(StreamCancelledError):
                await guard(pending, token)
            return pending

        pending = _run(go())
        self.assertEqual(inspect.getcoroutinestate(pending), inspect.CORO_CLOSED)
        self.assertEqual(ran, [])

    def test_guard_without_token(self):
        async def go():
            async def work():
                return "plain"
            return await guard(work(), None)

        self.assertEqual(_run(go()), "plain")


if __name__ == "__main__":
    unittest.main()
