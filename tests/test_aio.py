import io
import unittest

import anyio

from autocloser import AsyncResourceRegistry, AggregatedFailure, IllegalState, InvalidArgument, ConsoleLogger


def _quiet() -> ConsoleLogger:
    return ConsoleLogger(stream=io.StringIO())


class AsyncConn:
    def __init__(self, name, log, error=None):
        self.name = name; self.log = log; self.error = error

    async def aclose(self):
        await anyio.sleep(0)
        self.log.append(self.name)
        if self.error is not None:
            raise self.error


class SyncConn:
    def __init__(self, name, log):
        self.name = name; self.log = log

    def close(self):
        self.log.append(self.name)


class TestAsyncRegistry(unittest.IsolatedAsyncioTestCase):
    async def test_mixed_closers_run_in_lifo_order(self):
        closed: list[str] = []

        async def coro_fn():
            closed.append("coro")

        reg = AsyncResourceRegistry(logger=_quiet())
        reg.register(AsyncConn("async", closed))
        reg.register(SyncConn("sync", closed))
        reg.register(coro_fn)
        reg.callback(closed.append, "cb")
        await reg.aclose_all()
        self.assertEqual(closed, ["cb", "coro", "sync", "async"])

    async def test_aclose_preferred_over_close(self):
        events: list[str] = []

        class Both:
            def close(self): events.append("close")
            async def aclose(self): events.append("aclose")

        reg = AsyncResourceRegistry(logger=_quiet())
        reg.register(Both())
        await reg.aclose_all()
        self.assertEqual(events, ["aclose"])

    async def test_failures_are_aggregated(self):
        closed: list[str] = []
        ea = ValueError("EA"); eb = ValueError("EB")
        reg = AsyncResourceRegistry(logger=_quiet())
        reg.register(AsyncConn("A", closed, ea))
        reg.register(AsyncConn("B", closed, eb))
        reg.register(AsyncConn("C", closed))
        with self.assertRaises(AggregatedFailure) as cm:
            await reg.aclose_all()
        self.assertEqual(closed, ["C", "B", "A"])
        self.assertIs(cm.exception.primary, eb)
        self.assertEqual(cm.exception.secondary, (ea,))

    async def test_adrain_returns_outcome(self):
        reg = AsyncResourceRegistry(logger=_quiet())
        reg.register(AsyncConn("A", [], OSError("x")))
        outcome = await reg.adrain()
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.closed, 1)
        self.assertIsInstance(outcome.failure.primary, OSError)

    async def test_strict_and_idempotent(self):
        reg = AsyncResourceRegistry(logger=_quiet())
        with self.assertRaises(InvalidArgument):
            reg.register(None)
        await reg.aclose_all()
        await reg.aclose_all()
        with self.assertRaises(IllegalState):
            reg.register(SyncConn("late", []))
        self.assertTrue(reg.closed)

    async def test_async_with_closes_on_exit(self):
        closed: list[str] = []
        async with AsyncResourceRegistry(logger=_quiet()) as reg:
            reg.register(AsyncConn("1", closed))
            reg.register(AsyncConn("2", closed))
        self.assertEqual(closed, ["2", "1"])

    async def test_cancellation_does_not_abandon_drain(self):
        closed: list[str] = []

        async def slow():
            await anyio.sleep(0.1)
            closed.append("slow")

        reg = AsyncResourceRegistry(logger=_quiet())
        reg.register(AsyncConn("first", closed))
        reg.register(slow)
        with anyio.move_on_after(0.02) as scope:
            await reg.aclose_all()
        self.assertTrue(scope.cancelled_caught)
        self.assertEqual(closed, ["slow", "first"])

    async def test_cancellation_keeps_closer_failure_attached(self):
        closed: list[str] = []
        caught: list[BaseException] = []
        err = OSError("slow close")

        async def slow():
            await anyio.sleep(0.1)
            closed.append("slow")
            raise err

        reg = AsyncResourceRegistry(logger=_quiet())
        reg.register(AsyncConn("first", closed))
        reg.register(slow)
        with anyio.move_on_after(0.02) as scope:
            try:
                await reg.aclose_all()
            except BaseException as ex:
                caught.append(ex)
                raise
        self.assertTrue(scope.cancelled_caught)
        self.assertEqual(closed, ["slow", "first"])
        self.assertEqual(len(caught), 1)
        failure = caught[0].__context__
        self.assertIsInstance(failure, AggregatedFailure)
        self.assertIs(failure.primary, err)


if __name__ == "__main__":
    unittest.main()
