from __future__ import annotations
import anyio
from anyio.lowlevel import checkpoint_if_cancelled
from .closer import as_async_action, run_action
from .errors import FailureCollector
from .registry import CloseOutcome, _RegistryCore


class AsyncResourceRegistry(_RegistryCore):
    """LIFO cleanup registry for async code.

    Accepts everything ``ResourceRegistry`` does, plus objects with an
    ``aclose()`` coroutine and callables returning awaitables. Registration
    stays synchronous and thread-safe; draining awaits each closer in turn.

    Every closer runs inside a shielded cancel scope, so cancelling the task
    that is draining does not abandon the rest of the batch. The cancellation
    is delivered once the drain is over.

    Example:
        ```python
        async with AsyncResourceRegistry() as reg:
            client = reg.register(httpx.AsyncClient())
            reg.register(await open_connection())
            ...
        ```
    """
    _action = staticmethod(as_async_action)

    async def adrain(self) -> CloseOutcome:
        batch = self._capture()
        if batch:
            self.logger.debug("draining", count=len(batch))
        failures = FailureCollector()
        with anyio.CancelScope(shield=True):
            for i, (obj, action) in enumerate(batch):
                try:
                    await run_action(action)
                except BaseException as ex:
                    self._record(failures, i, obj, ex)
        outcome = self._finish(failures, len(batch))
        try:
            await checkpoint_if_cancelled()
        except BaseException as cancelled:
            if outcome.failure is not None:
                cancelled.__context__ = outcome.failure
            raise
        return outcome

    async def aclose_all(self) -> None:
        (await self.adrain()).raise_for_failure()

    aclose = aclose_all

    async def __aenter__(self) -> "AsyncResourceRegistry":
        return self

    async def __aexit__(self, et, e, tb) -> None:
        await self.aclose_all()
