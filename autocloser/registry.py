from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, TypeVar
from .closer import as_action, bind, describe, run_sync_action
from .errors import AggregatedFailure, FailureCollector, IllegalState
from .logger import ConsoleLogger

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])

_Entry = Tuple[Any, Callable[[], Any]]


@dataclass(frozen=True)
class CloseOutcome:
    """Result of one drain pass over a captured batch."""
    closed: int = 0
    failure: Optional[AggregatedFailure] = None

    @property
    def success(self) -> bool: return self.failure is None

    def raise_for_failure(self) -> None:
        if self.failure is not None:
            raise self.failure from self.failure.primary


class _RegistryCore:
    _action: Callable[[Any], Callable[[], Any]] = staticmethod(as_action)

    def __init__(self, logger: Optional[ConsoleLogger] = None, name: str = "registry"):
        self.name = name
        self.logger = (logger or ConsoleLogger.from_env()).bind(registry=name)
        self._lock = threading.Lock()
        self._pending: List[_Entry] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def __repr__(self) -> str:
        with self._lock:
            state = "closed" if self._closed else "open"
            n = len(self._pending)
        return f"<{type(self).__name__} {self.name!r} {state} pending={n}>"

    def register(self, closer: T) -> T:
        """Register ``closer`` to be closed by the next drain.

        ``closer`` is either an object with a ``close()`` method or a
        zero-argument callable. The same object is returned so registration
        can wrap construction:

            ```python
            fh = registry.register(open(path))
            ```

        Raises:
            InvalidArgument: ``closer`` is None or cannot be closed.
            IllegalState: the registry has already been closed.
        """
        self._push(closer, self._action(closer))
        return closer

    def callback(self, fn: F, *args: Any, **kwargs: Any) -> F:
        """Register ``fn(*args, **kwargs)`` as a closer and return ``fn``.

        Usable as a decorator when no arguments are needed.
        """
        self._push(fn, bind(fn, *args, **kwargs))
        return fn

    def _push(self, obj: Any, action: Callable[[], Any]) -> None:
        with self._lock:
            if self._closed:
                raise IllegalState(f"{self.name} is already closed")
            self._pending.append((obj, action))
            n = len(self._pending)
        self.logger.debug("registered closer", closer=describe(obj), pending=n)

    def _capture(self) -> List[_Entry]:
        with self._lock:
            again = self._closed
            self._closed = True
            batch, self._pending = self._pending, []
        if again and not batch:
            self.logger.debug("already closed, nothing to do")
        batch.reverse()
        return batch

    def _record(self, failures: FailureCollector, index: int, obj: Any, ex: BaseException) -> None:
        failures.add(ex)
        self.logger.warn("closer failed", index=index, closer=describe(obj), error=repr(ex))

    def _finish(self, failures: FailureCollector, count: int) -> CloseOutcome:
        failure = failures.build()
        if count:
            self.logger.debug("drain finished", closed=count, failed=len(failures))
        failures.raise_interrupt(failure)
        return CloseOutcome(closed=count, failure=failure)


class ResourceRegistry(_RegistryCore):
    """Thread-safe registry of cleanup actions, closed in LIFO order.

    Registrations may come from any number of threads. ``close_all`` captures
    everything registered so far, closes it last-registered-first and keeps
    going when a closer fails. The first failure becomes the primary error of
    the raised ``AggregatedFailure``, later ones are attached as secondary.

    The registry is single use: once ``close_all`` has been called further
    registrations raise ``IllegalState``, while further ``close_all`` calls
    are no-ops.

    Example:
        ```python
        with ResourceRegistry() as reg:
            db = reg.register(connect())
            tmp = reg.register(tempfile.TemporaryFile())
            reg.callback(shutil.rmtree, workdir)
            ...
        # rmtree(workdir), tmp.close(), db.close() have run, in that order
        ```
    """

    def drain(self) -> CloseOutcome:
        """Close every captured closer and return the outcome without raising."""
        batch = self._capture()
        if batch:
            self.logger.debug("draining", count=len(batch))
        failures = FailureCollector()
        for i, (obj, action) in enumerate(batch):
            try:
                run_sync_action(action)
            except BaseException as ex:
                self._record(failures, i, obj, ex)
        return self._finish(failures, len(batch))

    def close_all(self) -> None:
        """Close every registered closer in LIFO order.

        Raises:
            AggregatedFailure: at least one closer failed; every closer was
                still attempted.
        """
        self.drain().raise_for_failure()

    close = close_all

    def __enter__(self) -> "ResourceRegistry":
        return self

    def __exit__(self, et, e, tb) -> None:
        self.close_all()
