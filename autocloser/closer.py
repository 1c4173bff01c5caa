from __future__ import annotations
import functools
import inspect
from typing import Any, Callable, Protocol, runtime_checkable
from .errors import InvalidArgument


@runtime_checkable
class Closer(Protocol):
    def close(self) -> Any: ...


@runtime_checkable
class AsyncCloser(Protocol):
    async def aclose(self) -> Any: ...


def as_action(obj: Any) -> Callable[[], Any]:
    """Turn a registered object into the zero-argument action that closes it.

    Objects with a ``close()`` method are preferred over plain callables, so a
    class that is both callable and closeable gets closed rather than called.
    """
    if obj is None:
        raise InvalidArgument("closer must not be None")
    if isinstance(obj, Closer) and callable(obj.close):
        return obj.close
    if callable(obj):
        return obj
    raise InvalidArgument(f"closer must have a close() method or be callable, got {type(obj).__name__}")


def as_async_action(obj: Any) -> Callable[[], Any]:
    if isinstance(obj, AsyncCloser) and callable(obj.aclose):
        return obj.aclose
    return as_action(obj)


def bind(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Callable[[], Any]:
    if fn is None or not callable(fn):
        raise InvalidArgument(f"callback must be callable, got {type(fn).__name__}")
    if not args and not kwargs:
        return fn
    return functools.partial(fn, *args, **kwargs)


def run_sync_action(action: Callable[[], Any]) -> None:
    out = action()
    if inspect.isawaitable(out):
        # never awaited
        discard = getattr(out, "close", None)
        if callable(discard):
            discard()
        raise TypeError("awaitable closer registered on ResourceRegistry; use AsyncResourceRegistry")


async def run_action(action: Callable[[], Any]) -> None:
    out = action()
    if inspect.isawaitable(out):
        await out


def describe(obj: Any) -> str:
    name = getattr(obj, "__qualname__", None) or type(obj).__qualname__
    return str(name)
