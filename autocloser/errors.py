from __future__ import annotations
import traceback
from typing import List, Optional, Sequence, Tuple


class InvalidArgument(TypeError):
    """Raised when something that cannot be closed is registered."""


class IllegalState(RuntimeError):
    """Raised when registering on a registry that has already been closed."""


class AggregatedFailure(Exception):
    """One or more closers failed during a drain.

    ``primary`` is the first failure in LIFO order, ``secondary`` holds every
    later failure in the order it was encountered. Each entry is the exception
    object the closer raised, tracebacks included.

    Example:
        ```python
        try:
            registry.close_all()
        except AggregatedFailure as af:
            log(af.render())
            for err in af.secondary:
                ...
        ```
    """
    def __init__(self, primary: BaseException, secondary: Sequence[BaseException] = ()):
        self.primary = primary
        self.secondary: Tuple[BaseException, ...] = tuple(secondary)
        extra = f" (+{len(self.secondary)} suppressed)" if self.secondary else ""
        super().__init__(f"{primary!r}{extra}")

    @property
    def errors(self) -> Tuple[BaseException, ...]:
        return (self.primary,) + self.secondary

    def render(self, indent: str = "", include_traces: bool = False) -> str:
        def line(s: str) -> str: return indent + s + "\n"
        def one(ex: BaseException, label: str) -> str:
            s = line(f"{label}: {ex!r}")
            if include_traces and ex.__traceback__:
                tb = ''.join(traceback.format_exception(type(ex), ex, ex.__traceback__))
                s += ''.join(indent + '    ' + l for l in tb.splitlines(True))
            return s
        out = line(f"AggregatedFailure({len(self.errors)} error{'s' if len(self.errors) != 1 else ''}):")
        out += one(self.primary, "  Primary")
        for i, ex in enumerate(self.secondary):
            out += one(ex, f"  Suppressed[{i}]")
        return out


class FailureCollector:
    """Accumulates closer failures for a single drain pass."""
    def __init__(self):
        self._errors: List[BaseException] = []
        self._interrupt: Optional[BaseException] = None

    def __len__(self) -> int: return len(self._errors)

    def add(self, ex: BaseException) -> None:
        if isinstance(ex, Exception):
            self._errors.append(ex)
        elif self._interrupt is None:
            self._interrupt = ex
        else:
            self._errors.append(ex)

    def build(self) -> Optional[AggregatedFailure]:
        if not self._errors:
            return None
        return AggregatedFailure(self._errors[0], self._errors[1:])

    def raise_interrupt(self, failure: Optional[AggregatedFailure]) -> None:
        # KeyboardInterrupt / SystemExit / cancellation win over closer errors
        if self._interrupt is not None:
            if failure is not None:
                self._interrupt.__context__ = failure
            raise self._interrupt
