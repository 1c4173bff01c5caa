from .errors import InvalidArgument, IllegalState, AggregatedFailure, FailureCollector
from .closer import Closer, AsyncCloser
from .registry import ResourceRegistry, CloseOutcome
from .aio import AsyncResourceRegistry
from .logger import ConsoleLogger

__version__ = "0.1.0"
