from .source import DispatchSourceError, TimerSource
from .timer import DispatchTimer, State, TimerClosedError

__all__ = [
    "DispatchTimer",
    "State",
    "TimerClosedError",
    "TimerSource",
    "DispatchSourceError",
]
