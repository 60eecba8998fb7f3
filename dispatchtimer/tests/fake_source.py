from datetime import timedelta
from typing import Callable, List, Optional

from dispatchtimer.source import DispatchSourceError


class FakeTimerSource:
    """
    Records every call made to it and enforces the same balance rules as
    TimerSource. Fires only when the test calls fire().
    """

    def __init__(self) -> None:
        self.calls: List[str] = []
        self.deadline: Optional[float] = None
        self.repeating: Optional[timedelta] = None
        self.handler: Optional[Callable[[], None]] = None
        self.suspended = True
        self.cancelled = False
        self.released = False

    def _check_not_released(self) -> None:
        if self.released:
            raise DispatchSourceError("use after release")

    def schedule(self, deadline: float, repeating: Optional[timedelta] = None) -> None:
        self._check_not_released()
        self.calls.append("schedule")
        self.deadline = deadline
        self.repeating = repeating

    def set_event_handler(self, handler: Optional[Callable[[], None]]) -> None:
        self._check_not_released()
        self.calls.append("set_event_handler")
        self.handler = handler

    def resume(self) -> None:
        self._check_not_released()
        self.calls.append("resume")
        if not self.suspended:
            raise DispatchSourceError("double resume")
        self.suspended = False

    def suspend(self) -> None:
        self._check_not_released()
        self.calls.append("suspend")
        if self.suspended:
            raise DispatchSourceError("double suspend")
        self.suspended = True

    def cancel(self) -> None:
        self._check_not_released()
        self.calls.append("cancel")
        self.cancelled = True

    def release(self) -> None:
        self._check_not_released()
        self.calls.append("release")
        if self.suspended:
            raise DispatchSourceError("released while suspended")
        self.released = True

    def fire(self) -> None:
        if self.handler is not None:
            self.handler()

    def count(self, name: str) -> int:
        return self.calls.count(name)
