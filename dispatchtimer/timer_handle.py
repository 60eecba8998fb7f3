import asyncio
import threading
from typing import Optional

class _TimerHandle:
    """
    One armed deadline of a timer source.

    The handle is created by the source before the dispatch queue has seen it,
    and the loop binds the underlying asyncio handle later on its own thread.
    cancel() may therefore run first, in which case the asyncio handle is
    cancelled as soon as it is bound and the callback never runs.
    """

    def __init__(self, deadline: float = 0.0) -> None:
        self.deadline = deadline
        self._lock = threading.Lock()
        self._timer_handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    def set_timer_handle(self, timer_handle: asyncio.TimerHandle) -> None:
        with self._lock:
            if not self._cancelled:
                self._timer_handle = timer_handle
                return
        timer_handle.cancel()

    def cancel(self) -> None:
        with self._lock:
            assert not self._cancelled, "timer can only be cancelled once"
            self._cancelled = True
            timer_handle, self._timer_handle = self._timer_handle, None
        if timer_handle is not None:
            timer_handle.cancel()

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled
