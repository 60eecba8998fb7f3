"""
Timer Source
============
A periodic or one-shot timer primitive that fires an event handler on the
dispatch queue. Like the OS primitive it stands in for, its suspend/resume
calls must stay balanced: resuming a resumed source, suspending a suspended
source, or releasing a source that is still suspended is a fatal error.

A source is created suspended. Typical use::

    source = TimerSource()
    source.schedule(time.monotonic() + 1.0, repeating=timedelta(seconds=1))
    source.set_event_handler(handler)
    source.resume()
    ...
    source.cancel()
    source.release()
"""
import logging
import os
import threading
import time
from datetime import timedelta
from typing import Callable, Optional

from dispatchtimer import config
from dispatchtimer.dispatch_queue import _DISPATCH_QUEUE, _DispatchQueue
from dispatchtimer.timer_handle import _TimerHandle

logger: logging.Logger = logging.getLogger(__name__)

class DispatchSourceError(RuntimeError):
    """Raised when a timer source is used in a way the primitive forbids."""
    pass


class TimerSource:
    """
    Nothing that can allocate tracked objects (and so run the garbage
    collector, and with it ``__del__`` of a timer that owns this source) happens
    while ``_lock`` is held: arm handles are allocated up front, and the
    dispatch queue, logging and errors are only touched after the lock is
    released.
    """

    def __init__(self, queue: Optional[_DispatchQueue] = None) -> None:
        self._queue: _DispatchQueue = queue if queue is not None else _DISPATCH_QUEUE
        self._lock = threading.Lock()
        self._suspended = True
        self._cancelled = False
        self._released = False
        self._deadline: Optional[float] = None
        self._repeating: Optional[float] = None
        self._handler: Optional[Callable[[], None]] = None
        self._armed: Optional[_TimerHandle] = None
        self._queue.add_source(self)

    def _abort(self, reason: str) -> None:
        logger.critical(f"timer source misuse: {reason}")
        if config.abort_on_misuse():
            os.abort()
        raise DispatchSourceError(reason)

    def _submit(self, handle: Optional[_TimerHandle]) -> None:
        if handle is not None:
            self._queue.call_at(self._fire, handle)

    def schedule(self, deadline: float, repeating: Optional[timedelta] = None) -> None:
        """
        Set the first fire at ``deadline`` (a time.monotonic() value) and, if
        ``repeating`` is given, fire again every ``repeating`` after that.
        """
        if repeating is not None and repeating <= timedelta(0):
            raise ValueError(f"repeating interval must be positive, got {repeating}")
        interval = repeating.total_seconds() if repeating is not None else None
        handle: Optional[_TimerHandle] = _TimerHandle()
        with self._lock:
            released = self._released
            if not released:
                self._deadline = deadline
                self._repeating = interval
                handle = self._arm_locked(handle)
        if released:
            self._abort("schedule called on a released timer source")
        self._submit(handle)

    def set_event_handler(self, handler: Optional[Callable[[], None]]) -> None:
        with self._lock:
            released = self._released
            if not released:
                self._handler = handler
        if released:
            self._abort("set_event_handler called on a released timer source")

    def resume(self) -> None:
        handle: Optional[_TimerHandle] = _TimerHandle()
        with self._lock:
            released, resumed = self._released, not self._suspended
            if not (released or resumed):
                self._suspended = False
                handle = self._arm_locked(handle)
        if released:
            self._abort("resume called on a released timer source")
        if resumed:
            self._abort("resume called on a timer source that is already resumed")
        self._submit(handle)

    def suspend(self) -> None:
        with self._lock:
            released, suspended = self._released, self._suspended
            if not (released or suspended):
                self._suspended = True
                self._disarm_locked()
        if released:
            self._abort("suspend called on a released timer source")
        if suspended:
            self._abort("suspend called on a timer source that is already suspended")

    def cancel(self) -> None:
        """
        Stop all future fires. A cancelled source stays suspended if it was
        suspended and must still be resumed before it is released.
        """
        with self._lock:
            released = self._released
            if not released:
                self._cancelled = True
                self._disarm_locked()
        if released:
            self._abort("cancel called on a released timer source")

    def release(self) -> None:
        with self._lock:
            released, suspended = self._released, self._suspended
            if not (released or suspended):
                self._released = True
                self._handler = None
                self._disarm_locked()
        if released:
            self._abort("release called on a released timer source")
        if suspended:
            self._abort("released a timer source while it is suspended")

    @property
    def is_suspended(self) -> bool:
        with self._lock:
            return self._suspended

    @property
    def is_cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    @property
    def is_released(self) -> bool:
        with self._lock:
            return self._released

    def _disarm_locked(self) -> None:
        if self._armed is not None:
            self._armed.cancel()
            self._armed = None

    def _arm_locked(self, handle: _TimerHandle) -> Optional[_TimerHandle]:
        """
        Replace the current arm with ``handle``. Returns the handle to submit to
        the queue once the lock is released, or None if the source is idle.
        """
        self._disarm_locked()
        if self._suspended or self._cancelled or self._released or self._deadline is None:
            return None
        handle.deadline = self._deadline
        self._armed = handle
        return handle

    def _requeue(self) -> None:
        """
        Re-arm on a restarted dispatch queue; the previous arm died with the
        old event loop.
        """
        handle: Optional[_TimerHandle] = _TimerHandle()
        with self._lock:
            if self._armed is None:
                return
            handle = self._arm_locked(handle)
        self._submit(handle)

    def _fire(self, handle: _TimerHandle) -> None:
        with self._lock:
            if handle is not self._armed:
                return
            if self._repeating is None:
                self._deadline = None
            else:
                # coalesce fires missed while the queue was busy
                now = time.monotonic()
                deadline = handle.deadline + self._repeating
                while deadline <= now:
                    deadline += self._repeating
                self._deadline = deadline
            handler = self._handler

        if handler is not None:
            try:
                handler()
            except Exception:
                logger.exception("timer source event handler raised")

        next_handle: Optional[_TimerHandle] = _TimerHandle()
        with self._lock:
            # suspend, cancel or reschedule during the handler replaced the arm
            if handle is self._armed:
                self._armed = None
                next_handle = self._arm_locked(next_handle)
            else:
                next_handle = None
        self._submit(next_handle)
