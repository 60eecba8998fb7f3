"""
DispatchTimer
=============
Mimics the API of a platform timer source but guards against the crashes that
occur from resuming a source that is already resumed, suspending one that is
already suspended, or releasing one that is still suspended.
"""
import enum
import logging
import threading
import time
import weakref
from datetime import timedelta
from types import TracebackType
from typing import Callable, Optional, Type

from dispatchtimer.source import TimerSource

logger: logging.Logger = logging.getLogger(__name__)

_ZERO = timedelta(0)


class TimerClosedError(RuntimeError):
    """Raised when a closed DispatchTimer is resumed, suspended or inspected."""
    pass


class State(enum.Enum):
    SUSPENDED = "suspended"
    RESUMED = "resumed"


def _noop() -> None:
    pass


class DispatchTimer:
    """
    DispatchTimer owns one TimerSource and keeps a record of whether it is
    suspended or resumed so that redundant resume() and suspend() calls never
    reach the source.

    The source is created lazily on the first resume() or the first access of
    ``source``; a timer that is never resumed never creates one. The source
    fires ``on_fire(timer)`` on the dispatch queue thread every ``interval``
    (or once when ``repeating`` is False). A resumed timer keeps firing across
    a shutdown and restart of the dispatch queue.

    ``tolerance`` is a fire-skip budget: while it is positive each fire is
    swallowed and consumes one ``interval`` of it, so setting it to ``d``
    skips about ``ceil(d / interval)`` fires without suspending the timer.

    Closing the timer (explicitly, on ``with`` exit, or when it is garbage
    collected) cancels the source, resuming it first if needed, since a
    suspended source may not be released.
    """

    def __init__(
        self,
        interval: timedelta,
        repeating: bool,
        handler: Optional[Callable[["DispatchTimer"], None]] = None,
        *,
        source_factory: Callable[[], TimerSource] = TimerSource,
    ) -> None:
        if not isinstance(interval, timedelta):
            raise TypeError(f"interval must be a timedelta, got {type(interval).__name__}")
        if interval <= _ZERO:
            raise ValueError(f"interval must be positive, got {interval}")

        self._interval = interval
        self._repeating = repeating
        self.on_fire = handler
        self._source_factory = source_factory

        # guards state, source creation and close
        self._lock = threading.Lock()
        self._state = State.SUSPENDED
        self._source: Optional[TimerSource] = None
        self._closed = False

        # the fire path runs on the dispatch queue thread
        self._tolerance_lock = threading.Lock()
        self._tolerance = _ZERO

    @property
    def interval(self) -> timedelta:
        return self._interval

    @property
    def repeating(self) -> bool:
        return self._repeating

    @property
    def state(self) -> State:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def tolerance(self) -> timedelta:
        with self._tolerance_lock:
            return self._tolerance

    @tolerance.setter
    def tolerance(self, value: timedelta) -> None:
        if value < _ZERO:
            raise ValueError(f"tolerance must not be negative, got {value}")
        with self._tolerance_lock:
            self._tolerance = value

    @property
    def source(self) -> TimerSource:
        with self._lock:
            self._check_open()
            return self._get_source_locked()

    def _check_open(self) -> None:
        if self._closed:
            raise TimerClosedError("timer has been closed")

    def _get_source_locked(self) -> TimerSource:
        if self._source is None:
            source = self._source_factory()
            interval = self._interval
            source.schedule(
                time.monotonic() + interval.total_seconds(),
                repeating=interval if self._repeating else None,
            )
            source.set_event_handler(self._make_event_handler())
            self._source = source
            logger.debug(f"created timer source for {self!r}")
        return self._source

    def _make_event_handler(self) -> Callable[[], None]:
        timer_ref = weakref.ref(self)

        def handler() -> None:
            this = timer_ref()
            if this is None:
                return
            if this._consume_tolerance():
                return
            on_fire = this.on_fire
            if on_fire is not None:
                on_fire(this)

        return handler

    def _consume_tolerance(self) -> bool:
        """
        Returns True if this fire should be suppressed.
        """
        with self._tolerance_lock:
            if self._tolerance > _ZERO:
                self._tolerance = max(_ZERO, self._tolerance - self._interval)
                return True
            return False

    def resume(self) -> None:
        with self._lock:
            self._check_open()
            self._resume_locked()

    def _resume_locked(self) -> None:
        if self._state == State.RESUMED:
            return
        source = self._get_source_locked()
        self._state = State.RESUMED
        source.resume()

    def suspend(self) -> None:
        with self._lock:
            self._check_open()
            if self._state == State.SUSPENDED:
                return
            self._state = State.SUSPENDED
            # RESUMED implies the source exists
            assert self._source is not None
            self._source.suspend()

    def close(self) -> None:
        """
        Tear the timer down. Idempotent; the timer is unusable afterwards.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            source = self._source
            if source is not None:
                source.set_event_handler(_noop)
                source.cancel()
                # a source cancelled while suspended must be resumed before release
                self._resume_locked()
            self.on_fire = None
            self._source = None
        if source is not None:
            source.release()
            logger.debug(f"released timer source for {self!r}")

    def __enter__(self) -> "DispatchTimer":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> bool:
        self.close()
        return False

    def __del__(self) -> None:
        # __init__ may have raised before the lock existed
        if hasattr(self, "_lock"):
            self.close()

    def __repr__(self) -> str:
        return (
            f"DispatchTimer(interval={self._interval}, repeating={self._repeating}, "
            f"state={self._state.value})"
        )
