import asyncio
import logging
import threading
import weakref
from typing import TYPE_CHECKING, Callable, Optional

from dispatchtimer import config
from dispatchtimer.timer_handle import _TimerHandle

if TYPE_CHECKING:
    from dispatchtimer.source import TimerSource

logger: logging.Logger = logging.getLogger(__name__)

class _DispatchQueue:
    """
    Serial execution context for timer sources, backed by an asyncio event loop
    running in a background thread.

    Generally there is a single instance of this class that is shared by all
    timer sources. Event handlers run on the loop thread one at a time, so they
    should not block otherwise other timers may fire late.

    The queue may be shut down and is restarted on next use. Sources that were
    armed when it stopped are re-armed on the new loop.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._event_loop: Optional[asyncio.AbstractEventLoop] = None
        self._event_loop_thread: Optional[threading.Thread] = None
        # set on the loop threads only, survives shutdown of that loop
        self._local = threading.local()
        self._sources: "weakref.WeakSet[TimerSource]" = weakref.WeakSet()
        self._stopped = False

    def _run_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._local.loop = loop
        try:
            loop.run_forever()
        finally:
            loop.close()

    def _start_event_loop_locked(self) -> asyncio.AbstractEventLoop:
        loop = asyncio.new_event_loop()
        if self._stopped:
            loop.call_soon(self._requeue_sources)
            self._stopped = False
        self._event_loop = loop
        self._event_loop_thread = threading.Thread(
            target=self._run_event_loop,
            args=(loop,),
            daemon=True,
            name=config.queue_name(f"{self.__class__.__name__}EventLoop"),
        )
        self._event_loop_thread.start()
        logger.debug(f"started dispatch queue thread {self._event_loop_thread.name}")
        return loop

    def _maybe_start_event_loop(self) -> asyncio.AbstractEventLoop:
        """
        Start the event loop if it has not already been started.
        """
        with self._lock:
            if self._event_loop is None:
                return self._start_event_loop_locked()
            return self._event_loop

    def add_source(self, source: "TimerSource") -> None:
        with self._lock:
            self._sources.add(source)

    def _requeue_sources(self) -> None:
        with self._lock:
            sources = list(self._sources)
        for source in sources:
            source._requeue()

    def call_at(
        self, callback: Callable[[_TimerHandle], None], handle: _TimerHandle
    ) -> None:
        """
        Schedule ``callback(handle)`` at ``handle.deadline`` (time.monotonic
        based). Safe to call from any thread; cancelling ``handle`` before the
        loop picks it up prevents the callback from ever being scheduled.
        """
        with self._lock:
            loop = self._event_loop
            if loop is None:
                if getattr(self._local, "loop", None) is not None:
                    # a handler finishing while the queue shuts down; the
                    # source is re-armed when the queue restarts
                    return
                loop = self._start_event_loop_locked()
            loop.call_soon_threadsafe(self._register_callback, loop, callback, handle)

    @classmethod
    def _register_callback(
        cls,
        loop: asyncio.AbstractEventLoop,
        callback: Callable[[_TimerHandle], None],
        handle: _TimerHandle,
    ) -> None:
        timer_handle = loop.call_at(handle.deadline, callback, handle)
        if not isinstance(timer_handle, asyncio.TimerHandle):
            raise TypeError("timer_handle must be an instance of asyncio.TimerHandle")
        handle.set_timer_handle(timer_handle)

    def is_current_thread(self) -> bool:
        with self._lock:
            loop = self._event_loop
        return loop is not None and getattr(self._local, "loop", None) is loop

    def shutdown(self) -> None:
        """
        Shutdown the event loop. Safe to call from an event handler, in which
        case the loop stops once the handler returns.
        """
        with self._lock:
            loop, thread = self._event_loop, self._event_loop_thread
            self._event_loop = None
            self._event_loop_thread = None
            if loop is None:
                return
            self._stopped = True
        loop.call_soon_threadsafe(loop.stop)
        if thread is not threading.current_thread():
            thread.join()
        logger.debug("dispatch queue stopped")

_DISPATCH_QUEUE = _DispatchQueue()
