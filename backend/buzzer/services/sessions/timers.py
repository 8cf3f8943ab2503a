"""Server clock and cancellable timers.

The session engine only talks to the small interface below (``now``,
``call_later``, ``call_every``), so tests can swap in a virtual clock.
``BackgroundTimerService`` runs every timer as a Socket.IO background
task, which keeps it on whatever async mode the server picked
(threading, eventlet or gevent).
"""
import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)

# Longest single sleep inside a worker; bounds how long a cancelled
# worker lingers before it notices.
SLEEP_SLICE_SEC = 0.25


class ServerClock:
    """Millisecond clock that never runs backwards.

    Anchored to the epoch at construction so timestamps stay meaningful
    to clients, then advanced with ``time.monotonic``.
    """

    def __init__(self):
        self._epoch = time.time()
        self._anchor = time.monotonic()

    def now(self) -> float:
        return (self._epoch + (time.monotonic() - self._anchor)) * 1000.0


class TimerHandle:
    def __init__(self, name: str = 'timer'):
        self.name = name
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self):
        state = 'cancelled' if self._cancelled else 'pending'
        return f"<TimerHandle {self.name} {state}>"


class BackgroundTimerService:
    def __init__(self, socketio, clock=None):
        self._socketio = socketio
        self._clock = clock or ServerClock()

    def now(self) -> float:
        return self._clock.now()

    def _sleep_until(self, deadline: float, handle: TimerHandle) -> bool:
        """Sleep until ``deadline`` (monotonic seconds); False if cancelled meanwhile."""
        while not handle.cancelled:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return True
            self._socketio.sleep(min(remaining, SLEEP_SLICE_SEC))
        return False

    def call_later(self, delay: float, callback: Callable[[], None], name: str = 'timer') -> TimerHandle:
        handle = TimerHandle(name)
        deadline = time.monotonic() + max(0.0, delay)

        def _worker():
            if not self._sleep_until(deadline, handle):
                return
            handle.cancel()
            callback()

        self._socketio.start_background_task(_worker)
        return handle

    def call_every(self, interval: float, callback: Callable[[], None], name: str = 'timer') -> TimerHandle:
        handle = TimerHandle(name)
        interval = max(0.001, interval)

        def _worker():
            deadline = time.monotonic()
            while True:
                # re-anchor on the schedule rather than on wake-up time so ticks do not drift
                deadline += interval
                if not self._sleep_until(deadline, handle):
                    return
                try:
                    callback()
                except Exception:
                    logger.exception(f"[timer-error] {handle.name} callback failed")

        self._socketio.start_background_task(_worker)
        return handle
