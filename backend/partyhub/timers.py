"""Cancellable timers for phase transitions.

Game engines and the session router never sleep themselves. They ask a
scheduler for a ``TimerHandle`` and keep it until the state that owns it is
superseded, at which point they cancel it. A cancelled handle never fires.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle:
    def __init__(self, interval: float | None = None) -> None:
        self.interval = interval
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return not self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...

    def call_every(self, interval: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        ...


def cancel_timer(handle: TimerHandle | None) -> None:
    if handle is not None:
        handle.cancel()


class BackgroundScheduler:
    """Runs timers as Socket.IO background tasks.

    Every callback runs while holding ``lock`` so timer-driven transitions
    are serialised with message handling. The handle is checked again after
    the lock is taken, so a cancel that raced the sleep still wins.
    """

    def __init__(self, socketio, lock) -> None:
        self._socketio = socketio
        self._lock = lock

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle()

        def _runner() -> None:
            self._socketio.sleep(delay)
            with self._lock:
                if handle.cancelled:
                    return
                handle.cancel()
                self._run(callback, args)

        self._socketio.start_background_task(_runner)
        return handle

    def call_every(self, interval: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle(interval=interval)

        def _runner() -> None:
            while True:
                self._socketio.sleep(interval)
                with self._lock:
                    if handle.cancelled:
                        break
                    self._run(callback, args)

        self._socketio.start_background_task(_runner)
        return handle

    @staticmethod
    def _run(callback: Callable[..., Any], args: tuple) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("timer callback %r failed", callback)
