"""Signal-driven lifecycle for the control loop.

OS signal handlers only put a ``LifecycleEvent`` on a ``queue.SimpleQueue``;
the control loop is the single consumer and applies events between
iterations and while sleeping.
"""

from __future__ import annotations

import queue
import signal
import time
from typing import Callable, Optional

from sqsworker.main.logging import get_logger
from sqsworker.main.models import LifecycleEvent, LifecycleState

logger = get_logger(__name__)

SIGNAL_EVENTS = {
    signal.SIGHUP: LifecycleEvent.RELOAD,
    signal.SIGINT: LifecycleEvent.STOP,
    signal.SIGTERM: LifecycleEvent.STOP,
    signal.SIGQUIT: LifecycleEvent.STOP,
    signal.SIGCHLD: LifecycleEvent.CHILD_EXITED,
}


class LifecycleController:
    """Owns the loop state and the event channel fed by signal handlers.

    Args:
        on_reload: Called while RELOADING; the state returns to RUNNING
            afterwards whether or not it succeeds.
        on_child_exit: Called for every CHILD_EXITED event, in any state.
    """

    def __init__(
        self,
        on_reload: Optional[Callable[[], None]] = None,
        on_child_exit: Optional[Callable[[], object]] = None,
    ) -> None:
        self.state = LifecycleState.RUNNING
        self._on_reload = on_reload
        self._on_child_exit = on_child_exit
        self._events: queue.SimpleQueue = queue.SimpleQueue()
        self._previous_handlers: dict[int, object] = {}

    @property
    def running(self) -> bool:
        return self.state == LifecycleState.RUNNING

    def install(self) -> None:
        for signum in SIGNAL_EVENTS:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def uninstall(self) -> None:
        for signum, previous in self._previous_handlers.items():
            signal.signal(signum, previous)
        self._previous_handlers.clear()

    def _handle_signal(self, signum, frame) -> None:
        self._events.put((SIGNAL_EVENTS[signum], signum))

    def request_stop(self) -> None:
        self._events.put((LifecycleEvent.STOP, None))

    def request_reload(self) -> None:
        self._events.put((LifecycleEvent.RELOAD, None))

    def notify_child_exited(self) -> None:
        self._events.put((LifecycleEvent.CHILD_EXITED, None))

    def _apply(self, event: LifecycleEvent, signum: Optional[int]) -> None:
        signame = signal.Signals(signum).name if signum is not None else None

        match event:
            case LifecycleEvent.STOP:
                if self.state in (LifecycleState.RUNNING, LifecycleState.RELOADING):
                    logger.info("Stop requested, finishing current iteration", extra={"signal": signame})
                    self.state = LifecycleState.STOPPING
            case LifecycleEvent.RELOAD:
                if self.state != LifecycleState.RUNNING:
                    return
                logger.info("Reloading configuration", extra={"signal": signame})
                self.state = LifecycleState.RELOADING
                try:
                    if self._on_reload is not None:
                        self._on_reload()
                finally:
                    if self.state == LifecycleState.RELOADING:
                        self.state = LifecycleState.RUNNING
            case LifecycleEvent.CHILD_EXITED:
                if self._on_child_exit is not None:
                    self._on_child_exit()

    def drain(self) -> None:
        """Apply every pending event without blocking."""
        while True:
            try:
                event, signum = self._events.get_nowait()
            except queue.Empty:
                return
            self._apply(event, signum)

    def wait(self, timeout: float) -> None:
        """Sleep up to ``timeout`` seconds, applying events as they arrive.

        Returns early once the state leaves RUNNING.
        """
        deadline = time.monotonic() + timeout

        while self.running:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            try:
                event, signum = self._events.get(timeout=remaining)
            except queue.Empty:
                return
            self._apply(event, signum)

    def finish(self) -> None:
        """Enter STOPPED and restore the previous signal handlers."""
        self.drain()
        self.state = LifecycleState.STOPPED
        self.uninstall()
