"""nutritrack_etl.readiness

Process-local readiness state for the two-phase ingestion.

    UNINITIALIZED -> BASIC_READY -> FULL_READY

Transitions only move forward within one ingestion run; reset() returns
to UNINITIALIZED at the start of every run. Consumers subscribe for
changes or block in wait_for() rather than inferring readiness from the
order in which calls return.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable

log = logging.getLogger(__name__)


class ReadinessState(enum.IntEnum):
    UNINITIALIZED = 0
    BASIC_READY = 1
    FULL_READY = 2


Listener = Callable[[ReadinessState], None]


class ReadinessPublisher:
    """Thread-safe observable holder of the current ReadinessState."""

    def __init__(self) -> None:
        self._state = ReadinessState.UNINITIALIZED
        self._cond = threading.Condition()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> ReadinessState:
        with self._cond:
            return self._state

    @property
    def basic_ready(self) -> bool:
        return self.state >= ReadinessState.BASIC_READY

    @property
    def full_ready(self) -> bool:
        return self.state >= ReadinessState.FULL_READY

    def mark_basic_ready(self) -> None:
        self._advance(ReadinessState.BASIC_READY)

    def mark_full_ready(self) -> None:
        self._advance(ReadinessState.FULL_READY)

    def reset(self) -> None:
        self._set(ReadinessState.UNINITIALIZED, force=True)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register listener; it is called now with the current state and on every change.

        Returns a callable that removes the listener.
        """
        with self._cond:
            self._listeners.append(listener)
            current = self._state
        listener(current)

        def unsubscribe() -> None:
            with self._cond:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def wait_for(self, state: ReadinessState, timeout: float | None = None) -> bool:
        """Block until the state reaches at least `state`; False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._state >= state, timeout=timeout)

    def _advance(self, state: ReadinessState) -> None:
        self._set(state, force=False)

    def _set(self, state: ReadinessState, force: bool) -> None:
        with self._cond:
            if self._state == state or (not force and state < self._state):
                return
            self._state = state
            listeners = list(self._listeners)
            self._cond.notify_all()
        log.info("Readiness -> %s", state.name)
        for listener in listeners:
            try:
                listener(state)
            except Exception:  # noqa: BLE001
                log.exception("Readiness listener failed")
