from __future__ import annotations

import logging
from enum import Enum

from signaling.errors import StateTransitionError

LOGGER = logging.getLogger(__name__)


class CallState(str, Enum):
    IDLE = "idle"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    TERMINATED = "terminated"


_ORDER = (CallState.IDLE, CallState.NEGOTIATING, CallState.ACTIVE)


class CallStateMachine:
    """Monotonic call state: IDLE -> NEGOTIATING -> ACTIVE, TERMINATED from anywhere."""

    def __init__(self) -> None:
        self._state = CallState.IDLE
        self.history: list[CallState] = [CallState.IDLE]
        self.reason: str | None = None

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def terminated(self) -> bool:
        return self._state is CallState.TERMINATED

    def advance(self, new_state: CallState) -> None:
        if new_state is CallState.TERMINATED:
            self.terminate()
            return
        if self.terminated:
            raise StateTransitionError(f"session terminated, cannot enter {new_state.value}")
        if _ORDER.index(new_state) <= _ORDER.index(self._state):
            raise StateTransitionError(f"{self._state.value} -> {new_state.value}")

        self._set(new_state)

    def terminate(self, reason: str | None = None) -> None:
        if self.terminated:
            return
        self.reason = reason
        self._set(CallState.TERMINATED)

    def _set(self, new_state: CallState) -> None:
        LOGGER.info("new state: %s -> %s", self._state.value, new_state.value)
        self._state = new_state
        self.history.append(new_state)
