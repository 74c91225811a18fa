"""Exactly-once guard around the finalize side effect."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GateState(str, Enum):
    ARMED = "armed"
    FIRED = "fired"


class FinalizationGate:
    """Lets the finalize action run once per session until reset.

    The gate flips to ``fired`` before the action is awaited so a second
    completion signal arriving meanwhile is ignored. A failing action puts
    the gate back to ``armed`` so the user can retry.
    """

    def __init__(self) -> None:
        self._state = GateState.ARMED
        self._running = False

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def fired(self) -> bool:
        return self._state is GateState.FIRED

    @property
    def running(self) -> bool:
        """True while the finalize action is still in flight."""

        return self._running

    async def fire(self, action: Callable[[], Awaitable[T]]) -> Optional[T]:
        if self._state is GateState.FIRED:
            logger.debug("Finalization already fired; ignoring signal.")
            return None
        self._state = GateState.FIRED
        self._running = True
        try:
            return await action()
        except Exception:
            self._state = GateState.ARMED
            raise
        finally:
            self._running = False

    def reset(self) -> None:
        if self._running:
            raise RuntimeError("Cannot reset while finalization is running")
        self._state = GateState.ARMED
