from __future__ import annotations

import logging
import time
from typing import Callable

from .inspection import format_duration
from .models import TimerState

logger = logging.getLogger(__name__)


class InspectionTimer:
    """Elapsed-time accumulator for the inspection being filled out.

    While running, elapsed time is ``clock() - reference``. Pausing freezes the
    elapsed value; resuming moves the reference to ``clock() - frozen`` so the
    count continues from where it stopped.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._state = TimerState.IDLE
        self._reference = 0.0
        self._frozen = 0.0
        self._has_started = False

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is TimerState.RUNNING

    @property
    def has_started(self) -> bool:
        return self._has_started

    @property
    def elapsed_seconds(self) -> int:
        if self._state is TimerState.RUNNING:
            return int(max(self._frozen, self._clock() - self._reference))
        return int(self._frozen)

    @property
    def display(self) -> str:
        return format_duration(self.elapsed_seconds)

    def start(self, force: bool = False) -> None:
        if self._state is TimerState.RUNNING:
            return
        if self._state is TimerState.IDLE and not force:
            return
        self._reference = self._clock() - self._frozen
        self._state = TimerState.RUNNING
        self._has_started = True

    def resume(self) -> None:
        self.start()

    def notify_interaction(self) -> None:
        if not self._has_started:
            self.start(force=True)

    def pause(self) -> int:
        if self._state is TimerState.RUNNING:
            self._frozen = max(self._frozen, self._clock() - self._reference)
            self._state = TimerState.PAUSED
        return int(self._frozen)

    def reset(self) -> None:
        self._state = TimerState.IDLE
        self._reference = 0.0
        self._frozen = 0.0
        self._has_started = False
        logger.debug("Timer has been reset")

    def restore(self, seconds: int) -> None:
        """Hold a loaded duration; the next interaction continues counting from it."""
        self._frozen = float(max(0, int(seconds)))
        self._reference = 0.0
        self._state = TimerState.PAUSED
        self._has_started = False
