"""A hardware timer that interrupts the CPU at regular or random intervals."""

from __future__ import annotations

import random
from typing import Any, Callable

from .interrupt import Interrupt, IntType
from .stats import TIMER_TICKS


class Timer:
    """Raises a timer interrupt every TIMER_TICKS ticks, or at random delays.

    ``handler(arg)`` is called, with interrupts disabled, each time the
    timer expires.  With ``randomize`` set, each delay is drawn uniformly
    from 1 to twice TIMER_TICKS.
    """

    def __init__(
        self,
        interrupt: Interrupt,
        handler: Callable[[Any], None],
        arg: Any = None,
        randomize: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        self.interrupt = interrupt
        self.handler = handler
        self.arg = arg
        self.randomize = randomize
        self._rng = rng if rng is not None else random.Random()
        self._schedule_next()

    def _schedule_next(self) -> None:
        self.interrupt.schedule(
            Timer.timer_expired, self, self.time_of_next_interrupt(), IntType.TIMER
        )

    def timer_expired(self) -> None:
        """Schedule the next timer interrupt, then run the handler."""
        self._schedule_next()
        self.handler(self.arg)

    def time_of_next_interrupt(self) -> int:
        """Return how many ticks from now the next interrupt should come."""
        if self.randomize:
            return 1 + self._rng.randrange(TIMER_TICKS * 2)
        return TIMER_TICKS