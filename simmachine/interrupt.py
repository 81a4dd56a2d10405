"""Simulated interrupt hardware and the simulated clock.

Simulated time advances only when interrupts are re-enabled, when a user
instruction is executed, or when the machine is idle with nothing ready to
run.  Interrupts therefore fire only at those points, never in between.
"""

from __future__ import annotations

import bisect
import logging
import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, TextIO

from .stats import SYSTEM_TICK, USER_TICK, Statistics

_log = logging.getLogger(__name__)


class IntStatus(IntEnum):
    """Whether interrupts are disabled or enabled."""

    OFF = 0
    ON = 1

    @property
    def label(self) -> str:
        return "off" if self is IntStatus.OFF else "on"


class MachineStatus(IntEnum):
    """What the simulated CPU is doing."""

    IDLE = 0
    SYSTEM = 1
    USER = 2


class IntType(IntEnum):
    """The hardware device that raised an interrupt."""

    TIMER = 0
    DISK = 1
    CONSOLE_WRITE = 2
    CONSOLE_READ = 3
    NETWORK_SEND = 4
    NETWORK_RECV = 5

    @property
    def label(self) -> str:
        return _TYPE_LABELS[self]


_TYPE_LABELS = {
    IntType.TIMER: "timer",
    IntType.DISK: "disk",
    IntType.CONSOLE_WRITE: "console write",
    IntType.CONSOLE_READ: "console read",
    IntType.NETWORK_SEND: "network send",
    IntType.NETWORK_RECV: "network recv",
}


class MachineHalted(Exception):
    """Raised when the simulated machine shuts down."""


@dataclass
class PendingInterrupt:
    """An interrupt scheduled to fire at simulated time ``when``."""

    handler: Callable[[Any], None]
    arg: Any
    when: int
    kind: IntType


class Interrupt:
    """Keeps the interrupt level, the machine status and the pending interrupts."""

    def __init__(
        self,
        stats: Statistics | None = None,
        on_yield: Callable[[], None] | None = None,
        delayed_load: Callable[[int, int], None] | None = None,
        out: TextIO | None = None,
    ) -> None:
        self.stats = stats if stats is not None else Statistics()
        self.on_yield = on_yield
        self.delayed_load = delayed_load
        self._out = out
        self._level = IntStatus.OFF
        self._pending: list[PendingInterrupt] = []
        self.in_handler = False
        self._yield_on_return = False
        self.status = MachineStatus.SYSTEM

    @property
    def level(self) -> IntStatus:
        """Whether interrupts are currently enabled."""
        return self._level

    @property
    def out(self) -> TextIO:
        return sys.stdout if self._out is None else self._out

    def pending(self) -> list[PendingInterrupt]:
        """Return the scheduled interrupts, earliest first."""
        return list(self._pending)

    def _change_level(self, old: IntStatus, now: IntStatus) -> None:
        self._level = now
        _log.debug("interrupts: %s -> %s", old.label, now.label)

    def set_level(self, now: IntStatus) -> IntStatus:
        """Enable or disable interrupts and return the previous level.

        Enabling interrupts that were off advances simulated time.
        """
        now = IntStatus(now)
        old = self._level
        if now is IntStatus.ON and self.in_handler:
            raise RuntimeError("interrupt handlers may not enable interrupts")
        self._change_level(old, now)
        if now is IntStatus.ON and old is IntStatus.OFF:
            self.one_tick()
        return old

    def enable(self) -> None:
        """Turn interrupts on."""
        self.set_level(IntStatus.ON)

    def one_tick(self) -> None:
        """Advance simulated time and fire any interrupts now due."""
        old = self.status
        if self.status is MachineStatus.SYSTEM:
            self.stats.total_ticks += SYSTEM_TICK
            self.stats.system_ticks += SYSTEM_TICK
        else:
            self.stats.total_ticks += USER_TICK
            self.stats.user_ticks += USER_TICK
        _log.debug("== Tick %d ==", self.stats.total_ticks)

        # Handlers run with interrupts disabled.
        self._change_level(IntStatus.ON, IntStatus.OFF)
        while self._check_if_due(False):
            pass
        self._change_level(IntStatus.OFF, IntStatus.ON)
        if self._yield_on_return:
            self._yield_on_return = False
            self.status = MachineStatus.SYSTEM
            if self.on_yield is not None:
                self.on_yield()
            self.status = old

    def yield_on_return(self) -> None:
        """Ask for a context switch once the current handler returns."""
        if not self.in_handler:
            raise RuntimeError("yield_on_return called outside an interrupt handler")
        self._yield_on_return = True

    def idle(self) -> None:
        """Advance the clock to the next interrupt; halt if there is none."""
        _log.debug("Machine idling; checking for interrupts.")
        self.status = MachineStatus.IDLE
        if self._check_if_due(True):
            while self._check_if_due(False):
                pass
            # Nothing is ready, so the yield happens anyway.
            self._yield_on_return = False
            self.status = MachineStatus.SYSTEM
            return

        _log.debug("Machine idle.  No interrupts to do.")
        out = self.out
        out.write("No threads ready or runnable, and no pending interrupts.\n")
        out.write("Assuming the program completed.\n")
        self.halt()

    def halt(self) -> None:
        """Print the statistics and stop the machine by raising MachineHalted."""
        out = self.out
        out.write("Machine halting!\n\n")
        self.stats.print(out)
        raise MachineHalted("machine halted")

    def schedule(
        self,
        handler: Callable[[Any], None],
        arg: Any,
        from_now: int,
        kind: IntType,
    ) -> None:
        """Arrange for ``handler(arg)`` to run ``from_now`` ticks from now."""
        if from_now <= 0:
            raise ValueError(f"interrupt must be scheduled in the future, got {from_now}")
        kind = IntType(kind)
        when = self.stats.total_ticks + from_now
        _log.debug("Scheduling interrupt handler the %s at time = %d", kind.label, when)
        self._insert(PendingInterrupt(handler, arg, when, kind))

    def _insert(self, item: PendingInterrupt) -> None:
        index = bisect.bisect_right(
            [p.when for p in self._pending], item.when
        )
        self._pending.insert(index, item)

    def _check_if_due(self, advance_clock: bool) -> bool:
        old = self.status
        if self._level is not IntStatus.OFF:
            raise RuntimeError("interrupts must be disabled to run a handler")
        if _log.isEnabledFor(logging.DEBUG):
            self.dump_state()
        if not self._pending:
            return False
        to_occur = self._pending.pop(0)
        when = to_occur.when

        if advance_clock and when > self.stats.total_ticks:
            self.stats.idle_ticks += when - self.stats.total_ticks
            self.stats.total_ticks = when
        elif when > self.stats.total_ticks:
            self._insert(to_occur)
            return False

        # Only the timer is left while idle: nothing more will ever happen.
        if (
            self.status is MachineStatus.IDLE
            and to_occur.kind is IntType.TIMER
            and not self._pending
        ):
            self._insert(to_occur)
            return False

        _log.debug(
            "Invoking interrupt handler for the %s at time %d",
            to_occur.kind.label,
            to_occur.when,
        )
        if self.delayed_load is not None and self.status is MachineStatus.USER:
            self.delayed_load(0, 0)
        self.in_handler = True
        self.status = MachineStatus.SYSTEM
        try:
            to_occur.handler(to_occur.arg)
        finally:
            self.status = old
            self.in_handler = False
        return True

    def dump_state(self) -> None:
        """Print the clock, the interrupt level and every pending interrupt."""
        out = self.out
        out.write(f"Time: {self.stats.total_ticks}, interrupts {self._level.label}\n")
        out.write("Pending interrupts:\n")
        for item in self._pending:
            out.write(f"Interrupt handler {item.kind.label}, scheduled at {item.when}\n")
        out.write("End of pending interrupts\n")
        out.flush()