import io

import pytest

from simmachine.interrupt import (
    Interrupt,
    IntStatus,
    IntType,
    MachineHalted,
    MachineStatus,
)
from simmachine.stats import SYSTEM_TICK, USER_TICK, Statistics


def make(**kwargs):
    out = io.StringIO()
    stats = Statistics()
    return Interrupt(stats=stats, out=out, **kwargs), stats, out


def test_starts_disabled_in_system_mode():
    intr, _, _ = make()
    assert intr.level is IntStatus.OFF
    assert intr.status is MachineStatus.SYSTEM
    assert intr.pending() == []


def test_schedule_keeps_time_order_and_fifo_for_ties():
    intr, _, _ = make()
    intr.schedule(print, "c", 30, IntType.DISK)
    intr.schedule(print, "a", 10, IntType.TIMER)
    intr.schedule(print, "b", 30, IntType.CONSOLE_READ)
    assert [p.arg for p in intr.pending()] == ["a", "c", "b"]
    whens = [p.when for p in intr.pending()]
    assert whens == sorted(whens)


def test_schedule_rejects_non_positive_delay():
    intr, _, _ = make()
    with pytest.raises(ValueError):
        intr.schedule(print, 0, 0, IntType.DISK)
    assert intr.pending() == []


def test_enable_advances_system_time():
    intr, stats, _ = make()
    old = intr.set_level(IntStatus.ON)
    assert old is IntStatus.OFF
    assert intr.level is IntStatus.ON
    assert stats.total_ticks == SYSTEM_TICK
    assert stats.system_ticks == SYSTEM_TICK


def test_disable_does_not_advance_time():
    intr, stats, _ = make()
    assert intr.set_level(IntStatus.OFF) is IntStatus.OFF
    assert stats.total_ticks == 0


def test_user_mode_tick_counts_user_ticks():
    intr, stats, _ = make()
    intr.status = MachineStatus.USER
    intr.one_tick()
    assert stats.user_ticks == USER_TICK
    assert stats.system_ticks == 0
    assert intr.level is IntStatus.ON


def test_due_interrupt_fires_and_later_one_waits():
    intr, _, _ = make()
    fired = []
    intr.schedule(fired.append, "now", SYSTEM_TICK, IntType.DISK)
    intr.schedule(fired.append, "later", SYSTEM_TICK * 5, IntType.DISK)
    intr.enable()
    assert fired == ["now"]
    assert [p.arg for p in intr.pending()] == ["later"]


def test_handler_runs_in_system_mode_with_interrupts_off():
    seen = []
    intr, _, _ = make()

    def handler(arg):
        seen.append((intr.status, intr.level, intr.in_handler))

    intr.status = MachineStatus.USER
    intr.schedule(handler, None, USER_TICK, IntType.CONSOLE_WRITE)
    intr.one_tick()
    assert seen == [(MachineStatus.SYSTEM, IntStatus.OFF, True)]
    assert intr.status is MachineStatus.USER
    assert intr.in_handler is False


def test_delayed_load_flushed_when_interrupting_user_code():
    loads = []
    intr, _, _ = make(delayed_load=lambda r, v: loads.append((r, v)))
    intr.status = MachineStatus.USER
    intr.schedule(lambda a: None, None, USER_TICK, IntType.DISK)
    intr.one_tick()
    assert loads == [(0, 0)]


def test_handler_may_not_enable_interrupts():
    intr, _, _ = make()
    intr.schedule(lambda a: intr.enable(), None, SYSTEM_TICK, IntType.TIMER)
    with pytest.raises(RuntimeError):
        intr.enable()
    assert intr.in_handler is False


def test_yield_on_return_outside_handler_fails():
    intr, _, _ = make()
    with pytest.raises(RuntimeError):
        intr.yield_on_return()


def test_yield_requested_by_handler_happens_after_handlers():
    statuses = []
    intr, _, _ = make(on_yield=lambda: statuses.append(intr.status))
    intr.schedule(lambda a: intr.yield_on_return(), None, USER_TICK, IntType.TIMER)
    intr.status = MachineStatus.USER
    intr.one_tick()
    assert statuses == [MachineStatus.SYSTEM]
    assert intr.status is MachineStatus.USER


def test_idle_advances_clock_to_next_interrupt():
    intr, stats, _ = make()
    fired = []
    intr.schedule(fired.append, 1, 500, IntType.DISK)
    intr.schedule(fired.append, 2, 900, IntType.DISK)
    intr.idle()
    assert fired == [1]
    assert stats.total_ticks == 500
    assert stats.idle_ticks == 500
    assert intr.status is MachineStatus.SYSTEM


def test_idle_with_nothing_pending_halts():
    intr, stats, out = make()
    with pytest.raises(MachineHalted):
        intr.idle()
    text = out.getvalue()
    assert "No threads ready or runnable, and no pending interrupts.\n" in text
    assert "Assuming the program completed.\n" in text
    assert "Machine halting!\n\n" in text
    assert text.endswith(stats.report())


def test_idle_with_only_timer_pending_halts_and_keeps_timer():
    intr, _, _ = make()
    fired = []
    intr.schedule(fired.append, 1, 100, IntType.TIMER)
    with pytest.raises(MachineHalted):
        intr.idle()
    assert fired == []
    assert [p.kind for p in intr.pending()] == [IntType.TIMER]


def test_halt_prints_statistics():
    intr, stats, out = make()
    stats.num_disk_reads = 3
    with pytest.raises(MachineHalted):
        intr.halt()
    assert out.getvalue() == "Machine halting!\n\n" + stats.report()


def test_dump_state_lists_pending():
    intr, _, out = make()
    intr.schedule(print, None, 40, IntType.NETWORK_RECV)
    intr.dump_state()
    assert out.getvalue() == (
        "Time: 0, interrupts off\n"
        "Pending interrupts:\n"
        "Interrupt handler network recv, scheduled at 40\n"
        "End of pending interrupts\n"
    )


def test_type_labels():
    intr, _, _ = make()
    intr.schedule(print, None, 10, IntType.TIMER)
    intr.schedule(print, None, 20, IntType.CONSOLE_WRITE)
    assert [p.kind.label for p in intr.pending()] == ["timer", "console write"]