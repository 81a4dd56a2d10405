import io
import random

import pytest

from simmachine.interrupt import Interrupt, IntType
from simmachine.stats import TIMER_TICKS
from simmachine.timer import Timer


class _FixedRng:
    def __init__(self, pick):
        self._pick = pick

    def randrange(self, n):
        return self._pick(n)


@pytest.fixture
def interrupt():
    return Interrupt(out=io.StringIO())


def test_first_interrupt_is_scheduled(interrupt):
    Timer(interrupt, lambda arg: None)
    pending = interrupt.pending()
    assert len(pending) == 1
    assert pending[0].when == TIMER_TICKS
    assert pending[0].kind is IntType.TIMER


def test_fixed_delay(interrupt):
    timer = Timer(interrupt, lambda arg: None)
    assert timer.time_of_next_interrupt() == TIMER_TICKS


def test_timer_expired_calls_handler_and_reschedules(interrupt):
    calls = []
    timer = Timer(interrupt, calls.append, "tick")
    timer.timer_expired()
    assert calls == ["tick"]
    assert len(interrupt.pending()) == 2
    assert all(p.kind is IntType.TIMER for p in interrupt.pending())


def test_fires_when_clock_passes(interrupt):
    calls = []
    Timer(interrupt, calls.append, 7)
    interrupt.stats.total_ticks = TIMER_TICKS - 5
    interrupt.one_tick()
    assert calls == [7]
    pending = interrupt.pending()
    assert len(pending) == 1
    assert pending[0].when == interrupt.stats.total_ticks + TIMER_TICKS


def test_not_fired_before_due(interrupt):
    calls = []
    Timer(interrupt, calls.append, 1)
    interrupt.one_tick()
    assert calls == []
    assert interrupt.pending()[0].when == TIMER_TICKS


def test_random_delays_stay_in_range(interrupt):
    timer = Timer(interrupt, lambda arg: None, randomize=True, rng=random.Random(3))
    delays = [timer.time_of_next_interrupt() for _ in range(500)]
    assert min(delays) >= 1
    assert max(delays) <= 2 * TIMER_TICKS


def test_random_bounds(interrupt):
    low = Timer(interrupt, lambda a: None, randomize=True, rng=_FixedRng(lambda n: 0))
    high = Timer(
        interrupt, lambda a: None, randomize=True, rng=_FixedRng(lambda n: n - 1)
    )
    assert low.time_of_next_interrupt() == 1
    assert high.time_of_next_interrupt() == 2 * TIMER_TICKS


def test_handler_can_request_yield():
    yields = []
    interrupt = Interrupt(out=io.StringIO(), on_yield=lambda: yields.append(True))
    Timer(interrupt, lambda arg: interrupt.yield_on_return())
    interrupt.stats.total_ticks = TIMER_TICKS
    interrupt.one_tick()
    assert yields == [True]