"""
Tests for the TimerThread
"""
# Standard
from datetime import datetime, timedelta
import time

# Third Party
import pytest

# Local
from memcached_operator.watch_manager.timer import TimerEvent, TimerThread

## Helpers #####################################################################


class Counter:
    def __init__(self, initial_value=0):
        self.value = initial_value

    def increment(self, value=1):
        self.value += value


def wait_for(condition, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.02)
    return condition()


## Tests #######################################################################


@pytest.mark.timeout(5)
def test_timer_thread_happy_path():
    timer = TimerThread()
    timer.start_thread()

    value_tracker = Counter()
    timer.put_event(datetime.now(), value_tracker.increment)
    timer.put_event(datetime.now() + timedelta(seconds=0.1), value_tracker.increment)
    timer.put_event(datetime.now() + timedelta(seconds=0.2), value_tracker.increment, 2)
    timer.put_event(
        datetime.now() + timedelta(seconds=0.3), value_tracker.increment, value=2
    )
    assert wait_for(lambda: value_tracker.value == 6)
    timer.stop_thread()
    assert value_tracker.value == 6


@pytest.mark.timeout(5)
def test_timer_thread_canceled():
    timer = TimerThread()

    value_tracker = Counter()
    timer.put_event(datetime.now(), value_tracker.increment)
    canceled_event = timer.put_event(
        datetime.now() + timedelta(seconds=0.3), value_tracker.increment
    )
    canceled_event.cancel()

    timer.start_thread()
    time.sleep(1)
    timer.stop_thread()
    assert value_tracker.value == 1
    assert not timer.timer_heap


@pytest.mark.timeout(5)
def test_timer_thread_action_failure_does_not_stop_timer():
    """A raising action is logged and later events still run"""

    def explode():
        raise ValueError("boom")

    timer = TimerThread()
    timer.start_thread()
    value_tracker = Counter()
    timer.put_event(datetime.now(), explode)
    timer.put_event(datetime.now() + timedelta(seconds=0.1), value_tracker.increment)
    assert wait_for(lambda: value_tracker.value == 1)
    timer.stop_thread()


@pytest.mark.timeout(5)
def test_timer_thread_stop():
    """A stopped timer exits its loop and refuses new events"""
    timer = TimerThread()
    timer.start_thread()
    timer.stop_thread()
    timer.join(2)
    assert not timer.is_alive()
    assert timer.put_event(datetime.now(), print) is None


def test_timer_event_ordering():
    """Events compare by time only"""
    now = datetime.now()
    early = TimerEvent(time=now, action=print)
    late = TimerEvent(time=now + timedelta(seconds=1), action=len)
    assert early < late
    assert sorted([late, early]) == [early, late]


def test_time_to_sleep():
    timer = TimerThread()
    assert timer._get_time_to_sleep() is None
    timer.put_event(datetime.now() - timedelta(seconds=10), print)
    assert timer._get_time_to_sleep() > 0
