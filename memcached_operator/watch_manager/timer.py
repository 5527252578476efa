"""
Shared timer thread for scheduled callbacks
"""

# Standard
from dataclasses import dataclass, field
from datetime import datetime
from heapq import heappop, heappush
from typing import Any, Callable, Dict, List, Optional
import threading

# First Party
import alog

# Local
from .base import ThreadBase

log = alog.use_channel("TMRTHRD")

# Shortest time (seconds) the timer sleeps between checks of its heap
MIN_SLEEP_TIME = 0.05


@dataclass(order=True)
class TimerEvent:
    """A scheduled call. Events order by time only."""

    time: datetime
    action: Callable = field(compare=False)
    args: tuple = field(default_factory=tuple, compare=False)
    kwargs: dict = field(default_factory=dict, compare=False)
    stale: bool = field(default=False, compare=False)

    def cancel(self):
        """Skip this event when its time comes"""
        self.stale = True


class TimerThread(ThreadBase):
    """One daemon thread running every scheduled action in time order. Used
    for delayed requeues so that a pending delay does not hold a thread.
    """

    def __init__(self, name: Optional[str] = None):
        super().__init__(name=name or "timer_thread", daemon=True)
        self.timer_heap: List[TimerEvent] = []
        self.notify_condition = threading.Condition()

    def run(self):
        while not self.should_stop():
            with self.notify_condition:
                if not self.should_stop():
                    self.notify_condition.wait(timeout=self._get_time_to_sleep())
                if self.should_stop():
                    break
                due = self._pop_due_events()

            for event in due:
                log.debug2("Running timer event %s", event)
                try:
                    event.action(*event.args, **event.kwargs)
                except Exception as err:  # pylint: disable=broad-except
                    log.warning("Timer action %s failed: %s", event, err, exc_info=True)
        log.debug("Timer thread %s exiting", self.name)

    def stop_thread(self):
        """Stop and wake the run loop"""
        super().stop_thread()
        with self.notify_condition:
            self.notify_condition.notify_all()

    ## Public Interface ########################################################

    def put_event(
        self, time: datetime, action: Callable, *args: Any, **kwargs: Dict
    ) -> Optional[TimerEvent]:
        """Schedule action(*args, **kwargs) to run at the given time

        Returns:
            event:  Optional[TimerEvent]
                Handle that can be cancelled, or None if the timer has stopped
        """
        if self.should_stop():
            return None
        event = TimerEvent(time=time, action=action, args=args, kwargs=kwargs)
        with self.notify_condition:
            heappush(self.timer_heap, event)
            self.notify_condition.notify_all()
        return event

    ## Implementation Details ##################################################

    def _get_time_to_sleep(self) -> Optional[float]:
        """Seconds until the earliest event, or None to wait for a new one"""
        with self.notify_condition:
            if not self.timer_heap:
                return None
            remaining = (self.timer_heap[0].time - datetime.now()).total_seconds()
            return max(remaining, MIN_SLEEP_TIME)

    def _pop_due_events(self) -> List[TimerEvent]:
        """Remove every event whose time has passed. Cancelled ones are dropped."""
        now = datetime.now()
        due = []
        with self.notify_condition:
            while self.timer_heap and self.timer_heap[0].time <= now:
                event = heappop(self.timer_heap)
                if not event.stale:
                    due.append(event)
        return due
