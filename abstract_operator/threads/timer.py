"""
A single scheduler thread for delayed actions
"""

# Standard
from dataclasses import dataclass, field
from datetime import datetime
from heapq import heappop, heappush
from typing import Any, Callable, List, Optional
import threading

# First Party
import alog

# Local
from .base import ThreadBase

log = alog.use_channel("TIMER")

# Lower bound of a single wait so that late events are not busy-polled
MIN_SLEEP_TIME = 0.1


@dataclass(order=True)
class TimerEvent:
    """A scheduled action. Events are ordered by time only."""

    time: datetime
    action: Callable = field(compare=False)
    args: tuple = field(default=(), compare=False)
    kwargs: dict = field(default_factory=dict, compare=False)
    stale: bool = field(default=False, compare=False)

    def cancel(self):
        """Keep the event from running. It is dropped when it comes due."""
        self.stale = True


class TimerThread(ThreadBase):
    """Runs scheduled actions on one shared thread, unlike threading.Timer
    which needs a thread per action. Actions run on the timer thread in time
    order.
    """

    def __init__(self, name: Optional[str] = None):
        super().__init__(name=name or "timer_thread", daemon=True)
        self._events: List[TimerEvent] = []
        self._wakeup = threading.Condition()

    def run(self):
        while not self.should_stop():
            with self._wakeup:
                self._wakeup.wait(timeout=self._seconds_until_next())
            if self.should_stop():
                break
            for event in self._pop_due_events():
                log.debug2("Running timer event %s", event)
                event.action(*event.args, **event.kwargs)
        log.debug("Timer %s stopped with %d pending events", self.name, len(self._events))

    def stop_thread(self):
        super().stop_thread()
        with self._wakeup:
            self._wakeup.notify_all()

    def put_event(
        self, time: datetime, action: Callable, *args: Any, **kwargs: Any
    ) -> Optional[TimerEvent]:
        """Schedule an action

        Args:
            time:  datetime
                When to run the action
            action:  Callable
                The action to run
            *args:  Any
                Positional args of the action
            **kwargs:  Any
                Keyword args of the action

        Returns:
            event:  Optional[TimerEvent]
                The cancellable event, or None if the timer is stopped
        """
        if self.should_stop():
            log.debug("Timer %s is stopped, not scheduling %s", self.name, action)
            return None

        event = TimerEvent(time=time, action=action, args=args, kwargs=kwargs)
        with self._wakeup:
            heappush(self._events, event)
            self._wakeup.notify_all()
        return event

    ## Implementation Details ##################################################

    def _seconds_until_next(self) -> Optional[float]:
        """None (wait for a new event) when nothing is scheduled"""
        with self._wakeup:
            if not self._events:
                return None
            remaining = (self._events[0].time - datetime.now()).total_seconds()
            return max(remaining, MIN_SLEEP_TIME)

    def _pop_due_events(self) -> List[TimerEvent]:
        now = datetime.now()
        due = []
        with self._wakeup:
            while self._events and self._events[0].time <= now:
                event = heappop(self._events)
                if event.stale:
                    log.debug3("Dropping cancelled event %s", event)
                else:
                    due.append(event)
        return due
