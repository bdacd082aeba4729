"""
Scheduler for Janitarr.
Runs the automation cycle on a repeating timer and serves manual triggers,
never letting two cycles overlap.
"""

import threading
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from ..errors import SchedulerBusyError


STOPPED = 'stopped'
IDLE = 'idle'
CYCLE_ACTIVE = 'cycle_active'


def _daemon_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


@dataclass(frozen=True)
class SchedulerStatus:
    """Point-in-time copy of the scheduler state."""
    is_running: bool
    is_cycle_active: bool
    last_run: Optional[datetime]
    next_run: Optional[datetime]
    interval_hours: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_running': self.is_running,
            'is_cycle_active': self.is_cycle_active,
            'last_run': self.last_run.isoformat() if self.last_run else None,
            'next_run': self.next_run.isoformat() if self.next_run else None,
            'interval_hours': self.interval_hours,
        }


class Scheduler:
    """
    Cycle scheduler with three states: stopped, idle and cycle_active.

    The callback is called as callback(is_manual, dry_run) and always runs
    outside the internal lock. After every cycle the timer is re-armed one
    interval from the completion time.

    clock and timer_factory are injectable; timer_factory(seconds, fn) must
    return an object with start() and cancel(), like threading.Timer.
    """

    def __init__(self, callback: Callable[[bool, Optional[bool]], Any],
                 interval_hours: float, logger,
                 clock: Callable[[], datetime] = datetime.utcnow,
                 timer_factory: Callable = _daemon_timer):
        self._callback = callback
        self._interval_hours = interval_hours
        self.log = logger.get_logger('scheduler')
        self._clock = clock
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._running = False
        self._cycle_active = False
        self._timer = None
        self._generation = 0
        self._queued: Optional[Tuple[Future, Optional[bool]]] = None
        self._last_run: Optional[datetime] = None
        self._next_run: Optional[datetime] = None

    # ---------- lifecycle ----------

    def start(self):
        """Arm the timer. Calling start on a running scheduler does nothing."""
        with self._lock:
            if self._running:
                return
            self._running = True
            if not self._cycle_active:
                self._arm_locked()
            next_run = self._next_run
        self.log.info(f"Scheduler started (every {self._interval_hours}h, "
                      f"next run {next_run.isoformat() if next_run else 'after current cycle'})")

    def stop(self):
        """
        Disarm the timer and drop any queued manual request.

        A cycle that is already running is left to finish; use
        wait_until_idle() to wait for it.
        """
        with self._lock:
            was_running = self._running
            self._running = False
            self._disarm_locked()
            queued, self._queued = self._queued, None
        if queued is not None:
            queued[0].cancel()
            self.log.info("Dropped queued manual cycle")
        if was_running:
            self.log.info("Scheduler stopped")

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no cycle is running. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._cycle_active, timeout=timeout)

    def set_interval(self, hours: float):
        """Change the interval; an idle running scheduler is re-armed from now."""
        with self._lock:
            self._interval_hours = hours
            if self._running and not self._cycle_active:
                self._arm_locked()
        self.log.info(f"Scheduler interval set to {hours}h")

    # ---------- triggering ----------

    def trigger_manual(self, dry_run: Optional[bool] = None) -> Future:
        """
        Request a manual cycle.

        When idle the cycle runs on the calling thread and the returned
        future is already done. When a cycle is running the request is
        queued and runs right after it. Raises SchedulerBusyError when a
        manual request is already queued.
        """
        future: Future = Future()
        with self._lock:
            if self._cycle_active:
                if self._queued is not None:
                    raise SchedulerBusyError()
                self._queued = (future, dry_run)
                self.log.info("Cycle in progress, manual cycle queued")
                return future
            self._cycle_active = True
            self._disarm_locked()

        self._run_cycles(True, dry_run, future)
        return future

    def _on_timer(self, generation: int):
        with self._lock:
            if generation != self._generation or not self._running:
                return
            self._timer = None
            if self._cycle_active:
                # The running cycle re-arms when it finishes
                return
            self._cycle_active = True
        self.log.debug("Timer fired, starting scheduled cycle")
        self._run_cycles(False, None, None)

    def _run_cycles(self, is_manual: bool, dry_run: Optional[bool],
                    future: Optional[Future]):
        """Run one cycle, then any manual request queued meanwhile."""
        while True:
            if future is None or future.set_running_or_notify_cancel():
                self._execute(is_manual, dry_run, future)

            with self._lock:
                queued, self._queued = self._queued, None
                if queued is None:
                    self._cycle_active = False
                    if self._running:
                        self._arm_locked()
                    self._idle.notify_all()
                    return

            future, dry_run = queued
            is_manual = True

    def _execute(self, is_manual: bool, dry_run: Optional[bool],
                 future: Optional[Future]):
        kind = 'manual' if is_manual else 'scheduled'
        try:
            result = self._callback(is_manual, dry_run)
        except Exception as e:
            self.log.exception(f"Unhandled error in {kind} cycle: {e}")
            if future is not None:
                future.set_exception(e)
        else:
            if future is not None:
                future.set_result(result)
        finally:
            with self._lock:
                self._last_run = self._clock()

    # ---------- timer ----------

    def _arm_locked(self):
        self._disarm_locked()
        delay = timedelta(hours=self._interval_hours)
        self._next_run = self._clock() + delay
        generation = self._generation
        self._timer = self._timer_factory(delay.total_seconds(),
                                          lambda: self._on_timer(generation))
        self._timer.start()
        self.log.debug(f"Next cycle at {self._next_run.isoformat()}")

    def _disarm_locked(self):
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._next_run = None

    # ---------- status ----------

    @property
    def state(self) -> str:
        with self._lock:
            if self._cycle_active:
                return CYCLE_ACTIVE
            return IDLE if self._running else STOPPED

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def is_cycle_active(self) -> bool:
        with self._lock:
            return self._cycle_active

    def time_until_next_run(self) -> timedelta:
        """Zero when stopped or when no run is armed."""
        with self._lock:
            if not self._running or self._next_run is None:
                return timedelta(0)
            remaining = self._next_run - self._clock()
        return max(remaining, timedelta(0))

    def get_status(self) -> SchedulerStatus:
        with self._lock:
            return SchedulerStatus(
                is_running=self._running,
                is_cycle_active=self._cycle_active,
                last_run=self._last_run,
                next_run=self._next_run,
                interval_hours=self._interval_hours,
            )
