"""
Core application for Janitarr.
Coordinates all components and provides API methods.
"""

from typing import Dict, Any, Optional
from datetime import date
from pathlib import Path
import threading
from concurrent.futures import CancelledError

from .config import Config
from .errors import SchedulerStoppedError
from .logger import Logger, ActivityLog
from .automation import (
    Automation, CycleResult, DetectionResults, Detector, Scheduler, SearchTrigger,
)


class JanitarrCore:
    """
    Core application coordinator.

    ARCHITECTURE:
        JanitarrCore
        ├── activity     - Observation sink (what each cycle did)
        ├── detector     - Finds missing and cutoff-unmet items on every server
        ├── trigger      - Distributes limits and submits searches
        ├── automation   - One detect-then-search cycle
        └── scheduler    - Timer plus manual trigger, one cycle at a time

    DATA FLOW:
        1. Scheduler fires (or a manual trigger arrives)
        2. Automation reads servers and limits fresh from the config
        3. Detector queries all servers in parallel
        4. SearchTrigger sends bounded, batched search commands
        5. The CycleResult is kept as last_result for status calls

    client_factory, clock and timer_factory exist so tests can run the
    whole stack without network or wall-clock waits.
    """

    def __init__(self, config: Config, logger: Logger, client_factory=None,
                 clock=None, timer_factory=None):
        self.config = config
        self.logger = logger
        self.log = logger.get_logger('core')

        self.activity = ActivityLog(
            logger,
            capacity=config.logs.buffer_size,
            path=str(Path(config.data_dir) / 'activity.json'),
        )
        self.detector = Detector(config, client_factory)
        self.trigger = SearchTrigger(config, client_factory, activity=self.activity)
        self.automation = Automation(config, self.detector, self.trigger,
                                     self.activity, logger)

        scheduler_kwargs = {}
        if clock is not None:
            scheduler_kwargs['clock'] = clock
        if timer_factory is not None:
            scheduler_kwargs['timer_factory'] = timer_factory
        self.scheduler = Scheduler(self._run_cycle, config.schedule.interval_hours,
                                   logger, **scheduler_kwargs)

        # Set on shutdown; in-flight cycles watch it and abort
        self.shutdown_event = threading.Event()

        self._lock = threading.Lock()
        self.last_result: Optional[CycleResult] = None
        self._last_purge: Optional[date] = None

    # ============ Lifecycle ============

    def start_scheduler(self):
        """Start the repeating cycle if the schedule is enabled."""
        if not self.config.schedule.enabled:
            self.log.info("Schedule disabled, automation only runs on demand")
            return
        if not self.config.list_enabled_servers():
            self.log.warning("No enabled servers configured, cycles will find nothing")
        self.scheduler.start()

    def shutdown(self, timeout: float = 30) -> bool:
        """Stop scheduling, abort the running cycle and wait for it."""
        self.log.info("Shutting down")
        self.scheduler.stop()
        self.shutdown_event.set()
        idle = self.scheduler.wait_until_idle(timeout)
        if not idle:
            self.log.warning(f"Cycle still running after {timeout}s")
        return idle

    def _run_cycle(self, is_manual: bool, dry_run: Optional[bool]) -> CycleResult:
        """Scheduler callback."""
        if dry_run is None:
            dry_run = self.config.search.dry_run
        result = self.automation.run_cycle(is_manual=is_manual, dry_run=dry_run,
                                           cancel_event=self.shutdown_event)
        with self._lock:
            self.last_result = result
        if not is_manual and not result.aborted:
            self._purge_daily()
        return result

    def _purge_daily(self):
        """Retention cleanup, at most once per calendar day."""
        today = date.today()
        with self._lock:
            if self._last_purge == today:
                return
            self._last_purge = today
        self.activity.purge_older_than(self.config.logs.retention_days)

    # ============ API Methods ============

    def run_manual_cycle(self, dry_run: Optional[bool] = None,
                         timeout: Optional[float] = None) -> CycleResult:
        """
        Run a cycle now and wait for its result.

        Waits behind a running cycle; raises SchedulerBusyError when a
        manual cycle is already waiting and SchedulerStoppedError after
        shutdown.
        """
        if self.shutdown_event.is_set():
            raise SchedulerStoppedError("Janitarr is shutting down")
        future = self.scheduler.trigger_manual(dry_run)
        try:
            return future.result(timeout=timeout)
        except CancelledError:
            raise SchedulerStoppedError("queued manual cycle dropped by shutdown")

    def scan(self) -> DetectionResults:
        """Detection only: what is missing or below cutoff right now."""
        return self.detector.detect_all(self.shutdown_event)

    def get_status(self) -> Dict[str, Any]:
        """Get overall system status. Never contacts the servers."""
        with self._lock:
            last = self.last_result
        return {
            'scheduler': self.scheduler.get_status().to_dict(),
            'seconds_until_next_run': int(self.scheduler.time_until_next_run().total_seconds()),
            'dry_run': self.config.search.dry_run,
            'servers': [s.to_dict(redact=True) for s in self.config.list_servers()],
            'search_limits': self.config.to_dict()['search_limits'],
            'last_cycle': last.to_dict() if last else None,
        }

    def get_logs(self, limit: int = 100, entry_type: Optional[str] = None,
                 server_name: Optional[str] = None) -> Dict[str, Any]:
        """Get activity entries, newest first."""
        entries = self.activity.get_entries(limit, entry_type, server_name)
        return {'logs': [e.to_dict() for e in entries]}

    def get_app_logs(self, level: Optional[str], limit: int) -> Dict[str, Any]:
        """Get application logs."""
        return {'logs': Logger.get_logs(level, limit)}

    def clear_logs(self):
        self.activity.clear()
        Logger.clear_logs()

    def update_config(self, data: Dict[str, Any]):
        """Apply a config change and follow interval edits."""
        old_interval = self.config.schedule.interval_hours
        self.config.update(data)
        if self.config.schedule.interval_hours != old_interval:
            self.scheduler.set_interval(self.config.schedule.interval_hours)

    def test_server(self, id_or_name: str) -> Dict[str, Any]:
        """Test connection to a configured server."""
        server = self.config.get_server(id_or_name)
        if server is None:
            return {'success': False, 'message': f'Server not found: {id_or_name}'}
        client = self.detector.client_factory(server)
        result = client.test_connection()
        self.log.info(f"Connection test for {server.name}: "
                      f"{'ok' if result['success'] else result['message']}")
        return result
