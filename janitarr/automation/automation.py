"""
Automation cycle for Janitarr.
Runs detection, then search submission, and reports one CycleResult.
"""

import threading
import time
from datetime import datetime
from typing import Optional

from ..config import Config
from ..errors import ConfigAccessError, CycleCancelled, InvalidLimitsError
from .detector import Detector
from .results import CycleResult
from .search_trigger import SearchTrigger


class Automation:
    """One detect-then-search pass over every enabled server."""

    def __init__(self, config: Config, detector: Detector, trigger: SearchTrigger,
                 activity, logger):
        self.config = config
        self.detector = detector
        self.trigger = trigger
        self.activity = activity
        self.log = logger.get_logger('automation')

    def run_cycle(self, is_manual: bool = False, dry_run: bool = False,
                  cancel_event: Optional[threading.Event] = None) -> CycleResult:
        """
        Run a full cycle and return its result.

        Partial failures only mark the result unsuccessful. A config read
        failure ends the cycle early, and cancellation returns a result with
        aborted set.
        """
        cancel_event = cancel_event or threading.Event()
        started = time.monotonic()
        result = CycleResult(is_manual=is_manual, dry_run=dry_run,
                             started_at=datetime.utcnow())
        self.activity.cycle_start(is_manual)
        if dry_run:
            self.log.info("Dry run: no search commands will be sent")

        try:
            self._run(result, cancel_event)
        except CycleCancelled as e:
            result.success = False
            result.aborted = True
            result.errors.append(str(e))
            result.duration = time.monotonic() - started
            self.activity.cycle_aborted(is_manual)
            return result
        except (ConfigAccessError, InvalidLimitsError) as e:
            result.success = False
            result.errors.append(f"cycle aborted: {e}")
            self.log.error(f"Cycle could not run: {e}")
        except Exception as e:
            self.log.exception(f"Unexpected error during cycle: {e}")
            raise

        result.duration = time.monotonic() - started
        self.activity.cycle_end(result.duration, result.total_searches,
                                result.total_failures, is_manual)
        return result

    def _run(self, result: CycleResult, cancel_event: threading.Event):
        # Detection
        detection = self.detector.detect_all(cancel_event)
        result.detection_results = detection

        for res in detection.results:
            server = res.server or self._describe(res)
            if res.ok:
                self.activity.detection_complete(server, len(res.missing), len(res.cutoff))
            else:
                self.activity.detection_failed(server, res.error)
                result.success = False
                result.total_failures += 1
                result.errors.append(f"server {res.server_name} detection failed: {res.error}")

        # Searches
        limits = self.config.get_search_limits()
        searches = self.trigger.trigger(detection, limits, dry_run=result.dry_run,
                                        cancel_event=cancel_event)
        result.search_results = searches
        result.total_searches = searches.missing_triggered + searches.cutoff_triggered
        result.total_failures += searches.failure_count

        for res in searches.results:
            server = self._describe(res)
            if res.success:
                if result.dry_run:
                    continue
                for item in res.items:
                    self.activity.item_searched(server, res.category, item)
                self.activity.search_triggered(server, res.category, res.count,
                                               result.is_manual)
            else:
                self.activity.search_failed(server, res.category, res.error)
                result.success = False
                result.errors.append(
                    f"server {res.server_name} search failed for {res.category}: {res.error}")

        if result.dry_run:
            self.log.info(f"Dry run would trigger {result.total_searches} searches "
                          f"({searches.missing_triggered} missing, "
                          f"{searches.cutoff_triggered} cutoff)")

    @staticmethod
    def _describe(res):
        """Minimal server-like view of a result for the activity log."""
        return _ServerRef(res.server_name, res.server_type)


class _ServerRef:
    __slots__ = ('name', 'kind')

    def __init__(self, name: str, kind: str):
        self.name = name
        self.kind = kind
