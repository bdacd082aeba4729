"""
Search trigger for Janitarr.
Turns detection output into bounded, batched search commands with
proportional distribution, pacing between calls and 429 handling.
"""

import math
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ..clients import APIError, RateLimitedError, create_client
from ..config import Config, SearchConfig, SearchLimits, ServerInstance
from ..errors import CycleCancelled, InvalidLimitsError
from ..models import (
    MediaItem, CATEGORIES, MISSING, CUTOFF, RADARR, SONARR, category_for,
)
from .distribution import allocate
from .results import DetectionResults, TriggerResult, TriggerResults


# Category -> (server kind, DetectionResult attribute)
CATEGORY_SOURCES = {
    category_for(kind, reason): (kind, reason)
    for kind in (RADARR, SONARR)
    for reason in (MISSING, CUTOFF)
}


@dataclass
class Submission:
    """One batched search command waiting to be sent."""
    server: ServerInstance
    category: str
    items: List[MediaItem] = field(default_factory=list)


@dataclass
class RateLimitTracker:
    """Per-server consecutive 429 counters for a single cycle."""
    max_strikes: int = 3
    strikes: Dict[str, int] = field(default_factory=dict)

    def record(self, server_id: str) -> int:
        self.strikes[server_id] = self.strikes.get(server_id, 0) + 1
        return self.strikes[server_id]

    def reset(self, server_id: str):
        self.strikes[server_id] = 0

    def exhausted(self, server_id: str) -> bool:
        return self.strikes.get(server_id, 0) >= self.max_strikes


def rate_limit_delay(retry_after: Optional[float], tuning: SearchConfig) -> float:
    """Seconds to wait after a 429: the server's hint or the default, capped."""
    delay = retry_after if retry_after is not None else tuning.rate_limit_wait_seconds
    if not math.isfinite(delay):
        delay = tuning.rate_limit_max_wait_seconds
    return min(max(delay, 0.0), tuning.rate_limit_max_wait_seconds, threading.TIMEOUT_MAX)


def plan_submissions(detection: DetectionResults, limits: SearchLimits,
                     servers: Dict[str, ServerInstance]) -> List[Submission]:
    """
    Work out which items every server searches, per category.

    Pure function of its inputs: dry-run and live cycles share it. Servers
    that failed detection are skipped. Result order is server order, and
    within a server: missing movies/episodes, then cutoff.
    """
    planned: Dict[Tuple[str, str], Submission] = {}

    for category in CATEGORIES:
        limit = limits.limit_for(category)
        if limit < 0:
            raise InvalidLimitsError(f"{category} limit must not be negative (got {limit})")
        kind, reason = CATEGORY_SOURCES[category]

        candidates = [
            r for r in detection.results
            if r.ok and r.server_type == kind and r.server_id in servers
        ]
        pools = [list(getattr(r, reason)) for r in candidates]
        counts = allocate([len(p) for p in pools], limit)

        for result, pool, count in zip(candidates, pools, counts):
            if count > 0:
                planned[(result.server_id, category)] = Submission(
                    server=servers[result.server_id],
                    category=category,
                    items=pool[:count],
                )

    ordered = []
    for result in detection.results:
        for reason in (MISSING, CUTOFF):
            key = (result.server_id, category_for(result.server_type, reason))
            if key in planned:
                ordered.append(planned[key])
    return ordered


class SearchTrigger:
    """Issues (or simulates) the searches a cycle is allowed to make."""

    def __init__(self, config: Config, client_factory: Optional[Callable] = None,
                 activity=None, sleep: Optional[Callable[[float, threading.Event], bool]] = None):
        self.config = config
        self.client_factory = client_factory or self._default_factory
        self.activity = activity
        # sleep(seconds, cancel_event) -> True when cancelled while waiting
        self._sleep = sleep or (lambda seconds, event: event.wait(seconds))

    def _default_factory(self, server: ServerInstance):
        return create_client(server, timeout=self.config.search.request_timeout_seconds)

    def trigger(self, detection: DetectionResults, limits: SearchLimits,
                dry_run: bool = False,
                cancel_event: Optional[threading.Event] = None) -> TriggerResults:
        """
        Allocate and submit searches.

        Submission failures are recorded per (server, category) in the
        returned TriggerResults. Raises InvalidLimitsError for negative
        limits and CycleCancelled when cancel_event is set.
        """
        cancel_event = cancel_event or threading.Event()
        servers = {
            r.server_id: self._server_for(r)
            for r in detection.results
        }
        plan = plan_submissions(detection, limits, servers)
        results = TriggerResults(dry_run=dry_run)

        if dry_run:
            for submission in plan:
                results.results.append(self._result(submission))
            return results

        tuning = self.config.search
        tracker = RateLimitTracker(max_strikes=tuning.rate_limit_max_strikes)
        clients: Dict[str, object] = {}
        first_call = True

        for submission in plan:
            server = submission.server
            if cancel_event.is_set():
                raise CycleCancelled("search submission cancelled")

            if tracker.exhausted(server.id):
                results.results.append(self._result(
                    submission, error="skipped: server kept rate limiting this cycle"))
                continue

            if not first_call:
                self._wait(tuning.submission_delay_ms / 1000.0, cancel_event)
            first_call = False

            if server.id not in clients:
                clients[server.id] = self.client_factory(server)
            error = self._submit(clients[server.id], submission, tracker, tuning, cancel_event)
            results.results.append(self._result(submission, error=error))

        return results

    def _submit(self, client, submission: Submission, tracker: RateLimitTracker,
                tuning: SearchConfig, cancel_event: threading.Event) -> Optional[str]:
        """Send one batched command, retrying after 429s. Returns an error or None."""
        server = submission.server
        ids = [item.id for item in submission.items]

        while True:
            try:
                client.trigger_search(ids)
            except RateLimitedError as e:
                strikes = tracker.record(server.id)
                delay = rate_limit_delay(e.retry_after, tuning)
                if self.activity is not None:
                    self.activity.rate_limited(server, delay)
                if strikes >= tracker.max_strikes:
                    return f"rate limited {strikes} times in a row, giving up for this cycle"
                self._wait(delay, cancel_event)
                continue
            except APIError as e:
                return str(e)
            except Exception as e:
                return f"{type(e).__name__}: {e}"
            tracker.reset(server.id)
            return None

    def _wait(self, seconds: float, cancel_event: threading.Event):
        if seconds > 0 and self._sleep(seconds, cancel_event):
            raise CycleCancelled("cancelled while waiting to submit")
        if cancel_event.is_set():
            raise CycleCancelled("search submission cancelled")

    def _server_for(self, result) -> ServerInstance:
        """Server snapshot taken at detection time, falling back to the config."""
        if result.server is not None:
            return result.server
        server = self.config.get_server(result.server_id)
        if server is not None:
            return server
        return ServerInstance(id=result.server_id, name=result.server_name,
                              kind=result.server_type, url='', api_key='')

    @staticmethod
    def _result(submission: Submission, error: Optional[str] = None) -> TriggerResult:
        server = submission.server
        return TriggerResult(
            server_id=server.id,
            server_name=server.name,
            server_type=server.kind,
            category=submission.category,
            items=list(submission.items),
            success=error is None,
            error=error,
        )
