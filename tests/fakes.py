"""
In-memory stand-ins for the remote clients, the clock and the timer.
Engine tests use these so nothing touches the network or sleeps.
"""

import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from janitarr.models import MediaItem


def movies(*ids: int) -> List[MediaItem]:
    return [MediaItem(id=i, title=f"Movie {i}", kind='movie', year=2020) for i in ids]


def episodes(*ids: int) -> List[MediaItem]:
    return [MediaItem(id=i, title=f"Show - S01E{i % 100:02d} - Episode {i}", kind='episode',
                      series_title='Show', season_number=1, episode_number=i % 100)
            for i in ids]


class FakeClient:
    """Scripted Radarr/Sonarr client."""

    def __init__(self, missing: Optional[List[MediaItem]] = None,
                 cutoff: Optional[List[MediaItem]] = None):
        self.missing = list(missing or [])
        self.cutoff = list(cutoff or [])
        self.missing_error: Optional[Exception] = None
        self.cutoff_error: Optional[Exception] = None
        # Raised (in order) by successive trigger_search calls; None means success
        self.search_errors: List[Optional[Exception]] = []
        self.searches: List[List[int]] = []
        self.attempts = 0
        self.on_search = None

    def get_all_missing(self) -> List[MediaItem]:
        if self.missing_error:
            raise self.missing_error
        return list(self.missing)

    def get_all_cutoff_unmet(self) -> List[MediaItem]:
        if self.cutoff_error:
            raise self.cutoff_error
        return list(self.cutoff)

    def trigger_search(self, item_ids: List[int]) -> Dict:
        self.attempts += 1
        if self.on_search:
            self.on_search(item_ids)
        if self.search_errors:
            error = self.search_errors.pop(0)
            if error is not None:
                raise error
        self.searches.append(list(item_ids))
        return {'id': self.attempts, 'status': 'queued'}

    def test_connection(self) -> Dict:
        return {'success': True, 'message': 'Connected', 'version': '5.0.0.0', 'app_name': 'Fake'}


class FakeFleet:
    """Maps server names to FakeClients; use .factory as the client factory."""

    def __init__(self):
        self.clients: Dict[str, FakeClient] = {}
        self.created: List[str] = []

    def add(self, name: str, client: FakeClient) -> FakeClient:
        self.clients[name] = client
        return client

    def factory(self, server) -> FakeClient:
        self.created.append(server.name)
        return self.clients[server.name]

    @property
    def total_attempts(self) -> int:
        return sum(c.attempts for c in self.clients.values())


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class ManualTimer:
    """threading.Timer look-alike that only fires when told to."""

    def __init__(self, interval: float, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    @property
    def armed(self) -> bool:
        return self.started and not self.cancelled and not self.fired


class ManualTimerFactory:
    def __init__(self):
        self.timers: List[ManualTimer] = []

    def __call__(self, interval: float, function) -> ManualTimer:
        timer = ManualTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def armed(self) -> List[ManualTimer]:
        return [t for t in self.timers if t.armed]

    def fire(self):
        """Fire the currently armed timer."""
        armed = self.armed
        assert len(armed) == 1, f"expected one armed timer, found {len(armed)}"
        armed[0].fired = True
        armed[0].function()


class RecordingSink:
    """ActivityLog stand-in that keeps the observations it receives."""

    def __init__(self):
        self.events: List[tuple] = []
        self._lock = threading.Lock()

    def _record(self, *event):
        with self._lock:
            self.events.append(event)

    def names(self) -> List[str]:
        return [e[0] for e in self.events]

    def cycle_start(self, is_manual):
        self._record('cycle_start', is_manual)

    def cycle_end(self, duration, total_searches, total_failures, is_manual):
        self._record('cycle_end', total_searches, total_failures, is_manual)

    def cycle_aborted(self, is_manual):
        self._record('cycle_aborted', is_manual)

    def detection_complete(self, server, missing, cutoff):
        self._record('detection_complete', server.name, missing, cutoff)

    def detection_failed(self, server, reason):
        self._record('detection_failed', server.name, reason)

    def search_triggered(self, server, category, count, is_manual):
        self._record('search_triggered', server.name, category, count)

    def item_searched(self, server, category, item):
        self._record('item_searched', server.name, category, item.id)

    def search_failed(self, server, category, reason):
        self._record('search_failed', server.name, category, reason)

    def rate_limited(self, server, retry_after):
        self._record('rate_limited', server.name, retry_after)
