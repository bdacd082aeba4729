"""
Logging system for Janitarr.
Supports file output, console, an in-memory buffer for the API, and the
activity log that records what each automation cycle did.
"""

import json
import logging
import sys
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Dict, Optional, Callable, Any
from collections import deque
from dataclasses import dataclass, field, asdict
import threading


class MemoryHandler(logging.Handler):
    """Handler that stores log records in memory for API access."""

    def __init__(self, capacity: int = 1000):
        super().__init__()
        self.capacity = capacity
        self.buffer = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def emit(self, record: logging.LogRecord):
        with self._lock:
            self.buffer.append({
                'timestamp': datetime.fromtimestamp(record.created).isoformat(),
                'level': record.levelname,
                'logger': record.name,
                'message': self.format(record),
            })

    def get_logs(self, level: Optional[str] = None, limit: int = 100) -> List[Dict]:
        """Get recent log entries, optionally filtered by level."""
        with self._lock:
            logs = list(self.buffer)

        if level:
            logs = [l for l in logs if l['level'] == level.upper()]

        return logs[-limit:]

    def clear(self):
        """Clear the log buffer."""
        with self._lock:
            self.buffer.clear()


class ColorFormatter(logging.Formatter):
    """Colored formatter for console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so file and memory handlers see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname:8}{self.RESET}"
        return super().format(record)


class Logger:
    """Centralized logging manager."""

    _instance = None
    _memory_handler = None

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, log_dir: Optional[str] = "/config/logs", debug: bool = False,
                 console: bool = True):
        if hasattr(self, '_initialized'):
            return
        self._initialized = True
        self.debug = debug
        self.handlers: List[logging.Handler] = []

        fmt = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
        datefmt = '%Y-%m-%d %H:%M:%S'
        level = logging.DEBUG if debug else logging.INFO

        # Memory handler for the API
        Logger._memory_handler = MemoryHandler(capacity=2000)
        Logger._memory_handler.setFormatter(logging.Formatter('%(message)s'))
        Logger._memory_handler.setLevel(level)
        self.handlers.append(Logger._memory_handler)

        if console:
            stream = logging.StreamHandler(sys.stdout)
            stream.setLevel(level)
            stream.setFormatter(ColorFormatter(fmt, datefmt=datefmt))
            self.handlers.append(stream)

        if log_dir:
            self.log_dir = Path(log_dir)
            self.log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.log_dir / "janitarr.log")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
            self.handlers.append(file_handler)

        root = logging.getLogger('janitarr')
        root.setLevel(logging.DEBUG if debug else logging.INFO)
        for handler in self.handlers:
            root.addHandler(handler)

    def get_logger(self, name: str) -> logging.Logger:
        """Get a named logger."""
        return logging.getLogger(f"janitarr.{name}")

    @classmethod
    def reset(cls):
        """Detach handlers and forget the singleton (used by tests and re-init)."""
        if cls._instance is not None:
            root = logging.getLogger('janitarr')
            for handler in getattr(cls._instance, 'handlers', []):
                root.removeHandler(handler)
                handler.close()
        cls._instance = None
        cls._memory_handler = None

    @classmethod
    def get_logs(cls, level: Optional[str] = None, limit: int = 100) -> List[Dict]:
        """Get logs from memory buffer."""
        if cls._memory_handler:
            return cls._memory_handler.get_logs(level, limit)
        return []

    @classmethod
    def clear_logs(cls):
        """Clear the log buffer."""
        if cls._memory_handler:
            cls._memory_handler.clear()


# ==================== Activity log ====================

CYCLE_START = 'cycle_start'
CYCLE_END = 'cycle_end'
DETECTION = 'detection'
SEARCH = 'search'
ERROR = 'error'
RATE_LIMITED = 'rate_limited'


@dataclass
class LogEntry:
    """One activity log entry."""
    type: str
    message: str
    server_name: str = ""
    server_type: str = ""
    category: str = ""
    count: int = 0
    is_manual: bool = False
    timestamp: datetime = field(default_factory=datetime.utcnow)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LogEntry':
        data = dict(data)
        if data.get('timestamp'):
            data['timestamp'] = datetime.fromisoformat(data['timestamp'])
        return cls(**data)


class ActivityLog:
    """
    Observation sink for the automation engine.

    Every observation becomes a LogEntry that is written to the
    'janitarr.activity' logger, kept in a bounded buffer for the API,
    pushed to subscribers and, when a path is given, saved to disk.
    """

    def __init__(self, logger: Logger, capacity: int = 2000,
                 path: Optional[str] = None):
        self.log = logger.get_logger('activity')
        self.path = Path(path) if path else None
        self._entries = deque(maxlen=capacity)
        self._subscribers: List[Callable[[LogEntry], None]] = []
        self._lock = threading.Lock()
        self._load()

    def _load(self):
        """Load persisted entries from disk."""
        if not self.path or not self.path.exists():
            return
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            for raw in data.get('entries', []):
                self._entries.append(LogEntry.from_dict(raw))
            self.log.debug(f"Loaded {len(self._entries)} activity entries")
        except (OSError, ValueError, TypeError) as e:
            self.log.warning(f"Could not load activity log: {e}")

    def _save(self):
        """Save entries to disk. Caller holds the lock."""
        if not self.path:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump({'entries': [e.to_dict() for e in self._entries]}, f)
        except OSError as e:
            self.log.warning(f"Could not save activity log: {e}")

    def subscribe(self, callback: Callable[[LogEntry], None]):
        """Receive every new entry (console, web socket, tests...)."""
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[LogEntry], None]):
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def add(self, entry: LogEntry, level: int = logging.INFO) -> LogEntry:
        """Record an entry and fan it out."""
        self.log.log(level, entry.message)
        with self._lock:
            self._entries.append(entry)
            self._save()
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(entry)
            except Exception as e:
                self.log.warning(f"Activity subscriber failed: {e}")
        return entry

    # ---------- observations ----------

    def cycle_start(self, is_manual: bool) -> LogEntry:
        kind = 'Manual' if is_manual else 'Scheduled'
        return self.add(LogEntry(CYCLE_START, f"{kind} automation cycle started",
                                 is_manual=is_manual))

    def cycle_end(self, duration: float, total_searches: int, total_failures: int,
                  is_manual: bool) -> LogEntry:
        message = (f"Cycle completed in {duration:.1f}s: {total_searches} searches triggered, "
                   f"{total_failures} failures")
        return self.add(LogEntry(CYCLE_END, message, count=total_searches,
                                 is_manual=is_manual))

    def cycle_aborted(self, is_manual: bool) -> LogEntry:
        return self.add(LogEntry(CYCLE_END, "Cycle aborted before completion",
                                 is_manual=is_manual))

    def detection_complete(self, server, missing: int, cutoff: int) -> LogEntry:
        message = f"{server.name}: {missing} missing, {cutoff} below cutoff"
        return self.add(LogEntry(DETECTION, message, server_name=server.name,
                                 server_type=server.kind, count=missing + cutoff),
                        level=logging.DEBUG)

    def detection_failed(self, server, reason: str) -> LogEntry:
        return self.add(LogEntry(ERROR, f"{server.name}: detection failed: {reason}",
                                 server_name=server.name, server_type=server.kind),
                        level=logging.ERROR)

    def search_triggered(self, server, category: str, count: int,
                         is_manual: bool) -> LogEntry:
        message = f"{server.name}: triggered {count} {category.replace('-', ' ')} searches"
        return self.add(LogEntry(SEARCH, message, server_name=server.name,
                                 server_type=server.kind, category=category,
                                 count=count, is_manual=is_manual))

    def item_searched(self, server, category: str, item) -> LogEntry:
        profile = f" [{item.quality_profile}]" if item.quality_profile else ""
        year = f" ({item.year})" if item.year else ""
        message = f"{server.name}: searching {item.title}{year}{profile}"
        return self.add(LogEntry(SEARCH, message, server_name=server.name,
                                 server_type=server.kind, category=category, count=1),
                        level=logging.DEBUG)

    def search_failed(self, server, category: str, reason: str) -> LogEntry:
        message = f"{server.name}: {category.replace('-', ' ')} search failed: {reason}"
        return self.add(LogEntry(ERROR, message, server_name=server.name,
                                 server_type=server.kind, category=category),
                        level=logging.ERROR)

    def rate_limited(self, server, retry_after: float) -> LogEntry:
        message = f"{server.name}: rate limited, retrying in {retry_after:g}s"
        return self.add(LogEntry(RATE_LIMITED, message, server_name=server.name,
                                 server_type=server.kind),
                        level=logging.WARNING)

    # ---------- queries ----------

    def get_entries(self, limit: int = 100, entry_type: Optional[str] = None,
                    server_name: Optional[str] = None) -> List[LogEntry]:
        """Newest-first entries, optionally filtered."""
        with self._lock:
            entries = list(self._entries)
        entries.reverse()
        if entry_type:
            entries = [e for e in entries if e.type == entry_type]
        if server_name:
            entries = [e for e in entries if e.server_name == server_name]
        return entries[:limit]

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._save()

    def purge_older_than(self, days: int) -> int:
        """Drop entries older than the retention window. Returns removed count."""
        cutoff = datetime.utcnow() - timedelta(days=days)
        with self._lock:
            kept = [e for e in self._entries if e.timestamp >= cutoff]
            removed = len(self._entries) - len(kept)
            if removed:
                self._entries.clear()
                self._entries.extend(kept)
                self._save()
        if removed:
            self.log.info(f"Purged {removed} activity entries older than {days} days")
        return removed
