"""
Configuration management for Janitarr.
Supports JSON file and environment variable configuration.
"""

import os
import json
import uuid
from pathlib import Path
from dataclasses import dataclass, field, asdict, replace
from typing import Dict, Any, List, Optional
import threading

from .errors import ConfigError, ConfigAccessError
from .models import (
    RADARR, SONARR, SERVER_KINDS,
    MISSING_MOVIES, MISSING_EPISODES, CUTOFF_MOVIES, CUTOFF_EPISODES,
)


@dataclass
class ServerInstance:
    """Configuration for a single Radarr/Sonarr instance."""
    name: str = ""
    kind: str = RADARR
    url: str = ""
    api_key: str = ""
    enabled: bool = True
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def is_valid(self) -> bool:
        return bool(self.url and self.api_key and self.enabled)

    def to_dict(self, redact: bool = False) -> Dict[str, Any]:
        data = asdict(self)
        if redact and self.api_key:
            data['api_key'] = '*' * 8 + self.api_key[-4:]
        return data


@dataclass
class ScheduleConfig:
    """Automation schedule."""
    enabled: bool = True
    interval_hours: int = 6


@dataclass
class SearchLimits:
    """
    Per-category caps on searches issued in one cycle.

    Each limit is shared by every server of the matching kind and split
    between them proportionally. A limit of 0 disables the category.
    """
    missing_movies_limit: int = 10
    missing_episodes_limit: int = 10
    cutoff_movies_limit: int = 5
    cutoff_episodes_limit: int = 5

    def limit_for(self, category: str) -> int:
        return {
            MISSING_MOVIES: self.missing_movies_limit,
            MISSING_EPISODES: self.missing_episodes_limit,
            CUTOFF_MOVIES: self.cutoff_movies_limit,
            CUTOFF_EPISODES: self.cutoff_episodes_limit,
        }[category]


@dataclass
class SearchConfig:
    """Submission pacing towards the remote services."""
    submission_delay_ms: int = 100     # Pause between consecutive search commands
    rate_limit_wait_seconds: int = 30  # Used when a 429 has no Retry-After
    rate_limit_max_wait_seconds: int = 300  # Upper bound on any 429 wait
    rate_limit_max_strikes: int = 3    # Consecutive 429s before a server is abandoned
    request_timeout_seconds: int = 15
    dry_run: bool = False              # Scheduled cycles only simulate


@dataclass
class LogsConfig:
    """Activity log settings."""
    retention_days: int = 30
    buffer_size: int = 2000


class Config:
    """Main configuration class."""

    def __init__(self, config_path: str = "/config/config.json"):
        self.config_path = Path(config_path)
        self.data_dir = str(self.config_path.parent)
        self._lock = threading.RLock()
        self._mtime: Optional[float] = None

        self.servers: List[ServerInstance] = []

        self.schedule = ScheduleConfig()
        self.search_limits = SearchLimits()
        self.search = SearchConfig()
        self.logs = LogsConfig()

        self.debug_mode = False

        # Load existing config or keep defaults
        self._load()
        self._apply_env_vars()

    def _load(self):
        """Load configuration from file."""
        if not self.config_path.exists():
            return
        try:
            self._read_file()
        except ConfigAccessError as e:
            print(f"Warning: Could not load config: {e}")

    def _read_file(self):
        """Read and apply the config file, raising ConfigAccessError on failure."""
        try:
            mtime = self.config_path.stat().st_mtime
            with open(self.config_path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigAccessError(f"cannot read {self.config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigAccessError(f"{self.config_path} does not contain a JSON object")
        snapshot = self.to_dict(redact=False)
        try:
            self._apply_dict(data)
            self.validate()
        except (TypeError, ValueError, ConfigError) as e:
            self._apply_dict(snapshot)
            raise ConfigAccessError(f"invalid configuration in {self.config_path}: {e}") from e
        self._mtime = mtime

    def _refresh(self):
        """Re-read the file if it changed on disk since the last read."""
        if not self.config_path.exists():
            return
        try:
            mtime = self.config_path.stat().st_mtime
        except OSError as e:
            raise ConfigAccessError(f"cannot stat {self.config_path}: {e}") from e
        if mtime != self._mtime:
            self._read_file()
            self._apply_env_vars()

    def _apply_dict(self, data: Dict[str, Any]):
        """Apply dictionary to configuration; nothing changes if any section is bad."""
        servers = self.servers
        if 'servers' in data:
            known_keys = {s.id: s.api_key for s in self.servers}
            servers = []
            for inst in data['servers']:
                server = ServerInstance(**inst)
                if server.kind not in SERVER_KINDS:
                    raise ConfigError(f"Unknown server kind: {server.kind}")
                # Redacted keys echoed back from the API keep the stored key
                if server.api_key.startswith('*' * 8) and server.id in known_keys:
                    server.api_key = known_keys[server.id]
                servers.append(server)

        schedule = ScheduleConfig(**data['schedule']) if 'schedule' in data else self.schedule
        limits = (SearchLimits(**data['search_limits'])
                  if 'search_limits' in data else self.search_limits)
        search = SearchConfig(**data['search']) if 'search' in data else self.search
        logs = LogsConfig(**data['logs']) if 'logs' in data else self.logs

        self.servers = servers
        self.schedule = schedule
        self.search_limits = limits
        self.search = search
        self.logs = logs
        self.debug_mode = data.get('debug_mode', self.debug_mode)

    def _apply_env_vars(self):
        """Apply environment variable overrides."""
        for kind, prefix in ((RADARR, 'RADARR'), (SONARR, 'SONARR')):
            url = os.environ.get(f'{prefix}_URL')
            key = os.environ.get(f'{prefix}_API_KEY')
            if url and key and not any(s.kind == kind for s in self.servers):
                self.servers.append(ServerInstance(
                    id=kind,
                    name=kind.capitalize(),
                    kind=kind,
                    url=url,
                    api_key=key,
                    enabled=True
                ))

        interval = os.environ.get('JANITARR_INTERVAL_HOURS')
        if interval:
            try:
                self.schedule.interval_hours = int(interval)
            except ValueError:
                print(f"Warning: ignoring JANITARR_INTERVAL_HOURS={interval!r}")

        if os.environ.get('JANITARR_DRY_RUN', '').lower() in ('1', 'true', 'yes'):
            self.search.dry_run = True

    def validate(self):
        """Raise ConfigError if values make automation impossible."""
        limits = asdict(self.search_limits)
        for name, value in limits.items():
            if not isinstance(value, int) or value < 0:
                raise ConfigError(f"{name} must be a non-negative integer")
        if self.schedule.interval_hours <= 0:
            raise ConfigError("interval_hours must be positive")
        if self.search.submission_delay_ms < 0 or self.search.rate_limit_wait_seconds < 0:
            raise ConfigError("search delays must not be negative")
        if self.search.rate_limit_max_wait_seconds <= 0:
            raise ConfigError("rate_limit_max_wait_seconds must be positive")
        if self.search.rate_limit_max_strikes < 1:
            raise ConfigError("rate_limit_max_strikes must be at least 1")

    def save(self):
        """Save configuration to file."""
        with self._lock:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

            with open(self.config_path, 'w') as f:
                json.dump(self.to_dict(redact=False), f, indent=2)
            self._mtime = self.config_path.stat().st_mtime

    def update(self, data: Dict[str, Any]):
        """Update configuration from dictionary."""
        with self._lock:
            snapshot = self.to_dict(redact=False)
            try:
                self._apply_dict(data)
                self.validate()
            except (TypeError, ValueError, ConfigError) as e:
                self._apply_dict(snapshot)
                if isinstance(e, ConfigError):
                    raise
                raise ConfigError(str(e)) from e
        self.save()

    # ==================== Servers ====================

    def list_enabled_servers(self) -> List[ServerInstance]:
        """Snapshot of enabled, usable servers in configured order."""
        with self._lock:
            self._refresh()
            return [replace(s) for s in self.servers if s.is_valid()]

    def list_servers(self) -> List[ServerInstance]:
        with self._lock:
            self._refresh()
            return [replace(s) for s in self.servers]

    def get_server(self, id_or_name: str) -> Optional[ServerInstance]:
        """Find a server by id, or by case-insensitive name."""
        with self._lock:
            self._refresh()
            for s in self.servers:
                if s.id == id_or_name:
                    return replace(s)
            for s in self.servers:
                if s.name.lower() == id_or_name.lower():
                    return replace(s)
        return None

    def add_server(self, name: str, kind: str, url: str, api_key: str,
                   enabled: bool = True) -> ServerInstance:
        """Add a server and persist the configuration."""
        if kind not in SERVER_KINDS:
            raise ConfigError(f"Unknown server kind: {kind}")
        with self._lock:
            if any(s.name.lower() == name.lower() for s in self.servers):
                raise ConfigError(f"A server named '{name}' already exists")
            server = ServerInstance(name=name, kind=kind, url=url,
                                    api_key=api_key, enabled=enabled)
            self.servers.append(server)
        self.save()
        return replace(server)

    def remove_server(self, server_id: str) -> bool:
        with self._lock:
            before = len(self.servers)
            self.servers = [s for s in self.servers if s.id != server_id]
            removed = len(self.servers) != before
        if removed:
            self.save()
        return removed

    # ==================== Limits ====================

    def get_search_limits(self) -> SearchLimits:
        """Snapshot of the configured per-category limits."""
        with self._lock:
            self._refresh()
            return replace(self.search_limits)

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """Convert configuration to dictionary (for API and persistence)."""
        with self._lock:
            return {
                'servers': [s.to_dict(redact=redact) for s in self.servers],
                'schedule': asdict(self.schedule),
                'search_limits': asdict(self.search_limits),
                'search': asdict(self.search),
                'logs': asdict(self.logs),
                'debug_mode': self.debug_mode,
            }
