"""
Detector for Janitarr.
Queries every enabled Radarr/Sonarr instance in parallel for missing and
cutoff-unmet items. One unreachable server never blocks the others.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_COMPLETED
from typing import Callable, List, Optional

from ..clients import APIError, create_client
from ..config import Config, ServerInstance
from ..errors import ConfigAccessError, CycleCancelled
from .results import DetectionResult, DetectionResults


ClientFactory = Callable[[ServerInstance], object]

POLL_SECONDS = 0.2


class Detector:
    """Finds content gaps across all enabled servers."""

    def __init__(self, config: Config, client_factory: Optional[ClientFactory] = None,
                 max_workers: int = 8):
        self.config = config
        self.client_factory = client_factory or self._default_factory
        self.max_workers = max_workers

    def _default_factory(self, server: ServerInstance):
        return create_client(server, timeout=self.config.search.request_timeout_seconds)

    def detect_all(self, cancel_event: Optional[threading.Event] = None) -> DetectionResults:
        """
        Run detection on every enabled server concurrently.

        Raises ConfigAccessError when the server list cannot be read and
        CycleCancelled when cancel_event is set before all servers answer.
        Per-server failures are reported in the matching DetectionResult.
        """
        servers = self._read_servers()
        return self._detect_servers(servers, cancel_event)

    def detect_by_kind(self, kind: str,
                       cancel_event: Optional[threading.Event] = None) -> DetectionResults:
        """Run detection on enabled servers of one kind (radarr/sonarr)."""
        servers = [s for s in self._read_servers() if s.kind == kind]
        return self._detect_servers(servers, cancel_event)

    def detect_server(self, id_or_name: str) -> DetectionResult:
        """Run detection on a single configured server."""
        server = self.config.get_server(id_or_name)
        if server is None:
            raise LookupError(f"Server not found: {id_or_name}")
        return self._detect_one(server)

    def _read_servers(self) -> List[ServerInstance]:
        try:
            return self.config.list_enabled_servers()
        except OSError as e:
            raise ConfigAccessError(f"getting servers: {e}") from e

    def _detect_servers(self, servers: List[ServerInstance],
                        cancel_event: Optional[threading.Event]) -> DetectionResults:
        if not servers:
            return DetectionResults()
        if cancel_event is not None and cancel_event.is_set():
            raise CycleCancelled()

        # Each worker writes into its own slot so order follows the server list
        slots: List[Optional[DetectionResult]] = [None] * len(servers)

        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(servers)),
                                      thread_name_prefix='detector')
        try:
            futures = {
                executor.submit(self._detect_one, server): index
                for index, server in enumerate(servers)
            }
            pending = set(futures)
            while pending:
                done, pending = wait(pending, timeout=POLL_SECONDS,
                                     return_when=FIRST_COMPLETED)
                for future in done:
                    slots[futures[future]] = future.result()
                if pending and cancel_event is not None and cancel_event.is_set():
                    for future in pending:
                        future.cancel()
                    raise CycleCancelled("detection cancelled")
        finally:
            executor.shutdown(wait=False)

        return DetectionResults(results=list(slots))

    def _detect_one(self, server: ServerInstance) -> DetectionResult:
        """Fetch both lists for one server; remote failures land in .error."""
        stage = 'missing'
        try:
            client = self.client_factory(server)
            missing = list(client.get_all_missing())
            stage = 'cutoff'
            cutoff = list(client.get_all_cutoff_unmet())
        except APIError as e:
            return self._failed(server, f"{stage} detection failed: {e}")
        except Exception as e:
            # Unexpected client bug: still isolate it to this server
            return self._failed(server, f"{stage} detection failed: {type(e).__name__}: {e}")

        return DetectionResult(
            server_id=server.id,
            server_name=server.name,
            server_type=server.kind,
            missing=missing,
            cutoff=cutoff,
            server=server,
        )

    def _failed(self, server: ServerInstance, error: str) -> DetectionResult:
        return DetectionResult(
            server_id=server.id,
            server_name=server.name,
            server_type=server.kind,
            error=error,
            server=server,
        )
