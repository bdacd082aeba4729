"""
Result types produced by one automation cycle.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional

from ..config import ServerInstance
from ..models import MediaItem, MISSING, CUTOFF, reason_of


@dataclass(frozen=True)
class DetectionResult:
    """What one server reported during detection."""
    server_id: str
    server_name: str
    server_type: str
    missing: List[MediaItem] = field(default_factory=list)
    cutoff: List[MediaItem] = field(default_factory=list)
    error: Optional[str] = None
    # Snapshot of the server as configured when detection ran
    server: Optional[ServerInstance] = field(default=None, compare=False, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'server_id': self.server_id,
            'server_name': self.server_name,
            'server_type': self.server_type,
            'missing': [i.id for i in self.missing],
            'cutoff': [i.id for i in self.cutoff],
            'missing_count': len(self.missing),
            'cutoff_count': len(self.cutoff),
            'error': self.error,
        }


@dataclass
class DetectionResults:
    """All per-server detection results for one cycle, in server order."""
    results: List[DetectionResult] = field(default_factory=list)

    @property
    def total_missing(self) -> int:
        return sum(len(r.missing) for r in self.results if r.ok)

    @property
    def total_cutoff(self) -> int:
        return sum(len(r.cutoff) for r in self.results if r.ok)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'results': [r.to_dict() for r in self.results],
            'total_missing': self.total_missing,
            'total_cutoff': self.total_cutoff,
            'success_count': self.success_count,
            'failure_count': self.failure_count,
        }


@dataclass
class TriggerResult:
    """Outcome of the search submission for one (server, category) pair."""
    server_id: str
    server_name: str
    server_type: str
    category: str
    items: List[MediaItem] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None

    @property
    def item_ids(self) -> List[int]:
        return [i.id for i in self.items]

    @property
    def count(self) -> int:
        return len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'server_id': self.server_id,
            'server_name': self.server_name,
            'server_type': self.server_type,
            'category': self.category,
            'item_ids': self.item_ids,
            'count': self.count,
            'success': self.success,
            'error': self.error,
        }


@dataclass
class TriggerResults:
    """Aggregate of every submission made (or simulated) in one cycle."""
    results: List[TriggerResult] = field(default_factory=list)
    dry_run: bool = False

    def _triggered(self, reason: str) -> int:
        return sum(r.count for r in self.results
                   if r.success and reason_of(r.category) == reason)

    @property
    def missing_triggered(self) -> int:
        return self._triggered(MISSING)

    @property
    def cutoff_triggered(self) -> int:
        return self._triggered(CUTOFF)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'results': [r.to_dict() for r in self.results],
            'missing_triggered': self.missing_triggered,
            'cutoff_triggered': self.cutoff_triggered,
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'dry_run': self.dry_run,
        }


@dataclass
class CycleResult:
    """Full outcome of one automation cycle."""
    success: bool = True
    is_manual: bool = False
    dry_run: bool = False
    aborted: bool = False
    total_searches: int = 0
    total_failures: int = 0
    errors: List[str] = field(default_factory=list)
    duration: float = 0.0  # seconds
    started_at: datetime = field(default_factory=datetime.utcnow)
    detection_results: DetectionResults = field(default_factory=DetectionResults)
    search_results: TriggerResults = field(default_factory=TriggerResults)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'is_manual': self.is_manual,
            'dry_run': self.dry_run,
            'aborted': self.aborted,
            'total_searches': self.total_searches,
            'total_failures': self.total_failures,
            'errors': list(self.errors),
            'duration': round(self.duration, 3),
            'started_at': self.started_at.isoformat(),
            'detection_results': self.detection_results.to_dict(),
            'search_results': self.search_results.to_dict(),
        }
