"""
Automation module - the engine that finds gaps and searches for them.

- Detector: queries every enabled server for missing and cutoff-unmet items
- SearchTrigger: distributes per-category limits and submits searches
- Automation: runs one detect-then-search cycle
- Scheduler: timer and manual trigger, one cycle at a time
"""

from .results import (
    DetectionResult, DetectionResults, TriggerResult, TriggerResults, CycleResult,
)
from .detector import Detector
from .distribution import allocate, distribute_round_robin
from .search_trigger import SearchTrigger, plan_submissions
from .automation import Automation
from .scheduler import Scheduler, SchedulerStatus
from .formatter import format_cycle_result, format_duration

__all__ = [
    'DetectionResult', 'DetectionResults', 'TriggerResult', 'TriggerResults', 'CycleResult',
    'Detector', 'allocate', 'distribute_round_robin', 'SearchTrigger', 'plan_submissions',
    'Automation', 'Scheduler', 'SchedulerStatus', 'format_cycle_result', 'format_duration',
]
