"""Cleanup engine: orchestration, tier-ordered deletion and reporting.

This package provides:
- Orchestrator: concurrent scan-and-evaluate across regions and resource types
- CleanupExecutor: dry-run or tier-ordered deletion of candidates
- ReportRenderer: Rich tables and YAML/JSON export of run reports
"""

from .executor import CleanupExecutor
from .orchestrator import Orchestrator, ScanTask, filter_resource_types
from .reporter import ReportRenderer
from .tiers import DELETION_TIERS, group_by_tier, tier_of

__all__ = [
    "CleanupExecutor",
    "DELETION_TIERS",
    "Orchestrator",
    "ReportRenderer",
    "ScanTask",
    "filter_resource_types",
    "group_by_tier",
    "tier_of",
]
