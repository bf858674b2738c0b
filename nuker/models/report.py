"""Run report model.

Aggregates scan results, evaluation defects and deletion outcomes for a single run.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .candidate import CleanupCandidate


class ExecutionMode(Enum):
    """Run execution mode."""

    DRY_RUN = "dry-run"
    APPLY = "apply"


class RunStatus(Enum):
    """Overall run status.

    State transitions:
        planned -> completed (no failures)
        planned -> partial (some scans or deletions failed)
        planned -> failed (every scan task failed)
    """

    PLANNED = "planned"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class OutcomeStatus(Enum):
    """Per-candidate execution outcome."""

    WOULD_DELETE = "would-delete"
    WOULD_STOP = "would-stop"
    DELETED = "deleted"
    STOPPED = "stopped"
    ALREADY_GONE = "already-gone"
    SKIPPED_WHITELISTED = "skipped-whitelisted"
    SKIPPED_STOPPED = "skipped-stopped"
    SKIPPED_BLOCKED = "skipped-blocked"
    FAILED = "failed"

    @property
    def is_success(self) -> bool:
        return self in (OutcomeStatus.DELETED, OutcomeStatus.STOPPED, OutcomeStatus.ALREADY_GONE)


_CLEAN_STATUSES = (
    OutcomeStatus.DELETED,
    OutcomeStatus.STOPPED,
    OutcomeStatus.WOULD_DELETE,
    OutcomeStatus.WOULD_STOP,
)


@dataclass
class DeletionOutcome:
    """Outcome of executing (or simulating) the cleanup of one candidate.

    Validation rules:
        - status=failed: requires error_code
        - status=skipped-blocked: requires reason
        - status=deleted/stopped/would-delete/would-stop: no error_code

    Attributes:
        region: AWS region
        resource_type: Resource type identifier
        resource_id: Resource identifier
        status: Outcome
        timestamp: When the outcome was recorded (UTC)
        tier: Deletion tier the resource was scheduled in
        error_code: Provider error code if failed
        reason: Human-readable reason (failure message, blocking resource, whitelist entry)
    """

    region: str
    resource_type: str
    resource_id: str
    status: OutcomeStatus
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tier: Optional[int] = None
    error_code: Optional[str] = None
    reason: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.region, self.resource_type, self.resource_id)

    @property
    def label(self) -> str:
        """Label shown to operators."""
        if self.status is OutcomeStatus.WOULD_DELETE:
            return "would delete"
        if self.status is OutcomeStatus.WOULD_STOP:
            return "would stop"
        if self.status is OutcomeStatus.DELETED:
            return "deleted"
        if self.status is OutcomeStatus.STOPPED:
            return "stopped"
        if self.status is OutcomeStatus.ALREADY_GONE:
            return "deleted (already gone)"
        if self.status is OutcomeStatus.SKIPPED_WHITELISTED:
            return "skipped (whitelisted)"
        if self.status is OutcomeStatus.SKIPPED_STOPPED:
            return "skipped (already stopped)"
        if self.status is OutcomeStatus.SKIPPED_BLOCKED:
            return "skipped (blocked by dependency)"
        return f"failed ({self.reason or self.error_code or 'unknown error'})"

    def validate(self) -> bool:
        """Validate outcome invariants.

        Returns:
            True if validation passes

        Raises:
            ValueError: If any validation rule fails
        """
        if self.status is OutcomeStatus.FAILED and not self.error_code:
            raise ValueError("Failed status requires error_code")
        if self.status is OutcomeStatus.SKIPPED_BLOCKED and not self.reason:
            raise ValueError("Blocked status requires reason")
        if self.status in _CLEAN_STATUSES and self.error_code:
            raise ValueError(f"{self.status.value} status cannot have an error code")
        return True


@dataclass(frozen=True)
class ScanFailure:
    """A (region, resource type) scan task that failed."""

    region: str
    resource_type: str
    message: str
    error_code: Optional[str] = None


@dataclass(frozen=True)
class EvaluationDefect:
    """A resource whose evaluation raised; it is excluded from the candidates."""

    region: str
    resource_type: str
    resource_id: str
    message: str


@dataclass
class RunReport:
    """Aggregated result of a run.

    Mutators take the report lock, which is the only synchronization point shared by
    concurrent tasks.

    Attributes:
        run_id: Unique run identifier
        mode: Execution mode of the run
        regions: Regions covered by the run
        started_at: Run start (UTC)
        completed_at: Run end (UTC), set by ``finish``
        tasks_total: Number of scan tasks spawned
        candidates: Every evaluated resource that matched at least one rule
        scan_failures: Failed scan tasks
        defects: Resources excluded because evaluation raised
        outcomes: Execution outcomes keyed by (region, type, id)
        cancelled: True if the run was cancelled before every task started
    """

    run_id: str
    mode: ExecutionMode = ExecutionMode.DRY_RUN
    regions: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    tasks_total: int = 0
    candidates: List[CleanupCandidate] = field(default_factory=list)
    scan_failures: List[ScanFailure] = field(default_factory=list)
    defects: List[EvaluationDefect] = field(default_factory=list)
    outcomes: Dict[Tuple[str, str, str], DeletionOutcome] = field(default_factory=dict)
    cancelled: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add_candidates(self, candidates: List[CleanupCandidate]) -> None:
        """Append marked candidates from one scan task. Unmarked ones are dropped."""
        with self._lock:
            self.candidates.extend(c for c in candidates if c.is_marked)

    def add_scan_failure(self, failure: ScanFailure) -> None:
        with self._lock:
            self.scan_failures.append(failure)

    def add_defect(self, defect: EvaluationDefect) -> None:
        with self._lock:
            self.defects.append(defect)

    def record_outcome(self, outcome: DeletionOutcome) -> None:
        with self._lock:
            self.outcomes[outcome.key] = outcome

    def finish(self) -> None:
        self.completed_at = datetime.now(timezone.utc)

    def actionable_candidates(self) -> List[CleanupCandidate]:
        """Marked, non-whitelisted candidates: the only input real deletion may see."""
        return [c for c in self.candidates if c.is_actionable]

    def whitelisted_candidates(self) -> List[CleanupCandidate]:
        return [c for c in self.candidates if c.whitelisted]

    def outcome_for(self, candidate: CleanupCandidate) -> Optional[DeletionOutcome]:
        return self.outcomes.get(candidate.key)

    def grouped(self) -> Dict[str, Dict[str, List[CleanupCandidate]]]:
        """Candidates grouped by region then type, sorted, independent of arrival order."""
        groups: Dict[str, Dict[str, List[CleanupCandidate]]] = defaultdict(lambda: defaultdict(list))
        for candidate in self.candidates:
            groups[candidate.resource.region][candidate.resource.type.value].append(candidate)

        return {
            region: {
                rtype: sorted(groups[region][rtype], key=lambda c: c.resource.id)
                for rtype in sorted(groups[region])
            }
            for region in sorted(groups)
        }

    def count_by_status(self) -> Dict[OutcomeStatus, int]:
        counts: Dict[OutcomeStatus, int] = {status: 0 for status in OutcomeStatus}
        for outcome in self.outcomes.values():
            counts[outcome.status] += 1
        return counts

    @property
    def is_total_failure(self) -> bool:
        """Every spawned scan task failed."""
        return self.tasks_total > 0 and len(self.scan_failures) >= self.tasks_total

    @property
    def status(self) -> RunStatus:
        if self.is_total_failure:
            return RunStatus.FAILED

        failed_outcomes = any(o.status is OutcomeStatus.FAILED for o in self.outcomes.values())
        if self.scan_failures or self.defects or failed_outcomes:
            return RunStatus.PARTIAL

        if self.completed_at is None:
            return RunStatus.PLANNED

        return RunStatus.COMPLETED
