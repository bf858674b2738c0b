"""Concurrent scan-and-evaluate fan-out across regions and resource types."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Optional, Type

from ..aws.client import ClientContext
from ..errors import EvaluationError, ScanError
from ..models.candidate import CleanupCandidate
from ..models.policy import Policy
from ..models.report import EvaluationDefect, RunReport, ScanFailure
from ..models.resource import ResourceState, ResourceType
from ..rules.evaluator import RuleEvaluator
from ..rules.idle import IdleDetector
from ..scanners.base import BaseResourceScanner
from ..scanners.registry import SCANNER_REGISTRY

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 16

# Idle checks only make sense for resources that could be doing work
IDLE_CHECK_STATES = {ResourceState.RUNNING, ResourceState.AVAILABLE, ResourceState.IN_USE}


@dataclass(frozen=True)
class ScanTask:
    """One unit of work: scan and evaluate a resource type in a region."""

    region: str
    resource_type: ResourceType
    policy: Policy


@dataclass
class TaskResult:
    """Value produced by a task and merged into the report by the collector."""

    task: ScanTask
    candidates: List[CleanupCandidate] = field(default_factory=list)
    defects: List[EvaluationDefect] = field(default_factory=list)
    failure: Optional[ScanFailure] = None
    scanned: int = 0


def filter_resource_types(
    resource_types: Iterable[ResourceType],
    targets: Iterable[ResourceType] = (),
    excludes: Iterable[ResourceType] = (),
) -> List[ResourceType]:
    """Apply ``--target`` / ``--exclude`` filters, keeping the input order."""
    targets = set(targets)
    excludes = set(excludes)
    return [t for t in resource_types if (not targets or t in targets) and t not in excludes]


class Orchestrator:
    """Runs one scan-then-evaluate task per (region, resource type).

    Tasks run on a bounded thread pool; AWS request rates are bounded separately by the
    context's per-service rate limiters. Only the collecting thread touches the report.

    Attributes:
        context: Shared AWS access for the run
        max_workers: Thread pool size
        registry: Scanner lookup by resource type
        now: Reference time for every evaluation of the run
    """

    def __init__(
        self,
        context: ClientContext,
        max_workers: int = DEFAULT_MAX_WORKERS,
        registry: Optional[Mapping[ResourceType, Type[BaseResourceScanner]]] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self.context = context
        self.max_workers = max_workers
        self.registry = SCANNER_REGISTRY if registry is None else registry
        self.now = now or datetime.now(timezone.utc)
        self.evaluator = RuleEvaluator(now=self.now, registry=self.registry)

    @property
    def cancel_event(self):
        return self.context.cancel_event

    def cancel(self) -> None:
        """Stop starting new tasks. Running tasks finish their current call."""
        self.cancel_event.set()

    def plan_tasks(
        self,
        policies: Mapping[ResourceType, Policy],
        regions: Iterable[str],
        targets: Iterable[ResourceType] = (),
        excludes: Iterable[ResourceType] = (),
    ) -> List[ScanTask]:
        """Build the task list. No AWS calls are made.

        Args:
            policies: Policy per resource type
            regions: Regions of the run
            targets: Only scan these types (empty = all)
            excludes: Never scan these types

        Returns:
            Tasks ordered by region then type
        """
        regions = list(dict.fromkeys(regions))
        tasks = []
        for resource_type in filter_resource_types(sorted(policies, key=lambda t: t.value), targets, excludes):
            policy = policies[resource_type]
            if not policy.enabled:
                logger.debug(f"Policy for {resource_type.value} is disabled")
                continue
            if resource_type not in self.registry:
                logger.warning(f"No scanner registered for {resource_type.value}, skipping")
                continue
            for region in regions:
                if policy.applies_to_region(region):
                    tasks.append(ScanTask(region=region, resource_type=resource_type, policy=policy))

        return sorted(tasks, key=lambda t: (t.region, t.resource_type.value))

    def run_task(self, task: ScanTask) -> TaskResult:
        """Scan one (region, type) pair and evaluate every resource found.

        Raises:
            ScanError: If listing fails
        """
        scanner = self.registry[task.resource_type](self.context, task.region)
        resources = scanner.scan(task.policy)
        detector = IdleDetector(self.context, task.region) if task.policy.idle_rule else None

        result = TaskResult(task=task, scanned=len(resources))
        for resource in resources:
            verdict = None
            if detector is not None and resource.state in IDLE_CHECK_STATES:
                verdict = detector.evaluate_idle(
                    resource,
                    task.policy.idle_rule,
                    scanner.namespace_for(resource),
                    scanner.metric_dimensions(resource),
                    self.now,
                )

            try:
                candidate = self.evaluator.evaluate(resource, task.policy, verdict)
            except EvaluationError as e:
                logger.error(f"Evaluation defect for {resource.id}: {e}")
                result.defects.append(
                    EvaluationDefect(
                        region=task.region,
                        resource_type=task.resource_type.value,
                        resource_id=resource.id,
                        message=str(e),
                    )
                )
                continue

            if candidate.is_marked:
                result.candidates.append(candidate)

        logger.info(
            f"{task.region}/{task.resource_type.value}: {result.scanned} scanned, "
            f"{len(result.candidates)} marked"
        )
        return result

    def _run_guarded(self, task: ScanTask) -> TaskResult:
        """Task boundary: every failure becomes a value, never an exception."""
        if self.cancel_event.is_set():
            return TaskResult(
                task=task,
                failure=ScanFailure(
                    region=task.region,
                    resource_type=task.resource_type.value,
                    message="cancelled before start",
                    error_code="Cancelled",
                ),
            )

        try:
            return self.run_task(task)
        except ScanError as e:
            logger.warning(str(e))
            failure = ScanFailure(
                region=task.region,
                resource_type=task.resource_type.value,
                message=str(e),
                error_code=e.error_code,
            )
        except Exception as e:
            logger.exception(f"Unexpected error in {task.region}/{task.resource_type.value}")
            failure = ScanFailure(
                region=task.region,
                resource_type=task.resource_type.value,
                message=f"unexpected error: {e}",
                error_code=e.__class__.__name__,
            )
        return TaskResult(task=task, failure=failure)

    def _collect(self, report: RunReport, result: TaskResult) -> None:
        if result.failure is not None:
            report.add_scan_failure(result.failure)
        report.add_candidates(result.candidates)
        for defect in result.defects:
            report.add_defect(defect)

    def run(
        self,
        policies: Mapping[ResourceType, Policy],
        regions: Iterable[str],
        report: RunReport,
        targets: Iterable[ResourceType] = (),
        excludes: Iterable[ResourceType] = (),
    ) -> RunReport:
        """Scan and evaluate every planned task, merging results into ``report``.

        Args:
            policies: Policy per resource type
            regions: Regions of the run
            report: Report to fill
            targets: Only scan these types (empty = all)
            excludes: Never scan these types

        Returns:
            The same report
        """
        tasks = self.plan_tasks(policies, regions, targets, excludes)
        report.tasks_total = len(tasks)
        if not tasks:
            logger.warning("Nothing to scan: no enabled policy matches the selected types and regions")
            return report

        logger.info(f"Running {len(tasks)} scan tasks with {self.max_workers} workers")
        pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="nuker-scan")
        try:
            futures = [pool.submit(self._run_guarded, task) for task in tasks]
            for future in as_completed(futures):
                self._collect(report, future.result())
        except KeyboardInterrupt:
            self.cancel()
            report.cancelled = True
            raise
        finally:
            pool.shutdown(wait=True, cancel_futures=self.cancel_event.is_set())

        report.cancelled = report.cancelled or self.cancel_event.is_set()
        return report
