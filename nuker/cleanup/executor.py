"""Execution engine: tier-ordered deletion of cleanup candidates.

In dry-run mode no scanner is ever constructed, so no deletion call can reach AWS.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Mapping, Optional, Set, Tuple, Type

from botocore.exceptions import BotoCoreError, ClientError

from ..aws.client import ClientContext
from ..aws.retry import to_deletion_error
from ..errors import (
    ConfirmationRequiredError,
    DeletionError,
    DependencyBlockedError,
    NotFoundError,
    ThrottledError,
)
from ..models.candidate import CleanupCandidate
from ..models.policy import Policy, RuleKind, TargetState
from ..models.report import DeletionOutcome, ExecutionMode, OutcomeStatus, RunReport
from ..models.resource import ResourceState, ResourceType
from ..scanners.base import BaseResourceScanner, Reference
from ..scanners.registry import SCANNER_REGISTRY
from .orchestrator import DEFAULT_MAX_WORKERS
from .tiers import group_by_tier, tier_of

logger = logging.getLogger(__name__)

UNRESOLVED = {OutcomeStatus.FAILED, OutcomeStatus.SKIPPED_BLOCKED}

Unresolved = Dict[str, List[Tuple[Reference, Set[Reference]]]]


class CleanupExecutor:
    """Deletes or stops (or simulates it for) the actionable candidates of a run report.

    Candidates whose policy targets the stopped state are stopped instead of deleted,
    unless they already are stopped or matched the manage-stopped rule. Resources that
    stay in place (stopped, failed or blocked) block the resources tied to them.

    Attributes:
        context: Shared AWS access for the run
        policies: Policy per type, for protection handling and the target state
        max_workers: Thread pool size within a tier
        registry: Scanner lookup by resource type
    """

    def __init__(
        self,
        context: ClientContext,
        policies: Optional[Mapping[ResourceType, Policy]] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        registry: Optional[Mapping[ResourceType, Type[BaseResourceScanner]]] = None,
    ) -> None:
        self.context = context
        self.policies = dict(policies or {})
        self.max_workers = max_workers
        self.registry = SCANNER_REGISTRY if registry is None else registry

    def execute(self, report: RunReport, mode: ExecutionMode, force: bool = False) -> Dict[Tuple[str, str, str], DeletionOutcome]:
        """Record an outcome for every candidate of the report.

        Args:
            report: Report holding the evaluated candidates
            mode: Dry-run or apply
            force: Second confirmation required by apply mode

        Returns:
            Outcomes keyed by (region, type, id)

        Raises:
            ConfirmationRequiredError: If apply mode is requested without force
        """
        if mode is ExecutionMode.APPLY and not force:
            raise ConfirmationRequiredError("Apply mode requires the force confirmation")

        for candidate in report.whitelisted_candidates():
            report.record_outcome(
                self._outcome(candidate, OutcomeStatus.SKIPPED_WHITELISTED, reason=candidate.whitelist_reason)
            )

        actionable = report.actionable_candidates()
        if mode is ExecutionMode.DRY_RUN:
            for candidate in actionable:
                report.record_outcome(self._planned_outcome(candidate))
            logger.info(f"Dry run: {len(actionable)} actionable resources")
            return report.outcomes

        self._apply(report, actionable)
        return report.outcomes

    def plan(self, candidate: CleanupCandidate) -> OutcomeStatus:
        """What would happen to an actionable candidate: would-delete, would-stop or skipped-stopped."""
        policy = self.policies.get(candidate.resource.type)
        if policy is None or policy.target_state is TargetState.DELETED:
            return OutcomeStatus.WOULD_DELETE
        if RuleKind.MANAGE_STOPPED in candidate.matched_rule_kinds:
            return OutcomeStatus.WOULD_DELETE
        if candidate.resource.state in (ResourceState.STOPPED, ResourceState.STOPPING):
            return OutcomeStatus.SKIPPED_STOPPED
        return OutcomeStatus.WOULD_STOP

    def _planned_outcome(self, candidate: CleanupCandidate) -> DeletionOutcome:
        status = self.plan(candidate)
        if status is OutcomeStatus.SKIPPED_STOPPED:
            return self._outcome(candidate, status, reason="already stopped")
        return self._outcome(candidate, status)

    def _apply(self, report: RunReport, candidates: List[CleanupCandidate]) -> None:
        plans = {c.key: self.plan(c) for c in candidates}
        dependencies = {c.key: self._dependencies(c) for c in candidates}
        deleting = {
            (c.resource.region, c.resource.type, c.resource.id)
            for c in candidates
            if plans[c.key] is OutcomeStatus.WOULD_DELETE
        }

        # region -> resources staying in place with what they reference
        unresolved: Unresolved = {}
        for candidate in candidates:
            if plans[candidate.key] is not OutcomeStatus.WOULD_DELETE:
                self._hold(candidate, dependencies[candidate.key][0], unresolved)

        for tier in group_by_tier(candidates):
            runnable = []
            for candidate in tier:
                status = plans[candidate.key]
                if status is OutcomeStatus.SKIPPED_STOPPED:
                    outcome = self._planned_outcome(candidate)
                elif self.context.cancel_event.is_set():
                    outcome = self._outcome(
                        candidate, OutcomeStatus.FAILED, error_code="Cancelled", reason="cancelled"
                    )
                elif status is OutcomeStatus.WOULD_STOP:
                    runnable.append(candidate)
                    continue
                else:
                    refs, required = dependencies[candidate.key]
                    reason = self._blocked_reason(candidate, refs, required, deleting, unresolved)
                    if reason is None:
                        runnable.append(candidate)
                        continue
                    outcome = self._outcome(candidate, OutcomeStatus.SKIPPED_BLOCKED, reason=reason)
                report.record_outcome(outcome)
                if outcome.status in UNRESOLVED and status is OutcomeStatus.WOULD_DELETE:
                    self._hold(candidate, dependencies[candidate.key][0], unresolved)

            if not runnable:
                continue

            logger.info(f"Processing {len(runnable)} resources in tier {tier_of(runnable[0].resource.type)}")
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="nuker-delete") as pool:
                futures = {}
                for candidate in runnable:
                    if plans[candidate.key] is OutcomeStatus.WOULD_STOP:
                        futures[pool.submit(self.stop_candidate, candidate)] = candidate
                    else:
                        futures[pool.submit(self.delete_candidate, candidate)] = candidate
                for future in as_completed(futures):
                    candidate = futures[future]
                    outcome = future.result()
                    report.record_outcome(outcome)
                    if outcome.status in UNRESOLVED and plans[candidate.key] is OutcomeStatus.WOULD_DELETE:
                        self._hold(candidate, dependencies[candidate.key][0], unresolved)

    @staticmethod
    def _hold(candidate: CleanupCandidate, refs: Set[Reference], unresolved: Unresolved) -> None:
        own = (candidate.resource.type, candidate.resource.id)
        unresolved.setdefault(candidate.resource.region, []).append((own, refs))

    def _dependencies(self, candidate: CleanupCandidate) -> Tuple[Set[Reference], Set[Reference]]:
        """References of the candidate and the resources that must be deleted before it."""
        scanner_class = self.registry.get(candidate.resource.type)
        if scanner_class is None:
            return set(), set()
        scanner = scanner_class(self.context, candidate.resource.region)
        return scanner.references(candidate.resource), scanner.required_deletions(candidate.resource)

    @staticmethod
    def _blocked_reason(
        candidate: CleanupCandidate,
        refs: Set[Reference],
        required: Set[Reference],
        deleting: Set[Tuple[str, ResourceType, str]],
        unresolved: Unresolved,
    ) -> Optional[str]:
        """Why the candidate cannot be deleted yet, None if nothing holds it."""
        region = candidate.resource.region
        for resource_type, resource_id in sorted(required, key=lambda r: (r[0].value, r[1])):
            if (region, resource_type, resource_id) not in deleting:
                return f"attached to {resource_type.value} {resource_id}, which is not being deleted"

        own = (candidate.resource.type, candidate.resource.id)
        held = refs | required
        for other, other_refs in unresolved.get(region, []):
            if own in other_refs or other in held:
                return f"depends on {other[0].value} {other[1]}"
        return None

    def delete_candidate(self, candidate: CleanupCandidate) -> DeletionOutcome:
        """Delete one resource and map the result to an outcome. Never raises."""
        return self._invoke(candidate, "delete", OutcomeStatus.DELETED)

    def stop_candidate(self, candidate: CleanupCandidate) -> DeletionOutcome:
        """Stop one resource and map the result to an outcome. Never raises."""
        return self._invoke(candidate, "stop", OutcomeStatus.STOPPED)

    def _invoke(self, candidate: CleanupCandidate, verb: str, success: OutcomeStatus) -> DeletionOutcome:
        resource = candidate.resource
        scanner_class = self.registry.get(resource.type)
        if scanner_class is None:
            return self._outcome(
                candidate, OutcomeStatus.FAILED, error_code="Unsupported", reason="no scanner registered"
            )

        scanner = scanner_class(self.context, resource.region)
        try:
            logger.debug(f"Calling {verb} on {resource.type.value} {resource.id} in {resource.region}")
            getattr(scanner, verb)(resource, self.policies.get(resource.type))
        except ClientError as e:
            return self._failure_outcome(candidate, verb, to_deletion_error(e))
        except DeletionError as e:
            return self._failure_outcome(candidate, verb, e)
        except BotoCoreError as e:
            logger.error(f"Failed to {verb} {resource.id}: {e}")
            return self._outcome(candidate, OutcomeStatus.FAILED, error_code=e.__class__.__name__, reason=str(e))
        except Exception as e:
            logger.exception(f"Unexpected error during {verb} of {resource.type.value} {resource.id}")
            return self._outcome(
                candidate, OutcomeStatus.FAILED, error_code=e.__class__.__name__, reason=str(e) or repr(e)
            )

        logger.info(f"{success.value.capitalize()} {resource.type.value} {resource.id} in {resource.region}")
        return self._outcome(candidate, success)

    def _failure_outcome(self, candidate: CleanupCandidate, verb: str, error: DeletionError) -> DeletionOutcome:
        resource_id = candidate.resource.id
        code = error.error_code or error.__class__.__name__

        if isinstance(error, NotFoundError):
            logger.info(f"Resource {resource_id} already deleted")
            return self._outcome(candidate, OutcomeStatus.ALREADY_GONE, reason=str(error))

        if isinstance(error, DependencyBlockedError):
            logger.warning(f"Could not {verb} {resource_id}, blocked by a dependency: {error}")
            return self._outcome(candidate, OutcomeStatus.SKIPPED_BLOCKED, error_code=code, reason=str(error))

        if isinstance(error, ThrottledError):
            logger.error(f"Could not {verb} {resource_id}, still throttled after retries")
            return self._outcome(candidate, OutcomeStatus.FAILED, error_code=code, reason="throttled")

        logger.error(f"Failed to {verb} {resource_id}: {code} - {error}")
        return self._outcome(candidate, OutcomeStatus.FAILED, error_code=code, reason=f"{code}: {error}")

    @staticmethod
    def _outcome(candidate: CleanupCandidate, status: OutcomeStatus, **kwargs) -> DeletionOutcome:
        return DeletionOutcome(
            region=candidate.resource.region,
            resource_type=candidate.resource.type.value,
            resource_id=candidate.resource.id,
            status=status,
            tier=tier_of(candidate.resource.type),
            **kwargs,
        )
