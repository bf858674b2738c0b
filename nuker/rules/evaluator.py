"""Rule evaluation: turns a resource and its policy into a cleanup candidate.

Evaluation is a pure function of (resource, policy, idle verdict, now). It issues no AWS
calls; idle verdicts are computed beforehand by the idle detector.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Type

from ..errors import EvaluationError
from ..models.candidate import CleanupCandidate, IdleVerdict
from ..models.policy import Policy, RuleKind
from ..models.resource import Resource, ResourceState, ResourceType
from ..scanners.base import BaseResourceScanner
from ..scanners.registry import SCANNER_REGISTRY
from ..utils.duration import format_duration
from .whitelist import Whitelist

logger = logging.getLogger(__name__)

# Resources already on their way out are never marked
TERMINAL_STATES = {ResourceState.DELETING, ResourceState.DELETED}


class RuleEvaluator:
    """Evaluates resources against their policy.

    Attributes:
        now: Reference time for age and stopped-duration rules
    """

    def __init__(
        self,
        now: Optional[datetime] = None,
        registry: Optional[Mapping[ResourceType, Type[BaseResourceScanner]]] = None,
    ) -> None:
        self.now = now or datetime.now(timezone.utc)
        self.registry = SCANNER_REGISTRY if registry is None else registry

    def evaluate(
        self,
        resource: Resource,
        policy: Policy,
        idle_verdict: Optional[IdleVerdict] = None,
    ) -> CleanupCandidate:
        """Evaluate one resource.

        Every configured rule kind is evaluated and recorded; the whitelist is applied
        last and never changes the matched kinds.

        Args:
            resource: Scanned resource
            policy: Policy for the resource's type
            idle_verdict: Verdict of the idle detector, if the policy has an idle rule

        Returns:
            CleanupCandidate (marked when at least one rule kind matched)

        Raises:
            EvaluationError: If the resource does not belong to the policy, or a rule
                cannot be evaluated against it
        """
        if resource.type is not policy.resource_type:
            raise EvaluationError(
                f"Resource {resource.id} is {resource.type.value}, policy is for {policy.resource_type.value}"
            )

        if resource.state in TERMINAL_STATES:
            return CleanupCandidate(resource=resource)

        scanner_class = self.registry.get(resource.type)
        skip_reason = scanner_class.skip_reason(resource) if scanner_class is not None else None
        if skip_reason:
            logger.debug(f"Never marking {resource.type.value} {resource.id}: {skip_reason}")
            return CleanupCandidate(resource=resource)

        try:
            reasons = self._match_rules(resource, policy, idle_verdict)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise EvaluationError(f"Failed to evaluate {resource.type.value} {resource.id}: {e}")

        whitelisted, whitelist_reason = Whitelist(policy.whitelist).is_whitelisted(resource)
        if whitelisted and reasons:
            logger.debug(f"{resource.id} matched {sorted(k.value for k in reasons)} but is whitelisted")

        return CleanupCandidate(
            resource=resource,
            matched_rule_kinds=frozenset(reasons),
            whitelisted=whitelisted,
            reasons=reasons,
            whitelist_reason=whitelist_reason,
        )

    def _match_rules(
        self,
        resource: Resource,
        policy: Policy,
        idle_verdict: Optional[IdleVerdict],
    ) -> Dict[RuleKind, str]:
        reasons: Dict[RuleKind, str] = {}

        # Required tags gate first; the remaining kinds are still recorded
        if policy.required_tags is not None:
            missing = policy.required_tags.missing(resource)
            if missing:
                reasons[RuleKind.REQUIRED_TAGS] = f"missing or invalid tags: {', '.join(missing)}"

        if policy.approved_types is not None:
            unapproved = policy.approved_types.unapproved(resource)
            if unapproved:
                reasons[RuleKind.APPROVED_TYPES] = f"unapproved type: {', '.join(unapproved)}"

        if policy.idle_rule is not None and idle_verdict is not None and idle_verdict.is_idle:
            reasons[RuleKind.IDLE] = idle_verdict.reason or "idle"

        if policy.max_runtime is not None:
            age = resource.age_seconds(self.now)
            if age is not None and age > policy.max_runtime.seconds:
                reasons[RuleKind.MAX_RUNTIME] = (
                    f"running for {format_duration(int(age))}, limit {format_duration(policy.max_runtime.seconds)}"
                )

        if policy.manage_stopped is not None and resource.state is ResourceState.STOPPED:
            stopped_at = resource.attributes.get("stopped_at")
            if stopped_at is not None:
                stopped_for = (self.now - stopped_at).total_seconds()
                if stopped_for > policy.manage_stopped.seconds:
                    reasons[RuleKind.MANAGE_STOPPED] = (
                        f"stopped for {format_duration(int(stopped_for))}, "
                        f"limit {format_duration(policy.manage_stopped.seconds)}"
                    )

        scanner_class = self.registry.get(resource.type)
        if scanner_class is not None and policy.type_rules:
            reasons.update(scanner_class.evaluate_extras(resource, policy))

        return reasons
