"""Evaluation results: idle verdicts and cleanup candidates."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional, Tuple

from .policy import RuleKind
from .resource import Resource


@dataclass(frozen=True)
class IdleVerdict:
    """Outcome of an idle test for one resource.

    Attributes:
        resource_id: Resource the verdict belongs to
        metric: Metric name that was queried
        observed: Statistic value per period, oldest first
        is_idle: True if the resource is idle over the window
        reason: Why the resource is (not) idle
        error: Metric query error, if the query failed
    """

    resource_id: str
    metric: str
    observed: Tuple[float, ...] = ()
    is_idle: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class CleanupCandidate:
    """Evaluation result for one resource.

    A candidate is *marked* when at least one rule kind matched. Whitelisted candidates
    keep their marked status for reporting but are never deleted.

    Attributes:
        resource: Evaluated resource
        matched_rule_kinds: Every rule kind the resource matched
        whitelisted: True if a whitelist entry matched
        reasons: Human-readable explanation per matched kind
        whitelist_reason: Which whitelist entry matched
    """

    resource: Resource
    matched_rule_kinds: FrozenSet[RuleKind] = frozenset()
    whitelisted: bool = False
    reasons: Dict[RuleKind, str] = field(default_factory=dict, compare=False, hash=False)
    whitelist_reason: Optional[str] = None

    @property
    def is_marked(self) -> bool:
        return bool(self.matched_rule_kinds)

    @property
    def is_actionable(self) -> bool:
        """Marked and not whitelisted: eligible for the execution engine."""
        return self.is_marked and not self.whitelisted

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.resource.region, self.resource.type.value, self.resource.id)

    def to_dict(self) -> dict[str, Any]:
        data = self.resource.to_dict()
        data["matched_rule_kinds"] = sorted(kind.value for kind in self.matched_rule_kinds)
        data["reasons"] = {kind.value: reason for kind, reason in self.reasons.items()}
        data["whitelisted"] = self.whitelisted
        if self.whitelist_reason:
            data["whitelist_reason"] = self.whitelist_reason
        return data
