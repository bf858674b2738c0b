"""Data models shared by scanners, rules and the cleanup engine."""

from .candidate import CleanupCandidate, IdleVerdict
from .policy import (
    ApprovedTypes,
    Comparison,
    DnsCompliantNameRule,
    IdleRule,
    ManageStopped,
    MatchKind,
    MaxRuntime,
    OpenIngressRule,
    Policy,
    PublicAccessRule,
    RequiredTag,
    RequiredTags,
    RuleKind,
    Statistic,
    TypeRule,
    UnassociatedRule,
    WhitelistEntry,
)
from .report import (
    DeletionOutcome,
    EvaluationDefect,
    ExecutionMode,
    OutcomeStatus,
    RunReport,
    RunStatus,
    ScanFailure,
)
from .resource import Resource, ResourceState, ResourceType

__all__ = [
    "ApprovedTypes",
    "CleanupCandidate",
    "Comparison",
    "DeletionOutcome",
    "DnsCompliantNameRule",
    "EvaluationDefect",
    "ExecutionMode",
    "IdleRule",
    "IdleVerdict",
    "ManageStopped",
    "MatchKind",
    "MaxRuntime",
    "OpenIngressRule",
    "OutcomeStatus",
    "Policy",
    "PublicAccessRule",
    "RequiredTag",
    "RequiredTags",
    "Resource",
    "ResourceState",
    "ResourceType",
    "RuleKind",
    "RunReport",
    "RunStatus",
    "ScanFailure",
    "Statistic",
    "TypeRule",
    "UnassociatedRule",
    "WhitelistEntry",
]
