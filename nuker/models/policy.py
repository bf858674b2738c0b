"""Policy model: rules and whitelist entries configured per resource type.

Pure data. Nothing in this module talks to AWS.
"""

from __future__ import annotations

import fnmatch
import ipaddress
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple, Union

from ..errors import ConfigurationError
from .resource import Resource, ResourceType


class RuleKind(Enum):
    """Kinds of rules a resource can match."""

    REQUIRED_TAGS = "required-tags"
    APPROVED_TYPES = "approved-types"
    IDLE = "idle"
    MAX_RUNTIME = "max-runtime"
    MANAGE_STOPPED = "manage-stopped"
    UNASSOCIATED = "unassociated"
    OPEN_INGRESS = "open-ingress"
    DNS_NON_COMPLIANT = "dns-non-compliant"
    PUBLIC_ACCESS = "public-access"
    NAMING_PREFIX = "naming-prefix"


class TargetState(Enum):
    """What happens to a marked resource: stopped (kept, no longer running) or deleted."""

    STOPPED = "stopped"
    DELETED = "deleted"

    @classmethod
    def from_value(cls, value: str) -> "TargetState":
        aliases = {"stop": cls.STOPPED, "stopped": cls.STOPPED, "delete": cls.DELETED, "deleted": cls.DELETED}
        try:
            return aliases[value.strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown target state '{value}', expected stopped or deleted")


class Statistic(Enum):
    """CloudWatch statistic applied per period."""

    MAXIMUM = "Maximum"
    MINIMUM = "Minimum"
    AVERAGE = "Average"
    SUM = "Sum"
    SAMPLE_COUNT = "SampleCount"

    @classmethod
    def from_value(cls, value: str) -> "Statistic":
        aliases = {
            "max": cls.MAXIMUM,
            "maximum": cls.MAXIMUM,
            "min": cls.MINIMUM,
            "minimum": cls.MINIMUM,
            "avg": cls.AVERAGE,
            "average": cls.AVERAGE,
            "sum": cls.SUM,
            "samplecount": cls.SAMPLE_COUNT,
            "sample_count": cls.SAMPLE_COUNT,
        }
        try:
            return aliases[value.strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown statistic '{value}'")


class Comparison(Enum):
    """Comparison between an observed statistic and the idle threshold."""

    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"

    @classmethod
    def from_value(cls, value: str) -> "Comparison":
        aliases = {"<": "lt", "<=": "le", ">": "gt", ">=": "ge"}
        v = value.strip().lower()
        try:
            return cls(aliases.get(v, v))
        except ValueError:
            raise ValueError(f"Unknown comparison '{value}'")

    def apply(self, observed: float, threshold: float) -> bool:
        """Return True if ``observed <op> threshold`` holds."""
        if self is Comparison.LT:
            return observed < threshold
        if self is Comparison.LE:
            return observed <= threshold
        if self is Comparison.GT:
            return observed > threshold
        return observed >= threshold


@dataclass(frozen=True)
class RequiredTag:
    """A tag key that must be present, optionally with a value pattern.

    Attributes:
        key: Tag key
        pattern: Regular expression the whole value must match (optional)
    """

    key: str
    pattern: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.key:
            raise ConfigurationError("Required tag key cannot be empty")
        if self.pattern is not None:
            try:
                re.compile(self.pattern)
            except re.error as e:
                raise ConfigurationError(f"Invalid pattern for required tag '{self.key}': {e}")

    def is_satisfied(self, tags: Any) -> bool:
        if self.key not in tags:
            return False
        if self.pattern is None:
            return True
        return re.fullmatch(self.pattern, tags[self.key]) is not None


@dataclass(frozen=True)
class RequiredTags:
    """Tags every resource of the type must carry."""

    tags: Tuple[RequiredTag, ...]
    kind: RuleKind = field(default=RuleKind.REQUIRED_TAGS, init=False)

    def missing(self, resource: Resource) -> list[str]:
        """Keys that are absent or whose value does not match the pattern."""
        return [t.key for t in self.tags if not t.is_satisfied(resource.tags)]


@dataclass(frozen=True)
class ApprovedTypes:
    """Allow-list of instance classes (``t3.micro``, ``db.t3.small``, ...)."""

    types: frozenset
    kind: RuleKind = field(default=RuleKind.APPROVED_TYPES, init=False)

    def unapproved(self, resource: Resource) -> list[str]:
        """Instance classes of the resource that are not in the allow-list.

        Clusters report every class they run in ``instance_types``; single resources
        report ``instance_type``.
        """
        used = list(resource.attributes.get("instance_types") or ())
        if resource.attributes.get("instance_type"):
            used.append(resource.attributes["instance_type"])
        return sorted({t for t in used if t not in self.types})


@dataclass(frozen=True)
class IdleRule:
    """Idle test over a CloudWatch metric.

    A resource is idle when every period of the lookback window satisfies
    ``statistic(metric) <comparison> threshold``.

    Attributes:
        metric_name: CloudWatch metric (e.g. ``CPUUtilization``)
        statistic: Statistic applied per period
        period_seconds: Period granularity in seconds (multiple of 60)
        lookback_seconds: Size of the evaluation window in seconds
        threshold: Threshold compared against each period
        comparison: Comparison operator
        namespace: Metric namespace override (default: the scanner's namespace)
    """

    metric_name: str
    statistic: Statistic
    period_seconds: int
    lookback_seconds: int
    threshold: float
    comparison: Comparison = Comparison.LT
    namespace: Optional[str] = None
    kind: RuleKind = field(default=RuleKind.IDLE, init=False)

    def __post_init__(self) -> None:
        if not self.metric_name:
            raise ConfigurationError("Idle rule requires a metric name")
        if self.period_seconds < 60 or self.period_seconds % 60 != 0:
            raise ConfigurationError("Idle rule period must be a positive multiple of 60 seconds")
        if self.lookback_seconds < self.period_seconds:
            raise ConfigurationError("Idle rule lookback must be at least one period")

    @property
    def expected_periods(self) -> int:
        return self.lookback_seconds // self.period_seconds


@dataclass(frozen=True)
class MaxRuntime:
    """Maximum lifetime measured from creation."""

    seconds: int
    kind: RuleKind = field(default=RuleKind.MAX_RUNTIME, init=False)

    def __post_init__(self) -> None:
        if self.seconds <= 0:
            raise ConfigurationError("max_runtime must be positive")


@dataclass(frozen=True)
class ManageStopped:
    """Maximum time a resource may stay stopped."""

    seconds: int
    kind: RuleKind = field(default=RuleKind.MANAGE_STOPPED, init=False)

    def __post_init__(self) -> None:
        if self.seconds <= 0:
            raise ConfigurationError("manage_stopped must be positive")


@dataclass(frozen=True)
class UnassociatedRule:
    """Orphaned resource: unattached volume, unassociated address, empty ASG."""

    kind: RuleKind = field(default=RuleKind.UNASSOCIATED, init=False)

    def matches(self, resource: Resource) -> bool:
        return resource.attributes.get("associated") is False


@dataclass(frozen=True)
class OpenIngressRule:
    """Security group ingress open to a disallowed source over a port range.

    Attributes:
        cidrs: Source ranges considered open (default: the whole internet)
        from_port: Lowest port of the guarded range
        to_port: Highest port of the guarded range
    """

    cidrs: Tuple[str, ...] = ("0.0.0.0/0", "::/0")
    from_port: int = 0
    to_port: int = 65535
    kind: RuleKind = field(default=RuleKind.OPEN_INGRESS, init=False)

    def __post_init__(self) -> None:
        for cidr in self.cidrs:
            try:
                ipaddress.ip_network(cidr, strict=False)
            except ValueError:
                raise ConfigurationError(f"Invalid CIDR in open_ingress rule: {cidr}")
        if not 0 <= self.from_port <= self.to_port <= 65535:
            raise ConfigurationError("open_ingress port range is invalid")

    def matches(self, resource: Resource) -> bool:
        for permission in resource.attributes.get("ingress", ()):
            if not set(permission.get("cidrs", ())) & set(self.cidrs):
                continue
            if permission.get("protocol") == "-1":
                return True
            from_port = permission.get("from_port")
            to_port = permission.get("to_port")
            if from_port is None or to_port is None:
                continue
            # Any overlap with the guarded range counts
            if from_port <= self.to_port and to_port >= self.from_port:
                return True
        return False


@dataclass(frozen=True)
class DnsCompliantNameRule:
    """Bucket names must be DNS compliant (no dots, lowercase, 3-63 chars)."""

    kind: RuleKind = field(default=RuleKind.DNS_NON_COMPLIANT, init=False)

    _PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{1,61}[a-z0-9]$")

    def matches(self, resource: Resource) -> bool:
        return self._PATTERN.match(resource.id) is None


@dataclass(frozen=True)
class PublicAccessRule:
    """Resource is reachable publicly (public bucket, publicly accessible database)."""

    kind: RuleKind = field(default=RuleKind.PUBLIC_ACCESS, init=False)

    def matches(self, resource: Resource) -> bool:
        return resource.attributes.get("public") is True


@dataclass(frozen=True)
class NamingPrefixRule:
    """Resource ids must start with a prefix (bucket naming conventions)."""

    prefix: str
    kind: RuleKind = field(default=RuleKind.NAMING_PREFIX, init=False)

    def __post_init__(self) -> None:
        if not self.prefix:
            raise ConfigurationError("naming_prefix cannot be empty")

    def matches(self, resource: Resource) -> bool:
        return not resource.id.startswith(self.prefix)


TypeRule = Union[
    UnassociatedRule,
    OpenIngressRule,
    DnsCompliantNameRule,
    PublicAccessRule,
    NamingPrefixRule,
]


class MatchKind(Enum):
    """What a whitelist entry matches on."""

    ID = "id"
    TAG = "tag"
    NAME = "name"


@dataclass(frozen=True)
class WhitelistEntry:
    """Unconditional exclusion from cleanup.

    Attributes:
        matcher: What to match on (id, tag or name)
        pattern: Glob pattern; for tags ``key=value-glob`` (value defaults to ``*``)
        resource_type: Restrict the entry to one type (None = the owning policy's type)
        description: Free text shown in the report
    """

    matcher: MatchKind
    pattern: str
    resource_type: Optional[ResourceType] = None
    description: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.pattern:
            raise ConfigurationError("Whitelist pattern cannot be empty")

    def matches(self, resource: Resource) -> bool:
        if self.resource_type is not None and self.resource_type != resource.type:
            return False

        if self.matcher is MatchKind.ID:
            return fnmatch.fnmatchcase(resource.id, self.pattern)

        if self.matcher is MatchKind.NAME:
            return fnmatch.fnmatchcase(resource.name, self.pattern)

        key, _, value_pattern = self.pattern.partition("=")
        if key not in resource.tags:
            return False
        return fnmatch.fnmatchcase(resource.tags[key], value_pattern or "*")


@dataclass(frozen=True)
class Policy:
    """Cleanup policy for one resource type.

    Attributes:
        resource_type: Type the policy applies to
        enabled: Disabled policies spawn no scan tasks
        required_tags: Tag gate (optional)
        approved_types: Instance class allow-list (optional)
        idle_rule: Idle test (optional)
        max_runtime: Maximum lifetime (optional)
        manage_stopped: Maximum stopped time (optional)
        type_rules: Type-specific rules
        whitelist: Whitelist entries
        regions: Regions the policy is limited to (empty = every run region)
        ignore_termination_protection: Disable termination/deletion protection before
            deleting
        target_state: Stop marked resources instead of deleting them (types that can
            be stopped only)
    """

    resource_type: ResourceType
    enabled: bool = True
    required_tags: Optional[RequiredTags] = None
    approved_types: Optional[ApprovedTypes] = None
    idle_rule: Optional[IdleRule] = None
    max_runtime: Optional[MaxRuntime] = None
    manage_stopped: Optional[ManageStopped] = None
    type_rules: Tuple[TypeRule, ...] = ()
    whitelist: Tuple[WhitelistEntry, ...] = ()
    regions: Tuple[str, ...] = ()
    ignore_termination_protection: bool = False
    target_state: TargetState = TargetState.DELETED

    def rule_kinds(self) -> list[RuleKind]:
        """Kinds of every rule configured on this policy."""
        kinds = []
        for rule in (
            self.required_tags,
            self.approved_types,
            self.idle_rule,
            self.max_runtime,
            self.manage_stopped,
        ):
            if rule is not None:
                kinds.append(rule.kind)
        kinds.extend(rule.kind for rule in self.type_rules)
        return kinds

    def applies_to_region(self, region: str) -> bool:
        return not self.regions or region in self.regions
