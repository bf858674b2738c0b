"""Configuration file loading.

The configuration is a YAML document with run settings at the top level and one policy
section per resource type under ``resources``:

    regions: [us-east-1, eu-west-1]
    max_workers: 16
    retry: {max_attempts: 5, base_delay: 1, max_delay: 30}
    rate_limits: {ec2: 20, s3: {requests_per_second: 50, burst_size: 100}}
    resources:
      ec2-instance:
        required_tags: [Owner, {key: Environment, pattern: "prod|dev"}]
        approved_types: [t3.micro, t3.small]
        idle_rule: {metric: CPUUtilization, statistic: Maximum, period: 1h, lookback: 14d, threshold: 5}
        max_runtime: 30d
        manage_stopped: 7d
        whitelist: [i-0123456789abcdef0, {tag: "Keep=true"}]
      ebs-volume:
        unassociated: true
      rds-instance:
        target_state: stopped
      s3-bucket:
        naming_prefix: team-
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..aws.client import DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT, ClientContext
from ..aws.rate_limit import RateLimiterConfig, RateLimiterRegistry
from ..aws.retry import RetryConfig
from ..cleanup.orchestrator import DEFAULT_MAX_WORKERS
from ..errors import ConfigurationError
from ..models.policy import (
    ApprovedTypes,
    Comparison,
    DnsCompliantNameRule,
    IdleRule,
    ManageStopped,
    MatchKind,
    MaxRuntime,
    NamingPrefixRule,
    OpenIngressRule,
    Policy,
    PublicAccessRule,
    RequiredTag,
    RequiredTags,
    Statistic,
    TargetState,
    TypeRule,
    UnassociatedRule,
    WhitelistEntry,
)
from ..models.resource import ResourceType
from ..scanners.registry import SCANNER_REGISTRY
from ..utils.duration import parse_duration

_REGION_PATTERN = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d+$")

_TOP_LEVEL_KEYS = {
    "regions",
    "max_workers",
    "rate_limits",
    "retry",
    "connect_timeout",
    "read_timeout",
    "resources",
}

_POLICY_KEYS = {
    "enabled",
    "regions",
    "required_tags",
    "approved_types",
    "idle_rule",
    "max_runtime",
    "manage_stopped",
    "ignore_termination_protection",
    "whitelist",
    "unassociated",
    "open_ingress",
    "dns_compliant",
    "public_access",
    "naming_prefix",
    "target_state",
}


@dataclass
class NukerConfig:
    """Parsed configuration file.

    Attributes:
        policies: Policy per resource type
        regions: Default regions of a run
        max_workers: Thread pool size for scans and deletions
        retry: Throttling retry settings
        rate_limits: Per-service rate limiter overrides
        connect_timeout: AWS connection timeout (seconds)
        read_timeout: AWS read timeout (seconds)
        source: Path the configuration was read from
    """

    policies: Dict[ResourceType, Policy] = field(default_factory=dict)
    regions: List[str] = field(default_factory=list)
    max_workers: int = DEFAULT_MAX_WORKERS
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limits: Dict[str, RateLimiterConfig] = field(default_factory=dict)
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    read_timeout: int = DEFAULT_READ_TIMEOUT
    source: Optional[str] = None


def validate_region(region: Any) -> str:
    if not isinstance(region, str) or not _REGION_PATTERN.match(region):
        raise ConfigurationError(f"Invalid region: {region!r}")
    return region


def _duration(value: Any, name: str) -> int:
    try:
        return parse_duration(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name}: {e}")


def _string_list(value: Any, name: str) -> List[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigurationError(f"{name} must be a list of strings")
    return value


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigurationError(f"{name} must be a positive integer")
    return value


def parse_required_tags(value: Any, name: str) -> RequiredTags:
    entries = value if isinstance(value, list) else [value]
    tags = []
    for entry in entries:
        if isinstance(entry, str):
            tags.append(RequiredTag(key=entry))
        elif isinstance(entry, dict) and "key" in entry and set(entry) <= {"key", "pattern"}:
            tags.append(RequiredTag(key=str(entry["key"]), pattern=entry.get("pattern")))
        else:
            raise ConfigurationError(f"{name}.required_tags: invalid entry {entry!r}")
    if not tags:
        raise ConfigurationError(f"{name}.required_tags cannot be empty")
    return RequiredTags(tags=tuple(tags))


def parse_idle_rule(value: Any, name: str) -> IdleRule:
    if not isinstance(value, dict):
        raise ConfigurationError(f"{name}.idle_rule must be a mapping")

    unknown = set(value) - {"metric", "statistic", "period", "lookback", "threshold", "comparison", "namespace"}
    if unknown:
        raise ConfigurationError(f"{name}.idle_rule: unknown keys {sorted(unknown)}")

    for required in ("metric", "threshold", "lookback"):
        if required not in value:
            raise ConfigurationError(f"{name}.idle_rule: '{required}' is required")

    try:
        statistic = Statistic.from_value(str(value.get("statistic", "Maximum")))
        comparison = Comparison.from_value(str(value.get("comparison", "lt")))
        threshold = float(value["threshold"])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name}.idle_rule: {e}")

    return IdleRule(
        metric_name=str(value["metric"]),
        statistic=statistic,
        period_seconds=_duration(value.get("period", "1h"), f"{name}.idle_rule.period"),
        lookback_seconds=_duration(value["lookback"], f"{name}.idle_rule.lookback"),
        threshold=threshold,
        comparison=comparison,
        namespace=value.get("namespace"),
    )


def parse_whitelist(value: Any, name: str, resource_type: ResourceType) -> Tuple[WhitelistEntry, ...]:
    if not isinstance(value, list):
        raise ConfigurationError(f"{name}.whitelist must be a list")

    entries = []
    for entry in value:
        if isinstance(entry, str):
            entries.append(WhitelistEntry(matcher=MatchKind.ID, pattern=entry, resource_type=resource_type))
            continue

        if not isinstance(entry, dict):
            raise ConfigurationError(f"{name}.whitelist: invalid entry {entry!r}")

        matchers = [kind for kind in MatchKind if kind.value in entry]
        if len(matchers) != 1 or set(entry) - {matchers[0].value, "description"}:
            raise ConfigurationError(f"{name}.whitelist: entry needs exactly one of id, tag or name: {entry!r}")

        entries.append(
            WhitelistEntry(
                matcher=matchers[0],
                pattern=str(entry[matchers[0].value]),
                resource_type=resource_type,
                description=entry.get("description"),
            )
        )
    return tuple(entries)


def parse_type_rules(section: Dict[str, Any], name: str) -> Tuple[TypeRule, ...]:
    rules: List[TypeRule] = []

    if section.get("unassociated"):
        rules.append(UnassociatedRule())
    if section.get("dns_compliant"):
        rules.append(DnsCompliantNameRule())
    if section.get("public_access"):
        rules.append(PublicAccessRule())

    prefix = section.get("naming_prefix")
    if prefix is not None:
        if not isinstance(prefix, str):
            raise ConfigurationError(f"{name}.naming_prefix must be a string")
        rules.append(NamingPrefixRule(prefix=prefix))

    open_ingress = section.get("open_ingress")
    if open_ingress is True:
        rules.append(OpenIngressRule())
    elif isinstance(open_ingress, dict):
        unknown = set(open_ingress) - {"cidrs", "from_port", "to_port"}
        if unknown:
            raise ConfigurationError(f"{name}.open_ingress: unknown keys {sorted(unknown)}")
        defaults = OpenIngressRule()
        cidrs = _string_list(open_ingress.get("cidrs", list(defaults.cidrs)), f"{name}.open_ingress.cidrs")
        try:
            from_port = int(open_ingress.get("from_port", defaults.from_port))
            to_port = int(open_ingress.get("to_port", defaults.to_port))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"{name}.open_ingress: {e}")
        rules.append(OpenIngressRule(cidrs=tuple(cidrs), from_port=from_port, to_port=to_port))
    elif open_ingress not in (None, False):
        raise ConfigurationError(f"{name}.open_ingress must be true or a mapping")

    return tuple(rules)


def parse_policy(resource_type: ResourceType, section: Any) -> Policy:
    """Build the policy of one resource type from its configuration section.

    Raises:
        ConfigurationError: On unknown keys, invalid values, or rules the type cannot
            evaluate
    """
    name = f"resources.{resource_type.value}"
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"{name} must be a mapping")

    unknown = set(section) - _POLICY_KEYS
    if unknown:
        raise ConfigurationError(f"{name}: unknown keys {sorted(unknown)}")

    scanner_class = SCANNER_REGISTRY.get(resource_type)
    if scanner_class is None:
        raise ConfigurationError(f"{name}: no scanner registered for this type")

    idle_rule = parse_idle_rule(section["idle_rule"], name) if section.get("idle_rule") is not None else None
    if idle_rule is not None and not scanner_class.supports_idle():
        raise ConfigurationError(f"{name}: idle rules are not supported for {resource_type.value}")

    type_rules = parse_type_rules(section, name)
    for rule in type_rules:
        if not scanner_class.supports_rule(rule):
            raise ConfigurationError(f"{name}: rule '{rule.kind.value}' is not supported for {resource_type.value}")

    approved = None
    if section.get("approved_types") is not None:
        types = _string_list(section["approved_types"], f"{name}.approved_types")
        if not types:
            raise ConfigurationError(f"{name}.approved_types cannot be empty")
        approved = ApprovedTypes(types=frozenset(types))

    try:
        target_state = TargetState.from_value(str(section.get("target_state", "deleted")))
    except ValueError as e:
        raise ConfigurationError(f"{name}.target_state: {e}")
    if target_state is TargetState.STOPPED and not scanner_class.can_stop:
        raise ConfigurationError(f"{name}: {resource_type.value} resources cannot be stopped")

    return Policy(
        resource_type=resource_type,
        enabled=bool(section.get("enabled", True)),
        required_tags=parse_required_tags(section["required_tags"], name)
        if section.get("required_tags") is not None
        else None,
        approved_types=approved,
        idle_rule=idle_rule,
        max_runtime=MaxRuntime(_duration(section["max_runtime"], f"{name}.max_runtime"))
        if section.get("max_runtime") is not None
        else None,
        manage_stopped=ManageStopped(_duration(section["manage_stopped"], f"{name}.manage_stopped"))
        if section.get("manage_stopped") is not None
        else None,
        type_rules=type_rules,
        whitelist=parse_whitelist(section.get("whitelist", []), name, resource_type),
        regions=tuple(validate_region(r) for r in _string_list(section.get("regions", []), f"{name}.regions")),
        ignore_termination_protection=bool(section.get("ignore_termination_protection", False)),
        target_state=target_state,
    )


def parse_rate_limits(value: Any) -> Dict[str, RateLimiterConfig]:
    if not isinstance(value, dict):
        raise ConfigurationError("rate_limits must be a mapping of service to requests per second")

    limits = {}
    for service, limit in value.items():
        try:
            if isinstance(limit, dict):
                limits[service] = RateLimiterConfig(**limit)
            else:
                rate = float(limit)
                limits[service] = RateLimiterConfig(requests_per_second=rate, burst_size=max(1, int(rate * 2)))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"rate_limits.{service}: {e}")
    return limits


def parse_config(data: Any, source: Optional[str] = None) -> NukerConfig:
    """Build a NukerConfig from a decoded YAML document."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping")

    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")

    resources = data.get("resources") or {}
    if not isinstance(resources, dict):
        raise ConfigurationError("resources must be a mapping of resource type to policy")

    policies: Dict[ResourceType, Policy] = {}
    for type_name, section in resources.items():
        try:
            resource_type = ResourceType.from_value(str(type_name))
        except ValueError as e:
            raise ConfigurationError(str(e))
        policies[resource_type] = parse_policy(resource_type, section)

    retry_section = data.get("retry") or {}
    try:
        retry = RetryConfig(**retry_section)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"retry: {e}")

    return NukerConfig(
        policies=policies,
        regions=[validate_region(r) for r in _string_list(data.get("regions", []), "regions")],
        max_workers=_positive_int(data.get("max_workers", DEFAULT_MAX_WORKERS), "max_workers"),
        retry=retry,
        rate_limits=parse_rate_limits(data.get("rate_limits") or {}),
        connect_timeout=_positive_int(data.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT), "connect_timeout"),
        read_timeout=_positive_int(data.get("read_timeout", DEFAULT_READ_TIMEOUT), "read_timeout"),
        source=source,
    )


def load_config(path: str) -> NukerConfig:
    """Load and validate a configuration file.

    Args:
        path: Path to the YAML configuration file

    Returns:
        Parsed configuration

    Raises:
        ConfigurationError: If the file cannot be read or is invalid
    """
    config_path = Path(path)
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

    return parse_config(data, source=str(config_path))


def build_client_context(config: NukerConfig, profile_name: Optional[str] = None) -> ClientContext:
    """Shared AWS access configured from the run settings."""
    return ClientContext(
        profile_name=profile_name,
        retry_config=config.retry,
        rate_limiters=RateLimiterRegistry(config.rate_limits),
        connect_timeout=config.connect_timeout,
        read_timeout=config.read_timeout,
        max_pool_connections=max(config.max_workers, 10),
    )
