"""Base class for resource scanners.

A scanner adapts one AWS API family to the common :class:`Resource` record. It lists the
resources of its type in one region, knows which CloudWatch metric dimensions identify a
resource, which type-specific rules apply to it, and how to delete it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from ..aws.client import ClientContext
from ..aws.retry import get_error_code
from ..errors import NukerError, ScanError
from ..models.policy import Policy, RuleKind, TypeRule
from ..models.resource import Resource, ResourceState, ResourceType

logger = logging.getLogger(__name__)

Reference = Tuple[ResourceType, str]


def tags_to_dict(tags: Optional[Iterable[Dict[str, str]]]) -> Dict[str, str]:
    """Convert an AWS ``[{"Key": ..., "Value": ...}]`` list into a dict."""
    return {tag["Key"]: tag.get("Value", "") for tag in tags or []}


class BaseResourceScanner(ABC):
    """Abstract base class for all resource scanners.

    Each scanner should:
    1. Declare its resource_type and service_name
    2. Implement list() to fetch raw provider records
    3. Implement to_resource() to normalize one raw record
    4. Implement delete() to remove one resource
    5. Optionally set can_stop and implement stop() for types that can be stopped

    Class attributes:
        resource_type: Resource type handled by the scanner
        service_name: boto3 service used for listing and deletion
        metric_namespace: CloudWatch namespace for idle checks (None = no idle support)
        supported_rules: Type-specific rule classes this type can match
        can_stop: True if stop() is implemented (target_state: stopped)
    """

    resource_type: ResourceType
    service_name: str
    metric_namespace: Optional[str] = None
    supported_rules: Tuple[type, ...] = ()
    can_stop: bool = False

    def __init__(self, context: ClientContext, region: str):
        """Initialize the scanner.

        Args:
            context: Shared AWS access for the run
            region: Region to scan
        """
        self.context = context
        self.region = region

    def call(self, operation: str, **kwargs: Any) -> Any:
        return self.context.call(self.service_name, self.region, operation, **kwargs)

    def paginate(self, operation: str, **kwargs: Any) -> List[Dict[str, Any]]:
        return self.context.paginate(self.service_name, self.region, operation, **kwargs)

    @abstractmethod
    def list(self) -> Iterable[Dict[str, Any]]:
        """Fetch raw provider records for every resource of this type in the region."""

    @abstractmethod
    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        """Normalize one raw record.

        Raises:
            KeyError, ValueError, TypeError: If the record is malformed
        """

    @abstractmethod
    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        """Delete one resource.

        Raises:
            ClientError: If the provider rejects the deletion
        """

    def stop(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        """Stop one resource without deleting it.

        Raises:
            ClientError: If the provider rejects the request
        """
        raise NotImplementedError(f"{self.resource_type.value} resources cannot be stopped")

    def scan(self, policy: Optional[Policy] = None) -> List[Resource]:
        """List and normalize every resource of this type in the region.

        Malformed records are logged and skipped. Listing failures (auth, region not
        enabled, throttling after retries) raise ScanError.

        Args:
            policy: Policy of the type (unused by most scanners)

        Returns:
            Normalized resources, possibly empty
        """
        try:
            raw_records = list(self.list())
        except ClientError as e:
            raise ScanError(
                f"Failed to list {self.resource_type.value} in {self.region}: {e}",
                region=self.region,
                resource_type=self.resource_type.value,
                error_code=get_error_code(e),
            )
        except (BotoCoreError, NukerError) as e:
            raise ScanError(
                f"Failed to list {self.resource_type.value} in {self.region}: {e}",
                region=self.region,
                resource_type=self.resource_type.value,
                error_code=getattr(e, "error_code", None) or e.__class__.__name__,
            )

        resources = []
        for raw in raw_records:
            try:
                resources.append(self.to_resource(raw))
            except (KeyError, ValueError, TypeError) as e:
                logger.debug(f"Skipping malformed {self.resource_type.value} record in {self.region}: {e}")

        logger.debug(f"Found {len(resources)} {self.resource_type.value} resources in {self.region}")
        return resources

    def describe_tags(self, resource: Resource) -> Dict[str, str]:
        return dict(resource.tags)

    def describe_state(self, resource: Resource) -> ResourceState:
        return resource.state

    def age(self, resource: Resource, now: datetime) -> Optional[float]:
        """Seconds since creation, None when the provider does not report it."""
        return resource.age_seconds(now)

    @classmethod
    def supports_idle(cls) -> bool:
        return cls.metric_namespace is not None

    def metric_dimensions(self, resource: Resource) -> Optional[List[Dict[str, str]]]:
        """CloudWatch dimensions identifying the resource, None if it has no metrics."""
        return None

    def namespace_for(self, resource: Resource) -> Optional[str]:
        return self.metric_namespace

    def references(self, resource: Resource) -> Set[Reference]:
        """Resources this one refers to (attachments, groups, load balancers)."""
        return set(resource.attributes.get("references", ()))

    def required_deletions(self, resource: Resource) -> Set[Reference]:
        """Resources that must be deleted in the same run before this one can be."""
        return set()

    @classmethod
    def skip_reason(cls, resource: Resource) -> Optional[str]:
        """Why the resource must never be marked, None for ordinary resources."""
        return None

    @classmethod
    def supports_rule(cls, rule: TypeRule) -> bool:
        return isinstance(rule, cls.supported_rules)

    @classmethod
    def evaluate_extras(cls, resource: Resource, policy: Policy) -> Dict[RuleKind, str]:
        """Type-specific rules of the policy that match the resource.

        Returns:
            Matched rule kind -> human-readable reason
        """
        matched = {}
        for rule in policy.type_rules:
            if cls.supports_rule(rule) and rule.matches(resource):
                matched[rule.kind] = cls.describe_match(rule, resource)
        return matched

    @classmethod
    def describe_match(cls, rule: TypeRule, resource: Resource) -> str:
        return rule.kind.value.replace("-", " ")
