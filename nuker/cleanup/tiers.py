"""Static deletion order.

Lower tiers are deleted first. A type is placed before the types it holds on to:
auto scaling groups and EKS clusters before the instances they launch, instances and
databases before the volumes, addresses and security groups they use.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, TypeVar

from ..models.resource import ResourceType

DELETION_TIERS: Dict[ResourceType, int] = {
    ResourceType.ASG: 0,
    ResourceType.EKS_CLUSTER: 0,
    ResourceType.EMR_CLUSTER: 0,
    ResourceType.REDSHIFT_CLUSTER: 0,
    ResourceType.EC2_INSTANCE: 1,
    ResourceType.RDS_INSTANCE: 1,
    ResourceType.RDS_CLUSTER: 1,
    ResourceType.ES_DOMAIN: 1,
    ResourceType.SAGEMAKER_NOTEBOOK: 1,
    ResourceType.ELB: 2,
    ResourceType.EBS_VOLUME: 3,
    ResourceType.EBS_SNAPSHOT: 3,
    ResourceType.EC2_ADDRESS: 3,
    ResourceType.S3_BUCKET: 3,
    ResourceType.EC2_SECURITY_GROUP: 4,
}

# Types missing from the table go last
DEFAULT_TIER = max(DELETION_TIERS.values()) + 1

T = TypeVar("T")


def tier_of(resource_type: ResourceType) -> int:
    return DELETION_TIERS.get(resource_type, DEFAULT_TIER)


def group_by_tier(items: Iterable[T], key=lambda item: item.resource.type) -> List[List[T]]:
    """Group items into tiers, lowest tier first. Empty tiers are omitted."""
    tiers: Dict[int, List[T]] = defaultdict(list)
    for item in items:
        tiers[tier_of(key(item))].append(item)
    return [tiers[t] for t in sorted(tiers)]
