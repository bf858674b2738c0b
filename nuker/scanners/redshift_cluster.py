"""Redshift cluster scanner."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from ..models.policy import Policy, PublicAccessRule
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner


@register_scanner
class RedshiftClusterScanner(BaseResourceScanner):
    """Scanner for Redshift provisioned clusters."""

    resource_type = ResourceType.REDSHIFT_CLUSTER
    service_name = "redshift"
    metric_namespace = "AWS/Redshift"
    supported_rules = (PublicAccessRule,)
    can_stop = True

    def list(self) -> Iterable[Dict[str, Any]]:
        for page in self.paginate("describe_clusters"):
            yield from page.get("Clusters", [])

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        return Resource(
            id=raw["ClusterIdentifier"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=ResourceState.from_provider(raw["ClusterStatus"]),
            created_at=raw.get("ClusterCreateTime"),
            attributes={
                "instance_type": raw.get("NodeType"),
                "node_count": raw.get("NumberOfNodes"),
                "public": bool(raw.get("PubliclyAccessible")),
                "references": tuple(
                    (ResourceType.EC2_SECURITY_GROUP, sg["VpcSecurityGroupId"])
                    for sg in raw.get("VpcSecurityGroups", [])
                ),
            },
        )

    def metric_dimensions(self, resource: Resource) -> List[Dict[str, str]]:
        return [{"Name": "ClusterIdentifier", "Value": resource.id}]

    @classmethod
    def describe_match(cls, rule: Any, resource: Resource) -> str:
        return "cluster is publicly accessible"

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        self.call("delete_cluster", ClusterIdentifier=resource.id, SkipFinalClusterSnapshot=True)

    def stop(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        """Pause the cluster. A paused cluster keeps its data and stops compute billing."""
        self.call("pause_cluster", ClusterIdentifier=resource.id)
