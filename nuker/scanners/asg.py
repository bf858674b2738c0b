"""Auto Scaling group scanner."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from ..models.policy import Policy, UnassociatedRule
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner


@register_scanner
class AutoScalingGroupScanner(BaseResourceScanner):
    """Scanner for Auto Scaling groups.

    A group is unassociated when it has no instances and is attached to no load balancer
    or target group.
    """

    resource_type = ResourceType.ASG
    service_name = "autoscaling"
    supported_rules = (UnassociatedRule,)

    def list(self) -> Iterable[Dict[str, Any]]:
        for page in self.paginate("describe_auto_scaling_groups"):
            yield from page.get("AutoScalingGroups", [])

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        instance_ids = tuple(i["InstanceId"] for i in raw.get("Instances", []))
        load_balancers = tuple(raw.get("LoadBalancerNames", []))
        target_groups = tuple(raw.get("TargetGroupARNs", []))

        # Status is only present while the group is being deleted
        state = ResourceState.DELETING if raw.get("Status") else ResourceState.RUNNING

        return Resource(
            id=raw["AutoScalingGroupName"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=state,
            created_at=raw.get("CreatedTime"),
            arn=raw.get("AutoScalingGroupARN"),
            attributes={
                "desired_capacity": raw.get("DesiredCapacity"),
                "load_balancers": load_balancers,
                "target_groups": target_groups,
                "associated": bool(instance_ids or load_balancers or target_groups),
                "references": tuple((ResourceType.EC2_INSTANCE, i) for i in instance_ids),
            },
        )

    @classmethod
    def describe_match(cls, rule: Any, resource: Resource) -> str:
        return "group has no instances and no load balancers"

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        self.call("delete_auto_scaling_group", AutoScalingGroupName=resource.id, ForceDelete=True)
