"""Application and network load balancer scanner (elbv2)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..models.policy import Policy
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner

logger = logging.getLogger(__name__)

# describe_tags accepts at most 20 ARNs per call
_TAG_BATCH_SIZE = 20

_NAMESPACES = {
    "application": "AWS/ApplicationELB",
    "network": "AWS/NetworkELB",
}


@register_scanner
class LoadBalancerScanner(BaseResourceScanner):
    """Scanner for application and network load balancers."""

    resource_type = ResourceType.ELB
    service_name = "elbv2"
    metric_namespace = "AWS/ApplicationELB"

    def _tags_by_arn(self, arns: List[str]) -> Dict[str, List[Dict[str, str]]]:
        tags: Dict[str, List[Dict[str, str]]] = {}
        for i in range(0, len(arns), _TAG_BATCH_SIZE):
            response = self.call("describe_tags", ResourceArns=arns[i : i + _TAG_BATCH_SIZE])
            for description in response.get("TagDescriptions", []):
                tags[description["ResourceArn"]] = description.get("Tags", [])
        return tags

    def list(self) -> Iterable[Dict[str, Any]]:
        load_balancers = []
        for page in self.paginate("describe_load_balancers"):
            load_balancers.extend(page.get("LoadBalancers", []))

        arns = [lb["LoadBalancerArn"] for lb in load_balancers if lb.get("LoadBalancerArn")]
        tags = self._tags_by_arn(arns) if arns else {}
        for lb in load_balancers:
            yield dict(lb, Tags=tags.get(lb.get("LoadBalancerArn"), []))

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        arn = raw["LoadBalancerArn"]
        # arn:aws:elasticloadbalancing:region:account:loadbalancer/app/name/id
        metric_id = arn.split(":loadbalancer/", 1)[1]

        return Resource(
            id=raw["LoadBalancerName"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=ResourceState.from_provider(raw.get("State", {}).get("Code")),
            created_at=raw.get("CreatedTime"),
            arn=arn,
            attributes={
                "lb_type": raw.get("Type", "application"),
                "scheme": raw.get("Scheme"),
                "metric_id": metric_id,
                "references": tuple(
                    (ResourceType.EC2_SECURITY_GROUP, sg) for sg in raw.get("SecurityGroups", [])
                ),
            },
        )

    def namespace_for(self, resource: Resource) -> Optional[str]:
        return _NAMESPACES.get(resource.attributes.get("lb_type"), self.metric_namespace)

    def metric_dimensions(self, resource: Resource) -> List[Dict[str, str]]:
        return [{"Name": "LoadBalancer", "Value": resource.attributes["metric_id"]}]

    def disable_deletion_protection(self, arn: str) -> None:
        self.call(
            "modify_load_balancer_attributes",
            LoadBalancerArn=arn,
            Attributes=[{"Key": "deletion_protection.enabled", "Value": "false"}],
        )

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        if policy is not None and policy.ignore_termination_protection:
            logger.debug(f"Disabling deletion protection for {resource.id}")
            self.disable_deletion_protection(resource.arn)
        self.call("delete_load_balancer", LoadBalancerArn=resource.arn)
