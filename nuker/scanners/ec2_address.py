"""Elastic IP address scanner."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from ..models.policy import Policy, UnassociatedRule
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner


@register_scanner
class EC2AddressScanner(BaseResourceScanner):
    """Scanner for Elastic IP addresses (VPC allocations)."""

    resource_type = ResourceType.EC2_ADDRESS
    service_name = "ec2"
    supported_rules = (UnassociatedRule,)

    def list(self) -> Iterable[Dict[str, Any]]:
        # describe_addresses is not paginated
        return self.call("describe_addresses").get("Addresses", [])

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        associated = bool(raw.get("AssociationId"))
        references = ()
        if raw.get("InstanceId"):
            references = ((ResourceType.EC2_INSTANCE, raw["InstanceId"]),)

        return Resource(
            id=raw["AllocationId"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=ResourceState.IN_USE if associated else ResourceState.AVAILABLE,
            attributes={
                "public_ip": raw.get("PublicIp"),
                "associated": associated,
                "references": references,
            },
        )

    @classmethod
    def describe_match(cls, rule: Any, resource: Resource) -> str:
        return f"address {resource.attributes.get('public_ip')} is not associated"

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        self.call("release_address", AllocationId=resource.id)
