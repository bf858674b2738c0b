"""EC2 security group scanner."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..models.policy import OpenIngressRule, Policy
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner

logger = logging.getLogger(__name__)


def normalize_permission(permission: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten an IpPermission into protocol, port range and source CIDRs."""
    cidrs = [r["CidrIp"] for r in permission.get("IpRanges", []) if "CidrIp" in r]
    cidrs.extend(r["CidrIpv6"] for r in permission.get("Ipv6Ranges", []) if "CidrIpv6" in r)
    return {
        "protocol": str(permission.get("IpProtocol", "-1")),
        "from_port": permission.get("FromPort"),
        "to_port": permission.get("ToPort"),
        "cidrs": tuple(cidrs),
    }


@register_scanner
class SecurityGroupScanner(BaseResourceScanner):
    """Scanner for EC2 security groups. Default groups cannot be deleted and are not listed."""

    resource_type = ResourceType.EC2_SECURITY_GROUP
    service_name = "ec2"
    supported_rules = (OpenIngressRule,)

    def list(self) -> Iterable[Dict[str, Any]]:
        for page in self.paginate("describe_security_groups"):
            for group in page.get("SecurityGroups", []):
                if group.get("GroupName") == "default":
                    continue
                yield group

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        ingress = tuple(normalize_permission(p) for p in raw.get("IpPermissions", []))

        return Resource(
            id=raw["GroupId"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=ResourceState.AVAILABLE,
            attributes={
                "name": raw["GroupName"],
                "vpc_id": raw.get("VpcId"),
                "ingress": ingress,
            },
        )

    @classmethod
    def describe_match(cls, rule: Any, resource: Resource) -> str:
        return f"ingress open to {', '.join(rule.cidrs)} on ports {rule.from_port}-{rule.to_port}"

    def _referencing_permissions(self, group_id: str) -> List[Dict[str, Any]]:
        """Ingress rules of other groups that use ``group_id`` as their source."""
        found = []
        pages = self.paginate(
            "describe_security_groups",
            Filters=[{"Name": "ip-permission.group-id", "Values": [group_id]}],
        )
        for page in pages:
            for group in page.get("SecurityGroups", []):
                if group["GroupId"] == group_id:
                    continue
                for permission in group.get("IpPermissions", []):
                    pairs = [p for p in permission.get("UserIdGroupPairs", []) if p.get("GroupId") == group_id]
                    if not pairs:
                        continue
                    revoke = {k: v for k, v in permission.items() if k in ("IpProtocol", "FromPort", "ToPort")}
                    revoke["UserIdGroupPairs"] = [{"GroupId": group_id}]
                    found.append({"GroupId": group["GroupId"], "IpPermissions": [revoke]})
        return found

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        for revoke in self._referencing_permissions(resource.id):
            logger.debug(f"Revoking ingress in {revoke['GroupId']} that references {resource.id}")
            self.call("revoke_security_group_ingress", **revoke)
        self.call("delete_security_group", GroupId=resource.id)
