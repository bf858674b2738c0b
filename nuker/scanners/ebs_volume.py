"""EBS volume scanner."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from ..models.policy import Policy, UnassociatedRule
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, Reference, tags_to_dict
from .registry import register_scanner

logger = logging.getLogger(__name__)

ROOT_DEVICE_NAMES = {"/dev/sda1", "/dev/xvda"}


@register_scanner
class EBSVolumeScanner(BaseResourceScanner):
    """Scanner for EBS volumes. A volume in state ``available`` is unattached.

    Root volumes are never marked. An attached volume is only deleted once every
    instance it is attached to has been deleted in the same run.
    """

    resource_type = ResourceType.EBS_VOLUME
    service_name = "ec2"
    metric_namespace = "AWS/EBS"
    supported_rules = (UnassociatedRule,)

    def list(self) -> Iterable[Dict[str, Any]]:
        for page in self.paginate("describe_volumes"):
            yield from page.get("Volumes", [])

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        attachments = tuple(
            (a["InstanceId"], a.get("Device")) for a in raw.get("Attachments", []) if a.get("InstanceId")
        )
        root_attachments = [instance_id for instance_id, device in attachments if device in ROOT_DEVICE_NAMES]

        return Resource(
            id=raw["VolumeId"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=ResourceState.from_provider(raw["State"]),
            created_at=raw.get("CreateTime"),
            attributes={
                "volume_type": raw.get("VolumeType"),
                "size_gib": raw.get("Size"),
                "associated": raw["State"] != "available",
                "attached_to": tuple(instance_id for instance_id, _ in attachments),
                "attachments": attachments,
                "root_of": tuple(root_attachments),
            },
        )

    def metric_dimensions(self, resource: Resource) -> List[Dict[str, str]]:
        return [{"Name": "VolumeId", "Value": resource.id}]

    @classmethod
    def skip_reason(cls, resource: Resource) -> Optional[str]:
        root_of = resource.attributes.get("root_of")
        if root_of:
            return f"root volume of {', '.join(root_of)}"
        return None

    def required_deletions(self, resource: Resource) -> Set[Reference]:
        return {(ResourceType.EC2_INSTANCE, instance_id) for instance_id in resource.attributes.get("attached_to", ())}

    @classmethod
    def describe_match(cls, rule: Any, resource: Resource) -> str:
        return "volume is not attached to any instance"

    def _is_attached(self, volume_id: str) -> bool:
        volumes = self.call("describe_volumes", VolumeIds=[volume_id]).get("Volumes", [])
        return any(v.get("State") == "in-use" for v in volumes)

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        # The instances were deleted in an earlier tier; the volume may already be free
        if resource.state is ResourceState.IN_USE and self._is_attached(resource.id):
            logger.debug(f"Detaching volume {resource.id}")
            self.call("detach_volume", VolumeId=resource.id, Force=True)
            self.context.client(self.service_name, self.region).get_waiter("volume_available").wait(
                VolumeIds=[resource.id]
            )
        self.call("delete_volume", VolumeId=resource.id)
