"""EC2 instance scanner."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from ..models.policy import Policy
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner

logger = logging.getLogger(__name__)

# StateTransitionReason looks like "User initiated (2024-01-31 10:15:00 GMT)"
_TRANSITION_TIME = re.compile(r"\((\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}) GMT\)")


def parse_transition_time(reason: Optional[str]) -> Optional[datetime]:
    """Extract the timestamp embedded in an EC2 state transition reason."""
    if not reason:
        return None
    match = _TRANSITION_TIME.search(reason)
    if not match:
        return None
    return datetime.strptime(match.group(1), "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc)


@register_scanner
class EC2InstanceScanner(BaseResourceScanner):
    """Scanner for EC2 instances."""

    resource_type = ResourceType.EC2_INSTANCE
    service_name = "ec2"
    metric_namespace = "AWS/EC2"
    can_stop = True

    def list(self) -> Iterable[Dict[str, Any]]:
        for page in self.paginate("describe_instances"):
            for reservation in page.get("Reservations", []):
                yield from reservation.get("Instances", [])

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        instance_id = raw["InstanceId"]
        state = ResourceState.from_provider(raw["State"]["Name"])

        references = {(ResourceType.EC2_SECURITY_GROUP, sg["GroupId"]) for sg in raw.get("SecurityGroups", [])}
        for mapping in raw.get("BlockDeviceMappings", []):
            volume_id = mapping.get("Ebs", {}).get("VolumeId")
            if volume_id:
                references.add((ResourceType.EBS_VOLUME, volume_id))

        stopped_at = None
        if state is ResourceState.STOPPED:
            stopped_at = parse_transition_time(raw.get("StateTransitionReason"))

        return Resource(
            id=instance_id,
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=state,
            created_at=raw.get("LaunchTime"),
            attributes={
                "instance_type": raw.get("InstanceType"),
                "stopped_at": stopped_at,
                "references": tuple(sorted(references, key=lambda r: (r[0].value, r[1]))),
            },
        )

    def metric_dimensions(self, resource: Resource) -> List[Dict[str, str]]:
        return [{"Name": "InstanceId", "Value": resource.id}]

    def disable_termination_protection(self, instance_id: str) -> None:
        response = self.call(
            "describe_instance_attribute",
            Attribute="disableApiTermination",
            InstanceId=instance_id,
        )
        if response.get("DisableApiTermination", {}).get("Value"):
            logger.debug(f"Termination protection enabled for {instance_id}, disabling it")
            self.call(
                "modify_instance_attribute",
                InstanceId=instance_id,
                DisableApiTermination={"Value": False},
            )

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        if policy is not None and policy.ignore_termination_protection:
            self.disable_termination_protection(resource.id)
        self.call("terminate_instances", InstanceIds=[resource.id])

    def stop(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        self.call("stop_instances", InstanceIds=[resource.id])
