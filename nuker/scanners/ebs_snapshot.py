"""EBS snapshot scanner."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from ..models.policy import Policy
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner


@register_scanner
class EBSSnapshotScanner(BaseResourceScanner):
    """Scanner for EBS snapshots owned by the account.

    Snapshots backing a registered AMI cannot be deleted; AWS reports them as in use.
    """

    resource_type = ResourceType.EBS_SNAPSHOT
    service_name = "ec2"

    def list(self) -> Iterable[Dict[str, Any]]:
        for page in self.paginate("describe_snapshots", OwnerIds=["self"]):
            yield from page.get("Snapshots", [])

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        return Resource(
            id=raw["SnapshotId"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=ResourceState.from_provider(raw.get("State")),
            created_at=raw.get("StartTime"),
            attributes={
                "volume_id": raw.get("VolumeId"),
                "size_gib": raw.get("VolumeSize"),
                "description": raw.get("Description"),
            },
        )

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        self.call("delete_snapshot", SnapshotId=resource.id)
