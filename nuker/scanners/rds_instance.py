"""RDS DB instance scanner."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError

from ..aws.retry import get_error_code
from ..models.policy import Policy, PublicAccessRule
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner

logger = logging.getLogger(__name__)

# Aurora instances belong to a cluster and cannot be deleted on their own
_CLUSTER_ENGINES = {"aurora", "aurora-mysql", "aurora-postgresql"}

# RDS keeps events for 14 days
EVENT_WINDOW_MINUTES = 14 * 24 * 60


def last_stopped_at(scanner: BaseResourceScanner, source_id: str, source_type: str) -> Optional[datetime]:
    """Time of the most recent stop event of an instance or cluster, if still within the event window."""
    response = scanner.call(
        "describe_events",
        SourceIdentifier=source_id,
        SourceType=source_type,
        Duration=EVENT_WINDOW_MINUTES,
        EventCategories=["notification"],
    )
    stops = [e["Date"] for e in response.get("Events", []) if "stopped" in e.get("Message", "").lower()]
    return max(stops) if stops else None


@register_scanner
class RDSInstanceScanner(BaseResourceScanner):
    """Scanner for RDS DB instances (non-Aurora)."""

    resource_type = ResourceType.RDS_INSTANCE
    service_name = "rds"
    metric_namespace = "AWS/RDS"
    supported_rules = (PublicAccessRule,)
    can_stop = True

    def list(self) -> Iterable[Dict[str, Any]]:
        for page in self.paginate("describe_db_instances"):
            for instance in page.get("DBInstances", []):
                if instance.get("Engine") in _CLUSTER_ENGINES:
                    continue
                if instance.get("DBInstanceStatus") == "stopped":
                    instance_id = instance["DBInstanceIdentifier"]
                    try:
                        stopped_at = last_stopped_at(self, instance_id, "db-instance")
                    except ClientError as e:
                        logger.warning(f"Could not read events of {instance_id}: {get_error_code(e)}")
                        stopped_at = None
                    instance = dict(instance, StoppedAt=stopped_at)
                yield instance

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        security_groups = raw.get("VpcSecurityGroups", [])

        return Resource(
            id=raw["DBInstanceIdentifier"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("TagList")),
            state=ResourceState.from_provider(raw["DBInstanceStatus"]),
            created_at=raw.get("InstanceCreateTime"),
            arn=raw.get("DBInstanceArn"),
            attributes={
                "instance_type": raw.get("DBInstanceClass"),
                "engine": raw.get("Engine"),
                "public": bool(raw.get("PubliclyAccessible")),
                "deletion_protection": bool(raw.get("DeletionProtection")),
                "stopped_at": raw.get("StoppedAt"),
                "references": tuple(
                    (ResourceType.EC2_SECURITY_GROUP, sg["VpcSecurityGroupId"]) for sg in security_groups
                ),
            },
        )

    def metric_dimensions(self, resource: Resource) -> List[Dict[str, str]]:
        return [{"Name": "DBInstanceIdentifier", "Value": resource.id}]

    @classmethod
    def describe_match(cls, rule: Any, resource: Resource) -> str:
        return "instance is publicly accessible"

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        ignore_protection = policy is not None and policy.ignore_termination_protection
        if ignore_protection and resource.attributes.get("deletion_protection"):
            logger.debug(f"Deletion protection enabled for {resource.id}, disabling it")
            self.call(
                "modify_db_instance",
                DBInstanceIdentifier=resource.id,
                DeletionProtection=False,
                ApplyImmediately=True,
            )
        self.call(
            "delete_db_instance",
            DBInstanceIdentifier=resource.id,
            SkipFinalSnapshot=True,
            DeleteAutomatedBackups=False,
        )

    def stop(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        self.call("stop_db_instance", DBInstanceIdentifier=resource.id)
