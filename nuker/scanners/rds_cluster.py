"""Aurora DB cluster scanner."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError

from ..aws.retry import get_error_code
from ..models.policy import Policy
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .rds_instance import last_stopped_at
from .registry import register_scanner

logger = logging.getLogger(__name__)


@register_scanner
class RDSClusterScanner(BaseResourceScanner):
    """Scanner for Aurora DB clusters.

    The cluster is the unit of cleanup: its member instances are listed only to report
    their instance classes, and are deleted together with the cluster.
    """

    resource_type = ResourceType.RDS_CLUSTER
    service_name = "rds"
    metric_namespace = "AWS/RDS"
    can_stop = True

    def _instance_classes(self) -> Dict[str, str]:
        classes = {}
        for page in self.paginate("describe_db_instances"):
            for instance in page.get("DBInstances", []):
                classes[instance["DBInstanceIdentifier"]] = instance.get("DBInstanceClass")
        return classes

    def list(self) -> Iterable[Dict[str, Any]]:
        clusters = []
        for page in self.paginate("describe_db_clusters"):
            clusters.extend(c for c in page.get("DBClusters", []) if c.get("Engine", "").startswith("aurora"))
        if not clusters:
            return

        classes = self._instance_classes()
        for cluster in clusters:
            cluster_id = cluster["DBClusterIdentifier"]
            members = [m["DBInstanceIdentifier"] for m in cluster.get("DBClusterMembers", [])]
            cluster = dict(cluster, InstanceTypes=sorted({classes[m] for m in members if classes.get(m)}))

            if cluster.get("Status") == "stopped":
                try:
                    cluster["StoppedAt"] = last_stopped_at(self, cluster_id, "db-cluster")
                except ClientError as e:
                    logger.warning(f"Could not read events of {cluster_id}: {get_error_code(e)}")
            yield cluster

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        return Resource(
            id=raw["DBClusterIdentifier"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("TagList")),
            state=ResourceState.from_provider(raw["Status"]),
            created_at=raw.get("ClusterCreateTime"),
            arn=raw.get("DBClusterArn"),
            attributes={
                "engine": raw.get("Engine"),
                "instance_types": tuple(raw.get("InstanceTypes", ())),
                "members": tuple(m["DBInstanceIdentifier"] for m in raw.get("DBClusterMembers", [])),
                "deletion_protection": bool(raw.get("DeletionProtection")),
                "stopped_at": raw.get("StoppedAt"),
                "references": tuple(
                    (ResourceType.EC2_SECURITY_GROUP, sg["VpcSecurityGroupId"])
                    for sg in raw.get("VpcSecurityGroups", [])
                ),
            },
        )

    def metric_dimensions(self, resource: Resource) -> List[Dict[str, str]]:
        return [{"Name": "DBClusterIdentifier", "Value": resource.id}]

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        ignore_protection = policy is not None and policy.ignore_termination_protection
        if ignore_protection and resource.attributes.get("deletion_protection"):
            logger.debug(f"Deletion protection enabled for {resource.id}, disabling it")
            self.call(
                "modify_db_cluster",
                DBClusterIdentifier=resource.id,
                DeletionProtection=False,
                ApplyImmediately=True,
            )

        for member in resource.attributes.get("members", ()):
            logger.debug(f"Deleting member {member} of cluster {resource.id}")
            self.call("delete_db_instance", DBInstanceIdentifier=member, SkipFinalSnapshot=True)
        self.call("delete_db_cluster", DBClusterIdentifier=resource.id, SkipFinalSnapshot=True)

    def stop(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        self.call("stop_db_cluster", DBClusterIdentifier=resource.id)
