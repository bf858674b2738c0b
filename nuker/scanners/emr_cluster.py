"""EMR cluster scanner."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError

from ..aws.retry import get_error_code
from ..models.policy import Policy
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner

logger = logging.getLogger(__name__)

ACTIVE_CLUSTER_STATES = ["STARTING", "BOOTSTRAPPING", "RUNNING", "WAITING"]


@register_scanner
class EMRClusterScanner(BaseResourceScanner):
    """Scanner for active EMR clusters."""

    resource_type = ResourceType.EMR_CLUSTER
    service_name = "emr"
    metric_namespace = "AWS/ElasticMapReduce"

    def _instance_types(self, cluster_id: str) -> List[str]:
        types = set()
        for page in self.paginate("list_instance_groups", ClusterId=cluster_id):
            for group in page.get("InstanceGroups", []):
                if group.get("InstanceType"):
                    types.add(group["InstanceType"])
        return sorted(types)

    def list(self) -> Iterable[Dict[str, Any]]:
        for page in self.paginate("list_clusters", ClusterStates=ACTIVE_CLUSTER_STATES):
            for summary in page.get("Clusters", []):
                cluster_id = summary["Id"]
                try:
                    cluster = self.call("describe_cluster", ClusterId=cluster_id)["Cluster"]
                except ClientError as e:
                    logger.warning(f"Skipping EMR cluster {cluster_id}: {get_error_code(e)}")
                    continue

                if cluster.get("InstanceCollectionType") == "INSTANCE_GROUP":
                    try:
                        cluster = dict(cluster, InstanceTypes=self._instance_types(cluster_id))
                    except ClientError as e:
                        logger.warning(f"Could not list instance groups of {cluster_id}: {get_error_code(e)}")
                yield cluster

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        status = raw["Status"]
        return Resource(
            id=raw["Id"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=ResourceState.from_provider(status["State"]),
            created_at=status.get("Timeline", {}).get("CreationDateTime"),
            arn=raw.get("ClusterArn"),
            attributes={
                "name": raw.get("Name"),
                "instance_types": tuple(raw.get("InstanceTypes", ())),
                "termination_protected": bool(raw.get("TerminationProtected")),
            },
        )

    def metric_dimensions(self, resource: Resource) -> List[Dict[str, str]]:
        return [{"Name": "JobFlowId", "Value": resource.id}]

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        ignore_protection = policy is not None and policy.ignore_termination_protection
        if ignore_protection and resource.attributes.get("termination_protected"):
            logger.debug(f"Termination protection enabled for {resource.id}, disabling it")
            self.call("set_termination_protection", JobFlowIds=[resource.id], TerminationProtected=False)
        self.call("terminate_job_flows", JobFlowIds=[resource.id])
