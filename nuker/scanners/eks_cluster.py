"""EKS cluster scanner."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError

from ..aws.retry import get_error_code
from ..models.policy import Policy
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner
from .registry import register_scanner

logger = logging.getLogger(__name__)


@register_scanner
class EKSClusterScanner(BaseResourceScanner):
    """Scanner for EKS clusters.

    Deleting a cluster first deletes its managed node groups and Fargate profiles,
    waiting for each to disappear, since EKS refuses to delete a cluster that still
    has them.
    """

    resource_type = ResourceType.EKS_CLUSTER
    service_name = "eks"

    def _nodegroups(self, cluster_name: str) -> List[str]:
        names = []
        for page in self.paginate("list_nodegroups", clusterName=cluster_name):
            names.extend(page.get("nodegroups", []))
        return names

    def _fargate_profiles(self, cluster_name: str) -> List[str]:
        names = []
        for page in self.paginate("list_fargate_profiles", clusterName=cluster_name):
            names.extend(page.get("fargateProfileNames", []))
        return names

    def _instance_types(self, cluster_name: str) -> List[str]:
        types = set()
        for nodegroup in self._nodegroups(cluster_name):
            described = self.call("describe_nodegroup", clusterName=cluster_name, nodegroupName=nodegroup)
            types.update(described["nodegroup"].get("instanceTypes") or [])
        return sorted(types)

    def list(self) -> Iterable[Dict[str, Any]]:
        for page in self.paginate("list_clusters"):
            for name in page.get("clusters", []):
                try:
                    cluster = self.call("describe_cluster", name=name)["cluster"]
                except ClientError as e:
                    logger.warning(f"Skipping EKS cluster {name}: {get_error_code(e)}")
                    continue

                try:
                    cluster = dict(cluster, instanceTypes=self._instance_types(name))
                except ClientError as e:
                    logger.warning(f"Could not list node groups of {name}: {get_error_code(e)}")
                yield cluster

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        vpc_config = raw.get("resourcesVpcConfig", {})
        security_groups = list(vpc_config.get("securityGroupIds", []))
        if vpc_config.get("clusterSecurityGroupId"):
            security_groups.append(vpc_config["clusterSecurityGroupId"])

        return Resource(
            id=raw["name"],
            type=self.resource_type,
            region=self.region,
            tags=dict(raw.get("tags") or {}),
            state=ResourceState.from_provider(raw.get("status")),
            created_at=raw.get("createdAt"),
            arn=raw.get("arn"),
            attributes={
                "version": raw.get("version"),
                "instance_types": tuple(raw.get("instanceTypes", ())),
                "references": tuple((ResourceType.EC2_SECURITY_GROUP, sg_id) for sg_id in security_groups),
            },
        )

    def _wait(self, waiter_name: str, **params: Any) -> None:
        self.context.client(self.service_name, self.region).get_waiter(waiter_name).wait(**params)

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        nodegroups = self._nodegroups(resource.id)
        for nodegroup in nodegroups:
            logger.debug(f"Deleting node group {nodegroup} of cluster {resource.id}")
            self.call("delete_nodegroup", clusterName=resource.id, nodegroupName=nodegroup)
        for nodegroup in nodegroups:
            self._wait("nodegroup_deleted", clusterName=resource.id, nodegroupName=nodegroup)

        # EKS deletes one Fargate profile at a time per cluster
        for profile in self._fargate_profiles(resource.id):
            logger.debug(f"Deleting Fargate profile {profile} of cluster {resource.id}")
            self.call("delete_fargate_profile", clusterName=resource.id, fargateProfileName=profile)
            self._wait("fargate_profile_deleted", clusterName=resource.id, fargateProfileName=profile)

        self.call("delete_cluster", name=resource.id)
