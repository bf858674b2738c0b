"""Elasticsearch (OpenSearch) domain scanner."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError

from ..aws.retry import get_error_code
from ..models.policy import Policy
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner

logger = logging.getLogger(__name__)

# describe_elasticsearch_domains accepts at most 5 names per request
DESCRIBE_BATCH_SIZE = 5


def domain_state(status: Dict[str, Any]) -> ResourceState:
    if status.get("Deleted"):
        return ResourceState.DELETING
    if status.get("Processing") or not status.get("Created"):
        return ResourceState.PENDING
    return ResourceState.RUNNING


def account_from_arn(arn: Optional[str]) -> Optional[str]:
    """Account id of an ARN (``arn:aws:es:us-east-1:123456789012:domain/logs``)."""
    parts = (arn or "").split(":")
    return parts[4] if len(parts) > 5 and parts[4] else None


@register_scanner
class ESDomainScanner(BaseResourceScanner):
    """Scanner for Elasticsearch domains.

    Domain metrics are published per domain and owning account, so the account id is
    read from the domain ARN.
    """

    resource_type = ResourceType.ES_DOMAIN
    service_name = "es"
    metric_namespace = "AWS/ES"

    def _tags(self, arn: str) -> List[Dict[str, str]]:
        return self.call("list_tags", ARN=arn).get("TagList", [])

    def _created_at(self, name: str) -> Optional[datetime]:
        config = self.call("describe_elasticsearch_domain_config", DomainName=name)["DomainConfig"]
        return config.get("ElasticsearchClusterConfig", {}).get("Status", {}).get("CreationDate")

    def list(self) -> Iterable[Dict[str, Any]]:
        names = [d["DomainName"] for d in self.call("list_domain_names").get("DomainNames", [])]

        for start in range(0, len(names), DESCRIBE_BATCH_SIZE):
            batch = names[start : start + DESCRIBE_BATCH_SIZE]
            try:
                statuses = self.call("describe_elasticsearch_domains", DomainNames=batch)["DomainStatusList"]
            except ClientError as e:
                logger.warning(f"Skipping domains {', '.join(batch)}: {get_error_code(e)}")
                continue

            for status in statuses:
                name = status["DomainName"]
                try:
                    tags = self._tags(status["ARN"])
                    created_at = self._created_at(name)
                except ClientError as e:
                    logger.warning(f"Skipping domain {name}: {get_error_code(e)}")
                    continue
                yield dict(status, Tags=tags, CreatedAt=created_at)

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        cluster_config = raw.get("ElasticsearchClusterConfig", {})
        instance_types = {cluster_config.get("InstanceType")}
        if cluster_config.get("DedicatedMasterEnabled"):
            instance_types.add(cluster_config.get("DedicatedMasterType"))
        instance_types.discard(None)

        return Resource(
            id=raw["DomainName"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=domain_state(raw),
            created_at=raw.get("CreatedAt"),
            arn=raw.get("ARN"),
            attributes={
                "instance_types": tuple(sorted(instance_types)),
                "instance_count": cluster_config.get("InstanceCount"),
                "engine_version": raw.get("ElasticsearchVersion"),
                "references": tuple(
                    (ResourceType.EC2_SECURITY_GROUP, sg_id)
                    for sg_id in raw.get("VPCOptions", {}).get("SecurityGroupIds", [])
                ),
            },
        )

    def metric_dimensions(self, resource: Resource) -> Optional[List[Dict[str, str]]]:
        account = account_from_arn(resource.arn)
        if account is None:
            return None
        return [
            {"Name": "DomainName", "Value": resource.id},
            {"Name": "ClientId", "Value": account},
        ]

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        self.call("delete_elasticsearch_domain", DomainName=resource.id)
