"""S3 bucket scanner.

Bucket listing is global; each scan keeps only the buckets located in its own region so
every bucket is reported exactly once.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError

from ..aws.retry import get_error_code
from ..models.policy import DnsCompliantNameRule, NamingPrefixRule, Policy, PublicAccessRule
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner

logger = logging.getLogger(__name__)

PUBLIC_GRANTEES = {
    "http://acs.amazonaws.com/groups/global/AllUsers",
    "http://acs.amazonaws.com/groups/global/AuthenticatedUsers",
}

# delete_objects accepts at most 1000 keys per request
_DELETE_BATCH_SIZE = 1000


def normalize_location(location: Optional[str]) -> str:
    """Map a LocationConstraint to a region name."""
    if not location:
        return "us-east-1"
    if location == "EU":
        return "eu-west-1"
    return location


@register_scanner
class S3BucketScanner(BaseResourceScanner):
    """Scanner for S3 buckets."""

    resource_type = ResourceType.S3_BUCKET
    service_name = "s3"
    supported_rules = (DnsCompliantNameRule, PublicAccessRule, NamingPrefixRule)

    def _bucket_tags(self, name: str) -> List[Dict[str, str]]:
        try:
            return self.call("get_bucket_tagging", Bucket=name).get("TagSet", [])
        except ClientError as e:
            if get_error_code(e) == "NoSuchTagSet":
                return []
            raise

    def _is_public(self, name: str) -> bool:
        try:
            status = self.call("get_bucket_policy_status", Bucket=name)
            if status.get("PolicyStatus", {}).get("IsPublic"):
                logger.debug(f"Bucket {name} policy status is public")
                return True
        except ClientError as e:
            if get_error_code(e) != "NoSuchBucketPolicy":
                raise

        grants = self.call("get_bucket_acl", Bucket=name).get("Grants", [])
        return any(g.get("Grantee", {}).get("URI") in PUBLIC_GRANTEES for g in grants)

    def list(self) -> Iterable[Dict[str, Any]]:
        buckets = self.call("list_buckets").get("Buckets", [])
        for bucket in buckets:
            name = bucket["Name"]
            try:
                location = self.call("get_bucket_location", Bucket=name).get("LocationConstraint")
                if normalize_location(location) != self.region:
                    continue
                yield dict(bucket, Tags=self._bucket_tags(name), IsPublic=self._is_public(name))
            except ClientError as e:
                logger.warning(f"Skipping bucket {name}: {get_error_code(e)}")

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        name = raw["Name"]
        return Resource(
            id=name,
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=ResourceState.AVAILABLE,
            created_at=raw.get("CreationDate"),
            arn=f"arn:aws:s3:::{name}",
            attributes={"public": bool(raw.get("IsPublic"))},
        )

    @classmethod
    def describe_match(cls, rule: Any, resource: Resource) -> str:
        if isinstance(rule, DnsCompliantNameRule):
            return f"bucket name '{resource.id}' is not DNS compliant"
        if isinstance(rule, NamingPrefixRule):
            return f"bucket name '{resource.id}' does not start with '{rule.prefix}'"
        return "bucket is publicly accessible"

    def empty_bucket(self, name: str) -> None:
        """Delete every object version and delete marker in the bucket."""
        pending: List[Dict[str, str]] = []
        for page in self.paginate("list_object_versions", Bucket=name):
            for entry in page.get("Versions", []) + page.get("DeleteMarkers", []):
                pending.append({"Key": entry["Key"], "VersionId": entry["VersionId"]})
                if len(pending) == _DELETE_BATCH_SIZE:
                    self._delete_objects(name, pending)
                    pending = []
        if pending:
            self._delete_objects(name, pending)

    def _delete_objects(self, name: str, objects: List[Dict[str, str]]) -> None:
        logger.debug(f"Deleting {len(objects)} objects from {name}")
        response = self.call("delete_objects", Bucket=name, Delete={"Objects": objects, "Quiet": True})
        for error in response.get("Errors", []):
            logger.warning(f"Failed to delete {error.get('Key')} from {name}: {error.get('Code')}")

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        self.call("delete_bucket_policy", Bucket=resource.id)
        self.empty_bucket(resource.id)
        self.call("delete_bucket", Bucket=resource.id)
