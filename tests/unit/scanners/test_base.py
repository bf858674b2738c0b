"""Tests for the scanner base class and registry."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import pytest
from botocore.exceptions import EndpointConnectionError

from nuker.errors import ScanError, ThrottledError
from nuker.models.policy import (
    DnsCompliantNameRule,
    OpenIngressRule,
    Policy,
    PublicAccessRule,
    RuleKind,
    UnassociatedRule,
)
from nuker.models.resource import Resource, ResourceType
from nuker.scanners import SCANNER_REGISTRY, get_scanner_class, register_scanner
from nuker.scanners.base import BaseResourceScanner, tags_to_dict
from nuker.scanners.ebs_volume import EBSVolumeScanner
from nuker.scanners.ec2_instance import EC2InstanceScanner
from nuker.scanners.s3_bucket import S3BucketScanner
from tests.fixtures.resources import client_error, create_mock_context, create_resource


class FakeScanner(BaseResourceScanner):
    """Scanner over a fixed list of raw records."""

    resource_type = ResourceType.EBS_VOLUME
    service_name = "ec2"

    def __init__(self, context, region, records=None, error=None):
        super().__init__(context, region)
        self.records = records or []
        self.error = error

    def list(self) -> Iterable[Dict[str, Any]]:
        if self.error is not None:
            raise self.error
        return self.records

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        return Resource(id=raw["Id"], type=self.resource_type, region=self.region)

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        pass


class TestScan:
    """Test suite for BaseResourceScanner.scan."""

    def test_skips_malformed_records(self) -> None:
        """Test one malformed record does not fail the scan."""
        scanner = FakeScanner(create_mock_context(), "us-east-1", records=[{"Id": "vol-1"}, {}, {"Id": "vol-2"}])

        resources = scanner.scan()

        assert [r.id for r in resources] == ["vol-1", "vol-2"]

    def test_client_error_becomes_scan_error(self) -> None:
        """Test listing failures carry region, type and error code."""
        scanner = FakeScanner(create_mock_context(), "eu-west-1", error=client_error("AuthFailure"))

        with pytest.raises(ScanError) as exc_info:
            scanner.scan()

        assert exc_info.value.region == "eu-west-1"
        assert exc_info.value.resource_type == "ebs-volume"
        assert exc_info.value.error_code == "AuthFailure"

    def test_botocore_error_becomes_scan_error(self) -> None:
        """Test connection failures become scan errors."""
        error = EndpointConnectionError(endpoint_url="https://ec2.eu-north-9.amazonaws.com")
        scanner = FakeScanner(create_mock_context(), "eu-west-1", error=error)

        with pytest.raises(ScanError) as exc_info:
            scanner.scan()

        assert exc_info.value.error_code == "EndpointConnectionError"

    def test_rate_limiter_timeout_becomes_scan_error(self) -> None:
        """Test throttling that outlasts the limiter wait is a scan failure."""
        error = ThrottledError("waited too long", error_code="RateLimiterTimeout")
        scanner = FakeScanner(create_mock_context(), "us-east-1", error=error)

        with pytest.raises(ScanError) as exc_info:
            scanner.scan()

        assert exc_info.value.error_code == "RateLimiterTimeout"

    def test_helpers_route_through_context(self) -> None:
        """Test call and paginate use the scanner's service and region."""
        context = create_mock_context()
        scanner = FakeScanner(context, "ap-south-1")

        scanner.call("describe_volumes", MaxResults=5)
        scanner.paginate("describe_volumes")

        context.call.assert_called_once_with("ec2", "ap-south-1", "describe_volumes", MaxResults=5)
        context.paginate.assert_called_once_with("ec2", "ap-south-1", "describe_volumes")


class TestCapabilities:
    """Test suite for scanner capability defaults."""

    def test_tags_to_dict(self) -> None:
        """Test AWS tag lists become dicts."""
        assert tags_to_dict([{"Key": "a", "Value": "1"}, {"Key": "b"}]) == {"a": "1", "b": ""}
        assert tags_to_dict(None) == {}

    def test_supports_idle(self) -> None:
        """Test idle support follows the metric namespace."""
        assert EC2InstanceScanner.supports_idle() is True
        assert FakeScanner.supports_idle() is False

    def test_default_capabilities(self) -> None:
        """Test defaults for tags, state, age, metrics and references."""
        scanner = FakeScanner(create_mock_context(), "us-east-1")
        resource = create_resource(tags={"a": "b"}, references=((ResourceType.EC2_INSTANCE, "i-1"),))

        assert scanner.describe_tags(resource) == {"a": "b"}
        assert scanner.describe_state(resource) is resource.state
        assert scanner.metric_dimensions(resource) is None
        assert scanner.references(resource) == {(ResourceType.EC2_INSTANCE, "i-1")}

    def test_supports_rule(self) -> None:
        """Test only declared type rules are supported."""
        assert EBSVolumeScanner.supports_rule(UnassociatedRule()) is True
        assert EBSVolumeScanner.supports_rule(OpenIngressRule()) is False

    def test_evaluate_extras(self) -> None:
        """Test matched type rules are returned with a reason."""
        policy = Policy(
            resource_type=ResourceType.S3_BUCKET,
            type_rules=(DnsCompliantNameRule(), PublicAccessRule()),
        )
        resource = create_resource(resource_id="my.bucket", resource_type=ResourceType.S3_BUCKET, public=False)

        extras = S3BucketScanner.evaluate_extras(resource, policy)

        assert set(extras) == {RuleKind.DNS_NON_COMPLIANT}
        assert "my.bucket" in extras[RuleKind.DNS_NON_COMPLIANT]

    def test_evaluate_extras_ignores_unsupported_rules(self) -> None:
        """Test rules the type does not support never match."""
        policy = Policy(resource_type=ResourceType.EC2_INSTANCE, type_rules=(UnassociatedRule(),))
        resource = create_resource(associated=False)

        assert EC2InstanceScanner.evaluate_extras(resource, policy) == {}


class TestRegistry:
    """Test suite for the scanner registry."""

    def test_every_type_registered(self) -> None:
        """Test each resource type has a scanner."""
        assert set(SCANNER_REGISTRY) == set(ResourceType)

    def test_get_scanner_class(self) -> None:
        """Test lookup by type."""
        assert get_scanner_class(ResourceType.EBS_VOLUME) is EBSVolumeScanner

    def test_duplicate_registration_rejected(self) -> None:
        """Test a second scanner for the same type is refused."""
        with pytest.raises(ValueError, match="already registered"):
            register_scanner(FakeScanner)

    def test_reregistering_same_class_is_allowed(self) -> None:
        """Test registering the same class twice is a no-op."""
        assert register_scanner(EBSVolumeScanner) is EBSVolumeScanner
