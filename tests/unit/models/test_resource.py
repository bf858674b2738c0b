"""Tests for the Resource model."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from nuker.models.resource import Resource, ResourceState, ResourceType
from tests.fixtures.resources import NOW, create_resource


class TestResourceType:
    """Test suite for ResourceType lookup."""

    def test_from_value_exact(self) -> None:
        """Test lookup by identifier."""
        assert ResourceType.from_value("ec2-instance") is ResourceType.EC2_INSTANCE

    def test_from_value_accepts_underscores_and_case(self) -> None:
        """Test lookup is case-insensitive and accepts underscores."""
        assert ResourceType.from_value("S3_Bucket") is ResourceType.S3_BUCKET

    def test_from_value_unknown_raises(self) -> None:
        """Test unknown identifiers raise ValueError listing valid types."""
        with pytest.raises(ValueError, match="Valid types"):
            ResourceType.from_value("lambda-function")


class TestResourceState:
    """Test suite for provider state mapping."""

    def test_known_states(self) -> None:
        """Test provider states map to the common vocabulary."""
        assert ResourceState.from_provider("running") is ResourceState.RUNNING
        assert ResourceState.from_provider("in-use") is ResourceState.IN_USE
        assert ResourceState.from_provider("shutting-down") is ResourceState.DELETING
        assert ResourceState.from_provider("terminated") is ResourceState.DELETED

    def test_emr_and_redshift_states(self) -> None:
        """Test cluster states from EMR and Redshift."""
        assert ResourceState.from_provider("WAITING") is ResourceState.RUNNING
        assert ResourceState.from_provider("paused") is ResourceState.STOPPED

    def test_unknown_and_empty(self) -> None:
        """Test unrecognized or missing states become UNKNOWN."""
        assert ResourceState.from_provider("modifying") is ResourceState.UNKNOWN
        assert ResourceState.from_provider(None) is ResourceState.UNKNOWN


class TestResource:
    """Test suite for Resource records."""

    def test_empty_id_rejected(self) -> None:
        """Test a resource requires an id."""
        with pytest.raises(ValueError, match="id"):
            Resource(id="", type=ResourceType.EBS_VOLUME, region="us-east-1")

    def test_empty_region_rejected(self) -> None:
        """Test a resource requires a region."""
        with pytest.raises(ValueError, match="region"):
            Resource(id="vol-1", type=ResourceType.EBS_VOLUME, region="")

    def test_tags_are_read_only(self) -> None:
        """Test tags cannot be mutated after creation."""
        resource = create_resource(tags={"Owner": "alice"})

        with pytest.raises(TypeError):
            resource.tags["Owner"] = "bob"

    def test_tags_are_copied(self) -> None:
        """Test later changes to the source dict do not leak into the record."""
        tags = {"Owner": "alice"}
        resource = create_resource(tags=tags)
        tags["Owner"] = "bob"

        assert resource.tags["Owner"] == "alice"

    def test_naive_created_at_becomes_utc(self) -> None:
        """Test naive timestamps are treated as UTC."""
        resource = Resource(
            id="vol-1",
            type=ResourceType.EBS_VOLUME,
            region="us-east-1",
            created_at=datetime(2025, 1, 1),
        )

        assert resource.created_at.tzinfo == timezone.utc

    def test_name_prefers_name_tag(self) -> None:
        """Test display name resolution order."""
        assert create_resource(tags={"Name": "web"}, name="other").name == "web"
        assert create_resource(name="sg-name").name == "sg-name"
        assert create_resource(resource_id="i-abc").name == "i-abc"

    def test_age_seconds(self) -> None:
        """Test age relative to a reference time."""
        resource = create_resource(age=timedelta(hours=2))

        assert resource.age_seconds(NOW) == 7200

    def test_age_unknown(self) -> None:
        """Test age is None when the creation time is unknown."""
        assert create_resource(age=None).age_seconds(NOW) is None

    def test_to_dict(self) -> None:
        """Test dictionary form used by exports."""
        resource = create_resource(resource_id="vol-1", resource_type=ResourceType.EBS_VOLUME, tags={"a": "b"})

        data = resource.to_dict()

        assert data["id"] == "vol-1"
        assert data["type"] == "ebs-volume"
        assert data["tags"] == {"a": "b"}
        assert data["created_at"].startswith("2025-05-02")
