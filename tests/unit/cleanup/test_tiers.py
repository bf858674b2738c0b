"""Tests for the static deletion order."""

from __future__ import annotations

from nuker.cleanup.tiers import DEFAULT_TIER, DELETION_TIERS, group_by_tier, tier_of
from nuker.models.resource import ResourceType
from tests.fixtures.resources import create_candidate, create_resource


class TestTiers:
    """Test suite for deletion tiers."""

    def test_every_type_has_a_tier(self) -> None:
        """Test the table covers every resource type."""
        assert set(DELETION_TIERS) == set(ResourceType)

    def test_holders_before_held(self) -> None:
        """Test a type is deleted before the types it holds on to."""
        assert tier_of(ResourceType.ASG) < tier_of(ResourceType.EC2_INSTANCE)
        assert tier_of(ResourceType.EC2_INSTANCE) < tier_of(ResourceType.EBS_VOLUME)
        assert tier_of(ResourceType.EC2_INSTANCE) < tier_of(ResourceType.EC2_ADDRESS)
        assert tier_of(ResourceType.RDS_INSTANCE) < tier_of(ResourceType.EC2_SECURITY_GROUP)
        assert tier_of(ResourceType.ELB) < tier_of(ResourceType.EC2_SECURITY_GROUP)

    def test_default_tier_is_last(self) -> None:
        """Test unknown types go after every known tier."""
        assert DEFAULT_TIER > max(DELETION_TIERS.values())

    def test_group_by_tier(self) -> None:
        """Test grouping keeps tiers in order and omits empty ones."""
        sg = create_candidate(create_resource("sg-1", ResourceType.EC2_SECURITY_GROUP))
        instance = create_candidate(create_resource("i-1"))
        volume = create_candidate(create_resource("vol-1", ResourceType.EBS_VOLUME))
        bucket = create_candidate(create_resource("bucket", ResourceType.S3_BUCKET))

        tiers = group_by_tier([sg, volume, instance, bucket])

        assert tiers == [[instance], [volume, bucket], [sg]]

    def test_group_by_tier_custom_key(self) -> None:
        """Test grouping plain resource types."""
        tiers = group_by_tier([ResourceType.EBS_VOLUME, ResourceType.ASG], key=lambda t: t)

        assert tiers == [[ResourceType.ASG], [ResourceType.EBS_VOLUME]]
