"""Normalized resource record shared by every scanner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional


class ResourceType(Enum):
    """Resource kinds nuker knows how to scan, evaluate and delete."""

    EC2_INSTANCE = "ec2-instance"
    EBS_VOLUME = "ebs-volume"
    EC2_ADDRESS = "ec2-address"
    EC2_SECURITY_GROUP = "ec2-security-group"
    ASG = "asg"
    ELB = "elb"
    RDS_INSTANCE = "rds-instance"
    S3_BUCKET = "s3-bucket"
    EMR_CLUSTER = "emr-cluster"
    REDSHIFT_CLUSTER = "redshift-cluster"
    RDS_CLUSTER = "rds-cluster"
    EBS_SNAPSHOT = "ebs-snapshot"
    ES_DOMAIN = "es-domain"
    SAGEMAKER_NOTEBOOK = "sagemaker-notebook"
    EKS_CLUSTER = "eks-cluster"

    @classmethod
    def from_value(cls, value: str) -> "ResourceType":
        """Look up a resource type by its identifier.

        Args:
            value: Identifier such as ``"ec2-instance"`` (case-insensitive,
                underscores accepted)

        Returns:
            Matching ResourceType

        Raises:
            ValueError: If no resource type has this identifier
        """
        normalized = value.strip().lower().replace("_", "-")
        for member in cls:
            if member.value == normalized:
                return member
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown resource type '{value}'. Valid types: {valid}")


class ResourceState(Enum):
    """Provider lifecycle state folded into a small common vocabulary."""

    PENDING = "pending"
    RUNNING = "running"
    AVAILABLE = "available"
    IN_USE = "in-use"
    STOPPING = "stopping"
    STOPPED = "stopped"
    DELETING = "deleting"
    DELETED = "deleted"
    UNKNOWN = "unknown"

    @classmethod
    def from_provider(cls, value: Optional[str]) -> "ResourceState":
        """Map a provider state string to a ResourceState.

        Args:
            value: State as reported by the provider (e.g. ``"shutting-down"``)

        Returns:
            Normalized state, ``UNKNOWN`` for anything unrecognized
        """
        if not value:
            return cls.UNKNOWN

        v = value.strip().lower()
        mapping = {
            "pending": cls.PENDING,
            "starting": cls.PENDING,
            "creating": cls.PENDING,
            "bootstrapping": cls.PENDING,
            "running": cls.RUNNING,
            "waiting": cls.RUNNING,
            "active": cls.RUNNING,
            "inservice": cls.RUNNING,
            "updating": cls.RUNNING,
            "available": cls.AVAILABLE,
            "completed": cls.AVAILABLE,
            "in-use": cls.IN_USE,
            "stopping": cls.STOPPING,
            "stopped": cls.STOPPED,
            "paused": cls.STOPPED,
            "pausing": cls.STOPPING,
            "shutting-down": cls.DELETING,
            "deleting": cls.DELETING,
            "terminating": cls.DELETING,
            "terminated": cls.DELETED,
            "deleted": cls.DELETED,
        }
        return mapping.get(v, cls.UNKNOWN)


@dataclass(frozen=True)
class Resource:
    """Resource record produced by a scanner.

    Records are immutable for the lifetime of a run. ``tags`` and ``attributes`` are
    wrapped in read-only mappings.

    Attributes:
        id: Provider unique identifier (instance id, bucket name, ...)
        type: Resource type
        region: AWS region the resource lives in
        tags: Resource tags (keys unique)
        state: Normalized lifecycle state
        created_at: Creation or launch time (UTC), None when unknown
        attributes: Type-specific values (instance_type, public flags, references, ...)
        arn: Amazon Resource Name, when the provider exposes one
    """

    id: str
    type: ResourceType
    region: str
    tags: Mapping[str, str] = field(default_factory=dict)
    state: ResourceState = ResourceState.UNKNOWN
    created_at: Optional[datetime] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    arn: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Resource id cannot be empty")
        if not self.region:
            raise ValueError("Resource region cannot be empty")

        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

        if self.created_at is not None and self.created_at.tzinfo is None:
            object.__setattr__(self, "created_at", self.created_at.replace(tzinfo=timezone.utc))

    @property
    def name(self) -> str:
        """Display name: the ``Name`` tag, then a ``name`` attribute, then the id."""
        return self.tags.get("Name") or self.attributes.get("name") or self.id

    def age_seconds(self, now: datetime) -> Optional[float]:
        """Seconds since creation, or None when the creation time is unknown."""
        if self.created_at is None:
            return None
        return (now - self.created_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Plain dictionary form used by report exports."""
        return {
            "id": self.id,
            "type": self.type.value,
            "region": self.region,
            "arn": self.arn,
            "name": self.name,
            "state": self.state.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "tags": dict(self.tags),
        }
