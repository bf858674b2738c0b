"""Resource scanners, one per resource type.

Importing this package registers every scanner in :data:`SCANNER_REGISTRY`.
"""

from . import (  # noqa: F401
    asg,
    ebs_snapshot,
    ebs_volume,
    ec2_address,
    ec2_instance,
    ec2_security_group,
    eks_cluster,
    elb,
    emr_cluster,
    es_domain,
    rds_cluster,
    rds_instance,
    redshift_cluster,
    s3_bucket,
    sagemaker_notebook,
)
from .base import BaseResourceScanner
from .registry import SCANNER_REGISTRY, get_scanner_class, register_scanner

__all__ = [
    "BaseResourceScanner",
    "SCANNER_REGISTRY",
    "get_scanner_class",
    "register_scanner",
]
