"""AWS credential validation."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, ProfileNotFound

from ..errors import CredentialValidationError
from .client import create_boto_client

logger = logging.getLogger(__name__)


def validate_credentials(profile_name: Optional[str] = None) -> Dict[str, Any]:
    """Check that the configured credentials are accepted by AWS.

    Args:
        profile_name: AWS profile name (optional)

    Returns:
        Caller identity (Account, Arn, UserId)

    Raises:
        CredentialValidationError: If credentials are missing, the profile does not exist,
            or STS rejects them
    """
    try:
        sts = create_boto_client("sts", profile_name=profile_name)
        identity = sts.get_caller_identity()
    except ProfileNotFound as e:
        raise CredentialValidationError(f"AWS profile not found: {e}")
    except NoCredentialsError:
        raise CredentialValidationError(
            "No AWS credentials found. Configure a profile or set AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY."
        )
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "Unknown")
        raise CredentialValidationError(f"AWS rejected the credentials ({code})")
    except BotoCoreError as e:
        raise CredentialValidationError(f"Could not validate AWS credentials: {e}")

    logger.info(f"Authenticated as {identity.get('Arn')}")
    return identity
