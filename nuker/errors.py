"""Error taxonomy for nuker runs.

Fatal errors (configuration, credentials) abort a run before any scan. Every other error
is caught at the task boundary and attached to the run report.
"""

from __future__ import annotations

from typing import Optional


class NukerError(Exception):
    """Base class for all nuker errors."""


class ConfigurationError(NukerError):
    """Invalid policy, configuration file, region or credentials. Always fatal."""


class ConfirmationRequiredError(ConfigurationError):
    """Apply mode was requested without the force confirmation."""


class CredentialValidationError(ConfigurationError):
    """AWS credentials are missing, expired or rejected."""


class ScanError(NukerError):
    """Listing a resource type in a region failed.

    Attributes:
        region: AWS region of the failed scan
        resource_type: Resource type identifier of the failed scan
        error_code: Provider error code, if known
    """

    def __init__(
        self,
        message: str,
        region: str = "",
        resource_type: str = "",
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.region = region
        self.resource_type = resource_type
        self.error_code = error_code


class MetricQueryError(NukerError):
    """A metric statistics query failed; the resource is treated as not idle."""


class EvaluationError(NukerError):
    """Rule evaluation failed for a well-formed resource. Indicates a defect."""


class DeletionError(NukerError):
    """Base class for deletion failures.

    Attributes:
        error_code: Provider error code, if known
    """

    def __init__(self, message: str, error_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class ThrottledError(DeletionError):
    """Deletion kept being throttled after all retries."""


class NotFoundError(DeletionError):
    """Resource is already gone. Counted as a successful deletion."""


class DependencyBlockedError(DeletionError):
    """Resource still has dependents. Recorded as skipped, never retried."""


class PermissionDeniedError(DeletionError):
    """Caller is not allowed to delete the resource."""


class MalformedRequestError(DeletionError):
    """Provider rejected the deletion request as invalid."""
