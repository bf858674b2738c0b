"""SageMaker notebook instance scanner."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from botocore.exceptions import ClientError

from ..aws.retry import get_error_code
from ..models.policy import Policy
from ..models.resource import Resource, ResourceState, ResourceType
from .base import BaseResourceScanner, tags_to_dict
from .registry import register_scanner

logger = logging.getLogger(__name__)


@register_scanner
class SageMakerNotebookScanner(BaseResourceScanner):
    """Scanner for SageMaker notebook instances.

    Only stopped (or failed) notebooks can be deleted, so a running notebook is stopped
    and awaited first.
    """

    resource_type = ResourceType.SAGEMAKER_NOTEBOOK
    service_name = "sagemaker"
    can_stop = True

    def list(self) -> Iterable[Dict[str, Any]]:
        for page in self.paginate("list_notebook_instances"):
            for notebook in page.get("NotebookInstances", []):
                name = notebook["NotebookInstanceName"]
                try:
                    tags = self.call("list_tags", ResourceArn=notebook["NotebookInstanceArn"]).get("Tags", [])
                except ClientError as e:
                    logger.warning(f"Skipping notebook {name}: {get_error_code(e)}")
                    continue
                yield dict(notebook, Tags=tags)

    def to_resource(self, raw: Dict[str, Any]) -> Resource:
        return Resource(
            id=raw["NotebookInstanceName"],
            type=self.resource_type,
            region=self.region,
            tags=tags_to_dict(raw.get("Tags")),
            state=ResourceState.from_provider(raw.get("NotebookInstanceStatus")),
            created_at=raw.get("CreationTime"),
            arn=raw.get("NotebookInstanceArn"),
            attributes={"instance_type": raw.get("InstanceType")},
        )

    def stop(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        self.call("stop_notebook_instance", NotebookInstanceName=resource.id)

    def delete(self, resource: Resource, policy: Optional[Policy] = None) -> None:
        if resource.state in (ResourceState.RUNNING, ResourceState.PENDING, ResourceState.STOPPING):
            if resource.state is not ResourceState.STOPPING:
                logger.debug(f"Stopping notebook {resource.id} before deletion")
                self.stop(resource, policy)
            self.context.client(self.service_name, self.region).get_waiter("notebook_instance_stopped").wait(
                NotebookInstanceName=resource.id
            )
        self.call("delete_notebook_instance", NotebookInstanceName=resource.id)
