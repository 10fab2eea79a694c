"""
Thin layer over the CloudFormation API: templates, stack operations and exports.
"""
import json
import logging
from typing import Dict, List, Optional

from botocore.client import BaseClient
from botocore.exceptions import ClientError, WaiterError

from aliasstack import config
from aliasstack.aws.connect import connect_to
from aliasstack.cloudformation.exceptions import (
    ExportNotFound,
    NoStackUpdates,
    StackDeployError,
    StackInformationError,
)
from aliasstack.cloudformation.template import Template
from aliasstack.constants import CAPABILITIES

LOG = logging.getLogger(__name__)

NO_UPDATES_MESSAGE = "No updates are to be performed."
EXPORT_NOT_FOUND_MARKERS = ("is not imported by any stack", "cannot find export", "does not exist")

STACK_WAITERS = {
    "create": "stack_create_complete",
    "update": "stack_update_complete",
    "removal": "stack_delete_complete",
}


def get_status_code(error: ClientError) -> Optional[int]:
    return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def is_not_found_error(error: ClientError) -> bool:
    return "does not exist" in str(error)


def is_no_updates_error(error: ClientError) -> bool:
    return NO_UPDATES_MESSAGE in str(error)


def is_export_not_found_error(error: ClientError) -> bool:
    """Whether the error reports an export that does not exist or that no stack imports."""
    details = error.response.get("Error", {})
    if details.get("Code") != "ValidationError":
        return False
    message = (details.get("Message") or "").lower()
    return any(marker in message for marker in EXPORT_NOT_FOUND_MARKERS)


def to_tag_list(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"Key": key, "Value": str(value)} for key, value in tags.items()]


class StackOrchestrator:
    """Performs the CloudFormation calls of a deployment. All provider errors are propagated."""

    client: BaseClient

    def __init__(self, client: BaseClient = None, region_name: str = None):
        self.client = client or connect_to.get_client("cloudformation", region_name=region_name)

    def get_template(self, stack_name: str, template_stage: str = "Original") -> Template:
        """
        Fetches the template of a deployed stack.

        :param stack_name: name or id of the stack
        :param template_stage: ``Original`` for the submitted template, ``Processed`` after transforms
        :raises StackInformationError: if the template cannot be retrieved
        :raises CorruptSnapshot: if the template body cannot be parsed
        """
        try:
            response = self.client.get_template(StackName=stack_name, TemplateStage=template_stage)
        except ClientError as e:
            raise StackInformationError(stack_name, get_status_code(e)) from e
        return Template.parse(response["TemplateBody"])

    def describe_stack(self, stack_name: str) -> dict:
        return self.client.describe_stacks(StackName=stack_name)["Stacks"][0]

    def stack_exists(self, stack_name: str) -> bool:
        try:
            self.describe_stack(stack_name)
            return True
        except ClientError as e:
            if is_not_found_error(e):
                return False
            raise

    def create_stack(
        self,
        stack_name: str,
        template: Template,
        tags: Dict[str, str] = None,
        role_arn: str = None,
    ) -> str:
        kwargs = {}
        if role_arn:
            kwargs["RoleARN"] = role_arn
        LOG.info("Creating stack %s", stack_name)
        response = self.client.create_stack(
            StackName=stack_name,
            TemplateBody=template.to_json(indent=None),
            OnFailure="DELETE",
            Capabilities=CAPABILITIES,
            Tags=to_tag_list(tags or {}),
            **kwargs,
        )
        return response["StackId"]

    def update_stack(
        self,
        stack_name: str,
        template: Template,
        tags: Dict[str, str] = None,
        stack_policy: Optional[List[dict]] = None,
        role_arn: str = None,
    ) -> str:
        """
        :raises NoStackUpdates: if the template does not change the stack
        """
        kwargs = {}
        if stack_policy:
            kwargs["StackPolicyBody"] = json.dumps({"Statement": stack_policy})
        if role_arn:
            kwargs["RoleARN"] = role_arn
        LOG.info("Updating stack %s", stack_name)
        try:
            response = self.client.update_stack(
                StackName=stack_name,
                TemplateBody=template.to_json(indent=None),
                Capabilities=CAPABILITIES,
                Tags=to_tag_list(tags or {}),
                **kwargs,
            )
        except ClientError as e:
            if is_no_updates_error(e):
                raise NoStackUpdates(stack_name) from e
            raise
        return response["StackId"]

    def delete_stack(self, stack_name: str, role_arn: str = None):
        kwargs = {"RoleARN": role_arn} if role_arn else {}
        LOG.info("Removing stack %s", stack_name)
        self.client.delete_stack(StackName=stack_name, **kwargs)

    def monitor_stack(self, kind: str, stack_name: str):
        """
        Waits until the stack operation of the given kind (create, update, removal) reached a terminal state.

        :raises StackDeployError: if the operation failed
        """
        waiter = self.client.get_waiter(STACK_WAITERS[kind])
        try:
            waiter.wait(
                StackName=stack_name,
                WaiterConfig={
                    "Delay": config.STACK_WAITER_DELAY,
                    "MaxAttempts": config.STACK_WAITER_MAX_ATTEMPTS,
                },
            )
        except WaiterError as e:
            describe_result = e.last_response.get("Stacks", [{}])[0] if e.last_response else {}
            try:
                events = self.client.describe_stack_events(StackName=stack_name)["StackEvents"]
            except ClientError:
                LOG.debug("Unable to fetch events of stack %s", stack_name)
                events = []
            raise StackDeployError(stack_name, describe_result, events) from e
        LOG.debug("Stack %s finished %s", stack_name, kind)

    def list_imports(self, export_name: str) -> List[str]:
        """
        Returns the names of the stacks that import the given export.

        :raises ExportNotFound: if the export does not exist or is not imported by any stack
        """
        try:
            result = self.client.get_paginator("list_imports").paginate(ExportName=export_name).build_full_result()
        except ClientError as e:
            if is_export_not_found_error(e):
                raise ExportNotFound(export_name) from e
            raise
        return result.get("Imports", [])

    def list_exports(self) -> Dict[str, str]:
        result = self.client.get_paginator("list_exports").paginate().build_full_result()
        return {export["Name"]: export["Value"] for export in result.get("Exports", [])}

    def list_stack_resources(self, stack_name: str) -> List[dict]:
        result = self.client.get_paginator("list_stack_resources").paginate(StackName=stack_name).build_full_result()
        return result.get("StackResourceSummaries", [])
