"""
Inspection and manual maintenance of deployed aliases.
"""
import logging
from typing import List, NamedTuple

from botocore.client import BaseClient

from aliasstack.aws.connect import connect_to
from aliasstack.cloudformation.context import AliasOptions, get_alias_name
from aliasstack.cloudformation.orchestrator import StackOrchestrator
from aliasstack.cloudformation.snapshots import load_alias_templates
from aliasstack.cloudformation.template import ResourceType

LOG = logging.getLogger(__name__)


class FunctionVersion(NamedTuple):
    function_name: str
    function_version: str


def list_aliases(orchestrator: StackOrchestrator, options: AliasOptions) -> List[str]:
    """Returns the names of all deployed aliases of the stage."""
    names = []
    for template in load_alias_templates(orchestrator, options):
        name = get_alias_name(template)
        if name:
            names.append(name)
    return names


def get_alias_function_versions(
    orchestrator: StackOrchestrator, options: AliasOptions, alias: str, lambda_client: BaseClient = None
) -> List[FunctionVersion]:
    """Returns the function versions the lambda aliases of the given alias stack point to."""
    lambda_client = lambda_client or connect_to.get_client("lambda", region_name=options.region)
    result = []
    for resource in orchestrator.list_stack_resources(f"{options.stack_name}-{alias}"):
        if resource.get("ResourceType") != ResourceType.LAMBDA_ALIAS.value:
            continue
        # physical id is the alias arn: arn:aws:lambda:<region>:<account>:function:<name>:<alias>
        function_name = resource["PhysicalResourceId"].split(":")[6]
        response = lambda_client.get_alias(FunctionName=function_name, Name=alias)
        result.append(FunctionVersion(function_name, response["FunctionVersion"]))
    return result


def update_function_alias(function_name: str, alias: str, lambda_client: BaseClient = None, region: str = None) -> str:
    """
    Publishes the currently deployed code of the function and points the alias to the new version.

    :return: the new version the alias points to
    """
    lambda_client = lambda_client or connect_to.get_client("lambda", region_name=region)
    LOG.info("Updating function alias...")
    latest = lambda_client.get_function(FunctionName=function_name, Qualifier="$LATEST")
    # pinning the hash fails the publish if the code changed in the meantime
    version = lambda_client.publish_version(
        FunctionName=function_name,
        CodeSha256=latest["Configuration"]["CodeSha256"],
        Description="Deployed manually",
    )["Version"]
    response = lambda_client.update_alias(
        FunctionName=function_name,
        Name=alias,
        FunctionVersion=version,
        Description="Deployed manually",
    )
    LOG.info("Successfully updated alias: %s@%s -> %s", function_name, alias, response["FunctionVersion"])
    return response["FunctionVersion"]
