"""S3 buckets with lambda notifications. Every alias gets its own bucket."""
import logging

from aliasstack.cloudformation.context import DeployedSnapshots, PipelineContext
from aliasstack.cloudformation.references import (
    add_dependencies,
    get_function_version_name,
    get_referenced_function,
    has_permission_principal,
)
from aliasstack.cloudformation.stackops import PassResult
from aliasstack.cloudformation.template import ResourceType, Template

LOG = logging.getLogger(__name__)


def handle_s3_events(
    context: PipelineContext, stage: Template, alias: Template, snapshots: DeployedSnapshots
) -> PassResult:
    options = context.options
    versions = alias.resources_of_type(ResourceType.LAMBDA_VERSION)
    aliases = alias.resources_of_type(ResourceType.LAMBDA_ALIAS)
    # bucket names must be lower case
    suffix = f"-{options.alias}".lower()

    for name, bucket in stage.resources_of_type(ResourceType.S3_BUCKET).items():
        properties = bucket.setdefault("Properties", {})
        configurations = (properties.get("NotificationConfiguration") or {}).get("LambdaConfigurations")
        if not configurations:
            continue

        relinked = False
        for configuration in configurations:
            function_prefix = get_referenced_function(configuration.get("Function"))
            alias_name = f"{function_prefix}Alias" if function_prefix else None
            if alias_name not in aliases:
                continue
            configuration["Function"] = {"Ref": alias_name}
            add_dependencies(bucket, get_function_version_name(versions, function_prefix), alias_name)
            relinked = True

        if not relinked:
            continue
        if isinstance(properties.get("BucketName"), str):
            properties["BucketName"] = f"{properties['BucketName']}{suffix}".lower()
        alias.resources[name] = bucket
        del stage.resources[name]

    for name, permission in stage.resources_of_type(ResourceType.LAMBDA_PERMISSION).items():
        if not has_permission_principal(permission, "s3"):
            continue
        properties = permission.setdefault("Properties", {})
        function_prefix = get_referenced_function(properties.get("FunctionName"))
        alias_name = f"{function_prefix}Alias" if function_prefix else None
        if alias_name not in aliases:
            continue

        properties["FunctionName"] = {"Ref": alias_name}
        source_arn = properties.get("SourceArn")
        if isinstance(source_arn, str):
            properties["SourceArn"] = f"{source_arn}{suffix}"
        elif isinstance(source_arn, dict) and "Fn::Join" in source_arn:
            source_arn["Fn::Join"][1].append(suffix)
        permission["DependsOn"] = [
            d for d in (get_function_version_name(versions, function_prefix), alias_name) if d
        ]
        alias.resources[name] = permission
        del stage.resources[name]

    return context, stage, alias
