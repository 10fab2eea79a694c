"""
Function and version handling.

The versions published by a deployment are moved into the alias stack, each one gets a function alias named
after the alias. The stage stack only exports the function ARNs. Versions and functions that other deployed
aliases still point to are carried forward from the deployed stage template.
"""
import copy
import logging
from typing import Optional

from aliasstack.cloudformation.context import DeployedSnapshots, PipelineContext
from aliasstack.cloudformation.references import (
    find_all_references,
    get_dependencies,
    replace_references,
)
from aliasstack.cloudformation.stackops import PassResult
from aliasstack.cloudformation.template import ResourceType, Template
from aliasstack.constants import (
    ALIAS_REFERENCE_EXPORT,
    ENV_SERVERLESS_ALIAS,
    REMOVED_RESOURCE_SENTINEL,
)

LOG = logging.getLogger(__name__)


def function_arn_export_name(context: PipelineContext, function_name: str) -> str:
    return context.options.export_name(f"{function_name}-LambdaFunctionArn")


def _function_prefix(value) -> Optional[str]:
    references = find_all_references(value)
    if not references:
        return None
    name = references[0].ref
    return name[: -len("LambdaFunction")] if name.endswith("LambdaFunction") else name


def _version_name_from_alias(context: PipelineContext, alias_resource: dict) -> Optional[str]:
    """Versions of older deployments live in the stage stack and are imported by the alias."""
    function_version = (alias_resource.get("Properties") or {}).get("FunctionVersion")
    if isinstance(function_version, dict) and isinstance(function_version.get("Fn::ImportValue"), str):
        prefix = f"{context.options.stack_name}-"
        export_name = function_version["Fn::ImportValue"]
        if export_name.startswith(prefix):
            return export_name[len(prefix) :]
    return None


def merge_aliases(context: PipelineContext, stage: Template, snapshots: DeployedSnapshots):
    """Carries forward the functions (and stage owned versions) that deployed aliases point to."""
    current = snapshots.current_template
    for template in [*snapshots.alias_templates, snapshots.current_alias_template]:
        for alias_name, alias_resource in template.resources_of_type(ResourceType.LAMBDA_ALIAS).items():
            if not alias_name.endswith("Alias"):
                continue
            function_prefix = alias_name[: -len("Alias")]
            function_name = f"{function_prefix}LambdaFunction"
            version_name = _version_name_from_alias(context, alias_resource)

            for name in filter(None, [function_name, version_name]):
                if name not in stage.resources and name in current.resources:
                    stage.resources[name] = copy.deepcopy(current.resources[name])
            for name in filter(None, [f"{function_name}Arn", version_name]):
                if name not in stage.outputs and name in current.outputs:
                    stage.outputs[name] = copy.deepcopy(current.outputs[name])


def handle_functions(
    context: PipelineContext, stage: Template, alias: Template, snapshots: DeployedSnapshots
) -> PassResult:
    options = context.options

    alias.outputs[ALIAS_REFERENCE_EXPORT] = {
        "Description": "Alias stack reference.",
        "Value": {"Fn::ImportValue": options.export_name(ALIAS_REFERENCE_EXPORT)},
    }

    functions = stage.resources_of_type(ResourceType.LAMBDA_FUNCTION)
    for function in functions.values():
        properties = function.setdefault("Properties", {})
        variables = properties.setdefault("Environment", {}).setdefault("Variables", {})
        variables[ENV_SERVERLESS_ALIAS] = options.alias

    for version_name, version in stage.resources_of_type(ResourceType.LAMBDA_VERSION).items():
        function_prefix = _function_prefix((version.get("Properties") or {}).get("FunctionName"))
        if not function_prefix:
            LOG.warning("Version %s does not reference a function, skipping it", version_name)
            continue
        function_name = f"{function_prefix}LambdaFunction"
        function = functions.get(function_name, {})
        export_name = function_arn_export_name(context, function_prefix)

        # the stage stack exports the function arn, the version number is owned by the alias
        stage.outputs.pop(f"{function_name}QualifiedArn", None)
        stage.outputs[f"{function_name}Arn"] = {
            "Description": "Lambda function ARN",
            "Value": {"Fn::GetAtt": [function_name, "Arn"]},
            "Export": {"Name": export_name},
        }

        version["Properties"]["FunctionName"] = {"Fn::ImportValue": export_name}
        version["DeletionPolicy"] = "Retain" if options.retain_versions else "Delete"
        version.pop("DependsOn", None)

        alias_properties = {
            "FunctionName": {"Fn::ImportValue": export_name},
            "FunctionVersion": {"Fn::GetAtt": [version_name, "Version"]},
            "Name": options.alias,
        }
        description = (function.get("Properties") or {}).get("Description")
        if description:
            alias_properties = {"Description": description, **alias_properties}

        alias.resources[f"{function_prefix}Alias"] = {
            "Type": ResourceType.LAMBDA_ALIAS.value,
            "Properties": alias_properties,
            "DependsOn": [version_name],
        }
        alias.resources[version_name] = version
        del stage.resources[version_name]

    merge_aliases(context, stage, snapshots)

    # function definitions must not point to resources that are not deployed anymore
    if context.removed_resources:
        for name, function in stage.resources_of_type(ResourceType.LAMBDA_FUNCTION).items():
            count = replace_references(function, context.removed_resources, REMOVED_RESOURCE_SENTINEL)
            dependencies = get_dependencies(function)
            if any(dependency in context.removed_resources for dependency in dependencies):
                function["DependsOn"] = [d for d in dependencies if d not in context.removed_resources]
            if count:
                LOG.debug("Neutralized %d references to removed resources in %s", count, name)

    return context, stage, alias
