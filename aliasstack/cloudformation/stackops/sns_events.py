"""SNS topics and subscriptions that trigger functions. Every alias gets its own topic."""
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


def handle_sns_events(
    context: PipelineContext, stage: Template, alias: Template, snapshots: DeployedSnapshots
) -> PassResult:
    options = context.options
    versions = alias.resources_of_type(ResourceType.LAMBDA_VERSION)
    aliases = alias.resources_of_type(ResourceType.LAMBDA_ALIAS)

    def function_targets(value):
        function_prefix = get_referenced_function(value)
        alias_name = f"{function_prefix}Alias" if function_prefix else None
        if alias_name not in aliases:
            return None, None
        return get_function_version_name(versions, function_prefix), alias_name

    for name, topic in stage.resources_of_type(ResourceType.SNS_TOPIC).items():
        properties = topic.setdefault("Properties", {})
        relinked = False
        for subscription in properties.get("Subscription") or []:
            if subscription.get("Protocol") != "lambda":
                continue
            version_name, alias_name = function_targets(subscription.get("Endpoint"))
            if not alias_name:
                continue
            subscription["Endpoint"] = {"Ref": alias_name}
            add_dependencies(topic, version_name, alias_name)
            relinked = True

        if not relinked:
            continue
        if isinstance(properties.get("TopicName"), str):
            properties["TopicName"] = f"{properties['TopicName']}-{options.alias}"
        alias.resources[name] = topic
        del stage.resources[name]

    for name, subscription in stage.resources_of_type(ResourceType.SNS_SUBSCRIPTION).items():
        properties = subscription.setdefault("Properties", {})
        if properties.get("Protocol") != "lambda":
            continue
        version_name, alias_name = function_targets(properties.get("Endpoint"))
        if not alias_name:
            continue
        properties["Endpoint"] = {"Ref": alias_name}
        subscription["DependsOn"] = [d for d in (version_name, alias_name) if d]
        alias.resources[name] = subscription
        del stage.resources[name]

    for name, permission in stage.resources_of_type(ResourceType.LAMBDA_PERMISSION).items():
        if not has_permission_principal(permission, "sns"):
            continue
        properties = permission.setdefault("Properties", {})
        version_name, alias_name = function_targets(properties.get("FunctionName"))
        if not alias_name:
            continue
        properties["FunctionName"] = {"Ref": alias_name}
        source_arn = properties.get("SourceArn")
        if isinstance(source_arn, dict) and "Fn::Join" in source_arn:
            source_arn["Fn::Join"][1].append(f"-{options.alias}")
        permission["DependsOn"] = [d for d in (version_name, alias_name) if d]
        alias.resources[name] = permission
        del stage.resources[name]

    return context, stage, alias
