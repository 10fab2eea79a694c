"""Scheduled and CloudWatch event rules that trigger functions are owned by the alias stack."""
import logging

from aliasstack.cloudformation.context import DeployedSnapshots, PipelineContext
from aliasstack.cloudformation.references import (
    add_dependencies,
    find_all_references,
    get_referenced_function,
    has_permission_principal,
)
from aliasstack.cloudformation.stackops import PassResult
from aliasstack.cloudformation.template import ResourceType, Template

LOG = logging.getLogger(__name__)


def handle_cw_events(
    context: PipelineContext, stage: Template, alias: Template, snapshots: DeployedSnapshots
) -> PassResult:
    aliases = alias.resources_of_type(ResourceType.LAMBDA_ALIAS)

    for name, rule in stage.resources_of_type(ResourceType.EVENTS_RULE).items():
        relinked = False
        for target in (rule.get("Properties") or {}).get("Targets") or []:
            for reference in find_all_references(target):
                if not reference.ref.endswith("LambdaFunction") or not reference.path:
                    continue
                alias_name = f"{reference.ref[: -len('LambdaFunction')]}Alias"
                if alias_name not in aliases:
                    continue
                reference.path.set(target, {"Ref": alias_name})
                add_dependencies(rule, alias_name)
                relinked = True

        if relinked:
            LOG.debug("Moving event rule %s to the alias stack", name)
            alias.resources[name] = rule
            del stage.resources[name]

    for name, permission in stage.resources_of_type(ResourceType.LAMBDA_PERMISSION).items():
        if not has_permission_principal(permission, "events"):
            continue
        properties = permission.setdefault("Properties", {})
        function_prefix = get_referenced_function(properties.get("FunctionName"))
        alias_name = f"{function_prefix}Alias" if function_prefix else None
        if alias_name not in aliases:
            continue

        properties["FunctionName"] = {"Ref": alias_name}
        permission["DependsOn"] = [alias_name]
        alias.resources[name] = permission
        del stage.resources[name]

    return context, stage, alias
