"""
Removal of a deployed alias.

Removing an alias deletes its alias stack and strips everything from the stage stack that only the removed
alias still used. Removing the master alias removes the whole stage, which is only allowed once all other
aliases are gone.
"""
import logging
from typing import Callable, List, Optional

from botocore.exceptions import ClientError

from aliasstack.cloudformation.context import AliasOptions, DeployedSnapshots, get_alias_name
from aliasstack.cloudformation.exceptions import (
    AliasNotDeployed,
    CannotRemoveStageAlias,
    MasterStackMissing,
    NoStackUpdates,
    OtherAliasesStillDeployed,
)
from aliasstack.cloudformation.orchestrator import StackOrchestrator, is_not_found_error
from aliasstack.cloudformation.references import find_references, get_dependencies, replace_references
from aliasstack.cloudformation.snapshots import load_snapshots
from aliasstack.cloudformation.stackops.lambda_role import prune_role_policies
from aliasstack.cloudformation.stackops.user_resources import parse_name_list
from aliasstack.cloudformation.template import ResourceType, Template
from aliasstack.constants import (
    API_REST_API,
    API_ROOT_RESOURCE,
    API_SERVICE_ENDPOINT,
    EXECUTION_ROLE,
    OUTPUT_ALIAS_OUTPUTS,
    OUTPUT_ALIAS_RESOURCES,
    OUTPUT_MASTER_ALIAS_NAME,
    REMOVED_RESOURCE_SENTINEL,
)

LOG = logging.getLogger(__name__)

API_RESOURCE_TYPE_PREFIX = "AWS::ApiGateway::"
PERMISSION_TYPE = ResourceType.LAMBDA_PERMISSION.value


def _aliased_functions(template: Template) -> List[str]:
    return [
        name[: -len("Alias")]
        for name in template.resources_of_type(ResourceType.LAMBDA_ALIAS)
        if name.endswith("Alias")
    ]


def _detach_authorizer(stage: Template, authorizer_name: str):
    """Unlinks all methods from the authorizer, they stay reachable without authorization."""
    for path in find_references(stage.resources, authorizer_name):
        if path.last != "AuthorizerId":
            continue
        method = path.parent.get(stage.resources)
        method.pop("AuthorizerId", None)
        method["AuthorizationType"] = "NONE"

    for resource in stage.resources.values():
        depends_on = resource.get("DependsOn") if isinstance(resource, dict) else None
        if isinstance(depends_on, list) and authorizer_name in depends_on:
            resource["DependsOn"] = [name for name in depends_on if name != authorizer_name]
        elif depends_on == authorizer_name:
            del resource["DependsOn"]


def _remove_api(stage: Template) -> List[str]:
    """
    Removes the REST API and every API Gateway resource and lambda permission that references it, directly or
    transitively. Other resources keep existing, their references to the removed resources are neutralized.
    """
    removed = []
    pending = [API_REST_API] if API_REST_API in stage.resources else []
    while pending:
        name = pending.pop()
        stage.resources.pop(name, None)
        removed.append(name)
        for dependent, resource in stage.resources.items():
            if not isinstance(resource, dict) or dependent in pending:
                continue
            if name in get_dependencies(resource) or find_references(resource, name):
                resource_type = resource.get("Type") or ""
                if resource_type.startswith(API_RESOURCE_TYPE_PREFIX) or resource_type == PERMISSION_TYPE:
                    pending.append(dependent)

    for resource in stage.resources.values():
        if not isinstance(resource, dict):
            continue
        dependencies = get_dependencies(resource)
        if any(name in removed for name in dependencies):
            remaining = [name for name in dependencies if name not in removed]
            if remaining:
                resource["DependsOn"] = remaining
            else:
                del resource["DependsOn"]
        if resource.get("Type") != ResourceType.IAM_ROLE.value:
            replace_references(resource, removed, REMOVED_RESOURCE_SENTINEL)
    prune_role_policies(stage, removed)
    return removed


def compute_stack_changes(
    options: AliasOptions, current_template: Template, snapshots: DeployedSnapshots
) -> Template:
    """
    Computes the stage template that remains after the alias has been removed.

    :param options: options of the removal, ``options.alias`` is the alias that is removed
    :param current_template: the deployed stage template, it is modified in place
    :param snapshots: the deployed alias stacks, ``alias_templates`` must not contain the removed alias
    :return: the changed stage template
    """
    stage = current_template
    siblings = snapshots.alias_templates
    removed_alias = snapshots.current_alias_template

    used_functions = {name for template in siblings for name in _aliased_functions(template)}
    used_resources = {
        name
        for template in siblings
        for name in parse_name_list(template.get_output_value(OUTPUT_ALIAS_RESOURCES))
    }
    used_outputs = {
        name for template in siblings for name in parse_name_list(template.get_output_value(OUTPUT_ALIAS_OUTPUTS))
    }

    obsolete_functions = [name for name in _aliased_functions(removed_alias) if name not in used_functions]
    obsolete_function_resources = [
        name for function in obsolete_functions for name in (f"{function}LambdaFunction", f"{function}LogGroup")
    ]
    obsolete_function_outputs = [f"{function}LambdaFunctionArn" for function in obsolete_functions]
    obsolete_resources = [
        name
        for name in parse_name_list(removed_alias.get_output_value(OUTPUT_ALIAS_RESOURCES))
        if name not in used_resources
    ]
    obsolete_outputs = [
        name
        for name in parse_name_list(removed_alias.get_output_value(OUTPUT_ALIAS_OUTPUTS))
        if name not in used_outputs
    ]

    for function in obsolete_functions:
        authorizer_name = f"{function}ApiGatewayAuthorizer{options.normalized_alias}"
        if authorizer_name in stage.resources:
            LOG.debug("Detaching authorizer %s", authorizer_name)
            _detach_authorizer(stage, authorizer_name)
            obsolete_resources.append(authorizer_name)

    for name in obsolete_function_resources + obsolete_resources:
        stage.resources.pop(name, None)
    for name in obsolete_function_outputs + obsolete_outputs:
        stage.outputs.pop(name, None)
    if obsolete_resources:
        LOG.info("Remove unused resources: %s", ", ".join(obsolete_resources))

    # functions of the stage may still use the role of the alias, it is removed with the next deployment then
    role_name = f"{EXECUTION_ROLE}{options.normalized_alias}"
    if not find_references(stage.resources, role_name):
        stage.resources.pop(role_name, None)
    else:
        LOG.info("IAM policy removal delayed - will be removed on next deployment")

    removed_references = obsolete_function_resources + obsolete_resources
    for function in stage.resources_of_type(ResourceType.LAMBDA_FUNCTION).values():
        replace_references(function, removed_references, REMOVED_RESOURCE_SENTINEL)
    prune_role_policies(stage, removed_references)

    if not any(template.resources_of_type(ResourceType.API_DEPLOYMENT) for template in siblings):
        LOG.debug("Remove API")
        removed_api = _remove_api(stage)
        if removed_api:
            LOG.info("Remove unused API resources: %s", ", ".join(removed_api))
        for name in (API_REST_API, API_ROOT_RESOURCE, API_SERVICE_ENDPOINT):
            stage.outputs.pop(name, None)
        for name, output in list(stage.outputs.items()):
            if find_references(output, removed_api):
                del stage.outputs[name]

    return stage


def apply_stage_changes(orchestrator: StackOrchestrator, options: AliasOptions, stage: Template):
    """Applies the changed stage template. A template without changes is not an error."""
    LOG.info("Apply changes for %s", options.stack_name)
    tags = {"STAGE": options.stage}
    tags.update(options.stack_tags or {})
    try:
        orchestrator.update_stack(
            options.stack_name, stage, tags=tags, stack_policy=options.stack_policy, role_arn=options.cfn_role
        )
    except NoStackUpdates:
        LOG.debug("Stage stack %s has no changes", options.stack_name)
        return
    orchestrator.monitor_stack("update", options.stack_name)


def remove_alias_stack(orchestrator: StackOrchestrator, options: AliasOptions):
    """
    :raises AliasNotDeployed: if the alias stack does not exist
    """
    stack_name = options.alias_stack_name
    LOG.info("Removing CF stack %s", stack_name)
    try:
        # deleting a missing stack succeeds silently
        orchestrator.describe_stack(stack_name)
        orchestrator.delete_stack(stack_name, role_arn=options.cfn_role)
    except ClientError as e:
        if is_not_found_error(e):
            raise AliasNotDeployed(options.alias) from e
        raise
    orchestrator.monitor_stack("removal", stack_name)


class AliasRemoval:
    """Removes one alias of a service stage."""

    def __init__(
        self,
        options: AliasOptions,
        orchestrator: StackOrchestrator = None,
        trigger_service_removal: Optional[Callable[[], None]] = None,
    ):
        """
        :param options: options of the removal
        :param orchestrator: orchestrator used for all stack operations
        :param trigger_service_removal: removes the remaining service (the stage stack and everything that
            belongs to it) after the master alias stack was deleted
        """
        self.options = options
        self.orchestrator = orchestrator or StackOrchestrator(region_name=options.region)
        self.trigger_service_removal = trigger_service_removal or self._remove_stage_stack

    def remove_alias(self):
        """
        Removes the alias of the options.

        :raises CannotRemoveStageAlias: if the alias is named like the stage
        """
        options = self.options
        if options.stage and options.alias == options.stage:
            raise CannotRemoveStageAlias()
        if options.no_deploy:
            LOG.info("noDeploy option active - will do nothing")
            return

        snapshots = load_snapshots(self.orchestrator, options)
        master_alias = snapshots.current_template.get_output_value(
            OUTPUT_MASTER_ALIAS_NAME
        ) or snapshots.current_alias_template.get_output_value(OUTPUT_MASTER_ALIAS_NAME)
        if master_alias and master_alias == options.alias:
            self._remove_master(snapshots)
            return

        LOG.info("Removing alias %s ...", options.alias)
        stage = compute_stack_changes(options, snapshots.current_template.copy(), snapshots)
        remove_alias_stack(self.orchestrator, options)
        apply_stage_changes(self.orchestrator, options, stage)

    def remove_master_alias(self):
        """
        Removes the master alias stack and then the whole service. The two steps are not atomic, if the
        service removal fails the alias stack stays deleted.

        :raises OtherAliasesStillDeployed: if any other alias is deployed
        :raises MasterStackMissing: if the master alias stack does not exist
        """
        snapshots = load_snapshots(self.orchestrator, self.options)
        self._remove_master(snapshots)

    def _remove_master(self, snapshots: DeployedSnapshots):
        options = self.options
        aliases = [get_alias_name(template) or "?" for template in snapshots.alias_templates]
        if aliases:
            raise OtherAliasesStillDeployed(aliases)
        if not snapshots.current_alias_template.resources and not snapshots.current_alias_template.outputs:
            raise MasterStackMissing(options.alias)

        LOG.info("Removing master alias and stage %s ...", options.alias)
        remove_alias_stack(self.orchestrator, options)
        self.trigger_service_removal()

    def _remove_stage_stack(self):
        LOG.info("Removing stack %s", self.options.stack_name)
        self.orchestrator.delete_stack(self.options.stack_name, role_arn=self.options.cfn_role)
        self.orchestrator.monitor_stack("removal", self.options.stack_name)

