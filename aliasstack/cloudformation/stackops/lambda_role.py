"""
Execution role handling. Every alias gets its own copy of the embedded lambda execution role, so that
policy changes of one alias do not affect the functions of the others.
"""
import copy
import logging
import re

from aliasstack.cloudformation.context import DeployedSnapshots, PipelineContext, get_alias_name
from aliasstack.cloudformation.exceptions import UnexpectedPolicyShape
from aliasstack.cloudformation.references import (
    find_all_references,
    normalize_alias_for_logical_id,
    prune_policy_statements,
    rename_dependency,
    rename_references,
)
from aliasstack.cloudformation.stackops import PassResult
from aliasstack.cloudformation.template import ResourceType, Template
from aliasstack.constants import EXECUTION_ROLE

LOG = logging.getLogger(__name__)

ALIAS_ROLE_PATTERN = re.compile(rf"^{EXECUTION_ROLE}.+")


def get_role_statements(role: dict) -> list:
    statements = []
    for policy in (role.get("Properties") or {}).get("Policies") or []:
        statements.extend(policy.get("PolicyDocument", {}).get("Statement") or [])
    return statements


def prune_role_policies(stage: Template, removed_resources: list):
    """Drops policy statement resources of all alias roles that reference removed resources."""
    for name, role in stage.resources_of_type(ResourceType.IAM_ROLE).items():
        if not ALIAS_ROLE_PATTERN.match(name):
            continue
        for policy in (role.get("Properties") or {}).get("Policies") or []:
            statements = policy.get("PolicyDocument", {}).get("Statement")
            if isinstance(statements, list):
                prune_policy_statements(statements, removed_resources)


def _add_statement_dependencies(stage: Template, current: Template, role: dict, removed_resources: list):
    """Resources that the role policy references must exist in the stage stack."""
    for reference in find_all_references(get_role_statements(role)):
        name = reference.ref
        if name in stage.resources or name in removed_resources or name not in current.resources:
            continue
        LOG.debug("Restoring resource %s referenced by the execution role", name)
        stage.resources[name] = copy.deepcopy(current.resources[name])


def _append_alias_to_role_name(role: dict, alias: str):
    properties = role.get("Properties") or {}
    role_name = properties.get("RoleName")
    if isinstance(role_name, dict) and "Fn::Join" in role_name:
        role_name["Fn::Join"][1].append(alias)
    elif isinstance(role_name, str):
        properties["RoleName"] = f"{role_name}-{alias}"


def handle_lambda_role(
    context: PipelineContext, stage: Template, alias: Template, snapshots: DeployedSnapshots
) -> PassResult:
    options = context.options
    current = snapshots.current_template
    alias_role_name = f"{EXECUTION_ROLE}{options.normalized_alias}"

    if options.global_role:
        # the functions use a role managed outside of the service, keep the roles of the other aliases
        for name, role in current.resources_of_type(ResourceType.IAM_ROLE).items():
            if ALIAS_ROLE_PATTERN.match(name) and name not in stage.resources:
                stage.resources[name] = copy.deepcopy(role)
        stage.resources.pop(alias_role_name, None)
        context.alias_flags.has_role = True
        prune_role_policies(stage, context.removed_resources)
        return context, stage, alias

    role = stage.resources.get(EXECUTION_ROLE)
    if role is not None:
        policies = (role.get("Properties") or {}).get("Policies") or []
        if len(policies) != 1:
            raise UnexpectedPolicyShape(len(policies))

        del stage.resources[EXECUTION_ROLE]
        stage.resources[alias_role_name] = role
        _append_alias_to_role_name(role, options.alias)

        for function in stage.resources_of_type(ResourceType.LAMBDA_FUNCTION).values():
            rename_references(function.get("Properties") or {}, EXECUTION_ROLE, alias_role_name)
            rename_dependency(function, EXECUTION_ROLE, alias_role_name)

    # preserve the roles of all other deployed aliases
    for template in snapshots.alias_templates:
        sibling = get_alias_name(template)
        if not sibling or sibling == options.alias:
            continue
        flags = context.sibling_flags.get(sibling)
        if flags and flags.has_role:
            continue
        sibling_role_name = f"{EXECUTION_ROLE}{normalize_alias_for_logical_id(sibling)}"
        if sibling_role_name in current.resources and sibling_role_name not in stage.resources:
            stage.resources[sibling_role_name] = copy.deepcopy(current.resources[sibling_role_name])

    prune_role_policies(stage, context.removed_resources)
    if role is not None:
        _add_statement_dependencies(stage, current, role, context.removed_resources)

    return context, stage, alias
