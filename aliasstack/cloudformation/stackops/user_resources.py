"""
Reconciliation of user defined resources and outputs.

Resources declared in the ``resources`` section of a service belong to the stage stack, but each alias may
declare its own. Resources that other deployed aliases declared are pulled forward from the deployed stage
template, so that deploying one alias never deletes the resources of another one.
"""
import copy
import json
import logging
from typing import Any, Dict, List

from aliasstack.cloudformation.context import DeployedSnapshots, PipelineContext, get_alias_name
from aliasstack.cloudformation.exceptions import CorruptSnapshot, ResourceConflict
from aliasstack.cloudformation.stackops import PassResult
from aliasstack.cloudformation.template import Template
from aliasstack.constants import OUTPUT_ALIAS_OUTPUTS, OUTPUT_ALIAS_RESOURCES
from aliasstack.utils.collections import is_partial_match, merge_defaults

LOG = logging.getLogger(__name__)


def parse_name_list(value: Any) -> List[str]:
    """Reads a JSON encoded list of logical names stored as output value."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    try:
        names = json.loads(value)
    except (TypeError, ValueError) as e:
        raise CorruptSnapshot(f"Invalid list of alias references: {value!r}") from e
    if not isinstance(names, list):
        raise CorruptSnapshot(f"Invalid list of alias references: {value!r}")
    return names


def collect_alias_dependencies(snapshots: DeployedSnapshots):
    """
    Returns the resources and outputs that the other deployed aliases declared, with their bodies taken from
    the deployed stage template.
    """
    current = snapshots.current_template
    resources: Dict[str, dict] = {}
    outputs: Dict[str, dict] = {}
    for template in snapshots.alias_templates:
        try:
            resource_names = parse_name_list(template.get_output_value(OUTPUT_ALIAS_RESOURCES))
            output_names = parse_name_list(template.get_output_value(OUTPUT_ALIAS_OUTPUTS))
        except CorruptSnapshot as e:
            LOG.warning("Skipping references of alias %s: %s", get_alias_name(template), e)
            continue
        for name in resource_names:
            if name in current.resources:
                resources.setdefault(name, current.resources[name])
        for name in output_names:
            if name in current.outputs:
                outputs.setdefault(name, current.outputs[name])
    return resources, outputs


def _check_conflicts(
    kind: str,
    declared: Dict[str, dict],
    deployed: Dict[str, dict],
    is_master: bool,
    check_type: bool,
):
    for name, body in declared.items():
        if name not in deployed or is_partial_match(deployed[name], body):
            continue
        if is_master and (not check_type or deployed[name].get("Type") == body.get("Type")):
            LOG.warning("Reconfigure %s %s. Remember to update it in other aliases too.", kind.lower(), name)
            continue
        raise ResourceConflict(kind, name)


def merge_user_resources(
    context: PipelineContext, stage: Template, alias: Template, snapshots: DeployedSnapshots
) -> PassResult:
    options = context.options
    user_resources = context.user_resources.resources
    user_outputs = context.user_resources.outputs

    alias_resources, alias_outputs = collect_alias_dependencies(snapshots)

    # publish what this alias owns, so that later deployments of other aliases can pull it forward
    alias.outputs[OUTPUT_ALIAS_RESOURCES] = {
        "Description": "Custom resource references",
        "Value": json.dumps(list(user_resources)),
    }
    alias.outputs[OUTPUT_ALIAS_OUTPUTS] = {
        "Description": "Custom output references",
        "Value": json.dumps(list(user_outputs)),
    }

    _check_conflicts("Resource", user_resources, alias_resources, options.is_master, check_type=True)
    _check_conflicts("Output", user_outputs, alias_outputs, options.is_master, check_type=False)

    previous_resources = parse_name_list(
        snapshots.current_alias_template.get_output_value(OUTPUT_ALIAS_RESOURCES)
    )
    context.removed_resources = [
        name
        for name in previous_resources
        if name not in user_resources and name not in alias_resources and name not in stage.resources
    ]
    if context.removed_resources:
        LOG.info("Removing resources no longer used: %s", ", ".join(context.removed_resources))

    merge_defaults(stage.resources, copy.deepcopy(alias_resources))
    merge_defaults(stage.outputs, copy.deepcopy(alias_outputs))

    return context, stage, alias
