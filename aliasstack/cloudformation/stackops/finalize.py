import copy
import logging

from aliasstack.cloudformation.context import DeployedSnapshots, PipelineContext
from aliasstack.cloudformation.references import find_all_references, get_dependencies
from aliasstack.cloudformation.stackops import PassResult
from aliasstack.cloudformation.template import Template
from aliasstack.constants import OUTPUT_ALIAS_FLAGS

LOG = logging.getLogger(__name__)


def _missing_dependencies(stage: Template, current: Template, removed_resources: list) -> list:
    missing = []
    for resource in list(stage.resources.values()):
        if not isinstance(resource, dict):
            continue
        names = get_dependencies(resource) + [ref.ref for ref in find_all_references(resource)]
        for name in names:
            if (
                name not in stage.resources
                and name in current.resources
                and name not in removed_resources
                and name not in missing
            ):
                missing.append(name)
    return missing


def backfill_dependencies(stage: Template, current: Template, removed_resources: list):
    """Copies resources that stage resources depend on, but that are only present in the deployed stage."""
    missing = _missing_dependencies(stage, current, removed_resources)
    while missing:
        for name in missing:
            LOG.debug("Restoring missing dependency %s from the deployed stage", name)
            stage.resources[name] = copy.deepcopy(current.resources[name])
        missing = _missing_dependencies(stage, current, removed_resources)


def finalize_alias_stack(
    context: PipelineContext, stage: Template, alias: Template, snapshots: DeployedSnapshots
) -> PassResult:
    alias.outputs[OUTPUT_ALIAS_FLAGS]["Value"] = context.alias_flags.serialize()
    backfill_dependencies(stage, snapshots.current_template, context.removed_resources)
    return context, stage, alias
