import logging

from aliasstack.cloudformation.context import (
    AliasFlags,
    DeployedSnapshots,
    PipelineContext,
    get_alias_name,
    load_flags,
)
from aliasstack.cloudformation.stackops import PassResult
from aliasstack.cloudformation.template import Template
from aliasstack.constants import OUTPUT_ALIAS_FLAGS

LOG = logging.getLogger(__name__)


def init_alias_stack(
    context: PipelineContext, stage: Template, alias: Template, snapshots: DeployedSnapshots
) -> PassResult:
    """Seeds the alias flags and reads the flags of all other deployed aliases."""
    context.alias_flags = AliasFlags()
    alias.outputs[OUTPUT_ALIAS_FLAGS] = {
        "Description": "Alias flags.",
        "Value": context.alias_flags.to_dict(),
    }

    for template in snapshots.alias_templates:
        name = get_alias_name(template)
        if name:
            context.sibling_flags[name] = load_flags(template)

    return context, stage, alias
