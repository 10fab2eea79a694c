"""
The restructuring pipeline. Splits the compiled service template into the stage template and the alias
template of the alias that is being deployed.
"""
import logging
from typing import List, Tuple

from aliasstack.cloudformation.context import DeployedSnapshots, PipelineContext
from aliasstack.cloudformation.stackops import StackOperation
from aliasstack.cloudformation.stackops.api_gateway import handle_api_gateway
from aliasstack.cloudformation.stackops.cw_events import handle_cw_events
from aliasstack.cloudformation.stackops.events import handle_events
from aliasstack.cloudformation.stackops.finalize import finalize_alias_stack
from aliasstack.cloudformation.stackops.functions import handle_functions
from aliasstack.cloudformation.stackops.init import init_alias_stack
from aliasstack.cloudformation.stackops.lambda_role import handle_lambda_role
from aliasstack.cloudformation.stackops.s3_events import handle_s3_events
from aliasstack.cloudformation.stackops.sns_events import handle_sns_events
from aliasstack.cloudformation.stackops.user_resources import merge_user_resources
from aliasstack.cloudformation.template import Template

LOG = logging.getLogger(__name__)

# order matters, every pass relies on the changes of the previous ones
STACK_OPERATIONS: List[StackOperation] = [
    init_alias_stack,
    merge_user_resources,
    handle_lambda_role,
    handle_functions,
    handle_api_gateway,
    handle_events,
    handle_cw_events,
    handle_sns_events,
    handle_s3_events,
    finalize_alias_stack,
]


def restructure(
    context: PipelineContext,
    stage: Template,
    alias: Template,
    snapshots: DeployedSnapshots,
) -> Tuple[PipelineContext, Template, Template]:
    """
    Runs all restructuring passes. The templates are changed in place; nothing is submitted to
    CloudFormation here, so a failing pass leaves no deployed state behind.
    """
    LOG.info("Preparing alias %s of stage %s", context.options.alias, context.options.stage)
    for operation in STACK_OPERATIONS:
        LOG.debug("Running %s", operation.__name__)
        context, stage, alias = operation(context, stage, alias, snapshots)
    return context, stage, alias
