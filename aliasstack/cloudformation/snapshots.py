"""
Loads the currently deployed templates that the restructuring and removal flows operate on.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List

from aliasstack.cloudformation.context import AliasOptions, DeployedSnapshots, get_alias_name
from aliasstack.cloudformation.exceptions import ExportNotFound
from aliasstack.cloudformation.orchestrator import StackOrchestrator
from aliasstack.cloudformation.template import Template
from aliasstack.constants import ALIAS_REFERENCE_EXPORT, MAX_SNAPSHOT_WORKERS

LOG = logging.getLogger(__name__)


def load_current_template(orchestrator: StackOrchestrator, options: AliasOptions) -> Template:
    """The processed template of the stage stack, with all references resolved."""
    return orchestrator.get_template(options.stack_name, template_stage="Processed")


def get_alias_stack_names(orchestrator: StackOrchestrator, options: AliasOptions) -> List[str]:
    """Names of all stacks that import the alias reference of the stage stack."""
    try:
        return orchestrator.list_imports(options.export_name(ALIAS_REFERENCE_EXPORT))
    except ExportNotFound:
        # first deployment of the stage, nothing imports the reference yet
        LOG.debug("No alias stacks deployed for %s", options.stack_name)
        return []


def load_alias_templates(orchestrator: StackOrchestrator, options: AliasOptions) -> List[Template]:
    """The original templates of all deployed alias stacks, in the order the stacks were listed."""
    stack_names = get_alias_stack_names(orchestrator, options)
    if not stack_names:
        return []
    with ThreadPoolExecutor(max_workers=min(MAX_SNAPSHOT_WORKERS, len(stack_names))) as executor:
        # the original templates still contain the version references
        return list(executor.map(lambda name: orchestrator.get_template(name, "Original"), stack_names))


def load_snapshots(orchestrator: StackOrchestrator, options: AliasOptions) -> DeployedSnapshots:
    """
    Loads the stage template and all alias templates, and separates the alias that is deployed or removed
    from its siblings. The current alias template is empty if the alias has not been deployed yet.
    """
    current_template = load_current_template(orchestrator, options)
    siblings = []
    current_alias_template = Template.empty()
    for template in load_alias_templates(orchestrator, options):
        if get_alias_name(template) == options.alias:
            current_alias_template = template
        else:
            siblings.append(template)
    LOG.debug("Loaded %s sibling alias stacks of %s", len(siblings), options.stack_name)
    return DeployedSnapshots(current_template, siblings, current_alias_template)
