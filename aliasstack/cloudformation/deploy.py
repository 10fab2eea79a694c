"""
Deployment of an alias: preparing the stage and alias templates, and applying the alias stack.

A deployment runs in two phases. ``AliasDeployment.prepare`` loads the deployed state, restructures the
compiled service template and returns the stage template, which is then applied by the deployment tool.
``AliasDeployment.deploy_alias_stack`` resolves the deferred outputs against the freshly applied stage stack
and submits the alias stack.
"""
import logging
import os
import re
from typing import Dict, Optional, Tuple

from aliasstack.cloudformation.configure import configure_alias_stack
from aliasstack.cloudformation.context import AliasOptions, DeployedSnapshots, PipelineContext
from aliasstack.cloudformation.exceptions import InvalidStackName, NoStackUpdates
from aliasstack.cloudformation.orchestrator import StackOrchestrator
from aliasstack.cloudformation.references import normalize_alias_for_logical_id
from aliasstack.cloudformation.restructure import restructure
from aliasstack.cloudformation.snapshots import load_snapshots
from aliasstack.cloudformation.template import Template
from aliasstack.constants import (
    CREATE_ALIAS_TEMPLATE_FILE,
    MAX_STACK_NAME_LENGTH,
    STAGE_TEMPLATE_FILE,
    UPDATE_ALIAS_TEMPLATE_FILE,
)

LOG = logging.getLogger(__name__)

INVALID_STACK_NAME_PATTERN = re.compile(r"^[^a-zA-Z].+|.*[^a-zA-Z0-9-].*")


def validate_alias_stack_name(stack_name: str):
    """
    :raises InvalidStackName: if the name is not accepted by CloudFormation
    """
    if INVALID_STACK_NAME_PATTERN.match(stack_name) or len(stack_name) > MAX_STACK_NAME_LENGTH:
        raise InvalidStackName(stack_name)


def write_template(options: AliasOptions, filename: str, template: Template) -> str:
    """Writes the template into the template folder of the service and returns the file path."""
    directory = os.path.join(options.service_path, options.template_dir)
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, filename)
    with open(path, "w") as f:
        f.write(template.to_json())
    LOG.debug("Wrote template %s", path)
    return path


def get_alias_stack_tags(options: AliasOptions) -> Dict[str, str]:
    tags = {"STAGE": options.stage, "ALIAS": options.alias}
    tags.update(options.stack_tags or {})
    return tags


def create_alias_stack(orchestrator: StackOrchestrator, options: AliasOptions, template: Template):
    """Creates the alias stack from the given template and waits for the creation to finish."""
    LOG.info("Creating alias stack '%s' ...", options.alias)
    orchestrator.create_stack(
        options.alias_stack_name,
        template,
        tags=get_alias_stack_tags(options),
        role_arn=options.cfn_role,
    )
    orchestrator.monitor_stack("create", options.alias_stack_name)


def update_alias_stack(
    orchestrator: StackOrchestrator,
    options: AliasOptions,
    template: Template,
    context: PipelineContext,
    create: bool = False,
):
    """
    Resolves the deferred outputs of the alias template and applies it. A template that does not change the
    deployed stack is not an error.

    :param create: whether the stack has not been created yet
    """
    filename = CREATE_ALIAS_TEMPLATE_FILE if create else UPDATE_ALIAS_TEMPLATE_FILE
    if options.no_deploy:
        # the stage stack was not applied, deferred outputs keep their import
        write_template(options, filename, template)
        LOG.info("Deployment skipped, alias template written to %s", options.template_dir)
        return

    if context.deferred_outputs:
        LOG.info("Resolving deferred outputs ...")
        context.deferred_outputs.resolve(orchestrator.list_exports())
    write_template(options, filename, template)

    if create:
        create_alias_stack(orchestrator, options, template)
        return

    LOG.info("Updating alias stack '%s' ...", options.alias)
    try:
        orchestrator.update_stack(
            options.alias_stack_name,
            template,
            tags=get_alias_stack_tags(options),
            stack_policy=options.stack_policy,
            role_arn=options.cfn_role,
        )
    except NoStackUpdates:
        LOG.info("Alias stack '%s' is up to date", options.alias)
        return
    orchestrator.monitor_stack("update", options.alias_stack_name)


def apply_stage_stack(orchestrator: StackOrchestrator, options: AliasOptions, stage: Template):
    """Creates or updates the stage stack with the restructured stage template."""
    tags = {"STAGE": options.stage}
    tags.update(options.stack_tags or {})
    if not orchestrator.stack_exists(options.stack_name):
        orchestrator.create_stack(options.stack_name, stage, tags=tags, role_arn=options.cfn_role)
        orchestrator.monitor_stack("create", options.stack_name)
        return
    try:
        orchestrator.update_stack(
            options.stack_name, stage, tags=tags, stack_policy=options.stack_policy, role_arn=options.cfn_role
        )
    except NoStackUpdates:
        LOG.info("Stage stack %s is up to date", options.stack_name)
        return
    orchestrator.monitor_stack("update", options.stack_name)


class AliasDeployment:
    """Deploys one alias of a service stage."""

    options: AliasOptions
    orchestrator: StackOrchestrator
    context: Optional[PipelineContext]
    alias_template: Optional[Template]
    create_later: bool

    def __init__(self, options: AliasOptions, orchestrator: StackOrchestrator = None):
        self.options = options
        self.orchestrator = orchestrator or StackOrchestrator(region_name=options.region)
        self.context = None
        self.alias_template = None
        self.create_later = False

    def prepare(self, compiled_template: Template, user_resources: Template = None) -> Tuple[Template, Template]:
        """
        Restructures the compiled template of the service.

        :param compiled_template: the template compiled by the deployment tool, it is not modified
        :param user_resources: the custom resources and outputs declared by the service
        :return: a tuple of the stage template and the alias template
        """
        options = self.options
        normalize_alias_for_logical_id(options.alias)
        validate_alias_stack_name(options.alias_stack_name)

        stage = compiled_template.copy()
        alias, create_template = configure_alias_stack(options, stage)
        write_template(options, CREATE_ALIAS_TEMPLATE_FILE, create_template)
        self._check_alias_stack(create_template)

        snapshots = self._load_snapshots()
        context = PipelineContext(
            options=options,
            user_resources=(user_resources or Template.empty()).copy(),
        )
        context, stage, alias = restructure(context, stage, alias, snapshots)

        write_template(options, STAGE_TEMPLATE_FILE, stage)
        self.context = context
        self.alias_template = alias
        return stage, alias

    def deploy_alias_stack(self):
        """Applies the prepared alias template. The stage template must have been applied before."""
        if self.alias_template is None:
            raise ValueError("Alias deployment has not been prepared")
        update_alias_stack(
            self.orchestrator, self.options, self.alias_template, self.context, create=self.create_later
        )
        self.create_later = False

    def _check_alias_stack(self, create_template: Template):
        if self.options.no_deploy:
            return
        if self.orchestrator.stack_exists(self.options.alias_stack_name):
            LOG.debug("Alias stack %s already exists", self.options.alias_stack_name)
            return
        if self.options.create_early:
            create_alias_stack(self.orchestrator, self.options, create_template)
        else:
            self.create_later = True

    def _load_snapshots(self) -> DeployedSnapshots:
        if self.orchestrator.stack_exists(self.options.stack_name):
            return load_snapshots(self.orchestrator, self.options)
        # first deployment of the stage, nothing can import its exports yet
        LOG.info("Stage stack %s is not deployed yet", self.options.stack_name)
        return DeployedSnapshots(Template.empty(), [], Template.empty())

    def deploy(self, compiled_template: Template, user_resources: Template = None):
        """Prepares the templates and applies the stage stack and then the alias stack."""
        stage, _ = self.prepare(compiled_template, user_resources)
        if self.options.no_deploy:
            LOG.info("noDeploy option active - templates written to %s", self.options.template_dir)
            return
        apply_stage_stack(self.orchestrator, self.options, stage)
        self.deploy_alias_stack()
