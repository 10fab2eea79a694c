from typing import Tuple

from aliasstack.cloudformation.context import AliasOptions
from aliasstack.cloudformation.template import ResourceType, Template
from aliasstack.constants import (
    ALIAS_LOG_GROUP_RETENTION_DAYS,
    ALIAS_REFERENCE_EXPORT,
    OUTPUT_ALIAS_LOG_GROUP,
    OUTPUT_ALIAS_NAME,
    OUTPUT_MASTER_ALIAS_NAME,
)


def configure_alias_stack(options: AliasOptions, stage: Template) -> Tuple[Template, Template]:
    """
    Links the stage template with its alias stacks and builds the skeleton of the alias template.

    :param options: options of the deployment
    :param stage: compiled stage template, receives the alias reference export
    :return: a tuple of the alias template and an independent copy that is used to create the alias stack
    """
    # every alias stack imports this export, which allows listing the deployed aliases
    stage.outputs[ALIAS_REFERENCE_EXPORT] = {
        "Description": "Alias stack reference",
        "Value": "REFERENCE",
        "Export": {"Name": options.export_name(ALIAS_REFERENCE_EXPORT)},
    }
    stage.outputs[OUTPUT_MASTER_ALIAS_NAME] = {
        "Description": "Master alias of the stage.",
        "Value": options.master_alias,
    }

    alias = Template(
        {
            "AWSTemplateFormatVersion": "2010-09-09",
            "Description": f"Alias stack for {options.stack_name} ({options.alias})",
            "Resources": {},
            "Outputs": {},
        }
    )
    alias.outputs[OUTPUT_ALIAS_NAME] = {
        "Description": "Alias the stack represents.",
        "Value": options.alias,
    }
    alias.outputs[OUTPUT_MASTER_ALIAS_NAME] = {
        "Description": "Master alias of the stage.",
        "Value": options.master_alias,
    }
    alias.resources[OUTPUT_ALIAS_LOG_GROUP] = {
        "Type": ResourceType.LOGS_LOG_GROUP.value,
        "Properties": {
            "LogGroupName": f"/serverless/{options.alias_stack_name}",
            "RetentionInDays": ALIAS_LOG_GROUP_RETENTION_DAYS,
        },
    }
    alias.outputs[OUTPUT_ALIAS_LOG_GROUP] = {
        "Description": "Log group for alias.",
        "Value": {"Ref": OUTPUT_ALIAS_LOG_GROUP},
        "Export": {"Name": f"{options.alias_stack_name}-LogGroup"},
    }
    return alias, alias.copy()
