"""
Stream and queue event source mappings. The mappings are owned by the alias stack and invoke the function
alias; the event source itself stays in the stage stack and is exported.
"""
import json
import logging

from aliasstack.cloudformation.context import DeployedSnapshots, PipelineContext
from aliasstack.cloudformation.references import find_all_references, get_referenced_function
from aliasstack.cloudformation.stackops import PassResult
from aliasstack.cloudformation.template import PropertyPath, ResourceType, Template
from aliasstack.constants import OUTPUT_ALIAS_OUTPUTS

LOG = logging.getLogger(__name__)

# attributes whose value changes whenever the source is recreated, an import would pin them
DEFERRED_ATTRIBUTES = ("StreamArn",)


def add_alias_output(alias: Template, name: str):
    output = alias.outputs.setdefault(
        OUTPUT_ALIAS_OUTPUTS, {"Description": "Custom output references", "Value": "[]"}
    )
    names = json.loads(output["Value"])
    if name not in names:
        names.append(name)
    output["Value"] = json.dumps(names)


def handle_events(
    context: PipelineContext, stage: Template, alias: Template, snapshots: DeployedSnapshots
) -> PassResult:
    options = context.options

    for name, mapping in stage.resources_of_type(ResourceType.LAMBDA_EVENT_SOURCE_MAPPING).items():
        properties = mapping.setdefault("Properties", {})
        function_prefix = get_referenced_function(properties.get("FunctionName"))
        if not function_prefix:
            LOG.warning("No function name defined for event source mapping %s", name)
            continue

        alias_name = f"{function_prefix}Alias"
        if alias_name not in alias.resources:
            LOG.warning("Function of event source mapping %s has no alias, keeping it in the stage stack", name)
            continue
        properties["FunctionName"] = {"Ref": alias_name}
        mapping["DependsOn"] = [alias_name]

        source_arn = properties.get("EventSourceArn")
        references = find_all_references(source_arn)
        if references:
            output_name = references[0].ref
            attribute = None
            if isinstance(source_arn, dict) and "Fn::GetAtt" in source_arn:
                get_att = source_arn["Fn::GetAtt"]
                attribute = get_att[1] if isinstance(get_att, list) else get_att.split(".", 1)[-1]
                output_name += attribute
            export_name = options.export_name(output_name)

            stage.outputs[output_name] = {
                "Description": "Alias resource reference",
                "Value": source_arn,
                "Export": {"Name": export_name},
            }
            add_alias_output(alias, output_name)
            properties["EventSourceArn"] = {"Fn::ImportValue": export_name}

            if attribute in DEFERRED_ATTRIBUTES:
                context.deferred_outputs.add(
                    export_name,
                    alias.document,
                    PropertyPath(("Resources", name, "Properties", "EventSourceArn")),
                )

        alias.resources[name] = mapping
        del stage.resources[name]

    return context, stage, alias
