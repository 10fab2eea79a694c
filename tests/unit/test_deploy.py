import json
import os
from unittest.mock import MagicMock

import pytest

from aliasstack.cloudformation.configure import configure_alias_stack
from aliasstack.cloudformation.deploy import AliasDeployment, validate_alias_stack_name
from aliasstack.cloudformation.exceptions import InvalidAliasCharacter, InvalidStackName, NoStackUpdates
from aliasstack.cloudformation.orchestrator import StackOrchestrator
from aliasstack.cloudformation.template import Template


@pytest.fixture
def orchestrator():
    orchestrator = MagicMock(spec=StackOrchestrator)
    orchestrator.stack_exists.return_value = False
    orchestrator.list_exports.return_value = {}
    return orchestrator


def _read(options, filename):
    with open(os.path.join(options.service_path, options.template_dir, filename)) as f:
        return json.load(f)


def test_configure_alias_stack(options):
    stage = Template.empty()

    alias, create_template = configure_alias_stack(options, stage)

    assert stage.outputs["ServerlessAliasReference"] == {
        "Description": "Alias stack reference",
        "Value": "REFERENCE",
        "Export": {"Name": "testService-myStage-ServerlessAliasReference"},
    }
    assert stage.outputs["MasterAliasName"]["Value"] == "myStage"
    assert alias.to_dict()["Description"] == "Alias stack for testService-myStage (myAlias)"
    assert alias.get_output_value("ServerlessAliasName") == "myAlias"
    assert alias.resources["ServerlessAliasLogGroup"]["Properties"] == {
        "LogGroupName": "/serverless/testService-myStage-myAlias",
        "RetentionInDays": 7,
    }
    assert alias.outputs["ServerlessAliasLogGroup"]["Export"] == {"Name": "testService-myStage-myAlias-LogGroup"}
    assert create_template == alias
    assert create_template.document is not alias.document


@pytest.mark.parametrize("name", ["svc-dev-myAlias", "Svc1-dev-a"])
def test_valid_alias_stack_names(name):
    validate_alias_stack_name(name)


@pytest.mark.parametrize("name", ["1svc-dev-a", "svc-dev-my_alias", "svc.dev", "s" * 129])
def test_invalid_alias_stack_names(name):
    with pytest.raises(InvalidStackName):
        validate_alias_stack_name(name)


def test_prepare_first_deployment(orchestrator, options, compiled_template):
    deployment = AliasDeployment(options, orchestrator)

    stage, alias = deployment.prepare(compiled_template)

    # the alias stack is created before the stage stack is deployed
    orchestrator.create_stack.assert_called_once()
    assert orchestrator.create_stack.call_args.args[0] == "testService-myStage-myAlias"
    assert orchestrator.create_stack.call_args.kwargs["tags"] == {"STAGE": "myStage", "ALIAS": "myAlias"}
    orchestrator.monitor_stack.assert_called_once_with("create", "testService-myStage-myAlias")
    orchestrator.list_imports.assert_not_called()

    assert "TestfctAlias" in alias.resources
    assert _read(options, "cloudformation-template-create-alias-stack.json")["Outputs"]["ServerlessAliasName"] == {
        "Description": "Alias the stack represents.",
        "Value": "myAlias",
    }
    assert _read(options, "cloudformation-template-update-stack.json") == stage.to_dict()
    assert "ServerlessAliasReference" not in compiled_template.outputs


def test_deploy_alias_stack_updates_existing_stack(orchestrator, options, compiled_template):
    orchestrator.stack_exists.return_value = True
    orchestrator.get_template.return_value = Template.empty()
    orchestrator.list_imports.return_value = []
    options.stack_tags = {"team": "alias"}
    options.cfn_role = "arn:aws:iam::000000000000:role/cfn"
    deployment = AliasDeployment(options, orchestrator)

    deployment.prepare(compiled_template)
    deployment.deploy_alias_stack()

    orchestrator.create_stack.assert_not_called()
    orchestrator.update_stack.assert_called_once()
    assert orchestrator.update_stack.call_args.kwargs == {
        "tags": {"STAGE": "myStage", "ALIAS": "myAlias", "team": "alias"},
        "stack_policy": None,
        "role_arn": "arn:aws:iam::000000000000:role/cfn",
    }
    orchestrator.monitor_stack.assert_called_once_with("update", "testService-myStage-myAlias")
    update_template = _read(options, "cloudformation-template-update-alias-stack.json")
    assert "TestfctAlias" in update_template["Resources"]


def test_deploy_alias_stack_without_changes(orchestrator, options, compiled_template):
    orchestrator.stack_exists.return_value = True
    orchestrator.get_template.return_value = Template.empty()
    orchestrator.list_imports.return_value = []
    orchestrator.update_stack.side_effect = NoStackUpdates("testService-myStage-myAlias")
    deployment = AliasDeployment(options, orchestrator)

    deployment.prepare(compiled_template)
    deployment.deploy_alias_stack()

    orchestrator.monitor_stack.assert_not_called()


def test_alias_stack_created_late(orchestrator, options, compiled_template):
    options.create_early = False
    deployment = AliasDeployment(options, orchestrator)

    deployment.prepare(compiled_template)
    orchestrator.create_stack.assert_not_called()

    deployment.deploy_alias_stack()

    orchestrator.create_stack.assert_called_once()
    created = orchestrator.create_stack.call_args.args[1]
    assert "TestfctAlias" in created.resources


def test_deferred_outputs_are_resolved_before_update(orchestrator, options, compiled_template):
    orchestrator.stack_exists.return_value = True
    orchestrator.get_template.return_value = Template.empty()
    orchestrator.list_imports.return_value = []
    orchestrator.list_exports.return_value = {"testService-myStage-MyTableStreamArn": "arn:stream"}
    compiled_template.resources["MyTable"] = {"Type": "AWS::DynamoDB::Table"}
    compiled_template.resources["TestfctEventSourceMappingDynamodbMyTable"] = {
        "Type": "AWS::Lambda::EventSourceMapping",
        "Properties": {
            "EventSourceArn": {"Fn::GetAtt": ["MyTable", "StreamArn"]},
            "FunctionName": {"Fn::GetAtt": ["TestfctLambdaFunction", "Arn"]},
        },
    }
    deployment = AliasDeployment(options, orchestrator)

    deployment.prepare(compiled_template)
    deployment.deploy_alias_stack()

    submitted = orchestrator.update_stack.call_args.args[1]
    mapping = submitted.resources["TestfctEventSourceMappingDynamodbMyTable"]
    assert mapping["Properties"]["EventSourceArn"] == "arn:stream"


def test_no_deploy_only_writes_templates(orchestrator, options, compiled_template):
    options.no_deploy = True
    orchestrator.stack_exists.return_value = True
    orchestrator.get_template.return_value = Template.empty()
    orchestrator.list_imports.return_value = []
    deployment = AliasDeployment(options, orchestrator)

    deployment.deploy(compiled_template)

    orchestrator.create_stack.assert_not_called()
    orchestrator.update_stack.assert_not_called()
    assert os.path.exists(os.path.join(options.service_path, ".serverless", "cloudformation-template-update-stack.json"))


def test_no_deploy_keeps_deferred_outputs_unresolved(orchestrator, options, compiled_template):
    options.no_deploy = True
    compiled_template.resources["MyTable"] = {"Type": "AWS::DynamoDB::Table"}
    compiled_template.resources["TestfctEventSourceMappingDynamodbMyTable"] = {
        "Type": "AWS::Lambda::EventSourceMapping",
        "Properties": {
            "EventSourceArn": {"Fn::GetAtt": ["MyTable", "StreamArn"]},
            "FunctionName": {"Fn::GetAtt": ["TestfctLambdaFunction", "Arn"]},
        },
    }
    deployment = AliasDeployment(options, orchestrator)

    deployment.prepare(compiled_template)
    deployment.deploy_alias_stack()

    orchestrator.list_exports.assert_not_called()
    written = _read(options, "cloudformation-template-update-alias-stack.json")
    mapping = written["Resources"]["TestfctEventSourceMappingDynamodbMyTable"]
    assert mapping["Properties"]["EventSourceArn"] == {"Fn::ImportValue": "testService-myStage-MyTableStreamArn"}


def test_deploy_applies_stage_before_alias(orchestrator, options, compiled_template):
    orchestrator.stack_exists.side_effect = lambda name: name == "testService-myStage-myAlias"
    deployment = AliasDeployment(options, orchestrator)

    deployment.deploy(compiled_template)

    created = [c.args[0] for c in orchestrator.create_stack.call_args_list]
    updated = [c.args[0] for c in orchestrator.update_stack.call_args_list]
    assert created == ["testService-myStage"]
    assert updated == ["testService-myStage-myAlias"]


def test_invalid_alias_is_rejected(orchestrator, options, compiled_template):
    options.alias = "my alias"

    with pytest.raises(InvalidAliasCharacter):
        AliasDeployment(options, orchestrator).prepare(compiled_template)
    orchestrator.create_stack.assert_not_called()
