import json
import logging

import pytest

from aliasstack.cloudformation.context import AliasOptions, DeployedSnapshots
from aliasstack.cloudformation.exceptions import CorruptSnapshot, ResourceConflict
from aliasstack.cloudformation.stackops.user_resources import merge_user_resources, parse_name_list
from aliasstack.cloudformation.template import Template

TABLE = {"Type": "AWS::DynamoDB::Table", "Properties": {"TableName": "shared"}}


def _alias_template(name, resources=(), outputs=()):
    return Template(
        {
            "Outputs": {
                "ServerlessAliasName": {"Value": name},
                "AliasResources": {"Value": json.dumps(list(resources))},
                "AliasOutputs": {"Value": json.dumps(list(outputs))},
            }
        }
    )


@pytest.fixture
def snapshots():
    current = Template(
        {
            "Resources": {"SharedTable": TABLE, "OldQueue": {"Type": "AWS::SQS::Queue"}},
            "Outputs": {"SharedTableName": {"Value": {"Ref": "SharedTable"}}},
        }
    )
    sibling = _alias_template("other", ["SharedTable"], ["SharedTableName"])
    previous = _alias_template("myAlias", ["OldQueue"])
    return DeployedSnapshots(current, [sibling], previous)


def test_parse_name_list():
    assert parse_name_list(None) == []
    assert parse_name_list('["A", "B"]') == ["A", "B"]
    assert parse_name_list(["A"]) == ["A"]
    with pytest.raises(CorruptSnapshot):
        parse_name_list("{")
    with pytest.raises(CorruptSnapshot):
        parse_name_list('{"A": 1}')


def test_merge_pulls_forward_sibling_resources(create_context, snapshots):
    user_resources = Template({"Resources": {"MyBucket": {"Type": "AWS::S3::Bucket"}}})
    context = create_context(user_resources=user_resources)
    stage = Template({"Resources": {"MyBucket": {"Type": "AWS::S3::Bucket"}}})
    alias = Template.empty()

    context, stage, alias = merge_user_resources(context, stage, alias, snapshots)

    assert stage.resources["SharedTable"] == TABLE
    assert stage.outputs["SharedTableName"] == {"Value": {"Ref": "SharedTable"}}
    assert json.loads(alias.get_output_value("AliasResources")) == ["MyBucket"]
    assert json.loads(alias.get_output_value("AliasOutputs")) == []
    assert context.removed_resources == ["OldQueue"]
    # the pulled forward resource is a copy
    stage.resources["SharedTable"]["Properties"]["TableName"] = "changed"
    assert snapshots.current_template.resources["SharedTable"]["Properties"]["TableName"] == "shared"


def test_merge_accepts_identical_declarations(create_context, snapshots):
    user_resources = Template({"Resources": {"SharedTable": TABLE}})
    context = create_context(user_resources=user_resources)
    stage = Template({"Resources": {"SharedTable": TABLE}})

    context, stage, alias = merge_user_resources(context, stage, Template.empty(), snapshots)

    assert stage.resources["SharedTable"] == TABLE
    assert context.removed_resources == ["OldQueue"]


def test_merge_rejects_conflicting_resource(create_context, snapshots):
    changed = {"Type": "AWS::DynamoDB::Table", "Properties": {"TableName": "mine"}}
    context = create_context(user_resources=Template({"Resources": {"SharedTable": changed}}))

    with pytest.raises(ResourceConflict):
        merge_user_resources(context, Template.empty(), Template.empty(), snapshots)


def test_merge_rejects_conflicting_output(create_context, snapshots):
    outputs = {"SharedTableName": {"Value": "other"}}
    context = create_context(user_resources=Template({"Outputs": outputs}))

    with pytest.raises(ResourceConflict):
        merge_user_resources(context, Template.empty(), Template.empty(), snapshots)


def test_master_alias_may_reconfigure(tmp_path, create_context, snapshots, caplog):
    options = AliasOptions(service="testService", stage="myStage", service_path=str(tmp_path))
    changed = {"Type": "AWS::DynamoDB::Table", "Properties": {"TableName": "mine"}}
    context = create_context(options=options, user_resources=Template({"Resources": {"SharedTable": changed}}))
    stage = Template({"Resources": {"SharedTable": changed}})

    context, stage, alias = merge_user_resources(context, stage, Template.empty(), snapshots)

    assert stage.resources["SharedTable"] == changed
    assert "Reconfigure resource SharedTable" in caplog.text


def test_master_alias_may_not_change_resource_type(tmp_path, create_context, snapshots):
    options = AliasOptions(service="testService", stage="myStage", service_path=str(tmp_path))
    changed = {"Type": "AWS::SNS::Topic"}
    context = create_context(options=options, user_resources=Template({"Resources": {"SharedTable": changed}}))

    with pytest.raises(ResourceConflict):
        merge_user_resources(context, Template.empty(), Template.empty(), snapshots)


def test_merge_skips_sibling_with_corrupt_references(create_context, snapshots, caplog):
    corrupt = _alias_template("broken")
    corrupt.outputs["AliasResources"]["Value"] = "{not json"
    snapshots.alias_templates.append(corrupt)
    context = create_context()

    with caplog.at_level(logging.WARNING):
        context, stage, alias = merge_user_resources(context, Template.empty(), Template.empty(), snapshots)

    assert "Skipping references of alias broken" in caplog.text
    assert stage.resources["SharedTable"] == TABLE
    assert "SharedTableName" in stage.outputs
