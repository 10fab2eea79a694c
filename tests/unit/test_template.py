import json

import pytest

from aliasstack.cloudformation.exceptions import CorruptSnapshot, TemplatePathError
from aliasstack.cloudformation.template import PropertyPath, ResourceType, Template


def test_property_path_rendering():
    path = PropertyPath(("Resources", "Fn", "Properties", "Layers", 0, "Ref"))
    assert str(path) == "Resources.Fn.Properties.Layers[0].Ref"
    assert path.parent.last == 0
    assert path.child("x").last == "x"
    assert PropertyPath().last is None


def test_property_path_get_and_set():
    document = {"a": {"b": [{"c": 1}]}}
    path = PropertyPath(("a", "b", 0, "c"))

    assert path.get(document) == 1
    path.set(document, 2)
    assert document == {"a": {"b": [{"c": 2}]}}

    # the last segment may be a new key of an existing mapping
    PropertyPath(("a", "d")).set(document, "new")
    assert document["a"]["d"] == "new"


def test_property_path_does_not_create_structure():
    document = {"a": {"b": []}}

    with pytest.raises(TemplatePathError):
        PropertyPath(("a", "x", "y")).set(document, 1)
    with pytest.raises(TemplatePathError):
        PropertyPath(("a", "b", 0)).set(document, 1)
    with pytest.raises(TemplatePathError):
        PropertyPath(("a", "b", "c")).get(document)
    with pytest.raises(TemplatePathError):
        PropertyPath().set(document, {})

    assert not PropertyPath(("a", "x")).exists(document)
    assert PropertyPath(("a", "b")).exists(document)
    assert document == {"a": {"b": []}}


def test_template_sections_are_guaranteed():
    template = Template({"Description": "test"})
    assert template.resources == {}
    assert template.outputs == {}
    assert template.to_dict()["Description"] == "test"


def test_parse_template():
    body = {"Resources": {"Topic": {"Type": "AWS::SNS::Topic"}}, "Outputs": {"Out": {"Value": "x"}}}

    from_dict = Template.parse(body)
    from_json = Template.parse(json.dumps(body))
    from_bytes = Template.parse(json.dumps(body).encode("utf-8"))

    assert from_dict == from_json == from_bytes
    assert from_json.get_output_value("Out") == "x"
    assert from_json.get_output_value("Missing", "default") == "default"
    # parsing a dict does not share state with the input
    from_dict.resources["Topic"]["Type"] = "changed"
    assert body["Resources"]["Topic"]["Type"] == "AWS::SNS::Topic"


def test_parse_yaml_template_with_short_form_functions():
    body = """
AWSTemplateFormatVersion: 2010-09-09
Resources:
  Queue:
    Type: AWS::SQS::Queue
Outputs:
  QueueArn:
    Value: !GetAtt Queue.Arn
  QueueUrl:
    Value: !Ref Queue
"""
    template = Template.parse(body)

    assert template.to_dict()["AWSTemplateFormatVersion"] == "2010-09-09"
    assert template.get_output_value("QueueArn") == {"Fn::GetAtt": ["Queue", "Arn"]}
    assert template.get_output_value("QueueUrl") == {"Ref": "Queue"}


@pytest.mark.parametrize("body", ["{not json: [", "[1, 2]", "plain string"])
def test_parse_corrupt_template(body):
    with pytest.raises(CorruptSnapshot):
        Template.parse(body)


def test_resources_of_type():
    template = Template(
        {
            "Resources": {
                "Fn": {"Type": "AWS::Lambda::Function"},
                "Version": {"Type": "AWS::Lambda::Version"},
                "Topic": {"Type": "AWS::SNS::Topic"},
            }
        }
    )

    assert list(template.resources_of_type(ResourceType.LAMBDA_FUNCTION)) == ["Fn"]
    assert list(template.resources_of_type(ResourceType.LAMBDA_VERSION, "AWS::SNS::Topic")) == [
        "Version",
        "Topic",
    ]
    # the result is a new mapping, removing from the template while iterating is safe
    for name in template.resources_of_type(ResourceType.LAMBDA_FUNCTION):
        del template.resources[name]
    assert "Fn" not in template.resources


def test_get_and_set_property():
    template = Template({"Resources": {"Fn": {"Properties": {"Timeout": 6}}}})

    assert template.get_property(("Resources", "Fn", "Properties", "Timeout")) == 6
    assert template.get_property(("Resources", "Other"), default=None) is None
    with pytest.raises(TemplatePathError):
        template.get_property(("Resources", "Other"))

    template.set_property(("Resources", "Fn", "Properties", "Timeout"), 30)
    assert template.resources["Fn"]["Properties"]["Timeout"] == 30


def test_copy_is_independent():
    template = Template({"Resources": {"Fn": {"Properties": {"Timeout": 6}}}})
    copied = template.copy()
    copied.resources["Fn"]["Properties"]["Timeout"] = 10

    assert template.resources["Fn"]["Properties"]["Timeout"] == 6
    assert template != copied
