import pytest

from aliasstack.cloudformation.context import (
    AliasFlags,
    AliasOptions,
    get_alias_name,
    load_flags,
    parse_flags,
)
from aliasstack.cloudformation.deferred import DeferredOutputs
from aliasstack.cloudformation.exceptions import FlagsParseError
from aliasstack.cloudformation.template import PropertyPath, Template


def test_options_defaults():
    options = AliasOptions(service="svc", stage="dev")

    assert options.alias == "dev"
    assert options.master_alias == "dev"
    assert options.stack_name == "svc-dev"
    assert options.alias_stack_name == "svc-dev-dev"
    assert options.is_master
    assert options.export_name("ApiGatewayRestApi") == "svc-dev-ApiGatewayRestApi"


def test_options_of_alias():
    options = AliasOptions(service="svc", stage="dev", alias="feature-1")

    assert options.alias_stack_name == "svc-dev-feature-1"
    assert options.normalized_alias == "featureDash1"
    assert not options.is_master


def test_parse_flags():
    assert parse_flags('{"hasRole": true}') == AliasFlags(has_role=True)
    assert parse_flags({"hasRole": False, "custom": 1}) == AliasFlags(has_role=False, extra={"custom": 1})
    assert AliasFlags(has_role=True, extra={"custom": 1}).to_dict() == {"custom": 1, "hasRole": True}

    for raw in ["not json", "[]", None]:
        with pytest.raises(FlagsParseError):
            parse_flags(raw)


def test_load_flags_falls_back_to_defaults():
    deployed = Template({"Outputs": {"AliasFlags": {"Value": '{"hasRole": true}'}}})
    assert load_flags(deployed).has_role

    legacy = Template.empty()
    assert load_flags(legacy) == AliasFlags()

    broken = Template({"Outputs": {"AliasFlags": {"Value": "{broken"}}})
    assert load_flags(broken) == AliasFlags()


def test_get_alias_name():
    assert get_alias_name(Template({"Outputs": {"ServerlessAliasName": {"Value": "dev"}}})) == "dev"
    assert get_alias_name(Template.empty()) is None


def test_deferred_outputs_resolve():
    document = {"Resources": {"Mapping": {"Properties": {"EventSourceArn": {"Fn::ImportValue": "svc-StreamArn"}}}}}
    deferred = DeferredOutputs()
    assert not deferred

    deferred.add("svc-StreamArn", document, PropertyPath(("Resources", "Mapping", "Properties", "EventSourceArn")))
    deferred.add("svc-Missing", document, PropertyPath(("Resources", "Mapping", "Properties", "Other")))

    assert len(deferred) == 2
    assert deferred.export_names() == ["svc-StreamArn", "svc-Missing"]

    missing = deferred.resolve({"svc-StreamArn": "arn:aws:dynamodb:us-east-1:000000000000:table/t/stream/1"})

    assert missing == ["svc-Missing"]
    assert document["Resources"]["Mapping"]["Properties"] == {
        "EventSourceArn": "arn:aws:dynamodb:us-east-1:000000000000:table/t/stream/1"
    }
