from unittest.mock import MagicMock

from aliasstack.aliases import FunctionVersion, get_alias_function_versions, list_aliases, update_function_alias
from aliasstack.cloudformation.orchestrator import StackOrchestrator
from aliasstack.cloudformation.template import Template


def _orchestrator() -> MagicMock:
    templates = {
        "testService-myStage-myStage": Template({"Outputs": {"ServerlessAliasName": {"Value": "myStage"}}}),
        "testService-myStage-myAlias": Template({"Outputs": {"ServerlessAliasName": {"Value": "myAlias"}}}),
        "testService-myStage-broken": Template.empty(),
    }
    orchestrator = MagicMock(spec=StackOrchestrator)
    orchestrator.list_imports.return_value = list(templates)
    orchestrator.get_template.side_effect = lambda name, template_stage="Original": templates[name]
    return orchestrator


def test_list_aliases(options):
    assert list_aliases(_orchestrator(), options) == ["myStage", "myAlias"]


def test_get_alias_function_versions(options):
    orchestrator = _orchestrator()
    orchestrator.list_stack_resources.return_value = [
        {
            "LogicalResourceId": "TestfctAlias",
            "ResourceType": "AWS::Lambda::Alias",
            "PhysicalResourceId": "arn:aws:lambda:us-east-1:000000000000:function:testService-myStage-testfct:myAlias",
        },
        {
            "LogicalResourceId": "ServerlessAliasLogGroup",
            "ResourceType": "AWS::Logs::LogGroup",
            "PhysicalResourceId": "/serverless/testService-myStage-myAlias",
        },
    ]
    lambda_client = MagicMock()
    lambda_client.get_alias.return_value = {"FunctionVersion": "3"}

    versions = get_alias_function_versions(orchestrator, options, "myAlias", lambda_client=lambda_client)

    assert versions == [FunctionVersion("testService-myStage-testfct", "3")]
    orchestrator.list_stack_resources.assert_called_once_with("testService-myStage-myAlias")
    lambda_client.get_alias.assert_called_once_with(FunctionName="testService-myStage-testfct", Name="myAlias")


def test_update_function_alias():
    lambda_client = MagicMock()
    lambda_client.get_function.return_value = {"Configuration": {"CodeSha256": "abc="}}
    lambda_client.publish_version.return_value = {"Version": "7"}
    lambda_client.update_alias.return_value = {"FunctionVersion": "7"}

    version = update_function_alias("testService-myStage-testfct", "myAlias", lambda_client=lambda_client)

    assert version == "7"
    lambda_client.get_function.assert_called_once_with(FunctionName="testService-myStage-testfct", Qualifier="$LATEST")
    lambda_client.publish_version.assert_called_once_with(
        FunctionName="testService-myStage-testfct", CodeSha256="abc=", Description="Deployed manually"
    )
    lambda_client.update_alias.assert_called_once_with(
        FunctionName="testService-myStage-testfct",
        Name="myAlias",
        FunctionVersion="7",
        Description="Deployed manually",
    )
