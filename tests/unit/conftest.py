import copy

import pytest

from aliasstack.cloudformation.context import AliasOptions, DeployedSnapshots, PipelineContext
from aliasstack.cloudformation.template import Template

TEST_AWS_ACCESS_KEY_ID = "test"
TEST_AWS_SECRET_ACCESS_KEY = "test"
TEST_AWS_REGION_NAME = "us-east-1"

COMPILED_TEMPLATE = {
    "AWSTemplateFormatVersion": "2010-09-09",
    "Description": "The AWS CloudFormation template for this Serverless application",
    "Resources": {
        "ServerlessDeploymentBucket": {"Type": "AWS::S3::Bucket"},
        "TestfctLogGroup": {
            "Type": "AWS::Logs::LogGroup",
            "Properties": {"LogGroupName": "/aws/lambda/testService-myStage-testfct"},
        },
        "IamRoleLambdaExecution": {
            "Type": "AWS::IAM::Role",
            "Properties": {
                "AssumeRolePolicyDocument": {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": "Allow",
                            "Principal": {"Service": ["lambda.amazonaws.com"]},
                            "Action": ["sts:AssumeRole"],
                        }
                    ],
                },
                "Policies": [
                    {
                        "PolicyName": {"Fn::Join": ["-", ["myStage", "testService", "lambda"]]},
                        "PolicyDocument": {
                            "Version": "2012-10-17",
                            "Statement": [
                                {
                                    "Effect": "Allow",
                                    "Action": ["logs:CreateLogStream", "logs:PutLogEvents"],
                                    "Resource": [
                                        {
                                            "Fn::Sub": "arn:aws:logs:${AWS::Region}:${AWS::AccountId}:"
                                            "log-group:/aws/lambda/testService-myStage-testfct:*"
                                        }
                                    ],
                                }
                            ],
                        },
                    }
                ],
                "Path": "/",
                "RoleName": {"Fn::Join": ["-", ["testService", "myStage", {"Ref": "AWS::Region"}, "lambdaRole"]]},
            },
        },
        "TestfctLambdaFunction": {
            "Type": "AWS::Lambda::Function",
            "Properties": {
                "Code": {"S3Bucket": {"Ref": "ServerlessDeploymentBucket"}, "S3Key": "testService.zip"},
                "FunctionName": "testService-myStage-testfct",
                "Handler": "handler.handle",
                "Role": {"Fn::GetAtt": ["IamRoleLambdaExecution", "Arn"]},
                "Runtime": "python3.12",
                "Description": "My test function",
            },
            "DependsOn": ["TestfctLogGroup", "IamRoleLambdaExecution"],
        },
        "TestfctLambdaVersionAbc123": {
            "Type": "AWS::Lambda::Version",
            "DeletionPolicy": "Retain",
            "Properties": {"FunctionName": {"Ref": "TestfctLambdaFunction"}, "CodeSha256": "abc123"},
        },
        "ApiGatewayRestApi": {"Type": "AWS::ApiGateway::RestApi", "Properties": {"Name": "myStage-testService"}},
        "ApiGatewayResourceFunc": {
            "Type": "AWS::ApiGateway::Resource",
            "Properties": {
                "ParentId": {"Fn::GetAtt": ["ApiGatewayRestApi", "RootResourceId"]},
                "PathPart": "func",
                "RestApiId": {"Ref": "ApiGatewayRestApi"},
            },
        },
        "ApiGatewayMethodFuncGet": {
            "Type": "AWS::ApiGateway::Method",
            "Properties": {
                "HttpMethod": "GET",
                "ResourceId": {"Ref": "ApiGatewayResourceFunc"},
                "RestApiId": {"Ref": "ApiGatewayRestApi"},
                "AuthorizationType": "NONE",
                "Integration": {
                    "IntegrationHttpMethod": "POST",
                    "Type": "AWS_PROXY",
                    "Uri": {
                        "Fn::Join": [
                            "",
                            [
                                "arn:aws:apigateway:",
                                {"Ref": "AWS::Region"},
                                ":lambda:path/2015-03-31/functions/",
                                {"Fn::GetAtt": ["TestfctLambdaFunction", "Arn"]},
                                "/invocations",
                            ],
                        ]
                    },
                },
            },
        },
        "ApiGatewayDeployment1234": {
            "Type": "AWS::ApiGateway::Deployment",
            "Properties": {"RestApiId": {"Ref": "ApiGatewayRestApi"}, "StageName": "myStage"},
            "DependsOn": ["ApiGatewayMethodFuncGet"],
        },
        "TestfctLambdaPermissionApiGateway": {
            "Type": "AWS::Lambda::Permission",
            "Properties": {
                "FunctionName": {"Fn::GetAtt": ["TestfctLambdaFunction", "Arn"]},
                "Action": "lambda:InvokeFunction",
                "Principal": "apigateway.amazonaws.com",
                "SourceArn": {
                    "Fn::Join": [
                        "",
                        [
                            "arn:aws:execute-api:",
                            {"Ref": "AWS::Region"},
                            ":",
                            {"Ref": "AWS::AccountId"},
                            ":",
                            {"Ref": "ApiGatewayRestApi"},
                            "/*/*",
                        ],
                    ]
                },
            },
        },
    },
    "Outputs": {
        "ServerlessDeploymentBucketName": {"Value": {"Ref": "ServerlessDeploymentBucket"}},
        "TestfctLambdaFunctionQualifiedArn": {
            "Description": "Current Lambda function version",
            "Value": {"Ref": "TestfctLambdaVersionAbc123"},
        },
        "ServiceEndpoint": {
            "Description": "URL of the service endpoint",
            "Value": {
                "Fn::Join": [
                    "",
                    ["https://", {"Ref": "ApiGatewayRestApi"}, ".execute-api.us-east-1.amazonaws.com/myStage"],
                ]
            },
        },
    },
}


@pytest.fixture(autouse=True)
def set_boto_test_credentials_and_region(monkeypatch):
    """
    Automatically sets the default credentials and region for all unit tests.
    """
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", TEST_AWS_ACCESS_KEY_ID)
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", TEST_AWS_SECRET_ACCESS_KEY)
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_AWS_REGION_NAME)


@pytest.fixture
def compiled_template() -> Template:
    return Template(copy.deepcopy(COMPILED_TEMPLATE))


@pytest.fixture
def options(tmp_path) -> AliasOptions:
    return AliasOptions(
        service="testService",
        stage="myStage",
        alias="myAlias",
        region=TEST_AWS_REGION_NAME,
        service_path=str(tmp_path),
        create_early=True,
    )


@pytest.fixture
def create_context(options):
    def _create(**kwargs) -> PipelineContext:
        return PipelineContext(options=kwargs.pop("options", options), **kwargs)

    return _create


@pytest.fixture
def empty_snapshots() -> DeployedSnapshots:
    return DeployedSnapshots(Template.empty(), [], Template.empty())
