import os

# environment variable values that are considered true or false
TRUE_STRINGS = ("1", "true", "True")
FALSE_STRINGS = ("0", "false", "False")

# log levels accepted by ALIAS_LOG
LOG_LEVELS = ("trace", "debug", "info", "warn", "error", "warning")
TRACE_LOG_LEVELS = ("trace",)

# folder (relative to the service path) that receives the generated templates
DEFAULT_TEMPLATE_DIR = ".serverless"
CREATE_ALIAS_TEMPLATE_FILE = "cloudformation-template-create-alias-stack.json"
UPDATE_ALIAS_TEMPLATE_FILE = "cloudformation-template-update-alias-stack.json"
STAGE_TEMPLATE_FILE = "cloudformation-template-update-stack.json"

# default region if nothing else is configured
AWS_REGION_US_EAST_1 = "us-east-1"

# name of the export that links the stage stack with all its alias stacks
ALIAS_REFERENCE_EXPORT = "ServerlessAliasReference"

# bookkeeping outputs carried by every alias stack
OUTPUT_ALIAS_NAME = "ServerlessAliasName"
OUTPUT_MASTER_ALIAS_NAME = "MasterAliasName"
OUTPUT_ALIAS_FLAGS = "AliasFlags"
OUTPUT_ALIAS_RESOURCES = "AliasResources"
OUTPUT_ALIAS_OUTPUTS = "AliasOutputs"
OUTPUT_ALIAS_LOG_GROUP = "ServerlessAliasLogGroup"

# value written in place of references to resources that no longer exist
REMOVED_RESOURCE_SENTINEL = "REMOVED"

# logical id of the embedded lambda execution role
EXECUTION_ROLE = "IamRoleLambdaExecution"

# generated API Gateway logical ids
API_REST_API = "ApiGatewayRestApi"
API_ROOT_RESOURCE = "ApiGatewayRestApiRootResource"
API_STAGE = "ApiGatewayStage"
API_SERVICE_ENDPOINT = "ServiceEndpoint"

# environment variables injected into every deployed function
ENV_SERVERLESS_ALIAS = "SERVERLESS_ALIAS"
ENV_SERVERLESS_STAGE = "SERVERLESS_STAGE"

# stage variable placeholder appended to lambda integration uris
ALIAS_STAGE_VARIABLE_SEGMENT = ":${stageVariables.SERVERLESS_ALIAS}"

CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM"]

# retention of the per-alias log group
ALIAS_LOG_GROUP_RETENTION_DAYS = 7

# maximum length of a CloudFormation stack name
MAX_STACK_NAME_LENGTH = 128

# number of parallel template fetches when loading sibling alias stacks
MAX_SNAPSHOT_WORKERS = int(os.environ.get("ALIAS_SNAPSHOT_WORKERS", "").strip() or 8)
