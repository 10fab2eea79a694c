"""
API Gateway handling.

The REST API and its methods stay in the stage stack and are shared by all aliases. Each alias owns a
deployment and a stage named after the alias. Lambda integrations call the function alias that is set in
the ``SERVERLESS_ALIAS`` stage variable, so one set of methods serves every alias.
"""
import copy
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from aliasstack.cloudformation.context import AliasOptions, DeployedSnapshots, PipelineContext
from aliasstack.cloudformation.exceptions import IncompatibleStackStructure, InvalidStageConfig
from aliasstack.cloudformation.references import (
    find_references,
    get_alias_version_name,
    get_function_version_name,
    get_referenced_function,
    has_permission_principal,
    rename_dependency,
)
from aliasstack.cloudformation.stackops import PassResult
from aliasstack.cloudformation.template import ResourceType, Template
from aliasstack.constants import (
    ALIAS_STAGE_VARIABLE_SEGMENT,
    API_REST_API,
    API_ROOT_RESOURCE,
    API_STAGE,
    ENV_SERVERLESS_ALIAS,
    ENV_SERVERLESS_STAGE,
)
from aliasstack.utils.collections import merge_recursive

LOG = logging.getLogger(__name__)

ANY_METHODS = ["DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"]

LAMBDA_INTEGRATION_TYPES = ("AWS", "AWS_PROXY")

INVALID_STAGE_NAME_CHARACTERS = re.compile(r"[^A-Za-z0-9_]")


def _is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_string(value: Any) -> bool:
    return isinstance(value, str)


def _is_string_or_number(value: Any) -> bool:
    return _is_string(value) or _is_number(value)


def _is_logging_level(value: Any) -> bool:
    return value in ("OFF", "INFO", "ERROR")


def _is_mapping(value: Any) -> bool:
    return isinstance(value, dict)


_NO_DEFAULT = object()

# method level settings: config key -> (property name, validator, provider default)
METHOD_SETTINGS: Dict[str, Tuple[str, Callable[[Any], bool], Any]] = {
    "cacheDataEncrypted": ("CacheDataEncrypted", _is_bool, False),
    "cacheTtlInSeconds": ("CacheTtlInSeconds", _is_int, _NO_DEFAULT),
    "cachingEnabled": ("CachingEnabled", _is_bool, False),
    "dataTraceEnabled": ("DataTraceEnabled", _is_bool, False),
    "loggingLevel": ("LoggingLevel", _is_logging_level, "OFF"),
    "metricsEnabled": ("MetricsEnabled", _is_bool, False),
    "throttlingBurstLimit": ("ThrottlingBurstLimit", _is_int, _NO_DEFAULT),
    "throttlingRateLimit": ("ThrottlingRateLimit", _is_number, _NO_DEFAULT),
}

# stage level settings, only valid in the service level configuration
STAGE_SETTINGS: Dict[str, Tuple[str, Callable[[Any], bool]]] = {
    "cacheClusterEnabled": ("CacheClusterEnabled", _is_bool),
    "cacheClusterSize": ("CacheClusterSize", _is_string_or_number),
    "clientCertificateId": ("ClientCertificateId", _is_string),
    "description": ("Description", _is_string),
    "documentationVersion": ("DocumentationVersion", _is_string),
    "variables": ("Variables", _is_mapping),
}


def validate_stage_config(stage_config: Dict[str, Any], level: str, allow_stage_settings: bool = False):
    """
    :raises InvalidStageConfig: on unknown keys or values of the wrong type
    """
    for key, value in (stage_config or {}).items():
        if key in METHOD_SETTINGS:
            validator = METHOD_SETTINGS[key][1]
        elif allow_stage_settings and key in STAGE_SETTINGS:
            validator = STAGE_SETTINGS[key][1]
        else:
            raise InvalidStageConfig(f"Invalid stage config '{key}' at {level} level")
        if not validator(value):
            raise InvalidStageConfig(f"Invalid value for '{key}': {value!r} ({level} level)")


def _parse_http_event(event: Any) -> Optional[Tuple[str, str, dict]]:
    http = event.get("http") if isinstance(event, dict) else None
    if isinstance(http, str):
        method, _, path = http.partition(" ")
        return method.strip(), path.strip(), {}
    if isinstance(http, dict):
        return str(http.get("method", "")), str(http.get("path", "")), http.get("aliasStage") or {}
    return None


def _resource_path(path: str) -> str:
    return "/" + ("/" + path.strip("/")).replace("/", "~1")


def build_method_settings(options: AliasOptions) -> List[dict]:
    """
    Merges the service, function and event level settings of every http event (later levels win) and
    returns one entry per http method. Settings that equal the provider default are not emitted.
    """
    service_config = {k: v for k, v in options.alias_stage.items() if k in METHOD_SETTINGS}
    method_settings = []

    for function_name, function in options.functions.items():
        function_config = function.get("aliasStage") or {}
        validate_stage_config(function_config, f"function {function_name}")

        for event in function.get("events") or []:
            http_event = _parse_http_event(event)
            if not http_event:
                continue
            method, path, event_config = http_event
            validate_stage_config(event_config, f"event {method} {path} of function {function_name}")

            merged = {**service_config, **function_config, **event_config}
            settings = {}
            for key, (property_name, _, default) in METHOD_SETTINGS.items():
                if key in merged and merged[key] != default:
                    settings[property_name] = merged[key]
            if not settings:
                continue

            http_methods = ANY_METHODS if method.upper() == "ANY" else [method.upper()]
            for http_method in http_methods:
                method_settings.append(
                    {**settings, "HttpMethod": http_method, "ResourcePath": _resource_path(path)}
                )

    return method_settings


def get_stage_name(alias: str) -> str:
    """API Gateway stage names may only contain alphanumerics and underscores."""
    return INVALID_STAGE_NAME_CHARACTERS.sub("_", alias)


def create_stage_resource(options: AliasOptions, rest_api_export: str, deployment_name: str) -> dict:
    validate_stage_config(options.alias_stage, "service", allow_stage_settings=True)

    variables = {
        **(options.alias_stage.get("variables") or {}),
        ENV_SERVERLESS_ALIAS: options.alias,
        ENV_SERVERLESS_STAGE: options.stage,
    }
    properties = {
        "StageName": get_stage_name(options.alias),
        "DeploymentId": {"Ref": deployment_name},
        "RestApiId": {"Fn::ImportValue": rest_api_export},
        "Variables": variables,
    }
    for key, (property_name, _) in STAGE_SETTINGS.items():
        if key in options.alias_stage and key != "variables":
            properties[property_name] = options.alias_stage[key]

    method_settings = build_method_settings(options)
    if method_settings:
        properties["MethodSettings"] = method_settings

    return {
        "Type": ResourceType.API_STAGE.value,
        "Properties": properties,
        "DependsOn": [deployment_name],
    }


def _insert_alias_segment(uri: Any) -> bool:
    """Adds the stage variable segment after the function arn of a lambda uri. External functions stay as they are."""
    if not isinstance(uri, dict) or "Fn::Join" not in uri:
        return False
    parts = uri["Fn::Join"][1]
    index = next(
        (i for i, part in enumerate(parts) if isinstance(part, dict) and "Fn::GetAtt" in part), None
    )
    if index is None:
        return False
    if index + 1 < len(parts) and parts[index + 1] == ALIAS_STAGE_VARIABLE_SEGMENT:
        return True
    parts.insert(index + 1, ALIAS_STAGE_VARIABLE_SEGMENT)
    return True


def _apply_user_override(context: PipelineContext, name: str, resource: dict):
    user_resources = context.user_resources.resources
    if name in user_resources:
        LOG.debug("Applying user resource override for %s", name)
        merge_recursive(user_resources.pop(name), resource, overwrite=True)


def _check_compatibility(snapshots: DeployedSnapshots):
    templates = [*snapshots.alias_templates, snapshots.current_alias_template]
    if any(template.resources_of_type(ResourceType.API_METHOD) for template in templates):
        raise IncompatibleStackStructure(
            "The API Gateway methods of a deployed alias stack use an unsupported layout. Remove the alias "
            "stacks and the API Gateway stages of the aliases manually and redeploy."
        )


def _handle_authorizers(context: PipelineContext, stage: Template):
    options = context.options
    methods = stage.resources_of_type(ResourceType.API_METHOD)

    for name, authorizer in stage.resources_of_type(ResourceType.API_AUTHORIZER).items():
        properties = authorizer.setdefault("Properties", {})
        if properties.get("Type") != "COGNITO_USER_POOLS":
            _insert_alias_segment(properties.get("AuthorizerUri"))
        _apply_user_override(context, name, authorizer)

        if isinstance(properties.get("Name"), str):
            properties["Name"] = f"{properties['Name']}-{options.alias}"

        aliased_name = f"{name}{options.normalized_alias}"
        for method in methods.values():
            for path in find_references(method, name):
                path.set(method, {"Ref": aliased_name})
            rename_dependency(method, name, aliased_name)

        del stage.resources[name]
        stage.resources[aliased_name] = authorizer


def _handle_permissions(context: PipelineContext, stage: Template, alias: Template):
    options = context.options
    versions = alias.resources_of_type(ResourceType.LAMBDA_VERSION)
    aliases = alias.resources_of_type(ResourceType.LAMBDA_ALIAS)

    for name, permission in stage.resources_of_type(ResourceType.LAMBDA_PERMISSION).items():
        if not has_permission_principal(permission, "apigateway"):
            continue

        properties = permission.setdefault("Properties", {})
        function_prefix = get_referenced_function(properties.get("FunctionName"))
        version_name = get_function_version_name(versions, function_prefix) if function_prefix else None
        alias_name = get_alias_version_name(aliases, function_prefix) if function_prefix else None
        if function_prefix and not alias_name:
            LOG.debug("Function of permission %s has no alias, keeping it in the stage stack", name)
            continue

        # permissions of external authorizer functions keep their function reference
        if alias_name:
            properties["FunctionName"] = {"Ref": alias_name}
        properties["SourceArn"] = {
            "Fn::Join": [
                "",
                [
                    "arn:aws:execute-api:",
                    {"Ref": "AWS::Region"},
                    ":",
                    {"Ref": "AWS::AccountId"},
                    ":",
                    {"Fn::ImportValue": options.export_name(API_REST_API)},
                    "/*/*",
                ],
            ]
        }
        permission["DependsOn"] = [dependency for dependency in (version_name, alias_name) if dependency]

        alias.resources[name] = permission
        del stage.resources[name]


def handle_api_gateway(
    context: PipelineContext, stage: Template, alias: Template, snapshots: DeployedSnapshots
) -> PassResult:
    options = context.options
    current = snapshots.current_template

    expose_api = API_REST_API in stage.resources
    if not expose_api and any(
        template.resources_of_type(ResourceType.API_DEPLOYMENT) for template in snapshots.alias_templates
    ):
        # other aliases still need the API
        if API_REST_API in current.resources:
            LOG.debug("Keeping API of other deployed aliases")
            stage.resources[API_REST_API] = copy.deepcopy(current.resources[API_REST_API])
            expose_api = True

    if not expose_api:
        return context, stage, alias

    _check_compatibility(snapshots)

    rest_api_export = options.export_name(API_REST_API)
    stage.outputs[API_REST_API] = {
        "Description": "API Gateway API",
        "Value": {"Ref": API_REST_API},
        "Export": {"Name": rest_api_export},
    }
    stage.outputs[API_ROOT_RESOURCE] = {
        "Description": "API Gateway API root resource",
        "Value": {"Fn::GetAtt": [API_REST_API, "RootResourceId"]},
        "Export": {"Name": options.export_name(API_ROOT_RESOURCE)},
    }

    # the alias owns the deployment and the stage
    deployments = stage.resources_of_type(ResourceType.API_DEPLOYMENT)
    for deployment_name, deployment in deployments.items():
        properties = deployment.setdefault("Properties", {})
        properties.pop("StageName", None)
        properties["RestApiId"] = {"Fn::ImportValue": rest_api_export}
        deployment["DependsOn"] = []

        alias.resources[deployment_name] = deployment
        alias.resources[API_STAGE] = create_stage_resource(options, rest_api_export, deployment_name)
        del stage.resources[deployment_name]

    for name, method in stage.resources_of_type(ResourceType.API_METHOD).items():
        integration = (method.get("Properties") or {}).get("Integration") or {}
        if integration.get("Type") in LAMBDA_INTEGRATION_TYPES:
            _insert_alias_segment(integration.get("Uri"))
        _apply_user_override(context, name, method)

    _handle_authorizers(context, stage)

    for name, mapping in stage.resources_of_type(ResourceType.API_BASE_PATH_MAPPING).items():
        properties = mapping.setdefault("Properties", {})
        properties["RestApiId"] = {"Fn::ImportValue": rest_api_export}
        properties["Stage"] = {"Ref": API_STAGE}
        alias.resources[name] = mapping
        del stage.resources[name]

    _handle_permissions(context, stage, alias)

    return context, stage, alias
