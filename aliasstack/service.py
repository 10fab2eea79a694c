"""
Reading of the service configuration (``serverless.yml`` layout) and the compiled template files.
"""
import logging
import os
from typing import Any, Dict, Optional

from aliasstack.cloudformation.context import AliasOptions
from aliasstack.cloudformation.template import Template
from aliasstack.utils.json import parse_json_or_yaml

LOG = logging.getLogger(__name__)


def load_document(path: str) -> Dict[str, Any]:
    """Reads a JSON or YAML document, short-form CloudFormation tags are expanded."""
    with open(path) as f:
        document = parse_json_or_yaml(f.read())
    if not isinstance(document, dict):
        raise ValueError(f"File {path} does not contain a mapping")
    return document


def load_template(path: str) -> Template:
    return Template(load_document(path))


def get_user_resources(service_config: Dict[str, Any]) -> Template:
    """The custom resources and outputs declared in the ``resources`` section of the service."""
    resources = service_config.get("resources") or {}
    return Template(
        {
            "Resources": dict(resources.get("Resources") or {}),
            "Outputs": dict(resources.get("Outputs") or {}),
        }
    )


def build_options(
    service_config: Dict[str, Any],
    stage: Optional[str] = None,
    alias: Optional[str] = None,
    region: Optional[str] = None,
    master_alias: Optional[str] = None,
    service_path: Optional[str] = None,
    no_deploy: bool = False,
) -> AliasOptions:
    """
    Creates the options of a run from the service configuration. Explicitly given values take precedence over
    the ones of the configuration.
    """
    provider = service_config.get("provider") or {}
    service = service_config.get("service")
    if isinstance(service, dict):
        service = service.get("name")
    if not service:
        raise ValueError("Service configuration does not contain a service name")

    kwargs = {}
    if region or provider.get("region"):
        kwargs["region"] = region or provider["region"]
    if service_path:
        kwargs["service_path"] = service_path

    return AliasOptions(
        service=service,
        stage=stage or provider.get("stage") or "dev",
        alias=alias,
        master_alias=master_alias,
        global_role=provider.get("role"),
        alias_stage=provider.get("aliasStage") or {},
        functions=service_config.get("functions") or {},
        stack_tags=provider.get("stackTags") or {},
        stack_policy=provider.get("stackPolicy") or None,
        cfn_role=provider.get("cfnRole"),
        no_deploy=no_deploy,
        **kwargs,
    )


def load_service(path: str, **kwargs) -> AliasOptions:
    """Loads the service configuration file and builds the options, the service path is the file's folder."""
    kwargs.setdefault("service_path", os.path.dirname(os.path.abspath(path)))
    return build_options(load_document(path), **kwargs)
