"""
Template document model.

A ``Template`` wraps the plain dict of a CloudFormation template and guarantees that ``Resources`` and
``Outputs`` are present. Nested values stay plain dicts, lists and scalars; they are addressed with
``PropertyPath`` values, which refuse to create structure that is not already there.
"""
import copy
import json
import logging
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Union

import yaml

from aliasstack.cloudformation.exceptions import CorruptSnapshot, TemplatePathError
from aliasstack.utils.json import parse_json_or_yaml

LOG = logging.getLogger(__name__)

Segment = Union[str, int]


class ResourceType(str, Enum):
    LAMBDA_FUNCTION = "AWS::Lambda::Function"
    LAMBDA_VERSION = "AWS::Lambda::Version"
    LAMBDA_ALIAS = "AWS::Lambda::Alias"
    LAMBDA_PERMISSION = "AWS::Lambda::Permission"
    LAMBDA_EVENT_SOURCE_MAPPING = "AWS::Lambda::EventSourceMapping"
    API_REST_API = "AWS::ApiGateway::RestApi"
    API_DEPLOYMENT = "AWS::ApiGateway::Deployment"
    API_STAGE = "AWS::ApiGateway::Stage"
    API_METHOD = "AWS::ApiGateway::Method"
    API_AUTHORIZER = "AWS::ApiGateway::Authorizer"
    API_BASE_PATH_MAPPING = "AWS::ApiGateway::BasePathMapping"
    EVENTS_RULE = "AWS::Events::Rule"
    SNS_TOPIC = "AWS::SNS::Topic"
    SNS_SUBSCRIPTION = "AWS::SNS::Subscription"
    S3_BUCKET = "AWS::S3::Bucket"
    IAM_ROLE = "AWS::IAM::Role"
    LOGS_LOG_GROUP = "AWS::Logs::LogGroup"


class PropertyPath(tuple):
    """
    Location of a value inside a template tree, as a sequence of dict keys (str) and list indices (int).
    Rendered as ``Resources.Fn.Properties.Layers[0]``.
    """

    def __new__(cls, segments: Iterable[Segment] = ()):
        return super().__new__(cls, segments)

    def __str__(self):
        result = ""
        for segment in self:
            if isinstance(segment, int):
                result += f"[{segment}]"
            else:
                result += f".{segment}" if result else segment
        return result

    def __repr__(self):
        return f"PropertyPath({str(self)!r})"

    def child(self, *segments: Segment) -> "PropertyPath":
        return PropertyPath(tuple(self) + segments)

    @property
    def parent(self) -> "PropertyPath":
        return PropertyPath(self[:-1])

    @property
    def last(self) -> Optional[Segment]:
        return self[-1] if self else None

    def get(self, root: Any) -> Any:
        node = root
        for index, segment in enumerate(self):
            node = _step(node, segment, PropertyPath(self[: index + 1]))
        return node

    def exists(self, root: Any) -> bool:
        try:
            self.get(root)
            return True
        except TemplatePathError:
            return False

    def set(self, root: Any, value: Any):
        if not self:
            raise TemplatePathError(self, "the root of a document cannot be replaced")
        container = self.parent.get(root)
        segment = self.last
        if isinstance(segment, int):
            if not isinstance(container, list) or segment >= len(container):
                raise TemplatePathError(self, "list index out of range")
            container[segment] = value
        else:
            if not isinstance(container, dict):
                raise TemplatePathError(self, f"{type(container).__name__} is not a mapping")
            container[segment] = value


def _step(node: Any, segment: Segment, path: PropertyPath) -> Any:
    if isinstance(segment, int):
        if not isinstance(node, list) or not -len(node) <= segment < len(node):
            raise TemplatePathError(path, "list index out of range")
        return node[segment]
    if not isinstance(node, dict):
        raise TemplatePathError(path, f"{type(node).__name__} is not a mapping")
    if segment not in node:
        raise TemplatePathError(path, "no such key")
    return node[segment]


class Template:
    """A CloudFormation template document with guaranteed ``Resources`` and ``Outputs`` sections."""

    document: Dict[str, Any]

    def __init__(self, document: Optional[Dict[str, Any]] = None):
        self.document = document if document is not None else {}
        if not isinstance(self.document.get("Resources"), dict):
            self.document["Resources"] = {}
        if not isinstance(self.document.get("Outputs"), dict):
            self.document["Outputs"] = {}

    @classmethod
    def empty(cls) -> "Template":
        return cls({"Resources": {}, "Outputs": {}})

    @classmethod
    def parse(cls, body: Union[str, bytes, dict]) -> "Template":
        """
        Parse a template body as returned by the orchestrator (JSON or YAML).

        :raises CorruptSnapshot: if the body is not a template document
        """
        if isinstance(body, dict):
            return cls(copy.deepcopy(body))
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        try:
            document = parse_json_or_yaml(body)
        except (ValueError, yaml.YAMLError) as e:
            LOG.debug("Unable to parse template body: %s", e)
            raise CorruptSnapshot() from e
        if not isinstance(document, dict):
            raise CorruptSnapshot()
        return cls(document)

    @property
    def resources(self) -> Dict[str, dict]:
        return self.document["Resources"]

    @property
    def outputs(self) -> Dict[str, dict]:
        return self.document["Outputs"]

    def resources_of_type(self, *resource_types: Union[ResourceType, str]) -> Dict[str, dict]:
        """Returns the resources of the given types, in document order (the returned dict is a new mapping)."""
        types = [str(getattr(t, "value", t)) for t in resource_types]
        return {
            name: resource
            for name, resource in self.resources.items()
            if isinstance(resource, dict) and resource.get("Type") in types
        }

    def get_property(self, path: Union[PropertyPath, Iterable[Segment]], default: Any = ...) -> Any:
        path = path if isinstance(path, PropertyPath) else PropertyPath(path)
        try:
            return path.get(self.document)
        except TemplatePathError:
            if default is ...:
                raise
            return default

    def set_property(self, path: Union[PropertyPath, Iterable[Segment]], value: Any):
        path = path if isinstance(path, PropertyPath) else PropertyPath(path)
        path.set(self.document, value)

    def get_output_value(self, name: str, default: Any = None) -> Any:
        output = self.outputs.get(name)
        if not isinstance(output, dict):
            return default
        return output.get("Value", default)

    def copy(self) -> "Template":
        return Template(copy.deepcopy(self.document))

    def to_dict(self) -> Dict[str, Any]:
        return self.document

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.document, indent=indent)

    def __eq__(self, other):
        return isinstance(other, Template) and self.document == other.document

    def __repr__(self):
        return f"Template(resources={list(self.resources)}, outputs={list(self.outputs)})"
