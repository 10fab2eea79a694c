import json
import logging
from typing import Any

import yaml

LOG = logging.getLogger(__name__)


class NoDatesSafeLoader(yaml.SafeLoader):
    """Safe YAML loader that keeps timestamps (e.g., template format versions) as plain strings."""

    @classmethod
    def remove_implicit_resolver(cls, tag_to_remove):
        if "yaml_implicit_resolvers" not in cls.__dict__:
            cls.yaml_implicit_resolvers = cls.yaml_implicit_resolvers.copy()

        for first_letter, mappings in cls.yaml_implicit_resolvers.items():
            cls.yaml_implicit_resolvers[first_letter] = [
                (tag, regexp) for tag, regexp in mappings if tag != tag_to_remove
            ]


NoDatesSafeLoader.remove_implicit_resolver("tag:yaml.org,2002:timestamp")


def intrinsic_tag_constructor(loader, tag_suffix, node):
    """Expands short-form CloudFormation functions (``!Ref``, ``!GetAtt``, ``!Sub``, ...) to their long form."""
    tag = node.tag[1:]
    key = tag if tag == "Ref" or tag == "Condition" else f"Fn::{tag}"

    if isinstance(node, yaml.ScalarNode):
        value = loader.construct_scalar(node)
        if tag == "GetAtt":
            value = value.split(".", 1)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)

    return {key: value}


NoDatesSafeLoader.add_multi_constructor("!", intrinsic_tag_constructor)


def clone(item):
    return json.loads(json.dumps(item))


def parse_json_or_yaml(markup: str) -> Any:
    try:
        return json.loads(markup)
    except ValueError:
        return clone(yaml.load(markup, Loader=NoDatesSafeLoader))

