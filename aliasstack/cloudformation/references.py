"""
Reference graph helpers. Resources and outputs form a graph whose edges are ``Ref`` and ``Fn::GetAtt``
nodes; these functions find those edges and rewrite them in place.
"""
import copy
import logging
import re
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Union

from aliasstack.cloudformation.exceptions import InvalidAliasCharacter
from aliasstack.cloudformation.template import PropertyPath
from aliasstack.utils.collections import ensure_list

LOG = logging.getLogger(__name__)

VALID_ALIAS_PATTERN = re.compile(r"^[A-Za-z0-9\-+_]+$")
ALPHANUMERIC_PATTERN = re.compile(r"^[A-Za-z0-9]+$")

ALIAS_CHARACTER_TOKENS = {
    "-": "Dash",
    "+": "Plus",
    "_": "Uscore",
}


class Reference(NamedTuple):
    ref: str
    """logical name the reference points to"""
    path: PropertyPath
    """path of the node holding the ``Ref`` or ``Fn::GetAtt`` key"""


def _get_att_target(value: Any) -> Optional[str]:
    if isinstance(value, list) and value and isinstance(value[0], str):
        return value[0]
    if isinstance(value, str):
        return value.split(".", 1)[0]
    return None


def iterate_references(root: Any):
    """
    Depth-first walk over ``root`` that yields every reference node. A reference node is a leaf, its
    value is never walked into.
    """
    stack = [(root, PropertyPath())]
    while stack:
        node, path = stack.pop()
        if isinstance(node, dict):
            for key, value in node.items():
                if key == "Ref" and isinstance(value, str):
                    yield Reference(value, path)
                elif key == "Fn::GetAtt":
                    target = _get_att_target(value)
                    if target:
                        yield Reference(target, path)
                elif isinstance(value, (dict, list)):
                    stack.append((value, path.child(key)))
        elif isinstance(node, list):
            for index, value in enumerate(node):
                if isinstance(value, (dict, list)):
                    stack.append((value, path.child(index)))


def find_all_references(root: Any) -> List[Reference]:
    return list(iterate_references(root))


def find_references(root: Any, names: Union[str, Iterable[str]]) -> List[PropertyPath]:
    """Returns the paths of all reference nodes below ``root`` that point to one of the given logical names."""
    names = {names} if isinstance(names, str) else set(names)
    return [reference.path for reference in iterate_references(root) if reference.ref in names]


def replace_references(root: Any, names: Union[str, Iterable[str]], value: Any) -> int:
    """
    Replace every reference to one of the given names below ``root`` with ``value``. Each occurrence gets its
    own copy of the value. Returns the number of replaced nodes.
    """
    paths = find_references(root, names)
    for path in paths:
        path.set(root, copy.deepcopy(value))
    return len(paths)


def normalize_alias_for_logical_id(alias: Optional[str]) -> Optional[str]:
    """
    Maps an alias to a string that can be used as part of a logical id (alphanumerics only).

    :raises InvalidAliasCharacter: if the alias contains characters other than alphanumerics, ``-``, ``+``, ``_``
    """
    if not alias or ALPHANUMERIC_PATTERN.match(alias):
        return alias
    if not VALID_ALIAS_PATTERN.match(alias):
        raise InvalidAliasCharacter(alias)
    for character, token in ALIAS_CHARACTER_TOKENS.items():
        alias = alias.replace(character, token)
    return alias


def has_permission_principal(permission: dict, service: str) -> bool:
    principal = (permission.get("Properties") or {}).get("Principal")
    if isinstance(principal, str):
        return principal.startswith(service)
    if isinstance(principal, dict) and "Fn::Join" in principal:
        parts = principal["Fn::Join"][1]
        return any(isinstance(part, str) and part.startswith(service) for part in parts)
    return False


def get_function_version_name(versions: Dict[str, dict], function_name: str) -> Optional[str]:
    prefix = f"{function_name}LambdaVersion"
    return next((name for name in versions if name.startswith(prefix)), None)


def get_alias_version_name(aliases: Dict[str, dict], function_name: str) -> Optional[str]:
    name = f"{function_name}Alias"
    return name if name in aliases else None


def get_referenced_function(value: Any) -> Optional[str]:
    """Returns the function prefix (``Fn`` for ``FnLambdaFunction``) of the first function referenced in ``value``."""
    for reference in iterate_references(value):
        if reference.ref.endswith("LambdaFunction"):
            return reference.ref[: -len("LambdaFunction")]
    return None


def get_dependencies(resource: dict) -> List[str]:
    return list(ensure_list(resource.get("DependsOn"), wrap_none=False) or [])


def add_dependencies(resource: dict, *names: Optional[str]):
    """Appends the given names to the ``DependsOn`` list of the resource, skipping empty and known names."""
    dependencies = get_dependencies(resource)
    for name in names:
        if name and name not in dependencies:
            dependencies.append(name)
    resource["DependsOn"] = dependencies


def prune_policy_statements(statements: List[dict], removed_resources: Iterable[str]) -> List[dict]:
    """
    Removes every ``Resource`` entry of the given IAM policy statements that references one of the removed
    resources. A statement whose resource list becomes empty is dropped altogether. Works in-place.
    """
    removed_resources = set(removed_resources)
    if not removed_resources:
        return statements

    kept = []
    for statement in statements:
        if "Resource" not in statement:
            kept.append(statement)
            continue
        resources = ensure_list(statement["Resource"])
        remaining = [entry for entry in resources if not find_references(entry, removed_resources)]
        if len(remaining) != len(resources):
            LOG.debug("Pruned %d resources from policy statement", len(resources) - len(remaining))
        if not remaining:
            continue
        statement["Resource"] = remaining if isinstance(statement["Resource"], list) else remaining[0]
        kept.append(statement)

    statements[:] = kept
    return statements


def rename_references(root: Any, old_name: str, new_name: str) -> int:
    """Points every ``Ref``/``Fn::GetAtt`` node below ``root`` that targets ``old_name`` to ``new_name``."""
    paths = find_references(root, old_name)
    for path in paths:
        node = path.get(root)
        if "Ref" in node:
            node["Ref"] = new_name
        elif isinstance(node["Fn::GetAtt"], list):
            node["Fn::GetAtt"][0] = new_name
        else:
            attribute = node["Fn::GetAtt"].split(".", 1)[1:]
            node["Fn::GetAtt"] = ".".join([new_name] + attribute)
    return len(paths)


def rename_dependency(resource: dict, old_name: str, new_name: str):
    """Replaces ``old_name`` in the ``DependsOn`` of the resource (string or list form)."""
    depends_on = resource.get("DependsOn")
    if depends_on == old_name:
        resource["DependsOn"] = new_name
    elif isinstance(depends_on, list) and old_name in depends_on:
        resource["DependsOn"] = [name for name in depends_on if name != old_name] + [new_name]
