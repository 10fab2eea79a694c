import logging
from typing import Any, Dict, List, Optional

LOG = logging.getLogger(__name__)


def ensure_list(obj: Any, wrap_none=False) -> Optional[List]:
    """Wrap the given object in a list, or return the object itself if it already is a list."""
    if obj is None and not wrap_none:
        return obj
    return obj if isinstance(obj, list) else [obj]


def merge_recursive(source, destination, none_values=None, overwrite=False):
    if none_values is None:
        none_values = [None]
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(destination.get(key, {}), dict):
            # get node or create one
            node = destination.setdefault(key, {})
            merge_recursive(value, node, none_values=none_values, overwrite=overwrite)
        else:
            if not isinstance(destination, dict):
                LOG.warning(
                    "Destination for merging %s=%s is not dict: %s (%s)",
                    key,
                    value,
                    destination,
                    type(destination),
                )
            if overwrite or destination.get(key) in none_values:
                destination[key] = value
    return destination


def merge_defaults(destination: Dict, *sources: Dict) -> Dict:
    """Copy every top-level entry of the sources that is not yet present in the destination (in-place)."""
    for source in sources:
        for key, value in (source or {}).items():
            if key not in destination:
                destination[key] = value
    return destination


def is_partial_match(obj: Any, source: Any) -> bool:
    """
    Returns whether ``obj`` contains everything declared in ``source``. Dicts are compared recursively by the
    keys of ``source``, lists element-wise with the same length, all other values by equality.
    """
    if isinstance(source, dict):
        if not isinstance(obj, dict):
            return False
        return all(key in obj and is_partial_match(obj[key], value) for key, value in source.items())
    if isinstance(source, list):
        if not isinstance(obj, list) or len(obj) != len(source):
            return False
        return all(is_partial_match(o, s) for o, s in zip(obj, source))
    return obj == source
