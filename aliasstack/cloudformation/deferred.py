"""
Deferred output resolution.

Some values of the stage stack cannot be imported with ``Fn::ImportValue`` by an alias stack, because they
change from deployment to deployment and an export that is imported by another stack cannot change. Those
values are registered here while the templates are restructured and resolved against the stack exports
after the stage stack has been applied, right before the alias stack is submitted.
"""
import logging
from typing import Any, Dict, List, NamedTuple

from aliasstack.cloudformation.template import PropertyPath

LOG = logging.getLogger(__name__)


class DeferredTarget(NamedTuple):
    target: Any
    path: PropertyPath


class DeferredOutputs:
    def __init__(self):
        self._outputs: Dict[str, List[DeferredTarget]] = {}

    def add(self, export_name: str, target: Any, path: PropertyPath):
        """
        Register a deferred output.

        :param export_name: name of the stage stack export that provides the value
        :param target: document that receives the value (usually the alias template dict)
        :param path: location of the value inside the target
        """
        LOG.debug("Register deferred output %s -> %s", export_name, path)
        self._outputs.setdefault(export_name, []).append(DeferredTarget(target, path))

    def resolve(self, exports: Dict[str, str]) -> List[str]:
        """
        Write the export values into all registered targets.

        :param exports: all exports of the account and region (name -> value)
        :return: the export names that could not be found
        """
        missing = []
        for export_name, targets in self._outputs.items():
            if export_name not in exports:
                LOG.error("Output %s not found.", export_name)
                missing.append(export_name)
                continue
            value = exports[export_name]
            LOG.debug("  %s -> %s", export_name, value)
            for deferred in targets:
                deferred.path.set(deferred.target, value)
        return missing

    def export_names(self) -> List[str]:
        return list(self._outputs)

    def __len__(self):
        return len(self._outputs)

    def __bool__(self):
        return bool(self._outputs)
