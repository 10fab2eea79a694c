"""
Restructuring passes. Every pass takes the pipeline context, the stage and alias templates that are being
built and the deployed snapshots, and returns the (possibly replaced) context and templates.
"""
from typing import Callable, Tuple

from aliasstack.cloudformation.context import DeployedSnapshots, PipelineContext
from aliasstack.cloudformation.template import Template

PassResult = Tuple[PipelineContext, Template, Template]

StackOperation = Callable[[PipelineContext, Template, Template, DeployedSnapshots], PassResult]
