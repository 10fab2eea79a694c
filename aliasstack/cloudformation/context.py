import dataclasses
import json
import logging
from typing import Any, Dict, List, NamedTuple, Optional

from aliasstack import config
from aliasstack.cloudformation.deferred import DeferredOutputs
from aliasstack.cloudformation.exceptions import FlagsParseError
from aliasstack.cloudformation.references import normalize_alias_for_logical_id
from aliasstack.cloudformation.template import Template
from aliasstack.constants import OUTPUT_ALIAS_FLAGS, OUTPUT_ALIAS_NAME

LOG = logging.getLogger(__name__)


@dataclasses.dataclass
class AliasOptions:
    """Settings of one deploy or removal run."""

    service: str
    stage: str
    alias: Optional[str] = None
    region: str = dataclasses.field(default_factory=lambda: config.AWS_DEFAULT_REGION)
    stack_name: Optional[str] = None
    # alias that may evolve shared resources, its removal removes the whole stage
    master_alias: Optional[str] = None
    # externally managed execution role (provider.role), no role is embedded if set
    global_role: Any = None
    retain_versions: bool = dataclasses.field(default_factory=lambda: config.ALIAS_RETAIN_VERSIONS)
    # service level API Gateway stage settings
    alias_stage: Dict[str, Any] = dataclasses.field(default_factory=dict)
    # compiled function definitions of the service (name -> {"aliasStage": ..., "events": [...]})
    functions: Dict[str, dict] = dataclasses.field(default_factory=dict)
    stack_tags: Dict[str, str] = dataclasses.field(default_factory=dict)
    stack_policy: Optional[List[dict]] = None
    cfn_role: Optional[str] = None
    service_path: str = "."
    template_dir: str = dataclasses.field(default_factory=lambda: config.ALIAS_TEMPLATE_DIR)
    create_early: bool = dataclasses.field(default_factory=lambda: config.ALIAS_CREATE_EARLY)
    no_deploy: bool = False

    def __post_init__(self):
        self.alias = self.alias or self.stage
        self.stack_name = self.stack_name or f"{self.service}-{self.stage}"
        self.master_alias = self.master_alias or self.stage

    @property
    def alias_stack_name(self) -> str:
        return f"{self.stack_name}-{self.alias}"

    @property
    def normalized_alias(self) -> str:
        return normalize_alias_for_logical_id(self.alias)

    @property
    def is_master(self) -> bool:
        return self.alias == self.master_alias

    def export_name(self, name: str) -> str:
        return f"{self.stack_name}-{name}"


@dataclasses.dataclass
class AliasFlags:
    """Facts about an alias that later deployments of other aliases need to know."""

    has_role: bool = False
    extra: Dict[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {**self.extra, "hasRole": self.has_role}

    def serialize(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, value: Dict[str, Any]) -> "AliasFlags":
        extra = {k: v for k, v in value.items() if k != "hasRole"}
        return cls(has_role=bool(value.get("hasRole", False)), extra=extra)


def parse_flags(raw: Any) -> AliasFlags:
    """
    Parse the serialized flags of a deployed alias stack.

    :raises FlagsParseError: if the value is not a JSON object
    """
    if isinstance(raw, dict):
        return AliasFlags.from_dict(raw)
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise FlagsParseError(f"Invalid alias flags {raw!r}") from e
    if not isinstance(value, dict):
        raise FlagsParseError(f"Invalid alias flags {raw!r}")
    return AliasFlags.from_dict(value)


def load_flags(template: Template) -> AliasFlags:
    """Flags of a deployed alias stack, defaults if they are missing or unreadable."""
    try:
        return parse_flags(template.get_output_value(OUTPUT_ALIAS_FLAGS))
    except FlagsParseError as e:
        LOG.debug("Using default alias flags: %s", e)
        return AliasFlags()


def get_alias_name(template: Template) -> Optional[str]:
    return template.get_output_value(OUTPUT_ALIAS_NAME)


class DeployedSnapshots(NamedTuple):
    """Read-only templates of the currently deployed stacks."""

    current_template: Template
    """processed template of the stage stack"""
    alias_templates: List[Template]
    """original templates of all other deployed alias stacks"""
    current_alias_template: Template
    """original template of the alias stack being deployed or removed (empty if not deployed)"""


@dataclasses.dataclass
class PipelineContext:
    """State that is handed from one restructuring pass to the next."""

    options: AliasOptions
    user_resources: Template = dataclasses.field(default_factory=Template.empty)
    removed_resources: List[str] = dataclasses.field(default_factory=list)
    alias_flags: AliasFlags = dataclasses.field(default_factory=AliasFlags)
    sibling_flags: Dict[str, AliasFlags] = dataclasses.field(default_factory=dict)
    deferred_outputs: DeferredOutputs = dataclasses.field(default_factory=DeferredOutputs)
