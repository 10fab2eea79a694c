import json
from typing import Iterable


class AliasStackError(Exception):
    """Base class for all errors raised while restructuring, deploying or removing alias stacks."""


class TemplatePathError(AliasStackError):
    """A property path does not match the shape of the template document."""

    def __init__(self, path, reason: str):
        self.path = path
        super().__init__(f"Cannot resolve property path '{path}': {reason}")


class InvalidAliasCharacter(AliasStackError):
    def __init__(self, alias: str):
        self.alias = alias
        super().__init__(
            f"Alias '{alias}' contains invalid characters. Only alphanumerics, '-', '+' and '_' are allowed."
        )


class InvalidStackName(AliasStackError):
    def __init__(self, stack_name: str):
        self.stack_name = stack_name
        super().__init__(
            f"The stack alias name '{stack_name}' is not valid. A service name should only contain "
            "alphanumeric (case sensitive) and hyphens. It should start with an alphabetic character "
            "and shouldn't exceed 128 characters."
        )


class ExportNotFound(AliasStackError):
    def __init__(self, export_name: str):
        self.export_name = export_name
        super().__init__(f"Export {export_name} is not available or not imported by any stack")


class CorruptSnapshot(AliasStackError):
    def __init__(self, message: str = "Received malformed response from CloudFormation"):
        super().__init__(message)


class FlagsParseError(AliasStackError):
    """The serialized alias flags of a deployed alias stack could not be read."""


class StackInformationError(AliasStackError):
    def __init__(self, stack_name: str, status_code: int):
        self.stack_name = stack_name
        self.status_code = status_code
        super().__init__(f"Unable to retrieve current stack information: {status_code}")


class ResourceConflict(AliasStackError):
    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(
            f"{kind} {name} is already deployed by another alias with a different configuration. "
            "Setup your aliases manually."
        )


class UnexpectedPolicyShape(AliasStackError):
    def __init__(self, policy_count: int):
        self.policy_count = policy_count
        super().__init__(
            f"The lambda execution role declares {policy_count} inline policies, exactly 1 is supported."
        )


class IncompatibleStackStructure(AliasStackError):
    pass


class InvalidStageConfig(AliasStackError):
    pass


class OtherAliasesStillDeployed(AliasStackError):
    def __init__(self, aliases: Iterable[str]):
        self.aliases = list(aliases)
        super().__init__(
            "You have to remove all other aliases before you can remove the master alias. "
            f"Deployed aliases: {', '.join(self.aliases)}"
        )


class MasterStackMissing(AliasStackError):
    def __init__(self, alias: str):
        self.alias = alias
        super().__init__(
            f"Internal error: Stack for master alias {alias} is not deployed. Try to solve the problem "
            "manually by deleting the stacks in the CloudFormation console."
        )


class CannotRemoveStageAlias(AliasStackError):
    def __init__(self):
        super().__init__("Cannot delete the stage alias. Did you intend to remove the service instead?")


class AliasNotDeployed(AliasStackError):
    def __init__(self, alias: str):
        self.alias = alias
        super().__init__(f"Alias {alias} is not deployed.")


class NoStackUpdates(AliasStackError):
    """The orchestrator reported that the submitted template does not change the stack."""

    def __init__(self, stack_name: str):
        self.stack_name = stack_name
        super().__init__(f"No updates are to be performed on stack {stack_name}.")


class StackDeployError(AliasStackError):
    def __init__(self, stack_name: str, describe_res: dict, events: list[dict]):
        self.stack_name = stack_name
        self.describe_result = describe_res
        self.events = events
        super().__init__(
            f"Stack {stack_name} failed with status {describe_res.get('StackStatus')}: "
            f"{describe_res.get('StackStatusReason', '')}\nEvents:\n{self.format_events(events)}"
        )

    def format_events(self, events: list[dict]) -> str:
        event_details = (
            json.dumps(
                {
                    key: event.get(key)
                    for key in [
                        "LogicalResourceId",
                        "ResourceType",
                        "ResourceStatus",
                        "ResourceStatusReason",
                    ]
                },
                default=str,
            )
            for event in events
        )
        return "\n".join(event_details)
