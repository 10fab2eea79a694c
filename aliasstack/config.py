import os
from typing import Union

from aliasstack.constants import (
    AWS_REGION_US_EAST_1,
    DEFAULT_TEMPLATE_DIR,
    FALSE_STRINGS,
    LOG_LEVELS,
    TRACE_LOG_LEVELS,
    TRUE_STRINGS,
)


def eval_log_type(env_var_name: str) -> Union[str, bool]:
    """Get the log type from environment variable"""
    log_type = os.environ.get(env_var_name, "").lower().strip()
    return log_type if log_type in LOG_LEVELS else False


def is_env_true(env_var_name: str) -> bool:
    """Whether the given environment variable has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() in TRUE_STRINGS


def is_env_not_false(env_var_name: str) -> bool:
    """Whether the given environment variable is empty or has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() not in FALSE_STRINGS


def is_trace_logging_enabled():
    return ALIAS_LOG in TRACE_LOG_LEVELS


# log level of the library and the CLI (trace, debug, info, warn, error)
ALIAS_LOG = eval_log_type("ALIAS_LOG")
DEBUG = is_env_true("DEBUG") or ALIAS_LOG in TRACE_LOG_LEVELS

# whether function versions are kept when an alias stack drops them
ALIAS_RETAIN_VERSIONS = is_env_true("ALIAS_RETAIN_VERSIONS")

# folder (relative to the service path) that receives the generated templates
ALIAS_TEMPLATE_DIR = os.environ.get("ALIAS_TEMPLATE_DIR", "").strip() or DEFAULT_TEMPLATE_DIR

# whether the alias stack is created before the stage stack is applied
ALIAS_CREATE_EARLY = is_env_not_false("ALIAS_CREATE_EARLY")

# custom endpoint for all AWS clients, e.g., a local emulator
AWS_ENDPOINT_URL = os.environ.get("AWS_ENDPOINT_URL", "").strip() or None

AWS_DEFAULT_REGION = (
    os.environ.get("AWS_DEFAULT_REGION", "").strip()
    or os.environ.get("AWS_REGION", "").strip()
    or AWS_REGION_US_EAST_1
)

# waiter timings for stack operations
STACK_WAITER_DELAY = int(os.environ.get("STACK_WAITER_DELAY", "").strip() or 5)
STACK_WAITER_MAX_ATTEMPTS = int(os.environ.get("STACK_WAITER_MAX_ATTEMPTS", "").strip() or 720)
