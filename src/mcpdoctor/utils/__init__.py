# ABOUTME: Utility modules for mcpdoctor
# ABOUTME: Exports redaction, env substitution and bounded process helpers

from mcpdoctor.utils.env import EnvRef, expand_env_vars, find_env_refs, ref_status
from mcpdoctor.utils.process import CommandResult, command_version, run_command
from mcpdoctor.utils.redact import (
    REDACTED,
    is_sensitive_key,
    redact_mapping,
    redact_url,
    redact_value,
)

__all__ = [
    "EnvRef",
    "expand_env_vars",
    "find_env_refs",
    "ref_status",
    "CommandResult",
    "command_version",
    "run_command",
    "REDACTED",
    "is_sensitive_key",
    "redact_mapping",
    "redact_url",
    "redact_value",
]
