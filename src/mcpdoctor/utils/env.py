# Environment variable substitution utilities
import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# ABOUTME: Matches ${NAME} and ${NAME:-default}; group 1 is everything inside the braces
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]*)\}")


@dataclass(frozen=True)
class EnvRef:
    """One ${...} reference found in a config value."""
    name: str
    has_default: bool
    default: str | None = None


def parse_ref(body: str) -> EnvRef:
    """Split the inside of a ${...} marker into a name and optional default.

    Examples:
        >>> parse_ref("FOO")
        EnvRef(name='FOO', has_default=False, default=None)
        >>> parse_ref("PORT:-8080")
        EnvRef(name='PORT', has_default=True, default='8080')
    """
    name, sep, default = body.partition(":-")
    if sep:
        return EnvRef(name=name, has_default=True, default=default)
    return EnvRef(name=name, has_default=False)


def find_env_refs(value: str) -> list[EnvRef]:
    """Return every ${...} reference in value, in order of appearance."""
    return [parse_ref(match.group(1)) for match in ENV_VAR_PATTERN.finditer(value)]


def ref_status(ref: EnvRef, environ: Mapping[str, str] | None = None) -> str:
    """Render a reference as NAME=SET or NAME=UNSET against the environment."""
    env = os.environ if environ is None else environ
    state = "SET" if ref.name in env else "UNSET"
    return f"{ref.name}={state}"


def expand_env_vars(value: str, environ: Mapping[str, str] | None = None) -> str:
    """Expand ${VAR} and ${VAR:-default} references.

    ABOUTME: Unset variables without a default are left as written
    ABOUTME: Used only to build probe requests, never for display

    Examples:
        >>> expand_env_vars("${HOME}/projects", {"HOME": "/home/user"})
        '/home/user/projects'
        >>> expand_env_vars("port=${PORT:-8080}", {})
        'port=8080'
    """
    env = os.environ if environ is None else environ

    def replace_var(match: re.Match[str]) -> str:
        ref = parse_ref(match.group(1))
        if ref.name in env:
            return env[ref.name]
        if ref.has_default:
            return ref.default or ""
        logger.debug(f"Environment variable '{ref.name}' not set, keeping original")
        return match.group(0)

    return ENV_VAR_PATTERN.sub(replace_var, value)
