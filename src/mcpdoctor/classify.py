# Classification of raw server declarations into typed servers
import re
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from mcpdoctor.models import (
    ClassifiedServer,
    HttpServer,
    LauncherKind,
    ParsedConfig,
    ServerDeclaration,
    StdioServer,
    Tier,
    Transport,
    UnknownServer,
)
from mcpdoctor.utils import find_env_refs, redact_mapping, redact_url, ref_status

# ABOUTME: Command basename -> launcher kind
LAUNCHERS: dict[str, LauncherKind] = {
    "npx": "npx",
    "pnpx": "npx",
    "uvx": "uvx",
    "bunx": "bunx",
    "docker": "docker",
    "podman": "docker",
    "node": "node",
    "python": "python",
    "python3": "python",
    "deno": "deno",
}

# ABOUTME: Launcher kind -> broader category shown in reports
LAUNCHER_GROUPS: dict[LauncherKind, str] = {
    "npx": "package-runner",
    "uvx": "package-runner",
    "bunx": "package-runner",
    "docker": "container-runner",
    "node": "direct-runtime",
    "python": "direct-runtime",
    "deno": "direct-runtime",
    "custom": "custom",
}

# Arguments that never name the package being launched
BOILERPLATE_ARGS = frozenset({"-y", "--yes", "run", "exec", "--", ""})

# Explicit "type" values and the transport they mean
TYPE_ALIASES: dict[str, Transport] = {
    "stdio": "stdio",
    "http": "http",
    "streamable-http": "http",
    "sse": "sse",
}

_WINDOWS_SUFFIX = re.compile(r"\.(cmd|exe|bat)$", re.IGNORECASE)


def detect_transport(declaration: ServerDeclaration) -> Transport:
    """Work out how a server is reached.

    ABOUTME: Explicit "type" wins, then "url" means http, then "command" means stdio
    """
    declared = declaration.get("type")
    if declared is not None:
        return TYPE_ALIASES.get(str(declared).lower(), "unknown")
    if declaration.get("url"):
        return "http"
    if declaration.get("command"):
        return "stdio"
    return "unknown"


def command_basename(command: str) -> str:
    """Lowercase program name without directory or Windows executable suffix.

    Examples:
        >>> command_basename("/usr/bin/podman")
        'podman'
        >>> command_basename(r"C:\\nodejs\\npx.cmd")
        'npx'
    """
    base = re.split(r"[\\/]", command.strip())[-1]
    return _WINDOWS_SUFFIX.sub("", base).lower()


def launcher_kind(command: str) -> LauncherKind:
    """Map a command (bare name or path) onto a launcher kind.

    Examples:
        >>> launcher_kind("npx")
        'npx'
        >>> launcher_kind("/usr/local/bin/python3")
        'python'
        >>> launcher_kind("my-server")
        'custom'
    """
    return LAUNCHERS.get(command_basename(command), "custom")


def detect_package(args: Sequence[str]) -> str:
    """Best guess at the package a launcher runs: the first real argument.

    Examples:
        >>> detect_package(["-y", "@modelcontextprotocol/server-github"])
        '@modelcontextprotocol/server-github'
        >>> detect_package(["--yes"])
        'unknown'
    """
    for arg in args:
        if arg in BOILERPLATE_ARGS or arg.startswith("-"):
            continue
        return arg
    return "unknown"


def env_reference_status(env: dict[str, str]) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Resolve every ${...} marker in env values against os.environ.

    ABOUTME: First item: NAME=SET / NAME=UNSET entries, deduplicated, first-seen order
    ABOUTME: Second item: unset names referenced without a :-default fallback
    """
    seen: dict[str, str] = {}
    missing: list[str] = []
    for value in env.values():
        for ref in find_env_refs(value):
            if ref.name not in seen:
                seen[ref.name] = ref_status(ref)
            if seen[ref.name].endswith("=UNSET") and not ref.has_default and ref.name not in missing:
                missing.append(ref.name)
    return tuple(seen.values()), tuple(missing)


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): v if isinstance(v, str) else str(v) for k, v in value.items()}


def _string_args(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(arg) for arg in value)


def classify_server(
    name: str,
    declaration: ServerDeclaration,
    tier: Tier,
    source: Path,
) -> ClassifiedServer:
    """Turn a raw declaration into a typed, transport-specific server.

    ABOUTME: Env values and header values are redacted in the returned copy
    ABOUTME: HttpServer keeps unredacted headers in raw_headers for probing only

    Args:
        name: Server name (key under mcpServers)
        declaration: Raw declaration object
        tier: Tier of the source it came from
        source: Path of the source file

    Returns:
        StdioServer, HttpServer or UnknownServer
    """
    transport = detect_transport(declaration)

    if transport == "stdio" and isinstance(declaration.get("command"), str):
        command = declaration["command"]
        args = _string_args(declaration.get("args"))
        env = _string_map(declaration.get("env"))
        cwd = declaration.get("cwd")
        env_refs, missing_env = env_reference_status(env)
        return StdioServer(
            name=name,
            tier=tier,
            source=source,
            command=command,
            args=args,
            launcher=launcher_kind(command),
            package=detect_package(args),
            cwd=str(cwd) if cwd is not None else None,
            env=redact_mapping(env),
            env_refs=env_refs,
            missing_env=missing_env,
        )

    if transport in ("http", "sse"):
        url = declaration.get("url")
        url = url if isinstance(url, str) and url else None
        headers = _string_map(declaration.get("headers"))
        return HttpServer(
            name=name,
            tier=tier,
            source=source,
            url=redact_url(url) if url else None,
            headers=redact_mapping(headers),
            raw_headers=headers,
            raw_url=url,
            transport=transport,
        )

    declared = declaration.get("type")
    return UnknownServer(
        name=name,
        tier=tier,
        source=source,
        fields=tuple(sorted(str(k) for k in declaration)),
        declared_type=str(declared) if declared is not None else None,
    )


def classify_all(parsed: Iterable[ParsedConfig]) -> list[ClassifiedServer]:
    """Classify every declaration of every source, keeping source order."""
    servers: list[ClassifiedServer] = []
    for config in parsed:
        for name, declaration in config.servers.items():
            servers.append(
                classify_server(name, declaration, config.source.tier, config.source.path)
            )
    return servers
