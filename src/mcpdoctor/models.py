# Core data models for mcpdoctor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Union

# ABOUTME: Tier names in precedence order (earliest wins a name conflict)
Tier = Literal[
    "managed-mcp",
    "managed-settings",
    "user",
    "project",
    "user-settings",
    "project-settings",
    "local-settings",
]

TIER_ORDER: tuple[Tier, ...] = (
    "managed-mcp",
    "managed-settings",
    "user",
    "project",
    "user-settings",
    "project-settings",
    "local-settings",
)

Scope = Literal["organization", "all-projects", "project"]
SourceKind = Literal["mcp", "settings"]
Transport = Literal["stdio", "http", "sse", "unknown"]
LauncherKind = Literal["npx", "uvx", "bunx", "docker", "node", "python", "deno", "custom"]
Severity = Literal["warning", "error"]
Health = Literal["healthy", "warning", "error"]

# ABOUTME: Raw server entry exactly as found under "mcpServers"
ServerDeclaration = dict[str, Any]


@dataclass(frozen=True)
class ConfigSource:
    """One configuration location and its place in the precedence order."""
    tier: Tier
    scope: Scope
    shared: bool
    path: Path
    kind: SourceKind


@dataclass(frozen=True)
class SettingsPolicy:
    """Policy fields extracted from a settings.json style source.

    ABOUTME: Every field defaults to an empty/neutral value
    ABOUTME: Unknown keys in the source file are never carried over
    """
    permissions: dict[str, Any] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)
    hooks: dict[str, Any] = field(default_factory=dict)
    enabled_mcpjson_servers: list[str] = field(default_factory=list)
    disabled_mcpjson_servers: list[str] = field(default_factory=list)
    allowed_mcp_servers: list[Any] = field(default_factory=list)
    denied_mcp_servers: list[Any] = field(default_factory=list)
    enable_all_project_mcp_servers: bool | None = None
    model: str | None = None


@dataclass(frozen=True)
class ParsedConfig:
    """Outcome of reading one ConfigSource.

    ABOUTME: Missing and unparsable sources carry empty maps, never raise
    """
    source: ConfigSource
    exists: bool = False
    parse_error: bool = False
    error_message: str | None = None
    servers: dict[str, ServerDeclaration] = field(default_factory=dict)
    settings: SettingsPolicy | None = None


@dataclass(frozen=True)
class StdioServer:
    """Server launched as a local process speaking MCP over stdin/stdout."""
    name: str
    tier: Tier
    source: Path
    command: str
    args: tuple[str, ...] = ()
    launcher: LauncherKind = "custom"
    package: str = "unknown"
    cwd: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    env_refs: tuple[str, ...] = ()
    missing_env: tuple[str, ...] = ()
    transport: Transport = "stdio"


@dataclass(frozen=True)
class HttpServer:
    """Remote server reached over streamable HTTP or SSE.

    ABOUTME: headers is the redacted display copy
    ABOUTME: raw_headers is kept for the live probe only and never serialized
    """
    name: str
    tier: Tier
    source: Path
    url: str | None
    headers: dict[str, str] = field(default_factory=dict)
    raw_headers: dict[str, str] = field(default_factory=dict, repr=False, compare=False)
    raw_url: str | None = field(default=None, repr=False, compare=False)
    transport: Transport = "http"


@dataclass(frozen=True)
class UnknownServer:
    """Declaration whose transport could not be determined."""
    name: str
    tier: Tier
    source: Path
    fields: tuple[str, ...] = ()
    declared_type: str | None = None
    transport: Transport = "unknown"


ClassifiedServer = Union[StdioServer, HttpServer, UnknownServer]


@dataclass(frozen=True)
class Issue:
    """A single problem found while probing a server."""
    severity: Severity
    message: str


@dataclass(frozen=True)
class HealthResult:
    """A classified server plus its health verdict.

    ABOUTME: details holds side-channel probe output (versions, status codes)
    """
    server: ClassifiedServer
    health: Health = "healthy"
    issues: tuple[Issue, ...] = ()
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConflictRecord:
    """A server name declared in two or more sources."""
    name: str
    occurrences: tuple[tuple[Tier, Path], ...]
    winner: Tier
    shadowed: tuple[Tier, ...]
