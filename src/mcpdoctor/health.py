# ABOUTME: Liveness and reachability probes for classified MCP servers
# ABOUTME: stdio servers are resolved on PATH; http/sse servers get one initialize POST
import json
import logging
import os
import shutil
import socket
import time
import urllib.error
import urllib.request
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from fnmatch import fnmatch
from http.client import HTTPException
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from mcpdoctor import __version__
from mcpdoctor.classify import LAUNCHER_GROUPS, command_basename
from mcpdoctor.config import Settings
from mcpdoctor.models import (
    ClassifiedServer,
    Health,
    HealthResult,
    HttpServer,
    Issue,
    Severity,
    StdioServer,
    UnknownServer,
)
from mcpdoctor.utils import command_version, expand_env_vars, redact_url, run_command

logger = logging.getLogger(__name__)

# MCP protocol constants
MCP_PROTOCOL_VERSION = "2024-11-05"
MCP_CLIENT_NAME = "mcpdoctor"
MCP_CLIENT_VERSION = __version__

# ABOUTME: Package runner -> toolchain binary it needs
RUNNER_TOOLCHAINS = {
    "npx": "node",
    "uvx": "uv",
    "bunx": "bun",
}

# docker run flags that consume the following argument
DOCKER_VALUE_FLAGS = frozenset({
    "-e", "--env", "--env-file", "-v", "--volume", "--mount", "--name",
    "-p", "--publish", "--network", "--net", "-w", "--workdir", "-u", "--user",
    "--entrypoint", "-l", "--label", "--platform", "-h", "--hostname",
    "--add-host", "--cap-add", "--cap-drop", "--device", "--pull", "--restart",
    "-m", "--memory", "--cpus", "--security-opt", "--tmpfs", "--ulimit",
    "--runtime", "--log-driver", "--ipc", "--pid", "--gpus",
})

# Upper bound on how much of a response body is read
MAX_BODY_BYTES = 64 * 1024
READ_CHUNK_BYTES = 4096


@dataclass(frozen=True)
class ContainerRuntime:
    """How to query one docker-compatible runtime."""
    label: str
    version_format: str
    version_key: str
    unreachable: str


# ABOUTME: Command basename -> runtime; podman has no daemon and a different info schema
CONTAINER_RUNTIMES: dict[str, ContainerRuntime] = {
    "docker": ContainerRuntime(
        label="Docker",
        version_format="{{.ServerVersion}}",
        version_key="docker_server_version",
        unreachable="Docker daemon is not running or not reachable",
    ),
    "podman": ContainerRuntime(
        label="Podman",
        version_format="{{.Version.Version}}",
        version_key="podman_version",
        unreachable="Podman is not working ('podman info' failed)",
    ),
}


@dataclass(frozen=True)
class ProbeOutcome:
    """Issues and side-channel details produced by one probe step."""
    issues: tuple[Issue, ...] = ()
    details: dict[str, Any] = field(default_factory=dict)

    def merge(self, other: "ProbeOutcome") -> "ProbeOutcome":
        """Combine two outcomes; details already recorded are never overwritten."""
        details = dict(self.details)
        for key, value in other.details.items():
            details.setdefault(key, value)
        return ProbeOutcome(issues=self.issues + other.issues, details=details)


def error(message: str, **details: Any) -> ProbeOutcome:
    return ProbeOutcome(issues=(Issue("error", message),), details=details)


def warning(message: str, **details: Any) -> ProbeOutcome:
    return ProbeOutcome(issues=(Issue("warning", message),), details=details)


def escalate(current: Health, severity: Severity) -> Health:
    """Apply one issue to a health level.

    ABOUTME: error is sticky; warning only lifts healthy to warning
    """
    if current == "error" or severity == "error":
        return "error"
    return "warning"


def fold_health(issues: Iterable[Issue]) -> Health:
    health: Health = "healthy"
    for issue in issues:
        health = escalate(health, issue.severity)
    return health


# --- stdio -----------------------------------------------------------------

def find_non_executable(command: str) -> Path | None:
    """Locate a file named like command that exists but can't be executed."""
    if os.sep in command or (os.altsep and os.altsep in command):
        candidate = Path(command).expanduser()
        return candidate if candidate.is_file() else None

    for entry in os.environ.get("PATH", "").split(os.pathsep):
        if not entry:
            continue
        candidate = Path(entry) / command
        if candidate.is_file():
            return candidate
    return None


def check_command(server: StdioServer) -> tuple[ProbeOutcome, bool]:
    """Resolve the server command on PATH.

    Returns:
        (outcome, resolved) where resolved tells whether launcher checks make sense
    """
    resolved = shutil.which(server.command)
    if resolved is not None:
        return ProbeOutcome(details={"command_path": resolved}), True

    blocked = find_non_executable(server.command)
    if blocked is not None:
        return error(f"Command is not executable: {blocked}"), False
    return error(f"Command not found: {server.command}"), False


def docker_image(args: Sequence[str]) -> str | None:
    """Find the image reference in a docker/podman argument list.

    Examples:
        >>> docker_image(["run", "-i", "--rm", "-e", "TOKEN", "ghcr.io/org/server:1"])
        'ghcr.io/org/server:1'
    """
    items = list(args)
    if "run" in items:
        items = items[items.index("run") + 1:]

    skip_next = False
    for arg in items:
        if skip_next:
            skip_next = False
            continue
        if arg.startswith("-"):
            if "=" not in arg and arg in DOCKER_VALUE_FLAGS:
                skip_next = True
            continue
        return arg
    return None


def check_package_runner(server: StdioServer, settings: Settings) -> ProbeOutcome:
    tool = RUNNER_TOOLCHAINS[server.launcher]
    if shutil.which(tool) is None:
        return error(f"{tool} not found (required by {server.launcher})")

    version = command_version(tool, settings.command_timeout)
    return ProbeOutcome(details={f"{tool}_version": version or "unknown"})


def container_runtime(command: str) -> ContainerRuntime:
    """Pick the info template and wording for a docker-compatible command."""
    return CONTAINER_RUNTIMES.get(command_basename(command), CONTAINER_RUNTIMES["docker"])


def check_container_runner(server: StdioServer, settings: Settings) -> ProbeOutcome:
    runtime = container_runtime(server.command)
    info = run_command(
        [server.command, "info", "--format", runtime.version_format],
        settings.daemon_timeout,
    )
    if not info.ok:
        reason = f" (timed out after {settings.daemon_timeout:g}s)" if info.status == "timeout" else ""
        return error(f"{runtime.unreachable}{reason}")

    outcome = ProbeOutcome(details={runtime.version_key: info.first_line() or "unknown"})
    image = docker_image(server.args)
    if image is None:
        return outcome

    outcome = outcome.merge(ProbeOutcome(details={"docker_image": image}))
    inspect = run_command([server.command, "image", "inspect", image], settings.daemon_timeout)
    if not inspect.ok:
        outcome = outcome.merge(
            warning(f"{runtime.label} image {image} not found locally (will be pulled on first use)")
        )
    return outcome


def check_direct_runtime(server: StdioServer, settings: Settings) -> ProbeOutcome:
    version = command_version(server.command, settings.command_timeout)
    if version is None:
        return ProbeOutcome()
    return ProbeOutcome(details={"runtime_version": version})


def check_stdio(server: StdioServer, settings: Settings) -> ProbeOutcome:
    """Probe a stdio server without starting it.

    ABOUTME: Command must resolve on PATH; launcher-specific checks follow
    ABOUTME: Each launcher check fails independently and never aborts the probe
    """
    outcome = ProbeOutcome(
        details={"resolved_command": " ".join([server.command, *server.args])}
    )

    command_outcome, resolved = check_command(server)
    outcome = outcome.merge(command_outcome)

    if resolved:
        group = LAUNCHER_GROUPS[server.launcher]
        if group == "package-runner":
            outcome = outcome.merge(check_package_runner(server, settings))
        elif group == "container-runner":
            outcome = outcome.merge(check_container_runner(server, settings))
        elif group == "direct-runtime":
            outcome = outcome.merge(check_direct_runtime(server, settings))

    for name in server.missing_env:
        outcome = outcome.merge(warning(f"Environment variable {name} is not set (referenced in env)"))

    if server.cwd and not Path(server.cwd).expanduser().is_dir():
        outcome = outcome.merge(warning(f"Working directory does not exist: {server.cwd}"))

    return outcome


# --- http / sse --------------------------------------------------------------

def validate_url(url: str) -> str | None:
    """Return an error message if url isn't an absolute http(s) URL.

    ABOUTME: Messages quote the redacted form of the URL
    """
    try:
        parsed = urlsplit(url)
    except ValueError as e:
        return f"Invalid URL format '{redact_url(url)}': {e}"
    if parsed.scheme not in ("http", "https"):
        return f"URL must use HTTP or HTTPS scheme: {redact_url(url)}"
    if not parsed.netloc:
        return f"URL missing host/domain: {redact_url(url)}"
    return None


def is_oauth_host(url: str, patterns: Iterable[str]) -> bool:
    """True if the URL host matches a known OAuth-managed endpoint pattern."""
    host = (urlsplit(url).hostname or "").lower()
    return bool(host) and any(fnmatch(host, pattern.lower()) for pattern in patterns)


def initialize_request() -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "initialize",
        "params": {
            "protocolVersion": MCP_PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {
                "name": MCP_CLIENT_NAME,
                "version": MCP_CLIENT_VERSION,
            },
        },
    }


def extract_json_payload(body: str) -> str:
    """Return the JSON text of a response, unwrapping an SSE data line."""
    text = body.strip()
    if text.startswith(("event:", "data:", "id:", ":")):
        for line in text.splitlines():
            if line.startswith("data:"):
                return line[len("data:"):].strip()
        return ""
    return text


def is_valid_mcp_response(body: str) -> bool:
    """A JSON-RPC 2.0 object with an id and either result or error."""
    try:
        message = json.loads(extract_json_payload(body))
    except (json.JSONDecodeError, ValueError):
        return False
    return (
        isinstance(message, dict)
        and message.get("jsonrpc") == "2.0"
        and "id" in message
        and ("result" in message or "error" in message)
    )


@dataclass(frozen=True)
class HttpProbe:
    """Raw outcome of the initialize POST."""
    status: int | None = None
    body: str = ""
    failure: str | None = None


def has_complete_data_line(buffer: bytes) -> bool:
    """True once an SSE buffer holds a newline-terminated data: line."""
    return any(line.startswith(b"data:") for line in buffer.split(b"\n")[:-1])


def _read_body(response: Any, deadline: float) -> bytes:
    """Read at most MAX_BODY_BYTES, giving up once deadline passes.

    ABOUTME: read1 returns whatever one socket read yields, so a slow sender
    ABOUTME: can't stretch a single call past the per-operation timeout
    ABOUTME: Event streams may stay open; reading stops at the first data line

    Raises:
        TimeoutError: If the body isn't complete by the deadline
    """
    content_type = response.headers.get("Content-Type") if response.headers is not None else None
    event_stream = isinstance(content_type, str) and content_type.startswith("text/event-stream")

    body = b""
    while len(body) < MAX_BODY_BYTES:
        if time.monotonic() >= deadline:
            raise TimeoutError("response body not complete before deadline")
        chunk = response.read1(READ_CHUNK_BYTES)
        if not chunk:
            break
        body += chunk
        if event_stream and has_complete_data_line(body):
            break
    return body[:MAX_BODY_BYTES]


def post_initialize(url: str, headers: dict[str, str], timeout: float) -> HttpProbe:
    """Send one MCP initialize request; no retries.

    ABOUTME: Uses urllib.request so no extra HTTP dependency is needed
    ABOUTME: HTTP error statuses are returned as data, network failures as failure text
    ABOUTME: timeout bounds the whole exchange, not just each socket operation
    ABOUTME: Failure text never quotes the URL or headers, which may hold expanded secrets
    """
    deadline = time.monotonic() + timeout
    timed_out = HttpProbe(failure=f"timed out after {timeout:g} seconds")
    request_headers = {
        "Content-Type": "application/json",
        "Accept": "application/json, text/event-stream",
        **headers,
    }

    try:
        request = urllib.request.Request(
            url,
            data=json.dumps(initialize_request()).encode("utf-8"),
            headers=request_headers,
            method="POST",
        )
        with urllib.request.urlopen(request, timeout=timeout) as response:
            body = _read_body(response, deadline)
            return HttpProbe(status=response.status, body=body.decode("utf-8", errors="replace"))
    except urllib.error.HTTPError as e:
        return HttpProbe(status=e.code)
    except urllib.error.URLError as e:
        if isinstance(e.reason, (TimeoutError, socket.timeout)):
            return timed_out
        return HttpProbe(failure=f"connection failed: {e.reason}")
    except (TimeoutError, socket.timeout):
        return timed_out
    except (ValueError, HTTPException) as e:
        return HttpProbe(failure=f"invalid request ({type(e).__name__})")
    except OSError as e:
        return HttpProbe(failure=f"connection failed: {e}")


def classify_status(
    server: HttpServer,
    url: str,
    probe: HttpProbe,
    settings: Settings,
) -> ProbeOutcome:
    """Turn the raw HTTP result into issues."""
    if probe.status is None:
        return error(f"Endpoint unreachable: {probe.failure}")

    status = probe.status
    outcome = ProbeOutcome(details={"http_status": status})

    if status == 200:
        valid = is_valid_mcp_response(probe.body)
        outcome = outcome.merge(ProbeOutcome(details={"mcp_response": "valid" if valid else "invalid"}))
        if not valid:
            outcome = outcome.merge(warning("HTTP 200 but response is not a valid MCP JSON-RPC message"))
        return outcome

    if status in (401, 403):
        has_headers = bool(server.raw_headers)
        if not has_headers and is_oauth_host(url, settings.oauth_hosts):
            return outcome.merge(ProbeOutcome(details={"auth": "oauth_managed"}))
        if has_headers:
            return outcome.merge(warning(f"HTTP {status}: auth may be invalid or expired"))
        return outcome.merge(error(f"HTTP {status}: authentication required (no auth headers configured)"))

    if status == 404:
        return outcome.merge(error("HTTP 404: endpoint not found"))
    if status == 405:
        return outcome.merge(warning("HTTP 405: method not allowed (endpoint may not accept MCP requests at this path)"))
    if 500 <= status <= 599:
        return outcome.merge(error(f"HTTP {status}: server error"))
    return outcome.merge(warning(f"Unexpected HTTP status {status}"))


def check_http(server: HttpServer, settings: Settings) -> ProbeOutcome:
    """Probe a remote server with a single bounded initialize handshake."""
    if not server.raw_url:
        return error(f"Server '{server.name}' has no URL specified")

    url = expand_env_vars(server.raw_url)
    problem = validate_url(url)
    if problem is not None:
        return error(problem)

    if not settings.http_checks:
        return warning("HTTP client unavailable; skipped reachability check")

    headers = {key: expand_env_vars(value) for key, value in server.raw_headers.items()}
    probe = post_initialize(url, headers, settings.http_timeout)
    return classify_status(server, url, probe, settings)


# --- entry points --------------------------------------------------------------

def strip_secrets(server: ClassifiedServer) -> ClassifiedServer:
    """Drop the unredacted copies kept for probing."""
    if isinstance(server, HttpServer):
        return replace(server, raw_headers={}, raw_url=None)
    return server


def unknown_transport_message(server: UnknownServer) -> str:
    if server.declared_type in ("stdio", "http", "sse", "streamable-http"):
        return f"Server declares type '{server.declared_type}' but is missing its command or url"
    if server.declared_type is not None:
        return f"Unknown transport type '{server.declared_type}'"
    return "Unknown transport: declaration has neither 'command' nor 'url'"


def check_health(server: ClassifiedServer, settings: Settings | None = None) -> HealthResult:
    """Probe one effective server and return its health verdict.

    Args:
        server: Classified (merge-winning) server
        settings: Tool settings (timeouts, OAuth host patterns)

    Returns:
        HealthResult with unredacted fields removed
    """
    if settings is None:
        settings = Settings()

    if isinstance(server, StdioServer):
        outcome = check_stdio(server, settings)
    elif isinstance(server, HttpServer):
        outcome = check_http(server, settings)
    else:
        outcome = error(unknown_transport_message(server))

    health = fold_health(outcome.issues)
    logger.debug(f"Server '{server.name}' ({server.transport}) health: {health}")
    return HealthResult(
        server=strip_secrets(server),
        health=health,
        issues=outcome.issues,
        details=outcome.details,
    )


def check_all(servers: Sequence[ClassifiedServer], settings: Settings | None = None) -> list[HealthResult]:
    """Probe servers concurrently, one probe per server, results in input order.

    ABOUTME: Callers pass merge winners only, so each name is probed once
    ABOUTME: An unexpected exception in one probe becomes an error issue for that server
    """
    if settings is None:
        settings = Settings()
    if not servers:
        return []

    results: list[HealthResult | None] = [None] * len(servers)
    with ThreadPoolExecutor(max_workers=max(1, min(settings.max_workers, len(servers)))) as pool:
        futures = {pool.submit(check_health, server, settings): index for index, server in enumerate(servers)}
        for future in as_completed(futures):
            index = futures[future]
            try:
                results[index] = future.result()
            except Exception as e:
                server = servers[index]
                logger.error(f"Health check for '{server.name}' failed: {e}")
                results[index] = HealthResult(
                    server=strip_secrets(server),
                    health="error",
                    issues=(Issue("error", f"Health check failed unexpectedly: {e}"),),
                )

    return [result for result in results if result is not None]
